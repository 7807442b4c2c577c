# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Application settings loaded from environment variables."""

from functools import lru_cache
from typing import Optional

from dotenv import find_dotenv
from pydantic_settings import BaseSettings

# Find .env file by searching up from current working directory
_ENV_FILE = find_dotenv(usecwd=True)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Google Ad Manager network
    gam_network_code: str = ""
    gam_application_name: str = "adops-assistant"
    gam_api_version: str = "v202502"
    gam_time_zone: str = "Europe/Copenhagen"

    # Google Ad Manager endpoints (forecast URL derived from the API version if unset)
    gam_forecast_url: Optional[str] = None
    gam_token_url: str = "https://oauth2.googleapis.com/token"

    # Service account used for the JWT bearer exchange
    google_service_account_email: Optional[str] = None
    google_private_key: Optional[str] = None

    # Forecast client behaviour
    gam_token_safety_margin_seconds: float = 300.0
    gam_min_request_interval_seconds: float = 0.5
    gam_max_pending_requests: int = 0  # requests waiting behind the running one; 0 = unbounded
    gam_request_timeout_seconds: float = 60.0

    # Monday.com board backend
    monday_api_key: Optional[str] = None
    monday_api_url: str = "https://api.monday.com/v2"
    monday_ad_units_board_id: str = "1558569789"
    monday_ad_unit_id_column: str = "text__1"

    def get_forecast_url(self) -> str:
        """Resolve the ForecastService endpoint.

        Returns:
            Explicit override, or the endpoint for the configured API version
        """
        if self.gam_forecast_url:
            return self.gam_forecast_url
        return (
            f"https://www.google.com/apis/ads/publisher/{self.gam_api_version}"
            "/ForecastService"
        )

    def get_network_code(self) -> str:
        """Network code with stray quotes from .env files removed."""
        return self.gam_network_code.replace('"', "").strip()

    # Environment
    environment: str = "development"
    log_level: str = "INFO"

    model_config = {
        "env_file": _ENV_FILE if _ENV_FILE else None,
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
