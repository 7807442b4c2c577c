# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Client implementations for the ad operations assistant."""

from .board_client import BoardClient, BoardClientError
from .forecast_client import ForecastClient

__all__ = [
    # GAM ForecastService (queued, token-cached SOAP client)
    "ForecastClient",
    # Monday.com boards, used for ad unit names
    "BoardClient",
    "BoardClientError",
]
