# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""MCP server exposing the availability forecast to AI assistants."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Literal, Optional

from mcp.server.fastmcp import FastMCP

from ...clients.forecast_client import ForecastClient
from ...config.settings import settings
from ...tools.forecast.availability_forecast import run_availability_forecast

logger = logging.getLogger(__name__)

SERVER_NAME = "adops-assistant"


def _close_on_shutdown(state: dict[str, Any]):
    """Lifespan that closes a client the server built for itself."""

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[dict]:
        try:
            yield {}
        finally:
            if state.get("owned") and "client" in state:
                logger.info("Closing forecast client")
                await state.pop("client").close()

    return lifespan


def create_server(client: Optional[ForecastClient] = None) -> FastMCP:
    """Create the MCP server.

    Args:
        client: Forecast client to serve. If omitted, one is built from settings
            on first use and closed when the server shuts down

    Returns:
        FastMCP server with the forecast tool registered
    """
    state: dict[str, Any] = {"owned": client is None}
    if client is not None:
        state["client"] = client
    mcp = FastMCP(SERVER_NAME, lifespan=_close_on_shutdown(state))

    def get_client() -> ForecastClient:
        # One client per process so all tool calls share the queue and token
        if "client" not in state:
            state["client"] = ForecastClient.from_settings(settings)
        return state["client"]

    @mcp.tool()
    async def availability_forecast(
        startDate: str,
        endDate: str,
        sizes: list[list[int]],
        goalQuantity: Optional[int] = None,
        targetedAdUnitIds: Optional[list[int]] = None,
        excludedAdUnitIds: Optional[list[int]] = None,
        targetedPlacementIds: Optional[list[int]] = None,
        audienceSegmentIds: Optional[list[str]] = None,
        customTargeting: Optional[list[dict]] = None,
        frequencyCapMaxImpressions: Optional[int] = None,
        frequencyCapTimeUnit: Optional[
            Literal["MINUTE", "HOUR", "DAY", "WEEK", "MONTH", "LIFETIME"]
        ] = None,
        geoTargeting: Optional[dict] = None,
    ) -> str:
        """Get inventory availability forecast from Google Ad Manager.

        Provides available/matched/possible impressions, contending line items
        and a targeting breakdown. startDate accepts YYYY-MM-DD or "now";
        sizes are [width, height] pairs, e.g. [[300, 250], [728, 90]].
        customTargeting entries look like {"keyId": "...", "valueIds": [...],
        "operator": "IS"}; geoTargeting is {"targetedLocationIds": [...],
        "excludedLocationIds": [...]}.
        """
        logger.info(f"availability_forecast called: {startDate} to {endDate}, sizes={sizes}")
        return await run_availability_forecast(
            get_client(),
            startDate=startDate,
            endDate=endDate,
            sizes=sizes,
            goalQuantity=goalQuantity,
            targetedAdUnitIds=targetedAdUnitIds,
            excludedAdUnitIds=excludedAdUnitIds,
            targetedPlacementIds=targetedPlacementIds,
            audienceSegmentIds=audienceSegmentIds,
            customTargeting=customTargeting,
            frequencyCapMaxImpressions=frequencyCapMaxImpressions,
            frequencyCapTimeUnit=frequencyCapTimeUnit,
            geoTargeting=geoTargeting,
        )

    return mcp
