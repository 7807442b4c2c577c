# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Availability forecast tool backed by the GAM ForecastService."""

import asyncio
from typing import Any, Literal, Optional

from crewai.tools import BaseTool
from pydantic import BaseModel, Field, ValidationError

from ...clients.forecast_client import ForecastClient
from ...gam.errors import ForecastError, RemoteFault
from ...models.forecast import ForecastRequest, ForecastResult


class CustomTargetingInput(BaseModel):
    """One custom key/value targeting entry."""

    keyId: str = Field(..., description="GAM custom targeting key ID")
    valueIds: list[str] = Field(..., description="GAM custom targeting value IDs")
    operator: Literal["IS", "IS_NOT"] = Field(default="IS")


class GeoTargetingInput(BaseModel):
    """Geographic targeting."""

    targetedLocationIds: list[int] = Field(default_factory=list)
    excludedLocationIds: list[int] = Field(default_factory=list)


class AvailabilityForecastInput(BaseModel):
    """Input schema for the availability forecast tool."""

    startDate: str = Field(
        ...,
        description='Campaign start date (YYYY-MM-DD) or "now" for immediate start',
    )
    endDate: str = Field(..., description="Campaign end date (YYYY-MM-DD)")
    sizes: list[list[int]] = Field(
        ...,
        description="Ad sizes as [width, height] arrays (e.g., [[300, 250], [728, 90]])",
    )
    goalQuantity: Optional[int] = Field(
        default=None, description="Impression goal for the line item"
    )
    targetedAdUnitIds: Optional[list[int]] = Field(
        default=None, description="GAM ad unit IDs to target (descendants included)"
    )
    excludedAdUnitIds: Optional[list[int]] = Field(
        default=None, description="GAM ad unit IDs to exclude"
    )
    targetedPlacementIds: Optional[list[int]] = Field(
        default=None, description="GAM placement IDs to target"
    )
    audienceSegmentIds: Optional[list[str]] = Field(
        default=None, description="GAM audience segment IDs"
    )
    customTargeting: Optional[list[CustomTargetingInput]] = Field(
        default=None, description="Custom key/value targeting"
    )
    frequencyCapMaxImpressions: Optional[int] = Field(
        default=None, description="Max impressions per user within the time unit"
    )
    frequencyCapTimeUnit: Optional[
        Literal["MINUTE", "HOUR", "DAY", "WEEK", "MONTH", "LIFETIME"]
    ] = Field(default=None, description="Frequency cap window (default: WEEK)")
    geoTargeting: Optional[GeoTargetingInput] = Field(
        default=None, description="Location IDs to include or exclude"
    )


def build_forecast_request(args: AvailabilityForecastInput) -> ForecastRequest:
    """Translate tool arguments into a ForecastRequest.

    Raises:
        ValidationError: Arguments violate a request invariant
    """
    frequency_cap = None
    if args.frequencyCapMaxImpressions:
        frequency_cap = {"maxImpressions": args.frequencyCapMaxImpressions}
        if args.frequencyCapTimeUnit:
            frequency_cap["timeUnit"] = args.frequencyCapTimeUnit

    return ForecastRequest.model_validate(
        {
            "dateRange": {"start": args.startDate, "end": args.endDate},
            "creativeSizes": args.sizes,
            "goalImpressions": args.goalQuantity,
            "targetedAdUnitIds": args.targetedAdUnitIds,
            "excludedAdUnitIds": args.excludedAdUnitIds,
            "targetedPlacementIds": args.targetedPlacementIds,
            "audienceSegmentIds": args.audienceSegmentIds,
            "customTargeting": [ct.model_dump() for ct in args.customTargeting]
            if args.customTargeting
            else None,
            "frequencyCap": frequency_cap,
            "geoTargeting": args.geoTargeting.model_dump() if args.geoTargeting else None,
        }
    )


def _ad_unit_label(ad_unit_id: int, result: ForecastResult) -> str:
    name = result.ad_unit_names.get(ad_unit_id)
    return f"{name} ({ad_unit_id})" if name else str(ad_unit_id)


def format_forecast(request: ForecastRequest, result: ForecastResult) -> str:
    """Format a forecast as readable text."""
    date_range = request.date_range
    start = "Immediately" if date_range.is_immediate else date_range.start.isoformat()
    sizes = ", ".join(f"{s.width}x{s.height}" for s in request.creative_sizes)

    lines = [
        "Availability Forecast",
        "",
        f"Flight Dates: {start} to {date_range.end.isoformat()}",
        f"Sizes: {sizes}",
    ]

    if request.targeted_ad_unit_ids:
        targeted = ", ".join(_ad_unit_label(i, result) for i in request.targeted_ad_unit_ids)
        lines.append(f"Targeted Ad Units: {targeted}")
    if request.excluded_ad_unit_ids:
        excluded = ", ".join(_ad_unit_label(i, result) for i in request.excluded_ad_unit_ids)
        lines.append(f"Excluded Ad Units: {excluded}")

    lines += [
        "",
        "Inventory:",
        f"  Available Units: {result.available_units:,}",
        f"  Matched Units: {result.matched_units:,}",
        f"  Possible Units: {result.possible_units:,}",
        f"  Delivered Units: {result.delivered_units:,}",
        f"  Reserved Units: {result.reserved_units:,}",
    ]

    if result.matched_units:
        availability = result.available_units / result.matched_units * 100
        lines.append(f"  Availability: {availability:.1f}% of matched inventory")

    if result.contending_line_items:
        lines += ["", f"Contending Line Items ({len(result.contending_line_items)}):"]
        for item in result.contending_line_items:
            label = f"{item.name} ({item.line_item_id})" if item.name else str(item.line_item_id)
            priority = f", priority {item.priority}" if item.priority is not None else ""
            lines.append(f"  - {label}: {item.contending_impressions:,} impressions{priority}")

    if result.targeting_breakdown:
        lines += ["", "Targeting Breakdown:"]
        for row in result.targeting_breakdown:
            lines.append(
                f"  - {row.dimension} / {row.criterion}: "
                f"{row.available_units:,} available of {row.matched_units:,} matched"
            )

    return "\n".join(lines)


async def run_availability_forecast(client: ForecastClient, **kwargs: Any) -> str:
    """Validate arguments, request a forecast, and render the outcome as text.

    Failures are rendered too, with GAM fault strings passed through verbatim.
    """
    try:
        args = AvailabilityForecastInput(**kwargs)
        request = build_forecast_request(args)
    except (ValidationError, ValueError) as e:
        return f"Invalid forecast request: {e}"

    try:
        result = await client.request_forecast(request)
    except RemoteFault as e:
        return f"GAM rejected the forecast request: {e.fault_string}"
    except ForecastError as e:
        return f"Error getting availability forecast: {e}"

    return format_forecast(request, result)


class AvailabilityForecastTool(BaseTool):
    """Forecast GAM inventory availability for a targeting setup."""

    name: str = "availability_forecast"
    description: str = """Get inventory availability forecast from the Google Ad Manager
SOAP API. Returns available, matched, possible, delivered and reserved
impressions, contending line items, and a per-criterion breakdown.

Args:
    startDate: Campaign start date (YYYY-MM-DD) or "now"
    endDate: Campaign end date (YYYY-MM-DD)
    sizes: Ad sizes as [width, height] arrays
    targetedAdUnitIds / excludedAdUnitIds / targetedPlacementIds: Inventory (optional)
    audienceSegmentIds / customTargeting: Audience and key/value targeting (optional)
    frequencyCapMaxImpressions / frequencyCapTimeUnit: Frequency cap (optional)
    geoTargeting: Location IDs to include or exclude (optional)

Returns:
    Forecast summary with availability and competing demand."""

    args_schema: type[BaseModel] = AvailabilityForecastInput
    _client: ForecastClient

    def __init__(self, client: ForecastClient, **kwargs: Any):
        """Initialize with a forecast client."""
        super().__init__(**kwargs)
        self._client = client

    def _run(self, **kwargs: Any) -> str:
        """Synchronous wrapper for async forecast."""
        return asyncio.run(self._arun(**kwargs))

    async def _arun(self, **kwargs: Any) -> str:
        """Run the forecast."""
        return await run_availability_forecast(self._client, **kwargs)
