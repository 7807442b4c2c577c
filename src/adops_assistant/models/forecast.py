# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Pydantic models for GAM availability forecasts."""

from datetime import date
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

IMMEDIATE = "immediate"

# Spellings of an immediate start accepted from tool callers
_IMMEDIATE_ALIASES = {"immediate", "immediately", "now"}


class TimeUnit(str, Enum):
    """Frequency cap window."""

    MINUTE = "MINUTE"
    HOUR = "HOUR"
    DAY = "DAY"
    WEEK = "WEEK"
    MONTH = "MONTH"
    LIFETIME = "LIFETIME"


class CriteriaOperator(str, Enum):
    """Comparison operator for custom criteria."""

    IS = "IS"
    IS_NOT = "IS_NOT"


# =============================================================================
# Request Models
# =============================================================================


class DateRange(BaseModel):
    """Flight dates. Start may be immediate; end is always a concrete day."""

    start: Union[Literal["immediate"], date]
    end: date

    model_config = {"frozen": True}

    @field_validator("start", mode="before")
    @classmethod
    def _normalize_immediate(cls, value: object) -> object:
        if isinstance(value, str) and value.strip().lower() in _IMMEDIATE_ALIASES:
            return IMMEDIATE
        return value

    @model_validator(mode="after")
    def _check_order(self) -> "DateRange":
        if self.start != IMMEDIATE and self.end < self.start:
            raise ValueError(f"end date {self.end} is before start date {self.start}")
        return self

    @property
    def is_immediate(self) -> bool:
        """Whether the flight starts as soon as possible."""
        return self.start == IMMEDIATE


class CreativeSize(BaseModel):
    """Creative placeholder size in pixels."""

    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)

    model_config = {"frozen": True}


class CustomTargeting(BaseModel):
    """One custom key with the values it must (or must not) match."""

    key_id: str = Field(..., alias="keyId")
    value_ids: list[str] = Field(..., alias="valueIds", min_length=1)
    operator: CriteriaOperator = CriteriaOperator.IS

    model_config = {"populate_by_name": True, "frozen": True}

    @field_validator("key_id", mode="before")
    @classmethod
    def _coerce_key(cls, value: object) -> object:
        return str(value) if isinstance(value, int) else value

    @field_validator("value_ids", mode="before")
    @classmethod
    def _coerce_values(cls, value: object) -> object:
        if isinstance(value, list):
            return [str(v) if isinstance(v, int) else v for v in value]
        return value


class FrequencyCap(BaseModel):
    """Impression limit per user within a time window."""

    max_impressions: Optional[int] = Field(default=None, alias="maxImpressions", gt=0)
    time_unit: TimeUnit = Field(default=TimeUnit.WEEK, alias="timeUnit")

    model_config = {"populate_by_name": True, "frozen": True}


class GeoTargeting(BaseModel):
    """Targeted and excluded location ids."""

    targeted_location_ids: list[int] = Field(
        default_factory=list, alias="targetedLocationIds"
    )
    excluded_location_ids: list[int] = Field(
        default_factory=list, alias="excludedLocationIds"
    )

    model_config = {"populate_by_name": True, "frozen": True}

    @property
    def is_empty(self) -> bool:
        return not self.targeted_location_ids and not self.excluded_location_ids


class ForecastRequest(BaseModel):
    """Targeting specification for an availability forecast."""

    date_range: DateRange = Field(..., alias="dateRange")
    creative_sizes: list[CreativeSize] = Field(..., alias="creativeSizes", min_length=1)
    goal_impressions: Optional[int] = Field(default=None, alias="goalImpressions", gt=0)
    targeted_ad_unit_ids: Optional[list[int]] = Field(
        default=None, alias="targetedAdUnitIds"
    )
    excluded_ad_unit_ids: Optional[list[int]] = Field(
        default=None, alias="excludedAdUnitIds"
    )
    targeted_placement_ids: Optional[list[int]] = Field(
        default=None, alias="targetedPlacementIds"
    )
    audience_segment_ids: Optional[list[str]] = Field(
        default=None, alias="audienceSegmentIds"
    )
    custom_targeting: Optional[list[CustomTargeting]] = Field(
        default=None, alias="customTargeting"
    )
    frequency_cap: Optional[FrequencyCap] = Field(default=None, alias="frequencyCap")
    geo_targeting: Optional[GeoTargeting] = Field(default=None, alias="geoTargeting")

    model_config = {"populate_by_name": True, "frozen": True}

    @field_validator("creative_sizes", mode="before")
    @classmethod
    def _sizes_from_pairs(cls, value: object) -> object:
        """Accept ``[[300, 250], [728, 90]]`` as well as width/height objects."""
        if isinstance(value, list):
            return [
                {"width": item[0], "height": item[1]}
                if isinstance(item, (list, tuple)) and len(item) == 2
                else item
                for item in value
            ]
        return value

    @field_validator("audience_segment_ids", mode="before")
    @classmethod
    def _coerce_segments(cls, value: object) -> object:
        if isinstance(value, list):
            return [str(v) if isinstance(v, int) else v for v in value]
        return value

    def ad_unit_ids(self) -> list[int]:
        """All ad unit ids referenced by the request, targeted first, deduplicated."""
        seen: list[int] = []
        for unit_id in (self.targeted_ad_unit_ids or []) + (self.excluded_ad_unit_ids or []):
            if unit_id not in seen:
                seen.append(unit_id)
        return seen


# =============================================================================
# Result Models
# =============================================================================


class ContendingLineItem(BaseModel):
    """A line item competing for the same inventory."""

    line_item_id: int = Field(..., alias="lineItemId")
    name: Optional[str] = None
    priority: Optional[int] = None
    contending_impressions: int = Field(..., alias="contendingImpressions")

    model_config = {"populate_by_name": True, "frozen": True}


class TargetingBreakdown(BaseModel):
    """Availability for a single targeting criterion."""

    criterion: str
    dimension: str
    available_units: int = Field(default=0, alias="availableUnits")
    matched_units: int = Field(default=0, alias="matchedUnits")

    model_config = {"populate_by_name": True, "frozen": True}


class ForecastResult(BaseModel):
    """Decoded availability forecast."""

    available_units: int = Field(default=0, alias="availableUnits")
    matched_units: int = Field(default=0, alias="matchedUnits")
    possible_units: int = Field(default=0, alias="possibleUnits")
    delivered_units: int = Field(default=0, alias="deliveredUnits")
    reserved_units: int = Field(default=0, alias="reservedUnits")
    contending_line_items: list[ContendingLineItem] = Field(
        default_factory=list, alias="contendingLineItems"
    )
    targeting_breakdown: list[TargetingBreakdown] = Field(
        default_factory=list, alias="targetingBreakdown"
    )
    # Display-only names from the board backend; empty when lookup failed
    ad_unit_names: dict[int, str] = Field(default_factory=dict, alias="adUnitNames")

    model_config = {"populate_by_name": True, "frozen": True}


class SoapFault(BaseModel):
    """Fault envelope returned in place of a forecast."""

    fault_string: str = Field(..., alias="faultString")

    model_config = {"populate_by_name": True, "frozen": True}
