# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Data models for the ad operations assistant."""

from .forecast import (
    IMMEDIATE,
    ContendingLineItem,
    CreativeSize,
    CriteriaOperator,
    CustomTargeting,
    DateRange,
    ForecastRequest,
    ForecastResult,
    FrequencyCap,
    GeoTargeting,
    SoapFault,
    TargetingBreakdown,
    TimeUnit,
)

__all__ = [
    # Request models
    "IMMEDIATE",
    "CreativeSize",
    "CriteriaOperator",
    "CustomTargeting",
    "DateRange",
    "ForecastRequest",
    "FrequencyCap",
    "GeoTargeting",
    "TimeUnit",
    # Result models
    "ContendingLineItem",
    "ForecastResult",
    "SoapFault",
    "TargetingBreakdown",
]
