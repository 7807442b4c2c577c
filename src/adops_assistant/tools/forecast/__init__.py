# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Forecast tools for inventory availability."""

from .availability_forecast import (
    AvailabilityForecastInput,
    AvailabilityForecastTool,
    build_forecast_request,
    format_forecast,
)

__all__ = [
    "AvailabilityForecastInput",
    "AvailabilityForecastTool",
    "build_forecast_request",
    "format_forecast",
]
