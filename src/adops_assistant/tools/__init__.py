# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""CrewAI tools for ad operations."""

from .forecast import AvailabilityForecastTool

__all__ = ["AvailabilityForecastTool"]
