# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Ad operations assistant: GAM availability forecasting exposed to AI tools."""

__version__ = "0.1.0"
