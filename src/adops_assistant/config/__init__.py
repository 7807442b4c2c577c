# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Configuration module."""

from .logging_config import configure_logging
from .settings import Settings, get_settings, settings

__all__ = ["Settings", "configure_logging", "get_settings", "settings"]
