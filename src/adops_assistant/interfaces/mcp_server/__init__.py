# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""MCP tool server."""

from .main import create_server

__all__ = ["create_server"]
