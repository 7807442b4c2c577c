# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""User-facing interfaces: MCP tool server and CLI."""
