# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Tests for the MCP tool server."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from adops_assistant.interfaces.mcp_server import create_server
from adops_assistant.interfaces.mcp_server.main import _close_on_shutdown


class TestCreateServer:
    """Tests for create_server."""

    @pytest.mark.asyncio
    async def test_registers_forecast_tool(self):
        """Test the forecast tool is listed with its arguments."""
        server = create_server(client=MagicMock())

        tools = await server.list_tools()

        forecast = next(t for t in tools if t.name == "availability_forecast")
        properties = forecast.inputSchema["properties"]
        assert {"startDate", "endDate", "sizes"} <= set(properties)
        assert set(forecast.inputSchema["required"]) == {"startDate", "endDate", "sizes"}
        assert "availability forecast" in forecast.description


class TestShutdown:
    """Tests for closing the forecast client on shutdown."""

    @pytest.mark.asyncio
    async def test_built_client_closed(self):
        """Test a client the server built for itself is closed."""
        client = MagicMock()
        client.close = AsyncMock()
        state = {"owned": True, "client": client}

        async with _close_on_shutdown(state)(None):
            client.close.assert_not_called()

        client.close.assert_awaited_once()
        assert "client" not in state

    @pytest.mark.asyncio
    async def test_injected_client_left_open(self):
        """Test a caller-supplied client is left to its owner."""
        client = MagicMock()
        client.close = AsyncMock()

        async with _close_on_shutdown({"owned": False, "client": client})(None):
            pass

        client.close.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_client_built(self):
        """Test shutdown before any tool call has nothing to close."""
        async with _close_on_shutdown({"owned": True})(None) as context:
            assert context == {}
