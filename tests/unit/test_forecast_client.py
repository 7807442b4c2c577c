# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Tests for the forecast client pipeline."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from adops_assistant.clients.board_client import BoardClientError
from adops_assistant.clients.forecast_client import SOAP_CONTENT_TYPE, ForecastClient
from adops_assistant.config.settings import Settings
from adops_assistant.gam.errors import (
    CompileError,
    CredentialError,
    DecodeError,
    RemoteFault,
    TransportError,
)
from adops_assistant.gam.request_queue import RequestQueue
from adops_assistant.models.forecast import DateRange, ForecastRequest

FORECAST_URL = "https://ads.example.test/apis/ads/publisher/v202502/ForecastService"

BASIC_RVAL = """
    <availableUnits>1000000</availableUnits>
    <deliveredUnits>0</deliveredUnits>
    <matchedUnits>1200000</matchedUnits>
    <possibleUnits>1100000</possibleUnits>
    <reservedUnits>0</reservedUnits>
"""


@pytest.fixture
def credentials():
    """Credential cache stub that always has a token."""
    cache = MagicMock()
    cache.get_access_token = AsyncMock(return_value="test-token")
    return cache


@pytest.fixture
def request_model():
    """Immediate-start request for one ad unit."""
    return ForecastRequest.model_validate(
        {
            "dateRange": {"start": "immediate", "end": "2025-12-31"},
            "creativeSizes": [[300, 250]],
            "targetedAdUnitIds": [21700000000],
        }
    )


def _client(soap_config, credentials, handler, **kwargs) -> ForecastClient:
    return ForecastClient(
        soap_config=soap_config,
        credentials=credentials,
        forecast_url=FORECAST_URL,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestRequestForecast:
    """Tests for the end-to-end forecast call."""

    @pytest.mark.asyncio
    async def test_success(self, soap_config, credentials, request_model, forecast_envelope):
        """Test an immediate-start request returns the decoded forecast."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(200, text=forecast_envelope(BASIC_RVAL))

        async with _client(soap_config, credentials, handler) as client:
            result = await client.request_forecast(request_model)

        assert result.available_units == 1000000
        assert result.matched_units == 1200000
        assert result.possible_units == 1100000
        assert result.delivered_units == 0
        assert result.reserved_units == 0
        assert result.contending_line_items == []

        body = seen["request"].content.decode("utf-8")
        assert "<startDateTimeType>IMMEDIATELY</startDateTimeType>" in body
        assert "<startDateTime>" not in body
        assert "<adUnitId>21700000000</adUnitId>" in body
        assert "<includeDescendants>true</includeDescendants>" in body

    @pytest.mark.asyncio
    async def test_request_headers(self, soap_config, credentials, request_model, forecast_envelope):
        """Test the POST carries the SOAP content type and bearer token."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(200, text=forecast_envelope(BASIC_RVAL))

        async with _client(soap_config, credentials, handler) as client:
            await client.request_forecast(request_model)

        request = seen["request"]
        assert request.method == "POST"
        assert str(request.url) == FORECAST_URL
        assert request.headers["Content-Type"] == SOAP_CONTENT_TYPE
        assert request.headers["Authorization"] == "Bearer test-token"
        assert request.headers["Accept-Encoding"] == "gzip"

    @pytest.mark.asyncio
    async def test_fault_response(self, soap_config, credentials, request_model, fault_envelope):
        """Test a SOAP fault raises RemoteFault with the fault string."""
        message = "[PermissionError.PERMISSION_DENIED @ ]"

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text=fault_envelope(message))

        async with _client(soap_config, credentials, handler) as client:
            with pytest.raises(RemoteFault) as exc_info:
                await client.request_forecast(request_model)

        assert exc_info.value.fault_string == message
        assert exc_info.value.status_code == 500
        assert str(exc_info.value) == (
            f"SOAP request failed with status: 500, Fault: {message}"
        )

    @pytest.mark.asyncio
    async def test_unparseable_error_body(self, soap_config, credentials, request_model):
        """Test a non-SOAP error body raises RemoteFault with the unknown fault."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="<html>Bad Gateway</html>")

        async with _client(soap_config, credentials, handler) as client:
            with pytest.raises(RemoteFault, match="Unknown fault"):
                await client.request_forecast(request_model)

    @pytest.mark.asyncio
    async def test_transport_error(self, soap_config, credentials, request_model):
        """Test connection failures raise TransportError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        async with _client(soap_config, credentials, handler) as client:
            with pytest.raises(TransportError):
                await client.request_forecast(request_model)

    @pytest.mark.asyncio
    async def test_unexpected_transport_failure(self, soap_config, credentials, request_model):
        """Test non-httpx failures during the POST also raise TransportError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise RuntimeError("Event loop is closed")

        async with _client(soap_config, credentials, handler) as client:
            with pytest.raises(TransportError, match="Event loop is closed"):
                await client.request_forecast(request_model)

    @pytest.mark.asyncio
    async def test_malformed_success(self, soap_config, credentials, request_model):
        """Test a 200 that is not a forecast envelope raises DecodeError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="not xml at all")

        async with _client(soap_config, credentials, handler) as client:
            with pytest.raises(DecodeError):
                await client.request_forecast(request_model)

    @pytest.mark.asyncio
    async def test_credential_error_skips_request(self, soap_config, request_model):
        """Test no POST is sent when no token can be obtained."""
        handler = MagicMock()
        credentials = MagicMock()
        credentials.get_access_token = AsyncMock(side_effect=CredentialError("invalid_grant"))

        async with _client(soap_config, credentials, handler) as client:
            with pytest.raises(CredentialError):
                await client.request_forecast(request_model)

        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_compile_error_before_any_work(self, soap_config, credentials):
        """Test an unusable request fails without a token or a request."""
        handler = MagicMock()
        request = ForecastRequest.model_construct(
            date_range=DateRange(start="now", end="2025-12-31"), creative_sizes=[]
        )

        async with _client(soap_config, credentials, handler) as client:
            with pytest.raises(CompileError):
                await client.request_forecast(request)
            assert client.queue.pending == 0

        credentials.get_access_token.assert_not_called()
        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_calls_are_serialized(
        self, soap_config, credentials, request_model, forecast_envelope
    ):
        """Test only one forecast request is in flight at a time."""
        in_flight = 0
        peak = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return httpx.Response(200, text=forecast_envelope(BASIC_RVAL))

        async with _client(soap_config, credentials, handler, queue=RequestQueue()) as client:
            results = await asyncio.gather(
                *(client.request_forecast(request_model) for _ in range(4))
            )

        assert len(results) == 4
        assert peak == 1

    @pytest.mark.asyncio
    async def test_failed_call_does_not_block_next(
        self, soap_config, credentials, request_model, forecast_envelope, fault_envelope
    ):
        """Test a fault for one caller leaves the next one unaffected."""
        responses = [
            httpx.Response(500, text=fault_envelope("QuotaError.EXCEEDED_QUOTA")),
            httpx.Response(200, text=forecast_envelope(BASIC_RVAL)),
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            return responses.pop(0)

        async with _client(soap_config, credentials, handler) as client:
            outcomes = await asyncio.gather(
                client.request_forecast(request_model),
                client.request_forecast(request_model),
                return_exceptions=True,
            )

        assert isinstance(outcomes[0], RemoteFault)
        assert outcomes[1].available_units == 1000000


class TestAdUnitNames:
    """Tests for best-effort ad unit name enrichment."""

    @pytest.mark.asyncio
    async def test_names_attached(self, soap_config, credentials, request_model, forecast_envelope):
        """Test resolved names are attached to the result."""
        board = MagicMock()
        board.get_ad_unit_names = AsyncMock(return_value={21700000000: "jv.dk"})

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text=forecast_envelope(BASIC_RVAL))

        async with _client(
            soap_config,
            credentials,
            handler,
            board_client=board,
            ad_units_board_id="1558569789",
            ad_unit_id_column="text__1",
        ) as client:
            result = await client.request_forecast(request_model)

        assert result.ad_unit_names == {21700000000: "jv.dk"}
        board.get_ad_unit_names.assert_awaited_once_with(
            [21700000000], board_id="1558569789", id_column="text__1"
        )

    @pytest.mark.asyncio
    async def test_lookup_failure_is_ignored(
        self, soap_config, credentials, request_model, forecast_envelope
    ):
        """Test a failed lookup still returns the forecast."""
        board = MagicMock()
        board.get_ad_unit_names = AsyncMock(side_effect=BoardClientError("boom"))

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text=forecast_envelope(BASIC_RVAL))

        async with _client(soap_config, credentials, handler, board_client=board) as client:
            result = await client.request_forecast(request_model)

        assert result.available_units == 1000000
        assert result.ad_unit_names == {}

    @pytest.mark.asyncio
    async def test_no_lookup_without_ad_units(self, soap_config, credentials, forecast_envelope):
        """Test requests without ad units skip the lookup."""
        board = MagicMock()
        board.get_ad_unit_names = AsyncMock(return_value={})
        request = ForecastRequest.model_validate(
            {"dateRange": {"start": "now", "end": "2025-12-31"}, "creativeSizes": [[300, 250]]}
        )

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text=forecast_envelope(BASIC_RVAL))

        async with _client(soap_config, credentials, handler, board_client=board) as client:
            await client.request_forecast(request)

        board.get_ad_unit_names.assert_not_called()


class TestFromSettings:
    """Tests for wiring from settings."""

    def test_wires_queue_and_board(self):
        """Test settings flow into the queue and board client."""
        settings = Settings(
            _env_file=None,
            gam_network_code="12345678",
            gam_min_request_interval_seconds=0.25,
            gam_max_pending_requests=5,
            monday_api_key="monday-key",
        )

        client = ForecastClient.from_settings(settings)

        assert client.queue._min_interval == 0.25
        assert client.queue._max_pending == 5
        assert client._board_client is not None
        assert client.forecast_url == settings.get_forecast_url()

    def test_no_board_without_key(self):
        """Test the board lookup is disabled without an API key."""
        settings = Settings(_env_file=None, gam_network_code="12345678", monday_api_key=None)

        client = ForecastClient.from_settings(settings)

        assert client._board_client is None
