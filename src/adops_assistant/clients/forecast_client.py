# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Availability forecasts from the Google Ad Manager ForecastService."""

import asyncio
import logging
from typing import Any, Optional

import httpx

from ..config.settings import Settings, get_settings
from ..gam.auth import CredentialCache, ServiceAccountTokenExchange
from ..gam.decoder import decode_forecast_response
from ..gam.errors import RemoteFault, TransportError
from ..gam.request_queue import RequestQueue
from ..gam.soap import SoapConfig, compile_forecast_request
from ..models.forecast import ForecastRequest, ForecastResult, SoapFault
from .board_client import BoardClient

logger = logging.getLogger(__name__)

SOAP_CONTENT_TYPE = "text/xml;charset=UTF-8"


class ForecastClient:
    """Client for GAM availability forecasts.

    Every call is compiled up front, then waits its turn in the request
    queue. Inside its slot it fetches a bearer token, posts the envelope,
    and decodes the response. Ad unit names are looked up afterwards on a
    best-effort basis; that lookup never fails the call.
    """

    def __init__(
        self,
        soap_config: SoapConfig,
        credentials: CredentialCache,
        forecast_url: str,
        queue: Optional[RequestQueue] = None,
        board_client: Optional[BoardClient] = None,
        ad_units_board_id: str = "",
        ad_unit_id_column: str = "",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            soap_config: Network code, application name, API version, time zone
            credentials: Shared bearer token cache
            forecast_url: ForecastService endpoint
            queue: Request queue; a fresh unthrottled queue if omitted
            board_client: Optional board client for ad unit name lookup
            ad_units_board_id: Board holding the ad units
            ad_unit_id_column: Column on that board holding GAM ad unit ids
            timeout: Forecast request timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.forecast_url = forecast_url
        self._soap_config = soap_config
        self._credentials = credentials
        self._queue = queue or RequestQueue()
        self._board_client = board_client
        self._ad_units_board_id = ad_units_board_id
        self._ad_unit_id_column = ad_unit_id_column
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._client_loop: Optional[asyncio.AbstractEventLoop] = None
        self._owned: list[Any] = []

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ForecastClient":
        """Create a client wired from application settings."""
        settings = settings or get_settings()
        exchange = ServiceAccountTokenExchange(
            service_account_email=settings.google_service_account_email,
            private_key=settings.google_private_key,
            token_url=settings.gam_token_url,
        )
        board_client = (
            BoardClient(api_key=settings.monday_api_key, base_url=settings.monday_api_url)
            if settings.monday_api_key
            else None
        )
        client = cls(
            soap_config=SoapConfig.from_settings(settings),
            credentials=CredentialCache(
                exchange, safety_margin=settings.gam_token_safety_margin_seconds
            ),
            forecast_url=settings.get_forecast_url(),
            queue=RequestQueue(
                min_interval=settings.gam_min_request_interval_seconds,
                max_pending=settings.gam_max_pending_requests,
            ),
            board_client=board_client,
            ad_units_board_id=settings.monday_ad_units_board_id,
            ad_unit_id_column=settings.monday_ad_unit_id_column,
            timeout=settings.gam_request_timeout_seconds,
        )
        client._owned.append(exchange)
        if board_client is not None:
            client._owned.append(board_client)
        return client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get the HTTP client for the running event loop.

        Sync callers run each call under a fresh ``asyncio.run`` loop, and a
        pooled connection cannot be reused from a loop other than its own.
        """
        loop = asyncio.get_running_loop()
        if self._client is None or self._client.is_closed or self._client_loop is not loop:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
            self._client_loop = loop
        return self._client

    @property
    def queue(self) -> RequestQueue:
        return self._queue

    async def request_forecast(self, request: ForecastRequest) -> ForecastResult:
        """Get an availability forecast.

        Args:
            request: Targeting specification

        Returns:
            Decoded forecast, with ad unit names when they could be resolved

        Raises:
            CompileError: The request does not have the documented shape
            CredentialError: No access token could be obtained
            TransportError: The forecast endpoint could not be reached
            RemoteFault: GAM answered with a SOAP fault
            DecodeError: The success response was not a forecast envelope
            QueueFullError: The request queue is bounded and full
        """
        xml_body = compile_forecast_request(request, self._soap_config)
        logger.debug(f"Queued forecast request ({self._queue.pending} ahead)")
        result = await self._queue.enqueue(lambda: self._send(xml_body))
        return await self._enrich(request, result)

    async def _send(self, xml_body: str) -> ForecastResult:
        """Run one forecast call; executes inside the queue slot."""
        logger.debug("Authorizing forecast request")
        token = await self._credentials.get_access_token()

        logger.info("Sending SOAP request to GAM API")
        client = await self._get_client()
        try:
            response = await client.post(
                self.forecast_url,
                content=xml_body.encode("utf-8"),
                headers={
                    "Content-Type": SOAP_CONTENT_TYPE,
                    "Authorization": f"Bearer {token}",
                    "Accept-Encoding": "gzip",
                },
            )
        except Exception as e:
            logger.error(f"SOAP request failed: {e}")
            raise TransportError(f"Could not reach ForecastService: {e}") from e

        if response.status_code != 200:
            logger.error(f"SOAP response error body: {response.text}")

        outcome = decode_forecast_response(response.content, response.status_code)
        if isinstance(outcome, SoapFault):
            raise RemoteFault(outcome, status_code=response.status_code)

        logger.info("Received SOAP response from GAM API")
        return outcome

    async def _enrich(self, request: ForecastRequest, result: ForecastResult) -> ForecastResult:
        """Attach ad unit names for display; failures only get logged."""
        ad_unit_ids = request.ad_unit_ids()
        if self._board_client is None or not ad_unit_ids:
            return result

        try:
            names = await self._board_client.get_ad_unit_names(
                ad_unit_ids,
                board_id=self._ad_units_board_id,
                id_column=self._ad_unit_id_column,
            )
        except Exception as e:
            logger.warning(f"Could not resolve ad unit names: {e}")
            return result

        return result.model_copy(update={"ad_unit_names": names})

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Close the HTTP client and any collaborators created by from_settings."""
        if self._client is not None:
            await self._client.aclose()
        for resource in self._owned:
            await resource.close()
        self._owned.clear()

    async def __aenter__(self) -> "ForecastClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.close()
