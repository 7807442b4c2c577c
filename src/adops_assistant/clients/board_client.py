# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""HTTP client for the Monday.com GraphQL board backend."""

import asyncio
import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

MONDAY_API_URL = "https://api.monday.com/v2"


class BoardClientError(Exception):
    """Board backend request failed or returned GraphQL errors."""


class BoardClient:
    """Async client for Monday.com boards."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = MONDAY_API_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            api_key: Monday.com API token
            base_url: GraphQL endpoint
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.base_url = base_url
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._client_loop: Optional[asyncio.AbstractEventLoop] = None

    def _build_headers(self, api_key: Optional[str]) -> dict[str, str]:
        """Build request headers."""
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = api_key
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client for the running event loop."""
        loop = asyncio.get_running_loop()
        if self._client is None or self._client.is_closed or self._client_loop is not loop:
            self._client = httpx.AsyncClient(
                headers=self._build_headers(self._api_key),
                timeout=self._timeout,
                transport=self._transport,
            )
            self._client_loop = loop
        return self._client

    async def query(
        self, query: str, variables: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        """Run a GraphQL query.

        Args:
            query: GraphQL document
            variables: Query variables

        Returns:
            The ``data`` member of the response

        Raises:
            BoardClientError: Missing API key, HTTP failure, or GraphQL errors
        """
        if not self._api_key:
            raise BoardClientError("MONDAY_API_KEY environment variable is not set")

        client = await self._get_client()
        response = await client.post(
            self.base_url, json={"query": query, "variables": variables or {}}
        )
        if response.status_code != 200:
            logger.error(f"Monday.com API request failed: {response.status_code} - {response.text}")
            raise BoardClientError(
                f"Monday.com API responded with status: {response.status_code}. "
                f"Details: {response.text}"
            )

        payload = response.json()
        errors = payload.get("errors")
        if errors:
            logger.error(f"Monday.com GraphQL errors: {errors}")
            message = errors[0].get("message", "Unknown error")
            raise BoardClientError(f"Monday.com GraphQL error: {message}")

        return payload.get("data") or {}

    # -------------------------------------------------------------------------
    # Ad units
    # -------------------------------------------------------------------------

    async def get_ad_unit_names(
        self,
        ad_unit_ids: list[int],
        board_id: str,
        id_column: str,
    ) -> dict[int, str]:
        """Resolve GAM ad unit ids to item names on the ad units board.

        Args:
            ad_unit_ids: GAM ad unit ids
            board_id: Board holding one item per ad unit
            id_column: Column holding the GAM ad unit id

        Returns:
            Mapping of ad unit id to name; ids without an item are omitted
        """
        if not ad_unit_ids:
            return {}

        query = """
        query ($boardId: [ID!], $columnId: String!, $values: CompareValue!, $limit: Int!) {
          boards(ids: $boardId) {
            items_page(
              limit: $limit,
              query_params: {
                rules: [{column_id: $columnId, compare_value: $values, operator: any_of}]
              }
            ) {
              items {
                name
                column_values(ids: [$columnId]) {
                  text
                }
              }
            }
          }
        }
        """
        data = await self.query(
            query,
            {
                "boardId": [board_id],
                "columnId": id_column,
                "values": [str(ad_unit_id) for ad_unit_id in ad_unit_ids],
                "limit": max(len(ad_unit_ids), 1),
            },
        )

        names: dict[int, str] = {}
        boards = data.get("boards") or []
        items = (boards[0].get("items_page") or {}).get("items", []) if boards else []
        for item in items:
            for column in item.get("column_values") or []:
                raw_id = (column.get("text") or "").strip()
                if raw_id.isdigit() and int(raw_id) in ad_unit_ids:
                    names[int(raw_id)] = item.get("name", "")
        return names

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()

    async def __aenter__(self) -> "BoardClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.close()
