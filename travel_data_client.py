"""Async client for the NE Travel Data traffic feeds."""
from __future__ import annotations

import os
from typing import List, Optional

import httpx

from traffic_errors import InvalidArgument, TransportError
from traffic_records import FEED_CATEGORIES

DEFAULT_BASE_URL = "https://www.netraveldata.co.uk/api/v2"
DEFAULT_TIMEOUT_S = 20.0


class TravelDataClient:
    """Minimal client fetching one raw traffic dataset per call."""

    def __init__(
        self,
        base_url: str,
        user: str,
        passwd: str,
        timeout: float = DEFAULT_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._user = user
        self._passwd = passwd
        self._timeout = httpx.Timeout(timeout, connect=min(timeout, 5.0))
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_env(cls) -> "TravelDataClient":
        """Build a ``TravelDataClient`` using environment configuration.

        Environment variables:
        * ``TRAVELDATA_BASE_URL`` - optional, defaults to ``https://www.netraveldata.co.uk/api/v2``
        * ``TRAVELDATA_USER`` - API account username.
        * ``TRAVELDATA_PASSWD`` - API account password.
        * ``TRAVELDATA_TIMEOUT_S`` - optional request timeout in seconds.
        """

        base_url = (os.getenv("TRAVELDATA_BASE_URL") or "").strip() or DEFAULT_BASE_URL
        user = (os.getenv("TRAVELDATA_USER") or "").strip()
        passwd = (os.getenv("TRAVELDATA_PASSWD") or "").strip()

        missing: List[str] = []
        if not user:
            missing.append("TRAVELDATA_USER")
        if not passwd:
            missing.append("TRAVELDATA_PASSWD")
        if missing:
            raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

        timeout_raw = (os.getenv("TRAVELDATA_TIMEOUT_S") or "").strip()
        try:
            timeout = float(timeout_raw) if timeout_raw else DEFAULT_TIMEOUT_S
        except ValueError:
            raise RuntimeError(f"TRAVELDATA_TIMEOUT_S is not a number: {timeout_raw!r}") from None

        return cls(base_url=base_url, user=user, passwd=passwd, timeout=timeout)

    @property
    def base_url(self) -> str:
        return self._base_url

    def url_for(self, category: str) -> str:
        return f"{self._base_url}/traffic/{category}"

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                auth=httpx.BasicAuth(self._user, self._passwd),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch(self, category: str) -> str:
        """Return the raw JSON text for one feed category.

        Raises ``TransportError`` for non-2xx responses and for connection
        or timeout failures. No retries happen here.
        """
        if category not in FEED_CATEGORIES:
            raise InvalidArgument(f"unknown feed category: {category!r}")

        client = await self._ensure_client()
        try:
            response = await client.get(
                self.url_for(category),
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            print(f"[travel_data] {category} request failed: {exc!r}")
            raise TransportError(category, cause=exc) from exc

        print(f"[travel_data] {category} response code: {response.status_code}")
        if not response.is_success:
            raise TransportError(category, status=response.status_code)

        text = response.text
        print(f"[travel_data] fetched {category}: {text[:100]}...")
        return text


__all__ = ["DEFAULT_BASE_URL", "TravelDataClient"]
