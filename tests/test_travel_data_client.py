import asyncio
import base64
import os
import sys
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from traffic_errors import InvalidArgument, TransportError  # noqa: E402
from travel_data_client import DEFAULT_BASE_URL, TravelDataClient  # noqa: E402


def _client(handler) -> TravelDataClient:
    return TravelDataClient(
        base_url="https://api.example.com/v2/",
        user="user",
        passwd="pass",
        transport=httpx.MockTransport(handler),
    )


def _fetch(client: TravelDataClient, category: str) -> str:
    async def run():
        try:
            return await client.fetch(category)
        finally:
            await client.aclose()

    return asyncio.run(run())


def test_fetch_sends_basic_auth_and_returns_body():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, text='[{"shortDescription": "Lane closed"}]')

    body = _fetch(_client(handler), "incident")

    assert body == '[{"shortDescription": "Lane closed"}]'
    assert seen["url"] == "https://api.example.com/v2/traffic/incident"
    expected = base64.b64encode(b"user:pass").decode("ascii")
    assert seen["auth"] == f"Basic {expected}"


def test_non_2xx_status_raises_transport_error_with_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    with pytest.raises(TransportError) as excinfo:
        _fetch(_client(handler), "accident")

    assert excinfo.value.category == "accident"
    assert excinfo.value.status == 503
    assert excinfo.value.cause is None


def test_connection_failure_raises_transport_error_with_cause():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportError) as excinfo:
        _fetch(_client(handler), "event")

    assert excinfo.value.status is None
    assert isinstance(excinfo.value.cause, httpx.ConnectError)


def test_timeout_raises_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(TransportError) as excinfo:
        _fetch(_client(handler), "incident")

    assert isinstance(excinfo.value.cause, httpx.TimeoutException)


def test_unknown_category_is_rejected_before_any_request():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, text="[]")

    with pytest.raises(InvalidArgument):
        _fetch(_client(handler), "user_report")
    assert calls == []


def test_from_env_reports_all_missing_variables():
    with patch.dict(os.environ, {"TRAVELDATA_USER": "", "TRAVELDATA_PASSWD": ""}, clear=False):
        with pytest.raises(RuntimeError) as excinfo:
            TravelDataClient.from_env()
    message = str(excinfo.value)
    assert "TRAVELDATA_USER" in message
    assert "TRAVELDATA_PASSWD" in message


def test_from_env_uses_default_base_url():
    env = {"TRAVELDATA_USER": "u", "TRAVELDATA_PASSWD": "p", "TRAVELDATA_BASE_URL": ""}
    with patch.dict(os.environ, env, clear=False):
        client = TravelDataClient.from_env()
    assert client.base_url == DEFAULT_BASE_URL
    assert client.url_for("event") == f"{DEFAULT_BASE_URL}/traffic/event"
