import asyncio
import json

import aiohttp
import pytest

from icefishing.errors import ExternalServiceUnavailable
from icefishing.transfer_client import TonApiClient


class FakeResponse:
    def __init__(self, status, payload=None):
        self.status = status
        self.payload = payload

    async def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, params=None):
        self.calls.append((url, params))
        if self.error is not None:
            raise self.error
        return self.response


def client_with(session):
    client = TonApiClient(base_url="https://tonapi.test/v2/")

    async def get_session():
        return session

    client._get_session = get_session
    return client


@pytest.mark.asyncio
async def test_returns_normalized_transfers():
    payload = {
        "transactions": [
            {"hash": "h1", "utime": 10, "in_msg": {"value": 5, "source": {"address": "s"}}}
        ]
    }
    session = FakeSession(FakeResponse(200, payload))
    transfers = await client_with(session).recent_incoming("EQ/treasury", limit=7)
    assert [(t.transfer_id, t.amount, t.timestamp_ms) for t in transfers] == [("h1", 5, 10_000)]
    url, params = session.calls[0]
    assert url == "https://tonapi.test/v2/blockchain/accounts/EQ%2Ftreasury/transactions"
    assert params == {"limit": "7"}


@pytest.mark.asyncio
async def test_http_error_is_unavailable():
    with pytest.raises(ExternalServiceUnavailable):
        await client_with(FakeSession(FakeResponse(429))).recent_incoming("t")


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [asyncio.TimeoutError(), aiohttp.ClientConnectionError("down")])
async def test_network_errors_are_unavailable(error):
    with pytest.raises(ExternalServiceUnavailable):
        await client_with(FakeSession(error=error)).recent_incoming("t")


@pytest.mark.asyncio
async def test_unparsable_body_is_unavailable():
    response = FakeResponse(200, json.JSONDecodeError("Expecting value", "<html>", 0))
    with pytest.raises(ExternalServiceUnavailable):
        await client_with(FakeSession(response)).recent_incoming("t")
