"""
Tests for ExplorerClient against an httpx MockTransport.
"""
import httpx
import pytest

from tokenops.blockchain import ExplorerClient
from tokenops.errors import UpstreamError


def explorer_with(handler, settings):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ExplorerClient(settings, http=http)


class TestExplorerClient:

    async def test_get_balance(self, settings, addr):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"status": "1", "message": "OK", "result": "2500000000000000000"})

        balance = await explorer_with(handler, settings).get_balance(addr.user, "testnet")

        assert balance["balance_wei"] == "2500000000000000000"
        assert balance["balance"] == "2.5"
        assert balance["source"] == "explorer"
        assert seen["url"].startswith("https://explorer.azore.technology/api")
        assert seen["params"]["action"] == "balance"
        assert seen["params"]["address"] == "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"

    async def test_empty_history(self, settings, addr):
        def handler(request):
            return httpx.Response(200, json={"status": "0", "message": "No transactions found", "result": []})

        assert await explorer_with(handler, settings).list_transactions(addr.user) == []

    async def test_error_status(self, settings, addr):
        def handler(request):
            return httpx.Response(200, json={"status": "0", "message": "NOTOK", "result": "Invalid API key"})

        with pytest.raises(UpstreamError):
            await explorer_with(handler, settings).get_balance(addr.user, "testnet")

    async def test_http_failure(self, settings, addr):
        def handler(request):
            return httpx.Response(503, text="maintenance")

        with pytest.raises(UpstreamError):
            await explorer_with(handler, settings).token_balance(addr.user, addr.token)

    async def test_token_balance(self, settings, addr):
        def handler(request):
            assert request.url.params["contractaddress"] == "0x5FbDB2315678afecb367f032d93F642f64180aa3"
            return httpx.Response(200, json={"status": "1", "result": "1000"})

        assert await explorer_with(handler, settings).token_balance(addr.user, addr.token) == "1000"
