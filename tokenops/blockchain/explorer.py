"""
Block Explorer Client

Etherscan/Blockscout-style HTTP API used as an alternative balance source
and for address transaction history.
"""
from typing import Any, Dict, List, Optional

import httpx

from tokenops.blockchain.signers import checksum
from tokenops.blockchain.units import format_ether
from tokenops.config import Settings, get_settings
from tokenops.errors import UpstreamError
from tokenops.utils.observability import logger


class ExplorerClient:
    """
    Thin async client for ``<explorer>/api?module=account&action=...``.

    A shared httpx.AsyncClient can be injected (tests pass one with a
    MockTransport); otherwise a short-lived client is opened per call.
    """

    def __init__(self, settings: Optional[Settings] = None, http: Optional[httpx.AsyncClient] = None):
        self.settings = settings or get_settings()
        self._http = http

    async def _get(self, params: Dict[str, Any]) -> Any:
        url = f"{self.settings.explorer_api_url.rstrip('/')}/api"
        try:
            if self._http is not None:
                response = await self._http.get(url, params=params, timeout=self.settings.explorer_timeout_seconds)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(url, params=params, timeout=self.settings.explorer_timeout_seconds)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Explorer request failed: {e}", extra={"params": params})
            raise UpstreamError(f"Block explorer unavailable: {e}") from e

        # status "0" with an empty result is how explorers report "no rows"
        if str(body.get("status")) != "1" and body.get("result") not in ([], None):
            raise UpstreamError(f"Block explorer error: {body.get('message') or body.get('result')}")
        return body.get("result")

    async def get_balance(self, address: str, network: str) -> Dict[str, str]:
        account = checksum(address)
        wei = int(await self._get({"module": "account", "action": "balance", "address": account}) or 0)
        return {
            "address": account,
            "network": network,
            "balance_wei": str(wei),
            "balance": format_ether(wei),
            "source": "explorer",
        }

    async def list_transactions(self, address: str, page: int = 1, offset: int = 20) -> List[Dict[str, Any]]:
        result = await self._get({
            "module": "account",
            "action": "txlist",
            "address": checksum(address),
            "page": page,
            "offset": offset,
            "sort": "desc",
        })
        return result or []

    async def token_balance(self, address: str, token_address: str) -> str:
        result = await self._get({
            "module": "account",
            "action": "tokenbalance",
            "contractaddress": checksum(token_address, "token address"),
            "address": checksum(address),
        })
        return str(result or "0")
