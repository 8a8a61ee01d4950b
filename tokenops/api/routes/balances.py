"""
Balance Endpoints

Native coin balance read straight from the RPC node or from the block
explorer.
"""
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from tokenops.api.container import Container
from tokenops.api.dependencies import CurrentUser, get_container, get_current_user
from tokenops.api.responses import ok
from tokenops.blockchain.signers import checksum
from tokenops.blockchain.units import from_base_units
from tokenops.errors import ValidationError

router = APIRouter(prefix="/api/balances", tags=["Balances"])


@router.get("/{network}/{address}")
async def get_balance(
    network: str,
    address: str,
    source: Literal["rpc", "explorer"] = Query("rpc"),
    token_address: Optional[str] = Query(None, alias="tokenAddress"),
    user: CurrentUser = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    """
    Balance of ``address`` on ``network``.

    With ``tokenAddress`` the ERC-20 balance is returned instead of the
    native one (RPC source only).
    """
    if network not in container.client.networks:
        raise ValidationError(f"Unknown network: {network}")

    if token_address:
        token = checksum(token_address, "tokenAddress")
        holder = checksum(address, "address")
        units = await container.client.token_balance(network, token, holder)
        decimals = await container.client.token_decimals(network, token)
        return ok({
            "address": holder,
            "network": network,
            "token_address": token,
            "balance_units": str(units),
            "balance": from_base_units(units, decimals),
            "source": "rpc",
        })

    if source == "explorer":
        return ok(await container.explorer.get_balance(address, network))

    balance = await container.client.get_balance(address, network)
    return ok({**balance, "source": "rpc"})
