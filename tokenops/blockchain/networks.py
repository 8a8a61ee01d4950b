"""
Network Profiles
RPC endpoint and chain id per named network.
"""
from dataclasses import dataclass
from typing import Dict

from tokenops.config import Settings


@dataclass(frozen=True)
class NetworkProfile:
    name: str
    rpc_url: str
    chain_id: int


def network_profiles(settings: Settings) -> Dict[str, NetworkProfile]:
    """Profiles for every configured network, keyed by name."""
    return {
        "mainnet": NetworkProfile("mainnet", settings.mainnet_rpc_url, settings.mainnet_chain_id),
        "testnet": NetworkProfile("testnet", settings.testnet_rpc_url, settings.testnet_chain_id),
    }
