"""
Role Management

Check-then-grant of AccessControl roles, serialized per (network, contract)
so concurrent operations never submit duplicate grants.
"""
import asyncio
from typing import Dict

from web3 import Web3

from tokenops.blockchain.abi import ACCESS_CONTROL_ABI
from tokenops.blockchain.client import BlockchainClient
from tokenops.blockchain.signers import checksum
from tokenops.errors import ChainError, RoleGrantError
from tokenops.utils.metrics import metrics
from tokenops.utils.observability import logger

DEFAULT_ADMIN_ROLE = "DEFAULT_ADMIN_ROLE"
MINTER_ROLE = "MINTER_ROLE"
BURNER_ROLE = "BURNER_ROLE"
TRANSFER_ROLE = "TRANSFER_ROLE"


def role_hash(role: str) -> bytes:
    """bytes32 identifier of a named role (DEFAULT_ADMIN_ROLE is all zeros)."""
    if role == DEFAULT_ADMIN_ROLE:
        return b"\x00" * 32
    if role.startswith("0x") and len(role) == 66:
        return bytes.fromhex(role[2:])
    return bytes(Web3.keccak(text=role))


class RoleManager:
    """
    Ensures an account holds a role before a write that needs it.

    Usage:
        roles = RoleManager(client)
        await roles.ensure_role("testnet", token, MINTER_ROLE, gas_payer, admin)
    """

    def __init__(self, client: BlockchainClient):
        self.client = client
        self._locks: Dict[tuple, asyncio.Lock] = {}

    def _lock(self, network: str, contract_address: str) -> asyncio.Lock:
        return self._locks.setdefault((network, contract_address.lower()), asyncio.Lock())

    async def ensure_role(
        self,
        network: str,
        contract_address: str,
        role: str,
        account: str,
        admin_address: str,
    ) -> bool:
        """
        Grant ``role`` to ``account`` if it is missing.

        Returns:
            True if a grant was submitted, False if the role was already held

        Raises:
            RoleGrantError: If the grant reverted or the role is still missing after it
        """
        account = checksum(account)
        role_id = role_hash(role)

        async with self._lock(network, contract_address):
            if await self.client.has_role(network, contract_address, role_id, account):
                return False

            logger.info(
                f"Granting {role} on {contract_address} to {account}",
                extra={"network": network, "admin": admin_address}
            )
            try:
                tx_hash = await self.client.submit_contract_transaction(
                    network, contract_address, ACCESS_CONTROL_ABI, "grantRole", [role_id, account], admin_address
                )
                receipt = await self.client.wait_for_receipt(network, tx_hash)
            except ChainError as e:
                raise RoleGrantError(f"Granting {role} to {account} failed: {e.message}") from e

            if not receipt.succeeded or not await self.client.has_role(network, contract_address, role_id, account):
                raise RoleGrantError(f"{account} still lacks {role} on {contract_address} after grant {tx_hash}")

            metrics.role_grants.inc(role=role)
            return True

    async def revoke_role(
        self,
        network: str,
        contract_address: str,
        role: str,
        account: str,
        admin_address: str,
    ) -> bool:
        """Revoke ``role``; returns False when the account did not hold it."""
        account = checksum(account)
        role_id = role_hash(role)

        async with self._lock(network, contract_address):
            if not await self.client.has_role(network, contract_address, role_id, account):
                return False
            tx_hash = await self.client.submit_contract_transaction(
                network, contract_address, ACCESS_CONTROL_ABI, "revokeRole", [role_id, account], admin_address
            )
            receipt = await self.client.wait_for_receipt(network, tx_hash)
            if not receipt.succeeded:
                raise RoleGrantError(f"Revoking {role} from {account} reverted ({tx_hash})")
            return True
