"""
Signers and Gas Payers

Private keys are looked up by address; gas payers are resolved per
contract: explicit request value, then the contract's admin, then the
configured fallback wallet.
"""
from typing import Dict, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from tokenops.config import Settings
from tokenops.errors import SignerKeyMissingError, ValidationError
from tokenops.utils.observability import logger


def checksum(address: str, field: str = "address") -> str:
    """
    Checksummed form of a hex address.

    Raises:
        ValidationError: If the value is not a 20-byte hex address
    """
    if not isinstance(address, str) or not Web3.is_address(address):
        raise ValidationError(f"Invalid {field}: {address!r}")
    return Web3.to_checksum_address(address)


class SignerRegistry:
    """Holds one LocalAccount per configured private key."""

    def __init__(self, private_keys: Optional[Dict[str, str]] = None):
        self._accounts: Dict[str, LocalAccount] = {}
        for address, key in (private_keys or {}).items():
            self.add(key, expected_address=address)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SignerRegistry":
        registry = cls(settings.signer_private_keys)
        if settings.admin_private_key:
            registry.add(settings.admin_private_key, expected_address=settings.admin_wallet_address)
        return registry

    def add(self, private_key: str, expected_address: Optional[str] = None) -> LocalAccount:
        account = Account.from_key(private_key)
        if expected_address and account.address.lower() != expected_address.lower():
            logger.warning(
                "Configured signer address does not match its private key",
                extra={"configured": expected_address, "derived": account.address}
            )
        self._accounts[account.address.lower()] = account
        return account

    def has(self, address: str) -> bool:
        return address.lower() in self._accounts

    def get(self, address: str) -> LocalAccount:
        account = self._accounts.get(address.lower())
        if account is None:
            raise SignerKeyMissingError(f"No private key configured for {address}")
        return account

    @property
    def addresses(self) -> list[str]:
        return [account.address for account in self._accounts.values()]


class ContractRegistry:
    """
    Contract address -> admin wallet.

    The admin both pays gas for operations on the contract and grants
    roles on it.
    """

    def __init__(self, admins: Optional[Dict[str, str]] = None, fallback_gas_payer: Optional[str] = None):
        self._admins = {k.lower(): v for k, v in (admins or {}).items()}
        self.fallback_gas_payer = fallback_gas_payer

    @classmethod
    def from_settings(cls, settings: Settings) -> "ContractRegistry":
        return cls(settings.contract_admins, settings.fallback_gas_payer or settings.admin_wallet_address)

    def register(self, contract_address: str, admin_address: str) -> None:
        self._admins[contract_address.lower()] = admin_address

    def admin_for(self, contract_address: str) -> Optional[str]:
        return self._admins.get(contract_address.lower())

    def resolve_gas_payer(self, contract_address: str, explicit: Optional[str] = None) -> str:
        """
        Pick the wallet that signs and pays for a write.

        Raises:
            SignerKeyMissingError: If no candidate is configured at all
        """
        payer = explicit or self.admin_for(contract_address) or self.fallback_gas_payer
        if not payer:
            raise SignerKeyMissingError(f"No gas payer available for contract {contract_address}")
        return checksum(payer, "gas payer")
