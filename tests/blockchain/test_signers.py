"""
Tests for signer lookup and gas payer resolution.
"""
import pytest

from tokenops.blockchain import ContractRegistry, SignerRegistry, checksum
from tokenops.errors import SignerKeyMissingError, ValidationError


class TestChecksum:

    def test_checksums_lowercase(self, addr):
        assert checksum(addr.admin) == "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

    @pytest.mark.parametrize("value", ["0x123", "not-an-address", None, ""])
    def test_rejects_invalid(self, value):
        with pytest.raises(ValidationError):
            checksum(value, "to_address")


class TestSignerRegistry:

    def test_lookup_is_case_insensitive(self, addr):
        signers = SignerRegistry({addr.admin: addr.admin_key})

        assert signers.has(addr.admin.upper().replace("0X", "0x"))
        account = signers.get(checksum(addr.admin))
        assert account.address == checksum(addr.admin)
        assert signers.addresses == [checksum(addr.admin)]

    def test_missing_key(self, addr):
        with pytest.raises(SignerKeyMissingError):
            SignerRegistry().get(addr.user)

    def test_mismatched_address_still_registers_derived(self, addr):
        signers = SignerRegistry({addr.user: addr.admin_key})
        assert signers.has(addr.admin)
        assert not signers.has(addr.user)

    def test_from_settings(self, settings, addr):
        settings.admin_private_key = addr.admin_key
        settings.admin_wallet_address = addr.admin
        assert SignerRegistry.from_settings(settings).has(addr.admin)


class TestContractRegistry:

    def test_explicit_beats_admin_beats_fallback(self, addr):
        contracts = ContractRegistry({addr.token: addr.user}, fallback_gas_payer=addr.admin)

        assert contracts.resolve_gas_payer(addr.token, explicit=addr.other) == checksum(addr.other)
        assert contracts.resolve_gas_payer(addr.token) == checksum(addr.user)
        assert contracts.resolve_gas_payer(addr.stake) == checksum(addr.admin)

    def test_register(self, addr):
        contracts = ContractRegistry()
        contracts.register(checksum(addr.stake), addr.other)
        assert contracts.admin_for(addr.stake) == addr.other

    def test_no_candidate(self, addr):
        with pytest.raises(SignerKeyMissingError):
            ContractRegistry().resolve_gas_payer(addr.token)
