"""
Tests for the mock PIX provider.
"""
from decimal import Decimal

import pytest

from tokenops.pix import MockPixProvider, build_pix_provider


class TestMockPixProvider:

    async def test_charge_waits_until_approved(self):
        provider = MockPixProvider()
        charge = await provider.create_charge(Decimal("50.00"), "Deposit", external_id="order-1")

        assert charge.payment_id.startswith("pix_charge_")
        assert charge.status == "waiting_payment"
        assert charge.external_id == "order-1"

        status = await provider.check_payment_status(charge.payment_id)
        assert status.approved is False

        provider.approve(charge.payment_id)
        status = await provider.check_payment_status(charge.payment_id)
        assert status.approved is True
        assert status.paid_amount == Decimal("50.00")
        assert status.end_to_end_id.startswith("E")

    async def test_auto_approve(self):
        status = await MockPixProvider(auto_approve=True).check_payment_status("anything")
        assert status.status == "approved"

    async def test_payout(self):
        payout = await MockPixProvider().process_payout(Decimal("25"), "user@example.com", external_id="w-1")

        assert payout.success is True
        assert payout.status == "completed"
        assert payout.withdrawal_id.startswith("pix_withdrawal_")
        assert payout.pix_key == "us***@example.com"
        assert payout.pix_key_type == "email"
        assert payout.external_id == "w-1"

    async def test_payout_failure(self):
        payout = await MockPixProvider(fail_payouts=True).process_payout(Decimal("25"), "user@example.com")
        assert payout.success is False
        assert payout.status == "failed"
        assert payout.error == "PIX provider temporarily unavailable"

    async def test_payout_invalid_key(self):
        payout = await MockPixProvider().process_payout(Decimal("25"), "abc")
        assert payout.success is False
        assert payout.error == "Invalid PIX key"

    def test_build_provider(self):
        assert isinstance(build_pix_provider("mock"), MockPixProvider)
        with pytest.raises(ValueError):
            build_pix_provider("efipay")
