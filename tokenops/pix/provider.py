"""
PIX Payment Provider

Protocol for PIX charge/payout providers and the mock implementation used
in development and tests. Real providers plug in behind the same protocol.
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Optional, Protocol

from pydantic import BaseModel

from tokenops.pix.keys import check_pix_key
from tokenops.utils.observability import logger


class PixCharge(BaseModel):
    payment_id: str
    external_id: Optional[str] = None
    status: str = "waiting_payment"
    amount: Decimal
    description: Optional[str] = None
    pix_code: str
    expires_at: datetime
    provider: str = "mock"


class PixPaymentStatus(BaseModel):
    payment_id: str
    status: str
    paid_amount: Optional[Decimal] = None
    paid_at: Optional[datetime] = None
    end_to_end_id: Optional[str] = None
    provider: str = "mock"

    @property
    def approved(self) -> bool:
        return self.status == "approved"


class PixPayout(BaseModel):
    success: bool
    withdrawal_id: Optional[str] = None
    external_id: Optional[str] = None
    status: str
    amount: Decimal
    pix_key: str
    pix_key_type: str
    end_to_end_id: Optional[str] = None
    error: Optional[str] = None
    provider: str = "mock"


class PixProvider(Protocol):
    """
    Protocol for PIX providers.

    Implement this to integrate a real PSP (EfiPay, Pagar.me, Asaas, ...).
    """

    async def create_charge(
        self,
        amount: Decimal,
        description: str,
        external_id: Optional[str] = None,
        expiration_minutes: int = 30,
    ) -> PixCharge:
        ...

    async def check_payment_status(self, payment_id: str) -> PixPaymentStatus:
        ...

    async def process_payout(
        self,
        amount: Decimal,
        pix_key: str,
        external_id: Optional[str] = None,
    ) -> PixPayout:
        ...


class MockPixProvider:
    """
    Deterministic in-memory provider.

    Charges stay ``waiting_payment`` until approve() is called, unless
    ``auto_approve`` is set. Payouts succeed for valid keys unless
    ``fail_payouts`` is set.
    """

    def __init__(self, auto_approve: bool = False, fail_payouts: bool = False):
        self.auto_approve = auto_approve
        self.fail_payouts = fail_payouts
        self._charges: Dict[str, PixCharge] = {}
        self._approved: Dict[str, datetime] = {}

    async def create_charge(
        self,
        amount: Decimal,
        description: str,
        external_id: Optional[str] = None,
        expiration_minutes: int = 30,
    ) -> PixCharge:
        payment_id = f"pix_charge_{uuid.uuid4().hex[:16]}"
        charge = PixCharge(
            payment_id=payment_id,
            external_id=external_id,
            amount=Decimal(str(amount)),
            description=description,
            pix_code=f"00020126MOCK{payment_id}5204000053039865406{amount}",
            expires_at=datetime.now(timezone.utc) + timedelta(minutes=expiration_minutes),
        )
        self._charges[payment_id] = charge
        return charge

    def approve(self, payment_id: str) -> None:
        self._approved[payment_id] = datetime.now(timezone.utc)

    async def check_payment_status(self, payment_id: str) -> PixPaymentStatus:
        if self.auto_approve or payment_id in self._approved:
            charge = self._charges.get(payment_id)
            return PixPaymentStatus(
                payment_id=payment_id,
                status="approved",
                paid_amount=charge.amount if charge else None,
                paid_at=self._approved.get(payment_id, datetime.now(timezone.utc)),
                end_to_end_id=f"E{uuid.uuid4().hex[:24]}",
            )
        return PixPaymentStatus(payment_id=payment_id, status="waiting_payment")

    async def process_payout(
        self,
        amount: Decimal,
        pix_key: str,
        external_id: Optional[str] = None,
    ) -> PixPayout:
        check = check_pix_key(pix_key)
        if self.fail_payouts or not check.valid:
            error = "PIX provider temporarily unavailable" if check.valid else "Invalid PIX key"
            logger.warning(f"Mock PIX payout failed: {error}", extra={"pix_key": check.masked})
            return PixPayout(
                success=False,
                external_id=external_id,
                status="failed",
                amount=Decimal(str(amount)),
                pix_key=check.masked,
                pix_key_type=check.key_type,
                error=error,
            )

        return PixPayout(
            success=True,
            withdrawal_id=f"pix_withdrawal_{uuid.uuid4().hex[:16]}",
            external_id=external_id,
            status="completed",
            amount=Decimal(str(amount)),
            pix_key=check.masked,
            pix_key_type=check.key_type,
            end_to_end_id=f"E{uuid.uuid4().hex[:24]}",
        )


def build_pix_provider(name: str) -> PixProvider:
    if name == "mock":
        return MockPixProvider()
    raise ValueError(f"Unsupported PIX provider: {name}")
