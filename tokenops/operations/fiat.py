"""
Fiat (PIX) Flows

Deposit: confirmed PIX charge -> mint tokens to the user.
Withdrawal: burn the user's tokens -> PIX payout, minting them back if the
payout fails.

Both flows derive ledger idempotency keys from the deposit/withdrawal id, so
a redelivered message never mints or burns twice.
"""

from decimal import Decimal
from typing import Any, Dict

from tokenops.errors import (
    PaymentNotConfirmedError,
    PayoutFailedError,
    TokenOpsError,
    ValidationError,
)
from tokenops.notifications.fanout import NotificationFanout
from tokenops.operations.definitions import OPERATION_SPECS, OperationRequest
from tokenops.operations.executor import ContractWriteExecutor, OperationResult
from tokenops.pix.keys import check_pix_key
from tokenops.pix.provider import PixProvider
from tokenops.utils.observability import log_business_event, logger


def _write_request(request: OperationRequest, idempotency_key: str, **metadata: Any) -> OperationRequest:
    """Copy of ``request`` for an internal write; notifications are sent by the flow."""
    return request.model_copy(update={
        "idempotency_key": idempotency_key,
        "webhook_url": None,
        "notify_email": None,
        "metadata": {**request.metadata, **metadata},
    })


class DepositProcessor:
    """
    Mints tokens for an approved PIX deposit.

    Payload: payment_id, amount, to_address, token_address, network,
    plus the optional notify_email / webhook_url.
    """

    def __init__(self, executor: ContractWriteExecutor, provider: PixProvider, fanout: NotificationFanout | None = None):
        self.executor = executor
        self.provider = provider
        self.fanout = fanout

    async def process(self, request: OperationRequest) -> OperationResult:
        payment_id = request.require("payment_id")
        request.address("to_address")

        try:
            payment = await self.provider.check_payment_status(payment_id)
            if not payment.approved:
                raise PaymentNotConfirmedError(
                    f"PIX payment {payment_id} is {payment.status}",
                    details={"payment_id": payment_id, "status": payment.status},
                )

            result = await self.executor.execute(
                OPERATION_SPECS["mint"],
                _write_request(request, f"deposit:{payment_id}", deposit_id=payment_id, source="pix"),
            )
        except PaymentNotConfirmedError:
            raise
        except Exception as e:
            logger.error(f"Deposit {payment_id} failed: {e}", extra={"payment_id": payment_id})
            await self._notify("deposit_failed", request, {
                "payment_id": payment_id,
                "amount": request.amount,
                "error": e.message if isinstance(e, TokenOpsError) else str(e),
            })
            raise

        data = {
            "payment_id": payment_id,
            "amount": request.amount,
            "to_address": request.to_address,
            "tx_hash": result.tx_hash,
            "transaction_id": result.record_id,
        }
        log_business_event("deposit_completed", payment_id, tx_hash=result.tx_hash)
        await self._notify("deposit_completed", request, data, email_template="deposit_confirmed")
        return result

    async def _notify(self, event: str, request: OperationRequest, data: Dict[str, Any], email_template: str | None = None) -> None:
        if self.fanout is None:
            return
        await self.fanout.notify(
            event,
            data,
            webhook_url=request.webhook_url,
            email=request.notify_email,
            email_template=email_template or event,
            user_id=request.user_id,
            correlation_id=request.job_id,
        )


class WithdrawalProcessor:
    """
    Burns tokens and pays out the fiat value over PIX.

    If the payout fails after the burn, the same amount is minted back to
    the user and the job fails with a non-retryable PayoutFailedError.
    """

    def __init__(self, executor: ContractWriteExecutor, provider: PixProvider, fanout: NotificationFanout | None = None):
        self.executor = executor
        self.provider = provider
        self.fanout = fanout

    async def process(self, request: OperationRequest) -> OperationResult:
        withdrawal_id = request.require("withdrawal_id")
        holder = request.address("from_address")
        pix_key = request.require("pix_key")

        key = check_pix_key(pix_key)
        if not key.valid:
            raise ValidationError(f"Invalid PIX key ({key.key_type})", details={"pix_key": key.masked})

        burn = await self.executor.execute(
            OPERATION_SPECS["burn"],
            _write_request(request, f"withdrawal:{withdrawal_id}:burn", withdrawal_id=withdrawal_id),
        )

        payout = await self.provider.process_payout(
            Decimal(request.require("amount")), pix_key, external_id=withdrawal_id
        )
        if not payout.success:
            logger.error(
                f"PIX payout for withdrawal {withdrawal_id} failed: {payout.error}. Reverting burn",
                extra={"withdrawal_id": withdrawal_id, "burn_tx": burn.tx_hash}
            )
            revert = request.model_copy(update={"to_address": holder})
            await self.executor.execute(
                OPERATION_SPECS["mint"],
                _write_request(revert, f"withdrawal:{withdrawal_id}:revert", withdrawal_id=withdrawal_id, reverted=True),
            )
            await self._notify("withdrawal_failed", request, {
                "withdrawal_id": withdrawal_id,
                "amount": request.amount,
                "error": payout.error,
            })
            raise PayoutFailedError(
                f"PIX payout for withdrawal {withdrawal_id} failed: {payout.error}",
                details={"withdrawal_id": withdrawal_id, "burn_tx_hash": burn.tx_hash},
            )

        log_business_event("withdrawal_completed", withdrawal_id, payout_id=payout.withdrawal_id)
        await self._notify("withdrawal_completed", request, {
            "withdrawal_id": withdrawal_id,
            "amount": request.amount,
            "pix_key": payout.pix_key,
            "payout_id": payout.withdrawal_id,
            "end_to_end_id": payout.end_to_end_id,
            "tx_hash": burn.tx_hash,
        })
        return burn

    async def _notify(self, event: str, request: OperationRequest, data: Dict[str, Any]) -> None:
        if self.fanout is None:
            return
        await self.fanout.notify(
            event,
            data,
            webhook_url=request.webhook_url,
            email=request.notify_email,
            user_id=request.user_id,
            correlation_id=request.job_id,
        )
