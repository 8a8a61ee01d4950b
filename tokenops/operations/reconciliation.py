"""
Ledger Reconciliation

Consumes ``ledger.reconcile`` events published when a chain outcome could
not be written to the ledger, and applies them once the ledger is back.
"""

from typing import Any, Dict

from tokenops.errors import ValidationError
from tokenops.ledger.base import TransactionLedger
from tokenops.ledger.models import TransactionStatus
from tokenops.message_queue.base import QueueMessage
from tokenops.operations.executor import ReconciliationEvent
from tokenops.utils.observability import logger


class LedgerReconciler:
    """Queue message handler for the ledger.reconciliation queue."""

    def __init__(self, ledger: TransactionLedger):
        self.ledger = ledger

    async def handle(self, message: QueueMessage) -> Dict[str, Any]:
        event = ReconciliationEvent.model_validate(message.payload)
        target = TransactionStatus(event.intended_status)

        record = None
        if event.record_id:
            record = await self.ledger.get(event.record_id)
        if record is None and event.tx_hash:
            record = await self.ledger.get_by_tx_hash(event.tx_hash)
        if record is None:
            raise ValidationError(f"No ledger record for reconciliation event {message.id}")

        if record.status == target:
            return {"record_id": record.id, "status": str(record.status), "applied": False}

        # The processing write may have been the one that was lost
        if record.status == TransactionStatus.PENDING and target == TransactionStatus.CONFIRMED and event.tx_hash:
            record = await self.ledger.update_status(record.id, TransactionStatus.PROCESSING, tx_hash=event.tx_hash)

        record = await self.ledger.update_status(record.id, target, **event.fields)
        logger.info(
            f"Reconciled ledger record {record.id} to {target}",
            extra={"record_id": record.id, "tx_hash": record.tx_hash}
        )
        return {"record_id": record.id, "status": str(record.status), "applied": True}
