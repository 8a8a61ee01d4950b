"""
Notification Fan-out

Turns operation outcomes into webhook and email messages on the
notifications exchange. Enqueueing is best effort: a failure here is
logged and never fails the operation that triggered it.
"""

from typing import Any, Dict, List, Optional

from tokenops.ledger.models import TransactionRecord, TransactionStatus
from tokenops.message_queue.publisher import QueuePublisher
from tokenops.utils.observability import logger


EMAIL_SUBJECTS = {
    "transaction_confirmed": "Transaction confirmed",
    "transaction_failed": "Transaction failed",
    "deposit_confirmed": "Deposit confirmed",
    "deposit_failed": "Deposit failed",
    "withdrawal_completed": "Withdrawal completed",
    "withdrawal_failed": "Withdrawal failed",
}


def record_summary(record: TransactionRecord) -> Dict[str, Any]:
    """Webhook/email view of a ledger record."""
    return {
        "transaction_id": record.id,
        "status": str(record.status),
        "network": str(record.network),
        "tx_hash": record.tx_hash,
        "block_number": record.block_number,
        "function_name": record.function_name,
        "contract_address": record.contract_address,
        "operation": record.metadata.get("operation"),
        "amount": record.metadata.get("amount"),
        "token_symbol": record.metadata.get("token_symbol"),
        "user_id": record.user_id,
        "company_id": record.company_id,
        "error": record.error,
    }


class NotificationFanout:
    """
    Publishes webhook and email notifications for domain events.

    Usage:
        fanout = NotificationFanout(publisher)
        await fanout.transaction_completed(record, webhook_url="https://...", email="a@b.c")
    """

    def __init__(self, publisher: QueuePublisher, webhook_max_retries: int = 3):
        self.publisher = publisher
        self.webhook_max_retries = webhook_max_retries

    async def notify(
        self,
        event: str,
        data: Dict[str, Any],
        webhook_url: Optional[str] = None,
        email: Optional[str] = None,
        email_template: Optional[str] = None,
        user_id: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> List[str]:
        """
        Enqueue a webhook and/or email for ``event``.

        Returns:
            Job ids of the notifications that were enqueued
        """
        job_ids = []

        if webhook_url:
            try:
                result = await self.publisher.enqueue_webhook(
                    url=webhook_url,
                    event=event,
                    data=data,
                    max_retries=self.webhook_max_retries,
                    correlation_id=correlation_id,
                )
                job_ids.append(result.job_id)
            except Exception as e:
                logger.warning(
                    f"Webhook notification for {event} not enqueued: {e}",
                    extra={"event": event, "correlation_id": correlation_id}
                )

        if email:
            template = email_template or event
            try:
                result = await self.publisher.enqueue_email(
                    to=email,
                    subject=EMAIL_SUBJECTS.get(template, event.replace("_", " ").capitalize()),
                    template=template,
                    data=data,
                    user_id=user_id,
                    correlation_id=correlation_id,
                )
                job_ids.append(result.job_id)
            except Exception as e:
                logger.warning(
                    f"Email notification for {event} not enqueued: {e}",
                    extra={"event": event, "correlation_id": correlation_id}
                )

        return job_ids

    async def transaction_completed(
        self,
        record: TransactionRecord,
        webhook_url: Optional[str] = None,
        email: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> List[str]:
        """``transaction_confirmed`` or ``transaction_failed`` depending on the record."""
        event = (
            "transaction_confirmed"
            if record.status == TransactionStatus.CONFIRMED
            else "transaction_failed"
        )
        return await self.notify(
            event,
            record_summary(record),
            webhook_url=webhook_url,
            email=email,
            user_id=record.user_id,
            correlation_id=correlation_id,
        )
