"""
Queue Publisher

Turns typed operation requests into broker messages: picks the exchange,
routing key and priority, and returns immediately with a job id.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from tokenops.message_queue.base import MessageBroker, OperationType, QueueMessage, resolve_operation
from tokenops.message_queue.jobs import JobTracker
from tokenops.message_queue.topology import BLOCKCHAIN_EXCHANGE, NOTIFICATIONS_EXCHANGE
from tokenops.utils.metrics import metrics
from tokenops.utils.observability import logger


DEFAULT_PRIORITY = 5

PRIORITY_TABLE: Dict[OperationType, int] = {
    OperationType.WITHDRAWAL: 10,
    OperationType.DEPOSIT: 9,
    OperationType.TRANSFER: 8,
    OperationType.STAKE_INVEST: 7,
    OperationType.STAKE_WITHDRAW: 7,
    OperationType.MINT: 6,
    OperationType.BURN: 6,
}

_ROUTING_KEYS: Dict[OperationType, str] = {
    OperationType.MINT: "transaction.mint",
    OperationType.BURN: "transaction.burn",
    OperationType.TRANSFER: "transaction.transfer",
    OperationType.STAKE_INVEST: "stake.invest",
    OperationType.STAKE_WITHDRAW: "stake.withdraw",
    OperationType.STAKE_CLAIM_REWARDS: "stake.claim_rewards",
    OperationType.STAKE_COMPOUND: "stake.compound",
    OperationType.STAKE_DEPOSIT_REWARDS: "stake.deposit_rewards",
    OperationType.STAKE_DISTRIBUTE_REWARDS: "stake.distribute_rewards",
    OperationType.CONTRACT_WRITE: "contract.write",
    OperationType.CONTRACT_GRANT_ROLE: "contract.grant_role",
    OperationType.CONTRACT_REVOKE_ROLE: "contract.revoke_role",
    OperationType.SEND_TRANSACTION: "wallet.send",
    OperationType.DEPOSIT: "deposit.pix",
    OperationType.WITHDRAWAL: "withdrawal.pix",
    OperationType.QUERY_BALANCE: "query.balance",
    OperationType.QUERY_TRANSACTION: "query.transaction",
    OperationType.QUERY_NETWORK: "query.network",
}


def priority_for(operation_type: str) -> int:
    """Static priority for an operation type; unknown types get the default."""
    operation = resolve_operation(operation_type)
    return PRIORITY_TABLE.get(operation, DEFAULT_PRIORITY)


def route_for(operation_type: str, payload: Optional[Dict[str, Any]] = None) -> tuple[str, str]:
    """
    Exchange and routing key for an operation.

    Emails and webhooks go to the notifications exchange keyed by template
    or event; unknown types land on ``transaction.<type>`` so a worker
    rejects them into the dead-letter queue instead of dropping them.
    """
    payload = payload or {}
    operation = resolve_operation(operation_type)

    if operation == OperationType.EMAIL:
        return NOTIFICATIONS_EXCHANGE, f"email.{payload.get('template', 'generic')}"
    if operation == OperationType.WEBHOOK:
        return NOTIFICATIONS_EXCHANGE, f"webhook.{payload.get('event', 'generic')}"
    if operation in _ROUTING_KEYS:
        return BLOCKCHAIN_EXCHANGE, _ROUTING_KEYS[operation]
    return BLOCKCHAIN_EXCHANGE, f"transaction.{operation_type.strip().lower()}"


class EnqueueOptions(BaseModel):
    """Caller overrides for a single enqueue."""
    priority: Optional[int] = None
    correlation_id: Optional[str] = None
    idempotency_key: Optional[str] = None
    max_retries: Optional[int] = Field(default=None, ge=0)


class EnqueueResult(BaseModel):
    job_id: str
    status: str = "queued"
    routing_key: str
    priority: int
    queued_at: datetime


class QueuePublisher:
    """
    Publishes operation requests to the broker.

    Never waits for processing: the caller gets a job id and polls the
    job tracker or the transaction ledger for the outcome.

    Usage:
        publisher = QueuePublisher(broker, jobs)
        result = await publisher.enqueue("mint", {"to_address": "0x..", "amount": "100"})
        print(result.job_id)
    """

    def __init__(self, broker: MessageBroker, jobs: Optional[JobTracker] = None):
        self.broker = broker
        self.jobs = jobs

    async def enqueue(
        self,
        operation_type: str,
        payload: Dict[str, Any],
        options: Optional[EnqueueOptions] = None,
    ) -> EnqueueResult:
        """
        Schedule an operation.

        Args:
            operation_type: Operation name or alias (e.g. "mint", "stake")
            payload: Operation parameters
            options: Priority, correlation id, idempotency key, retry override

        Returns:
            Job id with status "queued"

        Raises:
            BrokerUnavailableError: If the broker is not connected
        """
        options = options or EnqueueOptions()
        exchange, routing_key = route_for(operation_type, payload)

        priority = priority_for(operation_type) if options.priority is None else options.priority
        priority = max(0, min(priority, 10))

        operation = resolve_operation(operation_type)
        message = QueueMessage(
            type=operation.value if operation else operation_type,
            payload=payload,
            priority=priority,
            correlation_id=options.correlation_id,
            idempotency_key=options.idempotency_key,
            max_retries=options.max_retries,
        )

        await self.broker.publish(exchange, routing_key, message)

        if self.jobs is not None:
            self.jobs.queued(message.id)
        metrics.jobs_enqueued.inc(operation=message.type)

        logger.info(
            f"Enqueued {message.type} job {message.id}",
            extra={
                "job_id": message.id,
                "routing_key": routing_key,
                "priority": priority,
                "correlation_id": message.correlation_id,
            }
        )

        return EnqueueResult(
            job_id=message.id,
            routing_key=routing_key,
            priority=priority,
            queued_at=datetime.now(timezone.utc),
        )

    async def enqueue_webhook(
        self,
        url: str,
        event: str,
        data: Dict[str, Any],
        max_retries: int = 3,
        headers: Optional[Dict[str, str]] = None,
        correlation_id: Optional[str] = None,
    ) -> EnqueueResult:
        """Schedule a webhook POST; retried up to ``max_retries`` times."""
        payload = {
            "url": url,
            "event": event,
            "method": "POST",
            "data": data,
            "headers": headers or {},
        }
        return await self.enqueue(
            OperationType.WEBHOOK.value,
            payload,
            EnqueueOptions(priority=6, correlation_id=correlation_id, max_retries=max_retries),
        )

    async def enqueue_email(
        self,
        to: str,
        subject: str,
        template: str,
        data: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> EnqueueResult:
        """Schedule an email rendered from ``template``."""
        payload = {
            "to": to,
            "subject": subject,
            "template": template,
            "data": data or {},
            "user_id": user_id,
        }
        return await self.enqueue(
            OperationType.EMAIL.value,
            payload,
            EnqueueOptions(priority=DEFAULT_PRIORITY, correlation_id=correlation_id),
        )
