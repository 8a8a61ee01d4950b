"""
Base Broker Interface

Message model and abstract broker contract for the operation pipeline.
Exchanges route by topic pattern, queues deliver by priority, and
rejected messages are routed to a dead-letter exchange.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, ConfigDict, model_validator


class OperationType(str, Enum):
    """Operation types understood by the dispatcher."""
    MINT = "mint"
    BURN = "burn"
    TRANSFER = "transfer"
    STAKE_INVEST = "stake_invest"
    STAKE_WITHDRAW = "stake_withdraw"
    STAKE_CLAIM_REWARDS = "stake_claim_rewards"
    STAKE_COMPOUND = "stake_compound"
    STAKE_DEPOSIT_REWARDS = "stake_deposit_rewards"
    STAKE_DISTRIBUTE_REWARDS = "stake_distribute_rewards"
    CONTRACT_WRITE = "contract_write"
    CONTRACT_GRANT_ROLE = "contract_grant_role"
    CONTRACT_REVOKE_ROLE = "contract_revoke_role"
    SEND_TRANSACTION = "send_transaction"
    QUERY_BALANCE = "query_balance"
    QUERY_TRANSACTION = "query_transaction"
    QUERY_NETWORK = "query_network"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    EMAIL = "email"
    WEBHOOK = "webhook"


# Names accepted from callers that map onto a canonical operation
OPERATION_ALIASES: Dict[str, OperationType] = {
    "token_mint": OperationType.MINT,
    "token_burn": OperationType.BURN,
    "token_transfer": OperationType.TRANSFER,
    "stake": OperationType.STAKE_INVEST,
    "unstake": OperationType.STAKE_WITHDRAW,
    "claim_rewards": OperationType.STAKE_CLAIM_REWARDS,
    "compound": OperationType.STAKE_COMPOUND,
    "deposit_rewards": OperationType.STAKE_DEPOSIT_REWARDS,
    "distribute_rewards": OperationType.STAKE_DISTRIBUTE_REWARDS,
    "grant_role": OperationType.CONTRACT_GRANT_ROLE,
    "revoke_role": OperationType.CONTRACT_REVOKE_ROLE,
    "blockchain_send": OperationType.SEND_TRANSACTION,
    "withdraw": OperationType.WITHDRAWAL,
    "deposit_pix": OperationType.DEPOSIT,
    "withdrawal_pix": OperationType.WITHDRAWAL,
}


def resolve_operation(name: str) -> Optional[OperationType]:
    """Canonical operation for a type name or alias, None when unknown."""
    key = name.strip().lower()
    if key in OPERATION_ALIASES:
        return OPERATION_ALIASES[key]
    try:
        return OperationType(key)
    except ValueError:
        return None


class MessageStatus(str, Enum):
    """Job processing status as reported to clients."""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class QueueMessage(BaseModel):
    """
    Message carried by the broker.

    Attributes:
        id: Job identifier, stable across retries
        type: Operation type (canonical name or alias)
        payload: Operation parameters
        priority: Delivery priority 0-10, higher first
        correlation_id: Caller-supplied trace id
        idempotency_key: Token used to deduplicate ledger records
        retries: Failed attempts so far
        max_retries: Per-message retry limit (None means worker default)
        exchange: Exchange the message was published to
        routing_key: Routing key used on publish
        created_at: Timestamp when the job was enqueued
        error: Last error message if a handler failed
        headers: Broker metadata (death reason, original queue)
    """
    model_config = ConfigDict(use_enum_values=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    priority: int = Field(default=5, ge=0, le=10)
    correlation_id: Optional[str] = None
    idempotency_key: Optional[str] = None
    retries: int = 0
    max_retries: Optional[int] = None
    exchange: str = ""
    routing_key: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[str] = None
    headers: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _default_tokens(self) -> "QueueMessage":
        if self.correlation_id is None:
            self.correlation_id = self.id
        if self.idempotency_key is None:
            self.idempotency_key = self.id
        return self


@dataclass
class Delivery:
    """A message handed to a consumer, awaiting ack or nack."""
    queue: str
    delivery_tag: int
    message: QueueMessage


class QueueStats(BaseModel):
    """
    Per-queue counters.

    Attributes:
        queue: Queue name
        messages: Messages ready for delivery
        unacked: Messages delivered but not yet acked
        published: Total messages routed into the queue
        acked: Total messages acknowledged
        dead_lettered: Total messages rejected without requeue
    """
    queue: str
    messages: int = 0
    unacked: int = 0
    published: int = 0
    acked: int = 0
    dead_lettered: int = 0


class MessageBroker(ABC):
    """
    Abstract message broker interface.

    Implementations must provide:
    - Topology: declare exchanges, queues and bindings
    - Publish: route a message to every queue bound to the routing key
    - Get: next message from a queue, highest priority first
    - Ack / Nack: settle a delivery, nack without requeue dead-letters it
    - Inspection: stats, peek, remove, purge
    """

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        pass

    @abstractmethod
    async def connect(self) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass

    @abstractmethod
    async def declare_exchange(self, name: str, kind: str) -> None:
        """
        Declare an exchange.

        Args:
            name: Exchange name
            kind: "topic" or "direct"
        """
        pass

    @abstractmethod
    async def declare_queue(
        self,
        name: str,
        dead_letter_exchange: Optional[str] = None,
        dead_letter_routing_key: Optional[str] = None,
        max_priority: int = 10,
    ) -> None:
        pass

    @abstractmethod
    async def bind_queue(self, queue: str, exchange: str, pattern: str) -> None:
        pass

    @abstractmethod
    async def publish(self, exchange: str, routing_key: str, message: QueueMessage) -> list[str]:
        """
        Publish a message.

        Args:
            exchange: Target exchange
            routing_key: Routing key matched against bindings
            message: Message to publish

        Returns:
            Names of the queues the message was routed to

        Raises:
            BrokerUnavailableError: If the broker is not connected
        """
        pass

    @abstractmethod
    async def get(self, queue: str, timeout: Optional[float] = None) -> Optional[Delivery]:
        """
        Take the next message from a queue.

        Args:
            queue: Queue name
            timeout: Seconds to wait for a message (None returns immediately)

        Returns:
            Delivery or None if the queue stayed empty
        """
        pass

    @abstractmethod
    async def ack(self, delivery: Delivery) -> None:
        pass

    @abstractmethod
    async def nack(self, delivery: Delivery, requeue: bool = False) -> None:
        """
        Reject a delivery.

        With requeue the message goes back to its queue; without it the
        message is routed to the queue's dead-letter exchange, or dropped
        when none is configured.
        """
        pass

    @abstractmethod
    async def queue_stats(self, queue: str) -> QueueStats:
        pass

    @abstractmethod
    async def list_queues(self) -> list[str]:
        pass

    @abstractmethod
    async def peek(self, queue: str, limit: int = 100) -> list[QueueMessage]:
        """Messages waiting in a queue in delivery order, without consuming them."""
        pass

    @abstractmethod
    async def remove(self, queue: str, message_id: str) -> Optional[QueueMessage]:
        """Remove a waiting message by id."""
        pass

    @abstractmethod
    async def purge(self, queue: str) -> int:
        pass

    async def retry_dead_letter(self, queue: str, message_id: str) -> Optional[QueueMessage]:
        """
        Move a dead-lettered message back to its original route.

        Resets the retry count and clears the last error.

        Args:
            queue: Dead-letter queue holding the message
            message_id: Job id of the message

        Returns:
            The republished message, or None if it was not found
        """
        message = await self.remove(queue, message_id)
        if message is None:
            return None

        message.retries = 0
        message.error = None
        message.headers.pop("x-death", None)
        await self.publish(message.exchange, message.routing_key, message)
        return message
