"""
Broker Topology

Exchanges, work queues, dead-letter queues and bindings used by the
operation pipeline, plus topic routing-key matching.
"""

from dataclasses import dataclass, field
from typing import Optional

from tokenops.message_queue.base import MessageBroker


BLOCKCHAIN_EXCHANGE = "blockchain.exchange"
NOTIFICATIONS_EXCHANGE = "notifications.exchange"
DEADLETTER_EXCHANGE = "deadletter.exchange"

BLOCKCHAIN_TRANSACTIONS = "blockchain.transactions"
CONTRACT_OPERATIONS = "contracts.operations"
WALLET_OPERATIONS = "wallet.operations"
DEPOSITS_PROCESSING = "deposits.processing"
WITHDRAWALS_PROCESSING = "withdrawals.processing"
BLOCKCHAIN_QUERIES = "blockchain.queries"
NOTIFICATIONS_EMAIL = "notifications.email"
NOTIFICATIONS_WEBHOOK = "notifications.webhook"
LEDGER_RECONCILIATION = "ledger.reconciliation"
RECONCILIATION_FAILED = "reconciliation.failed"

RECONCILIATION_ROUTING_KEY = "ledger.reconcile"


@dataclass(frozen=True)
class QueueSpec:
    """A work queue, the patterns it binds and where rejected messages go."""
    name: str
    exchange: str
    patterns: tuple[str, ...]
    dead_letter_queue: Optional[str] = None


@dataclass
class Topology:
    exchanges: dict[str, str] = field(default_factory=dict)
    queues: list[QueueSpec] = field(default_factory=list)

    @property
    def work_queues(self) -> list[str]:
        return [q.name for q in self.queues if q.exchange != DEADLETTER_EXCHANGE]

    @property
    def dead_letter_queues(self) -> list[str]:
        """Terminal queues on the dead-letter exchange (nothing consumes them)."""
        return [
            q.name for q in self.queues
            if q.exchange == DEADLETTER_EXCHANGE and q.dead_letter_queue is None
        ]


def _work_queue(name: str, exchange: str, patterns: tuple[str, ...], dlq: str) -> QueueSpec:
    return QueueSpec(name=name, exchange=exchange, patterns=patterns, dead_letter_queue=dlq)


DEFAULT_TOPOLOGY = Topology(
    exchanges={
        BLOCKCHAIN_EXCHANGE: "topic",
        NOTIFICATIONS_EXCHANGE: "topic",
        DEADLETTER_EXCHANGE: "direct",
    },
    queues=[
        _work_queue(BLOCKCHAIN_TRANSACTIONS, BLOCKCHAIN_EXCHANGE, ("transaction.*", "stake.*"), "blockchain.failed"),
        _work_queue(CONTRACT_OPERATIONS, BLOCKCHAIN_EXCHANGE, ("contract.*",), "contracts.failed"),
        _work_queue(WALLET_OPERATIONS, BLOCKCHAIN_EXCHANGE, ("wallet.*",), "wallet.failed"),
        _work_queue(DEPOSITS_PROCESSING, BLOCKCHAIN_EXCHANGE, ("deposit.*",), "deposits.failed"),
        _work_queue(WITHDRAWALS_PROCESSING, BLOCKCHAIN_EXCHANGE, ("withdrawal.*",), "withdrawals.failed"),
        _work_queue(BLOCKCHAIN_QUERIES, BLOCKCHAIN_EXCHANGE, ("query.*",), "queries.failed"),
        _work_queue(NOTIFICATIONS_EMAIL, NOTIFICATIONS_EXCHANGE, ("email.*",), "notifications.failed"),
        _work_queue(NOTIFICATIONS_WEBHOOK, NOTIFICATIONS_EXCHANGE, ("webhook.*",), "webhooks.failed"),
        # Dead-letter queues bind their own name as the direct routing key
        QueueSpec("blockchain.failed", DEADLETTER_EXCHANGE, ("blockchain.failed",)),
        QueueSpec("contracts.failed", DEADLETTER_EXCHANGE, ("contracts.failed",)),
        QueueSpec("wallet.failed", DEADLETTER_EXCHANGE, ("wallet.failed",)),
        QueueSpec("deposits.failed", DEADLETTER_EXCHANGE, ("deposits.failed",)),
        QueueSpec("withdrawals.failed", DEADLETTER_EXCHANGE, ("withdrawals.failed",)),
        QueueSpec("queries.failed", DEADLETTER_EXCHANGE, ("queries.failed",)),
        QueueSpec("notifications.failed", DEADLETTER_EXCHANGE, ("notifications.failed",)),
        QueueSpec("webhooks.failed", DEADLETTER_EXCHANGE, ("webhooks.failed",)),
        QueueSpec(RECONCILIATION_FAILED, DEADLETTER_EXCHANGE, (RECONCILIATION_FAILED,)),
        # Consumed by the ledger reconciler; exhausted events are kept for replay
        QueueSpec(LEDGER_RECONCILIATION, DEADLETTER_EXCHANGE, (RECONCILIATION_ROUTING_KEY,), RECONCILIATION_FAILED),
    ],
)


def topic_matches(pattern: str, routing_key: str) -> bool:
    """
    AMQP topic matching.

    ``*`` matches exactly one dot-separated word, ``#`` matches zero or more.

    Examples:
        >>> topic_matches("transaction.*", "transaction.mint")
        True
        >>> topic_matches("transaction.*", "transaction.mint.retry")
        False
        >>> topic_matches("webhook.#", "webhook")
        True
    """
    return _match(pattern.split("."), routing_key.split("."))


def _match(pattern: list[str], words: list[str]) -> bool:
    if not pattern:
        return not words

    head, rest = pattern[0], pattern[1:]
    if head == "#":
        # Zero words, or consume one and keep '#' active
        return _match(rest, words) or (bool(words) and _match(pattern, words[1:]))
    if not words:
        return False
    if head == "*" or head == words[0]:
        return _match(rest, words[1:])
    return False


async def declare_topology(broker: MessageBroker, topology: Topology = DEFAULT_TOPOLOGY) -> None:
    """Declare every exchange, queue and binding on the broker."""
    for name, kind in topology.exchanges.items():
        await broker.declare_exchange(name, kind)

    for spec in topology.queues:
        await broker.declare_queue(
            spec.name,
            dead_letter_exchange=DEADLETTER_EXCHANGE if spec.dead_letter_queue else None,
            dead_letter_routing_key=spec.dead_letter_queue,
        )
        for pattern in spec.patterns:
            await broker.bind_queue(spec.name, spec.exchange, pattern)
