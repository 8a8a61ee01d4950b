"""
Message Queue System

Async operation pipeline with:
- Abstract broker interface (exchanges, priority queues, dead-lettering)
- In-memory broker for testing/MVP
- Publisher with static priority and routing tables
- Worker with linear-backoff retries and dead-letter routing
- Process-local job status tracking
"""

from tokenops.message_queue.base import (
    Delivery,
    MessageBroker,
    MessageStatus,
    OperationType,
    QueueMessage,
    QueueStats,
    resolve_operation,
)
from tokenops.message_queue.jobs import JobStatus, JobTracker
from tokenops.message_queue.memory import InMemoryBroker
from tokenops.message_queue.publisher import EnqueueOptions, EnqueueResult, QueuePublisher
from tokenops.message_queue.topology import DEFAULT_TOPOLOGY, declare_topology
from tokenops.message_queue.worker import QueueWorker

__all__ = [
    "Delivery",
    "MessageBroker",
    "MessageStatus",
    "OperationType",
    "QueueMessage",
    "QueueStats",
    "resolve_operation",
    "JobStatus",
    "JobTracker",
    "InMemoryBroker",
    "EnqueueOptions",
    "EnqueueResult",
    "QueuePublisher",
    "DEFAULT_TOPOLOGY",
    "declare_topology",
    "QueueWorker",
]
