"""
In-Memory Message Broker

Single-process broker for testing and MVP deployments. Messages are
serialized to JSON on publish, so consumers always receive a copy, the
same way they would from a network broker.
"""

import asyncio
import heapq
import itertools
from dataclasses import dataclass, field
from typing import Optional

from tokenops.errors import BrokerUnavailableError, NotFoundError
from tokenops.message_queue.base import (
    Delivery,
    MessageBroker,
    QueueMessage,
    QueueStats,
)
from tokenops.message_queue.topology import topic_matches
from tokenops.utils.observability import logger


@dataclass
class _Queue:
    name: str
    dead_letter_exchange: Optional[str]
    dead_letter_routing_key: Optional[str]
    max_priority: int
    heap: list = field(default_factory=list)
    unacked: dict[int, str] = field(default_factory=dict)
    stats: QueueStats = None
    not_empty: asyncio.Condition = field(default_factory=asyncio.Condition)

    def __post_init__(self):
        self.stats = QueueStats(queue=self.name)


class InMemoryBroker(MessageBroker):
    """
    In-memory broker implementation.

    Topic and direct exchanges, priority queues and dead-letter routing,
    all held in dictionaries. Data is lost on restart.

    Suitable for:
    - Testing
    - MVP deployments
    - Single-instance applications

    Not suitable for:
    - Production multi-instance deployments
    - Durable message persistence
    """

    def __init__(self):
        self._connected = False
        self._exchanges: dict[str, str] = {}
        self._bindings: dict[str, list[tuple[str, str]]] = {}
        self._queues: dict[str, _Queue] = {}
        self._tags = itertools.count(1)
        self._sequence = itertools.count()

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True
        logger.info("In-memory broker connected")

    async def close(self) -> None:
        self._connected = False
        # Wake up consumers blocked in get()
        for queue in self._queues.values():
            async with queue.not_empty:
                queue.not_empty.notify_all()
        logger.info("In-memory broker closed")

    async def declare_exchange(self, name: str, kind: str) -> None:
        if kind not in ("topic", "direct"):
            raise ValueError(f"Unsupported exchange type: {kind}")
        self._exchanges[name] = kind
        self._bindings.setdefault(name, [])

    async def declare_queue(
        self,
        name: str,
        dead_letter_exchange: Optional[str] = None,
        dead_letter_routing_key: Optional[str] = None,
        max_priority: int = 10,
    ) -> None:
        if name in self._queues:
            return
        self._queues[name] = _Queue(
            name=name,
            dead_letter_exchange=dead_letter_exchange,
            dead_letter_routing_key=dead_letter_routing_key,
            max_priority=max_priority,
        )

    async def bind_queue(self, queue: str, exchange: str, pattern: str) -> None:
        if exchange not in self._exchanges:
            raise NotFoundError(f"Exchange {exchange} not declared")
        self._get_queue(queue)
        binding = (queue, pattern)
        if binding not in self._bindings[exchange]:
            self._bindings[exchange].append(binding)

    async def publish(self, exchange: str, routing_key: str, message: QueueMessage) -> list[str]:
        if not self._connected:
            raise BrokerUnavailableError(f"Broker not connected, cannot publish {routing_key}")
        if exchange not in self._exchanges:
            raise NotFoundError(f"Exchange {exchange} not declared")

        message.exchange = message.exchange or exchange
        message.routing_key = message.routing_key or routing_key
        body = message.model_dump_json()

        routed = self._route(exchange, routing_key)
        for name in routed:
            await self._push(self._queues[name], message.priority, body)

        if not routed:
            logger.warning(
                f"Unroutable message {message.id} dropped",
                extra={"exchange": exchange, "routing_key": routing_key}
            )
        return routed

    async def get(self, queue: str, timeout: Optional[float] = None) -> Optional[Delivery]:
        state = self._get_queue(queue)

        async with state.not_empty:
            if not state.heap and timeout:
                try:
                    await asyncio.wait_for(
                        state.not_empty.wait_for(lambda: bool(state.heap) or not self._connected),
                        timeout=timeout,
                    )
                except asyncio.TimeoutError:
                    return None

            if not state.heap:
                return None

            _, _, body = heapq.heappop(state.heap)
            tag = next(self._tags)
            state.unacked[tag] = body

        return Delivery(queue=queue, delivery_tag=tag, message=QueueMessage.model_validate_json(body))

    async def ack(self, delivery: Delivery) -> None:
        state = self._get_queue(delivery.queue)
        if state.unacked.pop(delivery.delivery_tag, None) is not None:
            state.stats.acked += 1

    async def nack(self, delivery: Delivery, requeue: bool = False) -> None:
        state = self._get_queue(delivery.queue)
        body = state.unacked.pop(delivery.delivery_tag, None)
        if body is None:
            return

        if requeue:
            await self._push(state, delivery.message.priority, body, count=False)
            return

        state.stats.dead_lettered += 1
        if not state.dead_letter_exchange:
            logger.warning(f"Message {delivery.message.id} rejected from {state.name} with no dead-letter exchange")
            return

        # Keep the consumer's view (error, retries) and record where it died
        message = delivery.message.model_copy(deep=True)
        message.headers["x-death"] = {"queue": state.name, "reason": "rejected"}
        routing_key = state.dead_letter_routing_key or message.routing_key
        body = message.model_dump_json()
        for name in self._route(state.dead_letter_exchange, routing_key):
            await self._push(self._queues[name], message.priority, body)

    async def queue_stats(self, queue: str) -> QueueStats:
        state = self._get_queue(queue)
        return state.stats.model_copy(update={"messages": len(state.heap), "unacked": len(state.unacked)})

    async def list_queues(self) -> list[str]:
        return list(self._queues)

    async def peek(self, queue: str, limit: int = 100) -> list[QueueMessage]:
        state = self._get_queue(queue)
        ordered = sorted(state.heap)[:limit]
        return [QueueMessage.model_validate_json(body) for _, _, body in ordered]

    async def remove(self, queue: str, message_id: str) -> Optional[QueueMessage]:
        state = self._get_queue(queue)
        async with state.not_empty:
            for index, (_, _, body) in enumerate(state.heap):
                message = QueueMessage.model_validate_json(body)
                if message.id == message_id:
                    state.heap.pop(index)
                    heapq.heapify(state.heap)
                    return message
        return None

    async def purge(self, queue: str) -> int:
        state = self._get_queue(queue)
        async with state.not_empty:
            count = len(state.heap)
            state.heap.clear()
        return count

    def _get_queue(self, name: str) -> _Queue:
        state = self._queues.get(name)
        if state is None:
            raise NotFoundError(f"Queue {name} not declared")
        return state

    def _route(self, exchange: str, routing_key: str) -> list[str]:
        kind = self._exchanges.get(exchange)
        routed = []
        for queue, pattern in self._bindings.get(exchange, []):
            matched = pattern == routing_key if kind == "direct" else topic_matches(pattern, routing_key)
            if matched and queue not in routed:
                routed.append(queue)
        return routed

    async def _push(self, state: _Queue, priority: int, body: str, count: bool = True) -> None:
        priority = max(0, min(priority, state.max_priority))
        async with state.not_empty:
            # Higher priority first, FIFO within a priority
            heapq.heappush(state.heap, (-priority, next(self._sequence), body))
            if count:
                state.stats.published += 1
            state.not_empty.notify()
