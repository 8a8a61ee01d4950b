"""
Queue Worker

Background consumer that pulls messages from one broker queue and hands
them to a handler, applying the retry and dead-letter rules.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional
from loguru import logger

from tokenops.errors import is_retryable
from tokenops.message_queue.base import Delivery, MessageBroker, QueueMessage
from tokenops.message_queue.jobs import JobTracker
from tokenops.utils.metrics import Timer, metrics


MessageHandler = Callable[[QueueMessage], Awaitable[Any]]


class QueueWorker:
    """
    Background worker for one queue.

    Retry policy:
    - Handler succeeds: ack
    - Retryable failure with retries < max_retries: increment retries, ack,
      republish the same message after ``base_delay_seconds * retries``
    - Non-retryable failure, or retries exhausted: nack without requeue,
      which routes the message to the dead-letter exchange

    Attributes:
        broker: Broker to consume from
        queue_name: Queue to consume
        handler: Async function to process each message
        prefetch: Maximum unacked messages held at once
        max_retries: Retry limit when the message carries none
        base_delay_seconds: Linear backoff step
        poll_interval: Seconds to block on an empty queue
    """

    def __init__(
        self,
        broker: MessageBroker,
        queue_name: str,
        handler: MessageHandler,
        prefetch: int = 5,
        max_retries: int = 3,
        base_delay_seconds: float = 5.0,
        poll_interval: float = 1.0,
        jobs: Optional[JobTracker] = None,
    ):
        self.broker = broker
        self.queue_name = queue_name
        self.handler = handler
        self.prefetch = prefetch
        self.max_retries = max_retries
        self.base_delay_seconds = base_delay_seconds
        self.poll_interval = poll_interval
        self.jobs = jobs
        self._running = False
        self._tasks: set[asyncio.Task] = set()
        self._retry_tasks: set[asyncio.Task] = set()
        self._semaphore = asyncio.Semaphore(prefetch)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending_retries(self) -> int:
        return len(self._retry_tasks)

    async def start(self) -> None:
        """
        Start consuming.

        Runs until stop() is called or the broker closes.
        """
        if self._running:
            logger.warning(f"Worker for {self.queue_name} already running")
            return

        self._running = True
        logger.info(
            f"🚀 Queue worker started for {self.queue_name} "
            f"(prefetch={self.prefetch}, max_retries={self.max_retries})"
        )

        try:
            while self._running and self.broker.is_connected:
                await self._semaphore.acquire()
                try:
                    delivery = await self.broker.get(self.queue_name, timeout=self.poll_interval)
                except Exception:
                    self._semaphore.release()
                    raise

                if delivery is None:
                    self._semaphore.release()
                    continue

                task = asyncio.create_task(self._process_delivery(delivery, release=True))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

        except Exception as e:
            logger.error(f"Worker for {self.queue_name} crashed: {e}", exc_info=True)
            raise

        finally:
            self._running = False
            logger.info(f"🛑 Queue worker stopped for {self.queue_name}")

    async def stop(self, timeout: float = 30.0) -> None:
        """
        Stop the worker.

        Stops accepting messages, waits for in-flight handlers, then cancels
        pending delayed republishes. A cancelled republish loses that retry,
        the original delivery was already acked.
        """
        self._running = False

        if self._tasks:
            logger.info(f"Waiting for {len(self._tasks)} in-flight messages on {self.queue_name}...")
            try:
                await asyncio.wait_for(
                    asyncio.gather(*self._tasks, return_exceptions=True),
                    timeout=timeout
                )
            except asyncio.TimeoutError:
                logger.warning("Timeout waiting for handlers, cancelling remaining")
                for task in self._tasks:
                    task.cancel()

        for task in list(self._retry_tasks):
            task.cancel()
        if self._retry_tasks:
            logger.warning(
                f"Cancelled {len(self._retry_tasks)} scheduled retries on {self.queue_name}"
            )
            await asyncio.gather(*self._retry_tasks, return_exceptions=True)

    async def process_next(self, timeout: Optional[float] = None) -> bool:
        """
        Fetch and process a single message inline.

        Returns:
            True if a message was processed, False if the queue was empty
        """
        delivery = await self.broker.get(self.queue_name, timeout=timeout)
        if delivery is None:
            return False
        await self._process_delivery(delivery)
        return True

    async def wait_for_retries(self) -> None:
        """Block until every scheduled republish has fired."""
        while self._retry_tasks:
            await asyncio.gather(*list(self._retry_tasks), return_exceptions=True)

    async def _process_delivery(self, delivery: Delivery, release: bool = False) -> None:
        message = delivery.message
        metrics.queue_in_flight.inc(queue=self.queue_name)
        if self.jobs is not None:
            self.jobs.processing(message.id, message.type, message.retries)

        try:
            logger.debug(f"Processing {message.type} message {message.id} (retry {message.retries})")

            with Timer(metrics.handler_duration, queue=self.queue_name):
                result = await self.handler(message)

            await self.broker.ack(delivery)
            metrics.jobs_completed.inc(queue=self.queue_name)
            if self.jobs is not None:
                self.jobs.completed(message.id, result)

            logger.info(
                f"✅ Message {message.id} processed successfully",
                extra={
                    "job_id": message.id,
                    "type": message.type,
                    "queue": self.queue_name,
                    "retries": message.retries,
                }
            )

        except Exception as e:
            await self._handle_failure(delivery, e)

        finally:
            metrics.queue_in_flight.dec(queue=self.queue_name)
            if release:
                self._semaphore.release()

    async def _handle_failure(self, delivery: Delivery, error: Exception) -> None:
        message = delivery.message
        message.error = str(error)
        limit = self.max_retries if message.max_retries is None else message.max_retries
        retry = is_retryable(error) and message.retries < limit

        logger.error(
            f"❌ Failed to process message {message.id}: {error}",
            extra={
                "job_id": message.id,
                "type": message.type,
                "queue": self.queue_name,
                "retries": message.retries,
                "will_retry": retry,
                "error": str(error),
            }
        )

        if not retry:
            await self.broker.nack(delivery, requeue=False)
            metrics.jobs_dead_lettered.inc(queue=self.queue_name)
            if self.jobs is not None:
                self.jobs.failed(message.id, str(error), final=True)
            return

        message.retries += 1
        delay = self.base_delay_seconds * message.retries
        await self.broker.ack(delivery)
        metrics.jobs_retried.inc(queue=self.queue_name)
        if self.jobs is not None:
            self.jobs.failed(message.id, str(error), final=False)

        task = asyncio.create_task(self._republish_later(message, delay))
        self._retry_tasks.add(task)
        task.add_done_callback(self._retry_tasks.discard)

    async def _republish_later(self, message: QueueMessage, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            await self.broker.publish(message.exchange, message.routing_key, message)
            logger.info(
                f"Retry {message.retries} published for message {message.id}",
                extra={"job_id": message.id, "routing_key": message.routing_key}
            )
        except Exception as e:
            logger.error(
                f"Failed to republish message {message.id}: {e}",
                extra={"job_id": message.id, "retries": message.retries}
            )
            if self.jobs is not None:
                self.jobs.failed(message.id, f"retry not scheduled: {e}", final=True)
