"""
Service Container

Builds every long-lived component explicitly and owns their lifecycle.
The FastAPI lifespan calls start()/stop(); tests build a container with
in-memory backends and fakes.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from loguru import logger

from tokenops.blockchain import BlockchainClient, ContractRegistry, ExplorerClient, RoleManager, SignerRegistry
from tokenops.config import Settings, get_settings
from tokenops.ledger import DatabaseManager, InMemoryTransactionLedger, MongoTransactionLedger, TransactionLedger
from tokenops.message_queue import (
    DEFAULT_TOPOLOGY,
    InMemoryBroker,
    JobTracker,
    MessageBroker,
    QueuePublisher,
    QueueWorker,
    declare_topology,
)
from tokenops.message_queue.topology import (
    LEDGER_RECONCILIATION,
    NOTIFICATIONS_EMAIL,
    NOTIFICATIONS_WEBHOOK,
)
from tokenops.notifications import NotificationDispatcher, NotificationFanout, WebhookSender, build_email_sender
from tokenops.operations import (
    ContractWriteExecutor,
    DepositProcessor,
    LedgerReconciler,
    OperationDispatcher,
    WithdrawalProcessor,
)
from tokenops.pix import PixProvider, build_pix_provider
from tokenops.utils.metrics import metrics


@dataclass
class Container:
    settings: Settings
    broker: MessageBroker
    ledger: TransactionLedger
    client: BlockchainClient
    explorer: ExplorerClient
    roles: RoleManager
    contracts: ContractRegistry
    jobs: JobTracker
    publisher: QueuePublisher
    fanout: NotificationFanout
    executor: ContractWriteExecutor
    dispatcher: OperationDispatcher
    notifications: NotificationDispatcher
    reconciler: LedgerReconciler
    pix: PixProvider
    database: Optional[DatabaseManager] = None
    workers: List[QueueWorker] = field(default_factory=list)
    _tasks: List[asyncio.Task] = field(default_factory=list)

    def build_workers(self) -> List[QueueWorker]:
        """One worker per work queue plus the reconciliation queue."""
        handlers = {name: self.dispatcher.handle for name in DEFAULT_TOPOLOGY.work_queues}
        handlers[NOTIFICATIONS_EMAIL] = self.notifications.handle
        handlers[NOTIFICATIONS_WEBHOOK] = self.notifications.handle
        handlers[LEDGER_RECONCILIATION] = self.reconciler.handle

        return [
            QueueWorker(
                broker=self.broker,
                queue_name=queue,
                handler=handler,
                prefetch=self.settings.queue_prefetch,
                max_retries=self.settings.queue_max_retries,
                base_delay_seconds=self.settings.queue_retry_base_delay_seconds,
                jobs=self.jobs,
            )
            for queue, handler in handlers.items()
        ]

    async def start(self) -> None:
        await self.broker.connect()
        await declare_topology(self.broker, DEFAULT_TOPOLOGY)

        if self.database is not None:
            await self.database.create_indexes()

        await self.client.connect()

        if self.settings.enable_queue_workers:
            self.workers = self.build_workers()
            for worker in self.workers:
                self._tasks.append(asyncio.create_task(worker.start()))
            logger.info(f"Started {len(self.workers)} queue workers")

    async def stop(self) -> None:
        for worker in self.workers:
            await worker.stop()

        for task in self._tasks:
            if not task.done():
                task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        await self.broker.close()
        await self.client.close()
        if self.database is not None:
            await self.database.disconnect()

    async def queue_depths(self) -> Dict[str, int]:
        """Ready messages per queue, also pushed to the queue_depth gauge."""
        depths = {}
        for queue in await self.broker.list_queues():
            stats = await self.broker.queue_stats(queue)
            depths[queue] = stats.messages
            metrics.queue_depth.set(stats.messages, queue=queue)
        return depths


async def build_container(
    settings: Optional[Settings] = None,
    broker: Optional[MessageBroker] = None,
    ledger: Optional[TransactionLedger] = None,
    client: Optional[BlockchainClient] = None,
    pix: Optional[PixProvider] = None,
) -> Container:
    """
    Wire the application from settings.

    Any component can be passed in to replace the default. With the mongo
    backend the Motor client is opened here (no I/O until first use); indexes
    are created in start().
    """
    settings = settings or get_settings()
    broker = broker or InMemoryBroker()

    database = None
    if ledger is None:
        if settings.ledger_backend == "mongo":
            database = DatabaseManager(settings)
            await database.connect()
            ledger = MongoTransactionLedger(database.database)
        else:
            ledger = InMemoryTransactionLedger()

    if client is None:
        client = BlockchainClient(settings, SignerRegistry.from_settings(settings))

    contracts = ContractRegistry.from_settings(settings)
    roles = RoleManager(client)
    jobs = JobTracker(retention_seconds=settings.job_retention_seconds)
    publisher = QueuePublisher(broker, jobs)
    fanout = NotificationFanout(publisher)
    executor = ContractWriteExecutor(client, ledger, roles, contracts, fanout=fanout, broker=broker, settings=settings)
    pix = pix or build_pix_provider(settings.pix_provider)

    return Container(
        settings=settings,
        broker=broker,
        ledger=ledger,
        client=client,
        explorer=ExplorerClient(settings),
        roles=roles,
        contracts=contracts,
        jobs=jobs,
        publisher=publisher,
        fanout=fanout,
        executor=executor,
        dispatcher=OperationDispatcher(
            client,
            executor,
            deposits=DepositProcessor(executor, pix, fanout),
            withdrawals=WithdrawalProcessor(executor, pix, fanout),
        ),
        notifications=NotificationDispatcher(WebhookSender(settings), build_email_sender(settings)),
        reconciler=LedgerReconciler(ledger),
        pix=pix,
        database=database,
    )
