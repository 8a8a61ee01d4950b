"""
Transaction Ledger Interface
Persistence contract for transaction records.
"""
from abc import ABC, abstractmethod
from typing import Any, Optional

from .models import (
    Page,
    TransactionFilter,
    TransactionRecord,
    TransactionStats,
    TransactionStatus,
)


class TransactionLedger(ABC):
    """
    Abstract ledger.

    Implementations enforce the forward-only status machine through
    TransactionRecord.transition() and keep (idempotency_key, attempt) unique.
    """

    @abstractmethod
    async def create(self, record: TransactionRecord) -> TransactionRecord:
        """
        Persist a new record.

        Raises:
            ConflictError: If (idempotency_key, attempt) already exists
        """

    @abstractmethod
    async def get(self, record_id: str) -> Optional[TransactionRecord]:
        pass

    @abstractmethod
    async def get_by_tx_hash(self, tx_hash: str) -> Optional[TransactionRecord]:
        pass

    @abstractmethod
    async def get_by_idempotency_key(self, key: str) -> Optional[TransactionRecord]:
        """Latest attempt recorded under ``key``."""

    @abstractmethod
    async def update_status(
        self,
        record_id: str,
        status: TransactionStatus,
        **fields: Any,
    ) -> TransactionRecord:
        """
        Transition a record and store extra fields.

        Raises:
            NotFoundError: If the record does not exist
            InvalidStatusTransitionError: If the transition is not allowed
        """

    async def update_by_tx_hash(
        self,
        tx_hash: str,
        status: TransactionStatus,
        **fields: Any,
    ) -> Optional[TransactionRecord]:
        record = await self.get_by_tx_hash(tx_hash)
        if record is None:
            return None
        return await self.update_status(record.id, status, **fields)

    @abstractmethod
    async def list(
        self,
        filter: Optional[TransactionFilter] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page[TransactionRecord]:
        """Filtered records, newest first."""

    @abstractmethod
    async def stats(self, filter: Optional[TransactionFilter] = None) -> TransactionStats:
        pass

    async def ping(self) -> bool:
        return True
