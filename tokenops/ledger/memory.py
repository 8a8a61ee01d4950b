"""
In-Memory Transaction Ledger
Dictionary-backed ledger for tests and single-process deployments.
"""
import asyncio
import uuid
from typing import Any, Optional

from ..errors import ConflictError, NotFoundError
from .base import TransactionLedger
from .models import (
    Page,
    TransactionFilter,
    TransactionRecord,
    TransactionStats,
    TransactionStatus,
    sort_key,
)


class InMemoryTransactionLedger(TransactionLedger):
    """Records live in a dict keyed by id; data is lost on restart."""

    def __init__(self):
        self._records: dict[str, TransactionRecord] = {}
        self._lock = asyncio.Lock()

    async def create(self, record: TransactionRecord) -> TransactionRecord:
        async with self._lock:
            if record.idempotency_key:
                for existing in self._records.values():
                    if (existing.idempotency_key == record.idempotency_key
                            and existing.attempt == record.attempt):
                        raise ConflictError(
                            f"Record for {record.idempotency_key} attempt {record.attempt} already exists"
                        )
            record.id = record.id or uuid.uuid4().hex
            self._records[record.id] = record.model_copy(deep=True)
            return record

    async def get(self, record_id: str) -> Optional[TransactionRecord]:
        record = self._records.get(record_id)
        return record.model_copy(deep=True) if record else None

    async def get_by_tx_hash(self, tx_hash: str) -> Optional[TransactionRecord]:
        wanted = tx_hash.lower()
        for record in self._records.values():
            if record.tx_hash and record.tx_hash.lower() == wanted:
                return record.model_copy(deep=True)
        return None

    async def get_by_idempotency_key(self, key: str) -> Optional[TransactionRecord]:
        matches = [r for r in self._records.values() if r.idempotency_key == key]
        if not matches:
            return None
        return max(matches, key=lambda r: r.attempt).model_copy(deep=True)

    async def update_status(
        self,
        record_id: str,
        status: TransactionStatus,
        **fields: Any,
    ) -> TransactionRecord:
        async with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise NotFoundError(f"Transaction {record_id} not found")
            record.transition(status, **fields)
            return record.model_copy(deep=True)

    async def list(
        self,
        filter: Optional[TransactionFilter] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page[TransactionRecord]:
        filter = filter or TransactionFilter()
        matched = sorted((r for r in self._records.values() if filter.matches(r)), key=sort_key)
        start = (page - 1) * limit
        items = [r.model_copy(deep=True) for r in matched[start:start + limit]]
        return Page[TransactionRecord](items=items, total=len(matched), page=page, limit=limit)

    async def stats(self, filter: Optional[TransactionFilter] = None) -> TransactionStats:
        filter = filter or TransactionFilter()
        return TransactionStats.from_records([r for r in self._records.values() if filter.matches(r)])
