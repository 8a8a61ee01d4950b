"""
MongoDB Transaction Ledger
Async persistence of transaction records on a Motor collection.
"""
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import DESCENDING, ASCENDING
from pymongo.errors import DuplicateKeyError

from ..errors import ConflictError, NotFoundError
from ..utils.observability import logger
from .base import TransactionLedger
from .models import (
    Page,
    TransactionFilter,
    TransactionRecord,
    TransactionStats,
    TransactionStatus,
)

COLLECTION_NAME = "transactions"

# Newest first; _id breaks ties so skip/limit pages never overlap
SORT_ORDER = [("created_at", DESCENDING), ("_id", ASCENDING)]


def build_query(filter: Optional[TransactionFilter]) -> Dict[str, Any]:
    """
    Translate a TransactionFilter into a MongoDB query document.

    Example:
        >>> build_query(TransactionFilter(status="confirmed", token_symbol="AZE"))
        {'status': 'confirmed', 'metadata.token_symbol': 'AZE'}
    """
    if filter is None:
        return {}

    query: Dict[str, Any] = {}
    for field in ("user_id", "company_id", "status", "network", "transaction_type"):
        value = getattr(filter, field)
        if value is not None:
            query[field] = str(value)

    if filter.token_symbol is not None:
        query["metadata.token_symbol"] = filter.token_symbol

    created: Dict[str, Any] = {}
    if filter.date_from is not None:
        created["$gte"] = filter.date_from
    if filter.date_to is not None:
        created["$lte"] = filter.date_to
    if created:
        query["created_at"] = created

    return query


def _object_id(record_id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(record_id)
    except (InvalidId, TypeError):
        return None


class MongoTransactionLedger(TransactionLedger):
    """
    Ledger backed by the ``transactions`` collection.

    Usage:
        ledger = MongoTransactionLedger(db_manager.database)
        record = await ledger.create(TransactionRecord(function_name="mint"))
    """

    def __init__(self, database: AsyncIOMotorDatabase, collection_name: str = COLLECTION_NAME):
        self.database = database
        self.collection: AsyncIOMotorCollection = database[collection_name]
        self.collection_name = collection_name

    async def create(self, record: TransactionRecord) -> TransactionRecord:
        doc = record.model_dump(by_alias=True, exclude={"id"})

        try:
            result = await self.collection.insert_one(doc)
        except DuplicateKeyError as e:
            raise ConflictError(
                f"Record for {record.idempotency_key} attempt {record.attempt} already exists"
            ) from e

        logger.debug(
            f"Created document in {self.collection_name}",
            extra={"document_id": str(result.inserted_id)}
        )

        record.id = str(result.inserted_id)
        return record

    async def get(self, record_id: str) -> Optional[TransactionRecord]:
        object_id = _object_id(record_id)
        if object_id is None:
            return None
        return self._to_model(await self.collection.find_one({"_id": object_id}))

    async def get_by_tx_hash(self, tx_hash: str) -> Optional[TransactionRecord]:
        return self._to_model(await self.collection.find_one({"tx_hash": tx_hash}))

    async def get_by_idempotency_key(self, key: str) -> Optional[TransactionRecord]:
        doc = await self.collection.find_one(
            {"idempotency_key": key},
            sort=[("attempt", DESCENDING)],
        )
        return self._to_model(doc)

    async def update_status(
        self,
        record_id: str,
        status: TransactionStatus,
        **fields: Any,
    ) -> TransactionRecord:
        record = await self.get(record_id)
        if record is None:
            raise NotFoundError(f"Transaction {record_id} not found")

        previous = record.status
        record.transition(status, **fields)
        doc = record.model_dump(by_alias=True, exclude={"id"})

        # Conditional on the status we read, so concurrent writers cannot skip a state
        result = await self.collection.update_one(
            {"_id": ObjectId(record.id), "status": str(previous)},
            {"$set": doc},
        )
        if result.matched_count == 0:
            raise ConflictError(f"Transaction {record_id} changed concurrently")

        logger.debug(
            f"Updated document in {self.collection_name}",
            extra={"document_id": record.id, "status": str(status)}
        )
        return record

    async def list(
        self,
        filter: Optional[TransactionFilter] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page[TransactionRecord]:
        query = build_query(filter)
        total = await self.collection.count_documents(query)
        cursor = self.collection.find(query).sort(SORT_ORDER).skip((page - 1) * limit).limit(limit)
        docs = await cursor.to_list(length=limit)
        return Page[TransactionRecord](
            items=[self._to_model(doc) for doc in docs],
            total=total,
            page=page,
            limit=limit,
        )

    async def stats(self, filter: Optional[TransactionFilter] = None) -> TransactionStats:
        # Gas cost needs exact integer math, so aggregate client-side
        cursor = self.collection.find(
            build_query(filter),
            projection={"status": 1, "transaction_type": 1, "gas_used": 1, "gas_price": 1},
        )
        records = [
            TransactionRecord(
                status=doc.get("status", TransactionStatus.PENDING),
                transaction_type=doc.get("transaction_type", "contract_call"),
                gas_used=doc.get("gas_used"),
                gas_price=doc.get("gas_price"),
            )
            async for doc in cursor
        ]
        return TransactionStats.from_records(records)

    async def ping(self) -> bool:
        await self.database.command("ping")
        return True

    def _to_model(self, doc: Optional[Dict[str, Any]]) -> Optional[TransactionRecord]:
        """Convert a raw MongoDB document, dropping fields the model does not know."""
        if not doc:
            return None
        if "_id" in doc:
            doc["_id"] = str(doc["_id"])

        model_fields = TransactionRecord.model_fields.keys()
        cleaned_doc = {k: v for k, v in doc.items() if k in model_fields or k == "_id"}
        return TransactionRecord.model_validate(cleaned_doc)
