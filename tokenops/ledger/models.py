"""
Ledger Domain Models
Transaction records, their status machine, query filters and aggregates.
"""
import datetime as dt
import math
from enum import StrEnum
from typing import Annotated, Any, Dict, Generic, List, Optional, TypeVar
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_serializer, field_validator

from ..errors import InvalidStatusTransitionError

# Standardizes MongoDB ObjectIds to strings
PyObjectId = Annotated[str, BeforeValidator(str)]


class Network(StrEnum):
    MAINNET = "mainnet"
    TESTNET = "testnet"


class TransactionType(StrEnum):
    TRANSFER = "transfer"
    CONTRACT_CALL = "contract_call"
    CONTRACT_DEPLOY = "contract_deploy"
    CONTRACT_READ = "contract_read"


class TransactionStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Forward-only: confirmed, failed and cancelled are terminal
ALLOWED_TRANSITIONS: Dict[TransactionStatus, frozenset] = {
    TransactionStatus.PENDING: frozenset({
        TransactionStatus.PROCESSING,
        TransactionStatus.FAILED,
        TransactionStatus.CANCELLED,
    }),
    TransactionStatus.PROCESSING: frozenset({
        TransactionStatus.CONFIRMED,
        TransactionStatus.FAILED,
    }),
    TransactionStatus.CONFIRMED: frozenset(),
    TransactionStatus.FAILED: frozenset(),
    TransactionStatus.CANCELLED: frozenset(),
}

# Timestamp stamped automatically when a record enters a status
_STATUS_TIMESTAMPS = {
    TransactionStatus.PROCESSING: "submitted_at",
    TransactionStatus.CONFIRMED: "confirmed_at",
    TransactionStatus.FAILED: "failed_at",
}


def _now() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


class TransactionRecord(BaseModel):
    """
    One attempt at one blockchain operation.

    A redelivered queue message finds its record again through
    ``idempotency_key``; a retry after a failed attempt creates a new
    record with ``attempt + 1``.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=False,
    )

    id: Optional[PyObjectId] = Field(None, alias="_id")
    company_id: Optional[str] = None
    user_id: Optional[str] = None
    network: Network = Network.TESTNET
    transaction_type: TransactionType = TransactionType.CONTRACT_CALL
    status: TransactionStatus = TransactionStatus.PENDING

    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    from_address: Optional[str] = None
    to_address: Optional[str] = None
    contract_address: Optional[str] = None
    function_name: Optional[str] = None
    function_params: List[Any] = Field(default_factory=list)
    gas_used: Optional[int] = None
    gas_price: Optional[int] = None

    # amount, amount_wei, token_symbol, operation, job_id, ...
    metadata: Dict[str, Any] = Field(default_factory=dict)
    idempotency_key: Optional[str] = None
    attempt: int = 1
    error: Optional[str] = None

    created_at: dt.datetime = Field(default_factory=_now)
    updated_at: dt.datetime = Field(default_factory=_now)
    submitted_at: Optional[dt.datetime] = None
    confirmed_at: Optional[dt.datetime] = None
    failed_at: Optional[dt.datetime] = None

    @field_serializer("created_at", "updated_at", "submitted_at", "confirmed_at", "failed_at", when_used="json")
    def serialize_dt(self, value: Optional[dt.datetime]):
        return value.isoformat() if value else None

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[TransactionStatus(self.status)]

    def transition(self, status: TransactionStatus, **fields: Any) -> "TransactionRecord":
        """
        Move to ``status`` and apply ``fields``.

        Raises:
            InvalidStatusTransitionError: If the move is not allowed
        """
        current = TransactionStatus(self.status)
        target = TransactionStatus(status)
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStatusTransitionError(
                f"Transaction {self.id} cannot move from {current} to {target}"
            )

        now = _now()
        self.status = target
        stamp = _STATUS_TIMESTAMPS.get(target)
        if stamp and stamp not in fields:
            setattr(self, stamp, now)
        for key, value in fields.items():
            setattr(self, key, value)
        self.updated_at = now
        return self


class TransactionFilter(BaseModel):
    """Query filter for the ledger read side. Unset fields match everything."""
    user_id: Optional[str] = None
    company_id: Optional[str] = None
    status: Optional[TransactionStatus] = None
    network: Optional[Network] = None
    transaction_type: Optional[TransactionType] = None
    token_symbol: Optional[str] = None
    date_from: Optional[dt.datetime] = None
    date_to: Optional[dt.datetime] = None

    @field_validator("date_from", "date_to")
    @classmethod
    def _assume_utc(cls, value: Optional[dt.datetime]) -> Optional[dt.datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value

    def matches(self, record: TransactionRecord) -> bool:
        if self.user_id is not None and record.user_id != self.user_id:
            return False
        if self.company_id is not None and record.company_id != self.company_id:
            return False
        if self.status is not None and record.status != self.status:
            return False
        if self.network is not None and record.network != self.network:
            return False
        if self.transaction_type is not None and record.transaction_type != self.transaction_type:
            return False
        if self.token_symbol is not None and record.metadata.get("token_symbol") != self.token_symbol:
            return False
        if self.date_from is not None and record.created_at < self.date_from:
            return False
        if self.date_to is not None and record.created_at > self.date_to:
            return False
        return True


T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [
                item.model_dump(mode="json") if isinstance(item, BaseModel) else item
                for item in self.items
            ],
            "pagination": {
                "total": self.total,
                "page": self.page,
                "limit": self.limit,
                "totalPages": self.total_pages,
            },
        }


class TransactionStats(BaseModel):
    total: int = 0
    by_status: Dict[str, int] = Field(default_factory=dict)
    by_type: Dict[str, int] = Field(default_factory=dict)
    average_gas_used: float = 0.0
    # Sum of gas_used * gas_price in wei, as a string to avoid float precision loss
    total_gas_cost_wei: str = "0"

    @classmethod
    def from_records(cls, records: List[TransactionRecord]) -> "TransactionStats":
        stats = cls(total=len(records))
        gas_samples = []
        gas_cost = 0
        for record in records:
            status = str(record.status)
            kind = str(record.transaction_type)
            stats.by_status[status] = stats.by_status.get(status, 0) + 1
            stats.by_type[kind] = stats.by_type.get(kind, 0) + 1
            if record.gas_used is not None:
                gas_samples.append(record.gas_used)
                if record.gas_price is not None:
                    gas_cost += record.gas_used * record.gas_price
        if gas_samples:
            stats.average_gas_used = sum(gas_samples) / len(gas_samples)
        stats.total_gas_cost_wei = str(gas_cost)
        return stats


def sort_key(record: TransactionRecord) -> tuple:
    """Newest first; id breaks ties so pages never overlap."""
    return (-record.created_at.timestamp(), record.id or "")
