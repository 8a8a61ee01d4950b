"""
Transaction Ledger
Durable record of every blockchain operation attempt.
"""
from .base import TransactionLedger
from .connection import DatabaseManager
from .memory import InMemoryTransactionLedger
from .models import (
    Network,
    Page,
    TransactionFilter,
    TransactionRecord,
    TransactionStats,
    TransactionStatus,
    TransactionType,
)
from .mongo import MongoTransactionLedger, build_query

__all__ = [
    "TransactionLedger",
    "DatabaseManager",
    "InMemoryTransactionLedger",
    "MongoTransactionLedger",
    "build_query",
    "Network",
    "Page",
    "TransactionFilter",
    "TransactionRecord",
    "TransactionStats",
    "TransactionStatus",
    "TransactionType",
]
