"""
Transaction Endpoints

Read side of the transaction ledger. Non-admin callers only see records
of their own company.
"""
import datetime as dt
from typing import Optional

from fastapi import APIRouter, Depends, Query

from tokenops.api.container import Container
from tokenops.api.dependencies import CurrentUser, get_container, get_current_user
from tokenops.api.responses import ok
from tokenops.errors import NotFoundError
from tokenops.ledger import Network, TransactionFilter, TransactionRecord, TransactionStatus, TransactionType

router = APIRouter(prefix="/api/transactions", tags=["Transactions"])


def _scoped_filter(
    user: CurrentUser,
    user_id: Optional[str] = None,
    company_id: Optional[str] = None,
    status: Optional[TransactionStatus] = None,
    network: Optional[Network] = None,
    transaction_type: Optional[TransactionType] = None,
    token_symbol: Optional[str] = None,
    date_from: Optional[dt.datetime] = None,
    date_to: Optional[dt.datetime] = None,
) -> TransactionFilter:
    if not user.is_admin:
        company_id = user.company_id
    return TransactionFilter(
        user_id=user_id,
        company_id=company_id,
        status=status,
        network=network,
        transaction_type=transaction_type,
        token_symbol=token_symbol,
        date_from=date_from,
        date_to=date_to,
    )


def _visible(record: Optional[TransactionRecord], user: CurrentUser) -> Optional[TransactionRecord]:
    if record is None:
        return None
    if not user.is_admin and record.company_id != user.company_id:
        return None
    return record


@router.get("")
async def list_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user_id: Optional[str] = None,
    company_id: Optional[str] = None,
    status: Optional[TransactionStatus] = None,
    network: Optional[Network] = None,
    transaction_type: Optional[TransactionType] = None,
    token_symbol: Optional[str] = None,
    date_from: Optional[dt.datetime] = None,
    date_to: Optional[dt.datetime] = None,
    user: CurrentUser = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    """Newest first, paginated."""
    filter = _scoped_filter(
        user, user_id, company_id, status, network, transaction_type, token_symbol, date_from, date_to
    )
    result = await container.ledger.list(filter, page=page, limit=limit)
    return ok(result.to_dict())


@router.get("/stats")
async def transaction_stats(
    user_id: Optional[str] = None,
    company_id: Optional[str] = None,
    network: Optional[Network] = None,
    transaction_type: Optional[TransactionType] = None,
    token_symbol: Optional[str] = None,
    date_from: Optional[dt.datetime] = None,
    date_to: Optional[dt.datetime] = None,
    user: CurrentUser = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    filter = _scoped_filter(
        user, user_id, company_id, None, network, transaction_type, token_symbol, date_from, date_to
    )
    stats = await container.ledger.stats(filter)
    return ok(stats.model_dump())


@router.get("/hash/{tx_hash}")
async def get_by_hash(
    tx_hash: str,
    user: CurrentUser = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    record = _visible(await container.ledger.get_by_tx_hash(tx_hash), user)
    if record is None:
        raise NotFoundError(f"Transaction {tx_hash} not found")
    return ok(record.model_dump(mode="json"))


@router.get("/{record_id}")
async def get_transaction(
    record_id: str,
    user: CurrentUser = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    record = _visible(await container.ledger.get(record_id), user)
    if record is None:
        raise NotFoundError(f"Transaction {record_id} not found")
    return ok(record.model_dump(mode="json"))
