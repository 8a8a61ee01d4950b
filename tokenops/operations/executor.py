"""
Contract Write Executor

The single primitive behind every token and staking write:

1. Idempotency lookup in the ledger
2. Gas payer resolution and role check-then-grant
3. Amount conversion using the token's own decimals
4. Balance and gas pre-checks, before anything is recorded or submitted
5. Ledger record pending -> processing -> confirmed/failed
6. Best-effort notification fan-out
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from tokenops.blockchain.client import BlockchainClient, Receipt
from tokenops.blockchain.roles import RoleManager
from tokenops.blockchain.signers import ContractRegistry, checksum
from tokenops.blockchain.units import ETHER_DECIMALS, parse_ether, parse_positive_amount, to_base_units
from tokenops.config import Settings, get_settings
from tokenops.errors import (
    ConflictError,
    InsufficientBalanceError,
    InsufficientGasError,
    TransactionRevertedError,
    ValidationError,
)
from tokenops.ledger.base import TransactionLedger
from tokenops.ledger.models import (
    Network,
    TransactionRecord,
    TransactionStatus,
    TransactionType,
)
from tokenops.message_queue.base import MessageBroker, QueueMessage
from tokenops.message_queue.topology import DEADLETTER_EXCHANGE, RECONCILIATION_ROUTING_KEY
from tokenops.notifications.fanout import NotificationFanout
from tokenops.operations.definitions import OperationRequest, OperationSpec
from tokenops.utils.metrics import metrics
from tokenops.utils.observability import log_business_event, log_operation, logger


class OperationResult(BaseModel):
    """What a handler returns to the worker and the job tracker."""
    operation: str
    record_id: Optional[str] = None
    status: str
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    skipped: bool = False

    @classmethod
    def from_record(cls, operation: str, record: TransactionRecord, skipped: bool = False) -> "OperationResult":
        return cls(
            operation=operation,
            record_id=record.id,
            status=str(record.status),
            tx_hash=record.tx_hash,
            block_number=record.block_number,
            gas_used=record.gas_used,
            skipped=skipped,
        )


class ReconciliationEvent(BaseModel):
    """A chain outcome the ledger failed to store."""
    record_id: Optional[str]
    idempotency_key: Optional[str]
    operation: str
    network: str
    tx_hash: Optional[str]
    intended_status: str
    fields: Dict[str, Any] = Field(default_factory=dict)
    error: str
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ContractWriteExecutor:
    """
    Executes OperationSpecs against the chain and records them in the ledger.

    Attributes:
        client: Blockchain client
        ledger: Transaction ledger
        roles: Role manager for check-then-grant
        contracts: Gas payer / contract admin registry
        fanout: Notification fan-out (optional)
        broker: Broker used to publish reconciliation events (optional)
    """

    def __init__(
        self,
        client: BlockchainClient,
        ledger: TransactionLedger,
        roles: RoleManager,
        contracts: ContractRegistry,
        fanout: Optional[NotificationFanout] = None,
        broker: Optional[MessageBroker] = None,
        settings: Optional[Settings] = None,
    ):
        self.client = client
        self.ledger = ledger
        self.roles = roles
        self.contracts = contracts
        self.fanout = fanout
        self.broker = broker
        self.settings = settings or get_settings()

    async def execute(self, spec: OperationSpec, request: OperationRequest) -> OperationResult:
        """
        Run one contract write end to end.

        Raises:
            ValidationError: Bad address or amount
            SignerKeyMissingError: Gas payer has no configured key
            InsufficientBalanceError / InsufficientGasError: Pre-check failed
            RoleGrantError: Role missing and could not be granted
            ChainError: RPC failure (retryable)
            TransactionRevertedError: Receipt status 0
        """
        started = time.perf_counter()
        network = self.resolve_network(request)
        contract = request.target_contract
        amount = parse_positive_amount(request.require("amount")) if spec.has_amount else None
        key = request.idempotency_key or request.job_id

        # Redelivered message: reuse what the ledger already knows
        record: Optional[TransactionRecord] = None
        attempt = 1
        existing = await self._previous_attempt(key, spec.name, request)
        if existing is not None:
            if existing.status == TransactionStatus.CONFIRMED:
                log_operation(spec.name, request.job_id, network, "skipped", record_id=existing.id)
                return OperationResult.from_record(spec.name, existing, skipped=True)
            if existing.status == TransactionStatus.PROCESSING and existing.tx_hash:
                logger.info(
                    f"Resuming {spec.name}: waiting on previously submitted {existing.tx_hash}",
                    extra={"record_id": existing.id, "job_id": request.job_id}
                )
                receipt = await self.client.wait_for_receipt(network, existing.tx_hash)
                return await self._finalize(spec.name, request, existing, receipt, started)
            if existing.status == TransactionStatus.PENDING:
                record = existing
            else:
                attempt = existing.attempt + 1

        gas_payer = self.contracts.resolve_gas_payer(contract, request.gas_payer)
        self.client.signers.get(gas_payer)

        if spec.required_role:
            admin = self.contracts.admin_for(contract) or gas_payer
            await self.roles.ensure_role(network, contract, spec.required_role, gas_payer, admin)

        amount_units = None
        if amount is not None:
            decimals = await self._decimals(spec, request, network, contract)
            amount_units = to_base_units(amount, decimals)

        args = list(spec.build_args(request, amount_units))

        # Pre-checks: nothing is recorded or submitted if these fail
        if spec.balance_holder and amount_units is not None:
            holder = request.address(spec.balance_holder)
            balance = await self.client.token_balance(network, contract, holder)
            if balance < amount_units:
                metrics.operations_total.inc(operation=spec.name, status="rejected")
                raise InsufficientBalanceError(
                    f"{holder} holds {balance} base units, {amount_units} required",
                    details={"holder": holder, "balance": str(balance), "required": str(amount_units)},
                )

        cost = await self.client.estimate_write_cost(network, contract, spec.abi, spec.function_name, args, gas_payer)
        native = await self.client.get_balance(gas_payer, network)
        if int(native["balance_wei"]) < cost:
            metrics.operations_total.inc(operation=spec.name, status="rejected")
            raise InsufficientGasError(
                f"Gas payer {gas_payer} has {native['balance']} native coin, needs about {cost} wei",
                details={"gas_payer": gas_payer, "balance_wei": native["balance_wei"], "estimated_cost_wei": str(cost)},
            )

        if record is None:
            record = await self.ledger.create(self._new_record(spec, request, network, contract, gas_payer, args, amount_units, key, attempt))

        try:
            tx_hash = await self.client.submit_contract_transaction(
                network, contract, spec.abi, spec.function_name, args, gas_payer
            )
        except Exception as e:
            await self._record_status(spec.name, record, TransactionStatus.FAILED, error=str(e))
            metrics.operations_total.inc(operation=spec.name, status="failed")
            raise

        record = await self._record_status(spec.name, record, TransactionStatus.PROCESSING, tx_hash=tx_hash)
        receipt = await self.client.wait_for_receipt(network, tx_hash)
        return await self._finalize(spec.name, request, record, receipt, started)

    async def send_native(self, request: OperationRequest) -> OperationResult:
        """
        Native coin transfer from a managed wallet, recorded as a ``transfer``.

        Redeliveries follow the same ledger rules as contract writes, so a
        transfer that already has a hash is never sent a second time.
        """
        started = time.perf_counter()
        operation = "send_transaction"
        network = self.resolve_network(request)
        sender = request.address("from_address")
        to = request.address("to_address")
        value = parse_ether(parse_positive_amount(request.require("amount")))
        key = request.idempotency_key or request.job_id

        record: Optional[TransactionRecord] = None
        attempt = 1
        existing = await self._previous_attempt(key, operation, request)
        if existing is not None:
            if existing.status == TransactionStatus.CONFIRMED:
                log_operation(operation, request.job_id, network, "skipped", record_id=existing.id)
                return OperationResult.from_record(operation, existing, skipped=True)
            if existing.status == TransactionStatus.PROCESSING and existing.tx_hash:
                logger.info(
                    f"Resuming {operation}: waiting on previously submitted {existing.tx_hash}",
                    extra={"record_id": existing.id, "job_id": request.job_id}
                )
                receipt = await self.client.wait_for_receipt(network, existing.tx_hash)
                return await self._finalize(operation, request, existing, receipt, started)
            if existing.status == TransactionStatus.PENDING:
                record = existing
            else:
                attempt = existing.attempt + 1

        self.client.signers.get(sender)
        native = await self.client.get_balance(sender, network)
        if int(native["balance_wei"]) < value:
            metrics.operations_total.inc(operation=operation, status="rejected")
            raise InsufficientBalanceError(f"{sender} holds {native['balance']}, {request.amount} required")

        if record is None:
            record = await self.ledger.create(TransactionRecord(
                company_id=request.company_id,
                user_id=request.user_id,
                network=Network(network),
                transaction_type=TransactionType.TRANSFER,
                from_address=sender,
                to_address=to,
                metadata={
                    **request.metadata,
                    "operation": operation,
                    "amount": request.amount,
                    "amount_wei": str(value),
                    "job_id": request.job_id,
                },
                idempotency_key=key,
                attempt=attempt,
            ))

        try:
            tx_hash = await self.client.send_native(network, sender, to, value)
        except Exception as e:
            await self._record_status(operation, record, TransactionStatus.FAILED, error=str(e))
            metrics.operations_total.inc(operation=operation, status="failed")
            raise

        record = await self._record_status(operation, record, TransactionStatus.PROCESSING, tx_hash=tx_hash)
        receipt = await self.client.wait_for_receipt(network, tx_hash)
        return await self._finalize(operation, request, record, receipt, started)

    # ============================================
    # INTERNALS
    # ============================================

    def resolve_network(self, request: OperationRequest) -> str:
        network = request.network or self.settings.default_network
        if network not in self.client.profiles:
            raise ValidationError(f"Unknown network: {network}")
        return network

    async def _previous_attempt(
        self,
        key: Optional[str],
        operation: str,
        request: OperationRequest,
    ) -> Optional[TransactionRecord]:
        """
        Latest ledger attempt recorded under ``key``.

        Raises:
            ConflictError: The key already belongs to another operation or company
        """
        if not key:
            return None
        existing = await self.ledger.get_by_idempotency_key(key)
        if existing is None:
            return None
        if existing.metadata.get("operation") != operation or existing.company_id != request.company_id:
            logger.warning(
                f"Idempotency key {key} reused by {operation}",
                extra={"record_id": existing.id, "job_id": request.job_id}
            )
            raise ConflictError(
                f"Idempotency key {key} is already used by another operation",
                details={"idempotency_key": key},
            )
        return existing

    async def _decimals(self, spec: OperationSpec, request: OperationRequest, network: str, contract: str) -> int:
        if spec.contract_kind == "token":
            return await self.client.token_decimals(network, contract)
        if spec.contract_kind == "stake" and request.token_address:
            return await self.client.token_decimals(network, checksum(request.token_address, "token_address"))
        return ETHER_DECIMALS

    def _new_record(
        self,
        spec: OperationSpec,
        request: OperationRequest,
        network: str,
        contract: str,
        gas_payer: str,
        args: list,
        amount_units: Optional[int],
        key: Optional[str],
        attempt: int,
    ) -> TransactionRecord:
        metadata = {
            **request.metadata,
            "operation": spec.name,
            "job_id": request.job_id,
        }
        if request.amount is not None and spec.has_amount:
            metadata["amount"] = request.amount
            metadata["amount_wei"] = str(amount_units)
        if request.token_symbol:
            metadata["token_symbol"] = request.token_symbol

        return TransactionRecord(
            company_id=request.company_id,
            user_id=request.user_id,
            network=Network(network),
            transaction_type=spec.transaction_type,
            from_address=gas_payer,
            to_address=request.to_address or request.user_address,
            contract_address=contract,
            function_name=spec.function_name,
            function_params=[a.hex() if isinstance(a, bytes) else (str(a) if isinstance(a, int) else a) for a in args],
            metadata=metadata,
            idempotency_key=key,
            attempt=attempt,
        )

    async def _finalize(
        self,
        operation: str,
        request: OperationRequest,
        record: TransactionRecord,
        receipt: Receipt,
        started: float,
    ) -> OperationResult:
        fields = {
            "block_number": receipt.block_number,
            "gas_used": receipt.gas_used,
            "gas_price": receipt.gas_price,
        }
        duration = time.perf_counter() - started
        metrics.operation_duration.observe(duration, operation=operation)

        if receipt.succeeded:
            record = await self._record_status(operation, record, TransactionStatus.CONFIRMED, **fields)
            metrics.operations_total.inc(operation=operation, status="confirmed")
            log_operation(
                operation, request.job_id, str(record.network), "confirmed",
                duration_ms=duration * 1000, tx_hash=receipt.tx_hash, block_number=receipt.block_number,
            )
            await self._notify(record, request)
            return OperationResult.from_record(operation, record)

        record = await self._record_status(
            operation, record, TransactionStatus.FAILED, error="transaction reverted", **fields
        )
        metrics.operations_total.inc(operation=operation, status="failed")
        log_operation(
            operation, request.job_id, str(record.network), "failed",
            duration_ms=duration * 1000, tx_hash=receipt.tx_hash,
        )
        await self._notify(record, request)
        raise TransactionRevertedError(
            f"{record.function_name or operation} reverted in {receipt.tx_hash}",
            details={"tx_hash": receipt.tx_hash, "record_id": record.id},
        )

    async def _record_status(
        self,
        operation: str,
        record: TransactionRecord,
        status: TransactionStatus,
        **fields: Any,
    ) -> TransactionRecord:
        """
        Write a status change to the ledger.

        A failed write is logged and published as a reconciliation event;
        the in-memory record still reflects the chain outcome.
        """
        try:
            return await self.ledger.update_status(record.id, status, **fields)
        except Exception as e:
            metrics.ledger_reconciliation.inc(operation=operation)
            logger.error(
                f"Ledger update to {status} failed for {record.id}: {e}",
                extra={"record_id": record.id, "tx_hash": fields.get("tx_hash", record.tx_hash)}
            )
            event = ReconciliationEvent(
                record_id=record.id,
                idempotency_key=record.idempotency_key,
                operation=operation,
                network=str(record.network),
                tx_hash=fields.get("tx_hash", record.tx_hash),
                intended_status=str(status),
                fields={k: v for k, v in fields.items() if v is not None},
                error=str(e),
            )
            await self._publish_reconciliation(event)

            local = record.model_copy(deep=True)
            local.status = status
            for key, value in fields.items():
                setattr(local, key, value)
            return local

    async def _publish_reconciliation(self, event: ReconciliationEvent) -> None:
        log_business_event("ledger_reconciliation_required", event.record_id or "unknown", tx_hash=event.tx_hash)
        if self.broker is None:
            return
        try:
            await self.broker.publish(
                DEADLETTER_EXCHANGE,
                RECONCILIATION_ROUTING_KEY,
                QueueMessage(type="ledger_reconcile", payload=event.model_dump(mode="json"), priority=10),
            )
        except Exception as e:
            logger.error(f"Reconciliation event for {event.record_id} not published: {e}")

    async def _notify(self, record: TransactionRecord, request: OperationRequest) -> None:
        if self.fanout is None or not (request.webhook_url or request.notify_email):
            return
        try:
            await self.fanout.transaction_completed(
                record,
                webhook_url=request.webhook_url,
                email=request.notify_email,
                correlation_id=request.job_id,
            )
        except Exception as e:
            logger.warning(f"Notification fan-out failed for {record.id}: {e}")
