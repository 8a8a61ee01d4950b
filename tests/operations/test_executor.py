"""
Tests for ContractWriteExecutor.
"""
import pytest

from tokenops.blockchain import Receipt, checksum
from tokenops.errors import (
    ChainError,
    ConflictError,
    InsufficientBalanceError,
    InsufficientGasError,
    LedgerError,
    SignerKeyMissingError,
    TransactionRevertedError,
    ValidationError,
)
from tokenops.ledger import TransactionRecord, TransactionStatus, TransactionType
from tokenops.message_queue.topology import LEDGER_RECONCILIATION, NOTIFICATIONS_WEBHOOK
from tokenops.operations import OPERATION_SPECS, OperationRequest
from tokenops.utils.metrics import metrics


MINT = OPERATION_SPECS["mint"]
BURN = OPERATION_SPECS["burn"]


@pytest.fixture
def mint_request(addr):
    return OperationRequest(
        network="testnet",
        token_address=addr.token,
        to_address=addr.user,
        amount="100",
        job_id="job-1",
        idempotency_key="job-1",
        company_id="acme",
        user_id="user-1",
    )


def mint_record(**overrides):
    """A ledger row as the executor writes it for ``mint_request``."""
    fields = {
        "idempotency_key": "job-1",
        "function_name": "mint",
        "company_id": "acme",
        "metadata": {"operation": "mint"},
    }
    fields.update(overrides)
    return TransactionRecord(**fields)


class TestExecute:
    """Happy path and ledger bookkeeping."""

    async def test_mint_confirms_record(self, executor, chain, ledger, mint_request, addr):
        result = await executor.execute(MINT, mint_request)

        assert result.status == "confirmed"
        assert result.tx_hash == addr.tx_hash
        assert result.block_number == 1234
        assert result.skipped is False

        record = await ledger.get(result.record_id)
        assert record.status == TransactionStatus.CONFIRMED
        assert record.tx_hash == addr.tx_hash
        assert record.block_number == 1234
        assert record.gas_used == 51000
        assert record.function_name == "mint"
        assert record.contract_address == checksum(addr.token)
        assert record.from_address == checksum(addr.admin)
        assert record.company_id == "acme"
        assert record.metadata["amount"] == "100"
        assert record.metadata["amount_wei"] == str(100 * 10**18)
        assert record.metadata["operation"] == "mint"
        assert record.function_params == [checksum(addr.user), str(100 * 10**18)]

        args = chain.submit_contract_transaction.await_args.args
        assert args[0] == "testnet"
        assert args[3] == "mint"
        assert args[4] == [checksum(addr.user), 100 * 10**18]
        assert args[5] == checksum(addr.admin)
        assert metrics.operations_total.value(operation="mint", status="confirmed") == 1

    async def test_uses_token_decimals(self, executor, chain, ledger, mint_request):
        chain.token_decimals.return_value = 6
        mint_request.amount = "1.5"

        result = await executor.execute(MINT, mint_request)

        record = await ledger.get(result.record_id)
        assert record.metadata["amount_wei"] == "1500000"

    async def test_notifies_on_confirmation(self, executor, broker, mint_request):
        mint_request.webhook_url = "https://hooks.example.com/tx"

        await executor.execute(MINT, mint_request)

        webhooks = await broker.peek(NOTIFICATIONS_WEBHOOK)
        assert len(webhooks) == 1
        assert webhooks[0].payload["event"] == "transaction_confirmed"
        assert webhooks[0].payload["data"]["amount"] == "100"
        assert webhooks[0].correlation_id == "job-1"

    async def test_notification_failure_does_not_fail_operation(self, executor, broker, ledger, mint_request):
        mint_request.webhook_url = "https://hooks.example.com/tx"
        mint_request.notify_email = "ana@example.com"
        await broker.close()

        result = await executor.execute(MINT, mint_request)

        assert result.status == "confirmed"
        assert (await ledger.get(result.record_id)).status == TransactionStatus.CONFIRMED

    async def test_stake_without_token_uses_18_decimals(self, executor, chain, ledger, addr):
        request = OperationRequest(contract_address=addr.stake, user_address=addr.user, amount="2", job_id="s-1")

        result = await executor.execute(OPERATION_SPECS["stake_invest"], request)

        chain.token_decimals.assert_not_awaited()
        assert chain.submit_contract_transaction.await_args.args[4] == [checksum(addr.user), 2 * 10**18, 0]
        record = await ledger.get(result.record_id)
        assert record.network == "testnet"
        assert record.to_address == addr.user

    async def test_grants_missing_role_before_write(self, executor, chain, mint_request):
        chain.has_role.side_effect = [False, True]

        await executor.execute(MINT, mint_request)

        functions = [call.args[3] for call in chain.submit_contract_transaction.await_args_list]
        assert functions == ["grantRole", "mint"]


class TestPreChecks:
    """Rejected operations leave no ledger record and submit nothing."""

    async def test_insufficient_gas(self, executor, chain, ledger, mint_request):
        chain.get_balance.return_value = {"balance_wei": "10", "balance": "0.00000000000000001"}

        with pytest.raises(InsufficientGasError) as exc_info:
            await executor.execute(MINT, mint_request)

        assert exc_info.value.details["estimated_cost_wei"] == str(10**15)
        assert (await ledger.list()).total == 0
        chain.submit_contract_transaction.assert_not_awaited()
        assert metrics.operations_total.value(operation="mint", status="rejected") == 1

    async def test_insufficient_token_balance(self, executor, chain, ledger, addr):
        chain.token_balance.return_value = 5
        request = OperationRequest(token_address=addr.token, from_address=addr.user, amount="1", job_id="b-1")

        with pytest.raises(InsufficientBalanceError):
            await executor.execute(BURN, request)

        assert (await ledger.list()).total == 0
        chain.submit_contract_transaction.assert_not_awaited()

    @pytest.mark.parametrize("amount", ["0", "-1", "ten"])
    async def test_invalid_amount(self, executor, ledger, mint_request, amount):
        mint_request.amount = amount
        with pytest.raises(ValidationError):
            await executor.execute(MINT, mint_request)
        assert (await ledger.list()).total == 0

    async def test_invalid_address(self, executor, mint_request):
        mint_request.to_address = "0x1234"
        with pytest.raises(ValidationError):
            await executor.execute(MINT, mint_request)

    async def test_unknown_network(self, executor, mint_request):
        mint_request.network = "devnet"
        with pytest.raises(ValidationError):
            await executor.execute(MINT, mint_request)

    async def test_gas_payer_without_key(self, executor, ledger, mint_request, addr):
        mint_request.gas_payer = addr.other
        with pytest.raises(SignerKeyMissingError):
            await executor.execute(MINT, mint_request)
        assert (await ledger.list()).total == 0


class TestIdempotency:

    async def test_confirmed_key_is_skipped(self, executor, chain, mint_request):
        first = await executor.execute(MINT, mint_request)
        second = await executor.execute(MINT, mint_request)

        assert second.skipped is True
        assert second.record_id == first.record_id
        assert chain.submit_contract_transaction.await_count == 1

    async def test_processing_record_waits_on_existing_hash(self, executor, chain, ledger, mint_request, addr):
        record = await ledger.create(mint_record())
        await ledger.update_status(record.id, TransactionStatus.PROCESSING, tx_hash=addr.tx_hash)

        result = await executor.execute(MINT, mint_request)

        chain.submit_contract_transaction.assert_not_awaited()
        chain.wait_for_receipt.assert_awaited_once_with("testnet", addr.tx_hash)
        assert result.record_id == record.id
        assert result.status == "confirmed"

    async def test_pending_record_is_resubmitted(self, executor, chain, ledger, mint_request):
        record = await ledger.create(mint_record())

        result = await executor.execute(MINT, mint_request)

        assert result.record_id == record.id
        chain.submit_contract_transaction.assert_awaited_once()
        assert (await ledger.list()).total == 1

    async def test_failed_attempt_creates_next_attempt(self, executor, ledger, mint_request):
        record = await ledger.create(mint_record())
        await ledger.update_status(record.id, TransactionStatus.FAILED, error="rpc timeout")

        result = await executor.execute(MINT, mint_request)

        latest = await ledger.get_by_idempotency_key("job-1")
        assert latest.id == result.record_id
        assert latest.attempt == 2
        assert latest.status == TransactionStatus.CONFIRMED

    async def test_key_of_another_operation_conflicts(self, executor, chain, ledger, mint_request, addr):
        """A confirmed mint never answers for a burn that reuses its key."""
        await executor.execute(MINT, mint_request)
        burn = OperationRequest(
            network="testnet",
            token_address=addr.token,
            from_address=addr.user,
            amount="1",
            job_id="job-2",
            idempotency_key="job-1",
            company_id="acme",
        )

        with pytest.raises(ConflictError) as exc_info:
            await executor.execute(BURN, burn)

        assert exc_info.value.retryable is False
        assert chain.submit_contract_transaction.await_count == 1
        assert (await ledger.list()).total == 1

    async def test_key_of_another_company_conflicts(self, executor, chain, mint_request):
        await executor.execute(MINT, mint_request)
        other = mint_request.model_copy(update={"company_id": "globex", "job_id": "job-9"})

        with pytest.raises(ConflictError):
            await executor.execute(MINT, other)

        assert chain.submit_contract_transaction.await_count == 1


class TestFailures:

    async def test_submit_failure_marks_record_failed(self, executor, chain, ledger, mint_request):
        chain.submit_contract_transaction.side_effect = ChainError("nonce too low")

        with pytest.raises(ChainError):
            await executor.execute(MINT, mint_request)

        record = await ledger.get_by_idempotency_key("job-1")
        assert record.status == TransactionStatus.FAILED
        assert "nonce too low" in record.error

    async def test_reverted_receipt(self, executor, chain, ledger, mint_request, addr):
        chain.wait_for_receipt.return_value = Receipt(addr.tx_hash, 0, 1234, 40000, 1)

        with pytest.raises(TransactionRevertedError) as exc_info:
            await executor.execute(MINT, mint_request)

        assert exc_info.value.retryable is False
        record = await ledger.get_by_idempotency_key("job-1")
        assert record.status == TransactionStatus.FAILED
        assert record.tx_hash == addr.tx_hash
        assert record.error == "transaction reverted"

    async def test_lost_ledger_write_publishes_reconciliation(self, executor, broker, ledger, mint_request, addr):
        original = ledger.update_status

        async def confirm_fails(record_id, status, **fields):
            if status == TransactionStatus.CONFIRMED:
                raise LedgerError("mongo unavailable")
            return await original(record_id, status, **fields)

        ledger.update_status = confirm_fails

        result = await executor.execute(MINT, mint_request)

        # The caller still sees the chain outcome
        assert result.status == "confirmed"
        assert (await ledger.get(result.record_id)).status == TransactionStatus.PROCESSING

        events = await broker.peek(LEDGER_RECONCILIATION)
        assert len(events) == 1
        payload = events[0].payload
        assert payload["record_id"] == result.record_id
        assert payload["intended_status"] == "confirmed"
        assert payload["tx_hash"] == addr.tx_hash
        assert payload["fields"]["block_number"] == 1234
        assert metrics.ledger_reconciliation.value(operation="mint") == 1


class TestSendNative:

    async def test_native_transfer(self, executor, chain, ledger, addr):
        request = OperationRequest(from_address=addr.admin, to_address=addr.user, amount="0.5", job_id="n-1")

        result = await executor.send_native(request)

        assert result.status == "confirmed"
        chain.send_native.assert_awaited_once_with("testnet", checksum(addr.admin), checksum(addr.user), 5 * 10**17)
        record = await ledger.get(result.record_id)
        assert record.transaction_type == TransactionType.TRANSFER
        assert record.metadata["amount_wei"] == str(5 * 10**17)

    async def test_native_insufficient_balance(self, executor, ledger, addr):
        request = OperationRequest(from_address=addr.admin, to_address=addr.user, amount="5", job_id="n-2")

        with pytest.raises(InsufficientBalanceError):
            await executor.send_native(request)

        assert (await ledger.list()).total == 0

    async def test_redelivery_waits_on_sent_transfer(self, executor, chain, ledger, addr, receipt):
        """A receipt timeout must not lead to a second payment on redelivery."""
        request = OperationRequest(from_address=addr.admin, to_address=addr.user, amount="0.5", job_id="n-3")
        chain.wait_for_receipt.side_effect = [ChainError("receipt timeout"), receipt]

        with pytest.raises(ChainError):
            await executor.send_native(request)
        result = await executor.send_native(request)

        chain.send_native.assert_awaited_once()
        assert result.status == "confirmed"
        page = await ledger.list()
        assert page.total == 1
        assert page.items[0].attempt == 1
        assert page.items[0].tx_hash == addr.tx_hash

    async def test_pending_transfer_is_reused(self, executor, chain, ledger, addr):
        record = await ledger.create(TransactionRecord(
            idempotency_key="n-4", metadata={"operation": "send_transaction"}
        ))
        request = OperationRequest(from_address=addr.admin, to_address=addr.user, amount="0.5", job_id="n-4")

        result = await executor.send_native(request)

        assert result.record_id == record.id
        assert (await ledger.list()).total == 1

    async def test_lost_ledger_write_does_not_resend(self, executor, chain, broker, ledger, addr):
        original = ledger.update_status

        async def processing_fails(record_id, status, **fields):
            if status == TransactionStatus.PROCESSING:
                raise LedgerError("mongo unavailable")
            return await original(record_id, status, **fields)

        ledger.update_status = processing_fails
        request = OperationRequest(from_address=addr.admin, to_address=addr.user, amount="0.5", job_id="n-5")

        result = await executor.send_native(request)

        assert result.status == "confirmed"
        chain.send_native.assert_awaited_once()
        events = await broker.peek(LEDGER_RECONCILIATION)
        # Confirmation cannot apply on top of the lost write, so both are queued
        assert [e.payload["intended_status"] for e in events] == ["processing", "confirmed"]
        assert events[0].payload["tx_hash"] == addr.tx_hash
