"""
Tests for OperationDispatcher.
"""
import pytest

from tokenops.blockchain import checksum
from tokenops.errors import NotFoundError, UnsupportedOperationError, ValidationError
from tokenops.message_queue import QueueMessage
from tokenops.operations import OperationDispatcher
from tokenops.operations.dispatcher import family_of
from tokenops.message_queue import OperationType


@pytest.fixture
def dispatcher(chain, executor):
    return OperationDispatcher(chain, executor)


class TestFamilies:

    @pytest.mark.parametrize("operation,family", [
        (OperationType.MINT, "token"),
        (OperationType.CONTRACT_WRITE, "contract"),
        (OperationType.STAKE_COMPOUND, "stake"),
        (OperationType.QUERY_NETWORK, "query"),
        (OperationType.SEND_TRANSACTION, "wallet"),
        (OperationType.WITHDRAWAL, "fiat"),
        (OperationType.EMAIL, None),
    ])
    def test_family_of(self, operation, family):
        assert family_of(operation) == family


class TestOperationDispatcher:

    @pytest.mark.parametrize("message_type", ["teleport", "email", "webhook"])
    async def test_unsupported_types(self, dispatcher, message_type):
        with pytest.raises(UnsupportedOperationError):
            await dispatcher.handle(QueueMessage(type=message_type))

    async def test_invalid_payload(self, dispatcher):
        message = QueueMessage(type="contract_write", payload={"params": "not-a-list"})

        with pytest.raises(ValidationError) as exc_info:
            await dispatcher.handle(message)

        assert exc_info.value.details["errors"]

    async def test_mint_with_camel_case_payload(self, dispatcher, ledger, addr):
        message = QueueMessage(
            id="job-42",
            type="token_mint",
            payload={"tokenAddress": addr.token, "toAddress": addr.user, "amount": 100},
        )

        result = await dispatcher.handle(message)

        assert result["operation"] == "mint"
        assert result["status"] == "confirmed"
        record = await ledger.get(result["record_id"])
        assert record.idempotency_key == "job-42"
        assert record.metadata["job_id"] == "job-42"
        assert record.metadata["amount"] == "100"

    async def test_payload_idempotency_key_wins(self, dispatcher, ledger, addr):
        message = QueueMessage(
            type="mint",
            idempotency_key="from-message",
            payload={"token_address": addr.token, "to_address": addr.user, "amount": "1", "idempotency_key": "from-payload"},
        )

        await dispatcher.handle(message)

        assert await ledger.get_by_idempotency_key("from-payload") is not None
        assert await ledger.get_by_idempotency_key("from-message") is None

    async def test_custom_contract_write(self, dispatcher, chain, addr):
        message = QueueMessage(
            type="contract_write",
            payload={"contract_address": addr.token, "function_name": "mint", "params": [addr.user, "1000"]},
        )

        result = await dispatcher.handle(message)

        assert result["operation"] == "contract_write"
        assert chain.submit_contract_transaction.await_args.args[3] == "mint"
        assert chain.submit_contract_transaction.await_args.args[4] == [addr.user, "1000"]

    @pytest.mark.parametrize("payload", [
        {"function_name": "balanceOf", "params": ["0x70997970c51812dc3a010c7d01b50e0d17dc79c8"]},
        {"function_name": "doesNotExist", "params": []},
        {"function_name": "mint", "params": ["0x70997970c51812dc3a010c7d01b50e0d17dc79c8"]},
    ])
    async def test_custom_write_rejected(self, dispatcher, chain, addr, payload):
        message = QueueMessage(type="contract_write", payload={"contract_address": addr.token, **payload})

        with pytest.raises(ValidationError):
            await dispatcher.handle(message)

        chain.submit_contract_transaction.assert_not_awaited()

    async def test_grant_role_operation(self, dispatcher, chain, addr):
        message = QueueMessage(
            type="grant_role",
            payload={"contract_address": addr.token, "role": "MINTER_ROLE", "account": addr.user},
        )

        result = await dispatcher.handle(message)

        assert result["status"] == "confirmed"
        args = chain.submit_contract_transaction.await_args.args
        assert args[3] == "grantRole"
        assert args[4][1] == checksum(addr.user)

    async def test_send_transaction(self, dispatcher, chain, addr):
        message = QueueMessage(
            type="blockchain_send",
            payload={"from_address": addr.admin, "to_address": addr.user, "amount": "0.1"},
        )

        result = await dispatcher.handle(message)

        assert result["operation"] == "send_transaction"
        chain.send_native.assert_awaited_once()

    async def test_query_balance(self, dispatcher, chain, addr):
        message = QueueMessage(type="query_balance", payload={"user_address": addr.user, "network": "mainnet"})

        result = await dispatcher.handle(message)

        assert result["balance"] == "1"
        chain.get_balance.assert_awaited_once_with(addr.user, "mainnet")

    async def test_query_balance_requires_address(self, dispatcher):
        with pytest.raises(ValidationError):
            await dispatcher.handle(QueueMessage(type="query_balance", payload={}))

    async def test_query_transaction(self, dispatcher, chain, addr):
        chain.get_transaction.return_value = {"hash": addr.tx_hash, "status": "confirmed"}

        result = await dispatcher.handle(QueueMessage(type="query_transaction", payload={"tx_hash": addr.tx_hash}))

        assert result["status"] == "confirmed"
        chain.get_transaction.assert_awaited_once_with(addr.tx_hash, "testnet")

    async def test_query_transaction_not_found(self, dispatcher, chain, addr):
        chain.get_transaction.side_effect = NotFoundError("Transaction not found")

        with pytest.raises(NotFoundError):
            await dispatcher.handle(QueueMessage(type="query_transaction", payload={"txHash": addr.tx_hash}))

    async def test_query_network(self, dispatcher, chain):
        chain.get_network_info.return_value = {"network": "testnet", "chain_id": 88001}

        result = await dispatcher.handle(QueueMessage(type="query_network", payload={}))

        assert result["chain_id"] == 88001

    async def test_query_unknown_network(self, dispatcher):
        with pytest.raises(ValidationError):
            await dispatcher.handle(QueueMessage(type="query_network", payload={"network": "devnet"}))

    @pytest.mark.parametrize("message_type", ["deposit", "withdrawal"])
    async def test_fiat_disabled(self, dispatcher, message_type):
        with pytest.raises(UnsupportedOperationError):
            await dispatcher.handle(QueueMessage(type=message_type, payload={}))
