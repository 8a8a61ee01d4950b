"""
Operation Dispatcher

Routes queue messages to the handler for their operation family:

- token: mint, burn, transfer
- contract: contract_write, contract_grant_role, contract_revoke_role
- stake: stake_* operations
- query: query_balance, query_transaction, query_network
- wallet: send_transaction
- fiat: deposit, withdrawal

Handlers return plain dicts, stored as the job result.
"""

from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from tokenops.blockchain.client import BlockchainClient
from tokenops.errors import UnsupportedOperationError, ValidationError
from tokenops.message_queue.base import OperationType, QueueMessage, resolve_operation
from tokenops.operations.definitions import OPERATION_SPECS, OperationRequest, custom_write_spec
from tokenops.operations.executor import ContractWriteExecutor
from tokenops.operations.fiat import DepositProcessor, WithdrawalProcessor
from tokenops.utils.observability import logger


Handler = Callable[[OperationRequest], Awaitable[Dict[str, Any]]]

FAMILIES: Dict[str, tuple[OperationType, ...]] = {
    "token": (OperationType.MINT, OperationType.BURN, OperationType.TRANSFER),
    "contract": (
        OperationType.CONTRACT_WRITE,
        OperationType.CONTRACT_GRANT_ROLE,
        OperationType.CONTRACT_REVOKE_ROLE,
    ),
    "stake": (
        OperationType.STAKE_INVEST,
        OperationType.STAKE_WITHDRAW,
        OperationType.STAKE_CLAIM_REWARDS,
        OperationType.STAKE_COMPOUND,
        OperationType.STAKE_DEPOSIT_REWARDS,
        OperationType.STAKE_DISTRIBUTE_REWARDS,
    ),
    "query": (OperationType.QUERY_BALANCE, OperationType.QUERY_TRANSACTION, OperationType.QUERY_NETWORK),
    "wallet": (OperationType.SEND_TRANSACTION,),
    "fiat": (OperationType.DEPOSIT, OperationType.WITHDRAWAL),
}


def family_of(operation: OperationType) -> Optional[str]:
    for family, members in FAMILIES.items():
        if operation in members:
            return family
    return None


class OperationDispatcher:
    """
    Queue message handler for every blockchain-side operation.

    Usage:
        dispatcher = OperationDispatcher(client, executor, deposits, withdrawals)
        worker = QueueWorker(broker, BLOCKCHAIN_TRANSACTIONS, dispatcher.handle)
    """

    def __init__(
        self,
        client: BlockchainClient,
        executor: ContractWriteExecutor,
        deposits: Optional[DepositProcessor] = None,
        withdrawals: Optional[WithdrawalProcessor] = None,
    ):
        self.client = client
        self.executor = executor
        self.deposits = deposits
        self.withdrawals = withdrawals
        self._handlers: Dict[OperationType, Handler] = {
            OperationType.CONTRACT_WRITE: self._contract_write,
            OperationType.SEND_TRANSACTION: self._send_transaction,
            OperationType.QUERY_BALANCE: self._query_balance,
            OperationType.QUERY_TRANSACTION: self._query_transaction,
            OperationType.QUERY_NETWORK: self._query_network,
            OperationType.DEPOSIT: self._deposit,
            OperationType.WITHDRAWAL: self._withdrawal,
        }

    async def handle(self, message: QueueMessage) -> Dict[str, Any]:
        """
        Process one message.

        Raises:
            UnsupportedOperationError: Unknown type (dead-lettered without retry)
            ValidationError: Payload does not parse
        """
        operation = resolve_operation(message.type)
        if operation is None or family_of(operation) is None:
            raise UnsupportedOperationError(f"Unsupported operation type: {message.type}")

        request = self._request(message)
        logger.bind(job_id=message.id, operation=operation.value).debug(
            f"Dispatching {operation.value} to {family_of(operation)} handler"
        )

        handler = self._handlers.get(operation)
        if handler is not None:
            return await handler(request)

        result = await self.executor.execute(OPERATION_SPECS[operation.value], request)
        return result.model_dump()

    def _request(self, message: QueueMessage) -> OperationRequest:
        try:
            request = OperationRequest.model_validate(message.payload)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid payload for {message.type}: {e.error_count()} errors",
                                  details={"errors": e.errors(include_url=False, include_context=False)}) from e
        return request.model_copy(update={
            "job_id": message.id,
            "idempotency_key": request.idempotency_key or message.idempotency_key,
        })

    def _network(self, request: OperationRequest) -> str:
        return self.executor.resolve_network(request)

    # ============================================
    # HANDLERS
    # ============================================

    async def _contract_write(self, request: OperationRequest) -> Dict[str, Any]:
        result = await self.executor.execute(custom_write_spec(request), request)
        return result.model_dump()

    async def _send_transaction(self, request: OperationRequest) -> Dict[str, Any]:
        result = await self.executor.send_native(request)
        return result.model_dump()

    async def _query_balance(self, request: OperationRequest) -> Dict[str, Any]:
        address = request.user_address or request.to_address or request.require("from_address")
        return await self.client.get_balance(address, self._network(request))

    async def _query_transaction(self, request: OperationRequest) -> Dict[str, Any]:
        return await self.client.get_transaction(request.require("tx_hash"), self._network(request))

    async def _query_network(self, request: OperationRequest) -> Dict[str, Any]:
        return await self.client.get_network_info(self._network(request))

    async def _deposit(self, request: OperationRequest) -> Dict[str, Any]:
        if self.deposits is None:
            raise UnsupportedOperationError("Deposits are not enabled")
        result = await self.deposits.process(request)
        return result.model_dump()

    async def _withdrawal(self, request: OperationRequest) -> Dict[str, Any]:
        if self.withdrawals is None:
            raise UnsupportedOperationError("Withdrawals are not enabled")
        result = await self.withdrawals.process(request)
        return result.model_dump()
