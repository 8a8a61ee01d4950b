"""
Operations
Contract write execution, fiat flows and the queue dispatcher.
"""
from tokenops.operations.definitions import OPERATION_SPECS, OperationRequest, OperationSpec, custom_write_spec
from tokenops.operations.dispatcher import OperationDispatcher
from tokenops.operations.executor import ContractWriteExecutor, OperationResult, ReconciliationEvent
from tokenops.operations.fiat import DepositProcessor, WithdrawalProcessor
from tokenops.operations.reconciliation import LedgerReconciler

__all__ = [
    "OPERATION_SPECS",
    "OperationRequest",
    "OperationSpec",
    "custom_write_spec",
    "OperationDispatcher",
    "ContractWriteExecutor",
    "OperationResult",
    "ReconciliationEvent",
    "DepositProcessor",
    "WithdrawalProcessor",
    "LedgerReconciler",
]
