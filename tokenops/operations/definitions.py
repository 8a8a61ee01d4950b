"""
Operation Definitions

Every contract write is described declaratively: which contract kind it
targets, the function it calls, the role the signer needs, how arguments
are built and whose token balance must cover the amount.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tokenops.blockchain.abi import STAKE_ABI, TOKEN_ABI
from tokenops.blockchain.roles import BURNER_ROLE, MINTER_ROLE, TRANSFER_ROLE, role_hash
from tokenops.blockchain.signers import checksum
from tokenops.errors import ValidationError
from tokenops.ledger.models import TransactionType


class OperationRequest(BaseModel):
    """
    Parameters of one operation, parsed from a queue message payload.

    Accepts snake_case or camelCase keys (``to_address`` / ``toAddress``).
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        coerce_numbers_to_str=True,
    )

    network: Optional[str] = None
    contract_address: Optional[str] = None
    token_address: Optional[str] = None
    to_address: Optional[str] = None
    from_address: Optional[str] = None
    user_address: Optional[str] = None
    amount: Optional[str] = None
    custom_timestamp: int = 0
    percentage_in_basis_points: Optional[int] = None
    role: Optional[str] = None
    account: Optional[str] = None

    # contract_write
    function_name: Optional[str] = None
    params: List[Any] = Field(default_factory=list)
    abi: Optional[List[Dict[str, Any]]] = None

    # query_transaction
    tx_hash: Optional[str] = None

    # deposit / withdrawal
    payment_id: Optional[str] = None
    withdrawal_id: Optional[str] = None
    pix_key: Optional[str] = None

    gas_payer: Optional[str] = None
    company_id: Optional[str] = None
    user_id: Optional[str] = None
    token_symbol: Optional[str] = None
    idempotency_key: Optional[str] = None
    job_id: Optional[str] = None
    webhook_url: Optional[str] = None
    notify_email: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def require(self, field: str) -> Any:
        value = getattr(self, field)
        if value in (None, ""):
            raise ValidationError(f"Missing required field: {field}")
        return value

    def address(self, field: str) -> str:
        return checksum(self.require(field), field)

    @property
    def target_contract(self) -> str:
        """Contract the write goes to: explicit contract, else the token."""
        return checksum(self.contract_address or self.require("token_address"), "contract_address")


ArgsBuilder = Callable[[OperationRequest, Optional[int]], Sequence[Any]]


@dataclass(frozen=True)
class OperationSpec:
    """
    Declarative description of a contract write.

    Attributes:
        name: Operation name recorded in the ledger metadata
        contract_kind: "token", "stake" or "custom"
        function_name: Contract function to call
        abi: ABI containing the function
        build_args: (request, amount in base units) -> call arguments
        required_role: Role the gas payer must hold, granted on demand
        has_amount: Whether the request carries an amount to convert
        balance_holder: Request field whose token balance must cover the amount
        transaction_type: Ledger transaction type
    """
    name: str
    contract_kind: str
    function_name: str
    abi: Sequence[dict]
    build_args: ArgsBuilder
    required_role: Optional[str] = None
    has_amount: bool = True
    balance_holder: Optional[str] = None
    transaction_type: TransactionType = TransactionType.CONTRACT_CALL


OPERATION_SPECS: Dict[str, OperationSpec] = {
    spec.name: spec for spec in [
        OperationSpec(
            name="mint",
            contract_kind="token",
            function_name="mint",
            abi=TOKEN_ABI,
            build_args=lambda r, amount: [r.address("to_address"), amount],
            required_role=MINTER_ROLE,
        ),
        OperationSpec(
            name="burn",
            contract_kind="token",
            function_name="burnFrom",
            abi=TOKEN_ABI,
            build_args=lambda r, amount: [r.address("from_address"), amount],
            required_role=BURNER_ROLE,
            balance_holder="from_address",
        ),
        OperationSpec(
            name="transfer",
            contract_kind="token",
            function_name="transferFromGasless",
            abi=TOKEN_ABI,
            build_args=lambda r, amount: [r.address("from_address"), r.address("to_address"), amount],
            required_role=TRANSFER_ROLE,
            balance_holder="from_address",
            transaction_type=TransactionType.TRANSFER,
        ),
        OperationSpec(
            name="stake_invest",
            contract_kind="stake",
            function_name="stake",
            abi=STAKE_ABI,
            build_args=lambda r, amount: [r.address("user_address"), amount, r.custom_timestamp],
        ),
        OperationSpec(
            name="stake_withdraw",
            contract_kind="stake",
            function_name="unstake",
            abi=STAKE_ABI,
            build_args=lambda r, amount: [r.address("user_address"), amount],
        ),
        OperationSpec(
            name="stake_claim_rewards",
            contract_kind="stake",
            function_name="claimReward",
            abi=STAKE_ABI,
            build_args=lambda r, _: [r.address("user_address")],
            has_amount=False,
        ),
        OperationSpec(
            name="stake_compound",
            contract_kind="stake",
            function_name="compound",
            abi=STAKE_ABI,
            build_args=lambda r, _: [r.address("user_address")],
            has_amount=False,
        ),
        OperationSpec(
            name="stake_deposit_rewards",
            contract_kind="stake",
            function_name="depositRewards",
            abi=STAKE_ABI,
            build_args=lambda r, amount: [amount],
        ),
        OperationSpec(
            name="stake_distribute_rewards",
            contract_kind="stake",
            function_name="distributeReward",
            abi=STAKE_ABI,
            build_args=lambda r, _: [_basis_points(r)],
            has_amount=False,
        ),
        OperationSpec(
            name="contract_grant_role",
            contract_kind="token",
            function_name="grantRole",
            abi=TOKEN_ABI,
            build_args=lambda r, _: [role_hash(r.require("role")), r.address("account")],
            has_amount=False,
        ),
        OperationSpec(
            name="contract_revoke_role",
            contract_kind="token",
            function_name="revokeRole",
            abi=TOKEN_ABI,
            build_args=lambda r, _: [role_hash(r.require("role")), r.address("account")],
            has_amount=False,
        ),
    ]
}


def _basis_points(request: OperationRequest) -> int:
    value = request.require("percentage_in_basis_points")
    if not 0 < int(value) <= 10_000:
        raise ValidationError("percentage_in_basis_points must be between 1 and 10000")
    return int(value)


def custom_write_spec(request: OperationRequest) -> OperationSpec:
    """
    Spec for an arbitrary contract write described by the request itself.

    Raises:
        ValidationError: If the function is not a state-changing entry of the ABI
    """
    function_name = request.require("function_name")
    abi = request.abi or TOKEN_ABI
    entry = next(
        (item for item in abi if item.get("type", "function") == "function" and item.get("name") == function_name),
        None,
    )
    if entry is None:
        raise ValidationError(f"Function '{function_name}' not found in ABI")
    if entry.get("stateMutability") in ("view", "pure"):
        raise ValidationError(f"Function '{function_name}' is read-only")

    expected = len(entry.get("inputs", []))
    if len(request.params) != expected:
        raise ValidationError(f"Function '{function_name}' expects {expected} params, got {len(request.params)}")

    return OperationSpec(
        name="contract_write",
        contract_kind="custom",
        function_name=function_name,
        abi=abi,
        build_args=lambda r, _: list(r.params),
        has_amount=False,
    )
