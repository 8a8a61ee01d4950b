"""
Error Taxonomy

Typed exceptions shared by the queue, blockchain, ledger and API layers.

Every error carries:
- ``retryable``: whether the queue worker should schedule another attempt
- ``status_code``: HTTP status used by the API exception handler
- ``hint``: optional operator-facing remediation text
"""
from typing import Any, Dict, Optional


class TokenOpsError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    retryable: bool = True
    default_hint: Optional[str] = None

    def __init__(
        self,
        message: str,
        hint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.hint = hint or self.default_hint
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the API error envelope."""
        data: Dict[str, Any] = {"type": type(self).__name__, "message": self.message}
        if self.hint:
            data["hint"] = self.hint
        if self.details:
            data["details"] = self.details
        return data


# ============================================
# REQUEST ERRORS (never retried)
# ============================================

class ValidationError(TokenOpsError):
    """Malformed input: bad address, non-positive amount, missing field."""
    status_code = 400
    retryable = False


class UnsupportedOperationError(TokenOpsError):
    """Message type has no registered handler."""
    status_code = 400
    retryable = False


class AuthenticationError(TokenOpsError):
    status_code = 401
    retryable = False


class AuthorizationError(TokenOpsError):
    status_code = 403
    retryable = False


class NotFoundError(TokenOpsError):
    status_code = 404
    retryable = False


class ConflictError(TokenOpsError):
    status_code = 409
    retryable = False


class InvalidStatusTransitionError(ConflictError):
    """Ledger record asked to move backwards or out of a terminal state."""


# ============================================
# INFRASTRUCTURE ERRORS
# ============================================

class BrokerUnavailableError(TokenOpsError):
    """Broker is not connected; the operation was not scheduled."""
    status_code = 503
    default_hint = "Operation not scheduled. Retry once the message broker is reachable."


class LedgerError(TokenOpsError):
    """Persistence failure in the transaction ledger."""
    status_code = 500


class UpstreamError(TokenOpsError):
    """A remote dependency (RPC node, explorer, PIX provider) failed."""
    status_code = 502


class ChainError(UpstreamError):
    """JSON-RPC call or transaction submission failed."""


class TransactionRevertedError(ChainError):
    """Transaction was mined with status 0."""
    retryable = False


# ============================================
# OPERATION PRE-CHECK ERRORS
# ============================================

class SignerKeyMissingError(TokenOpsError):
    """No private key is configured for the resolved gas payer."""
    status_code = 500
    retryable = False
    default_hint = "Configure SIGNER_PRIVATE_KEYS (or ADMIN_PRIVATE_KEY) for the gas payer address."


class InsufficientBalanceError(TokenOpsError):
    """Token balance is lower than the requested amount."""
    status_code = 400
    retryable = False


class InsufficientGasError(TokenOpsError):
    """Gas payer cannot cover the estimated transaction cost."""
    status_code = 400
    default_hint = "Fund the gas payer wallet with native coin."


class RoleGrantError(TokenOpsError):
    """Required role is missing and granting it did not succeed."""
    status_code = 500
    default_hint = "The admin wallet must hold DEFAULT_ADMIN_ROLE on the contract to grant roles."


# ============================================
# FIAT (PIX) ERRORS
# ============================================

class PaymentNotConfirmedError(UpstreamError):
    """PIX charge is not approved yet."""
    status_code = 409


class PayoutFailedError(TokenOpsError):
    """PIX payout failed after the burn; tokens were minted back."""
    status_code = 502
    retryable = False


def is_retryable(error: BaseException) -> bool:
    """Errors outside the taxonomy are treated as transient."""
    if isinstance(error, TokenOpsError):
        return error.retryable
    return True
