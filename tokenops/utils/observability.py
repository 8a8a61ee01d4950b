"""
Structured Logging & Observability
Human-readable in development, machine-parseable in production.
"""
import sys
from loguru import logger
from typing import Any, Dict
from tokenops.config import get_settings


def configure_logging():
    """
    Configure loguru for production observability.

    In development: Human-readable colorized output
    In production: Structured JSON logs for ingestion (ELK, Datadog, etc.)
    """
    settings = get_settings()

    # Remove default handler
    logger.remove()

    if not settings.enable_structured_logging:
        logger.add(
            sys.stderr,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "{message}"
            ),
            level=settings.log_level,
            colorize=True,
        )
    else:
        logger.add(
            sys.stderr,
            format="{message}",
            level=settings.log_level,
            serialize=True,  # Output as JSON
        )

    logger.info(f"Logging configured: level={settings.log_level}, structured={settings.enable_structured_logging}")


def log_operation(
    operation: str,
    job_id: str | None,
    network: str,
    status: str,
    duration_ms: float | None = None,
    **context
):
    """
    Structured logging for blockchain operation executions.

    Args:
        operation: Operation name (e.g., "mint", "stake_invest")
        job_id: Queue job that triggered the operation
        network: mainnet or testnet
        status: Outcome (confirmed, failed, skipped)
        duration_ms: Execution time in milliseconds
        **context: Additional context (tx_hash, gas_payer, amount, ...)

    Example:
        >>> log_operation(
        ...     operation="mint",
        ...     job_id="3f2a...",
        ...     network="testnet",
        ...     status="confirmed",
        ...     duration_ms=2345.1,
        ...     tx_hash="0xabc..."
        ... )
    """
    log_data = {
        "event_type": "operation",
        "operation": operation,
        "job_id": job_id,
        "network": network,
        "status": status,
    }

    if duration_ms is not None:
        log_data["duration_ms"] = round(duration_ms, 2)

    log_data.update(context)

    level = "ERROR" if status == "failed" else "INFO"
    logger.bind(**log_data).log(level, f"{operation} | {network} | {status}")


def log_chain_call(
    network: str,
    method: str,
    duration_ms: float,
    success: bool = True,
    error: str | None = None,
    **context
):
    """
    Structured logging for JSON-RPC calls that submit or wait on transactions.

    Args:
        network: Network profile name
        method: Contract function or RPC method
        duration_ms: Call latency in milliseconds
        success: Whether the call succeeded
        error: Error message if failed
    """
    log_data = {
        "event_type": "chain_call",
        "network": network,
        "method": method,
        "duration_ms": round(duration_ms, 2),
        "success": success,
        **context,
    }

    if error:
        log_data["error"] = error

    level = "info" if success else "error"
    logger.bind(**log_data).log(level.upper(), f"RPC: {method} on {network} | {duration_ms:.0f}ms")


def log_business_event(
    event_type: str,
    reference_id: str,
    **details: Dict[str, Any]
):
    """
    Log business-critical events for analytics and audit.

    Examples:
        - Deposit credited
        - Withdrawal reverted after payout failure
        - Ledger reconciliation required

    Args:
        event_type: Type of event (e.g., "deposit_credited")
        reference_id: Deposit id, withdrawal id or transaction record id
        **details: Event-specific data
    """
    log_data = {
        "event_type": event_type,
        "reference_id": reference_id,
        **details
    }

    logger.bind(**log_data).success(f"Business Event: {event_type}")
