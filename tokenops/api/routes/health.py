"""
Health and Readiness Endpoints

Kubernetes-compatible health probes for load balancers and orchestration.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from loguru import logger

from tokenops import __version__
from tokenops.api.container import Container
from tokenops.api.dependencies import get_container

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint.

    Returns 200 if service is running.
    """
    return {
        "status": "healthy",
        "service": "tokenops",
        "version": __version__
    }


@router.get("/ready")
async def readiness_check(container: Container = Depends(get_container)):
    """
    Readiness probe - checks if service can handle requests.

    Verifies:
    - Message broker is connected
    - Transaction ledger answers a ping
    - RPC node of the default network answers

    Returns 200 if ready, 503 if not ready.
    """
    checks = {"broker": container.broker.is_connected}

    try:
        checks["ledger"] = await container.ledger.ping()
    except Exception as e:
        logger.error(f"Readiness check failed for ledger: {e}")
        checks["ledger"] = False

    try:
        checks["rpc"] = await container.client.ping(container.settings.default_network)
    except Exception as e:
        logger.error(f"Readiness check failed for RPC: {e}")
        checks["rpc"] = False

    if not all(checks.values()):
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "checks": checks}
        )

    return {"status": "ready", "checks": checks}


@router.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "service": "tokenops",
        "version": __version__,
        "endpoints": {
            "health": "/health",
            "ready": "/ready",
            "metrics": "/metrics",
            "queue_metrics": "/metrics/queue",
            "operations": "/api/queue/operations (POST)",
            "transactions": "/api/transactions",
        }
    }
