"""
API Routes

Modular route definitions for the tokenops API.
"""
from tokenops.api.routes.balances import router as balances_router
from tokenops.api.routes.health import router as health_router
from tokenops.api.routes.metrics import router as metrics_router
from tokenops.api.routes.pix import router as pix_router
from tokenops.api.routes.queue import router as queue_router
from tokenops.api.routes.transactions import router as transactions_router

__all__ = [
    "balances_router",
    "health_router",
    "metrics_router",
    "pix_router",
    "queue_router",
    "transactions_router",
]
