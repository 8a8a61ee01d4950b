"""
FastAPI Application

Main entry point for the tokenops API.
Handles application lifecycle, error mapping and router mounting.
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from tokenops import __version__
from tokenops.api.container import Container, build_container
from tokenops.api.responses import fail, from_error
from tokenops.api.routes import (
    balances_router,
    health_router,
    metrics_router,
    pix_router,
    queue_router,
    transactions_router,
)
from tokenops.errors import TokenOpsError
from tokenops.utils.observability import configure_logging


def create_app(container: Optional[Container] = None) -> FastAPI:
    """
    Build the application.

    Args:
        container: Pre-built container (tests); built from settings when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup:
        - Build the container (broker, ledger, blockchain client, workers)
        - Connect broker, ledger and RPC; declare topology; start workers

        Shutdown:
        - Stop workers, waiting for in-flight handlers
        - Close broker, RPC providers and MongoDB
        """
        configure_logging()
        logger.info("Starting tokenops API server...")

        app.state.container = container or await build_container()
        await app.state.container.start()

        logger.info("API server ready to accept operations")

        yield

        logger.info("Shutting down API server...")
        await app.state.container.stop()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="tokenops API",
        description="Queued blockchain token operations with a transaction ledger",
        version=__version__,
        lifespan=lifespan,
    )

    @app.exception_handler(TokenOpsError)
    async def tokenops_error_handler(request: Request, exc: TokenOpsError):
        if exc.status_code >= 500:
            logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
        return from_error(exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return fail(
            "Invalid request",
            400,
            {"type": "ValidationError", "details": {"errors": jsonable_encoder(exc.errors())}},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return fail(str(exc.detail), exc.status_code)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True)
        return fail("Internal server error", 500, {"type": "InternalError"})

    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(queue_router)
    app.include_router(transactions_router)
    app.include_router(balances_router)
    app.include_router(pix_router)

    return app


app = create_app()
