"""
Metrics Endpoints

Prometheus-compatible metrics and queue statistics for observability.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response
from loguru import logger

from tokenops.api.container import Container
from tokenops.api.dependencies import get_container
from tokenops.utils.metrics import metrics

router = APIRouter(tags=["Metrics"])


@router.get("/metrics")
async def prometheus_metrics(container: Container = Depends(get_container)):
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text exposition format for scraping.
    Includes:
    - Jobs enqueued, completed, retried and dead-lettered
    - Queue depth and in-flight gauges
    - Operation outcomes and durations
    - Role grants, webhook deliveries and ledger reconciliations

    Content-Type: text/plain; version=0.0.4; charset=utf-8
    """
    try:
        await container.queue_depths()
        return Response(
            content=metrics.export(),
            media_type="text/plain; version=0.0.4; charset=utf-8"
        )

    except Exception as e:
        logger.error(f"Failed to export metrics: {e}", exc_info=True)
        return Response(
            content=f"# Error exporting metrics: {e}\n",
            media_type="text/plain",
            status_code=500
        )


@router.get("/metrics/queue")
async def queue_metrics(container: Container = Depends(get_container)):
    """
    Per-queue broker statistics.

    Returns ready, unacked, published, acked and dead-lettered counts for
    every declared queue.
    """
    try:
        stats = {
            queue: (await container.broker.queue_stats(queue)).model_dump()
            for queue in await container.broker.list_queues()
        }
        return {"status": "ok", "metrics": stats}

    except Exception as e:
        logger.error(f"Failed to get queue metrics: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "error": str(e)
            }
        )
