"""
Queue Endpoints

Operation submission, job status and dead-letter administration.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from loguru import logger
from pydantic import BaseModel, Field

from tokenops.api.container import Container
from tokenops.api.dependencies import CurrentUser, get_container, get_current_user, require_admin
from tokenops.api.responses import ok
from tokenops.errors import NotFoundError
from tokenops.message_queue import EnqueueOptions
from tokenops.message_queue.topology import DEFAULT_TOPOLOGY

router = APIRouter(prefix="/api/queue", tags=["Queue"])


class OperationSubmission(BaseModel):
    """Body of POST /api/queue/operations."""
    type: str = Field(..., min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)
    priority: Optional[int] = Field(None, ge=0, le=10)
    correlation_id: Optional[str] = None
    idempotency_key: Optional[str] = None
    max_retries: Optional[int] = Field(None, ge=0, le=10)


@router.post("/operations", status_code=202)
async def submit_operation(
    body: OperationSubmission,
    user: CurrentUser = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    """
    Schedule an operation and return immediately with its job id.

    The payload is stamped with the caller's company and user ids. Only
    admins may submit on behalf of another company or user. Returns 503
    when the broker is unavailable.
    """
    container.jobs.cleanup()
    payload = dict(body.payload)
    if user.is_admin:
        payload.setdefault("company_id", user.company_id)
        payload.setdefault("user_id", user.user_id)
    else:
        payload["company_id"] = user.company_id
        payload["user_id"] = user.user_id

    result = await container.publisher.enqueue(
        body.type,
        payload,
        EnqueueOptions(
            priority=body.priority,
            correlation_id=body.correlation_id,
            idempotency_key=body.idempotency_key,
            max_retries=body.max_retries,
        ),
    )
    return ok(result.model_dump(mode="json"), message="Operation queued", status_code=202)


@router.get("/jobs/{job_id}")
async def get_job(
    job_id: str,
    user: CurrentUser = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    job = container.jobs.get(job_id)
    if job is None:
        raise NotFoundError(f"Job {job_id} not found")
    return ok(job.model_dump(mode="json"))


@router.get("/stats")
async def queue_stats(
    user: CurrentUser = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    queues = {}
    for queue in await container.broker.list_queues():
        queues[queue] = (await container.broker.queue_stats(queue)).model_dump()
    return ok({"queues": queues, "tracked_jobs": len(container.jobs)})


def _dead_letter_queue(queue: str) -> str:
    if queue not in DEFAULT_TOPOLOGY.dead_letter_queues:
        raise NotFoundError(f"Dead-letter queue {queue} not found")
    return queue


@router.get("/dead-letters/{queue}")
async def list_dead_letters(
    queue: str,
    limit: int = Query(100, ge=1, le=1000),
    admin: CurrentUser = Depends(require_admin),
    container: Container = Depends(get_container),
):
    messages = await container.broker.peek(_dead_letter_queue(queue), limit=limit)
    return ok({
        "queue": queue,
        "count": len(messages),
        "messages": [m.model_dump(mode="json") for m in messages],
    })


@router.post("/dead-letters/{queue}/{message_id}/retry")
async def retry_dead_letter(
    queue: str,
    message_id: str,
    admin: CurrentUser = Depends(require_admin),
    container: Container = Depends(get_container),
):
    message = await container.broker.retry_dead_letter(_dead_letter_queue(queue), message_id)
    if message is None:
        raise NotFoundError(f"Message {message_id} not found in {queue}")

    container.jobs.queued(message.id)
    logger.info(
        f"Dead-lettered message {message_id} requeued by {admin.user_id}",
        extra={"queue": queue, "routing_key": message.routing_key}
    )
    return ok(
        {"job_id": message.id, "status": "queued", "routing_key": message.routing_key},
        message="Message requeued",
    )
