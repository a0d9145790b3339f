"""
Health check endpoint.
"""

import asyncio
import time
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from carealerts.api.dependencies import PipelineDep
from carealerts.shared.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["health"])

# Track startup time for uptime
_start_time: Optional[float] = None


def set_start_time(t: float):
    """Set application start time."""
    global _start_time
    _start_time = t


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    store_connected: bool
    email_outbox_depth: int
    data_availability: str
    academic_provider: str
    uptime_seconds: float


@router.get("/health", response_model=HealthResponse)
async def health_check(pipeline: PipelineDep):
    """
    Service health check.
    Returns store status, email outbox backlog, roster fallback policy, uptime.
    """
    store_connected = False
    outbox_depth = 0
    try:
        outbox_depth = len(await asyncio.to_thread(pipeline.store.get_unsent_emails, limit=10000))
        store_connected = True
    except Exception as e:
        logger.warning(f"Care store health check failed: {e}")

    uptime_seconds = 0.0
    if _start_time:
        uptime_seconds = round(time.time() - _start_time, 2)

    return HealthResponse(
        status="healthy" if store_connected else "degraded",
        store_connected=store_connected,
        email_outbox_depth=outbox_depth,
        data_availability=pipeline.roster_builder.availability.value,
        academic_provider=type(pipeline.academic_provider).__name__,
        uptime_seconds=uptime_seconds,
    )
