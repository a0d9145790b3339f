"""
Notification preference endpoints.
"""

from typing import Any, Dict

from fastapi import APIRouter
from pydantic import BaseModel

from carealerts.api.dependencies import PipelineDep, StoreDep
from carealerts.detection.models import RiskSeverity, RiskType
from carealerts.notifications.models import NotificationPreference

router = APIRouter(tags=["notifications"])


class ShouldNotifyRequest(BaseModel):
    severity: RiskSeverity
    risk_type: RiskType


class ShouldNotifyResponse(BaseModel):
    user_id: str
    should_notify: bool


@router.get("/users/{user_id}/notification-preferences", response_model=NotificationPreference)
async def get_preferences(user_id: str, pipeline: PipelineDep):
    """Stored preferences, created with defaults on first access."""
    return await pipeline.gate.get_preference(user_id)


@router.patch("/users/{user_id}/notification-preferences", response_model=NotificationPreference)
async def update_preferences(user_id: str, changes: Dict[str, Any], store: StoreDep):
    return await store.update_notification_preference(user_id, changes)


@router.post("/users/{user_id}/should-notify", response_model=ShouldNotifyResponse)
async def should_notify(user_id: str, request: ShouldNotifyRequest, pipeline: PipelineDep):
    decision = await pipeline.should_notify(user_id, request.severity, request.risk_type)
    return ShouldNotifyResponse(user_id=user_id, should_notify=decision)
