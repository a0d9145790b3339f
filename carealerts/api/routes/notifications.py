"""
Notification inbox endpoints.

Inbox queries are synchronous store calls, so FastAPI runs these handlers
in its threadpool.
"""

from typing import List

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from carealerts.api.dependencies import StoreDep
from carealerts.notifications.models import CareNotification

router = APIRouter(tags=["notifications"])


class UnreadCountResponse(BaseModel):
    user_id: str
    unread: int


class MarkAllReadResponse(BaseModel):
    user_id: str
    marked: int


@router.get("/users/{user_id}/notifications", response_model=List[CareNotification])
def list_notifications(user_id: str, store: StoreDep, unread_only: bool = False):
    """Most recent first, at most 50."""
    return store.get_notifications(user_id, unread_only=unread_only)


@router.get("/users/{user_id}/notifications/unread-count", response_model=UnreadCountResponse)
def unread_count(user_id: str, store: StoreDep):
    return UnreadCountResponse(user_id=user_id, unread=store.get_unread_count(user_id))


@router.post("/users/{user_id}/notifications/read-all", response_model=MarkAllReadResponse)
def mark_all_read(user_id: str, store: StoreDep):
    return MarkAllReadResponse(user_id=user_id, marked=store.mark_all_notifications_read(user_id))


@router.post("/users/{user_id}/notifications/{notification_id}/read", status_code=204)
def mark_read(user_id: str, notification_id: str, store: StoreDep):
    if not store.mark_notification_read(notification_id, user_id):
        raise HTTPException(status_code=404, detail="Notification not found")


@router.delete("/users/{user_id}/notifications/{notification_id}", status_code=204)
def delete_notification(user_id: str, notification_id: str, store: StoreDep):
    if not store.delete_notification(notification_id, user_id):
        raise HTTPException(status_code=404, detail="Notification not found")
