"""
Pydantic models for notification preferences and care-alert notifications.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(:[0-5]\d)?$")


class EmailFrequency(str, Enum):
    """How often care-alert emails are sent."""
    IMMEDIATE = "immediate"
    DAILY = "daily"
    WEEKLY = "weekly"
    NEVER = "never"


class NotificationPreference(BaseModel):
    """Notification settings of one user."""
    user_id: str

    # Channels
    enable_in_app: bool = True
    enable_email_alerts: bool = True
    email_alert_frequency: EmailFrequency = EmailFrequency.IMMEDIATE
    enable_push_alerts: bool = False

    # Quiet hours, local HH:MM
    enable_quiet_hours: bool = False
    quiet_hours_start: Optional[str] = None
    quiet_hours_end: Optional[str] = None
    quiet_hours_timezone: str = "UTC"

    # Severity toggles
    notify_critical_alerts: bool = True
    notify_high_alerts: bool = True
    notify_medium_alerts: bool = True

    # Type toggles
    notify_emotional_alerts: bool = True
    notify_academic_alerts: bool = True
    notify_intervention_responses: bool = True

    @field_validator("quiet_hours_start", "quiet_hours_end")
    @classmethod
    def _check_time(cls, value: Optional[str]) -> Optional[str]:
        if value is None or value == "":
            return None
        if not _HHMM.match(value):
            raise ValueError(f"Expected HH:MM, got {value!r}")
        # Seconds are accepted from the database but compared at minute precision
        return value[:5]

    @field_validator("quiet_hours_timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value


class CareNotification(BaseModel):
    """In-app notification telling a teacher about an at-risk student."""
    id: Optional[str] = None
    user_id: str
    notification_type: str = "care_alert"
    title: str
    message: str
    link_url: Optional[str] = None
    student_id: Optional[str] = None
    class_id: Optional[str] = None
    alert_id: Optional[str] = None
    severity: Optional[str] = None
    is_read: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class EmailMessage(BaseModel):
    """Rendered care-alert email."""
    recipient_id: str
    sender: str
    subject: str
    body: str
    severity: str
    student_id: Optional[str] = None
