"""
Notification gate: decides whether a care alert reaches a user, and on a
positive decision records the in-app notification and triggers email.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Union
from zoneinfo import ZoneInfo

from carealerts.detection.models import RiskSeverity, RiskType
from carealerts.notifications.models import (
    CareNotification,
    EmailFrequency,
    EmailMessage,
    NotificationPreference,
)
from carealerts.providers.base import EmailDispatcher, NotificationSink, PreferenceStore
from carealerts.shared.config import NotificationConfig, settings
from carealerts.shared.exceptions import ContractViolationError
from carealerts.shared.logging import get_logger, log_with_context

logger = get_logger(__name__)

_SEVERITY_TITLES = {
    RiskSeverity.CRITICAL: "Critical care alert",
    RiskSeverity.HIGH: "High priority care alert",
    RiskSeverity.MEDIUM: "Care alert",
}

_RISK_DESCRIPTIONS = {
    RiskType.EMOTIONAL: "emotional wellbeing concerns",
    RiskType.ACADEMIC: "academic performance concerns",
    RiskType.CROSS_RISK: "both emotional and academic concerns",
}


def default_preference(user_id: str, config: Optional[NotificationConfig] = None) -> NotificationPreference:
    """Preference record used for users who never saved one."""
    config = config or settings.notification
    return NotificationPreference(
        user_id=user_id,
        enable_in_app=config.enable_in_app,
        enable_email_alerts=config.enable_email_alerts,
        email_alert_frequency=config.email_alert_frequency,
        enable_push_alerts=config.enable_push_alerts,
        enable_quiet_hours=config.enable_quiet_hours,
        quiet_hours_timezone=config.quiet_hours_timezone,
    )


def is_within_quiet_hours(preference: NotificationPreference, now: datetime) -> bool:
    """
    Check whether `now` falls inside the user's quiet hours.

    Only same-day windows [start, end) are honoured. A window with
    start >= end (e.g. 22:00-08:00) never suppresses.
    """
    if not preference.enable_quiet_hours:
        return False
    start = preference.quiet_hours_start
    end = preference.quiet_hours_end
    if not start or not end:
        return False
    if start >= end:
        return False

    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local_time = now.astimezone(ZoneInfo(preference.quiet_hours_timezone)).strftime("%H:%M")
    return start <= local_time < end


def _coerce_severity(severity: Union[RiskSeverity, str]) -> RiskSeverity:
    try:
        return RiskSeverity(severity)
    except ValueError as e:
        raise ContractViolationError(f"Invalid severity: {severity!r}") from e


def _coerce_risk_type(risk_type: Union[RiskType, str]) -> RiskType:
    try:
        return RiskType(risk_type)
    except ValueError as e:
        raise ContractViolationError(f"Invalid risk type: {risk_type!r}") from e


def preference_allows(
    preference: NotificationPreference,
    severity: RiskSeverity,
    risk_type: RiskType,
    now: datetime
) -> bool:
    """Apply the channel, severity, type and quiet-hour rules to one preference."""
    if not preference.enable_in_app:
        return False

    severity_enabled = {
        RiskSeverity.CRITICAL: preference.notify_critical_alerts,
        RiskSeverity.HIGH: preference.notify_high_alerts,
        RiskSeverity.MEDIUM: preference.notify_medium_alerts,
    }
    if not severity_enabled[severity]:
        return False

    if risk_type == RiskType.EMOTIONAL and not preference.notify_emotional_alerts:
        return False
    if risk_type == RiskType.ACADEMIC and not preference.notify_academic_alerts:
        return False
    if risk_type == RiskType.CROSS_RISK and not (
        preference.notify_emotional_alerts or preference.notify_academic_alerts
    ):
        return False

    if is_within_quiet_hours(preference, now):
        return False

    return True


class NotificationGate:
    """Gates care-alert notifications on user preferences."""

    def __init__(
        self,
        preferences: PreferenceStore,
        sink: Optional[NotificationSink] = None,
        email_dispatcher: Optional[EmailDispatcher] = None,
        config: Optional[NotificationConfig] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.preferences = preferences
        self.sink = sink
        self.email_dispatcher = email_dispatcher
        self.config = config or settings.notification
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def get_preference(self, user_id: str) -> NotificationPreference:
        """Stored preference, created with defaults on first access."""
        try:
            preference = await self.preferences.fetch_notification_preference(user_id)
            if preference is None:
                preference = await self.preferences.create_default_preference(user_id)
            return preference
        except Exception as e:
            log_with_context(
                logger,
                logging.ERROR,
                f"Notification preferences unavailable, using defaults: {e}",
                teacher_id=user_id,
                action="get_preference",
            )
            return default_preference(user_id, self.config)

    async def should_notify(
        self,
        user_id: str,
        severity: Union[RiskSeverity, str],
        risk_type: Union[RiskType, str]
    ) -> bool:
        """
        Decide whether a care alert of this severity and type reaches the user.

        Raises:
            ContractViolationError for unknown severity or risk type values
        """
        severity = _coerce_severity(severity)
        risk_type = _coerce_risk_type(risk_type)

        preference = await self.get_preference(user_id)
        return preference_allows(preference, severity, risk_type, self.clock())

    async def send_care_alert(
        self,
        teacher_id: str,
        student_id: str,
        student_name: str,
        severity: Union[RiskSeverity, str],
        risk_type: Union[RiskType, str],
        class_id: Optional[str] = None,
        alert_id: Optional[str] = None
    ) -> bool:
        """
        Notify a teacher about an at-risk student if their preferences allow it.

        Returns:
            The gate decision; sink and email failures are logged only
        """
        severity = _coerce_severity(severity)
        risk_type = _coerce_risk_type(risk_type)

        preference = await self.get_preference(teacher_id)
        if not preference_allows(preference, severity, risk_type, self.clock()):
            log_with_context(
                logger,
                logging.DEBUG,
                "Care alert suppressed by preferences",
                teacher_id=teacher_id,
                student_id=student_id,
                action="send_care_alert",
                severity=severity.value,
            )
            return False

        notification = CareNotification(
            user_id=teacher_id,
            title=f"{_SEVERITY_TITLES[severity]}: {student_name}",
            message=f"{student_name} is showing {_RISK_DESCRIPTIONS[risk_type]}.",
            link_url=f"/teacher/alerts?student={student_id}",
            student_id=student_id,
            class_id=class_id,
            alert_id=alert_id,
            severity=severity.value,
        )

        if self.sink is not None:
            try:
                await self.sink.persist_notification(notification)
            except Exception as e:
                log_with_context(
                    logger,
                    logging.ERROR,
                    f"Failed to persist care alert notification: {e}",
                    teacher_id=teacher_id,
                    student_id=student_id,
                    action="persist_notification",
                )

        if (
            self.email_dispatcher is not None
            and preference.enable_email_alerts
            and preference.email_alert_frequency == EmailFrequency.IMMEDIATE
        ):
            message = EmailMessage(
                recipient_id=teacher_id,
                sender=self.config.email_sender,
                subject=notification.title,
                body=f"{notification.message}\n\nOpen Care Alerts to review: {notification.link_url}",
                severity=severity.value,
                student_id=student_id,
            )
            try:
                await self.email_dispatcher.dispatch_email(message)
            except Exception as e:
                log_with_context(
                    logger,
                    logging.ERROR,
                    f"Failed to dispatch care alert email: {e}",
                    teacher_id=teacher_id,
                    student_id=student_id,
                    action="dispatch_email",
                )

        return True
