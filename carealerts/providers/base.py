"""
Collaborator interfaces consumed by the detection engine and notification gate.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from carealerts.detection.models import (
    AcademicSnapshot,
    ClassInfo,
    Enrollment,
    InterventionHistory,
    MoodSample,
    OpenAlert,
)
from carealerts.notifications.models import (
    CareNotification,
    EmailMessage,
    NotificationPreference,
)


class CareDataSource(ABC):
    """Classes, enrollments, pulse checks, alerts and interventions."""

    @abstractmethod
    async def fetch_teacher_classes(
        self,
        teacher_id: str,
        class_id: Optional[str] = None
    ) -> List[ClassInfo]:
        """Classes taught by the teacher, optionally narrowed to one class."""
        pass

    @abstractmethod
    async def fetch_enrollments(self, class_id: str) -> List[Enrollment]:
        """Active enrollments of a class."""
        pass

    @abstractmethod
    async def fetch_mood_samples(self, user_id: str, since: datetime) -> List[MoodSample]:
        """
        Pulse checks recorded at or after `since`.

        Returns:
            Samples ordered most-recent-first
        """
        pass

    @abstractmethod
    async def fetch_latest_pulse_check(self, user_id: str) -> Optional[datetime]:
        """Timestamp of the student's most recent pulse check."""
        pass

    @abstractmethod
    async def fetch_open_alerts(
        self,
        user_id: str,
        class_id: str,
        since: datetime
    ) -> List[OpenAlert]:
        """Unacknowledged alerts since `since`, most recent first."""
        pass

    @abstractmethod
    async def fetch_intervention_history(
        self,
        user_id: str,
        class_id: str
    ) -> InterventionHistory:
        """Count and latest date of logged interventions."""
        pass


class AcademicDataProvider(ABC):
    """Source of academic snapshots (mock table, database, or LMS adapter)."""

    @abstractmethod
    async def get_snapshot(self, user_id: str, class_id: str) -> Optional[AcademicSnapshot]:
        """Snapshot for the student-class pair, or None when unknown."""
        pass


class PreferenceStore(ABC):
    """Per-user notification preferences."""

    @abstractmethod
    async def fetch_notification_preference(
        self,
        user_id: str
    ) -> Optional[NotificationPreference]:
        pass

    @abstractmethod
    async def create_default_preference(self, user_id: str) -> NotificationPreference:
        pass

    @abstractmethod
    async def update_notification_preference(
        self,
        user_id: str,
        changes: Dict[str, Any]
    ) -> NotificationPreference:
        pass


class NotificationSink(ABC):
    """Where in-app notifications are recorded."""

    @abstractmethod
    async def persist_notification(self, notification: CareNotification) -> str:
        """Store the notification and return its identifier."""
        pass


class EmailDispatcher(ABC):
    """Hands care-alert emails to a delivery mechanism."""

    @abstractmethod
    async def dispatch_email(self, message: EmailMessage) -> None:
        pass
