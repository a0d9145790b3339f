"""
Main Care Alerts pipeline: wires the store, analyzers, roster builder and
notification gate together, and owns the timeout policy for roster builds.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from carealerts.detection.academic import AcademicSignalAnalyzer
from carealerts.detection.alerts import GeneratedAlert, MoodAlertGenerator
from carealerts.detection.emotional import EmotionalSignalAnalyzer
from carealerts.detection.models import (
    AcademicRiskVerdict,
    AtRiskCounts,
    AtRiskStudent,
    DataAvailability,
    EmotionalRiskVerdict,
    RiskSeverity,
    RiskType,
)
from carealerts.detection.roster import RosterBuilder, summarize_roster
from carealerts.notifications.email import OutboxEmailDispatcher
from carealerts.notifications.gate import NotificationGate
from carealerts.providers.base import AcademicDataProvider, EmailDispatcher
from carealerts.providers.mock_academic import MockAcademicProvider
from carealerts.store.sqlite import CareStore
from carealerts.shared.config import CareAlertsSettings, settings as global_settings
from carealerts.shared.exceptions import ProviderError
from carealerts.shared.logging import get_logger, log_with_context

logger = get_logger(__name__)


@dataclass
class RosterResult:
    """Roster returned at the orchestration boundary."""
    students: List[AtRiskStudent] = field(default_factory=list)
    counts: AtRiskCounts = field(default_factory=AtRiskCounts)
    timed_out: bool = False


def build_academic_provider(name: str, store: CareStore) -> AcademicDataProvider:
    """Academic provider selected by configuration."""
    if name == "store":
        return store
    if name == "mock":
        return MockAcademicProvider()
    raise ProviderError(f"Unknown academic provider: {name}")


class CareAlertsPipeline:
    """Entry point used by the API, the CLI and the nightly batch job."""

    def __init__(
        self,
        store: Optional[CareStore] = None,
        academic_provider: Optional[AcademicDataProvider] = None,
        email_dispatcher: Optional[EmailDispatcher] = None,
        availability: Optional[Union[DataAvailability, str]] = None,
        config: Optional[CareAlertsSettings] = None
    ):
        self.config = config or global_settings
        self.store = store or CareStore(self.config.store.db_path)
        self.academic_provider = academic_provider or build_academic_provider(
            self.config.academic.provider, self.store
        )
        self.emotional_analyzer = EmotionalSignalAnalyzer(self.store, self.config.detection)
        self.academic_analyzer = AcademicSignalAnalyzer(self.academic_provider, self.config.academic)
        self.roster_builder = RosterBuilder(
            self.store,
            self.emotional_analyzer,
            self.academic_analyzer,
            availability=DataAvailability(availability or self.config.roster.data_availability),
            config=self.config.roster,
        )
        self.alert_generator = MoodAlertGenerator(self.store, self.config.detection)
        self.gate = NotificationGate(
            self.store,
            sink=self.store,
            email_dispatcher=email_dispatcher or OutboxEmailDispatcher(self.store),
            config=self.config.notification,
        )

    async def detect_at_risk_students(
        self,
        teacher_id: str,
        class_id: Optional[str] = None
    ) -> List[AtRiskStudent]:
        return await self.roster_builder.detect_at_risk_students(teacher_id, class_id)

    async def get_at_risk_counts(
        self,
        teacher_id: str,
        class_id: Optional[str] = None
    ) -> AtRiskCounts:
        return await self.roster_builder.get_at_risk_counts(teacher_id, class_id)

    async def detect_emotional_risk(self, user_id: str, class_id: str) -> EmotionalRiskVerdict:
        return await self.emotional_analyzer.detect_emotional_risk(user_id, class_id)

    async def detect_academic_risk(self, user_id: str, class_id: str) -> AcademicRiskVerdict:
        return await self.academic_analyzer.detect_academic_risk(user_id, class_id)

    async def should_notify(
        self,
        user_id: str,
        severity: Union[RiskSeverity, str],
        risk_type: Union[RiskType, str]
    ) -> bool:
        return await self.gate.should_notify(user_id, severity, risk_type)

    async def generate_daily_alerts(self) -> List[GeneratedAlert]:
        return await self.alert_generator.generate_daily_alerts()

    async def generate_alerts_for_student(self, user_id: str, class_id: str) -> List[GeneratedAlert]:
        return await self.alert_generator.generate_alerts_for_student(user_id, class_id)

    async def build_roster(
        self,
        teacher_id: str,
        class_id: Optional[str] = None,
        timeout: Optional[float] = None,
        availability: Optional[DataAvailability] = None
    ) -> RosterResult:
        """
        Build the roster and its counts under a time budget.

        On timeout an empty result flagged timed_out is returned so the
        caller can render a retry affordance.
        """
        timeout = self.config.roster.timeout_seconds if timeout is None else timeout
        try:
            students = await asyncio.wait_for(
                self.roster_builder.detect_at_risk_students(teacher_id, class_id, availability),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            log_with_context(
                logger,
                logging.WARNING,
                f"Roster build timed out after {timeout}s",
                teacher_id=teacher_id,
                class_id=class_id,
                action="build_roster",
            )
            return RosterResult(timed_out=True)

        return RosterResult(students=students, counts=summarize_roster(students))

    async def send_care_alert(
        self,
        teacher_id: str,
        student: AtRiskStudent
    ) -> bool:
        """Notify a teacher about one roster entry."""
        return await self.gate.send_care_alert(
            teacher_id,
            student.user_id,
            student.student_name,
            student.severity,
            student.risk_type,
            class_id=student.class_id,
            alert_id=student.alert_ids[0] if student.alert_ids else None,
        )

    async def notify_teacher(self, teacher_id: str) -> Dict[str, int]:
        """
        Build the teacher's roster and send a care alert per at-risk student.

        Returns:
            Counts of students assessed, notified and suppressed
        """
        # Demo students are never notified about
        result = await self.build_roster(teacher_id, availability=DataAvailability.LIVE)
        stats = {"at_risk": len(result.students), "notified": 0, "suppressed": 0}

        for student in result.students:
            if await self.send_care_alert(teacher_id, student):
                stats["notified"] += 1
            else:
                stats["suppressed"] += 1

        log_with_context(
            logger,
            logging.INFO,
            "Care alert notifications processed",
            teacher_id=teacher_id,
            action="notify_teacher",
            **stats,
        )
        return stats
