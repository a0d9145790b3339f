"""
At-risk roster builder: runs both analyzers for every student a teacher
teaches, classifies the at-risk ones and returns a sorted roster.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional

from carealerts.detection.academic import AcademicSignalAnalyzer
from carealerts.detection.classifier import classify_risk, severity_rank
from carealerts.detection.demo import demo_roster
from carealerts.detection.emotional import EmotionalSignalAnalyzer
from carealerts.detection.models import (
    AtRiskCounts,
    AtRiskStudent,
    ClassInfo,
    DataAvailability,
    Enrollment,
    InterventionHistory,
    NoRisk,
    RiskSeverity,
    RiskType,
    assess_academic,
    assess_emotional,
)
from carealerts.providers.base import CareDataSource
from carealerts.shared.config import RosterConfig, settings
from carealerts.shared.logging import get_logger, log_with_context

logger = get_logger(__name__)

UNKNOWN_STUDENT_NAME = "Unknown Student"

# Academic risk is judged on a weekly snapshot
ACADEMIC_DAYS_AT_RISK = 7


def sort_roster(roster: Iterable[AtRiskStudent]) -> List[AtRiskStudent]:
    """Sort by severity (critical first), then by days at risk, longest first."""
    return sorted(
        roster,
        key=lambda s: (severity_rank(s.severity), s.days_at_risk),
        reverse=True,
    )


def summarize_roster(roster: Iterable[AtRiskStudent]) -> AtRiskCounts:
    """Summary counts; cross-risk students count as both emotional and academic."""
    counts = AtRiskCounts()
    for student in roster:
        counts.total += 1
        if student.severity == RiskSeverity.CRITICAL:
            counts.critical += 1
        elif student.severity == RiskSeverity.HIGH:
            counts.high += 1
        else:
            counts.medium += 1

        if student.risk_type in (RiskType.EMOTIONAL, RiskType.CROSS_RISK):
            counts.emotional += 1
        if student.risk_type in (RiskType.ACADEMIC, RiskType.CROSS_RISK):
            counts.academic += 1
        if student.risk_type == RiskType.CROSS_RISK:
            counts.cross_risk += 1
    return counts


class RosterBuilder:
    """Builds the at-risk roster for a teacher."""

    def __init__(
        self,
        source: CareDataSource,
        emotional_analyzer: EmotionalSignalAnalyzer,
        academic_analyzer: AcademicSignalAnalyzer,
        availability: Optional[DataAvailability] = None,
        config: Optional[RosterConfig] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.source = source
        self.emotional_analyzer = emotional_analyzer
        self.academic_analyzer = academic_analyzer
        self.config = config or settings.roster
        self.availability = DataAvailability(availability or self.config.data_availability)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def detect_at_risk_students(
        self,
        teacher_id: str,
        class_id: Optional[str] = None,
        availability: Optional[DataAvailability] = None
    ) -> List[AtRiskStudent]:
        """
        Detect at-risk students across a teacher's classes.

        Args:
            teacher_id: The teacher's user ID
            class_id: Optional filter to a single class
            availability: Overrides the configured no-classes behaviour

        Returns:
            At-risk students sorted by severity, then days at risk
        """
        try:
            classes = await self.source.fetch_teacher_classes(teacher_id, class_id)
        except Exception as e:
            log_with_context(
                logger,
                logging.ERROR,
                f"Error fetching classes: {e}",
                teacher_id=teacher_id,
                class_id=class_id,
                action="fetch_teacher_classes",
            )
            classes = []

        if not classes:
            return self._no_classes_roster(teacher_id, DataAvailability(availability or self.availability))

        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrency))
        class_enrollments = await asyncio.gather(
            *(self._class_enrollments(teacher_id, cls) for cls in classes)
        )

        tasks = []
        for cls, enrollments in zip(classes, class_enrollments):
            seen = set()
            for enrollment in enrollments:
                if enrollment.user_id in seen:
                    continue
                seen.add(enrollment.user_id)
                tasks.append(self._assess_guarded(semaphore, cls, enrollment))

        results = await asyncio.gather(*tasks)
        roster = sort_roster(student for student in results if student is not None)

        log_with_context(
            logger,
            logging.INFO,
            f"Roster built with {len(roster)} at-risk students",
            teacher_id=teacher_id,
            class_id=class_id,
            action="detect_at_risk_students",
        )
        return roster

    async def get_at_risk_counts(
        self,
        teacher_id: str,
        class_id: Optional[str] = None
    ) -> AtRiskCounts:
        """Summary counts for the teacher's current roster."""
        roster = await self.detect_at_risk_students(teacher_id, class_id)
        return summarize_roster(roster)

    def _no_classes_roster(self, teacher_id: str, availability: DataAvailability) -> List[AtRiskStudent]:
        if availability == DataAvailability.FALLBACK_DEMO:
            log_with_context(
                logger,
                logging.WARNING,
                "No classes found, using demo at-risk roster",
                teacher_id=teacher_id,
                action="detect_at_risk_students",
            )
            return demo_roster(self.clock())

        log_with_context(
            logger,
            logging.INFO,
            "No classes found",
            teacher_id=teacher_id,
            action="detect_at_risk_students",
            availability=availability.value,
        )
        return []

    async def _class_enrollments(self, teacher_id: str, cls: ClassInfo) -> List[Enrollment]:
        try:
            return await self.source.fetch_enrollments(cls.id)
        except Exception as e:
            log_with_context(
                logger,
                logging.ERROR,
                f"Error fetching enrollments: {e}",
                teacher_id=teacher_id,
                class_id=cls.id,
                action="fetch_enrollments",
            )
            return []

    async def _assess_guarded(
        self,
        semaphore: asyncio.Semaphore,
        cls: ClassInfo,
        enrollment: Enrollment
    ) -> Optional[AtRiskStudent]:
        async with semaphore:
            try:
                return await self.assess_student(cls, enrollment)
            except Exception as e:
                log_with_context(
                    logger,
                    logging.ERROR,
                    f"Error assessing student: {e}",
                    student_id=enrollment.user_id,
                    class_id=cls.id,
                    action="assess_student",
                    exc_info=True,
                )
                return None

    async def assess_student(
        self,
        cls: ClassInfo,
        enrollment: Enrollment
    ) -> Optional[AtRiskStudent]:
        """Roster entry for one enrollment, or None when the student is not at risk."""
        user_id = enrollment.user_id

        emotional_verdict = await self.emotional_analyzer.detect_emotional_risk(user_id, cls.id)
        academic_verdict = await self.academic_analyzer.detect_academic_risk(user_id, cls.id)

        emotional = assess_emotional(emotional_verdict)
        academic = assess_academic(academic_verdict)
        if isinstance(emotional, NoRisk) and isinstance(academic, NoRisk):
            return None

        classification = classify_risk(
            emotional,
            academic,
            self.emotional_analyzer.config,
            self.academic_analyzer.config,
        )
        now = self.clock()

        alerts = []
        try:
            since = now - timedelta(days=self.config.alert_window_days)
            alerts = await self.source.fetch_open_alerts(user_id, cls.id, since)
        except Exception as e:
            self._log_fetch_failure("fetch_open_alerts", user_id, cls.id, e)

        history = InterventionHistory()
        try:
            history = await self.source.fetch_intervention_history(user_id, cls.id)
        except Exception as e:
            self._log_fetch_failure("fetch_intervention_history", user_id, cls.id, e)

        last_pulse_check = None
        try:
            last_pulse_check = await self.source.fetch_latest_pulse_check(user_id)
        except Exception as e:
            self._log_fetch_failure("fetch_latest_pulse_check", user_id, cls.id, e)

        days_at_risk = max(
            emotional_verdict.days_at_risk,
            ACADEMIC_DAYS_AT_RISK if academic_verdict.has_academic_risk else 0,
        )
        last_alert_date = max((a.alert_date for a in alerts), default=now)

        return AtRiskStudent(
            user_id=user_id,
            student_name=enrollment.display_name or UNKNOWN_STUDENT_NAME,
            class_id=cls.id,
            class_name=cls.name,
            risk_type=classification.risk_type,
            severity=classification.severity,
            days_at_risk=days_at_risk,
            emotional_risk=emotional_verdict if emotional_verdict.has_emotional_risk else None,
            academic_risk=academic_verdict if academic_verdict.has_academic_risk else None,
            alert_ids=[a.id for a in alerts],
            last_alert_date=last_alert_date,
            last_pulse_check=last_pulse_check,
            last_intervention=history.last_date,
            intervention_count=history.count,
        )

    def _log_fetch_failure(self, action: str, user_id: str, class_id: str, error: Exception):
        log_with_context(
            logger,
            logging.WARNING,
            f"Optional roster field skipped: {error}",
            student_id=user_id,
            class_id=class_id,
            action=action,
        )
