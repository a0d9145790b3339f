"""
Academic signal analysis for one student in one class.
"""

import logging
from typing import Optional

from carealerts.detection.models import AcademicRiskFlags, AcademicRiskVerdict, AcademicSnapshot
from carealerts.providers.base import AcademicDataProvider
from carealerts.shared.config import AcademicConfig, settings
from carealerts.shared.logging import get_logger, log_with_context

logger = get_logger(__name__)

LETTER_GRADE_THRESHOLDS = (
    (90.0, "A"),
    (80.0, "B"),
    (70.0, "C"),
    (60.0, "D"),
)

GRADE_ORDINALS = {"A": 4, "B": 3, "C": 2, "D": 1, "F": 0}


def letter_grade(score: float) -> str:
    """Letter grade for a percentage score."""
    for threshold, letter in LETTER_GRADE_THRESHOLDS:
        if score >= threshold:
            return letter
    return "F"


def grade_ordinal(letter: str) -> int:
    """Ordinal of a letter grade (A=4 ... F=0)."""
    return GRADE_ORDINALS[letter]


def letter_grade_drop(previous_grade: float, current_grade: float) -> int:
    """Number of letter grades lost between two scores (negative when improving)."""
    return grade_ordinal(letter_grade(previous_grade)) - grade_ordinal(letter_grade(current_grade))


def detect_academic_flags(
    snapshot: AcademicSnapshot,
    config: Optional[AcademicConfig] = None
) -> AcademicRiskFlags:
    """Evaluate the academic risk rules against a snapshot."""
    config = config or settings.academic

    grade_decline = False
    if snapshot.previous_grade is not None:
        grade_decline = letter_grade_drop(snapshot.previous_grade, snapshot.current_grade) >= 1

    return AcademicRiskFlags(
        low_grade=snapshot.current_grade < config.low_grade_threshold,
        missing_work=snapshot.missing_assignments >= config.missing_work_threshold,
        grade_decline=grade_decline,
        low_participation=snapshot.participation_rate < config.low_participation_threshold,
    )


def analyze_snapshot(
    snapshot: Optional[AcademicSnapshot],
    config: Optional[AcademicConfig] = None
) -> AcademicRiskVerdict:
    """Build the academic verdict; a missing snapshot yields neutral defaults."""
    config = config or settings.academic

    if snapshot is None:
        return AcademicRiskVerdict(
            current_grade=config.neutral_grade,
            participation_rate=config.neutral_participation_rate,
        )

    return AcademicRiskVerdict(
        flags=detect_academic_flags(snapshot, config),
        current_grade=snapshot.current_grade,
        previous_grade=snapshot.previous_grade,
        missing_assignments=snapshot.missing_assignments,
        participation_rate=snapshot.participation_rate,
    )


class AcademicSignalAnalyzer:
    """Reads snapshots from an injected provider and analyzes them."""

    def __init__(self, provider: AcademicDataProvider, config: Optional[AcademicConfig] = None):
        self.provider = provider
        self.config = config or settings.academic

    async def detect_academic_risk(self, user_id: str, class_id: str) -> AcademicRiskVerdict:
        """Assess academic risk; a failing provider is treated as no data."""
        try:
            snapshot = await self.provider.get_snapshot(user_id, class_id)
        except Exception as e:
            log_with_context(
                logger,
                logging.ERROR,
                f"Academic snapshot unavailable: {e}",
                student_id=user_id,
                class_id=class_id,
                action="detect_academic_risk",
            )
            snapshot = None

        return analyze_snapshot(snapshot, self.config)
