"""
Combines emotional and academic assessments into a risk type and severity.
"""

from dataclasses import dataclass
from typing import Optional

from carealerts.detection.models import (
    AcademicRiskVerdict,
    Assessment,
    AtRisk,
    EmotionalRiskVerdict,
    RiskSeverity,
    RiskType,
)
from carealerts.shared.config import AcademicConfig, DetectionConfig, settings
from carealerts.shared.exceptions import ContractViolationError

SEVERITY_RANK = {
    RiskSeverity.CRITICAL: 3,
    RiskSeverity.HIGH: 2,
    RiskSeverity.MEDIUM: 1,
}


def severity_rank(severity: RiskSeverity) -> int:
    """Sort key for severities (critical=3, high=2, medium=1)."""
    return SEVERITY_RANK[RiskSeverity(severity)]


@dataclass(frozen=True)
class RiskClassification:
    """Outcome of classify_risk."""
    risk_type: RiskType
    severity: RiskSeverity


def _emotional_severity(verdict: EmotionalRiskVerdict, config: DetectionConfig) -> RiskSeverity:
    if (
        verdict.persistent_low
        or verdict.sudden_drop
        or verdict.current_sentiment <= config.high_severity_sentiment
    ):
        return RiskSeverity.HIGH
    return RiskSeverity.MEDIUM


def _academic_severity(verdict: AcademicRiskVerdict, config: AcademicConfig) -> RiskSeverity:
    if (
        verdict.current_grade < config.failing_grade_threshold
        or verdict.missing_assignments >= config.missing_work_high_threshold
        or (verdict.flags.low_grade and verdict.flags.grade_decline)
    ):
        return RiskSeverity.HIGH
    return RiskSeverity.MEDIUM


def classify_risk(
    emotional: Assessment,
    academic: Assessment,
    detection_config: Optional[DetectionConfig] = None,
    academic_config: Optional[AcademicConfig] = None
) -> RiskClassification:
    """
    Classify a student that is at risk on at least one dimension.

    Cross-risk is the only path to critical severity.

    Raises:
        ContractViolationError if neither assessment is AtRisk
    """
    detection_config = detection_config or settings.detection
    academic_config = academic_config or settings.academic

    emotional_at_risk = isinstance(emotional, AtRisk)
    academic_at_risk = isinstance(academic, AtRisk)

    if emotional_at_risk and academic_at_risk:
        return RiskClassification(RiskType.CROSS_RISK, RiskSeverity.CRITICAL)

    if emotional_at_risk:
        if not isinstance(emotional.verdict, EmotionalRiskVerdict):
            raise ContractViolationError("emotional assessment must carry an EmotionalRiskVerdict")
        return RiskClassification(
            RiskType.EMOTIONAL,
            _emotional_severity(emotional.verdict, detection_config),
        )

    if academic_at_risk:
        if not isinstance(academic.verdict, AcademicRiskVerdict):
            raise ContractViolationError("academic assessment must carry an AcademicRiskVerdict")
        return RiskClassification(
            RiskType.ACADEMIC,
            _academic_severity(academic.verdict, academic_config),
        )

    raise ContractViolationError("classify_risk called for a student with no risk")
