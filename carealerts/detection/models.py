"""
Pydantic models for the at-risk detection engine.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, List, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RiskSeverity(str, Enum):
    """Severity of an at-risk classification."""
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RiskType(str, Enum):
    """Which dimensions put the student at risk."""
    EMOTIONAL = "emotional"
    ACADEMIC = "academic"
    CROSS_RISK = "cross-risk"


class SentimentTrend(str, Enum):
    """Direction of recent sentiment."""
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class DataAvailability(str, Enum):
    """What the roster builder returns when no classes resolve for a teacher."""
    LIVE = "live"
    FALLBACK_DEMO = "fallback-demo"
    EMPTY = "empty"


# Emotion tiers used by the pulse-check UI
EMOTION_SENTIMENT_MAP = {
    "Scared": 1,
    "Sad": 1,
    "Lonely": 1,
    "Frustrated": 2,
    "Worried": 2,
    "Nervous": 2,
    "Tired": 3,
    "Bored": 3,
    "Careless": 3,
    "Peaceful": 4,
    "Relieved": 4,
    "Content": 4,
    "Hopeful": 5,
    "Proud": 5,
    "Happy": 6,
    "Excited": 6,
    "Inspired": 6,
}

UNKNOWN_EMOTION_SENTIMENT = 3


def sentiment_for_emotion(emotion: str) -> int:
    """Map an emotion label to its sentiment tier (unknown labels are neutral)."""
    return EMOTION_SENTIMENT_MAP.get(emotion, UNKNOWN_EMOTION_SENTIMENT)


def sentiment_label(value: float) -> str:
    """Human-readable band for an average sentiment."""
    if value <= 1.5:
        return "Very Negative"
    if value <= 2.5:
        return "Negative"
    if value <= 3.5:
        return "Neutral"
    if value <= 4.5:
        return "Positive"
    if value <= 5.5:
        return "Very Positive"
    return "Excellent"


class MoodSample(BaseModel):
    """A single pulse check."""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    sentiment_value: int = Field(ge=1, le=6)
    emotion_label: str = ""

    @classmethod
    def from_emotion(cls, emotion: str, timestamp: datetime) -> "MoodSample":
        """Build a sample from the emotion the student picked."""
        return cls(
            timestamp=timestamp,
            sentiment_value=sentiment_for_emotion(emotion),
            emotion_label=emotion,
        )


class AcademicSnapshot(BaseModel):
    """Academic standing of one student in one class."""
    model_config = ConfigDict(frozen=True)

    current_grade: float = Field(ge=0, le=100)
    previous_grade: Optional[float] = Field(default=None, ge=0, le=100)
    missing_assignments: int = Field(default=0, ge=0)
    late_assignments: int = Field(default=0, ge=0)
    participation_rate: float = Field(default=100.0, ge=0, le=100)
    as_of: Optional[datetime] = None


class EmotionalRiskVerdict(BaseModel):
    """Result of the emotional signal analysis."""
    persistent_low: bool = False
    prolonged_negative: bool = False
    sudden_drop: bool = False
    high_volatility: bool = False
    current_sentiment: float = 3.5
    trend: SentimentTrend = SentimentTrend.STABLE
    days_at_risk: int = 0

    @property
    def has_emotional_risk(self) -> bool:
        return (
            self.persistent_low
            or self.prolonged_negative
            or self.sudden_drop
            or self.high_volatility
        )


class AcademicRiskFlags(BaseModel):
    """Boolean academic risk flags."""
    low_grade: bool = False
    missing_work: bool = False
    grade_decline: bool = False
    low_participation: bool = False

    def any(self) -> bool:
        return self.low_grade or self.missing_work or self.grade_decline or self.low_participation


class AcademicRiskVerdict(BaseModel):
    """Result of the academic signal analysis."""
    flags: AcademicRiskFlags = Field(default_factory=AcademicRiskFlags)
    current_grade: float = 85.0
    previous_grade: Optional[float] = None
    missing_assignments: int = 0
    participation_rate: float = 80.0

    @property
    def has_academic_risk(self) -> bool:
        return self.flags.any()


@dataclass(frozen=True)
class AtRisk:
    """An assessment that found risk."""
    verdict: Union[EmotionalRiskVerdict, AcademicRiskVerdict]


@dataclass(frozen=True)
class NoRisk:
    """An assessment that ran and found nothing, or had nothing to assess."""
    verdict: Optional[Union[EmotionalRiskVerdict, AcademicRiskVerdict]] = None


Assessment = Union[AtRisk, NoRisk]


def assess_emotional(verdict: Optional[EmotionalRiskVerdict]) -> Assessment:
    """Wrap an emotional verdict in the matching assessment variant."""
    if verdict is not None and verdict.has_emotional_risk:
        return AtRisk(verdict)
    return NoRisk(verdict)


def assess_academic(verdict: Optional[AcademicRiskVerdict]) -> Assessment:
    """Wrap an academic verdict in the matching assessment variant."""
    if verdict is not None and verdict.has_academic_risk:
        return AtRisk(verdict)
    return NoRisk(verdict)


class ClassInfo(BaseModel):
    """A class taught by a teacher."""
    id: str
    name: str


class Enrollment(BaseModel):
    """An active enrollment of a student in a class."""
    user_id: str
    display_name: Optional[str] = None


class OpenAlert(BaseModel):
    """An unacknowledged mood alert."""
    id: str
    alert_date: datetime


class InterventionHistory(BaseModel):
    """Teacher interventions logged for a student in a class."""
    count: int = 0
    last_date: Optional[datetime] = None


class AtRiskStudent(BaseModel):
    """One roster entry."""
    user_id: str
    student_name: str
    class_id: str
    class_name: str

    risk_type: RiskType
    severity: RiskSeverity
    days_at_risk: int

    emotional_risk: Optional[EmotionalRiskVerdict] = None
    academic_risk: Optional[AcademicRiskVerdict] = None

    alert_ids: List[str] = Field(default_factory=list)
    last_alert_date: datetime

    last_pulse_check: Optional[datetime] = None
    last_intervention: Optional[datetime] = None
    intervention_count: int = 0

    @model_validator(mode="after")
    def _check_invariants(self) -> "AtRiskStudent":
        if self.severity == RiskSeverity.CRITICAL and self.risk_type != RiskType.CROSS_RISK:
            raise ValueError("critical severity requires cross-risk")
        if self.risk_type == RiskType.CROSS_RISK and not (
            self.emotional_risk is not None
            and self.emotional_risk.has_emotional_risk
            and self.academic_risk is not None
            and self.academic_risk.has_academic_risk
        ):
            raise ValueError("cross-risk requires both emotional and academic verdicts")
        return self


class AtRiskCounts(BaseModel):
    """Roster summary counts."""
    total: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    emotional: int = 0
    academic: int = 0
    cross_risk: int = 0
