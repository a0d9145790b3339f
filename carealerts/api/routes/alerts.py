"""
At-risk roster and per-student risk endpoints.
"""

from typing import List, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from carealerts.api.dependencies import PipelineDep
from carealerts.detection.models import (
    AcademicRiskVerdict,
    AtRiskCounts,
    AtRiskStudent,
    EmotionalRiskVerdict,
    sentiment_label,
)

router = APIRouter(tags=["alerts"])


class RosterResponse(BaseModel):
    """At-risk roster with its summary."""

    students: List[AtRiskStudent]
    counts: AtRiskCounts
    timed_out: bool


class StudentRiskResponse(BaseModel):
    """Both risk verdicts for one student in one class."""

    user_id: str
    class_id: str
    emotional: EmotionalRiskVerdict
    sentiment_label: str
    academic: AcademicRiskVerdict
    has_emotional_risk: bool
    has_academic_risk: bool


@router.get("/teachers/{teacher_id}/at-risk", response_model=RosterResponse)
async def get_at_risk_roster(
    teacher_id: str,
    pipeline: PipelineDep,
    class_id: Optional[str] = None,
):
    """At-risk students of a teacher, critical first. Empty and flagged on timeout."""
    result = await pipeline.build_roster(teacher_id, class_id)
    return RosterResponse(
        students=result.students,
        counts=result.counts,
        timed_out=result.timed_out,
    )


@router.get("/teachers/{teacher_id}/at-risk/counts", response_model=AtRiskCounts)
async def get_at_risk_counts(
    teacher_id: str,
    pipeline: PipelineDep,
    class_id: Optional[str] = None,
):
    result = await pipeline.build_roster(teacher_id, class_id)
    return result.counts


@router.get("/students/{user_id}/classes/{class_id}/risk", response_model=StudentRiskResponse)
async def get_student_risk(user_id: str, class_id: str, pipeline: PipelineDep):
    emotional = await pipeline.detect_emotional_risk(user_id, class_id)
    academic = await pipeline.detect_academic_risk(user_id, class_id)
    return StudentRiskResponse(
        user_id=user_id,
        class_id=class_id,
        emotional=emotional,
        sentiment_label=sentiment_label(emotional.current_sentiment),
        academic=academic,
        has_emotional_risk=emotional.has_emotional_risk,
        has_academic_risk=academic.has_academic_risk,
    )
