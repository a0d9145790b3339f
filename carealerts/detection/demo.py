"""
Illustrative at-risk roster returned when a teacher has no classes on record
and the roster builder runs with DataAvailability.FALLBACK_DEMO.
"""

from datetime import datetime, timedelta
from typing import List

from carealerts.detection.models import (
    AcademicRiskFlags,
    AcademicRiskVerdict,
    AcademicSnapshot,
    AtRiskStudent,
    EmotionalRiskVerdict,
    MoodSample,
    RiskSeverity,
    RiskType,
    SentimentTrend,
)

# Academic table backing MockAcademicProvider, keyed by (user_id, class_id)
DEMO_ACADEMIC_SNAPSHOTS = {
    ("student-3", "class-1"): AcademicSnapshot(
        current_grade=65,
        previous_grade=78,
        missing_assignments=3,
        late_assignments=2,
        participation_rate=45,
    ),
    ("student-5", "class-1"): AcademicSnapshot(
        current_grade=55,
        previous_grade=62,
        missing_assignments=5,
        late_assignments=1,
        participation_rate=60,
    ),
    ("student-6", "class-2"): AcademicSnapshot(
        current_grade=88,
        previous_grade=86,
        missing_assignments=0,
        participation_rate=85,
    ),
    ("student-7", "class-2"): AcademicSnapshot(
        current_grade=81,
        previous_grade=84,
        missing_assignments=1,
        participation_rate=40,
    ),
    ("student-8", "class-3"): AcademicSnapshot(
        current_grade=91,
        previous_grade=93,
        missing_assignments=0,
        participation_rate=90,
    ),
}


def demo_roster(now: datetime) -> List[AtRiskStudent]:
    """Fixed demo roster, already sorted by severity then days at risk."""
    return [
        AtRiskStudent(
            user_id="student-3",
            student_name="Michael Chen",
            class_id="class-1",
            class_name="Introduction to Psychology",
            risk_type=RiskType.CROSS_RISK,
            severity=RiskSeverity.CRITICAL,
            days_at_risk=7,
            emotional_risk=EmotionalRiskVerdict(
                prolonged_negative=True,
                high_volatility=True,
                current_sentiment=1.5,
                trend=SentimentTrend.DECLINING,
                days_at_risk=7,
            ),
            academic_risk=AcademicRiskVerdict(
                flags=AcademicRiskFlags(
                    low_grade=True,
                    missing_work=True,
                    grade_decline=True,
                    low_participation=True,
                ),
                current_grade=65,
                previous_grade=78,
                missing_assignments=3,
                participation_rate=45,
            ),
            alert_ids=["alert-1", "alert-2"],
            last_alert_date=now,
            last_pulse_check=now - timedelta(days=4),
            intervention_count=0,
        ),
        AtRiskStudent(
            user_id="student-8",
            student_name="Sophia Lee",
            class_id="class-3",
            class_name="World History",
            risk_type=RiskType.EMOTIONAL,
            severity=RiskSeverity.HIGH,
            days_at_risk=3,
            emotional_risk=EmotionalRiskVerdict(
                persistent_low=True,
                current_sentiment=1.0,
                trend=SentimentTrend.DECLINING,
                days_at_risk=3,
            ),
            alert_ids=["alert-3"],
            last_alert_date=now,
            last_pulse_check=now - timedelta(days=5),
            intervention_count=0,
        ),
        AtRiskStudent(
            user_id="student-6",
            student_name="Jessica Thompson",
            class_id="class-2",
            class_name="English Literature",
            risk_type=RiskType.EMOTIONAL,
            severity=RiskSeverity.MEDIUM,
            days_at_risk=2,
            emotional_risk=EmotionalRiskVerdict(
                high_volatility=True,
                current_sentiment=2.5,
                days_at_risk=2,
            ),
            alert_ids=["alert-4"],
            last_alert_date=now,
            last_pulse_check=now - timedelta(days=1),
            intervention_count=0,
        ),
    ]


DEMO_TEACHER_ID = "teacher-1"

DEMO_CLASSES = {
    "class-1": "Introduction to Psychology",
    "class-2": "English Literature",
    "class-3": "World History",
}

DEMO_STUDENTS = {
    "student-1": "Emma Johnson",
    "student-2": "Liam Garcia",
    "student-3": "Michael Chen",
    "student-4": "Olivia Martinez",
    "student-5": "Daniel Kim",
    "student-6": "Jessica Thompson",
    "student-7": "Noah Williams",
    "student-8": "Sophia Lee",
}

DEMO_ENROLLMENTS = {
    "class-1": ["student-1", "student-2", "student-3", "student-4", "student-5"],
    "class-2": ["student-1", "student-6", "student-7"],
    "class-3": ["student-2", "student-8"],
}

# Most recent check-in first, one per day
DEMO_PULSE_CHECKS = {
    "student-1": ["Happy", "Content", "Proud", "Happy", "Hopeful"],
    "student-2": ["Peaceful", "Tired", "Content", "Relieved"],
    "student-3": ["Sad", "Frustrated", "Happy", "Sad", "Worried", "Scared", "Lonely"],
    "student-4": ["Excited", "Inspired"],
    "student-6": ["Happy", "Sad", "Excited", "Scared", "Proud"],
    "student-8": ["Sad", "Scared", "Lonely", "Sad", "Scared"],
}


def _home_class(user_id: str) -> str:
    return next(class_id for class_id, members in DEMO_ENROLLMENTS.items() if user_id in members)


def seed_demo_school(store, now: datetime) -> None:
    """
    Load the demo school into a CareStore.

    Produces one cross-risk, two emotional and two academic at-risk
    students for DEMO_TEACHER_ID. Re-seeding replaces the demo students'
    pulse checks, alerts and interventions instead of adding to them.
    """
    store.clear_student_activity(list(DEMO_STUDENTS))

    for class_id, name in DEMO_CLASSES.items():
        store.add_class(class_id, name, DEMO_TEACHER_ID)
        for user_id in DEMO_ENROLLMENTS[class_id]:
            store.enroll(class_id, user_id, DEMO_STUDENTS[user_id])

    for user_id, emotions in DEMO_PULSE_CHECKS.items():
        for days_ago, emotion in enumerate(emotions):
            store.record_pulse_check(
                user_id,
                MoodSample.from_emotion(emotion, now - timedelta(days=days_ago, hours=1)),
                class_id=_home_class(user_id),
            )

    for (user_id, class_id), snapshot in DEMO_ACADEMIC_SNAPSHOTS.items():
        store.upsert_academic_snapshot(user_id, class_id, snapshot)

    store.log_mood_alert("student-3", "class-1", "prolonged_negative", "high", now - timedelta(days=1))
    store.log_mood_alert("student-8", "class-3", "persistent_low", "high", now - timedelta(hours=2))
    store.log_intervention(
        "student-6",
        "class-2",
        "check_in_conversation",
        now - timedelta(days=3),
        teacher_id=DEMO_TEACHER_ID,
    )
