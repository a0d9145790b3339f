"""
Tests for the at-risk roster builder.
"""

from datetime import datetime, timedelta, timezone

import pytest

from carealerts.detection.academic import AcademicSignalAnalyzer
from carealerts.detection.demo import demo_roster
from carealerts.detection.emotional import EmotionalSignalAnalyzer
from carealerts.detection.models import (
    AcademicRiskFlags,
    AcademicRiskVerdict,
    AcademicSnapshot,
    AtRiskStudent,
    ClassInfo,
    DataAvailability,
    EmotionalRiskVerdict,
    Enrollment,
    InterventionHistory,
    OpenAlert,
    RiskSeverity,
    RiskType,
)
from carealerts.detection.roster import RosterBuilder, sort_roster, summarize_roster
from carealerts.providers.mock_academic import MockAcademicProvider
from carealerts.shared.config import AcademicConfig, DetectionConfig, RosterConfig
from carealerts.shared.exceptions import DataSourceError

NOW = datetime(2026, 1, 15, 15, 0, tzinfo=timezone.utc)


def entry(user_id, risk_type, severity, days):
    emotional = EmotionalRiskVerdict(high_volatility=True)
    academic = AcademicRiskVerdict(flags=AcademicRiskFlags(low_participation=True))
    return AtRiskStudent(
        user_id=user_id,
        student_name=user_id,
        class_id="class-1",
        class_name="Introduction to Psychology",
        risk_type=risk_type,
        severity=severity,
        days_at_risk=days,
        emotional_risk=emotional if risk_type != RiskType.ACADEMIC else None,
        academic_risk=academic if risk_type != RiskType.EMOTIONAL else None,
        last_alert_date=NOW,
    )


@pytest.fixture
def academic_provider():
    return MockAcademicProvider(snapshots={})


@pytest.fixture
def builder(mock_source, academic_provider):
    def _build(availability=DataAvailability.LIVE):
        return RosterBuilder(
            mock_source,
            EmotionalSignalAnalyzer(mock_source, DetectionConfig(), clock=lambda: NOW),
            AcademicSignalAnalyzer(academic_provider, AcademicConfig()),
            availability=availability,
            config=RosterConfig(),
            clock=lambda: NOW,
        )
    return _build


def test_sort_by_severity_then_days():
    roster = [
        entry("medium", RiskType.ACADEMIC, RiskSeverity.MEDIUM, 2),
        entry("critical", RiskType.CROSS_RISK, RiskSeverity.CRITICAL, 1),
        entry("high", RiskType.EMOTIONAL, RiskSeverity.HIGH, 5),
    ]

    assert [s.user_id for s in sort_roster(roster)] == ["critical", "high", "medium"]


def test_sort_longer_risk_first_within_severity():
    roster = [
        entry("short", RiskType.EMOTIONAL, RiskSeverity.HIGH, 3),
        entry("long", RiskType.EMOTIONAL, RiskSeverity.HIGH, 6),
    ]

    assert [s.user_id for s in sort_roster(roster)] == ["long", "short"]


def test_counts_include_cross_risk_in_both_dimensions():
    roster = [
        entry("cross", RiskType.CROSS_RISK, RiskSeverity.CRITICAL, 7),
        entry("emotional", RiskType.EMOTIONAL, RiskSeverity.HIGH, 3),
        entry("academic", RiskType.ACADEMIC, RiskSeverity.MEDIUM, 7),
    ]

    counts = summarize_roster(roster)

    assert counts.total == 3
    assert counts.emotional == 2
    assert counts.academic == 2
    assert counts.cross_risk == 1
    assert counts.critical == 1
    assert counts.high == 1
    assert counts.medium == 1


def test_demo_roster_is_consistent():
    roster = demo_roster(NOW)

    assert len(roster) == 3
    assert sort_roster(roster) == roster
    for student in roster:
        # Re-validating runs the model invariants again
        AtRiskStudent.model_validate(student.model_dump())
        if student.risk_type in (RiskType.EMOTIONAL, RiskType.CROSS_RISK):
            assert student.emotional_risk.has_emotional_risk
        if student.risk_type in (RiskType.ACADEMIC, RiskType.CROSS_RISK):
            assert student.academic_risk.has_academic_risk


@pytest.mark.asyncio
async def test_no_classes_falls_back_to_demo(builder):
    roster = await builder(DataAvailability.FALLBACK_DEMO).detect_at_risk_students("teacher-1")

    assert [s.student_name for s in roster] == ["Michael Chen", "Sophia Lee", "Jessica Thompson"]


@pytest.mark.asyncio
async def test_no_classes_live_and_empty_return_nothing(builder):
    assert await builder(DataAvailability.LIVE).detect_at_risk_students("teacher-1") == []
    assert await builder(DataAvailability.EMPTY).detect_at_risk_students("teacher-1") == []


@pytest.mark.asyncio
async def test_availability_can_be_overridden_per_call(builder):
    roster = await builder(DataAvailability.FALLBACK_DEMO).detect_at_risk_students(
        "teacher-1", availability=DataAvailability.LIVE
    )

    assert roster == []


@pytest.mark.asyncio
async def test_class_fetch_failure_counts_as_no_classes(builder, mock_source):
    mock_source.fetch_teacher_classes.side_effect = DataSourceError("connection refused")

    assert await builder(DataAvailability.EMPTY).detect_at_risk_students("teacher-1") == []


@pytest.mark.asyncio
async def test_builds_sorted_roster(builder, mock_source, academic_provider, make_samples):
    mock_source.fetch_teacher_classes.return_value = [ClassInfo(id="class-1", name="Introduction to Psychology")]
    mock_source.fetch_enrollments.return_value = [
        Enrollment(user_id="volatile", display_name="Val"),
        Enrollment(user_id="fine", display_name="Fiona"),
        Enrollment(user_id="both", display_name="Bo"),
        Enrollment(user_id="grades"),
    ]
    samples = {
        "volatile": make_samples([6, 1, 6, 1, 6]),
        "fine": make_samples([4, 4, 5, 4]),
        "both": make_samples([1, 1, 1, 2]),
    }
    mock_source.fetch_mood_samples.side_effect = lambda user_id, since: samples.get(user_id, [])
    academic_provider.set_snapshot("both", "class-1", AcademicSnapshot(current_grade=65, previous_grade=78))
    academic_provider.set_snapshot("grades", "class-1", AcademicSnapshot(current_grade=55))

    roster = await builder().detect_at_risk_students("teacher-1")

    assert [s.user_id for s in roster] == ["both", "volatile", "grades"]
    both, volatile, grades = roster
    assert both.risk_type == RiskType.CROSS_RISK
    assert both.severity == RiskSeverity.CRITICAL
    assert both.days_at_risk == 7
    assert volatile.risk_type == RiskType.EMOTIONAL
    assert volatile.severity == RiskSeverity.HIGH
    assert volatile.academic_risk is None
    assert grades.risk_type == RiskType.ACADEMIC
    assert grades.severity == RiskSeverity.HIGH
    assert grades.emotional_risk is None
    assert grades.student_name == "Unknown Student"


@pytest.mark.asyncio
async def test_side_data_is_attached(builder, mock_source, academic_provider):
    mock_source.fetch_teacher_classes.return_value = [ClassInfo(id="class-1", name="Introduction to Psychology")]
    mock_source.fetch_enrollments.return_value = [Enrollment(user_id="student-5", display_name="Daniel Kim")]
    mock_source.fetch_open_alerts.return_value = [
        OpenAlert(id="alert-2", alert_date=NOW - timedelta(hours=3)),
        OpenAlert(id="alert-1", alert_date=NOW - timedelta(days=2)),
    ]
    mock_source.fetch_intervention_history.return_value = InterventionHistory(
        count=2, last_date=NOW - timedelta(days=1)
    )
    mock_source.fetch_latest_pulse_check.return_value = NOW - timedelta(days=4)
    academic_provider.set_snapshot("student-5", "class-1", AcademicSnapshot(current_grade=55))

    roster = await builder().detect_at_risk_students("teacher-1")

    student = roster[0]
    assert student.alert_ids == ["alert-2", "alert-1"]
    assert student.last_alert_date == NOW - timedelta(hours=3)
    assert student.intervention_count == 2
    assert student.last_intervention == NOW - timedelta(days=1)
    assert student.last_pulse_check == NOW - timedelta(days=4)
    mock_source.fetch_open_alerts.assert_awaited_once_with("student-5", "class-1", NOW - timedelta(days=7))


@pytest.mark.asyncio
async def test_failed_side_fetches_are_skipped(builder, mock_source, academic_provider):
    mock_source.fetch_teacher_classes.return_value = [ClassInfo(id="class-1", name="Introduction to Psychology")]
    mock_source.fetch_enrollments.return_value = [Enrollment(user_id="student-5", display_name="Daniel Kim")]
    mock_source.fetch_open_alerts.side_effect = DataSourceError("timeout")
    mock_source.fetch_intervention_history.side_effect = DataSourceError("timeout")
    mock_source.fetch_latest_pulse_check.side_effect = DataSourceError("timeout")
    academic_provider.set_snapshot("student-5", "class-1", AcademicSnapshot(current_grade=55))

    roster = await builder().detect_at_risk_students("teacher-1")

    assert len(roster) == 1
    assert roster[0].alert_ids == []
    assert roster[0].last_alert_date == NOW
    assert roster[0].intervention_count == 0
    assert roster[0].last_pulse_check is None


@pytest.mark.asyncio
async def test_failed_enrollment_fetch_skips_only_that_class(builder, mock_source, academic_provider):
    mock_source.fetch_teacher_classes.return_value = [
        ClassInfo(id="class-1", name="Introduction to Psychology"),
        ClassInfo(id="class-2", name="English Literature"),
    ]

    async def enrollments(class_id):
        if class_id == "class-1":
            raise DataSourceError("disk I/O error")
        return [Enrollment(user_id="student-7", display_name="Noah Williams")]

    mock_source.fetch_enrollments.side_effect = enrollments
    academic_provider.set_snapshot("student-7", "class-2", AcademicSnapshot(current_grade=81, participation_rate=40))

    roster = await builder().detect_at_risk_students("teacher-1")

    assert [(s.user_id, s.class_id) for s in roster] == [("student-7", "class-2")]
    assert roster[0].severity == RiskSeverity.MEDIUM


@pytest.mark.asyncio
async def test_duplicate_enrollments_are_assessed_once(builder, mock_source, academic_provider):
    mock_source.fetch_teacher_classes.return_value = [ClassInfo(id="class-1", name="Introduction to Psychology")]
    mock_source.fetch_enrollments.return_value = [
        Enrollment(user_id="student-5", display_name="Daniel Kim"),
        Enrollment(user_id="student-5", display_name="Daniel Kim"),
    ]
    academic_provider.set_snapshot("student-5", "class-1", AcademicSnapshot(current_grade=55))

    roster = await builder().detect_at_risk_students("teacher-1")

    assert len(roster) == 1


@pytest.mark.asyncio
async def test_counts_for_teacher(builder, mock_source, academic_provider):
    mock_source.fetch_teacher_classes.return_value = [ClassInfo(id="class-1", name="Introduction to Psychology")]
    mock_source.fetch_enrollments.return_value = [
        Enrollment(user_id="student-5"),
        Enrollment(user_id="student-7"),
    ]
    academic_provider.set_snapshot("student-5", "class-1", AcademicSnapshot(current_grade=55))
    academic_provider.set_snapshot("student-7", "class-1", AcademicSnapshot(current_grade=81, participation_rate=40))

    counts = await builder().get_at_risk_counts("teacher-1")

    assert counts.total == 2
    assert counts.academic == 2
    assert counts.high == 1
    assert counts.medium == 1
