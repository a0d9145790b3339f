"""
Tests for the SQLite care store.
"""

from datetime import timedelta

import pytest

from carealerts.detection.models import AcademicSnapshot, MoodSample
from carealerts.notifications.models import CareNotification
from carealerts.shared.exceptions import PreferenceError


def test_database_uses_wal(care_store):
    with care_store._get_connection() as conn:
        mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
    assert mode == "wal"


@pytest.mark.asyncio
async def test_teacher_classes_and_filter(care_store):
    care_store.add_class("class-1", "Introduction to Psychology", "teacher-1")
    care_store.add_class("class-2", "English Literature", "teacher-1")
    care_store.add_class("class-9", "Chemistry", "teacher-2")

    classes = await care_store.fetch_teacher_classes("teacher-1")
    filtered = await care_store.fetch_teacher_classes("teacher-1", "class-1")
    foreign = await care_store.fetch_teacher_classes("teacher-1", "class-9")

    assert [c.id for c in classes] == ["class-2", "class-1"]
    assert [c.name for c in filtered] == ["Introduction to Psychology"]
    assert foreign == []


@pytest.mark.asyncio
async def test_only_active_enrollments(care_store):
    care_store.add_class("class-1", "Introduction to Psychology", "teacher-1")
    care_store.enroll("class-1", "student-2", "Liam Garcia")
    care_store.enroll("class-1", "student-1", "Emma Johnson")
    care_store.enroll("class-1", "student-4", "Olivia Martinez", status="dropped")

    enrollments = await care_store.fetch_enrollments("class-1")

    assert [(e.user_id, e.display_name) for e in enrollments] == [
        ("student-1", "Emma Johnson"),
        ("student-2", "Liam Garcia"),
    ]


@pytest.mark.asyncio
async def test_mood_samples_most_recent_first_within_window(care_store, fixed_now):
    care_store.record_pulse_check("student-1", MoodSample.from_emotion("Happy", fixed_now - timedelta(days=2)))
    care_store.record_pulse_check("student-1", MoodSample.from_emotion("Sad", fixed_now - timedelta(hours=1)))
    care_store.record_pulse_check("student-1", MoodSample.from_emotion("Tired", fixed_now - timedelta(days=9)))
    care_store.record_pulse_check("student-2", MoodSample.from_emotion("Proud", fixed_now))

    samples = await care_store.fetch_mood_samples("student-1", fixed_now - timedelta(days=7))
    latest = await care_store.fetch_latest_pulse_check("student-1")

    assert [s.sentiment_value for s in samples] == [1, 6]
    assert samples[0].emotion_label == "Sad"
    assert samples[0].timestamp == fixed_now - timedelta(hours=1)
    assert latest == fixed_now - timedelta(hours=1)
    assert await care_store.fetch_latest_pulse_check("student-9") is None


@pytest.mark.asyncio
async def test_open_alerts_exclude_acknowledged_and_old(care_store, fixed_now):
    recent = care_store.log_mood_alert("student-1", "class-1", "persistent_low", "high", fixed_now - timedelta(hours=5))
    acked = care_store.log_mood_alert("student-1", "class-1", "sudden_drop", "high", fixed_now - timedelta(days=1))
    care_store.log_mood_alert("student-1", "class-1", "volatility", "medium", fixed_now - timedelta(days=10))
    care_store.log_mood_alert("student-1", "class-2", "volatility", "medium", fixed_now)
    care_store.acknowledge_alert(acked)

    alerts = await care_store.fetch_open_alerts("student-1", "class-1", fixed_now - timedelta(days=7))

    assert [a.id for a in alerts] == [recent]


@pytest.mark.asyncio
async def test_intervention_history(care_store, fixed_now):
    empty = await care_store.fetch_intervention_history("student-1", "class-1")
    care_store.log_intervention("student-1", "class-1", "check_in", fixed_now - timedelta(days=3))
    care_store.log_intervention("student-1", "class-1", "counselor_referral", fixed_now - timedelta(days=1))

    history = await care_store.fetch_intervention_history("student-1", "class-1")

    assert empty.count == 0
    assert empty.last_date is None
    assert history.count == 2
    assert history.last_date == fixed_now - timedelta(days=1)


@pytest.mark.asyncio
async def test_academic_snapshot_upsert(care_store):
    care_store.upsert_academic_snapshot("student-5", "class-1", AcademicSnapshot(current_grade=62))
    care_store.upsert_academic_snapshot(
        "student-5", "class-1",
        AcademicSnapshot(current_grade=55, previous_grade=62, missing_assignments=5, participation_rate=60),
    )

    snapshot = await care_store.get_snapshot("student-5", "class-1")

    assert snapshot.current_grade == 55
    assert snapshot.previous_grade == 62
    assert snapshot.missing_assignments == 5
    assert await care_store.get_snapshot("student-5", "class-2") is None


@pytest.mark.asyncio
async def test_preferences_created_and_updated(care_store):
    assert await care_store.fetch_notification_preference("teacher-1") is None

    updated = await care_store.update_notification_preference(
        "teacher-1",
        {"notify_high_alerts": False, "enable_quiet_hours": True,
         "quiet_hours_start": "09:00", "quiet_hours_end": "17:00"},
    )
    stored = await care_store.fetch_notification_preference("teacher-1")

    assert updated.notify_high_alerts is False
    assert stored == updated
    assert stored.notify_critical_alerts is True


@pytest.mark.asyncio
async def test_preference_update_rejects_bad_changes(care_store):
    with pytest.raises(PreferenceError):
        await care_store.update_notification_preference("teacher-1", {"favorite_color": "blue"})
    with pytest.raises(PreferenceError):
        await care_store.update_notification_preference("teacher-1", {"user_id": "teacher-2"})
    with pytest.raises(PreferenceError):
        await care_store.update_notification_preference("teacher-1", {"quiet_hours_start": "7pm"})

    stored = await care_store.fetch_notification_preference("teacher-1")
    assert stored.quiet_hours_start is None


@pytest.mark.asyncio
async def test_persisted_notifications(care_store):
    first = CareNotification(user_id="teacher-1", title="Care alert: Noah", message="Academic concerns")
    await care_store.persist_notification(first)
    await care_store.persist_notification(
        CareNotification(user_id="teacher-2", title="Care alert: Liam", message="Emotional concerns")
    )

    notifications = care_store.get_notifications("teacher-1")

    assert len(notifications) == 1
    assert notifications[0].title == "Care alert: Noah"
    assert notifications[0].is_read is False
    assert notifications[0].id is not None


@pytest.mark.asyncio
async def test_notification_inbox(care_store):
    first = await care_store.persist_notification(
        CareNotification(user_id="teacher-1", title="Care alert: Noah", message="Academic concerns")
    )
    second = await care_store.persist_notification(
        CareNotification(user_id="teacher-1", title="Care alert: Sophia", message="Emotional concerns")
    )
    foreign = await care_store.persist_notification(
        CareNotification(user_id="teacher-2", title="Care alert: Liam", message="Emotional concerns")
    )

    assert care_store.get_unread_count("teacher-1") == 2
    assert care_store.mark_notification_read(first, "teacher-1") is True
    assert care_store.mark_notification_read(foreign, "teacher-1") is False
    assert care_store.get_unread_count("teacher-1") == 1
    assert [n.id for n in care_store.get_notifications("teacher-1", unread_only=True)] == [second]

    assert care_store.mark_all_notifications_read("teacher-1") == 1
    assert care_store.get_unread_count("teacher-1") == 0
    assert care_store.get_unread_count("teacher-2") == 1

    assert care_store.delete_notification(second, "teacher-1") is True
    assert care_store.delete_notification(second, "teacher-1") is False
    assert care_store.delete_notification(foreign, "teacher-1") is False
    assert [n.id for n in care_store.get_notifications("teacher-1")] == [first]


def test_alert_lookup_and_active_pairs(care_store, fixed_now):
    care_store.log_mood_alert("student-1", "class-1", "persistent_low", "critical", fixed_now - timedelta(hours=2))
    care_store.record_pulse_check("student-1", MoodSample.from_emotion("Sad", fixed_now), class_id="class-1")
    care_store.record_pulse_check("student-1", MoodSample.from_emotion("Sad", fixed_now), class_id="class-1")
    care_store.record_pulse_check("student-2", MoodSample.from_emotion("Happy", fixed_now - timedelta(days=40)),
                                  class_id="class-1")
    care_store.record_pulse_check("student-3", MoodSample.from_emotion("Happy", fixed_now))

    since_midnight = fixed_now.replace(hour=0)
    assert care_store.has_alert_since("student-1", "class-1", "persistent_low", since_midnight) is True
    assert care_store.has_alert_since("student-1", "class-1", "sudden_drop", since_midnight) is False
    assert care_store.has_alert_since("student-1", "class-1", "persistent_low", fixed_now) is False
    assert care_store.active_pulse_pairs(fixed_now - timedelta(days=30)) == [("student-1", "class-1")]


def test_clear_student_activity(care_store, fixed_now):
    care_store.record_pulse_check("student-1", MoodSample.from_emotion("Sad", fixed_now))
    care_store.record_pulse_check("student-2", MoodSample.from_emotion("Sad", fixed_now))
    care_store.log_mood_alert("student-1", "class-1", "persistent_low", "critical", fixed_now)
    care_store.log_intervention("student-1", "class-1", "check_in", fixed_now)

    care_store.clear_student_activity(["student-1"])

    assert care_store.active_pulse_pairs(fixed_now - timedelta(days=1)) == []
    assert care_store.has_alert_since("student-1", "class-1", "persistent_low", fixed_now - timedelta(days=1)) is False
    with care_store._get_connection() as conn:
        remaining = conn.execute("SELECT user_id FROM pulse_checks").fetchall()
        interventions = conn.execute("SELECT COUNT(*) FROM intervention_logs").fetchone()[0]
    assert [row["user_id"] for row in remaining] == ["student-2"]
    assert interventions == 0
