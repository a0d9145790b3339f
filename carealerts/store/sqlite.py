"""
CareStore: SQLite + WAL mode store for classes, pulse checks, academic
snapshots, alerts, interventions and notification preferences.
"""

import asyncio
import sqlite3
import json
import uuid
from pathlib import Path
from typing import Optional, Dict, Any, List, Tuple
from datetime import datetime, timezone
from contextlib import contextmanager

from carealerts.detection.models import (
    AcademicSnapshot,
    ClassInfo,
    Enrollment,
    InterventionHistory,
    MoodSample,
    OpenAlert,
)
from carealerts.notifications.gate import default_preference
from carealerts.notifications.models import CareNotification, EmailMessage, NotificationPreference
from carealerts.providers.base import (
    AcademicDataProvider,
    CareDataSource,
    NotificationSink,
    PreferenceStore,
)
from carealerts.shared.config import settings
from carealerts.shared.exceptions import DataSourceError, PreferenceError
from carealerts.shared.logging import get_logger

logger = get_logger(__name__)


def _to_iso(value: datetime) -> str:
    """Store timestamps as UTC ISO-8601 so string comparison orders them."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_sample(row: sqlite3.Row) -> MoodSample:
    return MoodSample(
        timestamp=_from_iso(row["created_at"]),
        sentiment_value=row["sentiment_value"],
        emotion_label=row["emotion"] or "",
    )


class CareStore(CareDataSource, AcademicDataProvider, PreferenceStore, NotificationSink):
    """SQLite-backed collaborator for the detection engine and notification gate."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path or settings.store.db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_database()

    def _init_database(self):
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")

            conn.executescript("""
                CREATE TABLE IF NOT EXISTS classes (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    teacher_id TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS class_enrollments (
                    class_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    display_name TEXT,
                    status TEXT NOT NULL DEFAULT 'active',
                    enrolled_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (class_id, user_id),
                    FOREIGN KEY (class_id) REFERENCES classes(id)
                );

                CREATE TABLE IF NOT EXISTS pulse_checks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    class_id TEXT,
                    sentiment_value INTEGER NOT NULL CHECK (sentiment_value BETWEEN 1 AND 6),
                    emotion TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS academic_snapshots (
                    user_id TEXT NOT NULL,
                    class_id TEXT NOT NULL,
                    current_grade REAL NOT NULL,
                    previous_grade REAL,
                    missing_assignments INTEGER DEFAULT 0,
                    late_assignments INTEGER DEFAULT 0,
                    participation_rate REAL DEFAULT 100,
                    as_of TEXT,
                    PRIMARY KEY (user_id, class_id)
                );

                CREATE TABLE IF NOT EXISTS mood_alert_logs (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    class_id TEXT NOT NULL,
                    alert_type TEXT NOT NULL,
                    severity TEXT NOT NULL,
                    sentiment_value REAL,
                    is_acknowledged BOOLEAN DEFAULT 0,
                    alert_date TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS intervention_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    class_id TEXT NOT NULL,
                    teacher_id TEXT,
                    intervention_type TEXT NOT NULL,
                    notes TEXT,
                    intervention_date TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS notification_preferences (
                    user_id TEXT PRIMARY KEY,
                    preference_json TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS notifications (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    notification_type TEXT NOT NULL,
                    title TEXT NOT NULL,
                    message TEXT NOT NULL,
                    link_url TEXT,
                    student_id TEXT,
                    class_id TEXT,
                    alert_id TEXT,
                    severity TEXT,
                    is_read BOOLEAN DEFAULT 0,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS email_outbox (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    recipient_id TEXT NOT NULL,
                    message_json TEXT NOT NULL,
                    sent BOOLEAN DEFAULT 0,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_classes_teacher ON classes(teacher_id);
                CREATE INDEX IF NOT EXISTS idx_pulse_user_time ON pulse_checks(user_id, created_at);
                CREATE INDEX IF NOT EXISTS idx_alerts_student ON mood_alert_logs(user_id, class_id);
                CREATE INDEX IF NOT EXISTS idx_interventions_student ON intervention_logs(user_id, class_id);
                CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id);
                CREATE INDEX IF NOT EXISTS idx_outbox_sent ON email_outbox(sent);
            """)

            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Get database connection with proper error handling."""
        conn = sqlite3.connect(str(self.db_path), timeout=settings.store.busy_timeout_seconds)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise DataSourceError(f"Care store query failed: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Writers used by seeding, the check-in UI and the teacher dashboard
    # ------------------------------------------------------------------

    def add_class(self, class_id: str, name: str, teacher_id: str):
        with self._get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO classes (id, name, teacher_id) VALUES (?, ?, ?)",
                (class_id, name, teacher_id)
            )

    def enroll(
        self,
        class_id: str,
        user_id: str,
        display_name: Optional[str] = None,
        status: str = "active"
    ):
        with self._get_connection() as conn:
            conn.execute(
                """INSERT OR REPLACE INTO class_enrollments (class_id, user_id, display_name, status)
                   VALUES (?, ?, ?, ?)""",
                (class_id, user_id, display_name, status)
            )

    def record_pulse_check(
        self,
        user_id: str,
        sample: MoodSample,
        class_id: Optional[str] = None
    ) -> int:
        """Record a pulse check; samples are immutable once written."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """INSERT INTO pulse_checks (user_id, class_id, sentiment_value, emotion, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (user_id, class_id, sample.sentiment_value, sample.emotion_label, _to_iso(sample.timestamp))
            )
            return cursor.lastrowid

    def upsert_academic_snapshot(self, user_id: str, class_id: str, snapshot: AcademicSnapshot):
        with self._get_connection() as conn:
            conn.execute(
                """INSERT OR REPLACE INTO academic_snapshots
                   (user_id, class_id, current_grade, previous_grade, missing_assignments,
                    late_assignments, participation_rate, as_of)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    user_id,
                    class_id,
                    snapshot.current_grade,
                    snapshot.previous_grade,
                    snapshot.missing_assignments,
                    snapshot.late_assignments,
                    snapshot.participation_rate,
                    _to_iso(snapshot.as_of) if snapshot.as_of else None,
                )
            )

    def log_mood_alert(
        self,
        user_id: str,
        class_id: str,
        alert_type: str,
        severity: str,
        alert_date: datetime,
        sentiment_value: Optional[float] = None,
        alert_id: Optional[str] = None
    ) -> str:
        alert_id = alert_id or str(uuid.uuid4())
        with self._get_connection() as conn:
            conn.execute(
                """INSERT INTO mood_alert_logs
                   (id, user_id, class_id, alert_type, severity, sentiment_value, alert_date)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (alert_id, user_id, class_id, alert_type, severity, sentiment_value, _to_iso(alert_date))
            )
        return alert_id

    def acknowledge_alert(self, alert_id: str):
        with self._get_connection() as conn:
            conn.execute(
                "UPDATE mood_alert_logs SET is_acknowledged = 1 WHERE id = ?",
                (alert_id,)
            )

    def log_intervention(
        self,
        user_id: str,
        class_id: str,
        intervention_type: str,
        intervention_date: datetime,
        teacher_id: Optional[str] = None,
        notes: Optional[str] = None
    ) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """INSERT INTO intervention_logs
                   (user_id, class_id, teacher_id, intervention_type, notes, intervention_date)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (user_id, class_id, teacher_id, intervention_type, notes, _to_iso(intervention_date))
            )
            return cursor.lastrowid

    def get_notifications(self, user_id: str, unread_only: bool = False, limit: int = 50) -> List[CareNotification]:
        query = "SELECT * FROM notifications WHERE user_id = ?"
        if unread_only:
            query += " AND is_read = 0"
        query += " ORDER BY created_at DESC LIMIT ?"

        with self._get_connection() as conn:
            rows = conn.execute(query, (user_id, limit)).fetchall()

        return [
            CareNotification(
                **{**dict(row), "is_read": bool(row["is_read"]), "created_at": _from_iso(row["created_at"])}
            )
            for row in rows
        ]

    def enqueue_email(self, message: EmailMessage) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO email_outbox (recipient_id, message_json, created_at) VALUES (?, ?, ?)",
                (message.recipient_id, message.model_dump_json(), _now_iso())
            )
            return cursor.lastrowid

    def get_unsent_emails(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Outbox entries not yet handed to the mailer."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT id, recipient_id, message_json FROM email_outbox
                   WHERE sent = 0 ORDER BY id ASC LIMIT ?""",
                (limit,)
            ).fetchall()

        return [
            {"id": row["id"], "recipient_id": row["recipient_id"], "message": json.loads(row["message_json"])}
            for row in rows
        ]

    def mark_email_sent(self, email_id: int):
        with self._get_connection() as conn:
            conn.execute("UPDATE email_outbox SET sent = 1 WHERE id = ?", (email_id,))

    def get_unread_count(self, user_id: str) -> int:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS count FROM notifications WHERE user_id = ? AND is_read = 0",
                (user_id,)
            ).fetchone()
        return row["count"]

    def mark_notification_read(self, notification_id: str, user_id: str) -> bool:
        """Mark one of the user's notifications read; False if it is not theirs."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE notifications SET is_read = 1 WHERE id = ? AND user_id = ?",
                (notification_id, user_id)
            )
            return cursor.rowcount > 0

    def mark_all_notifications_read(self, user_id: str) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE notifications SET is_read = 1 WHERE user_id = ? AND is_read = 0",
                (user_id,)
            )
            return cursor.rowcount

    def delete_notification(self, notification_id: str, user_id: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM notifications WHERE id = ? AND user_id = ?",
                (notification_id, user_id)
            )
            return cursor.rowcount > 0

    def has_alert_since(self, user_id: str, class_id: str, alert_type: str, since: datetime) -> bool:
        with self._get_connection() as conn:
            row = conn.execute(
                """SELECT 1 FROM mood_alert_logs
                   WHERE user_id = ? AND class_id = ? AND alert_type = ? AND alert_date >= ?
                   LIMIT 1""",
                (user_id, class_id, alert_type, _to_iso(since))
            ).fetchone()
        return row is not None

    def active_pulse_pairs(self, since: datetime) -> List[Tuple[str, str]]:
        """Distinct (user_id, class_id) pairs with a class-bound pulse check since the cutoff."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT DISTINCT user_id, class_id FROM pulse_checks
                   WHERE class_id IS NOT NULL AND created_at >= ?
                   ORDER BY user_id ASC, class_id ASC""",
                (_to_iso(since),)
            ).fetchall()
        return [(row["user_id"], row["class_id"]) for row in rows]

    def fetch_class_mood_samples(self, user_id: str, class_id: str, since: datetime) -> List[MoodSample]:
        """Pulse checks for one class, most recent first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT sentiment_value, emotion, created_at FROM pulse_checks
                   WHERE user_id = ? AND class_id = ? AND created_at >= ?
                   ORDER BY created_at DESC, id DESC""",
                (user_id, class_id, _to_iso(since))
            ).fetchall()
        return [_row_to_sample(row) for row in rows]

    def clear_student_activity(self, user_ids: List[str]):
        """Remove pulse checks, alerts and interventions for the given students."""
        if not user_ids:
            return
        placeholders = ", ".join("?" for _ in user_ids)
        with self._get_connection() as conn:
            for table in ("pulse_checks", "mood_alert_logs", "intervention_logs"):
                conn.execute(f"DELETE FROM {table} WHERE user_id IN ({placeholders})", user_ids)

    # ------------------------------------------------------------------
    # CareDataSource
    #
    # sqlite3 blocks, so every collaborator method runs its query in a
    # worker thread and leaves the event loop free for timeouts.
    # ------------------------------------------------------------------

    async def fetch_teacher_classes(
        self,
        teacher_id: str,
        class_id: Optional[str] = None
    ) -> List[ClassInfo]:
        return await asyncio.to_thread(self._fetch_teacher_classes, teacher_id, class_id)

    def _fetch_teacher_classes(self, teacher_id: str, class_id: Optional[str]) -> List[ClassInfo]:
        query = "SELECT id, name FROM classes WHERE teacher_id = ?"
        params: List[Any] = [teacher_id]
        if class_id:
            query += " AND id = ?"
            params.append(class_id)
        query += " ORDER BY name ASC"

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [ClassInfo(id=row["id"], name=row["name"]) for row in rows]

    async def fetch_enrollments(self, class_id: str) -> List[Enrollment]:
        return await asyncio.to_thread(self._fetch_enrollments, class_id)

    def _fetch_enrollments(self, class_id: str) -> List[Enrollment]:
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT user_id, display_name FROM class_enrollments
                   WHERE class_id = ? AND status = 'active'
                   ORDER BY user_id ASC""",
                (class_id,)
            ).fetchall()
        return [Enrollment(user_id=row["user_id"], display_name=row["display_name"]) for row in rows]

    async def fetch_mood_samples(self, user_id: str, since: datetime) -> List[MoodSample]:
        return await asyncio.to_thread(self._fetch_mood_samples, user_id, since)

    def _fetch_mood_samples(self, user_id: str, since: datetime) -> List[MoodSample]:
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT sentiment_value, emotion, created_at FROM pulse_checks
                   WHERE user_id = ? AND created_at >= ?
                   ORDER BY created_at DESC, id DESC""",
                (user_id, _to_iso(since))
            ).fetchall()
        return [_row_to_sample(row) for row in rows]

    async def fetch_latest_pulse_check(self, user_id: str) -> Optional[datetime]:
        return await asyncio.to_thread(self._fetch_latest_pulse_check, user_id)

    def _fetch_latest_pulse_check(self, user_id: str) -> Optional[datetime]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT MAX(created_at) AS latest FROM pulse_checks WHERE user_id = ?",
                (user_id,)
            ).fetchone()
        return _from_iso(row["latest"]) if row else None

    async def fetch_open_alerts(
        self,
        user_id: str,
        class_id: str,
        since: datetime
    ) -> List[OpenAlert]:
        return await asyncio.to_thread(self._fetch_open_alerts, user_id, class_id, since)

    def _fetch_open_alerts(self, user_id: str, class_id: str, since: datetime) -> List[OpenAlert]:
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT id, alert_date FROM mood_alert_logs
                   WHERE user_id = ? AND class_id = ? AND is_acknowledged = 0
                     AND alert_date >= ?
                   ORDER BY alert_date DESC""",
                (user_id, class_id, _to_iso(since))
            ).fetchall()
        return [OpenAlert(id=row["id"], alert_date=_from_iso(row["alert_date"])) for row in rows]

    async def fetch_intervention_history(self, user_id: str, class_id: str) -> InterventionHistory:
        return await asyncio.to_thread(self._fetch_intervention_history, user_id, class_id)

    def _fetch_intervention_history(self, user_id: str, class_id: str) -> InterventionHistory:
        with self._get_connection() as conn:
            row = conn.execute(
                """SELECT COUNT(*) AS count, MAX(intervention_date) AS last_date
                   FROM intervention_logs WHERE user_id = ? AND class_id = ?""",
                (user_id, class_id)
            ).fetchone()
        return InterventionHistory(count=row["count"], last_date=_from_iso(row["last_date"]))

    # ------------------------------------------------------------------
    # AcademicDataProvider
    # ------------------------------------------------------------------

    async def get_snapshot(self, user_id: str, class_id: str) -> Optional[AcademicSnapshot]:
        return await asyncio.to_thread(self._get_snapshot, user_id, class_id)

    def _get_snapshot(self, user_id: str, class_id: str) -> Optional[AcademicSnapshot]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM academic_snapshots WHERE user_id = ? AND class_id = ?",
                (user_id, class_id)
            ).fetchone()
        if row is None:
            return None
        return AcademicSnapshot(
            current_grade=row["current_grade"],
            previous_grade=row["previous_grade"],
            missing_assignments=row["missing_assignments"],
            late_assignments=row["late_assignments"],
            participation_rate=row["participation_rate"],
            as_of=_from_iso(row["as_of"]),
        )

    # ------------------------------------------------------------------
    # PreferenceStore
    # ------------------------------------------------------------------

    async def fetch_notification_preference(self, user_id: str) -> Optional[NotificationPreference]:
        return await asyncio.to_thread(self._fetch_notification_preference, user_id)

    def _fetch_notification_preference(self, user_id: str) -> Optional[NotificationPreference]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT preference_json FROM notification_preferences WHERE user_id = ?",
                (user_id,)
            ).fetchone()
        if row is None:
            return None
        return NotificationPreference.model_validate_json(row["preference_json"])

    async def create_default_preference(self, user_id: str) -> NotificationPreference:
        preference = default_preference(user_id)
        await asyncio.to_thread(self._save_preference, preference)
        logger.info("Created default notification preferences", extra={"teacher_id": user_id})
        return preference

    async def update_notification_preference(
        self,
        user_id: str,
        changes: Dict[str, Any]
    ) -> NotificationPreference:
        current = await self.fetch_notification_preference(user_id)
        if current is None:
            current = await self.create_default_preference(user_id)

        rejected = (set(changes) - set(NotificationPreference.model_fields)) | ({"user_id"} & set(changes))
        if rejected:
            raise PreferenceError(f"Cannot update preference fields: {sorted(rejected)}")

        try:
            updated = NotificationPreference.model_validate({**current.model_dump(), **changes})
        except ValueError as e:
            raise PreferenceError(f"Invalid notification preference: {e}") from e

        await asyncio.to_thread(self._save_preference, updated)
        return updated

    def _save_preference(self, preference: NotificationPreference):
        with self._get_connection() as conn:
            conn.execute(
                """INSERT OR REPLACE INTO notification_preferences (user_id, preference_json, updated_at)
                   VALUES (?, ?, ?)""",
                (preference.user_id, preference.model_dump_json(), _now_iso())
            )

    # ------------------------------------------------------------------
    # NotificationSink
    # ------------------------------------------------------------------

    async def persist_notification(self, notification: CareNotification) -> str:
        return await asyncio.to_thread(self._persist_notification, notification)

    def _persist_notification(self, notification: CareNotification) -> str:
        notification_id = notification.id or str(uuid.uuid4())
        with self._get_connection() as conn:
            conn.execute(
                """INSERT INTO notifications
                   (id, user_id, notification_type, title, message, link_url, student_id,
                    class_id, alert_id, severity, is_read, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    notification_id,
                    notification.user_id,
                    notification.notification_type,
                    notification.title,
                    notification.message,
                    notification.link_url,
                    notification.student_id,
                    notification.class_id,
                    notification.alert_id,
                    notification.severity,
                    int(notification.is_read),
                    _to_iso(notification.created_at),
                )
            )
        return notification_id
