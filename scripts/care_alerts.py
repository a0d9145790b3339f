"""
CLI entry point for Care Alerts: seed the demo school, log daily mood
alerts, print a teacher's at-risk roster, or run the care-alert
notification batch.
"""

import asyncio
import argparse
from datetime import datetime, timezone
from pathlib import Path

from carealerts.detection.demo import DEMO_TEACHER_ID, seed_demo_school
from carealerts.detection.models import sentiment_label
from carealerts.pipeline import CareAlertsPipeline
from carealerts.store.sqlite import CareStore
from carealerts.shared.config import settings
from carealerts.shared.logging import setup_logging


def print_roster(result):
    print("\n" + "=" * 50)
    print("At-Risk Roster")
    print("=" * 50)
    if result.timed_out:
        print("Roster build timed out, try again")
        return
    for student in result.students:
        mood = ""
        if student.emotional_risk is not None:
            mood = f", mood {sentiment_label(student.emotional_risk.current_sentiment)}"
        print(
            f"[{student.severity.value:>8}] {student.student_name} "
            f"({student.class_name}) {student.risk_type.value}, "
            f"{student.days_at_risk} days{mood}"
        )
    counts = result.counts
    print("-" * 50)
    print(f"Total: {counts.total}  Critical: {counts.critical}  High: {counts.high}  Medium: {counts.medium}")
    print(f"Emotional: {counts.emotional}  Academic: {counts.academic}  Cross-risk: {counts.cross_risk}")
    print("=" * 50)


def print_alerts(alerts):
    print("\n" + "=" * 50)
    print("Mood Alerts")
    print("=" * 50)
    for alert in alerts:
        status = "logged" if alert.created else f"failed: {alert.error}"
        print(
            f"[{alert.severity.value:>8}] {alert.user_id} ({alert.class_id}) "
            f"{alert.alert_type.value}, sentiment {alert.sentiment_value:.1f} {status}"
        )
    print("-" * 50)
    print(f"New alerts: {sum(1 for a in alerts if a.created)}")
    print("=" * 50)


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Care Alerts")
    parser.add_argument(
        "--db-path",
        type=Path,
        default=Path(settings.store.db_path),
        help="SQLite store path"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("seed", help="Load the demo school into the store")

    detect_parser = subparsers.add_parser("detect", help="Print a teacher's at-risk roster")
    detect_parser.add_argument("--teacher-id", default=DEMO_TEACHER_ID)
    detect_parser.add_argument("--class-id", default=None)

    notify_parser = subparsers.add_parser("notify", help="Send care alerts for a teacher's roster")
    notify_parser.add_argument("--teacher-id", default=DEMO_TEACHER_ID)

    alerts_parser = subparsers.add_parser("generate-alerts", help="Log today's mood alerts")
    alerts_parser.add_argument("--user-id", default=None, help="Only this student (requires --class-id)")
    alerts_parser.add_argument("--class-id", default=None)

    args = parser.parse_args()

    # Setup logging
    setup_logging()

    store = CareStore(args.db_path)

    if args.command == "seed":
        seed_demo_school(store, datetime.now(timezone.utc))
        print(f"Demo school loaded into {args.db_path} (teacher: {DEMO_TEACHER_ID})")
        return

    pipeline = CareAlertsPipeline(store=store)

    if args.command == "detect":
        result = await pipeline.build_roster(args.teacher_id, args.class_id)
        print_roster(result)
    elif args.command == "notify":
        stats = await pipeline.notify_teacher(args.teacher_id)
        print("\n" + "=" * 50)
        print("Care Alert Notifications")
        print("=" * 50)
        print(f"At-risk students: {stats['at_risk']}")
        print(f"Notified: {stats['notified']}")
        print(f"Suppressed: {stats['suppressed']}")
        print("=" * 50)
    elif args.command == "generate-alerts":
        if args.user_id:
            if not args.class_id:
                parser.error("--user-id requires --class-id")
            alerts = await pipeline.generate_alerts_for_student(args.user_id, args.class_id)
        else:
            alerts = await pipeline.generate_daily_alerts()
        print_alerts(alerts)


if __name__ == "__main__":
    asyncio.run(main())
