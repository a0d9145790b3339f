"""
Daily mood-alert generation.

Runs the emotional rules over each active student's check-ins for a class
and logs one mood alert per triggered rule per day. The logged alerts are
what the roster reports as open alerts.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from carealerts.detection.emotional import analyze_mood_samples
from carealerts.detection.models import EmotionalRiskVerdict, MoodSample, RiskSeverity
from carealerts.shared.config import DetectionConfig, settings
from carealerts.shared.exceptions import DataSourceError
from carealerts.shared.logging import get_logger, log_with_context

logger = get_logger(__name__)


class MoodAlertType(str, Enum):
    PERSISTENT_LOW = "persistent_low"
    PROLONGED_NEGATIVE = "prolonged_negative"
    SUDDEN_DROP = "sudden_drop"
    HIGH_VOLATILITY = "high_volatility"


ALERT_SEVERITY = {
    MoodAlertType.PERSISTENT_LOW: RiskSeverity.CRITICAL,
    MoodAlertType.SUDDEN_DROP: RiskSeverity.CRITICAL,
    MoodAlertType.PROLONGED_NEGATIVE: RiskSeverity.HIGH,
    MoodAlertType.HIGH_VOLATILITY: RiskSeverity.HIGH,
}


class GeneratedAlert(BaseModel):
    """Outcome of logging one mood alert."""
    user_id: str
    class_id: str
    alert_type: MoodAlertType
    severity: RiskSeverity
    sentiment_value: float
    alert_id: Optional[str] = None
    created: bool = True
    error: Optional[str] = None


def triggered_alerts(
    verdict: EmotionalRiskVerdict,
    values: Sequence[int]
) -> List[Tuple[MoodAlertType, float]]:
    """
    Alert types raised by a verdict, each with the sentiment it reports.

    Args:
        verdict: Result of analyze_mood_samples over the same check-ins
        values: Analyzed sentiment values, most recent first

    Returns:
        (alert type, sentiment value) pairs in rule order
    """
    alerts = []
    if verdict.persistent_low:
        alerts.append((MoodAlertType.PERSISTENT_LOW, verdict.current_sentiment))
    if verdict.prolonged_negative:
        alerts.append((MoodAlertType.PROLONGED_NEGATIVE, sum(values) / len(values)))
    if verdict.sudden_drop:
        alerts.append((MoodAlertType.SUDDEN_DROP, float(min(values[:3]))))
    if verdict.high_volatility:
        alerts.append((MoodAlertType.HIGH_VOLATILITY, float(values[0])))
    return alerts


class MoodAlertGenerator:
    """Logs mood alerts for students whose check-ins trip the emotional rules."""

    def __init__(
        self,
        store,
        config: Optional[DetectionConfig] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.store = store
        self.config = config or settings.detection
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def generate_daily_alerts(self) -> List[GeneratedAlert]:
        """Check every student with a recent class check-in."""
        now = self.clock()
        pairs = await asyncio.to_thread(
            self.store.active_pulse_pairs,
            now - timedelta(days=self.config.active_student_days),
        )

        results = []
        for user_id, class_id in pairs:
            try:
                results.extend(await self.generate_alerts_for_student(user_id, class_id, now=now))
            except DataSourceError as e:
                log_with_context(
                    logger,
                    logging.ERROR,
                    f"Error generating alerts: {e}",
                    student_id=user_id,
                    class_id=class_id,
                    action="generate_alerts",
                )

        log_with_context(
            logger,
            logging.INFO,
            f"Generated {sum(1 for r in results if r.created)} mood alerts for {len(pairs)} students",
            action="generate_daily_alerts",
        )
        return results

    async def generate_alerts_for_student(
        self,
        user_id: str,
        class_id: str,
        now: Optional[datetime] = None
    ) -> List[GeneratedAlert]:
        """
        Log alerts for one student in one class.

        A rule that already has an alert logged since midnight UTC is
        skipped, so reruns on the same day add nothing.
        """
        now = now or self.clock()
        samples: List[MoodSample] = await asyncio.to_thread(
            self.store.fetch_class_mood_samples,
            user_id,
            class_id,
            now - timedelta(days=self.config.window_days),
        )
        samples = samples[:self.config.max_samples]
        if not samples:
            return []

        verdict = analyze_mood_samples(samples, self.config)
        values = [s.sentiment_value for s in samples]
        day_start = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)

        results = []
        for alert_type, sentiment_value in triggered_alerts(verdict, values):
            exists = await asyncio.to_thread(
                self.store.has_alert_since, user_id, class_id, alert_type.value, day_start
            )
            if exists:
                continue

            alert = GeneratedAlert(
                user_id=user_id,
                class_id=class_id,
                alert_type=alert_type,
                severity=ALERT_SEVERITY[alert_type],
                sentiment_value=sentiment_value,
            )
            try:
                alert.alert_id = await asyncio.to_thread(
                    self.store.log_mood_alert,
                    user_id,
                    class_id,
                    alert_type.value,
                    alert.severity.value,
                    now,
                    sentiment_value,
                )
            except DataSourceError as e:
                alert.created = False
                alert.error = str(e)
                log_with_context(
                    logger,
                    logging.ERROR,
                    f"Error logging mood alert: {e}",
                    student_id=user_id,
                    class_id=class_id,
                    action="log_mood_alert",
                    alert_type=alert_type.value,
                )
            results.append(alert)

        return results
