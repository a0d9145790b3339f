"""
Emotional signal analysis over a student's trailing week of pulse checks.
"""

import logging
import statistics
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Sequence

from carealerts.detection.models import EmotionalRiskVerdict, MoodSample, SentimentTrend
from carealerts.providers.base import CareDataSource
from carealerts.shared.config import DetectionConfig, settings
from carealerts.shared.logging import get_logger, log_with_context

logger = get_logger(__name__)


def _mean(values: Sequence[int]) -> float:
    return sum(values) / len(values)


def analyze_mood_samples(
    samples: Sequence[MoodSample],
    config: Optional[DetectionConfig] = None
) -> EmotionalRiskVerdict:
    """
    Detect emotional risk patterns in a pulse-check history.

    Args:
        samples: Pulse checks ordered most-recent-first
        config: Thresholds (defaults to global settings)

    Returns:
        EmotionalRiskVerdict; the neutral verdict when there are no samples
    """
    config = config or settings.detection
    verdict = EmotionalRiskVerdict(current_sentiment=config.neutral_sentiment)

    values = [s.sentiment_value for s in samples[:config.max_samples]]
    if not values:
        return verdict

    recent = values[:3]
    older = values[3:6]
    verdict.current_sentiment = _mean(recent)

    # Persistent low: the scan stops once a run of tier-1 check-ins qualifies
    run = 0
    for value in values:
        if value == 1:
            run += 1
            if run >= config.persistent_low_run:
                verdict.persistent_low = True
                verdict.days_at_risk = max(verdict.days_at_risk, run)
                break
        else:
            run = 0

    # Prolonged negative: most of the week in tiers 1-2
    low_count = sum(1 for v in values if v <= config.low_tier_max)
    if low_count > config.prolonged_negative_count:
        verdict.prolonged_negative = True
        verdict.days_at_risk = max(verdict.days_at_risk, low_count)

    # Sudden drop: tier 5-6 a few check-ins ago, tier 1-2 now
    if len(values) >= 3:
        recent_low = any(v <= config.low_tier_max for v in recent)
        older_high = any(v >= config.high_tier_min for v in older)
        if recent_low and older_high:
            verdict.sudden_drop = True
            verdict.days_at_risk = max(verdict.days_at_risk, 3)

    if len(values) >= config.volatility_min_samples:
        if statistics.pstdev(values) > config.volatility_threshold:
            verdict.high_volatility = True
            verdict.days_at_risk = max(verdict.days_at_risk, 7)

        # Older mean is over the samples present, not a fixed divisor of three
        recent_avg = _mean(recent)
        older_avg = _mean(older)
        if recent_avg > older_avg + config.trend_band:
            verdict.trend = SentimentTrend.IMPROVING
        elif recent_avg < older_avg - config.trend_band:
            verdict.trend = SentimentTrend.DECLINING

    return verdict


class EmotionalSignalAnalyzer:
    """Fetches a student's pulse checks and analyzes them."""

    def __init__(
        self,
        source: CareDataSource,
        config: Optional[DetectionConfig] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.source = source
        self.config = config or settings.detection
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def detect_emotional_risk(self, user_id: str, class_id: str) -> EmotionalRiskVerdict:
        """
        Assess emotional risk from the trailing window of pulse checks.

        Pulse checks are per student, so class_id only labels the log context.
        A failing source yields the neutral verdict.
        """
        since = self.clock() - timedelta(days=self.config.window_days)
        try:
            samples = await self.source.fetch_mood_samples(user_id, since)
        except Exception as e:
            log_with_context(
                logger,
                logging.ERROR,
                f"Mood samples unavailable: {e}",
                student_id=user_id,
                class_id=class_id,
                action="detect_emotional_risk",
            )
            return EmotionalRiskVerdict(current_sentiment=self.config.neutral_sentiment)

        return analyze_mood_samples(samples, self.config)
