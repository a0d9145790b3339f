"""
Pytest fixtures for Care Alerts tests.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Sequence
from unittest.mock import AsyncMock

import pytest

from carealerts.detection.models import InterventionHistory, MoodSample
from carealerts.store.sqlite import CareStore


@pytest.fixture
def fixed_now() -> datetime:
    """A winter afternoon, so US timezones are on standard time."""
    return datetime(2026, 1, 15, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_samples(fixed_now):
    """Build pulse checks from sentiment values, most recent first, one per day."""
    def _make(values: Sequence[int]) -> List[MoodSample]:
        return [
            MoodSample(timestamp=fixed_now - timedelta(days=i), sentiment_value=v)
            for i, v in enumerate(values)
        ]
    return _make


@pytest.fixture
def care_store(tmp_path) -> CareStore:
    """SQLite care store in a temp directory."""
    return CareStore(tmp_path / "carealerts.sqlite")


@pytest.fixture
def mock_source():
    """CareDataSource mock with no classes, no samples and empty side data."""
    mock = AsyncMock()
    mock.fetch_teacher_classes.return_value = []
    mock.fetch_enrollments.return_value = []
    mock.fetch_mood_samples.return_value = []
    mock.fetch_latest_pulse_check.return_value = None
    mock.fetch_open_alerts.return_value = []
    mock.fetch_intervention_history.return_value = InterventionHistory()
    return mock
