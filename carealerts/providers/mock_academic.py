"""
In-memory academic provider keyed by (user_id, class_id).
"""

from typing import Dict, Optional, Tuple

from carealerts.detection.demo import DEMO_ACADEMIC_SNAPSHOTS
from carealerts.detection.models import AcademicSnapshot
from carealerts.providers.base import AcademicDataProvider


class MockAcademicProvider(AcademicDataProvider):
    """Serves snapshots from a fixed table (the demo dataset by default)."""

    def __init__(self, snapshots: Optional[Dict[Tuple[str, str], AcademicSnapshot]] = None):
        self.snapshots = dict(DEMO_ACADEMIC_SNAPSHOTS if snapshots is None else snapshots)

    def set_snapshot(self, user_id: str, class_id: str, snapshot: AcademicSnapshot):
        self.snapshots[(user_id, class_id)] = snapshot

    async def get_snapshot(self, user_id: str, class_id: str) -> Optional[AcademicSnapshot]:
        return self.snapshots.get((user_id, class_id))
