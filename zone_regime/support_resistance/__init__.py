"""
Support/Resistance zone detection and maintenance

Pivot extraction, zone scoring, merging and bar-by-bar state transitions.
"""

from .zone import Zone, ZoneCandidate, ZoneEvent, ZoneEventType, LevelType, create_zone
from .scoring import ZoneStrengthScorer
from .detector import PivotDetector
from .zone_store import ZoneStore

__all__ = [
    "Zone",
    "ZoneCandidate",
    "ZoneEvent",
    "ZoneEventType",
    "LevelType",
    "create_zone",
    "ZoneStrengthScorer",
    "PivotDetector",
    "ZoneStore"
]
