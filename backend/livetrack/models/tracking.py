"""
Tracking data model.

Derived proximity state for one delivery:
- proximity rings with configurable thresholds
- per-sample proximity/ETA results
- immutable session snapshots owned by the session store
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from livetrack.models.sample import LocationSample, ReferencePoint


class ProximityRing(Enum):
    """Coarse distance bucket, ordered nearest to farthest."""

    NEAR = "near"
    MODERATE = "moderate"
    FAR = "far"

    @property
    def severity(self) -> int:
        return _RING_SEVERITY[self]


_RING_SEVERITY = {
    ProximityRing.NEAR: 0,
    ProximityRing.MODERATE: 1,
    ProximityRing.FAR: 2,
}


class TrackingStatus(Enum):
    """Lifecycle status of a tracking session."""

    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not TrackingStatus.ACTIVE


@dataclass(frozen=True)
class RingThreshold:
    """Upper bound of a proximity ring. max_meters=None means unbounded."""

    ring: ProximityRing
    max_meters: Optional[float] = None
    color: Optional[str] = None  # display hint for dispatch maps


DEFAULT_RING_THRESHOLDS: tuple[RingThreshold, ...] = (
    RingThreshold(ProximityRing.NEAR, 100.0, "#22c55e"),
    RingThreshold(ProximityRing.MODERATE, 500.0, "#f59e0b"),
    RingThreshold(ProximityRing.FAR, None, "#ef4444"),
)


@dataclass(frozen=True)
class ProximityResult:
    """Distance, ring and arrival estimate computed for one sample."""

    sample: LocationSample
    distance_meters: float
    ring: ProximityRing
    eta_seconds: float
    estimated_arrival: datetime
    effective_speed_mps: float
    speed_source: str          # "reported" or "assumed"
    computed_at: datetime
    reference: Optional[ReferencePoint] = None  # point the distance was measured against


@dataclass(frozen=True)
class TrackingSession:
    """
    Snapshot of one delivery's live tracking state.

    The store replaces the snapshot on every mutation; instances handed
    out to callers never change.
    """

    session_id: str
    reference: ReferencePoint
    status: TrackingStatus
    created_at: datetime
    updated_at: datetime

    latest_sample: Optional[LocationSample] = None
    latest_distance_meters: Optional[float] = None
    latest_ring: Optional[ProximityRing] = None
    latest_eta_seconds: Optional[float] = None
    estimated_arrival: Optional[datetime] = None

    last_accepted_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    update_count: int = 0

    @property
    def is_active(self) -> bool:
        return self.status is TrackingStatus.ACTIVE

    @property
    def has_position(self) -> bool:
        return self.latest_sample is not None
