"""
Location sample model (device-format, validated).

Samples enter the engine through the ingestor, which normalizes the
optional fields before anything downstream sees them.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from livetrack.models.tracking import RingThreshold


@dataclass(frozen=True)
class LocationSample:
    """A single raw reading from a device."""

    latitude: float                       # degrees, -90..90
    longitude: float                      # degrees, -180..180
    accuracy: Optional[float] = None      # meters
    speed: Optional[float] = None         # m/s
    heading: Optional[float] = None       # degrees, 0=N, 90=E
    altitude: Optional[float] = None      # meters
    captured_at: Optional[datetime] = None

    @property
    def coordinates(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)


@dataclass(frozen=True)
class ReferencePoint:
    """
    Fixed geographic anchor (e.g. restaurant) distances are measured against.

    ring_thresholds, when set, replaces the configured ring table for
    sessions tracked against this point.
    """

    latitude: float
    longitude: float
    reference_id: Optional[str] = None
    name: Optional[str] = None
    ring_thresholds: Optional[tuple["RingThreshold", ...]] = None

    @property
    def coordinates(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)


@dataclass(frozen=True)
class AcceptedSample:
    """Outcome of a successful submit: the normalized sample and ingestion info."""

    session_id: str
    sample: LocationSample
    received_at: datetime
    within_min_interval: bool = False
