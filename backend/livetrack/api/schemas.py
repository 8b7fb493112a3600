"""
API schemas (Pydantic models) for the engine's external shapes.

Inbound: the device location update payload.
Outbound: the tracking snapshot polled by order-tracking views, and the
error body transports send back for rejected updates.
"""

import math
from datetime import datetime
from typing import Any, Optional, Sequence

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from livetrack.errors import TrackingError
from livetrack.models.sample import LocationSample, ReferencePoint
from livetrack.models.tracking import RingThreshold, TrackingSession


def _lenient_float(value: Any) -> Optional[float]:
    """Coerce to float, mapping blanks and junk to None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str) and value.strip() == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


# ============================================================================
# Inbound
# ============================================================================

class LocationUpdateRequest(BaseModel):
    """
    Location update sent by a device.

    Accepts the mobile client's field names (pedidoId, lat, lng, precision,
    velocidad, altitud, rumbo) as well as English ones. Only types are
    checked here; coordinate ranges are the ingestor's job.
    """

    session_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("session_id", "sessionId", "pedidoId", "order_id"),
    )
    latitude: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("latitude", "lat")
    )
    longitude: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("longitude", "lng", "lon")
    )
    accuracy: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("accuracy", "precision")
    )
    speed: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("speed", "velocidad")
    )
    altitude: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("altitude", "altitud")
    )
    heading: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("heading", "rumbo")
    )
    captured_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("captured_at", "capturedAt", "timestamp"),
    )

    @field_validator("session_id", mode="before")
    @classmethod
    def _session_id_to_str(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        return str(value)

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _no_bool_coordinates(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("coordinates must be numbers, not booleans")
        return value

    @field_validator("accuracy", "speed", "altitude", "heading", mode="before")
    @classmethod
    def _optional_number(cls, value: Any) -> Optional[float]:
        return _lenient_float(value)

    @field_validator("captured_at", mode="before")
    @classmethod
    def _optional_timestamp(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    def sample_fields(self) -> dict[str, Any]:
        """Fields of a LocationSample, unvalidated."""
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy": self.accuracy,
            "speed": self.speed,
            "heading": self.heading,
            "altitude": self.altitude,
            "captured_at": self.captured_at,
        }


# ============================================================================
# Outbound
# ============================================================================

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SampleResponse(_CamelModel):
    """Latest accepted position."""
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    speed: Optional[float] = None
    heading: Optional[float] = None
    altitude: Optional[float] = None
    captured_at: Optional[datetime] = None

    @classmethod
    def from_sample(cls, sample: LocationSample) -> "SampleResponse":
        return cls(
            latitude=sample.latitude,
            longitude=sample.longitude,
            accuracy=sample.accuracy,
            speed=sample.speed,
            heading=sample.heading,
            altitude=sample.altitude,
            captured_at=sample.captured_at,
        )


class ReferenceResponse(_CamelModel):
    """Reference point (restaurant) of a session."""
    latitude: float
    longitude: float
    reference_id: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_reference(cls, reference: ReferencePoint) -> "ReferenceResponse":
        return cls(
            latitude=reference.latitude,
            longitude=reference.longitude,
            reference_id=reference.reference_id,
            name=reference.name,
        )


class TrackingSnapshot(_CamelModel):
    """What order-tracking views poll for a session."""
    session_id: str
    status: str
    reference: ReferenceResponse

    distance_meters: Optional[float] = None
    distance_rounded_meters: Optional[int] = None   # whole meters, as shown to users
    ring: Optional[str] = None
    ring_color: Optional[str] = None
    eta_seconds: Optional[float] = None
    eta_minutes: Optional[int] = None
    estimated_arrival: Optional[datetime] = None
    latest_sample: Optional[SampleResponse] = None

    updated_at: datetime
    update_count: int = 0

    @classmethod
    def from_session(
        cls,
        session: TrackingSession,
        ring_thresholds: Sequence[RingThreshold] = (),
    ) -> "TrackingSnapshot":
        if session.reference.ring_thresholds is not None:
            ring_thresholds = session.reference.ring_thresholds

        color = None
        if session.latest_ring is not None:
            color = next(
                (t.color for t in ring_thresholds if t.ring is session.latest_ring),
                None,
            )

        distance = session.latest_distance_meters
        eta = session.latest_eta_seconds

        return cls(
            session_id=session.session_id,
            status=session.status.value,
            reference=ReferenceResponse.from_reference(session.reference),
            distance_meters=distance,
            distance_rounded_meters=int(round(distance)) if distance is not None else None,
            ring=session.latest_ring.value if session.latest_ring is not None else None,
            ring_color=color,
            eta_seconds=eta,
            eta_minutes=int(math.floor(eta / 60 + 0.5)) if eta is not None else None,
            estimated_arrival=session.estimated_arrival,
            latest_sample=(
                SampleResponse.from_sample(session.latest_sample)
                if session.latest_sample is not None else None
            ),
            updated_at=session.updated_at,
            update_count=session.update_count,
        )


# ============================================================================
# Error Schemas
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str
    code: Optional[str] = None
    session_id: Optional[str] = None

    @classmethod
    def from_error(cls, error: TrackingError) -> "ErrorResponse":
        return cls(detail=error.message, code=error.code, session_id=error.session_id)
