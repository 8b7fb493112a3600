"""
Position Ingestor - validates device samples and feeds the pipeline.

submit() is called on the device's update cadence (every tracking interval).
A sample is either accepted, evaluated and written to the session store,
or rejected with a typed TrackingError and the session left untouched.
"""

import math
from dataclasses import asdict
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import ValidationError

from livetrack.api.schemas import LocationUpdateRequest
from livetrack.config import TrackingConfig
from livetrack.errors import InvalidCoordinates, SessionNotActive, TrackingError
from livetrack.models.sample import AcceptedSample, LocationSample
from livetrack.services.calculator import evaluate_with_config
from livetrack.services.session_store import TrackingSessionStore
from livetrack.utils.geo import is_valid_latitude, is_valid_longitude, normalize_heading
from livetrack.utils.timeutils import Clock, ensure_utc, utc_now


RawSample = Union[LocationSample, LocationUpdateRequest, Mapping[str, Any]]


def _finite_or_none(value: Optional[float]) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return float(value)


def _non_negative_or_none(value: Optional[float]) -> Optional[float]:
    value = _finite_or_none(value)
    if value is None or value < 0:
        return None
    return value


class PositionIngestor:
    """Entry point for device location samples."""

    def __init__(
        self,
        store: TrackingSessionStore,
        config: Optional[TrackingConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self._store = store
        self._config = config if config is not None else store.config
        self._clock = clock if clock is not None else utc_now

    @property
    def store(self) -> TrackingSessionStore:
        return self._store

    def submit(self, session_id: str, raw_sample: RawSample) -> AcceptedSample:
        """
        Validate a sample and apply it to an active session.

        Args:
            session_id: Session (order) the device is reporting for
            raw_sample: LocationSample, LocationUpdateRequest or a payload mapping

        Returns:
            AcceptedSample with the normalized sample

        Raises:
            InvalidCoordinates: Latitude/longitude missing, malformed or out of range
            SessionNotActive: Session is unknown or no longer ACTIVE
        """
        received_at = self._clock()
        try:
            sample = self.normalize(raw_sample, received_at)
        except InvalidCoordinates as exc:
            exc.session_id = session_id
            raise

        session = self._store.get(session_id)
        if session is None or not session.is_active:
            raise SessionNotActive(f"Session is not active: {session_id}", session_id)

        within_min_interval = (
            session.last_accepted_at is not None
            and received_at - session.last_accepted_at < self._config.min_interval
        )

        result = evaluate_with_config(sample, session.reference, self._config, now=received_at)
        try:
            self._store.apply_update(session_id, result, received_at=received_at)
        except TrackingError as exc:
            # Closed, purged or re-created between the check above and the write
            raise SessionNotActive(f"Session is not active: {session_id}", session_id) from exc

        return AcceptedSample(
            session_id=session_id,
            sample=sample,
            received_at=received_at,
            within_min_interval=within_min_interval,
        )

    def submit_payload(self, payload: Union[LocationUpdateRequest, Mapping[str, Any]]) -> AcceptedSample:
        """Submit a device payload that names its own session (pedidoId)."""
        request = self._parse_request(payload)
        if not request.session_id:
            raise SessionNotActive("Payload does not name a session")
        return self.submit(request.session_id, request)

    def submit_many(
        self,
        session_id: str,
        samples: Iterable[RawSample],
    ) -> list[Union[AcceptedSample, TrackingError]]:
        """
        Submit samples in order, collecting each outcome.

        Rejections are returned in place rather than raised, so one bad
        sample does not stop a replay.
        """
        outcomes: list[Union[AcceptedSample, TrackingError]] = []
        for raw_sample in samples:
            try:
                outcomes.append(self.submit(session_id, raw_sample))
            except TrackingError as exc:
                outcomes.append(exc)
        return outcomes

    def normalize(self, raw_sample: RawSample, received_at: Optional[datetime] = None) -> LocationSample:
        """
        Validate coordinates and clean up optional fields.

        - negative or non-finite accuracy/speed are dropped
        - heading is wrapped into [0, 360)
        - a missing capture time defaults to the ingestion time

        Raises:
            InvalidCoordinates: If latitude/longitude are unusable
        """
        fields = self._sample_fields(raw_sample)
        latitude = fields.get("latitude")
        longitude = fields.get("longitude")

        if not isinstance(latitude, (int, float)) or isinstance(latitude, bool) \
                or not isinstance(longitude, (int, float)) or isinstance(longitude, bool):
            raise InvalidCoordinates(f"Missing or non-numeric coordinates: ({latitude}, {longitude})")
        if not (is_valid_latitude(latitude) and is_valid_longitude(longitude)):
            raise InvalidCoordinates(f"Coordinates out of range: ({latitude}, {longitude})")

        heading = _finite_or_none(fields.get("heading"))
        if heading is not None:
            heading = normalize_heading(heading)

        captured_at = fields.get("captured_at")
        if captured_at is None:
            captured_at = received_at if received_at is not None else self._clock()

        return LocationSample(
            latitude=float(latitude),
            longitude=float(longitude),
            accuracy=_non_negative_or_none(fields.get("accuracy")),
            speed=_non_negative_or_none(fields.get("speed")),
            heading=heading,
            altitude=_finite_or_none(fields.get("altitude")),
            captured_at=ensure_utc(captured_at),
        )

    def _sample_fields(self, raw_sample: RawSample) -> dict[str, Any]:
        if isinstance(raw_sample, LocationSample):
            return asdict(raw_sample)
        return self._parse_request(raw_sample).sample_fields()

    def _parse_request(self, payload: Union[LocationUpdateRequest, Mapping[str, Any]]) -> LocationUpdateRequest:
        if isinstance(payload, LocationUpdateRequest):
            return payload
        if not isinstance(payload, Mapping):
            raise InvalidCoordinates(f"Unsupported sample type: {type(payload).__name__}")
        try:
            return LocationUpdateRequest.model_validate(dict(payload))
        except ValidationError as exc:
            raise InvalidCoordinates(f"Malformed location payload: {exc.error_count()} errors") from exc
