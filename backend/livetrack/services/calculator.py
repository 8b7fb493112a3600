"""
Proximity & ETA calculator.

Pure functions: distance to the reference point, ring classification and
arrival estimate for a single sample. Nothing here touches session state.
"""

import math
from datetime import datetime, timedelta
from typing import Optional, Sequence

from livetrack.config import TrackingConfig
from livetrack.errors import ComputationError
from livetrack.models.sample import LocationSample, ReferencePoint
from livetrack.models.tracking import (
    DEFAULT_RING_THRESHOLDS,
    ProximityResult,
    ProximityRing,
    RingThreshold,
)
from livetrack.utils.geo import haversine_distance
from livetrack.utils.timeutils import ensure_utc, utc_now


DEFAULT_ASSUMED_SPEED_MPS = 8.33
DEFAULT_MIN_SPEED_FLOOR_MPS = 0.5

SPEED_SOURCE_REPORTED = "reported"
SPEED_SOURCE_ASSUMED = "assumed"


def classify_ring(
    distance_meters: float,
    ring_thresholds: Sequence[RingThreshold] = DEFAULT_RING_THRESHOLDS,
) -> ProximityRing:
    """
    Bucket a distance into a proximity ring.

    Thresholds are scanned in ascending order; the first whose bound is not
    exceeded wins. Beyond every bound the distance is FAR.
    """
    for threshold in ring_thresholds:
        if threshold.max_meters is None or distance_meters <= threshold.max_meters:
            return threshold.ring
    return ProximityRing.FAR


def ring_color(
    ring: ProximityRing,
    ring_thresholds: Sequence[RingThreshold] = DEFAULT_RING_THRESHOLDS,
) -> Optional[str]:
    for threshold in ring_thresholds:
        if threshold.ring is ring:
            return threshold.color
    return None


def select_speed(
    reported_speed: Optional[float],
    assumed_speed_mps: float = DEFAULT_ASSUMED_SPEED_MPS,
    min_speed_floor_mps: float = DEFAULT_MIN_SPEED_FLOOR_MPS,
) -> tuple[float, str]:
    """
    Pick the speed used for the ETA.

    The reported speed is trusted only above the floor; a stationary or
    crawling device would otherwise produce an unbounded ETA.

    Returns:
        Tuple of (speed in m/s, speed source)
    """
    if (
        reported_speed is not None
        and math.isfinite(reported_speed)
        and reported_speed > min_speed_floor_mps
    ):
        return float(reported_speed), SPEED_SOURCE_REPORTED
    return float(assumed_speed_mps), SPEED_SOURCE_ASSUMED


def estimate_eta_seconds(distance_meters: float, speed_mps: float) -> float:
    if distance_meters == 0:
        return 0.0
    return distance_meters / speed_mps


def evaluate(
    sample: LocationSample,
    reference: ReferencePoint,
    ring_thresholds: Sequence[RingThreshold] = DEFAULT_RING_THRESHOLDS,
    assumed_speed_mps: float = DEFAULT_ASSUMED_SPEED_MPS,
    *,
    min_speed_floor_mps: float = DEFAULT_MIN_SPEED_FLOOR_MPS,
    now: Optional[datetime] = None,
) -> ProximityResult:
    """
    Compute distance, proximity ring and estimated arrival for a sample.

    Args:
        sample: Current position
        reference: Fixed point the distance is measured against
        ring_thresholds: Ascending ring bounds
        assumed_speed_mps: Fallback speed when the sample has no usable speed
        min_speed_floor_mps: Reported speeds at or below this are ignored
        now: Evaluation time (defaults to current UTC time)

    Returns:
        ProximityResult

    Raises:
        ComputationError: On non-finite coordinates or a non-positive
            assumed speed.
    """
    coords = (sample.latitude, sample.longitude, reference.latitude, reference.longitude)
    if not all(isinstance(v, (int, float)) and math.isfinite(v) for v in coords):
        raise ComputationError(f"Non-finite coordinates: {coords}")
    if not math.isfinite(assumed_speed_mps) or assumed_speed_mps <= 0:
        raise ComputationError(f"Assumed speed must be positive: {assumed_speed_mps}")

    now = utc_now() if now is None else ensure_utc(now)

    distance = haversine_distance(
        sample.latitude, sample.longitude,
        reference.latitude, reference.longitude,
    )
    ring = classify_ring(distance, ring_thresholds)

    speed, speed_source = select_speed(sample.speed, assumed_speed_mps, min_speed_floor_mps)
    eta_seconds = estimate_eta_seconds(distance, speed)

    try:
        estimated_arrival = now + timedelta(seconds=eta_seconds)
    except OverflowError as exc:
        raise ComputationError(f"ETA out of range: {eta_seconds} s") from exc

    return ProximityResult(
        sample=sample,
        distance_meters=distance,
        ring=ring,
        eta_seconds=eta_seconds,
        estimated_arrival=estimated_arrival,
        effective_speed_mps=speed,
        speed_source=speed_source,
        computed_at=now,
        reference=reference,
    )


def evaluate_with_config(
    sample: LocationSample,
    reference: ReferencePoint,
    config: TrackingConfig,
    now: Optional[datetime] = None,
) -> ProximityResult:
    """
    Evaluate a sample using thresholds and speeds from a TrackingConfig.

    The reference point's own ring table, if it has one, takes precedence.
    """
    return evaluate(
        sample,
        reference,
        config.ring_thresholds_for(reference),
        config.assumed_speed_mps,
        min_speed_floor_mps=config.min_speed_floor_mps,
        now=now,
    )
