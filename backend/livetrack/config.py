"""
Engine configuration.

All values are supplied by the embedding application. `load_config_from_env`
is a convenience for scripts; the engine itself never reads the environment.
"""

import math
import os
from datetime import timedelta
from typing import Any, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, Json, TypeAdapter, field_validator

from livetrack.models.sample import ReferencePoint
from livetrack.models.tracking import DEFAULT_RING_THRESHOLDS, RingThreshold


ENV_PREFIX = "LIVETRACK_"

# Scalar fields that may be overridden from the environment
_ENV_FIELDS = (
    "assumed_speed_mps",
    "min_speed_floor_mps",
    "tracking_interval_ms",
    "min_interval_ms",
    "retention_window_ms",
)

_JSON_VALUE = TypeAdapter(Json[Any])


def check_ring_thresholds(value: Sequence[RingThreshold]) -> tuple[RingThreshold, ...]:
    """
    Validate a ring threshold table.

    Bounds must ascend, ring severity must not decrease, and only the last
    entry may be unbounded.

    Raises:
        ValueError: If the table is empty or out of order
    """
    if not value:
        raise ValueError("at least one ring threshold is required")

    previous_max: Optional[float] = None
    previous_severity = -1
    for index, threshold in enumerate(value):
        if threshold.max_meters is None:
            if index != len(value) - 1:
                raise ValueError("only the last ring threshold may be unbounded")
        else:
            if not math.isfinite(threshold.max_meters) or threshold.max_meters < 0:
                raise ValueError(f"invalid max_meters: {threshold.max_meters}")
            if previous_max is not None and threshold.max_meters <= previous_max:
                raise ValueError("ring thresholds must be in ascending max_meters order")
            previous_max = threshold.max_meters

        if threshold.ring.severity < previous_severity:
            raise ValueError("ring severity must not decrease as distance grows")
        previous_severity = threshold.ring.severity

    return tuple(value)


class TrackingConfig(BaseModel):
    """Thresholds, speeds and intervals used by the ingestor, calculator and store."""

    model_config = ConfigDict(frozen=True)

    ring_thresholds: tuple[RingThreshold, ...] = DEFAULT_RING_THRESHOLDS
    assumed_speed_mps: float = Field(default=8.33, gt=0)      # ~30 km/h
    min_speed_floor_mps: float = Field(default=0.5, ge=0)
    tracking_interval_ms: int = Field(default=10_000, gt=0)
    min_interval_ms: Optional[int] = Field(default=None, ge=0)  # None -> half the tracking interval
    retention_window_ms: int = Field(default=3_600_000, ge=0)

    @field_validator("ring_thresholds")
    @classmethod
    def _check_ring_thresholds(cls, value: tuple[RingThreshold, ...]) -> tuple[RingThreshold, ...]:
        return check_ring_thresholds(value)

    @property
    def effective_min_interval_ms(self) -> float:
        if self.min_interval_ms is not None:
            return float(self.min_interval_ms)
        return self.tracking_interval_ms / 2

    @property
    def min_interval(self) -> timedelta:
        return timedelta(milliseconds=self.effective_min_interval_ms)

    @property
    def retention_window(self) -> timedelta:
        return timedelta(milliseconds=self.retention_window_ms)

    def ring_thresholds_for(self, reference: ReferencePoint) -> tuple[RingThreshold, ...]:
        """Rings of a reference point, falling back to the global table."""
        if reference.ring_thresholds is not None:
            return reference.ring_thresholds
        return self.ring_thresholds


def load_config_from_env(
    prefix: str = ENV_PREFIX,
    environ: Optional[Mapping[str, str]] = None,
) -> TrackingConfig:
    """
    Build a TrackingConfig from environment variables.

    Scalars are read from e.g. LIVETRACK_ASSUMED_SPEED_MPS; ring thresholds
    from LIVETRACK_RING_THRESHOLDS as a JSON list of
    {"ring", "max_meters", "color"} objects. Unset variables keep defaults.

    Raises:
        pydantic.ValidationError: If any supplied value is invalid, including
            malformed ring threshold JSON.
    """
    env = os.environ if environ is None else environ
    values: dict = {}

    for name in _ENV_FIELDS:
        raw = env.get(f"{prefix}{name.upper()}")
        if raw is not None and raw.strip() != "":
            values[name] = raw.strip()

    raw_rings = env.get(f"{prefix}RING_THRESHOLDS")
    if raw_rings:
        values["ring_thresholds"] = _JSON_VALUE.validate_python(raw_rings)

    return TrackingConfig.model_validate(values)
