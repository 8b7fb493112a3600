"""
Tests for engine configuration.
"""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from livetrack.config import TrackingConfig, load_config_from_env
from livetrack.models.sample import ReferencePoint
from livetrack.models.tracking import ProximityRing, RingThreshold


class TestTrackingConfigDefaults:
    """Default values."""

    def test_defaults(self):
        config = TrackingConfig()

        assert config.assumed_speed_mps == 8.33
        assert config.min_speed_floor_mps == 0.5
        assert config.tracking_interval_ms == 10_000
        assert [t.ring for t in config.ring_thresholds] == [
            ProximityRing.NEAR, ProximityRing.MODERATE, ProximityRing.FAR
        ]
        assert [t.max_meters for t in config.ring_thresholds] == [100.0, 500.0, None]

    def test_min_interval_defaults_to_half_tracking_interval(self):
        config = TrackingConfig(tracking_interval_ms=8_000)
        assert config.effective_min_interval_ms == 4_000
        assert config.min_interval == timedelta(seconds=4)

    def test_explicit_min_interval(self):
        config = TrackingConfig(min_interval_ms=1_500)
        assert config.min_interval == timedelta(milliseconds=1_500)

    def test_retention_window(self):
        assert TrackingConfig(retention_window_ms=60_000).retention_window == timedelta(minutes=1)


class TestRingThresholdValidation:
    """Ring threshold tables must be ordered and well-formed."""

    def test_thresholds_from_dicts(self):
        config = TrackingConfig(ring_thresholds=[
            {"ring": "near", "max_meters": 50},
            {"ring": "far", "max_meters": None, "color": "red"},
        ])

        assert config.ring_thresholds[0] == RingThreshold(ProximityRing.NEAR, 50.0)
        assert config.ring_thresholds[1].color == "red"

    def test_rejects_descending_bounds(self):
        with pytest.raises(ValidationError):
            TrackingConfig(ring_thresholds=[
                RingThreshold(ProximityRing.NEAR, 500.0),
                RingThreshold(ProximityRing.MODERATE, 100.0),
            ])

    def test_rejects_unbounded_before_last(self):
        with pytest.raises(ValidationError):
            TrackingConfig(ring_thresholds=[
                RingThreshold(ProximityRing.NEAR, None),
                RingThreshold(ProximityRing.FAR, 500.0),
            ])

    def test_rejects_decreasing_severity(self):
        with pytest.raises(ValidationError):
            TrackingConfig(ring_thresholds=[
                RingThreshold(ProximityRing.FAR, 100.0),
                RingThreshold(ProximityRing.NEAR, 500.0),
            ])

    def test_rejects_empty(self):
        with pytest.raises(ValidationError):
            TrackingConfig(ring_thresholds=[])

    @pytest.mark.parametrize("field", ["assumed_speed_mps", "tracking_interval_ms"])
    def test_rejects_non_positive(self, field):
        with pytest.raises(ValidationError):
            TrackingConfig(**{field: 0})

    def test_frozen(self):
        config = TrackingConfig()
        with pytest.raises(ValidationError):
            config.assumed_speed_mps = 3.0

    def test_thresholds_stored_as_tuple(self):
        config = TrackingConfig(ring_thresholds=[{"ring": "near", "max_meters": 50}, {"ring": "far"}])

        assert isinstance(config.ring_thresholds, tuple)
        assert isinstance(TrackingConfig().ring_thresholds, tuple)

    def test_reference_rings_take_precedence(self):
        config = TrackingConfig()
        rings = (RingThreshold(ProximityRing.NEAR, 50.0), RingThreshold(ProximityRing.FAR))

        assert config.ring_thresholds_for(ReferencePoint(4.675, -74.055, ring_thresholds=rings)) == rings
        assert config.ring_thresholds_for(ReferencePoint(4.675, -74.055)) == config.ring_thresholds


class TestLoadConfigFromEnv:
    """Environment overrides for scripts."""

    def test_empty_environment_gives_defaults(self):
        assert load_config_from_env(environ={}) == TrackingConfig()

    def test_reads_scalars_and_rings(self):
        env = {
            "LIVETRACK_ASSUMED_SPEED_MPS": "4.5",
            "LIVETRACK_TRACKING_INTERVAL_MS": "5000",
            "LIVETRACK_RING_THRESHOLDS": '[{"ring": "near", "max_meters": 30}, {"ring": "far"}]',
            "OTHER_VAR": "ignored",
        }

        config = load_config_from_env(environ=env)

        assert config.assumed_speed_mps == 4.5
        assert config.tracking_interval_ms == 5000
        assert len(config.ring_thresholds) == 2
        assert config.ring_thresholds[1].max_meters is None

    def test_invalid_value_raises(self):
        with pytest.raises(ValidationError):
            load_config_from_env(environ={"LIVETRACK_ASSUMED_SPEED_MPS": "-3"})

    def test_malformed_ring_json_raises(self):
        with pytest.raises(ValidationError):
            load_config_from_env(environ={"LIVETRACK_RING_THRESHOLDS": "[{\"ring\": \"near\""})
