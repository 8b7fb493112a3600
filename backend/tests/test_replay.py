"""
Tests for track CSV parsing, replay and sample data generation.
"""

import io
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest
from numpy.testing import assert_allclose

from livetrack.config import TrackingConfig
from livetrack.errors import InvalidCoordinates
from livetrack.models.sample import AcceptedSample, ReferencePoint
from livetrack.models.tracking import ProximityRing, TrackingStatus
from livetrack.services.ingestor import PositionIngestor
from livetrack.services.replay import ReplayClock, parse_location_csv, replay_track
from livetrack.services.session_store import TrackingSessionStore
from livetrack.utils.geo import haversine_distances
from livetrack.utils.sample_data import generate_approach_track


START = datetime(2026, 3, 14, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def device_csv_content():
    """Track as exported from the courier app (Spanish field names)."""
    return """# courier export
time,lat,lng,precision,velocidad,rumbo,altitud
0,4.6800000,-74.0550000,5.0,8.0,180.0,2600
10,4.6780000,-74.0550000,5.0,7.5,180.0,2600
20,4.6760000,-74.0550000,,,,
30,999,-74.0550000,5.0,0.0,180.0,2600
"""


@pytest.fixture
def device_csv_file(device_csv_content, tmp_path):
    csv_file = tmp_path / "order_42.csv"
    csv_file.write_text(device_csv_content)
    return csv_file


@pytest.fixture
def pipeline():
    """Clock, store and ingestor sharing one replay clock."""
    clock = ReplayClock(START)
    config = TrackingConfig()
    store = TrackingSessionStore(config, clock)
    ingestor = PositionIngestor(store, config, clock)
    store.create_session("order-42", ReferencePoint(4.6750, -74.0550, reference_id="rest-1"))
    return clock, store, ingestor


class TestParseLocationCsv:
    """Tests for CSV parsing into canonical columns."""

    def test_spanish_columns(self, device_csv_file):
        frame = parse_location_csv(device_csv_file)

        assert list(frame.columns) == [
            "time", "latitude", "longitude", "accuracy", "speed", "heading", "altitude"
        ]
        assert len(frame) == 4
        assert frame["latitude"].iloc[0] == 4.68
        assert frame["speed"].iloc[1] == 7.5
        assert np.isnan(frame["speed"].iloc[2])

    def test_kph_speed_converted(self):
        content = io.StringIO("time,latitude,longitude,kph\n0,4.68,-74.055,36\n")

        frame = parse_location_csv(content)

        assert_allclose(frame["speed"].iloc[0], 10.0)

    def test_clock_times_normalized(self):
        content = io.StringIO("time,lat,lng\n12:00:05,4.68,-74.055\n12:00:15,4.67,-74.055\n")

        frame = parse_location_csv(content)

        assert frame["time"].tolist() == [0.0, 10.0]

    def test_epoch_ms_times(self):
        content = io.StringIO("epoch_ms,lat,lng\n1700000000000,4.68,-74.055\n1700000010000,4.67,-74.055\n")

        frame = parse_location_csv(content)

        assert frame["time"].tolist() == [0.0, 10.0]

    def test_blank_clock_time_is_nan(self):
        content = io.StringIO("time,lat,lng\n00:00:05,4.68,-74.055\n,4.67,-74.055\n00:00:25,4.66,-74.055\n")

        frame = parse_location_csv(content)

        assert frame["time"].iloc[0] == 0.0
        assert np.isnan(frame["time"].iloc[1])
        assert frame["time"].iloc[2] == 20.0

    def test_missing_time_column(self):
        with pytest.raises(ValueError):
            parse_location_csv(io.StringIO("lat,lng\n4.68,-74.055\n"))


class TestReplayTrack:
    """Tests for feeding a parsed track through the ingestor."""

    def test_replay_outcomes(self, device_csv_file, pipeline):
        clock, store, ingestor = pipeline
        frame = parse_location_csv(device_csv_file)

        outcomes = replay_track(ingestor, "order-42", frame, start=START, clock=clock)

        assert [type(o) for o in outcomes] == [
            AcceptedSample, AcceptedSample, AcceptedSample, InvalidCoordinates
        ]
        assert outcomes[1].sample.captured_at == START + timedelta(seconds=10)
        assert not any(o.within_min_interval for o in outcomes[:3])

        session = store.get("order-42")
        assert session.update_count == 3
        assert session.latest_ring is ProximityRing.MODERATE
        assert session.latest_sample.speed is None

    def test_replay_after_cancel(self, device_csv_file, pipeline):
        clock, store, ingestor = pipeline
        store.cancel("order-42")

        outcomes = replay_track(ingestor, "order-42", parse_location_csv(device_csv_file), start=START)

        assert all(not isinstance(o, AcceptedSample) for o in outcomes)
        assert store.get("order-42").status is TrackingStatus.CANCELLED


    def test_untimed_row_reuses_previous_time(self, pipeline):
        clock, store, ingestor = pipeline
        content = io.StringIO(
            "epoch_ms,lat,lng\n1700000000000,4.680,-74.055\n,4.678,-74.055\n1700000020000,4.676,-74.055\n"
        )

        outcomes = replay_track(ingestor, "order-42", parse_location_csv(content), start=START, clock=clock)

        assert all(isinstance(o, AcceptedSample) for o in outcomes)
        assert [o.sample.captured_at for o in outcomes] == [
            START, START, START + timedelta(seconds=20)
        ]
        assert outcomes[1].within_min_interval
        assert store.get("order-42").update_count == 3


class TestGenerateApproachTrack:
    """Tests for the synthetic approach generator."""

    def test_generated_track_approaches_reference(self, tmp_path):
        output = generate_approach_track(tmp_path / "approach.csv", seed=1)

        frame = parse_location_csv(output)
        distances = haversine_distances(
            frame["latitude"].values, frame["longitude"].values, 4.6750, -74.0550
        )

        assert output.exists()
        assert len(frame) > 10
        assert_allclose(distances[0], 1500.0, atol=20.0)
        assert distances[-1] < 1.0
        assert frame["time"].diff().dropna().eq(10.0).all()

    def test_generated_track_replays_to_arrival(self, tmp_path, pipeline):
        clock, store, ingestor = pipeline
        frame = parse_location_csv(generate_approach_track(tmp_path / "approach.csv", seed=2))

        outcomes = replay_track(ingestor, "order-42", frame, start=START, clock=clock)

        assert all(isinstance(o, AcceptedSample) for o in outcomes)
        session = store.get("order-42")
        assert session.latest_ring is ProximityRing.NEAR
        assert session.estimated_arrival == session.last_accepted_at
