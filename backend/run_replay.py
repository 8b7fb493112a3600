#!/usr/bin/env python3
"""
Replay a recorded (or generated) courier track through the tracking engine.

Usage:
    python run_replay.py [track_csv] --ref-lat LAT --ref-lon LON [options]

Examples:
    python run_replay.py                              # Generate and replay a sample approach
    python run_replay.py data/tracks/order_42.csv --ref-lat 4.675 --ref-lon -74.055
    python run_replay.py --assumed-speed 4.2          # Slower fallback speed
"""

import argparse
import logging
import sys
import tempfile
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent))

from livetrack.config import TrackingConfig
from livetrack.errors import TrackingError
from livetrack.models.sample import ReferencePoint
from livetrack.services.calculator import evaluate_with_config
from livetrack.services.ingestor import PositionIngestor
from livetrack.services.replay import ReplayClock, parse_location_csv, replay_track
from livetrack.services.session_store import init_store
from livetrack.utils.sample_data import generate_approach_track


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Live tracking replay")
    parser.add_argument(
        "track",
        nargs="?",
        default=None,
        help="CSV file with location samples (default: generate a sample approach)"
    )
    parser.add_argument("--ref-lat", type=float, default=4.6750, help="Reference latitude")
    parser.add_argument("--ref-lon", type=float, default=-74.0550, help="Reference longitude")
    parser.add_argument("--session", default="replay", help="Session id (default: replay)")
    parser.add_argument(
        "--assumed-speed",
        type=float,
        default=8.33,
        help="Fallback speed in m/s when samples carry none (default: 8.33)"
    )
    parser.add_argument(
        "--interval-ms",
        type=int,
        default=10_000,
        help="Tracking interval in milliseconds (default: 10000)"
    )
    parser.add_argument("--debug", "-d", action="store_true", help="Verbose logging")

    args = parser.parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    config = TrackingConfig(
        assumed_speed_mps=args.assumed_speed,
        tracking_interval_ms=args.interval_ms,
    )

    if args.track is None:
        track_path = Path(tempfile.mkdtemp()) / "approach.csv"
        generate_approach_track(
            track_path,
            reference_lat=args.ref_lat,
            reference_lon=args.ref_lon,
            interval_s=args.interval_ms / 1000,
            seed=7,
        )
        logger.info(f"Generated sample track: {track_path}")
    else:
        track_path = Path(args.track)
        if not track_path.exists():
            print(f"Track file does not exist: {track_path}")
            return 1

    frame = parse_location_csv(track_path)

    clock = ReplayClock()
    store = init_store(config, clock)
    ingestor = PositionIngestor(store, config, clock)
    store.create_session(
        args.session,
        ReferencePoint(args.ref_lat, args.ref_lon, reference_id="cli", name="Reference"),
    )

    outcomes = replay_track(ingestor, args.session, frame, start=clock(), clock=clock)

    reference = store.require(args.session).reference

    print(f"{'time':>8}  {'distance_m':>10}  {'ring':<9} {'eta_s':>8}")
    print("=" * 40)
    for index, outcome in enumerate(outcomes):
        t = float(frame["time"].iloc[index])
        if isinstance(outcome, TrackingError):
            print(f"{t:8.1f}  rejected: {outcome.code}")
            continue
        # The store keeps only the latest state; recompute for this row
        result = evaluate_with_config(outcome.sample, reference, config, now=outcome.received_at)
        print(
            f"{t:8.1f}  {result.distance_meters:10.1f}  "
            f"{result.ring.value:<9} {result.eta_seconds:8.1f}"
        )

    store.complete(args.session)
    snapshot = store.snapshot(args.session)
    print("=" * 40)
    print(snapshot.model_dump_json(by_alias=True, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
