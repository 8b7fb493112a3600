"""
Recorded track replay.

Loads location samples from CSV (as exported by the courier app or
generated by livetrack.utils.sample_data) and feeds them through a
PositionIngestor as if they arrived live.
"""

import io
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd

from livetrack.errors import TrackingError
from livetrack.models.sample import AcceptedSample
from livetrack.services.ingestor import PositionIngestor
from livetrack.utils.timeutils import ensure_utc, utc_now


logger = logging.getLogger(__name__)


# Column name mappings - the mobile client posts Spanish field names
COLUMN_MAPPINGS = {
    "time": ["time", "Time", "timestamp", "Timestamp", "t", "time_s"],
    "time_ms": ["time_ms", "timestamp_ms", "epoch_ms"],
    "latitude": ["latitude", "Latitude", "lat", "Lat", "LAT"],
    "longitude": ["longitude", "Longitude", "lng", "lon", "Lon", "LON", "Long"],
    "accuracy": ["accuracy", "Accuracy", "precision", "gps_accuracy"],
    "speed_ms": ["speed", "Speed", "speed_ms", "Speed (m/s)", "velocidad"],
    "speed_kph": ["speed_kph", "kph", "KPH", "Speed (km/h)"],
    "heading": ["heading", "Heading", "bearing", "rumbo"],
    "altitude": ["altitude", "Altitude", "alt", "altitud"],
}

CANONICAL_COLUMNS = ["time", "latitude", "longitude", "accuracy", "speed", "heading", "altitude"]

KPH_TO_MS = 1 / 3.6


def _map_columns(columns: list[str]) -> dict[str, Optional[str]]:
    col_map: dict[str, Optional[str]] = {}
    for std_name, variants in COLUMN_MAPPINGS.items():
        col_map[std_name] = None
        for variant in variants:
            if variant in columns:
                col_map[std_name] = variant
                break
    return col_map


def _numeric(df: pd.DataFrame, col: Optional[str]) -> np.ndarray:
    if col is None:
        return np.full(len(df), np.nan, dtype=np.float64)
    return pd.to_numeric(df[col], errors="coerce").values.astype(np.float64)


def _clock_to_seconds(value) -> float:
    """h:m:s (or m:s) string to seconds; NaN if blank or unparseable."""
    if not isinstance(value, str):
        return np.nan
    seconds = 0.0
    try:
        for part in value.split(":"):
            seconds = seconds * 60 + float(part)
    except ValueError:
        return np.nan
    return seconds


def _parse_time(df: pd.DataFrame, col_map: dict[str, Optional[str]]) -> np.ndarray:
    """Seconds from the first timed sample. Missing times are NaN."""
    if col_map["time_ms"] is not None:
        times = _numeric(df, col_map["time_ms"]) / 1000.0
    elif col_map["time"] is not None:
        values = df[col_map["time"]].values
        first = next((v for v in values if isinstance(v, str)), None)
        if first is not None and ":" in first:
            times = np.array([_clock_to_seconds(t) for t in values], dtype=np.float64)
        else:
            times = _numeric(df, col_map["time"])
    else:
        raise ValueError("No time column found in CSV")

    timed = times[np.isfinite(times)]
    if len(timed) == 0:
        return times
    return times - timed[0]


def parse_location_csv(source: Union[Path, str, io.StringIO]) -> pd.DataFrame:
    """
    Parse a location CSV into a canonical DataFrame.

    Args:
        source: Path to a CSV file, or a text buffer

    Returns:
        DataFrame with columns time (s from start), latitude, longitude,
        accuracy, speed (m/s), heading, altitude. Missing values are NaN.

    Raises:
        ValueError: If there is no time column
    """
    df = pd.read_csv(source, comment="#")
    df.columns = df.columns.str.strip()
    col_map = _map_columns(df.columns.tolist())

    speed = _numeric(df, col_map["speed_ms"])
    if col_map["speed_ms"] is None and col_map["speed_kph"] is not None:
        speed = _numeric(df, col_map["speed_kph"]) * KPH_TO_MS

    frame = pd.DataFrame({
        "time": _parse_time(df, col_map),
        "latitude": _numeric(df, col_map["latitude"]),
        "longitude": _numeric(df, col_map["longitude"]),
        "accuracy": _numeric(df, col_map["accuracy"]),
        "speed": speed,
        "heading": _numeric(df, col_map["heading"]),
        "altitude": _numeric(df, col_map["altitude"]),
    }, columns=CANONICAL_COLUMNS)

    logger.debug(f"Parsed {len(frame)} location samples")
    return frame


class ReplayClock:
    """Clock that only moves when told to; lets a replay control ingestion time."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = ensure_utc(start) if start is not None else utc_now()

    def __call__(self) -> datetime:
        return self._now

    def advance_to(self, moment: datetime) -> None:
        self._now = ensure_utc(moment)


def _row_to_payload(row: pd.Series, captured_at: datetime) -> dict:
    payload = {"captured_at": captured_at}
    for name in ("latitude", "longitude", "accuracy", "speed", "heading", "altitude"):
        value = row[name]
        payload[name] = None if pd.isna(value) else float(value)
    return payload


def replay_track(
    ingestor: PositionIngestor,
    session_id: str,
    frame: pd.DataFrame,
    start: Optional[datetime] = None,
    clock: Optional[ReplayClock] = None,
) -> list[Union[AcceptedSample, TrackingError]]:
    """
    Feed every row of a parsed track to the ingestor, in order.

    Args:
        ingestor: Ingestor to submit through
        session_id: Session the samples belong to
        frame: Output of parse_location_csv
        start: Capture time of the first row (defaults to now). A row with no
            time is taken as captured together with the row before it.
        clock: If given, advanced to each row's capture time before submitting;
            it should be the clock the ingestor was built with

    Returns:
        One outcome per row: AcceptedSample or the TrackingError it raised
    """
    start = ensure_utc(start) if start is not None else utc_now()
    outcomes: list[Union[AcceptedSample, TrackingError]] = []
    captured_at = start

    for _, row in frame.iterrows():
        if not pd.isna(row["time"]):
            captured_at = start + timedelta(seconds=float(row["time"]))
        if clock is not None:
            clock.advance_to(captured_at)
        try:
            outcomes.append(ingestor.submit(session_id, _row_to_payload(row, captured_at)))
        except TrackingError as exc:
            outcomes.append(exc)

    rejected = sum(1 for o in outcomes if isinstance(o, TrackingError))
    logger.info(f"Replayed {len(outcomes)} samples for {session_id} ({rejected} rejected)")
    return outcomes
