"""
Sample data generator for testing.

Generates a courier approaching a restaurant, sampled on the tracking
cadence, in the CSV layout read by livetrack.services.replay.
"""

from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd

from livetrack.utils.geo import compute_heading_from_offsets, offset_to_latlon


def generate_approach_track(
    output_path: Path,
    reference_lat: float = 4.6750,    # Example: Bogotá, Chicó
    reference_lon: float = -74.0550,
    start_distance_m: float = 1500.0,
    bearing_deg: float = 45.0,
    avg_speed_mps: float = 8.33,
    interval_s: float = 10.0,
    gps_noise_m: float = 3.0,
    seed: Optional[int] = None,
) -> Path:
    """
    Generate a straight-line approach toward a reference point.

    The courier starts `start_distance_m` away, on the given compass
    bearing from the reference, and moves toward it at roughly
    `avg_speed_mps`, stopping on arrival. The last row is at the reference.
    """
    rng = np.random.default_rng(seed)

    travel_time_s = start_distance_m / avg_speed_mps
    n_samples = int(np.ceil(travel_time_s / interval_s)) + 1
    timestamps = np.arange(n_samples) * interval_s

    # Speed varies with traffic but never stalls completely
    speed = np.clip(rng.normal(avg_speed_mps, avg_speed_mps * 0.2, n_samples), 1.0, None)
    travelled = np.concatenate([[0.0], np.cumsum(speed[:-1] * interval_s)])
    remaining = np.clip(start_distance_m - travelled, 0.0, None)
    remaining[-1] = 0.0

    bearing = np.radians(bearing_deg)
    east = remaining * np.sin(bearing)
    north = remaining * np.cos(bearing)

    # GPS jitter, none on the final fix so the track ends on the reference
    noise_e = rng.normal(0, gps_noise_m, n_samples)
    noise_n = rng.normal(0, gps_noise_m, n_samples)
    noise_e[-1] = noise_n[-1] = 0.0
    east = east + noise_e
    north = north + noise_n

    lat, lon = offset_to_latlon(east, north, reference_lat, reference_lon)
    heading = compute_heading_from_offsets(east, north)

    speed = np.where(remaining > 0, speed, 0.0)

    df = pd.DataFrame({
        "time": np.round(timestamps, 3),
        "lat": np.round(lat, 7),
        "lng": np.round(lon, 7),
        "precision": np.full(n_samples, gps_noise_m),
        "velocidad": np.round(speed, 2),
        "rumbo": np.round(heading, 1),
        "altitud": np.full(n_samples, 2600.0),
    })

    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, index=False)
    return output_path


if __name__ == "__main__":
    output = Path("./data/tracks/approach.csv")
    generate_approach_track(output, seed=7)
    print(f"Generated {output}")
