"""
Geographic utilities.

Great-circle distance (haversine on a spherical Earth), coordinate range
checks and small-offset conversions between meters and degrees.
"""

import math

import numpy as np
from numpy.typing import NDArray

EARTH_RADIUS_M = 6_371_000.0  # Earth's mean radius in meters

# Approximate length of one degree of latitude
METERS_PER_DEG_LAT = 111_195.0


def is_valid_latitude(lat: float) -> bool:
    return math.isfinite(lat) and -90.0 <= lat <= 90.0


def is_valid_longitude(lon: float) -> bool:
    return math.isfinite(lon) and -180.0 <= lon <= 180.0


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate great-circle distance between two points.

    Args:
        lat1, lon1: First point coordinates in degrees
        lat2, lon2: Second point coordinates in degrees

    Returns:
        Distance in meters
    """
    lat1_rad = np.radians(lat1)
    lat2_rad = np.radians(lat2)
    dlat = np.radians(lat2 - lat1)
    dlon = np.radians(lon2 - lon1)

    a = np.sin(dlat/2)**2 + np.cos(lat1_rad) * np.cos(lat2_rad) * np.sin(dlon/2)**2
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1-a))

    return float(EARTH_RADIUS_M * c)


def haversine_distances(
    lat: NDArray[np.float64],
    lon: NDArray[np.float64],
    ref_lat: float,
    ref_lon: float,
) -> NDArray[np.float64]:
    """
    Vectorized haversine distance from every point to a reference point.

    NaN inputs produce NaN distances.
    """
    lat = np.asarray(lat, dtype=np.float64)
    lon = np.asarray(lon, dtype=np.float64)

    lat_rad = np.radians(lat)
    ref_lat_rad = np.radians(ref_lat)
    dlat = np.radians(ref_lat - lat)
    dlon = np.radians(ref_lon - lon)

    a = np.sin(dlat/2)**2 + np.cos(lat_rad) * np.cos(ref_lat_rad) * np.sin(dlon/2)**2
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1-a))

    return EARTH_RADIUS_M * c


def normalize_heading(heading: float) -> float:
    """Wrap a heading in degrees into [0, 360)."""
    wrapped = heading % 360.0
    # -1e-17 % 360 rounds to 360.0
    return 0.0 if wrapped >= 360.0 else wrapped


def offset_to_latlon(
    east_m: NDArray[np.float64],
    north_m: NDArray[np.float64],
    origin_lat: float,
    origin_lon: float,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Convert small local offsets in meters to lat/lon around an origin.

    Flat-earth approximation, fine for the few kilometers of a delivery.
    """
    meters_per_deg_lon = METERS_PER_DEG_LAT * np.cos(np.radians(origin_lat))

    lat = origin_lat + np.asarray(north_m) / METERS_PER_DEG_LAT
    lon = origin_lon + np.asarray(east_m) / meters_per_deg_lon
    return lat, lon


def compute_heading_from_offsets(
    east_m: NDArray[np.float64],
    north_m: NDArray[np.float64],
) -> NDArray[np.float64]:
    """
    Compute compass heading from successive position changes.

    Returns:
        Heading array in degrees (0=North, 90=East)
    """
    dx = np.diff(east_m, prepend=east_m[0])
    dy = np.diff(north_m, prepend=north_m[0])

    heading = np.degrees(np.arctan2(dx, dy)) % 360

    # First point has no previous position; reuse the second heading
    if len(heading) > 1:
        heading[0] = heading[1]

    return heading
