"""
Tests for geographic utilities.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from livetrack.utils.geo import (
    compute_heading_from_offsets,
    haversine_distance,
    haversine_distances,
    is_valid_latitude,
    is_valid_longitude,
    normalize_heading,
    offset_to_latlon,
)


class TestHaversineDistance:
    """Tests for haversine distance calculation."""

    def test_same_point_zero_distance(self):
        """Same point should have zero distance."""
        dist = haversine_distance(4.675, -74.055, 4.675, -74.055)
        assert dist == 0.0

    def test_one_degree_latitude(self):
        """One degree of latitude should be ~111km."""
        dist = haversine_distance(32.0, -89.0, 33.0, -89.0)
        assert_allclose(dist, 111195, rtol=1e-3)

    def test_symmetric(self):
        """Distance should be symmetric."""
        d1 = haversine_distance(4.6750, -74.0550, 4.7110, -74.0721)
        d2 = haversine_distance(4.7110, -74.0721, 4.6750, -74.0550)
        assert_allclose(d1, d2, rtol=1e-12)

    def test_restaurant_scenario(self):
        """0.001 degrees north of the restaurant is ~111 m."""
        dist = haversine_distance(4.6760, -74.0550, 4.6750, -74.0550)
        assert_allclose(dist, 111.19, rtol=1e-3)

    def test_antipodal_points(self):
        """Antipodes are half the circumference apart."""
        dist = haversine_distance(0.0, 0.0, 0.0, 180.0)
        assert_allclose(dist, np.pi * 6_371_000, rtol=1e-9)

    def test_returns_python_float(self):
        assert isinstance(haversine_distance(1.0, 2.0, 3.0, 4.0), float)


class TestHaversineDistances:
    """Tests for the vectorized variant."""

    def test_matches_scalar(self):
        lat = np.array([4.676, 4.680, 4.700])
        lon = np.array([-74.055, -74.050, -74.060])

        result = haversine_distances(lat, lon, 4.675, -74.055)

        expected = [haversine_distance(a, b, 4.675, -74.055) for a, b in zip(lat, lon)]
        assert_allclose(result, expected, rtol=1e-12)

    def test_nan_propagates(self):
        result = haversine_distances(np.array([4.676, np.nan]), np.array([-74.055, -74.055]), 4.675, -74.055)

        assert not np.isnan(result[0])
        assert np.isnan(result[1])


class TestCoordinateRanges:
    """Tests for latitude/longitude range checks."""

    @pytest.mark.parametrize("lat", [-90.0, 0.0, 45.5, 90.0])
    def test_valid_latitudes(self, lat):
        assert is_valid_latitude(lat)

    @pytest.mark.parametrize("lat", [-90.0001, 90.0001, 999.0, float("nan"), float("inf")])
    def test_invalid_latitudes(self, lat):
        assert not is_valid_latitude(lat)

    def test_longitude_bounds(self):
        assert is_valid_longitude(-180.0)
        assert is_valid_longitude(180.0)
        assert not is_valid_longitude(180.5)
        assert not is_valid_longitude(float("-inf"))


class TestHeadings:
    """Tests for heading helpers."""

    def test_normalize_wraps(self):
        assert normalize_heading(370.0) == 10.0
        assert normalize_heading(-90.0) == 270.0
        assert normalize_heading(360.0) == 0.0

    def test_normalize_keeps_range(self):
        assert normalize_heading(359.5) == 359.5

    def test_heading_north(self):
        """Moving north should give heading ~0."""
        heading = compute_heading_from_offsets(np.array([0.0, 0.0, 0.0]), np.array([0.0, 10.0, 20.0]))
        assert_allclose(heading, 0.0, atol=0.1)

    def test_heading_southwest(self):
        """Moving toward the origin from the northeast gives ~225."""
        heading = compute_heading_from_offsets(np.array([20.0, 10.0, 0.0]), np.array([20.0, 10.0, 0.0]))
        assert_allclose(heading, 225.0, atol=0.1)


class TestOffsets:
    """Tests for meter offsets to lat/lon."""

    def test_zero_offset_is_origin(self):
        lat, lon = offset_to_latlon(np.array([0.0]), np.array([0.0]), 4.675, -74.055)
        assert lat[0] == 4.675
        assert lon[0] == -74.055

    def test_north_offset_distance(self):
        """An offset of 500 m north should measure ~500 m."""
        lat, lon = offset_to_latlon(np.array([0.0]), np.array([500.0]), 4.675, -74.055)
        dist = haversine_distance(float(lat[0]), float(lon[0]), 4.675, -74.055)
        assert_allclose(dist, 500.0, rtol=1e-3)
