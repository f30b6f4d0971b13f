"""
Unit tests for junction geometry calculations.
Tests pure functions from yjunction/geometry.py with no mocking required.
"""

import pytest

from conftest import point_along_bearing
from yjunction.geometry import (
    haversine_distance,
    bearing,
    angle_difference,
    clockwise_gap,
    sector_gaps,
    mean_bearing,
)


TOKYO = (35.6812, 139.7671)
OSAKA = (34.7025, 135.4959)


class TestHaversineDistance:
    """Tests for great circle distance calculation."""

    @pytest.mark.unit
    def test_same_point_zero_distance(self):
        """Test that distance from a point to itself is zero."""
        assert haversine_distance(*TOKYO, *TOKYO) == 0

    @pytest.mark.unit
    def test_tokyo_to_osaka(self):
        """Test Tokyo Station to Osaka Station (~400 km)."""
        result = haversine_distance(*TOKYO, *OSAKA)
        assert 395_000 < result < 410_000

    @pytest.mark.unit
    def test_symmetry(self):
        """Test that distance A->B equals distance B->A."""
        assert pytest.approx(haversine_distance(*TOKYO, *OSAKA), rel=1e-9) == \
            haversine_distance(*OSAKA, *TOKYO)

    @pytest.mark.unit
    def test_short_distance(self):
        """Test a neighbor node ~50 m away."""
        lat, lon = TOKYO
        result = haversine_distance(lat, lon, lat + 0.00045, lon)
        assert 45 < result < 55


class TestBearing:
    """Tests for bearing calculation."""

    @pytest.mark.unit
    @pytest.mark.parametrize("d_lat,d_lon,expected", [
        (0.001, 0, 0),      # North
        (0, 0.001, 90),     # East
        (-0.001, 0, 180),   # South
        (0, -0.001, 270),   # West
    ])
    def test_cardinal_directions(self, d_lat, d_lon, expected):
        """Test bearings to nearby points on the cardinal directions."""
        lat, lon = TOKYO
        result = bearing(lat, lon, lat + d_lat, lon + d_lon)
        assert pytest.approx(result, abs=0.1) == expected

    @pytest.mark.unit
    def test_bearing_range(self):
        """Test that bearing is always in range [0, 360)."""
        lat, lon = TOKYO
        for d_lat, d_lon in ((0.001, 0.001), (-0.001, 0.001), (-0.001, -0.001),
                             (0.001, -0.001), (0.001, -1e-12)):
            result = bearing(lat, lon, lat + d_lat, lon + d_lon)
            assert 0 <= result < 360

    @pytest.mark.unit
    def test_matches_point_along_bearing(self):
        """Test that bearing recovers the direction used to place a point."""
        lat, lon = TOKYO
        for b in (5, 95, 185, 275, 355):
            n_lat, n_lon = point_along_bearing(lat, lon, b, 50)
            assert pytest.approx(bearing(lat, lon, n_lat, n_lon), abs=1e-6) == b


class TestAngleDifference:
    """Tests for signed angle difference."""

    @pytest.mark.unit
    @pytest.mark.parametrize("angle1,angle2,expected", [
        (0, 90, 90),
        (90, 0, -90),
        (350, 10, 20),     # Across north
        (10, 350, -20),
        (45, 45, 0),
    ])
    def test_angle_difference(self, angle1, angle2, expected):
        assert pytest.approx(angle_difference(angle1, angle2), abs=0.01) == expected


class TestClockwiseGap:
    """Tests for the clockwise sweep between bearings."""

    @pytest.mark.unit
    @pytest.mark.parametrize("start,end,expected", [
        (10, 130, 120),
        (130, 10, 240),
        (350, 10, 20),
        (90, 90, 0),
    ])
    def test_clockwise_gap(self, start, end, expected):
        assert pytest.approx(clockwise_gap(start, end)) == expected


class TestSectorGaps:
    """Tests for the three sectors between three roads."""

    @pytest.mark.unit
    def test_even_split(self):
        """Test three roads 120 degrees apart."""
        assert sector_gaps([10, 130, 250]) == pytest.approx((120, 120, 120))

    @pytest.mark.unit
    def test_input_order_irrelevant(self):
        """Test that bearings are visited clockwise whatever the input order."""
        assert sector_gaps([200, 0, 20]) == pytest.approx((20, 180, 160))

    @pytest.mark.unit
    def test_wraps_through_north(self):
        """Test a sharp fork straddling north."""
        gaps = sector_gaps([350, 5, 180])
        assert sorted(gaps) == pytest.approx([15, 170, 175])

    @pytest.mark.unit
    def test_sum_is_360(self):
        for bearings in ([1, 2, 3], [0, 120, 359.9], [45.5, 300.25, 170.125]):
            assert sum(sector_gaps(bearings)) == pytest.approx(360)

    @pytest.mark.unit
    def test_requires_three_bearings(self):
        with pytest.raises(ValueError):
            sector_gaps([0, 90])


class TestMeanBearing:
    """Tests for circular mean of two bearings."""

    @pytest.mark.unit
    def test_simple_mean(self):
        assert mean_bearing(10, 50) == pytest.approx(30)

    @pytest.mark.unit
    def test_across_north(self):
        """Test that 350 and 10 average to north, not south."""
        result = mean_bearing(350, 10)
        assert min(result, 360 - result) == pytest.approx(0, abs=1e-9)

    @pytest.mark.unit
    def test_order_independent(self):
        assert mean_bearing(200, 240) == pytest.approx(mean_bearing(240, 200))


class TestPointAlongBearing:
    """Tests for calculating points at distance and bearing."""

    @pytest.mark.unit
    def test_point_north(self):
        lat, lon = TOKYO
        result_lat, result_lon = point_along_bearing(lat, lon, 0, 1000)
        assert result_lat > lat
        assert pytest.approx(result_lon, abs=0.0001) == lon

    @pytest.mark.unit
    def test_distance_preserved(self):
        lat, lon = TOKYO
        new_lat, new_lon = point_along_bearing(lat, lon, 45, 5000)
        assert pytest.approx(haversine_distance(lat, lon, new_lat, new_lon), rel=0.001) == 5000
