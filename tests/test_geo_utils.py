import pytest

from geo_utils import BoundingBox, haversine_distance, interpolate, meters_to_degrees


def test_haversine_zero_distance():
    assert haversine_distance(35.69, 139.70, 35.69, 139.70) == 0.0


def test_haversine_one_degree_latitude():
    assert haversine_distance(0.0, 0.0, 1.0, 0.0) == pytest.approx(111194.9, rel=1e-4)


def test_haversine_is_symmetric():
    a = (35.6917, 139.7036)
    b = (35.6948, 139.7039)
    assert haversine_distance(*a, *b) == pytest.approx(haversine_distance(*b, *a))


def test_interpolate_endpoints_and_midpoint():
    assert interpolate(0.0, 0.0, 2.0, 4.0, 0, 2) == (0.0, 0.0)
    assert interpolate(0.0, 0.0, 2.0, 4.0, 2, 2) == (2.0, 4.0)
    assert interpolate(0.0, 0.0, 2.0, 4.0, 1, 2) == (1.0, 2.0)


def test_interpolate_is_identical_from_either_end():
    a, b = (0.2, 0.2), (0.6, 0.8)
    for steps in (3, 7, 18):
        for step in range(steps + 1):
            assert interpolate(*a, *b, step, steps) == interpolate(*b, *a, steps - step, steps)


def test_meters_to_degrees_round_trip_distance():
    dlon, dlat = meters_to_degrees(100.0, 100.0, 35.0)
    assert haversine_distance(35.0, 139.0, 35.0, 139.0 + dlon) == pytest.approx(100.0, rel=1e-3)
    assert haversine_distance(35.0, 139.0, 35.0 + dlat, 139.0) == pytest.approx(100.0, rel=1e-6)


def test_bounding_box_around_points():
    bbox = BoundingBox.around_points(35.70, 139.71, 35.69, 139.70, padding=0.005)
    assert bbox.west == pytest.approx(139.695)
    assert bbox.east == pytest.approx(139.715)
    assert bbox.south == pytest.approx(35.685)
    assert bbox.north == pytest.approx(35.705)
    assert bbox.contains(35.69, 139.70)
    assert not bbox.contains(35.80, 139.70)


def test_bounding_box_overpass_order():
    bbox = BoundingBox(west=139.0, south=35.0, east=139.5, north=35.5)
    assert bbox.to_overpass() == "35.000000,139.000000,35.500000,139.500000"
