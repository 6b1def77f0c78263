from datetime import datetime, timedelta, timezone

import pytest

from sun_position import solar_position

TOKYO = (35.68, 139.77)
JST = timezone(timedelta(hours=9))


def test_summer_solstice_noon_in_tokyo():
    elevation, azimuth = solar_position(datetime(2024, 6, 21, 2, 45), *TOKYO)
    assert 75 < elevation < 80
    assert 170 < azimuth < 190


def test_midnight_sun_is_below_horizon():
    elevation, _ = solar_position(datetime(2024, 6, 21, 15, 0), *TOKYO)
    assert elevation < 0


def test_morning_sun_is_in_the_east_and_afternoon_in_the_west():
    morning_elevation, morning_azimuth = solar_position(datetime(2024, 6, 21, 6, 0, tzinfo=JST), *TOKYO)
    afternoon_elevation, afternoon_azimuth = solar_position(datetime(2024, 6, 21, 16, 0, tzinfo=JST), *TOKYO)

    assert morning_elevation > 0 and afternoon_elevation > 0
    assert 0 < morning_azimuth < 180
    assert 180 < afternoon_azimuth < 360


def test_winter_noon_is_lower_than_summer_noon():
    summer, _ = solar_position(datetime(2024, 6, 21, 2, 45), *TOKYO)
    winter, _ = solar_position(datetime(2024, 12, 21, 2, 45), *TOKYO)
    assert winter < summer
    assert 28 < winter < 33


def test_aware_datetime_matches_naive_utc():
    aware = datetime(2024, 8, 1, 13, 30, tzinfo=JST)
    naive_utc = datetime(2024, 8, 1, 4, 30)
    assert solar_position(aware, *TOKYO) == pytest.approx(solar_position(naive_utc, *TOKYO))
