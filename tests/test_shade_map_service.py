import asyncio
from datetime import datetime

import pytest
from shapely.geometry import Polygon

from building_service import Building
from config import shade_config
from exceptions import ProviderError
from geo_utils import BoundingBox, meters_to_degrees
from shade_map_service import ShadeMapService, project_shadow, raster_size, rasterize_shadows

LAT, LON = 35.68, 139.77
NOON_UTC = datetime(2024, 6, 21, 2, 45)
MIDNIGHT_UTC = datetime(2024, 6, 21, 15, 0)


def square_building(lat, lon, size_m=10.0, height=20.0):
    dlon, dlat = meters_to_degrees(size_m, size_m, lat)
    ring = ((lon, lat), (lon + dlon, lat), (lon + dlon, lat + dlat), (lon, lat + dlat), (lon, lat))
    return Building(footprint=ring, height=height)


@pytest.fixture
def area():
    return BoundingBox(west=LON, south=LAT, east=LON + 0.002, north=LAT + 0.002)


class FakeBuildings:
    def __init__(self, buildings=None, error=None):
        self.buildings = buildings or []
        self.error = error
        self.calls = 0

    async def get_buildings(self, bbox):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.buildings


def test_raster_size_follows_resolution():
    bounds = BoundingBox(west=LON, south=LAT, east=LON + 0.01, north=LAT + 0.01)
    width, height = raster_size(bounds, 2.0, 2048)
    assert height == pytest.approx(bounds.height_m / 2, abs=1)
    assert width == pytest.approx(bounds.width_m / 2, abs=1)
    assert width < height


def test_raster_size_is_capped():
    bounds = BoundingBox(west=LON, south=LAT, east=LON + 0.01, north=LAT + 0.01)
    width, height = raster_size(bounds, 0.1, 512)
    assert max(width, height) == 512
    assert width / height == pytest.approx(bounds.width_m / bounds.height_m, rel=0.01)


def test_shadow_points_away_from_sun():
    building = square_building(LAT, LON, height=20.0)
    footprint = Polygon(building.footprint)

    # 太陽が南（方位180°）、高度45° なら影は北へ高さと同じ長さだけ伸びる
    shadow = project_shadow(building, 45.0, 180.0, LAT)
    _, expected_dlat = meters_to_degrees(0.0, 20.0, LAT)

    assert shadow.contains(footprint)
    assert shadow.bounds[3] == pytest.approx(footprint.bounds[3] + expected_dlat, rel=1e-6)
    assert shadow.bounds[1] == pytest.approx(footprint.bounds[1])


def test_lower_sun_casts_longer_shadow():
    building = square_building(LAT, LON)
    high = project_shadow(building, 60.0, 90.0, LAT)
    low = project_shadow(building, 20.0, 90.0, LAT)
    assert low.area > high.area
    # 太陽が東なら影は西へ
    assert low.bounds[0] < building.footprint[0][0]


def test_sun_below_horizon_returns_footprint():
    building = square_building(LAT, LON)
    shadow = project_shadow(building, -5.0, 180.0, LAT)
    assert shadow.equals(Polygon(building.footprint))


def test_rasterize_marks_pixels_inside_shadows():
    bounds = BoundingBox(west=0.0, south=0.0, east=1.0, north=1.0)
    west_half = Polygon([(0.0, 0.0), (0.5, 0.0), (0.5, 1.0), (0.0, 1.0)])

    pixels = rasterize_shadows(bounds, [west_half], 10, 10)

    assert pixels.shape == (10, 10, 4)
    assert (pixels[:, :5, :3] == 0).all()
    assert (pixels[:, 5:, :3] == 255).all()
    assert (pixels[:, :, 3] == 255).all()


def test_rasterize_rows_start_at_north():
    bounds = BoundingBox(west=0.0, south=0.0, east=1.0, north=1.0)
    north_strip = Polygon([(0.0, 0.8), (1.0, 0.8), (1.0, 1.0), (0.0, 1.0)])
    pixels = rasterize_shadows(bounds, [north_strip], 10, 10)
    assert (pixels[:2, :, :3] == 0).all()
    assert (pixels[2:, :, :3] == 255).all()


def test_render_at_night_is_fully_shaded(area):
    field = ShadeMapService(FakeBuildings()).render(area, [], -10.0, 0.0)
    assert field.shaded_ratio() == 1.0


def test_render_without_buildings_is_sunny(area):
    field = ShadeMapService(FakeBuildings()).render(area, [], 60.0, 180.0)
    assert field.shaded_ratio() == 0.0
    assert field.bounds == area


def test_generate_projects_building_shadows(area):
    buildings = FakeBuildings([square_building(LAT + 0.0005, LON + 0.0005, size_m=40.0, height=30.0)])
    field = asyncio.run(ShadeMapService(buildings).generate(area, NOON_UTC))

    assert field is not None
    assert 0.0 < field.shaded_ratio() < 0.5
    assert buildings.calls == 1


def test_generate_at_night_skips_building_lookup(area):
    buildings = FakeBuildings()
    field = asyncio.run(ShadeMapService(buildings).generate(area, MIDNIGHT_UTC))
    assert field.shaded_ratio() == 1.0
    assert buildings.calls == 0


def test_generate_returns_none_when_buildings_fail(area):
    service = ShadeMapService(FakeBuildings(error=ProviderError("overpass down")))
    assert asyncio.run(service.generate(area, NOON_UTC)) is None


def test_generate_returns_none_when_disabled(area, monkeypatch):
    monkeypatch.setattr(shade_config, "enabled", False)
    buildings = FakeBuildings()
    assert asyncio.run(ShadeMapService(buildings).generate(area, NOON_UTC)) is None
    assert buildings.calls == 0
