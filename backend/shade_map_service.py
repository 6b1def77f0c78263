"""
日陰マップ生成サービス

太陽位置から建物の影を投影し、境界ボックスを覆うRGBAラスターに描画する。
背景は白(255)、影は黒(0)。
"""
import asyncio
import logging
import math
import time
from datetime import datetime
from typing import List, Optional, Tuple

import numpy as np
import shapely
from shapely.affinity import translate
from shapely.geometry import Polygon
from shapely.ops import unary_union

from building_service import Building, building_service
from config import shade_config
from geo_utils import BoundingBox, meters_to_degrees
from shadow_sampler import ShadeField
from sun_position import solar_position

logger = logging.getLogger(__name__)


def raster_size(bounds: BoundingBox, meters_per_pixel: float, max_dimension: int) -> Tuple[int, int]:
    """ラスターの (width, height) を決定"""
    width = max(1, math.ceil(bounds.width_m / meters_per_pixel))
    height = max(1, math.ceil(bounds.height_m / meters_per_pixel))

    largest = max(width, height)
    if largest > max_dimension:
        scale = max_dimension / largest
        width = max(1, int(width * scale))
        height = max(1, int(height * scale))
    return width, height


def project_shadow(building: Building, elevation: float, azimuth: float,
                   reference_lat: float) -> Optional[Polygon]:
    """
    建物の影の多角形を計算

    影は太陽と反対方向に 高さ / tan(高度角) だけ伸びる。
    フットプリント・平行移動したフットプリント・各辺が掃く四辺形の和。
    """
    footprint = Polygon(building.footprint)
    if not footprint.is_valid:
        footprint = footprint.buffer(0)
    if footprint.is_empty:
        return None

    if elevation <= 0 or building.height <= 0:
        return footprint

    shadow_length = building.height / math.tan(math.radians(elevation))
    shadow_direction = math.radians(azimuth + 180)
    dx, dy = meters_to_degrees(shadow_length * math.sin(shadow_direction),
                               shadow_length * math.cos(shadow_direction),
                               reference_lat)

    parts = [footprint, translate(footprint, xoff=dx, yoff=dy)]
    ring = list(building.footprint)
    for (x1, y1), (x2, y2) in zip(ring, ring[1:]):
        wall = Polygon([(x1, y1), (x2, y2), (x2 + dx, y2 + dy), (x1 + dx, y1 + dy)])
        if wall.is_valid and wall.area > 0:
            parts.append(wall)

    return unary_union(parts)


def rasterize_shadows(bounds: BoundingBox, shadows: List[Polygon],
                      width: int, height: int) -> np.ndarray:
    """影の多角形を画素バッファに描画"""
    pixels = np.full((height, width, 4), 255, dtype=np.uint8)
    if not shadows:
        return pixels

    # 画素中心の座標（行0が北端）
    lons = bounds.west + (np.arange(width) + 0.5) / width * (bounds.east - bounds.west)
    lats = bounds.north - (np.arange(height) + 0.5) / height * (bounds.north - bounds.south)
    grid_lon, grid_lat = np.meshgrid(lons, lats)

    merged = unary_union(shadows)
    mask = shapely.contains_xy(merged, grid_lon, grid_lat)
    pixels[mask, :3] = 0
    return pixels


class ShadeMapService:
    """日陰マップ生成サービス"""

    def __init__(self, buildings_provider=None):
        self.buildings_provider = buildings_provider or building_service

    def render(self, bounds: BoundingBox, buildings: List[Building],
               elevation: float, azimuth: float) -> ShadeField:
        """建物と太陽位置からラスターを作成"""
        width, height = raster_size(bounds, shade_config.meters_per_pixel, shade_config.max_raster_dimension)

        if elevation <= 0:
            # 日没後は全域が日陰
            pixels = np.full((height, width, 4), 255, dtype=np.uint8)
            pixels[:, :, :3] = 0
            return ShadeField(bounds=bounds, pixels=pixels)

        reference_lat, _ = bounds.center
        shadows = []
        for building in buildings:
            shadow = project_shadow(building, elevation, azimuth, reference_lat)
            if shadow is not None and not shadow.is_empty:
                shadows.append(shadow)

        pixels = rasterize_shadows(bounds, shadows, width, height)
        return ShadeField(bounds=bounds, pixels=pixels)

    async def generate(self, bounds: BoundingBox, when: datetime) -> Optional[ShadeField]:
        """
        日陰マップを生成

        失敗した場合はNoneを返す（呼び出し側は日陰なしで探索を続ける）。
        """
        if not shade_config.enabled:
            logger.info("Shade map generation disabled")
            return None

        start_time = time.time()
        try:
            center_lat, center_lon = bounds.center
            elevation, azimuth = solar_position(when, center_lat, center_lon)
            logger.info(f"Sun position: elevation={elevation:.1f}°, azimuth={azimuth:.1f}°")

            buildings = [] if elevation <= 0 else await self.buildings_provider.get_buildings(bounds)

            loop = asyncio.get_running_loop()
            shade_field = await loop.run_in_executor(None, self.render, bounds, buildings, elevation, azimuth)
        except Exception as e:
            logger.error(f"Error generating shade map: {e}")
            return None

        logger.info(f"Shade map computation time: {(time.time() - start_time) * 1000:.1f} ms "
                    f"({shade_field.width}x{shade_field.height}, {len(buildings)} buildings)")
        return shade_field

# グローバルサービスインスタンス
shade_map_service = ShadeMapService()
