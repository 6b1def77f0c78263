"""
測地計算ユーティリティ
"""
import math
from dataclasses import dataclass
from typing import Tuple

EARTH_RADIUS_M = 6371000  # 地球の半径（メートル）


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """2点間の大円距離を計算（メートル）"""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (math.sin(dlat/2) * math.sin(dlat/2) +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(dlon/2) * math.sin(dlon/2))

    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1-a))

    return EARTH_RADIUS_M * c


def interpolate(lat1: float, lon1: float, lat2: float, lon2: float,
                step: int, steps: int) -> Tuple[float, float]:
    """
    2点間を steps 等分した step 番目の座標 (lat, lon) を返す

    両端を入れ替えて steps - step 番目を求めても同じ値になる。
    """
    rest = steps - step
    return (lat1 * rest + lat2 * step) / steps, (lon1 * rest + lon2 * step) / steps


def meters_to_degrees(dx_m: float, dy_m: float, lat: float) -> Tuple[float, float]:
    """東西・南北方向のメートル量を (経度差, 緯度差) に変換"""
    meters_per_degree_lat = math.pi * EARTH_RADIUS_M / 180
    meters_per_degree_lon = meters_per_degree_lat * math.cos(math.radians(lat))
    return dx_m / meters_per_degree_lon, dy_m / meters_per_degree_lat


@dataclass(frozen=True)
class BoundingBox:
    """地理的な境界ボックス（度）"""
    west: float
    south: float
    east: float
    north: float

    @classmethod
    def around_points(cls, lat1: float, lon1: float, lat2: float, lon2: float,
                      padding: float) -> "BoundingBox":
        """2点を含み、周囲に余白をとった境界ボックスを作成"""
        return cls(
            west=min(lon1, lon2) - padding,
            south=min(lat1, lat2) - padding,
            east=max(lon1, lon2) + padding,
            north=max(lat1, lat2) + padding,
        )

    @property
    def center(self) -> Tuple[float, float]:
        """中心座標 (lat, lon)"""
        return (self.south + self.north) / 2, (self.west + self.east) / 2

    @property
    def width_m(self) -> float:
        lat, _ = self.center
        return haversine_distance(lat, self.west, lat, self.east)

    @property
    def height_m(self) -> float:
        return haversine_distance(self.south, self.west, self.north, self.west)

    def contains(self, lat: float, lon: float) -> bool:
        return self.south <= lat <= self.north and self.west <= lon <= self.east

    def to_overpass(self) -> str:
        """Overpass形式 (south,west,north,east) の文字列"""
        return f"{self.south:.6f},{self.west:.6f},{self.north:.6f},{self.east:.6f}"
