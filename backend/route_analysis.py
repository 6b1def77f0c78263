"""
ルート分析 - 日陰区間と日向区間の分割と統計
"""
import logging
import math
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from astar_router import RouteResult
from geo_utils import haversine_distance

logger = logging.getLogger(__name__)

Coordinate = Tuple[float, float]  # (lon, lat)


@dataclass
class RouteSegment:
    """同じ分類が連続する区間（折れ線）"""
    shaded: bool
    coordinates: List[Coordinate] = field(default_factory=list)
    distance_m: float = 0.0


@dataclass(frozen=True)
class ShadeStats:
    """日陰統計"""
    total_distance_m: float
    shaded_distance_m: float
    sunny_distance_m: float
    shaded_percentage: int
    sunny_percentage: int


@dataclass(frozen=True)
class ShadeSplit:
    shaded_segments: List[RouteSegment]
    sunny_segments: List[RouteSegment]
    stats: ShadeStats


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def split_by_shade(route: RouteResult) -> ShadeSplit:
    """
    ルートを日陰区間と日向区間に分割する

    日陰率が0より大きいエッジは日陰として扱う（部分的な日陰も含む）。
    コスト計算では連続値の日陰率を使うが、表示用の分類は二値。
    """
    return split_coordinates_by_shade(route.coordinates, route.edge_shade_fractions)


def split_coordinates_by_shade(coordinates: Sequence[Coordinate],
                               shade_fractions: Sequence[float]) -> ShadeSplit:
    """座標列と区間ごとの日陰率から分割と統計を計算"""
    if len(coordinates) >= 2 and len(shade_fractions) != len(coordinates) - 1:
        raise ValueError(f"Expected {len(coordinates) - 1} shade values, got {len(shade_fractions)}")

    shaded_segments: List[RouteSegment] = []
    sunny_segments: List[RouteSegment] = []
    current = None
    total_distance = 0.0
    shaded_distance = 0.0

    for i in range(1, len(coordinates)):
        start, end = coordinates[i - 1], coordinates[i]
        is_shaded = shade_fractions[i - 1] > 0
        dist = haversine_distance(start[1], start[0], end[1], end[0])

        if current is None or current.shaded != is_shaded:
            current = RouteSegment(shaded=is_shaded, coordinates=[start])
            (shaded_segments if is_shaded else sunny_segments).append(current)

        current.coordinates.append(end)
        current.distance_m += dist
        total_distance += dist
        if is_shaded:
            shaded_distance += dist

    sunny_distance = total_distance - shaded_distance
    if total_distance > 0:
        shaded_percentage = round_half_up(shaded_distance / total_distance * 100)
        sunny_percentage = round_half_up(sunny_distance / total_distance * 100)
    else:
        shaded_percentage = 0
        sunny_percentage = 0

    stats = ShadeStats(
        total_distance_m=total_distance,
        shaded_distance_m=shaded_distance,
        sunny_distance_m=sunny_distance,
        shaded_percentage=shaded_percentage,
        sunny_percentage=sunny_percentage
    )
    logger.info(f"Route analysis complete: {shaded_percentage}% shaded ({shaded_distance:.0f}m), "
                f"{sunny_percentage}% sunny ({sunny_distance:.0f}m), total: {total_distance:.0f}m")

    return ShadeSplit(shaded_segments=shaded_segments, sunny_segments=sunny_segments, stats=stats)
