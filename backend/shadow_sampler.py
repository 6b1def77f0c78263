"""
日陰ラスターのサンプリング

日陰マップは境界ボックスに対応するRGBA画素バッファ。
行0が北端、列0が西端。
"""
import logging
import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from geo_utils import BoundingBox, haversine_distance, interpolate

logger = logging.getLogger(__name__)

# RGB平均がこの値未満の画素を日陰とみなす（0-255）
SHADE_LUMINANCE_THRESHOLD = 128


@dataclass(frozen=True)
class ShadeField:
    """日陰マップ（生成後は読み取り専用）"""
    bounds: BoundingBox
    pixels: np.ndarray  # shape = (height, width, 4), dtype = uint8

    def __post_init__(self):
        if self.pixels.ndim != 3 or self.pixels.shape[2] < 3:
            raise ValueError(f"pixels must be (height, width, 4), got {self.pixels.shape}")
        self.pixels.setflags(write=False)

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    def shaded_ratio(self) -> float:
        """ラスター全体に占める日陰画素の割合"""
        luminance = self.pixels[:, :, :3].mean(axis=2)
        return float((luminance < SHADE_LUMINANCE_THRESHOLD).mean())


class ShadowSampler:
    """日陰マップの座標サンプラー"""

    def __init__(self, shade_field: ShadeField, record_history: bool = False):
        self.field = shade_field
        self.bounds = shade_field.bounds
        self.width = shade_field.width
        self.height = shade_field.height
        self.record_history = record_history
        self.history: List[int] = []

        self._span_lon = self.bounds.east - self.bounds.west
        self._span_lat = self.bounds.north - self.bounds.south

    def pixel_at(self, lat: float, lon: float) -> Optional[tuple]:
        """座標を画素位置 (x, y) に変換。範囲外ならNone"""
        if self._span_lon <= 0 or self._span_lat <= 0:
            return None

        normalized_x = (lon - self.bounds.west) / self._span_lon
        normalized_y = (self.bounds.north - lat) / self._span_lat

        pixel_x = math.floor(normalized_x * self.width)
        pixel_y = math.floor(normalized_y * self.height)

        if pixel_x < 0 or pixel_x >= self.width or pixel_y < 0 or pixel_y >= self.height:
            return None
        return pixel_x, pixel_y

    def sample_at(self, lat: float, lon: float) -> Optional[bool]:
        """
        指定座標が日陰かどうか

        Returns:
            True = 日陰, False = 日向, None = 範囲外（不明）
        """
        pixel = self.pixel_at(lat, lon)
        if pixel is None:
            return None

        pixel_x, pixel_y = pixel
        if self.record_history:
            self.history.append(pixel_y * self.width + pixel_x)

        # アルファではなくRGBの輝度で判定する（影は暗く描画される）
        red, green, blue = (int(c) for c in self.field.pixels[pixel_y, pixel_x, :3])
        value = (red + green + blue) / 3
        return value < SHADE_LUMINANCE_THRESHOLD

    def sample_along_line(self, lat_a: float, lon_a: float, lat_b: float, lon_b: float,
                          interval_m: float = 5.0, min_samples: int = 1) -> float:
        """
        線分上を等間隔にサンプリングして日陰率を計算

        Args:
            interval_m: サンプリング間隔（メートル）
            min_samples: 最低サンプル点数（両端を含む）

        Returns:
            日陰率 (0.0-1.0)。有効なサンプルがなければ 0.0
        """
        dist = haversine_distance(lat_a, lon_a, lat_b, lon_b)
        steps = max(1, math.ceil(dist / interval_m), min_samples - 1)

        shaded = 0
        valid = 0
        for i in range(steps + 1):
            lat, lon = interpolate(lat_a, lon_a, lat_b, lon_b, i, steps)
            is_shaded = self.sample_at(lat, lon)
            if is_shaded is None:
                continue
            valid += 1
            if is_shaded:
                shaded += 1

        if valid == 0:
            return 0.0
        return shaded / valid

    def history_mask(self) -> np.ndarray:
        """サンプリングした画素のマスク（デバッグ用）"""
        mask = np.zeros(self.width * self.height, dtype=bool)
        if self.history:
            mask[np.asarray(self.history)] = True
        return mask.reshape(self.height, self.width)
