"""
建物サービス - 日陰マップ用の建物フットプリントと高さを取得
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import aiohttp

from cache_manager import bbox_cache_key, cache_manager
from config import osm_config, performance_config, shade_config
from exceptions import ProviderError
from geo_utils import BoundingBox

logger = logging.getLogger(__name__)

# 建物タイプ別の推定高さ（メートル）
BUILDING_HEIGHTS = {
    "skyscraper": 100.0,
    "office": 50.0,
    "apartments": 30.0,
    "commercial": 20.0,
    "hotel": 40.0,
    "hospital": 25.0,
    "school": 15.0,
    "house": 8.0,
    "garage": 4.0,
    "shed": 3.0
}


@dataclass(frozen=True)
class Building:
    """建物（外周は (lon, lat) の閉じたリング）"""
    footprint: Tuple[Tuple[float, float], ...]
    height: float
    osm_id: Optional[int] = None


def estimate_building_height(tags: Dict[str, str]) -> float:
    """建物の高さを推定"""
    # 高さタグから直接取得
    if "height" in tags:
        raw = str(tags["height"]).strip()
        try:
            if raw.endswith("ft"):
                height = float(raw[:-2].strip()) * 0.3048
            else:
                height = float(raw.rstrip("m").strip())
            return max(shade_config.min_building_height, height)
        except ValueError:
            pass

    # 階数から推定（1階=3.5m）
    if "building:levels" in tags:
        try:
            levels = float(tags["building:levels"])
            return max(shade_config.min_building_height, levels * 3.5)
        except ValueError:
            pass

    building_type = tags.get("building") or tags.get("building:part", "")
    return BUILDING_HEIGHTS.get(building_type, shade_config.default_building_height)


def parse_building_element(element: Dict) -> Optional[Building]:
    """Overpassの要素（out geom）を建物に変換"""
    if element.get("type") != "way" or "geometry" not in element:
        return None

    coordinates = [(float(c["lon"]), float(c["lat"])) for c in element["geometry"] if c]
    if len(coordinates) < 3:
        return None

    # 閉じた多角形にする
    if coordinates[0] != coordinates[-1]:
        coordinates.append(coordinates[0])

    tags = element.get("tags") or {}
    return Building(
        footprint=tuple(coordinates),
        height=estimate_building_height(tags),
        osm_id=element.get("id")
    )


class BuildingService:
    """建物サービス"""

    def __init__(self):
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """HTTPセッションを取得"""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=performance_config.external_api_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self):
        """リソースのクリーンアップ"""
        if self._session:
            await self._session.close()
            self._session = None

    def _create_overpass_query(self, bbox: BoundingBox) -> str:
        """建物を取得するOverpassクエリ"""
        area = bbox.to_overpass()
        return f"""
        [out:json][timeout:{performance_config.external_api_timeout}][maxsize:1073741824];
        (
          way[building]({area});
          way[building:part]({area});
        );
        out geom {performance_config.max_buildings_per_request};
        """

    async def _fetch_from_overpass(self, query: str, url: str) -> Dict:
        """Overpass APIからデータを取得"""
        session = await self._get_session()
        try:
            async with session.post(url, data=query) as response:
                if response.status != 200:
                    raise ProviderError(f"Overpass API error: {response.status}",
                                        status=response.status, url=url)
                return await response.json(content_type=None)
        except ProviderError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ProviderError(f"Overpass API request failed: {e}", url=url) from e

    async def get_buildings(self, bbox: BoundingBox) -> List[Building]:
        """
        境界ボックス内の建物を取得

        Raises:
            ProviderError: すべてのOverpass URLで取得に失敗した場合
        """
        cache_key = bbox_cache_key("buildings", bbox)
        cached = cache_manager.get_buildings(cache_key)
        if cached is not None:
            logger.info(f"Using cached building data for bbox: {bbox.to_overpass()}")
            return cached

        start_time = time.time()
        logger.info(f"Fetching building data from OSM for bbox: {bbox.to_overpass()}")

        query = self._create_overpass_query(bbox)
        osm_data = None
        last_error: Optional[ProviderError] = None
        for url in [osm_config.overpass_url] + list(osm_config.backup_overpass_urls):
            try:
                osm_data = await self._fetch_from_overpass(query, url)
                break
            except ProviderError as e:
                logger.warning(f"{e} ({url})")
                last_error = e

        if osm_data is None:
            raise last_error or ProviderError("No Overpass URL configured")

        elements = osm_data.get("elements", [])
        if len(elements) > performance_config.max_buildings_per_request:
            elements = elements[:performance_config.max_buildings_per_request]
            logger.warning(f"Limited buildings to {performance_config.max_buildings_per_request}")

        buildings = [b for b in (parse_building_element(e) for e in elements) if b is not None]
        cache_manager.set_buildings(cache_key, buildings)

        logger.info(f"Processed {len(buildings)} buildings in {time.time() - start_time:.2f}s")
        return buildings

# グローバルサービスインスタンス
building_service = BuildingService()
