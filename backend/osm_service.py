"""
道路トポロジーサービス - Overpass APIから歩行可能な道路網を取得
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from cache_manager import bbox_cache_key, cache_manager
from config import osm_config, performance_config
from exceptions import ProviderError
from geo_utils import BoundingBox

logger = logging.getLogger(__name__)

# 歩行に使えない道路・私道・別途マッピングされた歩道を除外する
WALKABLE_WAYS_FILTER = (
    '["highway"]["area"!~"yes"]["access"!~"private"]'
    '["highway"!~"abandoned|bus_guideway|construction|cycleway|motor|no|planned|platform|proposed|raceway|razed|rest_area|services"]'
    '["foot"!~"no"]["service"!~"private"]'
    '["sidewalk"!~"separate"]["sidewalk:both"!~"separate"]'
    '["sidewalk:left"!~"separate"]["sidewalk:right"!~"separate"]'
)


@dataclass(frozen=True)
class RawNode:
    """OSMノード"""
    osm_id: int
    lat: float
    lon: float


@dataclass(frozen=True)
class RawWay:
    """OSMウェイ（ノードIDの列とタグ）"""
    osm_id: int
    node_ids: Tuple[int, ...]
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RawTopology:
    """道路トポロジー（ノードとウェイ）"""
    nodes: List[RawNode]
    ways: List[RawWay]

    @property
    def element_count(self) -> int:
        return len(self.nodes) + len(self.ways)


def parse_overpass_elements(data: Dict[str, Any]) -> RawTopology:
    """Overpassのレスポンス (out:json) をRawTopologyに変換"""
    nodes: List[RawNode] = []
    ways: List[RawWay] = []

    for element in data.get("elements", []):
        element_type = element.get("type")
        if element_type == "node":
            if "lat" not in element or "lon" not in element:
                logger.warning(f"Node {element.get('id')} has no coordinates, skipping")
                continue
            nodes.append(RawNode(
                osm_id=int(element["id"]),
                lat=float(element["lat"]),
                lon=float(element["lon"])
            ))
        elif element_type == "way":
            ways.append(RawWay(
                osm_id=int(element["id"]),
                node_ids=tuple(int(n) for n in element.get("nodes", [])),
                tags={str(k): str(v) for k, v in (element.get("tags") or {}).items()}
            ))

    return RawTopology(nodes=nodes, ways=ways)


class OSMService:
    """道路トポロジーサービス"""

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
        """歩行可能なウェイとその構成ノードを取得するクエリ"""
        return (
            f"[out:json][timeout:{performance_config.max_request_timeout}];"
            f"(way{WALKABLE_WAYS_FILTER}({bbox.to_overpass()});>;);out;"
        )

    async def _fetch_from_overpass(self, query: str, url: str) -> Dict:
        """Overpass APIからデータを取得"""
        session = await self._get_session()
        try:
            async with session.post(url, data=query, headers={"Content-Type": "text/plain"}) as response:
                if response.status != 200:
                    raise ProviderError(f"Overpass API request failed: {response.status}",
                                        status=response.status, url=url)
                return await response.json(content_type=None)
        except ProviderError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ProviderError(f"Overpass API request failed: {e}", url=url) from e

    async def get_topology(self, bbox: BoundingBox) -> RawTopology:
        """
        境界ボックス内の道路トポロジーを取得

        Raises:
            ProviderError: すべてのOverpass URLで取得に失敗した場合
        """
        cache_key = bbox_cache_key("topology", bbox)
        cached = cache_manager.get_topology(cache_key)
        if cached is not None:
            logger.info(f"Using cached topology for bbox: {bbox.to_overpass()}")
            return cached

        start_time = time.time()
        query = self._create_overpass_query(bbox)
        urls = [osm_config.overpass_url] + list(osm_config.backup_overpass_urls)

        last_error: Optional[ProviderError] = None
        for url in urls:
            try:
                data = await self._fetch_from_overpass(query, url)
            except ProviderError as e:
                logger.warning(f"{e} ({url})")
                last_error = e
                continue

            topology = parse_overpass_elements(data)
            cache_manager.set_topology(cache_key, topology)
            logger.info(f"Fetched {len(topology.nodes)} nodes and {len(topology.ways)} ways "
                        f"in {time.time() - start_time:.2f}s")
            return topology

        raise last_error or ProviderError("No Overpass URL configured")

# グローバルサービスインスタンス
osm_service = OSMService()
