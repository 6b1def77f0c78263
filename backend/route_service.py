"""
ルートサービス - 日陰を考慮した徒歩ルート探索の入口

道路トポロジー取得 → 日陰マップ生成 → グラフ構築 → A*探索 の順に実行し、
各段階の開始をオブザーバーに通知する。
"""
import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Protocol, Tuple

from astar_router import AStarRouter, RouteOptions, RouteResult
from config import map_config
from exceptions import RouteCancelled
from geo_utils import BoundingBox
from graph_builder import GraphBuilder
from models import ProgressStage
from osm_service import RawTopology, osm_service
from shade_map_service import shade_map_service
from shadow_sampler import ShadeField

logger = logging.getLogger(__name__)

STAGE_ORDER: Tuple[ProgressStage, ...] = tuple(ProgressStage)


class ProgressObserver(Protocol):
    def on_stage_changed(self, stage: ProgressStage) -> None:
        ...


class TopologyProvider(Protocol):
    async def get_topology(self, bbox: BoundingBox) -> RawTopology:
        ...


class ShadeFieldProvider(Protocol):
    async def generate(self, bounds: BoundingBox, when: datetime) -> Optional[ShadeField]:
        ...


class CallbackObserver:
    """関数を ProgressObserver として使うためのラッパー"""

    def __init__(self, callback: Callable[[ProgressStage], None]):
        self.callback = callback

    def on_stage_changed(self, stage: ProgressStage) -> None:
        self.callback(stage)


@dataclass
class ProgressStep:
    stage: ProgressStage
    completed: bool = False


class ProgressTracker:
    """
    進行段階の管理

    段階は STAGE_ORDER の順にしか進めない。次の段階に進むと前の段階が完了になる。
    """

    def __init__(self, observer: Optional[ProgressObserver] = None):
        self.observer = observer
        self.steps: List[ProgressStep] = [ProgressStep(stage) for stage in STAGE_ORDER]
        self._position = -1

    @property
    def current(self) -> Optional[ProgressStage]:
        return STAGE_ORDER[self._position] if self._position >= 0 else None

    def advance(self, stage: ProgressStage) -> None:
        position = STAGE_ORDER.index(stage)
        if position != self._position + 1:
            raise RuntimeError(f"Cannot move from {self.current} to {stage}")

        if self._position >= 0:
            self.steps[self._position].completed = True
        self._position = position
        if stage is ProgressStage.COMPLETED:
            self.steps[position].completed = True

        logger.debug(f"Route progress: {stage.value}")
        if self.observer is not None:
            self.observer.on_stage_changed(stage)


class RouteService:
    """徒歩ルート探索サービス"""

    def __init__(self, topology_provider: TopologyProvider = None,
                 shade_provider: ShadeFieldProvider = None):
        self.topology_provider = topology_provider or osm_service
        self.shade_provider = shade_provider or shade_map_service

    @staticmethod
    def _check_cancelled(cancel_event: Optional[asyncio.Event]):
        if cancel_event is not None and cancel_event.is_set():
            raise RouteCancelled("Route query cancelled")

    async def _get_shade_field(self, bbox: BoundingBox, when: datetime) -> Optional[ShadeField]:
        """日陰マップを取得。失敗時は日陰なしで続行する"""
        try:
            return await self.shade_provider.generate(bbox, when)
        except Exception as e:
            logger.warning(f"Shade map unavailable, routing without shade: {e}")
            return None

    async def find_walking_route(self,
                                 start: Tuple[float, float],
                                 end: Tuple[float, float],
                                 when: datetime,
                                 options: Optional[RouteOptions] = None,
                                 observer: Optional[ProgressObserver] = None,
                                 debug_mode: bool = False,
                                 cancel_event: Optional[asyncio.Event] = None,
                                 tracker: Optional[ProgressTracker] = None) -> RouteResult:
        """
        日陰を考慮した徒歩ルートを探索

        Args:
            start: 出発地 (lat, lon)
            end: 目的地 (lat, lon)
            when: 日陰を計算する日時
            options: 探索オプション（省略時は設定値）
            observer: 段階の開始を受け取るオブザーバー
            debug_mode: デバッグ情報を結果に含める
            cancel_event: セットされると次の区切りで RouteCancelled を送出

        Raises:
            ProviderError: 道路データの取得に失敗した場合
            InvalidInput: 出発地・目的地に近いノードがない場合
            NoRouteFound: 経路が存在しない場合
            RouteCancelled: キャンセルされた場合
        """
        query_start = time.time()
        options = options or RouteOptions.from_config()
        tracker = tracker or ProgressTracker(observer)

        bbox = BoundingBox.around_points(start[0], start[1], end[0], end[1], map_config.bbox_padding)

        tracker.advance(ProgressStage.FETCHING_TOPOLOGY)
        topology = await self.topology_provider.get_topology(bbox)
        self._check_cancelled(cancel_event)

        tracker.advance(ProgressStage.COMPUTING_SHADE_FIELD)
        shade_field = await self._get_shade_field(bbox, when)
        self._check_cancelled(cancel_event)

        tracker.advance(ProgressStage.BUILDING_GRAPH)
        builder = GraphBuilder(record_sample_history=debug_mode)
        graph = await builder.build_async(topology, shade_field, cancel_event)
        self._check_cancelled(cancel_event)

        tracker.advance(ProgressStage.SEARCHING)
        route = AStarRouter(graph, options).find_route(start, end, debug_mode=debug_mode)

        tracker.advance(ProgressStage.COMPLETED)
        elapsed_ms = int((time.time() - query_start) * 1000)
        logger.info(f"Walking route computed in {elapsed_ms}ms")

        if not debug_mode:
            return route

        debug_info = dict(route.debug_info or {})
        debug_info.update({
            "bbox": dataclasses.asdict(bbox),
            "topology_elements": topology.element_count,
            "graph": {
                "nodes": graph.node_count,
                "edges": graph.edge_count,
                "segments": graph.segment_count,
                **graph.stats.as_dict(),
            },
            "shade_field": None if shade_field is None else {
                "width": shade_field.width,
                "height": shade_field.height,
                "shaded_ratio": round(shade_field.shaded_ratio(), 4),
                "sampled_pixels": int(builder.last_sampler.history_mask().sum()) if builder.last_sampler else 0,
            },
            "options": dataclasses.asdict(options),
            "total_time_ms": elapsed_ms,
        })
        return dataclasses.replace(route, debug_info=debug_info)

# グローバルサービスインスタンス
route_service = RouteService()


async def find_walking_route(start: Tuple[float, float], end: Tuple[float, float], when: datetime,
                             options: Optional[RouteOptions] = None, **kwargs) -> RouteResult:
    """既定のサービスでルートを探索"""
    return await route_service.find_walking_route(start, end, when, options, **kwargs)
