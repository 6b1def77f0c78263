"""
歩行グラフの構築

道路トポロジー（ノード + タグ付きウェイ）から有向グラフを作成し、
日陰マップがあれば各エッジに日陰率を付与する。
"""
import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Dict, Generator, List, Optional, Tuple

from config import routing_config
from exceptions import RouteCancelled
from geo_utils import haversine_distance
from osm_service import RawTopology
from shadow_sampler import ShadeField, ShadowSampler

logger = logging.getLogger(__name__)

WALKABLE_HIGHWAYS = frozenset({
    "footway", "path", "pedestrian", "steps", "cycleway",
    "residential", "living_street", "service", "track",
    "primary", "secondary", "tertiary", "unclassified",
    "primary_link", "secondary_link", "tertiary_link",
})

# 歩行者優先の道路種別
PEDESTRIAN_HIGHWAYS = frozenset({"footway", "path", "pedestrian", "steps"})

ONEWAY_VALUES = frozenset({"yes", "true", "1"})


def is_walkable(tags: Dict[str, str]) -> bool:
    """ウェイが歩行可能かどうか"""
    highway = tags.get("highway")
    if not highway:
        return False

    # アクセス制限（foot=yes で上書き可能）
    if tags.get("access") in ("private", "no") and tags.get("foot") != "yes":
        return False
    if tags.get("foot") == "no":
        return False

    return highway in WALKABLE_HIGHWAYS


def is_oneway(tags: Dict[str, str]) -> bool:
    return tags.get("oneway") in ONEWAY_VALUES


@dataclass(frozen=True)
class GraphNode:
    """グラフのノード。index はグラフ内で一意な連番"""
    index: int
    lat: float
    lon: float
    osm_id: Optional[int] = None  # 診断用

    @property
    def coordinate(self) -> Tuple[float, float]:
        return self.lat, self.lon


@dataclass(frozen=True)
class GraphEdge:
    """
    有向エッジ

    双方向のウェイは同じ id・長さ・日陰率をもつ逆向きの2本になる。
    """
    id: int
    from_index: int
    to_index: int
    length_m: float
    way_osm_id: Optional[int] = None
    highway: Optional[str] = None
    shade_fraction: float = 0.0
    name: Optional[str] = None

    @property
    def is_pedestrian_priority(self) -> bool:
        return self.highway in PEDESTRIAN_HIGHWAYS


@dataclass
class GraphBuildStats:
    """グラフ構築の統計"""
    ways_total: int = 0
    ways_walkable: int = 0
    ways_skipped: int = 0
    zero_length_edges: int = 0
    shaded_edges: int = 0
    shade_samples: int = 0
    build_time_ms: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


class Graph:
    """
    歩行グラフ

    ノードとエッジをすべて保持し、隣接リストはノード番号で引く。
    構築後は変更しない。
    """

    def __init__(self, nodes: List[GraphNode], edges: List[GraphEdge],
                 stats: Optional[GraphBuildStats] = None):
        self.nodes: Tuple[GraphNode, ...] = tuple(nodes)
        self.edges: Tuple[GraphEdge, ...] = tuple(edges)
        self.stats = stats or GraphBuildStats()

        for position, node in enumerate(self.nodes):
            if node.index != position:
                raise ValueError(f"Node index {node.index} does not match position {position}")

        node_count = len(self.nodes)
        self._adjacency: List[List[GraphEdge]] = [[] for _ in range(node_count)]
        self._in_degree: List[int] = [0] * node_count

        for edge in self.edges:
            if not (0 <= edge.from_index < node_count and 0 <= edge.to_index < node_count):
                raise ValueError(f"Edge {edge.id} references a missing node "
                                 f"({edge.from_index} -> {edge.to_index})")
            self._adjacency[edge.from_index].append(edge)
            self._in_degree[edge.to_index] += 1

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def edge_count(self) -> int:
        """有向エッジ数"""
        return len(self.edges)

    @property
    def segment_count(self) -> int:
        """エッジIDの数（双方向の2本は1つと数える）"""
        return len({edge.id for edge in self.edges})

    def outgoing(self, index: int) -> List[GraphEdge]:
        return self._adjacency[index]

    def has_links(self, index: int) -> bool:
        """出入りいずれかのエッジをもつか"""
        return bool(self._adjacency[index]) or self._in_degree[index] > 0


@dataclass
class _Segment:
    """ウェイ上の隣接ノード間の区間（向きなし）"""
    id: int
    a: int
    b: int
    length_m: float
    way_osm_id: int
    highway: Optional[str]
    name: Optional[str]
    oneway: bool
    shade_fraction: float = field(default=0.0)


class GraphBuilder:
    """道路トポロジーからグラフを構築する"""

    def __init__(self,
                 sample_interval_m: float = None,
                 min_samples: int = None,
                 yield_every: int = None,
                 record_sample_history: bool = False):
        self.sample_interval_m = sample_interval_m or routing_config.shade_sample_interval_m
        self.min_samples = min_samples or routing_config.min_shade_samples
        self.yield_every = max(1, yield_every or routing_config.yield_every)
        self.record_sample_history = record_sample_history
        self.last_sampler: Optional[ShadowSampler] = None

    def build(self, topology: RawTopology, shade_field: Optional[ShadeField] = None) -> Graph:
        """グラフを構築（同期版）"""
        steps = self._build_steps(topology, shade_field)
        while True:
            try:
                next(steps)
            except StopIteration as done:
                return done.value

    async def build_async(self, topology: RawTopology,
                          shade_field: Optional[ShadeField] = None,
                          cancel_event: Optional[asyncio.Event] = None) -> Graph:
        """
        グラフを構築（非同期版）

        一定件数ごとにイベントループへ制御を返し、
        cancel_event がセットされていれば RouteCancelled を送出する。
        """
        steps = self._build_steps(topology, shade_field)
        while True:
            try:
                next(steps)
            except StopIteration as done:
                return done.value
            await asyncio.sleep(0)
            if cancel_event is not None and cancel_event.is_set():
                steps.close()
                raise RouteCancelled("Graph building cancelled")

    def _build_steps(self, topology: RawTopology,
                     shade_field: Optional[ShadeField]) -> Generator[None, None, Graph]:
        start_time = time.time()
        stats = GraphBuildStats(ways_total=len(topology.ways))

        # ノードに連番を割り当て（最初に出現したものを採用）
        index_by_osm_id: Dict[int, int] = {}
        nodes: List[GraphNode] = []
        for i, raw in enumerate(topology.nodes):
            if raw.osm_id not in index_by_osm_id:
                index_by_osm_id[raw.osm_id] = len(nodes)
                nodes.append(GraphNode(index=len(nodes), lat=raw.lat, lon=raw.lon, osm_id=raw.osm_id))
            if i % self.yield_every == 0:
                yield

        # 歩行可能なウェイから区間を作成
        segments: List[_Segment] = []
        for way in topology.ways:
            if not is_walkable(way.tags):
                continue
            stats.ways_walkable += 1

            valid_indices = [index_by_osm_id[n] for n in way.node_ids if n in index_by_osm_id]
            if len(valid_indices) < 2:
                logger.warning(f"Way {way.osm_id} has fewer than 2 valid nodes, skipping")
                stats.ways_skipped += 1
                continue
            if len(valid_indices) < len(way.node_ids):
                logger.warning(f"Way {way.osm_id} references {len(way.node_ids) - len(valid_indices)} unknown nodes")

            oneway = is_oneway(way.tags)
            for a, b in zip(valid_indices, valid_indices[1:]):
                node_a, node_b = nodes[a], nodes[b]
                length = haversine_distance(node_a.lat, node_a.lon, node_b.lat, node_b.lon)
                if length <= 0:
                    logger.warning(f"Zero-length edge in way {way.osm_id} between nodes "
                                   f"{node_a.osm_id} and {node_b.osm_id}")
                    stats.zero_length_edges += 1
                    continue

                segments.append(_Segment(
                    id=len(segments),
                    a=a,
                    b=b,
                    length_m=length,
                    way_osm_id=way.osm_id,
                    highway=way.tags.get("highway"),
                    name=way.tags.get("name"),
                    oneway=oneway
                ))

            if stats.ways_walkable % self.yield_every == 0:
                yield

        # 日陰率の付与
        if shade_field is not None:
            sampler = ShadowSampler(shade_field, record_history=self.record_sample_history)
            self.last_sampler = sampler
            for i, segment in enumerate(segments):
                node_a, node_b = nodes[segment.a], nodes[segment.b]
                segment.shade_fraction = sampler.sample_along_line(
                    node_a.lat, node_a.lon, node_b.lat, node_b.lon,
                    interval_m=self.sample_interval_m,
                    min_samples=self.min_samples
                )
                if segment.shade_fraction > 0:
                    stats.shaded_edges += 1
                if i % self.yield_every == 0:
                    yield
            stats.shade_samples = len(sampler.history)

        edges: List[GraphEdge] = []
        for segment in segments:
            edges.append(self._make_edge(segment, segment.a, segment.b))
            if not segment.oneway:
                edges.append(self._make_edge(segment, segment.b, segment.a))

        stats.build_time_ms = int((time.time() - start_time) * 1000)
        graph = Graph(nodes, edges, stats)

        logger.info(f"Graph built: {graph.node_count} nodes, {graph.edge_count} edges "
                    f"from {stats.ways_walkable} ways in {stats.build_time_ms}ms")
        return graph

    @staticmethod
    def _make_edge(segment: _Segment, from_index: int, to_index: int) -> GraphEdge:
        return GraphEdge(
            id=segment.id,
            from_index=from_index,
            to_index=to_index,
            length_m=segment.length_m,
            way_osm_id=segment.way_osm_id,
            highway=segment.highway,
            shade_fraction=segment.shade_fraction,
            name=segment.name
        )


def build_graph(topology: RawTopology, shade_field: Optional[ShadeField] = None) -> Graph:
    """既定設定でグラフを構築"""
    return GraphBuilder().build(topology, shade_field)
