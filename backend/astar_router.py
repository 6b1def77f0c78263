"""
A*法による日陰考慮ルート探索
"""
import heapq
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from config import routing_config
from exceptions import InvalidInput, NoRouteFound
from geo_utils import haversine_distance
from graph_builder import Graph, GraphEdge

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteOptions:
    """ルート探索のオプション"""
    walk_speed_mps: float = 1.4
    shade_preference: float = 0.0  # 0-1
    pedestrian_path_preference: float = 0.2  # 0-1
    validate_connectivity: bool = True
    max_snap_distance_m: Optional[float] = field(default_factory=lambda: routing_config.max_snap_distance_m)  # Noneで制限なし

    def __post_init__(self):
        if self.walk_speed_mps <= 0:
            raise ValueError(f"walk_speed_mps must be positive, got {self.walk_speed_mps}")
        if not 0.0 <= self.shade_preference <= 1.0:
            raise ValueError(f"shade_preference must be in [0, 1], got {self.shade_preference}")
        if not 0.0 <= self.pedestrian_path_preference <= 1.0:
            raise ValueError(f"pedestrian_path_preference must be in [0, 1], got {self.pedestrian_path_preference}")

    @classmethod
    def from_config(cls, **overrides) -> "RouteOptions":
        """設定値を既定値とし、Noneでない引数で上書きする"""
        values = dict(
            walk_speed_mps=routing_config.walk_speed_mps,
            shade_preference=routing_config.shade_preference,
            pedestrian_path_preference=routing_config.pedestrian_path_preference,
            validate_connectivity=routing_config.validate_connectivity,
            max_snap_distance_m=routing_config.max_snap_distance_m,
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass(frozen=True)
class RouteResult:
    """
    探索結果

    coordinates は (lon, lat) の順。edge_ids と edge_shade_fractions は同じ長さ。
    total_duration_s はコスト重み付きの所要時間（ゴールのg値）。
    """
    coordinates: Tuple[Tuple[float, float], ...]
    total_distance_m: float
    total_duration_s: float
    edge_ids: Tuple[int, ...]
    edge_shade_fractions: Tuple[float, ...]
    node_path: Tuple[int, ...]
    base_time_s: float = 0.0  # 距離 / 歩行速度
    debug_info: Optional[Dict] = field(default=None, compare=False)


def edge_cost(edge: GraphEdge, options: RouteOptions) -> float:
    """エッジのコスト（秒）"""
    base_time = edge.length_m / options.walk_speed_mps
    path_type_multiplier = (1 - options.pedestrian_path_preference) if edge.is_pedestrian_priority else 1.0
    shade_multiplier = 1 + options.shade_preference * (1 - edge.shade_fraction)
    return base_time * path_type_multiplier * shade_multiplier


def heuristic_scale(options: RouteOptions) -> float:
    """
    ヒューリスティックの係数

    日陰係数は常に1以上、道路種別係数の最小値は (1 - pedestrian_path_preference)。
    直線距離 / 速度 にこの最小値を掛ければ残りコストを超えない。
    """
    return 1 - options.pedestrian_path_preference


@dataclass
class SearchNode:
    """A*法のオープンリスト要素"""
    f: float
    seq: int
    index: int

    def __lt__(self, other):
        return (self.f, self.seq) < (other.f, other.seq)


def nearest_node(graph: Graph, lat: float, lon: float,
                 validate_connectivity: bool = True,
                 max_distance_m: Optional[float] = None) -> Optional[int]:
    """最寄りノードを線形探索。同距離なら番号の小さいノード"""
    best_index = None
    best_distance = math.inf

    for node in graph.nodes:
        if validate_connectivity and not graph.has_links(node.index):
            continue
        dist = haversine_distance(lat, lon, node.lat, node.lon)
        if dist < best_distance:
            best_distance = dist
            best_index = node.index

    if best_index is not None and max_distance_m is not None and best_distance > max_distance_m:
        logger.warning(f"Nearest node to ({lat}, {lon}) is {best_distance:.0f}m away")
        return None
    return best_index


class AStarRouter:
    """日陰を考慮したA*経路探索"""

    def __init__(self, graph: Graph, options: Optional[RouteOptions] = None):
        self.graph = graph
        self.options = options or RouteOptions()
        self.expanded_nodes = 0

    def _heuristic(self, index: int, goal_lat: float, goal_lon: float, scale: float) -> float:
        node = self.graph.nodes[index]
        return haversine_distance(node.lat, node.lon, goal_lat, goal_lon) / self.options.walk_speed_mps * scale

    def search(self, start_index: int, goal_index: int) -> Tuple[List[int], List[GraphEdge], float]:
        """
        ノード間の最小コスト経路を探索

        Returns:
            (ノード列, エッジ列, ゴールのg値)

        Raises:
            NoRouteFound: 経路が存在しない場合
        """
        goal = self.graph.nodes[goal_index]
        scale = heuristic_scale(self.options)

        g_scores: Dict[int, float] = {start_index: 0.0}
        parents: Dict[int, Tuple[int, GraphEdge]] = {}
        closed: Set[int] = set()

        seq = 0
        open_heap = [SearchNode(self._heuristic(start_index, goal.lat, goal.lon, scale), seq, start_index)]
        self.expanded_nodes = 0

        while open_heap:
            current = heapq.heappop(open_heap)
            if current.index in closed:
                continue
            closed.add(current.index)
            self.expanded_nodes += 1

            if current.index == goal_index:
                nodes, edges = self._reconstruct_path(parents, start_index, goal_index)
                return nodes, edges, g_scores[goal_index]

            current_g = g_scores[current.index]
            for edge in self.graph.outgoing(current.index):
                neighbor = edge.to_index
                if neighbor in closed:
                    continue

                tentative_g = current_g + edge_cost(edge, self.options)
                if tentative_g < g_scores.get(neighbor, math.inf):
                    g_scores[neighbor] = tentative_g
                    parents[neighbor] = (current.index, edge)
                    seq += 1
                    f = tentative_g + self._heuristic(neighbor, goal.lat, goal.lon, scale)
                    heapq.heappush(open_heap, SearchNode(f, seq, neighbor))

        raise NoRouteFound(f"No route found between nodes {start_index} and {goal_index}")

    def _reconstruct_path(self, parents: Dict[int, Tuple[int, GraphEdge]],
                          start_index: int, goal_index: int) -> Tuple[List[int], List[GraphEdge]]:
        """親ポインタをたどってパスを再構築"""
        nodes = [goal_index]
        edges: List[GraphEdge] = []
        current = goal_index

        while current != start_index:
            parent, edge = parents[current]
            edges.append(edge)
            nodes.append(parent)
            current = parent

        nodes.reverse()
        edges.reverse()
        return nodes, edges

    def find_route(self, start: Tuple[float, float], goal: Tuple[float, float],
                   debug_mode: bool = False) -> RouteResult:
        """
        座標間のルートを探索

        Args:
            start: 出発地 (lat, lon)
            goal: 目的地 (lat, lon)

        Raises:
            InvalidInput: 出発地・目的地に対応するノードがない場合
            NoRouteFound: 経路が存在しない場合
        """
        start_time = time.time()
        logger.info(f"Finding route from ({start[0]}, {start[1]}) to ({goal[0]}, {goal[1]})")

        start_index = nearest_node(self.graph, start[0], start[1],
                                   self.options.validate_connectivity, self.options.max_snap_distance_m)
        goal_index = nearest_node(self.graph, goal[0], goal[1],
                                  self.options.validate_connectivity, self.options.max_snap_distance_m)

        if start_index is None or goal_index is None:
            raise InvalidInput("Could not find nearby nodes for start or goal coordinates")

        if debug_mode:
            logger.debug(f"Nearest nodes: {self.graph.nodes[start_index]} -> {self.graph.nodes[goal_index]}")

        node_path, edge_path, total_cost = self.search(start_index, goal_index)

        coordinates = tuple((self.graph.nodes[i].lon, self.graph.nodes[i].lat) for i in node_path)
        total_distance = sum(edge.length_m for edge in edge_path)
        elapsed_ms = (time.time() - start_time) * 1000

        debug_info = None
        if debug_mode:
            debug_info = {
                "start_node": start_index,
                "goal_node": goal_index,
                "start_osm_id": self.graph.nodes[start_index].osm_id,
                "goal_osm_id": self.graph.nodes[goal_index].osm_id,
                "expanded_nodes": self.expanded_nodes,
                "search_time_ms": round(elapsed_ms, 1),
            }

        logger.info(f"Route found: {len(node_path)} nodes, {total_distance:.0f}m, {total_cost:.1f}s "
                    f"in {elapsed_ms:.1f}ms")

        return RouteResult(
            coordinates=coordinates,
            total_distance_m=total_distance,
            total_duration_s=total_cost,
            edge_ids=tuple(edge.id for edge in edge_path),
            edge_shade_fractions=tuple(edge.shade_fraction for edge in edge_path),
            node_path=tuple(node_path),
            base_time_s=total_distance / self.options.walk_speed_mps,
            debug_info=debug_info
        )


def find_route(graph: Graph, start: Tuple[float, float], goal: Tuple[float, float],
               options: Optional[RouteOptions] = None, debug_mode: bool = False) -> RouteResult:
    """グラフ上で出発地から目的地までのルートを探索"""
    return AStarRouter(graph, options).find_route(start, goal, debug_mode=debug_mode)
