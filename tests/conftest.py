import math

import numpy as np
import pytest

from geo_utils import EARTH_RADIUS_M, BoundingBox, haversine_distance
from graph_builder import Graph, GraphEdge, GraphNode
from osm_service import RawNode, RawTopology, RawWay
from shadow_sampler import ShadeField

BASE_LAT = 35.0
BASE_LON = 139.0

# 子午線方向に100m進む緯度差
DEG_PER_100M = 100 / (math.pi * EARTH_RADIUS_M / 180)


def make_graph(coords, segments):
    """
    coords: [(lat, lon), ...]
    segments: [(a, b, dict(length=..., highway=..., shade=..., oneway=...)), ...]
    """
    nodes = [GraphNode(index=i, lat=lat, lon=lon, osm_id=1000 + i) for i, (lat, lon) in enumerate(coords)]
    edges = []
    for edge_id, (a, b, attrs) in enumerate(segments):
        length = attrs.get("length")
        if length is None:
            length = haversine_distance(coords[a][0], coords[a][1], coords[b][0], coords[b][1])
        common = dict(
            id=edge_id,
            length_m=length,
            way_osm_id=500 + edge_id,
            highway=attrs.get("highway", "residential"),
            shade_fraction=attrs.get("shade", 0.0),
        )
        edges.append(GraphEdge(from_index=a, to_index=b, **common))
        if not attrs.get("oneway", False):
            edges.append(GraphEdge(from_index=b, to_index=a, **common))
    return Graph(nodes, edges)


def line_coords(count=4):
    """南から北へ100m間隔で並ぶノード"""
    return [(BASE_LAT + i * DEG_PER_100M, BASE_LON) for i in range(count)]


@pytest.fixture
def line_graph():
    """A-B-C-D（各100m、日陰なし）"""
    return make_graph(line_coords(), [
        (0, 1, dict(length=100.0)),
        (1, 2, dict(length=100.0)),
        (2, 3, dict(length=100.0)),
    ])


@pytest.fixture
def line_topology():
    """A-B-C-D に相当する道路トポロジー"""
    nodes = [RawNode(osm_id=10 + i, lat=lat, lon=lon) for i, (lat, lon) in enumerate(line_coords())]
    ways = [RawWay(osm_id=1, node_ids=(10, 11, 12, 13), tags={"highway": "residential"})]
    return RawTopology(nodes=nodes, ways=ways)


def make_field(width, height, fill=255):
    pixels = np.full((height, width, 4), 255, dtype=np.uint8)
    pixels[:, :, :3] = fill
    return pixels


@pytest.fixture
def unit_bounds():
    return BoundingBox(west=0.0, south=0.0, east=1.0, north=1.0)


@pytest.fixture
def half_shaded_field(unit_bounds):
    """西半分が日陰の10x10ラスター"""
    pixels = make_field(10, 10)
    pixels[:, :5, :3] = 0
    return ShadeField(bounds=unit_bounds, pixels=pixels)


def edges_with_id(graph, edge_id):
    """同じエッジIDをもつ有向エッジ（双方向なら2本）"""
    return [edge for edge in graph.edges if edge.id == edge_id]
