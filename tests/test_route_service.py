import asyncio
from datetime import datetime

import numpy as np
import pytest

from astar_router import RouteOptions
from conftest import line_coords
from exceptions import InvalidInput, ProviderError, RouteCancelled
from geo_utils import BoundingBox
from models import ProgressStage
from route_service import STAGE_ORDER, CallbackObserver, ProgressTracker, RouteService
from shadow_sampler import ShadeField

WHEN = datetime(2024, 6, 21, 3, 0)
START = line_coords()[0]
END = line_coords()[3]


class FakeTopologyProvider:
    def __init__(self, topology=None, error=None):
        self.topology = topology
        self.error = error
        self.requested = []

    async def get_topology(self, bbox):
        self.requested.append(bbox)
        if self.error is not None:
            raise self.error
        return self.topology


class FakeShadeProvider:
    def __init__(self, field_factory=None, error=None):
        self.field_factory = field_factory
        self.error = error

    async def generate(self, bounds, when):
        if self.error is not None:
            raise self.error
        return self.field_factory(bounds) if self.field_factory else None


class RecordingObserver:
    def __init__(self):
        self.stages = []

    def on_stage_changed(self, stage):
        self.stages.append(stage)


def all_shade(bounds):
    pixels = np.zeros((20, 20, 4), dtype=np.uint8)
    return ShadeField(bounds=bounds, pixels=pixels)


def run(coro):
    return asyncio.run(coro)


def test_stages_are_reported_in_order(line_topology):
    observer = RecordingObserver()
    service = RouteService(FakeTopologyProvider(line_topology), FakeShadeProvider())

    route = run(service.find_walking_route(START, END, WHEN, observer=observer))

    assert observer.stages == list(STAGE_ORDER)
    assert route.node_path == (0, 1, 2, 3)
    assert route.total_distance_m == pytest.approx(300.0, rel=1e-6)


def test_callback_observer_receives_stages(line_topology):
    seen = []
    service = RouteService(FakeTopologyProvider(line_topology), FakeShadeProvider())
    run(service.find_walking_route(START, END, WHEN, observer=CallbackObserver(seen.append)))
    assert seen[-1] is ProgressStage.COMPLETED


def test_topology_bbox_covers_both_points(line_topology):
    provider = FakeTopologyProvider(line_topology)
    run(RouteService(provider, FakeShadeProvider()).find_walking_route(START, END, WHEN))

    bbox = provider.requested[0]
    assert isinstance(bbox, BoundingBox)
    assert bbox.contains(*START) and bbox.contains(*END)


def test_topology_failure_propagates_after_first_stage():
    observer = RecordingObserver()
    service = RouteService(FakeTopologyProvider(error=ProviderError("overpass down", status=503)),
                           FakeShadeProvider())

    with pytest.raises(ProviderError):
        run(service.find_walking_route(START, END, WHEN, observer=observer))
    assert observer.stages == [ProgressStage.FETCHING_TOPOLOGY]


def test_shade_failure_degrades_to_unshaded_routing(line_topology):
    service = RouteService(FakeTopologyProvider(line_topology),
                           FakeShadeProvider(error=ProviderError("buildings unavailable")))
    route = run(service.find_walking_route(START, END, WHEN))
    assert route.edge_shade_fractions == (0.0, 0.0, 0.0)


@pytest.mark.parametrize("error", [
    RuntimeError("raster decode failed"),
    ValueError("bad bounds"),
    asyncio.TimeoutError(),
])
def test_any_shade_error_degrades_to_unshaded_routing(line_topology, error):
    service = RouteService(FakeTopologyProvider(line_topology), FakeShadeProvider(error=error))
    route = run(service.find_walking_route(START, END, WHEN))
    assert route.node_path == (0, 1, 2, 3)
    assert route.edge_shade_fractions == (0.0, 0.0, 0.0)


def test_shade_field_is_applied_to_edges(line_topology):
    service = RouteService(FakeTopologyProvider(line_topology), FakeShadeProvider(all_shade))
    route = run(service.find_walking_route(START, END, WHEN, RouteOptions(shade_preference=1.0)))
    assert route.edge_shade_fractions == (1.0, 1.0, 1.0)
    assert route.total_duration_s == pytest.approx(route.base_time_s)


def test_unknown_location_raises_invalid_input(line_topology):
    service = RouteService(FakeTopologyProvider(line_topology), FakeShadeProvider())
    options = RouteOptions(max_snap_distance_m=50)
    with pytest.raises(InvalidInput):
        run(service.find_walking_route((START[0] - 0.1, START[1]), END, WHEN, options))


def test_cancelled_query_raises(line_topology):
    async def scenario():
        cancel_event = asyncio.Event()
        cancel_event.set()
        service = RouteService(FakeTopologyProvider(line_topology), FakeShadeProvider())
        await service.find_walking_route(START, END, WHEN, cancel_event=cancel_event)

    with pytest.raises(RouteCancelled):
        run(scenario())


def test_debug_mode_adds_diagnostics(line_topology):
    service = RouteService(FakeTopologyProvider(line_topology), FakeShadeProvider(all_shade))
    route = run(service.find_walking_route(START, END, WHEN, debug_mode=True))

    debug = route.debug_info
    assert debug["graph"]["nodes"] == 4
    assert debug["graph"]["edges"] == 6
    assert debug["graph"]["segments"] == 3
    assert debug["topology_elements"] == 5
    assert debug["shade_field"]["width"] == 20
    assert debug["shade_field"]["shaded_ratio"] == 1.0
    assert debug["shade_field"]["sampled_pixels"] > 0
    assert debug["options"]["walk_speed_mps"] == 1.4
    assert "bbox" in debug and "total_time_ms" in debug
    assert debug["start_node"] == 0


def test_tracker_marks_previous_stage_completed():
    tracker = ProgressTracker()
    assert tracker.current is None

    tracker.advance(ProgressStage.FETCHING_TOPOLOGY)
    tracker.advance(ProgressStage.COMPUTING_SHADE_FIELD)

    assert tracker.current is ProgressStage.COMPUTING_SHADE_FIELD
    assert [step.completed for step in tracker.steps] == [True, False, False, False, False]


def test_tracker_completed_stage_is_completed():
    tracker = ProgressTracker()
    for stage in STAGE_ORDER:
        tracker.advance(stage)
    assert all(step.completed for step in tracker.steps)


@pytest.mark.parametrize("stage", [ProgressStage.BUILDING_GRAPH, ProgressStage.COMPLETED])
def test_tracker_rejects_skipped_stages(stage):
    tracker = ProgressTracker()
    tracker.advance(ProgressStage.FETCHING_TOPOLOGY)
    with pytest.raises(RuntimeError):
        tracker.advance(stage)


def test_tracker_rejects_going_back():
    tracker = ProgressTracker()
    tracker.advance(ProgressStage.FETCHING_TOPOLOGY)
    tracker.advance(ProgressStage.COMPUTING_SHADE_FIELD)
    with pytest.raises(RuntimeError):
        tracker.advance(ProgressStage.FETCHING_TOPOLOGY)
