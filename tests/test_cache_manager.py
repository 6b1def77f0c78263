from cache_manager import CacheManager, LRUCache, bbox_cache_key
from config import cache_config
from geo_utils import BoundingBox


def test_lru_cache_evicts_least_recently_used():
    cache = LRUCache("test", max_size=2, ttl_seconds=60)
    cache.put("a", 1)
    cache.put("b", 2)
    assert cache.get("a") == 1
    cache.put("c", 3)

    assert cache.get("b") is None
    assert cache.get("a") == 1
    assert cache.get("c") == 3


def test_lru_cache_expires_items():
    cache = LRUCache("test", max_size=10, ttl_seconds=60)
    cache.put("a", 1)
    cache.put("b", 2)
    cache._cache["a"].timestamp -= 120

    assert cache.cleanup_expired() == 1
    assert cache.get("a") is None
    assert cache.get("b") == 2


def test_lru_cache_stats():
    cache = LRUCache("test", max_size=10, ttl_seconds=60)
    cache.put("a", 1)
    cache.get("a")
    cache.get("missing")

    stats = cache.stats()
    assert (stats["size"], stats["hits"], stats["misses"]) == (1, 1, 1)
    assert stats["hit_rate"] == 0.5

    cache.clear()
    assert cache.stats()["size"] == 0


def test_bbox_cache_key_depends_on_prefix_and_bbox():
    bbox = BoundingBox(west=139.0, south=35.0, east=139.1, north=35.1)
    other = BoundingBox(west=139.0, south=35.0, east=139.1, north=35.2)

    assert bbox_cache_key("topology", bbox) == bbox_cache_key("topology", bbox)
    assert bbox_cache_key("topology", bbox) != bbox_cache_key("buildings", bbox)
    assert bbox_cache_key("topology", bbox) != bbox_cache_key("topology", other)


def test_manager_respects_disabled_caches(monkeypatch):
    manager = CacheManager(cleanup_interval=3600)
    monkeypatch.setattr(cache_config, "topology_cache_enabled", False)

    manager.set_topology("key", "topology")
    manager.set_buildings("key", ["building"])

    assert manager.get_topology("key") is None
    assert manager.get_buildings("key") == ["building"]
    assert set(manager.stats()) == {"topology_cache", "building_cache"}

    manager.clear_all()
    assert manager.get_buildings("key") is None
