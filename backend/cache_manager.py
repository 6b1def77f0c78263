"""
キャッシュマネージャー - 外部データ（道路・建物）のメモリキャッシュ
"""
import hashlib
import time
import logging
import threading
from collections import OrderedDict
from typing import Any, Dict, Optional
from dataclasses import dataclass

from config import cache_config
from geo_utils import BoundingBox

logger = logging.getLogger(__name__)

def bbox_cache_key(prefix: str, bbox: BoundingBox) -> str:
    """境界ボックスからキャッシュキーを生成"""
    bbox_str = f"{prefix}:{bbox.to_overpass()}"
    return hashlib.md5(bbox_str.encode()).hexdigest()

@dataclass
class CacheItem:
    """キャッシュアイテム"""
    value: Any
    timestamp: float
    access_count: int = 0

    def is_expired(self, ttl_seconds: int) -> bool:
        return time.time() - self.timestamp > ttl_seconds

class LRUCache:
    """TTL付きLRUキャッシュ（スレッドセーフ）"""

    def __init__(self, name: str, max_size: int = 100, ttl_seconds: int = 3600):
        self.name = name
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._cache: OrderedDict[str, CacheItem] = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._cache.get(key)
            if item is None or item.is_expired(self.ttl_seconds):
                if item is not None:
                    del self._cache[key]
                self._misses += 1
                return None

            item.access_count += 1
            self._cache.move_to_end(key)
            self._hits += 1
            return item.value

    def put(self, key: str, value: Any) -> None:
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
            elif len(self._cache) >= self.max_size:
                oldest_key, _ = self._cache.popitem(last=False)
                logger.debug(f"Evicted {self.name} cache item: {oldest_key}")

            self._cache[key] = CacheItem(value, time.time())

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    def cleanup_expired(self) -> int:
        """期限切れアイテムを削除し、削除件数を返す"""
        with self._lock:
            expired_keys = [key for key, item in self._cache.items()
                            if item.is_expired(self.ttl_seconds)]
            for key in expired_keys:
                del self._cache[key]
            return len(expired_keys)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._cache),
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / total if total > 0 else 0.0,
                "ttl_seconds": self.ttl_seconds
            }

class CacheManager:
    """道路トポロジーと建物データのキャッシュ"""

    def __init__(self, cleanup_interval: int = 300):
        self.topology_cache = LRUCache(
            "topology",
            max_size=cache_config.max_cache_size,
            ttl_seconds=cache_config.cache_ttl_seconds
        )
        self.building_cache = LRUCache(
            "building",
            max_size=cache_config.max_cache_size,
            ttl_seconds=cache_config.cache_ttl_seconds
        )
        self.cleanup_interval = cleanup_interval
        self._cleanup_thread = None
        self._start_cleanup_thread()

    def _start_cleanup_thread(self):
        if self._cleanup_thread is None or not self._cleanup_thread.is_alive():
            self._cleanup_thread = threading.Thread(
                target=self._cleanup_worker,
                daemon=True
            )
            self._cleanup_thread.start()

    def _cleanup_worker(self):
        """定期的に期限切れアイテムを削除"""
        while True:
            time.sleep(self.cleanup_interval)
            try:
                topology_cleaned = self.topology_cache.cleanup_expired()
                building_cleaned = self.building_cache.cleanup_expired()

                if topology_cleaned > 0 or building_cleaned > 0:
                    logger.info(f"Cache cleanup: {topology_cleaned} topology items, {building_cleaned} building items")
            except Exception as e:
                logger.error(f"Cache cleanup error: {e}")

    def get_topology(self, cache_key: str) -> Optional[Any]:
        if not cache_config.topology_cache_enabled:
            return None
        return self.topology_cache.get(cache_key)

    def set_topology(self, cache_key: str, topology: Any) -> None:
        if cache_config.topology_cache_enabled:
            self.topology_cache.put(cache_key, topology)

    def get_buildings(self, cache_key: str) -> Optional[Any]:
        if not cache_config.building_cache_enabled:
            return None
        return self.building_cache.get(cache_key)

    def set_buildings(self, cache_key: str, buildings: Any) -> None:
        if cache_config.building_cache_enabled:
            self.building_cache.put(cache_key, buildings)

    def clear_all(self) -> None:
        self.topology_cache.clear()
        self.building_cache.clear()

    def stats(self) -> Dict[str, Any]:
        return {
            "topology_cache": self.topology_cache.stats(),
            "building_cache": self.building_cache.stats()
        }

# グローバルキャッシュマネージャー
cache_manager = CacheManager()
