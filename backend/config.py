"""
設定ファイル - ルート探索・日陰計算・外部API
"""
import os
from dataclasses import dataclass
from typing import List

@dataclass
class APIConfig:
    """API関連の設定"""
    host: str = "0.0.0.0"
    port: int = 8006
    title: str = "Shade Walking Route API"
    version: str = "3.0.0"

    # CORS設定
    cors_origins: List[str] = None
    cors_allow_credentials: bool = True
    cors_allow_methods: List[str] = None
    cors_allow_headers: List[str] = None

    def __post_init__(self):
        if self.cors_origins is None:
            self.cors_origins = ["http://localhost:3000", "http://localhost:5173", "http://localhost:5174"]
        if self.cors_allow_methods is None:
            self.cors_allow_methods = ["GET", "POST"]
        if self.cors_allow_headers is None:
            self.cors_allow_headers = ["*"]

@dataclass
class CacheConfig:
    """キャッシュ関連の設定"""
    max_cache_size: int = 10  # 最大キャッシュアイテム数
    cache_ttl_seconds: int = 3600  # キャッシュの有効期限（1時間）
    topology_cache_enabled: bool = True
    building_cache_enabled: bool = True

@dataclass
class MapConfig:
    """地図関連の設定"""
    # 出発地・目的地の外側に取る余白（度、約500m）
    bbox_padding: float = 0.005

@dataclass
class RoutingConfig:
    """ルート探索の設定"""
    walk_speed_mps: float = 1.4  # 約5.0 km/h
    shade_preference: float = 0.0  # 0 = 日陰を考慮しない, 1 = 日陰を強く優先
    pedestrian_path_preference: float = 0.2  # 歩行者専用道の優先度

    # エッジ上の日陰サンプリング
    shade_sample_interval_m: float = 5.0
    min_shade_samples: int = 5

    # グラフ構築中に制御を返す間隔（要素数）
    yield_every: int = 100

    # 孤立ノードを最寄りノード候補から除外する
    validate_connectivity: bool = True

    # 出発地・目的地からノードまでの最大距離（メートル）
    max_snap_distance_m: float = 1000.0

@dataclass
class ShadeConfig:
    """日陰マップ生成の設定"""
    enabled: bool = True
    meters_per_pixel: float = 2.0
    max_raster_dimension: int = 2048
    min_building_height: float = 3.0
    default_building_height: float = 10.0

@dataclass
class PerformanceConfig:
    """パフォーマンス関連の設定"""
    # 外部API呼び出しのタイムアウト（秒）
    external_api_timeout: int = 60

    # リクエストの最大待機時間（秒）
    max_request_timeout: int = 180

    # 建物データの最大取得数
    max_buildings_per_request: int = 5000

@dataclass
class OSMConfig:
    """OpenStreetMap関連の設定"""
    overpass_url: str = "https://overpass-api.de/api/interpreter"
    backup_overpass_urls: List[str] = None

    def __post_init__(self):
        if self.backup_overpass_urls is None:
            self.backup_overpass_urls = [
                "https://overpass.kumi.systems/api/interpreter",
                "https://overpass.openstreetmap.ru/api/interpreter"
            ]

# 設定インスタンス
api_config = APIConfig()
cache_config = CacheConfig()
map_config = MapConfig()
routing_config = RoutingConfig()
shade_config = ShadeConfig()
performance_config = PerformanceConfig()
osm_config = OSMConfig()

# 環境変数からの設定上書き
def load_config_from_env():
    """環境変数から設定を読み込む"""
    if os.getenv("API_PORT"):
        api_config.port = int(os.getenv("API_PORT"))

    if os.getenv("CACHE_TTL"):
        cache_config.cache_ttl_seconds = int(os.getenv("CACHE_TTL"))

    if os.getenv("CORS_ORIGINS"):
        api_config.cors_origins = os.getenv("CORS_ORIGINS").split(",")

    if os.getenv("WALK_SPEED"):
        routing_config.walk_speed_mps = float(os.getenv("WALK_SPEED"))

    if os.getenv("SHADE_SAMPLE_INTERVAL"):
        routing_config.shade_sample_interval_m = float(os.getenv("SHADE_SAMPLE_INTERVAL"))

    if os.getenv("SHADE_ENABLED"):
        shade_config.enabled = os.getenv("SHADE_ENABLED").lower() in ("1", "true", "yes")

    if os.getenv("OVERPASS_URL"):
        osm_config.overpass_url = os.getenv("OVERPASS_URL")

# 初期化時に環境変数を読み込む
load_config_from_env()
