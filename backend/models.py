"""
データモデル - APIの入出力スキーマ
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

class ProgressStage(str, Enum):
    """ルート探索の進行段階（この順に進む）"""
    FETCHING_TOPOLOGY = "fetching_topology"
    COMPUTING_SHADE_FIELD = "computing_shade_field"
    BUILDING_GRAPH = "building_graph"
    SEARCHING = "searching"
    COMPLETED = "completed"

PROGRESS_MESSAGES = {
    ProgressStage.FETCHING_TOPOLOGY: "Getting ways data...",
    ProgressStage.COMPUTING_SHADE_FIELD: "Computing shade map...",
    ProgressStage.BUILDING_GRAPH: "Building graph...",
    ProgressStage.SEARCHING: "Finding route...",
    ProgressStage.COMPLETED: "Route completed",
}

class LatLon(BaseModel):
    """座標"""
    lat: float = Field(..., ge=-90, le=90, description="緯度")
    lon: float = Field(..., ge=-180, le=180, description="経度")

class RoutingOptionsModel(BaseModel):
    """探索オプション（未指定は設定値を使用）"""
    walk_speed_mps: Optional[float] = Field(None, gt=0, description="歩行速度（m/s）")
    shade_preference: Optional[float] = Field(None, ge=0.0, le=1.0, description="日陰の優先度")
    pedestrian_path_preference: Optional[float] = Field(None, ge=0.0, le=1.0, description="歩行者専用道の優先度")

class WalkingRouteRequest(BaseModel):
    """ルートリクエスト"""
    start: LatLon = Field(..., description="出発地")
    end: LatLon = Field(..., description="目的地")
    date: datetime = Field(..., description="日時 (ISO 8601、タイムゾーンなしはUTC)")
    options: RoutingOptionsModel = Field(default_factory=RoutingOptionsModel)
    debug_mode: bool = Field(default=False, description="デバッグ情報を含める")

class RouteSegmentModel(BaseModel):
    """日陰/日向の区間"""
    coordinates: List[List[float]] = Field(..., description="[longitude, latitude] のリスト")
    distance: float = Field(..., ge=0, description="区間距離（メートル）")

class ShadeStatsModel(BaseModel):
    """日陰統計"""
    total_distance: int = Field(..., ge=0, description="総距離（メートル）")
    shaded_distance: int = Field(..., ge=0, description="日陰距離（メートル）")
    sunny_distance: int = Field(..., ge=0, description="日向距離（メートル）")
    shaded_percentage: int = Field(..., ge=0, le=100)
    sunny_percentage: int = Field(..., ge=0, le=100)

class ProgressStepModel(BaseModel):
    stage: ProgressStage
    message: str
    completed: bool

class WalkingRouteResponse(BaseModel):
    """ルートレスポンス"""
    coordinates: List[List[float]] = Field(..., description="[longitude, latitude] のリスト")
    distance: float = Field(..., ge=0, description="総距離（メートル）")
    duration: float = Field(..., ge=0, description="コスト重み付き所要時間（秒）")
    walking_time: float = Field(..., ge=0, description="距離 / 歩行速度（秒）")
    edges: List[int] = Field(..., description="エッジIDのリスト")
    shade: List[float] = Field(..., description="エッジごとの日陰率")
    shaded_segments: List[RouteSegmentModel]
    sunny_segments: List[RouteSegmentModel]
    stats: ShadeStatsModel
    progress: List[ProgressStepModel]
    calculation_time_ms: Optional[int] = Field(None, description="計算時間（ミリ秒）")
    debug: Optional[Dict[str, Any]] = Field(None, description="デバッグ情報")

class HealthResponse(BaseModel):
    """ヘルスチェックレスポンス"""
    status: str = Field(..., description="ステータス")
    timestamp: str = Field(..., description="タイムスタンプ")
    version: str = Field(..., description="APIバージョン")
    cache_stats: Optional[Dict[str, Any]] = Field(None, description="キャッシュ統計")

class ErrorResponse(BaseModel):
    """エラーレスポンス"""
    error: str = Field(..., description="エラータイプ")
    message: str = Field(..., description="エラーメッセージ")
    details: Optional[Dict[str, Any]] = Field(None, description="詳細情報")
    timestamp: str = Field(..., description="タイムスタンプ")
