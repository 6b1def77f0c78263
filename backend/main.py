"""
日陰考慮の徒歩ルートAPIサーバー
"""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from astar_router import RouteOptions, RouteResult
from building_service import building_service
from cache_manager import cache_manager
from config import api_config, performance_config, routing_config, shade_config
from exceptions import InvalidInput, NoRouteFound, ProviderError, RouteCancelled
from models import (
    PROGRESS_MESSAGES, ErrorResponse, HealthResponse, ProgressStepModel,
    RouteSegmentModel, ShadeStatsModel, WalkingRouteRequest, WalkingRouteResponse
)
from osm_service import osm_service
from route_analysis import ShadeSplit, round_half_up, split_by_shade
from route_service import ProgressTracker, route_service

# ログ設定
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """アプリケーションのライフサイクル管理"""
    logger.info("Starting Shade Walking Route API Server...")

    yield

    logger.info("Shutting down Shade Walking Route API Server...")
    await osm_service.close()
    await building_service.close()
    cache_manager.clear_all()

app = FastAPI(
    title=api_config.title,
    version=api_config.version,
    description="日陰を考慮した徒歩ルート検索API",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=api_config.cors_origins,
    allow_credentials=api_config.cors_allow_credentials,
    allow_methods=api_config.cors_allow_methods,
    allow_headers=api_config.cors_allow_headers,
)

@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """リクエスト処理時間を記録"""
    start_time = time.time()
    response = await call_next(request)
    response.headers["X-Process-Time"] = str(time.time() - start_time)
    return response

def _error_response(status_code: int, error: str, message: str, request: Request) -> JSONResponse:
    error_response = ErrorResponse(
        error=error,
        message=message,
        details={"request_path": str(request.url.path)},
        timestamp=datetime.now().isoformat()
    )
    return JSONResponse(status_code=status_code, content=error_response.model_dump())

@app.exception_handler(InvalidInput)
async def invalid_input_handler(request: Request, exc: InvalidInput):
    return _error_response(400, "invalid_input", str(exc), request)

@app.exception_handler(NoRouteFound)
async def no_route_handler(request: Request, exc: NoRouteFound):
    return _error_response(404, "no_route_found", str(exc), request)

@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError):
    logger.error(f"Provider error: {exc}")
    return _error_response(502, "provider_error", str(exc), request)

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """グローバル例外ハンドラー"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return _error_response(500, "internal_server_error", "内部サーバーエラーが発生しました", request)

def build_route_response(route: RouteResult, split: ShadeSplit, tracker: ProgressTracker,
                         calculation_time_ms: int) -> WalkingRouteResponse:
    """探索結果をレスポンスに変換"""
    stats = split.stats
    return WalkingRouteResponse(
        coordinates=[[lon, lat] for lon, lat in route.coordinates],
        distance=route.total_distance_m,
        duration=route.total_duration_s,
        walking_time=route.base_time_s,
        edges=list(route.edge_ids),
        shade=list(route.edge_shade_fractions),
        shaded_segments=[
            RouteSegmentModel(coordinates=[list(c) for c in s.coordinates], distance=s.distance_m)
            for s in split.shaded_segments
        ],
        sunny_segments=[
            RouteSegmentModel(coordinates=[list(c) for c in s.coordinates], distance=s.distance_m)
            for s in split.sunny_segments
        ],
        stats=ShadeStatsModel(
            total_distance=round_half_up(stats.total_distance_m),
            shaded_distance=round_half_up(stats.shaded_distance_m),
            sunny_distance=max(0, round_half_up(stats.sunny_distance_m)),
            shaded_percentage=stats.shaded_percentage,
            sunny_percentage=stats.sunny_percentage
        ),
        progress=[
            ProgressStepModel(stage=step.stage, message=PROGRESS_MESSAGES[step.stage], completed=step.completed)
            for step in tracker.steps
        ],
        calculation_time_ms=calculation_time_ms,
        debug=route.debug_info
    )

@app.get("/health", response_model=HealthResponse)
async def health_check():
    """ヘルスチェック"""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now().isoformat(),
        version=api_config.version,
        cache_stats=cache_manager.stats()
    )

@app.get("/api/stats")
async def get_stats():
    """システム統計情報"""
    return {
        "cache": cache_manager.stats(),
        "config": {
            "walk_speed_mps": routing_config.walk_speed_mps,
            "shade_sample_interval_m": routing_config.shade_sample_interval_m,
            "shade_enabled": shade_config.enabled,
            "max_request_timeout": performance_config.max_request_timeout
        },
        "timestamp": datetime.now().isoformat()
    }

@app.post("/api/cache/clear")
async def clear_cache():
    """キャッシュクリア"""
    cache_manager.clear_all()
    return {"message": "キャッシュをクリアしました"}

@app.post("/api/route/walking", response_model=WalkingRouteResponse)
async def calculate_walking_route(request: WalkingRouteRequest):
    """日陰を考慮した徒歩ルートを計算"""
    start_time = time.time()
    try:
        options = RouteOptions.from_config(**request.options.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    tracker = ProgressTracker()
    try:
        route = await asyncio.wait_for(
            route_service.find_walking_route(
                start=(request.start.lat, request.start.lon),
                end=(request.end.lat, request.end.lon),
                when=request.date,
                options=options,
                debug_mode=request.debug_mode,
                tracker=tracker
            ),
            timeout=performance_config.max_request_timeout
        )
    except (asyncio.TimeoutError, RouteCancelled):
        logger.warning(f"Route query did not finish (last stage: {tracker.current})")
        raise HTTPException(status_code=504, detail="ルート計算がタイムアウトしました")

    split = split_by_shade(route)
    calculation_time = int((time.time() - start_time) * 1000)
    return build_route_response(route, split, tracker, calculation_time)

def main():
    """メイン関数"""
    logger.info(f"Starting server on {api_config.host}:{api_config.port}")

    uvicorn.run(
        "main:app",
        host=api_config.host,
        port=api_config.port,
        reload=False,
        workers=1,
        loop="asyncio",
        log_level="info"
    )

if __name__ == "__main__":
    main()
