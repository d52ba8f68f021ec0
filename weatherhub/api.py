"""
REST API module for the weather aggregation service.

Provides endpoints for:
- Merged weather for a coordinate (served from the refresh cache)
- Cache statistics
- Health check
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import Settings
from .errors import CacheShutDown, InvalidCoordinate, WeatherError
from .locations import Coordinate
from .scheduler import WeatherCache

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

DEFAULT_LAT = "45.4215"  # Ottawa
DEFAULT_LON = "-75.6998"


# =============================================================================
# Pydantic Models
# =============================================================================

class CacheStatistics(BaseModel):
    total_locations: int
    total_fetches: int
    total_errors: int
    average_age: str


class CachedLocation(BaseModel):
    coordinates: str
    key: str
    next_refresh: Optional[str]


class CacheInfo(BaseModel):
    enabled: bool
    refresh_interval: str
    statistics: CacheStatistics
    locations: List[CachedLocation]


class CacheStatusResponse(BaseModel):
    cache: CacheInfo
    timestamp: str


class HealthResponse(BaseModel):
    status: str


# =============================================================================
# Global State
# =============================================================================

cache: Optional[WeatherCache] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global cache

    logger.info("Starting weather aggregation service...")
    cache = WeatherCache(settings=Settings.from_env())

    yield

    logger.info("Shutting down...")
    if cache:
        cache.shutdown()
        cache = None
    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="WeatherHub API",
    description="Current conditions and forecasts merged from Environment Canada and Open-Meteo",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def format_weather_response(data: Dict[str, Any], coord: Coordinate) -> Dict[str, Any]:
    """Wrap a cached snapshot with location and processing metadata."""
    return {
        "location": {
            "latitude": coord.lat,
            "longitude": coord.lon,
            "coordinates": str(coord),
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "data": {
            "current": data["current"],
            "hourly": data["hourly"],
            "forecast": {
                "short_range": data["short_range"],
                "extended": data["extended"],
            },
            "alerts": data["alerts"],
            "sources": data["sources"],
        },
        "metadata": {
            "cache": data.get("cache"),
            "capabilities": {
                "current": "Real-time conditions with feels-like temperature (humidex/wind chill/apparent temp)",
                "hourly": "Next 24 hours from Open-Meteo",
                "short_range": "Named-period forecast from Environment Canada",
                "extended": "14-day daily forecast from Open-Meteo",
                "alerts": "Stale observation warnings from Environment Canada",
            },
            "data_processing": {
                "temperatures": "All temperatures are rounded to nearest degree",
                "feels_like": "Humidex (>20°C), wind chill (<10°C), or apparent temperature",
            },
        },
    }


# =============================================================================
# API Endpoints
# =============================================================================

@app.get("/api/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="ok")


@app.get("/api/weather", tags=["Weather"])
def get_weather(
    lat: str = Query(default=DEFAULT_LAT, description="Latitude, -90 to 90"),
    lon: str = Query(default=DEFAULT_LON, description="Longitude, -180 to 180")
):
    """Get merged weather for a coordinate."""
    if not cache:
        raise HTTPException(status_code=503, detail="Weather cache not available")

    try:
        coord = Coordinate.parse(lat, lon)
    except InvalidCoordinate as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"Weather request for coordinates: {lat}, {lon}")

    try:
        data = cache.ensure(coord)
    except CacheShutDown:
        raise HTTPException(status_code=503, detail="Weather cache is shutting down")
    except WeatherError as e:
        logger.error(f"Weather fetch error for {coord}: {e}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Weather service unavailable",
                "message": "Unable to fetch weather data from available sources",
                "details": str(e),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    return format_weather_response(data, coord)


@app.get("/api/weather/cache", response_model=CacheStatusResponse, tags=["Weather"])
async def get_cache_status():
    """Get cache statistics and cached locations."""
    if not cache:
        raise HTTPException(status_code=503, detail="Weather cache not available")

    stats = cache.stats()
    locations = cache.locations()

    return CacheStatusResponse(
        cache=CacheInfo(
            enabled=True,
            refresh_interval=f"{cache.refresh_interval:g} minutes",
            statistics=CacheStatistics(
                total_locations=stats.location_count,
                total_fetches=stats.total_fetches,
                total_errors=stats.total_errors,
                average_age=f"{round(stats.average_age_ms / 1000)}s",
            ),
            locations=[
                CachedLocation(
                    coordinates=f"{loc['lat']:.4f}, {loc['lon']:.4f}",
                    key=loc["key"],
                    next_refresh=loc["next_refresh"],
                )
                for loc in locations
            ],
        ),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "weatherhub.api:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("DEBUG", "false").lower() == "true"
    )
