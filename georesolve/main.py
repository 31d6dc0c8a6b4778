"""FastAPI application for the GeoResolve location service."""

import logging
from contextlib import asynccontextmanager

import logfire
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.requests import Request

from .config import get_settings
from .errors import UnknownGeography
from .fetcher import Fetcher
from .index_builder import UnifiedIndex, UnifiedIndexLoader
from .loader import MapDataLoader
from .reducer import PayloadReducer
from .schemas import (
    CacheStats,
    CoverageReport,
    DataLoadingInfo,
    GeoLevel,
    LoadReport,
    LocationStats,
    UnifiedLocation,
)
from .state_cache import StateIndexCache
from .states import get_state

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the shared fetcher, cache, reducer and unified index on startup.

    A fetcher already set on ``app.state`` is used as-is.
    """
    fetcher = getattr(app.state, "fetcher", None)
    owns_fetcher = fetcher is None
    if owns_fetcher:
        fetcher = Fetcher(timeout=settings.fetch_timeout)
        app.state.fetcher = fetcher

    cache = StateIndexCache(fetcher, settings.data_base_url)
    reducer = PayloadReducer(cache, sample_size=settings.feature_sample_size)
    app.state.cache = cache
    app.state.reducer = reducer
    app.state.map_loader = MapDataLoader(fetcher, cache, reducer, settings.data_base_url)
    app.state.index = await UnifiedIndexLoader(fetcher, settings.index_base_url).load()
    logger.info(f"Unified index ready: {len(app.state.index)} locations ({app.state.index.source})")

    yield

    if owns_fetcher:
        await fetcher.aclose()
        del app.state.fetcher


app = FastAPI(
    title="GeoResolve API",
    description="Geographic entity resolution over taxonomy, ZIP, census, FRED and Redfin data",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure Logfire for observability (after app creation)
if settings.logfire_token:
    logfire.configure()
    logfire.instrument_fastapi(app)
    logfire.instrument_httpx()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(UnknownGeography)
async def unknown_geography_handler(request: Request, exc: UnknownGeography):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


def _index(request: Request) -> UnifiedIndex:
    return request.app.state.index


def _require_state(code: str) -> str:
    info = get_state(code)
    if not info:
        raise UnknownGeography(f"Unknown state code: {code}")
    return info.code


@app.get("/")
async def root(request: Request):
    """Health check endpoint."""
    index = _index(request)
    return {
        "status": "ok",
        "service": "GeoResolve API",
        "locations": len(index),
        "index_source": index.source,
    }


# =============================================================================
# Location index
# =============================================================================


@app.get("/api/states", response_model=list[UnifiedLocation])
async def list_states(request: Request):
    return _index(request).states()


@app.get("/api/states/{code}/counties", response_model=list[UnifiedLocation])
async def list_counties(code: str, request: Request):
    return _index(request).counties_in_state(_require_state(code))


@app.get("/api/states/{code}/cities", response_model=list[UnifiedLocation])
async def list_cities(code: str, request: Request):
    return _index(request).cities_in_state(_require_state(code))


@app.get("/api/states/{code}/zips", response_model=list[UnifiedLocation])
async def list_zips(code: str, request: Request):
    return _index(request).zips_in_state(_require_state(code))


@app.get("/api/zips/{zip_code}", response_model=UnifiedLocation)
async def get_zip(zip_code: str, request: Request):
    location = _index(request).find_by_zip(zip_code)
    if location is None:
        raise HTTPException(status_code=404, detail=f"ZIP {zip_code} not found")
    return location


@app.get("/api/zips/{zip_code}/loading-info", response_model=DataLoadingInfo)
async def get_zip_loading_info(zip_code: str, request: Request):
    """Which files back a ZIP and whether it has enough data to map."""
    index = _index(request)
    location = index.find_by_zip(zip_code)
    if location is None:
        raise HTTPException(status_code=404, detail=f"ZIP {zip_code} not found")
    return index.data_loading_info(location)


@app.get("/api/locations/near", response_model=list[UnifiedLocation])
async def locations_near(
    request: Request,
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    tolerance: float = Query(0.1, gt=0, le=10),
):
    """Locations within +/- tolerance degrees, nearest first."""
    return _index(request).find_by_coordinates(lat, lon, tolerance, limit=settings.search_limit)


@app.get("/api/locations/search", response_model=list[UnifiedLocation])
async def search_locations(request: Request, q: str = Query(..., min_length=1)):
    return _index(request).search(q, limit=settings.search_limit)


@app.get("/api/stats", response_model=LocationStats)
async def get_stats(request: Request):
    """Location counts by level, by state and by data availability."""
    return _index(request).stats()


@app.get("/api/property-types")
async def get_property_types(request: Request) -> dict[str, str]:
    return _index(request).available_property_types()


# =============================================================================
# Map data
# =============================================================================


@app.get("/api/map/{state}/{level}", response_model=LoadReport)
async def load_map_data(state: str, level: str, request: Request, view_mode: str | None = None):
    """Load GeoJSON, census, FRED and Redfin for a map view.

    Individual source failures are reported per source; only an unknown
    state or level fails the request.
    """
    return await request.app.state.map_loader.load(state, level, view_mode)


# =============================================================================
# State index cache
# =============================================================================


class CacheLoadResponse(BaseModel):
    state: str
    loaded: bool
    partial: bool = False
    failed_levels: list[str] = []


class CacheClearResponse(BaseModel):
    cleared: list[str]


@app.get("/api/cache", response_model=CacheStats)
async def cache_stats(request: Request):
    return request.app.state.cache.get_cache_stats()


@app.post("/api/cache/{state}", response_model=CacheLoadResponse)
async def load_state_cache(state: str, request: Request):
    """Load (or reuse) the county/zip/tract indexes for a state."""
    cache: StateIndexCache = request.app.state.cache
    loaded = await cache.load(state)
    entry = cache.get(state)
    return CacheLoadResponse(
        state=_require_state(state),
        loaded=loaded,
        partial=bool(entry and entry.is_partial),
        failed_levels=list(entry.failed_levels) if entry else [],
    )


@app.delete("/api/cache/{state}", response_model=CacheClearResponse)
async def clear_state_cache(state: str, request: Request):
    code = _require_state(state)
    removed = request.app.state.cache.clear(code)
    return CacheClearResponse(cleared=[code] if removed else [])


@app.delete("/api/cache", response_model=CacheClearResponse)
async def clear_all_caches(request: Request):
    cache: StateIndexCache = request.app.state.cache
    states = cache.loaded_states()
    cache.clear_all()
    return CacheClearResponse(cleared=states)


@app.get("/api/cache/{state}/coverage/{level}", response_model=CoverageReport)
async def cache_coverage(state: str, level: GeoLevel, request: Request):
    """Share of cached index rows that carry a Redfin table id."""
    return request.app.state.cache.coverage(_require_state(state), level)
