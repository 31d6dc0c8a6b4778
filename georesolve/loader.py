"""Concurrent multi-source loading for one map view.

GeoJSON, census, FRED and Redfin are fetched side by side for a
(state, level) pair. Each source ends up as its own ``SourceResult`` so a
dead FRED endpoint, say, still leaves a usable map with census data on it.
"""

import asyncio
import logging
import time

from .columns import (
    REDFIN_ESSENTIAL_COLUMNS,
    filter_by_property_type,
    get_essential_columns,
    project_rows,
)
from .errors import SourceUnavailable
from .fetcher import Fetcher
from .matching import RecordMatcher, filter_to_state
from .reducer import PayloadReducer
from .schemas import (
    DataSource,
    ErrorKind,
    GeoLevel,
    IndexStats,
    LoadReport,
    SourceResult,
    wrap_rows,
)
from .sources import build_source_urls
from .state_cache import StateIndexCache
from .states import get_state

logger = logging.getLogger(__name__)

INDEXED_LEVELS = (GeoLevel.COUNTY, GeoLevel.ZIP)


def _as_rows(payload) -> list[dict]:
    """Raw dataset JSON is either an array of rows or one object."""
    rows = payload if isinstance(payload, list) else [payload]
    return [row for row in rows if isinstance(row, dict)]


class MapDataLoader:
    def __init__(
        self,
        fetcher: Fetcher,
        cache: StateIndexCache,
        reducer: PayloadReducer,
        base_url: str,
    ):
        self.fetcher = fetcher
        self.cache = cache
        self.reducer = reducer
        self.base_url = base_url

    async def _fetch(self, name: str, url: str) -> SourceResult:
        try:
            payload = await self.fetcher.fetch_json(url)
        except SourceUnavailable as e:
            logger.warning(f"{name} unavailable: {e.reason}")
            return SourceResult.failure(ErrorKind.SOURCE_UNAVAILABLE, str(e))
        return SourceResult.success(payload, record_count=0)

    async def _load_indexes(self, state_code: str, level: GeoLevel) -> bool:
        if level not in INDEXED_LEVELS:
            return False
        return await self.cache.load(state_code)

    async def load(self, state_code: str, level: GeoLevel | str, view_mode: str | None = None) -> LoadReport:
        """Load, reduce and join all four sources for one map view.

        Raises ``UnknownGeography`` for an unsupported state/level; every
        per-source failure is reported on the returned ``LoadReport``.
        """
        start = time.perf_counter()
        urls = build_source_urls(self.base_url, state_code, level, view_mode)
        level = GeoLevel(level)
        code = get_state(state_code).code
        essential_columns = get_essential_columns(level)

        logger.info(f"Loading map data: {code} {level.value} (view_mode={view_mode})")

        geojson, census, fred, redfin, indexes_loaded = await asyncio.gather(
            self._fetch("GeoJSON", urls.geojson),
            self._fetch("Census", urls.census),
            self._fetch("FRED", urls.fred),
            self._fetch("Redfin", urls.redfin),
            self._load_indexes(code, level),
        )
        index_load_ms = (time.perf_counter() - start) * 1000

        report = LoadReport(
            state=code,
            level=level,
            view_mode=view_mode,
            essential_columns=essential_columns,
        )

        # GeoJSON
        features: list[dict] = []
        if geojson.ok:
            payload = geojson.data
            if isinstance(payload, dict) and isinstance(payload.get("features"), list):
                features = payload["features"]
                report.geojson = SourceResult.success(features)
            else:
                report.geojson = SourceResult.failure(
                    ErrorKind.SOURCE_UNAVAILABLE, f"{urls.geojson} is not a FeatureCollection"
                )
        else:
            report.geojson = geojson

        # Census
        census_rows: list[dict] = []
        if census.ok:
            census_rows = project_rows(filter_to_state(_as_rows(census.data), code, level), essential_columns)
            report.census = SourceResult.success(census_rows)
        else:
            report.census = census

        # FRED
        if fred.ok:
            report.fred = SourceResult.success(filter_to_state(_as_rows(fred.data), code, level))
        else:
            report.fred = fred

        # Redfin
        index_stats = IndexStats(index_load_time_ms=round(index_load_ms, 1))
        if redfin.ok:
            rows = _as_rows(redfin.data)
            original_count = len(rows)
            if features and indexes_loaded:
                rows, reduction = self.reducer.reduce(code, level, features, rows)
                index_stats.table_ids_found = reduction.table_ids_found
            rows = project_rows(filter_by_property_type(rows), REDFIN_ESSENTIAL_COLUMNS)
            if original_count:
                index_stats.data_reduction = f"{(1 - len(rows) / original_count) * 100:.1f}%"
            report.redfin = SourceResult.success(rows)
            logger.info(f"Redfin: {original_count} -> {len(rows)} rows ({index_stats.data_reduction} reduction)")
        else:
            report.redfin = redfin
        report.index_stats = index_stats

        # Join census rows onto features
        if features and census_rows:
            matcher = RecordMatcher(code)
            report.matching = matcher.annotate_features(
                features,
                wrap_rows(DataSource.CENSUS, census_rows),
                level,
                DataSource.CENSUS,
                essential_columns,
            )
        else:
            report.matching.total_features = len(features)
            report.matching.unmatched_features = len(features)

        report.load_time_ms = round((time.perf_counter() - start) * 1000, 1)
        logger.info(f"Map data for {code} {level.value} loaded in {report.load_time_ms:.0f}ms")
        return report
