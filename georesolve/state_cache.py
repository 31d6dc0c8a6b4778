"""Per-state index cache.

The first request touching a state loads all three of its index files
(county.csv, zip.csv, tract.csv) concurrently, even if the caller only needs
one. Every later lookup for that state is served from memory until it is
explicitly cleared, so a map session costs one round trip per state.

Concurrent callers asking for the same uncached state share a single
in-flight task instead of each issuing their own fetches.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any

from .errors import SourceUnavailable, UnknownGeography
from .fetcher import Fetcher
from .matching import loose_name_match
from .normalize import normalize_zip
from .schemas import (
    CacheStateStats,
    CacheStats,
    CoverageReport,
    GeoLevel,
    StateIndexCacheEntry,
)
from .sources import INDEX_LEVELS, state_index_url
from .states import get_state

logger = logging.getLogger(__name__)

NUMERIC_MARKERS = ("zipcode", "table_id", "fips")


def _parse_int(value: Any) -> int | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        try:
            return int(float(text))
        except ValueError:
            return None


def type_index_row(row: dict[str, Any]) -> dict[str, Any]:
    """Parse numeric-looking index columns as integers.

    Columns named GEOID or containing zipcode / table_id / fips become ints
    (blank -> None); everything else stays a string. Note this drops leading
    zeros, which is why lookups fall back to normalized comparison.
    """
    typed = {}
    for header, value in row.items():
        if header == "GEOID" or any(marker in header for marker in NUMERIC_MARKERS):
            typed[header] = _parse_int(value)
        else:
            typed[header] = "" if value is None else value
    return typed


class StateIndexCache:
    """Process-lifetime cache of per-state index rows.

    Construct one per service and pass it to whatever needs index lookups.
    """

    def __init__(self, fetcher: Fetcher, base_url: str):
        self.fetcher = fetcher
        self.base_url = base_url
        self._entries: dict[str, StateIndexCacheEntry] = {}
        self._in_flight: dict[str, asyncio.Task] = {}

    @staticmethod
    def _state_key(state_code: str) -> str:
        info = get_state(state_code)
        if not info:
            raise UnknownGeography(f"Unknown state code: {state_code}")
        return info.code

    async def load(self, state_code: str) -> bool:
        """Ensure the state's indexes are cached. Returns False if nothing loaded."""
        code = self._state_key(state_code)
        if code in self._entries:
            logger.debug(f"Using cached indexes for {code}")
            return True

        task = self._in_flight.get(code)
        if task is None:
            task = asyncio.create_task(self._load_state(code))
            self._in_flight[code] = task
            task.add_done_callback(lambda t, key=code: self._forget(key, t))
        else:
            logger.debug(f"Joining in-flight index load for {code}")

        # A cancelled caller must not cancel the load other callers are awaiting
        return await asyncio.shield(task)

    def _forget(self, code: str, task: asyncio.Task) -> None:
        if self._in_flight.get(code) is task:
            del self._in_flight[code]

    async def _load_file(self, code: str, level: str) -> tuple[list[dict], bool]:
        url = state_index_url(self.base_url, code, level)
        try:
            rows = await self.fetcher.fetch_csv(url)
        except SourceUnavailable as e:
            logger.warning(f"No {level} index for {code}: {e.reason}")
            return [], False
        return [type_index_row(row) for row in rows], True

    async def _load_state(self, code: str) -> bool:
        logger.info(f"Loading all {code} index files")
        start = time.perf_counter()

        results = await asyncio.gather(*(self._load_file(code, level) for level in INDEX_LEVELS))
        files = dict(zip(INDEX_LEVELS, results))
        failed = tuple(level for level, (_, ok) in files.items() if not ok)

        if len(failed) == len(INDEX_LEVELS):
            logger.error(f"Failed to load any {code} index file; not caching")
            return False

        if self._in_flight.get(code) is not asyncio.current_task():
            logger.info(f"{code} was cleared while loading; discarding loaded indexes")
            return False

        load_time_ms = (time.perf_counter() - start) * 1000
        entry = StateIndexCacheEntry(
            state_code=code,
            counties=tuple(files["county"][0]),
            zips=tuple(files["zip"][0]),
            tracts=tuple(files["tract"][0]),
            load_time_ms=round(load_time_ms, 1),
            loaded_at=datetime.now(timezone.utc),
            failed_levels=failed,
        )
        self._entries[code] = entry

        logger.info(
            f"{code} indexes loaded in {load_time_ms:.0f}ms "
            f"(counties={len(entry.counties)}, zips={len(entry.zips)}, tracts={len(entry.tracts)})"
        )
        if failed:
            logger.warning(f"{code} cached with partial load; missing: {', '.join(failed)}")
        return True

    def get(self, state_code: str) -> StateIndexCacheEntry | None:
        info = get_state(state_code)
        if not info:
            return None
        return self._entries.get(info.code)

    def clear(self, state_code: str) -> bool:
        """Evict one state and abandon any in-flight load. Returns True if it was cached."""
        info = get_state(state_code)
        if not info:
            return False
        removed = self._entries.pop(info.code, None) is not None
        self._in_flight.pop(info.code, None)
        if removed:
            logger.info(f"Cleared index cache for {info.code}")
        return removed

    def clear_all(self) -> None:
        self._entries.clear()
        self._in_flight.clear()
        logger.info("Cleared all state index caches")

    def loaded_states(self) -> list[str]:
        return list(self._entries)

    def get_cache_stats(self) -> CacheStats:
        return CacheStats(
            cached_states=len(self._entries),
            in_flight=sorted(self._in_flight),
            details=[
                CacheStateStats(
                    state=code,
                    counties=len(entry.counties),
                    zips=len(entry.zips),
                    tracts=len(entry.tracts),
                    load_time_ms=entry.load_time_ms,
                    loaded_at=entry.loaded_at,
                    failed_levels=list(entry.failed_levels),
                )
                for code, entry in self._entries.items()
            ],
        )

    # -------------------------------------------------------------------------
    # Lookups over cached rows
    # -------------------------------------------------------------------------

    def coverage(self, state_code: str, level: GeoLevel | str) -> CoverageReport:
        """How much of the cached index carries Redfin table ids."""
        entry = self.get(state_code)
        if entry is None:
            return CoverageReport(
                available=False,
                reason="Indexes not loaded - load the state first",
            )

        level = GeoLevel(level)
        if level == GeoLevel.ZIP:
            total = len(entry.zips)
            with_redfin = sum(1 for row in entry.zips if _has_id(row.get("redfin_tableid_zip")))
            percent = (with_redfin / total * 100) if total > 0 else 0.0
            if percent > 60:
                quality = "excellent"
            elif percent > 30:
                quality = "good"
            else:
                quality = "limited"
            return CoverageReport(
                available=total > 0,
                total=total,
                with_redfin=with_redfin,
                redfin_percent=round(percent, 1),
                quality=quality,
            )

        if level == GeoLevel.COUNTY:
            total = len(entry.counties)
            with_redfin = sum(1 for row in entry.counties if _has_id(row.get("table_id")))
            percent = (with_redfin / total * 100) if total > 0 else 0.0
            return CoverageReport(
                available=total > 0,
                total=total,
                with_redfin=with_redfin,
                redfin_percent=round(percent, 1),
            )

        return CoverageReport(available=len(entry.tracts) > 0, total=len(entry.tracts))

    def tracts_in_zip(self, state_code: str, zip_code: str) -> list[dict]:
        entry = self.get(state_code)
        if entry is None:
            logger.warning(f"No cache for {state_code}; load the state first")
            return []
        target = normalize_zip(zip_code)
        return [
            row
            for row in entry.tracts
            if target
            and target
            in (
                normalize_zip(row.get("zip_code_clean")),
                normalize_zip(row.get("zipcode")),
                normalize_zip(row.get("ZIPCODE")),
            )
        ]

    def zips_in_county(self, state_code: str, county_name: str) -> list[dict]:
        entry = self.get(state_code)
        if entry is None:
            logger.warning(f"No cache for {state_code}; load the state first")
            return []
        return [
            row
            for row in entry.zips
            if loose_name_match(county_name, [row.get("redfin_county_name"), row.get("county_name")])
        ]


def _has_id(value: Any) -> bool:
    if value is None:
        return False
    text = str(value).strip()
    return bool(text) and text.lower() not in ("null", "nan", "none")
