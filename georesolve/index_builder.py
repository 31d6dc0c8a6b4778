"""Unified hierarchical location index.

Merges the taxonomy master index (states, counties, cities, ZIPs with their
Redfin property-type tables) with the flat per-ZIP records (coordinates,
availability flags, file pointers) into one flat mapping keyed by
``"<level>:<identifier>"``. Every taxonomy node yields a location even when
no flat record describes it.
"""

import asyncio
import logging
import math
from collections import Counter
from typing import Any, Iterable

from pydantic import ValidationError

from .errors import SourceUnavailable
from .fetcher import Fetcher
from .matching import loose_name_match
from .normalize import normalize_zip
from .schemas import (
    PATH_SEPARATOR,
    CityEntry,
    CountyEntry,
    DataAvailability,
    DataAvailabilityCounts,
    DataLoadingInfo,
    FlatGeoRecord,
    GeoLevel,
    LocationStats,
    MasterIndex,
    StateEntry,
    TaxonomyEntry,
    UnifiedLocation,
    ZipEntry,
)
from .sources import MASTER_INDEX_FILE, ZIP_MASTER_FILE
from .substitute import substitute_flat_records, substitute_master_index

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 50
DEFAULT_TOLERANCE = 0.1


# =============================================================================
# Builder
# =============================================================================


def _availability(records: list[FlatGeoRecord]) -> DataAvailability:
    return DataAvailability(
        census=any(r.has_census_data for r in records),
        redfin=any(r.has_redfin_data for r in records),
        geometry=any(r.has_geometry for r in records),
    )


def _representative_coordinates(records: list[FlatGeoRecord]) -> tuple[float, float]:
    return records[0].coordinates if records else (0.0, 0.0)


def build_unified_index(
    master: MasterIndex,
    flat_records: Iterable[FlatGeoRecord],
) -> dict[str, UnifiedLocation]:
    """Join taxonomy nodes with the flat records that fall inside them.

    State nodes take every flat record with the same state code. County and
    city nodes narrow that further with the loose name policy against the
    Redfin county name or the Redfin/census city name. ZIP nodes look up
    their single record by normalized ZIP code. Aggregate nodes use the
    first member record for coordinates and OR the availability flags.
    """
    records = list(flat_records)
    by_zip: dict[str, FlatGeoRecord] = {}
    by_state: dict[str, list[FlatGeoRecord]] = {}
    for record in records:
        by_zip.setdefault(record.zipcode, record)
        by_state.setdefault(record.state_code, []).append(record)

    locations: dict[str, UnifiedLocation] = {}

    for state_name, state in master.states.items():
        members = by_state.get(state.state_code, [])
        locations[f"state:{state.state_code}"] = UnifiedLocation(
            key=f"state:{state.state_code}",
            state_code=state.state_code,
            state_name=state_name,
            property_types=state.property_types,
            primary_table_id=state.primary_table_id,
            hierarchical_path=state_name,
            coordinates=_representative_coordinates(members),
            has_data=_availability(members),
            child_zips=[r.zipcode for r in members],
        )

    for county_key, county in master.counties.items():
        state_name = master.state_name_for(county.state_code)
        members = [
            r
            for r in by_state.get(county.state_code, [])
            if loose_name_match(county.county_name, [r.redfin_county_name])
        ]
        locations[f"county:{county_key}"] = UnifiedLocation(
            key=f"county:{county_key}",
            state_code=county.state_code,
            state_name=state_name,
            property_types=county.property_types,
            primary_table_id=county.primary_table_id,
            hierarchical_path=f"{state_name}{PATH_SEPARATOR}{county.county_name}",
            coordinates=_representative_coordinates(members),
            has_data=_availability(members),
            parent_state=state_name,
            child_cities=list(county.cities),
            child_zips=[r.zipcode for r in members],
        )

    for city_key, city in master.cities.items():
        state_name = master.state_name_for(city.state_code)
        members = [
            r
            for r in by_state.get(city.state_code, [])
            if loose_name_match(city.city_name, [r.redfin_city, r.census_city])
        ]
        locations[f"city:{city_key}"] = UnifiedLocation(
            key=f"city:{city_key}",
            state_code=city.state_code,
            state_name=state_name,
            property_types=city.property_types,
            primary_table_id=city.primary_table_id,
            hierarchical_path=f"{state_name}{PATH_SEPARATOR}{city.city_name}",
            coordinates=_representative_coordinates(members),
            has_data=_availability(members),
            parent_state=state_name,
            child_zips=[r.zipcode for r in members],
        )

    for zip_key, zip_entry in master.zip_codes.items():
        zip_code = normalize_zip(zip_key) or zip_entry.zip_code
        record = by_zip.get(zip_code)
        state_name = master.state_name_for(zip_entry.state_code)
        locations[f"zip:{zip_code}"] = UnifiedLocation(
            key=f"zip:{zip_code}",
            zip_code=zip_code,
            state_code=zip_entry.state_code,
            state_name=state_name,
            property_types=zip_entry.property_types,
            primary_table_id=zip_entry.primary_table_id,
            hierarchical_path=f"{state_name}{PATH_SEPARATOR}{zip_code}",
            coordinates=record.coordinates if record else (0.0, 0.0),
            geojson_file=record.geojson_file if record else None,
            data_file=record.data_file if record else None,
            has_data=_availability([record] if record else []),
            land_area=record.ALAND if record else None,
            water_area=record.AWATER if record else None,
            metro_region=record.parent_metro_region if record else None,
            data_source=record.data_source if record else None,
            parent_state=state_name,
            parent_county=record.redfin_county_name if record else None,
        )

    logger.info(f"Built unified index with {len(locations)} locations from {len(records)} flat records")
    return locations


# =============================================================================
# Query surface
# =============================================================================


class UnifiedIndex:
    """Read-only queries over a built location mapping.

    ``source`` is "remote" for an index built from the published taxonomy and
    "substitute" for the fixed fallback dataset.
    """

    def __init__(
        self,
        locations: dict[str, UnifiedLocation],
        property_types: dict[str, str] | None = None,
        source: str = "remote",
    ):
        self.locations = locations
        self.property_types = property_types or {}
        self.source = source

    @classmethod
    def build(cls, master: MasterIndex, flat_records: Iterable[FlatGeoRecord], source: str = "remote"):
        return cls(build_unified_index(master, flat_records), master.property_types, source)

    def __len__(self) -> int:
        return len(self.locations)

    @property
    def is_substitute(self) -> bool:
        return self.source == "substitute"

    def get(self, key: str) -> UnifiedLocation | None:
        return self.locations.get(key)

    def _at_level(self, level: GeoLevel, state_code: str | None = None) -> list[UnifiedLocation]:
        code = state_code.upper() if state_code else None
        return [
            loc
            for loc in self.locations.values()
            if loc.level == level and (code is None or loc.state_code == code)
        ]

    def states(self) -> list[UnifiedLocation]:
        return sorted(self._at_level(GeoLevel.STATE), key=lambda loc: loc.state_name)

    def counties_in_state(self, state_code: str) -> list[UnifiedLocation]:
        return sorted(self._at_level(GeoLevel.COUNTY, state_code), key=lambda loc: loc.hierarchical_path)

    def cities_in_state(self, state_code: str) -> list[UnifiedLocation]:
        return sorted(self._at_level(GeoLevel.CITY, state_code), key=lambda loc: loc.hierarchical_path)

    def zips_in_state(self, state_code: str) -> list[UnifiedLocation]:
        return sorted(self._at_level(GeoLevel.ZIP, state_code), key=lambda loc: loc.zip_code or "")

    def find_by_zip(self, zip_code: str) -> UnifiedLocation | None:
        zip_code = normalize_zip(zip_code)
        if not zip_code:
            return None
        return self.locations.get(f"zip:{zip_code}")

    def find_by_coordinates(
        self,
        lat: float,
        lon: float,
        tolerance: float = DEFAULT_TOLERANCE,
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> list[UnifiedLocation]:
        """Locations inside a lat/lon box of +/- ``tolerance``, nearest first."""
        hits = [
            loc
            for loc in self.locations.values()
            if abs(loc.coordinates[0] - lat) <= tolerance and abs(loc.coordinates[1] - lon) <= tolerance
        ]
        hits.sort(key=lambda loc: math.hypot(loc.coordinates[0] - lat, loc.coordinates[1] - lon))
        return hits[:limit]

    def search(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> list[UnifiedLocation]:
        """Case-insensitive substring search over paths and ZIP codes."""
        query = (query or "").strip()
        if not query:
            return []
        needle = query.lower()
        hits = [
            loc
            for loc in self.locations.values()
            if needle in loc.hierarchical_path.lower() or (loc.zip_code and query in loc.zip_code)
        ]
        hits.sort(key=lambda loc: loc.hierarchical_path)
        return hits[:limit]

    def stats(self) -> LocationStats:
        by_type: Counter[str] = Counter()
        by_state: Counter[str] = Counter()
        counts = DataAvailabilityCounts()
        for loc in self.locations.values():
            by_type[loc.level.value] += 1
            by_state[loc.state_code] += 1
            counts.with_geometry += loc.has_data.geometry
            counts.with_census += loc.has_data.census
            counts.with_redfin += loc.has_data.redfin
        return LocationStats(
            total_locations=len(self.locations),
            by_type=dict(by_type),
            by_state=dict(by_state),
            data_availability=counts,
            source=self.source,
        )

    def available_property_types(self) -> dict[str, str]:
        return dict(self.property_types)

    @staticmethod
    def data_loading_info(location: UnifiedLocation) -> DataLoadingInfo:
        has_data = location.has_data
        return DataLoadingInfo(
            geojson_url=location.geojson_file,
            data_url=location.data_file,
            table_id=location.primary_table_id,
            has_required_data=has_data.geometry and (has_data.census or has_data.redfin),
        )


# =============================================================================
# Loading
# =============================================================================


def parse_flat_records(rows: list[dict]) -> list[FlatGeoRecord]:
    """Validate flat CSV rows, dropping any that lack a ZIP or state code."""
    records = []
    skipped = 0
    for row in rows:
        try:
            record = FlatGeoRecord.model_validate(row)
        except ValidationError:
            skipped += 1
            continue
        if not record.zipcode or not record.state_code:
            skipped += 1
            continue
        records.append(record)
    if skipped:
        logger.warning(f"Skipped {skipped} flat records without a usable zipcode/state_code")
    return records


TAXONOMY_SECTIONS: dict[str, type[TaxonomyEntry]] = {
    "states": StateEntry,
    "counties": CountyEntry,
    "cities": CityEntry,
    "zip_codes": ZipEntry,
}


def parse_master_index(payload: Any) -> MasterIndex | None:
    """Validate the taxonomy one entry at a time.

    Entries that fail validation are dropped and logged; the rest of the
    taxonomy is kept. Returns None only when the payload is not an object.
    """
    if not isinstance(payload, dict):
        return None

    sections: dict[str, dict[str, TaxonomyEntry]] = {}
    for section, model in TAXONOMY_SECTIONS.items():
        raw = payload.get(section)
        entries = {}
        skipped = []
        for name, entry in (raw.items() if isinstance(raw, dict) else []):
            try:
                entries[name] = model.model_validate(entry)
            except ValidationError:
                skipped.append(name)
        if skipped:
            logger.warning(f"Skipped {len(skipped)} invalid {section} entries: {', '.join(skipped[:5])}")
        sections[section] = entries

    extras = {}
    for key in ("metadata", "search_terms", "property_types"):
        if key not in payload:
            continue
        try:
            extras[key] = getattr(MasterIndex.model_validate({key: payload[key]}), key)
        except ValidationError as e:
            logger.warning(f"Ignoring invalid taxonomy {key}: {e.error_count()} errors")

    return MasterIndex(**extras, **sections)


class UnifiedIndexLoader:
    """Fetches both index sources and builds a ``UnifiedIndex``.

    The taxonomy and flat files are fetched concurrently. Without a usable
    taxonomy the index is built from the substitute dataset instead; a
    missing flat file only leaves locations without coordinates.
    """

    def __init__(self, fetcher: Fetcher, base_url: str):
        self.fetcher = fetcher
        self.base_url = base_url

    async def _fetch_taxonomy(self) -> MasterIndex | None:
        url = f"{self.base_url}/{MASTER_INDEX_FILE}"
        try:
            payload = await self.fetcher.fetch_json(url)
        except SourceUnavailable as e:
            logger.warning(f"Could not load {MASTER_INDEX_FILE}: {e.reason}")
            return None
        master = parse_master_index(payload)
        if master is None:
            logger.warning(f"{MASTER_INDEX_FILE} is not a JSON object")
            return None
        logger.info(f"Loaded {MASTER_INDEX_FILE} ({len(master.states)} states)")
        return master

    async def _fetch_flat_records(self) -> list[FlatGeoRecord] | None:
        url = f"{self.base_url}/{ZIP_MASTER_FILE}"
        try:
            rows = await self.fetcher.fetch_csv(url)
        except SourceUnavailable as e:
            logger.warning(f"Could not load {ZIP_MASTER_FILE}: {e.reason}")
            return None
        records = parse_flat_records(rows)
        logger.info(f"Loaded {ZIP_MASTER_FILE} ({len(records)} records)")
        return records

    async def load(self) -> UnifiedIndex:
        master, flat_records = await asyncio.gather(self._fetch_taxonomy(), self._fetch_flat_records())

        if master is None:
            logger.warning("Taxonomy unavailable, building index from substitute dataset")
            return build_substitute_index()

        if flat_records is None:
            logger.warning("Flat zip index unavailable; locations will carry no coordinates")
            flat_records = []

        return UnifiedIndex.build(master, flat_records, source="remote")


def build_substitute_index() -> UnifiedIndex:
    return UnifiedIndex.build(substitute_master_index(), substitute_flat_records(), source="substitute")
