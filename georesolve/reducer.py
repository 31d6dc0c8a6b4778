"""Index-driven Redfin payload reduction.

Redfin publishes one table per state with a row for every geography and
property type, most of which a map view never shows. Resolving a sample of
the visible features to Redfin table ids through the state index cache lets
us drop rows that cannot match before they are matched or sent anywhere.

Reduction only ever skips rows; when resolution finds nothing the input is
returned as-is.
"""

import logging
from typing import Any, Sequence

from .matching import as_text, field_values
from .normalize import normalize_county_code, normalize_zip
from .schemas import GeoLevel, ReductionStats
from .state_cache import StateIndexCache

logger = logging.getLogger(__name__)

FEATURE_ID_FIELDS: dict[GeoLevel, tuple[str, ...]] = {
    GeoLevel.ZIP: ("ZIPCODE", "zipcode", "zip_code"),
    GeoLevel.COUNTY: ("GEOID", "COUNTYFP", "county_fips"),
}


def _to_table_id(value: Any) -> int | None:
    text = as_text(value)
    if not text:
        return None
    try:
        return int(float(text))
    except ValueError:
        return None


def _same_id(row_value: Any, area: str) -> bool:
    """Exact comparison; integer-typed index cells also match by value."""
    text = as_text(row_value)
    if not text:
        return False
    if text == area:
        return True
    return area.isdigit() and text.isdigit() and int(text) == int(area)


class PayloadReducer:
    """Filters raw Redfin rows down to the table ids a map view needs.

    ``sample_size`` caps how many features are resolved per call.
    """

    def __init__(self, cache: StateIndexCache, sample_size: int = 50):
        self.cache = cache
        self.sample_size = sample_size

    def resolve_table_id(self, state_code: str, area: str, level: GeoLevel | str) -> int | None:
        """Look up the Redfin table id for a ZIP or county id in cached indexes."""
        entry = self.cache.get(state_code)
        if entry is None:
            logger.debug(f"No cached indexes for {state_code}; cannot resolve {area}")
            return None

        area = as_text(area)
        if not area:
            return None

        level = GeoLevel(level)
        if level == GeoLevel.ZIP:
            row = next(
                (
                    r
                    for r in entry.zips
                    if any(_same_id(r.get(f), area) for f in ("ZIPCODE", "zipcode", "zip_code"))
                ),
                None,
            )
            if row is None:
                target = normalize_zip(area)
                row = next((r for r in entry.zips if normalize_zip(r.get("ZIPCODE")) == target), None)
            return _to_table_id(row.get("redfin_tableid_zip")) if row else None

        if level == GeoLevel.COUNTY:
            county_code = normalize_county_code(area)
            strategies = [
                ("GEOID", lambda r: _same_id(r.get("GEOID"), area)),
                ("fred_county_fips", lambda r: _same_id(r.get("fred_county_fips"), area)),
                (
                    "normalized county code",
                    lambda r: bool(county_code)
                    and normalize_county_code(r.get("COUNTYFP") or r.get("GEOID")) == county_code,
                ),
                (
                    "name",
                    lambda r: any(
                        area.lower() in str(r.get(f) or "").lower() for f in ("NAME", "NAMELSAD", "region")
                    ),
                ),
            ]
            for name, predicate in strategies:
                row = next((r for r in entry.counties if predicate(r)), None)
                if row is not None:
                    table_id = _to_table_id(row.get("table_id"))
                    logger.debug(f"County {area} resolved via {name} -> {table_id}")
                    return table_id
            return None

        return None

    def relevant_table_ids(
        self,
        state_code: str,
        level: GeoLevel | str,
        features: Sequence[Any],
    ) -> set[int]:
        level = GeoLevel(level)
        id_fields = FEATURE_ID_FIELDS.get(level)
        if not id_fields:
            return set()

        table_ids = set()
        for feature in features[: self.sample_size]:
            props = field_values(feature)
            area = next((as_text(props.get(f)) for f in id_fields if as_text(props.get(f))), "")
            if not area:
                continue
            table_id = self.resolve_table_id(state_code, area, level)
            if table_id:
                table_ids.add(table_id)

        logger.info(f"Resolved {len(table_ids)} relevant Redfin table ids for {state_code} {level.value}")
        return table_ids

    def reduce(
        self,
        state_code: str,
        level: GeoLevel | str,
        features: Sequence[Any],
        records: list[Any],
    ) -> tuple[list[Any], ReductionStats]:
        """Keep only records whose ``table_id`` a sampled feature resolved to.

        Returns the input unchanged when the state is not cached or no id
        could be resolved.
        """
        stats = ReductionStats(input_count=len(records), output_count=len(records))

        if self.cache.get(state_code) is None:
            logger.info(f"Indexes for {state_code} not cached; skipping Redfin reduction")
            return records, stats

        table_ids = self.relevant_table_ids(state_code, level, features)
        stats.table_ids_found = len(table_ids)
        if not table_ids:
            logger.info("No relevant table ids found, keeping all Redfin rows")
            return records, stats

        reduced = [r for r in records if _to_table_id(field_values(r).get("table_id")) in table_ids]
        stats.output_count = len(reduced)
        stats.filtered = True
        logger.info(f"Redfin reduction: {len(records)} -> {len(reduced)} rows ({stats.reduction} reduction)")
        return reduced, stats
