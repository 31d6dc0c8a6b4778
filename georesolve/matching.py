"""Joining raw source records onto map features and taxonomy nodes.

Two policies live here and are kept apart on purpose:

- ID matching (``RecordMatcher``): a static rule table says which feature
  fields and which record fields can carry the same identifier for a given
  (level, source). County ids are compared through the normalizer so that
  "001", "6001" and "06001" line up. First candidate in input order wins;
  there is no scoring.
- Loose name matching (``loose_name_match``): case-insensitive containment of
  a taxonomy name inside a free-text record field. Used only for county/city
  membership in the unified index. It is lossy and can over-match names that
  are substrings of each other ("Clark" vs "Clarke").
"""

import logging
from typing import Any, Iterable, Sequence

from .normalize import county_id_variants, ids_intersect
from .schemas import (
    DataSource,
    GeoFeature,
    GeoLevel,
    MatchingRule,
    MatchingStats,
    MatchResult,
    SourceRecordBase,
)
from .states import get_state

logger = logging.getLogger(__name__)


# =============================================================================
# Matching Rule Table
# =============================================================================

MATCHING_RULES: dict[tuple[GeoLevel, DataSource], MatchingRule] = {
    # ZIP level
    (GeoLevel.ZIP, DataSource.CENSUS): MatchingRule(
        feature_fields=("ZIPCODE", "GEOID", "zip_code"),
        data_fields=("zip", "zipcode", "ZIPCODE"),
    ),
    (GeoLevel.ZIP, DataSource.REDFIN): MatchingRule(
        feature_fields=("redfin_tableid_zip", "redfin_table_id_county"),
        data_fields=("table_id",),
    ),
    (GeoLevel.ZIP, DataSource.FRED): MatchingRule(
        feature_fields=("state_county_code", "STATE_FIPS", "state_code"),
        data_fields=("state_fips", "state_code"),
    ),
    # County level
    (GeoLevel.COUNTY, DataSource.CENSUS): MatchingRule(
        feature_fields=("GEOID", "COUNTYFP", "NAMELSAD"),
        data_fields=("county", "county_name"),
    ),
    (GeoLevel.COUNTY, DataSource.REDFIN): MatchingRule(
        feature_fields=("redfin_table_id_county", "table_id", "region"),
        data_fields=("table_id", "region"),
    ),
    (GeoLevel.COUNTY, DataSource.FRED): MatchingRule(
        feature_fields=("fred_county_fips", "GEOID", "NAMELSAD"),
        data_fields=("county_fips", "fips_code", "county_name"),
    ),
    # State level
    (GeoLevel.STATE, DataSource.CENSUS): MatchingRule(
        feature_fields=("STUSPS", "STATE", "NAME"),
        data_fields=("state", "state_name", "state_fips"),
    ),
    (GeoLevel.STATE, DataSource.REDFIN): MatchingRule(
        feature_fields=("state_code", "STATE"),
        data_fields=("state_code", "state"),
    ),
    (GeoLevel.STATE, DataSource.FRED): MatchingRule(
        feature_fields=("STATE_FIPS", "STUSPS"),
        data_fields=("state_fips", "state_code"),
    ),
    # Tract level
    (GeoLevel.TRACT, DataSource.CENSUS): MatchingRule(
        feature_fields=("geoid_tract_20_clean", "GEOID", "tract_str", "TRACTCE"),
        data_fields=("GEOID", "tract"),
    ),
    (GeoLevel.TRACT, DataSource.REDFIN): MatchingRule(
        feature_fields=("redfin_table_id_county", "redfin_tableid_zip"),
        data_fields=("table_id",),
    ),
    (GeoLevel.TRACT, DataSource.FRED): MatchingRule(
        feature_fields=("county_code_str", "STATE_FIPS", "state_code_str"),
        data_fields=("county_fips", "state_fips"),
    ),
}

EMPTY_RULE = MatchingRule()

CONFIDENCE = {"exact": 1.0, "normalized": 0.9, "loose": 0.5}


def get_matching_rule(level: GeoLevel | str, source: DataSource | str) -> MatchingRule:
    """Rule for (level, source); unknown combinations get the empty rule."""
    try:
        key = (GeoLevel(level), DataSource(source))
    except ValueError:
        return EMPTY_RULE
    return MATCHING_RULES.get(key, EMPTY_RULE)


# =============================================================================
# Record access helpers
# =============================================================================


def field_values(obj: Any) -> dict[str, Any]:
    """Readable key->value view of a tagged record, GeoJSON dict or plain row."""
    if isinstance(obj, SourceRecordBase):
        return obj.field_values
    if isinstance(obj, dict):
        if obj.get("type") == "Feature" and isinstance(obj.get("properties"), dict):
            return obj["properties"]
        return obj
    return {}


def as_text(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def extract_ids(obj: Any, field_names: Iterable[str]) -> list[str]:
    """Non-empty identifier values of ``field_names``, trimmed, in order."""
    if isinstance(obj, SourceRecordBase):
        return obj.candidate_ids(list(field_names))
    values = field_values(obj)
    ids = []
    for name in field_names:
        text = as_text(values.get(name))
        if text:
            ids.append(text)
    return ids


# =============================================================================
# Multi-Source Record Matcher
# =============================================================================


class RecordMatcher:
    """ID-based matcher driven by ``MATCHING_RULES``.

    ``state_code`` supplies the FIPS prefix used to widen 3-digit county ids
    into 5-digit GEOIDs.
    """

    def __init__(self, state_code: str | None = None):
        info = get_state(state_code) if state_code else None
        self.state_fips = info.fips if info else None

    def _county_variants(self, value: str) -> list[str]:
        # Name fields carry no digits; compare those as plain text
        return county_id_variants(value, self.state_fips) or [value]

    def _compare(self, feature_id: str, data_value: str, level: GeoLevel) -> str | None:
        """Return the match method, or None when the two ids differ."""
        if data_value == feature_id:
            return "exact"
        if level == GeoLevel.COUNTY:
            if ids_intersect(self._county_variants(feature_id), self._county_variants(data_value)):
                return "normalized"
        return None

    def match(
        self,
        feature: Any,
        records: Sequence[Any],
        level: GeoLevel | str,
        source: DataSource | str,
    ) -> MatchResult:
        """Find the first record sharing an identifier with ``feature``."""
        rule = get_matching_rule(level, source)
        if rule.is_empty:
            return MatchResult()

        feature_ids = extract_ids(feature, rule.feature_fields)
        if not feature_ids:
            return MatchResult()

        level = GeoLevel(level)
        for record in records:
            values = field_values(record)
            for feature_id in feature_ids:
                for data_field in rule.data_fields:
                    data_value = as_text(values.get(data_field))
                    if not data_value:
                        continue
                    method = self._compare(feature_id, data_value, level)
                    if method:
                        return MatchResult(
                            record=record,
                            feature_id=feature_id,
                            data_field=data_field,
                            method=method,
                            confidence=CONFIDENCE[method],
                        )
        return MatchResult()

    def match_record(self, feature, records, level, source):
        return self.match(feature, records, level, source).record

    def annotate_features(
        self,
        features: Sequence[GeoFeature | dict],
        records: Sequence[Any],
        level: GeoLevel | str,
        source: DataSource | str,
        essential_columns: list[str] | None = None,
        annotation_key: str = "_optimized_data",
    ) -> MatchingStats:
        """Match every feature and write the matched row into its properties.

        The matched row is projected onto ``essential_columns`` when given.
        Returns counts; features without a match are left untouched.
        """
        matched = 0
        for feature in features:
            result = self.match(feature, records, level, source)
            if not result.matched:
                continue
            matched += 1
            row = dict(field_values(result.record))
            if essential_columns:
                row = {col: row[col] for col in essential_columns if col in row}
            field_values(feature)[annotation_key] = row

        total = len(features)
        rate = (matched / total * 100) if total > 0 else 0.0
        logger.info(f"{GeoLevel(level).value.upper()} matching: {matched}/{total} matched ({rate:.1f}%)")
        return MatchingStats(
            total_features=total,
            matched_features=matched,
            unmatched_features=total - matched,
            match_rate=round(rate, 1),
        )


# =============================================================================
# Loose name membership
# =============================================================================


def _needle(name: str | None) -> str:
    if not name:
        return ""
    return name.lower().split(",")[0].strip()


def loose_name_match(name: str | None, candidates: Iterable[str | None]) -> bool:
    """True when the first comma segment of ``name`` appears in any candidate.

    Case-insensitive substring containment. "Los Angeles County, CA" matches
    a record whose county field reads "Los Angeles County".
    """
    needle = _needle(name)
    if not needle:
        return False
    return any(candidate and needle in candidate.lower() for candidate in candidates)


def loose_match(name: str | None, record: Any, field_names: Iterable[str]) -> MatchResult:
    """Loose policy expressed as a MatchResult with reduced confidence."""
    values = field_values(record)
    for field in field_names:
        value = values.get(field)
        if isinstance(value, str) and loose_name_match(name, [value]):
            return MatchResult(
                record=record,
                feature_id=_needle(name),
                data_field=field,
                method="loose",
                confidence=CONFIDENCE["loose"],
            )
    return MatchResult()


# =============================================================================
# State filtering
# =============================================================================


def filter_to_state(records: list[Any], state_code: str, level: GeoLevel | str) -> list[Any]:
    """Restrict a multi-state record set to one state.

    Strategies are tried in order and the first that keeps any record wins.
    When none does, the input comes back unchanged. State-level data is
    never filtered.
    """
    if not records or GeoLevel(level) == GeoLevel.STATE:
        return records

    info = get_state(state_code)
    fips = info.fips if info else None
    code = state_code.upper()

    strategies = [
        ("state == fips", lambda v: fips is not None and as_text(v.get("state")) == fips),
        ("state_code == abbrev", lambda v: as_text(v.get("state_code")) == code),
        ("state == abbrev", lambda v: as_text(v.get("state")) == code),
        ("state_fips == fips", lambda v: fips is not None and as_text(v.get("state_fips")) == fips),
    ]
    for name, predicate in strategies:
        filtered = [r for r in records if predicate(field_values(r))]
        if filtered:
            logger.debug(f"State filter '{name}' kept {len(filtered)}/{len(records)} records")
            return filtered

    logger.debug(f"No state filter applied for {code}; keeping all {len(records)} records")
    return records
