"""Pydantic models for the geographic resolution engine.

Four independently produced datasets flow through here:
- the taxonomy master index (state -> county -> city -> zip, with Redfin
  property-type tables)
- the flat zip master index (one row per ZIP: coordinates, availability flags)
- per-state county/zip/tract index CSVs
- raw census / FRED / Redfin tables and GeoJSON features

The models below are the contract between those inputs and the merged
location graph. Raw source rows are wrapped in small tagged variants so that
matching code asks a record for its candidate identifiers instead of guessing
field names at each call site.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from .normalize import normalize_zip


# =============================================================================
# ENUMS: Canonical value sets
# =============================================================================


class GeoLevel(str, Enum):
    """Geographic granularity of a location or dataset."""

    STATE = "state"
    COUNTY = "county"
    CITY = "city"
    ZIP = "zip"
    TRACT = "tract"
    """Census tract. Only present in per-state index files and tract datasets,
    never in the taxonomy."""


class DataSource(str, Enum):
    """Raw dataset families that get joined onto map features."""

    CENSUS = "census"
    REDFIN = "redfin"
    FRED = "fred"


class LoadStatus(str, Enum):
    """Per-source load state reported back to callers."""

    NOT_ATTEMPTED = "not-attempted"
    LOADING = "loading"
    SUCCESS = "success"
    FAILED = "failed"


class ErrorKind(str, Enum):
    """Why a source produced no data.

    NO_MATCH is a valid outcome, not a failure. It is listed here so reports
    can say why a feature carries no joined record.
    """

    SOURCE_UNAVAILABLE = "source_unavailable"
    UNKNOWN_GEOGRAPHY = "unknown_geography"
    NO_MATCH = "no_match"
    PARTIAL_LOAD = "partial_load"


# =============================================================================
# Taxonomy master index (redfin_master_index.json)
# =============================================================================


class PropertyType(BaseModel):
    """One Redfin property-type table for a geography."""

    name: str
    table_id: str

    @field_validator("table_id", mode="before")
    @classmethod
    def coerce_table_id(cls, v):
        return "" if v is None else str(v)


class TaxonomyEntry(BaseModel):
    """Fields shared by every node of the taxonomy."""

    model_config = ConfigDict(extra="ignore")

    state_code: str
    property_types: dict[str, PropertyType] = Field(default_factory=dict)
    primary_table_id: int | None = None

    @field_validator("primary_table_id", mode="before")
    @classmethod
    def blank_table_id(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class StateEntry(TaxonomyEntry):
    pass


class CountyEntry(TaxonomyEntry):
    county_name: str
    cities: list[str] = Field(default_factory=list)
    zip_codes: list[str] = Field(default_factory=list)


class CityEntry(TaxonomyEntry):
    city_name: str


class ZipEntry(TaxonomyEntry):
    zip_code: str

    @field_validator("zip_code", mode="before")
    @classmethod
    def normalize_zip_code(cls, v):
        return normalize_zip(v)


class IndexMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    created: str | None = None
    target_year: int | None = None
    total_states: int | None = None
    total_counties: int | None = None
    total_cities: int | None = None
    total_zips: int | None = None


class MasterIndex(BaseModel):
    """The hierarchical taxonomy, keyed by display name (or ZIP code)."""

    model_config = ConfigDict(extra="ignore")

    metadata: IndexMetadata = Field(default_factory=IndexMetadata)
    states: dict[str, StateEntry] = Field(default_factory=dict)
    counties: dict[str, CountyEntry] = Field(default_factory=dict)
    cities: dict[str, CityEntry] = Field(default_factory=dict)
    zip_codes: dict[str, ZipEntry] = Field(default_factory=dict)
    search_terms: list[str] = Field(default_factory=list)
    property_types: dict[str, str] = Field(
        default_factory=dict,
        description="Property-type code -> display name (SFR -> Single Family Residential)",
    )

    def state_name_for(self, state_code: str) -> str:
        """Reverse lookup of a state's display name; falls back to the code."""
        for state_name, info in self.states.items():
            if info.state_code == state_code:
                return state_name
        return state_code


# =============================================================================
# Flat zip master index (zip_master_index.csv)
# =============================================================================


def _to_bool(v: Any) -> bool:
    if v is None or v == "":
        return False
    if isinstance(v, str):
        return v.strip().lower() in ("true", "t", "1", "yes", "y")
    return bool(v)


def _to_optional_int(v: Any) -> int | None:
    if v is None or v == "":
        return None
    try:
        return int(float(v))
    except (TypeError, ValueError):
        return None


def _to_float(v: Any) -> float:
    if v is None or v == "":
        return 0.0
    try:
        return float(v)
    except (TypeError, ValueError):
        return 0.0


class FlatGeoRecord(BaseModel):
    """One ZIP row from the flat geographic dataset.

    CSV typing is loose (ZIPs lose their leading zero, booleans arrive as
    "True"/"False" strings, missing ids are blank), so validators coerce each
    column into its canonical form.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    zipcode: str = Field(description="5-digit zero-padded ZIP code")
    state_code: str
    state_name: str | None = None
    data_source: str | None = None

    has_census_data: bool = False
    has_redfin_data: bool = False
    has_geometry: bool = False

    geojson_file: str | None = None
    data_file: str | None = None

    redfin_tableid_zip: int | None = None
    redfin_table_id_city: int | None = None
    redfin_table_id_county: int | None = None
    redfin_city: str | None = None
    census_city: str | None = None
    parent_metro_region: str | None = None
    parent_metro_region_metro_code: int | None = None
    redfin_county_name: str | None = None
    region_type_id: int | None = None

    INTPTLAT: float = 0.0
    INTPTLON: float = 0.0
    ALAND: float = 0.0
    AWATER: float = 0.0

    @field_validator("zipcode", mode="before")
    @classmethod
    def normalize_zipcode(cls, v):
        return normalize_zip(v)

    @field_validator("state_code", mode="before")
    @classmethod
    def normalize_state_code(cls, v):
        return "" if v is None else str(v).strip().upper()

    @field_validator("has_census_data", "has_redfin_data", "has_geometry", mode="before")
    @classmethod
    def parse_flag(cls, v):
        return _to_bool(v)

    @field_validator(
        "redfin_tableid_zip",
        "redfin_table_id_city",
        "redfin_table_id_county",
        "parent_metro_region_metro_code",
        "region_type_id",
        mode="before",
    )
    @classmethod
    def parse_optional_int(cls, v):
        return _to_optional_int(v)

    @field_validator("INTPTLAT", "INTPTLON", "ALAND", "AWATER", mode="before")
    @classmethod
    def parse_float(cls, v):
        return _to_float(v)

    @field_validator(
        "state_name",
        "data_source",
        "geojson_file",
        "data_file",
        "redfin_city",
        "census_city",
        "parent_metro_region",
        "redfin_county_name",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v):
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @property
    def coordinates(self) -> tuple[float, float]:
        return (self.INTPTLAT, self.INTPTLON)


# =============================================================================
# Unified location graph
# =============================================================================


class DataAvailability(BaseModel):
    census: bool = False
    redfin: bool = False
    geometry: bool = False


PATH_SEPARATOR = " > "


def classify_location(hierarchical_path: str, zip_code: str | None = None) -> GeoLevel:
    """Derive a location's level from its hierarchical path.

    One segment is a state. Two segments are a zip when a ZIP code is set,
    a county when the last segment contains "County", otherwise a city.
    """
    parts = hierarchical_path.split(PATH_SEPARATOR)
    if len(parts) == 1:
        return GeoLevel.STATE
    if zip_code:
        return GeoLevel.ZIP
    if "County" in parts[-1]:
        return GeoLevel.COUNTY
    return GeoLevel.CITY


class UnifiedLocation(BaseModel):
    """A taxonomy node merged with the flat records that describe it.

    Always exists for every taxonomy node, even when no flat record matched;
    in that case coordinates are (0, 0) and every availability flag is False.
    """

    key: str = Field(description="Unique '<level>:<identifier>' key")
    zip_code: str | None = None
    state_code: str
    state_name: str

    property_types: dict[str, PropertyType] = Field(default_factory=dict)
    primary_table_id: int | None = None
    hierarchical_path: str = Field(
        description="Ancestor names joined by ' > ', e.g. 'California > Los Angeles County'"
    )

    coordinates: tuple[float, float] = (0.0, 0.0)
    geojson_file: str | None = None
    data_file: str | None = None
    has_data: DataAvailability = Field(default_factory=DataAvailability)

    land_area: float | None = None
    water_area: float | None = None
    metro_region: str | None = None
    data_source: str | None = None

    parent_county: str | None = None
    parent_state: str | None = None
    child_cities: list[str] = Field(default_factory=list)
    child_zips: list[str] = Field(default_factory=list)

    @computed_field
    @property
    def level(self) -> GeoLevel:
        return classify_location(self.hierarchical_path, self.zip_code)


class DataAvailabilityCounts(BaseModel):
    with_geometry: int = 0
    with_census: int = 0
    with_redfin: int = 0


class LocationStats(BaseModel):
    """Counts over the unified index, by level / state / availability."""

    total_locations: int
    by_type: dict[str, int]
    by_state: dict[str, int]
    data_availability: DataAvailabilityCounts
    source: Literal["remote", "substitute"]


class DataLoadingInfo(BaseModel):
    geojson_url: str | None = None
    data_url: str | None = None
    table_id: int | None = None
    has_required_data: bool = False


# =============================================================================
# Matching
# =============================================================================


class MatchingRule(BaseModel):
    """Ordered candidate identifier fields for one (level, source) join."""

    model_config = ConfigDict(frozen=True)

    feature_fields: tuple[str, ...] = ()
    data_fields: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.feature_fields or not self.data_fields


class MatchResult(BaseModel):
    """Outcome of matching one feature against a record set."""

    record: Any = None
    feature_id: str | None = Field(default=None, description="Feature identifier that matched")
    data_field: str | None = Field(default=None, description="Record field that matched")
    method: Literal["exact", "normalized", "loose", None] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @property
    def matched(self) -> bool:
        return self.record is not None


class MatchingStats(BaseModel):
    total_features: int = 0
    matched_features: int = 0
    unmatched_features: int = 0
    match_rate: float = Field(default=0.0, description="Percent of features matched")


# =============================================================================
# Tagged source records
# =============================================================================


class SourceRecordBase(BaseModel, ABC):
    """Uniform read access to a raw record, whatever its source.

    Each tagged variant says where its identifier fields live.
    """

    @property
    @abstractmethod
    def field_values(self) -> dict[str, Any]: ...

    def get(self, field: str, default: Any = None) -> Any:
        return self.field_values.get(field, default)

    def candidate_ids(self, field_names: tuple[str, ...] | list[str]) -> list[str]:
        """Non-empty values of ``field_names``, trimmed to strings, in order."""
        ids = []
        for name in field_names:
            value = self.field_values.get(name)
            if value is None or isinstance(value, bool):
                continue
            if isinstance(value, float) and value.is_integer():
                value = int(value)
            text = str(value).strip()
            if text:
                ids.append(text)
        return ids


class CensusRow(SourceRecordBase):
    source: Literal["census"] = "census"
    values: dict[str, Any] = Field(default_factory=dict)

    @property
    def field_values(self) -> dict[str, Any]:
        return self.values


class RedfinRow(SourceRecordBase):
    source: Literal["redfin"] = "redfin"
    values: dict[str, Any] = Field(default_factory=dict)

    @property
    def field_values(self) -> dict[str, Any]:
        return self.values

    @property
    def table_id(self) -> int | None:
        return _to_optional_int(self.values.get("table_id"))


class FredRow(SourceRecordBase):
    source: Literal["fred"] = "fred"
    values: dict[str, Any] = Field(default_factory=dict)

    @property
    def field_values(self) -> dict[str, Any]:
        return self.values


class GeoFeature(SourceRecordBase):
    """A GeoJSON Feature; identifiers live in ``properties``."""

    source: Literal["geojson"] = "geojson"
    type: str = "Feature"
    id: str | int | None = None
    properties: dict[str, Any] = Field(default_factory=dict)
    geometry: dict[str, Any] | None = None

    @property
    def field_values(self) -> dict[str, Any]:
        return self.properties

    @classmethod
    def from_geojson(cls, feature: dict) -> "GeoFeature":
        return cls(
            id=feature.get("id"),
            type=feature.get("type") or "Feature",
            properties=feature.get("properties") or {},
            geometry=feature.get("geometry"),
        )


ROW_TYPES: dict[DataSource, type[SourceRecordBase]] = {
    DataSource.CENSUS: CensusRow,
    DataSource.REDFIN: RedfinRow,
    DataSource.FRED: FredRow,
}


def wrap_rows(source: DataSource, rows: list[dict]) -> list[SourceRecordBase]:
    """Wrap untyped dict rows in the tagged variant for ``source``."""
    row_type = ROW_TYPES[DataSource(source)]
    return [row_type(values=row) for row in rows if isinstance(row, dict)]


# =============================================================================
# State index cache
# =============================================================================


class StateIndexCacheEntry(BaseModel):
    """Per-state county/zip/tract index rows. Immutable once cached."""

    model_config = ConfigDict(frozen=True)

    state_code: str
    counties: tuple[dict[str, Any], ...] = ()
    zips: tuple[dict[str, Any], ...] = ()
    tracts: tuple[dict[str, Any], ...] = ()
    load_time_ms: float = 0.0
    loaded_at: datetime
    failed_levels: tuple[str, ...] = Field(
        default=(),
        description="Index files that failed to load and are cached as empty",
    )

    @property
    def is_partial(self) -> bool:
        return bool(self.failed_levels)


class CacheStateStats(BaseModel):
    state: str
    counties: int
    zips: int
    tracts: int
    load_time_ms: float
    loaded_at: datetime
    failed_levels: list[str] = Field(default_factory=list)


class CacheStats(BaseModel):
    cached_states: int
    in_flight: list[str] = Field(default_factory=list)
    details: list[CacheStateStats] = Field(default_factory=list)


class CoverageReport(BaseModel):
    """How much of a state's index carries Redfin identifiers."""

    available: bool
    total: int = 0
    with_redfin: int | None = None
    redfin_percent: float | None = None
    quality: Literal["excellent", "good", "limited", None] = None
    reason: str | None = None


# =============================================================================
# Load reports
# =============================================================================


class SourceResult(BaseModel):
    """Ok(data) / Err(kind) for one data source."""

    status: LoadStatus = LoadStatus.NOT_ATTEMPTED
    data: Any = None
    error: ErrorKind | None = None
    message: str | None = None
    record_count: int = 0

    @property
    def ok(self) -> bool:
        return self.status == LoadStatus.SUCCESS

    @classmethod
    def success(cls, data: Any, record_count: int | None = None) -> "SourceResult":
        if record_count is None:
            record_count = len(data) if isinstance(data, list) else 1
        return cls(status=LoadStatus.SUCCESS, data=data, record_count=record_count)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "SourceResult":
        return cls(status=LoadStatus.FAILED, error=kind, message=message)


class ReductionStats(BaseModel):
    input_count: int = 0
    output_count: int = 0
    table_ids_found: int = 0
    filtered: bool = False

    @property
    def reduction(self) -> str:
        if self.input_count == 0:
            return "0%"
        return f"{(1 - self.output_count / self.input_count) * 100:.1f}%"


class IndexStats(BaseModel):
    index_load_time_ms: float = 0.0
    table_ids_found: int = 0
    data_reduction: str = "0%"


class LoadReport(BaseModel):
    """Everything a map view needs: joined data plus per-source status."""

    state: str
    level: GeoLevel
    view_mode: str | None = None
    geojson: SourceResult = Field(default_factory=SourceResult)
    census: SourceResult = Field(default_factory=SourceResult)
    fred: SourceResult = Field(default_factory=SourceResult)
    redfin: SourceResult = Field(default_factory=SourceResult)
    matching: MatchingStats = Field(default_factory=MatchingStats)
    index_stats: IndexStats = Field(default_factory=IndexStats)
    essential_columns: list[str] = Field(default_factory=list)
    data_source: str = "remote"
    load_time_ms: float = 0.0

    @property
    def loading_status(self) -> dict[str, LoadStatus]:
        return {
            "geojson": self.geojson.status,
            "census": self.census.status,
            "fred": self.fred.status,
            "redfin": self.redfin.status,
        }
