"""Essential column allow-lists.

Raw census and Redfin tables carry hundreds of columns; map views need a
handful. Rows are projected onto these lists before they leave the engine.
Tract files are pre-trimmed upstream and keep every column.
"""

from .schemas import GeoLevel

GEOGRAPHIC_SELECTIONS: dict[GeoLevel, list[str]] = {
    GeoLevel.STATE: ["state_name", "state_code", "state_fips"],
    GeoLevel.COUNTY: ["GEOID", "NAME", "FIPS", "state", "county"],
    GeoLevel.ZIP: ["ZIPCODE", "GEOID", "preferred_city", "state", "county", "zip"],
    GeoLevel.TRACT: ["GEOID", "tract", "county", "county_name", "zip", "preferred_city"],
}

CENSUS_MAP_SELECTIONS = [
    "population_total",
    "housing_median_value",
    "housing_ownership_rate",
    "housing_occupancy_rate",
    "rental_median_rent",
    "employment_unemployment_rate",
    "employment_labor_force_participation",
    "poverty_rate",
    "income_median",
]

REDFIN_MAP_SELECTIONS = [
    "median_sale_price",
    "median_list_price",
    "median_ppsf",
    "homes_sold",
    "pending_sales",
    "inventory",
    "new_listings",
    "median_dom",
    "avg_sale_to_list",
    "months_of_supply",
]

FRED_MAP_SELECTIONS = [
    "gdp",
    "per_capita_personal_income",
    "people_poverty",
    "labor_participation",
    "ump",
    "house_price_index",
    "homeownership_rate",
    "bld_perm_units",
    "affordability_index",
]

MAP_ESSENTIAL_COLUMNS: dict[GeoLevel, list[str]] = {
    GeoLevel.STATE: GEOGRAPHIC_SELECTIONS[GeoLevel.STATE] + FRED_MAP_SELECTIONS,
    GeoLevel.COUNTY: (
        GEOGRAPHIC_SELECTIONS[GeoLevel.COUNTY] + CENSUS_MAP_SELECTIONS + REDFIN_MAP_SELECTIONS[:6]
    ),
    GeoLevel.ZIP: (
        GEOGRAPHIC_SELECTIONS[GeoLevel.ZIP] + CENSUS_MAP_SELECTIONS + REDFIN_MAP_SELECTIONS[:8]
    ),
}

# Columns kept on Redfin rows; table_id must survive for matching
REDFIN_ESSENTIAL_COLUMNS = [
    "table_id",
    "region",
    "median_sale_price",
    "median_list_price",
    "median_ppsf",
    "inventory",
    "homes_sold",
    "pending_sales",
    "median_dom",
]

# Redfin property_type_id values kept: all residential, single family, condo
ESSENTIAL_PROPERTY_TYPE_IDS = {"-1", "6", "13"}


def get_essential_columns(level: GeoLevel | str) -> list[str]:
    """Allow-list for ``level``; an empty list means keep every column."""
    level = GeoLevel(level)
    if level == GeoLevel.TRACT:
        return []
    return list(MAP_ESSENTIAL_COLUMNS.get(level, []))


def project_rows(rows: list[dict], columns: list[str]) -> list[dict]:
    """Keep only ``columns`` on each row. An empty column list is a no-op."""
    if not columns:
        return rows
    return [{col: row[col] for col in columns if col in row} for row in rows]


def filter_by_property_type(rows: list[dict]) -> list[dict]:
    """Drop Redfin rows for property types the map never shows."""
    return [
        row
        for row in rows
        if row.get("property_type_id") is not None
        and str(row.get("property_type_id")).strip() in ESSENTIAL_PROPERTY_TYPE_IDS
    ]
