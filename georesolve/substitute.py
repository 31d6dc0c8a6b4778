"""Fixed three-state dataset used when the taxonomy cannot be loaded.

Covers California, Nevada and Massachusetts with one county, one city and
one ZIP each (plus a few child references). An index built from this data
reports ``source == "substitute"`` so callers never mistake it for the real
taxonomy.
"""

from .schemas import FlatGeoRecord, MasterIndex

SUBSTITUTE_TAXONOMY = {
    "metadata": {
        "created": "2024-01-01",
        "target_year": 2024,
        "total_states": 3,
        "total_counties": 3,
        "total_cities": 3,
        "total_zips": 3,
    },
    "states": {
        "California": {
            "state_code": "CA",
            "property_types": {
                "SFR": {"name": "Single Family Residential", "table_id": "1001"},
                "CON": {"name": "Condominiums", "table_id": "1002"},
            },
            "primary_table_id": 1001,
        },
        "Nevada": {
            "state_code": "NV",
            "property_types": {
                "SFR": {"name": "Single Family Residential", "table_id": "2001"},
                "CON": {"name": "Condominiums", "table_id": "2002"},
            },
            "primary_table_id": 2001,
        },
        "Massachusetts": {
            "state_code": "MA",
            "property_types": {
                "SFR": {"name": "Single Family Residential", "table_id": "3001"},
                "CON": {"name": "Condominiums", "table_id": "3002"},
            },
            "primary_table_id": 3001,
        },
    },
    "counties": {
        "Los Angeles County, CA": {
            "county_name": "Los Angeles County",
            "state_code": "CA",
            "property_types": {"SFR": {"name": "Single Family Residential", "table_id": "1101"}},
            "primary_table_id": 1101,
            "cities": ["Los Angeles", "Beverly Hills"],
            "zip_codes": ["90210", "90001"],
        },
        "Clark County, NV": {
            "county_name": "Clark County",
            "state_code": "NV",
            "property_types": {"SFR": {"name": "Single Family Residential", "table_id": "2101"}},
            "primary_table_id": 2101,
            "cities": ["Las Vegas", "Henderson"],
            "zip_codes": ["89101", "89102"],
        },
        "Suffolk County, MA": {
            "county_name": "Suffolk County",
            "state_code": "MA",
            "property_types": {"SFR": {"name": "Single Family Residential", "table_id": "3101"}},
            "primary_table_id": 3101,
            "cities": ["Boston"],
            "zip_codes": ["02101", "02102"],
        },
    },
    "cities": {
        "Los Angeles, CA": {
            "city_name": "Los Angeles",
            "state_code": "CA",
            "property_types": {"SFR": {"name": "Single Family Residential", "table_id": "1201"}},
            "primary_table_id": 1201,
        },
        "Las Vegas, NV": {
            "city_name": "Las Vegas",
            "state_code": "NV",
            "property_types": {"SFR": {"name": "Single Family Residential", "table_id": "2201"}},
            "primary_table_id": 2201,
        },
        "Boston, MA": {
            "city_name": "Boston",
            "state_code": "MA",
            "property_types": {"SFR": {"name": "Single Family Residential", "table_id": "3201"}},
            "primary_table_id": 3201,
        },
    },
    "zip_codes": {
        "90210": {
            "zip_code": "90210",
            "state_code": "CA",
            "property_types": {"SFR": {"name": "Single Family Residential", "table_id": "90210001"}},
            "primary_table_id": 90210001,
        },
        "89101": {
            "zip_code": "89101",
            "state_code": "NV",
            "property_types": {"SFR": {"name": "Single Family Residential", "table_id": "89101001"}},
            "primary_table_id": 89101001,
        },
        "02101": {
            "zip_code": "02101",
            "state_code": "MA",
            "property_types": {"SFR": {"name": "Single Family Residential", "table_id": "02101001"}},
            "primary_table_id": 2101001,
        },
    },
    "search_terms": ["California", "Nevada", "Massachusetts", "Los Angeles", "Las Vegas", "Boston"],
    "property_types": {
        "SFR": "Single Family Residential",
        "CON": "Condominiums",
        "TH": "Townhomes",
    },
}

SUBSTITUTE_FLAT_RECORDS = [
    {
        "zipcode": "90210",
        "state_code": "CA",
        "state_name": "California",
        "data_source": "substitute",
        "has_census_data": True,
        "has_redfin_data": True,
        "has_geometry": True,
        "geojson_file": "/substitute/90210.geojson",
        "data_file": "/substitute/90210_data.json",
        "redfin_city": "Beverly Hills",
        "census_city": "Beverly Hills",
        "redfin_county_name": "Los Angeles County",
        "INTPTLAT": 34.0901,
        "INTPTLON": -118.4065,
        "ALAND": 14000000,
        "AWATER": 0,
    },
    {
        "zipcode": "89101",
        "state_code": "NV",
        "state_name": "Nevada",
        "data_source": "substitute",
        "has_census_data": True,
        "has_redfin_data": True,
        "has_geometry": True,
        "geojson_file": "/substitute/89101.geojson",
        "data_file": "/substitute/89101_data.json",
        "redfin_city": "Las Vegas",
        "census_city": "Las Vegas",
        "redfin_county_name": "Clark County",
        "INTPTLAT": 36.1699,
        "INTPTLON": -115.1398,
        "ALAND": 25000000,
        "AWATER": 0,
    },
    {
        "zipcode": "02101",
        "state_code": "MA",
        "state_name": "Massachusetts",
        "data_source": "substitute",
        "has_census_data": True,
        "has_redfin_data": True,
        "has_geometry": True,
        "geojson_file": "/substitute/02101.geojson",
        "data_file": "/substitute/02101_data.json",
        "redfin_city": "Boston",
        "census_city": "Boston",
        "redfin_county_name": "Suffolk County",
        "INTPTLAT": 42.3601,
        "INTPTLON": -71.0589,
        "ALAND": 5000000,
        "AWATER": 1000000,
    },
]


def substitute_master_index() -> MasterIndex:
    return MasterIndex.model_validate(SUBSTITUTE_TAXONOMY)


def substitute_flat_records() -> list[FlatGeoRecord]:
    return [FlatGeoRecord.model_validate(row) for row in SUBSTITUTE_FLAT_RECORDS]
