import asyncio

from georesolve.index_builder import (
    UnifiedIndex,
    UnifiedIndexLoader,
    build_substitute_index,
    build_unified_index,
    parse_flat_records,
    parse_master_index,
)
from georesolve.schemas import FlatGeoRecord, GeoLevel, MasterIndex, classify_location

BASE_URL = "https://data.test"


def beverly_hills_inputs():
    master = MasterIndex.model_validate(
        {
            "states": {"California": {"state_code": "CA", "primary_table_id": 1001}},
            "zip_codes": {"90210": {"zip_code": "90210", "state_code": "CA"}},
        }
    )
    flat = [
        FlatGeoRecord(
            zipcode="90210",
            state_code="CA",
            INTPTLAT=34.0901,
            INTPTLON=-118.4065,
            has_geometry=True,
        )
    ]
    return master, flat


def test_zip_location_joins_flat_record():
    master, flat = beverly_hills_inputs()
    locations = build_unified_index(master, flat)

    loc = locations["zip:90210"]
    assert loc.key == "zip:90210"
    assert loc.hierarchical_path == "California > 90210"
    assert loc.coordinates == (34.0901, -118.4065)
    assert loc.has_data.geometry is True
    assert loc.has_data.census is False
    assert loc.has_data.redfin is False
    assert loc.level == GeoLevel.ZIP
    assert loc.parent_state == "California"


def test_zip_without_flat_record_defaults():
    master = MasterIndex.model_validate(
        {
            "states": {"Nevada": {"state_code": "NV"}},
            "zip_codes": {"89101": {"zip_code": "89101", "state_code": "NV"}},
        }
    )
    loc = build_unified_index(master, [])["zip:89101"]
    assert loc.coordinates == (0.0, 0.0)
    assert not (loc.has_data.census or loc.has_data.redfin or loc.has_data.geometry)
    assert loc.state_name == "Nevada"


def test_state_aggregates_member_records():
    master = MasterIndex.model_validate({"states": {"Nevada": {"state_code": "NV"}}})
    flat = [
        FlatGeoRecord(zipcode="89101", state_code="NV", INTPTLAT=36.17, INTPTLON=-115.14),
        FlatGeoRecord(zipcode="89501", state_code="NV", has_redfin_data="True", INTPTLAT=39.5),
        FlatGeoRecord(zipcode="90210", state_code="CA", has_census_data=True),
    ]
    state = build_unified_index(master, flat)["state:NV"]
    assert state.coordinates == (36.17, -115.14)
    assert state.has_data.redfin is True
    assert state.has_data.census is False
    assert state.child_zips == ["89101", "89501"]
    assert state.level == GeoLevel.STATE


def test_unknown_state_name_falls_back_to_code():
    master = MasterIndex.model_validate({"zip_codes": {"96799": {"zip_code": "96799", "state_code": "AS"}}})
    loc = build_unified_index(master, [])["zip:96799"]
    assert loc.state_name == "AS"
    assert loc.hierarchical_path == "AS > 96799"


def test_classification_by_path():
    assert classify_location("California") == GeoLevel.STATE
    assert classify_location("California > Los Angeles County") == GeoLevel.COUNTY
    assert classify_location("California > 90210", "90210") == GeoLevel.ZIP
    assert classify_location("California > Los Angeles") == GeoLevel.CITY


def test_build_is_deterministic():
    index_a = build_substitute_index()
    index_b = build_substitute_index()
    assert list(index_a.locations) == list(index_b.locations)
    assert {k: v.model_dump() for k, v in index_a.locations.items()} == {
        k: v.model_dump() for k, v in index_b.locations.items()
    }


def test_substitute_index_is_flagged():
    index = build_substitute_index()
    assert index.source == "substitute"
    assert index.is_substitute
    assert [s.state_name for s in index.states()] == ["California", "Massachusetts", "Nevada"]


def test_counties_and_cities_use_loose_membership():
    index = build_substitute_index()

    counties = index.counties_in_state("ca")
    assert len(counties) == 1
    county = counties[0]
    assert county.hierarchical_path == "California > Los Angeles County"
    assert county.child_zips == ["90210"]
    assert county.child_cities == ["Los Angeles", "Beverly Hills"]
    assert county.coordinates == (34.0901, -118.4065)

    cities = index.cities_in_state("NV")
    assert [c.hierarchical_path for c in cities] == ["Nevada > Las Vegas"]
    assert cities[0].child_zips == ["89101"]
    assert cities[0].level == GeoLevel.CITY


def test_find_by_zip_normalizes():
    index = build_substitute_index()
    loc = index.find_by_zip("2101")
    assert loc is not None
    assert loc.zip_code == "02101"
    assert loc.state_name == "Massachusetts"
    assert index.find_by_zip("") is None
    assert index.find_by_zip("99999") is None


def test_zips_in_state():
    index = build_substitute_index()
    assert [z.zip_code for z in index.zips_in_state("MA")] == ["02101"]


def test_find_by_coordinates_nearest_first():
    master = MasterIndex.model_validate(
        {
            "states": {"Pennsylvania": {"state_code": "PA"}},
            "zip_codes": {
                "19103": {"zip_code": "19103", "state_code": "PA"},
                "19104": {"zip_code": "19104", "state_code": "PA"},
                "15222": {"zip_code": "15222", "state_code": "PA"},
            },
        }
    )
    flat = [
        FlatGeoRecord(zipcode="19103", state_code="PA", INTPTLAT=40.0, INTPTLON=-75.0),
        FlatGeoRecord(zipcode="19104", state_code="PA", INTPTLAT=40.05, INTPTLON=-75.05),
        FlatGeoRecord(zipcode="15222", state_code="PA", INTPTLAT=40.44, INTPTLON=-79.99),
    ]
    index = UnifiedIndex.build(master, flat)

    results = index.find_by_coordinates(40.04, -75.04, tolerance=0.1)
    assert results[0].key == "zip:19104"
    assert {loc.key for loc in results} == {"zip:19103", "zip:19104", "state:PA"}
    assert index.find_by_coordinates(40.04, -75.04, tolerance=0.1, limit=1)[0].key == "zip:19104"


def test_search_matches_path_and_zip():
    index = build_substitute_index()
    assert [loc.key for loc in index.search("las vegas")] == ["city:Las Vegas, NV"]
    assert "zip:02101" in [loc.key for loc in index.search("021")]
    assert index.search("") == []
    assert len(index.search("a", limit=2)) == 2


def test_stats_counts_by_level_and_source():
    stats = build_substitute_index().stats()
    assert stats.total_locations == 12
    assert stats.by_type == {"state": 3, "county": 3, "city": 3, "zip": 3}
    assert stats.by_state == {"CA": 4, "NV": 4, "MA": 4}
    assert stats.source == "substitute"
    assert stats.data_availability.with_geometry >= 3


def test_data_loading_info_and_property_types():
    index = build_substitute_index()
    info = index.data_loading_info(index.find_by_zip("90210"))
    assert info.table_id == 90210001
    assert info.has_required_data is True
    assert info.geojson_url == "/substitute/90210.geojson"
    assert index.available_property_types()["SFR"] == "Single Family Residential"


def test_parse_flat_records_skips_rows_without_keys():
    rows = [
        {"zipcode": "2101", "state_code": "ma", "has_geometry": "False", "INTPTLAT": "42.36"},
        {"zipcode": "", "state_code": "MA"},
        {"state_code": "MA"},
    ]
    records = parse_flat_records(rows)
    assert len(records) == 1
    assert records[0].zipcode == "02101"
    assert records[0].state_code == "MA"
    assert records[0].has_geometry is False
    assert records[0].INTPTLAT == 42.36


TAXONOMY = {
    "states": {"Nevada": {"state_code": "NV"}},
    "cities": {"Reno, NV": {"city_name": "Reno", "state_code": "NV"}},
    "zip_codes": {"89501": {"zip_code": "89501", "state_code": "NV", "primary_table_id": 5002}},
    "property_types": {"SFR": "Single Family Residential"},
}

FLAT_CSV = """zipcode,state_code,has_census_data,has_redfin_data,has_geometry,redfin_city,INTPTLAT,INTPTLON
89501,NV,True,False,True,Reno,39.526,-119.812
"""


def test_loader_builds_remote_index(make_fetcher):
    fetcher, calls = make_fetcher(
        {"/redfin_master_index.json": TAXONOMY, "/zip_master_index.csv": FLAT_CSV}
    )
    index = asyncio.run(UnifiedIndexLoader(fetcher, BASE_URL).load())

    assert index.source == "remote"
    reno = index.find_by_zip("89501")
    assert reno.coordinates == (39.526, -119.812)
    assert reno.has_data.census is True
    assert index.cities_in_state("NV")[0].child_zips == ["89501"]
    assert calls["/redfin_master_index.json"] == 1
    assert calls["/zip_master_index.csv"] == 1


def test_loader_without_flat_file_keeps_taxonomy(make_fetcher):
    fetcher, _ = make_fetcher({"/redfin_master_index.json": TAXONOMY})
    index = asyncio.run(UnifiedIndexLoader(fetcher, BASE_URL).load())

    assert index.source == "remote"
    assert index.find_by_zip("89501").coordinates == (0.0, 0.0)


def test_loader_falls_back_to_substitute(make_fetcher):
    fetcher, _ = make_fetcher({})
    index = asyncio.run(UnifiedIndexLoader(fetcher, BASE_URL).load())

    assert index.source == "substitute"
    assert index.stats().source == "substitute"
    assert index.find_by_zip("90210") is not None


def test_invalid_taxonomy_entries_are_skipped(make_fetcher):
    taxonomy = {
        "states": {"Texas": {"state_code": "TX", "primary_table_id": 4801}},
        "counties": {
            "Dallas County, TX": {"county_name": "Dallas County", "state_code": "TX"},
            "Broken County, TX": {"state_code": "TX"},
        },
        "zip_codes": {
            "75001": {"zip_code": "75001", "state_code": "TX", "primary_table_id": ""},
            "75002": {"state_code": "TX"},
        },
        "property_types": {"SFR": "Single Family Residential"},
    }
    fetcher, _ = make_fetcher({"/redfin_master_index.json": taxonomy})
    index = asyncio.run(UnifiedIndexLoader(fetcher, BASE_URL).load())

    assert index.source == "remote"
    assert [s.state_code for s in index.states()] == ["TX"]
    assert [c.key for c in index.counties_in_state("TX")] == ["county:Dallas County, TX"]
    assert index.find_by_zip("75001").primary_table_id is None
    assert index.find_by_zip("75002") is None
    assert index.available_property_types() == {"SFR": "Single Family Residential"}


def test_non_object_taxonomy_falls_back_to_substitute(make_fetcher):
    fetcher, _ = make_fetcher({"/redfin_master_index.json": ["not", "a", "taxonomy"]})
    index = asyncio.run(UnifiedIndexLoader(fetcher, BASE_URL).load())
    assert index.source == "substitute"


def test_parse_master_index_keeps_valid_entries():
    master = parse_master_index(
        {
            "metadata": {"total_states": "many"},
            "cities": {"Reno, NV": {"city_name": "Reno", "state_code": "NV"}, "Nowhere": "bad"},
        }
    )
    assert list(master.cities) == ["Reno, NV"]
    assert master.metadata.total_states is None
    assert parse_master_index("nope") is None
