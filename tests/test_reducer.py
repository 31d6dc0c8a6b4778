import asyncio

import pytest

from georesolve.reducer import PayloadReducer
from georesolve.state_cache import StateIndexCache

BASE_URL = "https://data.test"


def zip_feature(zip_code):
    return {"type": "Feature", "properties": {"ZIPCODE": zip_code}, "geometry": None}


@pytest.fixture
def loaded_cache(make_fetcher, nv_index_routes):
    fetcher, _ = make_fetcher(nv_index_routes)
    cache = StateIndexCache(fetcher, BASE_URL)
    assert asyncio.run(cache.load("NV"))
    return cache


REDFIN_ROWS = [
    {"table_id": 5001, "region": "Zip Code: 89101"},
    {"table_id": "5002", "region": "Zip Code: 89501"},
    {"table_id": 9999, "region": "Zip Code: 10001"},
]


def test_empty_cache_returns_input_unchanged(make_fetcher):
    fetcher, _ = make_fetcher({})
    reducer = PayloadReducer(StateIndexCache(fetcher, BASE_URL))

    records, stats = reducer.reduce("NV", "zip", [zip_feature("89101")], REDFIN_ROWS)
    assert records is REDFIN_ROWS
    assert len(records) == len(REDFIN_ROWS)
    assert stats.filtered is False
    assert stats.reduction == "0.0%"


def test_reduce_keeps_resolved_table_ids(loaded_cache):
    reducer = PayloadReducer(loaded_cache)
    records, stats = reducer.reduce("NV", "zip", [zip_feature("89101"), zip_feature("89501")], REDFIN_ROWS)

    assert [r["table_id"] for r in records] == [5001, "5002"]
    assert stats.input_count == 3
    assert stats.output_count == 2
    assert stats.table_ids_found == 2
    assert stats.filtered is True
    assert stats.reduction == "33.3%"


def test_unresolved_features_keep_everything(loaded_cache):
    reducer = PayloadReducer(loaded_cache)
    records, stats = reducer.reduce("NV", "zip", [zip_feature("00000")], REDFIN_ROWS)
    assert records is REDFIN_ROWS
    assert stats.table_ids_found == 0


def test_sample_size_bounds_resolution(loaded_cache):
    reducer = PayloadReducer(loaded_cache, sample_size=1)
    ids = reducer.relevant_table_ids("NV", "zip", [zip_feature("89101"), zip_feature("89501")])
    assert ids == {5001}


def test_resolve_zip_without_table_id(loaded_cache):
    assert PayloadReducer(loaded_cache).resolve_table_id("NV", "89049", "zip") is None


def test_resolve_zip_with_lost_leading_zero(make_fetcher):
    routes = {"/index/csv/MA/zip.csv": "ZIPCODE,redfin_tableid_zip\n2101,7001\n"}
    fetcher, _ = make_fetcher(routes)
    cache = StateIndexCache(fetcher, BASE_URL)
    asyncio.run(cache.load("MA"))

    assert PayloadReducer(cache).resolve_table_id("MA", "02101", "zip") == 7001


def test_resolve_county_fallback_chain(loaded_cache):
    reducer = PayloadReducer(loaded_cache)
    # exact GEOID (cached as an int)
    assert reducer.resolve_table_id("NV", "32003", "county") == 2101
    # normalized county code
    assert reducer.resolve_table_id("NV", "31", "county") == 2102
    # name substring
    assert reducer.resolve_table_id("NV", "Washoe", "county") == 2102
    assert reducer.resolve_table_id("NV", "Nye", "county") is None


def test_county_features_use_geoid(loaded_cache):
    features = [{"type": "Feature", "properties": {"GEOID": "32031"}}]
    records = [{"table_id": 2101}, {"table_id": 2102}]
    reduced, _ = PayloadReducer(loaded_cache).reduce("NV", "county", features, records)
    assert reduced == [{"table_id": 2102}]


def test_other_levels_are_not_reduced(loaded_cache):
    reduced, stats = PayloadReducer(loaded_cache).reduce("NV", "tract", [zip_feature("89101")], REDFIN_ROWS)
    assert reduced is REDFIN_ROWS
    assert stats.filtered is False
