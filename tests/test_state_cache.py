import asyncio

import pytest

from georesolve.errors import UnknownGeography
from georesolve.state_cache import StateIndexCache, type_index_row

BASE_URL = "https://data.test"


def test_type_index_row():
    row = type_index_row(
        {
            "GEOID": "06037",
            "NAME": "Los Angeles",
            "table_id": "",
            "state_fips": "06",
            "zipcode": "02101",
            "ZIPCODE": "02101",
            "redfin_tableid_zip": "5001",
        }
    )
    assert row["GEOID"] == 6037
    assert row["NAME"] == "Los Angeles"
    assert row["table_id"] is None
    assert row["state_fips"] == 6
    assert row["zipcode"] == 2101
    # Column matching is case-sensitive, as published
    assert row["ZIPCODE"] == "02101"
    assert row["redfin_tableid_zip"] == "5001"


def test_load_fetches_each_file_once(make_fetcher, nv_index_routes):
    fetcher, calls = make_fetcher(nv_index_routes)
    cache = StateIndexCache(fetcher, BASE_URL)

    async def run():
        assert await cache.load("NV")
        assert await cache.load("NV")
        assert await cache.load("nv")

    asyncio.run(run())

    assert calls == {path: 1 for path in nv_index_routes}
    entry = cache.get("NV")
    assert len(entry.counties) == 2
    assert len(entry.zips) == 3
    assert len(entry.tracts) == 2
    assert not entry.is_partial


def test_concurrent_loads_share_one_fetch(make_fetcher, nv_index_routes):
    fetcher, calls = make_fetcher(nv_index_routes)
    cache = StateIndexCache(fetcher, BASE_URL)

    async def run():
        return await asyncio.gather(cache.load("NV"), cache.load("NV"), cache.load("nv"))

    assert asyncio.run(run()) == [True, True, True]
    assert calls == {path: 1 for path in nv_index_routes}
    assert cache.get_cache_stats().in_flight == []


def test_failed_file_is_cached_empty(make_fetcher, nv_index_routes):
    del nv_index_routes["/index/csv/NV/tract.csv"]
    fetcher, calls = make_fetcher(nv_index_routes)
    cache = StateIndexCache(fetcher, BASE_URL)

    assert asyncio.run(cache.load("NV")) is True
    entry = cache.get("NV")
    assert entry.tracts == ()
    assert len(entry.counties) == 2
    assert entry.failed_levels == ("tract",)
    assert entry.is_partial

    # Partial entries are still served from memory
    asyncio.run(cache.load("NV"))
    assert calls["/index/csv/NV/tract.csv"] == 1


def test_total_failure_is_not_cached(make_fetcher):
    fetcher, calls = make_fetcher({})
    cache = StateIndexCache(fetcher, BASE_URL)

    assert asyncio.run(cache.load("NV")) is False
    assert cache.get("NV") is None
    assert cache.get_cache_stats().cached_states == 0

    asyncio.run(cache.load("NV"))
    assert calls["/index/csv/NV/county.csv"] == 2


def test_unknown_state_raises(make_fetcher):
    fetcher, calls = make_fetcher({})
    cache = StateIndexCache(fetcher, BASE_URL)

    with pytest.raises(UnknownGeography):
        asyncio.run(cache.load("ZZ"))
    assert not calls
    assert cache.get("ZZ") is None


def test_clear_and_stats(make_fetcher, nv_index_routes):
    fetcher, calls = make_fetcher(nv_index_routes)
    cache = StateIndexCache(fetcher, BASE_URL)
    asyncio.run(cache.load("NV"))

    stats = cache.get_cache_stats()
    assert stats.cached_states == 1
    detail = stats.details[0]
    assert (detail.state, detail.counties, detail.zips, detail.tracts) == ("NV", 2, 3, 2)
    assert detail.load_time_ms >= 0
    assert cache.loaded_states() == ["NV"]

    assert cache.clear("nv") is True
    assert cache.clear("NV") is False
    assert cache.get("NV") is None

    # Evicted states are fetched again
    asyncio.run(cache.load("NV"))
    assert calls["/index/csv/NV/zip.csv"] == 2

    cache.clear_all()
    assert cache.loaded_states() == []


def test_coverage(make_fetcher, nv_index_routes):
    fetcher, _ = make_fetcher(nv_index_routes)
    cache = StateIndexCache(fetcher, BASE_URL)

    assert cache.coverage("NV", "zip").available is False

    asyncio.run(cache.load("NV"))
    zips = cache.coverage("NV", "zip")
    assert zips.available
    assert zips.total == 3
    assert zips.with_redfin == 2
    assert zips.redfin_percent == 66.7
    assert zips.quality == "excellent"

    counties = cache.coverage("NV", "county")
    assert counties.with_redfin == 2
    assert counties.redfin_percent == 100.0

    tracts = cache.coverage("NV", "tract")
    assert tracts.total == 2


def test_relationship_lookups(make_fetcher, nv_index_routes):
    fetcher, _ = make_fetcher(nv_index_routes)
    cache = StateIndexCache(fetcher, BASE_URL)

    assert cache.tracts_in_zip("NV", "89101") == []

    asyncio.run(cache.load("NV"))
    tracts = cache.tracts_in_zip("NV", "89101")
    assert [t["GEOID"] for t in tracts] == [32003000100]

    zips = cache.zips_in_county("NV", "Washoe County, NV")
    assert [z["zipcode"] for z in zips] == [89501]


@pytest.mark.parametrize("evict", ["clear", "clear_all"])
def test_clear_discards_in_flight_load(make_fetcher, nv_index_routes, evict):
    fetcher, calls = make_fetcher(nv_index_routes)
    cache = StateIndexCache(fetcher, BASE_URL)

    async def run():
        pending = asyncio.create_task(cache.load("NV"))
        await asyncio.sleep(0)
        assert cache.get_cache_stats().in_flight == ["NV"]
        if evict == "clear":
            cache.clear("NV")
        else:
            cache.clear_all()
        return await pending

    assert asyncio.run(run()) is False
    assert cache.loaded_states() == []
    assert cache.get_cache_stats().in_flight == []

    # A fresh load after the eviction caches normally
    assert asyncio.run(cache.load("NV")) is True
    assert cache.loaded_states() == ["NV"]
    assert calls["/index/csv/NV/county.csv"] == 2
