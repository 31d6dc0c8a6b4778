"""Shared fixtures: canned index files and a fetcher backed by httpx.MockTransport."""

from collections import Counter

import httpx
import pytest

from georesolve.fetcher import Fetcher

NV_COUNTY_CSV = """GEOID,NAME,NAMELSAD,COUNTYFP,table_id,fred_county_fips
32003,Clark,Clark County,003,2101,32003
32031,Washoe,Washoe County,031,2102,32031
"""

NV_ZIP_CSV = """ZIPCODE,zipcode,redfin_tableid_zip,county_name,redfin_county_name
89101,89101,5001,Clark County,Clark County
89501,89501,5002,Washoe County,Washoe County
89049,89049,,Nye County,Nye County
"""

NV_TRACT_CSV = """GEOID,tract,zip_code_clean,county_name
32003000100,000100,89101,Clark County
32031000200,000200,89501,Washoe County
"""


@pytest.fixture
def nv_index_routes():
    return {
        "/index/csv/NV/county.csv": NV_COUNTY_CSV,
        "/index/csv/NV/zip.csv": NV_ZIP_CSV,
        "/index/csv/NV/tract.csv": NV_TRACT_CSV,
    }


@pytest.fixture
def make_fetcher():
    """Build a Fetcher whose responses come from a path-suffix -> body map.

    JSON bodies (dict/list) are served as application/json, strings as CSV,
    and unknown paths as 404. Returns the fetcher and a Counter of requests
    per matched suffix (or full path for misses).
    """

    def factory(routes: dict):
        calls: Counter = Counter()

        def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path
            for suffix, body in routes.items():
                if path.endswith(suffix):
                    calls[suffix] += 1
                    if isinstance(body, httpx.Response):
                        return body
                    if isinstance(body, (dict, list)):
                        return httpx.Response(200, json=body)
                    return httpx.Response(200, text=body, headers={"content-type": "text/csv"})
            calls[path] += 1
            return httpx.Response(404, text="Not Found")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return Fetcher(client=client), calls

    return factory
