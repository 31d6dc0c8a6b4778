"""Explore the unified location index and state index cache from the shell.

Loads the published taxonomy and flat ZIP index (or the substitute dataset
when they are unreachable) and answers one query.

Usage:
    uv run python scripts/explore_index.py --stats                # Index statistics
    uv run python scripts/explore_index.py --state CA             # Counties/cities/ZIPs in a state
    uv run python scripts/explore_index.py --search "los angeles" # Text search
    uv run python scripts/explore_index.py --zip 02101            # Single ZIP lookup
    uv run python scripts/explore_index.py --near 34.09 -118.40   # Nearby locations
    uv run python scripts/explore_index.py --load-cache NV        # Load per-state indexes
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from georesolve.config import get_settings
from georesolve.fetcher import Fetcher
from georesolve.index_builder import UnifiedIndex, UnifiedIndexLoader
from georesolve.schemas import GeoLevel, UnifiedLocation
from georesolve.state_cache import StateIndexCache


def print_location(loc: UnifiedLocation):
    lat, lon = loc.coordinates
    flags = ", ".join(name for name, present in loc.has_data.model_dump().items() if present) or "none"
    print(f"  [{loc.level.value}] {loc.hierarchical_path} ({lat:.4f}, {lon:.4f}) data: {flags}")


def print_stats(index: UnifiedIndex):
    stats = index.stats()
    print("=" * 60)
    print("UNIFIED INDEX STATISTICS")
    print("=" * 60)
    print(f"Source:           {stats.source}")
    print(f"Total locations:  {stats.total_locations:,}")

    print("\n--- By Level ---")
    for level, count in sorted(stats.by_type.items(), key=lambda x: -x[1]):
        print(f"  {level}: {count:,}")

    print("\n--- Data Availability ---")
    print(f"  With geometry:  {stats.data_availability.with_geometry:,}")
    print(f"  With census:    {stats.data_availability.with_census:,}")
    print(f"  With Redfin:    {stats.data_availability.with_redfin:,}")

    print("\n--- Top States ---")
    for state, count in sorted(stats.by_state.items(), key=lambda x: -x[1])[:10]:
        print(f"  {state}: {count:,}")


def print_state(index: UnifiedIndex, state_code: str):
    counties = index.counties_in_state(state_code)
    cities = index.cities_in_state(state_code)
    zips = index.zips_in_state(state_code)
    print(f"\n{state_code.upper()}: {len(counties)} counties, {len(cities)} cities, {len(zips)} ZIPs")

    for label, locations in (("Counties", counties), ("Cities", cities), ("ZIPs", zips)):
        print(f"\n--- {label} ---")
        for loc in locations[:20]:
            print_location(loc)
        if len(locations) > 20:
            print(f"  ... and {len(locations) - 20} more")


async def load_cache(fetcher: Fetcher, base_url: str, state_code: str):
    cache = StateIndexCache(fetcher, base_url)
    loaded = await cache.load(state_code)
    if not loaded:
        print(f"Could not load any index file for {state_code}")
        return

    stats = cache.get_cache_stats()
    for detail in stats.details:
        print(f"\n{detail.state} indexes loaded in {detail.load_time_ms:.0f}ms")
        print(f"  Counties: {detail.counties:,}")
        print(f"  ZIPs:     {detail.zips:,}")
        print(f"  Tracts:   {detail.tracts:,}")
        if detail.failed_levels:
            print(f"  Missing:  {', '.join(detail.failed_levels)}")

    for level in (GeoLevel.COUNTY, GeoLevel.ZIP):
        coverage = cache.coverage(state_code, level)
        if coverage.redfin_percent is not None:
            quality = f" ({coverage.quality})" if coverage.quality else ""
            print(f"  {level.value} Redfin coverage: {coverage.redfin_percent}%{quality}")


async def run(args):
    settings = get_settings()
    fetcher = Fetcher(timeout=settings.fetch_timeout)
    try:
        if args.load_cache:
            await load_cache(fetcher, settings.data_base_url, args.load_cache)
            return

        index = await UnifiedIndexLoader(fetcher, settings.index_base_url).load()
        if index.is_substitute:
            print("Taxonomy unavailable - showing the substitute dataset\n")

        if args.state:
            print_state(index, args.state)
        elif args.search:
            results = index.search(args.search, limit=settings.search_limit)
            print(f"\n{len(results)} results for '{args.search}':")
            for loc in results:
                print_location(loc)
        elif args.zip:
            loc = index.find_by_zip(args.zip)
            if loc is None:
                print(f"ZIP {args.zip} not found")
                return
            print_location(loc)
            info = index.data_loading_info(loc)
            print(f"  Table ID: {info.table_id}  GeoJSON: {info.geojson_url}  Data: {info.data_url}")
            print(f"  Has required data: {info.has_required_data}")
        elif args.near:
            lat, lon = args.near
            results = index.find_by_coordinates(lat, lon, args.tolerance, limit=settings.search_limit)
            print(f"\n{len(results)} locations within {args.tolerance} degrees of ({lat}, {lon}):")
            for loc in results:
                print_location(loc)
        else:
            print_stats(index)
    finally:
        await fetcher.aclose()


# =============================================================================
# Main
# =============================================================================

def main():
    parser = argparse.ArgumentParser(description="Explore the unified location index")
    parser.add_argument("--stats", action="store_true", help="Show index statistics (default)")
    parser.add_argument("--state", help="List counties, cities and ZIPs in a state")
    parser.add_argument("--search", help="Search locations by name or ZIP")
    parser.add_argument("--zip", help="Look up a single ZIP code")
    parser.add_argument("--near", nargs=2, type=float, metavar=("LAT", "LON"), help="Find nearby locations")
    parser.add_argument("--tolerance", type=float, default=0.1, help="Degrees for --near (default 0.1)")
    parser.add_argument("--load-cache", metavar="STATE", help="Load per-state county/zip/tract indexes")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show engine log output")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    asyncio.run(run(args))


if __name__ == "__main__":
    main()
