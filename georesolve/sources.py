"""Where each dataset lives. A pure lookup from (state, level) to URLs."""

from pydantic import BaseModel

from .errors import UnknownGeography
from .schemas import GeoLevel
from .states import get_state

MASTER_INDEX_FILE = "redfin_master_index.json"
ZIP_MASTER_FILE = "zip_master_index.csv"
INDEX_LEVELS = ("county", "zip", "tract")


class SourceUrls(BaseModel):
    geojson: str
    census: str
    fred: str
    redfin: str


def state_index_url(base_url: str, state_code: str, level: str) -> str:
    """Per-state index CSV (county.csv / zip.csv / tract.csv)."""
    return f"{base_url}/index/csv/{state_code}/{level}.csv"


def build_source_urls(
    base_url: str,
    state_code: str,
    level: GeoLevel | str,
    view_mode: str | None = None,
) -> SourceUrls:
    """URLs for the four raw datasets behind a map view.

    Tract level needs ``view_mode`` ("county" or "zip") to pick which census
    and Redfin variant to load.
    """
    state = get_state(state_code)
    if not state:
        raise UnknownGeography(f"Unsupported state: {state_code}")
    try:
        level = GeoLevel(level)
    except ValueError:
        raise UnknownGeography(f"Unsupported level: {level}")

    code = state.code
    fred = f"{base_url}/fred/{code}/fred_counties_{state.fips}.json"

    if level == GeoLevel.TRACT:
        if view_mode not in ("county", "zip"):
            raise UnknownGeography("view_mode 'county' or 'zip' is required for tract level")
        return SourceUrls(
            geojson=f"{base_url}/geojson/{code}/tract.geojson",
            census=f"{base_url}/census/{code}/tract/Cen_{state.name}_tract_{view_mode}_2023_lean.json",
            fred=fred,
            redfin=f"{base_url}/redfin/{code}/redfin_{code}_{view_mode}.json",
        )

    if level == GeoLevel.STATE:
        return SourceUrls(
            geojson=f"{base_url}/geojson/{code}/state.geojson",
            census=f"{base_url}/census/{code}/Cen_{state.name}_state_2023_summary.json",
            fred=fred,
            redfin=f"{base_url}/redfin/{code}/redfin_{code}_county.json",
        )

    if level == GeoLevel.CITY:
        raise UnknownGeography("City-level map data is not published")

    return SourceUrls(
        geojson=f"{base_url}/geojson/{code}/{level.value}.geojson",
        census=f"{base_url}/census/{code}/Cen_{state.name}_{level.value}_2023_summary.json",
        fred=fred,
        redfin=f"{base_url}/redfin/{code}/redfin_{code}_{level.value}.json",
    )
