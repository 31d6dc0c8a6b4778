"""HTTP access to the published datasets.

Every failure mode (network error, timeout, non-2xx, an HTML 404 page served
with status 200, a body that does not parse) surfaces as
``SourceUnavailable``. Callers above this layer decide how to degrade.
"""

import io
import logging
from typing import Any

import httpx
import pandas as pd

from .errors import SourceUnavailable

logger = logging.getLogger(__name__)


def parse_csv(text: str) -> list[dict[str, str]]:
    """Parse CSV text with a header row into string-valued records.

    Every cell stays a string (blank for missing) so that callers control
    numeric coercion; pandas would otherwise turn ZIP 02101 into 2101.0.
    """
    if not text or not text.strip():
        return []
    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except pd.errors.EmptyDataError:
        return []
    df.columns = [str(col).strip() for col in df.columns]
    return [
        {key: value.strip() if isinstance(value, str) else value for key, value in row.items()}
        for row in df.to_dict(orient="records")
    ]


class Fetcher:
    """Thin async wrapper around one shared ``httpx.AsyncClient``."""

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 30.0):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _get(self, url: str) -> httpx.Response:
        try:
            response = await self.client.get(url)
        except httpx.TimeoutException as e:
            raise SourceUnavailable(url, f"timed out ({e.__class__.__name__})") from e
        except httpx.HTTPError as e:
            raise SourceUnavailable(url, str(e) or e.__class__.__name__) from e

        if response.status_code >= 400:
            raise SourceUnavailable(url, f"HTTP {response.status_code}")

        content_type = response.headers.get("content-type", "")
        if "text/html" in content_type:
            raise SourceUnavailable(url, "response is HTML (likely a 404 page)")
        return response

    async def fetch_json(self, url: str) -> Any:
        """GET ``url`` and decode the body as JSON."""
        response = await self._get(url)
        try:
            return response.json()
        except ValueError as e:
            raise SourceUnavailable(url, "response is not JSON") from e

    async def fetch_text(self, url: str) -> str:
        response = await self._get(url)
        return response.text

    async def fetch_csv(self, url: str) -> list[dict[str, str]]:
        """GET ``url`` and parse it as CSV with a header row."""
        text = await self.fetch_text(url)
        try:
            rows = parse_csv(text)
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            raise SourceUnavailable(url, f"response is not CSV ({e})") from e
        logger.debug(f"Parsed {len(rows)} CSV rows from {url}")
        return rows
