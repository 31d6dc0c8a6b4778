"""Identifier normalization for ZIP codes, county FIPS and state codes.

Every source pads identifiers differently: ZIP 02101 arrives as the integer
2101 from CSVs, county FIPS shows up as "001", "6001" or "06001" depending on
whether the state prefix was kept and whether a leading zero survived. These
helpers expand a raw identifier into the set of equivalent strings so that
callers can compare by set intersection instead of guessing the format.

None of these functions raise. Missing or empty input produces an empty
string or an empty list.
"""

import re
from typing import Any, Iterable

from .states import STATES

_NON_DIGITS = re.compile(r"\D")


def _clean(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def digits_only(value: Any) -> str:
    """Strip everything but digits from a raw identifier."""
    return _NON_DIGITS.sub("", _clean(value))


def _dedupe(values: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        if value:
            seen.setdefault(value, None)
    return list(seen)


# =============================================================================
# ZIP codes
# =============================================================================


def normalize_zip(value: Any) -> str:
    """Normalize a ZIP code to 5 zero-padded digits."""
    digits = digits_only(value)
    if not digits:
        return ""
    return digits.zfill(5)


def zip_variants(value: Any) -> list[str]:
    """Raw trimmed form plus the canonical 5-digit form."""
    raw = _clean(value)
    if not raw:
        return []
    return _dedupe([raw, normalize_zip(raw)])


# =============================================================================
# County / FIPS
# =============================================================================


def county_id_variants(value: Any, state_fips: str | None = None) -> list[str]:
    """Expand a county identifier into its equivalent textual forms.

    - 5 digits ("06001"): also the county-only 3 digits ("001")
    - 4 digits ("6001"): also the zero-padded 5-digit form ("06001")
    - 1-3 digits ("1", "001"): also the 3-digit form, and the state-prefixed
      5-digit form when ``state_fips`` is given ("06001")

    Output order is stable: cleaned digits first, then derived forms.
    """
    digits = digits_only(value)
    if not digits:
        return []

    variants = [digits]
    if len(digits) == 5:
        variants.append(digits[-3:])
    elif len(digits) == 4:
        variants.append(digits.zfill(5))
    elif len(digits) <= 3:
        county = digits.zfill(3)
        variants.append(county)
        prefix = digits_only(state_fips)
        if prefix:
            variants.append(prefix.zfill(2) + county)
    return _dedupe(variants)


def normalize_county_code(value: Any) -> str:
    """Reduce a county identifier to its 3-digit county-only code.

    4- and 5-digit values are state+county GEOIDs ("6037" lost its leading
    zero), so only the last three digits are kept.
    """
    digits = digits_only(value)
    if not digits:
        return ""
    if len(digits) in (4, 5):
        return digits[-3:]
    return digits.zfill(3)


def ids_intersect(left: Iterable[str], right: Iterable[str]) -> bool:
    return not set(left).isdisjoint(right)


# =============================================================================
# State Code Normalization
# =============================================================================

STATE_CODES: dict[str, str] = {}
for _info in STATES.values():
    STATE_CODES[_info.name.upper()] = _info.code
    STATE_CODES[_info.code] = _info.code
STATE_CODES.update({"MASS": "MA", "CONN": "CT", "D.C.": "DC"})


def normalize_state(raw_state: str | None) -> str | None:
    """Normalize state name/abbreviation to 2-letter code."""
    if not raw_state:
        return None
    clean = raw_state.strip().upper()
    return STATE_CODES.get(clean)
