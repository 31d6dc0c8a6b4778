"""US state reference table.

Each state carries its display name and 2-digit FIPS code. The FIPS code is
what FRED files and Census county GEOIDs are prefixed with.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class StateInfo:
    code: str
    name: str
    fips: str


STATES: dict[str, StateInfo] = {
    info.code: info
    for info in [
        StateInfo("AL", "Alabama", "01"),
        StateInfo("AK", "Alaska", "02"),
        StateInfo("AZ", "Arizona", "04"),
        StateInfo("AR", "Arkansas", "05"),
        StateInfo("CA", "California", "06"),
        StateInfo("CO", "Colorado", "08"),
        StateInfo("CT", "Connecticut", "09"),
        StateInfo("DE", "Delaware", "10"),
        StateInfo("DC", "District of Columbia", "11"),
        StateInfo("FL", "Florida", "12"),
        StateInfo("GA", "Georgia", "13"),
        StateInfo("HI", "Hawaii", "15"),
        StateInfo("ID", "Idaho", "16"),
        StateInfo("IL", "Illinois", "17"),
        StateInfo("IN", "Indiana", "18"),
        StateInfo("IA", "Iowa", "19"),
        StateInfo("KS", "Kansas", "20"),
        StateInfo("KY", "Kentucky", "21"),
        StateInfo("LA", "Louisiana", "22"),
        StateInfo("ME", "Maine", "23"),
        StateInfo("MD", "Maryland", "24"),
        StateInfo("MA", "Massachusetts", "25"),
        StateInfo("MI", "Michigan", "26"),
        StateInfo("MN", "Minnesota", "27"),
        StateInfo("MS", "Mississippi", "28"),
        StateInfo("MO", "Missouri", "29"),
        StateInfo("MT", "Montana", "30"),
        StateInfo("NE", "Nebraska", "31"),
        StateInfo("NV", "Nevada", "32"),
        StateInfo("NH", "New Hampshire", "33"),
        StateInfo("NJ", "New Jersey", "34"),
        StateInfo("NM", "New Mexico", "35"),
        StateInfo("NY", "New York", "36"),
        StateInfo("NC", "North Carolina", "37"),
        StateInfo("ND", "North Dakota", "38"),
        StateInfo("OH", "Ohio", "39"),
        StateInfo("OK", "Oklahoma", "40"),
        StateInfo("OR", "Oregon", "41"),
        StateInfo("PA", "Pennsylvania", "42"),
        StateInfo("RI", "Rhode Island", "44"),
        StateInfo("SC", "South Carolina", "45"),
        StateInfo("SD", "South Dakota", "46"),
        StateInfo("TN", "Tennessee", "47"),
        StateInfo("TX", "Texas", "48"),
        StateInfo("UT", "Utah", "49"),
        StateInfo("VT", "Vermont", "50"),
        StateInfo("VA", "Virginia", "51"),
        StateInfo("WA", "Washington", "53"),
        StateInfo("WV", "West Virginia", "54"),
        StateInfo("WI", "Wisconsin", "55"),
        StateInfo("WY", "Wyoming", "56"),
    ]
}


def get_state(code: str) -> StateInfo | None:
    """Look up a state by 2-letter code (case-insensitive)."""
    if not code:
        return None
    return STATES.get(code.strip().upper())

