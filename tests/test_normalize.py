from georesolve.normalize import (
    county_id_variants,
    ids_intersect,
    normalize_county_code,
    normalize_state,
    normalize_zip,
    zip_variants,
)


def test_normalize_zip_keeps_canonical_zip():
    assert normalize_zip("90210") == "90210"
    assert normalize_zip(normalize_zip("02101")) == "02101"


def test_normalize_zip_restores_leading_zero():
    assert normalize_zip(2101) == "02101"
    assert normalize_zip(2101.0) == "02101"
    assert normalize_zip(" 2101 ") == "02101"


def test_normalize_zip_empty_input():
    assert normalize_zip(None) == ""
    assert normalize_zip("") == ""
    assert normalize_zip("n/a") == ""


def test_zip_variants():
    assert zip_variants("2101") == ["2101", "02101"]
    assert zip_variants("90210") == ["90210"]
    assert zip_variants(None) == []


def test_county_variants_with_state_prefix():
    variants = county_id_variants("1", "06")
    assert "06001" in variants
    assert variants == ["1", "001", "06001"]


def test_county_variants_by_length():
    assert county_id_variants("06001") == ["06001", "001"]
    assert county_id_variants("6001") == ["6001", "06001"]
    assert county_id_variants("001") == ["001"]
    assert county_id_variants(6001) == ["6001", "06001"]


def test_county_variants_never_raise():
    assert county_id_variants(None) == []
    assert county_id_variants("") == []
    assert county_id_variants("Clark County") == []


def test_normalize_county_code():
    assert normalize_county_code("06037") == "037"
    assert normalize_county_code("6037") == "037"
    assert normalize_county_code("37") == "037"
    assert normalize_county_code(None) == ""


def test_ids_intersect():
    assert ids_intersect(county_id_variants("06001"), county_id_variants("1", "06"))
    assert not ids_intersect(["06001"], ["06003"])


def test_normalize_state():
    assert normalize_state("california") == "CA"
    assert normalize_state(" nv ") == "NV"
    assert normalize_state("Mass") == "MA"
    assert normalize_state("Atlantis") is None
    assert normalize_state(None) is None
