import pytest

from ingest.matching.normalization import is_valid_identifier, normalize_identifier, normalize_title, parse_raw_input


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("B07XJ8C8F5", "B07XJ8C8F5"),
        ("  b07xj8c8f5 ", "B07XJ8C8F5"),
        ("https://www.amazon.com/Silicone-Lids/dp/B07XJ8C8F5/ref=sr_1_1", "B07XJ8C8F5"),
        ("https://www.amazon.com/gp/product/B08L5TNJHG?th=1", "B08L5TNJHG"),
        ("https://smile.amazon.com/product/B09B8RVKGW", "B09B8RVKGW"),
        ("https://www.amazon.com/s?k=lids&asin=B0C1SLD2KQ", "B0C1SLD2KQ"),
        ("see B07XJ8C8F5 for details", "B07XJ8C8F5"),
    ],
)
def test_normalize_identifier_accepts_known_shapes(raw, expected):
    assert normalize_identifier(raw) == expected


@pytest.mark.parametrize("raw", ["", None, "hello", "A07XJ8C8F5", "B07XJ8C8F", "https://example.com/item/123", "B07XJ8C8F5X"])
def test_normalize_identifier_rejects_garbage(raw):
    assert normalize_identifier(raw) is None


def test_normalize_identifier_prefers_explicit_url_shape_over_bare_token():
    raw = "https://www.amazon.com/dp/B08L5TNJHG?ref=B07XJ8C8F5"
    assert normalize_identifier(raw) == "B08L5TNJHG"


def test_normalized_identifiers_are_idempotent_and_valid():
    for raw in ["b07xj8c8f5", "http://x/dp/B000000000", "asin=b0c1sld2kq"]:
        first = normalize_identifier(raw)
        assert first is not None
        assert is_valid_identifier(first)
        assert normalize_identifier(first) == first


def test_normalize_title_strips_punctuation_and_whitespace():
    assert normalize_title("  Silicone   Lids, 12-Pack!  ") == "silicone lids 12pack"
    assert normalize_title(None) == ""


def test_parse_raw_input_from_string():
    record = parse_raw_input("  https://www.amazon.com/dp/B07XJ8C8F5  ")
    assert record.raw == "https://www.amazon.com/dp/B07XJ8C8F5"
    assert record.cost is None


def test_parse_raw_input_from_spreadsheet_row():
    record = parse_raw_input({"ASIN": "", "URL": "https://www.amazon.com/dp/B07XJ8C8F5", "Title": "Lids", "Cost": "$1,012.50", "Category": "Kitchen"})
    assert record.raw == "https://www.amazon.com/dp/B07XJ8C8F5"
    assert record.title == "Lids"
    assert record.cost == 1012.5
    assert record.category == "Kitchen"


def test_parse_raw_input_ignores_unparseable_cost():
    record = parse_raw_input({"asin": "B07XJ8C8F5", "cost": "n/a"})
    assert record.raw == "B07XJ8C8F5"
    assert record.cost is None


@pytest.mark.parametrize("cost", ["inf", "-Infinity", "nan", float("inf")])
def test_parse_raw_input_drops_non_finite_cost(cost):
    assert parse_raw_input({"asin": "B07XJ8C8F5", "cost": cost}).cost is None
