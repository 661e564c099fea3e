"""Record normalization: quantities, prices, dates and row filtering."""
import math
from datetime import date

import pytest

from normalizer import (
    Keyed,
    NumberLocale,
    Positional,
    SalesRecord,
    extract_year,
    normalize_rows,
    parse_price,
    parse_quantity,
    parse_sale_date,
)

HEADERS = ["FECHA", "TIENDA", "DESCRIPCION", "GRUPO", "Cantidad", "Precio"]


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("1,200", 1200),
        ("1.200", 1200),
        ("12abc", 12),
        (" 7 ", 7),
        (3.0, 3),
        (2.5, 2.5),
        (4, 4),
    ],
)
def test_parse_quantity_legacy(raw, expected):
    assert parse_quantity(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "abc", "0", 0, 0.0, math.nan])
def test_parse_quantity_rejects_missing_and_zero(raw):
    assert parse_quantity(raw) is None


def test_parse_quantity_integral_float_becomes_int():
    assert isinstance(parse_quantity(5.0), int)


def test_parse_price_locales():
    assert parse_price("1,234.50") == 1234.5
    assert parse_price("1.234,50", NumberLocale.COMMA_DECIMAL) == 1234.5
    assert parse_price("1,234.50", NumberLocale.DOT_DECIMAL) == 1234.5
    assert parse_price(1500) == 1500.0
    assert parse_price("n/a") is None
    assert parse_price(0) is None
    assert parse_price(None) is None


def test_comma_decimal_quantity_drops_thousands_dot():
    assert parse_quantity("1.200", NumberLocale.COMMA_DECIMAL) == 1200


@pytest.mark.parametrize(
    "text,year",
    [
        ("15/03/2024", 2024),
        ("1/2/2023", 2023),
        ("2023-1-5", 2023),
        ("2022/12/31", 2022),
        ("March 2024", None),
        ("", None),
    ],
)
def test_extract_year(text, year):
    assert extract_year(text) == year


def test_parse_sale_date_is_day_first():
    assert parse_sale_date("05/03/2024") == date(2024, 3, 5)
    assert parse_sale_date("2024-03-05") == date(2024, 3, 5)
    assert parse_sale_date("31/02/2024") is None
    assert parse_sale_date("") is None
    assert parse_sale_date("not a date") is None


def test_normalize_rows_builds_records_and_counts_skips():
    rows = [
        ["01/02/2024", "Norte", "Canto blanco", "CANTOS", "3", "1000"],
        ["01/02/2024", "Norte", "Rollo", "ROLLOS", "0", "50"],  # zero qty
        ["01/02/2024", "", "Rollo", "ROLLOS", "2", "50"],  # no store
        ["02/02/2024", "Sur", "Vinilo", "", "4", ""],
    ]
    result = normalize_rows(HEADERS, rows)

    assert result.skipped == 2
    assert len(result.records) == 2
    first, second = result.records
    assert first == SalesRecord(
        store="Norte",
        product="Canto blanco",
        date="01/02/2024",
        qty=3,
        year=2024,
        grupo="CANTOS",
        price=1000.0,
        total=3000.0,
    )
    assert second.grupo is None
    assert second.price is None and second.total is None


def test_every_record_has_store_product_and_nonzero_qty():
    rows = [
        ["", "Norte", "A", "", "1", ""],
        ["x", "Norte", "", "", "1", ""],
        ["x", "Norte", "B", "", "abc", ""],
        ["x", "Norte", "C", "", "-2", ""],
    ]
    result = normalize_rows(HEADERS, rows)
    for r in result.records:
        assert r.store and r.product and r.qty != 0
    assert [r.qty for r in result.records] == [1, -2]


def test_total_is_qty_times_price():
    result = normalize_rows(HEADERS, [["01/02/2024", "Norte", "A", "", "1,200", "2.5"]])
    record = result.records[0]
    assert record.qty == 1200
    assert record.total == record.qty * record.price == 3000.0


def test_positional_and_keyed_rows_agree():
    values = ["01/02/2024", "Norte", "A", "CANTOS", "3", "10"]
    positional = normalize_rows(HEADERS, [Positional(values)])
    keyed = normalize_rows(HEADERS, [Keyed(dict(zip(HEADERS, values)))])
    assert positional.records == keyed.records


def test_short_positional_row_pads_missing_cells():
    result = normalize_rows(HEADERS, [["01/02/2024", "Norte", "A", "", "2"]])
    assert result.records[0].price is None


def test_headers_are_trimmed():
    result = normalize_rows([" TIENDA ", "Producto ", " Cantidad"], [["Norte", "A", "2"]])
    assert result.records[0].store == "Norte"


def test_normalizing_a_record_again_is_a_no_op():
    original = normalize_rows(HEADERS, [["15/03/2024", "Norte", "A", "CANTOS", "3", "10"]]).records[0]
    data = original.to_dict()
    again = normalize_rows(list(data), [Keyed(data)]).records[0]
    assert again == original


def test_record_dict_round_trip_omits_missing_fields():
    record = SalesRecord(store="Norte", product="A", date="", qty=1)
    data = record.to_dict()
    assert "price" not in data and "grupo" not in data
    assert SalesRecord.from_dict(data) == record


def test_same_input_gives_same_output():
    rows = [
        ["01/02/2024", "Norte", "Canto blanco", "CANTOS", "1,200", "2.5"],
        ["01/02/2024", "", "Rollo", "", "2", ""],
        ["2024-02-03", "Sur", "Vinilo", "", "4", ""],
    ]
    first = normalize_rows(HEADERS, rows)
    second = normalize_rows(HEADERS, rows)
    assert first.records == second.records
    assert first.skipped == second.skipped == 1
