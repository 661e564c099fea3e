"""Store pivot, product detail and year-over-year reports."""
import pytest

from metrics import UNCLASSIFIED
from reports import (
    ReportFilters,
    compare_years,
    filter_records,
    generate_detailed_product_report,
    generate_store_report,
    get_unique_lines,
    get_unique_stores,
    get_unique_years,
)


@pytest.fixture
def records(make_record):
    return [
        make_record(store="Norte", product="Canto", grupo="CANTOS", date="2024-01-10", qty=3),
        make_record(store="Norte", product="Rollo", grupo="ROLLOS", date="2024-02-10", qty=2),
        make_record(store="Sur", product="Canto", grupo="CANTOS", date="2024-01-20", qty=6),
        make_record(store="Sur", product="Vinilo", grupo=None, date="2024-02-20", qty=1),
        make_record(store="Sur", product="Canto", grupo="CANTOS", date="2023-01-20", qty=4),
    ]


def test_filter_records(records):
    assert len(filter_records(records, ReportFilters())) == 5
    assert len(filter_records(records, ReportFilters(year=2024, month=1))) == 2
    assert len(filter_records(records, ReportFilters(store="Sur", line="CANTOS"))) == 2


def test_store_report_pivot(records):
    report = generate_store_report(records, ReportFilters(year=2024))

    assert [r.store_name for r in report.rows] == ["Sur", "Norte"]
    assert report.lines == ["CANTOS", "ROLLOS", UNCLASSIFIED]
    assert report.rows[0].lines == {"CANTOS": 6, UNCLASSIFIED: 1}
    assert report.line_totals == {"CANTOS": 9, UNCLASSIFIED: 1, "ROLLOS": 2}
    assert report.grand_total == 12 == sum(r.total for r in report.rows)


def test_store_report_frame_has_totals(records):
    frame = generate_store_report(records, ReportFilters(year=2024)).to_frame()
    assert list(frame.index) == ["Sur", "Norte", "Total"]
    assert list(frame.columns) == ["CANTOS", "ROLLOS", UNCLASSIFIED, "Total"]
    assert frame.loc["Norte", UNCLASSIFIED] == 0
    assert frame.loc["Total", "CANTOS"] == 9
    assert frame.loc["Total", "Total"] == 12


def test_store_report_month_filter(records):
    report = generate_store_report(records, ReportFilters(year=2024, month=2))
    assert report.grand_total == 3


def test_store_report_empty(records):
    report = generate_store_report(records, ReportFilters(year=2010))
    assert report.rows == [] and report.grand_total == 0


def test_detailed_product_report_ignores_month(records):
    detail = generate_detailed_product_report(records, ReportFilters(year=2024, month=1))

    assert [s.store_name for s in detail] == ["Sur", "Norte"]
    sur = detail[0]
    assert [p.product_name for p in sur.products] == ["Canto", "Vinilo"]
    assert sur.products[0].monthly_data[1] == 6
    assert sur.products[1].monthly_data[2] == 1
    assert set(sur.products[0].monthly_data) == set(range(1, 13))
    assert sur.total == 7


def test_compare_years_by_store(records):
    cmp = compare_years(records, 2024)

    assert cmp.previous_year == 2023
    rows = {r.name: r for r in cmp.rows}
    assert rows["Sur"].current == 7 and rows["Sur"].previous == 4
    assert rows["Sur"].delta == 3
    assert rows["Sur"].delta_pct == pytest.approx(75.0)
    assert rows["Norte"].delta_pct is None
    assert cmp.total_current == 12 and cmp.total_previous == 4
    assert cmp.total_delta_pct == pytest.approx(200.0)


def test_compare_years_by_month_is_calendar_ordered(records):
    cmp = compare_years(records, 2024, 2023, by="month")
    assert [r.name for r in cmp.rows] == ["Enero", "Febrero"]
    assert (cmp.rows[0].current, cmp.rows[0].previous) == (9, 4)


def test_compare_years_rejects_unknown_dimension(records):
    with pytest.raises(ValueError):
        compare_years(records, 2024, by="color")


def test_filter_options(records):
    assert get_unique_years(records) == [2024, 2023]
    assert get_unique_stores(records) == ["Norte", "Sur"]
    assert get_unique_lines(records) == ["CANTOS", "ROLLOS"]
