"""
Report tables: store x product line pivot, store x product x month detail,
and year-over-year comparison.
"""

from dataclasses import dataclass, field
from typing import Any, Sequence

import pandas as pd

from metrics import MONTH_NAMES, as_scalar, record_year, records_frame
from normalizer import SalesRecord, parse_sale_date

YOY_DIMENSIONS = ("store", "grupo", "product", "month")


@dataclass
class ReportFilters:
    year: int | None = None
    month: int | None = None  # 1-12
    store: str | None = None
    line: str | None = None


def _record_month(record: SalesRecord) -> int | None:
    parsed = parse_sale_date(record.date)
    return parsed.month if parsed else None


def filter_records(records: Sequence[SalesRecord], filters: ReportFilters) -> list[SalesRecord]:
    out = list(records)
    if filters.year:
        out = [r for r in out if record_year(r) == filters.year]
    if filters.month is not None:
        out = [r for r in out if _record_month(r) == filters.month]
    if filters.store:
        out = [r for r in out if r.store == filters.store]
    if filters.line:
        out = [r for r in out if r.grupo == filters.line]
    return out


@dataclass
class StoreReportRow:
    store_name: str
    lines: dict[str, int | float]
    total: int | float


@dataclass
class StoreReport:
    rows: list[StoreReportRow] = field(default_factory=list)
    lines: list[str] = field(default_factory=list)
    line_totals: dict[str, int | float] = field(default_factory=dict)
    grand_total: int | float = 0

    def to_frame(self) -> pd.DataFrame:
        """Pivot with a Total column and a Total row."""
        frame = pd.DataFrame(
            [{**{ln: row.lines.get(ln, 0) for ln in self.lines}, "Total": row.total} for row in self.rows],
            index=[row.store_name for row in self.rows],
            columns=self.lines + ["Total"],
        )
        frame.loc["Total"] = [self.line_totals.get(ln, 0) for ln in self.lines] + [self.grand_total]
        return frame


def generate_store_report(records: Sequence[SalesRecord], filters: ReportFilters) -> StoreReport:
    filtered = filter_records(records, filters)
    if not filtered:
        return StoreReport()

    df = records_frame(filtered)
    sums = df.groupby(["store", "_grupo"], sort=False)["qty"].sum()

    by_store: dict[str, dict[str, Any]] = {}
    for (store, line), qty in sums.items():
        by_store.setdefault(str(store), {})[str(line)] = as_scalar(qty)

    rows = [StoreReportRow(name, lines, sum(lines.values())) for name, lines in by_store.items()]
    rows.sort(key=lambda r: r.total, reverse=True)

    line_totals: dict[str, Any] = {}
    for row in rows:
        for ln, qty in row.lines.items():
            line_totals[ln] = line_totals.get(ln, 0) + qty
    return StoreReport(
        rows=rows,
        lines=sorted(line_totals),
        line_totals=line_totals,
        grand_total=sum(r.total for r in rows),
    )


@dataclass
class ProductMonthly:
    product_name: str
    monthly_data: dict[int, int | float]
    total: int | float


@dataclass
class DetailedProductData:
    store_name: str
    products: list[ProductMonthly] = field(default_factory=list)

    @property
    def total(self) -> int | float:
        return sum(p.total for p in self.products)


def generate_detailed_product_report(
    records: Sequence[SalesRecord],
    filters: ReportFilters,
) -> list[DetailedProductData]:
    # month filter does not apply: the table spreads units over the twelve months
    filtered = filter_records(records, ReportFilters(year=filters.year, store=filters.store, line=filters.line))
    if not filtered:
        return []

    df = records_frame(filtered)
    result = []
    for store, part in df.groupby("store", sort=False):
        products = []
        for product, rows in part.groupby("product", sort=False):
            dated = rows.dropna(subset=["_date"])
            months = dated.groupby(dated["_date"].dt.month)["qty"].sum()
            monthly = {m: as_scalar(months.get(m, 0)) for m in range(1, 13)}
            products.append(ProductMonthly(str(product), monthly, sum(monthly.values())))
        products.sort(key=lambda p: p.total, reverse=True)
        result.append(DetailedProductData(str(store), products))

    result.sort(key=lambda s: s.total, reverse=True)
    return result


# -----------------------------------------------------------------------------
# Year over year
# -----------------------------------------------------------------------------


@dataclass
class YearOverYearRow:
    name: str
    current: int | float
    previous: int | float
    delta: int | float
    delta_pct: float | None


@dataclass
class YearOverYearComparison:
    year: int
    previous_year: int
    dimension: str
    rows: list[YearOverYearRow] = field(default_factory=list)
    total_current: int | float = 0
    total_previous: int | float = 0

    @property
    def total_delta_pct(self) -> float | None:
        if not self.total_previous:
            return None
        return (self.total_current - self.total_previous) / self.total_previous * 100


def _units_by(records: Sequence[SalesRecord], by: str) -> dict[str, Any]:
    if not records:
        return {}
    df = records_frame(records)
    if by == "month":
        dated = df.dropna(subset=["_date"])
        sums = dated.groupby(dated["_date"].dt.month)["qty"].sum().sort_index()
        return {MONTH_NAMES[int(m) - 1].title(): as_scalar(v) for m, v in sums.items()}
    column = "_grupo" if by == "grupo" else by
    sums = df.groupby(column, sort=False)["qty"].sum()
    return {str(k): as_scalar(v) for k, v in sums.items()}


def compare_years(
    records: Sequence[SalesRecord],
    year: int,
    previous_year: int | None = None,
    by: str = "store",
) -> YearOverYearComparison:
    if by not in YOY_DIMENSIONS:
        raise ValueError(f"Unknown comparison dimension: {by}. Use one of {YOY_DIMENSIONS}")
    previous_year = previous_year or year - 1

    current = _units_by([r for r in records if record_year(r) == year], by)
    previous = _units_by([r for r in records if record_year(r) == previous_year], by)

    if by == "month":
        names = [MONTH_NAMES[m].title() for m in range(12)]
        names = [n for n in names if n in current or n in previous]
    else:
        names = list(current) + [n for n in previous if n not in current]

    rows = []
    for name in names:
        cur, prev = current.get(name, 0), previous.get(name, 0)
        rows.append(YearOverYearRow(
            name=name,
            current=cur,
            previous=prev,
            delta=cur - prev,
            delta_pct=(cur - prev) / prev * 100 if prev else None,
        ))
    if by != "month":
        rows.sort(key=lambda r: r.current, reverse=True)

    return YearOverYearComparison(
        year=year,
        previous_year=previous_year,
        dimension=by,
        rows=rows,
        total_current=sum(current.values()),
        total_previous=sum(previous.values()),
    )


# -----------------------------------------------------------------------------
# Filter options
# -----------------------------------------------------------------------------


def get_unique_years(records: Sequence[SalesRecord]) -> list[int]:
    years = {record_year(r) for r in records}
    return sorted((y for y in years if y is not None), reverse=True)


def get_unique_stores(records: Sequence[SalesRecord]) -> list[str]:
    return sorted({r.store for r in records})


def get_unique_lines(records: Sequence[SalesRecord]) -> list[str]:
    return sorted({r.grupo for r in records if r.grupo})
