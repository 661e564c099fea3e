"""
Dashboard metrics over normalized sales records.

Everything is measured in units sold. Records whose date cannot be parsed
count towards totals and top lists but not towards the date range or the
month buckets.
"""

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Mapping, Sequence

import pandas as pd

from normalizer import SalesRecord, parse_sale_date

UNCLASSIFIED = "Unclassified"
DEFAULT_GROUP_COLOR = "#6b7280"
TOP_N = 10
STORE_TOP_GROUPS = 5
STORE_RECENT_MONTHS = 12

MONTH_NAMES = [
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
]
MONTH_ABBR = ["ene", "feb", "mar", "abr", "may", "jun", "jul", "ago", "sept", "oct", "nov", "dic"]


@dataclass
class ProductGroup:
    group_name: str
    keywords: list[str] = field(default_factory=list)
    priority: int = 0
    color: str = DEFAULT_GROUP_COLOR

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProductGroup":
        return cls(
            group_name=str(data["group_name"]),
            keywords=list(data.get("keywords") or []),
            priority=int(data.get("priority") or 0),
            color=data.get("color") or DEFAULT_GROUP_COLOR,
        )


@dataclass
class SalesMetrics:
    total_units: int | float = 0
    unique_stores: int = 0
    unique_products: int = 0
    unique_groups: int = 0
    average_units_per_day: float = 0.0
    top_stores: list[dict[str, Any]] = field(default_factory=list)
    top_products: list[dict[str, Any]] = field(default_factory=list)
    top_groups: list[dict[str, Any]] = field(default_factory=list)
    timeline: list[dict[str, Any]] = field(default_factory=list)
    date_range: dict[str, str] = field(default_factory=lambda: {"start": "-", "end": "-"})
    by_group: list[dict[str, Any]] = field(default_factory=list)
    by_month: list[dict[str, Any]] = field(default_factory=list)
    by_store: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def record_year(record: SalesRecord) -> int | None:
    if record.year:
        return record.year
    parsed = parse_sale_date(record.date)
    return parsed.year if parsed else None


def month_label(year: int, month: int) -> str:
    return f"{MONTH_NAMES[month - 1]} de {year}"


def as_scalar(value: Any) -> Any:
    return value.item() if hasattr(value, "item") else value


def records_frame(records: Sequence[SalesRecord]) -> pd.DataFrame:
    """One row per record, with the parsed calendar date and the defaulted group."""
    df = pd.DataFrame(
        [
            {"store": r.store, "product": r.product, "date": r.date, "grupo": r.grupo, "qty": r.qty}
            for r in records
        ],
        columns=["store", "product", "date", "grupo", "qty"],
    )
    # dates outside the supported timestamp range become NaT
    df["_date"] = pd.to_datetime(df["date"].map(parse_sale_date), errors="coerce")
    df["_grupo"] = df["grupo"].fillna(UNCLASSIFIED)
    return df


def _month_keys(dated: pd.DataFrame) -> list[pd.Series]:
    """(year, month) integer group keys of rows with a parsed date."""
    return [
        dated["_date"].dt.year.astype(int).rename("_year"),
        dated["_date"].dt.month.astype(int).rename("_mon"),
    ]


def _ranked(series: pd.Series, n: int | None = None) -> pd.Series:
    ranked = series.sort_values(ascending=False, kind="stable")
    return ranked.head(n) if n else ranked


def _top(df: pd.DataFrame, key: str, n: int) -> list[dict[str, Any]]:
    sums = _ranked(df.groupby(key, sort=False)["qty"].sum(), n)
    return [{"name": str(k), "value": as_scalar(v)} for k, v in sums.items()]


def compute_metrics(
    records: Sequence[SalesRecord],
    product_groups: Sequence[ProductGroup] | None = None,
    year: int | None = None,
    top_n: int = TOP_N,
) -> SalesMetrics:
    if year is not None:
        records = [r for r in records if record_year(r) == year]
    if not records:
        return SalesMetrics()

    df = records_frame(records)
    total_units = as_scalar(df["qty"].sum())

    dated = df.dropna(subset=["_date"])
    date_range = {"start": "-", "end": "-"}
    days = 1
    if not dated.empty:
        first, last = dated["_date"].idxmin(), dated["_date"].idxmax()
        date_range = {"start": df.at[first, "date"], "end": df.at[last, "date"]}
        days = max(1, math.ceil((df.at[last, "_date"] - df.at[first, "_date"]).days))

    by_date = df.groupby("date", sort=False).agg(value=("qty", "sum"), _date=("_date", "first"))
    by_date = by_date.sort_values("_date", kind="stable", na_position="last")
    timeline = [{"date": str(d), "value": as_scalar(row["value"])} for d, row in by_date.iterrows()]

    return SalesMetrics(
        total_units=total_units,
        unique_stores=int(df["store"].nunique()),
        unique_products=int(df["product"].nunique()),
        unique_groups=int(df["grupo"].nunique()),
        average_units_per_day=total_units / days,
        top_stores=_top(df, "store", top_n),
        top_products=_top(df, "product", top_n),
        top_groups=_top(df, "grupo", top_n),
        timeline=timeline,
        date_range=date_range,
        by_group=_group_metrics(df, total_units, product_groups or []),
        by_month=_month_metrics(dated),
        by_store=_store_metrics(df),
    )


def _group_breakdown(df: pd.DataFrame, n: int | None = None) -> list[dict[str, Any]]:
    sums = _ranked(df.groupby("_grupo", sort=False)["qty"].sum(), n)
    return [{"group_name": str(g), "units": as_scalar(u)} for g, u in sums.items()]


def _group_metrics(
    df: pd.DataFrame,
    total_units: int | float,
    product_groups: Sequence[ProductGroup],
) -> list[dict[str, Any]]:
    colors = {pg.group_name: pg.color for pg in product_groups}
    agg = df.groupby("_grupo", sort=False).agg(
        units=("qty", "sum"),
        products=("product", "nunique"),
        stores=("store", "nunique"),
    )
    agg = agg.sort_values("units", ascending=False, kind="stable")
    return [
        {
            "group_name": str(name),
            "total_units": as_scalar(row["units"]),
            "unique_products": int(row["products"]),
            "unique_stores": int(row["stores"]),
            "percentage": float(row["units"] / total_units * 100) if total_units else 0.0,
            "color": colors.get(name, DEFAULT_GROUP_COLOR),
        }
        for name, row in agg.iterrows()
    ]


def _month_metrics(dated: pd.DataFrame) -> list[dict[str, Any]]:
    out = []
    for (year, month), part in dated.groupby(_month_keys(dated)):
        year, month = int(year), int(month)
        out.append({
            "key": f"{year:04d}-{month:02d}",
            "month": month_label(year, month),
            "year": year,
            "total_units": as_scalar(part["qty"].sum()),
            "unique_products": int(part["product"].nunique()),
            "unique_stores": int(part["store"].nunique()),
            "by_group": _group_breakdown(part),
        })
    return out


def _store_metrics(df: pd.DataFrame) -> list[dict[str, Any]]:
    out = []
    for store, part in df.groupby("store", sort=False):
        dated = part.dropna(subset=["_date"])
        months = dated.groupby(_month_keys(dated))["qty"].sum().tail(STORE_RECENT_MONTHS)
        out.append({
            "store_name": str(store),
            "total_units": as_scalar(part["qty"].sum()),
            "unique_products": int(part["product"].nunique()),
            "by_group": _group_breakdown(part, STORE_TOP_GROUPS),
            "by_month": [
                {"month": f"{MONTH_ABBR[int(m) - 1]} {int(y)}", "units": as_scalar(u)}
                for (y, m), u in months.items()
            ],
        })
    out.sort(key=lambda s: s["total_units"], reverse=True)
    return out
