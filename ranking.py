"""
Monthly store ranking with trend detection.

For every calendar month, stores are ranked by units sold (1 = best). A
store's trend compares its average rank in the first six months with the last
six: more than one position better -> "up", more than one worse -> "down".
"""

import math
from dataclasses import dataclass, field
from typing import Sequence

import pandas as pd

from metrics import MONTH_NAMES, record_year, records_frame
from normalizer import SalesRecord

MONTHS = list(range(1, 13))
HALF = len(MONTHS) // 2
TREND_THRESHOLD = 1


@dataclass
class MonthlyRankingData:
    store_name: str
    monthly_data: dict[int, int | float] = field(default_factory=dict)
    total_year: int | float = 0
    rankings: dict[int, int] = field(default_factory=dict)
    accumulated_ranking: int = 0
    trend: str = "stable"  # "up" | "down" | "stable"

    def month_names(self) -> dict[str, int | float]:
        return {MONTH_NAMES[m - 1].title(): v for m, v in self.monthly_data.items()}


def classify_trend(ranks: Sequence[int]) -> str:
    first, second = ranks[:HALF], ranks[HALF:]
    # mean difference scaled by both half lengths, so the threshold stays exact
    diff = sum(second) * len(first) - sum(first) * len(second)
    limit = TREND_THRESHOLD * len(first) * len(second)
    if diff < -limit:
        return "up"
    if diff > limit:
        return "down"
    return "stable"


def accumulated_rank(ranks: Sequence[int]) -> int:
    """Mean rank rounded half up."""
    return math.floor(sum(ranks) / len(ranks) + 0.5)


def monthly_units(records: Sequence[SalesRecord]) -> pd.DataFrame:
    """Stores (first-appearance order) x months 1..12, summed units."""
    df = records_frame(records)
    stores = list(pd.unique(df["store"]))
    dated = df.dropna(subset=["_date"])
    if dated.empty:
        return pd.DataFrame(0, index=stores, columns=MONTHS)
    sums = dated.groupby(["store", dated["_date"].dt.month])["qty"].sum()
    return sums.unstack(fill_value=0).reindex(index=stores, columns=MONTHS, fill_value=0)


def compute_monthly_ranking(
    records: Sequence[SalesRecord],
    year: int | None = None,
    line: str | None = None,
) -> list[MonthlyRankingData]:
    """
    One entry per store, sorted by yearly units descending.

    Months are calendar months only: without a year filter, records of
    different years share the same month bucket.
    """
    if year:
        records = [r for r in records if record_year(r) == year]
    if line:
        records = [r for r in records if r.grupo == line]
    if not records:
        return []

    units = monthly_units(records)
    ranks = units.rank(axis=0, method="first", ascending=False).astype(int)

    result = []
    for store in units.index:
        month_ranks = [int(ranks.at[store, m]) for m in MONTHS]
        monthly = {m: units.at[store, m].item() for m in MONTHS}
        result.append(MonthlyRankingData(
            store_name=str(store),
            monthly_data=monthly,
            total_year=sum(monthly.values()),
            rankings=dict(zip(MONTHS, month_ranks)),
            accumulated_ranking=accumulated_rank(month_ranks),
            trend=classify_trend(month_ranks),
        ))

    result.sort(key=lambda r: r.total_year, reverse=True)
    return result
