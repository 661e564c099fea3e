"""
Template-based report generator (no model needed).
"""

from metrics import SalesMetrics
from ranking import MonthlyRankingData


def _fmt(value: float) -> str:
    return f"{value:,.0f}" if float(value).is_integer() else f"{value:,.2f}"


def generate_template_report(metrics: SalesMetrics, ranking: list[MonthlyRankingData] | None = None) -> str:
    sections = []

    sections.append("## 1. Overview")
    if not metrics.total_units and not metrics.timeline:
        sections.append("No sales data loaded.")
        return "\n".join(sections)
    sections.append(
        f"{_fmt(metrics.total_units)} units sold across {metrics.unique_stores} stores and "
        f"{metrics.unique_products} products, from {metrics.date_range['start']} to "
        f"{metrics.date_range['end']} ({_fmt(round(metrics.average_units_per_day, 2))} units per day)."
    )
    sections.append("")

    sections.append("## 2. Monthly trend")
    if len(metrics.by_month) >= 2:
        latest, prev = metrics.by_month[-1], metrics.by_month[-2]
        change = latest["total_units"] - prev["total_units"]
        direction = "increased" if change >= 0 else "decreased"
        line = (
            f"Units {direction} from {prev['month']} ({_fmt(prev['total_units'])}) to "
            f"{latest['month']} ({_fmt(latest['total_units'])})"
        )
        if prev["total_units"]:
            line += f", {change / prev['total_units'] * 100:+.1f}%"
        sections.append(line + ".")
    else:
        sections.append("Insufficient months for trend analysis.")
    sections.append("")

    sections.append("## 3. Top drivers")
    if metrics.top_stores:
        top = metrics.top_stores[0]
        sections.append(f"Top store: {top['name']} ({_fmt(top['value'])} units).")
    if metrics.top_products:
        top = metrics.top_products[0]
        sections.append(f"Top product: {top['name']} ({_fmt(top['value'])} units).")
    for g in metrics.by_group[:5]:
        sections.append(f"- {g['group_name']}: {_fmt(g['total_units'])} units ({g['percentage']:.1f}%)")
    sections.append("")

    if ranking:
        sections.append("## 4. Store ranking trend")
        for label, title in (("up", "Improving"), ("down", "Declining")):
            names = [r.store_name for r in ranking if r.trend == label]
            if names:
                sections.append(f"{title}: {', '.join(names)}.")
        if all(r.trend == "stable" for r in ranking):
            sections.append("All stores kept a stable monthly position.")

    return "\n".join(sections)
