"""
Natural-language questions over the loaded sales records.

Filters (store, product, relative period) are pulled from the question with
simple keyword rules; the model only receives the aggregated result.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Sequence

from llm_client import TextCompletionService, strip_code_fences
from normalizer import SalesRecord, parse_sale_date
from prompts import CHAT_SYSTEM_PROMPT, build_chat_prompt

logger = logging.getLogger(__name__)

STORE_KEYWORDS = ("tienda", "sede", "sucursal", "local")
PRODUCT_KEYWORDS = ("producto", "canto", "rollo", "vinilo")
CHART_TOP_N = 10

NO_DATA_MESSAGE = (
    "<p>No se encontraron datos para tu consulta. Intenta con otros parámetros "
    "o verifica que hayas cargado datos en el sistema.</p>"
)


@dataclass
class ChatFilters:
    store: str | None = None
    product: str | None = None
    start_date: date | None = None
    end_date: date | None = None


@dataclass
class ChatResponse:
    content: str
    chart_data: list[dict[str, Any]] | None = None
    chart_type: str | None = None  # "bar" | "line" | "pie"
    filters: ChatFilters = field(default_factory=ChatFilters)


def _month_start(d: date) -> date:
    return d.replace(day=1)


def _relative_period(question: str, today: date) -> tuple[date, date] | None:
    if "este mes" in question:
        start = _month_start(today)
        end = (_month_start(start + timedelta(days=32))) - timedelta(days=1)
        return start, end
    if "mes pasado" in question:
        end = _month_start(today) - timedelta(days=1)
        return _month_start(end), end
    if "última semana" in question or "ultima semana" in question:
        return today - timedelta(days=7), today
    if "últimos 30 días" in question or "ultimos 30 dias" in question:
        return today - timedelta(days=30), today
    return None


def extract_filters_from_question(question: str, today: date | None = None) -> ChatFilters:
    today = today or date.today()
    filters = ChatFilters()
    period = _relative_period(question.lower(), today)
    if period:
        filters.start_date, filters.end_date = period

    words = question.split()
    for i, word in enumerate(words[:-1]):
        w = word.lower()
        rest = " ".join(words[i + 1:]).replace("¿", "").replace("?", "").strip()
        if any(k in w for k in STORE_KEYWORDS):
            filters.store = rest or None
            break
        if any(k in w for k in PRODUCT_KEYWORDS):
            filters.product = rest or None
            break
    return filters


def filter_records(records: Sequence[SalesRecord], filters: ChatFilters) -> list[SalesRecord]:
    out = list(records)
    if filters.store:
        needle = filters.store.lower()
        out = [r for r in out if needle in r.store.lower()]
    if filters.product:
        needle = filters.product.lower()
        out = [r for r in out if needle in r.product.lower()]
    if filters.start_date or filters.end_date:
        start = filters.start_date or date.min
        end = filters.end_date or date.max
        out = [r for r in out if _in_period(r, start, end)]
    return out


def _in_period(record: SalesRecord, start: date, end: date) -> bool:
    d = parse_sale_date(record.date)
    return d is not None and start <= d <= end


def determine_chart_type(question: str, data_length: int) -> str | None:
    q = question.lower()
    if any(k in q for k in ("tendencia", "tiempo", "evolución", "histórico")):
        return "line"
    if any(k in q for k in ("comparar", "top", "mayor", "mejor")):
        return "bar"
    if any(k in q for k in ("distribución", "porcentaje", "participación")):
        return "pie"
    if data_length > 5 and ("tienda" in q or "producto" in q):
        return "bar"
    return None


def format_currency(value: float) -> str:
    """Colombian peso style: $ 1.234.567"""
    return "$ " + f"{value:,.0f}".replace(",", ".")


def _aggregate(records: Sequence[SalesRecord], key: str) -> list[dict[str, Any]]:
    agg: dict[str, dict[str, Any]] = {}
    for r in records:
        entry = agg.setdefault(getattr(r, key), {"value": 0.0, "units": 0})
        entry["value"] += r.total or 0.0
        entry["units"] += r.qty
    rows = [{"name": name, **vals} for name, vals in agg.items()]
    rows.sort(key=lambda x: x["value"], reverse=True)
    return rows


def aggregate_by_date(records: Sequence[SalesRecord]) -> list[dict[str, Any]]:
    totals: dict[str, float] = {}
    for r in records:
        totals[r.date] = totals.get(r.date, 0.0) + (r.total or 0.0)
    points = [{"date": d, "value": v} for d, v in totals.items()]
    points.sort(key=lambda p: (parse_sale_date(p["date"]) or date.max, p["date"]))
    return points


def summarize(records: Sequence[SalesRecord]) -> dict[str, Any]:
    return {
        "total_records": len(records),
        "total_revenue": format_currency(sum(r.total or 0.0 for r in records)),
        "total_units": sum(r.qty for r in records),
        "unique_stores": len({r.store for r in records}),
        "unique_products": len({r.product for r in records}),
        "date_range": {"start": records[0].date, "end": records[-1].date},
    }


def _chart_data(question: str, records: Sequence[SalesRecord], filters: ChatFilters, chart_type: str):
    q = question.lower()
    if "tienda" in q and not filters.store:
        return _aggregate(records, "store")[:CHART_TOP_N]
    if "producto" in q and not filters.product:
        return _aggregate(records, "product")[:CHART_TOP_N]
    if chart_type == "line":
        return aggregate_by_date(records)
    return _aggregate(records, "store")[:CHART_TOP_N]


def ask_question(
    question: str,
    records: Sequence[SalesRecord],
    service: TextCompletionService,
    history: list[dict[str, str]] | None = None,
    today: date | None = None,
) -> ChatResponse:
    """Answer a question about the records. CompletionError propagates to the caller."""
    filters = extract_filters_from_question(question, today)
    data = filter_records(records, filters)
    if not data:
        return ChatResponse(content=NO_DATA_MESSAGE, filters=filters)

    chart_type = determine_chart_type(question, len(data))
    chart_data = _chart_data(question, data, filters, chart_type) if chart_type else None

    prompt = build_chat_prompt(question, summarize(data), history, chart_type)
    logger.info("Chat question over %d records (chart=%s)", len(data), chart_type)
    content = strip_code_fences(service.complete(prompt, CHAT_SYSTEM_PROMPT))
    return ChatResponse(
        content=content or "<p>No se pudo generar una respuesta.</p>",
        chart_data=chart_data,
        chart_type=chart_type,
        filters=filters,
    )
