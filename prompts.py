"""
Prompt design for the report and chat assistants.

The model only ever sees an aggregated JSON summary, never raw sales rows.
"""

import json
from typing import Any

from metrics import SalesMetrics

# Beyond this many points the daily timeline is replaced by a note
MAX_TIMELINE_POINTS = 20
PAYLOAD_TOP_N = 5


# -----------------------------------------------------------------------------
# SYSTEM PROMPTS
# -----------------------------------------------------------------------------

REPORT_SYSTEM_PROMPT = """You are a senior financial and operations analyst.
You receive a JSON summary of point-of-sale data (units sold per store, product and
product group) and write a professional executive report for management.

Format:
- Write the report strictly in SPANISH.
- Output clean HTML only. Do NOT use <html>, <head> or <body> tags.
- Do NOT wrap the output in markdown code fences.
- Use <h3> for section titles, <ul>/<li> for lists, <p> for paragraphs and
  <strong> to highlight figures.

Structure:
<h3>1. Resumen ejecutivo</h3>
  Overall volume, average units per day, concentration in top stores and products,
  growth or decline visible in the monthly figures.
<h3>2. Operaciones y logística</h3>
  Stores with the highest movement (restocking priority) and the "star" products
  that must not run out of stock.
<h3>3. Recomendaciones estratégicas</h3>
  Three short, concrete actions.

Use ONLY the numbers in the input. Do not invent, estimate or extrapolate figures.
Tone: professional, direct and based exclusively on the data provided."""


CHAT_SYSTEM_PROMPT = """You are a sales analysis assistant answering natural-language
questions about point-of-sale data.

Your job:
1. Read the user's question and the filtered data summary you are given.
2. Answer clearly and concisely in SPANISH, using only the figures in the summary.
3. If a chart is announced, refer to it briefly; do not describe data you were not given.

Format:
- Clean HTML (no <html>, <head>, <body>), <strong> for key figures,
  <ul>/<li> for lists, <p> for paragraphs.
- No markdown code fences.

Tone: friendly, professional and direct."""


def build_metrics_payload(metrics: SalesMetrics) -> dict[str, Any]:
    """Lightweight JSON-serializable summary of the metrics for the model."""
    timeline: Any = metrics.timeline
    if len(metrics.timeline) > MAX_TIMELINE_POINTS:
        timeline = "Data available but truncated for brevity"
    return {
        "period": metrics.date_range,
        "total_units": metrics.total_units,
        "unique_stores": metrics.unique_stores,
        "unique_products": metrics.unique_products,
        "unique_groups": metrics.unique_groups,
        "average_units_per_day": round(metrics.average_units_per_day, 2),
        "top_5_stores_by_units": metrics.top_stores[:PAYLOAD_TOP_N],
        "top_5_products_by_units": metrics.top_products[:PAYLOAD_TOP_N],
        "top_5_groups_by_units": metrics.top_groups[:PAYLOAD_TOP_N],
        "top_5_stores_detail": [
            {
                "store": s["store_name"],
                "units": s["total_units"],
                "top_groups": [g["group_name"] for g in s["by_group"]],
            }
            for s in metrics.by_store[:PAYLOAD_TOP_N]
        ],
        "units_by_month": [
            {"month": m["month"], "units": m["total_units"]} for m in metrics.by_month
        ],
        "daily_trend": timeline,
    }


def build_report_prompt(metrics: SalesMetrics) -> str:
    payload = json.dumps(build_metrics_payload(metrics), ensure_ascii=False)
    return f"Analyze this sales data summary: {payload}"


def build_chat_prompt(
    question: str,
    summary: dict[str, Any],
    history: list[dict[str, str]] | None = None,
    chart_type: str | None = None,
) -> str:
    lines = [f"User question: {question}", "", "Summarized data found:", json.dumps(summary, indent=2, ensure_ascii=False), ""]
    if history:
        lines.append("Conversation context:")
        for msg in history[-4:]:
            lines.append(f"{msg['role']}: {msg['content']}")
        lines.append("")
    if chart_type:
        lines.append(f"A {chart_type} chart will be shown with the data.")
    else:
        lines.append("No chart will be shown, text only.")
    lines.append("")
    lines.append("Write a clear and concise answer to the user's question based on the data.")
    return "\n".join(lines)
