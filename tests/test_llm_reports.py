"""Prompt payloads, LLM report generation and the template fallback."""
import json

import pytest

from llm_client import (
    CompletionError,
    OpenAICompletionService,
    generate_ai_report,
    generate_text,
    strip_code_fences,
)
from metrics import SalesMetrics, compute_metrics
from prompts import MAX_TIMELINE_POINTS, build_chat_prompt, build_metrics_payload, build_report_prompt
from ranking import compute_monthly_ranking
from template_report import generate_template_report


def _metrics(make_record):
    records = [
        make_record(store="Norte", product="Canto", grupo="CANTOS", date="2024-01-10", qty=4),
        make_record(store="Sur", product="Rollo", grupo="ROLLOS", date="2024-02-10", qty=6),
    ]
    return records, compute_metrics(records)


def test_payload_is_json_and_keeps_short_timelines(make_record):
    _, metrics = _metrics(make_record)
    payload = build_metrics_payload(metrics)
    json.dumps(payload)
    assert payload["total_units"] == 10
    assert payload["daily_trend"] == metrics.timeline
    assert payload["units_by_month"] == [
        {"month": "enero de 2024", "units": 4},
        {"month": "febrero de 2024", "units": 6},
    ]


def test_long_timeline_is_replaced_by_a_note():
    metrics = SalesMetrics(
        total_units=1,
        timeline=[{"date": f"2024-01-{d:02d}", "value": 1} for d in range(1, MAX_TIMELINE_POINTS + 2)],
    )
    assert build_metrics_payload(metrics)["daily_trend"] == "Data available but truncated for brevity"


def test_report_prompt_embeds_payload(make_record):
    _, metrics = _metrics(make_record)
    assert "febrero de 2024" in build_report_prompt(metrics)


def test_chat_prompt_mentions_chart():
    prompt = build_chat_prompt("¿top?", {"total_units": 3}, chart_type="bar")
    assert "A bar chart will be shown" in prompt
    assert "text only" in build_chat_prompt("¿top?", {})


def test_strip_code_fences():
    assert strip_code_fences("```html\n<h3>x</h3>\n```") == "<h3>x</h3>"
    assert strip_code_fences("```\n<p>y</p>```") == "<p>y</p>"
    assert strip_code_fences(" <p>z</p> ") == "<p>z</p>"


def test_generate_ai_report_success(make_record, fake_service):
    _, metrics = _metrics(make_record)
    service = fake_service("```html<h3>1. Resumen ejecutivo</h3>```")
    html, err = generate_ai_report(metrics, service)
    assert err is None
    assert html == "<h3>1. Resumen ejecutivo</h3>"
    assert '"total_units": 10' in service.calls[0][0]


def test_generate_ai_report_without_data_skips_the_model(fake_service):
    service = fake_service()
    assert generate_ai_report(SalesMetrics(), service) == (None, "No sales data loaded.")
    assert service.calls == []


def test_generate_text_reports_errors(fake_service):
    assert generate_text("sys", "user", fake_service(CompletionError("API error: 500"))) == (None, "API error: 500")
    assert generate_text("sys", "user", fake_service("")) == (None, "Empty response from API")


def test_openai_service_without_key(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "")
    with pytest.raises(CompletionError, match="OPENAI_API_KEY"):
        OpenAICompletionService().complete("prompt", "system")


def test_template_report_sections(make_record):
    records, metrics = _metrics(make_record)
    text = generate_template_report(metrics, compute_monthly_ranking(records, year=2024))
    assert "## 1. Overview" in text
    assert "10 units sold across 2 stores" in text
    assert "Units increased from enero de 2024 (4) to febrero de 2024 (6), +50.0%." in text
    assert "Top store: Sur (6 units)." in text
    assert "## 4. Store ranking trend" in text


def test_template_report_without_data():
    text = generate_template_report(SalesMetrics())
    assert "No sales data loaded." in text
    assert "## 2." not in text


def test_payload_includes_store_detail(make_record):
    _, metrics = _metrics(make_record)
    detail = build_metrics_payload(metrics)["top_5_stores_detail"]
    assert detail == [
        {"store": "Sur", "units": 6, "top_groups": ["ROLLOS"]},
        {"store": "Norte", "units": 4, "top_groups": ["CANTOS"]},
    ]
