import asyncio
import logging

import pandas as pd
import streamlit as st

from chat import ask_question
from config import load_settings
from ingest import SPREADSHEET_EXTENSIONS, TEXT_EXTENSIONS, UploadedFile, ingest_batch
from llm_client import CompletionError, OpenAICompletionService, generate_ai_report, get_usage
from logging_utils import configure_logging
from metrics import MONTH_NAMES, compute_metrics
from ranking import compute_monthly_ranking
from reports import (
    ReportFilters,
    compare_years,
    generate_detailed_product_report,
    generate_store_report,
    get_unique_lines,
    get_unique_stores,
    get_unique_years,
)
from store import (
    BatchWriteError,
    JsonFileRecordStore,
    MigrationFlag,
    RecordStoreError,
    load_product_groups,
    run_startup_migration,
)
from template_report import generate_template_report

SETTINGS = load_settings()
configure_logging(SETTINGS.log_level, SETTINGS.logs_dir)
logger = logging.getLogger(__name__)

ALL = "All"
UPLOAD_TYPES = [ext.lstrip(".") for ext in SPREADSHEET_EXTENSIONS + TEXT_EXTENSIONS]
TREND_ICONS = {"up": "▲", "down": "▼", "stable": "●"}


def get_store() -> JsonFileRecordStore:
    return JsonFileRecordStore(SETTINGS.data_dir, batch_size=SETTINGS.batch_size)


def init_session_state():
    defaults = {
        "initialized": False,
        "records": [],
        "product_groups": [],
        "files": [],
        "ai_report": None,
        "chat_history": [],
    }
    for k, v in defaults.items():
        if k not in st.session_state:
            st.session_state[k] = v


def reload_records(store: JsonFileRecordStore) -> None:
    st.session_state.records = asyncio.run(store.get_all())
    st.session_state.files = asyncio.run(store.list_files())


def initialize(store: JsonFileRecordStore) -> None:
    """Once per session: legacy migration, then the first full load."""
    if st.session_state.initialized:
        return
    legacy = JsonFileRecordStore(SETTINGS.legacy_dir)
    result = asyncio.run(run_startup_migration(legacy, store, MigrationFlag(SETTINGS.migration_flag_path)))
    if result.migrated:
        st.toast(f"Migration complete: {result.record_count} records moved.")
    try:
        reload_records(store)
    except RecordStoreError as e:
        logger.error("Initial load failed: %s", e)
        st.error("Could not read the sales database.")
    st.session_state.product_groups = asyncio.run(load_product_groups(store))
    st.session_state.initialized = True


def process_uploads(store: JsonFileRecordStore, uploaded) -> None:
    files = [UploadedFile(name=f.name, content=f.getvalue()) for f in uploaded]
    try:
        summary = asyncio.run(ingest_batch(files, store, SETTINGS.number_locale))
    except BatchWriteError as e:
        logger.error("Upload aborted: %s", e)
        st.error(f"Critical error while saving to the database: {e}")
        reload_records(store)
        return

    for failure in summary.failures:
        st.warning(f"{failure.file_name}: {failure.error}")
    if summary.records_added:
        st.session_state.records = summary.records
        st.session_state.files = asyncio.run(store.list_files())
        st.success(summary.message())
    elif summary.failures:
        st.error(summary.message())
    else:
        st.info(summary.message())


def _records_table(entries: list[dict], name_col: str) -> pd.DataFrame:
    return pd.DataFrame(entries).rename(columns={"name": name_col, "value": "Units"})


def render_dashboard(metrics) -> None:
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Units", f"{metrics.total_units:,}")
    c2.metric("Stores", metrics.unique_stores)
    c3.metric("Products", metrics.unique_products)
    c4.metric("Units / day", f"{metrics.average_units_per_day:,.1f}")
    st.caption(f"Period: {metrics.date_range['start']} → {metrics.date_range['end']}")

    if metrics.timeline:
        timeline = pd.DataFrame(metrics.timeline).set_index("date")
        st.line_chart(timeline["value"])

    left, right = st.columns(2)
    with left:
        st.markdown("**Top stores**")
        st.dataframe(_records_table(metrics.top_stores, "Store"), hide_index=True)
    with right:
        st.markdown("**Top products**")
        st.dataframe(_records_table(metrics.top_products, "Product"), hide_index=True)

    if metrics.by_group:
        st.markdown("**Product groups**")
        st.dataframe(pd.DataFrame(metrics.by_group).drop(columns=["color"]), hide_index=True)
    if metrics.by_store:
        st.markdown("**Stores**")
        st.dataframe(
            pd.DataFrame([
                {
                    "Store": s["store_name"],
                    "Units": s["total_units"],
                    "Products": s["unique_products"],
                    "Top groups": ", ".join(g["group_name"] for g in s["by_group"]),
                    "Recent months": ", ".join(f"{m['month']}: {m['units']:,}" for m in s["by_month"][-3:]),
                }
                for s in metrics.by_store
            ]),
            hide_index=True,
        )
    if metrics.by_month:
        st.markdown("**Months**")
        st.dataframe(pd.DataFrame(metrics.by_month).drop(columns=["by_group", "key"]), hide_index=True)


def render_reports(records, year) -> None:
    c1, c2, c3 = st.columns(3)
    month = c1.selectbox("Month", [ALL] + [m.title() for m in MONTH_NAMES])
    store = c2.selectbox("Store", [ALL] + get_unique_stores(records))
    line = c3.selectbox("Line", [ALL] + get_unique_lines(records))
    filters = ReportFilters(
        year=year,
        month=None if month == ALL else [m.title() for m in MONTH_NAMES].index(month) + 1,
        store=None if store == ALL else store,
        line=None if line == ALL else line,
    )

    st.markdown("**Units by store and line**")
    report = generate_store_report(records, filters)
    if report.rows:
        st.dataframe(report.to_frame())
    else:
        st.info("No data for these filters.")

    st.markdown("**Monthly ranking**")
    ranking = compute_monthly_ranking(records, year=year, line=filters.line)
    rows = []
    for r in ranking:
        row = {"Store": r.store_name}
        row.update({f"{name} (#{r.rankings[m]})": r.monthly_data[m] for m, name in zip(range(1, 13), r.month_names())})
        row.update({"Total": r.total_year, "Rank": r.accumulated_ranking, "Trend": TREND_ICONS[r.trend]})
        rows.append(row)
    if rows:
        st.dataframe(pd.DataFrame(rows), hide_index=True)

    with st.expander("Detail by product", expanded=False):
        for store_data in generate_detailed_product_report(records, filters):
            st.markdown(f"**{store_data.store_name}** ({store_data.total:,})")
            st.dataframe(
                pd.DataFrame(
                    [{"Product": p.product_name, **{MONTH_NAMES[m - 1][:3]: v for m, v in p.monthly_data.items()}, "Total": p.total}
                     for p in store_data.products]
                ),
                hide_index=True,
            )


def render_year_over_year(records, years) -> None:
    if len(years) < 2:
        st.info("At least two years of data are needed for a comparison.")
        return
    c1, c2, c3 = st.columns(3)
    year = c1.selectbox("Year", years, index=0)
    previous = c2.selectbox("Compared with", [y for y in years if y != year])
    by = c3.selectbox("By", ["store", "grupo", "product", "month"])
    comparison = compare_years(records, year, previous, by)
    st.dataframe(pd.DataFrame([vars(r) for r in comparison.rows]), hide_index=True)
    pct = comparison.total_delta_pct
    st.caption(
        f"Total {year}: {comparison.total_current:,} · {previous}: {comparison.total_previous:,}"
        + (f" · {pct:+.1f}%" if pct is not None else "")
    )


def main():
    st.set_page_config(page_title="Sales analytics", layout="wide", initial_sidebar_state="expanded")
    init_session_state()
    store = get_store()
    initialize(store)

    with st.sidebar:
        st.markdown("### Data")
        uploaded = st.file_uploader("Upload sales files", type=UPLOAD_TYPES, accept_multiple_files=True)
        if uploaded and st.button("Import", type="primary"):
            with st.spinner("Processing files..."):
                process_uploads(store, uploaded)

        for f in st.session_state.files:
            col_name, col_btn = st.columns([3, 1])
            col_name.caption(f"{f['file_id']} ({f['record_count']:,})")
            if col_btn.button("✕", key=f"del_{f['file_id']}"):
                asyncio.run(store.delete_by_file(f["file_id"]))
                reload_records(store)
                st.rerun()

        st.divider()
        years = get_unique_years(st.session_state.records)
        year_choice = st.selectbox("Year", [ALL] + years)
        year = None if year_choice == ALL else year_choice

        if st.session_state.records and st.button("Delete all records"):
            asyncio.run(store.clear())
            reload_records(store)
            st.rerun()

    records = st.session_state.records
    st.title("Sales analytics")
    if not records:
        st.info("Upload CSV or Excel exports in the sidebar to get started.")
        return

    metrics = compute_metrics(records, st.session_state.product_groups, year=year, top_n=SETTINGS.top_n)
    tab_dash, tab_reports, tab_yoy, tab_ai, tab_chat = st.tabs(
        ["Dashboard", "Reports", "Year over year", "AI report", "Chat"]
    )

    with tab_dash:
        render_dashboard(metrics)

    with tab_reports:
        render_reports(records, year)

    with tab_yoy:
        render_year_over_year(records, years)

    with tab_ai:
        if st.button("Generate AI report"):
            with st.spinner("Generating report..."):
                service = OpenAICompletionService(model=SETTINGS.openai_model)
                html, err = generate_ai_report(metrics, service)
            if err:
                st.warning(f"LLM: {err}")
                ranking = compute_monthly_ranking(records, year=year)
                st.session_state.ai_report = generate_template_report(metrics, ranking).replace("\n", "  \n")
            else:
                st.session_state.ai_report = html
        if st.session_state.ai_report:
            st.markdown(st.session_state.ai_report, unsafe_allow_html=True)
            st.caption(f"Requests: {get_usage().request_count}")

    with tab_chat:
        for msg in st.session_state.chat_history:
            with st.chat_message(msg["role"]):
                st.markdown(msg["content"], unsafe_allow_html=True)
        question = st.chat_input("Ask about your sales...")
        if question:
            st.session_state.chat_history.append({"role": "user", "content": question})
            try:
                response = ask_question(
                    question,
                    records,
                    OpenAICompletionService(model=SETTINGS.openai_model, temperature=0.5),
                    history=st.session_state.chat_history[:-1],
                )
            except CompletionError as e:
                st.error(f"Could not answer: {e}")
            else:
                st.session_state.chat_history.append({"role": "assistant", "content": response.content})
                if response.chart_data and response.chart_type in ("bar", "line"):
                    frame = pd.DataFrame(response.chart_data)
                    index = "date" if response.chart_type == "line" else "name"
                    if response.chart_type == "line":
                        st.line_chart(frame.set_index(index)["value"])
                    else:
                        st.bar_chart(frame.set_index(index)["value"])
                st.rerun()


if __name__ == "__main__":
    main()
