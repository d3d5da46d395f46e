"""Streamlit rendering for the water utility console and customer portal.

Every CRUD page is the same screen driven by a ``ResourceDefinition``; the
pages under ``pages/`` only pick which resource to show. All state lives in one
``ConsoleStore`` kept in ``st.session_state``.
"""

from __future__ import annotations

import hashlib
import html
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pandas as pd
import streamlit as st

from waterdesk.analytics import (
    analytics_kpis,
    bill_status_breakdown,
    connection_status_breakdown,
    monthly_revenue,
    monthly_usage,
    top_users,
    user_growth,
)
from waterdesk.business import PERIOD_OPTIONS, bill_status, format_currency
from waterdesk.charts import (
    bills_figure,
    breakdown_figure,
    distribution_figure,
    monthly_usage_figure,
    revenue_figure,
    status_figure,
    usage_figure,
    user_growth_figure,
)
from waterdesk.config import get_settings
from waterdesk.forms import ADD, API_ERROR_KEY, FormState, ModalSession
from waterdesk.list_state import ALL, ASC, DESC
from waterdesk.logging import configure_logging
from waterdesk.resources import RESOURCES, get_resource
from waterdesk.store import ConsoleStore
from waterdesk.usage import (
    USAGE_PERIODS,
    customer_summary,
    generate_usage_data,
    usage_kpis,
    user_bills,
    user_connections,
    user_readings,
)

PLOTLY_CONFIG = {"displayModeBar": False}
STORE_KEY = "waterdesk_store"

PAGES = {
    "users": "pages/1_👥_Users.py",
    "customers": "pages/2_🏠_Customers.py",
    "connections": "pages/3_🔌_Connections.py",
    "bills": "pages/4_🧾_Bills.py",
    "readings": "pages/5_📟_Readings.py",
    "sources": "pages/6_🌊_Water_Sources.py",
    "quality": "pages/7_🧪_Quality.py",
    "employees": "pages/8_👷_Employees.py",
    "complaints": "pages/9_📣_Complaints.py",
    "alerts": "pages/10_🚨_Alerts.py",
    "audit": "pages/11_📜_Audit_Logs.py",
}
PORTAL_PAGE = "pages/12_💧_Customer_Portal.py"
ANALYTICS_PAGE = "pages/13_📈_Analytics.py"


def _inject_base_styles():
    st.markdown(
        """
        <style>
        @import url('https://fonts.googleapis.com/css2?family=Inter:wght@400;500;600;700&display=swap');

        :root {
            --brand: #0369a1;
            --brand-soft: rgba(14,165,233,0.12);
            --surface: rgba(255,255,255,0.88);
            --border: rgba(148,163,184,0.32);
            --shadow: 0 24px 40px -28px rgba(30, 41, 59, 0.55);
        }

        .stApp > header {display: none;}
        .stApp {
            background: linear-gradient(145deg, #f1f5f9 0%, #ffffff 50%, #e2e8f0 100%);
            color: #1e293b;
            font-family: 'Inter', 'Segoe UI', sans-serif;
        }
        .block-container { padding-top: 2.5rem; padding-bottom: 4rem; max-width: 1220px; }

        .dashboard-hero {
            display: flex; align-items: center; justify-content: space-between; gap: 2.5rem;
            padding: 24px 28px;
            background: linear-gradient(135deg, rgba(14,165,233,0.16), rgba(16,185,129,0.12));
            border: 1px solid rgba(14,165,233,0.22);
            border-radius: 24px;
            box-shadow: var(--shadow);
            margin-bottom: 1.4rem;
        }
        .dashboard-hero .hero-left { display: flex; align-items: center; gap: 1.1rem; }
        .dashboard-hero .hero-icon {
            width: 56px; height: 56px; border-radius: 18px; background: rgba(255,255,255,0.85);
            display: grid; place-items: center; font-size: 1.7rem;
        }
        .dashboard-hero h1 { margin: 0; font-size: 1.7rem; font-weight: 600; color: #111827; }
        .dashboard-hero p { margin: 0.3rem 0 0; color: #64748b; font-size: 0.85rem; }
        .dashboard-hero .hero-stats {
            flex: 1; display: grid; gap: 12px; grid-template-columns: repeat(auto-fit, minmax(120px, 1fr));
        }
        .dashboard-hero .hero-stat {
            background: rgba(255,255,255,0.78); border-radius: 14px; padding: 10px 12px;
            border: 1px solid rgba(148,163,184,0.25);
        }
        .dashboard-hero .hero-stat span { display: block; }
        .dashboard-hero .hero-stat .label {
            font-size: 0.7rem; text-transform: uppercase; letter-spacing: 0.12em; color: #94a3b8;
        }
        .dashboard-hero .hero-stat .value { font-size: 1.25rem; font-weight: 600; color: #1f2937; margin-top: 4px; }

        .pager { color: #475569; font-size: 0.8rem; text-align: center; padding-top: 0.5rem; }
        .footer-note { color: #64748b; font-size: 0.72rem; text-align: center; margin-top: 2.5rem; }

        div[data-testid="stDataFrame"] > div, div[data-testid="stDataEditor"] > div {
            border: 1px solid var(--border); border-radius: 14px; overflow: hidden; background: #ffffff;
        }
        div[data-testid="stTabs"] button[role="tab"][aria-selected="true"] {
            background: var(--brand-soft) !important;
        }
        </style>
        """,
        unsafe_allow_html=True,
    )


def render_hero(title: str, subtitle: str, stats: List[Tuple[str, str]], icon: str = "💧") -> None:
    stats_html = "".join(
        f"<div class='hero-stat'><span class='label'>{html.escape(label)}</span><span class='value'>{html.escape(value)}</span></div>"
        for label, value in stats
    )
    st.markdown(
        f"""
        <div class='dashboard-hero'>
            <div class='hero-left'>
                <div class='hero-icon'>{icon}</div>
                <div>
                    <h1>{html.escape(title)}</h1>
                    <p>{html.escape(subtitle)}</p>
                </div>
            </div>
            <div class='hero-stats'>
                {stats_html}
            </div>
        </div>
        """,
        unsafe_allow_html=True,
    )


def render_plot(fig):
    st.plotly_chart(fig, use_container_width=True, config=PLOTLY_CONFIG)


def _download_button(filename: str, df: pd.DataFrame, label: str = "Export CSV"):
    if df.empty:
        return
    data = df.to_csv(index=False).encode("utf-8")
    st.download_button(label, data=data, file_name=filename, mime="text/csv")


def render_nav() -> None:
    cols = st.columns([1, 1, 1, 5])
    with cols[0]:
        st.page_link("Home.py", label="Overview", icon="🏠")
    with cols[1]:
        st.page_link(ANALYTICS_PAGE, label="Analytics", icon="📈")
    with cols[2]:
        st.page_link(PORTAL_PAGE, label="Customer Portal", icon="💧")
    st.divider()


def get_store() -> ConsoleStore:
    if STORE_KEY not in st.session_state:
        settings = get_settings()
        configure_logging(settings)
        st.session_state[STORE_KEY] = ConsoleStore(settings)
    return st.session_state[STORE_KEY]


# ----------------------------- Tables -----------------------------

def _cell(value: Any) -> Any:
    # populated references show their most readable field
    if isinstance(value, Mapping):
        for name in ("Name", "MeterNumber", "BillNumber", "_id"):
            if value.get(name):
                return str(value[name])
        return ""
    return value


def records_frame(columns: Tuple[str, ...], records: List[Mapping[str, Any]]) -> pd.DataFrame:
    rows = [{col: _cell(r.get(col)) for col in columns} for r in records]
    return pd.DataFrame(rows, columns=list(columns))


def _table_key(key: str, page: int, page_ids: List[Any], selected: set) -> str:
    marker = repr([(rid, rid in selected) for rid in page_ids]).encode("utf-8")
    return f"{key}_table_{page}_{hashlib.md5(marker).hexdigest()[:10]}"


def _reset_widgets(key: str) -> None:
    for suffix in ("search", "filter", "sort", "direction", "confirm_bulk"):
        st.session_state.pop(f"{key}_{suffix}", None)


# ----------------------------- Forms -----------------------------

def _form_key(key: str) -> str:
    return f"{key}_form"


def _open_form(store: ConsoleStore, key: str, record: Optional[Mapping[str, Any]] = None) -> None:
    st.session_state[_form_key(key)] = store.open_form(key, record)
    st.session_state[f"{key}_form_nonce"] = st.session_state.get(f"{key}_form_nonce", 0) + 1


def _close_form(key: str) -> None:
    st.session_state.pop(_form_key(key), None)


def _field_input(definition, form: FormState, name: str, widget_key: str) -> Any:
    label = form.rules[name].label if name in form.rules else name
    if name in form.rules and form.rules[name].required:
        label = f"{label} *"
    current = form.draft.get(name)
    current = "" if current is None else current
    choices = definition.choices.get(name)
    if choices:
        options = [""] + list(choices)
        if current not in options:
            options.append(current)
        return st.selectbox(label, options, index=options.index(current), key=widget_key)
    placeholder = "YYYY-MM-DD" if name in definition.date_fields else ""
    return st.text_input(label, value=str(current), placeholder=placeholder, key=widget_key)


def render_form(store: ConsoleStore, key: str, form: FormState) -> None:
    definition = get_resource(key)
    nonce = st.session_state.get(f"{key}_form_nonce", 0)
    focus_key = f"{key}_record"

    def restore_focus(target: Any) -> None:
        if target is not None:
            st.session_state[focus_key] = target

    session = ModalSession(
        form,
        prior_focus=st.session_state.get(focus_key),
        restore_focus=restore_focus,
    )
    title = f"Add {definition.singular}" if form.mode == ADD else f"Edit {definition.singular} {form.edit_id}"

    with session, st.container(border=True):
        title_col, close_col = st.columns([6, 1])
        title_col.markdown(f"#### {title}")
        # stands in for a click on the backdrop
        if close_col.button("✕", key=f"{key}_form_close_{nonce}", help="Close without saving"):
            if session.click_backdrop():
                _close_form(key)
            st.rerun()
        for warning in form.warnings:
            st.warning(warning)
        if API_ERROR_KEY in form.errors:
            st.error(form.errors[API_ERROR_KEY])

        with st.form(f"{key}_form_{nonce}"):
            values: Dict[str, Any] = {}
            for name in form.template:
                values[name] = _field_input(definition, form, name, f"{key}_{nonce}_{name}")
                if name in form.errors:
                    st.caption(f":red[{form.errors[name]}]")
            save_col, cancel_col = st.columns(2)
            save = save_col.form_submit_button(
                "Save" if form.mode == ADD else "Update", type="primary", disabled=form.submitting
            )
            cancel = cancel_col.form_submit_button("Cancel")

        if cancel:
            if session.handle_key("Escape"):
                _close_form(key)
            st.rerun()
        if save:
            for name, value in values.items():
                form.set_field(name, value)
            if store.save(key, form) is not None:
                _close_form(key)
            st.rerun()


# ----------------------------- List screen -----------------------------

def _render_controls(key: str, engine) -> None:
    spec = engine.spec
    search_col, filter_col, sort_col, dir_col, reset_col = st.columns([3, 2, 2, 1.4, 1])

    term = search_col.text_input(
        "Search", value=engine.search_term, placeholder="Search...", key=f"{key}_search"
    )
    engine.set_search(term)

    if spec.filter_field:
        options = [ALL] + list(spec.filter_options)
        current = engine.categorical_filter if engine.categorical_filter in options else ALL
        choice = filter_col.selectbox(
            spec.filter_field,
            options,
            index=options.index(current),
            format_func=lambda v: "All" if v == ALL else v,
            key=f"{key}_filter",
        )
        engine.set_filter(choice)

    sort_names = list(spec.sort_keys)
    sort_name = sort_col.selectbox(
        "Sort by",
        sort_names,
        index=sort_names.index(engine.sort_key),
        format_func=lambda k: spec.sort_keys[k].label or k,
        key=f"{key}_sort",
    )
    direction = dir_col.radio(
        "Order",
        [ASC, DESC],
        index=0 if engine.sort_direction == ASC else 1,
        format_func=lambda d: "↑ Asc" if d == ASC else "↓ Desc",
        key=f"{key}_direction",
    )
    engine.set_sort(sort_name, direction)

    reset_col.markdown("&nbsp;", unsafe_allow_html=True)
    if reset_col.button("Reset", key=f"{key}_reset"):
        engine.reset_view()
        _reset_widgets(key)
        st.rerun()


def _render_table(key: str, definition, engine, view) -> None:
    page_ids = [engine.record_id(r) for r in view.page_items]
    frame = records_frame(definition.columns, view.page_items)
    if key == "bills" and not frame.empty:
        frame["Status"] = [bill_status(r.get("DueDate"), r.get("PaymentStatus")) for r in view.page_items]
        frame["Amount"] = [format_currency(r.get("Amount")) for r in view.page_items]

    if definition.read_only:
        st.dataframe(frame, use_container_width=True, hide_index=True)
        return

    frame.insert(0, "Select", [rid in engine.selected_ids for rid in page_ids])
    edited = st.data_editor(
        frame,
        use_container_width=True,
        hide_index=True,
        disabled=[c for c in frame.columns if c != "Select"],
        column_config={"Select": st.column_config.CheckboxColumn("", width="small")},
        key=_table_key(key, engine.page, page_ids, engine.selected_ids),
    )
    changed = False
    for rid, checked in zip(page_ids, edited["Select"]):
        if bool(checked) != (rid in engine.selected_ids):
            engine.toggle_select(rid)
            changed = True
    if changed:
        st.rerun()


def _render_pager(key: str, engine, view) -> None:
    start = (engine.page - 1) * engine.page_size + 1 if view.page_items else 0
    end = start + len(view.page_items) - 1 if view.page_items else 0
    prev_col, info_col, next_col = st.columns([1, 4, 1])
    if prev_col.button("◀ Previous", disabled=engine.page <= 1, key=f"{key}_prev"):
        engine.prev_page()
        st.rerun()
    info_col.markdown(
        f"<div class='pager'>Showing {start}–{end} of {view.total_filtered} • "
        f"Page {engine.page} of {max(1, view.total_pages)}</div>",
        unsafe_allow_html=True,
    )
    if next_col.button("Next ▶", disabled=engine.page >= view.total_pages, key=f"{key}_next"):
        engine.next_page()
        st.rerun()


def _render_bulk_bar(store: ConsoleStore, key: str, definition, engine, view) -> None:
    page_col, clear_col, delete_col = st.columns([1, 1, 2])
    if page_col.button("Select page", key=f"{key}_select_page", disabled=not view.page_items):
        engine.toggle_select_all_visible(view.page_items)
        st.rerun()
    if clear_col.button("Clear selection", key=f"{key}_clear", disabled=not engine.selected_ids):
        engine.clear_selection()
        st.rerun()

    count = len(engine.selected_ids)
    if not count:
        return
    confirm_key = f"{key}_confirm_bulk"
    if not st.session_state.get(confirm_key):
        if delete_col.button(f"🗑 Delete selected ({count})", key=f"{key}_bulk"):
            st.session_state[confirm_key] = True
            st.rerun()
        return
    st.warning(f"Delete {count} selected {definition.title.lower()}? This cannot be undone.")
    yes_col, no_col = st.columns(2)
    if yes_col.button("Confirm delete", type="primary", key=f"{key}_bulk_yes"):
        st.session_state.pop(confirm_key, None)
        ids = [engine.record_id(r) for r in engine.selected_records()]
        store.bulk_delete(key, ids)
        st.rerun()
    if no_col.button("Keep", key=f"{key}_bulk_no"):
        st.session_state.pop(confirm_key, None)
        st.rerun()


def _render_row_actions(store: ConsoleStore, key: str, definition, engine, view) -> None:
    page_ids = [engine.record_id(r) for r in view.page_items]
    if not page_ids:
        return
    focus_key = f"{key}_record"
    if st.session_state.get(focus_key) not in page_ids:
        st.session_state.pop(focus_key, None)

    record_col, edit_col, delete_col, extra_col = st.columns([3, 1, 1, 1.4])
    target = record_col.selectbox(f"{definition.singular}", page_ids, format_func=str, key=focus_key)
    edit_col.markdown("&nbsp;", unsafe_allow_html=True)
    if edit_col.button("✏️ Edit", key=f"{key}_edit"):
        _open_form(store, key, engine.get(target))
        st.rerun()
    delete_col.markdown("&nbsp;", unsafe_allow_html=True)
    if delete_col.button("🗑 Delete", key=f"{key}_delete"):
        store.delete(key, target)
        st.rerun()
    if key == "readings":
        extra_col.markdown("&nbsp;", unsafe_allow_html=True)
        if extra_col.button("🧾 Generate bill", key=f"{key}_bill"):
            store.generate_bill(target)
            st.rerun()


def render_list_screen(key: str) -> None:
    _inject_base_styles()
    render_nav()

    store = get_store()
    definition = get_resource(key)
    screen = store.screen(key)
    engine = screen.engine

    store.load(key)
    if screen.load_error:
        render_hero(definition.title, definition.description, [], icon=definition.icon)
        st.error(screen.load_error)
        if st.button("Retry", key=f"{key}_retry"):
            store.load(key, force=True)
            st.rerun()
        return

    form = st.session_state.get(_form_key(key))
    if form is not None and not form.is_open:
        _close_form(key)
        form = None

    hero_slot = st.empty()
    _render_controls(key, engine)
    view = engine.view()
    with hero_slot.container():
        render_hero(
            definition.title,
            definition.description,
            [
                ("Total", str(len(engine.items))),
                ("Matching", str(view.total_filtered)),
                ("Selected", str(len(engine.selected_ids))),
            ],
            icon=definition.icon,
        )

    flash = store.consume_flash(key)
    if flash:
        st.success(flash)
    if screen.banner:
        st.error(screen.banner)

    if form is not None:
        render_form(store, key, form)
    elif not definition.read_only:
        if st.button(f"➕ Add {definition.singular}", key=f"{key}_add", type="primary"):
            _open_form(store, key)
            st.rerun()

    if not view.total_filtered:
        st.info(f"No {definition.title.lower()} match the current filters.")
    else:
        _render_table(key, definition, engine, view)
        _render_pager(key, engine, view)
        if not definition.read_only:
            _render_bulk_bar(store, key, definition, engine, view)
            _render_row_actions(store, key, definition, engine, view)

    _download_button(f"{key}.csv", records_frame(definition.columns, engine.filtered()))


# ----------------------------- Overview -----------------------------

def render_overview() -> None:
    _inject_base_styles()
    store = get_store()

    counts = {}
    for key in RESOURCES:
        counts[key] = len(store.engine(key).items) if store.load(key) else None

    def show(key: str) -> str:
        return "–" if counts[key] is None else str(counts[key])

    render_hero(
        "Water Utility Console",
        "Users, connections, billing and network health in one place.",
        [
            ("Users", show("users")),
            ("Connections", show("connections")),
            ("Open complaints", str(sum(1 for c in store.engine("complaints").items if c.get("Status") != "Resolved"))),
            ("Active alerts", str(sum(1 for a in store.engine("alerts").items if a.get("Status") == "Active"))),
        ],
    )

    nav_cols = st.columns(4)
    for i, (key, path) in enumerate(PAGES.items()):
        definition = get_resource(key)
        with nav_cols[i % 4]:
            st.page_link(path, label=f"{definition.title} ({show(key)})", icon=definition.icon)
    st.page_link(ANALYTICS_PAGE, label="Analytics", icon="📈")
    st.page_link(PORTAL_PAGE, label="Customer Portal", icon="💧")
    st.divider()

    failed = [get_resource(k).title for k, n in counts.items() if n is None]
    if failed:
        st.warning(f"Could not load: {', '.join(failed)}. Check that the backend at {store.settings.api_base_url} is running.")

    left, right = st.columns(2)
    with left:
        render_plot(status_figure(store.engine("connections").items, "Status", "Connections by status"))
        render_plot(status_figure(store.engine("complaints").items, "Status", "Complaints by status"))
    with right:
        render_plot(status_figure(store.engine("alerts").items, "Severity", "Alerts by severity"))
        render_plot(bills_figure(store.engine("bills").items))

    st.sidebar.title("Data")
    if st.sidebar.button("Refresh all"):
        for key in RESOURCES:
            store.load(key, force=True)
        st.rerun()
    st.sidebar.caption(f"Backend: {store.settings.api_base_url}")
    st.sidebar.caption(f"Connections stored: {store.settings.connections_backend}")


# ----------------------------- Analytics -----------------------------

ANALYTICS_SOURCES = ("users", "connections", "bills", "readings")


def render_analytics() -> None:
    _inject_base_styles()
    render_nav()
    store = get_store()

    data = {key: store.records(key) for key in ANALYTICS_SOURCES}
    failed = [get_resource(k).title for k in ANALYTICS_SOURCES if store.screen(k).load_error]
    kpis = analytics_kpis(data["users"], data["connections"], data["bills"], data["readings"])

    render_hero(
        "Analytics",
        "Revenue, growth, payment and consumption trends from live records.",
        [
            ("Revenue", format_currency(kpis["total_revenue"])),
            ("Collection rate", f"{kpis['collection_rate']}%"),
            ("Users", str(kpis["total_users"])),
            ("Connections", str(kpis["total_connections"])),
        ],
        icon="📈",
    )
    if failed:
        st.warning(f"Could not load: {', '.join(failed)}. Figures below leave them out.")

    k1, k2, k3, k4 = st.columns(4)
    k1.metric("Bills generated", f"{kpis['bills']:,}")
    k2.metric("Active connections", f"{kpis['active_connections']:,}")
    k3.metric("Connection utilization", f"{kpis['connection_utilization']}%")
    k4.metric("Average reading", f"{kpis['average_consumption']:,.1f} units")

    revenue = monthly_revenue(data["bills"])
    growth = user_growth(data["users"])
    usage = monthly_usage(data["readings"])

    left, right = st.columns(2)
    with left:
        if revenue.empty:
            st.info("No dated bills yet.")
        else:
            render_plot(revenue_figure(revenue))
        render_plot(breakdown_figure(connection_status_breakdown(data["connections"]), "Connection status"))
    with right:
        if growth.empty:
            st.info("No user sign-up dates yet.")
        else:
            render_plot(user_growth_figure(growth))
        render_plot(breakdown_figure(bill_status_breakdown(data["bills"]), "Bill payment status"))

    if usage.empty:
        st.info("No dated meter readings yet.")
    else:
        render_plot(monthly_usage_figure(usage))

    st.markdown("#### Top users by usage")
    leaders = top_users(data["users"], data["connections"], data["bills"], data["readings"])
    if leaders.empty:
        st.info("No users to rank.")
    else:
        table = leaders.rename(
            columns={"user_id": "User", "name": "Name", "status": "Status", "usage": "Usage", "bills": "Bills", "revenue": "Revenue"}
        )
        table["Revenue"] = table["Revenue"].map(format_currency)
        st.dataframe(table, use_container_width=True, hide_index=True)
        _download_button("top_users.csv", leaders)


# ----------------------------- Customer portal -----------------------------

def render_customer_portal() -> None:
    _inject_base_styles()
    render_nav()
    store = get_store()

    if "usage_data" not in st.session_state:
        st.session_state["usage_data"] = generate_usage_data(store.settings.usage_seed)
    usage_df = st.session_state["usage_data"]

    connections = store.records("connections")
    user_ids = sorted({str(c.get("UserID")) for c in connections if c.get("UserID") is not None})
    st.sidebar.title("Customer")
    if user_ids:
        user_id = st.sidebar.selectbox("Customer ID", user_ids, key="portal_user")
    else:
        user_id = st.sidebar.text_input("Customer ID", key="portal_user")

    bills = store.records("bills")
    readings = store.records("readings")
    summary = customer_summary(user_id, connections, bills, readings)

    render_hero(
        "My Water Usage",
        f"Customer {user_id or '–'} • usage, bills and readings",
        [
            ("Connections", str(summary["connections"])),
            ("Outstanding", format_currency(summary["outstanding"])),
            ("Daily average", f"{summary['daily_average']:g} units"),
        ],
    )
    for key in ("bills", "readings"):
        error = store.screen(key).load_error
        if error:
            st.info(f"{get_resource(key).title} unavailable: {error}")

    period = st.radio(
        "Usage period", list(USAGE_PERIODS), format_func=USAGE_PERIODS.get, horizontal=True, key="portal_period"
    )
    kpis = usage_kpis(usage_df, period)
    k1, k2, k3 = st.columns(3)
    k1.metric("Total usage", f"{kpis['total']:,.0f} gal")
    k2.metric("Average", f"{kpis['average']:,.1f} gal")
    k3.metric("Peak", f"{kpis['peak']:,.0f} gal")

    chart_col, dist_col = st.columns([2, 1])
    with chart_col:
        render_plot(usage_figure(usage_df, period))
    with dist_col:
        render_plot(distribution_figure())

    bills_tab, readings_tab, connections_tab = st.tabs(["Bills", "Readings", "Connections"])
    owned = user_connections(connections, user_id)
    with bills_tab:
        bill_period = st.selectbox("Period", PERIOD_OPTIONS, format_func=str.title, key="portal_bill_period")
        mine = user_bills(bills, user_id, bill_period)
        frame = records_frame(("BillNumber", "BillDate", "DueDate", "Amount", "PaymentStatus"), mine)
        if frame.empty:
            st.info("No bills for this period.")
        else:
            frame["Status"] = [bill_status(b.get("DueDate"), b.get("PaymentStatus")) for b in mine]
            render_plot(bills_figure(mine))
            st.dataframe(frame, use_container_width=True, hide_index=True)
            _download_button(f"bills_{user_id}.csv", frame)
    with readings_tab:
        reading_period = st.selectbox("Period", PERIOD_OPTIONS, format_func=str.title, key="portal_reading_period")
        frame = records_frame(("ReadingDate", "ConnectionID", "UnitsConsumed"), user_readings(readings, owned, reading_period))
        if frame.empty:
            st.info("No readings for this period.")
        else:
            st.dataframe(frame, use_container_width=True, hide_index=True)
    with connections_tab:
        st.dataframe(records_frame(get_resource("connections").columns, owned), use_container_width=True, hide_index=True)

    st.markdown(
        "<p class='footer-note'>Usage figures are simulated • Tariff $5.50/unit + 8% tax + $10 service charge</p>",
        unsafe_allow_html=True,
    )
