"""Plotly figures for the console and the customer portal."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from waterdesk.business import bill_status
from waterdesk.usage import USAGE_PERIODS, distribution_data, usage_for

COLORWAY = ["#4f46e5", "#0ea5e9", "#10b981", "#f59e0b", "#ef4444", "#14b8a6"]
STATUS_COLORS = {"Paid": "#10b981", "Unpaid": "#0ea5e9", "Due Soon": "#f59e0b", "Overdue": "#ef4444"}


def style_fig(fig):
    # Clean light template to match card surfaces
    fig.update_layout(
        paper_bgcolor="rgba(0,0,0,0)",
        plot_bgcolor="#ffffff",
        margin=dict(l=14, r=18, t=40, b=16),
        font=dict(family="Inter, sans-serif", color="#111827"),
        hoverlabel=dict(bgcolor="rgba(17,24,39,0.96)", font_size=12, font_family="Inter"),
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="left", x=0, title="", font=dict(color="#111827")),
        colorway=COLORWAY,
    )
    axis = dict(
        showgrid=True,
        gridcolor="rgba(148,163,184,0.25)",
        zeroline=False,
        linecolor="rgba(148,163,184,0.55)",
        tickfont=dict(color="#334155"),
        title_font=dict(color="#334155"),
    )
    fig.update_xaxes(**axis)
    fig.update_yaxes(**axis)
    return fig


def usage_figure(df: pd.DataFrame, period: str = "7days") -> go.Figure:
    """Bars of consumption per label with the same series traced as a line."""
    subset = usage_for(df, period)
    fig = px.bar(
        subset,
        x="label",
        y="usage",
        hover_data={"cost": ":$.2f"},
        labels={"label": "", "usage": "Usage (gal)", "cost": "Cost"},
        title=f"Water usage, {USAGE_PERIODS[period].lower()}",
    )
    fig.update_traces(marker_color="#10b981", opacity=0.75)
    fig.add_trace(
        go.Scatter(
            x=subset["label"],
            y=subset["usage"],
            mode="lines+markers",
            name="Trend",
            line=dict(color="#3b82f6", width=3),
        )
    )
    fig.update_layout(showlegend=False)
    return style_fig(fig)


def distribution_figure(df: Optional[pd.DataFrame] = None) -> go.Figure:
    df = distribution_data() if df is None else df
    fig = px.pie(
        df,
        names="category",
        values="share",
        hole=0.55,
        color="category",
        color_discrete_map=dict(zip(df["category"], df["color"])),
        title="Usage by connection type",
    )
    fig.update_traces(textinfo="percent+label")
    return style_fig(fig)


def bills_frame(bills: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    rows = [
        {
            "BillDate": b.get("BillDate"),
            "Amount": b.get("Amount"),
            "Status": bill_status(b.get("DueDate"), b.get("PaymentStatus")),
        }
        for b in bills
    ]
    df = pd.DataFrame(rows, columns=["BillDate", "Amount", "Status"])
    df["BillDate"] = pd.to_datetime(df["BillDate"], errors="coerce")
    df["Amount"] = pd.to_numeric(df["Amount"], errors="coerce")
    return df.dropna(subset=["BillDate", "Amount"]).sort_values("BillDate", kind="stable")


def bills_figure(bills: Iterable[Mapping[str, Any]]) -> go.Figure:
    df = bills_frame(bills)
    fig = px.bar(
        df,
        x="BillDate",
        y="Amount",
        color="Status",
        color_discrete_map=STATUS_COLORS,
        labels={"BillDate": "Bill date", "Amount": "Amount ($)"},
        title="Bills by date",
    )
    return style_fig(fig)


def status_figure(records: Iterable[Mapping[str, Any]], field: str, title: str) -> go.Figure:
    """Counts of records per value of ``field``; used by the admin overview."""
    values = [str(r.get(field) or "Unknown") for r in records]
    counts = pd.Series(values, dtype="object").value_counts().rename_axis(field).reset_index(name="count")
    fig = px.bar(counts, x=field, y="count", labels={"count": "Records", field: ""}, title=title)
    return style_fig(fig)


# ----------------------------- Analytics -----------------------------

def revenue_figure(df: pd.DataFrame) -> go.Figure:
    """Monthly billed revenue as bars with the bill count on a second axis."""
    fig = go.Figure()
    fig.add_trace(go.Bar(x=df["label"], y=df["revenue"], name="Revenue", marker_color="#10b981", opacity=0.8))
    fig.add_trace(
        go.Scatter(
            x=df["label"],
            y=df["bills"],
            name="Bills",
            mode="lines+markers",
            yaxis="y2",
            line=dict(color="#4f46e5", width=3),
        )
    )
    fig.update_layout(
        title="Revenue by month",
        yaxis=dict(title="Revenue ($)"),
        yaxis2=dict(title="Bills", overlaying="y", side="right", showgrid=False),
    )
    return style_fig(fig)


def user_growth_figure(df: pd.DataFrame) -> go.Figure:
    fig = go.Figure()
    fig.add_trace(go.Bar(x=df["label"], y=df["new_users"], name="New users", marker_color="#0ea5e9"))
    fig.add_trace(
        go.Scatter(x=df["label"], y=df["total_users"], name="Total users", mode="lines+markers", line=dict(color="#4f46e5", width=3))
    )
    fig.update_layout(title="User growth")
    return style_fig(fig)


def breakdown_figure(df: pd.DataFrame, title: str) -> go.Figure:
    """Donut of a status breakdown frame (status, count, color)."""
    fig = px.pie(
        df,
        names="status",
        values="count",
        hole=0.55,
        color="status",
        color_discrete_map=dict(zip(df["status"], df["color"])),
        title=title,
    )
    fig.update_traces(textinfo="percent+label")
    return style_fig(fig)


def monthly_usage_figure(df: pd.DataFrame) -> go.Figure:
    fig = px.area(
        df,
        x="label",
        y="usage",
        hover_data={"readings": True, "average": ":.1f"},
        labels={"label": "", "usage": "Units consumed", "readings": "Readings", "average": "Average per reading"},
        title="Consumption trend",
    )
    fig.update_traces(line_color="#0ea5e9")
    return style_fig(fig)
