"""Admin analytics: monthly revenue, growth, status mixes and top users.

Every function takes plain record lists as loaded by the console and returns
a pandas frame (or a dict of KPIs) ready for :mod:`waterdesk.charts`. Records
with missing or unparseable dates are left out of the monthly series; an empty
collection yields an empty frame with the same columns.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Sequence

import pandas as pd

from waterdesk.business import as_date, bill_totals, ref_id
from waterdesk.forms import parse_number
from waterdesk.usage import bill_owner, reading_connection

MONTH_COLUMNS = ["month", "label"]

CONNECTION_STATUSES = ("Active", "Inactive", "Pending", "Suspended")
# Unpaid and Pending bills are reported together
BILL_STATUS_GROUPS = {"Paid": ("Paid",), "Pending": ("Unpaid", "Pending"), "Overdue": ("Overdue",)}
BREAKDOWN_COLORS = {
    "Active": "#10b981",
    "Inactive": "#ef4444",
    "Pending": "#f59e0b",
    "Suspended": "#f97316",
    "Paid": "#10b981",
    "Overdue": "#ef4444",
}


def _dated(records: Iterable[Mapping[str, Any]], date_field: str, value_field: str = "") -> pd.DataFrame:
    rows = []
    for r in records:
        day = as_date(r.get(date_field))
        if day is not None:
            rows.append({"month": day.strftime("%Y-%m"), "value": r.get(value_field) if value_field else 1})
    df = pd.DataFrame(rows, columns=["month", "value"])
    df["value"] = pd.to_numeric(df["value"], errors="coerce").fillna(0.0)
    return df


def _by_month(df: pd.DataFrame, **aggregations) -> pd.DataFrame:
    columns = MONTH_COLUMNS + list(aggregations)
    if df.empty:
        return pd.DataFrame(columns=columns)
    out = df.groupby("month", sort=True).agg(**aggregations).reset_index()
    out["label"] = pd.to_datetime(out["month"], format="%Y-%m").dt.strftime("%b %Y")
    return out[columns]


def monthly_revenue(bills: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    """Billed amount and bill count per calendar month of ``BillDate``."""
    df = _dated(bills, "BillDate", "Amount")
    return _by_month(df, revenue=("value", "sum"), bills=("value", "size"))


def user_growth(users: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    """New users per month of ``CreatedAt`` and the running total."""
    df = _by_month(_dated(users, "CreatedAt"), new_users=("value", "size"))
    df["total_users"] = df["new_users"].cumsum() if not df.empty else pd.Series(dtype="int64")
    return df


def monthly_usage(readings: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    """Units consumed per month with the per-reading average."""
    df = _by_month(
        _dated(readings, "ReadingDate", "UnitsConsumed"),
        usage=("value", "sum"),
        readings=("value", "size"),
    )
    df["average"] = (df["usage"] / df["readings"]).round(1) if not df.empty else pd.Series(dtype="float64")
    return df


def status_breakdown(
    records: Iterable[Mapping[str, Any]],
    field: str,
    groups: Mapping[str, Sequence[str]],
) -> pd.DataFrame:
    """Count records per status group; groups with no records still appear."""
    values = [str(r.get(field) or "") for r in records]
    counts = {name: sum(1 for v in values if v in members) for name, members in groups.items()}
    total = sum(counts.values())
    return pd.DataFrame(
        [
            {
                "status": name,
                "count": count,
                "percentage": round(count * 100 / total) if total else 0,
                "color": BREAKDOWN_COLORS.get(name, "#94a3b8"),
            }
            for name, count in counts.items()
        ],
        columns=["status", "count", "percentage", "color"],
    )


def connection_status_breakdown(connections: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    return status_breakdown(connections, "Status", {s: (s,) for s in CONNECTION_STATUSES})


def bill_status_breakdown(bills: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    return status_breakdown(bills, "PaymentStatus", BILL_STATUS_GROUPS)


def _user_keys(user: Mapping[str, Any]) -> set:
    return {ref_id(user.get(name)) for name in ("UserID", "_id") if user.get(name) is not None}


def top_users(
    users: Iterable[Mapping[str, Any]],
    connections: Iterable[Mapping[str, Any]],
    bills: Iterable[Mapping[str, Any]],
    readings: Iterable[Mapping[str, Any]],
    limit: int = 5,
) -> pd.DataFrame:
    """Users ranked by metered usage, then billed revenue."""
    connections = list(connections)
    bills = list(bills)
    readings = list(readings)
    rows: List[Dict[str, Any]] = []
    for user in users:
        keys = _user_keys(user)
        if not keys:
            continue
        owned = set()
        for c in connections:
            if ref_id(c.get("UserID")) in keys:
                owned.update(str(c[name]) for name in ("_id", "ConnectionID") if c.get(name) is not None)
        usage = sum(parse_number(r.get("UnitsConsumed")) or 0.0 for r in readings if reading_connection(r) in owned)
        mine = [b for b in bills if bill_owner(b) in keys]
        rows.append(
            {
                "user_id": ref_id(user.get("UserID") or user.get("_id")),
                "name": user.get("Name") or "",
                "status": user.get("Status") or "Active",
                "usage": usage,
                "bills": len(mine),
                "revenue": bill_totals(mine)["total"],
            }
        )
    df = pd.DataFrame(rows, columns=["user_id", "name", "status", "usage", "bills", "revenue"])
    return df.sort_values(["usage", "revenue"], ascending=False, kind="stable").head(limit).reset_index(drop=True)


def analytics_kpis(
    users: Sequence[Mapping[str, Any]],
    connections: Sequence[Mapping[str, Any]],
    bills: Sequence[Mapping[str, Any]],
    readings: Sequence[Mapping[str, Any]],
) -> Dict[str, Any]:
    units = pd.to_numeric(pd.Series([r.get("UnitsConsumed") for r in readings], dtype="object"), errors="coerce")
    paid = sum(1 for b in bills if b.get("PaymentStatus") == "Paid")
    active = sum(1 for c in connections if c.get("Status") == "Active")
    return {
        "total_revenue": bill_totals(bills)["total"],
        "collection_rate": round(paid * 100 / len(bills)) if bills else 0,
        "total_users": len(users),
        "total_connections": len(connections),
        "active_connections": active,
        "connection_utilization": round(active * 100 / len(connections)) if connections else 0,
        "bills": len(bills),
        "average_consumption": round(float(units.fillna(0).mean()), 1) if readings else 0.0,
    }
