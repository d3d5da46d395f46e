"""Customer portal data: mock usage series and per-customer summaries."""

from __future__ import annotations

import random
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd

from waterdesk.business import as_date, bill_totals, ref_id, within_period

USAGE_PERIODS = {
    "7days": "Last 7 days",
    "30days": "Last 30 days",
    "6months": "Last 6 months",
}

# label set, usage range (inclusive) and cost range per period
_PERIOD_SHAPES = {
    "7days": (["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"], (100, 149), (2.0, 7.0)),
    "30days": ([f"Week {i}" for i in range(1, 5)], (300, 499), (10.0, 30.0)),
    "6months": (["Jan", "Feb", "Mar", "Apr", "May", "Jun"], (800, 1299), (30.0, 80.0)),
}

DISTRIBUTION_COLORS = {"Residential": "#3b82f6", "Commercial": "#10b981", "Industrial": "#f59e0b"}


def generate_usage_data(seed: Optional[int] = None) -> pd.DataFrame:
    """Mock consumption for every portal period in one long frame.

    Columns: ``period``, ``label``, ``usage`` (gallons) and ``cost`` (dollars).
    Pass ``seed`` for a reproducible series.
    """
    rng = random.Random(seed)
    rows = []
    for period, (labels, (lo, hi), (cost_lo, cost_hi)) in _PERIOD_SHAPES.items():
        for label in labels:
            rows.append(
                {
                    "period": period,
                    "label": label,
                    "usage": rng.randint(lo, hi),
                    "cost": round(rng.uniform(cost_lo, cost_hi), 2),
                }
            )
    return pd.DataFrame(rows, columns=["period", "label", "usage", "cost"])


def usage_for(df: pd.DataFrame, period: str) -> pd.DataFrame:
    if period not in USAGE_PERIODS:
        raise ValueError(f"unknown usage period {period!r}")
    return df[df["period"] == period].reset_index(drop=True)


def distribution_data() -> pd.DataFrame:
    return pd.DataFrame(
        [
            {"category": name, "share": share, "color": DISTRIBUTION_COLORS[name]}
            for name, share in (("Residential", 65), ("Commercial", 25), ("Industrial", 10))
        ]
    )


def usage_kpis(df: pd.DataFrame, period: str) -> Dict[str, float]:
    subset = usage_for(df, period)
    if subset.empty:
        return {"total": 0.0, "average": 0.0, "peak": 0.0}
    return {
        "total": float(subset["usage"].sum()),
        "average": round(float(subset["usage"].mean()), 1),
        "peak": float(subset["usage"].max()),
    }


# ----------------------------- Per customer -----------------------------

def user_connections(connections: Iterable[Mapping[str, Any]], user_id: Any) -> List[Mapping[str, Any]]:
    target = ref_id(user_id)
    return [c for c in connections if ref_id(c.get("UserID")) == target]


def _connection_keys(connections: Iterable[Mapping[str, Any]]) -> set:
    keys = set()
    for c in connections:
        for name in ("_id", "ConnectionID"):
            if c.get(name) is not None:
                keys.add(str(c[name]))
    return keys


def reading_connection(reading: Mapping[str, Any]) -> str:
    value = reading.get("ConnectionID")
    if isinstance(value, Mapping):
        return str(value.get("_id") or value.get("ConnectionID") or "")
    return "" if value is None else str(value)


def user_readings(
    readings: Iterable[Mapping[str, Any]],
    connections: Iterable[Mapping[str, Any]],
    period: str = "all",
) -> List[Mapping[str, Any]]:
    keys = _connection_keys(connections)
    return [
        r for r in readings
        if reading_connection(r) in keys and within_period(r.get("ReadingDate"), period)
    ]


def bill_owner(bill: Mapping[str, Any]) -> str:
    if bill.get("UserID") is not None:
        return ref_id(bill.get("UserID"))
    reading = bill.get("MeterReadingID")
    if isinstance(reading, Mapping):
        connection = reading.get("ConnectionID")
        if isinstance(connection, Mapping):
            return ref_id(connection.get("UserID"))
    return ""


def user_bills(
    bills: Iterable[Mapping[str, Any]],
    user_id: Any,
    period: str = "all",
) -> List[Mapping[str, Any]]:
    target = ref_id(user_id)
    return [b for b in bills if bill_owner(b) == target and within_period(b.get("BillDate"), period)]


def customer_summary(
    user_id: Any,
    connections: Iterable[Mapping[str, Any]],
    bills: Iterable[Mapping[str, Any]],
    readings: Iterable[Mapping[str, Any]],
) -> Dict[str, Any]:
    owned = user_connections(connections, user_id)
    own_readings = sorted(
        user_readings(readings, owned),
        key=lambda r: as_date(r.get("ReadingDate")) or pd.Timestamp.min.date(),
    )
    totals = bill_totals(user_bills(bills, user_id))

    daily_average = 0.0
    if own_readings:
        units = [float(r.get("UnitsConsumed") or 0) for r in own_readings]
        dates = [d for d in (as_date(r.get("ReadingDate")) for r in own_readings) if d is not None]
        span = (max(dates) - min(dates)).days + 1 if dates else 1
        daily_average = round(sum(units) / max(span, 1), 1)

    last = own_readings[-1] if own_readings else None
    return {
        "user_id": ref_id(user_id),
        "connections": len(owned),
        "active_connections": sum(1 for c in owned if c.get("Status") == "Active"),
        "total_billed": totals["total"],
        "outstanding": totals["unpaid"],
        "last_reading_date": last.get("ReadingDate") if last else None,
        "last_reading_units": float(last.get("UnitsConsumed") or 0) if last else None,
        "daily_average": daily_average,
    }
