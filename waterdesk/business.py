"""Utility business rules: connection limits, billing and reporting periods."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, Mapping, Optional

import pandas as pd

from waterdesk.forms import ADD, Guard

MAX_CONNECTIONS_PER_USER = 2

BILL_CONFIG = {
    "FIXED_RATE_PER_UNIT": 5.50,
    "BILL_DUE_DAYS": 30,
    "TAX_RATE": 0.08,
    "SERVICE_CHARGE": 10.00,
}

PERIOD_DAYS = {"week": 7, "month": 30, "quarter": 90}
PERIOD_OPTIONS = ["all", "week", "month", "quarter"]


def ref_id(value: Any) -> str:
    """Identifier of a reference that may be raw or a populated document."""
    if isinstance(value, Mapping):
        value = value.get("_id", value.get("UserID", ""))
    return "" if value is None else str(value)


# ----------------------------- Form guards -----------------------------

def count_user_connections(connections: Iterable[Mapping[str, Any]], user_id: Any) -> int:
    target = ref_id(user_id)
    return sum(1 for c in connections if ref_id(c.get("UserID")) == target)


def connection_limit_guard(
    connections: Iterable[Mapping[str, Any]], limit: int = MAX_CONNECTIONS_PER_USER
) -> Guard:
    existing = list(connections)

    def guard(draft: Mapping[str, Any], mode: str) -> Optional[str]:
        user_id = draft.get("UserID")
        if mode != ADD or not ref_id(user_id):
            return None
        if count_user_connections(existing, user_id) >= limit:
            return f"This user already has {limit} connections. Cannot add more."
        return None

    return guard


def user_exists_guard(users: Iterable[Mapping[str, Any]], id_field: str = "UserID") -> Guard:
    known = {ref_id(u.get(id_field)) for u in users}

    def guard(draft: Mapping[str, Any], mode: str) -> Optional[str]:
        user_id = ref_id(draft.get("UserID"))
        # no user list loaded means nothing to check against
        if not user_id or not known:
            return None
        if user_id not in known:
            return "UserID is not present"
        return None

    return guard


# ----------------------------- Billing -----------------------------

def _money(value: float) -> float:
    return round(value, 2)


def calculate_bill_amount(units_consumed: float) -> Dict[str, float]:
    units = float(units_consumed or 0)
    base = units * BILL_CONFIG["FIXED_RATE_PER_UNIT"]
    tax = base * BILL_CONFIG["TAX_RATE"]
    total = base + tax + BILL_CONFIG["SERVICE_CHARGE"]
    return {
        "unitsConsumed": units,
        "ratePerUnit": BILL_CONFIG["FIXED_RATE_PER_UNIT"],
        "baseAmount": _money(base),
        "serviceCharge": BILL_CONFIG["SERVICE_CHARGE"],
        "taxRate": BILL_CONFIG["TAX_RATE"],
        "taxAmount": _money(tax),
        "totalAmount": _money(total),
    }


def as_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    ts = pd.to_datetime(value, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.date()


def generate_bill_from_reading(
    reading: Mapping[str, Any], connection: Mapping[str, Any], *, now: Optional[datetime] = None
) -> Dict[str, Any]:
    """Draft an unpaid bill for a meter reading at the fixed tariff."""
    now = now or datetime.now()
    amounts = calculate_bill_amount(float(reading.get("UnitsConsumed") or 0))
    bill_date = as_date(reading.get("ReadingDate")) or now.date()
    due_date = bill_date + timedelta(days=BILL_CONFIG["BILL_DUE_DAYS"])
    stamp = str(int(now.timestamp() * 1000))
    return {
        "_id": f"B{stamp}",
        "BillNumber": f"BILL-{stamp[-8:]}",
        "BillDate": bill_date.isoformat(),
        "DueDate": due_date.isoformat(),
        "Amount": amounts["totalAmount"],
        "BaseAmount": amounts["baseAmount"],
        "TaxAmount": amounts["taxAmount"],
        "ServiceCharge": amounts["serviceCharge"],
        "UnitsConsumed": amounts["unitsConsumed"],
        "RatePerUnit": amounts["ratePerUnit"],
        "TaxRate": amounts["taxRate"],
        "PaymentStatus": "Unpaid",
        "MeterReadingID": reading.get("_id"),
        "ConnectionID": connection.get("_id") or connection.get("ConnectionID"),
        "UserID": connection.get("UserID"),
    }


def bill_status(due_date: Any, payment_status: Optional[str], today: Optional[date] = None) -> str:
    if payment_status == "Paid":
        return "Paid"
    due = as_date(due_date)
    if due is None:
        return payment_status or "Unpaid"
    days_left = (due - (today or date.today())).days
    if days_left < 0:
        return "Overdue"
    if days_left <= 7:
        return "Due Soon"
    return "Unpaid"


def format_currency(amount: Any) -> str:
    try:
        value = float(amount)
    except (TypeError, ValueError):
        value = 0.0
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def bill_totals(bills: Iterable[Mapping[str, Any]]) -> Dict[str, float]:
    total = 0.0
    paid = 0.0
    for bill in bills:
        try:
            amount = float(bill.get("Amount") or 0)
        except (TypeError, ValueError):
            amount = 0.0
        total += amount
        if str(bill.get("PaymentStatus") or "").lower() == "paid":
            paid += amount
    return {"total": _money(total), "paid": _money(paid), "unpaid": _money(total - paid)}


# ----------------------------- Periods -----------------------------

def within_period(value: Any, period: str, today: Optional[date] = None) -> bool:
    """True when ``value`` falls inside the trailing week/month/quarter."""
    if period == "all" or period not in PERIOD_DAYS:
        return True
    when = as_date(value)
    if when is None:
        return False
    diff_days = abs(((today or date.today()) - when).days)
    return diff_days <= PERIOD_DAYS[period]
