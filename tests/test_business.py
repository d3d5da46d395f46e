"""Tests for billing arithmetic, guards and reporting periods."""

from datetime import date, datetime

import pytest

from conftest import connection
from waterdesk.business import (
    bill_status,
    bill_totals,
    calculate_bill_amount,
    connection_limit_guard,
    count_user_connections,
    format_currency,
    generate_bill_from_reading,
    ref_id,
    user_exists_guard,
    within_period,
)
from waterdesk.forms import ADD, EDIT


def test_calculate_bill_amount():
    amounts = calculate_bill_amount(12.5)
    assert amounts == {
        "unitsConsumed": 12.5,
        "ratePerUnit": 5.5,
        "baseAmount": 68.75,
        "serviceCharge": 10.0,
        "taxRate": 0.08,
        "taxAmount": 5.5,
        "totalAmount": 84.25,
    }


def test_zero_units_still_pays_service_charge():
    assert calculate_bill_amount(0)["totalAmount"] == 10.0


def test_generate_bill_from_reading():
    reading = {"_id": "R7", "ReadingDate": "2024-01-15", "UnitsConsumed": "20"}
    bill = generate_bill_from_reading(reading, {"_id": "C1", "UserID": "3"}, now=datetime(2024, 1, 16, 12, 0))

    assert bill["BillDate"] == "2024-01-15"
    assert bill["DueDate"] == "2024-02-14"
    assert bill["Amount"] == 128.8
    assert bill["PaymentStatus"] == "Unpaid"
    assert bill["MeterReadingID"] == "R7"
    assert bill["ConnectionID"] == "C1"
    assert bill["BillNumber"].startswith("BILL-")


@pytest.mark.parametrize(
    "due, status, expected",
    [
        ("2024-05-01", "Paid", "Paid"),
        ("2024-04-01", "Unpaid", "Overdue"),
        ("2024-04-20", "Unpaid", "Due Soon"),
        ("2024-04-15", "Unpaid", "Due Soon"),
        ("2024-06-01", "Unpaid", "Unpaid"),
        (None, "Overdue", "Overdue"),
        ("garbage", None, "Unpaid"),
    ],
)
def test_bill_status(due, status, expected):
    assert bill_status(due, status, today=date(2024, 4, 15)) == expected


def test_format_currency():
    assert format_currency(1234.5) == "$1,234.50"
    assert format_currency("7") == "$7.00"
    assert format_currency(-3) == "-$3.00"
    assert format_currency(None) == "$0.00"


def test_bill_totals():
    bills = [
        {"Amount": 100, "PaymentStatus": "Paid"},
        {"Amount": "50.25", "PaymentStatus": "Unpaid"},
        {"Amount": None, "PaymentStatus": "Overdue"},
    ]
    assert bill_totals(bills) == {"total": 150.25, "paid": 100.0, "unpaid": 50.25}


def test_ref_id_handles_populated_references():
    assert ref_id({"_id": "abc", "Name": "x"}) == "abc"
    assert ref_id(5) == "5"
    assert ref_id(None) == ""


class TestGuards:
    def test_count_user_connections(self):
        conns = [connection("A", "1"), connection("B", "1"), {"UserID": {"_id": "1"}}, connection("C", "2")]
        assert count_user_connections(conns, "1") == 3

    def test_limit_applies_only_to_add(self):
        guard = connection_limit_guard([connection("A", "1"), connection("B", "1")])
        assert guard({"UserID": "1"}, ADD) == "This user already has 2 connections. Cannot add more."
        assert guard({"UserID": "1"}, EDIT) is None
        assert guard({"UserID": "2"}, ADD) is None
        assert guard({"UserID": ""}, ADD) is None

    def test_user_exists(self):
        guard = user_exists_guard([{"UserID": "1"}, {"UserID": 2}])
        assert guard({"UserID": "2"}, ADD) is None
        assert guard({"UserID": "3"}, ADD) == "UserID is not present"
        assert guard({"UserID": ""}, ADD) is None

    def test_user_exists_skipped_without_users(self):
        assert user_exists_guard([])({"UserID": "3"}, ADD) is None


@pytest.mark.parametrize(
    "value, period, expected",
    [
        ("2024-04-10", "week", True),
        ("2024-04-01", "week", False),
        ("2024-03-20", "month", True),
        ("2024-01-01", "quarter", False),
        ("2024-01-20", "quarter", True),
        ("1999-01-01", "all", True),
        (None, "month", False),
    ],
)
def test_within_period(value, period, expected):
    assert within_period(value, period, today=date(2024, 4, 15)) is expected
