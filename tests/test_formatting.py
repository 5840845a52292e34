from datetime import date, datetime, timezone

import pytest

from movehub.reports.formatting import (
    capitalize,
    format_currency,
    format_date,
    format_time,
    format_timestamp,
    group_indian,
    truncate_text,
)


@pytest.mark.parametrize(
    "value,expected",
    [
        (15000, "₹15,000"),
        (0, "₹0"),
        (None, "₹0"),
        (999, "₹999"),
        (1500000, "₹15,00,000"),
        (123456789, "₹12,34,56,789"),
        (2499.5, "₹2,500"),
        ("not a number", "₹0"),
        (-1200, "-₹1,200"),
    ],
)
def test_format_currency(value, expected):
    assert format_currency(value) == expected


def test_group_indian():
    assert group_indian("100000") == "1,00,000"
    assert group_indian("12") == "12"


def test_dates_are_day_first_in_india_time():
    # 20:00 UTC is already the next day in Asia/Kolkata
    ts = datetime(2025, 1, 1, 20, 0, 5, tzinfo=timezone.utc)
    assert format_date(ts) == "2/1/2025"
    assert format_time(ts) == "1:30:05 am"
    assert format_timestamp(ts) == "2/1/2025, 1:30:05 am"
    assert format_date(date(2025, 3, 9)) == "9/3/2025"
    assert format_date("2025-01-02T04:00:00Z") == "2/1/2025"
    assert format_date(None) == ""


def test_naive_datetimes_are_treated_as_utc():
    assert format_time(datetime(2025, 1, 1, 6, 30, 0)) == "12:00:00 pm"


def test_truncate_text_never_exceeds_budget():
    assert truncate_text("Teak wood dining table", 10) == "Teak wo..."
    assert len(truncate_text("x" * 500, 45)) == 45
    assert truncate_text("short", 45) == "short"
    assert truncate_text(None, 5) == ""


def test_capitalize():
    assert capitalize("damaged") == "Damaged"
    assert capitalize("") == ""
