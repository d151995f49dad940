"""
Unit tests for retail_pulse/validators.py
"""
from datetime import date, datetime, timezone

import pytest

from retail_pulse.validators import (
    to_datetime,
    to_float,
    to_non_negative,
    to_number,
    unique,
)


class TestNumbers:

    @pytest.mark.parametrize("raw,expected", [
        ("1,234.50", 1234.5),
        ("$99", 99.0),
        ("12 %", 12.0),
        (7, 7.0),
        (2.5, 2.5),
    ])
    def test_to_float(self, raw, expected):
        assert to_float(raw) == expected

    @pytest.mark.parametrize("raw", [None, True, "abc", "", float("nan"), float("inf"), [1]])
    def test_to_float_rejects(self, raw):
        assert to_float(raw) is None

    def test_to_number_default(self):
        assert to_number("n/a") == 0.0
        assert to_number(None, 5) == 5

    def test_to_non_negative(self):
        assert to_non_negative(-3) == 0.0
        assert to_non_negative("4") == 4.0


class TestDates:

    def test_naive_string_is_utc(self):
        assert to_datetime("2024-03-01 10:00") == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)

    def test_date_object(self):
        assert to_datetime(date(2024, 3, 1)) == datetime(2024, 3, 1, tzinfo=timezone.utc)

    def test_us_format(self):
        assert to_datetime("03/01/2024").day == 1

    def test_unparseable(self):
        assert to_datetime("not a date") is None
        assert to_datetime("") is None


class TestUnique:

    def test_unique_keeps_first_seen_order(self):
        assert unique(["b", "a", "b", None, "", "c"]) == ["b", "a", "c"]
        assert unique(None) == []
