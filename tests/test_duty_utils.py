"""
Tests for date handling and duty priority ranking.
"""

import math
import sys
from datetime import date
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from kitchen_duty.data_manager import Employee
from kitchen_duty.duty_utils import (
    days_since_last_duty,
    format_date_de,
    generate_week_dates,
    get_next_monday,
    name_slug,
    parse_date_de,
    sort_employees_by_priority,
    weekday_label,
)
from kitchen_duty.planner import WeekConfiguration


def test_next_monday_is_in_the_following_week():
    """
    Why this is important: The week dialog proposes this date. Planning the
    current week by accident would schedule duties that are already past.
    """
    assert get_next_monday(date(2024, 6, 5)) == date(2024, 6, 10)   # Wednesday
    assert get_next_monday(date(2024, 6, 3)) == date(2024, 6, 10)   # Monday
    assert get_next_monday(date(2024, 6, 9)) == date(2024, 6, 10)   # Sunday


def test_parse_date_accepts_german_then_iso():
    assert parse_date_de("03.06.2024") == date(2024, 6, 3)
    assert parse_date_de(" 3.6.2024 ") == date(2024, 6, 3)
    assert parse_date_de("2024-06-03") == date(2024, 6, 3)


def test_parse_date_returns_none_for_bad_input():
    """
    Why this is important: Free-text date fields must never crash the UI;
    an invalid date is treated as "no date".
    """
    assert parse_date_de("") is None
    assert parse_date_de(None) is None
    assert parse_date_de("31.02.2024") is None
    assert parse_date_de("morgen") is None


def test_format_date_de():
    assert format_date_de(date(2024, 6, 3)) == "03.06.2024"
    assert weekday_label(date(2024, 6, 3)) == "Montag"


def test_never_on_duty_ranks_as_infinite():
    employee = Employee(id="a", name="Anna")
    assert days_since_last_duty(employee, date(2024, 6, 1)) == math.inf

    employee.last_duty_date = date(2024, 5, 22)
    assert days_since_last_duty(employee, date(2024, 6, 1)) == 10


def test_priority_sort_skips_inactive_and_keeps_roster_order_on_ties():
    """
    Why this is important: Ties must be broken deterministically, otherwise
    the same roster could produce different plans on every run.
    """
    today = date(2024, 6, 1)
    roster = [
        Employee(id="1", name="Ben", last_duty_date=date(2024, 5, 30)),
        Employee(id="2", name="Cleo"),
        Employee(id="3", name="Dana", is_active=False),
        Employee(id="4", name="Emil"),
        Employee(id="5", name="Finn", last_duty_date=date(2024, 5, 1)),
    ]

    ranked = sort_employees_by_priority(roster, today)

    assert [e.name for e in ranked] == ["Cleo", "Emil", "Finn", "Ben"]


def test_week_dates_follow_the_day_flags():
    config = WeekConfiguration(date(2024, 6, 3), (True, False, True, False, True))

    assert generate_week_dates(config) == [date(2024, 6, 3), date(2024, 6, 5), date(2024, 6, 7)]


def test_name_slug():
    assert name_slug("Anna Maria Schulz") == "anna-maria-schulz"
