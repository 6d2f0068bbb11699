"""
Date and Priority Utilities for Kitchen Duty Planning

German weekday labels, date parsing/formatting in the dd.MM.yyyy locale,
and the "days since last duty" ranking used by the rotation planner.
"""

import math
import uuid
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Union


DATE_FORMAT_DE = "%d.%m.%Y"
DATETIME_FORMAT_DE = "%d.%m.%Y %H:%M"

UNASSIGNED_LABEL = "– Nicht zugewiesen –"

WEEKDAYS_DE = {
    0: "Montag",
    1: "Dienstag",
    2: "Mittwoch",
    3: "Donnerstag",
    4: "Freitag",
    5: "Samstag",
    6: "Sonntag",
}

# Keys of WeekConfiguration.day_flags in Mon..Fri order
WEEKDAY_KEYS = ("montag", "dienstag", "mittwoch", "donnerstag", "freitag")


def generate_id() -> str:
    """Opaque identifier for employees, slots and log entries"""
    return str(uuid.uuid4())


def weekday_label(day: date) -> str:
    return WEEKDAYS_DE[day.weekday()]


def get_next_monday(today: Optional[date] = None) -> date:
    """Monday of the week following ``today``"""
    today = today or date.today()
    in_a_week = today + timedelta(days=7)
    return in_a_week - timedelta(days=in_a_week.weekday())


def format_date_de(value: Union[date, datetime]) -> str:
    return value.strftime(DATE_FORMAT_DE)


def format_datetime_de(value: datetime) -> str:
    return value.strftime(DATETIME_FORMAT_DE)


def parse_date_de(text: Optional[str]) -> Optional[date]:
    """
    Parse a user supplied date.

    Accepts ``dd.MM.yyyy`` first and ISO ``yyyy-MM-dd`` second. Returns None
    for empty or invalid input instead of raising.
    """
    if not text:
        return None

    text = text.strip()
    parts = text.split(".")
    if len(parts) == 3:
        try:
            day, month, year = (int(p) for p in parts)
            return date(year, month, day)
        except ValueError:
            return None

    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def days_since_last_duty(employee, today: Optional[date] = None) -> float:
    """
    Whole days since the employee's last duty.

    Employees who never had a duty (or whose stored date cannot be read)
    get ``math.inf`` so they always rank first.
    """
    last = employee.last_duty_date
    if last is None:
        return math.inf
    if isinstance(last, str):
        last = parse_date_de(last)
        if last is None:
            return math.inf

    today = today or date.today()
    return (today - last).days


def sort_employees_by_priority(employees: Iterable, today: Optional[date] = None) -> List:
    """Active employees, longest without duty first. Ties keep roster order."""
    today = today or date.today()
    active = [e for e in employees if e.is_active]
    return sorted(active, key=lambda e: days_since_last_duty(e, today), reverse=True)


def generate_week_dates(config) -> List[date]:
    """Concrete dates for every flagged weekday in [start_date, start_date + 4]"""
    return [
        config.start_date + timedelta(days=offset)
        for offset, flagged in enumerate(config.day_flags[:5])
        if flagged
    ]


def name_slug(name: str) -> str:
    """File-name friendly form of an employee name"""
    return "-".join(name.lower().split())
