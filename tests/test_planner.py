"""
Test Suite for the Rotation Planner

Covers priority-based planning, locked slot carry-over, reshuffling
and manual edits of a plan.
"""

import random
import sys
from datetime import date
from pathlib import Path

import pytest

# Setup import path for src
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from kitchen_duty.data_manager import Employee
from kitchen_duty.duty_utils import UNASSIGNED_LABEL
from kitchen_duty.planner import (
    DutySlot,
    WeekConfiguration,
    plan,
    reassign,
    refresh_employee_names,
    reshuffle,
    set_locked,
)

TODAY = date(2024, 6, 1)
MONDAY = date(2024, 6, 3)


@pytest.fixture
def roster():
    return [
        Employee(id="anna", name="Anna", email="anna@example.com", last_duty_date=date(2024, 5, 31)),
        Employee(id="ben", name="Ben"),
        Employee(id="cleo", name="Cleo", email="cleo@example.com", last_duty_date=date(2024, 5, 20)),
        Employee(id="dana", name="Dana", is_active=False),
        Employee(id="emil", name="Emil", last_duty_date=date(2024, 5, 27)),
    ]


def test_longest_without_duty_gets_the_first_day():
    """
    Why this is important: The rotation is only fair if the person who has
    waited longest is planned first.
    """
    roster = [
        Employee(id="b", name="B", last_duty_date=date(2024, 5, 22)),
        Employee(id="a", name="A"),
    ]
    config = WeekConfiguration.from_days(MONDAY, {"montag": True, "dienstag": True})

    slots = plan(config, roster, today=TODAY)

    assert [(s.date, s.employee_name) for s in slots] == [
        (date(2024, 6, 3), "A"),
        (date(2024, 6, 4), "B"),
    ]
    assert [s.weekday_label for s in slots] == ["Montag", "Dienstag"]


def test_plan_creates_one_slot_per_selected_day(roster):
    config = WeekConfiguration(MONDAY, (True, False, True, False, True))

    slots = plan(config, roster, today=TODAY)

    assert len(slots) == 3
    assert [s.date for s in slots] == [date(2024, 6, 3), date(2024, 6, 5), date(2024, 6, 7)]
    assert len({s.employee_id for s in slots}) == 3


def test_inactive_employees_are_never_planned(roster):
    slots = plan(WeekConfiguration(MONDAY), roster, today=TODAY)

    assert "dana" not in {s.employee_id for s in slots}


def test_days_beyond_the_pool_stay_unassigned():
    """
    Why this is important: With fewer active people than days, nobody may be
    planned twice; the remaining days are shown as open.
    """
    roster = [Employee(id="a", name="A"), Employee(id="b", name="B")]

    slots = plan(WeekConfiguration(MONDAY), roster, today=TODAY)

    assert [s.employee_id for s in slots] == ["a", "b", None, None, None]
    assert all(s.employee_name == UNASSIGNED_LABEL for s in slots[2:])


def test_locked_slots_survive_replanning(roster):
    """
    Why this is important: Locking is how a planner fixes agreements made by
    hand. A replan must keep those slots and not plan the pinned person twice.
    """
    existing = [
        DutySlot(date=date(2024, 6, 4), weekday_label="Dienstag", employee_id="ben",
                 employee_name="Ben", is_locked=True, id="pinned"),
        DutySlot(date=date(2024, 6, 3), weekday_label="Montag", employee_id="cleo",
                 employee_name="Cleo", id="loose"),
    ]

    slots = plan(WeekConfiguration(MONDAY), roster, existing, today=TODAY)

    tuesday = next(s for s in slots if s.date == date(2024, 6, 4))
    assert tuesday.id == "pinned"
    assert tuesday.employee_id == "ben"
    assert tuesday.is_locked
    assert [s.employee_id for s in slots].count("ben") == 1
    assert "loose" not in {s.id for s in slots}


def test_locked_slot_outside_the_new_week_is_dropped(roster):
    existing = [DutySlot(date=date(2024, 5, 27), weekday_label="Montag", employee_id="ben",
                         employee_name="Ben", is_locked=True)]

    slots = plan(WeekConfiguration(MONDAY), roster, existing, today=TODAY)

    assert all(s.date >= MONDAY for s in slots)
    assert "ben" in {s.employee_id for s in slots}


def test_reshuffle_keeps_locked_slots_and_pinned_employees(roster):
    """
    Why this is important: Reshuffling may only touch open slots, and an
    employee fixed on one day must not reappear on another.
    """
    slots = plan(WeekConfiguration(MONDAY), roster, today=TODAY)
    slots = set_locked(slots, [slots[1].id], True)
    locked = slots[1]

    for seed in range(20):
        shuffled = reshuffle(slots, roster, random.Random(seed))

        assert len(shuffled) == len(slots)
        assert shuffled[1] == locked
        unlocked_ids = [s.employee_id for s in shuffled if not s.is_locked]
        assert locked.employee_id not in unlocked_ids
        assert "dana" not in unlocked_ids


def test_reshuffle_is_reproducible_with_seeded_rng(roster):
    slots = plan(WeekConfiguration(MONDAY), roster, today=TODAY)

    first = reshuffle(slots, roster, random.Random(7))
    second = reshuffle(slots, roster, random.Random(7))

    assert [s.employee_id for s in first] == [s.employee_id for s in second]


def test_reassign_sets_and_clears_an_employee(roster):
    slots = plan(WeekConfiguration(MONDAY), roster, today=TODAY)
    target = slots[0]

    slots = reassign(slots, target.id, "dana", roster)
    assert slots[0].employee_name == "Dana"

    slots = reassign(slots, target.id, None, roster)
    assert slots[0].employee_id is None
    assert slots[0].employee_name == UNASSIGNED_LABEL


def test_reassign_rejects_locked_and_unknown(roster):
    slots = plan(WeekConfiguration(MONDAY), roster, today=TODAY)
    locked = set_locked(slots, [slots[0].id], True)

    with pytest.raises(ValueError):
        reassign(locked, slots[0].id, "ben", roster)
    with pytest.raises(ValueError):
        reassign(slots, "missing", "ben", roster)
    with pytest.raises(ValueError):
        reassign(slots, slots[0].id, "nobody", roster)


def test_refresh_employee_names_follows_renames(roster):
    slots = plan(WeekConfiguration(MONDAY), roster, today=TODAY)
    renamed = [Employee(id=e.id, name=e.name.upper(), is_active=e.is_active) for e in roster]

    refreshed = refresh_employee_names(slots, renamed)

    assert all(s.employee_name == s.employee_name.upper() for s in refreshed if s.employee_id)
