"""
Rotation Planner for Kitchen Duty

Turns a week configuration and the employee roster into an ordered batch
of duty slots, and re-randomizes unlocked slots on request. Locked slots
are carried through both operations unchanged.
"""

import logging
import random
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .data_manager import Employee
from .duty_utils import (
    UNASSIGNED_LABEL,
    WEEKDAY_KEYS,
    generate_id,
    generate_week_dates,
    sort_employees_by_priority,
    weekday_label,
)

logger = logging.getLogger(__name__)


@dataclass
class WeekConfiguration:
    """Week to plan: start date plus Mon..Fri selection flags"""
    start_date: date
    day_flags: Tuple[bool, bool, bool, bool, bool] = (True, True, True, True, True)

    @classmethod
    def from_days(cls, start_date: date, days: Dict[str, bool]) -> 'WeekConfiguration':
        """Build from a {'montag': True, ...} mapping as used by the week dialog"""
        return cls(start_date=start_date, day_flags=tuple(bool(days.get(k)) for k in WEEKDAY_KEYS))

    @property
    def selected_count(self) -> int:
        return sum(1 for flag in self.day_flags if flag)


@dataclass
class DutySlot:
    """One day's kitchen duty assignment within a planning session"""
    date: date
    weekday_label: str
    employee_id: Optional[str] = None
    employee_name: str = UNASSIGNED_LABEL
    is_locked: bool = False
    id: str = field(default_factory=generate_id)

    @property
    def is_assigned(self) -> bool:
        return self.employee_id is not None


def _assigned(slot: DutySlot, employee: Optional[Employee]) -> DutySlot:
    if employee is None:
        return replace(slot, employee_id=None, employee_name=UNASSIGNED_LABEL)
    return replace(slot, employee_id=employee.id, employee_name=employee.name)


def _sorted_by_date(slots: Iterable[DutySlot]) -> List[DutySlot]:
    return sorted(slots, key=lambda s: s.date)


def plan(config: WeekConfiguration, roster: Sequence[Employee],
         existing_plan: Sequence[DutySlot] = (), today: Optional[date] = None) -> List[DutySlot]:
    """
    Produce a duty batch for the configured week.

    Active employees are ranked by days since their last duty (never on duty
    first). Locked slots from ``existing_plan`` that fall on a target date are
    kept as they are and their employee is not assigned a second time. When
    the pool runs out the remaining slots stay unassigned.
    """
    dates = generate_week_dates(config)
    prioritized = sort_employees_by_priority(roster, today)

    locked_by_date = {}
    for slot in existing_plan:
        if slot.is_locked and slot.date in dates and slot.date not in locked_by_date:
            locked_by_date[slot.date] = slot

    used_ids = {s.employee_id for s in locked_by_date.values() if s.employee_id}
    pool = [e for e in prioritized if e.id not in used_ids]

    batch = []
    for day in sorted(dates):
        locked = locked_by_date.get(day)
        if locked is not None:
            batch.append(locked)
            continue

        employee = pool.pop(0) if pool else None
        batch.append(_assigned(DutySlot(date=day, weekday_label=weekday_label(day)), employee))

    unassigned = sum(1 for s in batch if not s.is_assigned)
    logger.info(f"Planned {len(batch)} duty slots starting {config.start_date} "
                f"({len(locked_by_date)} locked, {unassigned} unassigned)")
    return _sorted_by_date(batch)


def reshuffle(current_plan: Sequence[DutySlot], roster: Sequence[Employee],
              rng: Optional[random.Random] = None) -> List[DutySlot]:
    """Randomly reassign all unlocked slots; locked slots and their employees are left alone"""
    rng = rng or random.Random()

    locked = [s for s in current_plan if s.is_locked]
    unlocked = [s for s in current_plan if not s.is_locked]

    pinned_ids = {s.employee_id for s in locked if s.employee_id}
    pool = [e for e in roster if e.is_active and e.id not in pinned_ids]
    rng.shuffle(pool)

    reassigned = []
    for index, slot in enumerate(unlocked):
        employee = pool[index] if index < len(pool) else None
        reassigned.append(_assigned(slot, employee))

    logger.info(f"Reshuffled {len(unlocked)} unlocked slots with {len(pool)} available employees")
    return _sorted_by_date(locked + reassigned)


def reassign(current_plan: Sequence[DutySlot], slot_id: str, employee_id: Optional[str],
             roster: Sequence[Employee]) -> List[DutySlot]:
    """
    Manually assign ``employee_id`` (or nobody) to one slot.

    Raises ValueError for unknown slots, locked slots and unknown employees.
    """
    employees = {e.id: e for e in roster}
    if employee_id is not None and employee_id not in employees:
        raise ValueError(f"Unknown employee: {employee_id}")

    result = []
    found = False
    for slot in current_plan:
        if slot.id == slot_id:
            if slot.is_locked:
                raise ValueError(f"Slot {slot_id} is locked")
            slot = _assigned(slot, employees.get(employee_id))
            found = True
        result.append(slot)

    if not found:
        raise ValueError(f"Unknown duty slot: {slot_id}")
    return result


def set_locked(current_plan: Sequence[DutySlot], slot_ids: Iterable[str], locked: bool) -> List[DutySlot]:
    ids = set(slot_ids)
    return [replace(s, is_locked=locked) if s.id in ids else s for s in current_plan]


def refresh_employee_names(current_plan: Sequence[DutySlot], roster: Sequence[Employee]) -> List[DutySlot]:
    """Re-derive display names from the roster; unknown ids keep their stored name"""
    names = {e.id: e.name for e in roster}
    result = []
    for slot in current_plan:
        if slot.employee_id is None:
            name = UNASSIGNED_LABEL
        else:
            name = names.get(slot.employee_id, slot.employee_name)
        result.append(slot if name == slot.employee_name else replace(slot, employee_name=name))
    return result
