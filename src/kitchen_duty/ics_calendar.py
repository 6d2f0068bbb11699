"""
ICS Serializer for Kitchen Duty Plans

Renders assigned duty slots as all-day iCalendar events. PUBLISH files
carry no organizer or attendees and import cleanly into any calendar;
REQUEST files add both so a client can treat them as meeting invitations.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional, Sequence

from icalendar import Calendar, Event, vCalAddress, vText

from .data_manager import Employee

logger = logging.getLogger(__name__)

PRODID = "-//Küchendienst//Kitchen Duty Planner//DE"
UID_DOMAIN = "kuechendienst"

_uid_lock = threading.Lock()
_last_uid_millis = 0


class IcsMethod(Enum):
    PUBLISH = "PUBLISH"
    REQUEST = "REQUEST"

    @classmethod
    def from_setting(cls, value: Optional[str]) -> 'IcsMethod':
        try:
            return cls((value or cls.PUBLISH.value).upper())
        except ValueError:
            logger.warning(f"Unknown ICS method setting {value!r}, using PUBLISH")
            return cls.PUBLISH


class SlotError:
    """Per-slot messages reported instead of raising"""
    UNASSIGNED = "Kein Mitarbeiter zugewiesen"
    UNKNOWN_EMPLOYEE = "Mitarbeiter nicht gefunden"
    NO_EMAIL = "hat keine E-Mail-Adresse"


@dataclass
class IcsExport:
    """Serialized calendar plus the slots that could not be exported"""
    content: str
    event_count: int
    errors: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.event_count == 0


def event_summary(employee: Employee) -> str:
    return f"Küchendienst - {employee.name}"


def event_description(slot) -> str:
    return f"Küchendienst am {slot.weekday_label}"


def _mailto(employee: Employee) -> vCalAddress:
    address = vCalAddress(f"mailto:{employee.email}")
    address.params["cn"] = vText(employee.name)
    return address


def _to_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def next_uid_millis(moment: datetime) -> int:
    """
    Millisecond value for event UIDs generated at ``moment``.

    Strictly increasing across calls within the process, so two exports in
    the same millisecond still get distinct UIDs.
    """
    global _last_uid_millis
    with _uid_lock:
        millis = max(_to_millis(moment), _last_uid_millis + 1)
        _last_uid_millis = millis
        return millis


def build_event(slot, employee: Employee, stamp: datetime, method: IcsMethod = IcsMethod.PUBLISH,
                organizer: Optional[Employee] = None, uid_millis: Optional[int] = None) -> Event:
    """
    One all-day VEVENT: DTEND is the following day (exclusive end).

    The UID combines the slot id with the generation time in milliseconds so
    repeated exports of the same slot never collide. DTSTAMP is written with
    whole seconds.
    """
    if uid_millis is None:
        uid_millis = _to_millis(stamp)
    event = Event()
    event.add("uid", f"{slot.id}-{uid_millis}@{UID_DOMAIN}")
    event.add("dtstamp", stamp.replace(microsecond=0))
    event.add("dtstart", slot.date)
    event.add("dtend", slot.date + timedelta(days=1))
    event.add("summary", event_summary(employee))
    event.add("description", event_description(slot))

    if method is IcsMethod.REQUEST:
        event.add("organizer", _mailto(organizer))
        attendee = _mailto(employee)
        attendee.params["role"] = vText("REQ-PARTICIPANT")
        attendee.params["partstat"] = vText("NEEDS-ACTION")
        attendee.params["rsvp"] = vText("TRUE")
        event.add("attendee", attendee)
        event.add("status", "CONFIRMED")
        event.add("transp", "TRANSPARENT")

    return event


def _new_calendar(method: IcsMethod) -> Calendar:
    cal = Calendar()
    cal.add("prodid", PRODID)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("method", method.value)
    return cal


def serialize(slots: Sequence, roster: Sequence[Employee], method: IcsMethod = IcsMethod.PUBLISH,
              employee: Optional[Employee] = None, organizer: Optional[Employee] = None,
              now: Optional[datetime] = None) -> IcsExport:
    """
    Serialize duty slots to iCalendar text.

    Args:
        slots: Duty slots of the current plan
        roster: Employees used to resolve slot assignments
        method: PUBLISH (plain import) or REQUEST (meeting invitation)
        employee: Restrict the file to this employee's duties
        organizer: Required for REQUEST; must have an email address
        now: Generation timestamp, defaults to the current UTC time. A
            given timestamp makes the output reproducible.

    Returns:
        IcsExport whose content is '' when no event could be produced
    """
    if now is None:
        stamp = datetime.now(timezone.utc)
        uid_millis = next_uid_millis(stamp)
    else:
        stamp = now.astimezone(timezone.utc)
        uid_millis = _to_millis(stamp)
    employees = {e.id: e for e in roster}
    errors = []

    if method is IcsMethod.REQUEST and (organizer is None or not organizer.email):
        return IcsExport(content="", event_count=0, errors=["Kein Organisator mit E-Mail-Adresse hinterlegt"])

    cal = _new_calendar(method)
    event_count = 0

    for slot in slots:
        if employee is not None and slot.employee_id != employee.id:
            continue
        if slot.employee_id is None:
            errors.append(f"{slot.weekday_label}: {SlotError.UNASSIGNED}")
            continue

        assignee = employees.get(slot.employee_id)
        if assignee is None:
            errors.append(f"{slot.weekday_label}: {SlotError.UNKNOWN_EMPLOYEE}")
            continue
        if method is IcsMethod.REQUEST and not assignee.email:
            errors.append(f"{slot.weekday_label}: {assignee.name} {SlotError.NO_EMAIL}")
            continue

        cal.add_component(build_event(slot, assignee, stamp, method, organizer, uid_millis))
        event_count += 1

    if event_count == 0:
        return IcsExport(content="", event_count=0, errors=errors)

    logger.debug(f"Serialized {event_count} duty events ({method.value})")
    return IcsExport(content=cal.to_ical().decode("utf-8"), event_count=event_count, errors=errors)


def serialize_for_employee(slots: Sequence, employee: Employee, method: IcsMethod = IcsMethod.PUBLISH,
                           organizer: Optional[Employee] = None) -> str:
    """ICS text with only ``employee``'s duties, or '' when they have none"""
    return serialize(slots, [employee], method=method, employee=employee, organizer=organizer).content
