"""
Export Adapters for Kitchen Duty Plans

Independent sinks for a serialized plan: ICS files on disk, mailto links,
Outlook Web compose links, and the desktop calendar bridge. Problems with
single slots or employees are collected and reported, never raised.
"""

import logging
import time
import webbrowser
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import quote, urlencode

from .calendar_bridge import (
    BRIDGE_UNAVAILABLE,
    CalendarBridge,
    MeetingItem,
    MeetingRequest,
    MeetingResponse,
)
from .data_manager import Employee
from .duty_utils import format_date_de, name_slug
from .ics_calendar import IcsMethod, SlotError, serialize

logger = logging.getLogger(__name__)

OUTLOOK_WEB_COMPOSE_URL = "https://outlook.office.com/calendar/0/deeplink/compose"
MAIL_SUBJECT = "Küchendienst-Termine"
NO_ASSIGNED_DUTIES = "Keine zugewiesenen Dienste gefunden"


@dataclass
class ExportSummary:
    """Outcome of a batch export: how many items worked and what went wrong"""
    success: int = 0
    errors: List[str] = field(default_factory=list)
    path: Optional[Path] = None

    @property
    def failed(self) -> int:
        return len(self.errors)


@dataclass
class MailtoData:
    employee_email: str
    employee_name: str
    subject: str
    body: str
    ics_content: str
    ics_file_name: str


@dataclass
class CalendarOpenResult:
    employee_name: str
    success: bool
    error: Optional[str] = None


def employee_ics_file_name(employee: Employee, duty_date: Optional[date] = None) -> str:
    if duty_date is not None:
        return f"kuechendienst-{name_slug(employee.name)}-{duty_date.isoformat()}.ics"
    return f"kuechendienst-{name_slug(employee.name)}.ics"


def plan_ics_file_name(export_date: Optional[date] = None) -> str:
    return f"kuechendienst-{(export_date or date.today()).isoformat()}.ics"


def _slots_of(slots: Sequence, employee: Employee) -> List:
    return [s for s in slots if s.employee_id == employee.id]


def _employees_with_duties(slots: Sequence, roster: Sequence[Employee]) -> List[Employee]:
    assigned = {s.employee_id for s in slots if s.employee_id}
    return [e for e in roster if e.id in assigned]


# File-download sink
def download_ics_file(slots: Sequence, roster: Sequence[Employee], output_dir: Path,
                      method: IcsMethod = IcsMethod.PUBLISH, organizer: Optional[Employee] = None,
                      export_date: Optional[date] = None) -> ExportSummary:
    """Write one ICS file with every resolvable assigned slot into ``output_dir``"""
    employees = {e.id for e in roster}
    summary = ExportSummary()

    exportable = []
    for slot in slots:
        if slot.employee_id is None:
            continue
        if slot.employee_id not in employees:
            summary.errors.append(f"{slot.weekday_label}: {SlotError.UNKNOWN_EMPLOYEE}")
            continue
        exportable.append(slot)

    if not exportable:
        return ExportSummary(success=0, errors=summary.errors or [NO_ASSIGNED_DUTIES])

    export = serialize(exportable, roster, method=method, organizer=organizer)
    summary.errors.extend(export.errors)
    if export.is_empty:
        return summary

    try:
        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)
        file_path = output_path / plan_ics_file_name(export_date)
        file_path.write_text(export.content, encoding="utf-8", newline="")
    except OSError as e:
        logger.error(f"Error writing ICS file: {e}", exc_info=True)
        summary.errors.append(f"Datei konnte nicht gespeichert werden: {e}")
        return summary

    summary.success = export.event_count
    summary.path = file_path
    logger.info(f"Exported {summary.success} duty events to {file_path}")
    return summary


def save_ics_for_employee(data: MailtoData, output_dir: Path) -> Optional[Path]:
    """Write the ICS attachment of a mailto entry; None when writing fails"""
    try:
        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)
        file_path = output_path / data.ics_file_name
        file_path.write_text(data.ics_content, encoding="utf-8", newline="")
        return file_path
    except OSError as e:
        logger.error(f"Error writing ICS file for {data.employee_name}: {e}", exc_info=True)
        return None


# Mailto sink
def mail_body(employee: Employee, employee_slots: Sequence) -> str:
    duty_dates = "\n".join(f"• {s.weekday_label}, {format_date_de(s.date)}" for s in employee_slots)
    return (
        f"Hallo {employee.name},\n\n"
        f"anbei deine Küchendienst-Termine:\n\n"
        f"{duty_dates}\n\n"
        f"Bitte füge die angehängte ICS-Datei zu deinem Kalender hinzu.\n\n"
        f"Viele Grüße"
    )


def generate_mailto_data(slots: Sequence, roster: Sequence[Employee],
                         method: IcsMethod = IcsMethod.PUBLISH,
                         organizer: Optional[Employee] = None) -> List[MailtoData]:
    """One entry per employee who has an email address and at least one duty"""
    result = []
    for employee in _employees_with_duties(slots, roster):
        if not employee.email:
            continue

        export = serialize(slots, roster, method=method, employee=employee, organizer=organizer)
        if export.is_empty:
            continue

        result.append(MailtoData(
            employee_email=employee.email,
            employee_name=employee.name,
            subject=MAIL_SUBJECT,
            body=mail_body(employee, _slots_of(slots, employee)),
            ics_content=export.content,
            ics_file_name=employee_ics_file_name(employee),
        ))
    return result


def employees_without_email(slots: Sequence, roster: Sequence[Employee]) -> List[Employee]:
    return [e for e in _employees_with_duties(slots, roster) if not e.email]


def build_mailto_url(data: MailtoData) -> str:
    return (
        f"mailto:{quote(data.employee_email, safe='')}"
        f"?subject={quote(data.subject, safe='')}"
        f"&body={quote(data.body, safe='')}"
    )


def open_mailto(data: MailtoData, opener: Callable[..., bool] = webbrowser.open) -> bool:
    """
    Open the mail client for one employee.

    mailto cannot carry attachments, so callers save the ICS file next to it.
    """
    try:
        return bool(opener(build_mailto_url(data), new=2))
    except webbrowser.Error as e:
        logger.error(f"Could not open mail client for {data.employee_name}: {e}")
        return False


def open_mailto_batch(entries: Sequence[MailtoData], output_dir: Path,
                      opener: Callable[..., bool] = webbrowser.open,
                      sleep: Callable[[float], Any] = time.sleep,
                      delay: float = 1.0) -> ExportSummary:
    """
    Save each entry's ICS attachment and open one compose window per entry.

    Mail clients drop launches that arrive back to back, so every window
    after the first waits ``delay`` seconds.
    """
    summary = ExportSummary(path=Path(output_dir))
    for index, data in enumerate(entries):
        if index > 0:
            sleep(delay)
        if save_ics_for_employee(data, output_dir) is None:
            summary.errors.append(f"{data.employee_name}: ICS-Datei konnte nicht gespeichert werden")
            continue
        if open_mailto(data, opener=opener):
            summary.success += 1
        else:
            summary.errors.append(f"{data.employee_name}: E-Mail-Programm konnte nicht geöffnet werden")

    logger.info(f"Opened {summary.success} of {len(entries)} mail drafts")
    return summary


# Outlook Web sink
def generate_outlook_web_url(slot, employee: Optional[Employee]) -> str:
    """Outlook Web 'new event' deeplink prefilled with the duty"""
    if employee is None or not employee.email:
        raise ValueError("Mitarbeiter hat keine E-Mail-Adresse hinterlegt")

    body = f"Küchendienst am {slot.weekday_label}, {format_date_de(slot.date)}\n\nZuständig: {employee.name}"
    params = {
        "subject": f"Küchendienst - {employee.name}",
        "body": body,
        "startdt": slot.date.isoformat(),
        "enddt": (slot.date + timedelta(days=1)).isoformat(),
        "allday": "true",
        "to": employee.email,
        "path": "/calendar/action/compose",
    }
    return f"{OUTLOOK_WEB_COMPOSE_URL}?{urlencode(params, quote_via=quote)}"


def open_multiple_outlook_web(slots: Sequence, roster: Sequence[Employee],
                              opener: Callable[..., bool] = webbrowser.open) -> ExportSummary:
    employees = {e.id: e for e in roster}
    summary = ExportSummary()

    for slot in slots:
        if slot.employee_id is None:
            summary.errors.append(f"{slot.weekday_label}: {SlotError.UNASSIGNED}")
            continue
        employee = employees.get(slot.employee_id)
        if employee is None:
            summary.errors.append(f"{slot.weekday_label}: {SlotError.UNKNOWN_EMPLOYEE}")
            continue
        if not employee.email:
            summary.errors.append(f"{slot.weekday_label}: {employee.name} {SlotError.NO_EMAIL}")
            continue

        try:
            opener(generate_outlook_web_url(slot, employee), new=2)
            summary.success += 1
        except webbrowser.Error as e:
            summary.errors.append(f"{slot.weekday_label}: {e}")

    return summary


# Platform bridge helpers
def _export_failure(export) -> str:
    return "; ".join(export.errors) or "Fehler beim Generieren der ICS-Datei"


def open_slot_in_calendar(bridge: CalendarBridge, slot, employee: Optional[Employee],
                          method: IcsMethod = IcsMethod.PUBLISH,
                          organizer: Optional[Employee] = None) -> CalendarOpenResult:
    """Hand a single duty day to the calendar application"""
    if employee is None or slot.employee_id != employee.id:
        return CalendarOpenResult(slot.employee_name, False, f"{slot.weekday_label}: {SlotError.UNASSIGNED}")
    if not bridge.is_available():
        return CalendarOpenResult(employee.name, False, BRIDGE_UNAVAILABLE)

    export = serialize([slot], [employee], method=method, organizer=organizer)
    if export.is_empty:
        return CalendarOpenResult(employee.name, False, _export_failure(export))

    result = bridge.open_ics(export.content, employee_ics_file_name(employee, slot.date))
    return CalendarOpenResult(employee.name, result.success, result.error)


def open_employee_duties_in_calendar(bridge: CalendarBridge, slots: Sequence, employee: Employee,
                                     method: IcsMethod = IcsMethod.PUBLISH,
                                     organizer: Optional[Employee] = None) -> CalendarOpenResult:
    if not bridge.is_available():
        return CalendarOpenResult(employee.name, False, BRIDGE_UNAVAILABLE)

    if not _slots_of(slots, employee):
        return CalendarOpenResult(employee.name, False, "Keine Termine für diesen Mitarbeiter")

    export = serialize(slots, [employee], method=method, employee=employee, organizer=organizer)
    if export.is_empty:
        return CalendarOpenResult(employee.name, False, _export_failure(export))

    result = bridge.open_ics(export.content, employee_ics_file_name(employee))
    return CalendarOpenResult(employee.name, result.success, result.error)


def open_all_duties_in_calendar(bridge: CalendarBridge, slots: Sequence, roster: Sequence[Employee],
                                method: IcsMethod = IcsMethod.PUBLISH,
                                organizer: Optional[Employee] = None) -> List[CalendarOpenResult]:
    """One ICS hand-off per employee with duties; failures are listed, not raised"""
    if not bridge.is_available():
        return [CalendarOpenResult("System", False, BRIDGE_UNAVAILABLE)]

    files = []
    skipped = []
    for employee in _employees_with_duties(slots, roster):
        export = serialize(slots, [employee], method=method, employee=employee, organizer=organizer)
        if export.is_empty:
            skipped.append(CalendarOpenResult(employee.name, False, _export_failure(export)))
            continue
        files.append((employee, {"icsContent": export.content, "fileName": employee_ics_file_name(employee)}))

    if not files and skipped:
        return skipped

    if not files:
        return [CalendarOpenResult("System", False, "Keine zugewiesenen Dienste")]

    results = bridge.open_multiple_ics([f for _, f in files])
    return [
        CalendarOpenResult(employee.name, r.success, r.error)
        for (employee, _), r in zip(files, results)
    ] + skipped


def build_meeting_items(slots: Sequence, roster: Sequence[Employee], location: Optional[str] = None,
                        organizer: Optional[Employee] = None) -> List[MeetingItem]:
    """
    One meeting item per assigned slot with a known employee.

    Employees without an email become items without attendees; the bridge
    reports those as failed instead of silently dropping them.
    """
    employees = {e.id: e for e in roster}
    items = []
    for slot in sorted(slots, key=lambda s: s.date):
        employee = employees.get(slot.employee_id) if slot.employee_id else None
        if employee is None:
            continue

        body = f"Küchendienst am {slot.weekday_label}, {format_date_de(slot.date)}\n\nZuständig: {employee.name}"
        if organizer is not None:
            body += f"\n\nGeplant von {organizer.name}"

        start = datetime.combine(slot.date, datetime.min.time())
        items.append(MeetingItem(
            date=slot.date,
            subject=f"Küchendienst - {employee.name}",
            body=body,
            start_local=start,
            end_local=start + timedelta(days=1),
            attendees=[employee.email] if employee.email else [],
            location=location,
        ))
    return items


def send_meeting_requests(bridge: CalendarBridge, slots: Sequence, roster: Sequence[Employee],
                          display_only: bool = False, location: Optional[str] = None,
                          organizer: Optional[Employee] = None) -> MeetingResponse:
    items = build_meeting_items(slots, roster, location=location, organizer=organizer)
    if not items:
        return MeetingResponse(success=False, error=NO_ASSIGNED_DUTIES)
    return bridge.send_meeting_requests(MeetingRequest(items=items, display_only=display_only))


def summarize_results(results: Sequence) -> Dict[str, int]:
    succeeded = sum(1 for r in results if r.success)
    return {"success": succeeded, "failed": len(results) - succeeded}
