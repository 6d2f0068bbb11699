"""
Application State for Kitchen Duty Planner

Owns the roster and planning log (through the DataManager) and the one
plan currently being edited. Every user action returns an OperationResult
so the UI only has to present messages.
"""

import copy
import logging
import random
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from . import exporters, planner
from .calendar_bridge import CalendarBridge, UnavailableCalendarBridge
from .data_manager import DataManager, DataManagerError, Employee, LogEntry
from .duty_utils import UNASSIGNED_LABEL, generate_id, parse_date_de
from .ics_calendar import IcsMethod
from .planner import DutySlot, WeekConfiguration
from .reporting import ExportManager

logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    success: bool
    message: str = ""
    data: Any = None


class ValidationMessage:
    INVALID_DATE = "Bitte gültiges Datum eingeben (TT.MM.JJJJ)"
    NO_DAY_SELECTED = "Mindestens ein Tag muss ausgewählt sein"
    NO_ACTIVE_EMPLOYEES = "Keine aktiven Mitarbeitenden vorhanden"
    NO_ACTIVE_PLAN = "Keine Planung vorhanden"
    NAME_REQUIRED = "Bitte gib einen Namen ein."
    INVALID_EMAIL = "Bitte gib eine gültige E-Mail-Adresse ein (oder lasse das Feld leer)."
    NO_ORGANIZER = "Bitte wähle einen Mitarbeiter aus oder lege einen neuen an."


def employee_labels(employees: Iterable[Employee], reserved: Iterable[str] = ()) -> Dict[str, Employee]:
    """
    Unique display label per employee, in roster order.

    Names shared by several people get the email appended, or a counter
    when that is not enough.
    """
    employees = list(employees)
    name_counts: Dict[str, int] = {}
    for employee in employees:
        name_counts[employee.name] = name_counts.get(employee.name, 0) + 1

    taken = set(reserved)
    labels: Dict[str, Employee] = {}
    for employee in employees:
        label = employee.name
        if name_counts[employee.name] > 1 and employee.email:
            label = f"{employee.name} ({employee.email})"
        base, n = label, 2
        while label in taken:
            label = f"{base} ({n})"
            n += 1
        taken.add(label)
        labels[label] = employee
    return labels


class KitchenDutyState:
    """Single owner of roster, log and the in-progress plan"""

    def __init__(self, data_manager: DataManager, bridge: Optional[CalendarBridge] = None,
                 rng: Optional[random.Random] = None, today: Optional[date] = None):
        self.data_manager = data_manager
        self.bridge = bridge or UnavailableCalendarBridge()
        self.rng = rng or random.Random()
        self._today = today
        self.current_plan: List[DutySlot] = []
        self.export_manager = ExportManager(data_manager)

    @property
    def today(self) -> date:
        return self._today or date.today()

    @property
    def has_active_plan(self) -> bool:
        return bool(self.current_plan)

    @property
    def employees(self) -> List[Employee]:
        return self.data_manager.get_employees()

    @property
    def active_employees(self) -> List[Employee]:
        return self.data_manager.get_employees(active_only=True)

    @property
    def ics_method(self) -> IcsMethod:
        return IcsMethod.from_setting(self.data_manager.get_setting("icsMethod"))

    def _save(self) -> OperationResult:
        try:
            self.data_manager.save_data()
            return OperationResult(True)
        except DataManagerError as e:
            logger.error(f"Failed to persist state: {e}")
            return OperationResult(False, f"Speichern fehlgeschlagen: {e}")

    # Organizer
    def select_organizer(self, emp_id: Optional[str]) -> OperationResult:
        employee = self.data_manager.get_employee_by_id(emp_id)
        if employee is None:
            return OperationResult(False, ValidationMessage.NO_ORGANIZER)
        self.data_manager.set_organizer_id(employee.id)
        saved = self._save()
        return OperationResult(saved.success, saved.message, employee)

    def create_organizer(self, name: str, email: Optional[str] = None) -> OperationResult:
        result = self.add_employee(name, email)
        if not result.success:
            return result
        return self.select_organizer(result.data.id)

    @property
    def organizer(self) -> Optional[Employee]:
        return self.data_manager.get_organizer()

    # Roster
    def add_employee(self, name: str, email: Optional[str] = None,
                     last_duty: Union[str, date, None] = None) -> OperationResult:
        name = (name or "").strip()
        if not name:
            return OperationResult(False, ValidationMessage.NAME_REQUIRED)
        email = (email or "").strip()
        if email and "@" not in email:
            return OperationResult(False, ValidationMessage.INVALID_EMAIL)

        last_duty_date = parse_date_de(last_duty) if isinstance(last_duty, str) else last_duty
        employee = self.data_manager.add_employee(name, email or None, last_duty_date=last_duty_date)
        saved = self._save()
        return OperationResult(saved.success, saved.message, employee)

    def update_employee(self, emp_id: str, **changes) -> OperationResult:
        email = changes.get("email")
        if email and "@" not in email:
            return OperationResult(False, ValidationMessage.INVALID_EMAIL)
        try:
            updated = self.data_manager.update_employee(emp_id, **changes)
        except DataManagerError as e:
            return OperationResult(False, str(e))
        if not updated:
            return OperationResult(False, "Mitarbeiter nicht gefunden")
        return self._save()

    def set_last_duty_text(self, emp_id: str, text: str) -> OperationResult:
        """Free-text edit of the last duty date; unparseable input clears it"""
        parsed = parse_date_de(text)
        if parsed is None:
            return self.update_employee(emp_id, clear_last_duty_date=True)
        return self.update_employee(emp_id, last_duty_date=parsed)

    def toggle_active(self, emp_id: str) -> OperationResult:
        employee = self.data_manager.get_employee_by_id(emp_id)
        if employee is None:
            return OperationResult(False, "Mitarbeiter nicht gefunden")
        return self.update_employee(emp_id, is_active=not employee.is_active)

    def delete_employee(self, emp_id: str) -> OperationResult:
        if not self.data_manager.delete_employee(emp_id):
            return OperationResult(False, "Mitarbeiter nicht gefunden")
        return self._save()

    # Planning
    def build_week_config(self, start_date: Union[str, date, None],
                          days: Dict[str, bool]) -> OperationResult:
        parsed = parse_date_de(start_date) if isinstance(start_date, str) else start_date
        if parsed is None:
            return OperationResult(False, ValidationMessage.INVALID_DATE)
        config = WeekConfiguration.from_days(parsed, days)
        if config.selected_count == 0:
            return OperationResult(False, ValidationMessage.NO_DAY_SELECTED)
        return OperationResult(True, data=config)

    def start_plan(self, config: WeekConfiguration, keep_locked: bool = False) -> OperationResult:
        """Create a new plan; with ``keep_locked`` locked slots of the current plan survive"""
        if config.selected_count == 0:
            return OperationResult(False, ValidationMessage.NO_DAY_SELECTED)
        if not self.active_employees:
            return OperationResult(False, ValidationMessage.NO_ACTIVE_EMPLOYEES)

        existing = self.current_plan if keep_locked else []
        self.current_plan = planner.plan(config, self.employees, existing, today=self.today)
        return OperationResult(True, f"{len(self.current_plan)} Tage geplant", self.current_plan)

    def replan(self, config: WeekConfiguration) -> OperationResult:
        return self.start_plan(config, keep_locked=True)

    def reassign(self, slot_id: str, employee_id: Optional[str]) -> OperationResult:
        try:
            self.current_plan = planner.reassign(self.current_plan, slot_id, employee_id, self.employees)
        except ValueError as e:
            return OperationResult(False, str(e))
        return OperationResult(True, data=self.current_plan)

    def assignee_options(self, include_ids: Iterable[str] = ()) -> Dict[str, Optional[str]]:
        """
        Labels for the assignment picker mapped to employee ids.

        Active employees are offered, plus any ``include_ids`` already on the
        plan. Names shared by several people get the email (or a counter)
        appended so every label selects exactly one id.
        """
        wanted = set(include_ids)
        candidates = [e for e in self.employees if e.is_active or e.id in wanted]

        options: Dict[str, Optional[str]] = {UNASSIGNED_LABEL: None}
        for label, employee in employee_labels(candidates, reserved=options).items():
            options[label] = employee.id
        return options

    def set_locked(self, slot_ids: Iterable[str], locked: bool) -> OperationResult:
        self.current_plan = planner.set_locked(self.current_plan, slot_ids, locked)
        return OperationResult(True, data=self.current_plan)

    def shuffle(self) -> OperationResult:
        if not self.has_active_plan:
            return OperationResult(False, ValidationMessage.NO_ACTIVE_PLAN)
        self.current_plan = planner.reshuffle(self.current_plan, self.employees, self.rng)
        return OperationResult(True, data=self.current_plan)

    def cancel(self) -> OperationResult:
        self.current_plan = []
        return OperationResult(True)

    def confirm(self, planned_at: Optional[datetime] = None) -> OperationResult:
        """
        Turn the plan into log entries and stamp each employee's last duty date.

        Display names are refreshed from the roster first so the log shows
        current names. The plan is cleared only after a successful save.
        """
        if not self.has_active_plan:
            return OperationResult(False, ValidationMessage.NO_ACTIVE_PLAN)

        planned_at = planned_at or datetime.now()
        slots = planner.refresh_employee_names(self.current_plan, self.employees)

        entries = [
            LogEntry(id=generate_id(), date=s.date, employee_name=s.employee_name, planned_at=planned_at)
            for s in slots if s.employee_id
        ]

        latest: Dict[str, date] = {}
        for slot in slots:
            if slot.employee_id and (slot.employee_id not in latest or slot.date > latest[slot.employee_id]):
                latest[slot.employee_id] = slot.date

        snapshot = copy.deepcopy(self.data_manager.data)
        self.data_manager.append_log_entries(entries)
        self.data_manager.stamp_last_duty_dates(latest)
        saved = self._save()
        if not saved.success:
            self.data_manager.data = snapshot
            return saved

        self.current_plan = []
        logger.info(f"Confirmed plan with {len(entries)} assigned duties")
        return OperationResult(True, f"{len(entries)} Dienste bestätigt", entries)

    @property
    def log_entries(self) -> List[LogEntry]:
        return self.data_manager.get_log_entries()

    # Exports
    def export_ics(self, output_dir: Path) -> OperationResult:
        summary = exporters.download_ics_file(
            self.current_plan, self.employees, output_dir,
            method=self.ics_method, organizer=self.organizer, export_date=self.today,
        )
        if summary.success == 0:
            return OperationResult(False, ", ".join(summary.errors), summary)
        message = f"{summary.success} Termine exportiert"
        if summary.errors:
            message += f". Hinweise: {', '.join(summary.errors)}"
        return OperationResult(True, message, summary)

    def mailto_data(self) -> List[exporters.MailtoData]:
        return exporters.generate_mailto_data(
            self.current_plan, self.employees, method=self.ics_method, organizer=self.organizer
        )

    def send_mail_invitations(self, output_dir: Path, opener=None, sleep=None) -> OperationResult:
        """Save the ICS attachments and open one paced mail draft per employee"""
        if not self.has_active_plan:
            return OperationResult(False, ValidationMessage.NO_ACTIVE_PLAN)

        missing = [e.name for e in exporters.employees_without_email(self.current_plan, self.employees)]
        entries = self.mailto_data()
        if not entries:
            message = "Keine Mitarbeitenden mit E-Mail-Adresse eingeplant"
            if missing:
                message += f". Ohne E-Mail: {', '.join(missing)}"
            return OperationResult(False, message)

        kwargs = {"delay": float(self.data_manager.get_setting("mailDelaySeconds", 1.0))}
        if opener is not None:
            kwargs["opener"] = opener
        if sleep is not None:
            kwargs["sleep"] = sleep
        summary = exporters.open_mailto_batch(entries, output_dir, **kwargs)

        message = f"{summary.success} E-Mail-Entwürfe geöffnet. ICS-Dateien liegen in {output_dir}"
        if missing:
            message += f". Ohne E-Mail: {', '.join(missing)}"
        if summary.errors:
            message += f". Fehler: {', '.join(summary.errors)}"
        return OperationResult(summary.success > 0 and not summary.errors, message, summary)

    def open_outlook_web(self) -> OperationResult:
        if not self.has_active_plan:
            return OperationResult(False, ValidationMessage.NO_ACTIVE_PLAN)
        summary = exporters.open_multiple_outlook_web(self.current_plan, self.employees)
        message = f"{summary.success} Termine in Outlook Web geöffnet"
        if summary.errors:
            message += f". Hinweise: {', '.join(summary.errors)}"
        return OperationResult(summary.success > 0, message, summary)

    def export_report(self, format_type: str, output_path: str) -> OperationResult:
        if not self.has_active_plan:
            return OperationResult(False, ValidationMessage.NO_ACTIVE_PLAN)
        try:
            exported = self.export_manager.export_plan(self.current_plan, format_type, output_path)
        except ValueError as e:
            return OperationResult(False, str(e))
        if not exported:
            return OperationResult(False, "Export fehlgeschlagen. Details stehen in der Logdatei.")
        return OperationResult(True, f"Exportiert nach {output_path}", output_path)

    def open_in_calendar(self, emp_id: str) -> OperationResult:
        employee = self.data_manager.get_employee_by_id(emp_id)
        if employee is None:
            return OperationResult(False, "Mitarbeiter nicht gefunden")
        result = exporters.open_employee_duties_in_calendar(
            self.bridge, self.current_plan, employee, method=self.ics_method, organizer=self.organizer
        )
        return OperationResult(result.success, result.error or "", result)

    def open_slot_in_calendar(self, slot_id: str) -> OperationResult:
        slot = next((s for s in self.current_plan if s.id == slot_id), None)
        if slot is None:
            return OperationResult(False, "Tag nicht gefunden")
        employee = self.data_manager.get_employee_by_id(slot.employee_id) if slot.employee_id else None
        result = exporters.open_slot_in_calendar(
            self.bridge, slot, employee, method=self.ics_method, organizer=self.organizer
        )
        return OperationResult(result.success, result.error or "", result)

    def open_all_in_calendar(self) -> OperationResult:
        results = exporters.open_all_duties_in_calendar(
            self.bridge, self.current_plan, self.employees, method=self.ics_method, organizer=self.organizer
        )
        counts = exporters.summarize_results(results)
        return OperationResult(
            counts["failed"] == 0,
            f"{counts['success']} erfolgreich, {counts['failed']} Fehler",
            results,
        )

    def send_meeting_requests(self, display_only: bool = False) -> OperationResult:
        response = exporters.send_meeting_requests(
            self.bridge, self.current_plan, self.employees,
            display_only=display_only,
            location=self.data_manager.get_setting("defaultLocation"),
            organizer=self.organizer,
        )
        if response.error:
            return OperationResult(False, response.error, response)
        counts = exporters.summarize_results(response.results)
        return OperationResult(
            response.success,
            f"{counts['success']} erfolgreich, {counts['failed']} Fehler",
            response,
        )
