"""
User Interface for Kitchen Duty Planner

CustomTkinter-based GUI with week planning, lockable duty table, employee
management, planning log and calendar/mail hand-off of confirmed duties.
"""

import customtkinter as ctk
from tkinter import messagebox, filedialog
from pathlib import Path
from typing import Callable, Dict, List, Optional
import threading
import logging

from .app_state import KitchenDutyState, OperationResult, employee_labels
from .data_manager import Employee
from .duty_utils import (
    UNASSIGNED_LABEL,
    WEEKDAY_KEYS,
    WEEKDAYS_DE,
    format_date_de,
    format_datetime_de,
    get_next_monday,
)
from .planner import DutySlot

logger = logging.getLogger(__name__)


# Configure CustomTkinter
ctk.set_appearance_mode("light")
ctk.set_default_color_theme("blue")


def _center_on_parent(window, parent):
    window.update_idletasks()
    x = parent.winfo_x() + (parent.winfo_width() // 2) - (window.winfo_width() // 2)
    y = parent.winfo_y() + (parent.winfo_height() // 2) - (window.winfo_height() // 2)
    window.geometry(f"+{x}+{y}")


class OrganizerDialog(ctk.CTkToplevel):
    """
    Asks who is planning before anything else can be done.

    The organizer is either picked from the roster or created on the spot;
    the dialog cannot be dismissed without a valid choice.
    """

    NEW_ENTRY = "+ Neu anlegen"

    def __init__(self, parent, app_state: KitchenDutyState, on_done: Callable[[Employee], None]):
        super().__init__(parent)
        self.app_state = app_state
        self.on_done = on_done

        self.title("Wer plant?")
        self.geometry("420x330")
        self.resizable(False, False)
        self.transient(parent)
        self.grab_set()
        self.protocol("WM_DELETE_WINDOW", self._on_close)

        self._employees = employee_labels(app_state.employees, reserved=[self.NEW_ENTRY])
        self._create_widgets()
        _center_on_parent(self, parent)

    def _create_widgets(self):
        main_frame = ctk.CTkFrame(self)
        main_frame.pack(fill="both", expand=True, padx=20, pady=20)

        ctk.CTkLabel(
            main_frame,
            text="Organisator auswählen",
            font=ctk.CTkFont(size=16, weight="bold")
        ).pack(anchor="w", pady=(0, 10))

        values = list(self._employees) + [self.NEW_ENTRY]
        self.choice_var = ctk.StringVar(value=values[0])
        ctk.CTkOptionMenu(
            main_frame,
            values=values,
            variable=self.choice_var,
            command=self._on_choice_change,
            width=340
        ).pack(pady=(0, 15))

        self.new_frame = ctk.CTkFrame(main_frame)

        ctk.CTkLabel(self.new_frame, text="Name:").pack(anchor="w", pady=(5, 2))
        self.name_entry = ctk.CTkEntry(self.new_frame, width=320)
        self.name_entry.pack(pady=(0, 8))

        ctk.CTkLabel(self.new_frame, text="E-Mail (optional):").pack(anchor="w", pady=(0, 2))
        self.email_entry = ctk.CTkEntry(self.new_frame, width=320)
        self.email_entry.pack(pady=(0, 8))

        self._on_choice_change(self.choice_var.get())

        ctk.CTkButton(
            main_frame,
            text="Weiter",
            command=self._confirm,
            width=120
        ).pack(side="bottom", anchor="e", pady=(10, 0))

    def _on_choice_change(self, value):
        if value == self.NEW_ENTRY:
            self.new_frame.pack(fill="x")
        else:
            self.new_frame.pack_forget()

    def _confirm(self):
        choice = self.choice_var.get()
        if choice == self.NEW_ENTRY:
            result = self.app_state.create_organizer(self.name_entry.get(), self.email_entry.get())
        else:
            employee = self._employees.get(choice)
            result = self.app_state.select_organizer(employee.id if employee else None)

        if not result.success:
            messagebox.showerror("Fehler", result.message, parent=self)
            return

        self.grab_release()
        self.destroy()
        self.on_done(result.data)

    def _on_close(self):
        messagebox.showwarning("Organisator", "Bitte wähle zuerst aus, wer plant.", parent=self)


class WeekConfigDialog(ctk.CTkToplevel):
    """Dialog for choosing the planned week and its duty days"""

    def __init__(self, parent, app_state: KitchenDutyState, callback: Callable = None):
        super().__init__(parent)
        self.app_state = app_state
        self.callback = callback

        self.title("Woche planen")
        self.geometry("360x360")
        self.transient(parent)
        self.grab_set()

        self._create_widgets()
        _center_on_parent(self, parent)

    def _create_widgets(self):
        main_frame = ctk.CTkFrame(self)
        main_frame.pack(fill="both", expand=True, padx=20, pady=20)

        ctk.CTkLabel(main_frame, text="Startdatum (TT.MM.JJJJ):").pack(anchor="w", pady=(0, 5))
        self.start_entry = ctk.CTkEntry(main_frame, width=200)
        self.start_entry.insert(0, format_date_de(get_next_monday(self.app_state.today)))
        self.start_entry.pack(anchor="w", pady=(0, 15))

        ctk.CTkLabel(main_frame, text="Tage:").pack(anchor="w", pady=(0, 5))
        self.day_vars: Dict[str, ctk.BooleanVar] = {}
        for index, key in enumerate(WEEKDAY_KEYS):
            var = ctk.BooleanVar(value=True)
            ctk.CTkCheckBox(main_frame, text=WEEKDAYS_DE[index], variable=var).pack(anchor="w", pady=2)
            self.day_vars[key] = var

        button_frame = ctk.CTkFrame(main_frame)
        button_frame.pack(fill="x", pady=(15, 0))

        ctk.CTkButton(button_frame, text="Abbrechen", command=self.destroy, width=100).pack(side="right", padx=(10, 0))
        ctk.CTkButton(button_frame, text="Planen", command=self._save, width=100).pack(side="right")

    def _save(self):
        days = {key: var.get() for key, var in self.day_vars.items()}
        result = self.app_state.build_week_config(self.start_entry.get(), days)
        if not result.success:
            messagebox.showerror("Fehler", result.message, parent=self)
            return

        self.destroy()
        if self.callback:
            self.callback(result.data)


class EmployeeDialog(ctk.CTkToplevel):
    """Dialog for adding/editing employees"""

    def __init__(self, parent, employee: Optional[Employee] = None, callback: Callable = None):
        super().__init__(parent)
        self.employee = employee
        self.callback = callback

        self.title("Mitarbeiter hinzufügen" if employee is None else "Mitarbeiter bearbeiten")
        self.geometry("400x320")
        self.transient(parent)
        self.grab_set()

        self._create_widgets()
        self._populate_fields()
        _center_on_parent(self, parent)

    def _create_widgets(self):
        main_frame = ctk.CTkFrame(self)
        main_frame.pack(fill="both", expand=True, padx=20, pady=20)

        ctk.CTkLabel(main_frame, text="Name:").pack(anchor="w", pady=(0, 5))
        self.name_entry = ctk.CTkEntry(main_frame, width=300)
        self.name_entry.pack(pady=(0, 10))

        ctk.CTkLabel(main_frame, text="E-Mail:").pack(anchor="w", pady=(0, 5))
        self.email_entry = ctk.CTkEntry(main_frame, width=300)
        self.email_entry.pack(pady=(0, 10))

        ctk.CTkLabel(main_frame, text="Letzter Dienst (TT.MM.JJJJ):").pack(anchor="w", pady=(0, 5))
        self.last_duty_entry = ctk.CTkEntry(main_frame, width=300)
        self.last_duty_entry.pack(pady=(0, 15))

        button_frame = ctk.CTkFrame(main_frame)
        button_frame.pack(fill="x", pady=(10, 0))

        ctk.CTkButton(button_frame, text="Abbrechen", command=self._cancel, width=100).pack(side="right", padx=(10, 0))
        ctk.CTkButton(button_frame, text="Speichern", command=self._save, width=100).pack(side="right")

    def _populate_fields(self):
        if self.employee:
            self.name_entry.insert(0, self.employee.name)
            self.email_entry.insert(0, self.employee.email or "")
            if self.employee.last_duty_date:
                self.last_duty_entry.insert(0, format_date_de(self.employee.last_duty_date))

    def _save(self):
        values = {
            "name": self.name_entry.get().strip(),
            "email": self.email_entry.get().strip(),
            "last_duty": self.last_duty_entry.get().strip(),
        }

        # Callback validates; keep the dialog open on failure
        if self.callback and not self.callback(values):
            return

        self.destroy()

    def _cancel(self):
        self.destroy()


class EmployeeList(ctk.CTkFrame):
    """List component for displaying and managing employees"""

    def __init__(self, parent, app_state: KitchenDutyState, on_changed: Callable = None):
        super().__init__(parent)
        self.app_state = app_state
        self.on_changed = on_changed

        self._create_widgets()
        self._load_employees()

    def _create_widgets(self):
        header_frame = ctk.CTkFrame(self)
        header_frame.pack(fill="x", padx=10, pady=10)

        ctk.CTkLabel(
            header_frame,
            text="Mitarbeitende",
            font=ctk.CTkFont(size=16, weight="bold")
        ).pack(side="left", padx=10, pady=10)

        ctk.CTkButton(
            header_frame,
            text="+ Hinzufügen",
            command=self._add_employee,
            width=120
        ).pack(side="right", padx=10, pady=10)

        filter_frame = ctk.CTkFrame(self)
        filter_frame.pack(fill="x", padx=10, pady=(0, 10))

        ctk.CTkLabel(filter_frame, text="Filter:").pack(side="left", padx=10, pady=5)

        self.filter_var = ctk.StringVar(value="Alle")
        ctk.CTkOptionMenu(
            filter_frame,
            values=["Alle", "Aktiv", "Inaktiv", "Ohne E-Mail"],
            variable=self.filter_var,
            command=self._on_filter_change,
            width=150
        ).pack(side="left", padx=10, pady=5)

        self.list_frame = ctk.CTkScrollableFrame(self, height=400)
        self.list_frame.pack(fill="both", expand=True, padx=10, pady=10)

    def _load_employees(self):
        for widget in self.list_frame.winfo_children():
            widget.destroy()

        filter_value = self.filter_var.get()
        employees = self.app_state.employees

        if filter_value == "Aktiv":
            employees = [e for e in employees if e.is_active]
        elif filter_value == "Inaktiv":
            employees = [e for e in employees if not e.is_active]
        elif filter_value == "Ohne E-Mail":
            employees = [e for e in employees if not e.email]

        if not employees:
            ctk.CTkLabel(self.list_frame, text="Keine Mitarbeitenden", text_color="gray").pack(pady=20)

        for employee in employees:
            self._create_employee_item(employee)

    def _create_employee_item(self, employee: Employee):
        item_frame = ctk.CTkFrame(self.list_frame)
        item_frame.pack(fill="x", padx=5, pady=2)

        info_frame = ctk.CTkFrame(item_frame)
        info_frame.pack(fill="x", padx=5, pady=5)

        organizer = self.app_state.organizer
        badge = "★ " if organizer and organizer.id == employee.id else ""
        ctk.CTkLabel(
            info_frame,
            text=f"{badge}{employee.name}",
            font=ctk.CTkFont(weight="bold")
        ).pack(side="left", padx=10)

        ctk.CTkLabel(
            info_frame,
            text=employee.email or "keine E-Mail",
            font=ctk.CTkFont(size=10),
            text_color="gray"
        ).pack(side="left", padx=20)

        last_duty = format_date_de(employee.last_duty_date) if employee.last_duty_date else "noch nie"
        ctk.CTkLabel(
            info_frame,
            text=f"Letzter Dienst: {last_duty}",
            font=ctk.CTkFont(size=10)
        ).pack(side="left", padx=10)

        ctk.CTkLabel(
            info_frame,
            text="Aktiv" if employee.is_active else "Inaktiv",
            text_color="green" if employee.is_active else "red",
            font=ctk.CTkFont(size=10)
        ).pack(side="right", padx=10)

        button_frame = ctk.CTkFrame(item_frame)
        button_frame.pack(fill="x", padx=5, pady=(0, 5))

        ctk.CTkButton(
            button_frame, text="Bearbeiten", width=80, height=25,
            command=lambda: self._edit_employee(employee)
        ).pack(side="left", padx=5)

        ctk.CTkButton(
            button_frame,
            text="Deaktivieren" if employee.is_active else "Aktivieren",
            width=90, height=25,
            fg_color="orange" if employee.is_active else "green",
            command=lambda: self._toggle_employee_status(employee)
        ).pack(side="left", padx=5)

        if any(s.employee_id == employee.id for s in self.app_state.current_plan):
            ctk.CTkButton(
                button_frame, text="Im Kalender", width=90, height=25,
                command=lambda: self._open_in_calendar(employee)
            ).pack(side="left", padx=5)

        ctk.CTkButton(
            button_frame, text="Löschen", width=70, height=25, fg_color="red",
            command=lambda: self._delete_employee(employee)
        ).pack(side="right", padx=5)

    def _add_employee(self):
        def save(values) -> bool:
            result = self.app_state.add_employee(values["name"], values["email"], values["last_duty"] or None)
            return self._handle_result(result)

        EmployeeDialog(self.winfo_toplevel(), callback=save)

    def _edit_employee(self, employee: Employee):
        def save(values) -> bool:
            result = self.app_state.update_employee(employee.id, name=values["name"], email=values["email"])
            if result.success:
                result = self.app_state.set_last_duty_text(employee.id, values["last_duty"])
            return self._handle_result(result)

        EmployeeDialog(self.winfo_toplevel(), employee=employee, callback=save)

    def _toggle_employee_status(self, employee: Employee):
        result = self.app_state.toggle_active(employee.id)
        if result.success:
            logger.info(f"Employee {employee.name} was toggled.")
        self._handle_result(result)

    def _delete_employee(self, employee: Employee):
        if not messagebox.askyesno("Löschen bestätigen", f"{employee.name} wirklich löschen?"):
            return
        result = self.app_state.delete_employee(employee.id)
        if result.success:
            logger.info(f"Employee '{employee.name}' (ID: {employee.id}) was deleted by the user.")
        self._handle_result(result)

    def _open_in_calendar(self, employee: Employee):
        result = self.app_state.open_in_calendar(employee.id)
        if not result.success:
            messagebox.showerror("Kalender", result.message)

    def _handle_result(self, result: OperationResult) -> bool:
        if not result.success:
            messagebox.showerror("Fehler", result.message)
            return False
        self.refresh()
        if self.on_changed:
            self.on_changed()
        return True

    def _on_filter_change(self, value):
        self._load_employees()

    def refresh(self):
        self._load_employees()


class PlanView(ctk.CTkScrollableFrame):
    """Table of the plan being edited: selection, assignee and lock state per day"""

    def __init__(self, parent, app_state: KitchenDutyState, on_changed: Callable = None):
        super().__init__(parent, height=320)
        self.app_state = app_state
        self.on_changed = on_changed
        self.selection_vars: Dict[str, ctk.BooleanVar] = {}
        self.refresh()

    def selected_slot_ids(self) -> List[str]:
        return [slot_id for slot_id, var in self.selection_vars.items() if var.get()]

    def refresh(self):
        for widget in self.winfo_children():
            widget.destroy()
        self.selection_vars = {}

        if not self.app_state.has_active_plan:
            ctk.CTkLabel(
                self,
                text="Keine Planung vorhanden. Starte mit „Woche planen“.",
                text_color="gray"
            ).pack(pady=40)
            return

        header = ctk.CTkFrame(self)
        header.pack(fill="x", padx=5, pady=(5, 2))
        for text, width in (("", 40), ("Datum", 110), ("Wochentag", 110), ("Mitarbeiter", 240), ("Status", 90)):
            ctk.CTkLabel(header, text=text, width=width, font=ctk.CTkFont(weight="bold")).pack(side="left", padx=4)

        assigned_ids = [s.employee_id for s in self.app_state.current_plan if s.employee_id]
        options = self.app_state.assignee_options(include_ids=assigned_ids)
        for slot in self.app_state.current_plan:
            self._create_row(slot, options)

    def _create_row(self, slot: DutySlot, options: Dict[str, Optional[str]]):
        row = ctk.CTkFrame(self)
        row.pack(fill="x", padx=5, pady=2)

        var = ctk.BooleanVar(value=False)
        self.selection_vars[slot.id] = var
        ctk.CTkCheckBox(row, text="", variable=var, width=40).pack(side="left", padx=4)

        ctk.CTkLabel(row, text=format_date_de(slot.date), width=110).pack(side="left", padx=4)
        ctk.CTkLabel(row, text=slot.weekday_label, width=110).pack(side="left", padx=4)

        current = next((label for label, emp_id in options.items() if emp_id == slot.employee_id), UNASSIGNED_LABEL)
        assignee_var = ctk.StringVar(value=current)
        menu = ctk.CTkOptionMenu(
            row,
            values=list(options),
            variable=assignee_var,
            command=lambda choice, s=slot: self._on_assignment_change(s, options.get(choice)),
            width=240
        )
        menu.pack(side="left", padx=4)
        if slot.is_locked:
            menu.configure(state="disabled")

        ctk.CTkLabel(
            row,
            text="🔒 fixiert" if slot.is_locked else "offen",
            text_color="#366092" if slot.is_locked else "gray",
            width=90
        ).pack(side="left", padx=4)

        if slot.is_assigned:
            ctk.CTkButton(
                row, text="📅", width=30, height=25,
                command=lambda s=slot: self._open_in_calendar(s)
            ).pack(side="left", padx=4)
        else:
            row.configure(fg_color="#fde2e2")

    def _on_assignment_change(self, slot: DutySlot, employee_id: Optional[str]):
        result = self.app_state.reassign(slot.id, employee_id)
        if not result.success:
            messagebox.showerror("Fehler", result.message)
        self.refresh()
        if self.on_changed:
            self.on_changed()

    def _open_in_calendar(self, slot: DutySlot):
        result = self.app_state.open_slot_in_calendar(slot.id)
        if not result.success:
            messagebox.showerror("Kalender", result.message)


class LogView(ctk.CTkFrame):
    """Read-only list of confirmed duties, newest first"""

    def __init__(self, parent, app_state: KitchenDutyState):
        super().__init__(parent)
        self.app_state = app_state

        ctk.CTkLabel(
            self,
            text="Planungslog",
            font=ctk.CTkFont(size=16, weight="bold")
        ).pack(anchor="w", padx=10, pady=10)

        self.list_frame = ctk.CTkScrollableFrame(self, height=400)
        self.list_frame.pack(fill="both", expand=True, padx=10, pady=(0, 10))
        self.refresh()

    def refresh(self):
        for widget in self.list_frame.winfo_children():
            widget.destroy()

        entries = sorted(self.app_state.log_entries, key=lambda e: (e.date, e.planned_at), reverse=True)
        if not entries:
            ctk.CTkLabel(self.list_frame, text="Noch keine bestätigten Dienste", text_color="gray").pack(pady=20)
            return

        for entry in entries:
            row = ctk.CTkFrame(self.list_frame)
            row.pack(fill="x", padx=5, pady=1)
            ctk.CTkLabel(row, text=format_date_de(entry.date), width=110).pack(side="left", padx=5)
            ctk.CTkLabel(row, text=entry.employee_name, width=240, anchor="w").pack(side="left", padx=5)
            ctk.CTkLabel(
                row,
                text=f"geplant am {format_datetime_de(entry.planned_at)}",
                text_color="gray",
                font=ctk.CTkFont(size=10)
            ).pack(side="left", padx=5)


class MainWindow(ctk.CTk):
    """Main application window"""

    def __init__(self, app_state: KitchenDutyState):
        super().__init__()

        self.title("Küchendienst-Planer")
        self.geometry("1100x760")

        self.app_state = app_state
        self.week_config = None

        self._create_widgets()
        self._refresh_all()
        self.after(100, self._ensure_organizer)

    def _create_widgets(self):
        header = ctk.CTkFrame(self, height=50)
        header.pack(fill="x", padx=10, pady=(10, 0))

        ctk.CTkLabel(
            header,
            text="Küchendienst-Planer",
            font=ctk.CTkFont(size=18, weight="bold")
        ).pack(side="left", padx=10)

        self.organizer_label = ctk.CTkLabel(header, text="")
        self.organizer_label.pack(side="right", padx=10)
        ctk.CTkButton(
            header, text="Wechseln", width=90,
            command=self._change_organizer
        ).pack(side="right", padx=5)

        self.tabview = ctk.CTkTabview(self)
        self.tabview.pack(fill="both", expand=True, padx=10, pady=10)

        planning_tab = self.tabview.add("Planung")
        employees_tab = self.tabview.add("Mitarbeitende")
        log_tab = self.tabview.add("Log")

        self._create_planning_tab(planning_tab)

        self.employee_list = EmployeeList(employees_tab, self.app_state, on_changed=self._on_roster_changed)
        self.employee_list.pack(fill="both", expand=True)

        self.log_view = LogView(log_tab, self.app_state)
        self.log_view.pack(fill="both", expand=True)

        self.status_var = ctk.StringVar(value="Bereit")
        ctk.CTkLabel(self, textvariable=self.status_var, anchor="w").pack(side="bottom", fill="x", padx=15, pady=5)

    def _create_planning_tab(self, parent):
        control_frame = ctk.CTkFrame(parent)
        control_frame.pack(fill="x", padx=5, pady=5)

        ctk.CTkButton(control_frame, text="Woche planen", command=self._plan_week, width=130).pack(side="left", padx=5)
        ctk.CTkButton(control_frame, text="Neu würfeln", command=self._shuffle, width=110).pack(side="left", padx=5)
        ctk.CTkButton(control_frame, text="Fixieren", command=lambda: self._set_locked(True), width=90).pack(side="left", padx=5)
        ctk.CTkButton(control_frame, text="Freigeben", command=lambda: self._set_locked(False), width=90).pack(side="left", padx=5)

        ctk.CTkButton(
            control_frame, text="Bestätigen", command=self._confirm, width=110, fg_color="green"
        ).pack(side="right", padx=5)
        ctk.CTkButton(
            control_frame, text="Abbrechen", command=self._cancel, width=100, fg_color="red"
        ).pack(side="right", padx=5)

        self.plan_view = PlanView(parent, self.app_state, on_changed=self._on_plan_changed)
        self.plan_view.pack(fill="both", expand=True, padx=5, pady=5)

        export_frame = ctk.CTkFrame(parent)
        export_frame.pack(fill="x", padx=5, pady=5)

        ctk.CTkLabel(export_frame, text="Verteilen:").pack(side="left", padx=10)
        ctk.CTkButton(export_frame, text="ICS exportieren", command=self._export_ics, width=130).pack(side="left", padx=5)
        ctk.CTkButton(export_frame, text="Einladungen per Mail", command=self._send_mail_invitations, width=160).pack(side="left", padx=5)
        ctk.CTkButton(export_frame, text="Outlook Web", command=self._open_outlook_web, width=110).pack(side="left", padx=5)

        self.calendar_button = ctk.CTkButton(
            export_frame, text="Im Kalender öffnen", command=self._open_all_in_calendar, width=150
        )
        self.calendar_button.pack(side="left", padx=5)

        self.meeting_button = ctk.CTkButton(
            export_frame, text="Outlook-Einladungen", command=self._send_meeting_requests, width=160
        )
        self.meeting_button.pack(side="left", padx=5)

        ctk.CTkButton(export_frame, text="Bericht exportieren", command=self._export_report, width=150).pack(side="right", padx=5)

        if not self.app_state.bridge.is_available():
            self.calendar_button.configure(state="disabled")
        if not self.app_state.bridge.supports_meeting_requests():
            self.meeting_button.configure(state="disabled")

    # Organizer gate
    def _ensure_organizer(self):
        if self.app_state.organizer is None:
            OrganizerDialog(self, self.app_state, self._on_organizer_selected)

    def _change_organizer(self):
        OrganizerDialog(self, self.app_state, self._on_organizer_selected)

    def _on_organizer_selected(self, organizer: Employee):
        self.status_var.set(f"Organisator: {organizer.name}")
        self._refresh_all()

    # Planning
    def _plan_week(self):
        if self.app_state.has_active_plan and not messagebox.askyesno(
            "Neu planen", "Es gibt bereits eine Planung. Fixierte Tage behalten und neu planen?"
        ):
            return
        WeekConfigDialog(self, self.app_state, self._on_week_configured)

    def _on_week_configured(self, config):
        self.week_config = config
        result = self.app_state.replan(config) if self.app_state.has_active_plan else self.app_state.start_plan(config)
        self._show_result(result, success_title="Planung")

    def _shuffle(self):
        self._show_result(self.app_state.shuffle())

    def _set_locked(self, locked: bool):
        slot_ids = self.plan_view.selected_slot_ids()
        if not slot_ids:
            messagebox.showinfo("Auswahl", "Bitte zuerst Tage auswählen.")
            return
        self._show_result(self.app_state.set_locked(slot_ids, locked))

    def _cancel(self):
        if not self.app_state.has_active_plan:
            return
        if messagebox.askyesno("Abbrechen", "Aktuelle Planung verwerfen?"):
            self._show_result(self.app_state.cancel())
            self.status_var.set("Planung verworfen")

    def _confirm(self):
        if not self.app_state.has_active_plan:
            messagebox.showinfo("Bestätigen", "Keine Planung vorhanden")
            return
        unassigned = sum(1 for s in self.app_state.current_plan if not s.is_assigned)
        question = "Planung bestätigen und ins Log übernehmen?"
        if unassigned:
            question = f"{unassigned} Tag(e) sind nicht zugewiesen. Trotzdem bestätigen?"
        if messagebox.askyesno("Bestätigen", question):
            self._show_result(self.app_state.confirm(), success_title="Bestätigt")

    # Distribution
    def _export_ics(self):
        output_dir = filedialog.askdirectory(title="Zielordner für ICS-Datei")
        if not output_dir:
            return  # User cancelled
        result = self.app_state.export_ics(Path(output_dir))
        self._show_result(result, success_title="ICS exportiert")

    def _send_mail_invitations(self):
        if not self.app_state.mailto_data():
            messagebox.showwarning("Einladungen", "Keine Mitarbeitenden mit E-Mail-Adresse und Dienst.")
            return

        output_dir = filedialog.askdirectory(title="Ordner für die ICS-Anhänge")
        if not output_dir:
            return

        self._run_in_background(
            "Öffne E-Mail-Entwürfe...",
            lambda: self.app_state.send_mail_invitations(Path(output_dir))
        )

    def _open_outlook_web(self):
        result = self.app_state.open_outlook_web()
        self._show_result(result)

    def _open_all_in_calendar(self):
        self._run_in_background("Öffne Termine im Kalender...", self.app_state.open_all_in_calendar)

    def _send_meeting_requests(self):
        display_only = messagebox.askyesno(
            "Outlook-Einladungen",
            "Einladungen vor dem Senden anzeigen?\n\nJa = anzeigen, Nein = direkt senden"
        )
        self._run_in_background(
            "Erstelle Outlook-Einladungen...",
            lambda: self.app_state.send_meeting_requests(display_only=display_only)
        )

    def _run_in_background(self, status: str, action: Callable[[], OperationResult]):
        self.status_var.set(status)
        self.update()

        def work():
            try:
                result = action()
                self.after(0, self._show_result, result)
            except Exception as e:
                logger.error(f"Background action failed: {e}", exc_info=True)
                self.after(0, self.status_var.set, f"Fehler: {e}")

        threading.Thread(target=work, daemon=True).start()

    def _export_report(self):
        """Export current plan to PDF, Excel, or CSV."""
        if not self.app_state.has_active_plan:
            messagebox.showinfo("Export", "Keine Planung vorhanden")
            return

        output_path = filedialog.asksaveasfilename(
            initialfile=self.app_state.export_manager.get_default_filename("pdf"),
            defaultextension=".pdf",
            filetypes=[
                ("PDF", "*.pdf"),
                ("Excel", "*.xlsx"),
                ("CSV", "*.csv"),
                ("Alle Dateien", "*.*")
            ],
            title="Bericht exportieren"
        )
        if not output_path:
            return

        file_extension = output_path.split('.')[-1].lower()
        if file_extension == "xlsx":
            format_type = "excel"
        elif file_extension == "csv":
            format_type = "csv"
        else:
            format_type = "pdf"

        self._show_result(self.app_state.export_report(format_type, output_path), success_title="Export")

    # Refresh helpers
    def _show_result(self, result: OperationResult, success_title: Optional[str] = None):
        self._refresh_all()
        if not result.success:
            self.status_var.set(f"Fehler: {result.message}")
            messagebox.showerror("Fehler", result.message)
            return
        if result.message:
            self.status_var.set(result.message)
            if success_title:
                messagebox.showinfo(success_title, result.message)

    def _on_plan_changed(self):
        self.status_var.set("Planung geändert")
        self.employee_list.refresh()

    def _on_roster_changed(self):
        self._refresh_all()

    def _refresh_all(self):
        organizer = self.app_state.organizer
        self.organizer_label.configure(text=f"Plant: {organizer.name}" if organizer else "Kein Organisator")
        self.plan_view.refresh()
        self.log_view.refresh()
        self.employee_list.refresh()
