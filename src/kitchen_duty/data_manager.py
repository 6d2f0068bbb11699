"""
Data Manager for Kitchen Duty Planner

Handles all file I/O operations, JSON persistence, and CRUD operations
for the employee roster, the append-only planning log, the organizer
identity and application settings.
"""

import json
import logging
from datetime import datetime, date
from typing import Dict, List, Optional, Any, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from .duty_utils import generate_id, parse_date_de


logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"

EMPLOYEES_KEY = "kitchen-duty-employees"
LOG_KEY = "kitchen-duty-log"
ORGANIZER_KEY = "kitchen-duty-organizer-id"

DEFAULT_SETTINGS = {
    "appVersion": APP_VERSION,
    "icsMethod": "PUBLISH",
    "defaultLocation": "Küche",
    "icsOpenDelaySeconds": 0.8,
    "meetingDelaySeconds": 0.3,
    "mailDelaySeconds": 1.0,
    "calendarBridgeEnabled": True,
}


class DataManagerError(Exception):
    """Base exception for DataManager operations"""
    pass


class DataFileCorruptedError(DataManagerError):
    """Raised when the data file is corrupted"""
    pass


class DataFileNotFoundError(DataManagerError):
    """Raised when the data file is not found"""
    pass


class DataSaveError(DataManagerError):
    """Raised when saving data fails"""
    pass


class DataValidationError(DataManagerError):
    """Raised when data validation fails"""
    pass


def _parse_stored_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    return parse_date_de(value)


@dataclass
class Employee:
    """Roster member eligible for kitchen duty"""
    id: str
    name: str
    email: Optional[str] = None
    is_active: bool = True
    last_duty_date: Optional[date] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "active": self.is_active,
            "lastDutyDate": self.last_duty_date.isoformat() if self.last_duty_date else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Employee':
        return cls(
            id=str(data["id"]),
            name=data["name"],
            email=data.get("email") or None,
            is_active=data.get("active", True),
            last_duty_date=_parse_stored_date(data.get("lastDutyDate")),
        )


@dataclass
class LogEntry:
    """Historical record of one confirmed duty"""
    id: str
    date: date
    employee_name: str
    planned_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "employeeName": self.employee_name,
            "plannedAt": self.planned_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LogEntry':
        return cls(
            id=str(data["id"]),
            date=date.fromisoformat(data["date"][:10]),
            employee_name=data.get("employeeName", ""),
            planned_at=datetime.fromisoformat(data["plannedAt"]),
        )


def validate_email(email: Optional[str]) -> Optional[str]:
    """Normalise an optional email address; empty means none"""
    if email is None:
        return None
    email = email.strip()
    if not email:
        return None
    if "@" not in email:
        raise DataValidationError(f"Invalid email address: {email}")
    return email


class DataManager:
    """Manages all data persistence and CRUD operations"""

    def __init__(self, data_file: str = "data/kitchen_duty.json"):
        if data_file == "data/kitchen_duty.json":
            # Use path relative to the package directory
            data_file = Path(__file__).parent.parent / "data" / "kitchen_duty.json"
        self.data_file = Path(data_file)
        self.data = self._load_or_create_data()

    def _read_file(self, path: Path) -> Dict[str, Any]:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)

    def _recover_from_backup(self, backup_file: Path) -> Dict[str, Any]:
        """Restore the backup over the main file; fall back to defaults if it is unreadable"""
        try:
            logger.info(f"Attempting recovery from backup file {backup_file}")
            data = self._validate_and_migrate_data(self._read_file(backup_file))
            backup_file.replace(self.data_file)
            logger.info("Successfully recovered data from backup")
            return data
        except (json.JSONDecodeError, IOError, DataFileCorruptedError) as backup_e:
            logger.error(f"Backup file corrupted: {backup_e}")
            logger.info("Creating default data due to corrupted files")
            return self._create_default_data()

    def _load_or_create_data(self) -> Dict[str, Any]:
        """Load existing data or create default structure with recovery from backup"""
        backup_file = self.data_file.with_suffix('.bak')

        if self.data_file.exists():
            try:
                return self._validate_and_migrate_data(self._read_file(self.data_file))
            except (json.JSONDecodeError, IOError, DataFileCorruptedError) as e:
                logger.error(f"Error loading main data file {self.data_file}: {e}")
                if backup_file.exists():
                    return self._recover_from_backup(backup_file)
                raise DataFileCorruptedError(f"Main data file corrupted and no backup available: {e}")

        if backup_file.exists():
            logger.info(f"Main data file missing, attempting recovery from backup {backup_file}")
            return self._recover_from_backup(backup_file)

        logger.info("No data file found, creating default data")
        return self._create_default_data()

    def _validate_and_migrate_data(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Validate and migrate data structure to current version"""
        if not isinstance(data, dict):
            raise DataFileCorruptedError("Data file does not contain a JSON object")

        default_data = self._create_default_data()

        # Merge with defaults to ensure all keys exist
        for key in default_data:
            if key not in data:
                data[key] = default_data[key]

        self._check_sections(data)

        for key, value in default_data["settings"].items():
            data["settings"].setdefault(key, value)

        # Older rosters were stored without email/active flags
        for emp in data.get(EMPLOYEES_KEY, []):
            emp.setdefault("email", None)
            emp.setdefault("active", True)
            emp.setdefault("lastDutyDate", None)

        return data

    @staticmethod
    def _check_sections(data: Dict[str, Any]):
        """Raise DataFileCorruptedError when a section has the wrong shape"""
        if not isinstance(data["settings"], dict):
            raise DataFileCorruptedError("Section 'settings' is not an object")
        if data[ORGANIZER_KEY] is not None and not isinstance(data[ORGANIZER_KEY], str):
            raise DataFileCorruptedError(f"Section '{ORGANIZER_KEY}' is not a string")

        required = {EMPLOYEES_KEY: ("id", "name"), LOG_KEY: ("id", "date", "plannedAt")}
        for section, keys in required.items():
            records = data[section]
            if not isinstance(records, list):
                raise DataFileCorruptedError(f"Section '{section}' is not a list")
            for index, record in enumerate(records):
                if not isinstance(record, dict):
                    raise DataFileCorruptedError(f"{section}[{index}] is not an object")
                missing = [k for k in keys if record.get(k) in (None, "")]
                if missing:
                    raise DataFileCorruptedError(f"{section}[{index}] is missing {', '.join(missing)}")

    def _create_default_data(self) -> Dict[str, Any]:
        """Create default data structure"""
        settings = dict(DEFAULT_SETTINGS)
        settings["dataFile"] = str(self.data_file)
        return {
            "settings": settings,
            EMPLOYEES_KEY: [],
            LOG_KEY: [],
            ORGANIZER_KEY: "",
        }

    def _validate_saved_data(self) -> bool:
        """Validate that the saved data file matches current data"""
        try:
            if not self.data_file.exists():
                raise DataFileNotFoundError(f"Saved data file {self.data_file} does not exist")

            saved_data = self._read_file(self.data_file)

            required_keys = ["settings", EMPLOYEES_KEY, LOG_KEY, ORGANIZER_KEY]
            for key in required_keys:
                if key not in saved_data:
                    raise DataValidationError(f"Required section '{key}' missing from saved data")

            if saved_data.get("settings", {}).get("appVersion") != self.data.get("settings", {}).get("appVersion"):
                raise DataValidationError("App version mismatch in saved data")

            if len(saved_data[LOG_KEY]) != len(self.data[LOG_KEY]):
                raise DataValidationError("Planning log length mismatch in saved data")

            return True

        except (json.JSONDecodeError, IOError) as e:
            raise DataValidationError(f"Failed to validate saved data: {e}")

    def save_data(self) -> bool:
        """Save current data to file atomically with validation"""
        temp_file = None
        backup_file = self.data_file.with_suffix('.bak')

        try:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)

            # Keep the previous state as backup
            if self.data_file.exists():
                self.data_file.replace(backup_file)

            temp_file = self.data_file.with_suffix('.tmp')

            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(self.data, f, indent=2, ensure_ascii=False)

            temp_file.replace(self.data_file)

            self._validate_saved_data()

            return True

        except DataValidationError as e:
            logger.error(f"Data validation failed after save: {e}", exc_info=True)
            if backup_file.exists():
                try:
                    backup_file.replace(self.data_file)
                except OSError as restore_e:
                    logger.error(f"Failed to restore from backup: {restore_e}", exc_info=True)
            raise DataSaveError(f"Save operation failed validation: {e}")

        except (IOError, OSError) as e:
            logger.error(f"I/O error during save operation: {e}", exc_info=True)
            raise DataSaveError(f"Failed to save data due to I/O error: {e}")

        except (TypeError, ValueError) as e:
            logger.error(f"Unexpected error during save operation: {e}", exc_info=True)
            raise DataSaveError(f"Unexpected error during save: {e}")

        finally:
            if temp_file and temp_file.exists():
                try:
                    temp_file.unlink()
                except OSError as cleanup_e:
                    logger.error(f"Failed to clean up temporary file {temp_file}: {cleanup_e}", exc_info=True)

    # Employee Management
    def get_employees(self, active_only: bool = False) -> List[Employee]:
        """Get the roster in insertion order"""
        employees = []
        for emp_data in self.data.get(EMPLOYEES_KEY, []):
            emp = Employee.from_dict(emp_data)
            if not active_only or emp.is_active:
                employees.append(emp)
        return employees

    def get_employee_by_id(self, emp_id: Optional[str]) -> Optional[Employee]:
        if not emp_id:
            return None
        for emp_data in self.data.get(EMPLOYEES_KEY, []):
            if emp_data["id"] == emp_id:
                return Employee.from_dict(emp_data)
        return None

    def get_employee_by_name(self, name: str) -> Optional[Employee]:
        for emp_data in self.data.get(EMPLOYEES_KEY, []):
            if emp_data["name"] == name:
                return Employee.from_dict(emp_data)
        return None

    def add_employee(self, name: str, email: Optional[str] = None, is_active: bool = True,
                     last_duty_date: Optional[date] = None) -> Employee:
        """Add new employee"""
        name = (name or "").strip()
        if not name:
            raise DataValidationError("Employee name must not be empty")

        employee = Employee(
            id=generate_id(),
            name=name,
            email=validate_email(email),
            is_active=is_active,
            last_duty_date=last_duty_date,
        )

        self.data.setdefault(EMPLOYEES_KEY, []).append(employee.to_dict())
        logger.info(f"Added employee '{employee.name}' ({employee.id})")
        return employee

    def update_employee(self, emp_id: str, name: str = None, email: str = None,
                        is_active: bool = None, last_duty_date: Optional[date] = None,
                        clear_last_duty_date: bool = False) -> bool:
        """
        Update employee information.

        Passing ``email=""`` removes the address; ``clear_last_duty_date``
        resets the duty history of the employee.
        """
        for emp_data in self.data.get(EMPLOYEES_KEY, []):
            if emp_data["id"] != emp_id:
                continue

            if name is not None:
                name = name.strip()
                if not name:
                    raise DataValidationError("Employee name must not be empty")
                emp_data["name"] = name
            if email is not None:
                emp_data["email"] = validate_email(email)
            if is_active is not None:
                emp_data["active"] = is_active
            if last_duty_date is not None:
                emp_data["lastDutyDate"] = last_duty_date.isoformat()
            elif clear_last_duty_date:
                emp_data["lastDutyDate"] = None
            return True

        logger.warning(f"Update requested for unknown employee {emp_id}")
        return False

    def delete_employee(self, emp_id: str) -> bool:
        """Delete employee (hard delete). Log entries keep the name only."""
        employees = self.data.get(EMPLOYEES_KEY, [])
        for emp in employees:
            if emp["id"] == emp_id:
                employees.remove(emp)
                if self.get_organizer_id() == emp_id:
                    self.set_organizer_id(None)
                logger.info(f"Deleted employee '{emp['name']}' ({emp_id})")
                return True
        return False

    def stamp_last_duty_dates(self, duty_dates: Dict[str, date]) -> int:
        """Set lastDutyDate for each employee id in ``duty_dates``; returns the number updated"""
        updated = 0
        for emp_data in self.data.get(EMPLOYEES_KEY, []):
            duty_date = duty_dates.get(emp_data["id"])
            if duty_date is not None:
                emp_data["lastDutyDate"] = duty_date.isoformat()
                updated += 1
        return updated

    # Planning log
    def get_log_entries(self) -> List[LogEntry]:
        return [LogEntry.from_dict(entry) for entry in self.data.get(LOG_KEY, [])]

    def append_log_entries(self, entries: Iterable[LogEntry]) -> int:
        log = self.data.setdefault(LOG_KEY, [])
        count = 0
        for entry in entries:
            log.append(entry.to_dict())
            count += 1
        return count

    # Organizer identity
    def get_organizer_id(self) -> Optional[str]:
        return self.data.get(ORGANIZER_KEY) or None

    def set_organizer_id(self, emp_id: Optional[str]):
        self.data[ORGANIZER_KEY] = emp_id or ""

    def get_organizer(self) -> Optional[Employee]:
        return self.get_employee_by_id(self.get_organizer_id())

    # Settings Management
    def get_setting(self, key: str, default=None):
        """Get application setting"""
        return self.data.get("settings", {}).get(key, default)

    def set_setting(self, key: str, value):
        """Set application setting"""
        self.data.setdefault("settings", {})[key] = value
