"""
Kitchen Duty Planner launcher.

Sets up file logging, resolves where the roster lives, wires the calendar
bridge and opens the main window. Startup problems end in a dialog and a
non-zero exit code.
"""

import importlib.util
import logging
import sys
from datetime import date
from pathlib import Path
from tkinter import messagebox
from typing import List, Optional

# Allow running this file directly from a source checkout
sys.path.insert(0, str(Path(__file__).parent.parent))

from kitchen_duty.app_state import KitchenDutyState
from kitchen_duty.calendar_bridge import create_calendar_bridge
from kitchen_duty.data_manager import DataManager, DataManagerError

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"
RUNTIME_PACKAGES = ("customtkinter", "icalendar", "pandas", "openpyxl", "reportlab")

logger = logging.getLogger("kitchen_duty")


def setup_logging(log_dir: Path = Path("logs")) -> Path:
    """Log to a daily file and to stdout; returns the file path"""
    log_dir.mkdir(exist_ok=True)
    log_file = log_dir / f"kitchen_duty_{date.today():%Y%m%d}.log"
    logging.basicConfig(
        level=logging.INFO,
        format=LOG_FORMAT,
        handlers=[logging.FileHandler(log_file, encoding="utf-8"), logging.StreamHandler(sys.stdout)],
    )
    return log_file


def missing_dependencies() -> List[str]:
    return [name for name in RUNTIME_PACKAGES if importlib.util.find_spec(name) is None]


def report_uncaught(exc_type, exc_value, exc_traceback):
    """sys.excepthook: log the crash and tell the user before the window dies"""
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    logger.critical("Unhandled exception", exc_info=(exc_type, exc_value, exc_traceback))
    try:
        messagebox.showerror("Unerwarteter Fehler", f"{exc_type.__name__}: {exc_value}")
    except Exception as e:  # no display available
        logger.debug(f"Error dialog not shown: {e}")


def resolve_data_dir() -> Path:
    """data/ beside the frozen executable, or beside the package when run from source"""
    frozen = getattr(sys, "frozen", False)
    base = Path(sys.executable).parent if frozen else Path(__file__).parent.parent
    data_dir = base / "data"
    data_dir.mkdir(exist_ok=True)
    return data_dir


class KitchenDutyApp:
    """Owns the long-lived objects between startup and shutdown"""

    def __init__(self, log_file: Optional[Path] = None):
        self.log_file = log_file
        self.data_manager: Optional[DataManager] = None
        self.app_state: Optional[KitchenDutyState] = None
        self.startup_error: Optional[str] = None

    def initialize(self) -> bool:
        missing = missing_dependencies()
        if missing:
            self.startup_error = f"Fehlende Pakete: {', '.join(missing)}\nInstallation mit: pip install -e ."
            logger.error(self.startup_error)
            return False

        data_file = resolve_data_dir() / "kitchen_duty.json"
        try:
            self.data_manager = DataManager(str(data_file))
        except DataManagerError as e:
            self.startup_error = f"Die Datendatei {data_file} kann nicht gelesen werden:\n{e}"
            logger.error(self.startup_error, exc_info=True)
            return False

        settings = self.data_manager.get_setting
        bridge = create_calendar_bridge(
            enabled=bool(settings("calendarBridgeEnabled", True)),
            file_delay=float(settings("icsOpenDelaySeconds", 0.8)),
            meeting_delay=float(settings("meetingDelaySeconds", 0.3)),
        )
        logger.info(f"Roster file {data_file}, calendar bridge {type(bridge).__name__}")

        self.app_state = KitchenDutyState(self.data_manager, bridge=bridge)
        return True

    def run(self) -> bool:
        if not self.initialize():
            self._show_startup_error()
            return False

        # customtkinter is only imported once it is known to be installed
        from kitchen_duty.ui import MainWindow

        try:
            MainWindow(self.app_state).mainloop()
        except Exception as e:
            logger.exception("Main window crashed")
            messagebox.showerror("Laufzeitfehler", f"{type(e).__name__}: {e}\n\nDetails: {self.log_file}")
            return False
        finally:
            self.shutdown()

        logger.info("Main window closed")
        return True

    def _show_startup_error(self):
        text = f"Der Küchendienst-Planer konnte nicht starten.\n\n{self.startup_error}"
        if self.log_file:
            text += f"\n\nProtokoll: {self.log_file}"
        try:
            import tkinter as tk
            root = tk.Tk()
            root.withdraw()
            messagebox.showerror("Startfehler", text)
            root.destroy()
        except Exception:  # headless start
            print(text, file=sys.stderr)

    def shutdown(self):
        if self.data_manager is None:
            return
        try:
            self.data_manager.save_data()
        except DataManagerError as e:
            logger.error(f"Final save failed: {e}")


def main():
    sys.excepthook = report_uncaught
    log_file = setup_logging()
    logger.info("Kitchen Duty Planner starting")
    sys.exit(0 if KitchenDutyApp(log_file).run() else 1)


if __name__ == "__main__":
    main()
