"""
Calendar Bridge for the Desktop Build

Hands duty appointments to the local calendar application: ICS files are
written to the temp directory and opened with the OS default handler, and
meeting requests are created in Outlook Desktop through COM automation
(Windows only). Every call returns structured results; nothing here raises
for an unavailable host or a failed item.
"""

import logging
import os
import subprocess
import sys
import tempfile
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

# Outlook object model constants
OL_APPOINTMENT_ITEM = 1
OL_MEETING = 1
OL_REQUIRED = 1

BRIDGE_UNAVAILABLE = "Kalenderanbindung nicht verfügbar"
WINDOWS_ONLY = "Diese Funktion ist nur unter Windows mit Outlook Desktop verfügbar."
NO_ITEMS = "Keine Termine zum Senden."
NO_RECIPIENT = "Kein Empfänger"


class MeetingItemStatus(Enum):
    PENDING = "pending"
    SENT = "sent"
    DISPLAYED = "displayed"
    ERROR = "error"


@dataclass
class MeetingItem:
    """Structured meeting request for one duty date"""
    date: date
    subject: str
    body: str
    start_local: datetime
    end_local: datetime
    attendees: List[str] = field(default_factory=list)
    location: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "date": self.date.isoformat(),
            "subject": self.subject,
            "body": self.body,
            "startLocal": self.start_local.isoformat(),
            "endLocal": self.end_local.isoformat(),
            "attendees": list(self.attendees),
        }
        if self.location:
            data["location"] = self.location
        return data


@dataclass
class MeetingRequest:
    items: List[MeetingItem]
    display_only: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"displayOnly": self.display_only, "items": [i.to_dict() for i in self.items]}


@dataclass
class MeetingItemResult:
    date: date
    status: MeetingItemStatus = MeetingItemStatus.PENDING
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status in (MeetingItemStatus.SENT, MeetingItemStatus.DISPLAYED)

    @property
    def action(self) -> Optional[str]:
        return self.status.value if self.success else None

    def to_dict(self) -> Dict[str, Any]:
        data = {"date": self.date.isoformat(), "success": self.success}
        if self.action:
            data["action"] = self.action
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class MeetingResponse:
    success: bool
    results: List[MeetingItemResult] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"success": self.success, "results": [r.to_dict() for r in self.results]}
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class OpenFileResult:
    file_name: str
    success: bool
    file_path: Optional[str] = None
    error: Optional[str] = None


class CalendarBridge:
    """Interface of the host side; the core logic only talks to this"""

    def is_available(self) -> bool:
        raise NotImplementedError

    def supports_meeting_requests(self) -> bool:
        raise NotImplementedError

    def open_ics(self, ics_content: str, file_name: str) -> OpenFileResult:
        raise NotImplementedError

    def open_multiple_ics(self, files: List[Dict[str, str]]) -> List[OpenFileResult]:
        raise NotImplementedError

    def send_meeting_requests(self, request: MeetingRequest) -> MeetingResponse:
        raise NotImplementedError


class UnavailableCalendarBridge(CalendarBridge):
    """Used when the desktop integration is switched off"""

    def __init__(self, reason: str = BRIDGE_UNAVAILABLE):
        self.reason = reason

    def is_available(self) -> bool:
        return False

    def supports_meeting_requests(self) -> bool:
        return False

    def open_ics(self, ics_content: str, file_name: str) -> OpenFileResult:
        return OpenFileResult(file_name=file_name, success=False, error=self.reason)

    def open_multiple_ics(self, files: List[Dict[str, str]]) -> List[OpenFileResult]:
        return [self.open_ics(f["icsContent"], f["fileName"]) for f in files]

    def send_meeting_requests(self, request: MeetingRequest) -> MeetingResponse:
        return MeetingResponse(success=False, error=self.reason)


def default_file_opener(path: Path):
    """Open ``path`` with the platform's default application"""
    if sys.platform == "win32":
        os.startfile(str(path))
    elif sys.platform == "darwin":
        subprocess.run(["open", str(path)], check=True)
    else:
        subprocess.run(["xdg-open", str(path)], check=True)


def outlook_com_factory():
    """Outlook.Application through pywin32; imported lazily because it only exists on Windows"""
    import win32com.client
    return win32com.client.Dispatch("Outlook.Application")


def com_initialize():
    """Enter a COM apartment on the calling thread; required on every worker thread"""
    import pythoncom
    pythoncom.CoInitialize()


def com_uninitialize():
    import pythoncom
    pythoncom.CoUninitialize()


class DesktopCalendarBridge(CalendarBridge):
    """
    Bridge driving the locally installed calendar application.

    Collaborators are injectable so the pacing, platform check and COM
    object can be replaced in tests.
    """

    def __init__(self, temp_dir: Optional[Path] = None,
                 file_opener: Callable[[Path], Any] = default_file_opener,
                 outlook_factory: Callable[[], Any] = outlook_com_factory,
                 sleep: Callable[[float], Any] = time.sleep,
                 platform: str = sys.platform,
                 file_delay: float = 0.8,
                 meeting_delay: float = 0.3,
                 com_init: Callable[[], Any] = com_initialize,
                 com_uninit: Callable[[], Any] = com_uninitialize):
        self.temp_dir = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir())
        self.file_opener = file_opener
        self.outlook_factory = outlook_factory
        self.com_init = com_init
        self.com_uninit = com_uninit
        self.sleep = sleep
        self.platform = platform
        self.file_delay = file_delay
        self.meeting_delay = meeting_delay

    def is_available(self) -> bool:
        return True

    def supports_meeting_requests(self) -> bool:
        return self.platform == "win32"

    def open_ics(self, ics_content: str, file_name: str) -> OpenFileResult:
        try:
            file_path = self.temp_dir / file_name
            file_path.write_text(ics_content, encoding="utf-8", newline="")
            self.file_opener(file_path)
            logger.info(f"Opened {file_path} in the default calendar application")
            return OpenFileResult(file_name=file_name, success=True, file_path=str(file_path))
        except (OSError, subprocess.SubprocessError) as e:
            logger.error(f"Error opening ICS file {file_name}: {e}", exc_info=True)
            return OpenFileResult(file_name=file_name, success=False, error=str(e))

    def open_multiple_ics(self, files: List[Dict[str, str]]) -> List[OpenFileResult]:
        """Open each file in turn with a fixed pause so the calendar client keeps up"""
        results = []
        for index, entry in enumerate(files):
            if index > 0:
                self.sleep(self.file_delay)
            results.append(self.open_ics(entry["icsContent"], entry["fileName"]))
        return results

    def send_meeting_requests(self, request: MeetingRequest) -> MeetingResponse:
        if not self.supports_meeting_requests():
            return MeetingResponse(success=False, error=WINDOWS_ONLY)

        if not request.items:
            return MeetingResponse(success=False, error=NO_ITEMS)

        try:
            self.com_init()
        except ImportError as e:
            logger.error(f"pywin32 not available: {e}")
            return MeetingResponse(success=False, error=f"Outlook COM nicht verfügbar: {e}")

        # Batches run on short-lived worker threads; each one needs its own apartment
        try:
            try:
                outlook = self.outlook_factory()
            except ImportError as e:
                logger.error(f"pywin32 not available: {e}")
                return MeetingResponse(success=False, error=f"Outlook COM nicht verfügbar: {e}")
            except Exception as e:
                # pywintypes.com_error does not share a narrower base class
                logger.error(f"Outlook COM error: {e}", exc_info=True)
                return MeetingResponse(
                    success=False,
                    error=f"Outlook COM Fehler: {e}. Stellen Sie sicher, dass Outlook Desktop installiert und geöffnet ist."
                )

            results = []
            for index, item in enumerate(request.items):
                if index > 0:
                    self.sleep(self.meeting_delay)
                results.append(self._create_meeting(outlook, item, request.display_only))
        finally:
            self.com_uninit()

        success = all(r.success for r in results)
        logger.info(f"Meeting requests processed: {sum(r.success for r in results)}/{len(results)} succeeded")
        return MeetingResponse(success=success, results=results)

    def _create_meeting(self, outlook, item: MeetingItem, display_only: bool) -> MeetingItemResult:
        result = MeetingItemResult(date=item.date)

        recipients = [email for email in item.attendees if email]
        if not recipients:
            result.status = MeetingItemStatus.ERROR
            result.error = NO_RECIPIENT
            return result

        try:
            appointment = outlook.CreateItem(OL_APPOINTMENT_ITEM)
            appointment.Subject = item.subject or "Küchendienst"
            appointment.Body = item.body or ""
            if item.location:
                appointment.Location = item.location
            appointment.AllDayEvent = True
            appointment.Start = item.start_local
            appointment.End = item.end_local
            appointment.MeetingStatus = OL_MEETING

            for email in recipients:
                recipient = appointment.Recipients.Add(email)
                recipient.Type = OL_REQUIRED
            if not appointment.Recipients.ResolveAll():
                logger.warning(f"Not all recipients could be resolved for: {item.subject}")

            if display_only:
                appointment.Display()
                result.status = MeetingItemStatus.DISPLAYED
            else:
                appointment.Send()
                result.status = MeetingItemStatus.SENT
        except Exception as e:
            logger.error(f"Failed to create meeting for {item.date}: {e}", exc_info=True)
            result.status = MeetingItemStatus.ERROR
            result.error = str(e)

        return result


def create_calendar_bridge(enabled: bool = True, file_delay: float = 0.8,
                           meeting_delay: float = 0.3) -> CalendarBridge:
    if not enabled:
        return UnavailableCalendarBridge()
    return DesktopCalendarBridge(file_delay=file_delay, meeting_delay=meeting_delay)
