"""
Tests for the export adapters: ICS files, mailto links, Outlook Web links
and the bridge helpers.
"""

import sys
import tempfile
from datetime import date, datetime
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from kitchen_duty import exporters
from kitchen_duty.calendar_bridge import (
    BRIDGE_UNAVAILABLE,
    CalendarBridge,
    MeetingResponse,
    OpenFileResult,
    UnavailableCalendarBridge,
)
from kitchen_duty.data_manager import Employee
from kitchen_duty.ics_calendar import IcsMethod
from kitchen_duty.planner import DutySlot


class RecordingBridge(CalendarBridge):
    """Accepts everything and remembers what it was given"""

    def __init__(self):
        self.opened = []
        self.requests = []

    def is_available(self):
        return True

    def supports_meeting_requests(self):
        return True

    def open_ics(self, ics_content, file_name):
        self.opened.append((file_name, ics_content))
        return OpenFileResult(file_name=file_name, success=True)

    def open_multiple_ics(self, files):
        return [self.open_ics(f["icsContent"], f["fileName"]) for f in files]

    def send_meeting_requests(self, request):
        self.requests.append(request)
        return MeetingResponse(success=True)


class RecordingOpener:
    def __init__(self):
        self.urls = []

    def __call__(self, url, new=0):
        self.urls.append((url, new))
        return True


@pytest.fixture
def roster():
    return [
        Employee(id="anna", name="Anna Berg", email="anna@example.com"),
        Employee(id="ben", name="Ben"),
    ]


@pytest.fixture
def slots():
    return [
        DutySlot(date=date(2024, 6, 3), weekday_label="Montag", employee_id="anna", employee_name="Anna Berg"),
        DutySlot(date=date(2024, 6, 4), weekday_label="Dienstag", employee_id="ben", employee_name="Ben"),
        DutySlot(date=date(2024, 6, 5), weekday_label="Mittwoch"),
        DutySlot(date=date(2024, 6, 6), weekday_label="Donnerstag", employee_id="anna", employee_name="Anna Berg"),
    ]


def test_download_writes_one_file_for_the_plan(slots, roster):
    with tempfile.TemporaryDirectory() as temp_dir:
        summary = exporters.download_ics_file(slots, roster, Path(temp_dir), export_date=date(2024, 6, 1))

        assert summary.success == 3
        assert summary.errors == []
        assert summary.path == Path(temp_dir) / "kuechendienst-2024-06-01.ics"
        content = summary.path.read_text(encoding="utf-8")
        assert content.count("BEGIN:VEVENT") == 3


def test_download_without_assigned_slots_writes_nothing():
    """
    Why this is important: An empty ICS file would import silently and leave
    the user believing the duties were exported.
    """
    empty = [DutySlot(date=date(2024, 6, 3), weekday_label="Montag")]

    with tempfile.TemporaryDirectory() as temp_dir:
        summary = exporters.download_ics_file(empty, [], Path(temp_dir))

        assert summary.success == 0
        assert summary.errors == [exporters.NO_ASSIGNED_DUTIES]
        assert list(Path(temp_dir).iterdir()) == []


def test_mailto_data_skips_employees_without_email(slots, roster):
    data = exporters.generate_mailto_data(slots, roster)

    assert len(data) == 1
    entry = data[0]
    assert entry.employee_email == "anna@example.com"
    assert entry.subject == "Küchendienst-Termine"
    assert "• Montag, 03.06.2024" in entry.body
    assert "• Donnerstag, 06.06.2024" in entry.body
    assert entry.ics_file_name == "kuechendienst-anna-berg.ics"
    assert entry.ics_content.count("BEGIN:VEVENT") == 2
    assert [e.name for e in exporters.employees_without_email(slots, roster)] == ["Ben"]


def test_mailto_url_is_percent_encoded(slots, roster):
    entry = exporters.generate_mailto_data(slots, roster)[0]

    url = exporters.build_mailto_url(entry)

    assert url.startswith("mailto:anna%40example.com?subject=K%C3%BCchendienst-Termine&body=")
    assert " " not in url
    assert "\n" not in url


def test_open_mailto_uses_a_new_browser_context(slots, roster):
    opener = RecordingOpener()
    entry = exporters.generate_mailto_data(slots, roster)[0]

    assert exporters.open_mailto(entry, opener=opener)
    assert opener.urls[0][1] == 2


def test_save_ics_for_employee(slots, roster):
    entry = exporters.generate_mailto_data(slots, roster)[0]

    with tempfile.TemporaryDirectory() as temp_dir:
        path = exporters.save_ics_for_employee(entry, Path(temp_dir))

        assert path.name == "kuechendienst-anna-berg.ics"
        assert path.read_bytes() == entry.ics_content.encode("utf-8")


def test_outlook_web_url(slots, roster):
    url = exporters.generate_outlook_web_url(slots[0], roster[0])

    assert url.startswith(exporters.OUTLOOK_WEB_COMPOSE_URL + "?")
    assert "startdt=2024-06-03" in url
    assert "enddt=2024-06-04" in url
    assert "allday=true" in url
    assert "to=anna%40example.com" in url


def test_outlook_web_requires_an_email(slots, roster):
    with pytest.raises(ValueError):
        exporters.generate_outlook_web_url(slots[1], roster[1])


def test_open_multiple_outlook_web_reports_per_slot(slots, roster):
    opener = RecordingOpener()

    summary = exporters.open_multiple_outlook_web(slots, roster, opener=opener)

    assert summary.success == 2
    assert summary.errors == [
        "Dienstag: Ben hat keine E-Mail-Adresse",
        "Mittwoch: Kein Mitarbeiter zugewiesen",
    ]
    assert len(opener.urls) == 2


def test_meeting_items_span_the_whole_day(slots, roster):
    organizer = Employee(id="org", name="Olga")

    items = exporters.build_meeting_items(slots, roster, location="Küche", organizer=organizer)

    assert [i.date for i in items] == [date(2024, 6, 3), date(2024, 6, 4), date(2024, 6, 6)]
    assert items[0].start_local == datetime(2024, 6, 3)
    assert items[0].end_local == datetime(2024, 6, 4)
    assert items[0].attendees == ["anna@example.com"]
    assert items[0].subject == "Küchendienst - Anna Berg"
    assert "Geplant von Olga" in items[0].body
    assert items[1].attendees == []
    assert all(i.location == "Küche" for i in items)


def test_send_meeting_requests_passes_items_to_the_bridge(slots, roster):
    bridge = RecordingBridge()

    response = exporters.send_meeting_requests(bridge, slots, roster, display_only=True)

    assert response.success
    assert bridge.requests[0].display_only is True
    assert len(bridge.requests[0].items) == 3


def test_send_meeting_requests_without_duties(roster):
    response = exporters.send_meeting_requests(RecordingBridge(), [], roster)

    assert response.success is False
    assert response.error == exporters.NO_ASSIGNED_DUTIES


def test_open_all_duties_opens_one_file_per_employee(slots, roster):
    bridge = RecordingBridge()

    results = exporters.open_all_duties_in_calendar(bridge, slots, roster)

    assert [(r.employee_name, r.success) for r in results] == [("Anna Berg", True), ("Ben", True)]
    assert [name for name, _ in bridge.opened] == ["kuechendienst-anna-berg.ics", "kuechendienst-ben.ics"]


def test_bridge_helpers_report_unavailable_bridge(slots, roster):
    results = exporters.open_all_duties_in_calendar(UnavailableCalendarBridge(), slots, roster)
    single = exporters.open_employee_duties_in_calendar(UnavailableCalendarBridge(), slots, roster[0])

    assert results[0].error == BRIDGE_UNAVAILABLE
    assert single.success is False
    assert single.error == BRIDGE_UNAVAILABLE


def test_summarize_results(slots, roster):
    results = exporters.open_all_duties_in_calendar(UnavailableCalendarBridge(), slots, roster)

    assert exporters.summarize_results(results) == {"success": 0, "failed": 1}


def test_mailto_batch_waits_between_compose_windows(slots, roster):
    """
    Why this is important: Launching several mailto links at once makes mail
    clients drop all but the first draft.
    """
    roster = roster + [Employee(id="cleo", name="Cleo", email="cleo@example.com")]
    slots = slots + [DutySlot(date=date(2024, 6, 7), weekday_label="Freitag", employee_id="cleo", employee_name="Cleo")]
    entries = exporters.generate_mailto_data(slots, roster)
    opener = RecordingOpener()
    pauses = []

    with tempfile.TemporaryDirectory() as temp_dir:
        summary = exporters.open_mailto_batch(entries, Path(temp_dir), opener=opener, sleep=pauses.append, delay=1.5)

        assert sorted(p.name for p in Path(temp_dir).iterdir()) == ["kuechendienst-anna-berg.ics", "kuechendienst-cleo.ics"]

    assert summary.success == 2
    assert summary.errors == []
    assert len(opener.urls) == 2
    assert pauses == [1.5]


def test_mailto_batch_reports_failures(slots, roster, monkeypatch):
    entries = exporters.generate_mailto_data(slots, roster)
    monkeypatch.setattr(exporters, "save_ics_for_employee", lambda data, output_dir: None)
    opener = RecordingOpener()

    summary = exporters.open_mailto_batch(entries, Path("."), opener=opener, sleep=lambda s: None)

    assert summary.success == 0
    assert summary.errors == ["Anna Berg: ICS-Datei konnte nicht gespeichert werden"]
    assert opener.urls == []


def test_single_slot_hand_off_uses_a_dated_file_name(slots, roster):
    bridge = RecordingBridge()

    result = exporters.open_slot_in_calendar(bridge, slots[3], roster[0])

    assert result.success
    file_name, content = bridge.opened[0]
    assert file_name == "kuechendienst-anna-berg-2024-06-06.ics"
    assert content.count("BEGIN:VEVENT") == 1
    assert "DTSTART;VALUE=DATE:20240606" in content


def test_single_slot_hand_off_rejects_unassigned_and_unavailable(slots, roster):
    unassigned = exporters.open_slot_in_calendar(RecordingBridge(), slots[2], None)
    unavailable = exporters.open_slot_in_calendar(UnavailableCalendarBridge(), slots[0], roster[0])

    assert unassigned.success is False
    assert unassigned.error == "Mittwoch: Kein Mitarbeiter zugewiesen"
    assert unavailable.error == BRIDGE_UNAVAILABLE


def test_bridge_helpers_pass_the_ics_method_through(slots, roster):
    organizer = Employee(id="org", name="Olga", email="olga@example.com")
    bridge = RecordingBridge()

    single = exporters.open_employee_duties_in_calendar(
        bridge, slots, roster[0], method=IcsMethod.REQUEST, organizer=organizer
    )
    results = exporters.open_all_duties_in_calendar(
        bridge, slots, roster, method=IcsMethod.REQUEST, organizer=organizer
    )

    assert single.success
    assert [(r.employee_name, r.success) for r in results] == [("Anna Berg", True), ("Ben", False)]
    assert results[1].error == "Dienstag: Ben hat keine E-Mail-Adresse"
    assert len(bridge.opened) == 2
    assert all("METHOD:REQUEST" in content for _, content in bridge.opened)


def test_request_hand_off_without_organizer_reports_the_reason(slots, roster):
    result = exporters.open_employee_duties_in_calendar(
        RecordingBridge(), slots, roster[0], method=IcsMethod.REQUEST, organizer=None
    )

    assert result.success is False
    assert result.error == "Kein Organisator mit E-Mail-Adresse hinterlegt"
