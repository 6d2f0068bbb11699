"""
Tests for the launcher: dependency check and startup failure handling.
"""

import sys
import tempfile
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from kitchen_duty import main
from kitchen_duty.calendar_bridge import UnavailableCalendarBridge


@pytest.fixture
def data_dir(monkeypatch):
    with tempfile.TemporaryDirectory() as temp_dir:
        monkeypatch.setattr(main, "resolve_data_dir", lambda: Path(temp_dir))
        yield Path(temp_dir)


def test_missing_packages_are_listed(monkeypatch):
    real_find_spec = main.importlib.util.find_spec
    monkeypatch.setattr(
        main.importlib.util, "find_spec",
        lambda name: None if name == "reportlab" else real_find_spec(name),
    )

    assert main.missing_dependencies() == ["reportlab"]

    app = main.KitchenDutyApp()
    assert app.initialize() is False
    assert "reportlab" in app.startup_error


def test_initialize_wires_the_configured_bridge(data_dir, monkeypatch):
    monkeypatch.setattr(main, "missing_dependencies", lambda: [])
    (data_dir / "kitchen_duty.json").write_text('{"settings": {"calendarBridgeEnabled": false}}', encoding="utf-8")

    app = main.KitchenDutyApp()

    assert app.initialize() is True
    assert isinstance(app.app_state.bridge, UnavailableCalendarBridge)


def test_unreadable_roster_stops_startup(data_dir, monkeypatch):
    """
    Why this is important: Starting with an empty roster over a damaged file
    would overwrite the duty history on the next save.
    """
    monkeypatch.setattr(main, "missing_dependencies", lambda: [])
    (data_dir / "kitchen_duty.json").write_text("{ not json", encoding="utf-8")

    app = main.KitchenDutyApp()

    assert app.initialize() is False
    assert app.data_manager is None
    assert "kitchen_duty.json" in app.startup_error
