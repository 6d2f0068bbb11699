"""
Tests for PDF, Excel and CSV export of the duty plan.
"""

import json
import os
import sys
import tempfile
from datetime import date, datetime
from pathlib import Path

import pandas as pd
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from kitchen_duty.data_manager import DataManager, LogEntry
from kitchen_duty.planner import DutySlot
from kitchen_duty.reporting import ExportManager, ReportGenerator


@pytest.fixture
def data_manager():
    with tempfile.NamedTemporaryFile(mode="w", suffix=".json", delete=False) as temp_file:
        temp_path = temp_file.name
        json.dump({}, temp_file)
    dm = DataManager(temp_path)
    dm.add_employee("Anna", "anna@example.com")
    dm.append_log_entries([
        LogEntry(id="1", date=date(2024, 5, 27), employee_name="Ben", planned_at=datetime(2024, 5, 24, 9, 0)),
    ])
    yield dm
    os.unlink(temp_path)


@pytest.fixture
def plan(data_manager):
    anna = data_manager.get_employee_by_name("Anna")
    return [
        DutySlot(date=date(2024, 6, 3), weekday_label="Montag", employee_id=anna.id,
                 employee_name="Anna", is_locked=True),
        DutySlot(date=date(2024, 6, 4), weekday_label="Dienstag"),
    ]


def test_pdf_export_creates_file(data_manager, plan):
    """
    Why this is important: The printed plan is what hangs in the kitchen.
    Umlauts and the unassigned marker must not break PDF generation.
    """
    generator = ReportGenerator(data_manager)

    with tempfile.TemporaryDirectory() as temp_dir:
        output_path = Path(temp_dir) / "plan.pdf"

        assert generator.export_plan_pdf(plan, str(output_path))
        assert output_path.read_bytes().startswith(b"%PDF")


def test_pdf_export_failure_returns_false(data_manager, plan):
    generator = ReportGenerator(data_manager)

    assert generator.export_plan_pdf(plan, "/nonexistent-dir/for/sure/plan.pdf") is False


def test_csv_export(data_manager, plan):
    generator = ReportGenerator(data_manager)

    with tempfile.TemporaryDirectory() as temp_dir:
        output_path = Path(temp_dir) / "plan.csv"
        assert generator.export_plan_csv(plan, str(output_path))

        df = pd.read_csv(output_path, encoding="utf-8", keep_default_na=False)

    assert list(df.columns) == ["Datum", "Wochentag", "Mitarbeitender", "E-Mail", "Fixiert"]
    assert df.iloc[0].tolist() == ["03.06.2024", "Montag", "Anna", "anna@example.com", "Ja"]
    assert df.iloc[1]["Mitarbeitender"] == "– Nicht zugewiesen –"


def test_excel_export_has_plan_and_log_sheets(data_manager, plan):
    generator = ReportGenerator(data_manager)

    with tempfile.TemporaryDirectory() as temp_dir:
        output_path = Path(temp_dir) / "plan.xlsx"
        assert generator.export_excel(plan, str(output_path))

        with pd.ExcelFile(output_path) as workbook:
            assert workbook.sheet_names == ["Dienstplan", "Log", "Mitarbeitende"]
            log = pd.read_excel(workbook, sheet_name="Log")

    assert log.iloc[0].tolist() == ["27.05.2024", "Ben", "24.05.2024 09:00"]


def test_log_csv_export(data_manager):
    generator = ReportGenerator(data_manager)

    with tempfile.TemporaryDirectory() as temp_dir:
        output_path = Path(temp_dir) / "log.csv"
        assert generator.export_log_csv(str(output_path))

        df = pd.read_csv(output_path, encoding="utf-8")

    assert list(df.columns) == ["Datum", "Mitarbeitender", "Geplant am"]
    assert len(df) == 1


def test_plan_summary(data_manager, plan):
    summary = ReportGenerator(data_manager).plan_summary(plan)

    assert summary == {
        "total_slots": 2,
        "assigned_slots": 1,
        "unassigned_slots": 1,
        "locked_slots": 1,
        "active_employees": 1,
    }


def test_export_manager_dispatch(data_manager, plan):
    manager = ExportManager(data_manager)

    with pytest.raises(ValueError):
        manager.export_plan(plan, "docx", "plan.docx")

    assert manager.get_default_filename("excel", datetime(2024, 6, 1, 12, 30)) == "kuechendienst_20240601_123000.xlsx"
    assert manager.get_default_filename("pdf", datetime(2024, 6, 1, 12, 30)) == "kuechendienst_20240601_123000.pdf"


def test_batch_export(data_manager, plan):
    manager = ExportManager(data_manager)

    with tempfile.TemporaryDirectory() as temp_dir:
        results = manager.batch_export(plan, temp_dir, formats=["pdf", "csv", "docx"])

        assert results == {"pdf": True, "csv": True, "docx": False}
        assert len(list(Path(temp_dir).iterdir())) == 2
