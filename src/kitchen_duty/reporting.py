"""
Reporting and Export Module for Kitchen Duty Planner

Handles PDF, Excel, and CSV export of the current duty plan and the
planning log.
"""

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence
import logging

from .data_manager import DataManager, LogEntry
from .duty_utils import UNASSIGNED_LABEL, format_date_de, format_datetime_de
from .planner import DutySlot

logger = logging.getLogger(__name__)

PLAN_COLUMNS = ["Datum", "Wochentag", "Mitarbeitender", "E-Mail", "Fixiert"]
LOG_COLUMNS = ["Datum", "Mitarbeitender", "Geplant am"]


class ReportGenerator:
    """Main class for generating reports and exports"""

    def __init__(self, data_manager: DataManager):
        self.data_manager = data_manager
        self.styles = getSampleStyleSheet()
        self._setup_custom_styles()

    def _setup_custom_styles(self):
        """Setup custom report styles"""
        self.styles.add(ParagraphStyle(
            name='CustomTitle',
            parent=self.styles['Heading1'],
            fontSize=18,
            spaceAfter=30,
            alignment=1  # Center alignment
        ))

        self.styles.add(ParagraphStyle(
            name='CustomHeading',
            parent=self.styles['Heading2'],
            fontSize=14,
            spaceAfter=12
        ))

    def export_plan_pdf(self, plan: Sequence[DutySlot], output_path: str) -> bool:
        """Export the duty plan as a printable one-page table"""
        try:
            doc = SimpleDocTemplate(
                output_path,
                pagesize=A4,
                rightMargin=0.75*inch,
                leftMargin=0.75*inch,
                topMargin=0.75*inch,
                bottomMargin=0.75*inch
            )

            story = []
            story.append(Paragraph(self._plan_title(plan), self.styles['CustomTitle']))

            if plan:
                story.append(self._create_plan_table(plan))
            else:
                story.append(Paragraph("Keine Planung vorhanden", self.styles['Normal']))

            story.append(Spacer(1, 20))
            story.append(Paragraph("Zusammenfassung", self.styles['CustomHeading']))
            story.append(self._create_summary_table(plan))

            organizer = self.data_manager.get_organizer()
            if organizer:
                story.append(Spacer(1, 20))
                story.append(Paragraph(f"Geplant von {organizer.name}", self.styles['Normal']))

            doc.build(story)
            return True

        except Exception as e:
            logger.error(f"Error creating PDF: {e}", exc_info=True)
            return False

    def _plan_title(self, plan: Sequence[DutySlot]) -> str:
        if not plan:
            return "Küchendienst"
        first = min(s.date for s in plan)
        last = max(s.date for s in plan)
        return f"Küchendienst {format_date_de(first)} – {format_date_de(last)}"

    def _create_plan_table(self, plan: Sequence[DutySlot]) -> Table:
        data = [PLAN_COLUMNS[:3] + ["Status"]]
        for slot in sorted(plan, key=lambda s: s.date):
            data.append([
                format_date_de(slot.date),
                slot.weekday_label,
                slot.employee_name,
                "fixiert" if slot.is_locked else "",
            ])

        table = Table(data, colWidths=[1.3*inch, 1.4*inch, 2.5*inch, 1.0*inch])
        style = [
            ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 10),
            ('BOTTOMPADDING', (0, 0), (-1, 0), 10),
            ('BACKGROUND', (0, 1), (-1, -1), colors.beige),
            ('GRID', (0, 0), (-1, -1), 1, colors.black),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ]
        # Highlight unassigned days
        for row, slot in enumerate(sorted(plan, key=lambda s: s.date), start=1):
            if slot.employee_id is None:
                style.append(('TEXTCOLOR', (2, row), (2, row), colors.red))

        table.setStyle(TableStyle(style))
        return table

    def _create_summary_table(self, plan: Sequence[DutySlot]) -> Table:
        summary = self.plan_summary(plan)
        data = [
            ['Kennzahl', 'Wert'],
            ['Geplante Tage', str(summary['total_slots'])],
            ['Zugewiesen', str(summary['assigned_slots'])],
            ['Nicht zugewiesen', str(summary['unassigned_slots'])],
            ['Fixiert', str(summary['locked_slots'])],
            ['Aktive Mitarbeitende', str(summary['active_employees'])],
        ]
        table = Table(data, colWidths=[3*inch, 1.5*inch])
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.lightgrey),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('ALIGN', (1, 0), (1, -1), 'RIGHT'),
            ('FONTSIZE', (0, 0), (-1, -1), 10),
            ('GRID', (0, 0), (-1, -1), 1, colors.black),
        ]))
        return table

    def plan_summary(self, plan: Sequence[DutySlot]) -> Dict[str, int]:
        assigned = [s for s in plan if s.employee_id]
        return {
            'total_slots': len(plan),
            'assigned_slots': len(assigned),
            'unassigned_slots': len(plan) - len(assigned),
            'locked_slots': len([s for s in plan if s.is_locked]),
            'active_employees': len(self.data_manager.get_employees(active_only=True)),
        }

    def export_excel(self, plan: Sequence[DutySlot], output_path: str) -> bool:
        """Export plan, log and roster to an Excel workbook"""
        try:
            with pd.ExcelWriter(output_path, engine='openpyxl') as writer:
                self._create_plan_dataframe(plan).to_excel(writer, sheet_name='Dienstplan', index=False)
                self._create_log_dataframe(self.data_manager.get_log_entries()).to_excel(
                    writer, sheet_name='Log', index=False)
                self._create_employee_dataframe().to_excel(writer, sheet_name='Mitarbeitende', index=False)

                self._format_excel_worksheets(writer)

            return True

        except Exception as e:
            logger.error(f"Error exporting to Excel: {e}", exc_info=True)
            return False

    def _create_plan_dataframe(self, plan: Sequence[DutySlot]) -> pd.DataFrame:
        employees = {e.id: e for e in self.data_manager.get_employees()}
        data = []
        for slot in sorted(plan, key=lambda s: s.date):
            employee = employees.get(slot.employee_id) if slot.employee_id else None
            data.append({
                'Datum': format_date_de(slot.date),
                'Wochentag': slot.weekday_label,
                'Mitarbeitender': slot.employee_name if slot.employee_id else UNASSIGNED_LABEL,
                'E-Mail': employee.email if employee and employee.email else '',
                'Fixiert': 'Ja' if slot.is_locked else 'Nein',
            })
        return pd.DataFrame(data, columns=PLAN_COLUMNS)

    def _create_log_dataframe(self, entries: Sequence[LogEntry]) -> pd.DataFrame:
        data = [
            {
                'Datum': format_date_de(entry.date),
                'Mitarbeitender': entry.employee_name,
                'Geplant am': format_datetime_de(entry.planned_at),
            }
            for entry in sorted(entries, key=lambda e: (e.date, e.planned_at))
        ]
        return pd.DataFrame(data, columns=LOG_COLUMNS)

    def _create_employee_dataframe(self) -> pd.DataFrame:
        data = []
        for emp in self.data_manager.get_employees():
            data.append({
                'Name': emp.name,
                'E-Mail': emp.email or '',
                'Aktiv': 'Ja' if emp.is_active else 'Nein',
                'Letzter Dienst': format_date_de(emp.last_duty_date) if emp.last_duty_date else '',
            })
        return pd.DataFrame(data, columns=['Name', 'E-Mail', 'Aktiv', 'Letzter Dienst'])

    def _format_excel_worksheets(self, writer):
        """Header colours and column widths for every sheet"""
        from openpyxl.styles import PatternFill, Font

        header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
        header_font = Font(color="FFFFFF", bold=True)

        for worksheet in writer.sheets.values():
            for cell in worksheet[1]:
                cell.fill = header_fill
                cell.font = header_font

            for column in worksheet.columns:
                column_letter = column[0].column_letter
                max_length = max((len(str(cell.value)) for cell in column if cell.value is not None), default=0)
                worksheet.column_dimensions[column_letter].width = min(max_length + 2, 50)

    def export_plan_csv(self, plan: Sequence[DutySlot], output_path: str) -> bool:
        """Export duty plan to CSV format"""
        try:
            self._create_plan_dataframe(plan).to_csv(output_path, index=False, encoding='utf-8')
            return True

        except Exception as e:
            logger.error(f"Error exporting to CSV: {e}", exc_info=True)
            return False

    def export_log_csv(self, output_path: str) -> bool:
        """Export the planning log to CSV format"""
        try:
            self._create_log_dataframe(self.data_manager.get_log_entries()).to_csv(
                output_path, index=False, encoding='utf-8')
            return True

        except Exception as e:
            logger.error(f"Error exporting log to CSV: {e}", exc_info=True)
            return False


class ExportManager:
    """Manager class for handling all export operations"""

    def __init__(self, data_manager: DataManager):
        self.data_manager = data_manager
        self.report_generator = ReportGenerator(data_manager)

    def export_plan(self, plan: Sequence[DutySlot], format_type: str, output_path: str) -> bool:
        """Export the plan in the specified format"""
        if format_type.lower() == 'pdf':
            return self.report_generator.export_plan_pdf(plan, output_path)
        elif format_type.lower() == 'excel':
            return self.report_generator.export_excel(plan, output_path)
        elif format_type.lower() == 'csv':
            return self.report_generator.export_plan_csv(plan, output_path)
        else:
            raise ValueError(f"Unsupported format: {format_type}")

    def get_default_filename(self, format_type: str, timestamp: Optional[datetime] = None) -> str:
        """Generate default filename for export"""
        extension = 'xlsx' if format_type.lower() == 'excel' else format_type.lower()
        stamp = (timestamp or datetime.now()).strftime("%Y%m%d_%H%M%S")
        return f"kuechendienst_{stamp}.{extension}"

    def batch_export(self, plan: Sequence[DutySlot], output_dir: str,
                     formats: List[str] = None) -> Dict[str, bool]:
        """Export the plan in multiple formats"""
        if formats is None:
            formats = ['pdf', 'excel', 'csv']

        results = {}
        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)

        for format_type in formats:
            file_path = output_path / self.get_default_filename(format_type)

            try:
                results[format_type] = self.export_plan(plan, format_type, str(file_path))
            except ValueError as e:
                logger.error(f"Error exporting {format_type}: {e}", exc_info=True)
                results[format_type] = False

        return results
