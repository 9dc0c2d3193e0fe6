from decimal import Decimal
from typing import Any, Dict, List
import io

import openpyxl
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

HEADERS = [
    "Sr.No",
    "Teacher",
    "Students",
    "Teaching Days",
    "Base Salary",
    "Lateness Deduction",
    "Absence Deduction",
    "Bonuses",
    "Total Salary",
    "Status",
]

MONEY_FORMAT = "#,##0.00"
MONEY_COLUMNS = range(5, 10)


class PayrollExcelProcessor:
    @staticmethod
    def create_salary_excel(salaries: List[Dict[str, Any]], from_date, to_date) -> bytes:
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = f"Salaries_{from_date:%Y_%m}"

        PayrollExcelProcessor._setup_headers(ws)
        row = PayrollExcelProcessor._write_rows(ws, salaries)
        PayrollExcelProcessor._write_totals(ws, salaries, row)
        PayrollExcelProcessor._format_columns(ws)

        buffer = io.BytesIO()
        wb.save(buffer)
        buffer.seek(0)
        return buffer.getvalue()

    @staticmethod
    def _border():
        thin = Side(style="thin")
        return Border(left=thin, right=thin, top=thin, bottom=thin)

    @staticmethod
    def _setup_headers(ws):
        header_font = Font(bold=True, size=10, name="Arial")
        header_alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        header_fill = PatternFill(start_color="D3D3D3", end_color="D3D3D3", fill_type="solid")

        for col, header in enumerate(HEADERS, 1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.font = header_font
            cell.alignment = header_alignment
            cell.fill = header_fill
            cell.border = PayrollExcelProcessor._border()

    @staticmethod
    def _write_rows(ws, salaries: List[Dict[str, Any]]) -> int:
        row = 2
        for index, salary in enumerate(salaries, 1):
            values = [
                index,
                salary["name"],
                salary["num_students"],
                salary["teaching_days"],
                float(salary["base_salary"]),
                float(salary["lateness_deduction"]),
                float(salary["absence_deduction"]),
                float(salary["bonuses"]),
                float(salary["total_salary"]),
                salary["status"],
            ]
            for col, value in enumerate(values, 1):
                cell = ws.cell(row=row, column=col, value=value)
                cell.border = PayrollExcelProcessor._border()
                if col in MONEY_COLUMNS:
                    cell.number_format = MONEY_FORMAT
            row += 1
        return row

    @staticmethod
    def _write_totals(ws, salaries: List[Dict[str, Any]], row: int):
        keys = ["base_salary", "lateness_deduction", "absence_deduction", "bonuses", "total_salary"]
        ws.cell(row=row, column=2, value="TOTAL").font = Font(bold=True)
        for col, key in zip(MONEY_COLUMNS, keys):
            total = sum((salary[key] for salary in salaries), Decimal("0.00"))
            cell = ws.cell(row=row, column=col, value=float(total))
            cell.font = Font(bold=True)
            cell.number_format = MONEY_FORMAT
            cell.border = PayrollExcelProcessor._border()

    @staticmethod
    def _format_columns(ws):
        widths = [6, 28, 10, 14, 14, 18, 18, 12, 14, 10]
        for col, width in enumerate(widths, 1):
            ws.column_dimensions[get_column_letter(col)].width = width
        ws.freeze_panes = "A2"
