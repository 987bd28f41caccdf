from __future__ import annotations

from datetime import datetime
from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from oncall_payroll.schemas import OnCallPayrollReport

SHIFT_HEADERS = [
    "Start",
    "End",
    "Days",
    "Hours",
    "Bill",
]
DATETIME_FORMAT = "dd/mm/yyyy hh:mm"
MONEY_FORMAT = "0.00"

HEADER_FILL = PatternFill(fill_type="solid", fgColor="0B4F73")
META_LABEL_FILL = PatternFill(fill_type="solid", fgColor="EAF4F9")
META_VALUE_FILL = PatternFill(fill_type="solid", fgColor="F8FCFF")
ZEBRA_FILL = PatternFill(fill_type="solid", fgColor="F7FBFE")
SUMMARY_FILL = PatternFill(fill_type="solid", fgColor="E9F1F7")

HEADER_FONT = Font(bold=True, color="FFFFFF")
BOLD_FONT = Font(bold=True, color="0F172A")
TITLE_FONT = Font(bold=True, color="0B4F73", size=14)
MUTED_FONT = Font(color="334155")

THIN_SIDE = Side(style="thin", color="D5E2EC")
THIN_BORDER = Border(left=THIN_SIDE, right=THIN_SIDE, top=THIN_SIDE, bottom=THIN_SIDE)


def _to_excel_datetime(value: datetime) -> datetime:
    # Excel has no time zones; keep the report's wall-clock time.
    return value.replace(tzinfo=None)


def _style_header(ws: Worksheet, row: int) -> None:
    for cell in ws[row]:
        if cell.value is None:
            continue
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        cell.border = THIN_BORDER


def _auto_width(ws: Worksheet) -> None:
    for column_cells in ws.iter_cols(min_row=1, max_row=ws.max_row, min_col=1, max_col=ws.max_column):
        max_len = 0
        col_letter = get_column_letter(column_cells[0].column)
        for cell in column_cells:
            if cell.coordinate in ws.merged_cells:
                continue
            value = "" if cell.value is None else str(cell.value)
            max_len = max(max_len, len(value))
        ws.column_dimensions[col_letter].width = min(max_len + 2, 45)


def _merge_title(ws: Worksheet, row: int, text: str) -> None:
    ws.merge_cells(start_row=row, start_column=1, end_row=row, end_column=len(SHIFT_HEADERS))
    cell = ws.cell(row=row, column=1, value=text)
    cell.font = TITLE_FONT
    cell.alignment = Alignment(horizontal="left", vertical="center")


def _style_label_value_rows(ws: Worksheet, *, start_row: int, end_row: int, label_fill: PatternFill) -> None:
    for row_idx in range(start_row, end_row + 1):
        label_cell = ws.cell(row=row_idx, column=1)
        value_cell = ws.cell(row=row_idx, column=2)
        label_cell.font = BOLD_FONT
        label_cell.fill = label_fill
        label_cell.alignment = Alignment(horizontal="left", vertical="center")
        label_cell.border = THIN_BORDER

        value_cell.font = MUTED_FONT
        value_cell.fill = META_VALUE_FILL
        value_cell.alignment = Alignment(horizontal="left", vertical="center")
        value_cell.border = THIN_BORDER


def _style_shift_rows(ws: Worksheet, *, header_row: int, data_start_row: int, data_end_row: int) -> None:
    ws.freeze_panes = f"A{header_row + 1}"
    if data_end_row < data_start_row:
        return

    ws.auto_filter.ref = f"A{header_row}:{get_column_letter(len(SHIFT_HEADERS))}{data_end_row}"
    for row_idx in range(data_start_row, data_end_row + 1):
        for col_idx in range(1, len(SHIFT_HEADERS) + 1):
            cell = ws.cell(row=row_idx, column=col_idx)
            cell.border = THIN_BORDER
            if row_idx % 2 == 0:
                cell.fill = ZEBRA_FILL
            if isinstance(cell.value, datetime):
                cell.number_format = DATETIME_FORMAT
                cell.alignment = Alignment(horizontal="left", vertical="center")
            else:
                cell.alignment = Alignment(horizontal="center", vertical="center")
        ws.cell(row=row_idx, column=5).number_format = MONEY_FORMAT


def build_oncall_payroll_xlsx_bytes(report: OnCallPayrollReport) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = f"On-call {report.period.year}-{report.period.month:02d}"

    _merge_title(ws, 1, f"On-call payroll report {report.period.year}-{report.period.month:02d}")
    ws.append([])
    meta_rows = [
        ["User", f"{report.user.name} [id: {report.user.id}]"],
        ["Schedule", f"{report.schedule.name} [id: {report.schedule.id}]"],
        ["Schedule URL", report.schedule.html_url or "-"],
        ["Rate", report.rate],
        ["Time zone", report.timezone],
    ]
    for row in meta_rows:
        ws.append(row)
    meta_end = ws.max_row
    meta_start = meta_end - len(meta_rows) + 1
    _style_label_value_rows(ws, start_row=meta_start, end_row=meta_end, label_fill=META_LABEL_FILL)
    ws.cell(row=meta_end - 1, column=2).number_format = MONEY_FORMAT

    # Empty appends advance the write cursor without touching max_row.
    ws.append([])
    ws.append(SHIFT_HEADERS)
    header_row = ws.max_row
    _style_header(ws, header_row)
    for shift in report.shifts:
        ws.append(
            [
                _to_excel_datetime(shift.start),
                _to_excel_datetime(shift.end),
                shift.days_in_shift,
                shift.hours_in_shift,
                shift.shift_bill,
            ]
        )
    _style_shift_rows(ws, header_row=header_row, data_start_row=header_row + 1, data_end_row=ws.max_row)

    ws.append([])
    ws.append(["Summary", "Value"])
    summary_header_row = ws.max_row
    _style_header(ws, summary_header_row)
    ws.append(["Shifts", len(report.shifts)])
    ws.append(["Days", report.total_days])
    ws.append(["Hours", report.total_hours])
    ws.append(["Total sum", report.bill])
    summary_end = ws.max_row
    _style_label_value_rows(ws, start_row=summary_header_row + 1, end_row=summary_end, label_fill=SUMMARY_FILL)
    ws.cell(row=summary_end, column=2).number_format = MONEY_FORMAT

    _auto_width(ws)

    stream = BytesIO()
    wb.save(stream)
    return stream.getvalue()
