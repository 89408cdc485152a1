"""
MediaSpend - Excel Billing Schedule Export.

This module writes billing schedules to Excel workbooks: one row per
campaign month with a column per media type, followed by the media,
fee, ad-serving, production and total columns and a grand total row.

Classes:
    ExcelReporter: Generates Excel workbooks from billing schedules.
"""

from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from mediaspend.schema import BillingSchedule, MediaType, PlanVersion


class ExcelReporter:
    """
    Generates Excel workbooks for billing schedules.

    Attributes:
        CURRENCY_FORMAT: Excel number format for money cells.

    Example:
        >>> reporter = ExcelReporter()
        >>> reporter.generate_report(schedule, "billing_schedule.xlsx", plan)
    """

    CURRENCY_FORMAT = '"$"#,##0.00'
    HEADER_ROW = 6

    MANUAL_FILL = PatternFill("solid", start_color="FCE4D6", end_color="FCE4D6")
    TOTAL_FILL = PatternFill("solid", start_color="E2EFDA", end_color="E2EFDA")
    HEADER_FILL = PatternFill("solid", start_color="1F4E78", end_color="1F4E78")
    HEADER_FONT = Font(bold=True, color="FFFFFF")
    HEADER_ALIGNMENT = Alignment(horizontal="center", vertical="center", wrap_text=True)

    _EDGE = Side(style="thin", color="BFBFBF")
    GRID_BORDER = Border(left=_EDGE, right=_EDGE, top=_EDGE, bottom=_EDGE)

    SUMMARY_HEADERS = ["Media", "Fee", "Ad Serving", "Production", "Total"]

    def generate_report(
        self,
        schedule: BillingSchedule,
        output_path: Union[str, Path],
        plan: Optional[PlanVersion] = None
    ) -> None:
        """
        Writes a billing schedule workbook.

        Args:
            schedule: Computed or manual billing schedule.
            output_path: Path for the output .xlsx file.
            plan: Plan version for the title rows, if available.
        """
        target = Path(output_path)
        target.parent.mkdir(parents=True, exist_ok=True)

        workbook = Workbook()
        self._fill_schedule_sheet(workbook.active, schedule, plan)
        workbook.save(target)

    def _fill_schedule_sheet(
        self,
        ws: Worksheet,
        schedule: BillingSchedule,
        plan: Optional[PlanVersion]
    ) -> None:
        """Lays out the title block, month rows and grand total row."""
        ws.title = "Billing Schedule"

        ws["A1"] = "Billing Schedule"
        ws["A1"].font = Font(bold=True, size=16)
        if plan is not None:
            ws["A2"] = f"{plan.client_name} - {plan.campaign_name}".strip(" -")
            ws["A3"] = f"MBA {plan.mba_number} v{plan.version_number}"
        ws["A4"] = "Generated:"
        ws["B4"] = datetime.now().strftime("%Y-%m-%d %H:%M")
        if schedule.is_manual:
            ws["C4"] = "Manual billing"
            ws["C4"].fill = self.MANUAL_FILL

        media_types = self._media_columns(schedule)
        headers = ["Month"] + [media.label for media in media_types] + self.SUMMARY_HEADERS
        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=self.HEADER_ROW, column=col, value=header)
            cell.font, cell.fill = self.HEADER_FONT, self.HEADER_FILL
            cell.alignment, cell.border = self.HEADER_ALIGNMENT, self.GRID_BORDER
        ws.freeze_panes = ws.cell(row=self.HEADER_ROW + 1, column=2)

        row = self.HEADER_ROW + 1
        for bucket in schedule.months:
            values = (
                [bucket.media_costs.get(media) for media in media_types]
                + [bucket.total_media, bucket.total_fee, bucket.ad_serving_fee,
                   bucket.production, bucket.total_amount]
            )
            self._write_row(ws, row, bucket.month_label, values)
            row += 1

        totals = [
            sum((bucket.media_costs.get(media, 0) for bucket in schedule.months), 0)
            for media in media_types
        ] + [
            sum((bucket.total_media for bucket in schedule.months), 0),
            sum((bucket.total_fee for bucket in schedule.months), 0),
            sum((bucket.ad_serving_fee for bucket in schedule.months), 0),
            sum((bucket.production for bucket in schedule.months), 0),
            schedule.grand_total,
        ]
        self._write_row(ws, row, "Grand Total", totals)
        for col in range(1, len(headers) + 1):
            ws.cell(row=row, column=col).font = Font(bold=True)
            ws.cell(row=row, column=col).fill = self.TOTAL_FILL

        self._fit_columns(ws)

    def _write_row(self, ws: Worksheet, row: int, label: str, values: list) -> None:
        """Writes a labelled row of currency cells."""
        ws.cell(row=row, column=1, value=label).border = self.GRID_BORDER
        for col, value in enumerate(values, start=2):
            cell = ws.cell(row=row, column=col)
            if value is not None:
                cell.value = float(value)
            cell.number_format = self.CURRENCY_FORMAT
            cell.border = self.GRID_BORDER

    def _media_columns(self, schedule: BillingSchedule) -> List[MediaType]:
        """Returns the media types present in the schedule, in processing order."""
        present = {media for bucket in schedule.months for media in bucket.media_costs}
        return [media for media in MediaType if media in present]

    def _fit_columns(self, ws: Worksheet) -> None:
        """Sizes each column to its longest value, title rows excluded."""
        for column in ws.iter_cols(min_row=self.HEADER_ROW):
            longest = max((len(str(c.value)) for c in column if c.value is not None), default=0)
            ws.column_dimensions[get_column_letter(column[0].column)].width = max(longest + 2, 12)

    def generate_filename(self, prefix: str = "billing_schedule") -> str:
        """Returns e.g. "billing_MBA1001_2025-03-10_143052.xlsx" for prefix "billing_MBA1001"."""
        stamp = datetime.now().strftime("%Y-%m-%d_%H%M%S")
        return f"{prefix}_{stamp}.xlsx"
