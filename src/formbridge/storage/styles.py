from typing import Optional

from openpyxl.styles import Font, PatternFill, Alignment
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from formbridge.domain.models import ProcessingStatus


class SheetStyle:
    """
    Visual language shared by every spreadsheet backend.
    Colors are plain hex so the Google backend can reuse them.
    """

    # Header backgrounds
    INDEX_HEADER_BG = "4285F4"  # Blue
    LOG_HEADER_BG = "34A853"  # Green
    DATA_HEADER_BG = "FF9900"  # Orange
    HEADER_TEXT = "FFFFFF"

    STATUS_BG = {
        ProcessingStatus.COMPLETE: "D9EAD3",  # Light green
        ProcessingStatus.IN_PROGRESS: "FFF2CC",  # Light yellow
        ProcessingStatus.FAILED: "F4CCCC",  # Light red
    }

    # Column widths in pixels, as the host UI measures them
    INDEX_WIDTHS = [200, 150, 300, 120, 150, 150, 120, 100]
    LOG_WIDTHS = [180, 80, 500]

    @staticmethod
    def status_color(status) -> Optional[str]:
        try:
            return SheetStyle.STATUS_BG.get(ProcessingStatus(status))
        except ValueError:
            return None

    @staticmethod
    def apply_header_style(cell, background: str):
        """Bold white text on a solid background."""
        cell.font = Font(bold=True, color=SheetStyle.HEADER_TEXT)
        cell.fill = PatternFill(start_color=background, end_color=background, fill_type="solid")
        cell.alignment = Alignment(vertical="center")

    @staticmethod
    def apply_fill(cell, color: Optional[str]):
        if color:
            cell.fill = PatternFill(start_color=color, end_color=color, fill_type="solid")
        else:
            cell.fill = PatternFill(fill_type=None)

    @staticmethod
    def set_widths(ws: Worksheet, widths_px: list[int]):
        # Excel widths are in characters; ~7px per character at the default font
        for idx, px in enumerate(widths_px, start=1):
            ws.column_dimensions[get_column_letter(idx)].width = round(px / 7, 1)

    @staticmethod
    def auto_size_columns(ws: Worksheet):
        for column_cells in ws.columns:
            length = max(len(str(cell.value)) if cell.value is not None else 0 for cell in column_cells)
            ws.column_dimensions[get_column_letter(column_cells[0].column)].width = min(max(length + 2, 12), 60)
