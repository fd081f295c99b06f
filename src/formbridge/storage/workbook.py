import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.workbook.workbook import Workbook as WorkbookType
from openpyxl.worksheet.worksheet import Worksheet

from formbridge.domain.models import IndexEntry, LogEntry, LogLevel, ProcessingStatus
from formbridge.exceptions import StorageError
from formbridge.storage.base import (
    COL_FORM_ID,
    COL_LAST_UPDATED,
    COL_LINK,
    COL_STATUS,
    DATA_SHEET_NAME,
    INDEX_HEADERS,
    LOG_HEADERS,
    METADATA_SHEET_NAME,
    data_grid,
    index_entry_from_row,
    index_row_values,
    link_cell_value,
    merge_index_entry,
    metadata_rows,
    now_label,
    stub_index_entry,
    survey_file_name,
)
from formbridge.storage.styles import SheetStyle

logger = logging.getLogger(__name__)


class WorkbookStore:
    """
    Local spreadsheet host backed by .xlsx files.
    The master workbook carries the index and log sheets; each survey gets its own
    workbook inside the data folder.
    """

    def __init__(
        self,
        master_path: Path,
        data_dir: Path,
        master_sheet_name: str = "Sprint Survey Master Database",
        log_sheet_name: str = "System Logs",
        folder_name: str = "EOS Survey Data Sheets",
        max_log_rows: int = 1000,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.master_path = Path(master_path)
        self.folder = Path(data_dir) / folder_name
        self.master_sheet_name = master_sheet_name
        self.log_sheet_name = log_sheet_name
        self.max_log_rows = max_log_rows
        self.clock = clock
        self._wb: Optional[WorkbookType] = None

    # -- master workbook -------------------------------------------------

    def ensure_setup(self) -> None:
        wb = self._master()
        self._index_sheet(wb)
        self._log_sheet(wb)
        try:
            self.folder.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create data folder {self.folder}: {exc}") from exc
        self._save()

    def _master(self) -> WorkbookType:
        if self._wb is None:
            if self.master_path.exists():
                try:
                    self._wb = load_workbook(self.master_path)
                except Exception as exc:
                    raise StorageError(f"Cannot open master workbook {self.master_path}: {exc}") from exc
            else:
                self._wb = Workbook()
                # Drop the default empty sheet; named sheets are created on demand
                self._wb.remove(self._wb.active)
        return self._wb

    def _save(self) -> None:
        wb = self._master()
        try:
            self.master_path.parent.mkdir(parents=True, exist_ok=True)
            wb.save(self.master_path)
        except OSError as exc:
            raise StorageError(f"Cannot save master workbook {self.master_path}: {exc}") from exc

    def _index_sheet(self, wb: WorkbookType) -> Worksheet:
        if self.master_sheet_name in wb.sheetnames:
            return wb[self.master_sheet_name]
        ws = wb.create_sheet(self.master_sheet_name)
        self._write_header(ws, INDEX_HEADERS, SheetStyle.INDEX_HEADER_BG)
        SheetStyle.set_widths(ws, SheetStyle.INDEX_WIDTHS)
        return ws

    def _log_sheet(self, wb: WorkbookType) -> Worksheet:
        if self.log_sheet_name in wb.sheetnames:
            return wb[self.log_sheet_name]
        ws = wb.create_sheet(self.log_sheet_name)
        self._write_header(ws, LOG_HEADERS, SheetStyle.LOG_HEADER_BG)
        SheetStyle.set_widths(ws, SheetStyle.LOG_WIDTHS)
        return ws

    @staticmethod
    def _append_row(ws: Worksheet, values: list[Any]) -> int:
        # Explicit row numbers; ws.append keeps counting past rows removed by delete_rows
        row_num = ws.max_row + 1
        for col, value in enumerate(values, start=1):
            ws.cell(row=row_num, column=col, value=value)
        return row_num

    @staticmethod
    def _write_header(ws: Worksheet, headers: list[str], background: str) -> None:
        for col, title in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col, value=title)
            SheetStyle.apply_header_style(cell, background)

    # -- index -----------------------------------------------------------

    def read_index(self) -> list[IndexEntry]:
        ws = self._index_sheet(self._master())
        entries = []
        for row in ws.iter_rows(min_row=2, values_only=True):
            entry = index_entry_from_row(list(row))
            if entry:
                entries.append(entry)
        return entries

    def _find_row(self, ws: Worksheet, form_id: str) -> Optional[int]:
        for row_num in range(2, ws.max_row + 1):
            if ws.cell(row=row_num, column=COL_FORM_ID).value == form_id:
                return row_num
        return None

    def upsert_index(self, entry: IndexEntry) -> None:
        ws = self._index_sheet(self._master())
        row_num = self._find_row(ws, entry.form_id)
        existing = None
        if row_num:
            existing = index_entry_from_row([c.value for c in ws[row_num]])
        merged = merge_index_entry(entry, existing, now_label(self.clock))

        if row_num is None:
            row_num = self._append_row(ws, index_row_values(merged))
        else:
            for col, value in enumerate(index_row_values(merged), start=1):
                ws.cell(row=row_num, column=col, value=value)

        self._format_row(ws, row_num)
        self._save()

    def set_status(self, form_id: str, status: ProcessingStatus, sprint_name: Optional[str] = None) -> None:
        ws = self._index_sheet(self._master())
        now = now_label(self.clock)
        row_num = self._find_row(ws, form_id)
        if row_num is None:
            row_num = self._append_row(ws, index_row_values(stub_index_entry(form_id, status, sprint_name, now)))
        else:
            ws.cell(row=row_num, column=COL_STATUS, value=status.value)
            ws.cell(row=row_num, column=COL_LAST_UPDATED, value=now)
        self._format_row(ws, row_num)
        self._save()

    def _format_row(self, ws: Worksheet, row_num: int) -> None:
        status_cell = ws.cell(row=row_num, column=COL_STATUS)
        SheetStyle.apply_fill(status_cell, SheetStyle.status_color(status_cell.value))

        link_cell = ws.cell(row=row_num, column=COL_LINK)
        if isinstance(link_cell.value, str) and not link_cell.value.startswith("="):
            link_cell.value = link_cell_value(link_cell.value)

    # -- per-survey workbooks ----------------------------------------------

    def survey_path(self, sprint_name: str) -> Path:
        safe_name = sprint_name.replace("/", "-").replace("\\", "-")
        return self.folder / f"{survey_file_name(safe_name)}.xlsx"

    def write_survey_sheet(self, sprint_name: str, form_id: str, rows: list[dict[str, Any]]) -> str:
        path = self.survey_path(sprint_name)
        try:
            self.folder.mkdir(parents=True, exist_ok=True)
            if path.exists():
                wb = load_workbook(path)
                # Rebuild the data sheet in place of clearing cells one by one
                if DATA_SHEET_NAME in wb.sheetnames:
                    wb.remove(wb[DATA_SHEET_NAME])
                ws = wb.create_sheet(DATA_SHEET_NAME, 0)
                wb.active = 0
            else:
                wb = Workbook()
                ws = wb.active
                ws.title = DATA_SHEET_NAME

            if rows:
                headers, grid = data_grid(rows)
                self._write_header(ws, headers, SheetStyle.DATA_HEADER_BG)
                for values in grid:
                    ws.append(values)
                SheetStyle.auto_size_columns(ws)

            self._write_metadata(wb, form_id, len(rows))
            wb.save(path)
        except Exception as exc:
            raise StorageError(f"Error creating data sheet for {sprint_name}: {exc}") from exc

        logger.debug("wrote %d rows to %s", len(rows), path)
        return path.resolve().as_uri()

    def _write_metadata(self, wb: WorkbookType, form_id: str, response_count: int) -> None:
        if METADATA_SHEET_NAME in wb.sheetnames:
            wb.remove(wb[METADATA_SHEET_NAME])
        ws = wb.create_sheet(METADATA_SHEET_NAME)
        for values in metadata_rows(form_id, response_count, now_label(self.clock)):
            ws.append(values)
        for cell in ws[1]:
            cell.font = Font(bold=True)
        SheetStyle.auto_size_columns(ws)

    # -- activity log ----------------------------------------------------

    def append_log(self, entry: LogEntry) -> None:
        ws = self._log_sheet(self._master())
        self._append_row(ws, entry.to_row())
        overflow = ws.max_row - 1 - self.max_log_rows
        if overflow > 0:
            ws.delete_rows(2, overflow)
        self._save()

    def read_log(self, limit: int = 50) -> list[LogEntry]:
        ws = self._log_sheet(self._master())
        entries = []
        for ts, level, message in ws.iter_rows(min_row=2, max_col=3, values_only=True):
            try:
                parsed_level = LogLevel(level)
            except ValueError:
                parsed_level = LogLevel.INFO
            entries.append(LogEntry(timestamp=str(ts or ""), level=parsed_level, message=str(message or "")))
        return entries[-limit:] if limit else entries
