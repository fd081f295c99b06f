import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import quote

import requests
from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import service_account

from formbridge.domain.models import IndexEntry, LogEntry, LogLevel, ProcessingStatus
from formbridge.exceptions import ConfigurationError, StorageError
from formbridge.storage.base import (
    COL_FORM_ID,
    COL_STATUS,
    DATA_SHEET_NAME,
    INDEX_HEADERS,
    LOG_HEADERS,
    METADATA_SHEET_NAME,
    data_grid,
    index_entry_from_row,
    index_row_values,
    merge_index_entry,
    metadata_rows,
    now_label,
    stub_index_entry,
    survey_file_name,
)
from formbridge.storage.styles import SheetStyle

logger = logging.getLogger(__name__)

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"
DRIVE_API = "https://www.googleapis.com/drive/v3/files"
SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]
FOLDER_MIME = "application/vnd.google-apps.folder"
SPREADSHEET_MIME = "application/vnd.google-apps.spreadsheet"


def _rgb(hex_color: str) -> dict[str, float]:
    return {
        "red": int(hex_color[0:2], 16) / 255,
        "green": int(hex_color[2:4], 16) / 255,
        "blue": int(hex_color[4:6], 16) / 255,
    }


def _range(title: str, a1: str = "") -> str:
    return quote(f"'{title}'!{a1}" if a1 else f"'{title}'", safe="")


def _escape_query(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def spreadsheet_url(spreadsheet_id: str) -> str:
    return f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}"


class GoogleSheetsStore:
    """
    Google Sheets host: the master spreadsheet holds the index and log tabs,
    per-survey spreadsheets live in a Drive folder looked up by name.
    """

    def __init__(
        self,
        master_spreadsheet_id: Optional[str],
        service_account_file: Optional[Path] = None,
        session: Optional[Any] = None,
        master_sheet_name: str = "Sprint Survey Master Database",
        log_sheet_name: str = "System Logs",
        folder_name: str = "EOS Survey Data Sheets",
        max_log_rows: int = 1000,
        timeout_seconds: float = 30.0,
        clock: Callable[[], datetime] = datetime.now,
    ):
        if not master_spreadsheet_id:
            raise ConfigurationError("google.master_spreadsheet_id is not configured.")
        if session is None:
            if not service_account_file or not Path(service_account_file).exists():
                raise ConfigurationError("google.service_account_file is missing or does not exist.")
            creds = service_account.Credentials.from_service_account_file(service_account_file, scopes=SCOPES)
            session = AuthorizedSession(creds)

        self.session = session
        self.master_id = master_spreadsheet_id
        self.master_sheet_name = master_sheet_name
        self.log_sheet_name = log_sheet_name
        self.folder_name = folder_name
        self.max_log_rows = max_log_rows
        self.timeout_seconds = timeout_seconds
        self.clock = clock
        self._folder_id: Optional[str] = None

    # -- HTTP plumbing ---------------------------------------------------

    def _request(self, method: str, url: str, **kwargs) -> dict[str, Any]:
        try:
            resp = self.session.request(method, url, timeout=self.timeout_seconds, **kwargs)
        except requests.RequestException as exc:
            raise StorageError(f"Google API request failed: {exc}") from exc
        if not 200 <= resp.status_code < 300:
            raise StorageError(f"Google API error {resp.status_code}: {resp.text}")
        return resp.json() if resp.content else {}

    def _batch_update(self, spreadsheet_id: str, requests_: list[dict[str, Any]]) -> dict[str, Any]:
        return self._request("POST", f"{SHEETS_API}/{spreadsheet_id}:batchUpdate", json={"requests": requests_})

    def _sheet_ids(self, spreadsheet_id: str) -> dict[str, int]:
        data = self._request("GET", f"{SHEETS_API}/{spreadsheet_id}", params={"fields": "sheets.properties"})
        return {s["properties"]["title"]: s["properties"]["sheetId"] for s in data.get("sheets", [])}

    def _get_values(self, spreadsheet_id: str, title: str) -> list[list[Any]]:
        data = self._request(
            "GET",
            f"{SHEETS_API}/{spreadsheet_id}/values/{_range(title)}",
            params={"valueRenderOption": "FORMULA", "dateTimeRenderOption": "FORMATTED_STRING"},
        )
        return data.get("values", [])

    def _put_values(self, spreadsheet_id: str, title: str, a1: str, values: list[list[Any]]) -> None:
        self._request(
            "PUT",
            f"{SHEETS_API}/{spreadsheet_id}/values/{_range(title, a1)}",
            params={"valueInputOption": "USER_ENTERED"},
            json={"values": values},
        )

    def _clear(self, spreadsheet_id: str, title: str) -> None:
        self._request("POST", f"{SHEETS_API}/{spreadsheet_id}/values/{_range(title)}:clear", json={})

    # -- formatting requests -----------------------------------------------

    @staticmethod
    def _header_format(sheet_id: int, columns: int, background: Optional[str]) -> dict[str, Any]:
        fmt: dict[str, Any] = {"textFormat": {"bold": True}}
        if background:
            fmt["backgroundColor"] = _rgb(background)
            fmt["textFormat"]["foregroundColor"] = _rgb(SheetStyle.HEADER_TEXT)
        return {
            "repeatCell": {
                "range": {"sheetId": sheet_id, "startRowIndex": 0, "endRowIndex": 1,
                          "startColumnIndex": 0, "endColumnIndex": columns},
                "cell": {"userEnteredFormat": fmt},
                "fields": "userEnteredFormat(backgroundColor,textFormat)",
            }
        }

    @staticmethod
    def _width_requests(sheet_id: int, widths: list[int]) -> list[dict[str, Any]]:
        return [
            {
                "updateDimensionProperties": {
                    "range": {"sheetId": sheet_id, "dimension": "COLUMNS", "startIndex": i, "endIndex": i + 1},
                    "properties": {"pixelSize": px},
                    "fields": "pixelSize",
                }
            }
            for i, px in enumerate(widths)
        ]

    @staticmethod
    def _auto_resize(sheet_id: int, columns: int) -> dict[str, Any]:
        return {
            "autoResizeDimensions": {
                "dimensions": {"sheetId": sheet_id, "dimension": "COLUMNS", "startIndex": 0, "endIndex": columns}
            }
        }

    def _color_status(self, sheet_id: int, row_num: int, status: ProcessingStatus) -> None:
        color = SheetStyle.status_color(status)
        cell: dict[str, Any] = {"userEnteredFormat": {"backgroundColor": _rgb(color)}} if color else {}
        self._batch_update(
            self.master_id,
            [
                {
                    "repeatCell": {
                        "range": {"sheetId": sheet_id, "startRowIndex": row_num - 1, "endRowIndex": row_num,
                                  "startColumnIndex": COL_STATUS - 1, "endColumnIndex": COL_STATUS},
                        "cell": cell,
                        "fields": "userEnteredFormat.backgroundColor",
                    }
                }
            ],
        )

    # -- master spreadsheet ----------------------------------------------

    def _ensure_sheet(self, title: str, headers: list[str], background: str, widths: list[int]) -> int:
        existing = self._sheet_ids(self.master_id)
        if title in existing:
            return existing[title]
        reply = self._batch_update(self.master_id, [{"addSheet": {"properties": {"title": title}}}])
        sheet_id = reply["replies"][0]["addSheet"]["properties"]["sheetId"]
        self._put_values(self.master_id, title, "A1", [headers])
        self._batch_update(
            self.master_id,
            [self._header_format(sheet_id, len(headers), background)] + self._width_requests(sheet_id, widths),
        )
        return sheet_id

    def _index_sheet(self) -> int:
        return self._ensure_sheet(
            self.master_sheet_name, INDEX_HEADERS, SheetStyle.INDEX_HEADER_BG, SheetStyle.INDEX_WIDTHS
        )

    def _log_sheet(self) -> int:
        return self._ensure_sheet(self.log_sheet_name, LOG_HEADERS, SheetStyle.LOG_HEADER_BG, SheetStyle.LOG_WIDTHS)

    def ensure_setup(self) -> None:
        self._index_sheet()
        self._log_sheet()
        self._folder()

    def read_index(self) -> list[IndexEntry]:
        self._index_sheet()
        entries = []
        for row in self._get_values(self.master_id, self.master_sheet_name)[1:]:
            entry = index_entry_from_row(row)
            if entry:
                entries.append(entry)
        return entries

    def _locate(self, form_id: str) -> tuple[list[list[Any]], Optional[int]]:
        values = self._get_values(self.master_id, self.master_sheet_name)
        for i, row in enumerate(values[1:], start=2):
            if len(row) >= COL_FORM_ID and row[COL_FORM_ID - 1] == form_id:
                return values, i
        return values, None

    def upsert_index(self, entry: IndexEntry) -> None:
        sheet_id = self._index_sheet()
        values, row_num = self._locate(entry.form_id)
        existing = index_entry_from_row(values[row_num - 1]) if row_num else None
        merged = merge_index_entry(entry, existing, now_label(self.clock))
        row_num = row_num or max(len(values), 1) + 1
        self._put_values(self.master_id, self.master_sheet_name, f"A{row_num}:H{row_num}", [index_row_values(merged)])
        self._color_status(sheet_id, row_num, merged.status)

    def set_status(self, form_id: str, status: ProcessingStatus, sprint_name: Optional[str] = None) -> None:
        sheet_id = self._index_sheet()
        now = now_label(self.clock)
        values, row_num = self._locate(form_id)
        if row_num is None:
            row_num = max(len(values), 1) + 1
            stub = stub_index_entry(form_id, status, sprint_name, now)
            self._put_values(self.master_id, self.master_sheet_name, f"A{row_num}:H{row_num}", [index_row_values(stub)])
        else:
            # Last Updated and Processing Status are adjacent columns
            self._put_values(
                self.master_id,
                self.master_sheet_name,
                f"F{row_num}:G{row_num}",
                [[now, status.value]],
            )
        self._color_status(sheet_id, row_num, status)

    # -- per-survey spreadsheets -------------------------------------------

    def _folder(self) -> str:
        if self._folder_id:
            return self._folder_id
        query = f"name = '{_escape_query(self.folder_name)}' and mimeType = '{FOLDER_MIME}' and trashed = false"
        files = self._request("GET", DRIVE_API, params={"q": query, "fields": "files(id,name)"}).get("files", [])
        if files:
            self._folder_id = files[0]["id"]
        else:
            created = self._request("POST", DRIVE_API, json={"name": self.folder_name, "mimeType": FOLDER_MIME})
            self._folder_id = created["id"]
            logger.info("created Drive folder %s", self.folder_name)
        return self._folder_id

    def _find_or_create_spreadsheet(self, name: str) -> str:
        folder_id = self._folder()
        query = (
            f"name = '{_escape_query(name)}' and '{folder_id}' in parents "
            f"and mimeType = '{SPREADSHEET_MIME}' and trashed = false"
        )
        files = self._request("GET", DRIVE_API, params={"q": query, "fields": "files(id,name)"}).get("files", [])
        if files:
            return files[0]["id"]
        created = self._request(
            "POST", DRIVE_API, json={"name": name, "mimeType": SPREADSHEET_MIME, "parents": [folder_id]}
        )
        return created["id"]

    def _prepare_sheet(self, spreadsheet_id: str, title: str, rename_first: bool) -> int:
        ids = self._sheet_ids(spreadsheet_id)
        if title in ids:
            self._clear(spreadsheet_id, title)
            return ids[title]
        if rename_first and ids:
            sheet_id = next(iter(ids.values()))
            self._batch_update(
                spreadsheet_id,
                [{"updateSheetProperties": {"properties": {"sheetId": sheet_id, "title": title}, "fields": "title"}}],
            )
            self._clear(spreadsheet_id, title)
            return sheet_id
        reply = self._batch_update(spreadsheet_id, [{"addSheet": {"properties": {"title": title}}}])
        return reply["replies"][0]["addSheet"]["properties"]["sheetId"]

    def write_survey_sheet(self, sprint_name: str, form_id: str, rows: list[dict[str, Any]]) -> str:
        spreadsheet_id = self._find_or_create_spreadsheet(survey_file_name(sprint_name))
        data_id = self._prepare_sheet(spreadsheet_id, DATA_SHEET_NAME, rename_first=True)

        if rows:
            headers, grid = data_grid(rows)
            self._put_values(spreadsheet_id, DATA_SHEET_NAME, "A1", [headers] + grid)
            self._batch_update(
                spreadsheet_id,
                [
                    self._header_format(data_id, len(headers), SheetStyle.DATA_HEADER_BG),
                    self._auto_resize(data_id, len(headers)),
                ],
            )

        meta_id = self._prepare_sheet(spreadsheet_id, METADATA_SHEET_NAME, rename_first=False)
        self._put_values(
            spreadsheet_id, METADATA_SHEET_NAME, "A1", metadata_rows(form_id, len(rows), now_label(self.clock))
        )
        self._batch_update(spreadsheet_id, [self._header_format(meta_id, 2, None), self._auto_resize(meta_id, 2)])
        return spreadsheet_url(spreadsheet_id)

    # -- activity log ----------------------------------------------------

    def append_log(self, entry: LogEntry) -> None:
        sheet_id = self._log_sheet()
        values = self._get_values(self.master_id, self.log_sheet_name)
        row_num = max(len(values), 1) + 1
        self._put_values(self.master_id, self.log_sheet_name, f"A{row_num}:C{row_num}", [entry.to_row()])
        overflow = row_num - 1 - self.max_log_rows
        if overflow > 0:
            self._batch_update(
                self.master_id,
                [
                    {
                        "deleteDimension": {
                            "range": {"sheetId": sheet_id, "dimension": "ROWS", "startIndex": 1,
                                      "endIndex": 1 + overflow}
                        }
                    }
                ],
            )

    def read_log(self, limit: int = 50) -> list[LogEntry]:
        self._log_sheet()
        entries = []
        for row in self._get_values(self.master_id, self.log_sheet_name)[1:]:
            cells = list(row) + [""] * (3 - len(row))
            try:
                level = LogLevel(cells[1])
            except ValueError:
                level = LogLevel.INFO
            entries.append(LogEntry(timestamp=str(cells[0]), level=level, message=str(cells[2])))
        return entries[-limit:] if limit else entries
