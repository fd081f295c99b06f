"""Test doubles shared across the suite: HTTP/session fakes, a canned Typeform client and in-memory stores."""

import re
from datetime import datetime, timedelta
from typing import Any, Optional
from urllib.parse import unquote

from formbridge.domain.models import (
    FormMetadata,
    IndexEntry,
    LogEntry,
    ProcessingStatus,
    ResponseRecord,
)
from formbridge.exceptions import ApiError
from formbridge.storage.base import merge_index_entry, stub_index_entry
from formbridge.storage.google_sheets import DRIVE_API, SHEETS_API, SPREADSHEET_MIME


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str = ""):
        self.status_code = status_code
        self._payload = payload if payload is not None else {}
        self.text = text
        self.content = b"{}" if payload is not None else b""

    def json(self):
        return self._payload


class FakeHttpSession:
    """Stands in for requests.Session: replays queued responses and records every GET."""

    def __init__(self, responses):
        self.headers: dict[str, str] = {}
        self.responses = list(responses)
        self.calls: list[tuple[str, dict]] = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, dict(params or {})))
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp


class Clock:
    def __init__(self, start: datetime = datetime(2024, 1, 15, 9, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(minutes=1)
        return value


class FakeTypeformClient:
    """Serves canned forms/responses; failures maps form_id -> number of calls that raise ApiError(500)."""

    def __init__(self, forms=None, responses=None, failures=None):
        self.forms: dict[str, FormMetadata] = {f.id: f for f in (forms or [])}
        self.responses: dict[str, list[Any]] = responses or {}
        self.failures: dict[str, int] = dict(failures or {})
        self.metadata_calls: list[str] = []
        self.list_error: Optional[Exception] = None

    def list_forms(self) -> list[FormMetadata]:
        if self.list_error:
            raise self.list_error
        return list(self.forms.values())

    def get_form_metadata(self, form_id: str) -> FormMetadata:
        self.metadata_calls.append(form_id)
        if self.failures.get(form_id, 0) != 0:
            self.failures[form_id] -= 1
            raise ApiError(500, "Internal Server Error")
        return self.forms.get(form_id) or FormMetadata(id=form_id)

    def get_form_responses(self, form_id: str, page_size=None) -> list[Any]:
        return list(self.responses.get(form_id, []))


class MemoryStore:
    """In-memory SheetStore with the same upsert/status rules as the real backends."""

    def __init__(self, clock=None):
        self.clock = clock or Clock()
        self.index: dict[str, IndexEntry] = {}
        self.status_history: list[tuple[str, ProcessingStatus]] = []
        self.sheets: dict[str, list[dict[str, Any]]] = {}
        self.logs: list[LogEntry] = []
        self.setup_calls = 0

    def _now(self) -> str:
        return self.clock().strftime("%Y-%m-%d %H:%M:%S")

    def ensure_setup(self) -> None:
        self.setup_calls += 1

    def read_index(self) -> list[IndexEntry]:
        return list(self.index.values())

    def upsert_index(self, entry: IndexEntry) -> None:
        self.index[entry.form_id] = merge_index_entry(entry, self.index.get(entry.form_id), self._now())

    def set_status(self, form_id, status, sprint_name=None) -> None:
        self.status_history.append((form_id, status))
        now = self._now()
        existing = self.index.get(form_id)
        if existing:
            self.index[form_id] = existing.model_copy(update={"status": status, "last_updated": now})
        else:
            self.index[form_id] = stub_index_entry(form_id, status, sprint_name, now)

    def write_survey_sheet(self, sprint_name, form_id, rows) -> str:
        self.sheets[sprint_name] = rows
        return f"memory://{sprint_name}_Data"

    def append_log(self, entry: LogEntry) -> None:
        self.logs.append(entry)

    def read_log(self, limit: int = 50) -> list[LogEntry]:
        return self.logs[-limit:]

    def messages(self, level=None) -> list[str]:
        return [e.message for e in self.logs if level is None or e.level == level]


def make_form(form_id: str, title: Optional[str] = "Sprint Feedback") -> FormMetadata:
    return FormMetadata.model_validate(
        {
            "id": form_id,
            "title": title,
            "fields": [
                {"id": "f1", "title": "How was the sprint?", "type": "long_text"},
                {"id": "f2", "title": "Rating", "type": "opinion_scale"},
            ],
        }
    )


def make_response(token: str, text: str = "Great", rating: int = 5) -> ResponseRecord:
    return ResponseRecord.model_validate(
        {
            "token": token,
            "submitted_at": "2024-01-15T10:30:00Z",
            "answers": [
                {"field": {"id": "f1", "type": "long_text"}, "type": "text", "text": text},
                {"field": {"id": "f2", "type": "opinion_scale"}, "type": "number", "number": rating},
            ],
        }
    )


_CELL = re.compile(r"^([A-Z]+)(\d+)")


def _col_index(letters: str) -> int:
    n = 0
    for ch in letters:
        n = n * 26 + (ord(ch) - 64)
    return n - 1


class FakeGoogleApi:
    """Minimal in-memory Sheets v4 / Drive v3 backing a fake AuthorizedSession."""

    def __init__(self):
        self.books: dict[str, dict[str, dict]] = {"MASTER": {}}
        self.files: list[dict] = []
        self.calls: list[tuple[str, str, dict, dict]] = []
        self.fail_with: Optional[int] = None
        self._next_id = 1

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def request(self, method, url, timeout=None, params=None, json=None):
        self.calls.append((method, url, params or {}, json or {}))
        if self.fail_with:
            return FakeResponse(self.fail_with, text="boom")
        if url.startswith(DRIVE_API):
            return self._drive(method, params or {}, json or {})
        return self._sheets(method, url[len(SHEETS_API) + 1:], json or {})

    # -- drive ------------------------------------------------------------

    def _drive(self, method, params, body):
        if method == "GET":
            q = params["q"]
            found = [
                f for f in self.files
                if f"name = '{f['name']}'" in q
                and f"mimeType = '{f['mimeType']}'" in q
                and all(f"'{p}' in parents" in q for p in f.get("parents", []))
            ]
            return FakeResponse(200, {"files": [{"id": f["id"], "name": f["name"]} for f in found]})
        file_id = f"file{self._new_id()}"
        self.files.append({"id": file_id, **body})
        if body["mimeType"] == SPREADSHEET_MIME:
            self.books[file_id] = {"Sheet1": {"id": 0, "values": []}}
        return FakeResponse(200, {"id": file_id})

    # -- sheets -----------------------------------------------------------

    def _sheets(self, method, path, body):
        if "/values/" in path:
            book_id, rng = path.split("/values/", 1)
            clear = rng.endswith(":clear")
            rng = unquote(rng[: -len(":clear")] if clear else rng)
            title, _, a1 = rng.partition("!")
            sheet = self.books[book_id][title.strip("'")]
            if clear:
                sheet["values"] = []
            elif method == "GET":
                return FakeResponse(200, {"values": [list(r) for r in sheet["values"]]})
            else:
                self._write(sheet, a1, body["values"])
            return FakeResponse(200, {})

        if path.endswith(":batchUpdate"):
            book = self.books[path[: -len(":batchUpdate")]]
            replies = [self._apply(book, req) for req in body["requests"]]
            return FakeResponse(200, {"replies": replies})

        book = self.books[path]
        sheets = [{"properties": {"title": t, "sheetId": s["id"]}} for t, s in book.items()]
        return FakeResponse(200, {"sheets": sheets})

    def _write(self, sheet, a1, values):
        col_letters, row = _CELL.match(a1).groups()
        start_row, start_col = int(row) - 1, _col_index(col_letters)
        grid = sheet["values"]
        for r, row_values in enumerate(values):
            while len(grid) <= start_row + r:
                grid.append([])
            target = grid[start_row + r]
            for c, value in enumerate(row_values):
                while len(target) <= start_col + c:
                    target.append("")
                target[start_col + c] = value

    def _apply(self, book, req):
        if "addSheet" in req:
            sheet_id = self._new_id()
            book[req["addSheet"]["properties"]["title"]] = {"id": sheet_id, "values": []}
            return {"addSheet": {"properties": {"sheetId": sheet_id}}}
        if "updateSheetProperties" in req:
            props = req["updateSheetProperties"]["properties"]
            old = next(t for t, s in book.items() if s["id"] == props["sheetId"])
            book[props["title"]] = book.pop(old)
        if "deleteDimension" in req:
            rng = req["deleteDimension"]["range"]
            sheet = next(s for s in book.values() if s["id"] == rng["sheetId"])
            del sheet["values"][rng["startIndex"]: rng["endIndex"]]
        return {}

    def grid(self, book_id, title):
        return self.books[book_id][title]["values"]
