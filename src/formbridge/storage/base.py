import re
from datetime import datetime
from typing import Any, Optional, Protocol

from formbridge.data.transform import DATE_FORMAT, collect_headers
from formbridge.domain.models import IndexEntry, LogEntry, ProcessingStatus

INDEX_HEADERS = [
    "Sprint Name",
    "Form ID",
    "Source Sheet Link",
    "Response Count",
    "Date Created",
    "Last Updated",
    "Processing Status",
    "Action",
]
LOG_HEADERS = ["Timestamp", "Level", "Message"]

# 1-based column positions inside the index sheet
COL_FORM_ID = 2
COL_LINK = 3
COL_DATE_CREATED = 5
COL_LAST_UPDATED = 6
COL_STATUS = 7

DATA_SHEET_NAME = "Survey Data"
METADATA_SHEET_NAME = "Metadata"
PROCESSED_BY = "Typeform Automation System"
LINK_LABEL = "Open Sheet"
SHEET_LINK_MARKERS = ("spreadsheet", ".xlsx")

_HYPERLINK = re.compile(r'^=HYPERLINK\("([^"]*)"', re.IGNORECASE)


class SheetStore(Protocol):
    """
    Everything the pipeline needs from a spreadsheet host.
    """

    def ensure_setup(self) -> None:
        ...

    def read_index(self) -> list[IndexEntry]:
        ...

    def upsert_index(self, entry: IndexEntry) -> None:
        ...

    def set_status(self, form_id: str, status: ProcessingStatus, sprint_name: Optional[str] = None) -> None:
        ...

    def write_survey_sheet(self, sprint_name: str, form_id: str, rows: list[dict[str, Any]]) -> str:
        ...

    def append_log(self, entry: LogEntry) -> None:
        ...

    def read_log(self, limit: int = 50) -> list[LogEntry]:
        ...


def now_label(clock=datetime.now) -> str:
    return clock().strftime(DATE_FORMAT)


def is_sheet_link(url: Any) -> bool:
    return isinstance(url, str) and any(marker in url for marker in SHEET_LINK_MARKERS)


def hyperlink_formula(url: str) -> str:
    return f'=HYPERLINK("{url}", "{LINK_LABEL}")'


def link_cell_value(url: str) -> str:
    return hyperlink_formula(url) if is_sheet_link(url) else url


def resolve_link(value: Any) -> str:
    """Recover the raw URL from a link cell that may hold a HYPERLINK formula."""
    if value is None:
        return ""
    text = str(value)
    match = _HYPERLINK.match(text)
    return match.group(1) if match else text


def parse_status(value: Any) -> ProcessingStatus:
    try:
        return ProcessingStatus(value)
    except ValueError:
        return ProcessingStatus.IN_PROGRESS


def index_entry_from_row(row: list[Any]) -> Optional[IndexEntry]:
    cells = list(row) + [None] * (len(INDEX_HEADERS) - len(row))
    if not cells[COL_FORM_ID - 1]:
        return None
    count = cells[3]
    try:
        count = int(count or 0)
    except (TypeError, ValueError):
        count = 0
    return IndexEntry(
        sprint_name=str(cells[0] or ""),
        form_id=str(cells[COL_FORM_ID - 1]),
        sheet_url=resolve_link(cells[COL_LINK - 1]),
        response_count=count,
        date_created=str(cells[COL_DATE_CREATED - 1] or ""),
        last_updated=str(cells[COL_LAST_UPDATED - 1] or ""),
        status=parse_status(cells[COL_STATUS - 1]),
        action=str(cells[7] or ""),
    )


def index_row_values(entry: IndexEntry) -> list[Any]:
    row = entry.to_row()
    row[COL_LINK - 1] = link_cell_value(entry.sheet_url)
    return row


def merge_index_entry(entry: IndexEntry, existing: Optional[IndexEntry], now: str) -> IndexEntry:
    """Upsert rule: keep the original creation date, stamp the update time."""
    return entry.model_copy(
        update={
            "date_created": existing.date_created if existing and existing.date_created else now,
            "last_updated": now,
        }
    )


def stub_index_entry(form_id: str, status: ProcessingStatus, sprint_name: Optional[str], now: str) -> IndexEntry:
    return IndexEntry(
        sprint_name=sprint_name or form_id,
        form_id=form_id,
        date_created=now,
        last_updated=now,
        status=status,
        action="Update",
    )


def data_grid(rows: list[dict[str, Any]]) -> tuple[list[str], list[list[Any]]]:
    headers = collect_headers(rows)
    return headers, [[row.get(h, "") for h in headers] for row in rows]


def metadata_rows(form_id: str, response_count: int, now: str) -> list[list[Any]]:
    return [
        ["Property", "Value"],
        ["Form ID", form_id],
        ["Response Count", response_count],
        ["Last Updated", now],
        ["Processed By", PROCESSED_BY],
    ]


def survey_file_name(sprint_name: str) -> str:
    return f"{sprint_name}_Data"
