import pytest
from openpyxl import Workbook, load_workbook

from formbridge.domain.models import IndexEntry, LogEntry, LogLevel, ProcessingStatus
from formbridge.exceptions import StorageError
from formbridge.storage.base import INDEX_HEADERS, LOG_HEADERS, data_grid, resolve_link
from formbridge.storage.workbook import WorkbookStore

from fakes import Clock


def _store(tmp_path, **kwargs) -> WorkbookStore:
    return WorkbookStore(master_path=tmp_path / "master.xlsx", data_dir=tmp_path, clock=Clock(), **kwargs)


def _entry(form_id="ABC123", count=10, url="https://docs.google.com/spreadsheets/d/xyz") -> IndexEntry:
    return IndexEntry(sprint_name="Sprint 1", form_id=form_id, sheet_url=url, response_count=count)


def test_ensure_setup_creates_styled_sheets(tmp_path):
    store = _store(tmp_path)
    store.ensure_setup()

    wb = load_workbook(tmp_path / "master.xlsx")
    assert wb.sheetnames == ["Sprint Survey Master Database", "System Logs"]
    index = wb["Sprint Survey Master Database"]
    assert [c.value for c in index[1]] == INDEX_HEADERS
    assert index["A1"].font.bold
    assert index["A1"].fill.fgColor.rgb.endswith("4285F4")
    assert [c.value for c in wb["System Logs"][1]] == LOG_HEADERS
    assert wb["System Logs"]["A1"].fill.fgColor.rgb.endswith("34A853")
    assert (tmp_path / "EOS Survey Data Sheets").is_dir()


def test_upsert_twice_keeps_one_row_and_creation_date(tmp_path):
    store = _store(tmp_path)
    store.upsert_index(_entry(count=10))
    first = store.read_index()[0]
    store.upsert_index(_entry(count=25))

    entries = _store(tmp_path).read_index()
    assert len(entries) == 1
    assert entries[0].response_count == 25
    assert entries[0].date_created == first.date_created
    assert entries[0].last_updated != first.last_updated
    assert entries[0].status == ProcessingStatus.COMPLETE
    assert entries[0].action == "Update"


def test_link_cell_is_hyperlink_and_reads_back_as_url(tmp_path):
    store = _store(tmp_path)
    store.upsert_index(_entry())

    ws = load_workbook(tmp_path / "master.xlsx")["Sprint Survey Master Database"]
    assert ws["C2"].value == '=HYPERLINK("https://docs.google.com/spreadsheets/d/xyz", "Open Sheet")'
    assert store.read_index()[0].sheet_url == "https://docs.google.com/spreadsheets/d/xyz"


def test_non_sheet_link_is_stored_verbatim(tmp_path):
    store = _store(tmp_path)
    store.upsert_index(_entry(url="https://example.com/report"))
    ws = load_workbook(tmp_path / "master.xlsx")["Sprint Survey Master Database"]
    assert ws["C2"].value == "https://example.com/report"


def test_set_status_colors_cell_and_creates_stub_row(tmp_path):
    store = _store(tmp_path)
    store.set_status("NEW1", ProcessingStatus.IN_PROGRESS, "Sprint 9")
    store.set_status("NEW1", ProcessingStatus.FAILED)

    ws = load_workbook(tmp_path / "master.xlsx")["Sprint Survey Master Database"]
    assert ws.max_row == 2
    assert ws["A2"].value == "Sprint 9"
    assert ws["D2"].value == 0
    assert ws["G2"].value == "Failed"
    assert ws["G2"].fill.fgColor.rgb.endswith("F4CCCC")


def test_complete_status_is_green(tmp_path):
    store = _store(tmp_path)
    store.upsert_index(_entry())
    ws = load_workbook(tmp_path / "master.xlsx")["Sprint Survey Master Database"]
    assert ws["G2"].fill.fgColor.rgb.endswith("D9EAD3")


def test_log_is_capped_and_header_survives(tmp_path):
    store = _store(tmp_path, max_log_rows=5)
    for i in range(8):
        store.append_log(LogEntry(timestamp=f"2024-01-15 09:00:0{i}", level=LogLevel.INFO, message=f"message {i}"))

    ws = load_workbook(tmp_path / "master.xlsx")["System Logs"]
    assert [c.value for c in ws[1]] == LOG_HEADERS
    assert ws.max_row == 6
    assert [e.message for e in store.read_log(limit=0)] == [f"message {i}" for i in range(3, 8)]
    assert [e.message for e in store.read_log(limit=2)] == ["message 6", "message 7"]


def test_write_survey_sheet_creates_and_rewrites_workbook(tmp_path):
    store = _store(tmp_path)
    rows = [
        {"Response ID": "t1", "Q1": "a", "Q2": 0},
        {"Response ID": "t2", "Q3": "c"},
    ]
    url = store.write_survey_sheet("Sprint 1", "ABC123", rows)

    path = tmp_path / "EOS Survey Data Sheets" / "Sprint 1_Data.xlsx"
    assert url == path.resolve().as_uri()
    wb = load_workbook(path)
    assert wb.sheetnames == ["Survey Data", "Metadata"]
    data = wb["Survey Data"]
    assert [c.value for c in data[1]] == ["Response ID", "Q1", "Q2", "Q3"]
    assert data["A1"].fill.fgColor.rgb.endswith("FF9900")
    assert data["C2"].value == 0
    meta = {row[0]: row[1] for row in wb["Metadata"].iter_rows(min_row=2, values_only=True)}
    assert meta["Form ID"] == "ABC123"
    assert meta["Response Count"] == 2
    assert meta["Processed By"] == "Typeform Automation System"

    store.write_survey_sheet("Sprint 1", "ABC123", rows[:1])
    wb = load_workbook(path)
    assert wb["Survey Data"].max_row == 2
    assert wb.sheetnames.count("Metadata") == 1


def test_data_grid_fills_missing_keys_with_empty_string():
    headers, grid = data_grid([{"a": 1, "b": False}, {"c": 3}])
    assert headers == ["a", "b", "c"]
    assert grid == [[1, False, ""], ["", "", 3]]


def test_resolve_link_handles_plain_values():
    assert resolve_link(None) == ""
    assert resolve_link("plain") == "plain"
    assert resolve_link('=HYPERLINK("file:///tmp/x.xlsx", "Open Sheet")') == "file:///tmp/x.xlsx"


def test_locked_master_file_raises_storage_error(tmp_path, monkeypatch):
    store = _store(tmp_path)
    store.ensure_setup()

    def locked(self, filename):
        raise PermissionError(f"[Errno 13] Permission denied: '{filename}'")

    monkeypatch.setattr(Workbook, "save", locked)
    with pytest.raises(StorageError, match="Cannot save master workbook"):
        store.set_status("ABC123", ProcessingStatus.FAILED, "Sprint 1")
