from formbridge.config import Settings
from formbridge.exceptions import ConfigurationError
from formbridge.storage.base import SheetStore


def build_store(settings: Settings) -> SheetStore:
    backend = settings.storage.backend.lower()
    if backend == "workbook":
        from formbridge.storage.workbook import WorkbookStore

        return WorkbookStore(
            master_path=settings.storage.master_workbook,
            data_dir=settings.storage.data_dir,
            master_sheet_name=settings.storage.master_sheet_name,
            log_sheet_name=settings.storage.log_sheet_name,
            folder_name=settings.storage.folder_name,
            max_log_rows=settings.storage.max_log_rows,
        )
    if backend == "google":
        from formbridge.storage.google_sheets import GoogleSheetsStore

        return GoogleSheetsStore(
            master_spreadsheet_id=settings.google.master_spreadsheet_id,
            service_account_file=settings.google.service_account_file,
            master_sheet_name=settings.storage.master_sheet_name,
            log_sheet_name=settings.storage.log_sheet_name,
            folder_name=settings.storage.folder_name,
            max_log_rows=settings.storage.max_log_rows,
            timeout_seconds=settings.google.timeout_seconds,
        )
    raise ConfigurationError(f"Unknown storage backend '{settings.storage.backend}' (expected workbook|google).")
