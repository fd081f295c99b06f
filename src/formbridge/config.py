from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
import yaml

from formbridge.domain.models import Survey


class AppSettings(BaseSettings):
    name: str = "Typeform Automation System"
    version: str = "1.0.0"


class TypeformSettings(BaseSettings):
    api_base: str = "https://api.typeform.com"
    token: Optional[str] = None  # Fallback when the properties store holds no token
    page_size: int = 100
    page_delay_seconds: float = 0.5
    timeout_seconds: float = 30.0


class StorageSettings(BaseSettings):
    """
    Spreadsheet host selection:
    - workbook (local .xlsx files via openpyxl, default)
    - google (Google Sheets + Drive)
    """
    backend: str = "workbook"  # workbook|google
    master_workbook: Path = Path("./data/master.xlsx")
    data_dir: Path = Path("./data")
    master_sheet_name: str = "Sprint Survey Master Database"
    log_sheet_name: str = "System Logs"
    folder_name: str = "EOS Survey Data Sheets"
    max_log_rows: int = 1000


class GoogleSettings(BaseSettings):
    service_account_file: Optional[Path] = None
    master_spreadsheet_id: Optional[str] = None
    timeout_seconds: float = 30.0


class ProcessingSettings(BaseSettings):
    max_retries: int = 3
    backoff_seconds: float = 1.0
    survey_delay_seconds: float = 1.0


class SchedulerSettings(BaseSettings):
    daily_at: str = "09:00"


class SecuritySettings(BaseSettings):
    api_token: Optional[str] = None  # Bearer token guarding the control API


class LoggingSettings(BaseSettings):
    level: str = "INFO"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_nested_delimiter="__", env_file=".env", extra="ignore")
    app: AppSettings = AppSettings()
    typeform: TypeformSettings = TypeformSettings()
    storage: StorageSettings = StorageSettings()
    google: GoogleSettings = GoogleSettings()
    processing: ProcessingSettings = ProcessingSettings()
    scheduler: SchedulerSettings = SchedulerSettings()
    security: SecuritySettings = SecuritySettings()
    logging: LoggingSettings = LoggingSettings()
    properties_path: Path = Path("./data/properties.yaml")
    known_surveys: list[Survey] = []

    def find_known_survey(self, form_id: str) -> Optional[Survey]:
        return next((s for s in self.known_surveys if s.id == form_id), None)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        # Load from default path if exists
        default_path = Path("config/settings.yaml")
        path = config_path or (default_path if default_path.exists() else None)

        if not path:
            return cls()

        with open(path, "r") as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)


settings = Settings.load()
