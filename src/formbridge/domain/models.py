from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProcessingStatus(str, Enum):
    IN_PROGRESS = "In Progress"
    COMPLETE = "Complete"
    FAILED = "Failed"


class LogLevel(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    SUCCESS = "SUCCESS"


class Survey(BaseModel):
    """A pre-registered form with a friendly display name."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    url: str = ""


class FormField(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    title: Optional[str] = None
    type: Optional[str] = None
    properties: dict[str, Any] = Field(default_factory=dict)

    def flatten(self) -> list["FormField"]:
        """Group fields nest their questions under properties.fields."""
        nested = self.properties.get("fields") or []
        if not nested:
            return [self]
        flat = [self]
        for child in nested:
            flat.extend(FormField.model_validate(child).flatten())
        return flat


class FormMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    title: Optional[str] = None
    fields: list[FormField] = Field(default_factory=list)

    @field_validator("fields", mode="before")
    @classmethod
    def _coerce_fields(cls, value: Any) -> list:
        return value or []


class ResponseRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    token: str
    submitted_at: Optional[str] = None
    answers: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("answers", mode="before")
    @classmethod
    def _coerce_answers(cls, value: Any) -> list:
        return value or []


class IndexEntry(BaseModel):
    """One row of the master index sheet, keyed by form_id."""
    sprint_name: str
    form_id: str
    sheet_url: str = ""
    response_count: int = 0
    date_created: str = ""
    last_updated: str = ""
    status: ProcessingStatus = ProcessingStatus.COMPLETE
    action: str = "Update"

    def to_row(self) -> list[Any]:
        return [
            self.sprint_name,
            self.form_id,
            self.sheet_url,
            self.response_count,
            self.date_created,
            self.last_updated,
            self.status.value,
            self.action,
        ]


class LogEntry(BaseModel):
    timestamp: str
    level: LogLevel
    message: str

    def to_row(self) -> list[str]:
        return [self.timestamp, self.level.value, self.message]


class SurveyResult(BaseModel):
    form_id: str
    success: bool
    name: Optional[str] = None
    sheet_url: Optional[str] = None
    response_count: int = 0
    message: Optional[str] = None
    error: Optional[str] = None


class ApiStatus(BaseModel):
    success: bool
    count: int = 0
    error: Optional[str] = None
