import logging
from datetime import datetime
from typing import Callable, Optional

from formbridge.data.transform import DATE_FORMAT
from formbridge.domain.models import LogEntry, LogLevel
from formbridge.storage.base import SheetStore

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

logger = logging.getLogger("formbridge.activity")

_PY_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.SUCCESS: SUCCESS,
}


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt=DATE_FORMAT,
    )


class ActivityLog:
    """
    Records business events to the console logger and to the store's log sheet.
    Logging must never abort the operation being logged, so store failures are swallowed here.
    """

    def __init__(self, store: Optional[SheetStore] = None, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock

    def log(self, level: LogLevel, message: str) -> None:
        try:
            level = LogLevel(level)
            logger.log(_PY_LEVELS[level], message)
            if self.store is not None:
                entry = LogEntry(timestamp=self.clock().strftime(DATE_FORMAT), level=level, message=message)
                self.store.append_log(entry)
        except Exception as exc:
            logger.error(f"Logging error: {exc}")

    def info(self, message: str) -> None:
        self.log(LogLevel.INFO, message)

    def warning(self, message: str) -> None:
        self.log(LogLevel.WARNING, message)

    def error(self, message: str) -> None:
        self.log(LogLevel.ERROR, message)

    def success(self, message: str) -> None:
        self.log(LogLevel.SUCCESS, message)
