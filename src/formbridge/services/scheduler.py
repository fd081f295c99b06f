import logging
import time
from typing import Callable, Optional

import schedule

from formbridge.services.processor import SurveyProcessor

logger = logging.getLogger(__name__)

JOB_TAG = "formbridge-daily"


def register_daily_job(
    processor: SurveyProcessor,
    at: str = "09:00",
    scheduler: Optional[schedule.Scheduler] = None,
) -> schedule.Job:
    """Replace any existing daily trigger with a single job running scheduled_processing at `at`."""
    scheduler = scheduler or schedule.default_scheduler
    scheduler.clear(JOB_TAG)
    job = scheduler.every().day.at(at).do(processor.scheduled_processing).tag(JOB_TAG)
    logger.info(f"Daily processing scheduled at {at}")
    return job


def run_scheduler(
    processor: SurveyProcessor,
    at: str = "09:00",
    scheduler: Optional[schedule.Scheduler] = None,
    stop: Callable[[], bool] = lambda: False,
    sleep: Callable[[float], None] = time.sleep,
    poll_seconds: float = 30.0,
) -> None:
    scheduler = scheduler or schedule.default_scheduler
    register_daily_job(processor, at=at, scheduler=scheduler)
    logger.info("Scheduler started. Press Ctrl+C to stop.")
    while not stop():
        scheduler.run_pending()
        sleep(poll_seconds)
