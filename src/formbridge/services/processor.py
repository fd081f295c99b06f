import logging
import time
from typing import Any, Callable, Optional

from formbridge.config import Settings
from formbridge.data.transform import process_response_data
from formbridge.domain.models import ApiStatus, IndexEntry, ProcessingStatus, SurveyResult
from formbridge.exceptions import ConfigurationError, FormBridgeError, RetryExhaustedError
from formbridge.properties import PLACEHOLDER_TOKEN, TOKEN_KEY, PropertiesStore
from formbridge.services.activity_log import ActivityLog
from formbridge.services.retry import retry_with_backoff
from formbridge.storage.base import SheetStore
from formbridge.sync.client import TypeformClient

logger = logging.getLogger(__name__)


class SurveyProcessor:
    """
    Runs the fetch -> clean -> persist -> index pipeline for one survey or a batch.
    Each survey gets bounded retries with exponential backoff; batches keep going
    past a failed survey and report per-survey outcomes.
    """

    def __init__(
        self,
        client: TypeformClient,
        store: SheetStore,
        settings: Settings,
        activity: Optional[ActivityLog] = None,
        properties: Optional[PropertiesStore] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.store = store
        self.settings = settings
        self.activity = activity or ActivityLog(store)
        self.properties = properties
        self.sleep = sleep

    # -- single survey ---------------------------------------------------

    def process_single_survey(self, form_id: str, sprint_name: Optional[str] = None) -> SurveyResult:
        if not sprint_name:
            known = self.settings.find_known_survey(form_id)
            if known:
                sprint_name = known.name
                self.activity.info(f"Using pre-configured name: {sprint_name} for form {form_id}")

        max_attempts = self.settings.processing.max_retries

        def attempt(n: int) -> SurveyResult:
            self.activity.info(f"Processing survey {form_id} (attempt {n})")
            return self._process_once(form_id, sprint_name)

        def on_failure(n: int, exc: Exception) -> None:
            self.activity.error(f"Attempt {n} failed for survey {form_id}: {exc}")

        try:
            return retry_with_backoff(
                attempt,
                max_attempts=max_attempts,
                base_delay=self.settings.processing.backoff_seconds,
                sleep=self.sleep,
                on_failure=on_failure,
            )
        except Exception as exc:
            try:
                self.store.set_status(form_id, ProcessingStatus.FAILED, sprint_name)
            except Exception as status_exc:
                self.activity.error(f"Could not mark survey {form_id} as failed: {status_exc}")
            raise RetryExhaustedError(form_id, max_attempts, exc) from exc

    def _process_once(self, form_id: str, sprint_name: Optional[str]) -> SurveyResult:
        self.store.set_status(form_id, ProcessingStatus.IN_PROGRESS, sprint_name)

        form = self.client.get_form_metadata(form_id)
        title = sprint_name or form.title or f"Survey_{form_id}"

        responses = self.client.get_form_responses(form_id)
        if not responses:
            self.activity.warning(f"No responses found for survey {form_id}")
            self.store.set_status(form_id, ProcessingStatus.COMPLETE, title)
            return SurveyResult(form_id=form_id, success=True, name=title, message="No responses to process")

        rows = process_response_data(responses, form.fields, log=self.activity)
        sheet_url = self.store.write_survey_sheet(title, form_id, rows)
        self.store.upsert_index(
            IndexEntry(sprint_name=title, form_id=form_id, sheet_url=sheet_url, response_count=len(responses))
        )
        self.store.set_status(form_id, ProcessingStatus.COMPLETE, title)

        self.activity.success(f"Successfully processed survey {form_id}")
        return SurveyResult(
            form_id=form_id,
            success=True,
            name=title,
            sheet_url=sheet_url,
            response_count=len(responses),
        )

    # -- batches ---------------------------------------------------------

    def process_all_surveys(self) -> list[SurveyResult]:
        self.activity.info("Starting bulk survey processing")
        try:
            forms = self.client.list_forms()
        except FormBridgeError as exc:
            self.activity.error(f"Bulk processing failed: {exc}")
            raise
        return self._process_batch([(form.id, form.title) for form in forms])

    def process_known_surveys(self) -> list[SurveyResult]:
        self.activity.info("Processing pre-configured surveys")
        return self._process_batch([(s.id, s.name) for s in self.settings.known_surveys])

    def _process_batch(self, targets: list[tuple[str, Optional[str]]]) -> list[SurveyResult]:
        results: list[SurveyResult] = []
        for i, (form_id, name) in enumerate(targets):
            if i:
                # Pause between surveys to respect API limits
                self.sleep(self.settings.processing.survey_delay_seconds)
            try:
                results.append(self.process_single_survey(form_id, name))
            except RetryExhaustedError as exc:
                self.activity.error(str(exc))
                results.append(SurveyResult(form_id=form_id, success=False, name=name, error=str(exc)))

        succeeded = sum(1 for r in results if r.success)
        self.log_index_summary()
        self.activity.info(f"Completed processing {len(results)} surveys ({succeeded} succeeded)")
        return results

    def index_summary(self) -> dict[str, Any]:
        entries = self.store.read_index()
        by_status = {status.value: 0 for status in ProcessingStatus}
        for entry in entries:
            by_status[entry.status.value] += 1
        return {
            "surveys": len(entries),
            "responses": sum(e.response_count for e in entries),
            "by_status": by_status,
        }

    def log_index_summary(self) -> None:
        try:
            summary = self.index_summary()
        except FormBridgeError as exc:
            self.activity.warning(f"Could not summarize master index: {exc}")
            return
        counts = ", ".join(f"{k}: {v}" for k, v in summary["by_status"].items())
        self.activity.info(
            f"Master index: {summary['surveys']} surveys, {summary['responses']} responses ({counts})"
        )

    # -- setup and diagnostics -------------------------------------------

    def initialize_system(self) -> dict[str, Any]:
        try:
            self.store.ensure_setup()
            if self.properties is not None and not resolve_token(self.settings, self.properties):
                self.properties.set(TOKEN_KEY, PLACEHOLDER_TOKEN)
                self.activity.warning("No API token configured; stored a placeholder. Set a real token in settings.")

            known = self.settings.known_surveys
            self.activity.info(f"System initialized with {len(known)} pre-configured surveys")
            for survey in known:
                self.activity.info(f"Survey: {survey.name} (ID: {survey.id})")
            return {"success": True, "message": "System initialized successfully"}
        except FormBridgeError as exc:
            logger.error(f"Initialization error: {exc}")
            return {"success": False, "message": str(exc)}

    def test_api_connection(self) -> ApiStatus:
        try:
            forms = self.client.list_forms()
        except FormBridgeError as exc:
            self.activity.error(f"API connection failed: {exc}")
            return ApiStatus(success=False, error=str(exc))
        self.activity.success(f"API connection successful. Found {len(forms)} forms.")
        return ApiStatus(success=True, count=len(forms))

    def quick_setup(self) -> list[SurveyResult]:
        """Initialize, verify the token and run every pre-configured survey."""
        self.initialize_system()
        status = self.test_api_connection()
        if not status.success:
            raise ConfigurationError(f"API connection failed: {status.error}")

        results = self.process_known_surveys()
        succeeded = sum(1 for r in results if r.success)
        self.activity.info(
            f"Quick setup complete! {succeeded}/{len(self.settings.known_surveys)} surveys processed successfully."
        )
        return results

    def run_manual_test(self) -> SurveyResult:
        try:
            status = self.test_api_connection()
            if not status.success:
                raise ConfigurationError(f"API connection failed: {status.error}")
            forms = self.client.list_forms()
            if not forms:
                raise FormBridgeError("No forms found")
            result = self.process_single_survey(forms[0].id, forms[0].title)
        except FormBridgeError as exc:
            self.activity.error(f"Manual test failed: {exc}")
            raise
        self.activity.success("Manual test completed successfully")
        return result

    def scheduled_processing(self) -> list[SurveyResult]:
        self.activity.info("Starting scheduled processing")
        try:
            results = self.process_all_surveys()
        except Exception as exc:
            self.activity.error(f"Scheduled processing failed: {exc}")
            return []
        self.activity.success("Scheduled processing completed")
        return results


def resolve_token(settings: Settings, properties: Optional[PropertiesStore] = None) -> Optional[str]:
    token = properties.get(TOKEN_KEY) if properties else None
    if token == PLACEHOLDER_TOKEN:
        token = None
    return token or settings.typeform.token


def build_processor(settings: Settings) -> SurveyProcessor:
    from formbridge.storage.factory import build_store

    properties = PropertiesStore(settings.properties_path)
    client = TypeformClient(
        token=resolve_token(settings, properties),
        api_base=settings.typeform.api_base,
        page_size=settings.typeform.page_size,
        page_delay_seconds=settings.typeform.page_delay_seconds,
        timeout_seconds=settings.typeform.timeout_seconds,
    )
    store = build_store(settings)
    return SurveyProcessor(
        client=client,
        store=store,
        settings=settings,
        activity=ActivityLog(store),
        properties=properties,
    )
