import logging
import time
from typing import Any, Callable, Optional

import requests

from formbridge.domain.models import FormMetadata
from formbridge.exceptions import ApiError

logger = logging.getLogger(__name__)


class TypeformClient:
    """
    Thin Typeform REST client: list forms, read form definitions and page through responses.
    Every non-200 response raises ApiError; retries are the caller's concern.
    """

    def __init__(
        self,
        token: Optional[str],
        api_base: str = "https://api.typeform.com",
        page_size: int = 100,
        page_delay_seconds: float = 0.5,
        timeout_seconds: float = 30.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_base = api_base.rstrip("/")
        self.page_size = page_size
        self.page_delay_seconds = page_delay_seconds
        self.timeout_seconds = timeout_seconds
        self.sleep = sleep
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {token or ''}",
                "Content-Type": "application/json",
            }
        )

    def list_forms(self) -> list[FormMetadata]:
        data = self._get("/forms")
        return [FormMetadata.model_validate(item) for item in data.get("items") or []]

    def get_form_metadata(self, form_id: str) -> FormMetadata:
        return FormMetadata.model_validate(self._get(f"/forms/{form_id}"))

    def get_form_responses(self, form_id: str, page_size: Optional[int] = None) -> list[dict[str, Any]]:
        """Raw response items in provider order; records are validated one by one by the transformer."""
        page_size = page_size or self.page_size
        responses: list[dict[str, Any]] = []
        before: Optional[str] = None

        while True:
            params: dict[str, Any] = {"page_size": page_size}
            if before:
                params["before"] = before

            data = self._get(f"/forms/{form_id}/responses", params=params)
            items = data.get("items") or []
            responses.extend(items)

            last = items[-1] if items else None
            before = last.get("token") if isinstance(last, dict) else None
            if len(items) < page_size or not before:
                break

            self.sleep(self.page_delay_seconds)

        logger.debug("fetched %d responses for form %s", len(responses), form_id)
        return responses

    def _get(self, path: str, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        url = f"{self.api_base}{path}"
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout_seconds)
        except requests.RequestException as exc:
            raise ApiError(0, str(exc)) from exc

        if resp.status_code != 200:
            raise ApiError(resp.status_code, resp.text)
        return resp.json()
