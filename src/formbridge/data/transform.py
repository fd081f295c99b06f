"""
Turns Typeform response records into flat spreadsheet rows keyed by column title.

Row layout: three fixed columns (Response ID, Submitted At, Response Index) followed
by one column per answered field, titled from the form definition.
"""
import logging
import re
from datetime import datetime
from typing import Any, Iterable, Optional, Union

from formbridge.domain.models import FormField, ResponseRecord
from formbridge.exceptions import ProcessingError

logger = logging.getLogger(__name__)

RESPONSE_ID = "Response ID"
SUBMITTED_AT = "Submitted At"
RESPONSE_INDEX = "Response Index"
FIXED_COLUMNS = (RESPONSE_ID, SUBMITTED_AT, RESPONSE_INDEX)

UNKNOWN_FIELD = "Unknown Field"
MAX_TITLE_LENGTH = 100
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LINE_BREAKS = re.compile(r"[ \t]*[\r\n]+[ \t]*")
_WHITESPACE = re.compile(r"\s+")
_NON_TITLE_CHARS = re.compile(r"[^\w\s-]")


def clean_text(text: Any) -> str:
    if text is None or text == "":
        return ""
    value = str(text).strip()
    value = _LINE_BREAKS.sub(" | ", value)
    return _WHITESPACE.sub(" ", value)


def clean_field_title(title: Any) -> str:
    if not title:
        return UNKNOWN_FIELD
    value = _NON_TITLE_CHARS.sub("", str(title).strip())
    value = _WHITESPACE.sub(" ", value).strip()
    return value[:MAX_TITLE_LENGTH] or UNKNOWN_FIELD


def format_date(value: Any) -> str:
    if not value:
        return ""
    if isinstance(value, datetime):
        return value.strftime(DATE_FORMAT)
    text = str(value)
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return text
    return parsed.strftime(DATE_FORMAT)


def build_field_map(fields: Optional[Iterable[FormField]]) -> dict[str, dict[str, Optional[str]]]:
    field_map: dict[str, dict[str, Optional[str]]] = {}
    for field in fields or []:
        for f in field.flatten():
            field_map[f.id] = {"title": f.title or f.id, "type": f.type}
    return field_map


def _choice_labels(choices: Any) -> list[str]:
    # The API returns {"labels": [...], "other": "..."}; older payloads use a list of choice objects.
    if isinstance(choices, dict):
        labels = [clean_text(label) for label in choices.get("labels") or []]
        if choices.get("other"):
            labels.append(clean_text(choices["other"]))
        return labels
    return [c.get("label") or c.get("other") or "Unknown" for c in choices]


def extract_answer_value(answer: Optional[dict[str, Any]], log=logger) -> Any:
    """
    Picks the first populated value variant of an answer.
    Unknown shapes yield an empty string; extraction errors are logged and never raised.
    """
    if not answer:
        return ""

    try:
        if "text" in answer:
            return clean_text(answer["text"])
        if "email" in answer:
            return answer["email"]
        if "url" in answer:
            return answer["url"]
        if "number" in answer:
            return answer["number"]
        if "boolean" in answer:
            return answer["boolean"]
        if "date" in answer:
            return format_date(answer["date"])

        choice = answer.get("choice")
        if choice:
            if choice.get("label"):
                return clean_text(choice["label"])
            if choice.get("other"):
                return clean_text(choice["other"])

        if answer.get("choices"):
            return ", ".join(_choice_labels(answer["choices"]))

        if answer.get("file_url"):
            return answer["file_url"]

        payment = answer.get("payment")
        if payment:
            return f"{payment['amount']} {payment['currency']}"

        return ""
    except Exception as exc:
        log.warning(f"Error extracting answer value: {exc}")
        return ""


def _build_row(item: Union[ResponseRecord, dict[str, Any]], index: int, field_map: dict, log) -> dict[str, Any]:
    response = ResponseRecord.model_validate(item)
    row: dict[str, Any] = {
        RESPONSE_ID: response.token,
        SUBMITTED_AT: format_date(response.submitted_at),
        RESPONSE_INDEX: index + 1,
    }
    for answer in response.answers:
        field_id = (answer.get("field") or {}).get("id")
        if not field_id:
            raise ProcessingError(f"Answer without field id in response {response.token}")
        info = field_map.get(field_id) or {"title": field_id, "type": None}
        row[clean_field_title(info["title"])] = extract_answer_value(answer, log=log)
    return row


def process_response_data(
    responses: Optional[list[Union[ResponseRecord, dict[str, Any]]]],
    fields: Optional[Iterable[FormField]] = None,
    log=logger,
) -> list[dict[str, Any]]:
    """
    Build one row per response, skipping (and logging) responses that fail.
    Items may be raw API payloads; each is validated on its own so one bad record only drops itself.
    """
    if not responses:
        return []

    field_map = build_field_map(fields)
    rows: list[dict[str, Any]] = []

    for index, response in enumerate(responses):
        try:
            rows.append(_build_row(response, index, field_map, log))
        except Exception as exc:
            log.error(f"Error processing response {index}: {exc}")

    return rows


def collect_headers(rows: list[dict[str, Any]]) -> list[str]:
    """Union of row keys in order of first appearance."""
    headers: dict[str, None] = {}
    for row in rows:
        for key in row:
            headers.setdefault(key, None)
    return list(headers)
