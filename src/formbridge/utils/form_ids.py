import re
from typing import Optional

_BARE_ID = re.compile(r"^[a-zA-Z0-9]+$")
_FORM_URL = re.compile(r"typeform\.com/to/([a-zA-Z0-9]+)")


def extract_form_id(text: Optional[str]) -> Optional[str]:
    """Accept either a raw form id or a share URL such as https://form.typeform.com/to/ABC123."""
    if not text:
        return None
    value = text.strip()
    if _BARE_ID.match(value):
        return value
    match = _FORM_URL.search(value)
    return match.group(1) if match else None
