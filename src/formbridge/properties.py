import logging
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

TOKEN_KEY = "TYPEFORM_TOKEN"
PLACEHOLDER_TOKEN = "YOUR_TYPEFORM_API_TOKEN"


class PropertiesStore:
    """
    Persisted key-value store for runtime properties such as the API token.
    Backed by a small YAML file so it survives between runs.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path, "r") as f:
            data = yaml.safe_load(f) or {}
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            yaml.safe_dump(data, f, sort_keys=True)
        logger.debug("property %s updated", key)

    def all(self) -> dict[str, str]:
        return self._read()


def mask_token(token: Optional[str]) -> str:
    if not token:
        return ""
    if len(token) <= 14:
        return token[:2] + "..."
    return f"{token[:10]}...{token[-4:]}"
