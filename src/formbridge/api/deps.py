from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException

from formbridge.config import settings
from formbridge.properties import PropertiesStore
from formbridge.services.processor import SurveyProcessor, build_processor
from formbridge.storage.base import SheetStore
from formbridge.storage.factory import build_store


def get_processor() -> SurveyProcessor:
    return build_processor(settings)


def get_store() -> SheetStore:
    return build_store(settings)


def get_properties() -> PropertiesStore:
    return PropertiesStore(settings.properties_path)


def require_auth(
    authorization: Optional[str] = Header(None),
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
):
    token = settings.security.api_token
    if not token:
        return

    if authorization == f"Bearer {token}" or x_api_key == token:
        return

    raise HTTPException(status_code=401, detail="Unauthorized", headers={"WWW-Authenticate": "Bearer"})
