import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from formbridge.api.deps import get_properties, get_store, require_auth
from formbridge.config import settings
from formbridge.properties import PLACEHOLDER_TOKEN, TOKEN_KEY, PropertiesStore, mask_token
from formbridge.services.processor import resolve_token
from formbridge.storage.base import SheetStore

logger = logging.getLogger("formbridge.api.system")
router = APIRouter(tags=["System"])


class TokenUpdate(BaseModel):
    token: str


@router.get("/health")
def health():
    return {"status": "ok", "version": settings.app.version}


@router.get("/settings")
def read_settings(
    properties: PropertiesStore = Depends(get_properties),
    _auth=Depends(require_auth),
):
    token = resolve_token(settings, properties)
    configured = bool(token) and token != PLACEHOLDER_TOKEN
    return {
        "token_configured": configured,
        "token": mask_token(token) if configured else "",
        "storage_backend": settings.storage.backend,
        "daily_at": settings.scheduler.daily_at,
        "known_surveys": [s.model_dump() for s in settings.known_surveys],
    }


@router.put("/settings/token")
def update_token(
    body: TokenUpdate,
    properties: PropertiesStore = Depends(get_properties),
    _auth=Depends(require_auth),
):
    token = body.token.strip()
    if not token:
        raise HTTPException(status_code=422, detail="Token must not be empty")
    properties.set(TOKEN_KEY, token)
    logger.info("API token updated")
    return {"success": True, "token": mask_token(token)}


@router.get("/logs")
def read_logs(
    limit: int = Query(50, ge=1, le=1000),
    store: SheetStore = Depends(get_store),
    _auth=Depends(require_auth),
):
    return [entry.model_dump(mode="json") for entry in store.read_log(limit)]
