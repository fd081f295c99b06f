from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from formbridge.api.deps import get_processor, get_store, require_auth
from formbridge.services.processor import SurveyProcessor
from formbridge.storage.base import SheetStore
from formbridge.utils.form_ids import extract_form_id

router = APIRouter(prefix="/surveys", tags=["Surveys"])


class ProcessRequest(BaseModel):
    input: str
    name: Optional[str] = None


@router.get("/index")
def read_index(store: SheetStore = Depends(get_store), _auth=Depends(require_auth)):
    return [entry.model_dump(mode="json") for entry in store.read_index()]


@router.post("/process")
def process_survey(
    body: ProcessRequest,
    processor: SurveyProcessor = Depends(get_processor),
    _auth=Depends(require_auth),
):
    form_id = extract_form_id(body.input)
    if not form_id:
        raise HTTPException(status_code=422, detail="Could not extract a form ID. Enter a valid form ID or URL.")
    return processor.process_single_survey(form_id, body.name).model_dump()


@router.post("/process-all")
def process_all(processor: SurveyProcessor = Depends(get_processor), _auth=Depends(require_auth)):
    results = processor.process_all_surveys()
    return {
        "processed": len(results),
        "succeeded": sum(1 for r in results if r.success),
        "results": [r.model_dump() for r in results],
    }


@router.post("/process-known")
def process_known(processor: SurveyProcessor = Depends(get_processor), _auth=Depends(require_auth)):
    results = processor.process_known_surveys()
    return {
        "processed": len(results),
        "succeeded": sum(1 for r in results if r.success),
        "results": [r.model_dump() for r in results],
    }
