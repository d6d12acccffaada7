from __future__ import annotations
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..batches import InvalidStructureError, dump_reference_batch
from ..controller import AppController, NoReferenceBatchError, StaleRequestError, get_controller
from ..db import get_db
from ..deps import get_ai_client, read_uploads, require_client
from ..extraction import ExtractionError
from ..gemini_client import GeminiClient
from ..store import Store


router = APIRouter(prefix="/references", tags=["references"])


class ReferenceText(BaseModel):
    text: str


def _pending(controller: AppController):
    if controller.reference_batch is None:
        raise HTTPException(status_code=404, detail="No reference materials loaded")
    return dump_reference_batch(controller.reference_batch)


@router.get("")
async def get_references(controller: AppController = Depends(get_controller)):
    return _pending(controller)


@router.get("/export")
async def export_references(controller: AppController = Depends(get_controller)):
    return _pending(controller)


@router.post("/upload")
async def upload_references(
    files: List[UploadFile] = File(...),
    controller: AppController = Depends(get_controller),
    client: Optional[GeminiClient] = Depends(get_ai_client),
):
    docs = await read_uploads(files)
    has_json = any(d.filename.endswith(".json") or d.mime_type == "application/json" for d in docs)
    try:
        batch = await controller.ingest_reference_files(client if has_json else require_client(client), docs)
    except InvalidStructureError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ExtractionError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except StaleRequestError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if not batch.tests:
        raise HTTPException(status_code=422, detail="No recognizable tests found in reference file.")
    return dump_reference_batch(batch)


@router.post("/repair")
async def repair_references(
    req: ReferenceText,
    controller: AppController = Depends(get_controller),
    client: Optional[GeminiClient] = Depends(get_ai_client),
):
    if not req.text.strip():
        raise HTTPException(status_code=400, detail="text is required")
    try:
        batch = await controller.repair_reference(require_client(client), req.text)
    except ExtractionError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except StaleRequestError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return dump_reference_batch(batch)


@router.put("")
async def edit_references(req: ReferenceText, controller: AppController = Depends(get_controller)):
    try:
        batch = controller.apply_reference_edit(req.text)
    except InvalidStructureError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return dump_reference_batch(batch)


@router.post("/merge")
async def merge_references(controller: AppController = Depends(get_controller), db: Session = Depends(get_db)):
    try:
        matched = controller.merge_references()
    except NoReferenceBatchError as e:
        raise HTTPException(status_code=400, detail=str(e))
    controller.save(Store(db))
    return {"matched": matched, "total": len(controller.catalog)}
