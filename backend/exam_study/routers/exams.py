from __future__ import annotations
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from ..batches import InvalidStructureError, dump_exam_batch, dump_exam_jsonl
from ..controller import AppController, StaleRequestError, get_controller
from ..db import get_db
from ..deps import get_ai_client, read_uploads, require_client
from ..extraction import ExtractionError
from ..gemini_client import GeminiClient
from ..settings import settings
from ..store import Store


router = APIRouter(prefix="/exams", tags=["exams"])


@router.get("")
async def list_exams(controller: AppController = Depends(get_controller)):
    return dump_exam_batch(controller.catalog)


@router.get("/export")
async def export_exams(controller: AppController = Depends(get_controller)):
    return dump_exam_batch(controller.catalog)


@router.get("/export.jsonl", response_class=PlainTextResponse)
async def export_exams_jsonl(controller: AppController = Depends(get_controller)):
    return PlainTextResponse(dump_exam_jsonl(controller.catalog), media_type="application/jsonl")


@router.post("/import")
async def import_exams(
    files: List[UploadFile] = File(...),
    controller: AppController = Depends(get_controller),
    db: Session = Depends(get_db),
):
    docs = await read_uploads(files)
    try:
        added = controller.import_exam_files(docs)
    except InvalidStructureError as e:
        raise HTTPException(status_code=400, detail=str(e))
    controller.save(Store(db))
    return {"added": added, "total": len(controller.catalog)}


@router.post("/extract")
async def extract_exams(
    files: List[UploadFile] = File(...),
    controller: AppController = Depends(get_controller),
    client: Optional[GeminiClient] = Depends(get_ai_client),
    db: Session = Depends(get_db),
):
    docs = await read_uploads(files)
    try:
        exams = await controller.ingest_exam_files(require_client(client), docs)
    except ExtractionError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except StaleRequestError as e:
        raise HTTPException(status_code=409, detail=str(e))
    controller.save(Store(db))
    # Same shape as the downloadable batch file
    return dump_exam_batch(exams)


@router.post("/reload")
async def reload_defaults(controller: AppController = Depends(get_controller), db: Session = Depends(get_db)):
    loaded, failed = controller.load_default_exams(settings.default_exam_files)
    if loaded == 0 and failed:
        raise HTTPException(status_code=500, detail="Could not reload defaults.")
    controller.save(Store(db))
    return {"loaded": loaded, "failed": failed}


@router.get("/{exam_id}")
async def get_exam(exam_id: str, controller: AppController = Depends(get_controller)):
    exam = controller.catalog.get(exam_id)
    if exam is None:
        raise HTTPException(status_code=404, detail="Exam not found")
    return exam.to_wire()


@router.get("/{exam_id}/export")
async def export_exam(exam_id: str, controller: AppController = Depends(get_controller)):
    exam = controller.catalog.get(exam_id)
    if exam is None:
        raise HTTPException(status_code=404, detail="Exam not found")
    return dump_exam_batch([exam])
