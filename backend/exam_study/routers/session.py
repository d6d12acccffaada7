from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..controller import AppController, get_controller
from ..db import get_db
from ..schemas import CamelModel
from ..store import Store


router = APIRouter(prefix="/session", tags=["exam_session"])


class StartRequest(CamelModel):
    exam_id: str


class AnswerRequest(CamelModel):
    question_id: str
    value: Optional[str] = None


def _state(controller: AppController):
    session = controller.session
    if session is None:
        raise HTTPException(status_code=404, detail="No exam in progress")
    return {
        "exam": session.exam.to_wire(),
        "submitted": session.submitted,
        "score": session.score.to_wire() if session.score else None,
    }


@router.post("/start")
async def start(req: StartRequest, controller: AppController = Depends(get_controller)):
    try:
        controller.start_session(req.exam_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Exam not found")
    return _state(controller)


@router.get("")
async def get_state(controller: AppController = Depends(get_controller)):
    return _state(controller)


@router.post("/answer")
async def answer(req: AnswerRequest, controller: AppController = Depends(get_controller)):
    try:
        controller.record_answer(req.question_id, req.value)
    except KeyError:
        raise HTTPException(status_code=404, detail="Question not found")
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"ok": True}


@router.post("/submit")
async def submit(controller: AppController = Depends(get_controller), db: Session = Depends(get_db)):
    try:
        score = controller.submit_session()
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    controller.save(Store(db))
    return {"score": score.to_wire(), "results": controller.session.results()}
