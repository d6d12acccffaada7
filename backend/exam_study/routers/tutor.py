from __future__ import annotations
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..controller import AppController, get_controller
from ..db import get_db
from ..deps import get_ai_client, require_client
from ..extraction import ExtractionError
from ..gemini_client import GeminiClient
from ..schemas import CamelModel
from ..store import Store
from ..tutor import analyze_passage, define_word, explain_question, has_cached_explanation


router = APIRouter(prefix="/tutor", tags=["tutor"])


class ExplainRequest(CamelModel):
    exam_id: str
    question_id: str
    force: bool = False


class AnalyzeRequest(CamelModel):
    exam_id: str
    section_id: str
    force: bool = False


class DefineRequest(CamelModel):
    word: str
    context: str = ""


@router.post("/explain")
async def explain(
    req: ExplainRequest,
    controller: AppController = Depends(get_controller),
    client: Optional[GeminiClient] = Depends(get_ai_client),
    db: Session = Depends(get_db),
):
    try:
        section, question = controller.find_question(req.exam_id, req.question_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Question not found")
    if not req.force and has_cached_explanation(question):
        return {"explanation": question.explanation, "cached": True}
    try:
        text = await explain_question(require_client(client), question, section)
    except (httpx.HTTPError, RuntimeError) as e:
        raise HTTPException(status_code=502, detail=f"Failed to generate explanation: {e}")
    controller.set_explanation(req.exam_id, req.question_id, text)
    controller.save(Store(db))
    return {"explanation": text, "cached": False}


@router.post("/analyze")
async def analyze(
    req: AnalyzeRequest,
    controller: AppController = Depends(get_controller),
    client: Optional[GeminiClient] = Depends(get_ai_client),
    db: Session = Depends(get_db),
):
    try:
        section = controller.find_section(req.exam_id, req.section_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Section not found")
    if not section.content:
        raise HTTPException(status_code=400, detail="Section has no passage to analyze")
    if not req.force and section.passage_analysis:
        return {"analysis": section.passage_analysis, "cached": True}
    try:
        text = await analyze_passage(require_client(client), section)
    except (httpx.HTTPError, RuntimeError) as e:
        raise HTTPException(status_code=502, detail=f"Failed to analyze passage: {e}")
    controller.set_passage_analysis(req.exam_id, req.section_id, text)
    controller.save(Store(db))
    return {"analysis": text, "cached": False}


@router.post("/define")
async def define(
    req: DefineRequest,
    controller: AppController = Depends(get_controller),
    client: Optional[GeminiClient] = Depends(get_ai_client),
):
    word = req.word.strip()
    if not word:
        raise HTTPException(status_code=400, detail="word is required")
    prefs = controller.settings
    try:
        item = await define_word(
            None if prefs.definition_source == "api" else require_client(client),
            word,
            req.context,
            source=prefs.definition_source,
            api_url=prefs.dictionary_api_url,
        )
    except (httpx.HTTPError, ExtractionError, RuntimeError) as e:
        raise HTTPException(status_code=502, detail=f"Failed to define word via AI: {e}")
    return item.to_wire()
