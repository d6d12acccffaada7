from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..controller import AppController, get_controller
from ..db import get_db
from ..schemas import CamelModel, VocabularyItem
from ..store import Store


router = APIRouter(prefix="/vocabulary", tags=["vocabulary"])


class AddWordRequest(CamelModel):
    word: str
    definition: str
    context: str = ""
    chinese_definition: Optional[str] = None
    synonyms: Optional[List[str]] = None
    antonyms: Optional[List[str]] = None
    common_collocations: Optional[List[str]] = None


@router.get("")
async def list_words(controller: AppController = Depends(get_controller)):
    return [v.to_wire() for v in controller.vocabulary]


@router.post("", status_code=201)
async def add_word(req: AddWordRequest, controller: AppController = Depends(get_controller), db: Session = Depends(get_db)):
    word = req.word.strip()
    if not word:
        raise HTTPException(status_code=400, detail="word is required")
    item = controller.add_vocabulary(VocabularyItem(
        word=word,
        definition=req.definition,
        chinese_definition=req.chinese_definition,
        synonyms=req.synonyms,
        antonyms=req.antonyms,
        common_collocations=req.common_collocations,
        context_sentences=[req.context] if req.context else [],
    ))
    controller.save(Store(db))
    return item.to_wire()


@router.delete("/{item_id}")
async def remove_word(item_id: str, controller: AppController = Depends(get_controller), db: Session = Depends(get_db)):
    if not controller.remove_vocabulary(item_id):
        raise HTTPException(status_code=404, detail="Vocabulary item not found")
    controller.save(Store(db))
    return {"ok": True}
