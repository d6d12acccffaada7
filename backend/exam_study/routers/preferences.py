from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..controller import AppController, get_controller
from ..db import get_db
from ..schemas import AppSettings
from ..store import Store


router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("")
async def get_settings(controller: AppController = Depends(get_controller)):
    return controller.settings.to_wire()


@router.put("")
async def update_settings(req: AppSettings, controller: AppController = Depends(get_controller), db: Session = Depends(get_db)):
    controller.update_settings(req)
    controller.save(Store(db))
    return controller.settings.to_wire()
