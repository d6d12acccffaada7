import logging

from fastapi import FastAPI

from .controller import get_controller
from .db import SessionLocal, init_db
from .settings import settings
from .store import Store
from .routers import exams
from .routers import references
from .routers import session
from .routers import tutor
from .routers import vocabulary
from .routers import preferences

logger = logging.getLogger(__name__)

app = FastAPI(title="Exam Study API")
app.include_router(exams.router)
app.include_router(references.router)
app.include_router(session.router)
app.include_router(tutor.router)
app.include_router(vocabulary.router)
app.include_router(preferences.router)

@app.get("/health")
def health():
	return {"status": "ok"}

@app.get("/info")
def info():
	controller = get_controller()
	return {
		"status": "ok",
		"gemini_configured": bool(settings.gemini_api_key),
		"deepseek_configured": bool(settings.deepseek_api_key or controller.settings.deepseek_api_key),
		"exams": len(controller.catalog),
	}

@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	init_db()
	controller = get_controller()
	db = SessionLocal()
	try:
		store = Store(db)
		controller.load(store)
		# Fresh install: seed the catalog from the bundled exam files
		if len(controller.catalog) == 0 and settings.default_exam_files:
			loaded, failed = controller.load_default_exams(settings.default_exam_files)
			if failed:
				logger.warning("Default exams failed to load: %s", ", ".join(failed))
			if loaded:
				controller.save(store)
	finally:
		db.close()
