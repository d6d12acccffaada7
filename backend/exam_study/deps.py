from __future__ import annotations
from typing import AsyncIterator, List, Optional

from fastapi import Depends, HTTPException, UploadFile

from .controller import AppController, get_controller
from .extraction import UploadedDocument
from .gemini_client import GeminiClient


async def get_ai_client(controller: AppController = Depends(get_controller)) -> AsyncIterator[Optional[GeminiClient]]:
	# User settings pick the preferred provider; env settings hold the defaults
	prefs = controller.settings
	try:
		client = GeminiClient(
			deepseek_api_key=prefs.deepseek_api_key,
			deepseek_base_url=prefs.deepseek_base_url,
			prefer_deepseek=prefs.ai_provider == "deepseek",
		)
	except ValueError:
		yield None
		return
	try:
		yield client
	finally:
		await client.aclose()


def require_client(client: Optional[GeminiClient]) -> GeminiClient:
	if client is None:
		raise HTTPException(status_code=500, detail="GEMINI_API_KEY is not configured")
	return client


async def read_uploads(files: List[UploadFile]) -> List[UploadedDocument]:
	docs: List[UploadedDocument] = []
	for f in files:
		content = await f.read()
		docs.append(UploadedDocument(filename=f.filename or "upload", content=content, mime_type=f.content_type or ""))
	return docs
