from __future__ import annotations
import logging
import httpx
from typing import Any, Dict, List, Optional
from .settings import settings

logger = logging.getLogger(__name__)


def deepseek_chat_url(base_url: Optional[str]) -> str:
	url = (base_url or "").strip() or "https://api.deepseek.com"
	if not url.startswith("http"):
		url = f"https://{url}"
	if not url.endswith("/chat/completions"):
		url = url.rstrip("/") + "/chat/completions"
	return url


class GeminiClient:
	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		model: Optional[str] = None,
		deepseek_api_key: Optional[str] = None,
		deepseek_base_url: Optional[str] = None,
		prefer_deepseek: bool = False,
	) -> None:
		self.api_key = api_key or settings.gemini_api_key
		self._deepseek_api_key = deepseek_api_key or settings.deepseek_api_key
		if not self.api_key and not self._deepseek_api_key:
			raise ValueError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		self.provider = settings.gemini_provider
		if self.provider == "vertex":
			region = settings.vertex_region
			project = settings.vertex_project or "placeholder-project"
			# Vertex AI Generative REST endpoint (API key via header)
			self.base_url = base_url or (
				f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}/publishers/google/models/{self.model}:generateContent"
			)
			self._auth_in_query = False
		else:
			# Google AI Studio (Generative Language API)
			self.base_url = base_url or f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"
			self._auth_in_query = True
		self._client = httpx.AsyncClient(timeout=settings.ai_timeout_seconds)
		self._deepseek_url = deepseek_chat_url(deepseek_base_url or settings.deepseek_base_url)
		self._deepseek_model = settings.deepseek_model
		self._prefer_deepseek = prefer_deepseek and bool(self._deepseek_api_key)

	async def generate(
		self,
		prompt: str,
		*,
		system_instruction: Optional[str] = None,
		response_schema: Optional[Dict[str, Any]] = None,
		json_mode: bool = False,
	) -> str:
		json_mode = json_mode or response_schema is not None
		if self._prefer_deepseek:
			try:
				return await self._deepseek_generate(prompt, system_instruction, json_mode=json_mode)
			except Exception as err:
				if not self.api_key:
					raise RuntimeError("DeepSeek call failed and no Gemini key is configured for fallback") from err
				logger.warning("DeepSeek call failed, falling back to Gemini: %s", err)
		payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
		return await self._post_payload(
			payload,
			system_instruction=system_instruction,
			response_schema=response_schema,
			fallback_prompt=None if self._prefer_deepseek else prompt,
			json_mode=json_mode,
		)

	async def generate_multimodal(
		self,
		parts: List[Dict[str, Any]],
		*,
		role: str = "user",
		system_instruction: Optional[str] = None,
		response_schema: Optional[Dict[str, Any]] = None,
	) -> str:
		# Documents can only be read by Gemini
		if not self.api_key:
			raise ValueError("GEMINI_API_KEY is not configured")
		payload: Dict[str, Any] = {"contents": [{"role": role, "parts": parts}]}
		return await self._post_payload(
			payload,
			system_instruction=system_instruction,
			response_schema=response_schema,
			fallback_prompt=None,
		)

	async def _post_payload(
		self,
		payload: Dict[str, Any],
		*,
		system_instruction: Optional[str] = None,
		response_schema: Optional[Dict[str, Any]] = None,
		fallback_prompt: Optional[str],
		json_mode: bool = False,
	) -> str:
		if not self.api_key:
			if fallback_prompt is None:
				raise ValueError("GEMINI_API_KEY is not configured")
			return await self._deepseek_generate(fallback_prompt, system_instruction, json_mode=json_mode)
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		if system_instruction:
			payload = {**payload, "systemInstruction": {"parts": [{"text": system_instruction}]}}
		if response_schema is not None:
			payload = {
				**payload,
				"generationConfig": {"responseMimeType": "application/json", "responseSchema": response_schema},
			}
		last_error: Optional[Exception] = None
		try:
			r = await self._client.post(self.base_url, params=params, headers=headers, json=payload)
			r.raise_for_status()
		except (httpx.HTTPStatusError, httpx.RequestError) as err:
			last_error = err
		if last_error is None:
			try:
				data = r.json()
				return data["candidates"][0]["content"]["parts"][0]["text"]
			except Exception:
				last_error = RuntimeError(f"Unexpected Gemini response: {r.text}")
		if fallback_prompt is None or not self._deepseek_api_key:
			raise last_error
		logger.warning("Gemini call failed, falling back to DeepSeek: %s", last_error)
		try:
			return await self._deepseek_generate(fallback_prompt, system_instruction, json_mode=json_mode)
		except Exception as fallback_err:
			raise RuntimeError(
				f"Gemini primary call failed ({last_error}); fallback via DeepSeek also failed"
			) from fallback_err

	async def aclose(self) -> None:
		await self._client.aclose()

	async def _deepseek_generate(self, prompt: str, system_instruction: Optional[str], *, json_mode: bool = False) -> str:
		if not self._deepseek_api_key:
			raise RuntimeError("DeepSeek requested but no API key is configured")
		messages: List[Dict[str, str]] = []
		if system_instruction:
			messages.append({"role": "system", "content": system_instruction})
		messages.append({"role": "user", "content": prompt})
		payload: Dict[str, Any] = {"model": self._deepseek_model, "messages": messages, "stream": False}
		if json_mode:
			payload["response_format"] = {"type": "json_object"}
		headers = {
			"Authorization": f"Bearer {self._deepseek_api_key}",
			"Content-Type": "application/json",
		}
		r = await self._client.post(self._deepseek_url, headers=headers, json=payload)
		if r.status_code >= 400:
			raise RuntimeError(f"DeepSeek API Error: {r.status_code} - {r.text}")
		data = r.json()
		return data["choices"][0]["message"]["content"] or ""
