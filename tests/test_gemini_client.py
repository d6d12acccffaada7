from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from exam_study.gemini_client import GeminiClient, deepseek_chat_url


def _gemini_reply(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def _deepseek_reply(text):
    return {"choices": [{"message": {"content": text}}]}


def _client(handler, **kwargs):
    client = GeminiClient(**kwargs)
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


async def _generate(client, *args, **kwargs):
    try:
        return await client.generate(*args, **kwargs)
    finally:
        await client.aclose()


def test_deepseek_url_normalization():
    assert deepseek_chat_url(None) == "https://api.deepseek.com/chat/completions"
    assert deepseek_chat_url("api.example.com/v1/") == "https://api.example.com/v1/chat/completions"
    assert deepseek_chat_url("https://x.test/chat/completions") == "https://x.test/chat/completions"


def test_requires_some_key(monkeypatch):
    from exam_study import gemini_client

    monkeypatch.setattr(gemini_client.settings, "gemini_api_key", None)
    monkeypatch.setattr(gemini_client.settings, "deepseek_api_key", None)
    with pytest.raises(ValueError):
        GeminiClient()


def test_gemini_request_carries_schema_and_system_instruction():
    seen = {}

    def handler(request):
        seen["key"] = request.url.params.get("key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_gemini_reply('{"ok": true}'))

    client = _client(handler, api_key="g-key")
    schema = {"type": "OBJECT"}
    text = asyncio.run(_generate(client, "hello", system_instruction="be brief", response_schema=schema))
    assert text == '{"ok": true}'
    assert seen["key"] == "g-key"
    assert seen["body"]["systemInstruction"] == {"parts": [{"text": "be brief"}]}
    assert seen["body"]["generationConfig"]["responseSchema"] == schema


def test_gemini_failure_falls_back_to_deepseek():
    hosts = []

    def handler(request):
        hosts.append(request.url.host)
        if request.url.host == "generativelanguage.googleapis.com":
            return httpx.Response(429, json={"error": "quota"})
        body = json.loads(request.content)
        assert body["messages"][-1] == {"role": "user", "content": "hello"}
        return httpx.Response(200, json=_deepseek_reply("from deepseek"))

    client = _client(handler, api_key="g-key", deepseek_api_key="d-key")
    assert asyncio.run(_generate(client, "hello")) == "from deepseek"
    assert hosts == ["generativelanguage.googleapis.com", "api.deepseek.com"]


def test_preferred_deepseek_is_tried_first():
    hosts = []

    def handler(request):
        hosts.append(request.url.host)
        assert request.headers["Authorization"] == "Bearer d-key"
        return httpx.Response(200, json=_deepseek_reply("answer"))

    client = _client(handler, api_key="g-key", deepseek_api_key="d-key", prefer_deepseek=True)
    assert asyncio.run(_generate(client, "hi", json_mode=True)) == "answer"
    assert hosts == ["api.deepseek.com"]


def test_documents_need_a_gemini_key(monkeypatch):
    from exam_study import gemini_client

    monkeypatch.setattr(gemini_client.settings, "gemini_api_key", None)
    client = _client(lambda request: httpx.Response(500), deepseek_api_key="d-key")

    async def run():
        try:
            return await client.generate_multimodal([{"text": "parse"}])
        finally:
            await client.aclose()

    with pytest.raises(ValueError):
        asyncio.run(run())
