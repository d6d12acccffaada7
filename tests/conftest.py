from __future__ import annotations

import os
import tempfile
from typing import Any, Dict, List, Optional

# Must be set before exam_study.settings / exam_study.db are imported
_TMP_DIR = tempfile.mkdtemp(prefix="exam_study_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ.pop("GEMINI_API_KEY", None)
os.environ.pop("DEEPSEEK_API_KEY", None)

import pytest

from exam_study.schemas import ExamData, ReferenceBatch


class FakeAIClient:
    """Stands in for GeminiClient; returns queued replies and records prompts."""

    def __init__(self, replies: Optional[List[str]] = None) -> None:
        self.replies = list(replies or [])
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def _next(self) -> str:
        if not self.replies:
            raise RuntimeError("no reply queued")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def generate(self, prompt: str, **kwargs: Any) -> str:
        self.calls.append({"prompt": prompt, **kwargs})
        return self._next()

    async def generate_multimodal(self, parts: List[Dict[str, Any]], **kwargs: Any) -> str:
        self.calls.append({"parts": parts, **kwargs})
        return self._next()

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_ai() -> FakeAIClient:
    return FakeAIClient()


def build_exam(
    exam_id: str = "test-1",
    title: str = "Model Test 1",
    sections: Optional[List[Dict[str, Any]]] = None,
) -> ExamData:
    if sections is None:
        sections = [
            {
                "id": "s1",
                "title": "Part I Listening Comprehension Section A",
                "instructions": "Listen and choose.",
                "questions": [
                    {"id": "q1", "number": 1, "text": "Q1", "type": "multiple-choice"},
                    {"id": "q2", "number": 2, "text": "Q2", "type": "multiple-choice"},
                ],
            }
        ]
    return ExamData.model_validate({"id": exam_id, "title": title, "sections": sections})


def build_reference(tests: List[Dict[str, Any]]) -> ReferenceBatch:
    return ReferenceBatch.model_validate({"tests": tests})


@pytest.fixture
def make_exam():
    return build_exam


@pytest.fixture
def make_reference():
    return build_reference
