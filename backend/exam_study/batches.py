"""Parsing and dumping of exam and reference batches.

Everything that arrives as JSON text, whether an uploaded file, an edited
reference document or a raw model response, is validated here before it
reaches the catalog or the reconciliation engine.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List

from pydantic import ValidationError

from .keys import digits_only
from .schemas import ExamData, ReferenceBatch, ReferenceData


logger = logging.getLogger(__name__)


class InvalidStructureError(ValueError):
    """A batch document is not valid JSON or lacks its ``exams`` / ``tests`` list."""


def parse_exam_payload(data: Any) -> List[ExamData]:
    """Exams from ``{"exams": [...]}`` or from a single exam object."""
    if not isinstance(data, dict):
        raise InvalidStructureError("Invalid structure. Must have { exams: [] }")
    try:
        if isinstance(data.get("exams"), list):
            return [ExamData.model_validate(e) for e in data["exams"]]
        if data.get("title") and isinstance(data.get("sections"), list):
            return [ExamData.model_validate(data)]
    except ValidationError as e:
        raise InvalidStructureError(f"Invalid exam data: {e}") from e
    raise InvalidStructureError("Invalid structure. Must have { exams: [] }")


def parse_exam_json(text: str) -> List[ExamData]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidStructureError("Invalid JSON syntax.") from e
    return parse_exam_payload(data)


def parse_exam_jsonl(text: str) -> List[ExamData]:
    exams: List[ExamData] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            exams.extend(parse_exam_payload(json.loads(line)))
        except (json.JSONDecodeError, InvalidStructureError) as e:
            logger.warning("Skipping invalid JSONL line %d: %s", lineno, e)
    if not exams:
        raise InvalidStructureError("No exams found in JSONL file.")
    return exams


def parse_reference_json(text: str) -> ReferenceBatch:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidStructureError("Invalid JSON syntax.") from e
    if not isinstance(data, dict) or not isinstance(data.get("tests"), list):
        raise InvalidStructureError("Invalid structure. Must have { tests: [] }")
    try:
        return ReferenceBatch.model_validate(data)
    except ValidationError as e:
        raise InvalidStructureError(f"Invalid reference data: {e}") from e


def normalize_reference_response(raw: Any) -> ReferenceBatch:
    """Turn the model's pair lists into the ``answers`` / ``tapescripts`` maps.

    The extraction schema asks for ``answerPairs: [{qNum, ansVal}]`` and
    ``scriptPairs: [{secName, content}]`` because free-form object keys are not
    expressible in a response schema.
    """
    if not isinstance(raw, dict) or not isinstance(raw.get("tests"), list):
        raise InvalidStructureError("Invalid structure. Must have { tests: [] }")
    tests: List[ReferenceData] = []
    for item in raw["tests"]:
        if not isinstance(item, dict) or item.get("testId") in (None, ""):
            continue
        answers: Dict[str, str] = {}
        for pair in item.get("answerPairs") or []:
            q_num = pair.get("qNum")
            value = pair.get("ansVal")
            if not q_num or not value:
                continue
            key = digits_only(q_num)
            if key:
                answers[key] = str(value).strip()
        tapescripts: Dict[str, str] = {}
        for pair in item.get("scriptPairs") or []:
            name = pair.get("secName")
            content = pair.get("content")
            if name and content:
                tapescripts[str(name)] = str(content)
        tests.append(ReferenceData(test_id=str(item["testId"]), answers=answers, tapescripts=tapescripts))
    return ReferenceBatch(tests=tests)


def dump_exam_batch(exams: Iterable[ExamData]) -> Dict[str, Any]:
    return {"exams": [e.to_wire() for e in exams]}


def dump_exam_jsonl(exams: Iterable[ExamData]) -> str:
    return "\n".join(json.dumps(e.to_wire(), ensure_ascii=False) for e in exams)


def dump_reference_batch(batch: ReferenceBatch) -> Dict[str, Any]:
    # answers/tapescripts are always written, even when empty
    return {
        "tests": [
            {"testId": t.test_id, "answers": dict(t.answers), "tapescripts": dict(t.tapescripts)}
            for t in batch.tests
        ]
    }
