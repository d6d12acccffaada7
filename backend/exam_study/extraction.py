"""Document extraction: uploaded exam / answer-key files to structured batches.

The model is asked for JSON constrained by a response schema; the reply is
validated by :mod:`batches` before anything else sees it. Any failure surfaces
as :class:`ExtractionError` and no partial batch is returned.
"""

from __future__ import annotations

import base64
import json
import logging
import mimetypes
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

import httpx

from .batches import InvalidStructureError, normalize_reference_response, parse_exam_payload
from .gemini_client import GeminiClient
from .schemas import ExamBatch, ReferenceBatch


logger = logging.getLogger(__name__)

REPAIR_INPUT_LIMIT = 30000


class ExtractionError(RuntimeError):
    pass


@dataclass
class UploadedDocument:
    filename: str
    content: bytes
    mime_type: str = ""

    @property
    def resolved_mime_type(self) -> str:
        if self.mime_type and self.mime_type != "application/octet-stream":
            return self.mime_type
        guessed, _ = mimetypes.guess_type(self.filename)
        return guessed or "application/octet-stream"

    def text(self) -> str:
        return self.content.decode("utf-8-sig")


def file_to_part(doc: UploadedDocument) -> Dict[str, Any]:
    return {
        "inlineData": {
            "mimeType": doc.resolved_mime_type,
            "data": base64.b64encode(doc.content).decode("ascii"),
        }
    }


_OPTION_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {"label": {"type": "STRING"}, "text": {"type": "STRING"}},
    "required": ["label", "text"],
}

EXAM_BATCH_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "exams": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "id": {"type": "STRING"},
                    "title": {"type": "STRING"},
                    "sections": {
                        "type": "ARRAY",
                        "items": {
                            "type": "OBJECT",
                            "properties": {
                                "id": {"type": "STRING"},
                                "title": {"type": "STRING"},
                                "instructions": {"type": "STRING"},
                                "content": {"type": "STRING", "nullable": True},
                                "tapescript": {"type": "STRING", "nullable": True},
                                "sharedOptions": {"type": "ARRAY", "nullable": True, "items": _OPTION_SCHEMA},
                                "questions": {
                                    "type": "ARRAY",
                                    "items": {
                                        "type": "OBJECT",
                                        "properties": {
                                            "id": {"type": "STRING"},
                                            "number": {"type": "INTEGER"},
                                            "text": {"type": "STRING"},
                                            "type": {
                                                "type": "STRING",
                                                "enum": ["multiple-choice", "fill-blank", "writing"],
                                            },
                                            "correctAnswer": {"type": "STRING", "nullable": True},
                                            "options": {"type": "ARRAY", "nullable": True, "items": _OPTION_SCHEMA},
                                        },
                                        "required": ["id", "number", "text", "type"],
                                    },
                                },
                            },
                            "required": ["id", "title", "instructions", "questions"],
                        },
                    },
                },
                "required": ["id", "title", "sections"],
            },
        }
    },
    "required": ["exams"],
}

# Object keys cannot be free-form in a response schema, so answers and scripts
# come back as pair lists and are folded into maps afterwards.
REFERENCE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "tests": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "testId": {"type": "STRING"},
                    "answerPairs": {
                        "type": "ARRAY",
                        "items": {
                            "type": "OBJECT",
                            "properties": {"qNum": {"type": "STRING"}, "ansVal": {"type": "STRING"}},
                            "required": ["qNum", "ansVal"],
                        },
                    },
                    "scriptPairs": {
                        "type": "ARRAY",
                        "items": {
                            "type": "OBJECT",
                            "properties": {"secName": {"type": "STRING"}, "content": {"type": "STRING"}},
                            "required": ["secName", "content"],
                        },
                    },
                },
                "required": ["testId"],
            },
        }
    },
    "required": ["tests"],
}


EXAM_PROMPT = (
    "You are an expert Educational Content parser for Doctorate English exams.\n"
    "Parse the document into structured JSON.\n"
    "CRITICAL GROUPING RULES:\n"
    "1. Single Exam Entity: \"Model Test 1\" includes EVERYTHING (Part I Listening, Part II Reading/Vocab, "
    "Part III Writing). Combine them all into one Exam object.\n"
    "2. Section Splitting: In Reading Comprehension, create a SEPARATE section for EACH Passage. "
    "Use double newlines \\n\\n for paragraphs in 'content'.\n"
    "3. Banked Cloze: Identify list of words (A-O). Put in 'sharedOptions'. Replace blanks in text with '{{number}}'.\n"
    "4. Keys & Scripts: Look for \"Key to Model Tests\" and \"Listening Scripts\" at the END and map them."
)

REFERENCE_PROMPT = (
    "Extract Answer Keys, Listening Scripts, and Writing Samples. Identify each Model Test. "
    "Return JSON strictly following schema."
)


def _repair_prompt(raw_text: str) -> str:
    return (
        "You are an expert JSON Repair agent. Fix syntax errors and standardize structure. "
        f"Input Data: {raw_text[:REPAIR_INPUT_LIMIT]}"
    )


def extract_json_object(text: str) -> Dict[str, Any]:
    try:
        return json.loads(text)
    except Exception:
        pass
    code_block = re.search(r"```json\s*([\s\S]*?)\s*```", text)
    if code_block:
        candidate = code_block.group(1)
        try:
            return json.loads(candidate)
        except Exception:
            pass
    first = text.find("{")
    last = text.rfind("}")
    if first != -1 and last != -1 and last > first:
        candidate = text[first : last + 1]
        try:
            return json.loads(candidate)
        except Exception:
            pass
    raise ExtractionError("LLM did not return valid JSON.")


async def extract_exam(client: GeminiClient, files: Sequence[UploadedDocument]) -> ExamBatch:
    if not files:
        raise ExtractionError("No files to extract")
    parts: List[Dict[str, Any]] = [file_to_part(f) for f in files]
    parts.append({"text": EXAM_PROMPT})
    try:
        raw = await client.generate_multimodal(parts, response_schema=EXAM_BATCH_SCHEMA)
        exams = parse_exam_payload(extract_json_object(raw))
    except (httpx.HTTPError, RuntimeError, InvalidStructureError) as e:
        logger.error("Error parsing exam: %s", e)
        raise ExtractionError(f"Failed to extract exam: {e}") from e
    logger.info("Extracted %d exams from %d files", len(exams), len(files))
    return ExamBatch(exams=exams)


async def extract_reference(client: GeminiClient, files: Sequence[UploadedDocument]) -> ReferenceBatch:
    if not files:
        raise ExtractionError("No files to extract")
    parts: List[Dict[str, Any]] = [file_to_part(f) for f in files]
    parts.append({"text": REFERENCE_PROMPT})
    try:
        raw = await client.generate_multimodal(parts, response_schema=REFERENCE_SCHEMA)
        return normalize_reference_response(extract_json_object(raw))
    except (httpx.HTTPError, RuntimeError, InvalidStructureError) as e:
        logger.error("Error parsing reference materials: %s", e)
        raise ExtractionError(f"Failed to parse reference materials: {e}") from e


async def repair_reference_json(client: GeminiClient, raw_text: str) -> ReferenceBatch:
    try:
        raw = await client.generate(_repair_prompt(raw_text), response_schema=REFERENCE_SCHEMA)
        return normalize_reference_response(extract_json_object(raw))
    except (httpx.HTTPError, RuntimeError, InvalidStructureError) as e:
        raise ExtractionError(f"Repair failed: {e}") from e
