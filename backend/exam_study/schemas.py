from __future__ import annotations

import time
import uuid
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


QuestionType = Literal["multiple-choice", "fill-blank", "writing", "unknown"]
QUESTION_TYPES = ("multiple-choice", "fill-blank", "writing", "unknown")


class CamelModel(BaseModel):
    # Wire format is camelCase (correctAnswer, testId, ...), python attributes are snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Option(CamelModel):
    label: str
    text: str


class Question(CamelModel):
    id: str
    number: int
    text: str = ""
    type: QuestionType = "unknown"
    options: Optional[List[Option]] = None
    correct_answer: Optional[str] = None
    user_answer: Optional[str] = None
    explanation: Optional[str] = None
    tapescript: Optional[str] = None
    script_context: Optional[str] = None
    context: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: Any) -> str:
        if isinstance(value, str) and value in QUESTION_TYPES:
            return value
        return "unknown"

    @field_validator("correct_answer", "user_answer", mode="before")
    @classmethod
    def _coerce_answer(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, str):
            return value
        return str(value)


class ExamSection(CamelModel):
    id: str
    title: str
    instructions: str = ""
    content: Optional[str] = None
    tapescript: Optional[str] = None
    audio_src: Optional[str] = None
    shared_options: Optional[List[Option]] = None
    questions: List[Question] = Field(default_factory=list)
    passage_analysis: Optional[str] = None


class ExamData(CamelModel):
    id: str
    title: str
    sections: List[ExamSection] = Field(default_factory=list)


class ExamBatch(CamelModel):
    exams: List[ExamData] = Field(default_factory=list)


class ReferenceData(CamelModel):
    test_id: str
    answers: Dict[str, str] = Field(default_factory=dict)
    tapescripts: Dict[str, str] = Field(default_factory=dict)

    @field_validator("test_id", mode="before")
    @classmethod
    def _coerce_test_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("answers", "tapescripts", mode="before")
    @classmethod
    def _coerce_values(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items() if v is not None}
        return value


class ReferenceBatch(CamelModel):
    tests: List[ReferenceData] = Field(default_factory=list)


class Score(CamelModel):
    correct: int
    total: int


class VocabularyItem(CamelModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    word: str
    definition: str
    chinese_definition: Optional[str] = None
    synonyms: Optional[List[str]] = None
    antonyms: Optional[List[str]] = None
    common_collocations: Optional[List[str]] = None
    context_sentences: List[str] = Field(default_factory=list)
    # Milliseconds since epoch, as the browser client stores it
    saved_at: int = Field(default_factory=lambda: int(time.time() * 1000))


class AppSettings(CamelModel):
    language: Literal["en", "zh"] = "zh"
    definition_source: Literal["llm", "translation", "api"] = "llm"
    dictionary_api_url: str = "https://api.dictionaryapi.dev/api/v2/entries/en/"
    ai_provider: Literal["gemini", "deepseek"] = "gemini"
    deepseek_api_key: Optional[str] = None
    deepseek_base_url: Optional[str] = None
