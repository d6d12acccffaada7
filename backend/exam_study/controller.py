"""Application state and the operations that change it.

``AppController`` is the only owner of the catalog, the pending reference
batch, the vocabulary list, user settings and the active exam session. The
pure components (catalog ordering, reconciliation, grading) are called from
here; persistence happens only through :meth:`AppController.load` and
:meth:`AppController.save`.
"""

from __future__ import annotations

import itertools
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from .batches import (
    InvalidStructureError,
    dump_exam_batch,
    parse_exam_json,
    parse_exam_jsonl,
    parse_exam_payload,
    parse_reference_json,
)
from .catalog import ExamCatalog
from .extraction import UploadedDocument, extract_exam, extract_reference, repair_reference_json
from .gemini_client import GeminiClient
from .reconcile import find_reference, reconcile
from .schemas import AppSettings, ExamData, ExamSection, Question, ReferenceBatch, Score, VocabularyItem
from .session import ExamSession, apply_answers
from .store import EXAMS_KEY, SETTINGS_KEY, VOCABULARY_KEY, Store


logger = logging.getLogger(__name__)


class StaleRequestError(RuntimeError):
    """A response arrived for a request that has since been superseded."""


class NoReferenceBatchError(LookupError):
    pass


class RequestSlot:
    """Single in-flight request; only the newest request may apply its result."""

    def __init__(self) -> None:
        self._tokens = itertools.count(1)
        self._current: Optional[int] = None

    @property
    def in_flight(self) -> bool:
        return self._current is not None

    def begin(self) -> int:
        token = next(self._tokens)
        self._current = token
        return token

    def is_current(self, token: int) -> bool:
        return self._current == token

    def complete(self, token: int) -> None:
        if not self.is_current(token):
            raise StaleRequestError(f"request {token} was superseded")
        self._current = None

    def abandon(self, token: int) -> None:
        if self.is_current(token):
            self._current = None

    def supersede(self) -> None:
        """Make any request still in flight stale without starting a new one."""
        self._current = None


class AppController:
    def __init__(self) -> None:
        self.catalog = ExamCatalog()
        self.reference_batch: Optional[ReferenceBatch] = None
        self.vocabulary: List[VocabularyItem] = []
        self.settings = AppSettings()
        self.session: Optional[ExamSession] = None
        self.requests = RequestSlot()

    # ---- persistence ----

    def load(self, store: Store) -> None:
        raw_exams = store.get_json(EXAMS_KEY)
        self.catalog.clear()
        if raw_exams is not None:
            try:
                self.catalog.append(parse_exam_payload(raw_exams))
            except InvalidStructureError as e:
                logger.warning("Ignoring stored exams: %s", e)
        self.vocabulary = [VocabularyItem.model_validate(v) for v in store.get_json(VOCABULARY_KEY, [])]
        raw_settings = store.get_json(SETTINGS_KEY)
        self.settings = AppSettings.model_validate(raw_settings) if raw_settings else AppSettings()
        logger.info("Loaded %d exams and %d vocabulary items", len(self.catalog), len(self.vocabulary))

    def save(self, store: Store) -> None:
        store.put_json(EXAMS_KEY, dump_exam_batch(self.catalog))
        store.put_json(VOCABULARY_KEY, [v.to_wire() for v in self.vocabulary])
        store.put_json(SETTINGS_KEY, self.settings.to_wire())

    # ---- catalog ----

    def import_exam_files(self, files: Sequence[UploadedDocument]) -> int:
        """Add exams from uploaded ``.jsonl`` or ``.json`` files.

        A JSONL file is preferred when both are present.
        """
        jsonl = next((f for f in files if f.filename.endswith(".jsonl")), None)
        if jsonl is not None:
            return self.catalog.append(parse_exam_jsonl(jsonl.text()))
        doc = next(
            (f for f in files if f.filename.endswith(".json") or f.mime_type == "application/json"),
            None,
        )
        if doc is None:
            raise InvalidStructureError("No .json or .jsonl exam file uploaded")
        return self.catalog.append(parse_exam_json(doc.text()))

    def load_default_exams(self, paths: Iterable[str]) -> Tuple[int, List[str]]:
        """Replace the catalog with the exams in ``paths``.

        Returns the number of exams loaded and the paths that could not be read.
        """
        loaded: List[ExamData] = []
        failed: List[str] = []
        for path in paths:
            try:
                loaded.extend(parse_exam_json(Path(path).read_text(encoding="utf-8")))
            except (OSError, InvalidStructureError) as e:
                logger.warning("Failed to load default exam from %s: %s", path, e)
                failed.append(path)
        self.catalog.clear()
        self.session = None
        added = self.catalog.append(loaded)
        return added, failed

    async def ingest_exam_files(self, client: GeminiClient, files: Sequence[UploadedDocument]) -> List[ExamData]:
        token = self.requests.begin()
        try:
            batch = await extract_exam(client, files)
        except Exception:
            self.requests.abandon(token)
            raise
        self.requests.complete(token)
        self.catalog.append(batch.exams)
        return batch.exams

    def get_exam(self, exam_id: str) -> ExamData:
        exam = self.catalog.get(exam_id)
        if exam is None:
            raise KeyError(exam_id)
        return exam

    # ---- reference materials ----

    async def ingest_reference_files(self, client: Optional[GeminiClient], files: Sequence[UploadedDocument]) -> ReferenceBatch:
        doc = next(
            (f for f in files if f.filename.endswith(".json") or f.mime_type == "application/json"),
            None,
        )
        if doc is not None:
            batch = parse_reference_json(doc.text())
            self.requests.supersede()
        else:
            if client is None:
                raise ValueError("An AI client is required to parse reference documents")
            token = self.requests.begin()
            try:
                batch = await extract_reference(client, files)
            except Exception:
                self.requests.abandon(token)
                raise
            self.requests.complete(token)
        self.reference_batch = batch
        return batch

    async def repair_reference(self, client: GeminiClient, raw_text: str) -> ReferenceBatch:
        token = self.requests.begin()
        try:
            batch = await repair_reference_json(client, raw_text)
        except Exception:
            self.requests.abandon(token)
            raise
        self.requests.complete(token)
        self.reference_batch = batch
        return batch

    def apply_reference_edit(self, text: str) -> ReferenceBatch:
        batch = parse_reference_json(text)
        self.requests.supersede()
        self.reference_batch = batch
        return batch

    def merge_references(self) -> int:
        """Reconcile the pending batch into the catalog; returns matched exam count."""
        if self.reference_batch is None:
            raise NoReferenceBatchError("No reference materials loaded")
        batch = self.reference_batch
        exams = self.catalog.exams()
        matched = sum(1 for e in exams if find_reference(e, batch) is not None)
        self.catalog.replace(reconcile(exams, batch))
        self.reference_batch = None
        if self.session is not None:
            merged = self.catalog.get(self.session.exam_id)
            if merged is not None:
                self.session.rebase(merged)
        return matched

    # ---- exam session ----

    def start_session(self, exam_id: str) -> ExamSession:
        self.session = ExamSession(self.get_exam(exam_id))
        return self.session

    def _require_session(self) -> ExamSession:
        if self.session is None:
            raise LookupError("No exam in progress")
        return self.session

    def record_answer(self, question_id: str, value: Optional[str]) -> None:
        self._require_session().set_answer(question_id, value)

    def submit_session(self) -> Score:
        session = self._require_session()
        score = session.submit()
        # Only answers are written back
        exam = self.catalog.get(session.exam_id)
        if exam is not None:
            self.catalog.update(apply_answers(exam, session.answers()))
        return score

    # ---- tutor results ----

    def find_question(self, exam_id: str, question_id: str) -> Tuple[ExamSection, Question]:
        exam = self.session.exam if self.session and self.session.exam_id == exam_id else self.get_exam(exam_id)
        for section in exam.sections:
            for question in section.questions:
                if question.id == question_id:
                    return section, question
        raise KeyError(question_id)

    def find_section(self, exam_id: str, section_id: str) -> ExamSection:
        for section in self.get_exam(exam_id).sections:
            if section.id == section_id:
                return section
        raise KeyError(section_id)

    def set_explanation(self, exam_id: str, question_id: str, explanation: str) -> None:
        exam = self.get_exam(exam_id).model_copy(deep=True)
        for section in exam.sections:
            for question in section.questions:
                if question.id == question_id:
                    question.explanation = explanation
        self.catalog.update(exam)
        if self.session is not None and self.session.exam_id == exam_id:
            self.session.set_explanation(question_id, explanation)

    def set_passage_analysis(self, exam_id: str, section_id: str, analysis: str) -> None:
        exam = self.get_exam(exam_id).model_copy(deep=True)
        for section in exam.sections:
            if section.id == section_id:
                section.passage_analysis = analysis
        self.catalog.update(exam)
        if self.session is not None and self.session.exam_id == exam_id:
            self.session.set_passage_analysis(section_id, analysis)

    # ---- vocabulary & settings ----

    def add_vocabulary(self, item: VocabularyItem) -> VocabularyItem:
        self.vocabulary.append(item)
        return item

    def remove_vocabulary(self, item_id: str) -> bool:
        before = len(self.vocabulary)
        self.vocabulary = [v for v in self.vocabulary if v.id != item_id]
        return len(self.vocabulary) != before

    def update_settings(self, new_settings: AppSettings) -> AppSettings:
        self.settings = new_settings
        return self.settings


_controller = AppController()


def get_controller() -> AppController:
    return _controller
