from __future__ import annotations

import asyncio
import json

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from exam_study.batches import InvalidStructureError
from exam_study.controller import AppController, NoReferenceBatchError, RequestSlot, StaleRequestError
from exam_study.db import Base
from exam_study.extraction import ExtractionError, UploadedDocument
from exam_study.schemas import AppSettings, VocabularyItem
from exam_study.store import EXAMS_KEY, Store

from conftest import FakeAIClient, build_exam


@pytest.fixture
def store():
    from exam_study import models  # noqa: F401

    engine = create_engine("sqlite://", future=True)
    Base.metadata.create_all(bind=engine)
    db = sessionmaker(bind=engine, future=True)()
    try:
        yield Store(db)
    finally:
        db.close()


def _json_doc(name, payload):
    return UploadedDocument(filename=name, content=json.dumps(payload).encode("utf-8"), mime_type="application/json")


class TestRequestSlot:
    def test_newer_request_supersedes_older(self):
        slot = RequestSlot()
        first = slot.begin()
        second = slot.begin()
        with pytest.raises(StaleRequestError):
            slot.complete(first)
        slot.complete(second)
        assert not slot.in_flight

    def test_abandon_only_clears_current(self):
        slot = RequestSlot()
        first = slot.begin()
        second = slot.begin()
        slot.abandon(first)
        assert slot.is_current(second)
        slot.abandon(second)
        assert not slot.in_flight


def test_save_and_load_round_trip(store):
    controller = AppController()
    controller.catalog.append([build_exam("test-2", "Model Test 2"), build_exam()])
    controller.add_vocabulary(VocabularyItem(word="ubiquitous", definition="everywhere", context_sentences=["..."]))
    controller.update_settings(AppSettings(language="en", ai_provider="deepseek"))
    controller.save(store)

    stored = store.get_json(EXAMS_KEY)
    assert [e["id"] for e in stored["exams"]] == ["test-1", "test-2"]

    restored = AppController()
    restored.load(store)
    assert restored.catalog.ids() == ["test-1", "test-2"]
    assert restored.vocabulary[0].word == "ubiquitous"
    assert restored.settings.language == "en"
    assert restored.settings.ai_provider == "deepseek"


def test_load_from_empty_store_uses_defaults(store):
    controller = AppController()
    controller.load(store)
    assert len(controller.catalog) == 0
    assert controller.settings == AppSettings()


def test_import_prefers_jsonl():
    controller = AppController()
    jsonl = UploadedDocument(filename="batch.jsonl", content=json.dumps(build_exam("test-4", "Model Test 4").to_wire()).encode())
    added = controller.import_exam_files([_json_doc("b.json", {"exams": [build_exam().to_wire()]}), jsonl])
    assert added == 1
    assert controller.catalog.ids() == ["test-4"]


def test_import_without_json_file_is_rejected():
    with pytest.raises(InvalidStructureError):
        AppController().import_exam_files([UploadedDocument(filename="exam.pdf", content=b"%PDF")])


def test_load_default_exams_skips_unreadable_files(tmp_path):
    good = tmp_path / "JSON1-5.json"
    good.write_text(json.dumps({"exams": [build_exam("test-3", "Model Test 3").to_wire()]}), encoding="utf-8")
    bad = tmp_path / "broken.json"
    bad.write_text("{", encoding="utf-8")
    controller = AppController()
    controller.catalog.append([build_exam("test-9", "Model Test 9")])
    loaded, failed = controller.load_default_exams([str(good), str(bad), str(tmp_path / "missing.json")])
    assert loaded == 1
    assert failed == [str(bad), str(tmp_path / "missing.json")]
    assert controller.catalog.ids() == ["test-3"]


class TestReferences:
    def test_merge_applies_and_discards_batch(self):
        controller = AppController()
        controller.catalog.append([build_exam(), build_exam("test-2", "Model Test 2")])
        controller.apply_reference_edit(json.dumps({"tests": [{"testId": "1", "answers": {"1": "B"}}]}))
        assert controller.merge_references() == 1
        assert controller.catalog.get("test-1").sections[0].questions[0].correct_answer == "B"
        assert controller.catalog.get("test-2").sections[0].questions[0].correct_answer is None
        assert controller.reference_batch is None

    def test_merge_without_batch(self):
        with pytest.raises(NoReferenceBatchError):
            AppController().merge_references()

    def test_bad_edit_keeps_previous_batch(self):
        controller = AppController()
        controller.apply_reference_edit('{"tests": [{"testId": "1"}]}')
        with pytest.raises(InvalidStructureError):
            controller.apply_reference_edit('{"exams": []}')
        assert controller.reference_batch.tests[0].test_id == "1"

    def test_json_upload_bypasses_extraction(self):
        controller = AppController()
        doc = _json_doc("refs.json", {"tests": [{"testId": "1", "answers": {"1": "C"}}]})
        batch = asyncio.run(controller.ingest_reference_files(None, [doc]))
        assert batch.tests[0].answers == {"1": "C"}
        assert controller.reference_batch is batch

    def test_document_upload_goes_through_the_model(self):
        controller = AppController()
        reply = json.dumps({"tests": [{"testId": "1", "answerPairs": [{"qNum": "1", "ansVal": "D"}]}]})
        client = FakeAIClient([reply])
        doc = UploadedDocument(filename="key.pdf", content=b"%PDF-1.4", mime_type="application/pdf")
        batch = asyncio.run(controller.ingest_reference_files(client, [doc]))
        assert batch.tests[0].answers == {"1": "D"}
        assert client.calls[0]["parts"][0]["inlineData"]["mimeType"] == "application/pdf"
        assert not controller.requests.in_flight


class TestExtractionIngest:
    def test_extracted_exams_join_the_catalog(self):
        controller = AppController()
        controller.catalog.append([build_exam("test-2", "Model Test 2")])
        client = FakeAIClient([json.dumps({"exams": [build_exam().to_wire()]})])
        doc = UploadedDocument(filename="exam.pdf", content=b"%PDF", mime_type="application/pdf")
        exams = asyncio.run(controller.ingest_exam_files(client, [doc]))
        assert [e.id for e in exams] == ["test-1"]
        assert controller.catalog.ids() == ["test-1", "test-2"]

    def test_failed_extraction_leaves_catalog_alone(self):
        controller = AppController()
        controller.catalog.append([build_exam()])
        client = FakeAIClient(["not json at all"])
        doc = UploadedDocument(filename="exam.pdf", content=b"%PDF", mime_type="application/pdf")
        with pytest.raises(ExtractionError):
            asyncio.run(controller.ingest_exam_files(client, [doc]))
        assert controller.catalog.ids() == ["test-1"]
        assert not controller.requests.in_flight

    def test_stale_response_is_not_applied(self):
        controller = AppController()

        class SlowClient(FakeAIClient):
            async def generate_multimodal(self, parts, **kwargs):
                # A newer request starts while this one is still running
                controller.requests.begin()
                return await super().generate_multimodal(parts, **kwargs)

        client = SlowClient([json.dumps({"exams": [build_exam().to_wire()]})])
        doc = UploadedDocument(filename="exam.pdf", content=b"%PDF", mime_type="application/pdf")
        with pytest.raises(StaleRequestError):
            asyncio.run(controller.ingest_exam_files(client, [doc]))
        assert len(controller.catalog) == 0

    def test_later_json_upload_outranks_running_extraction(self):
        controller = AppController()
        newer = _json_doc("refs.json", {"tests": [{"testId": "1", "answers": {"1": "NEW"}}]})

        class SlowClient(FakeAIClient):
            async def generate_multimodal(self, parts, **kwargs):
                await controller.ingest_reference_files(None, [newer])
                return await super().generate_multimodal(parts, **kwargs)

        reply = json.dumps({"tests": [{"testId": "1", "answerPairs": [{"qNum": "1", "ansVal": "OLD"}]}]})
        doc = UploadedDocument(filename="key.pdf", content=b"%PDF", mime_type="application/pdf")
        with pytest.raises(StaleRequestError):
            asyncio.run(controller.ingest_reference_files(SlowClient([reply]), [doc]))
        assert controller.reference_batch.tests[0].answers == {"1": "NEW"}

    def test_edit_outranks_running_repair(self):
        controller = AppController()

        class SlowClient(FakeAIClient):
            async def generate(self, prompt, **kwargs):
                controller.apply_reference_edit('{"tests": [{"testId": "2"}]}')
                return await super().generate(prompt, **kwargs)

        client = SlowClient(['{"tests": [{"testId": "1"}]}'])
        with pytest.raises(StaleRequestError):
            asyncio.run(controller.repair_reference(client, "{"))
        assert controller.reference_batch.tests[0].test_id == "2"
        assert not controller.requests.in_flight


class TestSessionFlow:
    def test_submit_writes_answers_back(self):
        controller = AppController()
        exam = build_exam(sections=[{
            "id": "s1", "title": "Part II Vocabulary", "instructions": "",
            "questions": [{"id": "q1", "number": 1, "type": "multiple-choice", "correctAnswer": "A"}],
        }])
        controller.catalog.append([exam])
        controller.start_session("test-1")
        controller.record_answer("q1", "A")
        score = controller.submit_session()
        assert (score.correct, score.total) == (1, 1)
        assert controller.catalog.get("test-1").sections[0].questions[0].user_answer == "A"

    def test_merge_during_session_survives_submit(self):
        controller = AppController()
        controller.catalog.append([build_exam()])
        controller.start_session("test-1")
        controller.record_answer("q2", "C")
        controller.apply_reference_edit(json.dumps({
            "tests": [{"testId": "1", "answers": {"1": "B", "2": "C"}, "tapescripts": {"Section A": "W: ..."}}],
        }))
        controller.merge_references()
        controller.record_answer("q1", "B")
        score = controller.submit_session()

        assert (score.correct, score.total) == (2, 2)
        exam = controller.catalog.get("test-1")
        assert exam.sections[0].tapescript == "W: ..."
        assert [q.correct_answer for q in exam.sections[0].questions] == ["B", "C"]
        assert [q.user_answer for q in exam.sections[0].questions] == ["B", "C"]

    def test_passage_analysis_survives_submit(self):
        controller = AppController()
        controller.catalog.append([build_exam()])
        controller.start_session("test-1")
        controller.set_passage_analysis("test-1", "s1", "analysis")
        controller.record_answer("q1", "A")
        controller.submit_session()
        assert controller.catalog.get("test-1").sections[0].passage_analysis == "analysis"
        assert controller.session.exam.sections[0].passage_analysis == "analysis"

    def test_no_session(self):
        with pytest.raises(LookupError):
            AppController().submit_session()

    def test_unknown_exam(self):
        with pytest.raises(KeyError):
            AppController().start_session("test-404")

    def test_explanation_reaches_catalog_and_session(self):
        controller = AppController()
        controller.catalog.append([build_exam()])
        controller.start_session("test-1")
        controller.set_explanation("test-1", "q1", "Because...")
        assert controller.catalog.get("test-1").sections[0].questions[0].explanation == "Because..."
        _, question = controller.find_question("test-1", "q1")
        assert question.explanation == "Because..."


def test_vocabulary_remove():
    controller = AppController()
    item = controller.add_vocabulary(VocabularyItem(word="w", definition="d"))
    assert controller.remove_vocabulary(item.id)
    assert not controller.remove_vocabulary(item.id)


def test_store_put_and_delete(store):
    store.put_json("scratch", {"a": [1, 2]})
    store.put_json("scratch", {"a": [3]})
    assert store.get_json("scratch") == {"a": [3]}
    assert store.delete("scratch")
    assert not store.delete("scratch")
    assert store.get_json("scratch", []) == []
