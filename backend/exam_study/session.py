from __future__ import annotations

from typing import Any, Dict, List, Optional

from .grading import display_answer, grade_exam, is_correct
from .schemas import ExamData, Score


def apply_answers(exam: ExamData, answers: Dict[str, Optional[str]]) -> ExamData:
    """Copy of ``exam`` with user answers set by question id; other fields are untouched."""
    updated = exam.model_copy(deep=True)
    for section in updated.sections:
        for question in section.questions:
            if question.id in answers:
                question.user_answer = answers[question.id]
    return updated


class ExamSession:
    """One exam being taken: its answer state and the last computed score."""

    def __init__(self, exam: ExamData) -> None:
        self._exam = exam.model_copy(deep=True)
        self.score: Optional[Score] = None
        self.submitted = False

    @property
    def exam_id(self) -> str:
        return self._exam.id

    @property
    def exam(self) -> ExamData:
        return self._exam.model_copy(deep=True)

    def set_answer(self, question_id: str, value: Optional[str]) -> None:
        for section in self._exam.sections:
            for question in section.questions:
                if question.id == question_id:
                    question.user_answer = value
                    # Editing after submission reopens the attempt
                    self.submitted = False
                    self.score = None
                    return
        raise KeyError(question_id)

    def set_explanation(self, question_id: str, explanation: str) -> None:
        for section in self._exam.sections:
            for question in section.questions:
                if question.id == question_id:
                    question.explanation = explanation

    def set_passage_analysis(self, section_id: str, analysis: str) -> None:
        for section in self._exam.sections:
            if section.id == section_id:
                section.passage_analysis = analysis

    def answers(self) -> Dict[str, Optional[str]]:
        return {q.id: q.user_answer for s in self._exam.sections for q in s.questions}

    def rebase(self, exam: ExamData) -> None:
        """Switch to a newer copy of the same exam, keeping the answers given so far."""
        answers = self.answers()
        self._exam = apply_answers(exam, answers)
        self.submitted = False
        self.score = None

    def clear_answers(self) -> None:
        for section in self._exam.sections:
            for question in section.questions:
                question.user_answer = None
        self.submitted = False
        self.score = None

    def submit(self) -> Score:
        self.score = grade_exam(self._exam)
        self.submitted = True
        return self.score

    def results(self) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        for section in self._exam.sections:
            for question in section.questions:
                if question.type == "writing":
                    continue
                rows.append({
                    "questionId": question.id,
                    "number": question.number,
                    "userAnswer": question.user_answer,
                    "correctAnswer": display_answer(question, section),
                    "correct": is_correct(question, section),
                })
        return rows
