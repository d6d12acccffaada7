from __future__ import annotations

from typing import Optional

from .schemas import ExamData, ExamSection, Question, Score


def _normalize(value: Optional[str]) -> str:
    return (value or "").lower().strip()


def resolve_user_answer(user_answer: Optional[str], section: ExamSection) -> str:
    """Normalized user answer, with banked-cloze option text mapped to its label."""
    user = _normalize(user_answer)
    if section.shared_options and len(user) > 1:
        for option in section.shared_options:
            if option.text.lower() == user:
                return option.label.lower()
    return user


def is_correct(question: Question, section: ExamSection) -> bool:
    user = resolve_user_answer(question.user_answer, section)
    answer = _normalize(question.correct_answer)
    if not user or not answer:
        return False
    # "A. full option text" keys still match a bare "a"
    return user == answer or answer.startswith(user + ".")


def grade_exam(exam: ExamData) -> Score:
    correct = 0
    total = 0
    for section in exam.sections:
        for question in section.questions:
            if question.type == "writing":
                continue
            total += 1
            if is_correct(question, section):
                correct += 1
    return Score(correct=correct, total=total)


def display_answer(question: Question, section: ExamSection) -> Optional[str]:
    """Correct answer as shown to the student, e.g. "B. ubiquitous" for a bare label."""
    answer = question.correct_answer
    if not answer:
        return answer
    options = section.shared_options or question.options or []
    for option in options:
        if option.label == answer:
            return f"{answer}. {option.text}"
    return answer
