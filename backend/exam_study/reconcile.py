"""Reference reconciliation.

Merges a separately parsed answer-key / tapescript batch into the parsed
exams. Matching is heuristic:

1. an exam is paired with the first reference record whose ``testId`` carries
   the same test number (see :mod:`keys`);
2. a section picks up the first tapescript whose label and the section title
   contain one another (case-insensitive);
3. each question picks up the answer stored under its number, and the first
   tapescript whose label reduces to exactly that number.

The merge is a pure function: inputs are left untouched and unmatched exams
come back as equal copies.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from .keys import digits_only, exam_number, reference_number
from .schemas import ExamData, ExamSection, Question, ReferenceBatch, ReferenceData


logger = logging.getLogger(__name__)

# Older parsed exams store "A" in writing questions whose sample answer was never
# extracted; it is treated as unset.
WRITING_PLACEHOLDER_ANSWER = "A"
MIN_WRITING_ANSWER_LENGTH = 5
# Matched scripts longer than this are passages shown before the question
SCRIPT_CONTEXT_MIN_LENGTH = 50


def find_reference(exam: ExamData, batch: ReferenceBatch) -> Optional[ReferenceData]:
    number = exam_number(exam)
    if number is None:
        return None
    for reference in batch.tests:
        if reference_number(reference) == number:
            return reference
    return None


def is_writing_section(section: ExamSection) -> bool:
    return "writing" in section.title.lower() or any(q.type == "writing" for q in section.questions)


def is_listening_section(section: ExamSection) -> bool:
    return "listening" in section.title.lower()


def match_section_script(title: str, tapescripts: Dict[str, str]) -> Optional[str]:
    """First tapescript label that contains, or is contained in, the section title."""
    title_l = title.lower()
    for key in tapescripts:
        key_l = key.lower()
        if key_l in title_l or title_l in key_l:
            return key
    return None


def match_question_script(number_key: str, tapescripts: Dict[str, str]) -> Optional[str]:
    """First tapescript label whose digits are exactly the question number."""
    for key in tapescripts:
        if digits_only(key) == number_key:
            return key
    return None


def _should_replace_writing_answer(existing: Optional[str]) -> bool:
    return (
        not existing
        or len(existing) < MIN_WRITING_ANSWER_LENGTH
        or existing == WRITING_PLACEHOLDER_ANSWER
    )


def _merge_question(
    question: Question,
    section: ExamSection,
    reference: ReferenceData,
    *,
    writing: bool,
    listening: bool,
    section_script: Optional[str],
) -> Question:
    merged = question.model_copy(deep=True)
    number_key = digits_only(question.number)

    answer = reference.answers.get(number_key)
    if answer:
        if writing:
            if _should_replace_writing_answer(merged.correct_answer):
                merged.correct_answer = answer
            # A section script carries the full model text and outranks a key token
            if section_script:
                merged.correct_answer = section_script
        else:
            merged.correct_answer = answer

    script_key = match_question_script(number_key, reference.tapescripts)
    if script_key is not None:
        content = reference.tapescripts[script_key]
        if listening and "Section A" in section.title:
            merged.tapescript = content
            merged.explanation = content
        elif len(content) > SCRIPT_CONTEXT_MIN_LENGTH:
            merged.script_context = content
        else:
            merged.explanation = content
    return merged


def merge_section(section: ExamSection, reference: ReferenceData) -> ExamSection:
    writing = is_writing_section(section)
    listening = is_listening_section(section)
    script_key = match_section_script(section.title, reference.tapescripts)
    section_script = reference.tapescripts[script_key] if script_key is not None else None

    merged = section.model_copy(deep=True)
    if script_key is not None:
        merged.tapescript = section_script
    merged.questions = [
        _merge_question(
            q,
            section,
            reference,
            writing=writing,
            listening=listening,
            section_script=section_script,
        )
        for q in section.questions
    ]
    return merged


def merge_exam(exam: ExamData, reference: ReferenceData) -> ExamData:
    merged = exam.model_copy(deep=True)
    merged.sections = [merge_section(s, reference) for s in exam.sections]
    return merged


def reconcile(exams: Sequence[ExamData], batch: ReferenceBatch) -> List[ExamData]:
    """Apply ``batch`` to every exam it can be matched with.

    Returns a new list with the same length and order; never raises for
    missing matches.
    """
    result: List[ExamData] = []
    matched = 0
    for exam in exams:
        reference = find_reference(exam, batch)
        if reference is None:
            result.append(exam.model_copy(deep=True))
            continue
        matched += 1
        result.append(merge_exam(exam, reference))
    logger.info("Reconciled %d of %d exams against %d reference records", matched, len(exams), len(batch.tests))
    return result
