"""Key normalization shared by the catalog and the reconciliation engine.

Exams and answer-key records are only loosely keyed: a test number buried in
a free-text title ("Model Test 3"), an id such as ``test-3`` or a reference
``testId`` like ``"Test 3 Key"``. Every numeric lookup goes through the
helpers here so the matching rules live in one place.
"""

from __future__ import annotations

import re
from typing import Optional, Tuple

from .schemas import ExamData, ReferenceData


_FIRST_INT = re.compile(r"(\d+)")
_TITLE_TEST_NUMBER = re.compile(r"Test\s*(\d+)", re.IGNORECASE)
_ID_TEST_NUMBER = re.compile(r"test-?(\d+)", re.IGNORECASE)
_NON_DIGITS = re.compile(r"\D")


def extract_leading_int(value: Optional[str]) -> Optional[int]:
    """Return the first run of digits in ``value`` as an int, or None."""
    if not value:
        return None
    match = _FIRST_INT.search(str(value))
    return int(match.group(1)) if match else None


def digits_only(value: object) -> str:
    return _NON_DIGITS.sub("", str(value))


def exam_number(exam: ExamData) -> Optional[int]:
    """Test number of an exam: "Test N" in the title, else "test-N" in the id."""
    match = _TITLE_TEST_NUMBER.search(exam.title or "") or _ID_TEST_NUMBER.search(exam.id or "")
    return int(match.group(1)) if match else None


def reference_number(reference: ReferenceData) -> Optional[int]:
    return extract_leading_int(reference.test_id)


def catalog_sort_key(exam: ExamData) -> Tuple[int, int]:
    # Exams without any number sort after every numbered exam
    number = extract_leading_int(exam.id)
    if number is None:
        number = extract_leading_int(exam.title)
    if number is None:
        return (1, 0)
    return (0, number)
