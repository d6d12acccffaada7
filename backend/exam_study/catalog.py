from __future__ import annotations

from typing import Iterable, Iterator, List, Optional

from .keys import catalog_sort_key
from .schemas import ExamData


class ExamCatalog:
    """Loaded exams, unique by id and kept in numeric order."""

    def __init__(self, exams: Optional[Iterable[ExamData]] = None) -> None:
        self._exams: List[ExamData] = []
        if exams:
            self.append(exams)

    def append(self, new_exams: Iterable[ExamData]) -> int:
        """Add exams whose id is not loaded yet; the first loaded copy wins.

        Returns the number of exams actually added.
        """
        seen = {e.id for e in self._exams}
        added = 0
        for exam in new_exams:
            if exam.id in seen:
                continue
            seen.add(exam.id)
            self._exams.append(exam)
            added += 1
        self._exams.sort(key=catalog_sort_key)
        return added

    def replace(self, exams: Iterable[ExamData]) -> None:
        self._exams = []
        self.append(exams)

    def clear(self) -> None:
        self._exams = []

    def get(self, exam_id: str) -> Optional[ExamData]:
        for exam in self._exams:
            if exam.id == exam_id:
                return exam
        return None

    def update(self, exam: ExamData) -> None:
        for idx, current in enumerate(self._exams):
            if current.id == exam.id:
                self._exams[idx] = exam
                return
        raise KeyError(exam.id)

    def ids(self) -> List[str]:
        return [e.id for e in self._exams]

    def exams(self) -> List[ExamData]:
        return list(self._exams)

    def __iter__(self) -> Iterator[ExamData]:
        return iter(list(self._exams))

    def __len__(self) -> int:
        return len(self._exams)
