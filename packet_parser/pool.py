"""
Question Pool
=============
Subject-partitioned, insertion-ordered store of extracted questions.

Pages may be segmented concurrently, so every mutation and every read
happens under a single lock. Readers always receive copies of the
underlying lists.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterable, Iterator, Optional

from .models import Question, Subject

logger = logging.getLogger(__name__)


class DuplicateQuestionError(ValueError):
    """Raised when a question id is already present in the pool."""


class QuestionPool:
    """Mapping from Subject to an ordered list of unique-id questions."""

    def __init__(self, questions: Optional[Iterable[Question]] = None):
        self._lock = threading.Lock()
        self._by_subject: dict[Subject, list[Question]] = {
            subject: [] for subject in Subject
        }
        self._ids: set[str] = set()
        if questions:
            self.extend(questions)

    # ─── Mutation ─────────────────────────────────────────────────────────

    def add(self, question: Question):
        """Append a question under its subject."""
        with self._lock:
            self._add_locked(question)

    def extend(self, questions: Iterable[Question]):
        """Append several questions atomically (all or none)."""
        batch = list(questions)
        with self._lock:
            seen = set()
            for q in batch:
                if q.id in self._ids or q.id in seen:
                    raise DuplicateQuestionError(
                        f"Question id already in pool: {q.id}"
                    )
                seen.add(q.id)
            for q in batch:
                self._add_locked(q)

    def remove(self, subject: Subject, question_id: str) -> bool:
        """Delete a question by id. Returns False if it was not present."""
        with self._lock:
            questions = self._by_subject[subject]
            for idx, q in enumerate(questions):
                if q.id == question_id:
                    del questions[idx]
                    self._ids.discard(question_id)
                    return True
        return False

    def merge(self, other: "QuestionPool") -> int:
        """
        Append every question of ``other`` whose id is not already here.
        Returns the number of questions added.
        """
        added = 0
        for q in other.all_questions():
            with self._lock:
                if q.id in self._ids:
                    logger.debug(f"Skipping duplicate question {q.id} on merge")
                    continue
                self._add_locked(q)
                added += 1
        return added

    def _add_locked(self, question: Question):
        if question.id in self._ids:
            raise DuplicateQuestionError(
                f"Question id already in pool: {question.id}"
            )
        self._by_subject[question.subject].append(question)
        self._ids.add(question.id)

    # ─── Reads ────────────────────────────────────────────────────────────

    def questions(self, subject: Subject) -> list[Question]:
        with self._lock:
            return list(self._by_subject[subject])

    def all_questions(self) -> list[Question]:
        """Every question, grouped by subject in declaration order."""
        with self._lock:
            return [
                q
                for subject in Subject
                for q in self._by_subject[subject]
            ]

    def counts(self) -> dict[Subject, int]:
        with self._lock:
            return {s: len(qs) for s, qs in self._by_subject.items()}

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)

    def __contains__(self, question_id: object) -> bool:
        with self._lock:
            return question_id in self._ids

    def __iter__(self) -> Iterator[Question]:
        return iter(self.all_questions())
