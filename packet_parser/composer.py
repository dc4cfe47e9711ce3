"""
Set Composer
============
Builds a problem set from the subject pool.

Algorithm:
    1. Filter each subject's questions by the requested rounds
    2. Group by round and draw round-robin, so thin rounds are
       represented rather than sampled in proportion to their size
    3. For mixed sets, split the count across subjects by weight
    4. Shuffle the final order

Shortfalls are not errors: the set is as long as the pool allows.
"""

from __future__ import annotations

import logging
import math
import random
from collections import deque
from typing import Iterable, Optional

from .models import Question, SelectionConfig, SelectionMode, Subject, SubjectRatio
from .pool import QuestionPool

logger = logging.getLogger(__name__)

# Group key for questions without a round number
NO_ROUND = 0


def filter_by_rounds(
    questions: Iterable[Question], round_filter: frozenset[int]
) -> list[Question]:
    """Keep questions whose round is in the filter; empty filter keeps all."""
    if not round_filter:
        return list(questions)
    return [
        q for q in questions
        if q.round_number is not None and q.round_number in round_filter
    ]


def select_uniform_by_round(
    questions: list[Question], count: int, rng: random.Random
) -> list[Question]:
    """
    Draw up to ``count`` questions, one per round per cycle.

    Rounds are visited in the order they first appear; each round's
    questions are shuffled before drawing and the result is shuffled
    afterwards.
    """
    if count <= 0 or not questions:
        return []

    by_round: dict[int, list[Question]] = {}
    for q in questions:
        key = q.round_number if q.round_number is not None else NO_ROUND
        by_round.setdefault(key, []).append(q)

    queues: list[deque] = []
    for group in by_round.values():
        rng.shuffle(group)
        queues.append(deque(group))

    result: list[Question] = []
    cursor = 0
    while len(result) < count and any(queues):
        queue = queues[cursor % len(queues)]
        if queue:
            result.append(queue.popleft())
        cursor += 1

    rng.shuffle(result)
    return result


def subject_targets(ratios: list[SubjectRatio], count: int) -> dict[Subject, int]:
    """Per-subject counts: weight share of ``count``, rounded half up."""
    total = sum(r.weight for r in ratios)
    return {
        r.subject: int(math.floor(r.weight / total * count + 0.5))
        for r in ratios
    }


def compose_set(
    pool: QuestionPool,
    config: SelectionConfig,
    rng: Optional[random.Random] = None,
) -> list[Question]:
    """
    Compose a problem set.

    Args:
        pool: Source questions; only read.
        config: Mode, count, subject or ratios, round filter and seed.
        rng: Random source; defaults to ``random.Random(config.seed)``.

    Returns:
        Ordered questions, at most ``config.count`` long.
    """
    rng = rng or random.Random(config.seed)

    if config.mode == SelectionMode.SINGLE:
        candidates = filter_by_rounds(
            pool.questions(config.subject), config.round_filter
        )
        selected = select_uniform_by_round(candidates, config.count, rng)
    else:
        selected = []
        for subject, target in subject_targets(config.ratios, config.count).items():
            candidates = filter_by_rounds(
                pool.questions(subject), config.round_filter
            )
            picked = select_uniform_by_round(candidates, target, rng)
            if len(picked) < target:
                logger.info(
                    f"{subject.value}: {len(picked)} of {target} questions available"
                )
            selected.extend(picked)
        selected = selected[:config.count]
        rng.shuffle(selected)

    if len(selected) < config.count:
        logger.info(
            f"Composed {len(selected)} of {config.count} requested questions"
        )
    return selected
