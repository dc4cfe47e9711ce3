"""
Metadata Extractor
==================
Pattern rules that pull subject, round, sequence number and answer out of
a block of packet text (a whole page or a single question).

Every extractor is total: a miss returns None, never raises.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional

from .models import MAX_ROUND, MIN_ROUND, Subject

logger = logging.getLogger(__name__)

# ─── Patterns ─────────────────────────────────────────────────────────────────

_SUBJECT_WORDS = (
    r"Physics"
    r"|Earth\s+(?:and\s+)?Space(?:\s+Science)?"
    r"|Earth\s+Science"
    r"|Biology"
    r"|Chemistry"
    r"|Math(?:ematics)?"
    r"|Energy"
)

# "1) Physics - Short Answer", searched anywhere in the text
NUMBERED_SUBJECT_PATTERN = re.compile(
    rf"\d+\)\s*({_SUBJECT_WORDS})", re.IGNORECASE
)

# "Chemistry - Multiple Choice" at the very start of the text
LEADING_SUBJECT_PATTERN = re.compile(
    rf"^\s*({_SUBJECT_WORDS})", re.IGNORECASE
)

# Categories outside the pool's domain
EXCLUDED_WORD_PATTERN = re.compile(r"\b(?:math|energy)\b", re.IGNORECASE)

# "ANSWER: W) 4 METERS PER SECOND", up to the end of the line
ANSWER_PATTERN = re.compile(r"ANSWER:\s*([^\n]+)", re.IGNORECASE)

# "ROUND 4", "Round 12"
ROUND_PATTERN = re.compile(r"ROUND\s*(\d+)", re.IGNORECASE)

# "12) ..." at the start of a line
SEQUENCE_PATTERN = re.compile(r"^\s*(\d+)\)", re.MULTILINE)

SUBJECT_KEYWORDS: dict[Subject, tuple[str, ...]] = {
    Subject.PHYSICS: (
        "physics", "force", "momentum", "velocity", "acceleration",
        "newton", "joule", "watt", "mass", "motion", "thermodynamics",
        "electromagnetic", "quantum", "relativity", "mechanics", "optics",
        "kinetic", "potential", "friction", "gravity", "wave",
    ),
    Subject.EARTH_SCIENCE: (
        "earth science", "earth and space", "geology", "meteorology",
        "oceanography", "astronomy", "rock", "mineral", "atmosphere",
        "climate", "weather", "tectonic", "volcano", "earthquake", "fossil",
        "sediment", "erosion", "planet", "star", "galaxy", "solar system",
        "ocean", "tsunami", "hurricane",
    ),
    Subject.BIOLOGY: (
        "biology", "cell", "organism", "dna", "rna", "protein", "enzyme",
        "photosynthesis", "respiration", "mitosis", "meiosis", "evolution",
        "genetics", "ecology", "species", "population", "ecosystem",
        "chromosome", "gene", "membrane", "bacteria", "virus", "plant",
        "animal",
    ),
    Subject.CHEMISTRY: (
        "chemistry", "atom", "molecule", "element", "compound", "reaction",
        "chemical", "periodic", "bond", "acid", "base", "ph", "ion",
        "electron", "proton", "neutron", "oxidation", "reduction",
        "catalyst", "solution", "mixture", "organic", "inorganic", "mole",
    ),
}

_KEYWORD_PATTERNS: dict[Subject, list[re.Pattern]] = {
    subject: [
        re.compile(rf"\b{re.escape(keyword)}\b".replace(r"\ ", r"\s+"))
        for keyword in keywords
    ]
    for subject, keywords in SUBJECT_KEYWORDS.items()
}


# ─── Subject Resolution ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class SubjectMatch:
    """
    Outcome of one subject strategy.
    ``subject`` is None when the text names an excluded category
    (Math / Energy): the question is skipped without consulting
    later strategies.
    """
    subject: Optional[Subject]
    strategy: str


def _subject_from_word(word: str) -> Optional[Subject]:
    normalized = re.sub(r"\s+", " ", word.lower())
    if "math" in normalized or "energy" in normalized:
        return None
    if normalized == "physics":
        return Subject.PHYSICS
    if normalized.startswith("earth"):
        return Subject.EARTH_SCIENCE
    if normalized == "biology":
        return Subject.BIOLOGY
    if normalized == "chemistry":
        return Subject.CHEMISTRY
    return None


def extract_subject(text: str) -> Optional[SubjectMatch]:
    """Primary rule: an explicit "<n>) Subject" or leading "Subject" label."""
    for pattern in (NUMBERED_SUBJECT_PATTERN, LEADING_SUBJECT_PATTERN):
        match = pattern.search(text or "")
        if match:
            return SubjectMatch(_subject_from_word(match.group(1)), "label")
    return None


def score_subject(text: str) -> Optional[SubjectMatch]:
    """
    Fallback rule: keyword scoring.

    The strictly highest score wins; ties go to the earlier Subject
    (Physics first). Text that scores nothing is left unresolved.
    """
    lowered = (text or "").lower()
    if EXCLUDED_WORD_PATTERN.search(lowered):
        return SubjectMatch(None, "keywords")

    best: Optional[Subject] = None
    best_score = 0
    for subject in Subject:
        score = sum(
            len(pattern.findall(lowered))
            for pattern in _KEYWORD_PATTERNS[subject]
        )
        if score > best_score:
            best, best_score = subject, score

    if best is None:
        return None
    return SubjectMatch(best, "keywords")


SUBJECT_STRATEGIES: tuple[Callable[[str], Optional[SubjectMatch]], ...] = (
    extract_subject,
    score_subject,
)


def resolve_subject(text: str) -> Optional[Subject]:
    """
    Run the subject strategies in order; the first match wins.
    Returns None when the text is excluded or unrecognized.
    """
    for strategy in SUBJECT_STRATEGIES:
        match = strategy(text)
        if match is not None:
            if match.subject is None:
                logger.debug(f"Excluded subject via {match.strategy} rule")
            return match.subject
    return None


# ─── Field Extractors ─────────────────────────────────────────────────────────


def extract_answer(text: str) -> Optional[str]:
    """Text after the first "ANSWER:" marker, up to the end of that line."""
    match = ANSWER_PATTERN.search(text or "")
    if not match:
        return None
    answer = match.group(1).strip()
    return answer or None


def extract_round(text: str) -> Optional[int]:
    """First "ROUND <n>" in the text, accepted only within 1..16."""
    match = ROUND_PATTERN.search(text or "")
    if not match:
        return None
    round_number = int(match.group(1))
    if MIN_ROUND <= round_number <= MAX_ROUND:
        return round_number
    return None


def extract_sequence_number(text: str) -> Optional[int]:
    match = SEQUENCE_PATTERN.search(text or "")
    if match:
        return int(match.group(1))
    return None
