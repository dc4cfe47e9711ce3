"""
Boundary Detector
=================
Finite state machine that scans one page's token sequence for TOSS-UP /
BONUS headings and tilde separators, producing one QuestionBoundary per
heading.

Coordinates are document coordinates: larger y is higher on the page, so
the final list is sorted by descending start_y (top of page first).
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Optional, Sequence

from .models import QuestionBoundary, QuestionKind, Token

logger = logging.getLogger(__name__)

# ─── Anchor Patterns ──────────────────────────────────────────────────────────

# Question-start headings, matched against the whole trimmed token
HEADING_PATTERNS = {
    QuestionKind.TOSS_UP: re.compile(r"^TOSS-UP$", re.IGNORECASE),
    QuestionKind.BONUS: re.compile(r"^BONUS$", re.IGNORECASE),
}

# Wavy rule printed between questions
SEPARATOR_PATTERN = re.compile(r"^[~∼˜〜]+$")

# "1) Physics", "14) Earth and Space"
SEQUENCE_SUBJECT_PATTERN = re.compile(
    r"(\d+)\)\s*(?:Physics|Earth|Biology|Chemistry|Math|Energy)",
    re.IGNORECASE,
)

ANSWER_MARKER = re.compile(r"ANSWER:", re.IGNORECASE)

# Tokens examined after a heading before giving up on finding its end
MAX_LOOKAHEAD = 100

# Characters after the answer marker that count as a captured answer
ANSWER_CAPTURE_MIN_CHARS = 20

# Baselines closer than this are treated as the same printed line
LINE_TOLERANCE = 1.0


class DetectorState(Enum):
    IDLE = "IDLE"
    IN_HEADING = "IN_HEADING"
    ACCUMULATING_BODY = "ACCUMULATING_BODY"
    CLOSED = "CLOSED"


def heading_kind(text: str) -> Optional[QuestionKind]:
    """Return the heading kind if the token text is a heading."""
    stripped = (text or "").strip()
    for kind, pattern in HEADING_PATTERNS.items():
        if pattern.match(stripped):
            return kind
    return None


def is_separator(text: str) -> bool:
    return bool(SEPARATOR_PATTERN.match((text or "").strip()))


def join_tokens(tokens: Sequence[Token]) -> str:
    """
    Join token text in rendering order: a space between tokens on the same
    baseline, a newline when the baseline changes.
    """
    parts: list[str] = []
    last_y: Optional[float] = None
    for token in tokens:
        text = token.text.strip()
        if not text:
            continue
        if last_y is not None:
            parts.append(" " if abs(token.y - last_y) <= LINE_TOLERANCE else "\n")
        parts.append(text)
        last_y = token.y
    return "".join(parts)


class BoundaryDetector:
    """
    Scans tokens and emits question boundaries.

    States:
        IDLE              looking for the next heading
        IN_HEADING        heading found, boundary opened
        ACCUMULATING_BODY collecting body text after the heading
        CLOSED            body finished, boundary ready to emit
    """

    def __init__(
        self,
        max_lookahead: int = MAX_LOOKAHEAD,
        answer_capture_min_chars: int = ANSWER_CAPTURE_MIN_CHARS,
    ):
        self.max_lookahead = max_lookahead
        self.answer_capture_min_chars = answer_capture_min_chars
        self.reset()

    def reset(self):
        """Reset the state machine for a fresh page."""
        self.state = DetectorState.IDLE
        self.boundaries: list[QuestionBoundary] = []
        self._heading_index = -1
        self._start_y = 0.0
        self._end_y: Optional[float] = None
        self._kind: Optional[QuestionKind] = None
        self._last_y: Optional[float] = None
        self._buffer = ""
        self._sequence_number: Optional[int] = None

    def detect(self, tokens: Sequence[Token]) -> list[QuestionBoundary]:
        """Detect all question boundaries on one page."""
        self.reset()

        for index, token in enumerate(tokens):
            kind = heading_kind(token.text)
            if kind is None:
                continue
            self._open(index, token, kind)
            self._accumulate(tokens)
            self._close()

        self.boundaries.sort(key=lambda b: b.start_y, reverse=True)
        if self.boundaries:
            logger.debug(f"Detected {len(self.boundaries)} question boundaries")
        return self.boundaries

    # ─── Transitions ──────────────────────────────────────────────────────

    def _open(self, index: int, token: Token, kind: QuestionKind):
        """IDLE -> IN_HEADING"""
        self.state = DetectorState.IN_HEADING
        self._heading_index = index
        self._start_y = token.y
        self._end_y = None
        self._kind = kind
        self._last_y = None
        self._buffer = ""
        self._sequence_number = None

    def _accumulate(self, tokens: Sequence[Token]):
        """IN_HEADING -> ACCUMULATING_BODY -> CLOSED"""
        self.state = DetectorState.ACCUMULATING_BODY
        first = self._heading_index + 1
        last = min(first + self.max_lookahead, len(tokens))

        steps = 0
        for j in range(first, last):
            steps += 1
            token = tokens[j]

            if heading_kind(token.text) is not None:
                self._end_y = self._separator_before(tokens, j)
                break

            text = token.text.strip()
            if not text or is_separator(text):
                continue

            if self._last_y is not None:
                same_line = abs(token.y - self._last_y) <= LINE_TOLERANCE
                self._buffer += " " if same_line else "\n"
            self._buffer += text
            self._last_y = token.y

            if self._sequence_number is None:
                match = SEQUENCE_SUBJECT_PATTERN.search(self._buffer)
                if match:
                    self._sequence_number = int(match.group(1))

            if self._answer_captured():
                break
        else:
            if steps >= self.max_lookahead:
                logger.debug(
                    f"Lookahead exhausted after {steps} tokens for heading "
                    f"at y={self._start_y:.1f}"
                )
        self.state = DetectorState.CLOSED

    def _close(self):
        """CLOSED -> IDLE"""
        self.boundaries.append(QuestionBoundary(
            start_y=self._start_y,
            end_y=self._end_y,
            raw_text=self._buffer.strip(),
            sequence_number=self._sequence_number,
            kind=self._kind,
        ))
        self.state = DetectorState.IDLE

    # ─── Helpers ──────────────────────────────────────────────────────────

    def _separator_before(
        self, tokens: Sequence[Token], next_heading: int
    ) -> Optional[float]:
        """Nearest separator between the open heading and the next one."""
        for k in range(next_heading - 1, self._heading_index, -1):
            if is_separator(tokens[k].text):
                return tokens[k].y
        return None

    def _answer_captured(self) -> bool:
        match = ANSWER_MARKER.search(self._buffer)
        if not match:
            return False
        trailing = self._buffer[match.end():].strip()
        return len(trailing) > self.answer_capture_min_chars


def detect_boundaries(tokens: Sequence[Token]) -> list[QuestionBoundary]:
    """Convenience wrapper around a fresh BoundaryDetector."""
    return BoundaryDetector().detect(tokens)
