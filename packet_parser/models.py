"""
Data Models
===========
Pydantic models for packet segmentation and set composition.
Everything except raster images is serializable to JSON.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from PIL import Image
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

MIN_ROUND = 1
MAX_ROUND = 16


# ─── Enums ────────────────────────────────────────────────────────────────────


class Subject(str, Enum):
    """Subjects kept in the pool. Declaration order is the tie-break order."""
    PHYSICS = "physics"
    EARTH_SCIENCE = "earth-science"
    BIOLOGY = "biology"
    CHEMISTRY = "chemistry"

    @property
    def label(self) -> str:
        return SUBJECT_LABELS[self]


SUBJECT_LABELS = {
    Subject.PHYSICS: "Physics",
    Subject.EARTH_SCIENCE: "Earth Science",
    Subject.BIOLOGY: "Biology",
    Subject.CHEMISTRY: "Chemistry",
}


class QuestionKind(str, Enum):
    """The two question formats printed in a packet."""
    TOSS_UP = "toss-up"
    BONUS = "bonus"


class SelectionMode(str, Enum):
    SINGLE = "single"
    MIXED = "mixed"


class SkipReason(str, Enum):
    """Why a page or question did not make it into the pool."""
    RENDER_FAILED = "render_failed"
    NO_SUBJECT = "no_subject"
    DEGENERATE_REGION = "degenerate_region"
    EXTRACTION_ERROR = "extraction_error"


# ─── Page Text Model ─────────────────────────────────────────────────────────


class Token(BaseModel):
    """
    One rendered text run on a page.
    ``y`` grows upward (document coordinates, not raster coordinates).
    """
    model_config = ConfigDict(frozen=True)

    text: str
    x: float
    y: float


class QuestionBoundary(BaseModel):
    """A detected question span within a page."""
    model_config = ConfigDict(frozen=True)

    start_y: float = Field(description="Heading position (top of the question)")
    end_y: Optional[float] = Field(
        default=None,
        description="Separator position; absent means next heading or page bottom",
    )
    raw_text: str = ""
    sequence_number: Optional[int] = None
    kind: QuestionKind


# ─── Question ─────────────────────────────────────────────────────────────────


class Question(BaseModel):
    """
    A single pool entry. Values are immutable; pools and generated sets
    hold their own references and never mutate a question in place.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str
    subject: Subject
    image: Optional[Image.Image] = Field(default=None, exclude=True, repr=False)
    source_label: str
    answer: Optional[str] = None
    round_number: Optional[int] = Field(default=None, ge=MIN_ROUND, le=MAX_ROUND)
    sequence_number: Optional[int] = None
    kind: Optional[QuestionKind] = None
    topic: Optional[str] = None
    page_number: Optional[int] = Field(default=None, ge=1)
    text: str = Field(
        default="",
        description="Raw text the metadata was extracted from",
    )


# ─── Selection ────────────────────────────────────────────────────────────────


class SubjectRatio(BaseModel):
    """Relative weight of one subject in a mixed set."""
    subject: Subject
    weight: float = Field(gt=0)


class SelectionConfig(BaseModel):
    """
    Problem-set request.

    SINGLE mode draws from ``subject``; MIXED mode splits ``count`` across
    ``ratios``. An empty ``round_filter`` means every round.
    """
    mode: SelectionMode = SelectionMode.SINGLE
    count: int = Field(ge=1)
    subject: Optional[Subject] = None
    ratios: list[SubjectRatio] = Field(default_factory=list)
    round_filter: frozenset[int] = Field(default_factory=frozenset)
    seed: Optional[int] = Field(
        default=None,
        description="Random seed for reproducible selection",
    )

    @field_validator("round_filter")
    @classmethod
    def _rounds_in_range(cls, value: frozenset[int]) -> frozenset[int]:
        bad = sorted(r for r in value if not MIN_ROUND <= r <= MAX_ROUND)
        if bad:
            raise ValueError(
                f"round numbers must be within {MIN_ROUND}..{MAX_ROUND}: {bad}"
            )
        return value

    @model_validator(mode="after")
    def _check_mode_fields(self) -> "SelectionConfig":
        if self.mode == SelectionMode.SINGLE:
            if self.subject is None:
                raise ValueError("single mode requires a subject")
        else:
            if not self.ratios:
                raise ValueError("mixed mode requires at least one ratio")
            subjects = [r.subject for r in self.ratios]
            if len(set(subjects)) != len(subjects):
                raise ValueError("mixed mode ratios repeat a subject")
        return self


# ─── Intake Report ────────────────────────────────────────────────────────────


class SkippedItem(BaseModel):
    """A page or question left out of the pool."""
    reason: SkipReason
    page_number: int = Field(ge=1)
    message: str = ""
    sequence_number: Optional[int] = None


class IntakeReport(BaseModel):
    """Post-intake summary of one segmentation run."""
    source: str = ""
    total_pages: int = 0
    pages_processed: int = 0
    pages_failed: list[int] = Field(default_factory=list)
    fallback_pages: list[int] = Field(default_factory=list)
    questions_by_subject: dict[str, int] = Field(default_factory=dict)
    questions_missing_answer: list[str] = Field(default_factory=list)
    questions_missing_round: list[str] = Field(default_factory=list)
    round_coverage: dict[int, int] = Field(default_factory=dict)
    skipped: list[SkippedItem] = Field(default_factory=list)
    cancelled: bool = False
    finished_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @computed_field
    @property
    def total_questions(self) -> int:
        return sum(self.questions_by_subject.values())

    @computed_field
    @property
    def skip_breakdown(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for item in self.skipped:
            counts[item.reason.value] = counts.get(item.reason.value, 0) + 1
        return counts
