"""
Test Suite for Packet Parsing Components
========================================
Unit tests for the data model, metadata extractor, boundary detector
and region cropper.
"""

from __future__ import annotations

import pytest
from PIL import Image
from pydantic import ValidationError

from packet_parser.boundaries import (
    BoundaryDetector,
    DetectorState,
    detect_boundaries,
    heading_kind,
    is_separator,
    join_tokens,
)
from packet_parser.cropper import crop_region, pixel_span
from packet_parser.metadata import (
    extract_answer,
    extract_round,
    extract_sequence_number,
    extract_subject,
    resolve_subject,
    score_subject,
)
from packet_parser.models import (
    Question,
    QuestionKind,
    SelectionConfig,
    SelectionMode,
    Subject,
    SubjectRatio,
    Token,
)


def tok(text: str, y: float, x: float = 72.0) -> Token:
    return Token(text=text, x=x, y=y)


# ═══════════════════════════════════════════════════════════════════════════════
# MODEL TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestQuestion:
    """Test Question model."""

    def test_minimal_question(self):
        q = Question(id="q1", subject=Subject.PHYSICS, source_label="p.pdf - Page 1")
        assert q.answer is None
        assert q.round_number is None
        assert q.kind is None
        assert q.image is None

    def test_round_number_range(self):
        Question(id="q1", subject=Subject.BIOLOGY, source_label="x", round_number=16)
        with pytest.raises(ValidationError):
            Question(id="q2", subject=Subject.BIOLOGY, source_label="x", round_number=17)
        with pytest.raises(ValidationError):
            Question(id="q3", subject=Subject.BIOLOGY, source_label="x", round_number=0)

    def test_image_excluded_from_dump(self):
        q = Question(
            id="q1",
            subject=Subject.CHEMISTRY,
            source_label="x",
            image=Image.new("RGB", (10, 10)),
            kind=QuestionKind.BONUS,
        )
        data = q.model_dump(mode="json")
        assert "image" not in data
        assert data["subject"] == "chemistry"
        assert data["kind"] == "bonus"

    def test_question_is_immutable(self):
        q = Question(id="q1", subject=Subject.PHYSICS, source_label="x")
        with pytest.raises(ValidationError):
            q.answer = "42"


class TestSelectionConfig:
    """Test SelectionConfig validation."""

    def test_single_requires_subject(self):
        with pytest.raises(ValidationError):
            SelectionConfig(mode=SelectionMode.SINGLE, count=5)

    def test_mixed_requires_ratios(self):
        with pytest.raises(ValidationError):
            SelectionConfig(mode=SelectionMode.MIXED, count=5)

    def test_mixed_rejects_repeated_subject(self):
        with pytest.raises(ValidationError):
            SelectionConfig(
                mode=SelectionMode.MIXED,
                count=5,
                ratios=[
                    SubjectRatio(subject=Subject.PHYSICS, weight=1),
                    SubjectRatio(subject=Subject.PHYSICS, weight=2),
                ],
            )

    def test_weights_strictly_positive(self):
        with pytest.raises(ValidationError):
            SubjectRatio(subject=Subject.PHYSICS, weight=0)

    def test_count_positive(self):
        with pytest.raises(ValidationError):
            SelectionConfig(subject=Subject.PHYSICS, count=0)

    def test_round_filter_range(self):
        config = SelectionConfig(subject=Subject.PHYSICS, count=3, round_filter=[1, 16])
        assert config.round_filter == frozenset({1, 16})
        with pytest.raises(ValidationError):
            SelectionConfig(subject=Subject.PHYSICS, count=3, round_filter=[17])


# ═══════════════════════════════════════════════════════════════════════════════
# METADATA EXTRACTOR TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestSubjectExtraction:
    """Test the subject strategy chain."""

    def test_numbered_label(self):
        text = "1) Physics - Short Answer What is six times seven? ANSWER: 42"
        assert resolve_subject(text) == Subject.PHYSICS
        assert extract_sequence_number(text) == 1
        assert extract_answer(text) == "42"

    def test_numbered_label_anywhere(self):
        match = extract_subject("TOSS-UP 7) Biology - Multiple Choice")
        assert match.subject == Subject.BIOLOGY
        assert match.strategy == "label"

    def test_leading_label(self):
        assert resolve_subject("Chemistry - Short Answer Name this element") == Subject.CHEMISTRY

    def test_earth_science_synonyms(self):
        assert resolve_subject("2) Earth and Space - Short Answer") == Subject.EARTH_SCIENCE
        assert resolve_subject("2) Earth Science - Short Answer") == Subject.EARTH_SCIENCE
        assert resolve_subject("Earth and Space Science question about rocks") == Subject.EARTH_SCIENCE

    def test_excluded_label_skips_without_fallback(self):
        text = "3) Math - Short Answer What is the cell count of 2 atoms?"
        match = extract_subject(text)
        assert match is not None
        assert match.subject is None
        assert resolve_subject(text) is None

    def test_energy_label_excluded(self):
        assert resolve_subject("5) Energy - Multiple Choice") is None

    def test_fallback_scoring(self):
        assert extract_subject("Which organelle in the cell does photosynthesis?") is None
        assert resolve_subject(
            "Which organelle in the cell does photosynthesis?"
        ) == Subject.BIOLOGY

    def test_fallback_earth_science(self):
        match = score_subject("Earth and Space Science question about a volcano")
        assert match.subject == Subject.EARTH_SCIENCE

    def test_fallback_rejects_excluded_words(self):
        match = score_subject("Find the kinetic energy of the cart")
        assert match is not None
        assert match.subject is None
        assert resolve_subject("Find the kinetic energy of the cart") is None

    def test_fallback_tie_prefers_physics(self):
        assert resolve_subject("a force on an atom") == Subject.PHYSICS

    def test_fallback_whole_words_only(self):
        assert score_subject("cellular phone") is None

    def test_unrecognized_text(self):
        assert resolve_subject("Lorem ipsum dolor sit amet") is None
        assert resolve_subject("") is None


class TestFieldExtraction:
    """Test answer, round and sequence number extraction."""

    @pytest.mark.parametrize("n", range(1, 17))
    def test_round_in_range(self, n):
        assert extract_round(f"ROUND {n}") == n

    @pytest.mark.parametrize("n", [0, 17, 99])
    def test_round_out_of_range(self, n):
        assert extract_round(f"ROUND {n}") is None

    def test_round_case_insensitive(self):
        assert extract_round("Science Bowl Round 4 Packet") == 4
        assert extract_round("no rounds here") is None

    def test_answer_stops_at_line_break(self):
        assert extract_answer("answer: W) 4 METERS\nBONUS next") == "W) 4 METERS"

    def test_answer_missing(self):
        assert extract_answer("What is the answer?") is None
        assert extract_answer("ANSWER:") is None

    def test_sequence_number_line_start(self):
        assert extract_sequence_number("12) Biology") == 12
        assert extract_sequence_number("intro line\n7) Chemistry") == 7
        assert extract_sequence_number("see item 12) above") is None


# ═══════════════════════════════════════════════════════════════════════════════
# BOUNDARY DETECTOR TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestBoundaryDetector:
    """Test the boundary detection state machine."""

    def test_anchor_helpers(self):
        assert heading_kind("TOSS-UP") == QuestionKind.TOSS_UP
        assert heading_kind("  toss-up ") == QuestionKind.TOSS_UP
        assert heading_kind("Bonus") == QuestionKind.BONUS
        assert heading_kind("BONUS ROUND") is None
        assert is_separator("~~~~~~~")
        assert not is_separator("~ ~")

    def test_no_headings(self):
        tokens = [tok("ROUND 1", 750), tok("1) Physics", 700)]
        assert detect_boundaries(tokens) == []

    def test_single_question(self):
        tokens = [
            tok("TOSS-UP", 700),
            tok("1) Physics - Short Answer", 680),
            tok("What is six times seven?", 665),
            tok("ANSWER: 42", 650),
        ]
        boundaries = detect_boundaries(tokens)

        assert len(boundaries) == 1
        b = boundaries[0]
        assert b.kind == QuestionKind.TOSS_UP
        assert b.start_y == 700
        assert b.end_y is None
        assert b.sequence_number == 1
        assert "ANSWER: 42" in b.raw_text
        assert extract_answer(b.raw_text) == "42"

    def test_separator_closes_question(self):
        tokens = [
            tok("TOSS-UP", 700),
            tok("1) Physics - Short Answer", 680),
            tok("ANSWER: 42", 660),
            tok("~~~~~~~~~~", 640),
            tok("BONUS", 600),
            tok("2) Biology - Short Answer", 580),
            tok("ANSWER: MITOCHONDRIA", 560),
        ]
        boundaries = detect_boundaries(tokens)

        assert [b.kind for b in boundaries] == [QuestionKind.TOSS_UP, QuestionKind.BONUS]
        assert boundaries[0].end_y == 640
        assert boundaries[1].end_y is None
        assert boundaries[1].sequence_number == 2
        assert "~" not in boundaries[0].raw_text
        assert "BONUS" not in boundaries[0].raw_text

    def test_no_separator_leaves_end_open(self):
        tokens = [
            tok("TOSS-UP", 700),
            tok("1) Chemistry", 680),
            tok("BONUS", 600),
            tok("1) Chemistry", 580),
        ]
        boundaries = detect_boundaries(tokens)
        assert all(b.end_y is None for b in boundaries)

    def test_sorted_top_of_page_first(self):
        tokens = [
            tok("BONUS", 300),
            tok("4) Biology", 280),
            tok("TOSS-UP", 700),
            tok("4) Biology", 680),
        ]
        boundaries = detect_boundaries(tokens)
        assert [b.start_y for b in boundaries] == [700, 300]
        assert [b.kind for b in boundaries] == [QuestionKind.TOSS_UP, QuestionKind.BONUS]

    def test_captured_answer_stops_accumulation(self):
        tokens = [
            tok("TOSS-UP", 700),
            tok("1) Chemistry - Short Answer", 690),
            tok("ANSWER: SODIUM CHLORIDE IS THE SALT", 680),
            tok("Page footer text", 40),
        ]
        b = detect_boundaries(tokens)[0]
        assert "Page footer" not in b.raw_text

    def test_short_answer_keeps_accumulating(self):
        tokens = [
            tok("TOSS-UP", 700),
            tok("1) Chemistry", 690),
            tok("ANSWER: NA", 680),
            tok("(ACCEPT: SODIUM)", 670),
        ]
        b = detect_boundaries(tokens)[0]
        assert "(ACCEPT: SODIUM)" in b.raw_text

    def test_lookahead_is_bounded(self):
        tokens = [tok("TOSS-UP", 700)] + [
            tok(f"w{i}", 690 - i * 10) for i in range(10)
        ]
        detector = BoundaryDetector(max_lookahead=3)
        b = detector.detect(tokens)[0]
        assert b.raw_text == "w0\nw1\nw2"
        assert detector.state == DetectorState.IDLE

    def test_sequence_split_across_tokens(self):
        tokens = [
            tok("TOSS-UP", 700),
            tok("3)", 680, x=72),
            tok("Earth and Space", 680, x=90),
            tok("- Short Answer", 680, x=200),
        ]
        b = detect_boundaries(tokens)[0]
        assert b.sequence_number == 3
        assert b.raw_text == "3) Earth and Space - Short Answer"

    def test_detector_reusable(self):
        detector = BoundaryDetector()
        first = detector.detect([tok("TOSS-UP", 700), tok("1) Physics", 690)])
        second = detector.detect([tok("no headings", 700)])
        assert len(first) == 1
        assert second == []

    def test_join_tokens_lines(self):
        tokens = [tok("a", 100), tok("b", 100.4), tok("", 90), tok("c", 80)]
        assert join_tokens(tokens) == "a b\nc"


# ═══════════════════════════════════════════════════════════════════════════════
# REGION CROPPER TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestRegionCropper:
    """Test document-span to raster cropping."""

    def test_pixel_span(self):
        # 100 units tall page at scale 2 → 200 rows
        assert pixel_span(200, bottom_y=20, top_y=80, scale=2) == (40, 160)

    def test_crop_size(self):
        image = Image.new("RGB", (100, 200), "white")
        cropped = crop_region(image, bottom_y=20, top_y=80, scale=2)
        assert cropped.size == (100, 120)

    def test_crop_content_is_top_down(self):
        image = Image.new("RGB", (10, 100), (0, 0, 255))
        image.paste((255, 0, 0), (0, 0, 10, 50))  # top half red

        top_half = crop_region(image, bottom_y=50, top_y=100, scale=1)
        assert top_half.size == (10, 50)
        assert top_half.getpixel((0, 0)) == (255, 0, 0)
        assert top_half.getpixel((0, 49)) == (255, 0, 0)

        bottom_half = crop_region(image, bottom_y=0, top_y=50, scale=1)
        assert bottom_half.getpixel((0, 0)) == (0, 0, 255)

    def test_degenerate_regions(self):
        image = Image.new("RGB", (100, 200))
        assert crop_region(image, bottom_y=80, top_y=80, scale=2) is None
        assert crop_region(image, bottom_y=90, top_y=80, scale=2) is None

    def test_clamped_to_page(self):
        image = Image.new("RGB", (100, 200))
        cropped = crop_region(image, bottom_y=20, top_y=150, scale=2)
        assert cropped.size == (100, 160)

    def test_entirely_off_page(self):
        image = Image.new("RGB", (100, 200))
        assert crop_region(image, bottom_y=-50, top_y=-10, scale=2) is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
