"""
Segmentation Engine
===================
Main orchestrator that turns a packet into pool questions.

Usage:
    engine = SegmentationEngine(EngineConfig(scale=2.0))
    result = engine.segment("packets/round4.pdf")
    # result.pool holds the questions, result.report the intake summary

Architecture:
    PDF → Renderer → (Tokens, Raster) → BoundaryDetector → QuestionBoundaries
        → Metadata Extractor → Region Cropper → Question → QuestionPool

Failures are absorbed per question and per page; only a document from
which no page can be obtained raises.
"""

from __future__ import annotations

import logging
import re
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .boundaries import BoundaryDetector, join_tokens
from .cropper import crop_region
from .metadata import (
    extract_answer,
    extract_round,
    extract_sequence_number,
    resolve_subject,
)
from .models import (
    IntakeReport,
    Question,
    QuestionBoundary,
    SkippedItem,
    SkipReason,
)
from .pool import QuestionPool
from .renderer import (
    DEFAULT_SCALE,
    DocumentReadError,
    DocumentRenderer,
    PyMuPDFRenderer,
    RenderedDocument,
    RenderedPage,
    Source,
    source_name,
)
from .report import IntakeReporter
from .topics import TopicClassifier, classify_topic, get_default_handle

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


@dataclass
class EngineConfig:
    """Configuration for the segmentation engine."""

    # Rendering
    scale: float = DEFAULT_SCALE

    # Processing
    workers: int = 1
    page_range: Optional[tuple[int, int]] = None

    # Enrichment
    classify_topics: bool = False

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None


@dataclass
class PageOutcome:
    """Everything one page produced."""
    page_number: int
    questions: list[Question] = field(default_factory=list)
    skipped: list[SkippedItem] = field(default_factory=list)
    fallback: bool = False
    failed: bool = False


@dataclass
class IntakeResult:
    """Output of one segmentation run."""
    pool: QuestionPool
    report: IntakeReport
    questions: list[Question] = field(default_factory=list)


class SegmentationEngine:
    """
    Packet segmentation pipeline.

    Pages are independent. With ``workers > 1`` they are segmented on a
    thread pool; rendering is serialized because PyMuPDF documents are not
    thread-safe, and results are committed to the pool in page order.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        renderer: Optional[DocumentRenderer] = None,
        classifier: Optional[TopicClassifier] = None,
    ):
        self.config = config or EngineConfig()
        self.renderer = renderer or PyMuPDFRenderer(scale=self.config.scale)
        self.classifier = classifier
        self._stop = threading.Event()
        self._render_lock = threading.Lock()
        self._setup_logging()

    def _setup_logging(self):
        """Configure logging based on config."""
        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        package_logger = logging.getLogger("packet_parser")
        package_logger.setLevel(log_level)

        # Console handler
        if not package_logger.handlers:
            console = logging.StreamHandler()
            console.setLevel(log_level)
            console.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
            package_logger.addHandler(console)

        # File handler
        if self.config.log_file:
            log_path = Path(self.config.log_file).absolute()
            already = any(
                isinstance(h, logging.FileHandler)
                and Path(h.baseFilename) == log_path
                for h in package_logger.handlers
            )
            if not already:
                log_path.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.FileHandler(log_path, encoding="utf-8")
                file_handler.setLevel(log_level)
                file_handler.setFormatter(
                    logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
                )
                package_logger.addHandler(file_handler)

    def request_stop(self):
        """Stop scheduling further pages; committed pages stay in the pool."""
        self._stop.set()

    # ─── Document ─────────────────────────────────────────────────────────

    def segment(
        self,
        source: Source,
        file_name: Optional[str] = None,
        pool: Optional[QuestionPool] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> IntakeResult:
        """
        Segment a packet into questions.

        Args:
            source: PDF path or bytes.
            file_name: Name used in labels and ids (defaults to the file name).
            pool: Pool to append to; a new one is created if omitted.
            progress_callback: Callback(done_pages, total_pages).

        Returns:
            IntakeResult with the pool, the questions added by this run and
            the intake report.

        Raises:
            FileNotFoundError: If a path source doesn't exist.
            DocumentReadError: If no page of the document can be obtained.
        """
        name = source_name(source, file_name)
        pool = pool if pool is not None else QuestionPool()
        self._stop.clear()

        start_time = time.time()
        logger.info(f"Starting segmentation of: {name}")

        doc = self.renderer.open(source)
        try:
            total_pages = doc.page_count
            if total_pages == 0:
                raise DocumentReadError(f"Document has no pages: {name}")

            indexes = self._page_indexes(total_pages)
            outcomes = self._run_pages(doc, indexes, name, pool, progress_callback)
        finally:
            doc.close()

        if outcomes and all(o.failed for o in outcomes):
            raise DocumentReadError(f"No page of {name} could be rendered")

        cancelled = len(outcomes) < len(indexes)
        report = IntakeReporter().summarize(
            source=name,
            total_pages=total_pages,
            outcomes=outcomes,
            cancelled=cancelled,
        )

        added = [q for o in outcomes for q in o.questions]
        elapsed = time.time() - start_time
        logger.info(
            f"Segmentation complete in {elapsed:.2f}s, "
            f"{len(added)} questions from {len(outcomes)} pages"
        )
        return IntakeResult(pool=pool, report=report, questions=added)

    def _page_indexes(self, total_pages: int) -> list[int]:
        """0-indexed pages to process, honoring the 1-indexed page_range."""
        start_page, end_page = 1, total_pages
        if self.config.page_range:
            start_page = max(1, self.config.page_range[0])
            end_page = min(total_pages, self.config.page_range[1])
        return list(range(start_page - 1, end_page))

    def _run_pages(
        self,
        doc: RenderedDocument,
        indexes: list[int],
        name: str,
        pool: QuestionPool,
        progress_callback: Optional[Callable[[int, int], None]],
    ) -> list[PageOutcome]:
        outcomes: list[PageOutcome] = []
        total = len(indexes)

        if self.config.workers <= 1:
            for index in indexes:
                outcome = self._process_page(doc, index, name)
                if outcome is None:
                    break
                self._commit(outcome, pool)
                outcomes.append(outcome)
                if progress_callback:
                    progress_callback(len(outcomes), total)
            return outcomes

        with ThreadPoolExecutor(
            max_workers=self.config.workers,
            thread_name_prefix="packet-page",
        ) as executor:
            futures: list[Future] = [
                executor.submit(self._process_page, doc, index, name)
                for index in indexes
            ]
            for future in futures:
                if self._stop.is_set():
                    break
                outcome = future.result()
                if outcome is None:
                    break
                self._commit(outcome, pool)
                outcomes.append(outcome)
                if progress_callback:
                    progress_callback(len(outcomes), total)

            for future in futures:
                future.cancel()

        if self._stop.is_set():
            logger.warning(
                f"Segmentation of {name} stopped after {len(outcomes)} pages"
            )
        return outcomes

    def _commit(self, outcome: PageOutcome, pool: QuestionPool):
        if outcome.questions:
            pool.extend(outcome.questions)

    def _process_page(
        self, doc: RenderedDocument, index: int, name: str
    ) -> Optional[PageOutcome]:
        """Render and segment one page. None means the run was stopped."""
        if self._stop.is_set():
            return None

        page_number = index + 1
        try:
            with self._render_lock:
                page = doc.render_page(index)
        except Exception as e:
            logger.warning(f"Skipping page {page_number}: {e}")
            return PageOutcome(
                page_number=page_number,
                failed=True,
                skipped=[SkippedItem(
                    reason=SkipReason.RENDER_FAILED,
                    page_number=page_number,
                    message=str(e),
                )],
            )

        try:
            return self.segment_page(page, name)
        except Exception as e:
            logger.warning(f"Failed segmenting page {page_number}: {e}")
            return PageOutcome(
                page_number=page_number,
                skipped=[SkippedItem(
                    reason=SkipReason.EXTRACTION_ERROR,
                    page_number=page_number,
                    message=str(e),
                )],
            )

    # ─── Page ─────────────────────────────────────────────────────────────

    def segment_page(self, page: RenderedPage, file_name: str) -> PageOutcome:
        """Split one rendered page into questions."""
        outcome = PageOutcome(page_number=page.page_number)
        page_text = join_tokens(page.tokens)
        round_number = extract_round(page_text)

        boundaries = BoundaryDetector().detect(page.tokens)

        if not boundaries:
            outcome.fallback = True
            self._segment_whole_page(page, page_text, round_number, file_name, outcome)
            return outcome

        for i, boundary in enumerate(boundaries):
            next_boundary = boundaries[i + 1] if i + 1 < len(boundaries) else None
            try:
                self._segment_boundary(
                    page, i, boundary, next_boundary, round_number, file_name, outcome
                )
            except Exception as e:
                logger.warning(
                    f"Skipping {boundary.kind.value} {i + 1} on page "
                    f"{page.page_number}: {e}"
                )
                outcome.skipped.append(SkippedItem(
                    reason=SkipReason.EXTRACTION_ERROR,
                    page_number=page.page_number,
                    message=str(e),
                    sequence_number=boundary.sequence_number,
                ))

        return outcome

    def _segment_whole_page(
        self,
        page: RenderedPage,
        page_text: str,
        round_number: Optional[int],
        file_name: str,
        outcome: PageOutcome,
    ):
        """No headings on the page: the whole page is one question."""
        subject = resolve_subject(page_text)
        if subject is None:
            logger.info(f"Skipping page {page.page_number} - no valid subject detected")
            outcome.skipped.append(SkippedItem(
                reason=SkipReason.NO_SUBJECT,
                page_number=page.page_number,
                message=page_text[:100],
            ))
            return

        outcome.questions.append(Question(
            id=self._question_id(file_name, page.page_number, "page", 0),
            subject=subject,
            image=page.image,
            source_label=f"{file_name} - Page {page.page_number}",
            answer=extract_answer(page_text),
            round_number=round_number,
            sequence_number=extract_sequence_number(page_text),
            topic=classify_topic(self._classifier(), page_text, subject),
            page_number=page.page_number,
            text=page_text,
        ))

    def _segment_boundary(
        self,
        page: RenderedPage,
        index: int,
        boundary: QuestionBoundary,
        next_boundary: Optional[QuestionBoundary],
        round_number: Optional[int],
        file_name: str,
        outcome: PageOutcome,
    ):
        # Document y grows upward: the heading is the top edge; the
        # separator, the next heading, or the page bottom is the lower edge.
        if boundary.end_y is not None:
            bottom_y = boundary.end_y
        elif next_boundary is not None:
            bottom_y = next_boundary.start_y
        else:
            bottom_y = 0.0
        top_y = boundary.start_y

        if top_y - bottom_y <= 0:
            self._skip_degenerate(page, boundary, outcome)
            return

        text = boundary.raw_text
        subject = resolve_subject(text)
        if subject is None:
            logger.info(
                f"Skipping question {boundary.sequence_number} on page "
                f"{page.page_number} - invalid subject from text: {text[:100]!r}"
            )
            outcome.skipped.append(SkippedItem(
                reason=SkipReason.NO_SUBJECT,
                page_number=page.page_number,
                message=text[:100],
                sequence_number=boundary.sequence_number,
            ))
            return

        image = crop_region(page.image, bottom_y, top_y, page.scale)
        if image is None:
            self._skip_degenerate(page, boundary, outcome)
            return

        number = boundary.sequence_number
        kind_label = boundary.kind.value.upper()
        outcome.questions.append(Question(
            id=self._question_id(
                file_name, page.page_number, boundary.kind.value,
                number if number is not None else index,
            ),
            subject=subject,
            image=image,
            source_label=(
                f"{file_name} - {kind_label} "
                f"Q{number if number is not None else index + 1}"
            ),
            answer=extract_answer(text),
            round_number=round_number,
            sequence_number=number,
            kind=boundary.kind,
            topic=classify_topic(self._classifier(), text, subject),
            page_number=page.page_number,
            text=text,
        ))

    def _skip_degenerate(
        self, page: RenderedPage, boundary: QuestionBoundary, outcome: PageOutcome
    ):
        logger.debug(
            f"Skipping degenerate region for {boundary.kind.value} "
            f"{boundary.sequence_number} on page {page.page_number}"
        )
        outcome.skipped.append(SkippedItem(
            reason=SkipReason.DEGENERATE_REGION,
            page_number=page.page_number,
            sequence_number=boundary.sequence_number,
        ))

    # ─── Helpers ──────────────────────────────────────────────────────────

    def _classifier(self) -> Optional[TopicClassifier]:
        if self.classifier is not None:
            return self.classifier
        if not self.config.classify_topics:
            return None
        handle = get_default_handle()
        return handle.get() if handle else None

    def _question_id(self, file_name: str, page_number: int, tag: str, number: int) -> str:
        """Unique id; the random suffix keeps re-imports of a file distinct."""
        stem = re.sub(r"[^A-Za-z0-9_-]+", "_", Path(file_name).stem)[:50]
        return f"pdf-{stem}-p{page_number}-{tag}-{number}-{uuid.uuid4().hex[:12]}"
