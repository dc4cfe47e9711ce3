"""
Intake Report
=============
Post-segmentation summary.

After each packet, reports:
    - Pages processed, failed, and handled by whole-page fallback
    - Questions per subject
    - Questions missing an answer or a round number
    - Round coverage
    - Skips broken down by reason

Skips are expected during intake; they are counted here, never raised.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import TYPE_CHECKING

from .models import IntakeReport, Subject

if TYPE_CHECKING:
    from .engine import PageOutcome

logger = logging.getLogger(__name__)


class IntakeReporter:
    """Builds and logs an IntakeReport from per-page outcomes."""

    def summarize(
        self,
        source: str,
        total_pages: int,
        outcomes: list["PageOutcome"],
        cancelled: bool = False,
    ) -> IntakeReport:
        """
        Summarize one segmentation run.

        Args:
            source: Document name.
            total_pages: Page count of the document.
            outcomes: Per-page results in page order.
            cancelled: Whether the run was stopped early.

        Returns:
            IntakeReport for the run.
        """
        report = IntakeReport(
            source=source,
            total_pages=total_pages,
            cancelled=cancelled,
        )

        subject_counts: Counter = Counter()
        round_counts: Counter = Counter()

        for outcome in outcomes:
            if outcome.failed:
                report.pages_failed.append(outcome.page_number)
            else:
                report.pages_processed += 1
            if outcome.fallback:
                report.fallback_pages.append(outcome.page_number)
            report.skipped.extend(outcome.skipped)

            for q in outcome.questions:
                subject_counts[q.subject] += 1
                if q.answer is None:
                    report.questions_missing_answer.append(q.id)
                if q.round_number is None:
                    report.questions_missing_round.append(q.id)
                else:
                    round_counts[q.round_number] += 1

        report.questions_by_subject = {
            subject.value: subject_counts.get(subject, 0) for subject in Subject
        }
        report.round_coverage = dict(sorted(round_counts.items()))

        self._log(report)
        return report

    def _log(self, report: IntakeReport):
        logger.info("=" * 60)
        logger.info(f"INTAKE REPORT: {report.source}")
        logger.info("=" * 60)
        logger.info(
            f"Pages Processed: {report.pages_processed}/{report.total_pages}"
        )
        logger.info(f"Pages Failed: {len(report.pages_failed)}")
        logger.info(f"Whole-page Fallbacks: {len(report.fallback_pages)}")
        logger.info(f"Questions Extracted: {report.total_questions}")
        for subject, count in report.questions_by_subject.items():
            logger.info(f"  • {subject}: {count}")
        logger.info(
            f"Questions Missing Answer: {len(report.questions_missing_answer)}"
        )
        logger.info(
            f"Questions Missing Round: {len(report.questions_missing_round)}"
        )

        if report.skip_breakdown:
            logger.info("Skip Breakdown:")
            for reason, count in sorted(report.skip_breakdown.items()):
                logger.info(f"  • {reason}: {count}")

        if report.cancelled:
            logger.warning("Run was stopped before all pages were processed")

        logger.info("=" * 60)
