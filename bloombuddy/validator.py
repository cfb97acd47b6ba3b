"""
Analysis Report
===============
Post-analysis validation and reporting.

After analyzing each document, generates a summary:
    - Questions per Bloom level
    - Pages analyzed / failed / without questions
    - Duplicate questions (same text on several pages)
    - Whether placeholder questions were synthesized

Never silently ignores failures.
"""

from __future__ import annotations

import logging
from collections import Counter

from .models import AnalysisReport, CategorizedQuestions, PageAnalysis
from .taxonomy import LEVELS

logger = logging.getLogger(__name__)


def _dedupe_key(text: str) -> str:
    return " ".join(text.lower().split()).rstrip("?.! ")


class ReportBuilder:
    """
    Builds an AnalysisReport from merged questions and per-page outcomes.
    """

    def build(
        self,
        categorized: CategorizedQuestions,
        pages: list[PageAnalysis],
        fallback_used: bool = False,
    ) -> AnalysisReport:
        report = AnalysisReport(fallback_used=fallback_used)

        report.level_counts = {
            level.value: len(categorized.get(level.value, [])) for level in LEVELS
        }
        report.total_questions = sum(report.level_counts.values())

        for page in pages:
            number = page.page_number or 1
            if not page.succeeded:
                report.pages_failed.append(number)
                continue
            report.pages_analyzed.append(number)
            if page.question_count == 0:
                report.pages_without_questions.append(number)

        texts = [
            q.text
            for questions in categorized.values()
            for q in questions
            if not q.generated
        ]
        counts = Counter(_dedupe_key(t) for t in texts)
        seen: set[str] = set()
        for text in texts:
            key = _dedupe_key(text)
            if counts[key] > 1 and key not in seen:
                seen.add(key)
                report.duplicate_questions.append(text)

        self._log(report, pages)
        return report

    def _log(self, report: AnalysisReport, pages: list[PageAnalysis]):
        logger.info("=" * 60)
        logger.info("ANALYSIS REPORT")
        logger.info("=" * 60)
        logger.info(f"Total Questions: {report.total_questions}")
        for level, count in report.level_counts.items():
            logger.info(f"  • {level}: {count}")
        logger.info(
            f"Pages Analyzed: {len(report.pages_analyzed)} "
            f"({report.success_rate}%)"
        )
        if report.pages_failed:
            logger.warning(f"Pages Failed: {report.pages_failed}")
            for page in pages:
                if page.error:
                    logger.warning(f"  • page {page.page_number}: {page.error}")
        if report.pages_without_questions:
            logger.info(
                f"Pages Without Questions: {report.pages_without_questions}"
            )
        if report.duplicate_questions:
            logger.info(
                f"Duplicate Questions: {len(report.duplicate_questions)}"
            )
        if report.fallback_used:
            logger.warning(
                "No questions detected; placeholder questions were generated"
            )
        logger.info("=" * 60)
