"""
CRUD Service Layer
==================
High-level operations that coordinate the analyzer, SQLite and the
filesystem. This is the layer called from the API endpoints and the CLI.
"""

from __future__ import annotations

import logging
import os
from typing import Callable, Optional

from . import database as db
from . import storage
from .analyzer import AnalyzerConfig, DocumentAnalyzer
from .models import AnalysisResult, CategorizedQuestions, utc_now_iso
from .normalizer import group_by_level
from .taxonomy import detect_level, parse_level

logger = logging.getLogger(__name__)


# ─── Analyze & Store (Main Flow) ──────────────────────────────────────────────


def analyze_and_store(
    path: str,
    config: AnalyzerConfig,
    original_filename: str = "",
    progress_callback: Optional[Callable[[int, int], None]] = None,
    analyzer: Optional[DocumentAnalyzer] = None,
) -> tuple[int, AnalysisResult]:
    """
    Full upload→analyze→persist pipeline.

    Steps:
        1. Analyze the document (render, fan out, merge)
        2. Copy the document into uploads/documents/ under a unique name
        3. Insert the document row
        4. Store every analyzed question in the history table

    Returns:
        (document_id, AnalysisResult)
    """
    path = os.path.abspath(path)
    filename = original_filename or os.path.basename(path)
    logger.info(f"[analyze_and_store] DB path: {db.get_db_path()}")

    analyzer = analyzer or DocumentAnalyzer(config)
    result = analyzer.analyze(
        path, document_name=filename, progress_callback=progress_callback
    )

    stored_path = storage.save_document(path, filename)

    document_id = None
    try:
        document_id = db.insert_document(
            title=filename,
            file_type=result.document.file_type,
            file_path=stored_path,
            file_hash=result.document.file_hash,
            total_pages=result.document.total_pages,
            total_questions=result.total_questions,
        )
        db.store_analyzed_questions(result.all_questions())
    except Exception as e:
        logger.error(f"[analyze_and_store] DB insert failed: {e}", exc_info=True)
        if document_id is not None:
            db.delete_document(document_id)
        storage.remove_file(stored_path)
        raise RuntimeError(f"Database insert failed, rolled back: {e}") from e

    logger.info(
        f"[analyze_and_store] document_id={document_id} "
        f"questions={result.total_questions}"
    )
    return document_id, result


# ─── History ──────────────────────────────────────────────────────────────────


def get_history(history_filter: str = "all") -> CategorizedQuestions:
    """Stored analyzed questions, grouped by Bloom level."""
    return group_by_level(db.get_analyzed_questions_filtered(history_filter))


# ─── Question Bank ────────────────────────────────────────────────────────────


def add_to_question_bank(
    text: str,
    bloom_level: Optional[str] = None,
    marks: Optional[int] = None,
    keywords: Optional[list[str]] = None,
    image_url: Optional[str] = None,
    document_id: Optional[int] = None,
) -> dict:
    """
    Validate and insert a question bank entry. Returns the stored row.

    When ``bloom_level`` is omitted the level is detected from the action
    verbs in the text; a ValueError is raised if none is found.
    """
    text = (text or "").strip()
    if not text:
        raise ValueError("Question text is required")

    if bloom_level:
        level = parse_level(bloom_level)
        if level is None:
            raise ValueError(f"Unknown Bloom level: {bloom_level!r}")
    else:
        level = detect_level(text)
        if level is None:
            raise ValueError(
                "Could not detect a Bloom level from the question text; "
                "specify bloom_level"
            )
        logger.debug(f"Detected level {level.value} for {text!r:.60}")

    if document_id is not None and db.get_document(document_id) is None:
        raise ValueError(f"Document {document_id} not found")

    question_id = db.insert_bank_question(
        text=text,
        bloom_level=level.value,
        marks=_validate_marks(marks),
        keywords=keywords,
        image_url=image_url,
        document_id=document_id,
    )
    logger.info(f"Added question {question_id} to bank ({level.value})")
    return db.get_bank_question(question_id)


def update_bank_question(question_id: int, **fields) -> Optional[dict]:
    """Update a question bank entry. Returns the updated row or None."""
    if "bloom_level" in fields:
        level = parse_level(fields["bloom_level"])
        if level is None:
            raise ValueError(f"Unknown Bloom level: {fields['bloom_level']!r}")
        fields["bloom_level"] = level.value
    if "text" in fields:
        fields["text"] = (fields["text"] or "").strip()
        if not fields["text"]:
            raise ValueError("Question text is required")
    if "marks" in fields:
        fields["marks"] = _validate_marks(fields["marks"])

    if not db.update_bank_question(question_id, **fields):
        return None
    return db.get_bank_question(question_id)


def _validate_marks(marks) -> Optional[int]:
    """None, or a non-negative whole number."""
    if marks is None:
        return None
    if isinstance(marks, bool) or (isinstance(marks, float) and not marks.is_integer()):
        raise ValueError(f"Marks must be a whole number: {marks!r}")
    try:
        value = int(marks)
    except (TypeError, ValueError):
        raise ValueError(f"Marks must be a whole number: {marks!r}")
    if value < 0:
        raise ValueError("Marks cannot be negative")
    return value


# ─── Question Paper ───────────────────────────────────────────────────────────


def build_question_paper(
    question_ids: list[int],
    title: str = "Question Paper",
    subject: str = "",
    duration: str = "3 hours",
    instructions: str = "Answer all questions. Marks are indicated in brackets.",
) -> dict:
    """
    Assemble a question paper from question bank entries.

    Questions keep the order of ``question_ids`` (duplicates dropped).
    Questions without marks count as zero toward ``total_marks``.

    Raises:
        ValueError: If no ids are given or any id is not in the bank.
    """
    ordered_ids = list(dict.fromkeys(int(i) for i in question_ids or []))
    if not ordered_ids:
        raise ValueError("No questions selected")

    questions = []
    missing = []
    for question_id in ordered_ids:
        row = db.get_bank_question(question_id)
        if row is None:
            missing.append(question_id)
        else:
            questions.append(row)
    if missing:
        raise ValueError(f"Questions not found: {missing}")

    total_marks = sum(q["marks"] or 0 for q in questions)
    logger.info(
        f"Built question paper {title!r}: "
        f"{len(questions)} questions, {total_marks} marks"
    )
    return {
        "title": title,
        "subject": subject,
        "duration": duration,
        "instructions": instructions,
        "questions": questions,
        "total_marks": total_marks,
        "created_at": utc_now_iso(),
    }
