"""
Response Normalizer
===================
Folds the JSON shapes returned by the completion service into the canonical
Categorized Questions map, merges per-page maps, and synthesizes placeholder
questions when a document yields none.

Accepted reply shapes:
    {"Remember": ["What is ...?", {"text": "...", "confidence": 0.9}], ...}
    {"questions": {<the above>}}            (one wrapper level)
    {"questions": [{"question": "...", "bloom_level": "Apply"}, ...]}
    [{"text": "...", "level": "analyze"}, ...]
    {"Create": "Design a ...?"}             (single string per level)
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from .models import AnalyzedQuestion, CategorizedQuestions, utc_now_iso
from .taxonomy import LEVELS, BloomLevel, parse_level

logger = logging.getLogger(__name__)

WRAPPER_KEYS = (
    "questions",
    "categories",
    "bloom_levels",
    "categorized_questions",
    "results",
    "data",
)
TEXT_KEYS = ("text", "question", "question_text", "content")
LEVEL_KEYS = ("bloom_level", "bloomLevel", "level", "category", "bloom")


def empty_categories() -> CategorizedQuestions:
    """A map with every level present and empty, in taxonomy order."""
    return {level.value: [] for level in LEVELS}


# ─── Normalization ────────────────────────────────────────────────────────────


def normalize_response(
    payload,
    document_name: Optional[str] = None,
    page_number: Optional[int] = None,
    created_at: Optional[str] = None,
) -> CategorizedQuestions:
    """
    Normalize one completion reply into a Categorized Questions map.

    Unknown level names and malformed items are skipped. Every question is
    stamped with a fresh id, the shared ``created_at`` timestamp, the document
    name and the page number.
    """
    created_at = created_at or utc_now_iso()
    result = empty_categories()

    def add(level: BloomLevel, item) -> None:
        question = _to_question(item, level, document_name, page_number, created_at)
        if question is not None:
            result[level.value].append(question)

    for level, item in _iter_items(payload):
        add(level, item)

    total = count_questions(result)
    logger.debug(
        f"Normalized {total} question(s)"
        + (f" from page {page_number}" if page_number else "")
    )
    return result


def _iter_items(payload, depth: int = 0):
    """Yield (level, raw_item) pairs from any accepted shape."""
    if isinstance(payload, list):
        yield from _iter_flat_list(payload)
        return

    if not isinstance(payload, dict):
        logger.debug(f"Ignoring non-object reply of type {type(payload).__name__}")
        return

    found_level_key = False
    for key, value in payload.items():
        level = parse_level(key)
        if level is None:
            continue
        found_level_key = True
        if isinstance(value, list):
            for item in value:
                yield level, item
        elif isinstance(value, (str, dict)):
            yield level, value
        else:
            logger.debug(f"Ignoring {key!r} value of type {type(value).__name__}")

    if found_level_key or depth > 0:
        return

    # No level keys at the top: look one level down in a known wrapper.
    for key in WRAPPER_KEYS:
        if key in payload:
            yield from _iter_items(payload[key], depth + 1)
            return

    if payload:
        logger.debug(f"No Bloom level keys in reply: {sorted(payload)[:6]}")


def _iter_flat_list(items: list):
    for item in items:
        if not isinstance(item, dict):
            continue
        level = None
        for key in LEVEL_KEYS:
            if key in item:
                level = parse_level(item[key])
                break
        if level is None:
            logger.debug(f"Skipping question without a known level: {item!r:.80}")
            continue
        yield level, item


def _to_question(
    item,
    level: BloomLevel,
    document_name: Optional[str],
    page_number: Optional[int],
    created_at: str,
) -> Optional[AnalyzedQuestion]:
    confidence = None

    if isinstance(item, str):
        text = item
    elif isinstance(item, dict):
        text = next(
            (item[k] for k in TEXT_KEYS if isinstance(item.get(k), str)), ""
        )
        confidence = _coerce_confidence(item.get("confidence"))
    else:
        return None

    text = " ".join(text.split())
    if not text:
        return None

    return AnalyzedQuestion(
        text=text,
        bloom_level=level,
        confidence=confidence,
        created_at=created_at,
        document_name=document_name,
        page_number=page_number,
    )


def _coerce_confidence(value) -> Optional[float]:
    """Float in [0, 1]; values in (1, 100] are read as percentages."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number:  # NaN
        return None
    if 1.0 < number <= 100.0:
        number = number / 100.0
    return min(1.0, max(0.0, number))


# ─── Merge / Reshape ──────────────────────────────────────────────────────────


def merge_categorized(maps: Iterable[CategorizedQuestions]) -> CategorizedQuestions:
    """Concatenate per-level lists, preserving input order."""
    merged = empty_categories()
    for categorized in maps:
        for level, questions in categorized.items():
            parsed = parse_level(level)
            if parsed is None:
                continue
            merged[parsed.value].extend(questions)
    return merged


def count_questions(categorized: CategorizedQuestions) -> int:
    return sum(len(questions) for questions in categorized.values())


def flatten(categorized: CategorizedQuestions) -> list[AnalyzedQuestion]:
    return [q for questions in categorized.values() for q in questions]


def group_by_level(questions: Iterable[AnalyzedQuestion]) -> CategorizedQuestions:
    """Group a flat list of questions (e.g. from the store) by level."""
    grouped = empty_categories()
    for question in questions:
        grouped[BloomLevel(question.bloom_level).value].append(question)
    return grouped


# ─── Fallback ─────────────────────────────────────────────────────────────────

_FALLBACK_TEMPLATES: dict[BloomLevel, str] = {
    BloomLevel.REMEMBER: "{verb} the key terms and facts presented in {topic}.",
    BloomLevel.UNDERSTAND: "{verb} the main ideas discussed in {topic} in your own words.",
    BloomLevel.APPLY: "{verb} the concepts from {topic} to solve a new, practical problem.",
    BloomLevel.ANALYZE: "{verb} how the main ideas in {topic} relate to one another.",
    BloomLevel.EVALUATE: "{verb} the strengths and weaknesses of the arguments made in {topic}.",
    BloomLevel.CREATE: "{verb} an original project or proposal that builds on {topic}.",
}

_FALLBACK_VERBS: dict[BloomLevel, str] = {
    BloomLevel.REMEMBER: "define",
    BloomLevel.UNDERSTAND: "explain",
    BloomLevel.APPLY: "apply",
    BloomLevel.ANALYZE: "analyze",
    BloomLevel.EVALUATE: "evaluate",
    BloomLevel.CREATE: "design",
}


def synthesize_fallback(
    document_name: Optional[str] = None,
    created_at: Optional[str] = None,
) -> CategorizedQuestions:
    """
    Placeholder questions, one per level, for documents where the service
    detected no questions. Each is marked ``generated=True``.
    """
    created_at = created_at or utc_now_iso()
    topic = _topic_from_name(document_name)

    result = empty_categories()
    for level in LEVELS:
        text = _FALLBACK_TEMPLATES[level].format(
            verb=_FALLBACK_VERBS[level].capitalize(), topic=topic
        )
        result[level.value].append(AnalyzedQuestion(
            text=text,
            bloom_level=level,
            created_at=created_at,
            document_name=document_name,
            generated=True,
        ))

    logger.info(f"Synthesized {len(LEVELS)} placeholder questions for {topic!r}")
    return result


def _topic_from_name(document_name: Optional[str]) -> str:
    if not document_name:
        return "this document"
    stem = document_name.rsplit(".", 1)[0] if "." in document_name else document_name
    stem = " ".join(stem.replace("_", " ").replace("-", " ").split())
    return f'"{stem}"' if stem else "this document"
