"""
Bloom's Taxonomy
================
The six cognitive levels, their action verbs, and tolerant name parsing
for the level labels returned by the completion service.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Optional


class BloomLevel(str, Enum):
    """Cognitive level, in taxonomy order (lowest to highest)."""
    REMEMBER = "remember"
    UNDERSTAND = "understand"
    APPLY = "apply"
    ANALYZE = "analyze"
    EVALUATE = "evaluate"
    CREATE = "create"

    @property
    def label(self) -> str:
        return self.value.title()


LEVELS: tuple[BloomLevel, ...] = tuple(BloomLevel)


# ─── Verbs ────────────────────────────────────────────────────────────────────


BLOOM_VERBS: dict[BloomLevel, list[str]] = {
    BloomLevel.REMEMBER: [
        "define", "describe", "identify", "list", "match", "name", "recall",
        "recognize", "retrieve", "state", "select", "outline", "reproduce",
        "locate", "label", "memorize", "quote", "repeat", "recite", "tell",
    ],
    BloomLevel.UNDERSTAND: [
        "explain", "interpret", "classify", "compare", "contrast", "discuss",
        "distinguish", "estimate", "summarize", "translate", "paraphrase",
        "infer", "predict", "report", "convert", "differentiate", "extend",
        "generalize", "illustrate", "conclude",
    ],
    BloomLevel.APPLY: [
        "apply", "demonstrate", "implement", "solve", "use", "compute",
        "develop", "modify", "prepare", "produce", "relate", "show",
        "transfer", "change", "construct", "manipulate", "operate",
        "predict", "calculate", "complete",
    ],
    BloomLevel.ANALYZE: [
        "analyze", "break down", "categorize", "compare", "contrast",
        "differentiate", "distinguish", "examine", "organize", "test",
        "appraise", "calculate", "criticize", "diagram", "discriminate",
        "experiment", "question", "relate", "solve", "inspect",
    ],
    BloomLevel.EVALUATE: [
        "evaluate", "appraise", "argue", "assess", "choose", "conclude",
        "critique", "decide", "defend", "judge", "justify", "prioritize",
        "rate", "recommend", "select", "support", "value", "debate",
        "determine", "measure",
    ],
    BloomLevel.CREATE: [
        "create", "assemble", "compose", "construct", "design", "develop",
        "formulate", "generate", "invent", "plan", "produce", "build",
        "devise", "establish", "integrate", "make", "organize", "propose",
        "synthesize", "compile",
    ],
}

LEVEL_DESCRIPTIONS: dict[BloomLevel, str] = {
    BloomLevel.REMEMBER: (
        "Questions that ask students to recall facts, terms, basic concepts, "
        "or answers. Keywords: define, describe, identify, list, name, "
        "recall, recognize."
    ),
    BloomLevel.UNDERSTAND: (
        "Questions that ask students to demonstrate understanding of facts "
        "and ideas. Keywords: explain, interpret, classify, compare, "
        "discuss, summarize."
    ),
    BloomLevel.APPLY: (
        "Questions that ask students to use acquired knowledge in new "
        "situations. Keywords: apply, demonstrate, implement, solve, use, "
        "calculate, execute."
    ),
    BloomLevel.ANALYZE: (
        "Questions that ask students to examine and break information into "
        "parts. Keywords: analyze, categorize, compare, contrast, examine, "
        "test, differentiate."
    ),
    BloomLevel.EVALUATE: (
        "Questions that ask students to present and defend opinions. "
        "Keywords: evaluate, argue, defend, judge, select, support, value, "
        "critique."
    ),
    BloomLevel.CREATE: (
        "Questions that ask students to compile information in a different "
        "way. Keywords: create, design, develop, formulate, construct, plan, "
        "produce."
    ),
}


def verbs_for(level: BloomLevel | str) -> list[str]:
    """Return the action verbs for a level (accepts enum or name)."""
    parsed = level if isinstance(level, BloomLevel) else parse_level(level)
    if parsed is None:
        raise ValueError(f"Unknown Bloom level: {level!r}")
    return list(BLOOM_VERBS[parsed])


_WORD_PATTERN = re.compile(r"\b\w+\b")


def detect_level(text: str) -> Optional[BloomLevel]:
    """
    Guess a question's level from the action verbs it contains.

    Levels are checked from lowest to highest and the first level with a
    matching verb wins, so "Explain and design ..." is UNDERSTAND.
    Returns None when no verb from the tables appears.
    """
    words = _WORD_PATTERN.findall((text or "").lower())
    if not words:
        return None

    padded = f" {' '.join(words)} "
    for level in LEVELS:
        for verb in BLOOM_VERBS[level]:
            if f" {verb} " in padded:
                return level
    return None


# ─── Name Parsing ─────────────────────────────────────────────────────────────

# Alternate spellings seen in model output, keyed by their squashed form.
_ALIASES: dict[str, BloomLevel] = {
    "remember": BloomLevel.REMEMBER,
    "remembering": BloomLevel.REMEMBER,
    "knowledge": BloomLevel.REMEMBER,
    "recall": BloomLevel.REMEMBER,
    "understand": BloomLevel.UNDERSTAND,
    "understanding": BloomLevel.UNDERSTAND,
    "comprehension": BloomLevel.UNDERSTAND,
    "apply": BloomLevel.APPLY,
    "applying": BloomLevel.APPLY,
    "application": BloomLevel.APPLY,
    "analyze": BloomLevel.ANALYZE,
    "analyse": BloomLevel.ANALYZE,
    "analyzing": BloomLevel.ANALYZE,
    "analysing": BloomLevel.ANALYZE,
    "analysis": BloomLevel.ANALYZE,
    "evaluate": BloomLevel.EVALUATE,
    "evaluating": BloomLevel.EVALUATE,
    "evaluation": BloomLevel.EVALUATE,
    "create": BloomLevel.CREATE,
    "creating": BloomLevel.CREATE,
    "creation": BloomLevel.CREATE,
    "synthesis": BloomLevel.CREATE,
}

_SUFFIX_PATTERN = re.compile(r"(questions?|level|category)$")
_NON_ALPHA = re.compile(r"[^a-z]+")


def parse_level(name) -> Optional[BloomLevel]:
    """
    Map a free-form level label to a BloomLevel.

    Tolerates case, whitespace, punctuation, gerund / noun forms and
    trailing words like "questions" ("Apply Questions", "remember_level").
    Returns None for anything that is not a taxonomy level.
    """
    if isinstance(name, BloomLevel):
        return name
    if not isinstance(name, str):
        return None

    squashed = _NON_ALPHA.sub("", name.strip().lower())
    if not squashed:
        return None

    if squashed in _ALIASES:
        return _ALIASES[squashed]

    stripped = _SUFFIX_PATTERN.sub("", squashed)
    return _ALIASES.get(stripped)
