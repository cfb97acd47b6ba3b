"""
Data Models
===========
Pydantic models for document analysis output.
All models are serializable to JSON for the web client and the SQLite store.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field

from .taxonomy import LEVELS, BloomLevel


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ─── Enums ────────────────────────────────────────────────────────────────────


class AnalysisMode(str, Enum):
    """How document content is sent to the completion service."""
    VISION = "vision"
    TEXT = "text"


# ─── Question Models ──────────────────────────────────────────────────────────


class AnalyzedQuestion(BaseModel):
    """A single question categorized under one Bloom level."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    text: str
    bloom_level: BloomLevel
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    created_at: str = Field(default_factory=utc_now_iso)
    document_name: Optional[str] = None
    page_number: Optional[int] = Field(default=None, ge=1)
    generated: bool = Field(
        default=False,
        description="True for placeholder questions synthesized locally",
    )

    def model_dump(self, **kwargs):
        kwargs.setdefault("mode", "json")
        return super().model_dump(**kwargs)


# Level name -> questions. Built by normalizer.empty_categories() so that
# every level key is present, in taxonomy order.
CategorizedQuestions = dict[str, list[AnalyzedQuestion]]


def dump_categorized(categorized: CategorizedQuestions) -> dict[str, list[dict]]:
    """Serialize a categorized map to plain JSON-ready dicts."""
    return {
        level: [q.model_dump() for q in questions]
        for level, questions in categorized.items()
    }


# ─── Page Models ──────────────────────────────────────────────────────────────


class PageImage(BaseModel):
    """A rendered PDF page, encoded for transport."""
    page_number: int = Field(ge=1)
    mime_type: str = "image/png"
    width: int = 0
    height: int = 0
    data: str = Field(description="Base64-encoded image bytes", repr=False)

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


class PageAnalysis(BaseModel):
    """Outcome of one fan-out call (one page, or the whole text)."""
    page_number: Optional[int] = None
    questions: CategorizedQuestions = Field(default_factory=dict)
    error: Optional[str] = None

    @computed_field
    @property
    def question_count(self) -> int:
        return sum(len(qs) for qs in self.questions.values())

    @computed_field
    @property
    def succeeded(self) -> bool:
        return self.error is None


# ─── Document / Result Models ─────────────────────────────────────────────────


class DocumentMetadata(BaseModel):
    """Metadata about the analyzed document."""
    name: str = ""
    file_type: str = ""
    total_pages: int = 0
    analyzed_pages: list[int] = Field(default_factory=list)
    file_hash: str = ""
    file_size_bytes: int = 0


class AnalysisVersion(BaseModel):
    """Version tracking for an analysis run."""
    analyzer_version: str = "1.0.0"
    model: str = ""
    mode: AnalysisMode = AnalysisMode.VISION
    analysis_timestamp: str = Field(default_factory=utc_now_iso)


class AnalysisReport(BaseModel):
    """Post-analysis summary."""
    level_counts: dict[str, int] = Field(
        default_factory=lambda: {level.value: 0 for level in LEVELS}
    )
    total_questions: int = 0
    pages_analyzed: list[int] = Field(default_factory=list)
    pages_failed: list[int] = Field(default_factory=list)
    pages_without_questions: list[int] = Field(default_factory=list)
    duplicate_questions: list[str] = Field(default_factory=list)
    fallback_used: bool = False

    @computed_field
    @property
    def success_rate(self) -> float:
        attempted = len(self.pages_analyzed) + len(self.pages_failed)
        if attempted == 0:
            return 0.0
        return round(len(self.pages_analyzed) / attempted * 100, 2)


class AnalysisResult(BaseModel):
    """
    Complete output of an analysis run.
    This is the top-level JSON structure returned to the web client.
    """
    document: DocumentMetadata
    version: AnalysisVersion
    questions: CategorizedQuestions = Field(default_factory=dict)
    pages: list[PageAnalysis] = Field(default_factory=list)
    report: AnalysisReport = Field(default_factory=AnalysisReport)

    @property
    def total_questions(self) -> int:
        return sum(len(qs) for qs in self.questions.values())

    def all_questions(self) -> list[AnalyzedQuestion]:
        return [q for level in self.questions.values() for q in level]

    def model_dump(self, **kwargs):
        kwargs.setdefault("mode", "json")
        return super().model_dump(**kwargs)
