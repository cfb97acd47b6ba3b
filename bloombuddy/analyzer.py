"""
Document Analyzer
=================
Main orchestrator that combines page rendering, batched completion calls,
response normalization, fallback synthesis and reporting into a complete
question-categorization pipeline.

Usage:
    analyzer = DocumentAnalyzer(AnalyzerConfig(api_key="sk-..."))
    result = analyzer.analyze("path/to/worksheet.pdf")
    # result is an AnalysisResult with questions grouped by Bloom level

Architecture:
    PDF → PageRenderer → PageImages → batched CompletionClient calls →
    normalize per page → merge → (fallback) → ReportBuilder → AnalysisResult
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from . import __version__
from .credentials import require_valid_api_key
from .llm_client import DEFAULT_MODEL, CompletionClient, CompletionError
from .models import (
    AnalysisMode,
    AnalysisResult,
    AnalysisVersion,
    DocumentMetadata,
    PageAnalysis,
    PageImage,
    utc_now_iso,
)
from .normalizer import (
    count_questions,
    merge_categorized,
    normalize_response,
    synthesize_fallback,
)
from .renderer import PageRenderer, select_pages
from .validator import ReportBuilder

logger = logging.getLogger(__name__)

PDF_EXTENSIONS = {".pdf"}
TEXT_EXTENSIONS = {".txt", ".md", ".csv", ".text"}


class AnalysisError(RuntimeError):
    """Raised when no part of a document could be analyzed."""


class UnsupportedDocumentError(ValueError):
    """Raised for file types the analyzer cannot read."""


@dataclass
class AnalyzerConfig:
    """Configuration for the document analyzer."""

    # Completion service
    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    temperature: float = 0.2
    max_tokens: int = 4000
    request_timeout: float = 120.0

    # Content
    mode: AnalysisMode = AnalysisMode.VISION
    image_dpi: int = 150
    image_format: str = "png"
    pages: Optional[list[int]] = None
    page_range: Optional[tuple[int, int]] = None
    max_pages: Optional[int] = None

    # Fan-out
    batch_size: int = 3
    batch_delay: float = 1.0

    # Results
    synthesize_fallback: bool = True
    save_output: bool = False
    output_dir: str = "output"

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def resolved_api_key(self) -> Optional[str]:
        return self.api_key or os.environ.get("OPENAI_API_KEY")


@dataclass
class _WorkUnit:
    """One fan-out call: a rendered page, a page of text, or a whole text."""
    page_number: Optional[int]
    image: Optional[PageImage] = None
    text: Optional[str] = None


class DocumentAnalyzer:
    """
    Main document analysis engine.

    Orchestrates the full pipeline:
        1. Credential shape check
        2. Page selection and rendering (or text extraction)
        3. Batched fan-out to the completion service
        4. Per-page normalization and merge
        5. Fallback synthesis when nothing was detected
        6. Reporting and optional JSON output
    """

    def __init__(
        self,
        config: Optional[AnalyzerConfig] = None,
        client: Optional[CompletionClient] = None,
    ):
        self.config = config or AnalyzerConfig()
        if self.config.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.config.batch_delay < 0:
            raise ValueError("batch_delay cannot be negative")
        self._client = client
        self._setup_logging()

    def _setup_logging(self):
        """Configure logging based on config."""
        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        pkg_logger = logging.getLogger("bloombuddy")
        pkg_logger.setLevel(log_level)

        formatter = logging.Formatter(
            "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        if not pkg_logger.handlers:
            console = logging.StreamHandler()
            console.setLevel(log_level)
            console.setFormatter(formatter)
            pkg_logger.addHandler(console)

        if self.config.log_file:
            log_dir = Path(self.config.log_file).parent
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(self.config.log_file, encoding="utf-8")
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            pkg_logger.addHandler(file_handler)

    # ─── Public API ──────────────────────────────────────────────────────────

    def analyze(
        self,
        path: str,
        document_name: Optional[str] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> AnalysisResult:
        """
        Analyze a document file and categorize its questions.

        Args:
            path: Path to a PDF or plain-text document.
            document_name: Name stamped on every question (default: filename).
            progress_callback: Callback(completed_units, total_units).

        Returns:
            AnalysisResult with merged questions, page outcomes and report.

        Raises:
            CredentialError: If the API key fails the shape check.
            FileNotFoundError: If the document doesn't exist.
            UnsupportedDocumentError: For unreadable file types.
            AnalysisError: If every completion call failed.
        """
        client = self._get_client()

        path = os.path.abspath(path)
        if not os.path.exists(path):
            raise FileNotFoundError(f"Document not found: {path}")

        start_time = time.time()
        name = document_name or os.path.basename(path)
        extension = Path(path).suffix.lower()
        logger.info(f"Starting analysis of: {path}")

        document = DocumentMetadata(
            name=name,
            file_type=extension.lstrip("."),
            file_hash=self._compute_file_hash(path),
            file_size_bytes=os.path.getsize(path),
        )

        # ── Step 1: Build work units ──────────────────────────────────
        if extension in PDF_EXTENSIONS:
            units, mode = self._pdf_units(path, document)
        elif extension in TEXT_EXTENSIONS:
            with open(path, "r", encoding="utf-8", errors="replace") as f:
                content = f.read()
            units, mode = self._text_units(content), AnalysisMode.TEXT
            document.total_pages = 1
        else:
            raise UnsupportedDocumentError(
                f"Unsupported document type: {extension or '(none)'}"
            )

        # ── Step 2: Fan out, merge, report ────────────────────────────
        result = self._run(client, units, document, mode, progress_callback)

        elapsed = time.time() - start_time
        logger.info(
            f"Analysis complete in {elapsed:.2f}s — "
            f"{result.total_questions} questions categorized"
        )

        if self.config.save_output:
            self._save_json(result, self._output_path(name))

        return result

    def analyze_text(
        self,
        content: str,
        document_name: Optional[str] = None,
    ) -> AnalysisResult:
        """Analyze raw text (e.g. pasted content) as a single unit."""
        client = self._get_client()
        document = DocumentMetadata(
            name=document_name or "",
            file_type="text",
            total_pages=1,
            file_hash=hashlib.sha256(content.encode("utf-8")).hexdigest(),
            file_size_bytes=len(content.encode("utf-8")),
        )
        return self._run(
            client, self._text_units(content), document, AnalysisMode.TEXT, None
        )

    # ─── Pipeline Stages ─────────────────────────────────────────────────────

    def _get_client(self) -> CompletionClient:
        api_key = require_valid_api_key(self.config.resolved_api_key())
        if self._client is None:
            self._client = CompletionClient(
                api_key=api_key,
                model=self.config.model,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
                timeout=self.config.request_timeout,
            )
        return self._client

    def _pdf_units(
        self, path: str, document: DocumentMetadata
    ) -> tuple[list[_WorkUnit], AnalysisMode]:
        renderer = PageRenderer(
            dpi=self.config.image_dpi,
            image_format=self.config.image_format,
        )
        document.total_pages = renderer.get_page_count(path)
        pages = select_pages(
            document.total_pages,
            pages=self.config.pages,
            page_range=self.config.page_range,
            max_pages=self.config.max_pages,
        )
        document.analyzed_pages = pages

        mode = AnalysisMode(self.config.mode)
        if mode == AnalysisMode.TEXT:
            texts = renderer.extract_page_text(path, pages)
            units = [
                _WorkUnit(page_number=n, text=t) for n, t in texts.items() if t
            ]
            skipped = [n for n, t in texts.items() if not t]
            if skipped:
                logger.info(f"Skipping pages without text: {skipped}")
            if not units:
                raise AnalysisError(
                    "No extractable text in the selected pages; "
                    "try vision mode for scanned documents"
                )
            return units, mode

        logger.info("Phase 1: Page rendering")
        images = renderer.render(path, pages)
        return [_WorkUnit(page_number=img.page_number, image=img) for img in images], mode

    def _text_units(self, content: str) -> list[_WorkUnit]:
        if not content.strip():
            raise AnalysisError("Document contains no text")
        return [_WorkUnit(page_number=None, text=content)]

    def _run(
        self,
        client: CompletionClient,
        units: list[_WorkUnit],
        document: DocumentMetadata,
        mode: AnalysisMode,
        progress_callback: Optional[Callable[[int, int], None]],
    ) -> AnalysisResult:
        created_at = utc_now_iso()

        logger.info(
            f"Phase 2: Completion fan-out ({len(units)} call(s), "
            f"batch size {self.config.batch_size})"
        )
        pages = self._fan_out(client, units, document.name, created_at, progress_callback)

        succeeded = [p for p in pages if p.succeeded]
        if not succeeded:
            first_error = pages[0].error if pages else "no content to analyze"
            raise AnalysisError(f"Failed to analyze document: {first_error}")

        logger.info("Phase 3: Merge")
        merged = merge_categorized(p.questions for p in succeeded)

        fallback_used = False
        if count_questions(merged) == 0 and self.config.synthesize_fallback:
            logger.warning(
                f"No questions detected in {document.name!r}; "
                "generating sample questions"
            )
            merged = synthesize_fallback(document.name, created_at)
            fallback_used = True

        report = ReportBuilder().build(merged, pages, fallback_used=fallback_used)

        return AnalysisResult(
            document=document,
            version=AnalysisVersion(
                analyzer_version=__version__,
                model=self.config.model,
                mode=mode,
            ),
            questions=merged,
            pages=pages,
            report=report,
        )

    def _fan_out(
        self,
        client: CompletionClient,
        units: list[_WorkUnit],
        document_name: str,
        created_at: str,
        progress_callback: Optional[Callable[[int, int], None]],
    ) -> list[PageAnalysis]:
        """
        Send units in fixed-size batches. Calls within a batch run
        concurrently; batches are separated by ``batch_delay`` seconds.
        Results keep the order of ``units``.
        """
        size = self.config.batch_size
        batches = [units[i:i + size] for i in range(0, len(units), size)]
        results: list[PageAnalysis] = []

        for batch_idx, batch in enumerate(batches):
            if batch_idx > 0 and self.config.batch_delay > 0:
                logger.debug(f"Waiting {self.config.batch_delay}s before next batch")
                time.sleep(self.config.batch_delay)

            logger.info(
                f"Batch {batch_idx + 1}/{len(batches)}: "
                f"pages {[u.page_number for u in batch]}"
            )

            with ThreadPoolExecutor(max_workers=len(batch)) as pool:
                futures = [
                    pool.submit(self._analyze_unit, client, unit, document_name, created_at)
                    for unit in batch
                ]
                for future in futures:
                    results.append(future.result())
                    if progress_callback:
                        progress_callback(len(results), len(units))

        return results

    def _analyze_unit(
        self,
        client: CompletionClient,
        unit: _WorkUnit,
        document_name: str,
        created_at: str,
    ) -> PageAnalysis:
        label = f"page {unit.page_number}" if unit.page_number else "text"
        try:
            if unit.image is not None:
                payload = client.analyze_image(unit.image)
            else:
                payload = client.analyze_text(unit.text, label=label)
        except CompletionError as e:
            logger.warning(f"Completion failed for {label}: {e}")
            return PageAnalysis(page_number=unit.page_number, error=str(e))

        questions = normalize_response(
            payload,
            document_name=document_name or None,
            page_number=unit.page_number,
            created_at=created_at,
        )
        return PageAnalysis(page_number=unit.page_number, questions=questions)

    # ─── Output ──────────────────────────────────────────────────────────────

    def _output_path(self, document_name: str) -> Path:
        stem = Path(document_name).stem
        clean_name = "".join(c if c.isalnum() or c in "-_" else "_" for c in stem)
        output_dir = Path(self.config.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        return output_dir / f"{clean_name[:50] or 'document'}_analysis.json"

    def _compute_file_hash(self, filepath: str) -> str:
        """Compute SHA-256 hash of a file."""
        sha256 = hashlib.sha256()
        with open(filepath, "rb") as f:
            for chunk in iter(lambda: f.read(8192), b""):
                sha256.update(chunk)
        return sha256.hexdigest()

    def _save_json(self, result: AnalysisResult, filepath: Path):
        """Save AnalysisResult to JSON file."""
        try:
            with open(filepath, "w", encoding="utf-8") as f:
                json.dump(result.model_dump(), f, indent=2, ensure_ascii=False, default=str)
            logger.info(f"Saved JSON output: {filepath}")
        except OSError as e:
            logger.error(f"Failed to save JSON: {e}")
