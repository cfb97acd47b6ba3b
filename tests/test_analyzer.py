"""
Test Suite for the Document Analyzer
====================================
Unit and integration tests for the analysis pipeline components.
"""

from __future__ import annotations

import base64
import json
from unittest.mock import MagicMock, patch

import httpx
import pytest
from openai import APIStatusError

from bloombuddy.analyzer import (
    AnalysisError,
    AnalyzerConfig,
    DocumentAnalyzer,
    UnsupportedDocumentError,
)
from bloombuddy.credentials import (
    CredentialError,
    check_api_key,
    mask_api_key,
    require_valid_api_key,
)
from bloombuddy.llm_client import CompletionClient, CompletionError
from bloombuddy.models import (
    AnalysisMode,
    AnalysisReport,
    AnalyzedQuestion,
    PageAnalysis,
    PageImage,
)
from bloombuddy.normalizer import (
    count_questions,
    empty_categories,
    flatten,
    group_by_level,
    merge_categorized,
    normalize_response,
    synthesize_fallback,
)
from bloombuddy.renderer import PageRenderer, select_pages
from bloombuddy.taxonomy import LEVELS, BloomLevel, detect_level, parse_level, verbs_for
from bloombuddy.validator import ReportBuilder

from conftest import VALID_KEY, FakeCompletionClient, make_pdf


def _config(**overrides) -> AnalyzerConfig:
    defaults = dict(api_key=VALID_KEY, batch_delay=0, log_level="WARNING")
    defaults.update(overrides)
    return AnalyzerConfig(**defaults)


# ═══════════════════════════════════════════════════════════════════════════════
# TAXONOMY TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestTaxonomy:
    """Test level parsing and verb tables."""

    def test_levels_in_order(self):
        assert [level.value for level in LEVELS] == [
            "remember", "understand", "apply", "analyze", "evaluate", "create",
        ]

    @pytest.mark.parametrize("name,expected", [
        ("Remember", BloomLevel.REMEMBER),
        ("UNDERSTAND", BloomLevel.UNDERSTAND),
        ("  apply ", BloomLevel.APPLY),
        ("Analysing", BloomLevel.ANALYZE),
        ("analyse", BloomLevel.ANALYZE),
        ("Evaluation", BloomLevel.EVALUATE),
        ("Creating", BloomLevel.CREATE),
        ("remember_questions", BloomLevel.REMEMBER),
        ("Apply Questions", BloomLevel.APPLY),
        ("create-level", BloomLevel.CREATE),
    ])
    def test_parse_level_variants(self, name, expected):
        assert parse_level(name) == expected

    @pytest.mark.parametrize("name", ["", "questions", "summary", None, 3])
    def test_parse_level_rejects_unknown(self, name):
        assert parse_level(name) is None

    def test_verbs_for(self):
        assert "define" in verbs_for(BloomLevel.REMEMBER)
        assert "design" in verbs_for("create")
        assert len(verbs_for("apply")) == 20

    def test_verbs_for_unknown_level(self):
        with pytest.raises(ValueError):
            verbs_for("memorise everything")

    @pytest.mark.parametrize("text,expected", [
        ("Define photosynthesis.", BloomLevel.REMEMBER),
        ("Explain why leaves are green.", BloomLevel.UNDERSTAND),
        ("CALCULATE the rate of reaction", BloomLevel.APPLY),
        ("Break down the argument into its parts.", BloomLevel.ANALYZE),
        ("Justify your choice.", BloomLevel.EVALUATE),
        ("Compose a short poem about rain.", BloomLevel.CREATE),
        ("Explain, then design, a new bridge.", BloomLevel.UNDERSTAND),
    ])
    def test_detect_level(self, text, expected):
        assert detect_level(text) == expected

    @pytest.mark.parametrize("text", ["", None, "Photosynthesis?", "Redefine nothing"])
    def test_detect_level_without_verbs(self, text):
        assert detect_level(text) is None


# ═══════════════════════════════════════════════════════════════════════════════
# CREDENTIAL TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestCredentials:
    """Test the API key shape check."""

    def test_valid_key(self):
        assert check_api_key(VALID_KEY).valid is True

    def test_project_style_key(self):
        assert check_api_key("sk-proj-" + "Ab3_-" * 20).valid is True

    def test_surrounding_whitespace_is_ignored(self):
        assert check_api_key(f"  {VALID_KEY}\n").valid is True
        assert require_valid_api_key(f" {VALID_KEY} ") == VALID_KEY

    @pytest.mark.parametrize("key,reason_fragment", [
        (None, "missing"),
        ("   ", "empty"),
        ("pk-" + "a" * 40, "must start with"),
        ("sk-short", "too short"),
        ("sk-" + "a" * 300, "too long"),
        ("sk-abc def" + "a" * 20, "whitespace"),
        ("sk-" + "a" * 20 + "!$", "invalid characters"),
    ])
    def test_invalid_keys(self, key, reason_fragment):
        result = check_api_key(key)
        assert result.valid is False
        assert reason_fragment in result.reason

    def test_require_raises_credential_error(self):
        with pytest.raises(CredentialError, match="must start with"):
            require_valid_api_key("not-a-key-at-all-really")

    def test_mask_api_key(self):
        masked = mask_api_key(VALID_KEY)
        assert masked.startswith("sk-tes")
        assert masked.endswith(VALID_KEY[-4:])
        assert VALID_KEY not in masked
        assert mask_api_key(None) == "(not set)"


# ═══════════════════════════════════════════════════════════════════════════════
# NORMALIZER TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestNormalizeResponse:
    """Test folding reply shapes into the canonical map."""

    def test_canonical_shape(self):
        result = normalize_response(
            {
                "Remember": ["What is a cell?"],
                "Apply": [{"text": "Solve for x.", "confidence": 0.8}],
            },
            document_name="quiz.pdf",
            page_number=2,
        )
        assert list(result.keys()) == [level.value for level in LEVELS]
        assert result["remember"][0].text == "What is a cell?"
        assert result["apply"][0].confidence == 0.8
        assert result["apply"][0].page_number == 2
        assert result["apply"][0].document_name == "quiz.pdf"
        assert count_questions(result) == 2

    def test_shared_timestamp_and_unique_ids(self):
        result = normalize_response(
            {"Understand": ["A?", "B?"]}, created_at="2024-01-01T00:00:00+00:00"
        )
        first, second = result["understand"]
        assert first.created_at == second.created_at == "2024-01-01T00:00:00+00:00"
        assert first.id != second.id

    def test_wrapped_categories(self):
        result = normalize_response({"questions": {"evaluate": ["Judge X."]}})
        assert result["evaluate"][0].text == "Judge X."

    def test_flat_list_under_wrapper(self):
        result = normalize_response({
            "questions": [
                {"question": "Compare A and B.", "bloom_level": "Analyze"},
                {"text": "Plan a study.", "level": "create"},
                {"text": "No level given."},
            ]
        })
        assert result["analyze"][0].text == "Compare A and B."
        assert result["create"][0].text == "Plan a study."
        assert count_questions(result) == 2

    def test_top_level_list(self):
        result = normalize_response([
            {"text": "Name the planets.", "category": "Remembering"},
            "not a dict",
        ])
        assert result["remember"][0].text == "Name the planets."
        assert count_questions(result) == 1

    def test_single_string_value(self):
        result = normalize_response({"Create": "Design a bridge."})
        assert result["create"][0].text == "Design a bridge."

    def test_unknown_keys_and_bad_items_skipped(self):
        result = normalize_response({
            "summary": ["ignored"],
            "Remember": ["", "   ", 42, None, {"confidence": 0.4}, "Kept?"],
        })
        assert [q.text for q in result["remember"]] == ["Kept?"]

    def test_whitespace_collapsed(self):
        result = normalize_response({"apply": ["  Use   the\nformula. "]})
        assert result["apply"][0].text == "Use the formula."

    @pytest.mark.parametrize("raw,expected", [
        (0.5, 0.5),
        ("0.25", 0.25),
        (85, 0.85),
        (1.5, 0.015),
        (-1, 0.0),
        (250, 1.0),
        ("high", None),
        (True, None),
    ])
    def test_confidence_coercion(self, raw, expected):
        result = normalize_response({"apply": [{"text": "Q", "confidence": raw}]})
        confidence = result["apply"][0].confidence
        if expected is None:
            assert confidence is None
        else:
            assert confidence == pytest.approx(expected)

    @pytest.mark.parametrize("payload", [None, "text", 12, {}, []])
    def test_degenerate_payloads(self, payload):
        assert count_questions(normalize_response(payload)) == 0


class TestMergeAndFallback:
    """Test merging, reshaping and placeholder synthesis."""

    def test_merge_concatenates_in_order(self):
        page1 = normalize_response({"remember": ["A"], "apply": ["B"]}, page_number=1)
        page2 = normalize_response({"remember": ["C"]}, page_number=2)
        merged = merge_categorized([page1, page2])
        assert [q.text for q in merged["remember"]] == ["A", "C"]
        assert [q.text for q in merged["apply"]] == ["B"]
        assert count_questions(merged) == 3

    def test_merge_of_nothing(self):
        assert merge_categorized([]) == empty_categories()

    def test_merge_ignores_unknown_keys(self):
        merged = merge_categorized([{"bogus": [AnalyzedQuestion(text="x", bloom_level="apply")]}])
        assert count_questions(merged) == 0

    def test_flatten_and_group_round_trip_levels(self):
        merged = normalize_response({"create": ["X"], "remember": ["Y"]})
        grouped = group_by_level(flatten(merged))
        assert [q.text for q in grouped["create"]] == ["X"]
        assert [q.text for q in grouped["remember"]] == ["Y"]

    def test_fallback_one_per_level(self):
        fallback = synthesize_fallback("cell_biology-notes.pdf")
        assert count_questions(fallback) == len(LEVELS)
        for level in LEVELS:
            (question,) = fallback[level.value]
            assert question.generated is True
            assert question.bloom_level == level
            assert question.document_name == "cell_biology-notes.pdf"
            assert '"cell biology notes"' in question.text

    def test_fallback_without_name(self):
        fallback = synthesize_fallback()
        assert "this document" in fallback["remember"][0].text


# ═══════════════════════════════════════════════════════════════════════════════
# RENDERER TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestSelectPages:
    """Test page selection rules."""

    def test_default_all_pages(self):
        assert select_pages(3) == [1, 2, 3]

    def test_explicit_pages_sorted_and_deduplicated(self):
        assert select_pages(10, pages=[5, 2, 5, 9]) == [2, 5, 9]

    def test_explicit_out_of_range(self):
        with pytest.raises(ValueError, match="out of range"):
            select_pages(3, pages=[0, 2, 4])

    def test_range_is_clamped(self):
        assert select_pages(5, page_range=(4, 99)) == [4, 5]
        assert select_pages(5, page_range=(-2, 2)) == [1, 2]

    def test_empty_range(self):
        with pytest.raises(ValueError, match="empty"):
            select_pages(5, page_range=(7, 9))

    def test_max_pages(self):
        assert select_pages(10, max_pages=3) == [1, 2, 3]

    def test_no_pages(self):
        with pytest.raises(ValueError):
            select_pages(0)


class TestPageRenderer:
    """Test PDF rendering with generated documents."""

    def test_page_count(self, sample_pdf):
        assert PageRenderer().get_page_count(sample_pdf) == 4

    def test_render_png(self, sample_pdf):
        images = PageRenderer(dpi=72).render(sample_pdf, [1, 3])
        assert [img.page_number for img in images] == [1, 3]
        raw = base64.b64decode(images[0].data)
        assert raw.startswith(b"\x89PNG")
        assert images[0].data_url.startswith("data:image/png;base64,")
        # A4/Letter at 72 DPI
        assert 500 < images[0].width < 700

    def test_render_jpeg(self, sample_pdf):
        image = PageRenderer(dpi=72, image_format="jpg").render(sample_pdf, [2])[0]
        assert image.mime_type == "image/jpeg"
        assert base64.b64decode(image.data)[:2] == b"\xff\xd8"

    def test_dpi_scales_image(self, sample_pdf):
        small = PageRenderer(dpi=72).render(sample_pdf, [1])[0]
        large = PageRenderer(dpi=144).render(sample_pdf, [1])[0]
        assert large.width == pytest.approx(small.width * 2, abs=2)

    def test_progress_callback(self, sample_pdf):
        calls = []
        PageRenderer(dpi=72).render(sample_pdf, progress_callback=lambda c, t: calls.append((c, t)))
        assert calls == [(1, 4), (2, 4), (3, 4), (4, 4)]

    def test_extract_page_text(self, sample_pdf):
        texts = PageRenderer().extract_page_text(sample_pdf, [1, 4])
        assert "photosynthesis" in texts[1]
        assert "experiment" in texts[4]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            PageRenderer().get_page_count(str(tmp_path / "nope.pdf"))

    def test_corrupt_file(self, tmp_path):
        bad = tmp_path / "bad.pdf"
        bad.write_bytes(b"this is not a pdf")
        with pytest.raises(RuntimeError):
            PageRenderer().get_page_count(str(bad))

    def test_invalid_options(self):
        with pytest.raises(ValueError):
            PageRenderer(image_format="gif")
        with pytest.raises(ValueError):
            PageRenderer(dpi=10)


# ═══════════════════════════════════════════════════════════════════════════════
# COMPLETION CLIENT TESTS
# ═══════════════════════════════════════════════════════════════════════════════


def _openai_reply(content):
    sdk = MagicMock()
    sdk.chat.completions.create.return_value = MagicMock(
        choices=[MagicMock(message=MagicMock(content=content))]
    )
    return sdk


class TestCompletionClient:
    """Test request construction and error wrapping."""

    def test_image_request(self):
        sdk = _openai_reply('{"Remember": ["What is DNA?"]}')
        client = CompletionClient(api_key=VALID_KEY, model="gpt-4o", client=sdk)
        image = PageImage(page_number=3, data="aGVsbG8=")

        payload = client.analyze_image(image)

        assert payload == {"Remember": ["What is DNA?"]}
        kwargs = sdk.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 4000
        system, user = kwargs["messages"]
        assert "Bloom's Taxonomy" in system["content"]
        assert user["content"][0]["image_url"]["url"] == "data:image/png;base64,aGVsbG8="

    def test_text_request(self):
        sdk = _openai_reply('{"questions": []}')
        client = CompletionClient(api_key=VALID_KEY, client=sdk)
        client.analyze_text("1. Define osmosis.")
        messages = sdk.chat.completions.create.call_args.kwargs["messages"]
        assert messages[1] == {"role": "user", "content": "1. Define osmosis."}

    def test_invalid_json(self):
        client = CompletionClient(api_key=VALID_KEY, client=_openai_reply("not json"))
        with pytest.raises(CompletionError, match="not valid JSON"):
            client.analyze_text("x")

    def test_empty_choices(self):
        sdk = MagicMock()
        sdk.chat.completions.create.return_value = MagicMock(choices=[])
        client = CompletionClient(api_key=VALID_KEY, client=sdk)
        with pytest.raises(CompletionError, match="Empty completion"):
            client.analyze_text("x")

    def test_status_error_wrapped(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        response = httpx.Response(429, request=request)
        sdk = MagicMock()
        sdk.chat.completions.create.side_effect = APIStatusError(
            "rate limited", response=response, body=None
        )
        client = CompletionClient(api_key=VALID_KEY, client=sdk)
        with pytest.raises(CompletionError) as exc_info:
            client.analyze_text("x")
        assert exc_info.value.status_code == 429


# ═══════════════════════════════════════════════════════════════════════════════
# REPORT TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestReportBuilder:
    """Test the post-analysis report."""

    def test_report_counts(self):
        page1 = normalize_response({"remember": ["What is X?"], "apply": ["Use X."]}, page_number=1)
        page2 = normalize_response({"remember": ["what is  x"]}, page_number=2)
        pages = [
            PageAnalysis(page_number=1, questions=page1),
            PageAnalysis(page_number=2, questions=page2),
            PageAnalysis(page_number=3, questions=empty_categories()),
            PageAnalysis(page_number=4, error="API error: 500"),
        ]
        merged = merge_categorized([page1, page2])

        report = ReportBuilder().build(merged, pages)

        assert report.level_counts["remember"] == 2
        assert report.level_counts["apply"] == 1
        assert report.total_questions == 3
        assert report.pages_analyzed == [1, 2, 3]
        assert report.pages_failed == [4]
        assert report.pages_without_questions == [3]
        assert report.duplicate_questions == ["What is X?"]
        assert report.success_rate == 75.0

    def test_generated_questions_not_duplicates(self):
        report = ReportBuilder().build(
            synthesize_fallback("a.pdf"), [PageAnalysis(page_number=1)], fallback_used=True
        )
        assert report.duplicate_questions == []
        assert report.fallback_used is True

    def test_empty_report(self):
        assert AnalysisReport().success_rate == 0.0


# ═══════════════════════════════════════════════════════════════════════════════
# ANALYZER INTEGRATION TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestDocumentAnalyzer:
    """Test the full pipeline with a fake completion client."""

    def test_vision_fan_out_and_merge(self, sample_pdf):
        client = FakeCompletionClient(replies={
            1: {"Remember": ["Define photosynthesis."]},
            2: {"Understand": ["Explain why leaves are green."]},
            3: {"apply": [{"text": "Calculate the rate.", "confidence": 0.9}]},
            4: {"questions": {"Create": ["Design an experiment."]}},
        })
        analyzer = DocumentAnalyzer(_config(), client=client)

        result = analyzer.analyze(sample_pdf)

        assert sorted(client.image_calls) == [1, 2, 3, 4]
        assert result.total_questions == 4
        assert result.questions["remember"][0].page_number == 1
        assert result.questions["create"][0].page_number == 4
        assert result.questions["apply"][0].document_name == "biology_quiz.pdf"
        assert [p.page_number for p in result.pages] == [1, 2, 3, 4]
        assert result.document.total_pages == 4
        assert result.document.analyzed_pages == [1, 2, 3, 4]
        assert result.version.mode == AnalysisMode.VISION
        assert result.report.fallback_used is False

    def test_merge_keeps_page_order_within_level(self, sample_pdf):
        client = FakeCompletionClient(default={"remember": ["same level"]})
        result = DocumentAnalyzer(_config(batch_size=2), client=client).analyze(sample_pdf)
        assert [q.page_number for q in result.questions["remember"]] == [1, 2, 3, 4]

    def test_batches_separated_by_delay(self, sample_pdf):
        client = FakeCompletionClient(default={"apply": ["Q"]})
        analyzer = DocumentAnalyzer(_config(batch_size=3, batch_delay=2.5), client=client)

        with patch("bloombuddy.analyzer.time.sleep") as sleep:
            analyzer.analyze(sample_pdf)

        # 4 pages, batches of 3 -> two batches, one pause between them
        sleep.assert_called_once_with(2.5)

    def test_single_batch_has_no_delay(self, sample_pdf):
        client = FakeCompletionClient()
        analyzer = DocumentAnalyzer(
            _config(batch_size=5, batch_delay=2.5, synthesize_fallback=False),
            client=client,
        )
        with patch("bloombuddy.analyzer.time.sleep") as sleep:
            analyzer.analyze(sample_pdf)
        sleep.assert_not_called()

    def test_page_selection(self, sample_pdf):
        client = FakeCompletionClient(default={"apply": ["Q"]})
        result = DocumentAnalyzer(_config(pages=[4, 2]), client=client).analyze(sample_pdf)
        assert sorted(client.image_calls) == [2, 4]
        assert result.document.analyzed_pages == [2, 4]

    def test_page_failure_is_isolated(self, sample_pdf):
        client = FakeCompletionClient(default={"remember": ["Q?"]}, fail_pages={2})
        result = DocumentAnalyzer(_config(), client=client).analyze(sample_pdf)

        assert result.total_questions == 3
        failed = [p for p in result.pages if not p.succeeded]
        assert [p.page_number for p in failed] == [2]
        assert "500" in failed[0].error
        assert result.report.pages_failed == [2]

    def test_all_pages_fail(self, sample_pdf):
        client = FakeCompletionClient(fail_pages={1, 2, 3, 4})
        with pytest.raises(AnalysisError, match="API error: 500"):
            DocumentAnalyzer(_config(), client=client).analyze(sample_pdf)

    def test_fallback_when_no_questions(self, sample_pdf):
        client = FakeCompletionClient(default={"Remember": []})
        result = DocumentAnalyzer(_config(), client=client).analyze(sample_pdf)

        assert result.report.fallback_used is True
        assert result.total_questions == len(LEVELS)
        assert all(q.generated for q in result.all_questions())

    def test_fallback_disabled(self, sample_pdf):
        client = FakeCompletionClient()
        result = DocumentAnalyzer(
            _config(synthesize_fallback=False), client=client
        ).analyze(sample_pdf)
        assert result.total_questions == 0
        assert result.report.fallback_used is False

    def test_invalid_key_blocks_calls(self, sample_pdf):
        client = FakeCompletionClient()
        analyzer = DocumentAnalyzer(_config(api_key="sk-nope"), client=client)
        with pytest.raises(CredentialError):
            analyzer.analyze(sample_pdf)
        assert client.image_calls == []

    def test_api_key_from_environment(self, sample_pdf, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", VALID_KEY)
        client = FakeCompletionClient(default={"apply": ["Q"]})
        result = DocumentAnalyzer(_config(api_key=None), client=client).analyze(sample_pdf)
        assert result.total_questions == 4

    def test_text_mode_pdf(self, tmp_path):
        pdf = make_pdf(tmp_path / "notes.pdf", ["What is mitosis?", "", "Compare A and B."])
        client = FakeCompletionClient(replies={
            1: {"remember": ["What is mitosis?"]},
            3: {"analyze": ["Compare A and B."]},
        })
        result = DocumentAnalyzer(_config(mode="text"), client=client).analyze(pdf)

        assert len(client.text_calls) == 2
        assert client.image_calls == []
        assert result.version.mode == AnalysisMode.TEXT
        assert result.questions["analyze"][0].page_number == 3

    def test_text_mode_without_text(self, tmp_path):
        pdf = make_pdf(tmp_path / "scan.pdf", ["", ""])
        with pytest.raises(AnalysisError, match="vision mode"):
            DocumentAnalyzer(
                _config(mode=AnalysisMode.TEXT), client=FakeCompletionClient()
            ).analyze(pdf)

    def test_plain_text_file(self, tmp_path):
        doc = tmp_path / "questions.txt"
        doc.write_text("1. Define force.\n2. Evaluate the claim.", encoding="utf-8")
        client = FakeCompletionClient(replies={
            None: {"remember": ["Define force."], "evaluate": ["Evaluate the claim."]}
        })
        result = DocumentAnalyzer(_config(), client=client).analyze(str(doc))

        assert client.text_calls == ["1. Define force.\n2. Evaluate the claim."]
        assert result.total_questions == 2
        assert result.questions["remember"][0].page_number is None
        assert result.document.file_type == "txt"

    def test_analyze_raw_text(self):
        client = FakeCompletionClient(replies={None: {"create": ["Compose a poem."]}})
        result = DocumentAnalyzer(_config(), client=client).analyze_text(
            "Compose a poem.", document_name="pasted"
        )
        assert result.questions["create"][0].document_name == "pasted"

    def test_unsupported_type(self, tmp_path):
        doc = tmp_path / "syllabus.docx"
        doc.write_bytes(b"PK\x03\x04")
        with pytest.raises(UnsupportedDocumentError):
            DocumentAnalyzer(_config(), client=FakeCompletionClient()).analyze(str(doc))

    def test_missing_document(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            DocumentAnalyzer(_config(), client=FakeCompletionClient()).analyze(
                str(tmp_path / "missing.pdf")
            )

    def test_progress_callback(self, sample_pdf):
        calls = []
        DocumentAnalyzer(
            _config(batch_size=2), client=FakeCompletionClient(default={"apply": ["Q"]})
        ).analyze(sample_pdf, progress_callback=lambda c, t: calls.append((c, t)))
        assert calls == [(1, 4), (2, 4), (3, 4), (4, 4)]

    def test_save_output(self, sample_pdf, tmp_path):
        out = tmp_path / "out"
        client = FakeCompletionClient(default={"apply": ["Q"]})
        DocumentAnalyzer(
            _config(save_output=True, output_dir=str(out)), client=client
        ).analyze(sample_pdf)

        saved = json.loads((out / "biology_quiz_analysis.json").read_text(encoding="utf-8"))
        assert saved["document"]["name"] == "biology_quiz.pdf"
        assert len(saved["questions"]["apply"]) == 4
        assert saved["questions"]["apply"][0]["bloom_level"] == "apply"
        assert saved["report"]["total_questions"] == 4

    def test_invalid_batch_settings(self):
        with pytest.raises(ValueError):
            DocumentAnalyzer(_config(batch_size=0))
        with pytest.raises(ValueError):
            DocumentAnalyzer(_config(batch_delay=-1))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
