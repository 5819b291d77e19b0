"""Unit tests for the multi-model image analyzer."""
import json
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from unittest.mock import Mock, patch
from config import (
    PREMIUM_CLAUDE_MODEL,
    PREMIUM_GEMINI_MODEL,
    STANDARD_CLAUDE_MODEL,
    STANDARD_GEMINI_MODEL,
)
from models.analysis import DetailedAnalysis
from services.errors import AnalysisError
from services.image_analyzer import (
    ImageAnalyzer,
    detailed_summary,
    parse_model_json,
    searchable_text_from_analysis,
    select_models,
    tags_from_analysis,
)

ANALYSIS = {
    "description": "A woman in a burgundy dress walks along a beach at sunset.",
    "subjects": [{"type": "person", "description": "woman walking", "attributes": ["smiling"]}],
    "colors": [{"color": "red", "shade": "burgundy", "location": "dress", "prominence": "dominant"}],
    "objects": [{"name": "umbrella"}],
    "setting": {"type": "outdoor", "location": "beach", "background": "sea"},
    "mood": ["calm", "warm", "romantic", "bright"],
    "style": ["candid"],
    "clothing": [{"type": "dress", "color": "red", "shade": "burgundy", "material": "silk"}],
    "actions": ["walking"],
}


def _gemini(api_key="gemini_key"):
    gemini = Mock()
    gemini.api_key = api_key
    return gemini


def _claude_response(text, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.text = text
    response.json.return_value = {"content": [{"type": "text", "text": text}]}
    return response


class TestHelpers:

    def test_select_models_standard(self):
        models = select_models(1024, "standard")
        assert (models.claude, models.gemini) == (STANDARD_CLAUDE_MODEL, STANDARD_GEMINI_MODEL)

    def test_select_models_premium_by_quality(self):
        models = select_models(1024, "premium")
        assert (models.claude, models.gemini) == (PREMIUM_CLAUDE_MODEL, PREMIUM_GEMINI_MODEL)

    def test_select_models_premium_by_size(self):
        models = select_models(3 * 1024 * 1024)
        assert models.claude == PREMIUM_CLAUDE_MODEL

    def test_parse_model_json_strips_fences(self):
        assert parse_model_json('```json\n{"a": 1}\n```') == {"a": 1}

    def test_parse_model_json_malformed_returns_default(self):
        assert parse_model_json("not json", default={"fallback": True}) == {"fallback": True}
        assert parse_model_json("[1, 2]") is None

    def test_tags_include_clothing_combinations(self):
        tags = tags_from_analysis(DetailedAnalysis.from_parsed(ANALYSIS))

        for expected in ("red", "burgundy", "dress", "red dress", "burgundy dress",
                         "silk", "person", "umbrella", "beach", "calm", "walking"):
            assert expected in tags
        assert len(tags) == len(set(tags))

    def test_tags_are_capped_and_skip_single_characters(self):
        parsed = {"mood": [f"mood{i}" for i in range(80)] + ["x"]}
        tags = tags_from_analysis(DetailedAnalysis.from_parsed(parsed))

        assert len(tags) == 50
        assert "x" not in tags

    def test_searchable_text_is_lowercase(self):
        analysis = DetailedAnalysis.from_parsed(ANALYSIS)
        text = searchable_text_from_analysis(ANALYSIS["description"], analysis)

        assert text == text.lower()
        assert "burgundy silk dress" in text
        assert "outdoor beach sea" in text

    def test_detailed_summary(self):
        analyzer = ImageAnalyzer(_gemini(), anthropic_api_key=None)
        analyzer.gemini.generate.return_value = json.dumps(ANALYSIS)

        summary = detailed_summary(analyzer.analyze(b"img", "image/png"))

        assert summary.startswith(ANALYSIS["description"])
        assert "Clothing: burgundy dress (silk)" in summary
        assert "Setting: outdoor - beach" in summary
        assert "Mood: calm, warm, romantic" in summary


class TestImageAnalyzer:

    @patch('httpx.Client')
    def test_claude_first_by_default(self, mock_client_class):
        mock_client = mock_client_class.return_value.__enter__.return_value
        mock_client.post.return_value = _claude_response(json.dumps(ANALYSIS))
        gemini = _gemini()

        analyzer = ImageAnalyzer(gemini, anthropic_api_key="claude_key")
        result = analyzer.analyze(b"img", "image/jpeg")

        assert result.model_used == STANDARD_CLAUDE_MODEL
        assert result.confidence == 0.95
        assert result.description == ANALYSIS["description"]
        gemini.generate.assert_not_called()
        headers = mock_client.post.call_args[1]["headers"]
        assert headers["x-api-key"] == "claude_key"

    @patch('httpx.Client')
    def test_falls_back_to_gemini_when_claude_fails(self, mock_client_class):
        mock_client = mock_client_class.return_value.__enter__.return_value
        mock_client.post.return_value = _claude_response("Internal error", status_code=500)
        gemini = _gemini()
        gemini.generate.return_value = "```json\n" + json.dumps(ANALYSIS) + "\n```"

        result = ImageAnalyzer(gemini, anthropic_api_key="claude_key").analyze(b"img", "image/png")

        assert result.model_used == STANDARD_GEMINI_MODEL
        assert result.confidence == 0.9
        assert gemini.generate.call_args[1]["model"] == STANDARD_GEMINI_MODEL

    @patch('httpx.Client')
    def test_gemini_preferred_skips_claude(self, mock_client_class):
        gemini = _gemini()
        gemini.generate.return_value = json.dumps(ANALYSIS)

        analyzer = ImageAnalyzer(gemini, anthropic_api_key="claude_key")
        result = analyzer.analyze(b"img", "image/png", preferred_provider="gemini")

        assert result.model_used == STANDARD_GEMINI_MODEL
        mock_client_class.assert_not_called()

    def test_malformed_json_counts_as_failure(self):
        gemini = _gemini()
        gemini.generate.return_value = "I cannot analyze this image."

        with pytest.raises(AnalysisError, match="All analysis models failed"):
            ImageAnalyzer(gemini, anthropic_api_key=None).analyze(b"img", "image/png")

    def test_all_providers_fail(self):
        gemini = _gemini()
        gemini.generate.side_effect = RuntimeError("Gemini down")

        with pytest.raises(AnalysisError):
            ImageAnalyzer(gemini, anthropic_api_key=None).analyze(b"img", "image/png")

    def test_no_keys_at_all(self):
        gemini = _gemini(api_key=None)

        with pytest.raises(AnalysisError):
            ImageAnalyzer(gemini, anthropic_api_key=None).analyze(b"img", "image/png")

        gemini.generate.assert_not_called()
