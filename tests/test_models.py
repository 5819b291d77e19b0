"""Unit tests for data models."""
import sys
from datetime import datetime, timezone
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from pydantic import ValidationError
from models.analysis import (
    DetailedAnalysis,
    GenericAnalysis,
    ImageAnalysis,
    IngestionReport,
    TextAnalysis,
)
from models.api import ChatRequest, ReprocessRequest
from models.document import IMAGE, OTHER, TEXT, VIDEO, classify_mime_type

PROCESSED_AT = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestClassifyMimeType:

    @pytest.mark.parametrize("mime_type,kind", [
        ("image/png", IMAGE),
        ("video/mp4", VIDEO),
        ("text/markdown", TEXT),
        ("application/pdf", TEXT),
        ("application/json", TEXT),
        ("application/zip", OTHER),
        (None, OTHER),
    ])
    def test_kinds(self, mime_type, kind):
        assert classify_mime_type(mime_type) == kind


class TestUpdatePayload:

    def test_only_produced_fields_are_written(self):
        analysis = GenericAnalysis(document_id="d1", tags=["invoice"])

        payload = analysis.update_payload(PROCESSED_AT)

        assert payload == {"processed_at": "2024-05-01T12:00:00+00:00", "tags": ["invoice"]}

    def test_nothing_produced_still_stamps_processed_at(self):
        assert list(TextAnalysis(document_id="d1").update_payload()) == ["processed_at"]

    def test_image_payload(self):
        analysis = ImageAnalysis(
            document_id="img-1",
            embedding=[0.5, 0.25],
            description="A red door",
            detailed_analysis=DetailedAnalysis(mood=["warm"]),
            searchable_text="a red door",
            model_used="gemini-2.0-flash",
        )

        payload = analysis.update_payload(PROCESSED_AT)

        assert payload["embedding"] == "[0.5,0.25]"
        assert payload["analysis_model"] == "gemini-2.0-flash"
        assert payload["detailed_analysis"]["mood"] == ["warm"]
        assert "ai_summary" not in payload

    def test_ingestion_report(self):
        analysis = ImageAnalysis(document_id="img-1", tags=["door"], fallback_used=True, errors=["timeout"])
        payload = analysis.update_payload(PROCESSED_AT)

        report = IngestionReport.from_analysis(analysis, payload)

        assert report.kind == IMAGE
        assert report.fields_written == ["processed_at", "tags"]
        assert report.fallback_used is True
        assert report.to_dict()["details"]["errors"] == ["timeout"]


class TestRequestSchemas:

    def test_question_length(self):
        with pytest.raises(ValidationError):
            ChatRequest(question="x" * 4001)

    def test_reprocess_needs_target(self):
        with pytest.raises(ValidationError):
            ReprocessRequest()
        assert ReprocessRequest(workspace_id="ws-1").limit == 50
