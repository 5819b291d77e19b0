"""Unit tests for structured logging."""
import json
import logging
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from logger import JSONFormatter, setup_logging


def test_json_formatter_includes_extra_fields():
    record = logging.getLogger("services.ingestion").makeRecord(
        "services.ingestion", logging.INFO, __file__, 1, "Processed %s", ("doc-1",), None,
        extra={"document_id": "doc-1", "fields_written": ["tags"]}
    )

    data = json.loads(JSONFormatter().format(record))

    assert data["level"] == "INFO"
    assert data["logger"] == "services.ingestion"
    assert data["message"] == "Processed doc-1"
    assert data["document_id"] == "doc-1"
    assert data["fields_written"] == ["tags"]
    assert data["timestamp"].endswith("Z")
    assert "args" not in data


def test_text_format_leaves_handlers_alone():
    root = logging.getLogger()
    before = list(root.handlers)

    setup_logging("INFO", "text")

    assert root.handlers == before
