"""Unit tests for ChunkingEngine class."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from services.chunking_engine import ChunkingEngine


class TestChunkingEngine:
    """Test suite for ChunkingEngine."""

    def test_short_text_yields_single_stripped_chunk(self):
        engine = ChunkingEngine()
        chunks = engine.chunk_text("   The quarterly numbers look good.  \n")

        assert len(chunks) == 1
        assert chunks[0].id == 0
        assert chunks[0].content == "The quarterly numbers look good."

    def test_text_exactly_max_chars_is_one_chunk(self):
        engine = ChunkingEngine(max_chars=50, overlap=10)
        text = "x" * 50

        chunks = engine.chunk_text(text)

        assert [c.content for c in chunks] == [text]

    def test_empty_and_whitespace_text_yield_no_chunks(self):
        engine = ChunkingEngine()

        assert engine.chunk_text("") == []
        assert engine.chunk_text("   \n\t  ") == []

    def test_prefers_sentence_boundary_past_half_window(self):
        engine = ChunkingEngine(max_chars=1000, overlap=100)
        text = "A" * 600 + "." + "B" * 600

        chunks = engine.chunk_text(text)

        assert len(chunks) == 2
        assert chunks[0].content == "A" * 600 + "."
        # Second window starts `overlap` characters before the break
        assert chunks[1].content == "A" * 99 + "." + "B" * 600

    def test_ignores_boundary_before_half_window(self):
        engine = ChunkingEngine(max_chars=1000, overlap=100)
        text = "A" * 300 + "." + "B" * 1000

        spans = engine.windows(text)

        assert spans[0] == (0, 1000)

    def test_boundary_at_window_end_is_not_used(self):
        engine = ChunkingEngine(max_chars=10, overlap=2)
        text = "abcdefghij.klmnop"

        spans = engine.windows(text)

        assert spans == [(0, 10), (8, 17)]
        assert all(end - start <= 10 for start, end in spans)

    def test_newline_counts_as_boundary(self):
        engine = ChunkingEngine(max_chars=100, overlap=0)
        text = "x" * 70 + "\n" + "y" * 70

        chunks = engine.chunk_text(text)

        assert chunks[0].content == "x" * 70
        assert chunks[1].content == "y" * 70

    def test_long_text_is_covered_without_gaps(self):
        engine = ChunkingEngine(max_chars=120, overlap=20)
        sentences = [f"Sentence number {i} talks about topic {i % 7}." for i in range(60)]
        text = " ".join(sentences)

        spans = engine.windows(text)

        assert spans[0][0] == 0
        assert spans[-1][1] == len(text)
        for (_, previous_end), (start, _) in zip(spans, spans[1:]):
            assert start <= previous_end
        for start, end in spans:
            assert end - start <= 120

    def test_chunks_are_never_whitespace_only(self):
        engine = ChunkingEngine(max_chars=20, overlap=5)
        text = "word " * 10 + " " * 40 + "end."

        chunks = engine.chunk_text(text)

        assert chunks
        assert all(c.content.strip() == c.content and c.content for c in chunks)
        assert [c.id for c in chunks] == list(range(len(chunks)))

    def test_overlap_larger_than_window_still_terminates(self):
        engine = ChunkingEngine(max_chars=10, overlap=20)

        spans = engine.windows("a" * 25)

        assert spans == [(0, 10), (10, 20), (20, 25)]

    def test_invalid_sizes_raise(self):
        with pytest.raises(ValueError, match="max_chars"):
            ChunkingEngine(max_chars=0)
        with pytest.raises(ValueError, match="overlap"):
            ChunkingEngine(max_chars=100, overlap=-1)

    def test_clean_text_collapses_whitespace(self):
        raw = "Hello   world\t!\r\n\n\n\n  Next   paragraph  "

        assert ChunkingEngine.clean_text(raw) == "Hello world !\n\nNext paragraph"
