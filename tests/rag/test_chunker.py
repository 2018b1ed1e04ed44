"""
Test suite for TextChunker.

Verifies single-chunk short texts, sentence-boundary snapping, the size bound
and that consecutive chunks neither overlap nor drop characters.
"""

import pytest

from qdrant_indexer.rag.chunker import TextChunker, chunk


class TestTextChunker:

    def test_short_text_should_return_single_trimmed_chunk(self) -> None:
        assert chunk("  Hello world.  ", 100) == ["Hello world."]

    def test_text_equal_to_limit_should_be_single_chunk(self) -> None:
        text = "x" * 50

        assert chunk(text, 50) == [text]

    def test_empty_text_should_return_no_chunks(self) -> None:
        assert chunk("", 10) == []

    def test_every_chunk_should_respect_max_size(self) -> None:
        text = "This is a test. Another sentence here. " * 20

        pieces = chunk(text, 40)

        assert pieces
        assert all(0 < len(p) <= 40 for p in pieces)

    def test_split_should_snap_to_period_past_midpoint(self) -> None:
        # window = first 20 chars "Hello there world. X", period at index 17 > 10
        text = "Hello there world. Xylophones are loud instruments"

        pieces = chunk(text, 20)

        assert pieces[0] == "Hello there world."
        assert pieces[1].startswith("Xylophones")

    def test_period_before_midpoint_should_not_snap(self) -> None:
        # first window "Hi. abcdefghijklmnop" has its period at index 2 <= 10
        text = "Hi. abcdefghijklmnopqrstuvwxyz"

        pieces = chunk(text, 20)

        assert pieces[0] == "Hi. abcdefghijklmnop"

    def test_small_window_sample_should_split_on_boundary_when_possible(self) -> None:
        text = "This is a test. Another sentence here."

        pieces = chunk(text, 10)

        assert all(len(p) <= 10 for p in pieces)
        assert "".join(pieces).replace(" ", "") == text.replace(" ", "")

    def test_chunks_should_reconstruct_text_without_whitespace(self) -> None:
        text = ("Qdrant stores vectors. Chunks end on periods when they can. "
                "Nothing is lost between chunks. ") * 15

        pieces = chunk(text, 64)

        assert "".join(pieces).replace(" ", "") == text.replace(" ", "")

    def test_chunking_should_be_deterministic(self) -> None:
        text = "Sentence number one. Sentence number two. " * 30

        assert chunk(text, 70) == chunk(text, 70)

    def test_last_window_should_not_snap(self) -> None:
        # second window reaches the end, so its late period is not a cut point
        text = "a" * 20 + "b" * 12 + ".cc"

        pieces = chunk(text, 20)

        assert pieces == ["a" * 20, "b" * 12 + ".cc"]

    def test_non_positive_size_should_be_rejected(self) -> None:
        with pytest.raises(ValueError):
            TextChunker(chunk_size=0)

    def test_whitespace_only_text_should_return_no_chunks(self) -> None:
        assert chunk("   \n\t ", 10) == []
