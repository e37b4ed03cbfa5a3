"""
Tests for segmentation parameters and the elastic segmenter.
"""

import pytest

from workflows.book_condensing.segmentation import (
    CHAPTER_BAND,
    GUIDE_BAND,
    Segmentation,
    SegmentationBand,
    SegmentationParams,
    compute_params,
    find_cut,
    segment,
)

from testing.utils import sample_book, unbroken_text

# Slack for re-counting a trimmed slice on its own
RECOUNT_SLACK = 3


class TestComputeParams:
    def test_reference_example(self):
        params = compute_params(100_000)
        assert params == SegmentationParams(chunk_tokens=11518, overlap_tokens=1152)

    def test_clamped_below_band(self):
        assert compute_params(5_000) == SegmentationParams(11_000, 1_100)

    def test_clamped_above_band(self):
        assert compute_params(5_000_000) == SegmentationParams(40_000, 2_000)

    def test_band_midpoint(self):
        params = compute_params(640_000)
        assert params.chunk_tokens == 25_500
        assert params.overlap_tokens == 2_000

    def test_monotonic_in_document_size(self):
        sizes = [50_000, 100_000, 300_000, 800_000, 1_200_000, 2_000_000]
        chunks = [compute_params(s).chunk_tokens for s in sizes]
        assert chunks == sorted(chunks)

    def test_overlap_floor(self):
        tiny_band = SegmentationBand(
            min_document_tokens=0,
            max_document_tokens=1,
            min_chunk_tokens=1_000,
            max_chunk_tokens=1_000,
        )
        assert compute_params(10, tiny_band).overlap_tokens == 400

    def test_guide_band_is_coarser(self):
        guide = compute_params(100_000, GUIDE_BAND)
        chapter = compute_params(100_000, CHAPTER_BAND)
        assert guide.chunk_tokens > chapter.chunk_tokens
        assert guide.overlap_tokens == 4_000

    def test_serialization(self):
        params = compute_params(300_000)
        assert SegmentationParams.from_dict(params.to_dict()) == params


class TestFindCut:
    def test_latest_paragraph_wins(self):
        text = "One.\n\nTwo.\n\nThree. Four"
        assert find_cut(text, 0, len(text)) == text.rindex("\n\n")

    def test_sentence_when_no_paragraph(self):
        text = "First sentence. Second one! Third without end"
        assert find_cut(text, 0, len(text)) == text.index("!") + 1

    def test_no_boundary(self):
        assert find_cut("no boundary at all here", 0, 23) is None

    def test_window_limits_search(self):
        text = "Early.\n\nlate text without any boundary"
        assert find_cut(text, 10, len(text)) is None


def _assert_covers(text: str, result: Segmentation) -> None:
    chunks = result.chunks
    assert chunks[0].start_offset == 0
    assert chunks[-1].end_offset == len(text)
    for prev, nxt in zip(chunks, chunks[1:]):
        assert nxt.start_offset > prev.start_offset
        assert nxt.start_offset <= prev.end_offset, "gap between consecutive chunks"
    for i, chunk in enumerate(chunks):
        assert chunk.index == i
        assert chunk.start_offset < chunk.end_offset


def _assert_budget(result: Segmentation) -> None:
    low = result.target_tokens * (1 - result.tolerance) - RECOUNT_SLACK
    high = result.target_tokens * (1 + result.tolerance) + RECOUNT_SLACK
    for chunk in result.chunks[:-1]:
        assert low <= chunk.token_count <= high, chunk


class TestSegment:
    def test_coverage_and_budget(self, tokenizer, book_text):
        result = segment(book_text, target_tokens=400, overlap_tokens=40, tokenizer=tokenizer)
        assert len(result) > 3
        _assert_covers(book_text, result)
        _assert_budget(result)

    def test_prefers_paragraph_breaks(self, tokenizer, book_text):
        result = segment(book_text, target_tokens=400, overlap_tokens=40, tokenizer=tokenizer)
        for chunk in result.chunks[:-1]:
            assert book_text[chunk.end_offset:chunk.end_offset + 2] == "\n\n"

    def test_falls_back_to_sentence_end(self, tokenizer):
        text = sample_book(paragraphs=1, sentences_per_paragraph=300)
        result = segment(text, target_tokens=300, overlap_tokens=30, tokenizer=tokenizer)
        assert len(result) > 2
        for chunk in result.chunks[:-1]:
            assert text[chunk.end_offset - 1] in ".!?"
        _assert_budget(result)

    def test_hard_cut_without_boundaries(self, tokenizer):
        text = unbroken_text(3000)
        result = segment(text, target_tokens=500, overlap_tokens=50, tokenizer=tokenizer)
        _assert_covers(text, result)
        _assert_budget(result)

    def test_terminates_within_bound(self, tokenizer):
        text = unbroken_text(3000)
        result = segment(text, target_tokens=500, overlap_tokens=50, tokenizer=tokenizer)
        min_step = 500 * (1 - 0.15) - 50
        assert len(result) <= result.total_tokens / min_step + 2

    def test_overlap_is_bounded(self, tokenizer, book_text):
        result = segment(book_text, target_tokens=400, overlap_tokens=40, tokenizer=tokenizer)
        for prev, nxt in zip(result.chunks, result.chunks[1:]):
            shared = book_text[nxt.start_offset:prev.end_offset]
            assert tokenizer.count(shared) <= 40 * 2

    def test_deterministic(self, tokenizer, book_text):
        first = segment(book_text, target_tokens=400, overlap_tokens=40, tokenizer=tokenizer)
        second = segment(book_text, target_tokens=400, overlap_tokens=40, tokenizer=tokenizer)
        assert first == second

    def test_zero_overlap_chunks_abut(self, tokenizer, book_text):
        result = segment(book_text, target_tokens=400, overlap_tokens=0, tokenizer=tokenizer)
        _assert_covers(book_text, result)
        for prev, nxt in zip(result.chunks, result.chunks[1:]):
            # At most the token straddling the cut is shared
            assert tokenizer.count(book_text[nxt.start_offset:prev.end_offset]) <= 2

    def test_small_target_stays_under_ceiling(self, tokenizer, book_text):
        # Floor of short chunks (50 tokens) sits above this target's ceiling
        result = segment(book_text, target_tokens=40, overlap_tokens=4, tokenizer=tokenizer)
        assert len(result) > 10
        _assert_covers(book_text, result)
        for chunk in result.chunks[:-1]:
            assert chunk.token_count <= 40 * 1.15 + RECOUNT_SLACK, chunk

    def test_boundaries_match_chunks(self, tokenizer, book_text):
        result = segment(book_text, target_tokens=400, overlap_tokens=40, tokenizer=tokenizer)
        assert len(result.boundaries) == len(result)
        for boundary, chunk in zip(result.boundaries, result.chunks):
            assert boundary == {
                "start": chunk.start_offset,
                "end": chunk.end_offset,
                "tokens": chunk.token_count,
            }
            assert tokenizer.count(book_text[boundary["start"]:boundary["end"]].strip()) == boundary["tokens"]

    def test_short_document_is_one_chunk(self, tokenizer):
        text = "Only a short note. Nothing more."
        result = segment(text, target_tokens=400, overlap_tokens=40, tokenizer=tokenizer)
        assert len(result) == 1
        assert result.chunks[0].text(text) == text

    def test_empty_and_blank_text(self, tokenizer):
        assert len(segment("", target_tokens=400, overlap_tokens=40, tokenizer=tokenizer)) == 0
        assert len(segment(" \n\n \n", target_tokens=400, overlap_tokens=40, tokenizer=tokenizer)) == 0

    def test_serialization_keeps_boundaries(self, tokenizer, book_text):
        result = segment(book_text, target_tokens=400, overlap_tokens=40, tokenizer=tokenizer)
        restored = Segmentation.from_dict(result.to_dict())
        assert restored == result
        assert restored.texts(book_text) == result.texts(book_text)

    @pytest.mark.parametrize(
        "target,overlap,tolerance",
        [
            (0, 0, 0.15),
            (400, -1, 0.15),
            (400, 340, 0.15),
            (400, 40, 1.0),
        ],
    )
    def test_invalid_parameters(self, tokenizer, target, overlap, tolerance):
        with pytest.raises(ValueError):
            segment("Some text.", target, overlap, tolerance=tolerance, tokenizer=tokenizer)
