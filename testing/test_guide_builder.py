"""
Tests for the map / aggregate / polish guide builder.

Uses FakeOracle and the in-memory checkpoint store; no external calls.
"""

import asyncio

import pytest

from core.checkpoint import GUIDE_AGGREGATE_KEY, GUIDE_FINAL_KEY, guide_partial_key, segmentation_key
from workflows.book_condensing.config import CondensingConfig
from workflows.book_condensing.errors import StageExhaustedError
from workflows.book_condensing.graph import new_pipeline_run
from workflows.book_condensing.guide import GuideBuilder, read_final_guide
from workflows.book_condensing.schemas import GlobalGuide, PartialGuide
from workflows.book_condensing.segmentation import SegmentationParams
from workflows.shared.llm_utils import OracleError
from workflows.shared.retry_utils import RetryPolicy

from testing.utils import DEFAULT, FakeOracle

RUN_ID = "guide-run"


def three_chunk_params(total_tokens: int) -> SegmentationParams:
    """Coarse parameters that split a document into exactly three chunks."""
    chunk = round(total_tokens * 0.42)
    return SegmentationParams(chunk_tokens=chunk, overlap_tokens=max(1, chunk // 10))


@pytest.fixture
def config(tokenizer, book_text, no_wait_retry) -> CondensingConfig:
    return CondensingConfig(
        guide_params=three_chunk_params(tokenizer.count(book_text)),
        chapter_params=SegmentationParams(chunk_tokens=400, overlap_tokens=40),
    ).with_retry_policy(no_wait_retry)


@pytest.fixture
def run(tokenizer, book_text, config):
    return new_pipeline_run(RUN_ID, tokenizer.count(book_text), config)


def build(oracle, store, config, tokenizer, run, text):
    builder = GuideBuilder(oracle, store, config, tokenizer)
    return asyncio.run(builder.build(run, text))


class TestGuideBuild:
    def test_retried_chunk_is_merged(self, memory_store, config, tokenizer, run, book_text):
        """Chunk 2 comes back empty twice and succeeds on its third attempt."""
        oracle = FakeOracle().script("guide-map", DEFAULT, {}, {}, DEFAULT)

        guide = build(oracle, memory_store, config, tokenizer, run, book_text)

        segmentation = memory_store.read(RUN_ID, segmentation_key("guide"))
        assert len(segmentation["chunks"]) == 3
        assert oracle.call_count("guide-map") == 5
        assert oracle.call_count("guide-polish") == 1

        attempts = [memory_store.read(RUN_ID, guide_partial_key(i))["attempts"] for i in range(3)]
        assert attempts == [1, 3, 1]

        aggregate = memory_store.read(RUN_ID, GUIDE_AGGREGATE_KEY)
        assert aggregate["partial_count"] == 3
        assert len(aggregate["characters"]) == 3

        assert isinstance(guide, GlobalGuide)
        assert not guide.is_empty()
        assert read_final_guide(memory_store, RUN_ID) == guide

    def test_map_prompts_follow_chunk_order(self, memory_store, config, tokenizer, run, book_text):
        oracle = FakeOracle()
        build(oracle, memory_store, config, tokenizer, run, book_text)

        prompts = [r.user_prompt for r in oracle.calls("guide-map")]
        assert [p.startswith(f"Section {i} of 3.") for i, p in enumerate(prompts, start=1)] == [True] * 3
        assert "Part 1." in prompts[0]
        assert all(r.output_schema is PartialGuide for r in oracle.calls("guide-map"))

    def test_polish_sees_every_partial(self, memory_store, config, tokenizer, run, book_text):
        oracle = FakeOracle()
        build(oracle, memory_store, config, tokenizer, run, book_text)

        polish_prompt = oracle.calls("guide-polish")[0].user_prompt
        for n in (1, 2, 3):
            assert f"Person {n}" in polish_prompt

    def test_map_exhaustion(self, memory_store, config, tokenizer, run, book_text):
        oracle = FakeOracle().script("guide-map", DEFAULT, {}, {}, {})

        with pytest.raises(StageExhaustedError) as exc_info:
            build(oracle, memory_store, config, tokenizer, run, book_text)

        assert exc_info.value.stage == "guide-map"
        assert exc_info.value.index == 1
        assert exc_info.value.attempts == 3
        assert memory_store.has(RUN_ID, guide_partial_key(0))
        assert not memory_store.has(RUN_ID, guide_partial_key(1))
        assert not memory_store.has(RUN_ID, GUIDE_FINAL_KEY)

    def test_resume_reuses_partials(self, memory_store, config, tokenizer, run, book_text):
        failing = FakeOracle().script("guide-map", DEFAULT, OracleError("guide-map", "timeout"), {}, {})
        with pytest.raises(StageExhaustedError):
            build(failing, memory_store, config, tokenizer, run, book_text)
        stored = memory_store.read(RUN_ID, guide_partial_key(0))

        oracle = FakeOracle()
        build(oracle, memory_store, config, tokenizer, run, book_text)

        assert oracle.call_count("guide-map") == 2
        assert oracle.calls("guide-map")[0].user_prompt.startswith("Section 2 of 3.")
        assert memory_store.read(RUN_ID, guide_partial_key(0)) == stored

    def test_finalized_guide_short_circuits(self, memory_store, config, tokenizer, run, book_text):
        first = build(FakeOracle(), memory_store, config, tokenizer, run, book_text)

        oracle = FakeOracle()
        second = build(oracle, memory_store, config, tokenizer, run, book_text)

        assert oracle.call_count() == 0
        assert second == first


class TestPolish:
    def test_polish_retried_once(self, memory_store, config, tokenizer, run, book_text):
        oracle = FakeOracle().script("guide-polish", {}, DEFAULT)
        build(oracle, memory_store, config, tokenizer, run, book_text)

        assert oracle.call_count("guide-polish") == 2
        assert memory_store.read(RUN_ID, GUIDE_FINAL_KEY)["attempts"] == 2

    def test_empty_guide_rejected(self, memory_store, config, tokenizer, run, book_text):
        oracle = FakeOracle().script("guide-polish", GlobalGuide(), DEFAULT)
        guide = build(oracle, memory_store, config, tokenizer, run, book_text)

        assert oracle.call_count("guide-polish") == 2
        assert not guide.is_empty()

    def test_polish_exhaustion_keeps_aggregate(self, memory_store, tokenizer, run, book_text, config):
        config.polish_retry = RetryPolicy(max_attempts=2, base_delay=0.0)
        oracle = FakeOracle().script("guide-polish", {}, {})

        with pytest.raises(StageExhaustedError) as exc_info:
            build(oracle, memory_store, config, tokenizer, run, book_text)

        assert exc_info.value.stage == "guide-polish"
        assert exc_info.value.index is None
        assert exc_info.value.attempts == 2
        assert memory_store.has(RUN_ID, GUIDE_AGGREGATE_KEY)

        # A resumed build goes straight to the polish call
        oracle = FakeOracle()
        build(oracle, memory_store, config, tokenizer, run, book_text)
        assert oracle.call_count("guide-map") == 0
        assert oracle.call_count("guide-polish") == 1
