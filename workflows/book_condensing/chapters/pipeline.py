"""
Context-carrying chapter pipeline.

Fine chunks are condensed strictly in order. Stage ``i`` sees the finalized
guide, a continuation cue built from stage ``i-1`` and its own chunk text, so
it can only start once ``i-1`` is COMPLETED. Every completed stage is
checkpointed under ``chapter-stage-NNNN``; on resume the contiguous completed
prefix is loaded verbatim and processing picks up right after it.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from core.checkpoint import (
    CHAPTER_STAGE_KIND,
    CheckpointConflictError,
    CheckpointStore,
    chapter_stage_key,
    parse_key,
)
from workflows.shared.llm_utils import Oracle, OracleError, OracleRequest, coerce_result
from workflows.shared.retry_utils import RetryExhaustedError, with_retry
from workflows.shared.token_utils import Tokenizer, get_tokenizer

from ..artifacts import load_or_segment, run_tokenizer, utc_now
from ..config import CondensingConfig, StageSettings
from ..errors import StageExhaustedError
from ..prompts import CHAPTER_STAGE_SYSTEM, chapter_stage_prompt
from ..schemas import GlobalGuide, StageOutput
from ..segmentation import Chunk, Segmentation
from ..state import PipelineRun, StageMetrics, StageStatus

logger = logging.getLogger(__name__)

CHAPTER_SEGMENTATION = "chapters"
STAGE_CALL_SITE = "chapter-stage"


@dataclass
class StageResult:
    index: int
    output: StageOutput
    metrics: StageMetrics
    resumed: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "output": self.output.to_payload(),
            "metrics": dict(self.metrics),
            "completed_at": utc_now(),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "StageResult":
        return cls(
            index=int(payload["index"]),
            output=StageOutput.model_validate(payload["output"]),
            metrics=StageMetrics(**payload["metrics"]),
            resumed=True,
        )


def stage_budget(chunk: Chunk, settings: StageSettings | CondensingConfig) -> int:
    """Output token target for one stage, shrunk so stages err on the short side."""
    target = settings.target_stage_tokens
    if target is None:
        target = chunk.token_count * settings.condensation_ratio
    budget = int(target * settings.output_shrink_factor)
    return max(settings.min_stage_tokens, min(settings.max_stage_tokens, budget))


def completed_prefix(store: CheckpointStore, run_id: str, stage_count: int) -> int:
    """Watermark of stored stage artifacts: highest contiguous completed index.

    Raises:
        CheckpointConflictError: if an artifact exists beyond a gap, or past
            the last chunk, since it cannot have been produced in order
    """
    watermark = -1
    while watermark + 1 < stage_count and store.has(run_id, chapter_stage_key(watermark + 1)):
        watermark += 1

    for key in store.list_keys(run_id):
        kind, index = parse_key(key)
        if kind == CHAPTER_STAGE_KIND and index is not None and index > watermark:
            raise CheckpointConflictError(
                run_id,
                key,
                f"Stage artifact '{key}' in run '{run_id}' lies beyond the completed prefix "
                f"(watermark {watermark}, {stage_count} stages)",
            )
    return watermark


class ChapterPipeline:
    """Runs the chapter stages of one run in order.

    Budgets, continuation cues and the tokenizer come from the run's
    manifest; ``config`` supplies the retry policy.

    Args:
        oracle: Structured text generator
        store: Checkpoint store for stage artifacts
        config: Retry policy and defaults for runs without pinned settings
        tokenizer: Tokenizer for the fine segmentation and metrics
    """

    def __init__(
        self,
        oracle: Oracle,
        store: CheckpointStore,
        config: Optional[CondensingConfig] = None,
        tokenizer: Optional[Tokenizer] = None,
    ):
        self.oracle = oracle
        self.store = store
        self.config = config or CondensingConfig()
        self.tokenizer = tokenizer or get_tokenizer(self.config.tokenizer_model)

    def segmentation(self, run: PipelineRun, document: str) -> Segmentation:
        return load_or_segment(
            self.store,
            run.run_id,
            CHAPTER_SEGMENTATION,
            document,
            run.chapter_params,
            run.tolerance,
            run_tokenizer(run, self.tokenizer),
        )

    async def run(
        self,
        run: PipelineRun,
        document: str,
        guide: GlobalGuide,
        stop_after: Optional[int] = None,
    ) -> list[StageResult]:
        """Condense every pending stage in order.

        Args:
            run: Run being processed; its statuses are updated in place
            document: Source text
            guide: Finalized guide passed to every stage
            stop_after: Last index to process (default: the final chunk)

        Returns:
            Results for indices 0..last processed, resumed ones included

        Raises:
            StageExhaustedError: when a stage runs out of attempts; the
                index is marked FAILED and nothing after it runs
            CheckpointConflictError: if stored stages are not a contiguous prefix
        """
        segmentation = self.segmentation(run, document)
        run.reset_statuses(len(segmentation))
        last = len(segmentation) - 1 if stop_after is None else min(stop_after, len(segmentation) - 1)

        watermark = completed_prefix(self.store, run.run_id, len(segmentation))
        results: list[StageResult] = []
        for index in range(min(watermark, last) + 1):
            payload = self.store.read(run.run_id, chapter_stage_key(index))
            results.append(StageResult.from_payload(payload))
            run.mark(index, StageStatus.COMPLETED)
        for index in range(last + 1, watermark + 1):
            run.mark(index, StageStatus.COMPLETED)

        if watermark >= 0:
            logger.info(
                f"Run {run.run_id}: reusing stages 0..{watermark}, "
                f"resuming at {watermark + 1} of {len(segmentation)}"
            )

        tokenizer = run_tokenizer(run, self.tokenizer)
        for chunk in segmentation.chunks[watermark + 1:last + 1]:
            previous = results[-1].output if results else None
            results.append(
                await self._run_stage(run, chunk, chunk.text(document), guide, previous, tokenizer)
            )

        return results

    def continuation_cue(
        self,
        previous: Optional[StageOutput],
        settings: Optional[StageSettings] = None,
        tokenizer: Optional[Tokenizer] = None,
    ) -> str:
        """Title plus the tail of the previous stage, or all of it if configured."""
        if previous is None:
            return ""
        settings = settings or self.config.stage_settings()
        text = previous.plain_text()
        if not settings.carry_full_previous:
            text = (tokenizer or self.tokenizer).tail(text, settings.continuation_cue_tokens)
        return f"{previous.title}\n\n{text}"

    async def _run_stage(
        self,
        run: PipelineRun,
        chunk: Chunk,
        text: str,
        guide: GlobalGuide,
        previous: Optional[StageOutput],
        tokenizer: Tokenizer,
    ) -> StageResult:
        index = chunk.index
        run.mark(index, StageStatus.IN_PROGRESS)

        settings = run.stage_settings
        budget = stage_budget(chunk, settings)
        cue = self.continuation_cue(previous, settings, tokenizer)
        request = OracleRequest(
            call_site=STAGE_CALL_SITE,
            system_prompt=CHAPTER_STAGE_SYSTEM,
            user_prompt=chapter_stage_prompt(guide, cue, text, budget),
            output_schema=StageOutput,
            max_tokens=settings.max_stage_tokens,
        )

        attempts = 0

        async def attempt() -> StageOutput:
            nonlocal attempts
            attempts += 1
            return coerce_result(request, await self.oracle.invoke(request))

        try:
            output = await with_retry(
                attempt,
                self.config.stage_retry,
                retry_on=(OracleError,),
                label=f"{STAGE_CALL_SITE} #{index}",
            )
        except RetryExhaustedError as e:
            run.mark(index, StageStatus.FAILED)
            logger.error(f"Run {run.run_id}: stage {index} exhausted {e.attempts} attempts")
            raise StageExhaustedError(STAGE_CALL_SITE, index, e.attempts, run.run_id) from e

        output_tokens = tokenizer.count(output.plain_text())
        result = StageResult(
            index=index,
            output=output,
            metrics=StageMetrics(
                input_tokens=chunk.token_count,
                output_tokens=output_tokens,
                compression_ratio=round(output_tokens / chunk.token_count, 4) if chunk.token_count else 0.0,
                attempts=attempts,
            ),
        )
        self.store.write(run.run_id, chapter_stage_key(index), result.to_payload())
        run.mark(index, StageStatus.COMPLETED)

        logger.info(
            f"Stage {index + 1}/{run.stage_count} '{output.title}': {chunk.token_count:,} -> "
            f"{output_tokens:,} tokens (budget {budget:,}, {attempts} attempt(s))"
        )
        return result
