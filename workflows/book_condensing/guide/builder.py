"""
Guide builder: map over coarse chunks, reduce, polish once.

Map calls are made one chunk at a time so the external call rate stays
predictable. Every partial, the raw aggregate and the polished guide are
checkpointed; a resumed run reuses whatever is already stored.
"""

import logging
from typing import Optional

from core.checkpoint import (
    GUIDE_AGGREGATE_KEY,
    GUIDE_FINAL_KEY,
    CheckpointStore,
    guide_partial_key,
)
from workflows.shared.llm_utils import Oracle, OracleError, OracleRequest, coerce_result
from workflows.shared.retry_utils import RetryExhaustedError, RetryPolicy, with_retry
from workflows.shared.token_utils import Tokenizer, get_tokenizer

from ..artifacts import load_or_segment, run_tokenizer, utc_now
from ..config import CondensingConfig
from ..errors import StageExhaustedError
from ..prompts import (
    GUIDE_MAP_SYSTEM,
    GUIDE_POLISH_SYSTEM,
    guide_map_prompt,
    guide_polish_prompt,
)
from ..schemas import GlobalGuide, GuideAggregate, PartialGuide
from ..segmentation import Chunk
from ..state import PipelineRun
from .aggregate import aggregate_partials

logger = logging.getLogger(__name__)

GUIDE_SEGMENTATION = "guide"
MAP_CALL_SITE = "guide-map"
POLISH_CALL_SITE = "guide-polish"


def read_final_guide(store: CheckpointStore, run_id: str) -> GlobalGuide:
    return GlobalGuide.model_validate(store.read(run_id, GUIDE_FINAL_KEY)["guide"])


class GuideBuilder:
    """Builds the GlobalGuide for one run.

    Args:
        oracle: Structured text generator
        store: Checkpoint store for partials, aggregate and final guide
        config: Retry policies and output ceilings
        tokenizer: Tokenizer for the coarse segmentation
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

    async def build(self, run: PipelineRun, document: str) -> GlobalGuide:
        """Return the run's finalized guide, building whatever is missing.

        Raises:
            StageExhaustedError: if a map call or the polish call runs out
                of attempts
        """
        run_id = run.run_id
        if self.store.has(run_id, GUIDE_FINAL_KEY):
            logger.info(f"Guide already finalized for run {run_id}, skipping builder")
            return read_final_guide(self.store, run_id)

        segmentation = load_or_segment(
            self.store,
            run_id,
            GUIDE_SEGMENTATION,
            document,
            run.guide_params,
            run.tolerance,
            run_tokenizer(run, self.tokenizer),
        )
        logger.info(f"Building guide for run {run_id} from {len(segmentation)} coarse chunks")

        partials = []
        for chunk in segmentation.chunks:
            partials.append(
                await self._map_chunk(run_id, chunk, chunk.text(document), len(segmentation))
            )

        aggregate = self._aggregate(run_id, partials)
        return await self._polish(run_id, aggregate)

    async def _map_chunk(self, run_id: str, chunk: Chunk, text: str, total: int) -> PartialGuide:
        key = guide_partial_key(chunk.index)
        if self.store.has(run_id, key):
            logger.debug(f"Reusing {key} for run {run_id}")
            return PartialGuide.model_validate(self.store.read(run_id, key)["guide"])

        request = OracleRequest(
            call_site=MAP_CALL_SITE,
            system_prompt=GUIDE_MAP_SYSTEM,
            user_prompt=guide_map_prompt(text, chunk.index, total),
            output_schema=PartialGuide,
            max_tokens=self.config.guide_map_max_tokens,
        )

        def validate(result) -> PartialGuide:
            partial = coerce_result(request, result)
            if partial.is_empty():
                raise OracleError(MAP_CALL_SITE, f"empty partial guide for chunk {chunk.index}")
            return partial

        partial, attempts = await self._call(
            run_id, request, validate, self.config.map_retry, chunk.index
        )
        self.store.write(
            run_id,
            key,
            {
                "index": chunk.index,
                "guide": partial.model_dump(),
                "attempts": attempts,
                "completed_at": utc_now(),
            },
        )
        logger.info(
            f"Guide partial {chunk.index + 1}/{total}: {len(partial.characters)} characters, "
            f"{len(partial.timeline)} events ({attempts} attempt(s))"
        )
        return partial

    def _aggregate(self, run_id: str, partials: list[PartialGuide]) -> GuideAggregate:
        if self.store.has(run_id, GUIDE_AGGREGATE_KEY):
            return GuideAggregate.model_validate(self.store.read(run_id, GUIDE_AGGREGATE_KEY))

        aggregate = aggregate_partials(partials)
        self.store.write(run_id, GUIDE_AGGREGATE_KEY, aggregate.model_dump())
        logger.info(
            f"Aggregated {aggregate.partial_count} partials: {len(aggregate.characters)} characters, "
            f"{len(aggregate.terms)} terms, {len(aggregate.timeline)} events"
        )
        return aggregate

    async def _polish(self, run_id: str, aggregate: GuideAggregate) -> GlobalGuide:
        request = OracleRequest(
            call_site=POLISH_CALL_SITE,
            system_prompt=GUIDE_POLISH_SYSTEM,
            user_prompt=guide_polish_prompt(aggregate),
            output_schema=GlobalGuide,
            max_tokens=self.config.guide_polish_max_tokens,
        )
        aggregate_has_content = bool(
            aggregate.characters or aggregate.locations or aggregate.terms or aggregate.timeline
        )

        def validate(result) -> GlobalGuide:
            guide = coerce_result(request, result)
            if guide.is_empty() and aggregate_has_content:
                raise OracleError(POLISH_CALL_SITE, "polish returned an empty guide")
            return guide

        guide, attempts = await self._call(run_id, request, validate, self.config.polish_retry, None)
        self.store.write(
            run_id,
            GUIDE_FINAL_KEY,
            {"guide": guide.model_dump(), "attempts": attempts, "completed_at": utc_now()},
        )
        logger.info(
            f"Guide finalized for run {run_id}: {len(guide.characters)} characters, "
            f"{len(guide.timeline)} events ({attempts} attempt(s))"
        )
        return guide

    async def _call(self, run_id, request, validate, policy: RetryPolicy, index):
        attempts = 0

        async def attempt():
            nonlocal attempts
            attempts += 1
            return validate(await self.oracle.invoke(request))

        label = request.call_site if index is None else f"{request.call_site} #{index}"
        try:
            result = await with_retry(attempt, policy, retry_on=(OracleError,), label=label)
        except RetryExhaustedError as e:
            raise StageExhaustedError(request.call_site, index, e.attempts, run_id) from e
        return result, attempts
