"""
Graph construction for the book condensing workflow.

    START -> prepare_run -> build_guide -> condense_chapters -> finalize -> END

Collaborators (oracle, checkpoint store, config) are bound when the graph is
built, so tests can compile a graph around a scripted oracle and an
in-memory store.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from langgraph.graph import END, START, StateGraph

from core.checkpoint import CONDENSED_BOOK_KEY, DOCUMENT_KEY, RUN_MANIFEST_KEY, CheckpointStore
from workflows.shared.llm_utils import Oracle
from workflows.shared.token_utils import get_tokenizer
from workflows.shared.tracing import node_traceable

from .artifacts import read_document, read_manifest, write_document
from .assembly import CondensedBook
from .chapters import ChapterPipeline
from .config import CondensingConfig
from .errors import PreconditionError
from .guide import GuideBuilder
from .segmentation import compute_params
from .state import BookCondensingState, PipelineRun

logger = logging.getLogger(__name__)


def new_pipeline_run(run_id: str, total_tokens: int, config: CondensingConfig) -> PipelineRun:
    """Fix a run's parameters: segmentation from the document size, the rest from ``config``."""
    return PipelineRun(
        run_id=run_id,
        guide_params=config.guide_params or compute_params(total_tokens, config.guide_band),
        chapter_params=config.chapter_params or compute_params(total_tokens, config.chapter_band),
        tolerance=config.tolerance,
        total_tokens=total_tokens,
        tokenizer_model=config.tokenizer_model,
        stage_settings=config.stage_settings(),
    )


def create_book_condensing_graph(
    oracle: Oracle,
    store: CheckpointStore,
    config: Optional[CondensingConfig] = None,
):
    """Compile the condensing graph around the given collaborators."""
    config = config or CondensingConfig()
    tokenizer = get_tokenizer(config.tokenizer_model)
    guide_builder = GuideBuilder(oracle, store, config, tokenizer)
    chapter_pipeline = ChapterPipeline(oracle, store, config, tokenizer)

    @node_traceable("PrepareRun")
    async def prepare_run(state: BookCondensingState) -> dict:
        run_id = state["run_id"]
        given = state.get("document")

        if store.has(run_id, DOCUMENT_KEY):
            document = read_document(store, run_id)
            if given and given != document:
                raise PreconditionError(
                    f"Run '{run_id}' already holds a different document; start a new run instead"
                )
            logger.info(f"Resuming run {run_id}")
        else:
            if not given or not given.strip():
                raise PreconditionError(f"Run '{run_id}' has no document to condense")
            document = given
            write_document(store, run_id, document, tokenizer.count(document))

        if store.has(run_id, RUN_MANIFEST_KEY):
            run = read_manifest(store, run_id)
            if run.stage_settings != config.stage_settings() or run.tokenizer_model != config.tokenizer_model:
                logger.info(f"Run {run_id}: keeping the stage settings and tokenizer from its manifest")
        else:
            run = new_pipeline_run(run_id, tokenizer.count(document), config)
            store.write(run_id, RUN_MANIFEST_KEY, run.to_manifest())
            logger.info(
                f"Run {run_id}: {run.total_tokens:,} tokens, guide chunks "
                f"{run.guide_params.chunk_tokens:,}/{run.guide_params.overlap_tokens:,}, chapter chunks "
                f"{run.chapter_params.chunk_tokens:,}/{run.chapter_params.overlap_tokens:,}"
            )

        return {"document": document, "run": run, "current_phase": "guide"}

    @node_traceable("BuildGuide")
    async def build_guide(state: BookCondensingState) -> dict:
        guide = await guide_builder.build(state["run"], state["document"])
        return {"guide": guide, "current_phase": "chapters"}

    @node_traceable("CondenseChapters")
    async def condense_chapters(state: BookCondensingState) -> dict:
        results = await chapter_pipeline.run(
            state["run"],
            state["document"],
            state["guide"],
            stop_after=state.get("stop_after"),
        )
        return {"stage_results": results, "current_phase": "finalize"}

    @node_traceable("Finalize")
    async def finalize(state: BookCondensingState) -> dict:
        run = state["run"]
        results = state["stage_results"]
        condensed = None

        if run.stage_count and run.watermark == run.stage_count - 1:
            condensed = CondensedBook.assemble(run.run_id, state["guide"], results)
            if not store.has(run.run_id, CONDENSED_BOOK_KEY):
                store.write(run.run_id, CONDENSED_BOOK_KEY, condensed.to_dict())
            logger.info(
                f"Run {run.run_id} complete: {condensed.metrics['input_tokens']:,} -> "
                f"{condensed.metrics['output_tokens']:,} tokens over {len(results)} stages"
            )
        else:
            logger.info(f"Run {run.run_id} stopped after stage {run.watermark} of {run.stage_count}")

        return {
            "condensed": condensed,
            "completed_at": datetime.now(timezone.utc),
            "current_phase": "complete",
        }

    builder = StateGraph(BookCondensingState)

    builder.add_node("prepare_run", prepare_run)
    builder.add_node("build_guide", build_guide)
    builder.add_node("condense_chapters", condense_chapters)
    builder.add_node("finalize", finalize)

    builder.add_edge(START, "prepare_run")
    builder.add_edge("prepare_run", "build_guide")
    builder.add_edge("build_guide", "condense_chapters")
    builder.add_edge("condense_chapters", "finalize")
    builder.add_edge("finalize", END)

    return builder.compile()
