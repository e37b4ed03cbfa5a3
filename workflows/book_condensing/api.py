"""
Public entry points for the book condensing workflow.

Every entry point takes its oracle and checkpoint store explicitly; nothing
is read from module-level state.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from core.checkpoint import (
    CHAPTER_STAGE_KIND,
    CONDENSED_BOOK_KEY,
    DOCUMENT_KEY,
    GUIDE_AGGREGATE_KEY,
    GUIDE_FINAL_KEY,
    GUIDE_PARTIAL_KIND,
    RUN_MANIFEST_KEY,
    CheckpointStore,
    chapter_stage_key,
    parse_key,
    segmentation_key,
)
from workflows.shared.llm_utils import Oracle
from workflows.shared.tracing import add_trace_metadata, workflow_traceable

from .artifacts import copy_artifact, read_document, read_manifest
from .assembly import CondensedBook
from .chapters import StageResult
from .chapters.pipeline import CHAPTER_SEGMENTATION
from .config import CondensingConfig
from .errors import PreconditionError
from .graph import create_book_condensing_graph
from .guide.builder import GUIDE_SEGMENTATION
from .segmentation import Segmentation
from .state import BookCondensingState, generate_run_id

logger = logging.getLogger(__name__)


async def _invoke(
    run_id: str,
    document: Optional[str],
    oracle: Oracle,
    store: CheckpointStore,
    config: Optional[CondensingConfig],
    stop_after: Optional[int] = None,
) -> dict[str, Any]:
    graph = create_book_condensing_graph(oracle, store, config)
    initial_state = BookCondensingState(
        run_id=run_id,
        document=document or "",
        stage_results=[],
        stop_after=stop_after,
        condensed=None,
        started_at=datetime.now(timezone.utc),
        completed_at=None,
        current_phase="starting",
    )
    return await graph.ainvoke(initial_state, config={"run_name": f"condense:{run_id}"})


@workflow_traceable(name="CondenseBook", workflow_type="book_condensing")
async def condense_book(
    text: str,
    *,
    oracle: Oracle,
    store: CheckpointStore,
    run_id: Optional[str] = None,
    settings: Optional[CondensingConfig] = None,
) -> CondensedBook:
    """Condense a whole document.

    Args:
        text: Plain text of the book
        oracle: Structured text generator
        store: Checkpoint store; every intermediate artifact lands here
        run_id: Run identity (default: a fresh timestamped id). Passing the
            id of an interrupted run with the same text resumes it.
        settings: Run settings; a resumed run keeps the parameters pinned in
            its manifest

    Returns:
        CondensedBook with the guide and every stage in order

    Raises:
        StageExhaustedError: if any oracle call site runs out of attempts;
            completed artifacts are kept and the run can be resumed
        PreconditionError: for an empty text or a run id holding another text

    Example:
        book = await condense_book(
            text,
            oracle=LangChainOracle(),
            store=FileCheckpointStore(get_checkpoint_dir()),
        )
        print(book.text())
    """
    run_id = run_id or generate_run_id()
    add_trace_metadata({"run_id": run_id})
    logger.info(f"Starting condensing run {run_id} ({len(text):,} chars)")

    result = await _invoke(run_id, text, oracle, store, settings)
    return result["condensed"]


@workflow_traceable(name="ResumeBook", workflow_type="book_condensing")
async def resume_book(
    run_id: str,
    *,
    oracle: Oracle,
    store: CheckpointStore,
    settings: Optional[CondensingConfig] = None,
) -> CondensedBook:
    """Continue an interrupted run from its first incomplete step.

    Raises:
        PreconditionError: if the run's source document was never stored
    """
    read_document(store, run_id)
    add_trace_metadata({"run_id": run_id, "resumed": True})
    logger.info(f"Resuming condensing run {run_id}")

    result = await _invoke(run_id, None, oracle, store, settings)
    return result["condensed"]


@workflow_traceable(name="RerunStage", workflow_type="book_condensing")
async def rerun_stage(
    source_run_id: str,
    index: int,
    *,
    oracle: Oracle,
    store: CheckpointStore,
    new_run_id: Optional[str] = None,
    settings: Optional[CondensingConfig] = None,
) -> StageResult:
    """Produce a fresh output for one chapter stage under a new run id.

    The source run is left untouched. The new run receives copies of the
    source document, segmentations, guide and every stage before ``index``,
    then processes only ``index``.

    Raises:
        PreconditionError: if the source run lacks what the stage depends on,
            or ``new_run_id`` is already in use
    """
    document = read_document(store, source_run_id)
    source = read_manifest(store, source_run_id)

    chapters_key = segmentation_key(CHAPTER_SEGMENTATION)
    if not store.has(source_run_id, chapters_key) or not store.has(source_run_id, GUIDE_FINAL_KEY):
        raise PreconditionError(f"Run '{source_run_id}' has no finalized guide and chapter segmentation")
    stage_count = len(Segmentation.from_dict(store.read(source_run_id, chapters_key)))
    if not 0 <= index < stage_count:
        raise PreconditionError(f"Stage {index} out of range; run '{source_run_id}' has {stage_count} stages")
    for earlier in range(index):
        if not store.has(source_run_id, chapter_stage_key(earlier)):
            raise PreconditionError(
                f"Stage {index} of run '{source_run_id}' cannot be re-run before stage {earlier} completes"
            )

    new_run_id = new_run_id or generate_run_id()
    if store.list_keys(new_run_id):
        raise PreconditionError(f"Run '{new_run_id}' already exists")

    for key in (
        DOCUMENT_KEY,
        segmentation_key(GUIDE_SEGMENTATION),
        chapters_key,
        GUIDE_AGGREGATE_KEY,
        GUIDE_FINAL_KEY,
    ):
        copy_artifact(store, source_run_id, new_run_id, key)
    for earlier in range(index):
        copy_artifact(store, source_run_id, new_run_id, chapter_stage_key(earlier))

    source.run_id = new_run_id
    manifest = source.to_manifest()
    manifest["rerun_of"] = {"run_id": source_run_id, "index": index}
    store.write(new_run_id, RUN_MANIFEST_KEY, manifest)

    add_trace_metadata({"run_id": new_run_id, "rerun_of": source_run_id, "index": index})
    logger.info(f"Re-running stage {index} of run {source_run_id} as run {new_run_id}")

    result = await _invoke(new_run_id, document, oracle, store, settings, stop_after=index)
    return result["stage_results"][index]


def inspect_run(store: CheckpointStore, run_id: str) -> dict[str, Any]:
    """Summary of what a run has stored, without touching the oracle."""
    keys = store.list_keys(run_id)
    if not keys:
        raise PreconditionError(f"Run '{run_id}' has no artifacts")

    partials = []
    stages = []
    for key in keys:
        kind, index = parse_key(key)
        if kind == GUIDE_PARTIAL_KIND and index is not None:
            partials.append(index)
        elif kind == CHAPTER_STAGE_KIND and index is not None:
            stages.append(index)
    stages.sort()

    watermark = -1
    for index in stages:
        if index != watermark + 1:
            break
        watermark = index

    chapters_key = segmentation_key(CHAPTER_SEGMENTATION)
    stage_count = None
    if store.has(run_id, chapters_key):
        stage_count = len(Segmentation.from_dict(store.read(run_id, chapters_key)))

    manifest = store.read(run_id, RUN_MANIFEST_KEY) if store.has(run_id, RUN_MANIFEST_KEY) else None
    return {
        "run_id": run_id,
        "manifest": manifest,
        "has_document": DOCUMENT_KEY in keys,
        "guide_partials": sorted(partials),
        "guide_final": GUIDE_FINAL_KEY in keys,
        "stage_count": stage_count,
        "completed_stages": stages,
        "watermark": watermark,
        "complete": CONDENSED_BOOK_KEY in keys,
        "keys": keys,
    }
