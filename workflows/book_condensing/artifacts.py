"""Reading and writing run artifacts shared by the guide and chapter passes."""

import logging
from datetime import datetime, timezone
from typing import Any

from core.checkpoint import (
    DOCUMENT_KEY,
    RUN_MANIFEST_KEY,
    ArtifactNotFoundError,
    CheckpointStore,
    segmentation_key,
)
from workflows.shared.token_utils import Tokenizer, get_tokenizer

from .errors import PreconditionError
from .segmentation import Segmentation, SegmentationParams, segment
from .state import PipelineRun

logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def write_document(store: CheckpointStore, run_id: str, document: str, total_tokens: int) -> None:
    store.write(
        run_id,
        DOCUMENT_KEY,
        {"text": document, "total_tokens": total_tokens, "created_at": utc_now()},
    )


def read_document(store: CheckpointStore, run_id: str) -> str:
    """Source text of a run.

    Raises:
        PreconditionError: if the run has no stored document; nothing can be
            replayed without it
    """
    try:
        payload = store.read(run_id, DOCUMENT_KEY)
    except ArtifactNotFoundError as e:
        raise PreconditionError(
            f"Run '{run_id}' has no '{DOCUMENT_KEY}' artifact; cannot resume without the source text"
        ) from e
    return payload["text"]


def read_manifest(store: CheckpointStore, run_id: str) -> PipelineRun:
    try:
        return PipelineRun.from_manifest(store.read(run_id, RUN_MANIFEST_KEY))
    except ArtifactNotFoundError as e:
        raise PreconditionError(f"Run '{run_id}' has no '{RUN_MANIFEST_KEY}' artifact") from e


def load_or_segment(
    store: CheckpointStore,
    run_id: str,
    pass_name: str,
    document: str,
    params: SegmentationParams,
    tolerance: float,
    tokenizer: Tokenizer,
) -> Segmentation:
    """Stored segmentation for ``pass_name``, computing and storing it if absent.

    Persisting the boundaries keeps chunk indices stable across resumes even
    if segmentation code or tokenizer data change in between.
    """
    key = segmentation_key(pass_name)
    if store.has(run_id, key):
        segmentation = Segmentation.from_dict(store.read(run_id, key))
        logger.debug(f"Loaded {pass_name} segmentation ({len(segmentation)} chunks) for run {run_id}")
        return segmentation

    segmentation = segment(
        document,
        target_tokens=params.chunk_tokens,
        overlap_tokens=params.overlap_tokens,
        tolerance=tolerance,
        tokenizer=tokenizer,
    )
    store.write(run_id, key, segmentation.to_dict())
    return segmentation


def copy_artifact(store: CheckpointStore, source_run_id: str, target_run_id: str, key: str) -> bool:
    """Copy one artifact between runs; returns False if the source lacks it."""
    if not store.has(source_run_id, key):
        return False
    payload: dict[str, Any] = store.read(source_run_id, key)
    store.write(target_run_id, key, payload)
    return True


def run_tokenizer(run: PipelineRun, default: Tokenizer) -> Tokenizer:
    """Tokenizer recorded in the run's manifest; ``default`` when it matches."""
    if default.model == run.tokenizer_model:
        return default
    logger.debug(f"Run {run.run_id} was started with tokenizer '{run.tokenizer_model}', using it")
    return get_tokenizer(run.tokenizer_model)
