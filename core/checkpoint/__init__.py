"""
Run-scoped, append-only artifact storage.

Usage:
    from core.checkpoint import FileCheckpointStore, chapter_stage_key

    store = FileCheckpointStore(".condenser/checkpoints")
    if not store.has(run_id, chapter_stage_key(3)):
        store.write(run_id, chapter_stage_key(3), payload)
"""

from .errors import (
    ArtifactNotFoundError,
    CheckpointConflictError,
    CheckpointError,
    InvalidArtifactKeyError,
)
from .keys import (
    CHAPTER_STAGE_KIND,
    CONDENSED_BOOK_KEY,
    DOCUMENT_KEY,
    GUIDE_AGGREGATE_KEY,
    GUIDE_FINAL_KEY,
    GUIDE_PARTIAL_KIND,
    RUN_MANIFEST_KEY,
    chapter_stage_key,
    guide_partial_key,
    parse_key,
    segmentation_key,
)
from .store import (
    CheckpointStore,
    FileCheckpointStore,
    MemoryCheckpointStore,
    validate_run_id,
)

__all__ = [
    "CheckpointStore",
    "FileCheckpointStore",
    "MemoryCheckpointStore",
    "validate_run_id",
    "CheckpointError",
    "ArtifactNotFoundError",
    "CheckpointConflictError",
    "InvalidArtifactKeyError",
    "DOCUMENT_KEY",
    "RUN_MANIFEST_KEY",
    "GUIDE_AGGREGATE_KEY",
    "GUIDE_FINAL_KEY",
    "CONDENSED_BOOK_KEY",
    "GUIDE_PARTIAL_KIND",
    "CHAPTER_STAGE_KIND",
    "chapter_stage_key",
    "guide_partial_key",
    "segmentation_key",
    "parse_key",
]
