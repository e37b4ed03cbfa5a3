"""
Book condensing workflow.

Condenses a long book in two passes over a token-bounded segmentation:
1. Guide - coarse chunks are mapped to partial guides, aggregated and
   polished once into a GlobalGuide
2. Chapters - fine chunks are condensed strictly in order, each stage seeing
   the guide and the end of the previous stage

Every intermediate artifact is checkpointed, so an interrupted run resumes
at its first incomplete step.

Usage:
    from core.checkpoint import FileCheckpointStore
    from workflows.book_condensing import condense_book
    from workflows.shared.llm_utils import LangChainOracle

    book = await condense_book(
        text,
        oracle=LangChainOracle(),
        store=FileCheckpointStore(".condenser/checkpoints"),
    )
    print(book.text())
"""

from workflows.book_condensing.api import condense_book, inspect_run, rerun_stage, resume_book
from workflows.book_condensing.assembly import CondensedBook
from workflows.book_condensing.chapters import ChapterPipeline, StageResult
from workflows.book_condensing.config import CondensingConfig, StageSettings
from workflows.book_condensing.errors import (
    CondensingError,
    PreconditionError,
    StageExhaustedError,
)
from workflows.book_condensing.graph import create_book_condensing_graph
from workflows.book_condensing.guide import GuideBuilder, aggregate_partials
from workflows.book_condensing.schemas import (
    ContentItem,
    GlobalGuide,
    GuideAggregate,
    PartialGuide,
    StageOutput,
)
from workflows.book_condensing.state import PipelineRun, StageStatus, generate_run_id

__all__ = [
    # API
    "condense_book",
    "resume_book",
    "rerun_stage",
    "inspect_run",
    "create_book_condensing_graph",
    "CondensedBook",
    "CondensingConfig",
    "StageSettings",
    # Components
    "GuideBuilder",
    "aggregate_partials",
    "ChapterPipeline",
    "StageResult",
    # State
    "PipelineRun",
    "StageStatus",
    "generate_run_id",
    # Schemas
    "PartialGuide",
    "GuideAggregate",
    "GlobalGuide",
    "ContentItem",
    "StageOutput",
    # Errors
    "CondensingError",
    "PreconditionError",
    "StageExhaustedError",
]
