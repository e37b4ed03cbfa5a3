"""Ordered, context-carrying chapter stages."""

from .pipeline import ChapterPipeline, StageResult, completed_prefix, stage_budget

__all__ = ["ChapterPipeline", "StageResult", "completed_prefix", "stage_budget"]
