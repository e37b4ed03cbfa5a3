"""
State schemas for the book condensing workflow.

PipelineRun tracks per-stage progress of one run and is rebuilt from the
checkpoint store on resume; BookCondensingState is the LangGraph state that
flows between graph nodes.
"""

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from typing_extensions import TypedDict

from .config import StageSettings
from .segmentation import SegmentationParams


class StageStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


def generate_run_id(now: Optional[datetime] = None) -> str:
    """Sortable, human-readable run id, e.g. ``2024-05-01_14-30-a1b2c3``."""
    now = now or datetime.now(timezone.utc)
    return f"{now.strftime('%Y-%m-%d_%H-%M')}-{secrets.token_hex(3)}"


@dataclass
class PipelineRun:
    """Progress of one condensing run.

    ``watermark`` is the highest index such that every stage up to and
    including it is COMPLETED; -1 before the first stage completes.
    """

    run_id: str
    guide_params: SegmentationParams
    chapter_params: SegmentationParams
    tolerance: float
    total_tokens: int
    tokenizer_model: str
    stage_settings: StageSettings = field(default_factory=StageSettings)
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    statuses: list[StageStatus] = field(default_factory=list)
    failed_index: Optional[int] = None

    @property
    def watermark(self) -> int:
        mark = -1
        for status in self.statuses:
            if status != StageStatus.COMPLETED:
                break
            mark += 1
        return mark

    @property
    def stage_count(self) -> int:
        return len(self.statuses)

    def reset_statuses(self, count: int) -> None:
        self.statuses = [StageStatus.PENDING] * count
        self.failed_index = None

    def mark(self, index: int, status: StageStatus) -> None:
        if status == StageStatus.IN_PROGRESS and index > 0:
            previous = self.statuses[index - 1]
            if previous != StageStatus.COMPLETED:
                raise RuntimeError(
                    f"Stage {index} cannot start while stage {index - 1} is {previous.value}"
                )
        self.statuses[index] = status
        if status == StageStatus.FAILED:
            self.failed_index = index
        elif self.failed_index == index:
            self.failed_index = None

    def to_manifest(self) -> dict[str, Any]:
        """Immutable run parameters, written once as the run manifest."""
        return {
            "run_id": self.run_id,
            "guide_params": self.guide_params.to_dict(),
            "chapter_params": self.chapter_params.to_dict(),
            "tolerance": self.tolerance,
            "total_tokens": self.total_tokens,
            "tokenizer_model": self.tokenizer_model,
            "stage_settings": self.stage_settings.to_dict(),
            "created_at": self.created_at,
        }

    @classmethod
    def from_manifest(cls, data: dict[str, Any]) -> "PipelineRun":
        return cls(
            run_id=data["run_id"],
            guide_params=SegmentationParams.from_dict(data["guide_params"]),
            chapter_params=SegmentationParams.from_dict(data["chapter_params"]),
            tolerance=float(data["tolerance"]),
            total_tokens=int(data["total_tokens"]),
            tokenizer_model=data["tokenizer_model"],
            stage_settings=StageSettings.from_dict(data.get("stage_settings", {})),
            created_at=data.get("created_at", ""),
        )

    def summary(self) -> dict[str, Any]:
        counts: dict[str, int] = {}
        for status in self.statuses:
            counts[status.value] = counts.get(status.value, 0) + 1
        return {
            "run_id": self.run_id,
            "stages": self.stage_count,
            "watermark": self.watermark,
            "failed_index": self.failed_index,
            "status_counts": counts,
        }


class StageMetrics(TypedDict):
    input_tokens: int
    output_tokens: int
    compression_ratio: float
    attempts: int


class BookCondensingState(TypedDict, total=False):
    """LangGraph state for one condensing run."""

    run_id: str
    document: str
    run: PipelineRun
    guide: Any  # GlobalGuide
    stage_results: list[Any]  # StageResult
    stop_after: Optional[int]
    condensed: Any  # CondensedBook, once every stage is complete
    started_at: datetime
    completed_at: Optional[datetime]
    current_phase: str
