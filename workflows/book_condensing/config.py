"""Run-level settings for a condensing run."""

from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Optional

from core.config import get_tokenizer_model
from workflows.shared.retry_utils import RetryPolicy

from .segmentation import (
    CHAPTER_BAND,
    DEFAULT_TOLERANCE,
    GUIDE_BAND,
    SegmentationBand,
    SegmentationParams,
)


@dataclass(frozen=True)
class StageSettings:
    """Output shaping of the chapter stages, pinned in the run manifest."""

    target_stage_tokens: Optional[int] = None
    condensation_ratio: float = 0.3
    output_shrink_factor: float = 0.85
    min_stage_tokens: int = 300
    max_stage_tokens: int = 16_000
    continuation_cue_tokens: int = 600
    carry_full_previous: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StageSettings":
        # Manifests written before a knob existed fall back to its default
        return cls(**{f.name: data[f.name] for f in fields(cls) if f.name in data})


@dataclass
class CondensingConfig:
    """Knobs for one run.

    Segmentation parameters, the tokenizer and the stage settings are fixed
    in the run manifest when a run starts; resuming the run uses the stored
    values, whatever this config says.

    Args:
        tolerance: Relative chunk-size tolerance for both segmentation passes
        tokenizer_model: Model id whose vocabulary sizes the chunks
        guide_band / chapter_band: Reference bands for computing parameters
        guide_params / chapter_params: Fixed parameters, bypassing the bands
        map_retry / polish_retry / stage_retry: Per call-site retry policies
        target_stage_tokens: Caller-level output target per stage; derived
            from ``condensation_ratio`` of the chunk when None
        output_shrink_factor: Applied to the target so stages aim low
        continuation_cue_tokens: Tail of the previous stage passed forward
        carry_full_previous: Pass the whole previous stage instead of the cue
    """

    tolerance: float = DEFAULT_TOLERANCE
    tokenizer_model: str = field(default_factory=get_tokenizer_model)

    guide_band: SegmentationBand = GUIDE_BAND
    chapter_band: SegmentationBand = CHAPTER_BAND
    guide_params: Optional[SegmentationParams] = None
    chapter_params: Optional[SegmentationParams] = None

    map_retry: RetryPolicy = field(default_factory=lambda: RetryPolicy(max_attempts=3))
    polish_retry: RetryPolicy = field(default_factory=lambda: RetryPolicy(max_attempts=2))
    stage_retry: RetryPolicy = field(default_factory=lambda: RetryPolicy(max_attempts=3))

    target_stage_tokens: Optional[int] = None
    condensation_ratio: float = 0.3
    output_shrink_factor: float = 0.85
    min_stage_tokens: int = 300
    max_stage_tokens: int = 16_000

    continuation_cue_tokens: int = 600
    carry_full_previous: bool = False

    guide_map_max_tokens: int = 4096
    guide_polish_max_tokens: int = 8192

    def with_retry_policy(self, policy: RetryPolicy) -> "CondensingConfig":
        """Copy of this config using ``policy`` at every call-site."""
        return replace(self, map_retry=policy, polish_retry=policy, stage_retry=policy)

    def stage_settings(self) -> StageSettings:
        return StageSettings(**{f.name: getattr(self, f.name) for f in fields(StageSettings)})
