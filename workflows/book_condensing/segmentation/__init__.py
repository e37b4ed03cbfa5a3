"""Token-bounded segmentation and its size parameters."""

from .elastic import (
    DEFAULT_TOLERANCE,
    Chunk,
    Segmentation,
    find_cut,
    segment,
)
from .params import (
    CHAPTER_BAND,
    GUIDE_BAND,
    SegmentationBand,
    SegmentationParams,
    compute_params,
)

__all__ = [
    "Chunk",
    "Segmentation",
    "segment",
    "find_cut",
    "DEFAULT_TOLERANCE",
    "SegmentationBand",
    "SegmentationParams",
    "compute_params",
    "CHAPTER_BAND",
    "GUIDE_BAND",
]
