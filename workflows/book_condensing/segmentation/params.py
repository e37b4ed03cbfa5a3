"""Chunk-size and overlap targets derived from total document size."""

from dataclasses import dataclass


@dataclass(frozen=True)
class SegmentationBand:
    """Reference bands for interpolating chunk size.

    Documents at or below ``min_document_tokens`` get ``min_chunk_tokens``;
    at or above ``max_document_tokens`` they get ``max_chunk_tokens``;
    in between, chunk size moves linearly. Overlap is ``overlap_ratio`` of
    the chunk size, clamped to the overlap bounds.
    """

    min_document_tokens: int
    max_document_tokens: int
    min_chunk_tokens: int
    max_chunk_tokens: int
    overlap_ratio: float = 0.10
    min_overlap_tokens: int = 400
    max_overlap_tokens: int = 2000


@dataclass(frozen=True)
class SegmentationParams:
    chunk_tokens: int
    overlap_tokens: int

    def to_dict(self) -> dict:
        return {"chunk_tokens": self.chunk_tokens, "overlap_tokens": self.overlap_tokens}

    @classmethod
    def from_dict(cls, data: dict) -> "SegmentationParams":
        return cls(chunk_tokens=int(data["chunk_tokens"]), overlap_tokens=int(data["overlap_tokens"]))


# Fine-grained pass feeding the chapter pipeline
CHAPTER_BAND = SegmentationBand(
    min_document_tokens=80_000,
    max_document_tokens=1_200_000,
    min_chunk_tokens=11_000,
    max_chunk_tokens=40_000,
)

# Coarse pass feeding the guide builder: fewer, larger chunks
GUIDE_BAND = SegmentationBand(
    min_document_tokens=80_000,
    max_document_tokens=1_200_000,
    min_chunk_tokens=40_000,
    max_chunk_tokens=120_000,
    max_overlap_tokens=4000,
)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def compute_params(total_tokens: int, band: SegmentationBand = CHAPTER_BAND) -> SegmentationParams:
    """Interpolate chunk and overlap targets for a document of ``total_tokens``.

    >>> compute_params(100_000)
    SegmentationParams(chunk_tokens=11518, overlap_tokens=1152)
    """
    span = max(1, band.max_document_tokens - band.min_document_tokens)
    fraction = _clamp((total_tokens - band.min_document_tokens) / span, 0.0, 1.0)

    chunk_tokens = round(
        band.min_chunk_tokens + fraction * (band.max_chunk_tokens - band.min_chunk_tokens)
    )
    overlap_tokens = round(
        _clamp(chunk_tokens * band.overlap_ratio, band.min_overlap_tokens, band.max_overlap_tokens)
    )
    return SegmentationParams(chunk_tokens=chunk_tokens, overlap_tokens=overlap_tokens)
