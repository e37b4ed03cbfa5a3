"""Elastic, token-bounded segmentation of long texts.

Chunks are sized in tokens, not characters: the whole text is encoded once
and every cut is computed on token positions, then mapped back to character
offsets through a TokenIndex. Within a tolerance band around the target, a
cut prefers the latest paragraph break, then the latest sentence end, and
otherwise falls back to the hard token ceiling (which may split a sentence).

Consecutive chunks overlap by roughly ``overlap_tokens``. The overlap is
converted to characters using each chunk's own token density, so it stays
proportional on dense and sparse text alike.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from workflows.shared.token_utils import Tokenizer, get_tokenizer

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 0.15
PARAGRAPH_BREAK = "\n\n"
SENTENCE_END_CHARS = ".!?"

# Floor under which a non-final chunk is considered too short
MIN_CHUNK_FLOOR_TOKENS = 50
# Short chunks are extended forward by this fraction of their own length
SHORT_CHUNK_EXTENSION = 0.2
# Cursor jump (fraction of target) after a chunk that trims to nothing
DEGENERATE_SKIP = 0.5


@dataclass(frozen=True)
class Chunk:
    """A contiguous slice ``[start_offset, end_offset)`` of the source text."""

    index: int
    start_offset: int
    end_offset: int
    token_count: int

    def text(self, document: str) -> str:
        return document[self.start_offset:self.end_offset].strip()

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "start_offset": self.start_offset,
            "end_offset": self.end_offset,
            "token_count": self.token_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Chunk":
        return cls(
            index=int(data["index"]),
            start_offset=int(data["start_offset"]),
            end_offset=int(data["end_offset"]),
            token_count=int(data["token_count"]),
        )


@dataclass(frozen=True)
class Segmentation:
    """Result of one segmentation pass over a document."""

    chunks: tuple[Chunk, ...]
    target_tokens: int
    overlap_tokens: int
    tolerance: float
    total_tokens: int

    def __len__(self) -> int:
        return len(self.chunks)

    @property
    def boundaries(self) -> list[dict]:
        return [
            {"start": c.start_offset, "end": c.end_offset, "tokens": c.token_count}
            for c in self.chunks
        ]

    def texts(self, document: str) -> list[str]:
        return [chunk.text(document) for chunk in self.chunks]

    def to_dict(self) -> dict:
        return {
            "target_tokens": self.target_tokens,
            "overlap_tokens": self.overlap_tokens,
            "tolerance": self.tolerance,
            "total_tokens": self.total_tokens,
            "chunks": [chunk.to_dict() for chunk in self.chunks],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Segmentation":
        return cls(
            chunks=tuple(Chunk.from_dict(c) for c in data["chunks"]),
            target_tokens=int(data["target_tokens"]),
            overlap_tokens=int(data["overlap_tokens"]),
            tolerance=float(data["tolerance"]),
            total_tokens=int(data["total_tokens"]),
        )


def find_cut(text: str, window_start: int, window_end: int) -> Optional[int]:
    """Best natural cut inside ``text[window_start:window_end]``.

    The latest paragraph break wins (the cut lands before the break); failing
    that, the position just after the latest sentence-ending character.
    Returns None when the window holds neither.
    """
    window = text[window_start:window_end]

    paragraph = window.rfind(PARAGRAPH_BREAK)
    if paragraph != -1:
        return window_start + paragraph

    sentence = max(window.rfind(ch) for ch in SENTENCE_END_CHARS)
    if sentence != -1:
        return window_start + sentence + 1

    return None


def _validate(target_tokens: int, overlap_tokens: int, tolerance: float) -> None:
    if target_tokens < 1:
        raise ValueError(f"target_tokens must be positive, got {target_tokens}")
    if not 0 <= tolerance < 1:
        raise ValueError(f"tolerance must be in [0, 1), got {tolerance}")
    if overlap_tokens < 0:
        raise ValueError(f"overlap_tokens must be non-negative, got {overlap_tokens}")
    if overlap_tokens >= target_tokens * (1 - tolerance):
        raise ValueError(
            f"overlap_tokens ({overlap_tokens}) must be smaller than the chunk floor "
            f"({target_tokens * (1 - tolerance):.0f} tokens)"
        )


def segment(
    text: str,
    target_tokens: int,
    overlap_tokens: int,
    tolerance: float = DEFAULT_TOLERANCE,
    tokenizer: Optional[Tokenizer] = None,
) -> Segmentation:
    """Split ``text`` into ordered, possibly overlapping, token-bounded chunks.

    Every chunk except the last holds between ``target*(1-tolerance)`` and
    ``target*(1+tolerance)`` tokens (give or take the re-count of the trimmed
    slice). Chunks cover the text from start to end without gaps; only
    whitespace-only stretches may be skipped.

    Args:
        text: Full document text
        target_tokens: Desired tokens per chunk
        overlap_tokens: Desired overlap between consecutive chunks
        tolerance: Allowed relative deviation from ``target_tokens``
        tokenizer: Tokenizer to size chunks with (default: shared tokenizer)

    Returns:
        Segmentation with chunks in document order

    Raises:
        ValueError: on non-positive targets, tolerance outside [0, 1), or an
            overlap that would not leave room for forward progress
    """
    _validate(target_tokens, overlap_tokens, tolerance)
    tokenizer = tokenizer or get_tokenizer()

    index = tokenizer.index(text)
    total_tokens = len(index)
    slack = round(target_tokens * tolerance)
    min_tokens = max(MIN_CHUNK_FLOOR_TOKENS, round(target_tokens * (1 - tolerance)))

    chunks: list[Chunk] = []
    start_tok = 0

    while start_tok < total_tokens:
        end_target = min(total_tokens, start_tok + target_tokens)
        end_tok = min(total_tokens, end_target + slack)

        start_char = index.char_at(start_tok)
        max_char = index.char_at(end_tok)

        if end_tok >= total_tokens:
            # The remainder fits under the ceiling: take it whole
            best_cut = len(text)
        else:
            window_start_char = max(start_char, index.char_at(max(0, end_target - slack)))
            cut = find_cut(text, window_start_char, max_char)
            best_cut = cut if cut is not None and cut > start_char else max_char

        piece = text[start_char:best_cut].strip()
        piece_tokens = tokenizer.count(piece)

        if piece_tokens == 0:
            if best_cut >= len(text):
                break
            start_tok = min(total_tokens, start_tok + max(1, round(target_tokens * DEGENERATE_SKIP)))
            logger.debug(f"Skipping whitespace-only slice at char {start_char}")
            continue

        end_char = best_cut
        if piece_tokens < min_tokens and best_cut < max_char:
            # Never past the hard ceiling
            end_char = min(max_char, best_cut + round(len(piece) * SHORT_CHUNK_EXTENSION))
            piece_tokens = tokenizer.count(text[start_char:end_char].strip())
            logger.debug(
                f"Extended short chunk at char {start_char} to {end_char} ({piece_tokens} tokens)"
            )

        chunks.append(
            Chunk(
                index=len(chunks),
                start_offset=start_char,
                end_offset=end_char,
                token_count=piece_tokens,
            )
        )

        if end_char >= len(text):
            break

        overlap_chars = round((end_char - start_char) * overlap_tokens / max(1, piece_tokens))
        next_start_char = max(end_char - overlap_chars, start_char + 1)
        start_tok = max(start_tok + 1, index.token_at(next_start_char))

    logger.info(
        f"Segmented {total_tokens:,} tokens into {len(chunks)} chunks "
        f"(target {target_tokens:,}, overlap {overlap_tokens:,}, tolerance {tolerance:.0%})"
    )

    return Segmentation(
        chunks=tuple(chunks),
        target_tokens=target_tokens,
        overlap_tokens=overlap_tokens,
        tolerance=tolerance,
        total_tokens=total_tokens,
    )
