"""Token utilities for budget management and token-aligned segmentation.

Token counts here are budgeting estimates, not billing figures: an unknown
model identifier falls back to a fixed vocabulary instead of failing.
"""

import logging
from bisect import bisect_right
from dataclasses import dataclass
from functools import lru_cache
from typing import Sequence

import tiktoken

from core.config import get_tokenizer_model

logger = logging.getLogger(__name__)

# =============================================================================
# Vocabulary
# =============================================================================
FALLBACK_ENCODING = "o200k_base"

# =============================================================================
# Estimation Constants
# =============================================================================
CHARS_PER_TOKEN = 4
SAFETY_MARGIN = 0.30  # 30% buffer for prompt wrappers and JSON overhead


@lru_cache(maxsize=8)
def _get_encoding(model: str) -> tiktoken.Encoding:
    """Resolve a tiktoken encoding for ``model`` (cached per model id)."""
    try:
        return tiktoken.encoding_for_model(model)
    except KeyError:
        logger.warning(
            f"No tokenizer registered for model '{model}', "
            f"falling back to {FALLBACK_ENCODING}"
        )
        return tiktoken.get_encoding(FALLBACK_ENCODING)


@dataclass(frozen=True)
class TokenIndex:
    """Token sequence of one text plus the character offset of every token.

    Built once per document so that token <-> character conversions during
    segmentation are a lookup or a bisection rather than a re-encode.
    """

    tokens: tuple[int, ...]
    offsets: tuple[int, ...]
    text_length: int

    def __len__(self) -> int:
        return len(self.tokens)

    def char_at(self, token_pos: int) -> int:
        """Character offset where token ``token_pos`` starts.

        Positions at or past the end map to the end of the text.
        """
        if token_pos <= 0:
            return 0
        if token_pos >= len(self.tokens):
            return self.text_length
        return self.offsets[token_pos]

    def token_at(self, char_pos: int) -> int:
        """Index of the token covering ``char_pos``.

        Offsets at or past the end of the text map to ``len(self)``.
        """
        if char_pos <= 0:
            return 0
        if char_pos >= self.text_length:
            return len(self.tokens)
        return max(0, bisect_right(self.offsets, char_pos) - 1)


class Tokenizer:
    """Deterministic tokenizer for a fixed model identifier."""

    def __init__(self, model: str | None = None):
        self.model = model or get_tokenizer_model()
        self._encoding = _get_encoding(self.model)

    @property
    def encoding_name(self) -> str:
        return self._encoding.name

    def encode(self, text: str) -> list[int]:
        # Books may legitimately contain text like "<|endoftext|>"
        return self._encoding.encode(text, disallowed_special=())

    def decode(self, tokens: Sequence[int]) -> str:
        return self._encoding.decode(list(tokens))

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self.encode(text))

    def index(self, text: str) -> TokenIndex:
        """Encode ``text`` once and record each token's character offset."""
        tokens = self.encode(text)
        _, offsets = self._encoding.decode_with_offsets(tokens)
        return TokenIndex(tokens=tuple(tokens), offsets=tuple(offsets), text_length=len(text))

    def tail(self, text: str, max_tokens: int) -> str:
        """Last ``max_tokens`` tokens of ``text``, cut on a token boundary."""
        if max_tokens <= 0 or not text:
            return ""
        index = self.index(text)
        if len(index) <= max_tokens:
            return text
        return text[index.char_at(len(index) - max_tokens):]


@lru_cache(maxsize=8)
def get_tokenizer(model: str | None = None) -> Tokenizer:
    """Shared tokenizer instance per model id."""
    return Tokenizer(model)


def estimate_tokens_fast(text: str, with_safety_margin: bool = True) -> int:
    """Quick token estimate using character count.

    Use where speed matters more than precision, e.g. logging the rough size
    of a prompt before sending it.
    """
    if not text:
        return 0
    base_estimate = len(text) // CHARS_PER_TOKEN
    if with_safety_margin:
        return int(base_estimate * (1 + SAFETY_MARGIN))
    return base_estimate
