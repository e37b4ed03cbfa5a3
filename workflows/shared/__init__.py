"""Shared utilities for the condensing workflows."""

from .retry_utils import RetryExhaustedError, RetryPolicy, with_retry
from .token_utils import TokenIndex, Tokenizer, estimate_tokens_fast, get_tokenizer

__all__ = [
    # Retry
    "RetryPolicy",
    "RetryExhaustedError",
    "with_retry",
    # Tokens
    "Tokenizer",
    "TokenIndex",
    "get_tokenizer",
    "estimate_tokens_fast",
]
