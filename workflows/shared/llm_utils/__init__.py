"""LLM utilities for the condensing workflow.

This module provides:
- Tiered Anthropic Claude model selection (Haiku/Sonnet/Opus)
- The Oracle contract used by every pipeline call-site, with a
  LangChain-backed implementation using structured output and prompt caching
"""

from .models import ModelSettings, ModelTier, get_llm
from .oracle import (
    LangChainOracle,
    Oracle,
    OracleError,
    OracleRequest,
    build_messages,
    coerce_result,
)

__all__ = [
    "ModelTier",
    "ModelSettings",
    "get_llm",
    "Oracle",
    "OracleRequest",
    "OracleError",
    "LangChainOracle",
    "build_messages",
    "coerce_result",
]
