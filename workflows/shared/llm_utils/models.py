"""Claude model tiers and chat-model construction."""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from core.config import configure_langsmith

configure_langsmith()

from langchain_anthropic import ChatAnthropic  # noqa: E402


class ModelTier(Enum):
    """Claude models a call-site can be routed to.

    HAIKU: cheap structured extraction, fine for guide-map on plain prose
    SONNET: default for guide extraction and chapter condensing
    OPUS: hardest polish work; the only tier worth a thinking budget
    """

    HAIKU = "claude-haiku-4-5-20251001"
    SONNET = "claude-sonnet-4-5-20250929"
    OPUS = "claude-opus-4-5-20251101"

    @classmethod
    def parse(cls, name: str) -> "ModelTier":
        """Tier from a case-insensitive name such as ``"sonnet"``."""
        try:
            return cls[name.strip().upper()]
        except KeyError:
            choices = ", ".join(t.name.lower() for t in cls)
            raise ValueError(f"Unknown model tier '{name}' (choose from {choices})") from None


@dataclass(frozen=True)
class ModelSettings:
    tier: ModelTier = ModelTier.SONNET
    max_tokens: int = 4096
    temperature: Optional[float] = None
    thinking_budget: Optional[int] = None

    def __post_init__(self):
        if self.max_tokens < 1:
            raise ValueError(f"max_tokens must be positive, got {self.max_tokens}")
        if self.thinking_budget is not None and self.thinking_budget >= self.max_tokens:
            raise ValueError(
                f"thinking_budget ({self.thinking_budget}) must be less than max_tokens ({self.max_tokens})"
            )

    def chat_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"model": self.tier.value, "max_tokens": self.max_tokens}
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        if self.thinking_budget is not None:
            kwargs["thinking"] = {"type": "enabled", "budget_tokens": self.thinking_budget}
        return kwargs


def get_llm(
    tier: ModelTier = ModelTier.SONNET,
    thinking_budget: Optional[int] = None,
    max_tokens: int = 4096,
    temperature: Optional[float] = None,
) -> ChatAnthropic:
    """
    Build a ChatAnthropic client for one oracle call.

    Args:
        tier: Model tier
        thinking_budget: Extended-thinking budget; must stay below max_tokens
        max_tokens: Output ceiling of the call
        temperature: Sampling temperature; API default when None

    Raises:
        ValueError: if ANTHROPIC_API_KEY is unset or the settings are inconsistent
    """
    settings = ModelSettings(
        tier=tier,
        max_tokens=max_tokens,
        temperature=temperature,
        thinking_budget=thinking_budget,
    )
    api_key = os.getenv("ANTHROPIC_API_KEY")
    if not api_key:
        raise ValueError("ANTHROPIC_API_KEY not set")
    return ChatAnthropic(api_key=api_key, **settings.chat_kwargs())
