"""The oracle seam: structured text generation behind a minimal contract.

The condensing pipeline only ever sees ``Oracle.invoke(request)``. Tests pass
a scripted fake; production uses LangChainOracle, which asks Claude for
output matching the request's pydantic schema.

Example:
    oracle = LangChainOracle(tier=ModelTier.SONNET)
    guide = await oracle.invoke(
        OracleRequest(
            call_site="guide-map",
            system_prompt=GUIDE_MAP_SYSTEM,
            user_prompt=prompt,
            output_schema=PartialGuide,
            max_tokens=4096,
        )
    )
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, Type, TypeVar

import anthropic
from langchain_core.exceptions import OutputParserException
from langsmith import traceable
from pydantic import BaseModel, ValidationError

from workflows.shared.token_utils import estimate_tokens_fast

from .models import ModelTier, get_llm

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class OracleError(Exception):
    """Transient or structural oracle failure; callers may retry.

    Covers empty responses, payloads that do not parse into the requested
    schema, timeouts and API-side errors such as rate limiting.
    """

    def __init__(self, call_site: str, message: str):
        self.call_site = call_site
        super().__init__(f"[{call_site}] {message}")


@dataclass(frozen=True)
class OracleRequest:
    """One oracle invocation.

    Args:
        call_site: Which pipeline step is asking ("guide-map", "guide-polish",
            "chapter-stage")
        system_prompt: Static instructions (cacheable)
        user_prompt: Dynamic content
        output_schema: Pydantic model the response must validate against
        max_tokens: Output token ceiling for this call
    """

    call_site: str
    system_prompt: str
    user_prompt: str
    output_schema: Type[BaseModel]
    max_tokens: int = 4096


class Oracle(Protocol):
    """Anything that turns an OracleRequest into a validated schema instance."""

    async def invoke(self, request: OracleRequest) -> BaseModel: ...


def build_messages(system_prompt: str, user_prompt: str, cache_system: bool = True) -> list[dict]:
    """System + user messages with cache_control on the static system block."""
    system_block: dict[str, Any] = {"type": "text", "text": system_prompt}
    if cache_system:
        system_block["cache_control"] = {"type": "ephemeral"}
    return [
        {"role": "system", "content": [system_block]},
        {"role": "user", "content": user_prompt},
    ]


def coerce_result(request: OracleRequest, result: Any) -> BaseModel:
    """Validate a raw oracle result against the request's schema.

    Raises:
        OracleError: if the result is empty or does not fit the schema
    """
    if result is None or result == {} or result == "":
        raise OracleError(request.call_site, "empty response")
    if isinstance(result, request.output_schema):
        return result
    try:
        if isinstance(result, BaseModel):
            result = result.model_dump()
        if isinstance(result, str):
            return request.output_schema.model_validate_json(result)
        return request.output_schema.model_validate(result)
    except ValidationError as e:
        raise OracleError(
            request.call_site,
            f"response does not match {request.output_schema.__name__}: {e.error_count()} errors",
        ) from e


class LangChainOracle:
    """Oracle backed by ChatAnthropic structured output.

    Args:
        tier: Default model tier
        tier_overrides: Per call-site tier, e.g. {"guide-polish": ModelTier.OPUS}
        cache_system_prompt: Mark system prompts for prompt caching
        temperature: Sampling temperature (API default when None)
        llm_factory: Replaces get_llm, mostly for tests
    """

    def __init__(
        self,
        tier: ModelTier = ModelTier.SONNET,
        tier_overrides: Optional[dict[str, ModelTier]] = None,
        cache_system_prompt: bool = True,
        temperature: Optional[float] = None,
        llm_factory: Callable[..., Any] = get_llm,
    ):
        self.tier = tier
        self.tier_overrides = tier_overrides or {}
        self.cache_system_prompt = cache_system_prompt
        self.temperature = temperature
        self._llm_factory = llm_factory

    def tier_for(self, call_site: str) -> ModelTier:
        return self.tier_overrides.get(call_site, self.tier)

    @traceable(run_type="llm", name="OracleInvoke")
    async def invoke(self, request: OracleRequest) -> BaseModel:
        tier = self.tier_for(request.call_site)
        llm = self._llm_factory(
            tier=tier,
            max_tokens=request.max_tokens,
            temperature=self.temperature,
        )
        structured_llm = llm.with_structured_output(request.output_schema)
        messages = build_messages(
            request.system_prompt,
            request.user_prompt,
            cache_system=self.cache_system_prompt,
        )

        logger.debug(
            f"[{request.call_site}] invoking {tier.name} "
            f"(~{estimate_tokens_fast(request.user_prompt):,} prompt tokens, "
            f"max_tokens={request.max_tokens})"
        )

        try:
            result = await structured_llm.ainvoke(messages)
        except (OutputParserException, ValidationError) as e:
            raise OracleError(request.call_site, f"malformed response: {e}") from e
        except (anthropic.APITimeoutError, anthropic.APIConnectionError) as e:
            raise OracleError(request.call_site, f"connection failure: {e}") from e
        except anthropic.APIStatusError as e:
            if e.status_code == 429 or e.status_code >= 500:
                raise OracleError(request.call_site, f"API error {e.status_code}: {e}") from e
            raise

        return coerce_result(request, result)
