"""
Tests for the oracle seam: result coercion, message building, model settings
and LangChainOracle error mapping (with a stubbed chat model).
"""

import asyncio

import anthropic
import httpx
import pytest
from langchain_core.exceptions import OutputParserException

from workflows.book_condensing.schemas import PartialGuide, StageOutput
from workflows.shared.llm_utils import (
    LangChainOracle,
    ModelSettings,
    ModelTier,
    OracleError,
    OracleRequest,
    build_messages,
    coerce_result,
)

REQUEST = OracleRequest(
    call_site="chapter-stage",
    system_prompt="Condense.",
    user_prompt="Some section.",
    output_schema=StageOutput,
    max_tokens=2000,
)

STAGE = {"title": "Arrival", "content": [{"type": "PARAGRAPH", "text": "They arrived."}]}


class StubStructured:
    def __init__(self, responses):
        self.responses = list(responses)
        self.messages = []

    async def ainvoke(self, messages):
        self.messages.append(messages)
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


class StubChat:
    def __init__(self, structured: StubStructured):
        self.structured = structured
        self.schema = None

    def with_structured_output(self, schema):
        self.schema = schema
        return self.structured


class StubFactory:
    def __init__(self, *responses):
        self.structured = StubStructured(responses)
        self.chat = StubChat(self.structured)
        self.calls = []

    def __call__(self, **kwargs):
        self.calls.append(kwargs)
        return self.chat


def _request() -> httpx.Request:
    return httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def _status_error(cls, status: int):
    return cls("api error", response=httpx.Response(status, request=_request()), body=None)


class TestCoerceResult:
    def test_instance_passes_through(self):
        output = StageOutput.model_validate(STAGE)
        assert coerce_result(REQUEST, output) is output

    def test_dict_and_json(self):
        assert coerce_result(REQUEST, STAGE).title == "Arrival"
        assert coerce_result(REQUEST, '{"title": "Arrival", "content": [{"type": "PARAGRAPH", "text": "x"}]}').title == "Arrival"

    @pytest.mark.parametrize("empty", [None, {}, ""])
    def test_empty(self, empty):
        with pytest.raises(OracleError, match="empty response"):
            coerce_result(REQUEST, empty)

    def test_schema_mismatch(self):
        with pytest.raises(OracleError) as exc_info:
            coerce_result(REQUEST, {"title": "No content"})
        assert exc_info.value.call_site == "chapter-stage"

    def test_other_model_is_revalidated(self):
        with pytest.raises(OracleError):
            coerce_result(REQUEST, PartialGuide(themes=["x"]))


class TestBuildMessages:
    def test_system_block_cached(self):
        messages = build_messages("static", "dynamic")
        assert messages[0]["content"][0] == {
            "type": "text",
            "text": "static",
            "cache_control": {"type": "ephemeral"},
        }
        assert messages[1] == {"role": "user", "content": "dynamic"}

    def test_without_cache(self):
        assert "cache_control" not in build_messages("static", "dynamic", cache_system=False)[0]["content"][0]


class TestModelSettings:
    def test_parse_tier(self):
        assert ModelTier.parse("Opus") is ModelTier.OPUS
        with pytest.raises(ValueError, match="choose from"):
            ModelTier.parse("giant")

    def test_chat_kwargs(self):
        kwargs = ModelSettings(ModelTier.HAIKU, max_tokens=1000, temperature=0.2).chat_kwargs()
        assert kwargs == {"model": ModelTier.HAIKU.value, "max_tokens": 1000, "temperature": 0.2}

    def test_thinking(self):
        kwargs = ModelSettings(ModelTier.OPUS, max_tokens=16000, thinking_budget=8000).chat_kwargs()
        assert kwargs["thinking"] == {"type": "enabled", "budget_tokens": 8000}
        with pytest.raises(ValueError):
            ModelSettings(max_tokens=4000, thinking_budget=4000)


class TestLangChainOracle:
    def test_invokes_with_request_settings(self):
        factory = StubFactory(STAGE)
        oracle = LangChainOracle(
            tier_overrides={"guide-polish": ModelTier.OPUS},
            temperature=0.3,
            llm_factory=factory,
        )

        result = asyncio.run(oracle.invoke(REQUEST))

        assert isinstance(result, StageOutput)
        assert factory.calls == [{"tier": ModelTier.SONNET, "max_tokens": 2000, "temperature": 0.3}]
        assert factory.chat.schema is StageOutput
        system, user = factory.structured.messages[0]
        assert system["content"][0]["text"] == "Condense."
        assert user["content"] == "Some section."

    def test_tier_override(self):
        oracle = LangChainOracle(tier_overrides={"guide-polish": ModelTier.OPUS})
        assert oracle.tier_for("guide-polish") is ModelTier.OPUS
        assert oracle.tier_for("guide-map") is ModelTier.SONNET

    @pytest.mark.parametrize(
        "error",
        [
            OutputParserException("not json"),
            anthropic.APITimeoutError(request=_request()),
            _status_error(anthropic.RateLimitError, 429),
            _status_error(anthropic.InternalServerError, 500),
        ],
    )
    def test_retryable_failures(self, error):
        oracle = LangChainOracle(llm_factory=StubFactory(error))
        with pytest.raises(OracleError) as exc_info:
            asyncio.run(oracle.invoke(REQUEST))
        assert exc_info.value.__cause__ is error

    def test_client_errors_propagate(self):
        error = _status_error(anthropic.BadRequestError, 400)
        oracle = LangChainOracle(llm_factory=StubFactory(error))
        with pytest.raises(anthropic.BadRequestError):
            asyncio.run(oracle.invoke(REQUEST))

    def test_empty_structured_output(self):
        oracle = LangChainOracle(llm_factory=StubFactory(None))
        with pytest.raises(OracleError, match="empty response"):
            asyncio.run(oracle.invoke(REQUEST))
