"""
Scripted stand-in for the oracle.

Each call site has a queue of scripted responses consumed in call order. An
entry is either a result (schema instance or dict), an exception instance to
raise, or a callable taking the request. When a queue is empty the call site's
default response is used.

Usage:
    oracle = FakeOracle()
    oracle.script("guide-map", {}, {}, None)   # two empty results, then default
    oracle.script("chapter-stage", OracleError("chapter-stage", "timeout"))
"""

from typing import Any, Callable

from pydantic import BaseModel

from workflows.book_condensing.schemas import (
    Character,
    ContentItem,
    GlobalGuide,
    PartialGuide,
    StageOutput,
    TimelineEvent,
)
from workflows.shared.llm_utils import OracleRequest, coerce_result

# Placeholder meaning "use the default response for this call"
DEFAULT = None


def default_partial(call_number: int) -> PartialGuide:
    return PartialGuide(
        characters=[Character(name=f"Person {call_number}", description="Appears in this section")],
        timeline=[TimelineEvent(order=1, event=f"Event from section {call_number}")],
        themes=["travel"],
        style="Plain, first-person narration",
    )


def default_guide(call_number: int) -> GlobalGuide:
    return GlobalGuide(
        characters=[Character(name="Person 1", aliases=["the traveller"])],
        timeline=[TimelineEvent(order=1, event="The journey begins")],
        themes=["travel"],
        style="Plain, first-person narration",
    )


def default_stage(call_number: int) -> StageOutput:
    return StageOutput(
        title=f"Section {call_number}",
        content=[
            ContentItem(type="PARAGRAPH", text=f"Condensed text of call {call_number}."),
            ContentItem(type="KEY_POINT", key_point_type="MOMENT", text="A turning point."),
        ],
    )


DEFAULTS: dict[str, Callable[[int], BaseModel]] = {
    "guide-map": default_partial,
    "guide-polish": default_guide,
    "chapter-stage": default_stage,
}


class FakeOracle:
    """Oracle double that records every request it receives."""

    def __init__(self):
        self.requests: list[OracleRequest] = []
        self._scripts: dict[str, list[Any]] = {}
        self._counts: dict[str, int] = {}

    def script(self, call_site: str, *responses: Any) -> "FakeOracle":
        self._scripts.setdefault(call_site, []).extend(responses)
        return self

    def calls(self, call_site: str) -> list[OracleRequest]:
        return [r for r in self.requests if r.call_site == call_site]

    def call_count(self, call_site: str | None = None) -> int:
        if call_site is None:
            return len(self.requests)
        return len(self.calls(call_site))

    async def invoke(self, request: OracleRequest) -> BaseModel:
        self.requests.append(request)
        count = self._counts.get(request.call_site, 0) + 1
        self._counts[request.call_site] = count

        queue = self._scripts.get(request.call_site)
        response = queue.pop(0) if queue else DEFAULT

        if isinstance(response, BaseException):
            raise response
        if callable(response) and not isinstance(response, BaseModel):
            response = response(request)
        if response is DEFAULT:
            response = DEFAULTS[request.call_site](count)

        return coerce_result(request, response)
