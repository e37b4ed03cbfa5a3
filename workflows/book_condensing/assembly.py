"""Final hand-off: the guide plus every stage output, in order."""

from dataclasses import dataclass, field
from typing import Any, Sequence

from .chapters import StageResult
from .schemas import GlobalGuide


def aggregate_metrics(results: Sequence[StageResult]) -> dict[str, Any]:
    input_tokens = sum(r.metrics["input_tokens"] for r in results)
    output_tokens = sum(r.metrics["output_tokens"] for r in results)
    return {
        "stages": len(results),
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "compression_ratio": round(output_tokens / input_tokens, 4) if input_tokens else 0.0,
        "attempts": sum(r.metrics["attempts"] for r in results),
        "resumed_stages": sum(1 for r in results if r.resumed),
    }


@dataclass
class CondensedBook:
    run_id: str
    guide: GlobalGuide
    stages: list[StageResult]
    metrics: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def assemble(cls, run_id: str, guide: GlobalGuide, stages: Sequence[StageResult]) -> "CondensedBook":
        ordered = sorted(stages, key=lambda r: r.index)
        return cls(run_id=run_id, guide=guide, stages=ordered, metrics=aggregate_metrics(ordered))

    @property
    def titles(self) -> list[str]:
        return [stage.output.title for stage in self.stages]

    def text(self) -> str:
        """Plain-text rendering, one titled section per stage."""
        return "\n\n".join(
            f"## {stage.output.title}\n\n{stage.output.plain_text()}" for stage in self.stages
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "guide": self.guide.model_dump(),
            "chapters": [stage.output.to_payload() for stage in self.stages],
            "metrics": self.metrics,
        }
