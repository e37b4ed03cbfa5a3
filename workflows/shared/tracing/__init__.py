"""LangSmith tracing helpers.

Usage:
    from workflows.shared.tracing import add_trace_metadata, workflow_traceable

    @workflow_traceable(name="CondenseBook", workflow_type="book_condensing")
    async def condense_book(text: str, ...) -> CondensedBook:
        add_trace_metadata({"run_id": run_id})
"""

from typing import Any, Callable, TypeVar

from langsmith import get_current_run_tree, traceable

F = TypeVar("F", bound=Callable[..., Any])


def workflow_traceable(name: str, workflow_type: str) -> Callable[[F], F]:
    """Root trace for a workflow entry point, tagged ``workflow:<type>``."""
    return traceable(
        run_type="chain",
        name=name,
        tags=[f"workflow:{workflow_type}"],
    )


def node_traceable(name: str) -> Callable[[F], F]:
    """Child span for a graph node."""
    return traceable(run_type="chain", name=name)


def add_trace_metadata(metadata: dict[str, Any]) -> None:
    """Attach filterable metadata to the current trace, if any."""
    if run_tree := get_current_run_tree():
        run_tree.add_metadata(metadata)


__all__ = [
    "workflow_traceable",
    "node_traceable",
    "add_trace_metadata",
]
