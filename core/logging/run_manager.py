"""Run scoping for log rotation, and module-to-file routing.

A run is one condensing run (or one test module). Each log file is rotated
the first time it is written to inside a run, so ``<name>.log`` always holds
the current run and ``<name>.previous.log`` the one before.

Usage:
    from core.logging import start_run, end_run

    start_run("2026-10-19_14-05-ab12cd")
    try:
        ...
    finally:
        end_run()
"""

from contextvars import ContextVar
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional


@dataclass
class _RunScope:
    run_id: str
    rotated: set[str] = field(default_factory=set)


# Per-context so that concurrent runs in one process rotate independently
_scope: ContextVar[Optional[_RunScope]] = ContextVar("condenser_log_run", default=None)

# Logger-name prefix -> log file name, longest prefix wins; unmapped -> "misc"
MODULE_TO_LOG = {
    "workflows.book_condensing": "book-condensing",
    "workflows.book_condensing.segmentation": "segmentation",
    "workflows.book_condensing.guide": "guide",
    "workflows.book_condensing.chapters": "chapters",
    "workflows.shared": "workflows-shared",
    "workflows.shared.llm_utils": "oracle",
    "core.checkpoint": "checkpoint",
    "core.config": "config",
    "core.logging": "logging-internal",
    "testing": "testing",
}

FALLBACK_LOG = "misc"


def start_run(run_id: str) -> None:
    """Open a run; every log file rotates on its first write after this.

    Calling it again starts a fresh run, so files rotate once more.
    """
    _scope.set(_RunScope(run_id))


def end_run() -> None:
    """Close the current run. Rotation is driven by start_run, so a missed
    call only means the next run rotates as usual."""
    _scope.set(None)


def get_current_run_id() -> Optional[str]:
    scope = _scope.get()
    return scope.run_id if scope else None


def should_rotate(log_name: str) -> bool:
    """True exactly once per log file per run; False outside a run."""
    scope = _scope.get()
    if scope is None or log_name in scope.rotated:
        return False
    scope.rotated.add(log_name)
    return True


@lru_cache(maxsize=1024)
def module_to_log_name(module_name: str) -> str:
    """Log file name (no extension) for a logger name.

    >>> module_to_log_name("workflows.book_condensing.chapters.pipeline")
    'chapters'
    """
    best = None
    for prefix in MODULE_TO_LOG:
        if module_name != prefix and not module_name.startswith(prefix + "."):
            continue
        if best is None or len(prefix) > len(best):
            best = prefix
    return MODULE_TO_LOG[best] if best else FALLBACK_LOG
