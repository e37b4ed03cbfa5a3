"""Exceptions raised by the condensing workflow."""

from typing import Optional


class CondensingError(Exception):
    """Base class for condensing run failures."""


class StageExhaustedError(CondensingError):
    """A stage used up its retries; the run halts at ``index``.

    Resumable: re-running the same run id skips every completed index and
    starts again at this one.
    """

    def __init__(self, stage: str, index: Optional[int], attempts: int, run_id: str):
        self.stage = stage
        self.index = index
        self.attempts = attempts
        self.run_id = run_id
        where = f"{stage} #{index}" if index is not None else stage
        super().__init__(
            f"{where} failed after {attempts} attempts in run '{run_id}'; "
            "resume the run to retry from this point"
        )


class PreconditionError(CondensingError):
    """A run cannot start or resume; not retried."""
