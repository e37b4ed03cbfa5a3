"""
Checkpoint storage for resumable condensing runs.

Every stage artifact is persisted under a run-scoped namespace through the
small key/value contract of CheckpointStore, so the pipeline never deals with
paths. Artifacts are append-only: a key is written once per run, and a
re-run of a stage goes to a new run id.
"""

import json
import logging
import os
import re
import uuid
from abc import ABC, abstractmethod
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from .errors import ArtifactNotFoundError, CheckpointConflictError, CheckpointError
from .keys import validate_key

logger = logging.getLogger(__name__)

_RUN_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class CheckpointJSONEncoder(json.JSONEncoder):
    """JSON encoder for the non-JSON types that show up in artifacts.

    Handles:
    - datetime / date -> ISO format string
    - Path -> string
    - Enum -> its value
    """

    def default(self, obj):
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Path):
            return str(obj)
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


def validate_run_id(run_id: str) -> str:
    if not run_id or not _RUN_ID_PATTERN.match(run_id):
        raise CheckpointError(f"Invalid run id: {run_id!r}")
    return run_id


class CheckpointStore(ABC):
    """Durable key/value contract for run artifacts.

    Implementations must make writes atomic with respect to readers: an
    artifact is either fully present or absent.
    """

    @abstractmethod
    def has(self, run_id: str, key: str) -> bool:
        """Whether ``key`` has been written for ``run_id``."""

    @abstractmethod
    def write(self, run_id: str, key: str, payload: dict[str, Any]) -> None:
        """Persist ``payload``. Raises CheckpointConflictError if ``key`` exists."""

    @abstractmethod
    def read(self, run_id: str, key: str) -> dict[str, Any]:
        """Load a payload. Raises ArtifactNotFoundError if ``key`` is absent."""

    @abstractmethod
    def list_keys(self, run_id: str) -> list[str]:
        """Sorted keys written for ``run_id``."""

    @abstractmethod
    def list_runs(self) -> list[str]:
        """Sorted run ids with at least one artifact."""


class MemoryCheckpointStore(CheckpointStore):
    """In-process store for tests and throwaway runs.

    Payloads round-trip through JSON so that callers see the same shapes a
    file-backed store would return.
    """

    def __init__(self):
        self._runs: dict[str, dict[str, str]] = {}

    def has(self, run_id: str, key: str) -> bool:
        return key in self._runs.get(run_id, {})

    def write(self, run_id: str, key: str, payload: dict[str, Any]) -> None:
        validate_run_id(run_id)
        validate_key(key)
        artifacts = self._runs.setdefault(run_id, {})
        if key in artifacts:
            raise CheckpointConflictError(run_id, key)
        artifacts[key] = json.dumps(payload, cls=CheckpointJSONEncoder)
        logger.debug(f"Stored artifact {run_id}/{key}")

    def read(self, run_id: str, key: str) -> dict[str, Any]:
        try:
            return json.loads(self._runs[run_id][key])
        except KeyError:
            raise ArtifactNotFoundError(run_id, key) from None

    def list_keys(self, run_id: str) -> list[str]:
        return sorted(self._runs.get(run_id, {}))

    def list_runs(self) -> list[str]:
        return sorted(run_id for run_id, artifacts in self._runs.items() if artifacts)

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Deep copy of every artifact, keyed by run then key."""
        return {
            run_id: {key: json.loads(raw) for key, raw in artifacts.items()}
            for run_id, artifacts in self._runs.items()
        }


class FileCheckpointStore(CheckpointStore):
    """One JSON file per artifact under ``<root>/<run_id>/<key>.json``.

    Writes go to a uniquely named temp file which is then renamed into
    place, so an interrupted write never leaves a half-written artifact
    under its final name.
    """

    SUFFIX = ".json"

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def _run_dir(self, run_id: str) -> Path:
        return self.root / validate_run_id(run_id)

    def _artifact_path(self, run_id: str, key: str) -> Path:
        return self._run_dir(run_id) / f"{validate_key(key)}{self.SUFFIX}"

    def has(self, run_id: str, key: str) -> bool:
        return self._artifact_path(run_id, key).exists()

    def write(self, run_id: str, key: str, payload: dict[str, Any]) -> None:
        path = self._artifact_path(run_id, key)
        if path.exists():
            raise CheckpointConflictError(run_id, key)

        path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = path.with_suffix(f".{uuid.uuid4().hex[:8]}.tmp")
        try:
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False, cls=CheckpointJSONEncoder)
                f.flush()
                os.fsync(f.fileno())
            temp_file.rename(path)
        except Exception:
            temp_file.unlink(missing_ok=True)
            raise

        logger.debug(f"Checkpoint saved: {path}")

    def read(self, run_id: str, key: str) -> dict[str, Any]:
        path = self._artifact_path(run_id, key)
        if not path.exists():
            raise ArtifactNotFoundError(run_id, key)
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def list_keys(self, run_id: str) -> list[str]:
        run_dir = self._run_dir(run_id)
        if not run_dir.exists():
            return []
        return sorted(path.stem for path in run_dir.glob(f"*{self.SUFFIX}"))

    def list_runs(self) -> list[str]:
        if not self.root.exists():
            return []
        return sorted(
            path.name
            for path in self.root.iterdir()
            if path.is_dir() and any(path.glob(f"*{self.SUFFIX}"))
        )

    def cleanup_orphaned_temps(self, run_id: str) -> int:
        """Remove .tmp files left behind by writes interrupted mid-flight.

        Returns:
            Number of temp files removed
        """
        run_dir = self._run_dir(run_id)
        if not run_dir.exists():
            return 0

        cleaned = 0
        for tmp_file in run_dir.glob("*.tmp"):
            try:
                tmp_file.unlink()
                logger.info(f"Cleaned up orphaned temp file: {tmp_file.name}")
                cleaned += 1
            except OSError as e:
                logger.warning(f"Failed to clean up temp file {tmp_file}: {e}")
        return cleaned
