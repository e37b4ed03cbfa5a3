"""Logging handlers writing to run-rotated files.

ModuleDispatchHandler sends each first-party record to the file chosen by
module_to_log_name; ThirdPartyHandler sends everything it receives to
``run-3p.log``. Which records reach which handler is decided by the filters
core.config.configure_logging installs.

File I/O is synchronous. A condensing run spends its time waiting on the
oracle, so this never shows up.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TextIO

from core.logging.run_manager import get_current_run_id, module_to_log_name, should_rotate


class RunLogFiles:
    """Open log streams under one directory, rotated once per run.

    On rotation ``<name>.log`` becomes ``<name>.previous.log`` (replacing the
    older one) and the new file starts with a header naming the run.
    """

    def __init__(self, log_dir: Path):
        self.log_dir = Path(log_dir)
        self._streams: dict[str, TextIO] = {}

    def stream(self, log_name: str) -> TextIO:
        if should_rotate(log_name):
            self._rotate(log_name)
        if log_name not in self._streams:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self._streams[log_name] = (self.log_dir / f"{log_name}.log").open("a", encoding="utf-8")
        return self._streams[log_name]

    def _rotate(self, log_name: str) -> None:
        old = self._streams.pop(log_name, None)
        if old is not None:
            old.close()

        current = self.log_dir / f"{log_name}.log"
        previous = self.log_dir / f"{log_name}.previous.log"
        if current.exists():
            current.replace(previous)

        self.log_dir.mkdir(parents=True, exist_ok=True)
        stream = current.open("a", encoding="utf-8")
        stream.write(f"# run {get_current_run_id()}\n")
        self._streams[log_name] = stream

    def close(self) -> None:
        for stream in self._streams.values():
            try:
                stream.close()
            except OSError:
                pass
        self._streams.clear()


class _RunFileHandler(logging.Handler, ABC):
    """Writes each record to the run-rotated file named by ``log_name_for``."""

    def __init__(self, log_dir: Path):
        super().__init__()
        self.log_dir = Path(log_dir)
        self.files = RunLogFiles(self.log_dir)

    @abstractmethod
    def log_name_for(self, record: logging.LogRecord) -> str:
        """Log file name (without ``.log``) for ``record``."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            stream = self.files.stream(self.log_name_for(record))
            stream.write(self.format(record) + "\n")
            stream.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        self.acquire()
        try:
            self.files.close()
        finally:
            self.release()
        super().close()


class ModuleDispatchHandler(_RunFileHandler):
    """One file per log name, e.g. ``chapters.log`` for the chapter pipeline.

    Usage:
        handler = ModuleDispatchHandler(Path("logs"))
        handler.setFormatter(logging.Formatter("%(asctime)s - %(message)s"))
        logging.getLogger().addHandler(handler)
    """

    def log_name_for(self, record: logging.LogRecord) -> str:
        return module_to_log_name(record.name)


class ThirdPartyHandler(_RunFileHandler):
    """Collects httpx, anthropic, langchain and other library logs."""

    LOG_NAME = "run-3p"

    def log_name_for(self, record: logging.LogRecord) -> str:
        return self.LOG_NAME
