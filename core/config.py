"""Book condenser configuration and environment setup.

This module provides centralized configuration for the condenser,
including development mode detection, LangSmith tracing setup and
module-based logging.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DEFAULT_CHECKPOINT_DIR = Path(".condenser") / "checkpoints"
DEFAULT_LOG_DIR = Path("logs")
DEFAULT_TOKENIZER_MODEL = "gpt-4o-mini"

# Top-level packages whose records go to per-module log files
FIRST_PARTY_PREFIXES = ("core", "workflows", "testing", "__main__")


def is_dev_mode() -> bool:
    """Check if running in development mode.

    Returns:
        True if CONDENSER_MODE is set to 'dev', False otherwise.
    """
    return os.getenv("CONDENSER_MODE", "prod").lower() == "dev"


def configure_langsmith() -> None:
    """Configure LangSmith tracing based on CONDENSER_MODE.

    When CONDENSER_MODE=dev:
        - Enables LangSmith tracing
        - Sets project to 'book-condenser-dev'

    When CONDENSER_MODE=prod (or unset):
        - Disables LangSmith tracing

    This function is idempotent and safe to call multiple times.
    """
    if is_dev_mode():
        os.environ.setdefault("LANGSMITH_TRACING", "true")
        os.environ.setdefault("LANGSMITH_PROJECT", "book-condenser-dev")
    else:
        os.environ["LANGSMITH_TRACING"] = "false"


def get_checkpoint_dir() -> Path:
    """Directory holding one sub-directory of artifacts per run."""
    return Path(os.getenv("CONDENSER_CHECKPOINT_DIR", str(DEFAULT_CHECKPOINT_DIR)))


def get_log_dir() -> Path:
    return Path(os.getenv("CONDENSER_LOG_DIR", str(DEFAULT_LOG_DIR)))


def get_tokenizer_model() -> str:
    return os.getenv("CONDENSER_TOKENIZER_MODEL", DEFAULT_TOKENIZER_MODEL)


class _FirstPartyFilter(logging.Filter):
    """Pass records from our own packages (or, inverted, everything else)."""

    def __init__(self, invert: bool = False):
        super().__init__()
        self.invert = invert

    def filter(self, record: logging.LogRecord) -> bool:
        first_party = record.name.split(".")[0] in FIRST_PARTY_PREFIXES
        return first_party != self.invert


def configure_logging(
    name: str = "condenser",
    level: int = logging.INFO,
    log_dir: Path | None = None,
    console: bool = True,
) -> logging.Logger:
    """Install module-dispatch, third-party and console handlers on the root logger.

    Safe to call more than once: handlers installed by a previous call are
    replaced rather than duplicated.

    Args:
        name: Name of the returned logger
        level: Root logging level
        log_dir: Directory for log files (default: CONDENSER_LOG_DIR or logs/)
        console: Whether to also log to stderr

    Returns:
        Logger named ``name``
    """
    from core.logging import ModuleDispatchHandler, ThirdPartyHandler

    log_dir = log_dir or get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        if getattr(handler, "_condenser_handler", False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    module_handler = ModuleDispatchHandler(log_dir)
    module_handler.addFilter(_FirstPartyFilter())
    third_party_handler = ThirdPartyHandler(log_dir)
    third_party_handler.addFilter(_FirstPartyFilter(invert=True))
    handlers: list[logging.Handler] = [module_handler, third_party_handler]

    if console:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setFormatter(formatter)
        handler._condenser_handler = True
        root.addHandler(handler)

    return logging.getLogger(name)
