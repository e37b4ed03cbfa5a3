"""
Pytest configuration for the condensing tests.

Usage:
    pytest testing/
    pytest testing/test_chapter_pipeline.py -k resume
"""

from collections.abc import Generator

import pytest

from core.checkpoint import FileCheckpointStore, MemoryCheckpointStore
from core.logging import end_run, start_run
from workflows.shared.retry_utils import RetryPolicy
from workflows.shared.token_utils import get_tokenizer

from testing.utils import FakeOracle, sample_book


@pytest.fixture(autouse=True)
def logging_run(request: pytest.FixtureRequest) -> Generator[None, None, None]:
    """Rotate logs at test module boundaries.

    Each test module gets its own logging run, which triggers log rotation
    on first write to each module's log file.

    When running with pytest-xdist, each worker uses a separate log directory
    to prevent file corruption from concurrent writes.
    """
    import os

    worker_id = os.environ.get("PYTEST_XDIST_WORKER")
    if worker_id:
        os.environ["CONDENSER_LOG_DIR"] = f"logs/test-{worker_id}"

    # Use test module path as run identifier (e.g., "test-testing-test_checkpoint_store")
    test_path = request.node.nodeid.split("::")[0]
    test_name = test_path.replace("/", "-").replace(".py", "")
    start_run(f"test-{test_name}")
    yield
    end_run()


@pytest.fixture
def tokenizer():
    return get_tokenizer()


@pytest.fixture
def memory_store() -> MemoryCheckpointStore:
    return MemoryCheckpointStore()


@pytest.fixture
def file_store(tmp_path) -> FileCheckpointStore:
    return FileCheckpointStore(tmp_path / "checkpoints")


@pytest.fixture
def fake_oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def no_wait_retry() -> RetryPolicy:
    """Three attempts without sleeping between them."""
    return RetryPolicy(max_attempts=3, base_delay=0.0)


@pytest.fixture
def book_text() -> str:
    return sample_book()


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests requiring external services",
    )
