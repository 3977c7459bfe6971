import pytest

from accessprof.capture.store import LogStore


@pytest.fixture
def log_file(tmp_path):
    """Path of a durable log that does not exist yet."""
    return tmp_path / "access.ltsv"


@pytest.fixture
def store():
    """Memory-only store."""
    return LogStore()


@pytest.fixture
def file_store(log_file):
    """Store spilling to a temporary log file."""
    return LogStore(log_file=log_file)
