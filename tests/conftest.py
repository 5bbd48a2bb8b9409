"""
Shared pytest fixtures for ftag tests.

Every test runs with FTAG_* variables cleared and the config file pointed
into its own temp directory, and any store left open is closed afterwards.
"""

import pytest

from ftag import store as store_module
from ftag.paths import MEMORY_STORE
from ftag.store import open_store


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path_factory):
    """Keep user config and environment out of tests."""
    for name in ("FTAG_DB", "FTAG_DIR", "FTAG_SHOW_HIDDEN", "FTAG_VERBOSE"):
        monkeypatch.delenv(name, raising=False)
    config_dir = tmp_path_factory.mktemp("config")
    monkeypatch.setenv("FTAG_CONFIG", str(config_dir / "config.toml"))
    monkeypatch.setenv("FTAG_HOME", str(config_dir))


@pytest.fixture(autouse=True)
def _close_leftover_store():
    """One store per process: don't let a failed test leak its handle."""
    yield
    leftover = store_module.current_store()
    if leftover is not None:
        leftover.close()


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Run the test inside an empty temp directory."""
    monkeypatch.chdir(tmp_path)
    return tmp_path.resolve()


@pytest.fixture
def memory_store():
    """In-memory store, closed after the test."""
    store = open_store(MEMORY_STORE)
    yield store
    store.close()


@pytest.fixture
def sample_store(memory_store):
    """F1 tagged {a}, F2 tagged {a, b}."""
    memory_store.tag_file("F1", "a")
    memory_store.tag_file("F2", "a")
    memory_store.tag_file("F2", "b")
    return memory_store
