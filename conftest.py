import shutil
from pathlib import Path

import pytest

from backend import mcp_server, state

TEST_DATA_DIR = Path("data-tests")


@pytest.fixture(autouse=True)
def clean_test_data(monkeypatch):
    """Wipe and re-init data-tests/ before every test."""
    monkeypatch.delenv("STORY_CONTEXT_CONFIG", raising=False)
    if TEST_DATA_DIR.exists():
        shutil.rmtree(TEST_DATA_DIR)
    state.init_state(TEST_DATA_DIR)
    mcp_server.set_config(None)
    yield
    # leave data-tests around after tests for inspection; CI can ignore it
