"""Pytest configuration shared by the deepgraph test suite."""

import pytest

from deepgraph.llm.token_tracker import get_token_tracker


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch):
    """Keep tests independent of the caller's config, verbosity and token history."""
    monkeypatch.delenv("DEEPGRAPH_CONFIG", raising=False)
    monkeypatch.delenv("DEEPGRAPH_LLM_VERBOSE", raising=False)
    get_token_tracker().reset()
    yield
    get_token_tracker().reset()
