"""Pytest configuration and fixtures."""

import pytest

from cellflow.config import reset_config
from cellflow.execution.executor import CellExecutor
from cellflow.models import Cell, Notebook
from cellflow.persistence import InMemoryStore
from cellflow.providers.base import ProviderResponse
from cellflow.run import NotebookLockRegistry, RunCoordinator


class FakeProvider:
    """Scripted provider that records every call.

    Each call consumes the next scripted item: a string is returned as the
    response text, an exception is raised, and a callable is called with the
    prompt to produce the text. When the script runs out, default is returned.
    """

    def __init__(self, responses=None, default="ok"):
        self.responses = list(responses or [])
        self.default = default
        self.calls = []

    def generate(self, system, prompt, timeout=None):
        self.calls.append({"system": system, "prompt": prompt, "timeout": timeout})
        item = self.responses.pop(0) if self.responses else self.default
        if isinstance(item, Exception):
            raise item
        if callable(item):
            item = item(prompt)
        return ProviderResponse(text=item)

    @property
    def prompts(self):
        return [call["prompt"] for call in self.calls]


@pytest.fixture(autouse=True)
def reset_config_after_test():
    """Reset global config after each test."""
    yield
    reset_config()


@pytest.fixture
def fake_provider():
    """Provider returning "ok" unless scripted."""
    return FakeProvider()


@pytest.fixture
def make_provider():
    """Factory for scripted providers."""
    return FakeProvider


@pytest.fixture
def store():
    """Empty in-memory store."""
    return InMemoryStore()


@pytest.fixture
def make_coordinator(store):
    """Build a coordinator over the shared store with a private lock registry."""

    def _make(provider, **kwargs):
        return RunCoordinator(store, CellExecutor(provider), locks=NotebookLockRegistry(), **kwargs)

    return _make


@pytest.fixture
def approval_notebook(store):
    """C1 command -> C2 approve -> C3 query, each depending on the previous."""
    notebook = Notebook(
        id="nb-approval",
        title="Customer follow-up",
        cells=[
            Cell(id="C1", cell_index=0, cell_type="command", content="List new customers"),
            Cell(
                id="C2",
                cell_index=1,
                cell_type="approve",
                title="Check customer list",
                content="Review {{C1}}",
                dependencies=["C1"],
            ),
            Cell(
                id="C3",
                cell_index=2,
                cell_type="query",
                content="Fetch orders for {{C1}}",
                dependencies=["C2"],
            ),
        ],
    )
    return store.save_notebook(notebook)


@pytest.fixture
def chain_notebook(store):
    """Three command cells without approvals, chaining with {{prev}}."""
    notebook = Notebook(
        id="nb-chain",
        title="Weekly report",
        cells=[
            Cell(id="a", cell_index=0, content="Collect metrics"),
            Cell(id="b", cell_index=1, content="Summarize {{prev}}", dependencies=["a"]),
            Cell(id="c", cell_index=2, content="Draft email from {{b}}", dependencies=["b"]),
        ],
    )
    return store.save_notebook(notebook)
