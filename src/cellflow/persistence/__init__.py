"""Persistence adapters for notebooks, cells and runs."""

from cellflow.persistence.base import PersistenceAdapter
from cellflow.persistence.json_store import JsonFileStore
from cellflow.persistence.memory import InMemoryStore

__all__ = ["InMemoryStore", "JsonFileStore", "PersistenceAdapter"]
