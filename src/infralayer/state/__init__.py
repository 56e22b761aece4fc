"""State records and stores."""

from infralayer.state.models import TOMBSTONE, StateDocument, StateRecord
from infralayer.state.store import InMemoryStateStore, JsonStateStore, StateStore

__all__ = [
    "TOMBSTONE",
    "InMemoryStateStore",
    "JsonStateStore",
    "StateDocument",
    "StateRecord",
    "StateStore",
]
