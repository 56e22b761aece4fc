"""
State stores.

A store is loaded once per run and committed incrementally, one address at
a time. Each commit is durable before it returns, so a crash between two
commits keeps every earlier record.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Protocol, Union

import pydantic
import structlog

from infralayer.core.errors import StateError, ValidationError
from infralayer.resources.models import Address
from infralayer.state.models import TOMBSTONE, StateDocument, StateRecord, _Tombstone

logger = structlog.get_logger()

CommitValue = Union[StateRecord, _Tombstone]

DEFAULT_STATE_PATH = Path("infralayer.state.json")


class StateStore(Protocol):
    """Contract between the executor and state persistence."""

    async def load(self) -> dict[Address, StateRecord]:
        ...

    async def commit(self, address: Address, record: CommitValue) -> None:
        ...


def _apply_commit(
    records: dict[Address, StateRecord], address: Address, record: CommitValue
) -> None:
    if record is TOMBSTONE:
        records.pop(address, None)
        return
    if not isinstance(record, StateRecord):
        raise TypeError(f"Cannot commit {type(record).__name__} for {address}")
    if record.address != address:
        raise ValueError(f"Record address {record.address} does not match {address}")
    records[address] = record


class InMemoryStateStore:
    """Dict-backed store for tests and dry runs."""

    def __init__(self, records: dict[Address, StateRecord] | None = None) -> None:
        self._records: dict[Address, StateRecord] = dict(records or {})
        self.commits = 0

    async def load(self) -> dict[Address, StateRecord]:
        return dict(self._records)

    async def commit(self, address: Address, record: CommitValue) -> None:
        _apply_commit(self._records, address, record)
        self.commits += 1

    @property
    def records(self) -> dict[Address, StateRecord]:
        return dict(self._records)


class JsonStateStore:
    """JSON file store with atomic per-commit replacement."""

    def __init__(self, path: Path | str | None = None) -> None:
        self.path = Path(path) if path is not None else DEFAULT_STATE_PATH
        self._lock = asyncio.Lock()
        self._document: StateDocument | None = None

    async def load(self) -> dict[Address, StateRecord]:
        self._document = self.read_document()
        try:
            return self._document.to_records()
        except ValidationError as exc:
            raise StateError(
                f"State file {self.path} holds an invalid address", {"path": str(self.path)}
            ) from exc

    async def commit(self, address: Address, record: CommitValue) -> None:
        async with self._lock:
            document = self._document or self.read_document()
            records = document.to_records()
            _apply_commit(records, address, record)
            updated = StateDocument.from_records(records, serial=document.serial + 1)
            await asyncio.to_thread(self._write, updated.render())
            self._document = updated
        logger.debug(
            "state_committed",
            address=str(address),
            removed=record is TOMBSTONE,
            serial=updated.serial,
        )

    def read_document(self) -> StateDocument:
        if not self.path.exists():
            return StateDocument()
        try:
            data = json.loads(self.path.read_text())
            return StateDocument.model_validate(data)
        except (json.JSONDecodeError, pydantic.ValidationError) as exc:
            raise StateError(
                f"State file {self.path} is malformed", {"path": str(self.path), "error": str(exc)}
            ) from exc

    def render(self) -> str:
        """Current state document as text."""
        return self.read_document().render()

    def _write(self, text: str) -> None:
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=directory, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as handle:
                handle.write(text)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
