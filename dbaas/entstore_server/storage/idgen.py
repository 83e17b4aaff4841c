"""
Record ID generators.

Invariants:
    - Generated IDs are never reused, even after the record is deleted
    - Auto-increment IDs are decimal strings starting at "1"
    - Callers must hold the owning type's write lock while generating
"""

from __future__ import annotations

import uuid
from typing import Protocol

from ..schema.types import IdStrategy


class IdGenerator(Protocol):
    """Produces record IDs for one entity type."""

    def next_id(self) -> str: ...

    def observe(self, record_id: str) -> None: ...


class AutoIncrementGenerator:
    """Monotonically increasing integer IDs.

    observe() advances the counter past explicitly supplied numeric IDs
    so that later generated IDs never collide with them.
    """

    def __init__(self, start: int = 1) -> None:
        if start < 1:
            raise ValueError(f"start must be >= 1, got {start}")
        self._next = start

    def next_id(self) -> str:
        value = self._next
        self._next += 1
        return str(value)

    def observe(self, record_id: str) -> None:
        if record_id.isdigit():
            self._next = max(self._next, int(record_id) + 1)

    @property
    def peek(self) -> int:
        """The integer the next call to next_id() will return."""
        return self._next


class UuidGenerator:
    """Random version 4 UUID strings."""

    def next_id(self) -> str:
        return str(uuid.uuid4())

    def observe(self, record_id: str) -> None:
        pass


def create_id_generator(strategy: IdStrategy) -> IdGenerator:
    """Create the generator matching an entity type's ID strategy."""
    if strategy == IdStrategy.AUTO_INCREMENT:
        return AutoIncrementGenerator()
    if strategy == IdStrategy.UUID:
        return UuidGenerator()
    raise ValueError(f"Unsupported ID strategy: {strategy}")
