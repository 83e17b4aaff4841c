"""
Per-entity-type reader/writer locks.

Reads (get_by_id, find_all, query, join lookups) share a type's lock;
writes (create, update, patch, delete) hold it exclusively. Waiting
writers block new readers so a steady read load cannot starve writes.

Invariants:
    - A thread never holds locks of two entity types at once
    - Locks are not reentrant; store methods never nest them
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class ReadWriteLock:
    """Writer-preferring shared/exclusive lock."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def write_locked(self) -> bool:
        return self._writer


class LockTable:
    """Lazily created ReadWriteLock per entity type name."""

    def __init__(self) -> None:
        self._locks: dict[str, ReadWriteLock] = {}
        self._guard = threading.Lock()

    def get(self, entity_type: str) -> ReadWriteLock:
        with self._guard:
            lock = self._locks.get(entity_type)
            if lock is None:
                lock = ReadWriteLock()
                self._locks[entity_type] = lock
            return lock

    def read(self, entity_type: str):
        return self.get(entity_type).read()

    def write(self, entity_type: str):
        return self.get(entity_type).write()
