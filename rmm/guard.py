"""Reentrancy guard for engine operations.

Every externally reachable mutation holds the records it touches for its
whole duration, including any caller callback. A nested call that needs a
held record fails immediately with ``Locked``; nothing waits or queues.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Protocol

import structlog

from rmm.errors import Locked

logger = structlog.get_logger()

LockKey = tuple[object, ...]


class Lockable(Protocol):
    """A record that can be held by the guard."""

    locked: bool

    @property
    def lock_key(self) -> LockKey: ...


class ReentrancyGuard:
    """Tracks which records are held by an operation in flight.

    Locks are tracked by key as well as by each record's ``locked`` flag, so
    a record fetched fresh (not yet stored in the ledger) is still protected
    against a second fetch of the same key.
    """

    def __init__(self) -> None:
        self._held: set[LockKey] = set()

    def is_held(self, key: LockKey) -> bool:
        return key in self._held

    @contextmanager
    def hold(self, *records: Lockable) -> Iterator[None]:
        """Hold all records for the duration of the block.

        Raises:
            Locked: If any record is already held. No record is modified.
        """
        unique: dict[LockKey, Lockable] = {}
        for record in records:
            unique.setdefault(record.lock_key, record)

        for key, record in unique.items():
            if key in self._held or record.locked:
                logger.debug("reentrant_call_rejected", lock_key=key)
                raise Locked(f"{key[0]} {key[1:]} is locked by an operation in progress")

        for key, record in unique.items():
            self._held.add(key)
            record.locked = True
        try:
            yield
        finally:
            for key, record in unique.items():
                record.locked = False
                self._held.discard(key)
