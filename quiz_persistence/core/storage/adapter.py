"""Tiered storage adapter.

Backends are passed as an explicit ordered list. Writes go to every tier in
that order, reads return the first tier that has the key. Failures in any
tier are logged and swallowed: persistence is best-effort and must never
break quiz-taking.
"""

from __future__ import annotations

import logging
from typing import Sequence

from quiz_persistence.core.errors import StorageUnavailable
from quiz_persistence.core.storage.backends import MemoryStorage, SqliteStorage, StorageBackend

logger = logging.getLogger(__name__)


class TieredStorage:
    """Uniform get/set/remove over ordered storage tiers (persistent first)."""

    def __init__(self, backends: Sequence[StorageBackend]) -> None:
        if not backends:
            raise ValueError("At least one storage backend is required.")
        self._backends: tuple[StorageBackend, ...] = tuple(backends)

    @classmethod
    def default(cls, db_path: str) -> "TieredStorage":
        return cls([SqliteStorage(db_path), MemoryStorage()])

    @property
    def backends(self) -> tuple[StorageBackend, ...]:
        return self._backends

    def set(self, key: str, value: str) -> bool:
        """Write to every tier; True when at least one tier accepted the value."""
        stored = False
        for backend in self._backends:
            try:
                backend.set_item(key, value)
                stored = True
            except StorageUnavailable as exc:
                logger.warning("Could not write '%s' to %s storage: %s", key, backend.name, exc)
        return stored

    def get(self, key: str) -> str | None:
        for backend in self._backends:
            try:
                value = backend.get_item(key)
            except StorageUnavailable as exc:
                logger.warning("Could not read '%s' from %s storage: %s", key, backend.name, exc)
                continue
            if value is not None:
                return value
        return None

    def remove(self, key: str) -> None:
        for backend in self._backends:
            try:
                backend.remove_item(key)
            except StorageUnavailable as exc:
                logger.warning("Could not remove '%s' from %s storage: %s", key, backend.name, exc)

    def keys(self, prefix: str = "") -> list[str]:
        found: set[str] = set()
        for backend in self._backends:
            try:
                found.update(key for key in backend.keys() if key.startswith(prefix))
            except StorageUnavailable as exc:
                logger.warning("Could not list keys of %s storage: %s", backend.name, exc)
        return sorted(found)
