"""Shared key-value storage for session state.

Session fields live in a store shared by every execution context (tab,
process) of the client. Each context gets its own view; writes are applied
as one group and every *other* view is notified of the change, the way
browser storage events work.

Implementations:
- SharedMemoryStorage: contexts inside one process (and tests)
- FileStorage: a JSON file shared between processes, watched with watchfiles
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from watchfiles import awatch

logger = logging.getLogger(__name__)

StorageListener = Callable[["StorageChange"], None]


@dataclass(frozen=True)
class StorageChange:
    """A group of keys written by another context.

    Attributes:
        values: New value per written key; None means the key was removed.
        source: Name of the context that wrote, when known.
    """

    values: dict[str, str | None] = field(default_factory=dict)
    source: str | None = None

    def touches(self, *keys: str) -> bool:
        """Check whether any of ``keys`` was written."""
        return any(key in self.values for key in keys)


class SessionStorage(Protocol):
    """What the session manager needs from a shared store."""

    def get(self, key: str) -> str | None:
        """Read one key."""
        ...

    def update(self, values: Mapping[str, str | None]) -> None:
        """Write a group of keys at once; None removes a key."""
        ...

    def subscribe(self, callback: StorageListener) -> Callable[[], None]:
        """Get notified of writes made by other contexts."""
        ...


class _Subscribers:
    """Listener list that isolates failing callbacks."""

    def __init__(self) -> None:
        self._callbacks: list[StorageListener] = []

    def add(self, callback: StorageListener) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def deliver(self, change: StorageChange) -> None:
        for callback in list(self._callbacks):
            try:
                callback(change)
            except Exception:
                logger.exception("Storage change listener failed")

    def __len__(self) -> int:
        return len(self._callbacks)


class SharedMemoryStorage:
    """In-process backing store shared by several contexts.

    Example:
        shared = SharedMemoryStorage()
        tab_a, tab_b = shared.context("a"), shared.context("b")
        tab_a.update({"auth_token": "t"})  # tab_b's subscribers are notified
    """

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._contexts: list[StorageContext] = []

    def context(self, name: str | None = None) -> StorageContext:
        """Open a new context view onto this store."""
        ctx = StorageContext(self, name or f"context-{len(self._contexts) + 1}")
        self._contexts.append(ctx)
        return ctx

    def snapshot(self) -> dict[str, str]:
        """Copy of the stored data."""
        return dict(self._data)

    def _read(self, key: str) -> str | None:
        return self._data.get(key)

    def _write(self, origin: StorageContext, values: Mapping[str, str | None]) -> None:
        for key, value in values.items():
            if value is None:
                self._data.pop(key, None)
            else:
                self._data[key] = value

        change = StorageChange(values=dict(values), source=origin.name)
        for ctx in list(self._contexts):
            if ctx is not origin:
                ctx._subscribers.deliver(change)


class StorageContext:
    """One context's view onto a SharedMemoryStorage."""

    def __init__(self, shared: SharedMemoryStorage, name: str):
        self.shared = shared
        self.name = name
        self._subscribers = _Subscribers()

    def get(self, key: str) -> str | None:
        return self.shared._read(key)

    def update(self, values: Mapping[str, str | None]) -> None:
        self.shared._write(self, values)

    def subscribe(self, callback: StorageListener) -> Callable[[], None]:
        return self._subscribers.add(callback)


class FileStorage:
    """Session storage backed by a JSON file shared between processes.

    Writes replace the file atomically. Changes made by other processes are
    picked up by ``check_for_changes()``, which ``watch()`` runs whenever the
    file changes on disk.

    Attributes:
        path: Location of the JSON file.
        name: Name reported as the source of changes.
    """

    def __init__(self, path: Path | str, name: str | None = None):
        self.path = Path(path)
        self.name = name or f"pid-{os.getpid()}"
        self._subscribers = _Subscribers()
        self._snapshot: dict[str, str] = self._read()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read session storage {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed session storage {self.path}")
            return {}
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> str | None:
        return self._read().get(key)

    def update(self, values: Mapping[str, str | None]) -> None:
        data = self._read()
        for key, value in values.items():
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value
        self._write(data)
        self._snapshot = data

    def subscribe(self, callback: StorageListener) -> Callable[[], None]:
        return self._subscribers.add(callback)

    def check_for_changes(self) -> StorageChange | None:
        """Compare the file with what this process last saw and notify.

        Returns:
            The change delivered to subscribers, or None if nothing changed.
        """
        current = self._read()
        changed_keys = {
            key
            for key in set(current) | set(self._snapshot)
            if current.get(key) != self._snapshot.get(key)
        }
        if not changed_keys:
            return None

        self._snapshot = current
        change = StorageChange(values={key: current.get(key) for key in sorted(changed_keys)})
        logger.debug(f"Session storage changed externally: {sorted(changed_keys)}")
        self._subscribers.deliver(change)
        return change

    async def watch(self, stop_event: Any = None) -> None:
        """Watch the storage file and deliver external changes until stopped.

        Args:
            stop_event: Optional asyncio.Event that ends the watch when set.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        target = self.path.resolve()

        async for changes in awatch(self.path.parent, stop_event=stop_event):
            if any(Path(changed).resolve() == target for _, changed in changes):
                self.check_for_changes()
