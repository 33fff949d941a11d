"""Lifecycle events emitted by the build store.

Events are plain frozen dataclasses put on an in-process queue. The store
never calls subscribers directly.
"""

from __future__ import annotations

import queue
from dataclasses import dataclass
from typing import ClassVar, Union


@dataclass(frozen=True)
class BuildCreated:
    type: ClassVar[str] = "build.created"

    pr: int
    sha: str
    is_public: bool


@dataclass(frozen=True)
class VisibilityChanged:
    type: ClassVar[str] = "pr.changedVisibility"

    pr: int
    shas: tuple[str, ...]
    is_public: bool


LifecycleEvent = Union[BuildCreated, VisibilityChanged]


class EventQueue:
    """FIFO of lifecycle events. Emission order is preserved per producer."""

    def __init__(self, maxsize: int = 0):
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)

    def publish(self, event: LifecycleEvent) -> None:
        self._queue.put(event)

    def get(self, timeout: float | None = None) -> LifecycleEvent | None:
        """Return the next event, or None if none arrived within ``timeout`` seconds."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def get_nowait(self) -> LifecycleEvent | None:
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def __len__(self) -> int:
        return self._queue.qsize()
