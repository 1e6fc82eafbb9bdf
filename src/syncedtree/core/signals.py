"""Typed signals and lifecycle-scoped subscriptions.

This module provides:
- Signal: a named list of handlers invoked synchronously on emit()
- Subscriptions: records connections so they can be torn down together

Handlers run in connection order. A failing handler is logged and does not
prevent the remaining handlers from running or fail the emitter.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class Signal:
    """A named event that handlers can subscribe to."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._handlers: list[Callable[..., Any]] = []

    def connect(self, handler: Callable[..., Any]) -> Callable[..., Any]:
        """Subscribe handler. Returns the handler (usable as a decorator)."""
        self._handlers.append(handler)
        return handler

    def disconnect(self, handler: Callable[..., Any]) -> bool:
        """Unsubscribe one registration of handler.

        Returns:
            True if the handler was connected.
        """
        try:
            self._handlers.remove(handler)
        except ValueError:
            return False
        return True

    def emit(self, *args: Any) -> None:
        """Invoke every handler with args."""
        for handler in list(self._handlers):
            try:
                handler(*args)
            except Exception:
                logger.exception("Handler for signal %r failed", self.name)

    def __len__(self) -> int:
        return len(self._handlers)

    def __repr__(self) -> str:
        return f"Signal({self.name!r}, handlers={len(self._handlers)})"


class Subscriptions:
    """Connections created together and released together.

    Usage:
        subs = Subscriptions()
        subs.add(index.replicated, on_update)
        ...
        subs.clear()  # disconnects everything added above
    """

    def __init__(self) -> None:
        self._connections: list[tuple[Signal, Callable[..., Any]]] = []

    def add(self, signal: Signal, handler: Callable[..., Any]) -> None:
        signal.connect(handler)
        self._connections.append((signal, handler))

    def clear(self) -> int:
        """Disconnect all recorded connections.

        Returns:
            Number of connections released.
        """
        count = len(self._connections)
        for signal, handler in reversed(self._connections):
            signal.disconnect(handler)
        self._connections.clear()
        return count

    def __len__(self) -> int:
        return len(self._connections)
