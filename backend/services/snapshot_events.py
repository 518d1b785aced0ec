"""Snapshot change notifications.

Consumers that need to react to new or recomputed snapshots register a
callback with the engine's bus instead of listening on a global channel.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotUpdated:
    """Emitted after a snapshot upsert commits (portfolio_id None = aggregate)."""

    snapshot_date: date
    portfolio_id: Optional[str]


SnapshotListener = Callable[[SnapshotUpdated], None]


class SnapshotEventBus:
    def __init__(self):
        self._listeners: list[SnapshotListener] = []

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: SnapshotUpdated) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.warning("Snapshot listener failed for %s", event, exc_info=True)
