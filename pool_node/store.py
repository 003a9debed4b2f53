"""
Published store for the pool data-node.

Holds the latest PublishedSet. Every write replaces the snapshot wholesale,
so readers can take current_set() without any locking of their own.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Sequence

from loguru import logger

from .models import AggregatedRecord, PublishedSet

Listener = Callable[[PublishedSet], None]


class PublishedStore:
    """Latest record set plus loading flag, with change listeners."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current = PublishedSet()
        self._listeners: list[Listener] = []

    def current_set(self) -> PublishedSet:
        return self._current

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called after every state change. Returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def replace(self, records: Sequence[AggregatedRecord]) -> PublishedSet:
        """Swap in a new record set and clear the loading flag."""
        with self._lock:
            self._current = PublishedSet(
                records=tuple(records),
                loading=False,
                version=self._current.version + 1,
                updated_at=datetime.now(timezone.utc),
            )
            snapshot = self._current
        logger.info(f"Published {len(snapshot.records)} records (version {snapshot.version})")
        self._notify(snapshot)
        return snapshot

    def mark_loaded(self) -> None:
        """Clear the loading flag and any failure left by an earlier tick."""
        self._set_loading(False, clear_error=True)

    def mark_loading(self) -> None:
        self._set_loading(True)

    def record_failure(self, message: str) -> None:
        """Keep records and loading flag as they are; remember the error."""
        with self._lock:
            self._current = replace(self._current, last_error=message)
            snapshot = self._current
        self._notify(snapshot)

    def _set_loading(self, loading: bool, clear_error: bool = False) -> None:
        with self._lock:
            error = None if clear_error else self._current.last_error
            if self._current.loading == loading and self._current.last_error == error:
                return
            self._current = replace(self._current, loading=loading, last_error=error)
            snapshot = self._current
        logger.debug(f"Store loading={loading}")
        self._notify(snapshot)

    def _notify(self, snapshot: PublishedSet) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception as e:
                logger.exception(f"Store listener failed: {e}")
