"""
Deferred publish gate for the pool data-node.

While the consumer is in an exclusive interaction (a deposit or withdraw
dialog bound to the current row values), new record sets must not reach
the store. The gate keeps the newest one in a single pending slot and
flushes it when the interaction ends.

State machine:
- IDLE: publish() replaces the store's records immediately
- INTERACTION_ACTIVE: publish() overwrites the pending slot (last write wins)

The state, the pending slot and the flush share one lock, so a flush can
never interleave with a concurrent publish().
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Optional, Sequence

from loguru import logger

from .store import PublishedStore
from .models import AggregatedRecord


class GateState(str, Enum):
    IDLE = "idle"
    INTERACTION_ACTIVE = "interaction_active"


class InteractionGate:
    """Routes candidate record sets to the store or to the pending slot."""

    def __init__(self, store: PublishedStore):
        self._store = store
        self._lock = threading.RLock()
        self._state = GateState.IDLE
        self._pending: Optional[tuple[AggregatedRecord, ...]] = None

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def pending(self) -> Optional[tuple[AggregatedRecord, ...]]:
        return self._pending

    def baseline(self) -> tuple[AggregatedRecord, ...]:
        """Newest accepted records: the pending slot if filled, else the store's."""
        with self._lock:
            if self._pending is not None:
                return self._pending
            return self._store.current_set().records

    def publish(self, candidate: Sequence[AggregatedRecord]) -> bool:
        """
        Hand a changed record set to the gate.

        Returns:
            True if the store was updated, False if the set was deferred
        """
        records = tuple(candidate)
        with self._lock:
            if self._state is GateState.INTERACTION_ACTIVE:
                replaced = self._pending is not None
                self._pending = records
                logger.debug(
                    f"Interaction active, deferred {len(records)} records"
                    + (" (replaced pending set)" if replaced else "")
                )
                return False
            self._store.replace(records)
            return True

    def begin_interaction(self) -> None:
        with self._lock:
            if self._state is GateState.INTERACTION_ACTIVE:
                logger.debug("Interaction already active")
                return
            self._state = GateState.INTERACTION_ACTIVE
        logger.info("Interaction started, publishing deferred")

    def end_interaction(self) -> bool:
        """
        Leave the interaction and flush the pending set if there is one.

        Returns:
            True if a pending set was published
        """
        with self._lock:
            if self._state is GateState.IDLE:
                logger.debug("No interaction active")
                return False
            self._state = GateState.IDLE
            pending, self._pending = self._pending, None
            if pending is None:
                logger.info("Interaction ended, nothing pending")
                return False
            if pending == self._store.current_set().records:
                logger.info("Interaction ended, pending set matches published set")
                return False
            logger.info(f"Interaction ended, flushing {len(pending)} pending records")
            self._store.replace(pending)
            return True
