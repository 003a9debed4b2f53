"""
Read-aggregate-publish engine for the pool data-node.

Pipeline per tick:
    results -> decode() -> changed() -> InteractionGate -> PublishedStore

update_inputs() re-plans whenever the resources, home partition or account
change. A different descriptor list cancels the running subscription and
starts a new one. Every subscription gets a generation number, and ticks or
errors carrying an old generation are dropped without touching the store.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from functools import partial
from typing import Callable, Iterable, Optional, Sequence

from loguru import logger

from .config import NodeConfig
from .decoder import DEFAULT_SYMBOL_PREFIX, decode
from .detector import changed, fingerprint
from .errors import MisalignedResultsError
from .gate import GateState, InteractionGate
from .planner import QueryPlan, plan, plan_changed
from .readers import import_callable, load_reader
from .resolver import AddressResolver
from .store import PublishedStore
from .transport import BlockTrigger, IntervalTrigger, PollingTransport
from .models import Address, PartitionId, PublishedSet, RawResult, ResourceId


class PoolEngine:
    """
    Owns the active plan and subscription, and drives ticks into the store.

    Args:
        resolver: Address lookup used by the planner
        transport: Anything with subscribe(descriptors, on_tick, on_error) -> cancel
        partitions: Every known partition id
        store: Published store (default: new PublishedStore)
        symbol_prefix: Prefix stripped from on-chain symbols
        require_nonzero: Drop pools whose fields are zero, not only missing
    """

    def __init__(
        self,
        resolver: AddressResolver,
        transport,
        partitions: Sequence[PartitionId],
        store: Optional[PublishedStore] = None,
        symbol_prefix: Optional[str] = DEFAULT_SYMBOL_PREFIX,
        require_nonzero: bool = False,
    ):
        self.resolver = resolver
        self.transport = transport
        self.partitions = list(partitions)
        self.store = store or PublishedStore()
        self.gate = InteractionGate(self.store)
        self.symbol_prefix = symbol_prefix
        self.require_nonzero = require_nonzero

        # Held while re-planning; ordered before _tick_lock
        self._plan_lock = threading.Lock()
        # Serializes tick processing and generation swaps
        self._tick_lock = threading.Lock()

        self._plan: Optional[QueryPlan] = None
        self._generation = 0
        self._cancel: Optional[Callable[[], None]] = None
        # Per-thread marker for store listeners running inside a tick
        self._local = threading.local()

        self._stats_lock = threading.Lock()
        self._stats = {
            "resubscriptions": 0,
            "ticks_processed": 0,
            "ticks_stale": 0,
            "ticks_misaligned": 0,
            "ticks_empty": 0,
            "ticks_failed": 0,
            "publishes": 0,
            "deferred": 0,
            "unchanged": 0,
        }

    @classmethod
    def from_config(cls, config: NodeConfig, store: Optional[PublishedStore] = None) -> "PoolEngine":
        """Build an engine with a polling transport over the configured reader."""
        reader = load_reader(config.reader)

        trigger = config.trigger or {}
        if trigger.get("kind", "interval") == "block":
            get_block_number = import_callable(trigger["block_number"])
            block_poll = float(trigger.get("poll_interval", 2.0))
            trigger_factory = lambda: BlockTrigger(get_block_number, block_poll)
        else:
            trigger_factory = lambda: IntervalTrigger(config.poll_interval)

        return cls(
            resolver=config.resolver(),
            transport=PollingTransport(reader, trigger_factory=trigger_factory),
            partitions=config.partitions,
            store=store,
            symbol_prefix=config.symbol_prefix,
            require_nonzero=config.require_nonzero,
        )

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    @property
    def current_plan(self) -> Optional[QueryPlan]:
        return self._plan

    def update_inputs(
        self,
        resources: Iterable[ResourceId],
        home: PartitionId,
        account: Optional[Address] = None,
    ) -> bool:
        """
        Re-plan for new inputs and re-subscribe if the descriptor list changed.

        Called from a store listener while a tick is being processed, the
        re-plan is queued and runs as soon as that tick completes.

        Returns:
            True if a new subscription was started (False when queued)
        """
        if self._defer_if_in_tick(partial(self.update_inputs, list(resources), home, account)):
            return False

        with self._plan_lock:
            new_plan = plan(resources, home, self.resolver, self.partitions, account)
            if not plan_changed(self._plan, new_plan):
                logger.debug("Plan unchanged, keeping subscription")
                return False

            # No tick of the old plan may be processed after this point
            with self._tick_lock:
                self._generation += 1
                generation = self._generation
                self._plan = new_plan
                old_cancel, self._cancel = self._cancel, None

            if old_cancel is not None:
                old_cancel()

            self.store.mark_loading()
            self._cancel = self.transport.subscribe(
                new_plan.descriptors,
                partial(self._on_tick, generation),
                partial(self._on_error, generation),
            )
            self._bump("resubscriptions")

        logger.info(
            f"Subscribed to {len(new_plan.descriptors)} reads for "
            f"{len(new_plan.layouts)} pools on partition {home} (generation {generation})"
        )
        return True

    def stop(self) -> None:
        """Cancel the active subscription. Late ticks are ignored."""
        if self._defer_if_in_tick(self.stop):
            return
        with self._plan_lock:
            with self._tick_lock:
                self._generation += 1
                cancel, self._cancel = self._cancel, None
            if cancel is not None:
                cancel()
                logger.info("Subscription stopped")

    # ------------------------------------------------------------------
    # Tick processing
    # ------------------------------------------------------------------

    def _defer_if_in_tick(self, call: Callable[[], object]) -> bool:
        """Queue `call` when invoked from this thread's tick; the last queued call wins."""
        if not getattr(self._local, "in_tick", False):
            return False
        self._local.deferred = call
        logger.debug("Plan change requested during a tick, running it after the tick")
        return True

    @contextmanager
    def _tick_scope(self):
        """Mark this thread as processing a tick; run any queued plan change afterwards."""
        self._local.in_tick = True
        self._local.deferred = None
        try:
            yield
        finally:
            self._local.in_tick = False
            deferred, self._local.deferred = self._local.deferred, None
        if deferred is not None:
            deferred()

    def _on_tick(self, generation: int, results: Sequence[RawResult]) -> None:
        with self._tick_scope(), self._tick_lock:
            if generation != self._generation:
                logger.debug(f"Dropping tick from stale subscription (generation {generation})")
                self._bump("ticks_stale")
                return
            self._process(self._plan, results)

    def _on_error(self, generation: int, error: Exception) -> None:
        with self._tick_scope(), self._tick_lock:
            if generation != self._generation:
                return
            logger.warning(f"Tick failed: {error}")
            self._bump("ticks_failed")
            self.store.record_failure(str(error))

    def _process(self, query_plan: QueryPlan, results: Sequence[RawResult]) -> None:
        if not results and not query_plan.is_empty:
            logger.debug("Empty result list, no data yet")
            self._bump("ticks_empty")
            return

        try:
            records = decode(
                results,
                query_plan,
                symbol_prefix=self.symbol_prefix,
                require_nonzero=self.require_nonzero,
            )
        except MisalignedResultsError as e:
            logger.warning(f"Discarding misaligned tick: {e}")
            self._bump("ticks_misaligned")
            return

        self._bump("ticks_processed")

        if not changed(self.gate.baseline(), records):
            logger.debug(f"Records unchanged ({fingerprint(records)})")
            self._bump("unchanged")
        elif self.gate.publish(records):
            logger.debug(f"Records changed ({fingerprint(records)}), published")
            self._bump("publishes")
        else:
            self._bump("deferred")

        self.store.mark_loaded()

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def begin_interaction(self) -> None:
        self.gate.begin_interaction()

    def end_interaction(self) -> bool:
        return self.gate.end_interaction()

    @property
    def interaction_state(self) -> GateState:
        return self.gate.state

    def current_set(self) -> PublishedSet:
        return self.store.current_set()

    def _bump(self, key: str) -> None:
        with self._stats_lock:
            self._stats[key] += 1

    def stats(self) -> dict:
        with self._stats_lock:
            snapshot = dict(self._stats)
        snapshot["generation"] = self._generation
        snapshot["interaction"] = self.gate.state.value
        return snapshot
