"""
Tests for pool_node.gate module.

Tests:
- Immediate publish while idle
- Last-write-wins deferral while an interaction is active
- Atomic flush on interaction end
"""

import threading
from decimal import Decimal

from pool_node.gate import GateState, InteractionGate
from pool_node.store import PublishedStore
from pool_node.models import AggregatedRecord, Amount


def records(tvl):
    return [
        AggregatedRecord(
            resource_id="USDC",
            decimals=6,
            apr=Decimal(5),
            total_value_locked=Amount(tvl, 6),
            invested_amount=Amount(0, 6),
        )
    ]


class TestIdle:
    def test_publish_goes_straight_to_store(self):
        store = PublishedStore()
        gate = InteractionGate(store)

        assert gate.publish(records(1)) is True
        assert store.current_set().records == tuple(records(1))
        assert gate.state is GateState.IDLE

    def test_end_without_begin_is_a_no_op(self):
        store = PublishedStore()
        gate = InteractionGate(store)

        assert gate.end_interaction() is False
        assert store.current_set().version == 0


class TestInteraction:
    """Tests for deferral during an exclusive interaction."""

    def test_newest_candidate_is_flushed_once(self):
        """begin; C1; C2; end -> one store update holding C2."""
        store = PublishedStore()
        gate = InteractionGate(store)
        updates = []
        store.subscribe(updates.append)

        gate.begin_interaction()
        assert gate.publish(records(1)) is False
        assert gate.pending == tuple(records(1))
        assert gate.publish(records(2)) is False
        assert gate.pending == tuple(records(2))
        assert store.current_set().version == 0

        assert gate.end_interaction() is True

        assert [u.records for u in updates] == [tuple(records(2))]
        assert gate.pending is None
        assert gate.state is GateState.IDLE

    def test_end_with_nothing_pending_leaves_store(self):
        store = PublishedStore()
        gate = InteractionGate(store)
        store.replace(records(1))

        gate.begin_interaction()
        assert gate.end_interaction() is False

        assert store.current_set().version == 1

    def test_empty_candidate_is_still_flushed(self):
        """An empty pending set is a real value, not an empty slot."""
        store = PublishedStore()
        gate = InteractionGate(store)
        store.replace(records(1))

        gate.begin_interaction()
        gate.publish([])
        assert gate.end_interaction() is True

        assert store.current_set().records == ()

    def test_pending_equal_to_published_is_not_republished(self):
        store = PublishedStore()
        gate = InteractionGate(store)
        store.replace(records(1))

        gate.begin_interaction()
        gate.publish(records(1))

        assert gate.end_interaction() is False
        assert store.current_set().version == 1

    def test_begin_twice_keeps_pending(self):
        store = PublishedStore()
        gate = InteractionGate(store)

        gate.begin_interaction()
        gate.publish(records(1))
        gate.begin_interaction()

        assert gate.pending == tuple(records(1))

    def test_baseline_prefers_pending(self):
        store = PublishedStore()
        gate = InteractionGate(store)
        store.replace(records(1))

        assert gate.baseline() == tuple(records(1))
        gate.begin_interaction()
        gate.publish(records(2))
        assert gate.baseline() == tuple(records(2))


class TestConcurrency:
    def test_flush_and_publish_race_never_loses_latest(self):
        """The last candidate always ends up in the store after the final end."""
        store = PublishedStore()
        gate = InteractionGate(store)
        stop = threading.Event()

        def toggler():
            while not stop.is_set():
                gate.begin_interaction()
                gate.end_interaction()

        thread = threading.Thread(target=toggler, daemon=True)
        thread.start()
        for i in range(1, 300):
            gate.publish(records(i))
        stop.set()
        thread.join(timeout=5)
        gate.end_interaction()

        assert store.current_set().records == tuple(records(299))
