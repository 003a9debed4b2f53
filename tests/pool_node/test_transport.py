"""
Tests for pool_node.transport module.

Tests:
- Ordered delivery per trigger
- Cancellation drops in-flight results
- Reader failures surface through on_error
- Block-driven triggering
"""

import queue
import threading
import time

import pytest

from pool_helpers import HOME, PARTITIONS
from pool_node.engine import PoolEngine
from pool_node.errors import TransportError
from pool_node.planner import plan
from pool_node.transport import BlockTrigger, IntervalTrigger, PollingTransport
from pool_node.models import Amount, RawResult

WAIT = 2.0


def wait_for(predicate, timeout=WAIT):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class TestPollingTransport:
    """Tests for subscription lifecycle."""

    def test_fires_immediately_then_per_trigger(self, resolver, reader, manual_trigger):
        descriptors = plan(["LUSDC"], HOME, resolver, PARTITIONS).descriptors
        transport = PollingTransport(reader, trigger_factory=lambda: manual_trigger)
        ticks = queue.Queue()

        cancel = transport.subscribe(descriptors, ticks.put)
        first = ticks.get(timeout=WAIT)
        manual_trigger.fire()
        second = ticks.get(timeout=WAIT)
        cancel()

        assert len(first) == len(descriptors)
        assert first == second
        assert first[0] == RawResult.success("LUSDC")
        assert reader.calls == 2

    def test_no_immediate_read_when_disabled(self, resolver, reader, manual_trigger):
        descriptors = plan(["LUSDC"], HOME, resolver, PARTITIONS).descriptors
        transport = PollingTransport(reader, trigger_factory=lambda: manual_trigger, fire_immediately=False)
        ticks = queue.Queue()

        cancel = transport.subscribe(descriptors, ticks.put)
        with pytest.raises(queue.Empty):
            ticks.get(timeout=0.1)
        manual_trigger.fire()
        assert len(ticks.get(timeout=WAIT)) == len(descriptors)
        cancel()

    def test_cancel_drops_in_flight_results(self, manual_trigger):
        started = threading.Event()
        release = threading.Event()

        def slow_reader(descriptors):
            started.set()
            release.wait(WAIT)
            return []

        transport = PollingTransport(slow_reader, trigger_factory=lambda: manual_trigger)
        ticks = []

        cancel = transport.subscribe((), ticks.append)
        assert started.wait(WAIT)
        cancel()
        release.set()
        transport.close()

        assert ticks == []
        assert transport.active_count == 0

    def test_reader_failure_reaches_on_error(self, manual_trigger):
        def broken_reader(descriptors):
            raise ConnectionError("rpc unreachable")

        transport = PollingTransport(broken_reader, trigger_factory=lambda: manual_trigger)
        errors = queue.Queue()

        cancel = transport.subscribe((), lambda results: None, errors.put)
        error = errors.get(timeout=WAIT)
        manual_trigger.fire()
        again = errors.get(timeout=WAIT)
        cancel()

        assert isinstance(error, TransportError)
        assert "rpc unreachable" in str(error)
        assert isinstance(again, TransportError)

    def test_close_stops_every_subscription(self, reader):
        transport = PollingTransport(reader, trigger_factory=lambda: IntervalTrigger(0.01))

        transport.subscribe((), lambda results: None)
        transport.subscribe((), lambda results: None)
        assert transport.active_count == 2

        transport.close()
        calls = reader.calls
        time.sleep(0.05)

        assert transport.active_count == 0
        assert reader.calls == calls


class TestTriggers:
    def test_interval_trigger_stops_on_event(self):
        stop = threading.Event()
        stop.set()

        assert IntervalTrigger(10).wait(stop) is False

    def test_block_trigger_fires_on_new_blocks_only(self):
        blocks = iter([100, 100, 100, 101, 101, 102])
        trigger = BlockTrigger(lambda: next(blocks), poll_interval=0)
        stop = threading.Event()

        assert trigger.wait(stop) is True
        assert trigger.last_block == 100
        assert trigger.wait(stop) is True
        assert trigger.last_block == 101
        assert trigger.wait(stop) is True
        assert trigger.last_block == 102

    def test_block_trigger_survives_poll_errors(self):
        calls = {"n": 0}

        def flaky():
            calls["n"] += 1
            if calls["n"] == 1:
                raise TimeoutError("rpc timeout")
            return 5

        trigger = BlockTrigger(flaky, poll_interval=0)

        assert trigger.wait(threading.Event()) is True
        assert trigger.last_block == 5


class TestEngineOverPolling:
    """End-to-end: planner -> polling transport -> decoder -> store."""

    def test_cross_partition_pool_is_published(self, resolver, reader, manual_trigger):
        transport = PollingTransport(reader, trigger_factory=lambda: manual_trigger)
        engine = PoolEngine(resolver, transport, PARTITIONS)

        engine.update_inputs(["LUSDC", "LEUROC", "LWETH"], HOME)
        assert wait_for(lambda: not engine.current_set().loading)
        engine.stop()
        transport.close()

        records = {r.resource_id: r for r in engine.current_set().records}
        assert set(records) == {"USDC", "EUROC"}
        assert records["USDC"].total_value_locked == Amount(150, 6)
        assert records["EUROC"].total_value_locked == Amount(30, 6)

    def test_interaction_holds_back_new_block_data(self, resolver, reader, manual_trigger):
        transport = PollingTransport(reader, trigger_factory=lambda: manual_trigger)
        engine = PoolEngine(resolver, transport, PARTITIONS)
        engine.update_inputs(["LUSDC"], HOME)
        assert wait_for(lambda: engine.current_set().version == 1)

        engine.begin_interaction()
        reader.set(HOME, "0x1111111111111111111111111111111111111111", "totalSupply", 400)
        manual_trigger.fire()
        assert wait_for(lambda: engine.gate.pending is not None)
        assert engine.current_set().records[0].total_value_locked.amount == 150

        engine.end_interaction()
        engine.stop()
        transport.close()

        assert engine.current_set().version == 2
        assert engine.current_set().records[0].total_value_locked.amount == 450
