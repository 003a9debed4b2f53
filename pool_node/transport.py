"""
Polling transport for the pool data-node.

A subscription runs the whole descriptor batch through a BatchReader on
every trigger event (a new block, or a fixed interval) and hands the
ordered result list to on_tick. Each subscription owns one background
thread, so ticks of a subscription are always delivered serially.

cancel() only flips a flag and returns immediately. A read that is already
in flight is allowed to finish, but its results are dropped.
"""

from __future__ import annotations

import itertools
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional, Protocol, Sequence

from loguru import logger

from .errors import TransportError
from .models import QueryDescriptor, RawResult

TickCallback = Callable[[list[RawResult]], None]
ErrorCallback = Callable[[Exception], None]

DEFAULT_POLL_INTERVAL = 12.0  # seconds
DEFAULT_BLOCK_POLL_INTERVAL = 2.0  # seconds


class BatchReader(Protocol):
    """Executes a batch of reads, returning one result per descriptor, in order."""

    def __call__(self, descriptors: Sequence[QueryDescriptor]) -> Sequence[RawResult]:
        ...


class Trigger(ABC):
    """Change notification that paces a subscription."""

    @abstractmethod
    def wait(self, stop: threading.Event) -> bool:
        """Block until the next event. Returns False if stop was set first."""


class IntervalTrigger(Trigger):
    """Fires every `interval` seconds."""

    def __init__(self, interval: float = DEFAULT_POLL_INTERVAL):
        self.interval = max(0.0, float(interval))

    def wait(self, stop: threading.Event) -> bool:
        return not stop.wait(self.interval)


class BlockTrigger(Trigger):
    """
    Fires whenever the block number reported by `get_block_number` increases.

    Errors while polling the block number are logged and retried on the
    next poll.
    """

    def __init__(
        self,
        get_block_number: Callable[[], int],
        poll_interval: float = DEFAULT_BLOCK_POLL_INTERVAL,
    ):
        self.get_block_number = get_block_number
        self.poll_interval = max(0.0, float(poll_interval))
        self.last_block: Optional[int] = None

    def wait(self, stop: threading.Event) -> bool:
        while not stop.wait(self.poll_interval):
            try:
                block = int(self.get_block_number())
            except Exception as e:
                logger.warning(f"Block number poll failed: {e}")
                continue
            if self.last_block is None or block > self.last_block:
                self.last_block = block
                return True
        return False


class Subscription:
    """One running read loop for a fixed descriptor list."""

    _ids = itertools.count(1)

    def __init__(
        self,
        descriptors: Sequence[QueryDescriptor],
        reader: BatchReader,
        trigger: Trigger,
        on_tick: TickCallback,
        on_error: Optional[ErrorCallback] = None,
        fire_immediately: bool = True,
    ):
        self.id = next(self._ids)
        self.descriptors = tuple(descriptors)
        self.reader = reader
        self.trigger = trigger
        self.on_tick = on_tick
        self.on_error = on_error
        self.fire_immediately = fire_immediately

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._run_loop,
            name=f"pool-subscription-{self.id}",
            daemon=True,
        )
        self._thread.start()
        logger.debug(f"Subscription {self.id} started ({len(self.descriptors)} reads)")

    def cancel(self) -> None:
        if self._stop.is_set():
            return
        self._stop.set()
        logger.debug(f"Subscription {self.id} cancelled")

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)

    def _read_once(self) -> None:
        try:
            results = list(self.reader(self.descriptors))
        except Exception as e:
            if self.cancelled:
                return
            logger.warning(f"Subscription {self.id}: batched read failed: {e}")
            if self.on_error is not None:
                self.on_error(e if isinstance(e, TransportError) else TransportError(str(e)))
            return

        if self.cancelled:
            logger.debug(f"Subscription {self.id}: dropping results read after cancel")
            return
        self.on_tick(results)

    def _run_loop(self) -> None:
        first = True
        while not self._stop.is_set():
            if not (first and self.fire_immediately):
                if not self.trigger.wait(self._stop):
                    break
            first = False
            if self._stop.is_set():
                break
            try:
                self._read_once()
            except Exception as e:
                logger.exception(f"Subscription {self.id}: tick handler failed: {e}")
        logger.debug(f"Subscription {self.id} exiting")


class PollingTransport:
    """
    Batched read transport driven by a trigger.

    Args:
        reader: Callable executing a descriptor batch
        trigger_factory: Builds a fresh trigger per subscription
            (default: IntervalTrigger(DEFAULT_POLL_INTERVAL))
        fire_immediately: Read once as soon as a subscription starts
    """

    def __init__(
        self,
        reader: BatchReader,
        trigger_factory: Optional[Callable[[], Trigger]] = None,
        fire_immediately: bool = True,
    ):
        self.reader = reader
        self.trigger_factory = trigger_factory or (lambda: IntervalTrigger(DEFAULT_POLL_INTERVAL))
        self.fire_immediately = fire_immediately
        self._lock = threading.Lock()
        self._active: dict[int, Subscription] = {}

    def subscribe(
        self,
        descriptors: Sequence[QueryDescriptor],
        on_tick: TickCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Callable[[], None]:
        """Start reading `descriptors` on every trigger. Returns a cancel callable."""
        subscription = Subscription(
            descriptors,
            reader=self.reader,
            trigger=self.trigger_factory(),
            on_tick=on_tick,
            on_error=on_error,
            fire_immediately=self.fire_immediately,
        )
        with self._lock:
            self._active[subscription.id] = subscription
        subscription.start()

        def cancel() -> None:
            subscription.cancel()
            with self._lock:
                self._active.pop(subscription.id, None)

        return cancel

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def close(self, timeout: float = 5.0) -> None:
        """Cancel every subscription and wait for their threads."""
        with self._lock:
            subscriptions = list(self._active.values())
            self._active.clear()
        for subscription in subscriptions:
            subscription.cancel()
        for subscription in subscriptions:
            subscription.join(timeout=timeout)
