"""
Pool Data-Node

This package implements a small read-aggregate-publish engine for
partitioned pool data:
- Query planning across the home partition and foreign partitions
- Polling subscriptions to a batched reader
- Positional decoding of the flat result stream into pool records
- Change detection and a deferred publish gate for exclusive interactions

The published record set is read through PublishedStore.current_set().
"""

__version__ = "0.1.0"

from .engine import PoolEngine
from .gate import GateState, InteractionGate
from .planner import QueryPlan, plan, plan_changed
from .store import PublishedStore
from .models import AggregatedRecord, Amount, PublishedSet, QueryDescriptor, RawResult

__all__ = [
    "AggregatedRecord",
    "Amount",
    "GateState",
    "InteractionGate",
    "PoolEngine",
    "PublishedSet",
    "PublishedStore",
    "QueryDescriptor",
    "QueryPlan",
    "RawResult",
    "plan",
    "plan_changed",
]
