"""
Query planner for the pool data-node.

Implements:
- Per-resource read layout (fixed prefix + one entry per foreign partition)
- Deterministic descriptor ordering for the batched reader
- Value comparison of plans so unchanged inputs never re-subscribe

The descriptor order is part of the decoder contract: for every resource
the planner emits symbol, decimals, totalSupply, getAPR and balanceOf on
the home partition, then one totalSupply per foreign partition where the
resource exists.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from loguru import logger

from .resolver import AddressResolver
from .models import (
    ZERO_ACCOUNT,
    Address,
    Operation,
    PartitionId,
    QueryDescriptor,
    ResourceId,
)

# Reads issued on the home partition, in decode order
HOME_OPERATIONS = (
    Operation.SYMBOL,
    Operation.DECIMALS,
    Operation.TOTAL_SUPPLY,
    Operation.APR,
    Operation.BALANCE_OF,
)
PREFIX_WIDTH = len(HOME_OPERATIONS)


@dataclass(frozen=True)
class ResourceLayout:
    """Where a resource lives and how many results it occupies."""
    resource_id: ResourceId
    home_address: Address
    foreign_partitions: tuple[PartitionId, ...] = ()

    @property
    def width(self) -> int:
        return PREFIX_WIDTH + len(self.foreign_partitions)


@dataclass(frozen=True)
class QueryPlan:
    """Ordered descriptors plus the per-resource layout used to decode them."""
    home: PartitionId
    account: Address
    layouts: tuple[ResourceLayout, ...] = ()
    descriptors: tuple[QueryDescriptor, ...] = ()

    def __len__(self) -> int:
        return len(self.descriptors)

    @property
    def is_empty(self) -> bool:
        return not self.descriptors


def _ordered_resources(resources: Iterable[ResourceId]) -> list[ResourceId]:
    """Stable iteration order: sets are sorted, sequences keep first-seen order."""
    if isinstance(resources, (set, frozenset)):
        return sorted(resources)
    return list(dict.fromkeys(resources))


def plan(
    resources: Iterable[ResourceId],
    home: PartitionId,
    resolver: AddressResolver,
    partitions: Sequence[PartitionId],
    account: Optional[Address] = None,
) -> QueryPlan:
    """
    Build the read plan for a set of resources.

    Args:
        resources: Resource ids to read
        home: Partition the consumer is viewing
        resolver: Address lookup for (resource, partition)
        partitions: Every known partition (home may or may not be included)
        account: Account whose balance is read (zero account when None)

    Returns:
        QueryPlan whose descriptors are in decode order
    """
    holder = account or ZERO_ACCOUNT
    foreign = [p for p in partitions if p != home]

    layouts: list[ResourceLayout] = []
    descriptors: list[QueryDescriptor] = []

    for resource_id in _ordered_resources(resources):
        home_address = resolver.resolve(resource_id, home)
        if not home_address:
            logger.debug(f"{resource_id} not available on partition {home}, skipping")
            continue

        for operation in HOME_OPERATIONS:
            args = (holder,) if operation is Operation.BALANCE_OF else ()
            descriptors.append(QueryDescriptor(home, home_address, operation, args))

        available: list[PartitionId] = []
        for partition in foreign:
            address = resolver.resolve(resource_id, partition)
            if not address:
                continue
            available.append(partition)
            descriptors.append(QueryDescriptor(partition, address, Operation.TOTAL_SUPPLY))

        layouts.append(ResourceLayout(resource_id, home_address, tuple(available)))

    result = QueryPlan(
        home=home,
        account=holder,
        layouts=tuple(layouts),
        descriptors=tuple(descriptors),
    )
    logger.debug(
        f"Planned {len(result.descriptors)} reads for {len(layouts)} resources on partition {home}"
    )
    return result


def plan_changed(previous: Optional[QueryPlan], current: QueryPlan) -> bool:
    """True when the descriptor list differs from the previous plan's."""
    if previous is None:
        return True
    return previous.descriptors != current.descriptors
