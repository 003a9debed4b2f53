"""
Address resolution for pools across partitions.

The planner only needs a lookup of (resource, partition) -> address. The
StaticAddressResolver serves that lookup from an address book loaded from
the node config.
"""

from __future__ import annotations

from typing import Mapping, Optional, Protocol

from loguru import logger

from .errors import ConfigError
from .models import ZERO_ACCOUNT, Address, PartitionId, ResourceId


class AddressResolver(Protocol):
    """Anything that can locate a resource on a partition."""

    def resolve(self, resource_id: ResourceId, partition: PartitionId) -> Optional[Address]:
        ...


def _normalize_address(value) -> Optional[Address]:
    if value is None:
        return None
    address = str(value).strip()
    if not address or address.lower() == ZERO_ACCOUNT:
        return None
    return address


class StaticAddressResolver:
    """Resolver backed by an in-memory address book.

    The book maps resource id -> partition id -> address. Missing entries,
    blank strings and the zero address all resolve to None (unavailable).
    """

    def __init__(self, book: Optional[Mapping[str, Mapping]] = None):
        self._book: dict[ResourceId, dict[PartitionId, Address]] = {}
        for resource_id, by_partition in (book or {}).items():
            if not isinstance(by_partition, Mapping):
                raise ConfigError(f"Address book entry for {resource_id} must be a mapping")
            entries: dict[PartitionId, Address] = {}
            for partition, value in by_partition.items():
                try:
                    partition_id = int(partition)
                except (TypeError, ValueError):
                    raise ConfigError(f"Invalid partition id {partition!r} for {resource_id}")
                address = _normalize_address(value)
                if address is not None:
                    entries[partition_id] = address
            self._book[str(resource_id)] = entries
        logger.debug(f"Address book loaded: {len(self._book)} resources")

    def resolve(self, resource_id: ResourceId, partition: PartitionId) -> Optional[Address]:
        return self._book.get(resource_id, {}).get(partition)

    def resources(self) -> list[ResourceId]:
        """Resource ids known to the address book, in book order."""
        return list(self._book)

    def partitions_for(self, resource_id: ResourceId) -> list[PartitionId]:
        return sorted(self._book.get(resource_id, {}))
