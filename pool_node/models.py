"""
Core value types shared across the pool data-node.

All types are frozen dataclasses so that plans and record sets compare by
value and can be handed between threads without copying.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

PartitionId = int
ResourceId = str
Address = str

# Balance queries use this account when no wallet is bound
ZERO_ACCOUNT: Address = "0x0000000000000000000000000000000000000000"


class Operation(str, Enum):
    """Read operations issued against a pool contract."""
    SYMBOL = "symbol"
    DECIMALS = "decimals"
    TOTAL_SUPPLY = "totalSupply"
    APR = "getAPR"
    BALANCE_OF = "balanceOf"


@dataclass(frozen=True)
class QueryDescriptor:
    """A single read in a batch."""
    partition: PartitionId
    address: Address
    operation: Operation
    args: tuple = ()


@dataclass(frozen=True)
class RawResult:
    """Outcome of one read. Either carries a value or an error marker."""
    value: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None

    @classmethod
    def success(cls, value: Any) -> "RawResult":
        return cls(value=value)

    @classmethod
    def failure(cls, error: str) -> "RawResult":
        return cls(error=error or "unknown error")


@dataclass(frozen=True)
class Amount:
    """An integer token amount with its decimals."""
    amount: int
    decimals: int


@dataclass(frozen=True)
class AggregatedRecord:
    """One pool row: a resource aggregated across every partition it lives on."""
    resource_id: ResourceId
    decimals: int
    apr: Decimal
    total_value_locked: Amount
    invested_amount: Amount

    def to_dict(self) -> dict:
        return {
            "resource_id": self.resource_id,
            "decimals": self.decimals,
            "apr": str(self.apr),
            "total_value_locked": [str(self.total_value_locked.amount), self.total_value_locked.decimals],
            "invested_amount": [str(self.invested_amount.amount), self.invested_amount.decimals],
        }


@dataclass(frozen=True)
class PublishedSet:
    """Snapshot held by the published store.

    version counts record-set replacements; flipping the loading flag or
    recording a failure does not bump it.
    """
    records: tuple[AggregatedRecord, ...] = ()
    loading: bool = True
    version: int = 0
    updated_at: Optional[datetime] = None
    last_error: Optional[str] = None

    def __len__(self) -> int:
        return len(self.records)
