"""
Response decoder for the pool data-node.

Turns the flat, ordered result list of one tick back into pool records.
Results are consumed with a cursor, one ResourceLayout at a time, so a
resource with missing fields still advances the cursor by its full width
and never shifts the entries of the resources after it.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Optional, Sequence

from loguru import logger

from .errors import MisalignedResultsError
from .planner import PREFIX_WIDTH, QueryPlan, ResourceLayout
from .models import AggregatedRecord, Amount, RawResult

DEFAULT_SYMBOL_PREFIX = "L"


class ResultCursor:
    """Forward-only reader over a tick's results."""

    def __init__(self, results: Sequence[RawResult]):
        self._results = results
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._results) - self._pos

    def take(self, count: int) -> Sequence[RawResult]:
        if count > self.remaining:
            raise MisalignedResultsError(self._pos + count, len(self._results))
        chunk = self._results[self._pos:self._pos + count]
        self._pos += count
        return chunk


def strip_partition_prefix(symbol: str, prefix: Optional[str] = DEFAULT_SYMBOL_PREFIX) -> str:
    """Drop the pool-token prefix from an on-chain symbol (LUSDC -> USDC)."""
    if prefix and symbol.startswith(prefix) and len(symbol) > len(prefix):
        return symbol[len(prefix):]
    return symbol


def _value(result: RawResult):
    return result.value if result.ok else None


def _as_int(value) -> int:
    """int() that refuses to truncate fractional numbers."""
    if isinstance(value, (float, Decimal)) and value != int(value):
        raise ValueError(f"non-integral value {value!r}")
    return int(value)


def _is_missing(value, require_nonzero: bool) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    if require_nonzero and not value:
        return True
    return False


def _decode_one(
    layout: ResourceLayout,
    head: Sequence[RawResult],
    foreign: Sequence[RawResult],
    symbol_prefix: Optional[str],
    require_nonzero: bool,
) -> Optional[AggregatedRecord]:
    symbol, decimals, total, apr, balance = (_value(r) for r in head)

    missing = [
        name
        for name, value in (
            ("symbol", symbol),
            ("decimals", decimals),
            ("totalSupply", total),
            ("apr", apr),
            ("balance", balance),
        )
        if _is_missing(value, require_nonzero)
    ]
    if missing:
        logger.debug(f"{layout.resource_id}: missing {', '.join(missing)}, dropping")
        return None

    try:
        decimals = _as_int(decimals)
        tvl = _as_int(total)
        invested = _as_int(balance)
        apr = Decimal(str(apr))
    except (TypeError, ValueError, OverflowError, InvalidOperation) as e:
        logger.debug(f"{layout.resource_id}: malformed value ({e}), dropping")
        return None
    if not apr.is_finite():
        logger.debug(f"{layout.resource_id}: apr is {apr}, dropping")
        return None

    for partition, result in zip(layout.foreign_partitions, foreign):
        if not result.ok:
            logger.debug(f"{layout.resource_id}: no totalSupply on partition {partition} ({result.error})")
            continue
        try:
            tvl += _as_int(result.value)
        except (TypeError, ValueError, OverflowError, InvalidOperation) as e:
            logger.debug(f"{layout.resource_id}: bad totalSupply on partition {partition} ({e})")

    return AggregatedRecord(
        resource_id=strip_partition_prefix(str(symbol), symbol_prefix),
        decimals=decimals,
        apr=apr,
        total_value_locked=Amount(tvl, decimals),
        invested_amount=Amount(invested, decimals),
    )


def decode(
    results: Sequence[RawResult],
    query_plan: QueryPlan,
    symbol_prefix: Optional[str] = DEFAULT_SYMBOL_PREFIX,
    require_nonzero: bool = False,
) -> list[AggregatedRecord]:
    """
    Decode one tick of results into pool records.

    Args:
        results: Results aligned 1:1 with query_plan.descriptors
        query_plan: Plan the results were read for
        symbol_prefix: Prefix stripped from on-chain symbols
        require_nonzero: Also drop resources whose fields are zero

    Returns:
        Records in plan order; empty when results is empty

    Raises:
        MisalignedResultsError: If len(results) does not match the plan
    """
    if not results:
        return []
    if len(results) != len(query_plan.descriptors):
        raise MisalignedResultsError(len(query_plan.descriptors), len(results))

    cursor = ResultCursor(results)
    records: list[AggregatedRecord] = []

    for layout in query_plan.layouts:
        head = cursor.take(PREFIX_WIDTH)
        foreign = cursor.take(len(layout.foreign_partitions))
        record = _decode_one(layout, head, foreign, symbol_prefix, require_nonzero)
        if record is not None:
            records.append(record)

    if cursor.remaining:
        raise MisalignedResultsError(len(results) - cursor.remaining, len(results))

    return records
