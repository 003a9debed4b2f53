"""Change detection between the published record set and a new candidate."""

from __future__ import annotations

import hashlib
import json
from typing import Sequence, Union

from .models import AggregatedRecord, PublishedSet

Records = Sequence[AggregatedRecord]


def _records_of(value: Union[PublishedSet, Records]) -> tuple[AggregatedRecord, ...]:
    if isinstance(value, PublishedSet):
        return value.records
    return tuple(value)


def changed(previous: Union[PublishedSet, Records], candidate: Records) -> bool:
    """Order-sensitive deep comparison. False means nothing to publish."""
    return _records_of(previous) != _records_of(candidate)


def fingerprint(records: Records) -> str:
    """
    Short SHA256 of the canonical JSON form of a record set.

    Amounts are rendered as strings so big integers survive the round trip.
    """
    payload = json.dumps([r.to_dict() for r in records], sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:12]
