"""
Pytest fixtures for pool_node tests.
"""

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import pytest

from pool_helpers import (
    EUROC_HOME,
    FOREIGN,
    HOME,
    PARTITIONS,
    USDC_FOREIGN,
    USDC_HOME,
    WETH_FOREIGN,
    FakeTransport,
    ManualTrigger,
    pool_values,
)
from pool_node.readers import StaticReader
from pool_node.resolver import StaticAddressResolver
from pool_node.store import PublishedStore


@pytest.fixture
def address_book():
    """LUSDC on both partitions, LEUROC home only, LWETH foreign only."""
    return {
        "LUSDC": {HOME: USDC_HOME, FOREIGN: USDC_FOREIGN},
        "LEUROC": {HOME: EUROC_HOME},
        "LWETH": {FOREIGN: WETH_FOREIGN},
    }


@pytest.fixture
def resolver(address_book):
    return StaticAddressResolver(address_book)


@pytest.fixture
def reader():
    """Fully populated reader for the address_book pools seen from HOME."""
    values = {}
    values.update(pool_values(HOME, USDC_HOME, "LUSDC", total=100))
    values[(FOREIGN, USDC_FOREIGN, "totalSupply")] = 50
    values.update(pool_values(HOME, EUROC_HOME, "LEUROC", total=30, apr=250, balance=3))
    return StaticReader(values)


@pytest.fixture
def store():
    return PublishedStore()


@pytest.fixture
def manual_trigger():
    return ManualTrigger()


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def make_engine(resolver, fake_transport, store):
    """Factory for engines wired to the fake transport."""
    from pool_node.engine import PoolEngine

    def _make(**kwargs):
        return PoolEngine(
            resolver=kwargs.pop("resolver", resolver),
            transport=kwargs.pop("transport", fake_transport),
            partitions=kwargs.pop("partitions", PARTITIONS),
            store=kwargs.pop("store", store),
            **kwargs,
        )

    return _make
