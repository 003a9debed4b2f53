from __future__ import annotations

import sys
from pathlib import Path

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) in sys.path:
    sys.path.remove(str(_REPO_ROOT))
sys.path.insert(0, str(_REPO_ROOT))

import pytest
from loguru import logger


@pytest.fixture(autouse=True)
def quiet_logs():
    """Keep loguru output out of test runs; individual tests may add sinks."""
    logger.remove()
    yield
    logger.remove()
