"""
Tests for the pool_node command-line entry point.
"""

from pathlib import Path

import pytest

from pool_node.__main__ import main, print_pools, run_once, selfcheck
from pool_node.config import load_config
from pool_node.engine import PoolEngine
from pool_node.models import PublishedSet

EXAMPLE_CONFIG = Path(__file__).resolve().parents[2] / "configs" / "pool_node.yml"


@pytest.fixture
def example_config(monkeypatch):
    for name in ("POOL_NODE_HOME_PARTITION", "POOL_NODE_ACCOUNT", "POOL_NODE_POLL_INTERVAL"):
        monkeypatch.delenv(name, raising=False)
    return load_config(EXAMPLE_CONFIG)


class TestSelfcheck:
    def test_example_config_passes(self, example_config):
        assert selfcheck(example_config) is True

    def test_broken_reader_fails(self, example_config):
        example_config.reader = {"kind": "websocket"}

        assert selfcheck(example_config) is False


class TestRunOnce:
    def test_prints_first_table(self, example_config, capsys):
        engine = PoolEngine.from_config(example_config)

        assert run_once(engine, example_config, timeout=5) == 0

        out = capsys.readouterr().out
        assert "USDC" in out
        assert "tvl=1730000000000" in out
        assert "EUROC" in out

    def test_main_once(self, monkeypatch, capsys):
        monkeypatch.setattr(
            "sys.argv",
            ["pool_node", "--config", str(EXAMPLE_CONFIG), "--once", "--no-log-file", "--timeout", "5"],
        )

        with pytest.raises(SystemExit) as exc:
            main()

        assert exc.value.code == 0
        assert "USDC" in capsys.readouterr().out

    def test_main_bad_config_exits_2(self, tmp_path, monkeypatch):
        bad = tmp_path / "bad.yml"
        bad.write_text("poll_interval: 0\n")
        monkeypatch.setattr("sys.argv", ["pool_node", "--config", str(bad), "--no-log-file"])

        with pytest.raises(SystemExit) as exc:
            main()

        assert exc.value.code == 2


def test_print_pools_loading(capsys):
    print_pools(PublishedSet())

    out = capsys.readouterr().out
    assert "loading" in out
    assert "(no pools)" in out
