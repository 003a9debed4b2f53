"""
Configuration for the pool data-node.

Loaded from a YAML file (default: configs/pool_node.yml, or POOL_NODE_CONFIG)
and then overridden from the environment:
- POOL_NODE_HOME_PARTITION: partition the consumer is viewing
- POOL_NODE_ACCOUNT: account whose balances are read
- POOL_NODE_POLL_INTERVAL: seconds between interval-triggered reads
- POOL_NODE_REQUIRE_NONZERO: true|false, drop pools with zero fields
- POOL_NODE_SYMBOL_PREFIX: prefix stripped from on-chain symbols
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml
from loguru import logger

from .errors import ConfigError
from .resolver import StaticAddressResolver

DEFAULT_CONFIG_PATH = Path("configs/pool_node.yml")

# Arbitrum One, Linea
DEFAULT_PARTITIONS = [42161, 59144]


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return str(v).lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    v = os.getenv(name)
    if not v:
        return default
    try:
        return int(v)
    except ValueError:
        logger.warning(f"Ignoring {name}={v!r}: not an integer")
        return default


def _env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if not v:
        return default
    try:
        return max(0.0, float(v))
    except ValueError:
        logger.warning(f"Ignoring {name}={v!r}: not a number")
        return default


@dataclass
class NodeConfig:
    """Resolved node settings."""
    partitions: list[int] = field(default_factory=lambda: list(DEFAULT_PARTITIONS))
    home_partition: int = DEFAULT_PARTITIONS[0]
    account: Optional[str] = None
    resources: list[str] = field(default_factory=list)
    symbol_prefix: Optional[str] = "L"
    require_nonzero: bool = False
    poll_interval: float = 12.0
    trigger: dict = field(default_factory=lambda: {"kind": "interval"})
    addresses: dict = field(default_factory=dict)
    reader: dict = field(default_factory=dict)
    source_path: Optional[Path] = None

    def resolver(self) -> StaticAddressResolver:
        return StaticAddressResolver(self.addresses)

    def resource_ids(self) -> list[str]:
        """Configured resources, or every resource in the address book."""
        return list(self.resources) if self.resources else [str(r) for r in self.addresses]

    def validate(self) -> None:
        if not self.partitions:
            raise ConfigError("At least one partition must be configured")
        if self.poll_interval <= 0:
            raise ConfigError(f"poll_interval must be positive, got {self.poll_interval}")
        kind = (self.trigger or {}).get("kind", "interval")
        if kind not in ("interval", "block"):
            raise ConfigError(f"Unknown trigger kind: {kind}")
        if kind == "block" and not self.trigger.get("block_number"):
            raise ConfigError("Block trigger requires trigger.block_number ('module:callable')")
        if self.home_partition not in self.partitions:
            logger.warning(f"Home partition {self.home_partition} is not in known partitions {self.partitions}")


def _from_mapping(raw: dict) -> NodeConfig:
    config = NodeConfig()
    try:
        if "partitions" in raw:
            config.partitions = [int(p) for p in raw["partitions"] or []]
        config.home_partition = int(raw.get("home_partition", config.partitions[0] if config.partitions else 0))
        config.account = raw.get("account") or None
        config.resources = [str(r) for r in raw.get("resources") or []]
        if "symbol_prefix" in raw:
            config.symbol_prefix = raw["symbol_prefix"] or None
        config.require_nonzero = bool(raw.get("require_nonzero", False))
        config.poll_interval = float(raw.get("poll_interval", config.poll_interval))
        config.trigger = dict(raw.get("trigger") or {"kind": "interval"})
        config.addresses = dict(raw.get("addresses") or {})
        config.reader = dict(raw.get("reader") or {})
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid config value: {e}")
    return config


def _apply_env(config: NodeConfig) -> None:
    config.home_partition = _env_int("POOL_NODE_HOME_PARTITION", config.home_partition)
    config.account = os.getenv("POOL_NODE_ACCOUNT") or config.account
    config.poll_interval = _env_float("POOL_NODE_POLL_INTERVAL", config.poll_interval)
    config.require_nonzero = _env_bool("POOL_NODE_REQUIRE_NONZERO", config.require_nonzero)
    if os.getenv("POOL_NODE_SYMBOL_PREFIX") is not None:
        config.symbol_prefix = os.getenv("POOL_NODE_SYMBOL_PREFIX") or None


def load_config(path: Optional[Path] = None) -> NodeConfig:
    """
    Load the node config.

    Args:
        path: YAML file (default: POOL_NODE_CONFIG or configs/pool_node.yml)

    Returns:
        Validated NodeConfig with environment overrides applied
    """
    if path is None:
        path = Path(os.environ.get("POOL_NODE_CONFIG", DEFAULT_CONFIG_PATH))
    path = Path(path)

    if path.exists():
        with open(path) as f:
            try:
                raw = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Cannot parse {path}: {e}")
        if not isinstance(raw, dict):
            raise ConfigError(f"{path} must contain a mapping at the top level")
        config = _from_mapping(raw)
        logger.debug(f"Loaded config from {path}")
    else:
        logger.warning(f"Config file not found: {path}, using defaults")
        config = NodeConfig()

    config.source_path = path
    _apply_env(config)
    config.validate()
    return config
