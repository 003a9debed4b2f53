#!/usr/bin/env python3
"""
Entry point for the pool data-node.

Usage:
  python -m pool_node                  # Run until Ctrl-C, print the pool table on change
  python -m pool_node --once           # Print the first published table and exit
  python -m pool_node --selfcheck      # Validate config, addresses and reader, then exit
  python -m pool_node --config PATH    # Use another config file
"""

from __future__ import annotations

import argparse
import os
import signal
import sys
import threading
import time
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

from .config import NodeConfig, load_config
from .engine import PoolEngine
from .errors import PoolNodeError
from .planner import plan
from .readers import load_reader
from .models import PublishedSet


def configure_logging(log_file: bool = True, verbose: bool = False) -> None:
    """Configure loguru logging."""
    logger.remove()

    level = "DEBUG" if verbose else "INFO"
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level:<8}</level> | <cyan>{name}</cyan> - {message}",
        level=level,
        colorize=True,
    )

    if log_file:
        log_dir = Path(os.environ.get("DATA_ROOT", ".")) / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / "pool_node.log"

        logger.add(
            log_path,
            rotation="10 MB",
            retention="7 days",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level:<8} | {name} - {message}",
            level="DEBUG",
        )
        logger.info(f"Logging to {log_path}")


def selfcheck(config: NodeConfig) -> bool:
    """
    Run self-checks and report status.

    Returns:
        True if all checks pass
    """
    logger.info("Running self-checks...")
    errors = []
    warnings = []

    resources = config.resource_ids()
    if not resources:
        warnings.append("No resources configured and the address book is empty")

    resolver = config.resolver()
    query_plan = plan(resources, config.home_partition, resolver, config.partitions, config.account)
    skipped = len(resources) - len(query_plan.layouts)
    logger.info(
        f"Plan OK: {len(query_plan.layouts)} pools, {len(query_plan.descriptors)} reads "
        f"on partition {config.home_partition}"
    )
    if skipped:
        warnings.append(f"{skipped} resources have no address on partition {config.home_partition}")

    try:
        load_reader(config.reader)
    except PoolNodeError as e:
        errors.append(f"Reader error: {e}")

    for warning in warnings:
        logger.warning(warning)

    if errors:
        for error in errors:
            logger.error(error)
        logger.error("Self-check FAILED")
        return False

    logger.info("Self-check PASSED")
    return True


def print_pools(snapshot: PublishedSet) -> None:
    """Print the published set as a plain table."""
    state = "loading" if snapshot.loading else f"version {snapshot.version}"
    print(f"\n=== Pools ({state}) ===")
    if snapshot.last_error:
        print(f"Last error: {snapshot.last_error}")
    if not snapshot.records:
        print("(no pools)")
    for record in snapshot.records:
        print(
            f"{record.resource_id:<8} apr={record.apr} "
            f"tvl={record.total_value_locked.amount} "
            f"invested={record.invested_amount.amount} "
            f"decimals={record.decimals}"
        )
    print()


def run_once(engine: PoolEngine, config: NodeConfig, timeout: float) -> int:
    """Subscribe, wait for the first completed tick, print it."""
    done = threading.Event()
    unsubscribe = engine.store.subscribe(lambda s: done.set() if not s.loading else None)
    try:
        engine.update_inputs(config.resource_ids(), config.home_partition, config.account)
        if engine.current_plan is not None and engine.current_plan.is_empty:
            logger.warning(f"No pools resolve on partition {config.home_partition}")
        if not done.wait(timeout):
            logger.error(f"No data after {timeout:.0f}s")
            print_pools(engine.current_set())
            return 1
        print_pools(engine.current_set())
        return 0
    finally:
        unsubscribe()
        engine.stop()


def run_node(engine: PoolEngine, config: NodeConfig) -> None:
    """Run until SIGINT/SIGTERM, printing the pool table on every publish."""
    shutdown_requested = False

    def handle_shutdown(signum, frame):
        nonlocal shutdown_requested
        if shutdown_requested:
            logger.warning("Force shutdown requested")
            sys.exit(1)
        logger.info("Shutdown requested, stopping...")
        shutdown_requested = True

    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    last_version = {"value": -1}

    def on_change(snapshot: PublishedSet) -> None:
        if snapshot.version != last_version["value"]:
            last_version["value"] = snapshot.version
            print_pools(snapshot)

    engine.store.subscribe(on_change)
    engine.update_inputs(config.resource_ids(), config.home_partition, config.account)
    logger.info("Pool node running. Press Ctrl-C to stop.")

    try:
        while not shutdown_requested:
            time.sleep(1)
    except KeyboardInterrupt:
        pass

    engine.stop()
    logger.info(f"Pool node stopped: {engine.stats()}")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Pool data-node",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to pool_node.yml")
    parser.add_argument("--selfcheck", action="store_true", help="Run self-checks and exit")
    parser.add_argument("--once", action="store_true", help="Print the first published table and exit")
    parser.add_argument("--timeout", type=float, default=60.0, help="Seconds to wait with --once")
    parser.add_argument("--no-log-file", action="store_true", help="Log to stderr only")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")

    args = parser.parse_args()

    load_dotenv()
    configure_logging(log_file=not (args.no_log_file or args.selfcheck), verbose=args.verbose)

    try:
        config = load_config(args.config)
    except PoolNodeError as e:
        logger.error(f"Config error: {e}")
        sys.exit(2)

    if args.selfcheck:
        sys.exit(0 if selfcheck(config) else 1)

    try:
        engine = PoolEngine.from_config(config)
    except PoolNodeError as e:
        logger.error(f"Startup failed: {e}")
        sys.exit(2)

    if args.once:
        sys.exit(run_once(engine, config, args.timeout))

    run_node(engine, config)


if __name__ == "__main__":
    main()
