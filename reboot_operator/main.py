#!/usr/bin/env python3
"""
Reboot Operator - Main Entry Point

Loads the configuration and runs the reconciliation loop.

Usage:
    reboot-operator                      # Use config.yaml from the standard locations
    reboot-operator --config my.yaml     # Use custom config file
    reboot-operator --dry-run            # Print config and exit
    reboot-operator --once               # Run a single reconciliation pass and exit

The operator will:
1. Acknowledge machines that finished a reboot (OkToReboot=false)
2. Grant the next machine that wants a reboot (OkToReboot=true)
3. Wait up to the reboot timeout for it to report completion
4. Repeat, at most once per poll interval
"""

import argparse
import asyncio
import json
import sys

from reboot_operator.common.config import OperatorConfig, load_config_file
from reboot_operator.common.exceptions import ConfigError
from reboot_operator.common.logging_setup import apply_log_settings, get_service_logger
from reboot_operator.services.config.validator import ConfigValidator
from reboot_operator.services.operator.reconciler import ReconciliationLoop
from reboot_operator.services.operator.service import OperatorService, build_context

logger = get_service_logger("main")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Coordinate rolling reboots across a fleet through machine annotations."
    )
    parser.add_argument("-c", "--config", default=None,
                        help="path to config.yaml (default: search standard locations)")
    parser.add_argument("--dry-run", action="store_true",
                        help="print the resolved configuration and exit")
    parser.add_argument("--once", action="store_true",
                        help="run one reconciliation pass and exit")
    parser.add_argument("--log-level", default=None,
                        help="override logging.level from the config file")
    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> OperatorConfig:
    """
    Load, override and validate configuration.

    Raises:
        ConfigError: unreadable or invalid configuration
    """
    config = load_config_file(args.config)
    if args.log_level:
        config.logging.level = args.log_level.upper()

    apply_log_settings(config.logging.level, config.logging.format.value)
    return ConfigValidator().validate_or_raise(config)


def print_config_summary(config: OperatorConfig) -> None:
    """Print a summary of the configuration."""
    print("\n" + "=" * 60)
    print("  REBOOT OPERATOR")
    print("=" * 60)
    print(f"\n  Config file: {config.source_path or '(defaults)'}")
    print(f"  API: {config.api.url}")
    print(f"  Poll rate: {config.coordinator.poll_qps}/s (burst {config.coordinator.poll_burst})")
    print(f"  Reboot timeout: {config.coordinator.reboot_timeout_seconds:.0f}s")
    print(f"  Concurrent reboots: {config.coordinator.max_concurrent_reboots}")
    if config.health.enabled:
        print(f"  Health: http://{config.health.host}:{config.health.port}/health")
    print("\n" + json.dumps(config.to_dict(), indent=2))


async def run_once(config: OperatorConfig) -> int:
    """Single reconciliation pass against the configured fleet"""
    context = build_context(config)
    try:
        summary = await ReconciliationLoop(context).run_once()
    finally:
        await context.close()

    print(json.dumps(summary.to_dict(), indent=2))
    return 1 if summary.list_failed else 0


async def run_forever(config: OperatorConfig) -> int:
    service = OperatorService(config)
    try:
        await service.start()
    finally:
        await service.stop()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    try:
        config = load_config(args)
    except ConfigError as e:
        logger.error(str(e))
        return 1

    if args.dry_run:
        print_config_summary(config)
        return 0

    if args.once:
        return asyncio.run(run_once(config))

    return asyncio.run(run_forever(config))


if __name__ == "__main__":
    sys.exit(main())
