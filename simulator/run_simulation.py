#!/usr/bin/env python3
"""
Run the Virtual Fleet Simulation

Starts a fleet of virtual machines with reboot agents, has them ask for
reboots, and runs the operator's reconciliation loop against them until
every request is served or the duration runs out.

Usage:
    python -m simulator.run_simulation                       # 3 healthy machines
    python -m simulator.run_simulation --machines 5          # Bigger fleet
    python -m simulator.run_simulation --behaviour node-2=stuck --timeout 2
    python -m simulator.run_simulation --concurrency 2       # Two reboots at a time
"""

import argparse
import asyncio
import logging

from reboot_operator.common.config import CoordinatorSettings
from reboot_operator.services.operator.context import OperatorContext
from reboot_operator.services.operator.reboot_coordinator import RebootCoordinator
from reboot_operator.services.operator.reconciler import ReconciliationLoop

from .virtual_fleet import FleetConfig, VirtualFleet
from .virtual_machine import AgentBehaviour

logger = logging.getLogger(__name__)


def parse_behaviours(values: list[str]) -> dict[str, AgentBehaviour]:
    """Parse NAME=BEHAVIOUR pairs"""
    behaviours = {}
    for value in values:
        name, sep, behaviour = value.partition("=")
        if not sep:
            raise argparse.ArgumentTypeError(f"expected NAME=BEHAVIOUR, got {value!r}")
        try:
            behaviours[name] = AgentBehaviour(behaviour.lower())
        except ValueError:
            choices = ", ".join(b.value for b in AgentBehaviour)
            raise argparse.ArgumentTypeError(f"unknown behaviour {behaviour!r} (choose from {choices})")
    return behaviours


async def run_simulation(
    fleet_config: FleetConfig,
    settings: CoordinatorSettings,
    duration: float = 30.0,
) -> VirtualFleet:
    """
    Run the operator against a virtual fleet.

    Args:
        fleet_config: Fleet size and agent behaviours
        settings: Operator settings (poll rate, timeout, concurrency)
        duration: Give up after this many seconds

    Returns:
        The fleet, for inspection
    """
    fleet = VirtualFleet(fleet_config)
    context = OperatorContext(repository=fleet.store, events=fleet.events, settings=settings)
    loop = ReconciliationLoop(context, RebootCoordinator(context, watch_resume_delay=0.0))

    await fleet.start()
    fleet.request_reboots()
    fleet.print_status()

    loop_task = asyncio.create_task(loop.run())
    deadline = asyncio.get_running_loop().time() + duration
    try:
        while fleet.pending() and asyncio.get_running_loop().time() < deadline:
            await asyncio.sleep(0.1)
    finally:
        loop.stop()
        loop_task.cancel()
        try:
            await loop_task
        except asyncio.CancelledError:
            pass
        await fleet.stop()

    # One last pass so completed machines are acknowledged
    await loop.acknowledge(await fleet.store.list_machines())

    fleet.print_status()
    if fleet.pending():
        logger.warning(f"Still waiting on: {', '.join(fleet.pending())}")
    else:
        logger.info("All reboot requests served")
    return fleet


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run the operator against a virtual fleet"
    )
    parser.add_argument(
        "--machines", type=int, default=3,
        help="Number of machines in the fleet (default: 3)"
    )
    parser.add_argument(
        "--reboot-seconds", type=float, default=0.2,
        help="Simulated reboot duration (default: 0.2)"
    )
    parser.add_argument(
        "--timeout", type=float, default=5.0,
        help="Reboot timeout in seconds (default: 5)"
    )
    parser.add_argument(
        "--qps", type=float, default=10.0,
        help="Reconciliation passes per second (default: 10)"
    )
    parser.add_argument(
        "--concurrency", type=int, default=1,
        help="Maximum concurrent reboots (default: 1)"
    )
    parser.add_argument(
        "--behaviour", action="append", default=[], metavar="NAME=BEHAVIOUR",
        help="Agent behaviour override, repeatable (normal, stuck, split, ignore)"
    )
    parser.add_argument(
        "--duration", type=float, default=30.0,
        help="Stop after this many seconds (default: 30)"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        behaviours = parse_behaviours(args.behaviour)
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))

    fleet_config = FleetConfig(
        size=args.machines,
        reboot_seconds=args.reboot_seconds,
        behaviours=behaviours,
    )
    settings = CoordinatorSettings(
        poll_qps=args.qps,
        poll_burst=1,
        reboot_timeout_seconds=args.timeout,
        max_concurrent_reboots=args.concurrency,
    )

    try:
        asyncio.run(run_simulation(fleet_config, settings, duration=args.duration))
    except KeyboardInterrupt:
        logger.info("Simulation stopped by user")


if __name__ == "__main__":
    main()
