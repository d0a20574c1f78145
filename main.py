#!/usr/bin/env python3
"""
Hertz - Declarative Hardware Reconciler
=======================================

Runs one of the example programs against the controller configured in
settings.json (or the simulation with --mock). SIGINT/SIGTERM dispose every
node, leaving outputs low and motors stopped, before the driver is closed.

Usage:
    python3 main.py --program blink
    python3 main.py --program motor-velocity --mock
"""

import argparse
import asyncio
import signal
import sys

from hertz.core.errors import TransportError
from hertz.core.logger import get_logger, shutdown_logger
from hertz.core.reconciler import create_reconciler
from hertz.core.settings import DEFAULT_CONFIG_PATH, load_settings
from hertz.hardware.factory import create_hardware_interface
from hertz.peripherals import CLEARCORE_PERIPHERALS
from hertz.programs import PROGRAMS


async def run(args):
    logger = get_logger()
    settings = load_settings(args.config)

    hardware = create_hardware_interface(settings, force_mock=args.mock)
    await hardware.connect()

    reconciler = create_reconciler(CLEARCORE_PERIPHERALS, hardware, settings)

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_requested.set)

    logger.info(f"Running program '{args.program}'", category="programs")
    program_task = asyncio.create_task(PROGRAMS[args.program](reconciler))
    poller_task = asyncio.create_task(reconciler.run_event_loop())
    stop_task = asyncio.create_task(stop_requested.wait())

    try:
        done, _ = await asyncio.wait({program_task, poller_task, stop_task},
                                     return_when=asyncio.FIRST_COMPLETED)
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        program_task.cancel()
        stop_task.cancel()
        await asyncio.gather(program_task, stop_task, return_exceptions=True)

        await reconciler.shutdown()
        await poller_task

    if stop_task in done:
        logger.info("Stop requested", category="programs")
    for task in (program_task, poller_task):
        if task in done and not task.cancelled() and task.exception() is not None:
            raise task.exception()


def main():
    parser = argparse.ArgumentParser(description="Declarative hardware reconciler")
    parser.add_argument('--program', choices=sorted(PROGRAMS), default="blink", help='Program to run')
    parser.add_argument('--config', default=DEFAULT_CONFIG_PATH, help='Path to settings.json')
    parser.add_argument('--mock', action='store_true', help='Use simulated hardware')
    args = parser.parse_args()

    logger = get_logger(args.config)
    exit_code = 0
    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.warning("Program interrupted by user", category="programs")
    except TransportError as e:
        logger.error(f"Hardware failure: {e}", category="hardware")
        exit_code = 1
    finally:
        shutdown_logger()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
