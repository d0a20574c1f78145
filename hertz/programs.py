#!/usr/bin/env python3

"""
Example Programs
================

Each program declares a topology, then re-renders it as its own state
changes over time. Programs run until cancelled unless a number of cycles
(or a duration) is given.

- blink:          toggles output pin 0 every second
- follow:         output pin 2 follows input pin 1
- complex:        alternates between blink and follow every 5 seconds
- motor-velocity: runs motor 0 forward and reverse, switching every 2 seconds
- motor-position: moves motor 0 to a random position every 3 seconds
- error-boundary: drives pin 0 high while input pin 1 stays low; once pin 1
                  reads high it falls back to driving pin 2 high, and retries
                  the normal topology every 3 seconds
"""

import asyncio
import itertools
import random
from typing import Awaitable, Callable, Dict, Optional

from hertz.core.logger import get_logger
from hertz.core.reconciler import Reconciler
from hertz.core.renderer import element
from hertz.peripherals.motor import MotorTarget

logger = get_logger()

Program = Callable[..., Awaitable[None]]
PROGRAMS: Dict[str, Program] = {}


def program(name: str):
    """Register a program under its command-line name"""
    def register(func: Program) -> Program:
        PROGRAMS[name] = func
        return func
    return register


def _cycles(count: Optional[int]):
    return itertools.count() if count is None else range(count)


async def _hold(duration: Optional[float]):
    if duration is None:
        await asyncio.Event().wait()
    else:
        await asyncio.sleep(duration)


# ========== DIGITAL PINS ==========

def blink_tree(value: bool):
    return element("dpinout", pin=0, value=value)


@program("blink")
async def blink(reconciler: Reconciler, period: float = 1.0, cycles: Optional[int] = None):
    value = False
    for _ in _cycles(cycles):
        reconciler.render(blink_tree(value))
        await asyncio.sleep(period)
        value = not value


class Follow:
    """Keeps output pin 2 at the level read on input pin 1"""

    def __init__(self, reconciler: Reconciler):
        self.reconciler = reconciler
        self.value = False
        self.active = True

    def tree(self):
        return [
            element("dpinin", pin=1, on_value_change=self.on_value_change),
            element("dpinout", pin=2, value=self.value),
        ]

    def on_value_change(self, value: bool, is_initial_read: bool):
        self.value = value
        if self.active:
            self.reconciler.render(self.tree())


@program("follow")
async def follow(reconciler: Reconciler, duration: Optional[float] = None):
    follower = Follow(reconciler)
    reconciler.render(follower.tree())
    try:
        await _hold(duration)
    finally:
        follower.active = False


@program("complex")
async def complex_program(reconciler: Reconciler, mode_period: float = 5.0, blink_period: float = 1.0,
                          cycles: Optional[int] = None):
    for _ in _cycles(cycles):
        logger.info("Mode: blink", category="programs")
        blinks = max(1, int(mode_period / blink_period))
        await blink(reconciler, period=blink_period, cycles=blinks)

        logger.info("Mode: follow", category="programs")
        await follow(reconciler, duration=mode_period)



# ========== ERROR BOUNDARY ==========

def _fail_when_high(value: bool, is_initial_read: bool):
    if value:
        raise RuntimeError("Pin 1 is HIGH!")


def error_maker_tree(on_error: Callable[[BaseException], None]):
    # Keys keep the fallback output from being matched against this one
    return [
        element("dpinout", key="maker-out", pin=0, value=True, on_error=on_error),
        element("dpinin", key="maker-in", pin=1, on_value_change=_fail_when_high, on_error=on_error),
    ]


def fallback_tree():
    return element("dpinout", key="fallback-out", pin=2, value=True)


class ErrorBoundary:
    """
    Renders the tree built by render_tree(on_error) and swaps in
    render_fallback() as soon as one of its nodes reports a failure.
    reset() goes back to the normal tree.
    """

    def __init__(self, reconciler: Reconciler, render_tree, render_fallback):
        self.reconciler = reconciler
        self.render_tree = render_tree
        self.render_fallback = render_fallback
        self.failed = False

    def on_error(self, exc: BaseException):
        if self.failed:
            return
        self.failed = True
        logger.warning(f"Caught {exc}, rendering fallback", category="programs")
        self.reconciler.render(self.render_fallback())

    def reset(self):
        self.failed = False
        self.reconciler.render(self.render_tree(self.on_error))


@program("error-boundary")
async def error_boundary(reconciler: Reconciler, retry_period: float = 3.0, cycles: Optional[int] = None):
    boundary = ErrorBoundary(reconciler, error_maker_tree, fallback_tree)
    boundary.reset()
    for _ in _cycles(cycles):
        await asyncio.sleep(retry_period)
        if boundary.failed:
            logger.info("Retrying after failure", category="programs")
            boundary.reset()

# ========== MOTORS ==========

async def _prepare_motor(reconciler: Reconciler, port: int):
    await reconciler.hardware.stop_motors(port)
    await reconciler.hardware.set_motors_home(port)


def _log_position(position: int, is_initial_read: bool):
    logger.info(f"Position: {position}", category="programs")


@program("motor-velocity")
async def motor_velocity(reconciler: Reconciler, period: float = 2.0, velocity: int = 10000,
                         acceleration: int = 100000, cycles: Optional[int] = None):
    await _prepare_motor(reconciler, 0)
    forward = True
    for _ in _cycles(cycles):
        reconciler.render(element(
            "motor",
            port=0,
            enabled=True,
            target=MotorTarget(target_velocity=velocity if forward else -velocity, acceleration=acceleration),
            on_position_change=_log_position,
        ))
        await asyncio.sleep(period)
        forward = not forward


def random_position(limit: int = 30000, step: int = 100) -> int:
    """Random position between 0 and limit, rounded to step"""
    return round(random.random() * limit / step) * step


@program("motor-position")
async def motor_position(reconciler: Reconciler, period: float = 3.0, velocity: int = 5000,
                         acceleration: int = 100000, cycles: Optional[int] = None):
    await _prepare_motor(reconciler, 0)
    target = 0
    for _ in _cycles(cycles):
        reconciler.render(element(
            "motor",
            port=0,
            enabled=True,
            target=MotorTarget(target_position=target, target_velocity=velocity, acceleration=acceleration),
            on_position_change=_log_position,
        ))
        await asyncio.sleep(period)
        target = random_position()
        logger.info(f"Target: {target}", category="programs")
