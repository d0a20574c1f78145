#!/usr/bin/env python3

"""
Mock Hardware
=============

In-memory simulation of the controller, used when
hardware_config.use_real_hardware is false and throughout the tests.

Every command is recorded in `calls` as (command, args). A simulated latency
turns each command into a real suspension point, and failures can be injected
per command to exercise error paths.
"""

import asyncio
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from hertz.core.errors import TransportError
from hertz.core.logger import get_logger
from hertz.hardware.driver import HardwareDriver, MotorState, PinMode


class MockHardware(HardwareDriver):
    """Simulated pins and motor axes"""

    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self.logger = get_logger()
        self.is_connected = False

        self.calls: List[Tuple[str, tuple]] = []
        self.failures: Dict[str, Exception] = {}

        self.pin_modes: Dict[int, PinMode] = {}
        self.pin_levels: Dict[int, bool] = {}
        self.estop_pin: Optional[int] = None
        self.motors: Dict[int, MotorState] = {}

    # ========== TEST HELPERS ==========

    def fail_on(self, command: str, exc: Optional[Exception] = None):
        """Make every subsequent call of command raise exc (TransportError by default)"""
        self.failures[command] = exc or TransportError(f"MOCK: {command} failed")

    def clear_failures(self):
        self.failures.clear()

    def set_input(self, pin: int, value: bool):
        """Simulate an external signal on an input pin"""
        self.pin_levels[pin] = value

    def set_motor_state(self, port: int, **changes):
        self.motors[port] = replace(self._motor(port), **changes)

    def commands(self) -> List[str]:
        return [name for name, _ in self.calls]

    def calls_of(self, command: str) -> List[tuple]:
        return [args for name, args in self.calls if name == command]

    def reset_calls(self):
        self.calls.clear()

    # ========== INTERNALS ==========

    async def _command(self, name: str, *args):
        self.calls.append((name, args))
        self.logger.log_hardware_call(f"MOCK {name}", ", ".join(str(a) for a in args))
        if self.latency:
            await asyncio.sleep(self.latency)
        else:
            await asyncio.sleep(0)
        failure = self.failures.get(name)
        if failure is not None:
            raise failure

    def _motor(self, port: int) -> MotorState:
        return self.motors.get(port, MotorState())

    # ========== CONNECTION ==========

    async def connect(self) -> None:
        await self._command("connect")
        self.is_connected = True
        self.logger.success("Mock Hardware connected", category="hardware")

    async def close(self) -> None:
        await self._command("close")
        self.is_connected = False

    # ========== DIGITAL PINS ==========

    async def set_pins_mode(self, mode: PinMode, *pins: int) -> None:
        await self._command("set_pins_mode", mode, *pins)
        for pin in pins:
            self.pin_modes[pin] = mode

    async def write_digital_pin(self, pin: int, value: bool) -> None:
        await self._command("write_digital_pin", pin, value)
        if self.pin_modes.get(pin) is not PinMode.DIGITAL_OUTPUT:
            raise TransportError(f"MOCK: pin {pin} is not configured as output")
        self.pin_levels[pin] = bool(value)

    async def read_digital_pins(self, *pins: int) -> List[bool]:
        await self._command("read_digital_pins", *pins)
        return [self.pin_levels.get(pin, False) for pin in pins]

    # ========== EMERGENCY STOP ==========

    async def set_estop_pin(self, pin: int) -> None:
        await self._command("set_estop_pin", pin)
        self.estop_pin = pin

    async def clear_estop_pin(self) -> None:
        await self._command("clear_estop_pin")
        self.estop_pin = None

    # ========== MOTORS ==========

    async def enable_motors(self, *ports: int) -> None:
        await self._command("enable_motors", *ports)
        for port in ports:
            self.set_motor_state(port, enabled=True)

    async def disable_motors(self, *ports: int) -> None:
        await self._command("disable_motors", *ports)
        for port in ports:
            self.set_motor_state(port, enabled=False, velocity=0, moving=False)

    async def stop_motors(self, *ports: int) -> None:
        await self._command("stop_motors", *ports)
        for port in ports:
            self.set_motor_state(port, velocity=0, moving=False)

    async def move_motor(self, port: int, steps: int, velocity: int, acceleration: int) -> None:
        await self._command("move_motor", port, steps, velocity, acceleration)
        # Moves complete instantly in the simulation
        motor = self._motor(port)
        self.set_motor_state(port, position=motor.position + steps, velocity=0, moving=False)

    async def set_motor_velocity(self, port: int, velocity: int, acceleration: int) -> None:
        await self._command("set_motor_velocity", port, velocity, acceleration)
        self.set_motor_state(port, velocity=velocity, moving=velocity != 0)

    async def set_motors_home(self, *ports: int) -> None:
        await self._command("set_motors_home", *ports)
        for port in ports:
            self.set_motor_state(port, position=0)

    async def read_motors(self, *ports: int) -> List[MotorState]:
        await self._command("read_motors", *ports)
        return [self._motor(port) for port in ports]
