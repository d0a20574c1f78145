#!/usr/bin/env python3

"""
Hardware Driver Interface
=========================

Asynchronous primitives exposed by a motion/IO controller (digital pins,
emergency-stop pin, motor axes). Every call is a suspension point and may
raise TransportError.

Implementations:
- MockHardware: in-memory simulation (hertz.hardware.mock_driver)
- SerialHardware: controller over a serial link (hertz.hardware.serial_driver)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List


class PinMode(Enum):
    """Direction of a digital pin"""
    DIGITAL_INPUT = "INPUT"
    DIGITAL_OUTPUT = "OUTPUT"


@dataclass(frozen=True)
class MotorState:
    """Live state of one motor axis"""
    position: int = 0
    velocity: int = 0
    enabled: bool = False
    moving: bool = False


class HardwareDriver(ABC):
    """Contract between peripherals and the physical controller"""

    async def connect(self) -> None:
        """Open the link to the controller"""

    async def close(self) -> None:
        """Close the link to the controller"""

    # ========== DIGITAL PINS ==========

    @abstractmethod
    async def set_pins_mode(self, mode: PinMode, *pins: int) -> None:
        ...

    @abstractmethod
    async def write_digital_pin(self, pin: int, value: bool) -> None:
        ...

    @abstractmethod
    async def read_digital_pins(self, *pins: int) -> List[bool]:
        ...

    # ========== EMERGENCY STOP ==========

    @abstractmethod
    async def set_estop_pin(self, pin: int) -> None:
        """Stop all motors whenever the given input pin is triggered"""

    @abstractmethod
    async def clear_estop_pin(self) -> None:
        ...

    # ========== MOTORS ==========

    @abstractmethod
    async def enable_motors(self, *ports: int) -> None:
        ...

    @abstractmethod
    async def disable_motors(self, *ports: int) -> None:
        ...

    @abstractmethod
    async def stop_motors(self, *ports: int) -> None:
        ...

    @abstractmethod
    async def move_motor(self, port: int, steps: int, velocity: int, acceleration: int) -> None:
        """Relative move by steps"""

    @abstractmethod
    async def set_motor_velocity(self, port: int, velocity: int, acceleration: int) -> None:
        """Run continuously at velocity (negative for reverse)"""

    @abstractmethod
    async def set_motors_home(self, *ports: int) -> None:
        """Make the current position the zero position"""

    @abstractmethod
    async def read_motors(self, *ports: int) -> List[MotorState]:
        ...
