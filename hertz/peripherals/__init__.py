"""
Peripherals for the serial motion/IO controller.

- dpinin:  DigitalPinIn
- dpinout: DigitalPinOut
- motor:   Motor
"""

from hertz.peripherals.digital_pin_in import DigitalPinIn
from hertz.peripherals.digital_pin_out import DigitalPinOut
from hertz.peripherals.motor import Motor, MotorTarget, TargetKind

CLEARCORE_PERIPHERALS = [DigitalPinIn, DigitalPinOut, Motor]

__all__ = [
    "CLEARCORE_PERIPHERALS",
    "DigitalPinIn",
    "DigitalPinOut",
    "Motor",
    "MotorTarget",
    "TargetKind",
]
