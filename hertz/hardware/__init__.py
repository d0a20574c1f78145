#!/usr/bin/env python3

"""
Hardware Connection Package for Hertz
=====================================

This package provides the interface between the reconciler and the physical
controller:
- driver: asynchronous driver contract (pins, e-stop, motor axes)
- mock_driver: in-memory simulation
- serial_driver: controller over a serial link (pyserial)
- factory: picks one of them from settings.json
"""

from hertz.hardware.driver import HardwareDriver, MotorState, PinMode

__all__ = ["HardwareDriver", "MotorState", "PinMode"]
