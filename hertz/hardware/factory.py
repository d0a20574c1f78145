#!/usr/bin/env python3

"""
Hardware Factory
================

Selects between the simulated controller and the real serial controller
based on hardware_config.use_real_hardware in settings.json.
"""

from typing import Dict

from hertz.core.logger import get_logger
from hertz.hardware.driver import HardwareDriver

# Module-level logger
logger = get_logger()


def create_hardware_interface(settings: Dict, force_mock: bool = False) -> HardwareDriver:
    """
    Factory method to create appropriate hardware driver.

    Args:
        settings: Parsed settings.json
        force_mock: Ignore the configuration and simulate the hardware

    Returns:
        MockHardware or SerialHardware instance (not yet connected)
    """
    hardware_config = settings.get("hardware_config", {})
    use_real_hardware = hardware_config.get("use_real_hardware", False) and not force_mock

    logger.info(f"Mode: {'REAL HARDWARE' if use_real_hardware else 'MOCK/SIMULATION'}", category="hardware")

    if use_real_hardware:
        from hertz.hardware.serial_driver import SerialHardware
        return SerialHardware(settings)

    from hertz.hardware.mock_driver import MockHardware
    return MockHardware(latency=hardware_config.get("mock", {}).get("latency", 0.0))
