"""Tests for the digital pin peripherals against the simulated controller."""

import asyncio

import pytest

from hertz.core.errors import UpdateError
from hertz.hardware.driver import PinMode
from hertz.peripherals import DigitalPinIn, DigitalPinOut


async def mounted(peripheral_class, hardware, **props):
    peripheral = peripheral_class(props, hardware)
    peripheral.node_id = 0
    await peripheral.initialize()
    await peripheral.apply_props({}, peripheral.props)
    return peripheral


def test_pin_is_required(mock_hardware):
    with pytest.raises(ValueError):
        DigitalPinOut({"value": True}, mock_hardware)
    with pytest.raises(ValueError):
        DigitalPinIn({}, mock_hardware)


def test_output_is_configured_and_driven(mock_hardware):
    asyncio.run(mounted(DigitalPinOut, mock_hardware, pin=3, value=True))
    assert mock_hardware.pin_modes[3] is PinMode.DIGITAL_OUTPUT
    assert mock_hardware.calls_of("write_digital_pin") == [(3, True)]
    assert mock_hardware.pin_levels[3] is True


def test_output_goes_low_when_value_is_withdrawn(mock_hardware):
    async def scenario():
        pin = await mounted(DigitalPinOut, mock_hardware, pin=3, value=True)
        await pin.apply_props(pin.props, {"pin": 3})

    asyncio.run(scenario())
    assert mock_hardware.calls_of("write_digital_pin") == [(3, True), (3, False)]


def test_output_goes_low_on_dispose(mock_hardware):
    async def scenario():
        pin = await mounted(DigitalPinOut, mock_hardware, pin=3, value=True)
        await pin.dispose()

    asyncio.run(scenario())
    assert mock_hardware.pin_levels[3] is False


def test_output_pin_cannot_change(mock_hardware):
    async def scenario():
        pin = await mounted(DigitalPinOut, mock_hardware, pin=3)
        with pytest.raises(UpdateError):
            await pin.apply_props(pin.props, {"pin": 4})

    asyncio.run(scenario())


def test_input_reports_initial_read_and_changes(mock_hardware):
    seen = []

    async def scenario():
        pin = await mounted(DigitalPinIn, mock_hardware, pin=1,
                            on_value_change=lambda value, initial: seen.append((value, initial)))
        await pin.query_for_changes()
        await pin.query_for_changes()
        mock_hardware.set_input(1, True)
        await pin.query_for_changes()

    asyncio.run(scenario())
    assert mock_hardware.pin_modes[1] is PinMode.DIGITAL_INPUT
    assert seen == [(False, True), (True, False)]


def test_input_pin_cannot_change(mock_hardware):
    async def scenario():
        pin = await mounted(DigitalPinIn, mock_hardware, pin=1)
        with pytest.raises(UpdateError):
            await pin.apply_props(pin.props, {"pin": 2})

    asyncio.run(scenario())
