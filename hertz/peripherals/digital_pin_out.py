"""Digital output pin (tag "dpinout")."""

from typing import Any, Dict, Mapping

from hertz.core.peripheral import BasePeripheral
from hertz.core.prop_diff import PropHandler
from hertz.hardware.driver import PinMode


class DigitalPinOut(BasePeripheral):
    """
    Drives one digital pin to the declared level.

    Attributes:
        pin: Pin number (fixed for the life of the node)
        value: Level to drive; when withdrawn the pin is driven low
    """

    TAG_NAME = "dpinout"

    def __init__(self, props: Mapping[str, Any], hardware):
        super().__init__(props, hardware)
        if props.get("pin") is None:
            raise ValueError("dpinout requires a 'pin' attribute")
        self.pin = int(props["pin"])

    async def init_peripheral(self):
        await self.hardware.set_pins_mode(PinMode.DIGITAL_OUTPUT, self.pin)

    async def apply_pin(self, pin: int):
        if pin != self.pin:
            raise ValueError("Changing the pin after initialization is not supported.")

    async def apply_value(self, value: bool):
        await self.hardware.write_digital_pin(self.pin, bool(value))

    async def disown_value(self):
        await self.hardware.write_digital_pin(self.pin, False)

    async def read_values(self) -> Dict[str, Any]:
        return {}

    PROP_HANDLERS = {
        "pin": PropHandler(apply=apply_pin),
        "value": PropHandler(apply=apply_value, disown=disown_value),
    }
