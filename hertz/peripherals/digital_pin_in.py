"""Digital input pin (tag "dpinin")."""

from typing import Any, Dict, Mapping

from hertz.core.peripheral import BasePeripheral, change_callback_name
from hertz.core.prop_diff import PropHandler
from hertz.hardware.driver import PinMode


class DigitalPinIn(BasePeripheral):
    """
    Reports the level of one digital pin through on_value_change(value, is_initial_read).
    """

    TAG_NAME = "dpinin"
    OBSERVABLES = {"value": change_callback_name("value")}

    def __init__(self, props: Mapping[str, Any], hardware):
        super().__init__(props, hardware)
        if props.get("pin") is None:
            raise ValueError("dpinin requires a 'pin' attribute")
        self.pin = int(props["pin"])

    async def init_peripheral(self):
        await self.hardware.set_pins_mode(PinMode.DIGITAL_INPUT, self.pin)

    async def apply_pin(self, pin: int):
        if pin != self.pin:
            raise ValueError("Changing the pin after initialization is not supported.")

    async def read_values(self) -> Dict[str, Any]:
        levels = await self.hardware.read_digital_pins(self.pin)
        return {"value": levels[0]}

    PROP_HANDLERS = {
        "pin": PropHandler(apply=apply_pin),
    }
