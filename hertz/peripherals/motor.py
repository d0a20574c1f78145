#!/usr/bin/env python3

"""
Motor Axis Peripheral
=====================

Tag "motor". Attributes:
- port:       motor port on the controller (fixed)
- enabled:    energize the axis; when withdrawn the axis is stopped and disabled
- e_stop_pin: input pin that stops all motors (fixed, configured at init)
- target:     MotorTarget (or an equivalent dict); when withdrawn the axis stops

A target is either a velocity movement (target_velocity + acceleration) or a
position movement (target_position + target_velocity + acceleration). A
target velocity of exactly zero means "hold": the axis is stopped and nothing
else is issued. This is a different state from an absent target, which
releases control of the axis.

Observables: the MotorState fields (position, velocity, enabled, moving),
reported through on_position_change, on_velocity_change, ...
"""

from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from hertz.core.errors import DisposedError
from hertz.core.peripheral import BasePeripheral, change_callback_name
from hertz.core.prop_diff import PropHandler
from hertz.hardware.driver import MotorState


class TargetKind(Enum):
    VELOCITY = "velocity"
    POSITION = "position"
    INCOMPLETE = "incomplete"


@dataclass(frozen=True)
class MotorTarget:
    target_velocity: Optional[int] = None
    acceleration: Optional[int] = None
    target_position: Optional[int] = None

    @classmethod
    def coerce(cls, value: Any) -> "MotorTarget":
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            try:
                return cls(**value)
            except TypeError as e:
                raise ValueError(f"Invalid motor target {dict(value)}: {e}") from e
        raise ValueError(f"Invalid motor target: {value!r}")

    @property
    def kind(self) -> TargetKind:
        if self.target_velocity is None or self.acceleration is None:
            return TargetKind.INCOMPLETE
        if self.target_position is None:
            return TargetKind.VELOCITY
        return TargetKind.POSITION

    @property
    def holds(self) -> bool:
        """Zero target velocity: stop and issue nothing else"""
        return self.target_velocity == 0


class Motor(BasePeripheral):
    """One motor axis of the controller"""

    TAG_NAME = "motor"
    OBSERVABLES = {f.name: change_callback_name(f.name) for f in fields(MotorState)}

    def __init__(self, props: Mapping[str, Any], hardware):
        super().__init__(props, hardware)
        if props.get("port") is None:
            raise ValueError("motor requires a 'port' attribute")
        self.port = int(props["port"])
        self.e_stop_pin: Optional[int] = props.get("e_stop_pin")

    async def init_peripheral(self):
        if self.e_stop_pin is not None:
            await self.hardware.set_estop_pin(self.e_stop_pin)

    # ========== FIXED ATTRIBUTES ==========

    async def apply_port(self, port: int):
        if port != self.port:
            raise ValueError("Changing the port after initialization is not supported.")

    async def apply_e_stop_pin(self, pin: int):
        if pin != self.e_stop_pin:
            raise ValueError("Changing the e_stop_pin after initialization is not supported.")

    async def disown_e_stop_pin(self):
        await self.hardware.clear_estop_pin()

    # ========== ENABLED ==========

    async def apply_enabled(self, enabled: bool):
        if enabled:
            await self.hardware.enable_motors(self.port)
        else:
            await self.hardware.disable_motors(self.port)

    async def disown_enabled(self):
        await self.hardware.stop_motors(self.port)
        await self.hardware.disable_motors(self.port)

    # ========== TARGET ==========

    async def apply_target(self, value):
        target = MotorTarget.coerce(value)
        if target.kind is TargetKind.INCOMPLETE:
            raise ValueError("Target must set target_velocity and acceleration")

        # Stop the motor first no matter what
        await self.hardware.stop_motors(self.port)

        if target.acceleration <= 0:
            raise ValueError("Acceleration must be positive")

        if target.holds:
            return

        if target.kind is TargetKind.VELOCITY:
            await self.hardware.set_motor_velocity(self.port, target.target_velocity, target.acceleration)
            return

        state = (await self.hardware.read_motors(self.port))[0]
        steps = target.target_position - state.position
        if steps == 0:
            return
        await self.hardware.move_motor(self.port, steps, target.target_velocity, target.acceleration)

    async def disown_target(self):
        # Release control of the axis
        await self.hardware.stop_motors(self.port)

    # ========== READINGS & ACTIONS ==========

    async def read_values(self) -> Dict[str, Any]:
        state = (await self.hardware.read_motors(self.port))[0]
        return asdict(state)

    async def set_home(self):
        """Make the current position of the axis its zero position"""
        if self.hardware is None:
            raise DisposedError("Cannot home a disposed motor", self.node_id, self.TAG_NAME)
        await self.hardware.set_motors_home(self.port)

    PROP_HANDLERS = {
        "port": PropHandler(apply=apply_port),
        "enabled": PropHandler(apply=apply_enabled, disown=disown_enabled),
        "e_stop_pin": PropHandler(apply=apply_e_stop_pin, disown=disown_e_stop_pin),
        "target": PropHandler(apply=apply_target, disown=disown_target),
    }
