"""Tests for the serial controller protocol, using an in-memory serial connection."""

import asyncio

import pytest

from hertz.core.errors import TransportError
from hertz.hardware.driver import MotorState, PinMode
from hertz.hardware.serial_driver import SerialHardware, parse_motor_fields

SETTINGS = {
    "hardware_config": {"clearcore": {"command_timeout": 0.2}},
    "timing": {"serial_poll_delay": 0.001, "connect_delay": 0.0},
}


class FakeSerial:
    """Answers each written command line with the lines scripted for it ("ok" by default)"""

    def __init__(self, replies=None):
        self.replies = replies or {}
        self.written = []
        self.buffer = []
        self.closed = False

    def write(self, data):
        command = data.decode().strip()
        self.written.append(command)
        self.buffer.extend(self.replies.get(command, ["ok"]))
        return len(data)

    @property
    def in_waiting(self):
        return sum(len(line) + 1 for line in self.buffer)

    def readline(self):
        return (self.buffer.pop(0) + "\n").encode()

    def reset_input_buffer(self):
        self.buffer.clear()

    def close(self):
        self.closed = True


def connected(replies=None):
    fake = FakeSerial(replies)
    hardware = SerialHardware(SETTINGS, connection=fake)
    asyncio.run(hardware.connect())
    return hardware, fake


def test_connect_pings_the_controller():
    hardware, fake = connected()
    assert hardware.is_connected
    assert fake.written == ["PING"]


def test_silent_controller_fails_to_connect():
    fake = FakeSerial({"PING": []})
    hardware = SerialHardware(SETTINGS, connection=fake)
    with pytest.raises(TransportError):
        asyncio.run(hardware.connect())
    assert fake.closed
    assert not hardware.is_connected


def test_commands_are_encoded_as_lines():
    hardware, fake = connected()

    async def scenario():
        await hardware.set_pins_mode(PinMode.DIGITAL_OUTPUT, 0, 2)
        await hardware.write_digital_pin(2, True)
        await hardware.set_estop_pin(0)
        await hardware.clear_estop_pin()
        await hardware.move_motor(0, -200, 5000, 100000)
        await hardware.set_motor_velocity(1, 300, 1000)
        await hardware.stop_motors(0, 1)

    asyncio.run(scenario())
    assert fake.written[1:] == [
        "PINMODE OUTPUT 0 2",
        "DWRITE 2 1",
        "ESTOP 0",
        "ESTOP CLEAR",
        "MMOVE 0 -200 5000 100000",
        "MVEL 1 300 1000",
        "MSTOP 0 1",
    ]


def test_read_digital_pins_parses_levels():
    hardware, _ = connected({"DREAD 1 2": ["PINS 1 0", "ok"]})
    assert asyncio.run(hardware.read_digital_pins(1, 2)) == [True, False]


def test_read_motors_parses_state_lines():
    hardware, _ = connected({
        "MREAD 0": ["MOTOR 0 position=-120 velocity=50 enabled=1 moving=1", "ok"],
    })
    assert asyncio.run(hardware.read_motors(0)) == [
        MotorState(position=-120, velocity=50, enabled=True, moving=True)
    ]


def test_missing_motor_state_is_an_error():
    hardware, _ = connected({"MREAD 0 1": ["MOTOR 0 position=0", "ok"]})
    with pytest.raises(TransportError):
        asyncio.run(hardware.read_motors(0, 1))


def test_error_reply_raises():
    hardware, _ = connected({"DWRITE 9 1": ["error: pin 9 is an input"]})
    with pytest.raises(TransportError, match="pin 9 is an input"):
        asyncio.run(hardware.write_digital_pin(9, True))


def test_missing_reply_times_out():
    hardware, _ = connected({"MHOME 0": []})
    with pytest.raises(TransportError, match="timed out"):
        asyncio.run(hardware.set_motors_home(0))



class LateSerial(FakeSerial):
    """Holds back the replies to `late` commands until after the caller gave up waiting"""

    def __init__(self, replies=None, late=()):
        super().__init__(replies)
        self.late = set(late)
        self.holding = False

    def write(self, data):
        self.holding = data.decode().strip() in self.late
        return super().write(data)

    @property
    def in_waiting(self):
        return 0 if self.holding else super().in_waiting

    def reset_input_buffer(self):
        self.holding = False
        super().reset_input_buffer()


def test_late_reply_is_not_taken_for_the_next_command():
    fake = LateSerial({"DREAD 1": ["PINS 1", "ok"]}, late={"MHOME 0"})
    hardware = SerialHardware(SETTINGS, connection=fake)

    async def scenario():
        await hardware.connect()
        with pytest.raises(TransportError, match="timed out"):
            await hardware.set_motors_home(0)
        return await hardware.read_digital_pins(1)

    assert asyncio.run(scenario()) == [True]
    assert fake.written == ["PING", "MHOME 0", "DREAD 1"]

def test_commands_require_a_connection():
    hardware = SerialHardware(SETTINGS)
    with pytest.raises(TransportError):
        asyncio.run(hardware.enable_motors(0))


def test_close_releases_the_port():
    hardware, fake = connected()
    asyncio.run(hardware.close())
    assert fake.closed
    assert hardware.serial_connection is None
    assert not hardware.is_connected


def test_malformed_motor_fields():
    with pytest.raises(TransportError):
        parse_motor_fields(["position=abc"])
