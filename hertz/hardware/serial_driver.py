#!/usr/bin/env python3

"""
Serial Hardware Driver
======================

Talks to the motion/IO controller over a serial link using a line-based
ASCII protocol: one command per line, zero or more data lines in reply,
terminated by "ok" or "error: <reason>".

    PING                          -> ok
    PINMODE <INPUT|OUTPUT> <pin>… -> ok
    DWRITE <pin> <0|1>            -> ok
    DREAD <pin>…                  -> PINS <0|1>…, ok
    ESTOP <pin> | ESTOP CLEAR     -> ok
    MENABLE|MDISABLE|MSTOP|MHOME <port>…   -> ok
    MMOVE <port> <steps> <velocity> <acceleration> -> ok
    MVEL <port> <velocity> <acceleration>          -> ok
    MREAD <port>…                 -> MOTOR <port> position=… velocity=… enabled=… moving=…, ok

The serial port is a single shared resource: all commands go through one
asyncio lock, and the blocking pyserial I/O runs in a worker thread.
"""

import asyncio
import time
from typing import Dict, List, Optional

import serial
import serial.tools.list_ports

from hertz.core.errors import TransportError
from hertz.core.logger import get_logger
from hertz.hardware.driver import HardwareDriver, MotorState, PinMode


def _ports(ports) -> str:
    return " ".join(str(int(p)) for p in ports)


class SerialHardware(HardwareDriver):
    """
    Controller connected over a serial port.

    Args:
        settings: Parsed settings.json
        connection: Already-open serial-like object (skips port discovery)
    """

    def __init__(self, settings: Optional[Dict] = None, connection=None):
        self.logger = get_logger()
        settings = settings or {}
        clearcore_config = settings.get("hardware_config", {}).get("clearcore", {})

        self.serial_port = clearcore_config.get("serial_port", "/dev/ttyACM0")
        self.baud_rate = clearcore_config.get("baud_rate", 115200)
        self.connection_timeout = clearcore_config.get("connection_timeout", 5.0)
        self.command_timeout = clearcore_config.get("command_timeout", 2.0)

        timing_config = settings.get("timing", {})
        self._serial_poll_delay = timing_config.get("serial_poll_delay", 0.005)
        self._connect_delay = timing_config.get("connect_delay", 2.0)

        self.serial_connection = connection
        self.is_connected = False
        self.command_lock = asyncio.Lock()  # Transport-level command queue

        self.logger.info(
            f"Serial controller configuration - Port: {self.serial_port}, Baud: {self.baud_rate}",
            category="serial"
        )

    # ========== CONNECTION ==========

    async def connect(self) -> None:
        """
        Open the serial port and verify the controller answers.

        Raises:
            TransportError: port missing, busy, not permitted or silent
        """
        if self.is_connected:
            self.logger.info("Already connected to controller", category="serial")
            return

        if self.serial_connection is None:
            if not self.serial_port or self.serial_port == "None":
                error_msg = "CONTROLLER PORT NOT CONFIGURED - No serial port specified in settings"
                self.logger.error(error_msg, category="serial")
                raise TransportError(error_msg)

            await asyncio.to_thread(self._open)

            # The controller resets when the port opens
            self.logger.debug("Waiting for controller to boot...", category="serial")
            await asyncio.sleep(self._connect_delay)
            self.serial_connection.reset_input_buffer()

        try:
            await self._send_command("PING")
        except TransportError:
            self.logger.error("NO RESPONSE FROM CONTROLLER - wrong port or baud rate?", category="serial")
            await self.close()
            raise

        self.is_connected = True
        self.logger.success(f"Connected to controller on {self.serial_port}", category="serial")

    def _open(self):
        available_ports = [port.device for port in serial.tools.list_ports.comports()]
        self.logger.debug(f"Available ports: {available_ports if available_ports else 'None found'}",
                          category="serial")

        if self.serial_port not in available_ports:
            error_msg = f"PORT NOT FOUND - '{self.serial_port}' is not available"
            self.logger.error(error_msg, category="serial")
            raise TransportError(error_msg)

        try:
            self.serial_connection = serial.Serial(
                port=self.serial_port,
                baudrate=self.baud_rate,
                timeout=self.connection_timeout
            )
        except serial.SerialException as e:
            if "Permission denied" in str(e):
                error_msg = f"PERMISSION DENIED - Cannot access port '{self.serial_port}'"
                self.logger.error("Try: sudo usermod -a -G dialout $USER", category="serial")
            elif "Device is busy" in str(e) or "Resource busy" in str(e):
                error_msg = f"PORT IN USE - '{self.serial_port}' is already open by another program"
            else:
                error_msg = f"SERIAL ERROR - {e}"
            self.logger.error(error_msg, category="serial")
            raise TransportError(error_msg) from e

    async def close(self) -> None:
        if self.serial_connection is not None:
            async with self.command_lock:
                self.serial_connection.close()
            self.serial_connection = None
            self.logger.info("Controller connection closed", category="serial")
        self.is_connected = False

    # ========== COMMAND TRANSPORT ==========

    async def _send_command(self, command: str) -> List[str]:
        """
        Send one command and wait for its reply.

        Returns:
            Data lines received before "ok"
        """
        if self.serial_connection is None:
            raise TransportError(f"Cannot send '{command}': not connected")

        async with self.command_lock:
            return await asyncio.to_thread(self._exchange, command)

    def _exchange(self, command: str) -> List[str]:
        self.logger.debug(f"CC >> {command}", category="serial")
        try:
            self.serial_connection.write(f"{command}\n".encode())

            start_time = time.time()
            response_lines = []
            while time.time() - start_time < self.command_timeout:
                if self.serial_connection.in_waiting > 0:
                    line = self.serial_connection.readline().decode(errors="replace").strip()
                    if not line:
                        continue
                    self.logger.debug(f"CC << {line}", category="serial")

                    if line.lower() == "ok":
                        return response_lines
                    if line.lower().startswith("error"):
                        raise TransportError(f"Controller rejected '{command}': {line}")
                    response_lines.append(line)
                    continue

                time.sleep(self._serial_poll_delay)

            # A late reply would otherwise be taken as the answer to the next command
            self.serial_connection.reset_input_buffer()
        except (serial.SerialException, OSError) as e:
            raise TransportError(f"Serial failure during '{command}': {e}") from e

        self.logger.warning(f"No reply to '{command}', input buffer cleared", category="serial")
        raise TransportError(f"Command '{command}' timed out after {self.command_timeout}s")

    # ========== DIGITAL PINS ==========

    async def set_pins_mode(self, mode: PinMode, *pins: int) -> None:
        await self._send_command(f"PINMODE {mode.value} {_ports(pins)}")

    async def write_digital_pin(self, pin: int, value: bool) -> None:
        await self._send_command(f"DWRITE {int(pin)} {1 if value else 0}")

    async def read_digital_pins(self, *pins: int) -> List[bool]:
        lines = await self._send_command(f"DREAD {_ports(pins)}")
        for line in lines:
            parts = line.split()
            if parts and parts[0] == "PINS":
                levels = [part == "1" for part in parts[1:]]
                if len(levels) != len(pins):
                    raise TransportError(f"Expected {len(pins)} pin level(s), got {len(levels)}")
                return levels
        raise TransportError("Missing PINS line in DREAD reply")

    # ========== EMERGENCY STOP ==========

    async def set_estop_pin(self, pin: int) -> None:
        await self._send_command(f"ESTOP {int(pin)}")

    async def clear_estop_pin(self) -> None:
        await self._send_command("ESTOP CLEAR")

    # ========== MOTORS ==========

    async def enable_motors(self, *ports: int) -> None:
        await self._send_command(f"MENABLE {_ports(ports)}")

    async def disable_motors(self, *ports: int) -> None:
        await self._send_command(f"MDISABLE {_ports(ports)}")

    async def stop_motors(self, *ports: int) -> None:
        await self._send_command(f"MSTOP {_ports(ports)}")

    async def move_motor(self, port: int, steps: int, velocity: int, acceleration: int) -> None:
        await self._send_command(f"MMOVE {int(port)} {int(steps)} {int(velocity)} {int(acceleration)}")

    async def set_motor_velocity(self, port: int, velocity: int, acceleration: int) -> None:
        await self._send_command(f"MVEL {int(port)} {int(velocity)} {int(acceleration)}")

    async def set_motors_home(self, *ports: int) -> None:
        await self._send_command(f"MHOME {_ports(ports)}")

    async def read_motors(self, *ports: int) -> List[MotorState]:
        lines = await self._send_command(f"MREAD {_ports(ports)}")
        states = {}
        for line in lines:
            parts = line.split()
            if len(parts) < 2 or parts[0] != "MOTOR":
                continue
            states[int(parts[1])] = parse_motor_fields(parts[2:])

        missing = [port for port in ports if port not in states]
        if missing:
            raise TransportError(f"No state reported for motor port(s) {missing}")
        return [states[port] for port in ports]


def parse_motor_fields(fields: List[str]) -> MotorState:
    """Parse ["position=12", "velocity=0", ...] into a MotorState"""
    values = {}
    for field in fields:
        key, _, raw = field.partition("=")
        values[key] = raw
    try:
        return MotorState(
            position=int(values.get("position", 0)),
            velocity=int(values.get("velocity", 0)),
            enabled=values.get("enabled", "0") == "1",
            moving=values.get("moving", "0") == "1",
        )
    except ValueError as e:
        raise TransportError(f"Malformed motor state {fields}: {e}") from e
