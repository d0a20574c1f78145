"""Shared fixtures: a journaling fake driver and a probe peripheral that uses it."""

import asyncio
from collections import defaultdict

import pytest

from hertz.core.errors import TransportError
from hertz.core.peripheral import BasePeripheral
from hertz.core.prop_diff import PropHandler
from hertz.hardware.mock_driver import MockHardware


class Journal:
    """
    Driver stand-in that records every call as a tuple (event, node_id, *args).

    A call fails when any prefix of its tuple is in `fail`, e.g. ("init",),
    ("init", 3) or ("apply", 3, "level").
    """

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.events = []
        self.fail = set()
        self.readings = {}
        self.active = defaultdict(int)
        self.max_active = defaultdict(int)
        self.closed = False

    async def record(self, event, node_id, *args):
        entry = (event, node_id) + args
        self.events.append(entry)
        self.active[node_id] += 1
        self.max_active[node_id] = max(self.max_active[node_id], self.active[node_id])
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.active[node_id] -= 1
        for size in range(1, len(entry) + 1):
            if entry[:size] in self.fail:
                raise TransportError(f"{entry} failed")

    def of(self, node_id):
        return [e for e in self.events if e[1] == node_id]

    def index(self, *entry):
        return self.events.index(entry)

    async def close(self):
        self.closed = True


class Probe(BasePeripheral):
    """Peripheral whose every hardware interaction lands in the Journal"""

    TAG_NAME = "probe"
    OBSERVABLES = {"level": "on_level_change"}

    async def init_peripheral(self):
        await self.hardware.record("init", self.node_id)

    async def apply_level(self, value):
        await self.hardware.record("apply", self.node_id, "level", value)

    async def disown_level(self):
        await self.hardware.record("disown", self.node_id, "level")

    async def apply_flag(self, value):
        await self.hardware.record("apply", self.node_id, "flag", value)

    async def disown_flag(self):
        await self.hardware.record("disown", self.node_id, "flag")

    async def apply_mode(self, value):
        await self.hardware.record("apply", self.node_id, "mode", value)

    async def read_values(self):
        await self.hardware.record("read", self.node_id)
        return {"level": self.hardware.readings.get(self.node_id, 0)}

    async def release(self):
        await self.hardware.record("release", self.node_id)

    PROP_HANDLERS = {
        "level": PropHandler(apply=apply_level, disown=disown_level),
        "flag": PropHandler(apply=apply_flag, disown=disown_flag),
        "mode": PropHandler(apply=apply_mode),
    }


class Gauge(Probe):
    TAG_NAME = "gauge"


@pytest.fixture
def journal():
    return Journal()


@pytest.fixture
def slow_journal():
    return Journal(delay=0.002)


@pytest.fixture
def mock_hardware():
    return MockHardware()


@pytest.fixture
def probes():
    return [Probe, Gauge]
