"""Tests for the peripheral instance lifecycle, applied on the Probe peripheral."""

import asyncio

import pytest

from conftest import Probe
from hertz.core.errors import (
    DisposedError,
    InitializationError,
    NotInitializedError,
    TransportError,
    UpdateError,
)
from hertz.core.peripheral import PeripheralState


def make_probe(journal, node_id=7, **props):
    probe = Probe(props, journal)
    probe.node_id = node_id
    return probe


def test_initialize_reaches_ready(journal):
    probe = make_probe(journal)
    assert probe.state is PeripheralState.UNINITIALIZED

    asyncio.run(probe.initialize())

    assert probe.state is PeripheralState.READY
    assert journal.events == [("init", 7)]


def test_initialize_twice_is_rejected(journal):
    probe = make_probe(journal)

    async def scenario():
        await probe.initialize()
        with pytest.raises(InitializationError):
            await probe.initialize()

    asyncio.run(scenario())
    assert journal.events == [("init", 7)]


def test_failed_initialize_leaves_peripheral_failed(journal):
    journal.fail.add(("init",))
    probe = make_probe(journal)

    async def scenario():
        with pytest.raises(InitializationError) as excinfo:
            await probe.initialize()
        assert isinstance(excinfo.value.__cause__, TransportError)
        assert probe.state is PeripheralState.FAILED

        with pytest.raises(NotInitializedError):
            await probe.apply_props({}, {"level": 1})

    asyncio.run(scenario())


def test_apply_props_before_initialize_is_rejected(journal):
    probe = make_probe(journal)
    with pytest.raises(NotInitializedError):
        asyncio.run(probe.apply_props({}, {"level": 1}))
    assert journal.events == []


def test_first_apply_pushes_every_declared_value(journal):
    probe = make_probe(journal)

    async def scenario():
        await probe.initialize()
        await probe.apply_props({"level": 1, "mode": "x"}, {"level": 1, "mode": "x"})
        # Same attributes again: nothing to do
        await probe.apply_props({"level": 1, "mode": "x"}, {"level": 1, "mode": "x"})

    asyncio.run(scenario())
    assert journal.events == [
        ("init", 7),
        ("apply", 7, "level", 1),
        ("apply", 7, "mode", "x"),
    ]


def test_withdrawn_value_is_disowned(journal):
    probe = make_probe(journal)

    async def scenario():
        await probe.initialize()
        await probe.apply_props({}, {"level": 1, "mode": "x"})
        await probe.apply_props({"level": 1, "mode": "x"}, {})

    asyncio.run(scenario())
    assert journal.events[-1] == ("disown", 7, "level")
    assert probe.props == {}


def test_failed_update_reports_key_and_returns_to_ready(journal):
    probe = make_probe(journal)

    async def scenario():
        await probe.initialize()
        journal.fail.add(("apply", 7, "flag"))
        with pytest.raises(UpdateError) as excinfo:
            await probe.apply_props({}, {"level": 1, "flag": True, "mode": "x"})
        assert excinfo.value.key == "flag"
        assert excinfo.value.node_id == 7
        assert isinstance(excinfo.value.__cause__, TransportError)
        assert probe.state is PeripheralState.READY

    asyncio.run(scenario())
    # Applied before the failure, never reached after it
    assert ("apply", 7, "level", 1) in journal.events
    assert ("apply", 7, "mode", "x") not in journal.events


def test_query_fires_initial_read_then_changes_only(journal):
    seen = []
    probe = make_probe(journal, on_level_change=lambda value, initial: seen.append((value, initial)))

    async def scenario():
        await probe.initialize()
        assert await probe.query_for_changes() == 1
        assert await probe.query_for_changes() == 0
        journal.readings[7] = 5
        assert await probe.query_for_changes() == 1

    asyncio.run(scenario())
    assert seen == [(0, True), (5, False)]


def test_query_before_initialize_is_rejected(journal):
    probe = make_probe(journal)
    with pytest.raises(NotInitializedError):
        asyncio.run(probe.query_for_changes())


def test_query_without_observer_fires_nothing(journal):
    probe = make_probe(journal)

    async def scenario():
        await probe.initialize()
        return await probe.query_for_changes()

    assert asyncio.run(scenario()) == 0


def test_dispose_disowns_applied_values_and_releases(journal):
    probe = make_probe(journal)

    async def scenario():
        await probe.initialize()
        await probe.apply_props({}, {"level": 1, "mode": "x"})
        await probe.dispose()

    asyncio.run(scenario())
    assert journal.events[-2:] == [("disown", 7, "level"), ("release", 7)]
    assert probe.state is PeripheralState.DISPOSED
    assert probe.hardware is None


def test_dispose_attempts_every_disown(journal):
    probe = make_probe(journal)

    async def scenario():
        await probe.initialize()
        await probe.apply_props({}, {"level": 1, "flag": True})
        journal.fail.add(("disown", 7, "level"))
        with pytest.raises(UpdateError) as excinfo:
            await probe.dispose()
        assert excinfo.value.key == "level"

    asyncio.run(scenario())
    assert ("disown", 7, "flag") in journal.events
    assert journal.events[-1] == ("release", 7)
    assert probe.state is PeripheralState.DISPOSED


def test_disposed_peripheral_rejects_commands(journal):
    probe = make_probe(journal)

    async def scenario():
        await probe.initialize()
        await probe.dispose()
        with pytest.raises(DisposedError):
            await probe.dispose()
        with pytest.raises(DisposedError):
            await probe.apply_props({}, {"level": 1})
        # Reads that race the teardown are dropped quietly
        assert await probe.query_for_changes() == 0

    asyncio.run(scenario())


def test_dispose_of_uninitialized_peripheral_touches_no_hardware(journal):
    probe = make_probe(journal, level=1)
    asyncio.run(probe.dispose())
    assert journal.events == []
    assert probe.state is PeripheralState.DISPOSED


def test_error_message_names_the_node(journal):
    probe = make_probe(journal)
    with pytest.raises(NotInitializedError, match=r"node 7, probe"):
        asyncio.run(probe.apply_props({}, {}))
