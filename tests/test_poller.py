"""Tests for round-robin change detection."""

import asyncio

from conftest import Probe
from hertz.core.errors import TransportError
from hertz.core.orchestrator import LifecycleOrchestrator
from hertz.core.poller import ChangePoller
from hertz.core.registry import NodeRegistry, RootContainer


async def build(hardware, count, **attributes):
    registry = NodeRegistry()
    container = RootContainer()
    orchestrator = LifecycleOrchestrator(registry, [Probe], hardware)
    nodes = []
    for _ in range(count):
        node = orchestrator.instantiate("probe", attributes)
        orchestrator.attach(container, node)
        nodes.append(node)
    return registry, orchestrator, nodes


async def init_all(orchestrator, nodes):
    for node in nodes:
        orchestrator.schedule_init(node)
    await orchestrator.wait_idle()


def test_empty_registry_resets_cursor():
    poller = ChangePoller(NodeRegistry())
    poller.cursor = 3
    assert poller.tick() is None
    assert poller.cursor == 0


def test_round_robin_visits_every_ready_node(journal):
    async def scenario():
        registry, orchestrator, nodes = await build(journal, 3)
        await init_all(orchestrator, nodes)
        poller = ChangePoller(registry)
        visited = []
        for _ in range(6):
            visited.append(poller.tick())
            await poller.drain()
        return nodes, visited

    nodes, visited = asyncio.run(scenario())
    assert visited == nodes + nodes


def test_nodes_that_are_not_ready_are_skipped(journal):
    async def scenario():
        registry, orchestrator, nodes = await build(journal, 2)
        journal.fail.add(("init", nodes[1].id))
        await init_all(orchestrator, nodes)
        poller = ChangePoller(registry)
        visited = []
        for _ in range(3):
            visited.append(poller.tick())
            await poller.drain()
        return nodes, visited

    nodes, visited = asyncio.run(scenario())
    assert visited == [nodes[0], None, nodes[0]]


def test_slow_query_is_not_started_twice(slow_journal):
    async def scenario():
        registry, orchestrator, nodes = await build(slow_journal, 1)
        await init_all(orchestrator, nodes)
        poller = ChangePoller(registry)
        first = poller.tick()
        second = poller.tick()
        await poller.drain()
        third = poller.tick()
        await poller.drain()
        return nodes[0], (first, second, third)

    node, visited = asyncio.run(scenario())
    assert visited == (node, None, node)
    assert sum(1 for e in slow_journal.events if e[0] == "read") == 2


def test_query_fires_change_callbacks(journal):
    seen = []

    async def scenario():
        registry, orchestrator, nodes = await build(
            journal, 1, on_level_change=lambda value, initial: seen.append((value, initial)))
        await init_all(orchestrator, nodes)
        poller = ChangePoller(registry)
        poller.tick()
        await poller.drain()
        journal.readings[nodes[0].id] = 1
        poller.tick()
        await poller.drain()
        poller.tick()
        await poller.drain()

    asyncio.run(scenario())
    assert seen == [(0, True), (1, False)]


def test_query_failure_is_reported_against_its_node(journal):
    failures = []

    async def scenario():
        registry, orchestrator, nodes = await build(journal, 1)
        await init_all(orchestrator, nodes)
        journal.fail.add(("read",))
        poller = ChangePoller(registry, on_failure=lambda node, op, exc: failures.append((node, op, exc)))
        poller.tick()
        await poller.drain()
        return nodes[0]

    node = asyncio.run(scenario())
    assert len(failures) == 1
    assert failures[0][0] is node
    assert failures[0][1] == "query"
    assert isinstance(failures[0][2], TransportError)


def test_run_polls_until_stopped(journal):
    async def scenario():
        registry, orchestrator, nodes = await build(journal, 2)
        await init_all(orchestrator, nodes)
        poller = ChangePoller(registry, interval=0.001)
        task = asyncio.create_task(poller.run())
        await asyncio.sleep(0.05)
        poller.stop()
        await task
        return poller

    poller = asyncio.run(scenario())
    assert not poller.running
    reads = {e[1] for e in journal.events if e[0] == "read"}
    assert len(reads) == 2


def test_removal_racing_a_query_reports_nothing(journal):
    failures = []

    async def scenario():
        for yields in range(5):
            for query_first in (True, False):
                registry, orchestrator, nodes = await build(journal, 1, level=1)
                orchestrator.add_error_listener(lambda node, exc: failures.append((node.id, exc)))
                await init_all(orchestrator, nodes)
                poller = ChangePoller(registry, on_failure=orchestrator.report_failure)
                if query_first:
                    poller.tick()
                orchestrator.schedule_remove(nodes[0])
                for _ in range(yields):
                    await asyncio.sleep(0)
                poller.tick()
                await poller.drain()
                await orchestrator.wait_idle()
                assert len(registry) == 0

    asyncio.run(scenario())
    assert failures == []
