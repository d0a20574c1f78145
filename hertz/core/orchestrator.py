#!/usr/bin/env python3

"""
Lifecycle Orchestrator
======================

Turns tree-diff operations (instantiate / attach / schedule_init /
schedule_update / schedule_remove) into ordered peripheral calls.

Every node owns a Signal: a single-slot handle on "the latest operation
scheduled for this node has settled". Scheduling a new operation swaps a new
slot into the Signal and chains the operation after the previous slot, so:

- a child's init waits for its parent's Signal (parent init before child init)
- updates wait for init and for each other (one operation in flight per node,
  executed in the order they were scheduled)
- disposal waits for whatever is pending and never preempts it

Failures are reported per node (logged with id and type, and passed to the
node's on_error callback) and never stop the reconciliation of other nodes.
"""

import asyncio
import functools
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Type

from hertz.core.errors import InitializationError, UnknownPeripheralError
from hertz.core.logger import get_logger
from hertz.core.peripheral import BasePeripheral, PeripheralState
from hertz.core.registry import Node, NodeRegistry, Parent, RootContainer

logger = get_logger()


def _retrieve(future: asyncio.Future):
    # Outcomes are reported by the orchestrator; keep asyncio from warning about them
    if not future.cancelled():
        future.exception()


async def settled(future: Optional[asyncio.Future]) -> Optional[BaseException]:
    """
    Wait until future is done without re-raising its outcome and without
    cancelling it if the waiter is cancelled.

    Returns:
        The future's exception (CancelledError if it was cancelled), or None
    """
    if future is None:
        return None
    await asyncio.wait({future})
    if future.cancelled():
        return asyncio.CancelledError()
    return future.exception()


class Signal:
    """
    Per-node completion handle.

    `ready` is the slot reserved for init when the node is created; `tail`
    always points at the slot of the most recently scheduled operation.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop
        self.ready = self.new_slot()
        self.tail = self.ready

    def new_slot(self) -> asyncio.Future:
        slot = self._loop.create_future()
        slot.add_done_callback(_retrieve)
        return slot

    def swap(self, successor: asyncio.Future) -> asyncio.Future:
        """Make successor the tail; returns the slot it must wait for"""
        previous = self.tail
        self.tail = successor
        return previous


class LifecycleOrchestrator:
    """
    Schedules init/update/dispose for the nodes of one registry.

    Must be used from inside a running event loop: node creation reserves
    futures on it.
    """

    def __init__(self, registry: NodeRegistry, peripherals: Iterable[Type[BasePeripheral]], hardware):
        self.registry = registry
        self.hardware = hardware
        self._peripheral_map: Dict[str, Type[BasePeripheral]] = {}
        for peripheral in peripherals:
            if not peripheral.TAG_NAME:
                raise ValueError(f"{peripheral.__name__} does not define TAG_NAME")
            self._peripheral_map[peripheral.TAG_NAME] = peripheral

        self._signals: Dict[int, Signal] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._error_listeners: List[Callable[[Node, BaseException], None]] = []

    @property
    def tags(self) -> List[str]:
        return list(self._peripheral_map)

    def signal_for(self, node: Node) -> Optional[Signal]:
        return self._signals.get(node.id)

    def in_flight(self) -> int:
        return len(self._tasks)

    # ========== CREATION (synchronous) ==========

    def instantiate(self, tag: str, attributes: Mapping[str, Any]) -> Node:
        """
        Create a node and its peripheral instance.

        The Signal is reserved here, before any init is scheduled, so that a
        child created right after can already chain onto it.
        """
        peripheral_class = self._peripheral_map.get(tag)
        if peripheral_class is None:
            raise UnknownPeripheralError(tag)

        loop = asyncio.get_running_loop()
        attributes = dict(attributes)
        instance = peripheral_class(attributes, self.hardware)

        node_id = self.registry.allocate_id()
        instance.node_id = node_id
        self._signals[node_id] = Signal(loop)

        node = Node(id=node_id, type=tag, attributes=attributes, instance=instance)
        self.registry.add(node)
        logger.debug(f"Instantiated {node.label}", category="reconciler")
        return node

    def attach(self, parent: Parent, child: Node, before: Optional[Node] = None):
        """Structural placement only; never re-triggers init"""
        if before is None:
            self.registry.append(parent, child)
        else:
            self.registry.insert_before(parent, child, before)

    # ========== SCHEDULING ==========

    def schedule_init(self, node: Node):
        """Schedule the node's init after its parent's Signal settles (idempotent)"""
        if node.init_scheduled or node.removing:
            return
        node.init_scheduled = True

        parent_tail = None
        parent_label = None
        if node.parent is not None:
            parent_signal = self._signals.get(node.parent.id)
            if parent_signal is not None:
                parent_tail = parent_signal.tail
                parent_label = node.parent.label

        signal = self._signals[node.id]
        initial = dict(node.attributes)
        self._launch(self._run_init(node, initial, parent_tail, parent_label), signal.ready)

    def schedule_update(self, node: Node, prev: Mapping[str, Any], next_: Mapping[str, Any]):
        """Chain an attribute update after the node's latest scheduled operation"""
        if node.removing:
            logger.warning(f"Ignoring update of {node.label}: removal already scheduled", category="reconciler")
            return

        node.attributes = dict(next_)
        signal = self._signals[node.id]
        slot = signal.new_slot()
        previous = signal.swap(slot)
        self._launch(self._run_update(node, previous, dict(prev), dict(next_)), slot)

    def schedule_remove(self, node: Node) -> Optional[asyncio.Future]:
        """
        Detach node and dispose its whole subtree, children before parents.

        Returns:
            The slot that settles once the node itself has been disposed
        """
        if node.removing:
            signal = self._signals.get(node.id)
            return signal.tail if signal else None
        self.registry.detach(node)
        return self._schedule_disposal(node)

    def clear(self, container: RootContainer):
        """Remove every root of container"""
        for node in self.registry.clear(container):
            if not node.removing:
                self._schedule_disposal(node)

    def _schedule_disposal(self, node: Node) -> asyncio.Future:
        node.removing = True
        child_slots = [self._schedule_disposal(child) for child in list(node.children) if not child.removing]

        signal = self._signals[node.id]
        if not node.init_scheduled and not signal.ready.done():
            # Nothing will ever resolve the reserved init slot
            signal.ready.cancel()

        slot = signal.new_slot()
        previous = signal.swap(slot)
        self._launch(self._run_dispose(node, previous, child_slots), slot)
        return slot

    def _launch(self, coro, slot: asyncio.Future):
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(functools.partial(self._settle_slot, slot))

    def _settle_slot(self, slot: asyncio.Future, task: asyncio.Task):
        self._tasks.discard(task)
        if slot.done():
            return
        if task.cancelled():
            slot.cancel()
        elif task.exception() is not None:
            slot.set_exception(task.exception())
        else:
            slot.set_result(None)

    # ========== OPERATIONS ==========

    async def _run_init(self, node: Node, initial: Dict[str, Any],
                        parent_tail: Optional[asyncio.Future], parent_label: Optional[str]):
        try:
            parent_error = await settled(parent_tail)
            if parent_error is not None:
                raise InitializationError(f"Parent {parent_label} failed: {parent_error!r}",
                                          node.id, node.type) from parent_error

            await node.instance.initialize()
        except Exception as exc:
            self.report_failure(node, "initialize", exc)
            raise
        logger.info(f"{node.label} ready", category="reconciler")

        # Push the declared attributes once the hardware is set up. The node
        # stays ready if this fails, but its children still wait on the outcome.
        try:
            await node.instance.apply_props({}, initial)
        except Exception as exc:
            self.report_failure(node, "update", exc)
            raise

    async def _run_update(self, node: Node, previous: asyncio.Future,
                          prev: Dict[str, Any], next_: Dict[str, Any]):
        # The previous operation reported its own outcome
        await settled(previous)
        try:
            await node.instance.apply_props(prev, next_)
        except Exception as exc:
            self.report_failure(node, "update", exc)
            raise

    async def _run_dispose(self, node: Node, previous: asyncio.Future, child_slots: List[asyncio.Future]):
        try:
            for child_slot in child_slots:
                await settled(child_slot)
            await settled(previous)
            await node.instance.dispose()
            logger.info(f"{node.label} disposed", category="reconciler")
        except Exception as exc:
            logger.error(f"Failed to dispose {node.label}: {exc}", category="reconciler")
        finally:
            self.registry.discard(node)
            self._signals.pop(node.id, None)

    # ========== FAILURES & OBSERVATION ==========

    def add_error_listener(self, listener: Callable[[Node, BaseException], None]):
        self._error_listeners.append(listener)

    def report_failure(self, node: Node, operation: str, exc: BaseException):
        """Log a failure against its node and hand it to the node's on_error callback"""
        logger.error(f"Failed to {operation} {node.label}: {exc}", category="reconciler")

        callback = node.attributes.get("on_error")
        if callable(callback):
            try:
                callback(exc)
            except Exception as callback_exc:
                logger.error(f"on_error callback of {node.label} raised: {callback_exc}", category="reconciler")

        for listener in list(self._error_listeners):
            try:
                listener(node, exc)
            except Exception as listener_exc:
                logger.error(f"Error listener raised for {node.label}: {listener_exc}", category="reconciler")

    def when_ready(self, node: Node, callback: Callable[[BasePeripheral], None]):
        """Call callback(instance) once the node's init has succeeded"""
        signal = self._signals.get(node.id)
        if signal is None:
            return

        def _on_ready(future: asyncio.Future):
            if future.cancelled() or future.exception() is not None:
                return
            if node.instance.state in (PeripheralState.DISPOSING, PeripheralState.DISPOSED):
                return
            try:
                callback(node.instance)
            except Exception as exc:
                logger.error(f"Ready callback of {node.label} raised: {exc}", category="reconciler")

        signal.ready.add_done_callback(_on_ready)

    # ========== TEARDOWN ==========

    async def wait_idle(self):
        """Wait until every scheduled operation has settled"""
        while self._tasks:
            await asyncio.wait(set(self._tasks))

    async def shutdown(self):
        """Dispose every node, leaving the hardware in its safe state"""
        roots = self.registry.roots()
        if roots:
            logger.info(f"Disposing {len(self.registry)} node(s)", category="reconciler")
        for node in roots:
            self.schedule_remove(node)
        await self.wait_idle()
