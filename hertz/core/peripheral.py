#!/usr/bin/env python3

"""
Peripheral Instance
===================

Base class for the live object that mediates between the declared attributes
of one node and the physical hardware.

Lifecycle:
    UNINITIALIZED -> INITIALIZING -> READY <-> UPDATING
    INITIALIZING -> FAILED
    any non-terminal state -> DISPOSING -> DISPOSED (terminal)

Concrete peripherals declare, once per kind:
    TAG_NAME       - tag used in declarations ("dpinout", "motor", ...)
    PROP_HANDLERS  - attribute key -> PropHandler(apply, disown)
    OBSERVABLES    - observable value key -> attribute holding its callback
and implement init_peripheral() and read_values().
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from hertz.core.errors import (
    DisposedError,
    InitializationError,
    NotInitializedError,
    PeripheralError,
    UpdateError,
)
from hertz.core.logger import get_logger
from hertz.core.prop_diff import (
    PropAction,
    PropDiffEntry,
    PropHandler,
    count_actions,
    diff_props,
    run_prop_diff,
    values_equal,
)

logger = get_logger()


class PeripheralState(Enum):
    """Peripheral lifecycle states"""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    UPDATING = "updating"
    FAILED = "failed"
    DISPOSING = "disposing"
    DISPOSED = "disposed"


_GONE = (PeripheralState.DISPOSING, PeripheralState.DISPOSED)


def change_callback_name(key: str) -> str:
    """Attribute name holding the observer of an observable value"""
    return f"on_{key}_change"


class BasePeripheral(ABC):
    """
    One peripheral instance per declared node.

    The instance never schedules anything itself; the orchestrator guarantees
    that initialize(), apply_props() and dispose() are never in flight at the
    same time for the same instance.
    """

    TAG_NAME: str = ""
    PROP_HANDLERS: Dict[str, PropHandler] = {}
    OBSERVABLES: Dict[str, str] = {}

    def __init__(self, props: Mapping[str, Any], hardware):
        # Current attributes, including on_..._change callbacks
        self.props: Dict[str, Any] = dict(props)
        self.hardware = hardware
        self.state = PeripheralState.UNINITIALIZED
        self.node_id: Optional[int] = None

        # Last readings, None until the first query after init
        self._last_values: Optional[Dict[str, Any]] = None
        self._applied_props = False

    def __repr__(self):
        return f"<{type(self).__name__} node={self.node_id} state={self.state.value}>"

    @property
    def label(self) -> str:
        return f"node {self.node_id} ({self.TAG_NAME})"

    def is_ready(self) -> bool:
        return self.state is PeripheralState.READY

    def _set_state(self, new_state: PeripheralState):
        old_state = self.state
        self.state = new_state
        logger.log_state_change(self.label, old_state.value, new_state.value, category="reconciler")

    def _require_ready(self, operation: str):
        if self.state in _GONE:
            raise DisposedError(f"Cannot {operation}: peripheral is disposed", self.node_id, self.TAG_NAME)
        if self.state is PeripheralState.UPDATING:
            raise PeripheralError(f"Cannot {operation}: an update is already in flight",
                                  self.node_id, self.TAG_NAME)
        if self.state is not PeripheralState.READY:
            raise NotInitializedError(f"Cannot {operation}: peripheral is not initialized",
                                      self.node_id, self.TAG_NAME)

    # ========== HOOKS ==========

    @abstractmethod
    async def init_peripheral(self) -> None:
        """One-time hardware setup tied to the node's identity (e.g. pin direction)"""

    @abstractmethod
    async def read_values(self) -> Dict[str, Any]:
        """Read the current observable values from hardware"""

    async def release(self) -> None:
        """Called at the end of dispose() before the hardware reference is dropped"""

    # ========== LIFECYCLE ==========

    async def initialize(self) -> None:
        """
        Perform the one-time hardware setup.

        Raises:
            InitializationError: if called twice, or if the hardware setup failed
        """
        if self.state is not PeripheralState.UNINITIALIZED:
            raise InitializationError(f"Cannot initialize peripheral in state '{self.state.value}'",
                                      self.node_id, self.TAG_NAME)

        self._set_state(PeripheralState.INITIALIZING)
        try:
            await self.init_peripheral()
        except Exception as exc:
            self._set_state(PeripheralState.FAILED)
            raise InitializationError(f"Hardware setup failed: {exc}", self.node_id, self.TAG_NAME) from exc
        self._set_state(PeripheralState.READY)

    async def apply_props(self, prev: Mapping[str, Any], next_: Mapping[str, Any]) -> None:
        """
        Reconcile the hardware with newly declared attributes.

        Handlers run one at a time in key order. If a handler fails, the
        remaining keys are not processed; keys before it stay applied.

        Raises:
            NotInitializedError: if initialize() has not completed
            DisposedError: if the peripheral was disposed
            UpdateError: if an apply or disown handler failed
        """
        self._require_ready("apply props")

        self._set_state(PeripheralState.UPDATING)
        self.props = dict(next_)
        entries = diff_props(prev, self.props, self.PROP_HANDLERS, first_apply=not self._applied_props)
        counts = count_actions(entries)
        logger.debug(f"{self.label}: {counts[PropAction.APPLY]} apply, "
                     f"{counts[PropAction.DISOWN]} disown", category="reconciler")
        try:
            await run_prop_diff(self, entries, self.PROP_HANDLERS, on_error=self._update_error)
        finally:
            if self.state is PeripheralState.UPDATING:
                self._set_state(PeripheralState.READY)

        # The first apply only counts once it completed; until then every update re-applies everything
        self._applied_props = True

    def _update_error(self, entry: PropDiffEntry, exc: Exception) -> UpdateError:
        verb = "apply" if entry.action is PropAction.APPLY else "disown"
        return UpdateError(f"Failed to {verb} '{entry.key}': {exc}", key=entry.key,
                           node_id=self.node_id, tag=self.TAG_NAME)

    async def query_for_changes(self) -> int:
        """
        Read observable values and fire on_..._change callbacks.

        The first call after init fires every observed value with
        is_initial_read=True; later calls fire only values that changed.

        Returns:
            Number of callbacks fired
        """
        # A query launched just before removal began finds nothing to report
        if self.state in _GONE:
            return 0
        if self.state not in (PeripheralState.READY, PeripheralState.UPDATING):
            raise NotInitializedError("Cannot query peripheral before initialization",
                                      self.node_id, self.TAG_NAME)

        values = await self.read_values()

        # Disposal started while we were reading
        if self.state in _GONE:
            return 0

        is_initial = self._last_values is None
        previous = self._last_values or {}
        self._last_values = dict(values)

        fired = 0
        for key, value in values.items():
            callback_name = self.OBSERVABLES.get(key)
            if callback_name is None:
                continue
            callback = self.props.get(callback_name)
            if not callable(callback):
                continue
            if is_initial or not values_equal(previous.get(key), value):
                callback(value, is_initial)
                fired += 1
        return fired

    async def dispose(self) -> None:
        """
        Withdraw every applied attribute and release the hardware.

        Every disown handler is attempted even if an earlier one fails, so no
        actuator is left energized because of an unrelated failure.

        Raises:
            DisposedError: if already disposed
            UpdateError: first disown failure, raised after all handlers ran
        """
        if self.state in _GONE:
            raise DisposedError("Peripheral already disposed", self.node_id, self.TAG_NAME)

        was_live = self.state in (PeripheralState.READY, PeripheralState.UPDATING)
        self._set_state(PeripheralState.DISPOSING)

        failures = []
        if was_live:
            for key, value in list(self.props.items()):
                handler = self.PROP_HANDLERS.get(key)
                if value is None or handler is None or handler.disown is None:
                    continue
                try:
                    await handler.disown(self)
                except Exception as exc:
                    logger.error(f"Failed to disown '{key}' of {self.label}: {exc}", category="reconciler")
                    failures.append((key, exc))
            await self.release()

        self.hardware = None
        self._set_state(PeripheralState.DISPOSED)

        if failures:
            key, exc = failures[0]
            raise UpdateError(f"Failed to disown '{key}': {exc}", key=key,
                              node_id=self.node_id, tag=self.TAG_NAME) from exc
