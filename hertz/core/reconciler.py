#!/usr/bin/env python3

"""
Reconciler
==========

Wires one independent reconciler together: its own registry, orchestrator,
change poller and renderer, bound to a hardware driver. Several reconcilers
can coexist; each one is torn down with shutdown().

Usage:
    reconciler = create_reconciler(CLEARCORE_PERIPHERALS, hardware, settings)
    reconciler.render(element("dpinout", pin=0, value=True))
    await reconciler.run_event_loop()
"""

from typing import Dict, Iterable, Optional, Type

from hertz.core.logger import get_logger
from hertz.core.orchestrator import LifecycleOrchestrator
from hertz.core.peripheral import BasePeripheral
from hertz.core.poller import ChangePoller
from hertz.core.registry import NodeRegistry, RootContainer
from hertz.core.renderer import Renderable, Renderer
from hertz.core.settings import timing_setting

logger = get_logger()


class Reconciler:
    """Reconciles declared element trees against one hardware driver"""

    def __init__(self, peripherals: Iterable[Type[BasePeripheral]], hardware,
                 settings: Optional[Dict] = None):
        settings = settings or {}
        self.hardware = hardware
        self.registry = NodeRegistry()
        self.container = RootContainer()
        self.orchestrator = LifecycleOrchestrator(self.registry, peripherals, hardware)
        self.poller = ChangePoller(
            self.registry,
            interval=timing_setting(settings, "poll_interval", 0.001),
            on_failure=self.orchestrator.report_failure,
        )
        self.renderer = Renderer(self.orchestrator, self.container)
        self.is_shut_down = False

    def render(self, tree: Renderable):
        """Declare the topology; must be called from inside the event loop"""
        if self.is_shut_down:
            raise RuntimeError("Cannot render after shutdown")
        self.renderer.render(tree)

    async def run_event_loop(self):
        """Run change detection until shutdown() or stop of the poller"""
        await self.poller.run()

    async def settle(self):
        """Wait for every scheduled init/update/dispose to finish"""
        await self.orchestrator.wait_idle()

    async def shutdown(self, close_hardware: bool = True):
        """
        Stop polling, dispose every node (safe defaults on the hardware), and
        close the driver.
        """
        if self.is_shut_down:
            return
        self.is_shut_down = True
        logger.info("Shutting down reconciler", category="reconciler")

        self.poller.stop()
        await self.poller.drain()

        self.renderer.unmount()
        await self.orchestrator.shutdown()

        if close_hardware:
            await self.hardware.close()
        logger.success("Reconciler shut down", category="reconciler")


def create_reconciler(peripherals: Iterable[Type[BasePeripheral]], hardware,
                      settings: Optional[Dict] = None) -> Reconciler:
    """Build a reconciler for the given peripheral kinds and driver"""
    return Reconciler(peripherals, hardware, settings)
