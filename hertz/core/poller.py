#!/usr/bin/env python3

"""
Change-Detection Poller
=======================

Best-effort, fixed-interval loop that walks the registry's live nodes round
robin and asks one ready peripheral per tick to query its hardware. Queries
are launched as tasks and not awaited, so one slow read never stalls the
polling of other nodes.
"""

import asyncio
from typing import Callable, Dict, Optional

from hertz.core.logger import get_logger
from hertz.core.registry import Node, NodeRegistry

logger = get_logger()


class ChangePoller:
    """
    Round-robin change detection over a NodeRegistry.

    Args:
        registry: Registry whose live nodes are polled
        interval: Seconds between ticks
        on_failure: Called with (node, operation, exc) when a query fails
    """

    def __init__(self, registry: NodeRegistry, interval: float = 0.001,
                 on_failure: Optional[Callable[[Node, str, BaseException], None]] = None):
        self.registry = registry
        self.interval = interval
        self.on_failure = on_failure
        self.cursor = 0
        self.running = False
        self._queries: Dict[int, asyncio.Task] = {}

    def tick(self) -> Optional[Node]:
        """
        Advance the poller by one step.

        Returns:
            The node whose query was launched, or None
        """
        count = self.registry.live_count()
        if count == 0:
            self.cursor = 0
            return None

        launched = None
        node = self.registry.live_at(self.cursor)
        if (node is not None and not node.removing and node.instance.is_ready()
                and not self._query_running(node)):
            self._launch_query(node)
            launched = node

        # Registry size may have changed since the last tick
        self.cursor = (self.cursor + 1) % count
        return launched

    def _query_running(self, node: Node) -> bool:
        task = self._queries.get(node.id)
        return task is not None and not task.done()

    def _launch_query(self, node: Node):
        task = asyncio.get_running_loop().create_task(node.instance.query_for_changes())
        self._queries[node.id] = task
        task.add_done_callback(lambda t, n=node: self._query_done(n, t))

    def _query_done(self, node: Node, task: asyncio.Task):
        if self._queries.get(node.id) is task:
            del self._queries[node.id]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        if self.on_failure is not None:
            self.on_failure(node, "query", exc)
        else:
            logger.error(f"Failed to query {node.label}: {exc}", category="poller")

    async def run(self):
        """Poll until stop() is called"""
        self.running = True
        logger.info(f"Change poller started (interval {self.interval * 1000:.1f} ms)", category="poller")
        try:
            while self.running:
                await asyncio.sleep(self.interval)
                if self.running:
                    self.tick()
        finally:
            self.running = False
            await self.drain()
            logger.info("Change poller stopped", category="poller")

    def stop(self):
        self.running = False

    async def drain(self):
        """Wait for queries that are still in flight"""
        pending = [task for task in self._queries.values() if not task.done()]
        if pending:
            await asyncio.wait(pending)
