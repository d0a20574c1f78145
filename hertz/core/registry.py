#!/usr/bin/env python3

"""
Node Registry & Tree
====================

Holds the node records of one reconciler (id -> Node) and the flat list of
live nodes that the change poller cycles over. Every operation here is
synchronous and purely structural: it never touches the asynchronous
lifecycle of a node.
"""

import itertools
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Union

from hertz.core.peripheral import BasePeripheral


@dataclass(eq=False)
class Node:
    """A declared element of the hardware topology"""
    id: int
    type: str
    attributes: Dict[str, Any]
    instance: BasePeripheral
    parent: Optional["Node"] = None
    children: List["Node"] = field(default_factory=list)
    container: Optional["RootContainer"] = None
    init_scheduled: bool = False
    removing: bool = False

    def __repr__(self):
        return f"Node(id={self.id}, type={self.type!r}, children={len(self.children)})"

    @property
    def label(self) -> str:
        return f"node {self.id} ({self.type})"

    @property
    def attached(self) -> bool:
        return self.parent is not None or self.container is not None


class RootContainer:
    """Top of a declared tree; holds the root nodes in order"""

    def __init__(self):
        self.children: List[Node] = []

    def __repr__(self):
        return f"RootContainer(children={len(self.children)})"


Parent = Union[Node, RootContainer]


class NodeRegistry:
    """
    Registry of nodes owned by a single reconciler.

    Ids come from a per-registry counter and are never reused.
    """

    def __init__(self):
        self._ids = itertools.count()
        self._nodes: Dict[int, Node] = {}
        self._live: List[Node] = []

    def __len__(self):
        return len(self._nodes)

    def __contains__(self, node_id: int) -> bool:
        return node_id in self._nodes

    def allocate_id(self) -> int:
        return next(self._ids)

    def add(self, node: Node):
        """Register a freshly instantiated node and make it visible to the poller"""
        if node.id in self._nodes:
            raise ValueError(f"Node id {node.id} already registered")
        self._nodes[node.id] = node
        self._live.append(node)

    def get(self, node_id: int) -> Optional[Node]:
        return self._nodes.get(node_id)

    def nodes(self) -> List[Node]:
        return list(self._nodes.values())

    def roots(self) -> List[Node]:
        """Registered nodes without a parent (attached to a container or not attached at all)"""
        return [node for node in self._nodes.values() if node.parent is None]

    def discard(self, node: Node):
        """Forget a node once its disposal has completed"""
        self._nodes.pop(node.id, None)
        if node in self._live:
            self._live.remove(node)

    # ========== LIVE LIST (poller) ==========

    def live_count(self) -> int:
        return len(self._live)

    def live_at(self, index: int) -> Optional[Node]:
        if 0 <= index < len(self._live):
            return self._live[index]
        return None

    # ========== STRUCTURE ==========

    def append(self, parent: Parent, child: Node):
        """Attach child as the last child of parent (moving it if already attached)"""
        self.detach(child)
        parent.children.append(child)
        self._link(parent, child)

    def insert_before(self, parent: Parent, child: Node, before: Node):
        """Attach child right before an existing child of parent"""
        if child is before:
            raise ValueError("Cannot insert a node before itself")
        self.detach(child)
        try:
            index = parent.children.index(before)
        except ValueError:
            raise ValueError(f"{before.label} is not a child of {parent!r}") from None
        parent.children.insert(index, child)
        self._link(parent, child)

    def detach(self, child: Node):
        """Remove child from its current parent or container, if any"""
        holder: Optional[Parent] = child.parent or child.container
        if holder is not None and child in holder.children:
            holder.children.remove(child)
        child.parent = None
        child.container = None

    def clear(self, parent: Parent) -> List[Node]:
        """Detach every child of parent; returns the detached subtree roots"""
        detached = list(parent.children)
        for child in detached:
            self.detach(child)
        return detached

    @staticmethod
    def _link(parent: Parent, child: Node):
        if isinstance(parent, RootContainer):
            child.parent = None
            child.container = parent
        else:
            child.parent = parent
            child.container = None

    def walk(self, node: Node) -> Iterator[Node]:
        """Pre-order traversal of the subtree rooted at node"""
        yield node
        for child in list(node.children):
            yield from self.walk(child)
