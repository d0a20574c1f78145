#!/usr/bin/env python3

"""
Element Renderer
================

Declaration source for the orchestrator. A program describes the topology
it wants as a tree of Elements; every render() diffs the new tree against
the previous one and emits, in dependency order:

    instantiate -> attach -> schedule_init      (new subtrees)
    schedule_update                             (changed attributes)
    attach(before=...)                          (reordered siblings)
    schedule_remove                             (vanished subtrees)

Children are matched by (type, key) where an explicit key is given, and by
(type, position) otherwise.

Usage:
    renderer.render([
        element("dpinout", pin=0, value=True),
        element("dpinin", pin=1, on_value_change=print),
    ])
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from hertz.core.logger import get_logger
from hertz.core.orchestrator import LifecycleOrchestrator
from hertz.core.prop_diff import values_equal
from hertz.core.registry import Node, Parent, RootContainer

logger = get_logger()


@dataclass(frozen=True)
class Element:
    """Declaration of one node and its children"""
    type: str
    props: Dict[str, Any] = field(default_factory=dict)
    children: Tuple["Element", ...] = ()
    key: Optional[Any] = None
    ref: Optional[Callable[[Any], None]] = field(default=None, compare=False)


def element(type_: str, *children: "Element", key: Any = None,
            ref: Optional[Callable[[Any], None]] = None, **props) -> Element:
    """Shorthand constructor: element("motor", port=0, enabled=True)"""
    return Element(type=type_, props=props, children=tuple(_flatten(children)), key=key, ref=ref)


def _flatten(items: Iterable) -> List[Element]:
    flat = []
    for item in items:
        if item is None or item is False:
            continue
        if isinstance(item, (list, tuple)):
            flat.extend(_flatten(item))
        else:
            flat.append(item)
    return flat


@dataclass(eq=False)
class _Mounted:
    element: Element
    node: Node
    children: List["_Mounted"] = field(default_factory=list)


Renderable = Union[None, Element, Sequence[Element]]


class Renderer:
    """Keeps the last rendered tree and turns new renders into tree-diff operations"""

    def __init__(self, orchestrator: LifecycleOrchestrator, container: Optional[RootContainer] = None):
        self.orchestrator = orchestrator
        self.container = container or RootContainer()
        self._mounted: List[_Mounted] = []
        self.render_count = 0

    def render(self, tree: Renderable):
        """Reconcile the declared topology with the previously rendered one"""
        elements = _flatten([tree])
        self.render_count += 1
        logger.debug(f"Render #{self.render_count}: {len(elements)} root element(s)", category="renderer")
        self._mounted = self._reconcile_children(self.container, self._mounted, elements)

    def unmount(self):
        """Remove everything that was rendered"""
        self.render(None)

    # ========== DIFFING ==========

    @staticmethod
    def _match_key(el: Element, index: int) -> Tuple[str, Any, Any]:
        if el.key is not None:
            return (el.type, "key", el.key)
        return (el.type, "index", index)

    def _reconcile_children(self, parent: Parent, old: List[_Mounted],
                            new: List[Element]) -> List[_Mounted]:
        old_by_key = {}
        for index, mounted in enumerate(old):
            old_by_key[self._match_key(mounted.element, index)] = mounted

        result: List[_Mounted] = []
        created: List[_Mounted] = []
        for index, el in enumerate(new):
            mounted = old_by_key.pop(self._match_key(el, index), None)
            if mounted is None:
                mounted = self._create(el)
                created.append(mounted)
            else:
                self._update(mounted, el)
            result.append(mounted)

        # Vanished subtrees
        for mounted in old_by_key.values():
            self._remove(mounted)

        self._place(parent, [m.node for m in result])

        # New subtrees are fully attached before any init is scheduled
        for mounted in created:
            self._schedule_init(mounted)

        return result

    def _create(self, el: Element) -> _Mounted:
        node = self.orchestrator.instantiate(el.type, el.props)
        mounted = _Mounted(element=el, node=node)
        for child in el.children:
            child_mounted = self._create(child)
            self.orchestrator.attach(node, child_mounted.node)
            mounted.children.append(child_mounted)
        return mounted

    def _update(self, mounted: _Mounted, el: Element):
        old_props = mounted.element.props
        if not values_equal(old_props, el.props):
            self.orchestrator.schedule_update(mounted.node, old_props, el.props)
        if mounted.element.ref is not el.ref:
            if mounted.element.ref is not None:
                mounted.element.ref(None)
            if el.ref is not None:
                self.orchestrator.when_ready(mounted.node, el.ref)
        mounted.children = self._reconcile_children(mounted.node, mounted.children, list(el.children))
        mounted.element = el

    def _remove(self, mounted: _Mounted):
        self._release_refs(mounted)
        self.orchestrator.schedule_remove(mounted.node)

    def _release_refs(self, mounted: _Mounted):
        for child in mounted.children:
            self._release_refs(child)
        if mounted.element.ref is not None:
            mounted.element.ref(None)

    def _place(self, parent: Parent, desired: List[Node]):
        """Reorder parent's children to match desired, inserting from the end"""
        following: Optional[Node] = None
        for node in reversed(desired):
            siblings = parent.children
            in_place = False
            if node in siblings:
                index = siblings.index(node)
                next_sibling = siblings[index + 1] if index + 1 < len(siblings) else None
                in_place = next_sibling is following
            if not in_place:
                self.orchestrator.attach(parent, node, following)
            following = node

    def _schedule_init(self, mounted: _Mounted):
        self.orchestrator.schedule_init(mounted.node)
        if mounted.element.ref is not None:
            self.orchestrator.when_ready(mounted.node, mounted.element.ref)
        for child in mounted.children:
            self._schedule_init(child)
