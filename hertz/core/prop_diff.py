#!/usr/bin/env python3

"""
Prop Diff Engine
================

Computes attribute-level actions between two attribute snapshots of a node:

- APPLY:  the attribute is present and changed (or this is the first apply)
          and the peripheral registered an apply handler for it
- DISOWN: the attribute was present and is now gone, and a disown handler
          exists; the handler puts that hardware facet into a safe state
- NONE:   nothing to do

A value of None counts as absent. Entries are executed strictly one after
another because actuation order matters (e.g. stop before move).
"""

from dataclasses import dataclass, fields, is_dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, NamedTuple, Optional


class PropAction(Enum):
    """Action computed for a single attribute key"""
    APPLY = "apply"
    DISOWN = "disown"
    NONE = "none"


class PropHandler(NamedTuple):
    """Apply/disown pair registered for one attribute key of a peripheral kind"""
    apply: Optional[Callable[[Any, Any], Awaitable[None]]] = None
    disown: Optional[Callable[[Any], Awaitable[None]]] = None


@dataclass(frozen=True)
class PropDiffEntry:
    key: str
    previous: Any
    next: Any
    action: PropAction


def values_equal(a: Any, b: Any) -> bool:
    """
    Structural equality used for change detection.

    Composite values are compared by contents; scalars must also agree on
    type so that True and 1 are treated as different readings.
    """
    if a is b:
        return True
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if set(a.keys()) != set(b.keys()):
            return False
        return all(values_equal(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    if is_dataclass(a) and is_dataclass(b) and not isinstance(a, type) and not isinstance(b, type):
        if type(a) is not type(b):
            return False
        return all(values_equal(getattr(a, f.name), getattr(b, f.name)) for f in fields(a))
    if type(a) is not type(b):
        # int/float mixes are the only cross-type comparison that makes sense
        numeric = (int, float)
        if (isinstance(a, numeric) and isinstance(b, numeric)
                and not isinstance(a, bool) and not isinstance(b, bool)):
            return a == b
        return False
    return a == b


def union_keys(prev: Mapping[str, Any], next_: Mapping[str, Any]) -> List[str]:
    """Keys of next in order, followed by keys only present in prev"""
    keys = list(next_.keys())
    seen = set(keys)
    for key in prev.keys():
        if key not in seen:
            keys.append(key)
            seen.add(key)
    return keys


def diff_props(prev: Mapping[str, Any], next_: Mapping[str, Any],
               handlers: Mapping[str, PropHandler], first_apply: bool = False) -> List[PropDiffEntry]:
    """
    Compute the ordered list of actions turning prev into next.

    Args:
        prev: Previously applied attributes (may be partial)
        next_: Newly declared attributes (may be partial)
        handlers: Attribute key -> PropHandler table of the peripheral kind
        first_apply: True when the peripheral never applied attributes before;
            every defined attribute with an apply handler is then applied

    Returns:
        One PropDiffEntry per key of the union, in deterministic order
    """
    entries = []
    for key in union_keys(prev, next_):
        old_value = prev.get(key)
        new_value = next_.get(key)
        handler = handlers.get(key)
        action = PropAction.NONE

        if new_value is not None:
            changed = first_apply or not values_equal(old_value, new_value)
            if changed and handler is not None and handler.apply is not None:
                action = PropAction.APPLY
        elif old_value is not None and handler is not None and handler.disown is not None:
            action = PropAction.DISOWN

        entries.append(PropDiffEntry(key, old_value, new_value, action))
    return entries


async def run_prop_diff(target: Any, entries: List[PropDiffEntry],
                        handlers: Mapping[str, PropHandler],
                        on_error: Optional[Callable[[PropDiffEntry, Exception], Exception]] = None) -> int:
    """
    Execute diff entries sequentially against target.

    Handlers are plain functions from the class table, called with target as
    their first argument. Processing stops at the first failing handler; when
    on_error is given its return value is raised instead of the original
    exception (chained).

    Returns:
        Number of handlers that ran
    """
    executed = 0
    for entry in entries:
        if entry.action is PropAction.NONE:
            continue
        handler = handlers[entry.key]
        try:
            if entry.action is PropAction.APPLY:
                await handler.apply(target, entry.next)
            else:
                await handler.disown(target)
        except Exception as exc:
            if on_error is None:
                raise
            raise on_error(entry, exc) from exc
        executed += 1
    return executed


def count_actions(entries: List[PropDiffEntry]) -> Dict[PropAction, int]:
    """Number of entries per action"""
    counts = {action: 0 for action in PropAction}
    for entry in entries:
        counts[entry.action] += 1
    return counts
