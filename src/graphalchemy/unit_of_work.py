# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Unit-of-work bookkeeping: entity handles, pending writes, identity map.

Entities are tracked by opaque handles handed out by an ``EntityArena`` rather
than by equality or hashing, so any object can be tracked whether or not it
defines ``__eq__``. The identity map is keyed by server node id and outlives
flushes; the pending sets, node cache and arena are reset by every flush.
"""

from __future__ import annotations

import itertools
from typing import Any, Dict, Iterator, List, Optional

from .graph_client import Node


class EntityArena:
    """
    Hands out stable opaque handles for tracked objects.

    The arena keeps a strong reference to every object it has a handle for, so
    ``id()`` values cannot be recycled while a handle is live.
    """

    def __init__(self):
        self._counter = itertools.count(1)
        self._handles: Dict[int, int] = {}
        self._objects: Dict[int, Any] = {}

    def handle_for(self, obj: Any) -> int:
        """Return the handle of ``obj``, assigning one on first use."""
        handle = self._handles.get(id(obj))
        if handle is None:
            handle = next(self._counter)
            self._handles[id(obj)] = handle
            self._objects[handle] = obj
        return handle

    def find(self, obj: Any) -> Optional[int]:
        """Handle of ``obj`` if it is tracked, without assigning one."""
        return self._handles.get(id(obj))

    def resolve(self, handle: int) -> Any:
        return self._objects[handle]

    def __contains__(self, obj: object) -> bool:
        return id(obj) in self._handles

    def __len__(self) -> int:
        return len(self._objects)

    def reset(self) -> None:
        self._handles.clear()
        self._objects.clear()


class PendingWriteTracker:
    """Entities marked for persistence or removal in the current cycle."""

    def __init__(self, arena: EntityArena):
        self._arena = arena
        self._persist: Dict[int, Any] = {}
        self._remove: Dict[int, Any] = {}

    def mark_for_persist(self, entity: Any) -> bool:
        """Track ``entity`` for persistence. Returns True when it was not tracked yet."""
        handle = self._arena.handle_for(entity)
        if handle in self._persist:
            return False
        self._persist[handle] = entity
        return True

    def mark_for_removal(self, entity: Any) -> None:
        self._remove.setdefault(self._arena.handle_for(entity), entity)

    def is_pending(self, entity: Any) -> bool:
        handle = self._arena.find(entity)
        return handle is not None and handle in self._persist

    def is_pending_removal(self, entity: Any) -> bool:
        handle = self._arena.find(entity)
        return handle is not None and handle in self._remove

    def pending(self) -> List[Any]:
        """Snapshot of entities to persist, in insertion order."""
        return list(self._persist.values())

    def pending_removals(self) -> List[Any]:
        return list(self._remove.values())

    def __len__(self) -> int:
        return len(self._persist)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.pending())

    def reset(self) -> None:
        self._persist.clear()

    def reset_removals(self) -> None:
        self._remove.clear()


class IdentityMap:
    """Maps server node ids to the single in-memory entity loaded for them."""

    def __init__(self):
        self._entities: Dict[int, Any] = {}

    def identify(self, node_id: int) -> Optional[Any]:
        return self._entities.get(node_id)

    def remember(self, node_id: int, entity: Any) -> None:
        self._entities[node_id] = entity

    def forget(self, node_id: int) -> None:
        self._entities.pop(node_id, None)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._entities

    def __len__(self) -> int:
        return len(self._entities)

    def clear(self) -> None:
        self._entities.clear()


class NodeCache:
    """Client nodes backing the entities of the current unit of work."""

    def __init__(self, arena: EntityArena):
        self._arena = arena
        self._nodes: Dict[int, Node] = {}

    def bind(self, entity: Any, node: Node) -> None:
        self._nodes[self._arena.handle_for(entity)] = node

    def get(self, entity: Any) -> Optional[Node]:
        handle = self._arena.find(entity)
        if handle is None:
            return None
        return self._nodes.get(handle)

    def __len__(self) -> int:
        return len(self._nodes)

    def clear(self) -> None:
        self._nodes.clear()
