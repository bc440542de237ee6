# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Relation values stored on entities.

Entities reference their targets either directly or through a Relation wrapper
carrying extra edge properties. During traversal every member is unwrapped into
an edge variant: BareEdge for a plain target, TypedEdge for a wrapper. Both are
frozen so the type name attached to an edge write cannot change afterwards.
"""

from __future__ import annotations

from collections.abc import MutableSequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from pydantic_core import core_schema


@dataclass
class Relation:
    """
    Typed edge wrapper around a target entity.

    :param target: Entity at the end of the edge.
    :param properties: Extra properties written on the relationship.
    :param force_create: Always create a new edge instead of updating an
        existing edge of the same type to the same target.
    """
    target: Any
    properties: Dict[str, Any] = field(default_factory=dict)
    force_create: bool = False

    def get_target(self) -> Any:
        return self.target

    def is_force_create(self) -> bool:
        return self.force_create


_EMPTY_PROPERTIES: Mapping[str, Any] = MappingProxyType({})


@dataclass(frozen=True)
class BareEdge:
    """Edge for a bare target reference: only a type name."""
    type: str

    @property
    def properties(self) -> Mapping[str, Any]:
        return _EMPTY_PROPERTIES

    @property
    def force_create(self) -> bool:
        return False


@dataclass(frozen=True)
class TypedEdge:
    """Edge unwrapped from a Relation wrapper."""
    type: str
    properties: Mapping[str, Any] = field(default_factory=lambda: _EMPTY_PROPERTIES)
    force_create: bool = False


Edge = Union[BareEdge, TypedEdge]


def unwrap(entry: Any, relation_name: str) -> Tuple[Any, Edge]:
    """
    Split a relation member into its target entity and edge descriptor.

    The edge type is always the name of the declaring property.
    """
    if isinstance(entry, Relation):
        edge = TypedEdge(
            type=relation_name,
            properties=MappingProxyType(dict(entry.properties)),
            force_create=entry.force_create,
        )
        return entry.target, edge
    return entry, BareEdge(type=relation_name)


class TrackedList(MutableSequence):
    """
    List of relation members that remembers which members were removed.

    Members are compared by identity. Re-inserting a removed member cancels its
    removal. The removal log is reset with ``mark_clean()`` once the removals
    have been written.
    """

    def __init__(self, iterable: Optional[Iterable[Any]] = None):
        self._items: List[Any] = list(iterable) if iterable is not None else []
        self._removed: List[Any] = []

    # -- MutableSequence protocol ------------------------------------------

    def __getitem__(self, index):
        if isinstance(index, slice):
            return TrackedList(self._items[index])
        return self._items[index]

    def __setitem__(self, index, value) -> None:
        if isinstance(index, slice):
            previous = self._items[index]
            self._items[index] = list(value)
            for item in previous:
                self._track_removal(item)
            for item in self._items[index]:
                self._cancel_removal(item)
            return
        previous = self._items[index]
        self._items[index] = value
        self._track_removal(previous)
        self._cancel_removal(value)

    def __delitem__(self, index) -> None:
        if isinstance(index, slice):
            previous = self._items[index]
        else:
            previous = [self._items[index]]
        del self._items[index]
        for item in previous:
            self._track_removal(item)

    def __len__(self) -> int:
        return len(self._items)

    def insert(self, index: int, value: Any) -> None:
        self._items.insert(index, value)
        self._cancel_removal(value)

    # -- identity based helpers --------------------------------------------

    def __iter__(self) -> Iterator[Any]:
        return iter(self._items)

    def __contains__(self, value: object) -> bool:
        return any(item is value for item in self._items)

    def index(self, value: Any, start: int = 0, stop: Optional[int] = None) -> int:
        stop = len(self._items) if stop is None else stop
        for position in range(start, min(stop, len(self._items))):
            if self._items[position] is value:
                return position
        raise ValueError(f"{value!r} is not in list")

    def remove(self, value: Any) -> None:
        del self[self.index(value)]

    def _track_removal(self, item: Any) -> None:
        if item in self:
            return
        if not any(removed is item for removed in self._removed):
            self._removed.append(item)

    def _cancel_removal(self, item: Any) -> None:
        self._removed = [removed for removed in self._removed if removed is not item]

    # -- change tracking -----------------------------------------------------

    def get_removed_elements(self) -> List[Any]:
        return list(self._removed)

    def adopt_removals(self, previous: "TrackedList") -> None:
        """Record members of ``previous`` that are missing from this list as removed."""
        for item in [*previous.get_removed_elements(), *previous]:
            self._track_removal(item)

    def mark_clean(self) -> None:
        self._removed = []

    def __eq__(self, other: object) -> bool:
        if isinstance(other, TrackedList):
            return self._items == other._items
        if isinstance(other, list):
            return self._items == other
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"TrackedList({self._items!r})"

    # -- pydantic integration ------------------------------------------------

    @classmethod
    def _coerce(cls, value: Any) -> "TrackedList":
        if isinstance(value, TrackedList):
            return value
        if value is None:
            return cls()
        if isinstance(value, (list, tuple)):
            return cls(value)
        raise ValueError(f"Expected a list of relation members, got {type(value).__name__}")

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls._coerce,
            serialization=core_schema.plain_serializer_function_ser_schema(list),
        )
