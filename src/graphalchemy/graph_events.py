# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Event hooks dispatched around persist, remove, relation writes and queries.

The entity manager depends only on the ``Notifier`` protocol. ``EventManager``
is the default implementation: listeners register for event names and are
called synchronously, in registration order.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
import logging
from typing import Any, Callable, ClassVar, Dict, Iterable, List, Optional, Protocol, Union

from .constants import EventNames, QueryDialect
from .graph_client import Node, Relationship

logger = logging.getLogger(__name__)


@dataclass
class Event:
    """Base event; subclasses define ``event_name``."""
    event_name: ClassVar[str] = ""

    def get_event_name(self) -> str:
        return self.event_name


@dataclass
class EntityEvent(Event):
    entity: Any = None

    def get_entity(self) -> Any:
        return self.entity


@dataclass
class PrePersist(EntityEvent):
    event_name: ClassVar[str] = EventNames.PRE_PERSIST


@dataclass
class PostPersist(EntityEvent):
    event_name: ClassVar[str] = EventNames.POST_PERSIST


@dataclass
class PreRemove(EntityEvent):
    event_name: ClassVar[str] = EventNames.PRE_REMOVE


@dataclass
class PostRemove(EntityEvent):
    event_name: ClassVar[str] = EventNames.POST_REMOVE


@dataclass
class RelationEvent(Event):
    """Relation write between two nodes."""
    source: Optional[Node] = None
    target: Optional[Node] = None
    relation: str = ""
    relationship: Optional[Relationship] = None


@dataclass
class PreRelationCreate(RelationEvent):
    event_name: ClassVar[str] = EventNames.PRE_RELATION_CREATE


@dataclass
class PostRelationCreate(RelationEvent):
    event_name: ClassVar[str] = EventNames.POST_RELATION_CREATE


@dataclass
class PreRelationUpdate(RelationEvent):
    event_name: ClassVar[str] = EventNames.PRE_RELATION_UPDATE


@dataclass
class PreRelationRemove(RelationEvent):
    event_name: ClassVar[str] = EventNames.PRE_RELATION_REMOVE


@dataclass
class PostRelationRemove(RelationEvent):
    event_name: ClassVar[str] = EventNames.POST_RELATION_REMOVE


@dataclass
class PreStmtExecute(Event):
    event_name: ClassVar[str] = EventNames.PRE_STMT_EXECUTE
    query: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)
    dialect: QueryDialect = QueryDialect.PATTERN


@dataclass
class PostStmtExecute(PreStmtExecute):
    event_name: ClassVar[str] = EventNames.POST_STMT_EXECUTE
    time: float = 0.0


Listener = Union[Callable[[Event], Any], Any]


class Notifier(Protocol):
    """Receives events from the entity manager."""

    def dispatch_event(self, event_name: str, event: Event) -> None: ...


class NullNotifier:
    """Notifier that ignores every event."""

    def dispatch_event(self, event_name: str, event: Event) -> None:
        return None


class EventManager:
    """
    Synchronous pub/sub for entity manager events.

    A listener is either a callable taking the event, or an object exposing a
    method named after the event (``prePersist``, ``postRemove``...).

    Args:
        raise_errors: Propagate listener exceptions (default). When False they
            are logged and the remaining listeners still run.
    """

    def __init__(self, raise_errors: bool = True):
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self.raise_errors = raise_errors

    def add_event_listener(self, events: Union[str, Iterable[str]], listener: Listener) -> None:
        names = [events] if isinstance(events, str) else list(events)
        for name in names:
            if not any(existing is listener for existing in self._listeners[name]):
                self._listeners[name].append(listener)

    def remove_event_listener(self, events: Union[str, Iterable[str]], listener: Listener) -> None:
        names = [events] if isinstance(events, str) else list(events)
        for name in names:
            self._listeners[name] = [existing for existing in self._listeners[name] if existing is not listener]

    def has_listeners(self, event_name: str) -> bool:
        return bool(self._listeners.get(event_name))

    def get_listeners(self, event_name: str) -> List[Listener]:
        return list(self._listeners.get(event_name, []))

    def dispatch_event(self, event_name: str, event: Event) -> None:
        for listener in self.get_listeners(event_name):
            handler = listener if callable(listener) else getattr(listener, event_name)
            try:
                handler(event)
            except Exception:
                if self.raise_errors:
                    raise
                logger.exception("Listener %r failed on %s", listener, event_name)
