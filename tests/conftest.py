# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and shared fixtures for GraphAlchemy tests.
"""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any, List, Optional

import pytest

from graphalchemy import (
    EntityManager,
    EventManager,
    GraphBaseModel,
    InMemoryGraphClient,
    TrackedList,
    clear_registry,
    graph_entity,
    graph_field,
    many,
    one,
)

FIXED_DATE = "2025-01-01 00:00:00"


class Clock:
    """Date generator whose current value tests can move forward."""

    def __init__(self, value: str = FIXED_DATE):
        self.value = value

    def __call__(self) -> str:
        return self.value


class EventRecorder:
    """Callable listener keeping every event it receives."""

    def __init__(self):
        self.events: List[Any] = []

    def __call__(self, event: Any) -> None:
        self.events.append(event)

    def names(self) -> List[str]:
        return [event.get_event_name() for event in self.events]


@pytest.fixture(autouse=True)
def global_registry_cleanup():
    """Start and finish every test with an empty entity registry."""
    clear_registry()
    yield
    clear_registry()


@pytest.fixture
def models() -> SimpleNamespace:
    """Entity classes shared by the flush and loading tests."""

    @graph_entity(name="Acme\\Company")
    class Company(GraphBaseModel):
        id: Optional[int] = graph_field(primary_key=True)
        name: str = graph_field(index="company_name")

    @graph_entity(labels=["Human", "Employee"])
    class Person(GraphBaseModel):
        id: Optional[int] = graph_field(primary_key=True)
        name: str = graph_field(index=True)
        bio: Optional[str] = graph_field(None, index="person_bio", fulltext=True)
        age: Optional[int] = None
        friends: TrackedList = many()
        partner: Any = one()
        employer: Any = one(traversed=False)

    return SimpleNamespace(Company=Company, Person=Person)


@pytest.fixture
def client() -> InMemoryGraphClient:
    return InMemoryGraphClient()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def manager(client: InMemoryGraphClient, clock: Clock) -> EntityManager:
    """Entity manager bound to the in-memory client with a controllable clock."""
    em = EntityManager({"client": client})
    em.set_date_generator(clock)
    return em


@pytest.fixture
def recorder(manager: EntityManager) -> EventRecorder:
    """Listener registered for every event the manager dispatches."""
    from graphalchemy.constants import EventNames

    listener = EventRecorder()
    names = [value for key, value in vars(EventNames).items() if key.isupper()]
    events = manager.get_event_manager()
    assert isinstance(events, EventManager)
    events.add_event_listener(names, listener)
    return listener
