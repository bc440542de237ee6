# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Graph client interface and the wire-level data types it exchanges.

The entity manager only talks to the server through the ``GraphClient``
protocol. Writes issued while a batch is open are queued and applied on
``commit_batch``; node ids of nodes created in a batch are known only after the
commit. Reads are always executed immediately.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Protocol, Sequence, runtime_checkable

from .constants import IndexKind, QueryDialect


@dataclass(eq=False)
class Node:
    """Client-side view of a server node."""
    id: Optional[int] = None
    properties: Dict[str, Any] = field(default_factory=dict)
    labels: List[str] = field(default_factory=list)

    def set_property(self, key: str, value: Any) -> "Node":
        self.properties[key] = value
        return self

    def get_property(self, key: str, default: Any = None) -> Any:
        return self.properties.get(key, default)

    def get_id(self) -> Optional[int]:
        return self.id


@dataclass(eq=False)
class Relationship:
    """Client-side view of a server relationship."""
    type: str
    start_id: int
    end_id: int
    id: Optional[int] = None
    properties: Dict[str, Any] = field(default_factory=dict)

    def set_property(self, key: str, value: Any) -> "Relationship":
        self.properties[key] = value
        return self

    def get_property(self, key: str, default: Any = None) -> Any:
        return self.properties.get(key, default)


@dataclass(frozen=True)
class RelationshipRef:
    """Lightweight relationship listing entry: no properties."""
    id: int
    type: str
    start_id: int
    end_id: int


@dataclass(frozen=True)
class NodeIndex:
    """Handle on a named node index."""
    name: str
    kind: IndexKind = IndexKind.EXACT


@dataclass
class ResultSet:
    """Rows returned by a query, each row a list of cells."""
    columns: List[str] = field(default_factory=list)
    rows: List[List[Any]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)

    def __getitem__(self, index: int) -> List[Any]:
        return self.rows[index]

    def __iter__(self) -> Iterator[List[Any]]:
        return iter(self.rows)

    def as_dicts(self) -> List[Dict[str, Any]]:
        return [dict(zip(self.columns, row)) for row in self.rows]


class Batch:
    """Queue of write operations awaiting a commit."""

    def __init__(self):
        self._operations: List[Any] = []

    def add(self, operation: Any) -> None:
        self._operations.append(operation)

    def get_operations(self) -> List[Any]:
        return list(self._operations)

    def __len__(self) -> int:
        return len(self._operations)


@runtime_checkable
class GraphClient(Protocol):
    """Operations the entity manager needs from a graph server."""

    # Nodes
    def make_node(self) -> Node: ...
    def get_node(self, node_id: int) -> Optional[Node]: ...
    def save_node(self, node: Node) -> Node: ...
    def add_labels(self, node: Node, labels: Sequence[str]) -> None: ...
    def delete_node(self, node_id: int) -> None: ...

    # Relationships
    def relate(self, source: Node, target: Node, rel_type: str) -> Relationship: ...
    def get_relationship(self, rel_id: int) -> Optional[Relationship]: ...
    def save_relationship(self, relationship: Relationship) -> Relationship: ...
    def get_outgoing_relationships(self, node: Node) -> List[RelationshipRef]: ...
    def get_node_relationships(self, node: Node) -> List[RelationshipRef]: ...
    def delete_relationship(self, rel_id: int) -> None: ...

    # Indexes
    def get_or_create_index(self, name: str, kind: IndexKind = IndexKind.EXACT) -> NodeIndex: ...
    def index_add(self, index: NodeIndex, node: Node, field: str, value: Any) -> None: ...
    def index_remove(self, index: NodeIndex, node: Node) -> None: ...
    def save_index(self, index: NodeIndex) -> None: ...
    def index_query(self, index: NodeIndex, field: str, value: Any) -> List[Node]: ...

    # Batches
    def start_batch(self) -> Batch: ...
    def commit_batch(self) -> None: ...
    def end_batch(self) -> None: ...

    # Queries
    def execute_query(self, dialect: QueryDialect, text: str, parameters: Dict[str, Any]) -> ResultSet: ...

    def ping(self) -> bool: ...
