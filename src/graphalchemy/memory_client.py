# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
In-process graph client.

Implements the full GraphClient protocol against dictionaries, including
batches that queue writes and apply them atomically on commit. Used for tests,
prototyping and as an embedded store.
"""

from __future__ import annotations

import copy
import itertools
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from .constants import ErrorMessages, IndexKind, QueryDialect
from .exceptions import GraphClientError
from .graph_client import Batch, Node, NodeIndex, Relationship, RelationshipRef, ResultSet

logger = logging.getLogger(__name__)

QueryHandler = Callable[[QueryDialect, str, Dict[str, Any]], ResultSet]


class InMemoryGraphClient:
    """Dictionary backed implementation of the GraphClient protocol."""

    def __init__(self, query_handler: Optional[QueryHandler] = None):
        self._nodes: Dict[int, Dict[str, Any]] = {}
        self._relationships: Dict[int, Dict[str, Any]] = {}
        self._indexes: Dict[str, Dict[str, Any]] = {}
        self._node_ids = itertools.count(1)
        self._relationship_ids = itertools.count(1)
        self._batch: Optional[Batch] = None
        self._query_handler = query_handler

        # Names of every client call, in order; tests use it to count round trips
        self.calls: List[str] = []
        self.committed_batches = 0
        self.cancelled_batches = 0

    # -- internals -----------------------------------------------------------

    def _write(self, name: str, operation: Callable[[], Any]) -> None:
        self.calls.append(name)
        if self._batch is not None:
            self._batch.add(operation)
        else:
            operation()

    def _snapshot(self) -> Tuple[Any, ...]:
        return copy.deepcopy((self._nodes, self._relationships, self._indexes))

    def _restore(self, snapshot: Tuple[Any, ...]) -> None:
        self._nodes, self._relationships, self._indexes = snapshot

    def _to_node(self, node_id: int) -> Node:
        stored = self._nodes[node_id]
        return Node(id=node_id, properties=dict(stored["properties"]), labels=list(stored["labels"]))

    def _to_ref(self, rel_id: int) -> RelationshipRef:
        stored = self._relationships[rel_id]
        return RelationshipRef(id=rel_id, type=stored["type"], start_id=stored["start"], end_id=stored["end"])

    def _require_node(self, node_id: Optional[int]) -> Dict[str, Any]:
        if node_id is None or node_id not in self._nodes:
            raise GraphClientError(f"Node {node_id} not found", status_code=404)
        return self._nodes[node_id]

    # -- nodes ---------------------------------------------------------------

    def make_node(self) -> Node:
        return Node()

    def get_node(self, node_id: int) -> Optional[Node]:
        self.calls.append("get_node")
        if node_id not in self._nodes:
            return None
        return self._to_node(node_id)

    def save_node(self, node: Node) -> Node:
        properties = dict(node.properties)

        def operation() -> None:
            if node.id is None:
                node.id = next(self._node_ids)
                self._nodes[node.id] = {"properties": properties, "labels": list(node.labels)}
            else:
                self._require_node(node.id)["properties"] = properties

        self._write("save_node", operation)
        return node

    def add_labels(self, node: Node, labels: Sequence[str]) -> None:
        labels = list(labels)

        def operation() -> None:
            stored = self._require_node(node.id)
            for label in labels:
                if label not in stored["labels"]:
                    stored["labels"].append(label)
            node.labels = list(stored["labels"])

        self._write("add_labels", operation)

    def delete_node(self, node_id: int) -> None:
        def operation() -> None:
            self._require_node(node_id)
            attached = [
                rel_id for rel_id, rel in self._relationships.items()
                if node_id in (rel["start"], rel["end"])
            ]
            if attached:
                raise GraphClientError(
                    f"Node {node_id} still has relationships {attached}", status_code=409
                )
            del self._nodes[node_id]
            for index in self._indexes.values():
                index["entries"].pop(node_id, None)

        self._write("delete_node", operation)

    # -- relationships -------------------------------------------------------

    def relate(self, source: Node, target: Node, rel_type: str) -> Relationship:
        if source.id is None or target.id is None:
            raise GraphClientError("Cannot relate unsaved nodes")
        return Relationship(type=rel_type, start_id=source.id, end_id=target.id)

    def get_relationship(self, rel_id: int) -> Optional[Relationship]:
        self.calls.append("get_relationship")
        stored = self._relationships.get(rel_id)
        if stored is None:
            return None
        return Relationship(
            type=stored["type"],
            start_id=stored["start"],
            end_id=stored["end"],
            id=rel_id,
            properties=dict(stored["properties"]),
        )

    def save_relationship(self, relationship: Relationship) -> Relationship:
        properties = dict(relationship.properties)

        def operation() -> None:
            if relationship.id is None:
                self._require_node(relationship.start_id)
                self._require_node(relationship.end_id)
                relationship.id = next(self._relationship_ids)
                self._relationships[relationship.id] = {
                    "type": relationship.type,
                    "start": relationship.start_id,
                    "end": relationship.end_id,
                    "properties": properties,
                }
            else:
                if relationship.id not in self._relationships:
                    raise GraphClientError(f"Relationship {relationship.id} not found", status_code=404)
                self._relationships[relationship.id]["properties"] = properties

        self._write("save_relationship", operation)
        return relationship

    def get_outgoing_relationships(self, node: Node) -> List[RelationshipRef]:
        self.calls.append("get_outgoing_relationships")
        return [
            self._to_ref(rel_id)
            for rel_id, stored in sorted(self._relationships.items())
            if stored["start"] == node.id
        ]

    def get_node_relationships(self, node: Node) -> List[RelationshipRef]:
        self.calls.append("get_node_relationships")
        return [
            self._to_ref(rel_id)
            for rel_id, stored in sorted(self._relationships.items())
            if node.id in (stored["start"], stored["end"])
        ]

    def delete_relationship(self, rel_id: int) -> None:
        def operation() -> None:
            if rel_id not in self._relationships:
                raise GraphClientError(f"Relationship {rel_id} not found", status_code=404)
            del self._relationships[rel_id]

        self._write("delete_relationship", operation)

    # -- indexes -------------------------------------------------------------

    def get_or_create_index(self, name: str, kind: IndexKind = IndexKind.EXACT) -> NodeIndex:
        self.calls.append("get_or_create_index")
        if name not in self._indexes:
            self._indexes[name] = {"kind": IndexKind(kind), "entries": {}}
        return NodeIndex(name=name, kind=self._indexes[name]["kind"])

    def index_add(self, index: NodeIndex, node: Node, field: str, value: Any) -> None:
        def operation() -> None:
            self._require_node(node.id)
            entries = self._indexes.setdefault(index.name, {"kind": index.kind, "entries": {}})["entries"]
            pairs = entries.setdefault(node.id, [])
            if (field, value) not in pairs:
                pairs.append((field, value))

        self._write("index_add", operation)

    def index_remove(self, index: NodeIndex, node: Node) -> None:
        def operation() -> None:
            stored = self._indexes.get(index.name)
            if stored is not None:
                stored["entries"].pop(node.id, None)

        self._write("index_remove", operation)

    def save_index(self, index: NodeIndex) -> None:
        self.calls.append("save_index")
        self._indexes.setdefault(index.name, {"kind": index.kind, "entries": {}})

    def index_query(self, index: NodeIndex, field: str, value: Any) -> List[Node]:
        self.calls.append("index_query")
        stored = self._indexes.get(index.name)
        if stored is None:
            return []
        matches: List[int] = []
        for node_id, pairs in sorted(stored["entries"].items()):
            for stored_field, stored_value in pairs:
                if stored_field != field:
                    continue
                if self._index_matches(stored["kind"], stored_value, value):
                    matches.append(node_id)
                    break
        return [self._to_node(node_id) for node_id in matches if node_id in self._nodes]

    @staticmethod
    def _index_matches(kind: IndexKind, stored_value: Any, value: Any) -> bool:
        if kind is IndexKind.FULLTEXT:
            stored_tokens: Set[str] = set(str(stored_value).lower().split())
            wanted = set(str(value).lower().split())
            return bool(wanted) and wanted <= stored_tokens
        return stored_value == value

    # -- batches -------------------------------------------------------------

    def start_batch(self) -> Batch:
        if self._batch is not None:
            raise GraphClientError(ErrorMessages.BATCH_ALREADY_OPEN)
        self._batch = Batch()
        return self._batch

    def commit_batch(self) -> None:
        if self._batch is None:
            raise GraphClientError(ErrorMessages.NO_OPEN_BATCH)
        batch, self._batch = self._batch, None
        snapshot = self._snapshot()
        try:
            for operation in batch.get_operations():
                operation()
        except GraphClientError:
            # The batch endpoint is transactional: nothing of a failed batch remains
            self._restore(snapshot)
            raise
        self.committed_batches += 1
        logger.debug("Committed batch of %d operations", len(batch))

    def end_batch(self) -> None:
        if self._batch is not None:
            self.cancelled_batches += 1
        self._batch = None

    # -- queries -------------------------------------------------------------

    def execute_query(self, dialect: QueryDialect, text: str, parameters: Dict[str, Any]) -> ResultSet:
        self.calls.append("execute_query")
        if self._query_handler is None:
            raise GraphClientError(f"No {dialect} engine available in memory")
        return self._query_handler(dialect, text, dict(parameters))

    def ping(self) -> bool:
        return True

    # -- inspection helpers --------------------------------------------------

    def node_count(self) -> int:
        return len(self._nodes)

    def relationships_of(self, node_id: int, rel_type: Optional[str] = None) -> List[Relationship]:
        """Outgoing relationships of a node, with properties."""
        return [
            Relationship(
                type=stored["type"],
                start_id=stored["start"],
                end_id=stored["end"],
                id=rel_id,
                properties=dict(stored["properties"]),
            )
            for rel_id, stored in sorted(self._relationships.items())
            if stored["start"] == node_id and (rel_type is None or stored["type"] == rel_type)
        ]

    def incoming_relationships_of(self, node_id: int) -> List[RelationshipRef]:
        return [
            self._to_ref(rel_id)
            for rel_id, stored in sorted(self._relationships.items())
            if stored["end"] == node_id
        ]
