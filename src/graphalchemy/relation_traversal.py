# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Relation traversal and outgoing edge lookups used by the flush pipeline.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, Set, Tuple

from .graph_client import GraphClient, Node, RelationshipRef
from .graph_metadata import MetadataRepository
from .graph_relation import Edge, TrackedList, unwrap

logger = logging.getLogger(__name__)

RelationCallback = Callable[[Any, Edge], None]


class RelationTraversal:
    """
    Walks the traversed relations of an entity.

    ``on_add`` receives every current (target, edge) pair. When ``on_remove`` is
    supplied, members removed from tracked collections are reported to it, and
    ``reconcile`` runs for single-valued relations before their target is added.
    """

    def __init__(self, metadata: MetadataRepository):
        self._metadata = metadata

    def traverse(
        self,
        entity: Any,
        on_add: RelationCallback,
        on_remove: Optional[RelationCallback] = None,
        reconcile: Optional[RelationCallback] = None,
    ) -> None:
        meta = self._metadata.for_entity(entity)

        # @@ STEP 1: Multi-valued relations
        for relation in meta.get_many_to_many_relations():
            if not relation.is_traversed():
                continue
            members = relation.get_value(entity)
            if members is None:
                continue
            for entry in list(members):
                target, edge = unwrap(entry, relation.name)
                on_add(target, edge)

            if on_remove is not None and isinstance(members, TrackedList):
                for entry in members.get_removed_elements():
                    target, edge = unwrap(entry, relation.name)
                    on_remove(target, edge)

        # @@ STEP 2: Single-valued relations
        for relation in meta.get_many_to_one_relations():
            if not relation.is_traversed():
                continue
            entry = relation.get_value(entity)
            if entry is None:
                continue
            target, edge = unwrap(entry, relation.name)
            # || S.1: Drop the stale edge before writing the new one so both never coexist
            if on_remove is not None and reconcile is not None:
                reconcile(target, edge)
            on_add(target, edge)

    def targets(self, entity: Any) -> List[Any]:
        """Every entity reachable in one step through traversed relations."""
        found: List[Any] = []
        self.traverse(entity, lambda target, edge: found.append(target))
        return found


class OutgoingEdgeCache:
    """
    Outgoing relationships of the node queried last.

    Consecutive lookups against the same source node reuse a single fetch;
    querying another node replaces the cached list. Deletions and creations
    made during the pass are remembered so later lookups stay consistent with
    the writes queued in the open batch.
    """

    def __init__(self, client: GraphClient):
        self._client = client
        self._node_id: Optional[int] = None
        self._edges: List[RelationshipRef] = []
        self._deleted: Set[int] = set()
        self._created: Set[Tuple[int, str, int]] = set()
        self._loaded = False
        self.fetches = 0

    def edges_from(self, node: Node, rel_type: str) -> List[RelationshipRef]:
        if not self._loaded or self._node_id != node.id:
            self._edges = [
                ref for ref in self._client.get_outgoing_relationships(node)
                if ref.id not in self._deleted
            ]
            self._node_id = node.id
            self._loaded = True
            self.fetches += 1
        return [ref for ref in self._edges if ref.type == rel_type]

    def forget(self, ref: RelationshipRef) -> None:
        self._deleted.add(ref.id)
        self._edges = [edge for edge in self._edges if edge.id != ref.id]

    def is_deleted(self, rel_id: int) -> bool:
        return rel_id in self._deleted

    def record_created(self, start_id: int, rel_type: str, end_id: int) -> None:
        self._created.add((start_id, rel_type, end_id))

    def was_created(self, start_id: int, rel_type: str, end_id: int) -> bool:
        return (start_id, rel_type, end_id) in self._created

    def invalidate(self) -> None:
        self._loaded = False
        self._node_id = None
        self._edges = []
