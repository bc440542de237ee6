# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Entity manager: unit of work, flush pipeline, loading and query execution.

A flush runs the phases of ``FlushPhase`` in order. Every phase after
discovery is wrapped in a single client batch that is committed when it holds
operations and cancelled otherwise. A failing phase aborts the flush; phases
already committed stay committed.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
import logging
import time
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Type, Union

import ahocorasick

from .configuration import Configuration
from .constants import (
    ErrorMessages,
    FlushPhase,
    IndexKind,
    NodePropertyConstants,
    QueryConstants,
    QueryDialect,
)
from .entity_factory import EntityFactory
from .exceptions import GraphClientError, MappingError, QueryError
from .graph_client import Batch, GraphClient, Node, NodeIndex, Relationship, RelationshipRef, ResultSet
from .graph_events import (
    Event,
    EventManager,
    Notifier,
    PostPersist,
    PostRelationCreate,
    PostRelationRemove,
    PostRemove,
    PostStmtExecute,
    PrePersist,
    PreRelationCreate,
    PreRelationRemove,
    PreRelationUpdate,
    PreRemove,
    PreStmtExecute,
)
from .graph_metadata import EntityMetadata
from .graph_relation import Edge, TrackedList
from .graph_repository import Repository
from .relation_traversal import OutgoingEdgeCache, RelationTraversal
from .unit_of_work import EntityArena, IdentityMap, NodeCache, PendingWriteTracker

logger = logging.getLogger(__name__)

DateGenerator = Callable[[], str]


def default_date_generator() -> str:
    return datetime.now().strftime(NodePropertyConstants.DATE_FORMAT)


class EntityManager:
    """
    Keeps entities synchronized with nodes and relationships of a graph server.

    Args:
        configuration: ``None``, a dict of ``Configuration`` fields or a ``Configuration``
        event_manager: Notifier receiving lifecycle and statement events

    Raises:
        ConfigurationError: If ``configuration`` is of any other type or does not validate
    """

    # Class-level Aho-Corasick automaton for error markers in traversal results
    _ERROR_AUTOMATON = None

    @classmethod
    def _get_error_automaton(cls):
        if cls._ERROR_AUTOMATON is None:
            automaton = ahocorasick.Automaton()
            for marker in QueryConstants.TRAVERSAL_ERROR_MARKERS:
                automaton.add_word(marker, marker)
            automaton.make_automaton()
            cls._ERROR_AUTOMATON = automaton
        return cls._ERROR_AUTOMATON

    def __init__(
        self,
        configuration: Union[None, Dict[str, Any], Configuration] = None,
        event_manager: Optional[Notifier] = None,
    ):
        self._configuration = Configuration.coerce(configuration)
        if self._configuration.debug:
            logging.getLogger("graphalchemy").setLevel(logging.DEBUG)

        self._client: Optional[GraphClient] = None
        self._metadata = self._configuration.get_metadata_repository()
        self._factory = EntityFactory(self._metadata)
        self._traversal = RelationTraversal(self._metadata)

        self._arena = EntityArena()
        self._pending = PendingWriteTracker(self._arena)
        self._nodes = NodeCache(self._arena)
        self._identity_map = IdentityMap()

        self._indexes: Dict[str, NodeIndex] = {}
        self._repositories: Dict[Type[Any], Repository] = {}
        self._event_manager: Notifier = event_manager if event_manager is not None else EventManager()
        self._date_generator: DateGenerator = default_date_generator
        self._batch_open = False
        self._phase = FlushPhase.DONE

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def persist(self, entity: Any) -> "EntityManager":
        """Schedule ``entity`` and everything reachable from it for the next flush."""
        self._metadata.for_entity(entity)
        self._pending.mark_for_persist(entity)
        return self

    def remove(self, entity: Any) -> "EntityManager":
        """Schedule ``entity`` for deletion, with all of its relationships, on the next flush."""
        self._metadata.for_entity(entity)
        self._pending.mark_for_removal(entity)
        return self

    def is_scheduled(self, entity: Any) -> bool:
        return self._pending.is_pending(entity) or self._pending.is_pending_removal(entity)

    def get_flush_phase(self) -> FlushPhase:
        return self._phase

    def flush(self) -> None:
        """
        Write every pending change to the server.

        Raises:
            GraphClientError: If a client operation fails; later phases are skipped
            MappingError: If a pending entity is not mapped or its node has disappeared
        """
        try:
            if not self._pending.pending() and not self._pending.pending_removals():
                return

            self._enter(FlushPhase.DISCOVER)
            self._discover()

            self._enter(FlushPhase.WRITE_ENTITIES)
            created = self._write_entities()

            self._enter(FlushPhase.WRITE_RELATIONS)
            self._write_relations()

            self._enter(FlushPhase.WRITE_INDEXES)
            self._write_indexes(created)

            self._enter(FlushPhase.REMOVE_ENTITIES)
            self._remove_entities()

            self._enter(FlushPhase.DONE)
        finally:
            self._phase = FlushPhase.DONE
            self._pending.reset()
            self._pending.reset_removals()
            self._nodes.clear()
            self._arena.reset()

    def _enter(self, phase: FlushPhase) -> None:
        self._phase = phase
        logger.debug("Flush phase %s (%d pending, %d removals)",
                     phase.value, len(self._pending), len(self._pending.pending_removals()))

    @contextmanager
    def _batch(self) -> Iterator[Batch]:
        if self._batch_open:
            raise RuntimeError(ErrorMessages.BATCH_ALREADY_OPEN)
        client = self.get_client()
        batch = client.start_batch()
        self._batch_open = True
        try:
            yield batch
            if len(batch):
                client.commit_batch()
            else:
                client.end_batch()
                logger.debug("Cancelled empty batch")
        except Exception:
            client.end_batch()
            raise
        finally:
            self._batch_open = False

    # @@ STEP 1: Discovery
    def _discover(self) -> None:
        passes = 0
        while True:
            passes += 1
            added = 0
            for entity in self._pending.pending():
                for target in self._traversal.targets(entity):
                    if self._pending.mark_for_persist(target):
                        added += 1
            if not added:
                break
        logger.debug("Discovered %d entities in %d passes", len(self._pending), passes)

    # @@ STEP 2: Entities
    def _write_entities(self) -> Set[int]:
        client = self.get_client()
        created: List[Any] = []

        with self._batch():
            for entity in self._pending.pending():
                meta = self._metadata.for_entity(entity)
                self._dispatch(PrePersist(entity=entity))

                node_id = meta.get_primary_key().get_value(entity)
                if node_id is None:
                    node = client.make_node()
                    node.set_property(NodePropertyConstants.CLASS, meta.get_name())
                    node.set_property(NodePropertyConstants.CREATION_DATE, self._now())
                    created.append(entity)
                else:
                    node = client.get_node(node_id)
                    if node is None:
                        raise MappingError(
                            ErrorMessages.NODE_NOT_FOUND.format(node_id=node_id, model_name=meta.get_name())
                        )

                for prop in meta.get_properties():
                    value = prop.get_graph_value(entity)
                    if value is None:
                        node.properties.pop(prop.name, None)
                    else:
                        node.set_property(prop.name, value)
                node.set_property(NodePropertyConstants.UPDATE_DATE, self._now())

                client.save_node(node)
                self._nodes.bind(entity, node)
                self._dispatch(PostPersist(entity=entity))

        # || S.1: Node ids of new nodes are known only once the batch is committed
        for entity in created:
            node = self._nodes.get(entity)
            self._metadata.for_entity(entity).get_primary_key().set_value(entity, node.id)
            self._identity_map.remember(node.id, entity)

        # || S.2: Labels go on only after every new entity holds its key
        for entity in created:
            labels = self._metadata.for_entity(entity).get_labels()
            if labels:
                client.add_labels(self._nodes.get(entity), labels)

        for entity in self._pending.pending():
            node_id = self._nodes.get(entity).id
            if node_id not in self._identity_map:
                self._identity_map.remember(node_id, entity)

        return {self._arena.handle_for(entity) for entity in created}

    # @@ STEP 3: Relations
    def _write_relations(self) -> None:
        cache = OutgoingEdgeCache(self.get_client())

        with self._batch():
            for entity in self._pending.pending():
                source = self._require_node(entity)
                self._traversal.traverse(
                    entity,
                    on_add=lambda target, edge: self.add_relation(cache, source, target, edge),
                    on_remove=lambda target, edge: self.remove_relation(cache, source, target, edge),
                    reconcile=lambda target, edge: self.reconcile_relation(cache, source, target, edge),
                )

        for entity in self._pending.pending():
            for relation in self._metadata.for_entity(entity).get_many_to_many_relations():
                members = relation.get_value(entity)
                if isinstance(members, TrackedList):
                    members.mark_clean()

    def add_relation(self, cache: OutgoingEdgeCache, source: Node, target: Any, edge: Edge) -> None:
        """Create the edge ``source -[edge.type]-> target``, or update the existing one."""
        client = self.get_client()
        target_node = self._require_node(target)

        if not edge.force_create:
            if cache.was_created(source.id, edge.type, target_node.id):
                return
            for ref in cache.edges_from(source, edge.type):
                if ref.end_id != target_node.id:
                    continue
                relationship = client.get_relationship(ref.id)
                if relationship is None:
                    break
                relationship.set_property(NodePropertyConstants.UPDATE_DATE, self._now())
                for key, value in edge.properties.items():
                    relationship.set_property(key, value)
                self._dispatch(PreRelationUpdate(source=source, target=target_node,
                                                 relation=edge.type, relationship=relationship))
                client.save_relationship(relationship)
                return

        relationship = client.relate(source, target_node, edge.type)
        now = self._now()
        relationship.set_property(NodePropertyConstants.CREATION_DATE, now)
        relationship.set_property(NodePropertyConstants.UPDATE_DATE, now)
        for key, value in edge.properties.items():
            relationship.set_property(key, value)

        self._dispatch(PreRelationCreate(source=source, target=target_node,
                                         relation=edge.type, relationship=relationship))
        client.save_relationship(relationship)
        cache.record_created(source.id, edge.type, target_node.id)
        self._dispatch(PostRelationCreate(source=source, target=target_node,
                                          relation=edge.type, relationship=relationship))

    def remove_relation(self, cache: OutgoingEdgeCache, source: Node, target: Any, edge: Edge) -> None:
        """Delete the first stored ``source -[edge.type]-> target`` edge, if any."""
        target_node = self._nodes.get(target) or self._fetch_node(target)
        if target_node is None:
            return
        for ref in cache.edges_from(source, edge.type):
            if ref.end_id == target_node.id:
                self._delete_edge(cache, source, target_node, ref)
                return

    def reconcile_relation(self, cache: OutgoingEdgeCache, source: Node, target: Any, edge: Edge) -> None:
        """Delete stored edges of ``edge.type`` from ``source`` that point elsewhere than ``target``."""
        target_node = self._require_node(target)
        for ref in cache.edges_from(source, edge.type):
            if ref.end_id != target_node.id:
                self._delete_edge(cache, source, Node(id=ref.end_id), ref)

    def _delete_edge(self, cache: OutgoingEdgeCache, source: Node, target: Node, ref: RelationshipRef) -> None:
        relationship = Relationship(type=ref.type, start_id=ref.start_id, end_id=ref.end_id, id=ref.id)
        self._dispatch(PreRelationRemove(source=source, target=target,
                                         relation=ref.type, relationship=relationship))
        self.get_client().delete_relationship(ref.id)
        cache.forget(ref)
        self._dispatch(PostRelationRemove(source=source, target=target,
                                          relation=ref.type, relationship=relationship))

    # @@ STEP 4: Indexes
    def _write_indexes(self, created: Set[int]) -> None:
        client = self.get_client()
        used: Dict[str, NodeIndex] = {}

        with self._batch():
            for entity in self._pending.pending():
                meta = self._metadata.for_entity(entity)
                node = self._require_node(entity)
                definitions = [
                    (prop, definition)
                    for prop in meta.get_indexed_properties()
                    for definition in prop.get_indexes()
                ]

                # || S.1: Drop stale documents of existing nodes before writing current values
                if self._arena.find(entity) not in created:
                    stale = {definition.name: definition.kind for _, definition in definitions}
                    for name, kind in stale.items():
                        client.index_remove(self.create_index(name, kind), node)

                for prop, definition in definitions:
                    value = prop.get_graph_value(entity)
                    if value is None:
                        continue
                    index = self.create_index(definition.name, definition.kind)
                    client.index_add(index, node, definition.field, value)
                    used[index.name] = index

                index = self.create_index(meta.get_index_name())
                client.index_add(index, node, NodePropertyConstants.DEFAULT_INDEX_FIELD, node.id)
                used[index.name] = index

        for index in used.values():
            client.save_index(index)

    # @@ STEP 5: Removals
    def _remove_entities(self) -> None:
        client = self.get_client()
        deleted: Set[int] = set()

        with self._batch():
            for entity in self._pending.pending_removals():
                meta = self._metadata.for_entity(entity)
                self._dispatch(PreRemove(entity=entity))

                node = self._nodes.get(entity) or self._fetch_node(entity)
                if node is None:
                    logger.debug("Dropping removal of unpersisted %s", meta.get_name())
                else:
                    client.index_remove(self.create_index(meta.get_index_name()), node)
                    for ref in client.get_node_relationships(node):
                        if ref.id not in deleted:
                            client.delete_relationship(ref.id)
                            deleted.add(ref.id)
                    client.delete_node(node.id)
                    self._identity_map.forget(node.id)

                self._dispatch(PostRemove(entity=entity))

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def find(self, cls: Type[Any], node_id: int) -> Optional[Any]:
        """Entity of type ``cls`` stored under ``node_id``, or None."""
        return self.get_repository(cls).find(node_id)

    def find_any(self, node_id: int) -> Optional[Any]:
        """Entity stored under ``node_id`` whatever its type, or None."""
        node = self.get_client().get_node(node_id)
        if node is None:
            return None
        return self.load(node)

    def load(self, node: Node, expected: Optional[Type[Any]] = None) -> Any:
        """
        Entity backed by ``node``.

        Repeated loads of the same node id return the same instance until
        ``clear()`` is called.
        """
        entity = self._identity_map.identify(node.id)
        if entity is not None:
            return entity
        entity = self._factory.from_node(node, expected)
        self._identity_map.remember(node.id, entity)
        return entity

    def reload(self, entity: Any) -> Any:
        """
        Refresh the scalar properties of ``entity`` from its node.

        Raises:
            MappingError: If the entity was never persisted or its node no longer exists
        """
        meta = self._metadata.for_entity(entity)
        node_id = meta.get_primary_key().get_value(entity)
        node = self.get_client().get_node(node_id) if node_id is not None else None
        if node is None:
            raise MappingError(ErrorMessages.NODE_NOT_FOUND.format(node_id=node_id, model_name=meta.get_name()))

        fresh = meta.hydrate(node.id, node.properties)
        for prop in meta.get_properties():
            prop.set_value(entity, prop.get_value(fresh))
        if node.id not in self._identity_map:
            self._identity_map.remember(node.id, entity)
        return entity

    def clear(self) -> None:
        """Forget every loaded entity."""
        self._identity_map.clear()

    # ------------------------------------------------------------------
    # Indexes and repositories
    # ------------------------------------------------------------------

    def create_index(self, name: str, kind: IndexKind = IndexKind.EXACT) -> NodeIndex:
        name = name.replace("\\", ".")
        index = self._indexes.get(name)
        if index is None:
            index = self.get_client().get_or_create_index(name, IndexKind(kind))
            self._indexes[name] = index
        return index

    def get_repository(self, cls: Type[Any]) -> Repository:
        """
        Repository of an entity class.

        Raises:
            MappingError: If the class is not mapped or its repository class does not extend Repository
        """
        repository = self._repositories.get(cls)
        if repository is not None:
            return repository

        meta = self._metadata.describe(cls)
        repository_class = meta.get_repository_class()
        if not (isinstance(repository_class, type) and issubclass(repository_class, Repository)):
            raise MappingError(ErrorMessages.INVALID_REPOSITORY.format(repository=repository_class))
        repository = repository_class(self, meta)
        self._repositories[cls] = repository
        return repository

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def run_traversal_query(self, text: str, parameters: Optional[Dict[str, Any]] = None) -> ResultSet:
        """
        Run a traversal (Gremlin) script.

        Raises:
            QueryError: On protocol failure, or when the single result cell carries an error marker
        """
        return self._execute(QueryDialect.TRAVERSAL, text, parameters)

    def run_pattern_query(self, text: str, parameters: Optional[Dict[str, Any]] = None) -> ResultSet:
        """
        Run a pattern (Cypher) query.

        Raises:
            QueryError: On protocol failure
        """
        return self._execute(QueryDialect.PATTERN, text, parameters)

    def _execute(self, dialect: QueryDialect, text: str, parameters: Optional[Dict[str, Any]]) -> ResultSet:
        parameters = dict(parameters or {})
        self._dispatch(PreStmtExecute(query=text, parameters=parameters, dialect=dialect))

        start = time.perf_counter()
        try:
            result = self.get_client().execute_query(dialect, text, parameters)
        except GraphClientError as e:
            template = (
                ErrorMessages.QUERY_EXECUTION_FAILED if dialect is QueryDialect.PATTERN
                else ErrorMessages.ERROR_DETECTED
            )
            raise QueryError(template.format(error=e.message), query=text, parameters=parameters) from e
        elapsed = time.perf_counter() - start

        if dialect is QueryDialect.TRAVERSAL:
            self._check_error_marker(result, text, parameters)

        logger.debug("%s query ran in %.6fs", dialect.value, elapsed)
        self._dispatch(PostStmtExecute(query=text, parameters=parameters, dialect=dialect, time=elapsed))
        return result

    def _check_error_marker(self, result: ResultSet, text: str, parameters: Dict[str, Any]) -> None:
        if len(result) != 1 or not result[0]:
            return
        cell = result[0][0]
        if not isinstance(cell, str):
            return
        if next(self._get_error_automaton().iter(cell), None) is not None:
            raise QueryError(ErrorMessages.ERROR_DETECTED.format(error=cell), query=text, parameters=parameters)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_client(self) -> GraphClient:
        if self._client is None:
            self._client = self._configuration.get_client()
        return self._client

    def get_configuration(self) -> Configuration:
        return self._configuration

    def get_metadata(self, entity_or_class: Any) -> EntityMetadata:
        if isinstance(entity_or_class, type):
            return self._metadata.describe(entity_or_class)
        return self._metadata.for_entity(entity_or_class)

    def get_event_manager(self) -> Notifier:
        return self._event_manager

    def set_event_manager(self, event_manager: Notifier) -> None:
        self._event_manager = event_manager

    def set_date_generator(self, generator: DateGenerator) -> None:
        self._date_generator = generator

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _now(self) -> str:
        return self._date_generator()

    def _dispatch(self, event: Event) -> None:
        self._event_manager.dispatch_event(event.get_event_name(), event)

    def _require_node(self, entity: Any) -> Node:
        node = self._nodes.get(entity)
        if node is None:
            raise MappingError(ErrorMessages.NODE_NOT_WRITTEN.format(model_name=type(entity).__name__))
        return node

    def _fetch_node(self, entity: Any) -> Optional[Node]:
        node_id = self._metadata.for_entity(entity).get_primary_key().get_value(entity)
        if node_id is None:
            return None
        return self.get_client().get_node(node_id)
