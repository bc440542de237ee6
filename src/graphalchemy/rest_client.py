# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
REST graph client for servers exposing the ``/db/data/`` HTTP API.

Every write is expressed as a job (method, relative path, body). Outside a
batch the job is sent immediately; inside a batch it is queued and the whole
queue is posted to the ``batch`` endpoint on commit, nodes created earlier in
the same batch being referenced through ``{job_id}`` placeholders.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

import httpx

from .constants import DatabaseConstants, ErrorMessages, IndexKind, QueryDialect, RestEndpointConstants
from .exceptions import GraphClientError
from .graph_client import Batch, Node, NodeIndex, Relationship, RelationshipRef, ResultSet

logger = logging.getLogger(__name__)

JobCallback = Callable[[Dict[str, Any]], None]


def _id_from_url(url: str) -> int:
    return int(str(url).rstrip("/").rsplit("/", 1)[1])


class RestGraphClient:
    """
    HTTP client for a graph server.

    Args:
        host: Server host name
        port: Server port
        scheme: ``http`` or ``https``
        username: Optional basic-auth user
        password: Optional basic-auth password
        timeout: Request timeout in seconds
        transport: Optional httpx transport, used by tests
    """

    def __init__(
        self,
        host: str = DatabaseConstants.DEFAULT_HOST,
        port: int = DatabaseConstants.DEFAULT_PORT,
        scheme: str = DatabaseConstants.DEFAULT_SCHEME,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = DatabaseConstants.DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.host = host
        self.port = port
        self.base_url = f"{scheme}://{host}:{port}{DatabaseConstants.DATA_PATH}"
        client_kwargs: Dict[str, Any] = {
            "base_url": self.base_url,
            "headers": {
                "Accept": DatabaseConstants.JSON_CONTENT_TYPE,
                "Content-Type": "application/json",
            },
            "timeout": httpx.Timeout(timeout),
        }
        if username is not None and password is not None:
            client_kwargs["auth"] = (username, password)
        if transport is not None:
            client_kwargs["transport"] = transport
        self._http = httpx.Client(**client_kwargs)

        self._batch: Optional[Batch] = None
        self._callbacks: Dict[int, JobCallback] = {}
        # Job ids of nodes created in the open batch, keyed by id(node)
        self._pending_nodes: Dict[int, int] = {}

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "RestGraphClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # -- transport -----------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        allow_missing: bool = False,
    ) -> Tuple[Optional[httpx.Response], Any]:
        """
        Send one request and decode its JSON body.

        Returns ``(None, None)`` for a 404 when ``allow_missing`` is set.

        Raises:
            GraphClientError: On transport failures and HTTP error statuses
        """
        url = path.lstrip("/")
        try:
            response = self._http.request(method, url, json=json, params=params)
        except httpx.HTTPError as e:
            raise GraphClientError(
                ErrorMessages.TRANSPORT_ERROR.format(method=method, url=url, error=e)
            ) from e

        if response.status_code == 404 and allow_missing:
            return None, None
        if response.status_code >= 400:
            raise GraphClientError(
                ErrorMessages.HTTP_ERROR.format(
                    status_code=response.status_code,
                    method=method,
                    url=url,
                    detail=self._error_detail(response),
                ),
                status_code=response.status_code,
            )
        if not response.content:
            return response, None
        try:
            return response, response.json()
        except ValueError:
            return response, response.text

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text
        if isinstance(data, dict):
            return str(data.get("message") or data.get("exception") or data)
        return str(data)

    def _submit(self, method: str, to: str, body: Any = None, callback: Optional[JobCallback] = None) -> Optional[int]:
        """Send a write job now, or queue it when a batch is open. Returns the job id when queued."""
        if self._batch is None:
            response, data = self._request(method, to, json=body)
            if callback is not None:
                location = response.headers.get("location") if response is not None else None
                callback({"location": location, "body": data})
            return None

        job_id = len(self._batch)
        job: Dict[str, Any] = {"method": method, "to": to, "id": job_id}
        if body is not None:
            job["body"] = body
        self._batch.add(job)
        if callback is not None:
            self._callbacks[job_id] = callback
        return job_id

    def _node_path(self, node: Node) -> str:
        if node.id is not None:
            return "/" + RestEndpointConstants.NODE_ITEM.format(node_id=node.id)
        job_id = self._pending_nodes.get(id(node))
        if job_id is None:
            raise GraphClientError("Node has not been saved")
        return RestEndpointConstants.JOB_REFERENCE.format(job_id=job_id)

    def _node_uri(self, node: Node) -> str:
        path = self._node_path(node)
        if path.startswith("{"):
            return path
        return self.base_url + path.lstrip("/")

    # -- nodes ---------------------------------------------------------------

    def make_node(self) -> Node:
        return Node()

    def get_node(self, node_id: int) -> Optional[Node]:
        _, data = self._request("GET", RestEndpointConstants.NODE_ITEM.format(node_id=node_id), allow_missing=True)
        if data is None:
            return None
        return self._node_from_json(data)

    def _node_from_json(self, data: Dict[str, Any]) -> Node:
        metadata = data.get("metadata") or {}
        node_id = metadata.get("id")
        if node_id is None:
            node_id = _id_from_url(data["self"])
        return Node(id=int(node_id), properties=dict(data.get("data") or {}), labels=list(metadata.get("labels") or []))

    def save_node(self, node: Node) -> Node:
        properties = dict(node.properties)
        if node.id is not None:
            self._submit("PUT", "/" + RestEndpointConstants.NODE_PROPERTIES.format(node_id=node.id), properties)
            return node

        def assign(result: Dict[str, Any]) -> None:
            url = result.get("location") or (result.get("body") or {}).get("self")
            node.id = _id_from_url(url)

        job_id = self._submit("POST", "/" + RestEndpointConstants.NODE, properties, assign)
        if job_id is not None:
            self._pending_nodes[id(node)] = job_id
        return node

    def add_labels(self, node: Node, labels: Sequence[str]) -> None:
        labels = list(labels)
        path = RestEndpointConstants.NODE_LABELS.format(node_path=self._node_path(node))
        self._submit("POST", path, labels)
        for label in labels:
            if label not in node.labels:
                node.labels.append(label)

    def delete_node(self, node_id: int) -> None:
        self._submit("DELETE", "/" + RestEndpointConstants.NODE_ITEM.format(node_id=node_id))

    # -- relationships -------------------------------------------------------

    def relate(self, source: Node, target: Node, rel_type: str) -> Relationship:
        if source.id is None or target.id is None:
            raise GraphClientError("Cannot relate unsaved nodes")
        return Relationship(type=rel_type, start_id=source.id, end_id=target.id)

    def get_relationship(self, rel_id: int) -> Optional[Relationship]:
        _, data = self._request(
            "GET", RestEndpointConstants.RELATIONSHIP_ITEM.format(rel_id=rel_id), allow_missing=True
        )
        if data is None:
            return None
        return Relationship(
            type=data["type"],
            start_id=_id_from_url(data["start"]),
            end_id=_id_from_url(data["end"]),
            id=_id_from_url(data["self"]),
            properties=dict(data.get("data") or {}),
        )

    def save_relationship(self, relationship: Relationship) -> Relationship:
        properties = dict(relationship.properties)
        if relationship.id is not None:
            self._submit(
                "PUT",
                "/" + RestEndpointConstants.RELATIONSHIP_PROPERTIES.format(rel_id=relationship.id),
                properties,
            )
            return relationship

        def assign(result: Dict[str, Any]) -> None:
            url = result.get("location") or (result.get("body") or {}).get("self")
            relationship.id = _id_from_url(url)

        body = {
            "to": self.base_url + RestEndpointConstants.NODE_ITEM.format(node_id=relationship.end_id),
            "type": relationship.type,
            "data": properties,
        }
        self._submit(
            "POST",
            "/" + RestEndpointConstants.NODE_ITEM.format(node_id=relationship.start_id) + "/relationships",
            body,
            assign,
        )
        return relationship

    def _relationships(self, node: Node, direction: str) -> List[RelationshipRef]:
        _, data = self._request(
            "GET",
            RestEndpointConstants.NODE_RELATIONSHIPS.format(node_id=node.id, direction=direction),
        )
        return [
            RelationshipRef(
                id=_id_from_url(entry["self"]),
                type=entry["type"],
                start_id=_id_from_url(entry["start"]),
                end_id=_id_from_url(entry["end"]),
            )
            for entry in data or []
        ]

    def get_outgoing_relationships(self, node: Node) -> List[RelationshipRef]:
        return self._relationships(node, RestEndpointConstants.DIRECTION_OUT)

    def get_node_relationships(self, node: Node) -> List[RelationshipRef]:
        return self._relationships(node, RestEndpointConstants.DIRECTION_ALL)

    def delete_relationship(self, rel_id: int) -> None:
        self._submit("DELETE", "/" + RestEndpointConstants.RELATIONSHIP_ITEM.format(rel_id=rel_id))

    # -- indexes -------------------------------------------------------------

    def get_or_create_index(self, name: str, kind: IndexKind = IndexKind.EXACT) -> NodeIndex:
        kind = IndexKind(kind)
        index_type = (
            RestEndpointConstants.INDEX_TYPE_FULLTEXT if kind is IndexKind.FULLTEXT
            else RestEndpointConstants.INDEX_TYPE_EXACT
        )
        self._request(
            "POST",
            RestEndpointConstants.NODE_INDEX_ROOT,
            json={"name": name, "config": {"type": index_type, "provider": RestEndpointConstants.INDEX_PROVIDER}},
        )
        return NodeIndex(name=name, kind=kind)

    def index_add(self, index: NodeIndex, node: Node, field: str, value: Any) -> None:
        self._submit(
            "POST",
            "/" + RestEndpointConstants.NODE_INDEX.format(index=quote(index.name, safe="")),
            {"uri": self._node_uri(node), "key": field, "value": value},
        )

    def index_remove(self, index: NodeIndex, node: Node) -> None:
        self._submit(
            "DELETE",
            "/" + RestEndpointConstants.NODE_INDEX_NODE.format(index=quote(index.name, safe=""), node_id=node.id),
        )

    def save_index(self, index: NodeIndex) -> None:
        # Index documents are written by index_add; the index itself exists since get_or_create_index
        logger.debug("Index %s saved", index.name)

    def index_query(self, index: NodeIndex, field: str, value: Any) -> List[Node]:
        name = quote(index.name, safe="")
        if index.kind is IndexKind.FULLTEXT:
            _, data = self._request(
                "GET",
                RestEndpointConstants.NODE_INDEX.format(index=name),
                params={"query": f"{field}:{value}"},
                allow_missing=True,
            )
        else:
            _, data = self._request(
                "GET",
                RestEndpointConstants.NODE_INDEX_ENTRY.format(
                    index=name, field=quote(str(field), safe=""), value=quote(str(value), safe="")
                ),
                allow_missing=True,
            )
        return [self._node_from_json(entry) for entry in data or []]

    # -- batches -------------------------------------------------------------

    def start_batch(self) -> Batch:
        if self._batch is not None:
            raise GraphClientError(ErrorMessages.BATCH_ALREADY_OPEN)
        self._batch = Batch()
        return self._batch

    def commit_batch(self) -> None:
        if self._batch is None:
            raise GraphClientError(ErrorMessages.NO_OPEN_BATCH)
        batch, callbacks = self._batch, self._callbacks
        self._reset_batch()

        jobs = batch.get_operations()
        _, results = self._request("POST", RestEndpointConstants.BATCH, json=jobs)
        for result in results or []:
            callback = callbacks.get(result.get("id"))
            if callback is not None:
                callback(result)
        logger.debug("Committed batch of %d jobs", len(jobs))

    def end_batch(self) -> None:
        self._reset_batch()

    def _reset_batch(self) -> None:
        self._batch = None
        self._callbacks = {}
        self._pending_nodes = {}

    # -- queries -------------------------------------------------------------

    def execute_query(self, dialect: QueryDialect, text: str, parameters: Dict[str, Any]) -> ResultSet:
        if QueryDialect(dialect) is QueryDialect.PATTERN:
            _, data = self._request(
                "POST", RestEndpointConstants.CYPHER, json={"query": text, "params": parameters}
            )
            data = data or {}
            return ResultSet(columns=list(data.get("columns") or []), rows=[list(row) for row in data.get("data") or []])

        _, data = self._request(
            "POST", RestEndpointConstants.GREMLIN, json={"script": text, "params": parameters}
        )
        return self._traversal_result(data)

    @staticmethod
    def _traversal_result(data: Any) -> ResultSet:
        if isinstance(data, dict) and "columns" in data and "data" in data:
            return ResultSet(columns=list(data["columns"]), rows=[list(row) for row in data["data"]])
        if isinstance(data, list):
            return ResultSet(
                columns=["0"],
                rows=[list(row) if isinstance(row, list) else [row] for row in data],
            )
        if data is None:
            return ResultSet()
        return ResultSet(columns=["0"], rows=[[data]])

    def ping(self) -> bool:
        try:
            response = self._http.get("")
        except httpx.HTTPError as e:
            logger.debug("Ping of %s failed: %s", self.base_url, e)
            return False
        return response.status_code == 200
