# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the REST graph client against a mocked HTTP server.
"""

from __future__ import annotations

import json
from typing import Optional

import pytest
import respx
from httpx import ConnectError, Response

from graphalchemy import (
    EntityManager,
    GraphBaseModel,
    GraphClientError,
    IndexKind,
    Node,
    QueryDialect,
    Relationship,
    RestGraphClient,
    TrackedList,
    graph_entity,
    graph_field,
    many,
)

from .conftest import FIXED_DATE

BASE = "http://localhost:7474/db/data/"


def node_json(node_id, data=None, labels=None):
    return {
        "self": f"{BASE}node/{node_id}",
        "data": data or {},
        "metadata": {"id": node_id, "labels": labels or []},
    }


def relationship_json(rel_id, start, end, rel_type, data=None):
    return {
        "self": f"{BASE}relationship/{rel_id}",
        "start": f"{BASE}node/{start}",
        "end": f"{BASE}node/{end}",
        "type": rel_type,
        "data": data or {},
    }


@pytest.fixture
def rest():
    client = RestGraphClient()
    yield client
    client.close()


class TestNodes:
    """Node reads and immediate writes."""

    @respx.mock
    def test_get_node(self, rest):
        respx.get(f"{BASE}node/5").mock(
            return_value=Response(200, json=node_json(5, {"name": "Ada"}, ["Human"]))
        )

        node = rest.get_node(5)

        assert node.id == 5
        assert node.get_property("name") == "Ada"
        assert node.labels == ["Human"]

    @respx.mock
    def test_missing_node_is_none(self, rest):
        respx.get(f"{BASE}node/6").mock(return_value=Response(404, json={"message": "not found"}))

        assert rest.get_node(6) is None

    @respx.mock
    def test_create_node_reads_location(self, rest):
        route = respx.post(f"{BASE}node").mock(
            return_value=Response(201, headers={"Location": f"{BASE}node/7"}, json=node_json(7))
        )
        node = Node().set_property("name", "Ada")

        rest.save_node(node)

        assert node.id == 7
        assert json.loads(route.calls.last.request.content) == {"name": "Ada"}

    @respx.mock
    def test_update_node_replaces_properties(self, rest):
        route = respx.put(f"{BASE}node/7/properties").mock(return_value=Response(204))

        rest.save_node(Node(id=7, properties={"name": "Grace"}))

        assert route.called
        assert json.loads(route.calls.last.request.content) == {"name": "Grace"}

    @respx.mock
    def test_error_status_raises(self, rest):
        respx.delete(f"{BASE}node/8").mock(
            return_value=Response(409, json={"message": "Node 8 still has relationships"})
        )

        with pytest.raises(GraphClientError) as excinfo:
            rest.delete_node(8)

        assert excinfo.value.status_code == 409
        assert "still has relationships" in str(excinfo.value)

    @respx.mock
    def test_transport_error_raises(self, rest):
        respx.get(f"{BASE}node/9").mock(side_effect=ConnectError("refused"))

        with pytest.raises(GraphClientError, match="Transport failure"):
            rest.get_node(9)


class TestRelationships:
    """Relationship reads and listings."""

    @respx.mock
    def test_get_relationship(self, rest):
        respx.get(f"{BASE}relationship/3").mock(
            return_value=Response(200, json=relationship_json(3, 1, 2, "friends", {"since": 2020}))
        )

        relationship = rest.get_relationship(3)

        assert (relationship.id, relationship.start_id, relationship.end_id) == (3, 1, 2)
        assert relationship.type == "friends"
        assert relationship.get_property("since") == 2020

    @respx.mock
    def test_outgoing_and_all_relationships(self, rest):
        respx.get(f"{BASE}node/1/relationships/out").mock(
            return_value=Response(200, json=[relationship_json(3, 1, 2, "friends")])
        )
        respx.get(f"{BASE}node/1/relationships/all").mock(
            return_value=Response(200, json=[
                relationship_json(3, 1, 2, "friends"),
                relationship_json(4, 5, 1, "partner"),
            ])
        )
        node = Node(id=1)

        outgoing = rest.get_outgoing_relationships(node)
        both = rest.get_node_relationships(node)

        assert [(ref.id, ref.type, ref.end_id) for ref in outgoing] == [(3, "friends", 2)]
        assert [ref.id for ref in both] == [3, 4]

    @respx.mock
    def test_create_relationship(self, rest):
        route = respx.post(f"{BASE}node/1/relationships").mock(
            return_value=Response(201, headers={"Location": f"{BASE}relationship/12"}, json={})
        )
        relationship = rest.relate(Node(id=1), Node(id=2), "friends")
        relationship.set_property("since", 2020)

        rest.save_relationship(relationship)

        assert relationship.id == 12
        assert json.loads(route.calls.last.request.content) == {
            "to": f"{BASE}node/2",
            "type": "friends",
            "data": {"since": 2020},
        }

    def test_relate_requires_saved_nodes(self, rest):
        with pytest.raises(GraphClientError):
            rest.relate(Node(), Node(id=2), "friends")


class TestBatches:
    """Queued jobs posted to the batch endpoint."""

    @respx.mock
    def test_batch_jobs_reference_new_nodes(self, rest):
        respx.post(f"{BASE}index/node").mock(return_value=Response(201, json={}))
        route = respx.post(f"{BASE}batch").mock(
            return_value=Response(200, json=[
                {"id": 0, "location": f"{BASE}node/11", "body": node_json(11)},
                {"id": 1, "location": f"{BASE}index/node/name/name/Ada/11", "body": {}},
            ])
        )
        index = rest.get_or_create_index("name")
        node = Node().set_property("name", "Ada")

        batch = rest.start_batch()
        rest.save_node(node)
        rest.index_add(index, node, "name", "Ada")
        assert len(batch) == 2
        assert node.id is None
        rest.commit_batch()

        assert node.id == 11
        assert json.loads(route.calls.last.request.content) == [
            {"method": "POST", "to": "/node", "id": 0, "body": {"name": "Ada"}},
            {"method": "POST", "to": "/index/node/name", "id": 1,
             "body": {"uri": "{0}", "key": "name", "value": "Ada"}},
        ]

    @respx.mock
    def test_batch_deletes_and_relationship_updates(self, rest):
        route = respx.post(f"{BASE}batch").mock(return_value=Response(200, json=[]))

        rest.start_batch()
        rest.delete_relationship(3)
        rest.save_relationship(Relationship(type="friends", start_id=1, end_id=2, id=4, properties={"a": 1}))
        rest.delete_node(1)
        rest.commit_batch()

        jobs = json.loads(route.calls.last.request.content)
        assert [(job["method"], job["to"]) for job in jobs] == [
            ("DELETE", "/relationship/3"),
            ("PUT", "/relationship/4/properties"),
            ("DELETE", "/node/1"),
        ]

    @respx.mock
    def test_labels_of_new_and_saved_nodes(self, rest):
        route = respx.post(f"{BASE}batch").mock(return_value=Response(200, json=[]))

        rest.start_batch()
        new = rest.save_node(Node())
        rest.add_labels(new, ["Human"])
        rest.add_labels(Node(id=4), ["Human", "Employee"])
        rest.commit_batch()

        jobs = json.loads(route.calls.last.request.content)
        assert [(job["to"], job.get("body")) for job in jobs[1:]] == [
            ("{0}/labels", ["Human"]),
            ("/node/4/labels", ["Human", "Employee"]),
        ]

    def test_batches_are_not_reentrant(self, rest):
        rest.start_batch()

        with pytest.raises(GraphClientError):
            rest.start_batch()

        rest.end_batch()
        rest.start_batch()
        rest.end_batch()

    def test_commit_without_batch(self, rest):
        with pytest.raises(GraphClientError):
            rest.commit_batch()


class TestIndexes:
    """Legacy node indexes."""

    @respx.mock
    def test_create_fulltext_index(self, rest):
        route = respx.post(f"{BASE}index/node").mock(return_value=Response(201, json={}))

        index = rest.get_or_create_index("person_bio", IndexKind.FULLTEXT)

        assert index.kind is IndexKind.FULLTEXT
        assert json.loads(route.calls.last.request.content) == {
            "name": "person_bio",
            "config": {"type": "fulltext", "provider": "lucene"},
        }

    @respx.mock
    def test_exact_query(self, rest):
        respx.get(f"{BASE}index/node/name/name/Ada").mock(
            return_value=Response(200, json=[node_json(3, {"name": "Ada"})])
        )
        respx.post(f"{BASE}index/node").mock(return_value=Response(201, json={}))
        index = rest.get_or_create_index("name")

        nodes = rest.index_query(index, "name", "Ada")

        assert [node.id for node in nodes] == [3]

    @respx.mock
    def test_fulltext_query(self, rest):
        route = respx.get(url__startswith=f"{BASE}index/node/person_bio").mock(
            return_value=Response(200, json=[node_json(3)])
        )
        respx.post(f"{BASE}index/node").mock(return_value=Response(201, json={}))
        index = rest.get_or_create_index("person_bio", IndexKind.FULLTEXT)

        nodes = rest.index_query(index, "bio", "writer")

        assert [node.id for node in nodes] == [3]
        assert route.calls.last.request.url.params["query"] == "bio:writer"


class TestQueries:
    """Cypher and Gremlin endpoints."""

    @respx.mock
    def test_cypher(self, rest):
        route = respx.post(f"{BASE}cypher").mock(
            return_value=Response(200, json={"columns": ["n"], "data": [[1], [2]]})
        )

        result = rest.execute_query(QueryDialect.PATTERN, "RETURN {x}", {"x": 1})

        assert result.columns == ["n"]
        assert result.rows == [[1], [2]]
        assert json.loads(route.calls.last.request.content) == {"query": "RETURN {x}", "params": {"x": 1}}

    @respx.mock
    def test_gremlin_scalar_result(self, rest):
        respx.post(f"{BASE}ext/GremlinPlugin/graphdb/execute_script").mock(
            return_value=Response(200, json="javax.script.ScriptException: boom")
        )

        result = rest.execute_query(QueryDialect.TRAVERSAL, "g.fail()", {})

        assert result.rows == [["javax.script.ScriptException: boom"]]

    @respx.mock
    def test_gremlin_list_result(self, rest):
        respx.post(f"{BASE}ext/GremlinPlugin/graphdb/execute_script").mock(
            return_value=Response(200, json=["a", "b"])
        )

        result = rest.execute_query(QueryDialect.TRAVERSAL, "g.V.name", {})

        assert result.rows == [["a"], ["b"]]

    @respx.mock
    def test_cypher_error(self, rest):
        respx.post(f"{BASE}cypher").mock(
            return_value=Response(400, json={"message": "Unknown identifier `m`"})
        )

        with pytest.raises(GraphClientError, match="Unknown identifier"):
            rest.execute_query(QueryDialect.PATTERN, "RETURN m", {})


class TestPing:
    """Liveness probe."""

    @respx.mock
    def test_ping_ok(self, rest):
        respx.get(BASE).mock(return_value=Response(200, json={}))

        assert rest.ping() is True

    @respx.mock
    def test_ping_unreachable(self, rest):
        respx.get(BASE).mock(side_effect=ConnectError("refused"))

        assert rest.ping() is False


class TestFlushOverRest:
    """A full flush through the REST client."""

    @respx.mock
    def test_flush_assigns_keys_from_batch_results(self, rest):
        @graph_entity()
        class City(GraphBaseModel):
            id: Optional[int] = graph_field(primary_key=True)
            name: str
            twins: TrackedList = many()

        batches = []

        def answer(request):
            jobs = json.loads(request.content)
            batches.append(jobs)
            results = []
            for job in jobs:
                result = {"id": job["id"]}
                if job["to"] == "/node":
                    result["location"] = f"{BASE}node/{100 + job['id']}"
                elif job["to"].endswith("/relationships"):
                    result["location"] = f"{BASE}relationship/{500 + job['id']}"
                results.append(result)
            return Response(200, json=results)

        respx.post(f"{BASE}batch").mock(side_effect=answer)
        respx.get(url__regex=r".*/node/\d+/relationships/out$").mock(return_value=Response(200, json=[]))
        respx.post(f"{BASE}index/node").mock(return_value=Response(201, json={}))

        manager = EntityManager({"client": rest})
        manager.set_date_generator(lambda: FIXED_DATE)
        paris = City(name="Paris")
        rome = City(name="Rome")
        paris.twins.append(rome)

        manager.persist(paris).flush()

        assert (paris.id, rome.id) == (100, 101)
        assert manager.find_any(101) is rome
        assert len(batches) == 3
        assert [job["to"] for job in batches[0]] == ["/node", "/node"]
        assert batches[1] == [{
            "method": "POST",
            "to": "/node/100/relationships",
            "id": 0,
            "body": {
                "to": f"{BASE}node/101",
                "type": "twins",
                "data": {"creationDate": FIXED_DATE, "updateDate": FIXED_DATE},
            },
        }]
        assert batches[2] == [
            {"method": "POST", "to": "/index/node/City", "id": 0,
             "body": {"uri": f"{BASE}node/100", "key": "id", "value": 100}},
            {"method": "POST", "to": "/index/node/City", "id": 1,
             "body": {"uri": f"{BASE}node/101", "key": "id", "value": 101}},
        ]
