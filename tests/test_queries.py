# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the query execution wrapper.
"""

from __future__ import annotations

import pytest

from graphalchemy import (
    EntityManager,
    EventNames,
    GraphClientError,
    InMemoryGraphClient,
    QueryDialect,
    QueryError,
    ResultSet,
)


class ScriptedHandler:
    """Query handler returning a fixed result, or raising a fixed error."""

    def __init__(self, result=None, error=None):
        self.result = result if result is not None else ResultSet()
        self.error = error
        self.calls = []

    def __call__(self, dialect, text, parameters):
        self.calls.append((dialect, text, parameters))
        if self.error is not None:
            raise self.error
        return self.result


def make_manager(handler):
    return EntityManager({"client": InMemoryGraphClient(query_handler=handler)})


class TestPatternQueries:
    """Cypher dialect."""

    def test_result_and_parameters_pass_through(self):
        handler = ScriptedHandler(ResultSet(columns=["n"], rows=[[1], [2]]))
        manager = make_manager(handler)

        result = manager.run_pattern_query("MATCH (n) WHERE n.x = {x} RETURN n", {"x": 1})

        assert result.rows == [[1], [2]]
        assert result.as_dicts() == [{"n": 1}, {"n": 2}]
        assert handler.calls == [(QueryDialect.PATTERN, "MATCH (n) WHERE n.x = {x} RETURN n", {"x": 1})]

    def test_protocol_failure_is_wrapped(self):
        manager = make_manager(ScriptedHandler(error=GraphClientError("Unknown identifier `m`")))

        with pytest.raises(QueryError) as excinfo:
            manager.run_pattern_query("RETURN m", {"a": 1})

        error = excinfo.value
        assert str(error).startswith("Query execution failed: Unknown identifier `m`")
        assert error.query == "RETURN m"
        assert error.parameters == {"a": 1}
        assert isinstance(error.__cause__, GraphClientError)

    def test_error_marker_is_not_checked(self):
        handler = ScriptedHandler(ResultSet(columns=["0"], rows=[["NullPointerException is a word"]]))
        manager = make_manager(handler)

        assert len(manager.run_pattern_query("RETURN 'x'")) == 1

    def test_missing_engine_is_reported(self):
        manager = EntityManager({"client": InMemoryGraphClient()})

        with pytest.raises(QueryError, match="Query execution failed"):
            manager.run_pattern_query("RETURN 1")


class TestTraversalQueries:
    """Gremlin dialect and its error-as-data convention."""

    def test_error_marker_in_single_cell_raises(self):
        message = "javax.script.ScriptException: groovy.lang.MissingPropertyException"
        manager = make_manager(ScriptedHandler(ResultSet(columns=["0"], rows=[[message]])))

        with pytest.raises(QueryError) as excinfo:
            manager.run_traversal_query("g.v(1).foo", {"id": 1})

        assert "An error was detected" in str(excinfo.value)
        assert excinfo.value.query == "g.v(1).foo"
        assert excinfo.value.parameters == {"id": 1}

    def test_marker_in_multi_row_result_is_data(self):
        rows = [["ScriptException"], ["other"]]
        manager = make_manager(ScriptedHandler(ResultSet(columns=["0"], rows=rows)))

        assert manager.run_traversal_query("g.V.name").rows == rows

    def test_non_string_cell_is_data(self):
        manager = make_manager(ScriptedHandler(ResultSet(columns=["0"], rows=[[42]])))

        assert manager.run_traversal_query("g.V.count()").rows == [[42]]

    def test_clean_single_cell(self):
        manager = make_manager(ScriptedHandler(ResultSet(columns=["0"], rows=[["Ada"]])))

        assert manager.run_traversal_query("g.v(1).name").rows == [["Ada"]]

    def test_protocol_failure_is_wrapped(self):
        manager = make_manager(ScriptedHandler(error=GraphClientError("boom", status_code=400)))

        with pytest.raises(QueryError, match="An error was detected: boom"):
            manager.run_traversal_query("g.fail()")


class TestStatementEvents:
    """Pre and post statement events."""

    def test_events_carry_query_and_elapsed_time(self):
        manager = make_manager(ScriptedHandler(ResultSet(columns=["n"], rows=[[1]])))
        seen = []
        manager.get_event_manager().add_event_listener(
            [EventNames.PRE_STMT_EXECUTE, EventNames.POST_STMT_EXECUTE], seen.append
        )

        manager.run_pattern_query("RETURN 1", {"p": 2})

        pre, post = seen
        assert pre.get_event_name() == EventNames.PRE_STMT_EXECUTE
        assert post.get_event_name() == EventNames.POST_STMT_EXECUTE
        assert pre.query == post.query == "RETURN 1"
        assert post.parameters == {"p": 2}
        assert post.dialect is QueryDialect.PATTERN
        assert post.time >= 0.0

    def test_no_post_event_on_failure(self):
        manager = make_manager(ScriptedHandler(error=GraphClientError("down")))
        seen = []
        manager.get_event_manager().add_event_listener(
            [EventNames.PRE_STMT_EXECUTE, EventNames.POST_STMT_EXECUTE], seen.append
        )

        with pytest.raises(QueryError):
            manager.run_pattern_query("RETURN 1")

        assert [event.get_event_name() for event in seen] == [EventNames.PRE_STMT_EXECUTE]
