"""Tests for the planner callbacks and the routine table."""

from __future__ import annotations

import pytest

from odbcfdw.acquire import ConnectionAcquirer
from odbcfdw.cache import ConnectionCache
from odbcfdw.catalog import Catalog
from odbcfdw.driver import DemoOdbcDriver
from odbcfdw.errors import ConfigurationError
from odbcfdw.handler import (
    STARTUP_COST,
    analyze,
    estimate_costs,
    fdw_handler,
    fdw_validator,
    get_paths,
    get_plan,
    get_rel_size,
)
from odbcfdw.models import ColumnDefinition, ForeignTable
from odbcfdw.options import OptionScope
from odbcfdw.scan import ScanState

TABLE = ForeignTable(name="test", server="db2", columns=(ColumnDefinition("id", "integer"),))


def test_planner_estimates_are_constant() -> None:
    size = get_rel_size(TABLE)

    assert size.rows == 0
    assert estimate_costs(size) == (STARTUP_COST, STARTUP_COST)
    paths = get_paths(TABLE, size)
    assert len(paths) == 1
    assert paths[0].startup_cost == 25
    assert paths[0].total_cost == 25
    assert paths[0].rows == 0
    assert paths[0].pathkeys == ()


def test_plan_keeps_every_clause_local() -> None:
    size = get_rel_size(TABLE)
    path = get_paths(TABLE, size)[0]

    plan = get_plan(TABLE, path, ["id"], ["id > 1"])

    assert plan.relation == "test"
    assert plan.target_list == ("id",)
    assert plan.local_quals == ("id > 1",)


def test_analyze_is_not_supported() -> None:
    assert analyze(TABLE) is False


def test_validator_delegates_to_option_validation() -> None:
    fdw_validator({"dsn": "SAMPLE"}, OptionScope.SERVER)
    with pytest.raises(ConfigurationError):
        fdw_validator({}, OptionScope.TABLE)


def test_routine_runs_a_full_scan() -> None:
    catalog = Catalog()
    catalog.define_server("db2", {"dsn": "DEMO"})
    catalog.define_table(
        "test",
        "db2",
        [ColumnDefinition("id", "integer"), ColumnDefinition("name", "text")],
        {"sql_query": "select * from test"},
    )
    catalog.define_user_mapping("public", "db2", {"username": "demo", "password": "demo"})
    routine = fdw_handler()
    acquirer = ConnectionAcquirer(DemoOdbcDriver(), cache=ConnectionCache())

    scan = routine.begin_scan(catalog.resolve("test", "alice"), "alice", acquirer)
    rows = [routine.iterate_scan(scan), routine.iterate_scan(scan)]
    routine.rescan(scan)
    explained = routine.explain(scan)
    routine.end_scan(scan)

    assert rows == [(1, "name1"), None]
    assert explained == []
    assert scan.state is ScanState.FINISHED
