"""Tests for the scan orchestrator and its retry protocol."""

from __future__ import annotations

from decimal import Decimal

import pytest

from odbcfdw.acquire import ConnectionAcquirer
from odbcfdw.cache import CacheOwnedConnection, ConnectionCache, ScanOwnedConnection
from odbcfdw.catalog import ResolvedRelation
from odbcfdw.driver import DemoOdbcDriver, DemoStatement, DemoTable
from odbcfdw.errors import (
    ConnectionError,
    Diagnostic,
    DriverError,
    FdwError,
    PermanentQueryError,
    RowBuildError,
    TransientQueryError,
)
from odbcfdw.models import (
    SQL_INTEGER,
    SQL_VARCHAR,
    ColumnDefinition,
    ColumnDescription,
    ForeignServer,
    ForeignTable,
    UserMapping,
)
from odbcfdw.scan import MAX_ATTEMPTS, ForeignScan, RetryPolicy, ScanState

TEST_COLUMNS = (ColumnDefinition("id", "integer"), ColumnDefinition("name", "text"))


def _relation(
    *,
    cached: str | None = None,
    query: str = "select * from test",
    columns: tuple[ColumnDefinition, ...] = TEST_COLUMNS,
    password: str = "secret",
) -> ResolvedRelation:
    server_options = {"dsn": "SAMPLE"}
    if cached is not None:
        server_options["cached"] = cached
    return ResolvedRelation(
        table=ForeignTable(name="test", server="db2", columns=columns, options={"sql_query": query}),
        server=ForeignServer(name="db2", options=server_options),
        mapping=UserMapping(principal="alice", server="db2", options={"username": "db2inst1", "password": password}),
    )


def _scan(relation: ResolvedRelation, driver: DemoOdbcDriver, cache: ConnectionCache) -> ForeignScan:
    return ForeignScan(relation, "alice", ConnectionAcquirer(driver, cache=cache))


def test_end_to_end_scan_without_caching_returns_rows_and_closes_connection() -> None:
    driver = DemoOdbcDriver()
    cache = ConnectionCache()
    scan = _scan(_relation(), driver, cache)

    scan.begin()
    rows = []
    while (row := scan.iterate()) is not None:
        rows.append(row)
    scan.end()

    assert rows == [(1, "name1")]
    assert scan.state is ScanState.FINISHED
    assert scan.attempts == 1
    assert len(driver.connections) == 1
    assert driver.connections[0].closed is True
    assert driver.connections[0].statements[0].closed is True
    assert len(cache) == 0


def test_iterate_keeps_returning_end_of_data() -> None:
    scan = _scan(_relation(), DemoOdbcDriver(), ConnectionCache())
    scan.begin()

    assert scan.iterate() == (1, "name1")
    assert scan.iterate() is None
    scan.end()


def test_cached_scan_keeps_connection_for_next_scan() -> None:
    driver = DemoOdbcDriver()
    cache = ConnectionCache()

    first = _scan(_relation(cached="0"), driver, cache)
    first.begin()
    assert isinstance(first.connection, CacheOwnedConnection)
    first.end()
    second = _scan(_relation(cached="0"), driver, cache)
    second.begin()
    second.end()

    assert len(driver.connections) == 1
    assert driver.connections[0].closed is False
    assert len(cache) == 1


def test_no_retry_policy_fails_after_first_attempt() -> None:
    driver = DemoOdbcDriver()
    driver.fail_next_executions(5000)
    cache = ConnectionCache()
    scan = _scan(_relation(), driver, cache)

    with pytest.raises(PermanentQueryError) as excinfo:
        scan.begin()

    assert scan.state is ScanState.FAILED
    assert scan.attempts == 1
    assert len(driver.executed) == 1
    assert "Cannot execute query select * from test" in str(excinfo.value)
    assert excinfo.value.query == "select * from test"
    assert excinfo.value.diagnostic is not None and excinfo.value.diagnostic.native_code == 5000
    assert driver.connections[0].closed is True


def test_retry_any_error_makes_exactly_two_attempts() -> None:
    driver = DemoOdbcDriver()
    driver.fail_next_executions(111, 222, 333)
    cache = ConnectionCache()
    scan = _scan(_relation(cached="-1"), driver, cache)

    with pytest.raises(PermanentQueryError) as excinfo:
        scan.begin()

    assert scan.attempts == MAX_ATTEMPTS == 2
    assert len(driver.executed) == 2
    assert len(driver.connections) == 2
    assert all(connection.closed for connection in driver.connections)
    assert len(cache) == 0
    assert isinstance(excinfo.value.__cause__, TransientQueryError)


def test_retry_any_error_recovers_on_second_attempt() -> None:
    driver = DemoOdbcDriver()
    driver.fail_next_executions(111)
    cache = ConnectionCache()
    scan = _scan(_relation(cached="-1"), driver, cache)

    scan.begin()

    assert scan.state is ScanState.READY
    assert scan.attempts == 2
    assert scan.iterate() == (1, "name1")
    scan.end()


def test_zero_retry_code_means_any_error() -> None:
    driver = DemoOdbcDriver()
    driver.fail_next_executions(-204)
    scan = _scan(_relation(cached="0"), driver, ConnectionCache())

    scan.begin()

    assert scan.attempts == 2
    scan.end()


def test_non_numeric_caching_indicator_means_any_error() -> None:
    driver = DemoOdbcDriver()
    driver.fail_next_executions(42)
    scan = _scan(_relation(cached="yes"), driver, ConnectionCache())

    scan.begin()

    assert scan.attempts == 2
    scan.end()


def test_mismatched_native_code_fails_without_retry() -> None:
    driver = DemoOdbcDriver()
    driver.fail_next_executions(4000)
    cache = ConnectionCache()
    scan = _scan(_relation(cached="5000"), driver, cache)

    with pytest.raises(PermanentQueryError) as excinfo:
        scan.begin()

    assert scan.attempts == 1
    assert len(driver.executed) == 1
    assert len(cache) == 0
    assert driver.connections[0].closed is True
    cause = excinfo.value.__cause__
    assert isinstance(cause, PermanentQueryError)
    assert "does not match retry code 5000" in cause.message


def test_matching_native_code_evicts_and_retries_with_fresh_connection() -> None:
    driver = DemoOdbcDriver()
    driver.fail_next_executions(5000)
    cache = ConnectionCache()
    scan = _scan(_relation(cached="5000"), driver, cache)

    scan.begin()

    assert scan.state is ScanState.READY
    assert scan.attempts == 2
    assert len(driver.connections) == 2
    assert driver.connections[0].closed is True
    assert scan.connection is not None
    assert scan.connection.connection is driver.connections[1]
    cached = cache.find("SAMPLE", "alice")
    assert cached is not None and cached.connection is driver.connections[1]
    scan.end()
    assert driver.connections[1].closed is False


def test_retry_evicts_connection_reused_from_cache() -> None:
    driver = DemoOdbcDriver()
    cache = ConnectionCache()
    warmup = _scan(_relation(cached="5000"), driver, cache)
    warmup.begin()
    warmup.end()
    stale = driver.connections[0]
    driver.fail_next_executions(5000)

    scan = _scan(_relation(cached="5000"), driver, cache)
    scan.begin()

    assert stale.closed is True
    assert scan.connection is not None and scan.connection.connection is not stale
    scan.end()


def test_connection_failure_is_fatal_and_not_retried() -> None:
    driver = DemoOdbcDriver(credentials={"SAMPLE": ("db2inst1", "secret")})
    scan = _scan(_relation(cached="-1", password="wrong"), driver, ConnectionCache())

    with pytest.raises(ConnectionError):
        scan.begin()

    assert scan.state is ScanState.FAILED
    assert scan.attempts == 1
    assert driver.executed == []


def test_zero_display_size_is_rejected_at_description_time() -> None:
    driver = DemoOdbcDriver(
        {
            "test": DemoTable(
                columns=(ColumnDescription("ID", SQL_INTEGER, 11), ColumnDescription("NAME", SQL_VARCHAR, 0)),
                rows=[("1", "name1")],
            )
        }
    )
    scan = _scan(_relation(), driver, ConnectionCache())

    with pytest.raises(PermanentQueryError) as excinfo:
        scan.begin()

    assert "NAME" in str(excinfo.value)
    assert scan.state is ScanState.FAILED
    assert driver.connections[0].closed is True
    assert driver.connections[0].statements[0].closed is True


class _BrokenDescribeStatement:
    def __init__(self) -> None:
        self.closed = False

    def column_count(self) -> int:
        return 1

    def describe_column(self, index: int) -> ColumnDescription:
        raise DriverError("SQLDescribeCol", Diagnostic(state="HY000", native_code=-901, message="boom"))

    def fetch(self) -> bool:  # pragma: no cover - never reached
        return False

    def get_text(self, index: int) -> tuple[str, int]:  # pragma: no cover - never reached
        return "", 0

    def close(self) -> None:
        self.closed = True


class _BrokenDescribeConnection:
    def __init__(self) -> None:
        self.closed = False
        self.statement = _BrokenDescribeStatement()

    def execute(self, query: str) -> _BrokenDescribeStatement:
        return self.statement

    def close(self) -> None:
        self.closed = True


class _BrokenDescribeDriver:
    def __init__(self) -> None:
        self.connections: list[_BrokenDescribeConnection] = []

    def connect(self, dsn, username, password):  # type: ignore[no-untyped-def]
        connection = _BrokenDescribeConnection()
        self.connections.append(connection)
        return connection

    def data_sources(self):  # type: ignore[no-untyped-def]
        return {}


def test_description_failure_is_not_retried() -> None:
    driver = _BrokenDescribeDriver()
    scan = ForeignScan(_relation(cached="-1"), "alice", ConnectionAcquirer(driver, cache=ConnectionCache()))

    with pytest.raises(PermanentQueryError) as excinfo:
        scan.begin()

    assert "Cannot retrieve column description for query select * from test" in str(excinfo.value)
    assert len(driver.connections) == 1
    assert driver.connections[0].statement.closed is True


def test_numeric_columns_are_normalized_before_row_building() -> None:
    columns = (
        ColumnDefinition("id", "integer"),
        ColumnDefinition("amount", "numeric"),
        ColumnDefinition("label", "text"),
    )
    scan = _scan(_relation(query="select * from prices", columns=columns), DemoOdbcDriver(), ConnectionCache())
    scan.begin()

    rows = [scan.iterate(), scan.iterate(), scan.iterate(), scan.iterate()]
    scan.end()

    assert rows == [
        (1, Decimal("1234.56"), "Widgets, small"),
        (2, Decimal("0.5"), None),
        (3, None, "Gadgets"),
        None,
    ]


def test_table_without_declared_columns_yields_text_rows() -> None:
    scan = _scan(_relation(columns=()), DemoOdbcDriver(), ConnectionCache())
    scan.begin()

    assert scan.iterate() == ("1", "name1")
    scan.end()


def test_iterate_before_begin_is_an_error() -> None:
    scan = _scan(_relation(), DemoOdbcDriver(), ConnectionCache())

    with pytest.raises(FdwError):
        scan.iterate()


def test_end_is_safe_after_failed_begin() -> None:
    driver = DemoOdbcDriver()
    driver.fail_next_executions(1)
    scan = _scan(_relation(), driver, ConnectionCache())
    with pytest.raises(PermanentQueryError):
        scan.begin()

    scan.end()

    assert scan.state is ScanState.FAILED


def test_rescan_and_explain_are_no_ops() -> None:
    scan = _scan(_relation(), DemoOdbcDriver(), ConnectionCache())
    scan.begin()

    scan.rescan()

    assert scan.explain() == []
    assert scan.iterate() == (1, "name1")
    scan.end()


def test_retry_policy_decisions() -> None:
    assert RetryPolicy(None).should_retry(5000) is False
    assert RetryPolicy(-1).should_retry(4000) is True
    assert RetryPolicy(0).should_retry(4000) is True
    assert RetryPolicy(5000).should_retry(5000) is True
    assert RetryPolicy(5000).should_retry(4000) is False


def test_scan_owned_connection_is_released_when_scan_ends() -> None:
    driver = DemoOdbcDriver()
    scan = _scan(_relation(), driver, ConnectionCache())
    scan.begin()

    assert isinstance(scan.connection, ScanOwnedConnection)
    scan.end()
    assert scan.connection is None
    assert driver.connections[0].closed is True


def _failing_fetch(self: DemoStatement) -> bool:
    raise DriverError("SQLFetch", Diagnostic(state="08S01", native_code=-30081, message="link failure"))


def test_fetch_failure_marks_scan_failed_and_end_releases(monkeypatch: pytest.MonkeyPatch) -> None:
    driver = DemoOdbcDriver()
    scan = _scan(_relation(), driver, ConnectionCache())
    scan.begin()
    monkeypatch.setattr(DemoStatement, "fetch", _failing_fetch)

    with pytest.raises(PermanentQueryError, match="Cannot fetch next row"):
        scan.iterate()
    scan.end()

    assert scan.state is ScanState.FAILED
    assert driver.connections[0].closed is True
    assert driver.connections[0].statements[0].closed is True


def test_row_build_failure_marks_scan_failed() -> None:
    columns = (ColumnDefinition("id", "integer"), ColumnDefinition("name", "integer"))
    scan = _scan(_relation(columns=columns), DemoOdbcDriver(), ConnectionCache())
    scan.begin()

    with pytest.raises(RowBuildError):
        scan.iterate()
    scan.end()

    assert scan.state is ScanState.FAILED
