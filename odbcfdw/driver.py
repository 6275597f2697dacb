"""ODBC driver backends: the call-based cursor protocol the wrapper scans through."""

from __future__ import annotations

import datetime
import decimal
import logging
import re
from dataclasses import dataclass, field
from typing import Mapping, Protocol, Sequence, runtime_checkable

try:
    import pyodbc

    PYODBC_AVAILABLE = True
except ImportError:
    PYODBC_AVAILABLE = False
    pyodbc = None

from .errors import ConnectionError, Diagnostic, DriverError
from .models import (
    SQL_BIGINT,
    SQL_DECIMAL,
    SQL_DOUBLE,
    SQL_INTEGER,
    SQL_NULL_DATA,
    SQL_SMALLINT,
    SQL_TYPE_DATE,
    SQL_TYPE_TIME,
    SQL_TYPE_TIMESTAMP,
    SQL_VARCHAR,
    ColumnDescription,
)

LOG = logging.getLogger(__name__)

TextValue = tuple[str, int]


class OdbcStatement(Protocol):
    """An executed statement positioned before its first row."""

    def column_count(self) -> int:
        """Number of result columns (SQLNumResultCols)."""

    def describe_column(self, index: int) -> ColumnDescription:
        """Describe the zero-based result column (SQLDescribeCol)."""

    def fetch(self) -> bool:
        """Advance to the next row; False once the cursor is exhausted."""

    def get_text(self, index: int) -> TextValue:
        """Return (text, indicator) for a column of the current row."""

    def close(self) -> None:
        """Free the statement handle."""


class OdbcConnection(Protocol):
    """An authenticated driver connection."""

    def execute(self, query: str) -> OdbcStatement:
        """Execute the query directly (SQLExecDirect)."""

    def close(self) -> None:
        """Disconnect and free the connection and environment handles."""


@runtime_checkable
class OdbcDriver(Protocol):
    """Protocol implemented by driver backends."""

    def connect(self, dsn: str, username: str | None, password: str | None) -> OdbcConnection:
        """Authenticate against the data source (SQLConnect)."""

    def data_sources(self) -> Mapping[str, str]:
        """Data source names known to the driver manager with their descriptions."""


# pyodbc appends "(<native>) (SQLExecDirectW)" to every diagnostic record.
_NATIVE_CODE = re.compile(r"\((-?\d+)\)\s*\(SQL\w+\)")


def diagnostic_from_exception(exc: BaseException) -> Diagnostic:
    """Build a diagnostic record from a pyodbc error."""

    args = getattr(exc, "args", ())
    if len(args) >= 2 and isinstance(args[0], str):
        state, message = args[0], str(args[1])
    else:
        state, message = "", str(exc)
    match = _NATIVE_CODE.search(message)
    native_code = int(match.group(1)) if match else -1
    return Diagnostic(state=state, native_code=native_code, message=message.strip())


_PYTHON_TYPE_CODES: Mapping[type, int] = {
    decimal.Decimal: SQL_DECIMAL,
    float: SQL_DOUBLE,
    int: SQL_BIGINT,
    bool: SQL_SMALLINT,
    datetime.datetime: SQL_TYPE_TIMESTAMP,
    datetime.date: SQL_TYPE_DATE,
    datetime.time: SQL_TYPE_TIME,
    str: SQL_VARCHAR,
}


def _value_to_text(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, decimal.Decimal):
        return format(value, "f")
    if isinstance(value, datetime.datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return "\\x" + bytes(value).hex()
    return str(value)


class PyodbcStatement:
    """Statement backed by a pyodbc cursor."""

    def __init__(self, cursor: "pyodbc.Cursor") -> None:
        self._cursor = cursor
        self._row: Sequence[object] | None = None

    def column_count(self) -> int:
        return len(self._cursor.description or ())

    def describe_column(self, index: int) -> ColumnDescription:
        description = self._cursor.description or ()
        try:
            name, type_code, display_size, internal_size, *_ = description[index]
        except (IndexError, ValueError) as exc:
            raise DriverError(
                "SQLDescribeCol",
                Diagnostic(state="07009", message=f"Invalid descriptor index {index + 1}"),
            ) from exc
        return ColumnDescription(
            name=str(name),
            type_code=_PYTHON_TYPE_CODES.get(type_code, SQL_VARCHAR),
            display_size=display_size or internal_size,
        )

    def fetch(self) -> bool:
        try:
            self._row = self._cursor.fetchone()
        except pyodbc.Error as exc:
            raise DriverError("SQLFetch", diagnostic_from_exception(exc)) from exc
        return self._row is not None

    def get_text(self, index: int) -> TextValue:
        if self._row is None:
            raise DriverError("SQLGetData", Diagnostic(state="24000", message="Invalid cursor state"))
        value = self._row[index]
        if value is None:
            return "", SQL_NULL_DATA
        text = _value_to_text(value)
        return text, len(text)

    def close(self) -> None:
        self._cursor.close()


class PyodbcConnection:
    """Connection backed by pyodbc."""

    def __init__(self, connection: "pyodbc.Connection") -> None:
        self._connection = connection

    def execute(self, query: str) -> PyodbcStatement:
        try:
            cursor = self._connection.cursor()
        except pyodbc.Error as exc:
            raise DriverError("SQLAllocHandle", diagnostic_from_exception(exc)) from exc
        try:
            cursor.execute(query)
        except pyodbc.Error as exc:
            try:
                cursor.close()
            except pyodbc.Error:
                LOG.warning("Failed to free statement handle", exc_info=True)
            raise DriverError("SQLExecDirect", diagnostic_from_exception(exc)) from exc
        return PyodbcStatement(cursor)

    def close(self) -> None:
        self._connection.close()


class PyodbcDriver:
    """Driver backend that talks to the ODBC driver manager via pyodbc."""

    def __init__(self, *, login_timeout: int = 0) -> None:
        if not PYODBC_AVAILABLE:
            raise ConnectionError(
                "pyodbc not installed. Run: pip install pyodbc",
                hint="Install unixODBC and the DB2 CLI driver before pyodbc.",
            )
        self._login_timeout = login_timeout

    def connect(self, dsn: str, username: str | None, password: str | None) -> PyodbcConnection:
        kwargs: dict[str, object] = {"DSN": dsn, "autocommit": True, "readonly": True}
        if username is not None:
            kwargs["UID"] = username
        if password is not None:
            kwargs["PWD"] = password
        if self._login_timeout:
            kwargs["timeout"] = self._login_timeout
        try:
            connection = pyodbc.connect(**kwargs)
        except pyodbc.Error as exc:
            raise DriverError("SQLConnect", diagnostic_from_exception(exc)) from exc
        LOG.debug("Connected to data source", extra={"dsn": dsn})
        return PyodbcConnection(connection)

    def data_sources(self) -> Mapping[str, str]:
        return dict(pyodbc.dataSources())


@dataclass(slots=True)
class DemoTable:
    """In-memory remote table: column metadata plus rows of driver-native text."""

    columns: tuple[ColumnDescription, ...]
    rows: list[tuple[str | None, ...]] = field(default_factory=list)


DEMO_TABLES: Mapping[str, DemoTable] = {
    "test": DemoTable(
        columns=(
            ColumnDescription("ID", SQL_INTEGER, 11),
            ColumnDescription("NAME", SQL_VARCHAR, 20),
        ),
        rows=[("1", "name1")],
    ),
    "prices": DemoTable(
        columns=(
            ColumnDescription("ID", SQL_INTEGER, 11),
            ColumnDescription("AMOUNT", SQL_DECIMAL, 12),
            ColumnDescription("LABEL", SQL_VARCHAR, 32),
        ),
        rows=[
            ("1", "1234,56", "Widgets, small"),
            ("2", "0,5", None),
            ("3", None, "Gadgets"),
        ],
    ),
}

_DEMO_QUERY = re.compile(r"^\s*select\s+\*\s+from\s+([\w.]+)\s*;?\s*$", re.IGNORECASE)


class DemoStatement:
    """Cursor over a demo table."""

    def __init__(self, table: DemoTable) -> None:
        self._table = table
        self._position = -1
        self.closed = False

    def column_count(self) -> int:
        return len(self._table.columns)

    def describe_column(self, index: int) -> ColumnDescription:
        return self._table.columns[index]

    def fetch(self) -> bool:
        self._position += 1
        return self._position < len(self._table.rows)

    def get_text(self, index: int) -> TextValue:
        value = self._table.rows[self._position][index]
        if value is None:
            return "", SQL_NULL_DATA
        return value, len(value)

    def close(self) -> None:
        self.closed = True


class DemoConnection:
    """Connection to the in-memory demo data source."""

    def __init__(self, driver: "DemoOdbcDriver", dsn: str) -> None:
        self._driver = driver
        self.dsn = dsn
        self.closed = False
        self.statements: list[DemoStatement] = []

    def execute(self, query: str) -> DemoStatement:
        if self.closed:
            raise DriverError("SQLExecDirect", Diagnostic(state="08003", message="Connection is closed"))
        self._driver.executed.append(query)
        failure = self._driver.pop_failure()
        if failure is not None:
            raise DriverError("SQLExecDirect", failure)
        match = _DEMO_QUERY.match(query)
        if not match:
            raise DriverError(
                "SQLExecDirect",
                Diagnostic(state="42601", native_code=-104, message=f"Unexpected token in {query!r}"),
            )
        table = self._driver.tables.get(match.group(1).lower())
        if table is None:
            raise DriverError(
                "SQLExecDirect",
                Diagnostic(state="42S02", native_code=-204, message=f"{match.group(1)} is an undefined name"),
            )
        statement = DemoStatement(table)
        self.statements.append(statement)
        return statement

    def close(self) -> None:
        self.closed = True


class DemoOdbcDriver:
    """Stub driver serving preset tables, with scriptable execution failures."""

    def __init__(
        self,
        tables: Mapping[str, DemoTable] | None = None,
        *,
        credentials: Mapping[str, tuple[str, str]] | None = None,
    ) -> None:
        self.tables: dict[str, DemoTable] = {
            name.lower(): table for name, table in (tables if tables is not None else DEMO_TABLES).items()
        }
        self._credentials = dict(credentials or {})
        self._failures: list[Diagnostic] = []
        self.connections: list[DemoConnection] = []
        self.executed: list[str] = []

    def connect(self, dsn: str, username: str | None, password: str | None) -> DemoConnection:
        expected = self._credentials.get(dsn)
        if expected is not None and expected != (username, password):
            raise DriverError(
                "SQLConnect",
                Diagnostic(
                    state="08001",
                    native_code=-30082,
                    message=f"Security processing failed for user {username!r} on {dsn!r}",
                ),
            )
        connection = DemoConnection(self, dsn)
        self.connections.append(connection)
        return connection

    def data_sources(self) -> Mapping[str, str]:
        return {"DEMO": "In-memory demo data source"}

    def fail_next_executions(self, *native_codes: int, state: str = "08001") -> None:
        """Queue execution failures with the given native codes (testing helper)."""

        self._failures.extend(
            Diagnostic(state=state, native_code=code, message=f"Simulated failure {code}")
            for code in native_codes
        )

    def pop_failure(self) -> Diagnostic | None:
        if not self._failures:
            return None
        return self._failures.pop(0)


__all__ = [
    "DEMO_TABLES",
    "DemoConnection",
    "DemoOdbcDriver",
    "DemoStatement",
    "DemoTable",
    "OdbcConnection",
    "OdbcDriver",
    "OdbcStatement",
    "PYODBC_AVAILABLE",
    "PyodbcConnection",
    "PyodbcDriver",
    "PyodbcStatement",
    "TextValue",
    "diagnostic_from_exception",
]
