"""Shared dataclasses and ODBC constants used across the wrapper modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

OptionMap = Mapping[str, str]

# ODBC SQL type codes (sql.h / sqlext.h).
SQL_CHAR = 1
SQL_NUMERIC = 2
SQL_DECIMAL = 3
SQL_INTEGER = 4
SQL_SMALLINT = 5
SQL_FLOAT = 6
SQL_REAL = 7
SQL_DOUBLE = 8
SQL_DATETIME = 9
SQL_VARCHAR = 12
SQL_TYPE_DATE = 91
SQL_TYPE_TIME = 92
SQL_TYPE_TIMESTAMP = 93
SQL_BIGINT = -5
SQL_WVARCHAR = -9

NUMERIC_SQL_TYPES = frozenset({SQL_DECIMAL, SQL_NUMERIC, SQL_REAL, SQL_DOUBLE, SQL_FLOAT})

SQL_NULL_DATA = -1
RETRY_ANY_ERROR = -1
DSN_MAX_LEN = 128


@dataclass(frozen=True, slots=True)
class ColumnDefinition:
    """Declared column of a foreign table as the host engine sees it."""

    name: str
    type_name: str = "text"


@dataclass(frozen=True, slots=True)
class ForeignServer:
    """Remote server definition (one ODBC data source)."""

    name: str
    options: OptionMap = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ForeignTable:
    """Foreign table bound to a server and a remote query."""

    name: str
    server: str
    columns: tuple[ColumnDefinition, ...] = ()
    options: OptionMap = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class UserMapping:
    """Credentials used by a principal when talking to a server."""

    principal: str
    server: str
    options: OptionMap = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ScanConfig:
    """Options resolved once at scan start."""

    dsn: str | None
    username: str | None
    password: str | None
    query: str | None
    cached: str | None = None
    retry_code: int | None = None

    @property
    def caching(self) -> bool:
        return self.cached is not None


@dataclass(frozen=True, slots=True)
class ColumnDescription:
    """Column metadata reported by the driver for an executed statement."""

    name: str
    type_code: int
    display_size: int | None

    @property
    def is_numeric(self) -> bool:
        return self.type_code in NUMERIC_SQL_TYPES


__all__ = [
    "ColumnDefinition",
    "ColumnDescription",
    "DSN_MAX_LEN",
    "ForeignServer",
    "ForeignTable",
    "NUMERIC_SQL_TYPES",
    "OptionMap",
    "RETRY_ANY_ERROR",
    "SQL_BIGINT",
    "SQL_CHAR",
    "SQL_DATETIME",
    "SQL_DECIMAL",
    "SQL_DOUBLE",
    "SQL_FLOAT",
    "SQL_INTEGER",
    "SQL_NULL_DATA",
    "SQL_NUMERIC",
    "SQL_REAL",
    "SQL_SMALLINT",
    "SQL_TYPE_DATE",
    "SQL_TYPE_TIME",
    "SQL_TYPE_TIMESTAMP",
    "SQL_VARCHAR",
    "SQL_WVARCHAR",
    "ScanConfig",
    "UserMapping",
]
