"""Host-side row builder: text values to typed tuples by declared column type."""

from __future__ import annotations

import datetime
import decimal
from typing import Callable, Mapping, Sequence

from .errors import RowBuildError
from .models import ColumnDefinition

InputFunction = Callable[[str], object]

_TRUE = {"t", "true", "y", "yes", "on", "1"}
_FALSE = {"f", "false", "n", "no", "off", "0"}


def _parse_bool(text: str) -> bool:
    token = text.strip().lower()
    if token in _TRUE:
        return True
    if token in _FALSE:
        return False
    raise ValueError(f"invalid boolean {text!r}")


def _parse_decimal(text: str) -> decimal.Decimal:
    try:
        return decimal.Decimal(text.strip())
    except decimal.InvalidOperation as exc:
        raise ValueError(f"invalid numeric {text!r}") from exc


def _parse_timestamp(text: str) -> datetime.datetime:
    # DB2 renders timestamps as 2024-01-31-12.30.00.000000
    value = text.strip()
    if len(value) >= 19 and value[10] == "-" and value[13] == ".":
        value = f"{value[:10]} {value[11:13]}:{value[14:16]}:{value[17:]}"
    return datetime.datetime.fromisoformat(value)


def _parse_time(text: str) -> datetime.time:
    value = text.strip()
    if ":" not in value:
        value = value.replace(".", ":", 2)
    return datetime.time.fromisoformat(value)


INPUT_FUNCTIONS: Mapping[str, InputFunction] = {
    "smallint": lambda text: int(text.strip()),
    "integer": lambda text: int(text.strip()),
    "int": lambda text: int(text.strip()),
    "int2": lambda text: int(text.strip()),
    "int4": lambda text: int(text.strip()),
    "int8": lambda text: int(text.strip()),
    "bigint": lambda text: int(text.strip()),
    "numeric": _parse_decimal,
    "decimal": _parse_decimal,
    "real": lambda text: float(text.strip()),
    "float4": lambda text: float(text.strip()),
    "float8": lambda text: float(text.strip()),
    "float": lambda text: float(text.strip()),
    "double precision": lambda text: float(text.strip()),
    "boolean": _parse_bool,
    "bool": _parse_bool,
    "date": lambda text: datetime.date.fromisoformat(text.strip()),
    "timestamp": _parse_timestamp,
    "time": _parse_time,
}


def input_function_for(type_name: str) -> InputFunction:
    """Input function for a declared type; unknown types keep the text."""

    base = type_name.strip().lower().split("(", 1)[0].strip()
    return INPUT_FUNCTIONS.get(base, str)


class RowBuilder:
    """Builds typed rows for a foreign table from remote text values."""

    def __init__(self, columns: Sequence[ColumnDefinition]) -> None:
        self._columns = tuple(columns)
        self._inputs = tuple(input_function_for(column.type_name) for column in self._columns)

    @property
    def columns(self) -> tuple[ColumnDefinition, ...]:
        return self._columns

    def build(self, values: Sequence[str | None]) -> tuple[object, ...]:
        if len(values) != len(self._columns):
            raise RowBuildError(
                f"remote row has {len(values)} column(s), table declares {len(self._columns)}",
                hint="Make the foreign table columns match the query's result columns",
            )
        row: list[object] = []
        for column, parse, value in zip(self._columns, self._inputs, values):
            if value is None:
                row.append(None)
                continue
            try:
                row.append(parse(value))
            except ValueError as exc:
                raise RowBuildError(
                    f'invalid input syntax for type {column.type_name}: "{value}" (column {column.name})'
                ) from exc
        return tuple(row)


__all__ = ["INPUT_FUNCTIONS", "InputFunction", "RowBuilder", "input_function_for"]
