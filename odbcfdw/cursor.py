"""Cursor session: column buffers and row retrieval for one executed statement."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .codec import DEFAULT_NUMERIC_FORMAT, NumericFormat, decode_value
from .driver import OdbcStatement
from .errors import DriverError, PermanentQueryError

LOG = logging.getLogger(__name__)

_HINT = "Check query syntax"


@dataclass(frozen=True, slots=True)
class ColumnBuffer:
    """Per-column read metadata derived from the driver's description."""

    name: str
    type_code: int
    buffer_size: int
    is_numeric: bool


class CursorSession:
    """Wraps an open statement; one per scan, closed at scan end."""

    def __init__(
        self,
        statement: OdbcStatement,
        columns: tuple[ColumnBuffer, ...],
        *,
        query: str,
        numeric_format: NumericFormat = DEFAULT_NUMERIC_FORMAT,
    ) -> None:
        self._statement = statement
        self._columns = columns
        self._query = query
        self._numeric_format = numeric_format
        self._values: list[str | None] = [None] * len(columns)
        self._closed = False

    @classmethod
    def describe(
        cls,
        statement: OdbcStatement,
        *,
        query: str,
        numeric_format: NumericFormat = DEFAULT_NUMERIC_FORMAT,
    ) -> "CursorSession":
        """Describe the result columns of an executed statement."""

        try:
            count = statement.column_count()
        except DriverError as exc:
            _log_diagnostic("SQLNumResultCols", exc)
            raise PermanentQueryError(
                f"Cannot retrieve number of columns {query}",
                query=query,
                diagnostic=exc.diagnostic,
                hint=_HINT,
            ) from exc
        LOG.debug("Number of columns: %s", count)
        columns: list[ColumnBuffer] = []
        for index in range(count):
            try:
                description = statement.describe_column(index)
            except DriverError as exc:
                _log_diagnostic("SQLDescribeCol", exc)
                raise PermanentQueryError(
                    f"Cannot retrieve column description for query {query}",
                    query=query,
                    diagnostic=exc.diagnostic,
                    hint=_HINT,
                ) from exc
            if not description.display_size or description.display_size <= 0:
                raise PermanentQueryError(
                    f"Column {description.name} reports no display size for query {query}",
                    query=query,
                    hint="The driver must report a positive display size for every column",
                )
            LOG.debug("Number of bytes for column %s : %s", description.name, description.display_size)
            columns.append(
                ColumnBuffer(
                    name=description.name,
                    type_code=description.type_code,
                    buffer_size=description.display_size,
                    is_numeric=description.is_numeric,
                )
            )
        return cls(statement, tuple(columns), query=query, numeric_format=numeric_format)

    @property
    def columns(self) -> tuple[ColumnBuffer, ...]:
        return self._columns

    @property
    def column_count(self) -> int:
        return len(self._columns)

    @property
    def closed(self) -> bool:
        return self._closed

    def fetch_row(self) -> list[str | None] | None:
        """Fetch the next row as text values, or ``None`` when the cursor is exhausted.

        The returned list is reused across calls; copy it to keep a row.
        """

        try:
            has_row = self._statement.fetch()
        except DriverError as exc:
            _log_diagnostic("SQLFetch", exc)
            raise PermanentQueryError(
                "Cannot fetch next row", query=self._query, diagnostic=exc.diagnostic, hint=_HINT
            ) from exc
        if not has_row:
            return None
        for index, column in enumerate(self._columns):
            try:
                text, indicator = self._statement.get_text(index)
            except DriverError as exc:
                _log_diagnostic("SQLGetData", exc)
                raise PermanentQueryError(
                    "Cannot get data for next column",
                    query=self._query,
                    diagnostic=exc.diagnostic,
                    hint=_HINT,
                ) from exc
            if indicator > column.buffer_size:
                LOG.debug("Value of column %s exceeds its display size", column.name)
            self._values[index] = decode_value(
                text,
                indicator,
                is_numeric=column.is_numeric,
                numeric_format=self._numeric_format,
            )
        return self._values

    def close(self) -> None:
        """Free the statement handle; safe to call more than once."""

        if self._closed:
            return
        self._closed = True
        try:
            self._statement.close()
        except Exception:
            LOG.warning("Failed to free statement handle", exc_info=True)


def _log_diagnostic(operation: str, exc: DriverError) -> None:
    LOG.warning(
        "The driver reported the following diagnostics while running %s: %s",
        operation,
        exc.diagnostic,
    )


__all__ = ["ColumnBuffer", "CursorSession"]
