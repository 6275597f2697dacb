"""Scan orchestration: the retry protocol around query execution and the scan lifecycle."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .acquire import ConnectionAcquirer
from .cache import AcquiredConnection, ScanOwnedConnection
from .catalog import ResolvedRelation
from .codec import DEFAULT_NUMERIC_FORMAT, NumericFormat
from .cursor import CursorSession
from .driver import OdbcStatement
from .errors import ConnectionError, DriverError, FdwError, PermanentQueryError, TransientQueryError
from .models import RETRY_ANY_ERROR, ScanConfig
from .options import resolve_scan_config
from .rows import RowBuilder

LOG = logging.getLogger(__name__)

MAX_ATTEMPTS = 2


class ScanState(str, Enum):
    """Lifecycle states of a foreign scan."""

    START = "start"
    ACQUIRING = "acquiring"
    EXECUTING = "executing"
    RETRYING = "retrying"
    READY = "ready"
    FAILED = "failed"
    FINISHED = "finished"


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Decides whether an execution failure licenses another attempt."""

    retry_code: int | None

    @property
    def enabled(self) -> bool:
        return self.retry_code is not None

    def should_retry(self, native_code: int) -> bool:
        if self.retry_code is None:
            return False
        if self.retry_code in (RETRY_ANY_ERROR, 0):
            return True
        return native_code == self.retry_code


class ForeignScan:
    """One scan over a foreign table, from begin to end."""

    def __init__(
        self,
        relation: ResolvedRelation,
        principal: str,
        acquirer: ConnectionAcquirer,
        *,
        numeric_format: NumericFormat = DEFAULT_NUMERIC_FORMAT,
        max_attempts: int = MAX_ATTEMPTS,
    ) -> None:
        self._relation = relation
        self._principal = principal
        self._acquirer = acquirer
        self._numeric_format = numeric_format
        self._max_attempts = max_attempts
        self._state = ScanState.START
        self._attempts = 0
        self._config: ScanConfig | None = None
        self._connection: AcquiredConnection | None = None
        self._cursor: CursorSession | None = None
        columns = relation.table.columns
        self._row_builder = RowBuilder(columns) if columns else None

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def attempts(self) -> int:
        """Number of acquire/execute attempts made by ``begin``."""

        return self._attempts

    @property
    def config(self) -> ScanConfig | None:
        return self._config

    @property
    def connection(self) -> AcquiredConnection | None:
        return self._connection

    @property
    def cursor(self) -> CursorSession | None:
        return self._cursor

    def begin(self) -> None:
        """Resolve options, run the retry protocol and describe the result columns."""

        self._log_data_sources()
        relation = self._relation
        config = resolve_scan_config(relation.table.options, relation.server.options, relation.mapping.options)
        self._config = config
        query = config.query or ""
        statement = self._execute_with_retry(config, query)
        try:
            self._cursor = CursorSession.describe(statement, query=query, numeric_format=self._numeric_format)
        except PermanentQueryError:
            self._transition(ScanState.FAILED)
            try:
                statement.close()
            except Exception:
                LOG.warning("Failed to free statement handle", exc_info=True)
            self._release_connection()
            raise

    def iterate(self) -> tuple[object, ...] | None:
        """Return the next row, or ``None`` at the end of data."""

        if self._cursor is None or self._state is not ScanState.READY:
            raise FdwError(f"scan of {self._relation.table.name} is not ready ({self._state.value})")
        try:
            values = self._cursor.fetch_row()
            if values is None:
                return None
            if self._row_builder is None:
                return tuple(values)
            return self._row_builder.build(values)
        except FdwError:
            self._transition(ScanState.FAILED)
            raise

    def rescan(self) -> None:
        """Re-execution is not supported; the open cursor keeps its position."""

        LOG.debug("Rescan requested for %s", self._relation.table.name)

    def end(self) -> None:
        """Release the cursor and close the connection unless the cache owns it."""

        if self._cursor is not None:
            self._cursor.close()
            self._cursor = None
        self._release_connection()
        if self._state is not ScanState.FAILED:
            self._transition(ScanState.FINISHED)

    def explain(self) -> list[str]:
        """No extra plan information is emitted."""

        return []

    def _execute_with_retry(self, config: ScanConfig, query: str) -> OdbcStatement:
        policy = RetryPolicy(config.retry_code)
        last_error: FdwError | None = None
        for attempt in range(1, self._max_attempts + 1):
            self._attempts = attempt
            self._transition(ScanState.ACQUIRING)
            try:
                handle = self._acquirer.acquire(config, self._principal)
            except ConnectionError:
                self._transition(ScanState.FAILED)
                raise
            self._transition(ScanState.EXECUTING)
            try:
                statement = handle.connection.execute(query)
            except DriverError as exc:
                last_error = self._handle_execute_failure(handle, exc, policy)
                if isinstance(last_error, TransientQueryError) and attempt < self._max_attempts:
                    self._transition(ScanState.RETRYING)
                    continue
                break
            self._connection = handle
            self._transition(ScanState.READY)
            return statement
        self._transition(ScanState.FAILED)
        raise PermanentQueryError(
            f"Cannot execute query {query}",
            query=query,
            diagnostic=last_error.diagnostic if last_error else None,
            hint="Check query syntax",
        ) from last_error

    def _handle_execute_failure(
        self,
        handle: AcquiredConnection,
        exc: DriverError,
        policy: RetryPolicy,
    ) -> FdwError:
        diagnostic = exc.diagnostic
        native = exc.native_code
        LOG.warning(
            "The driver reported the following diagnostics while running %s: %s",
            "Error while executing query",
            diagnostic,
            extra={"table": self._relation.table.name, "attempt": self._attempts},
        )
        failure: FdwError
        if not policy.enabled:
            LOG.debug("Not cached, failed")
            failure = PermanentQueryError("no retry policy configured", diagnostic=diagnostic)
        else:
            self._acquirer.cache.remove(handle.connection)
            if policy.should_retry(native):
                LOG.info("Native code %s valid for retry", native, extra={"table": self._relation.table.name})
                failure = TransientQueryError(f"native code {native} is retryable", diagnostic=diagnostic)
            else:
                LOG.debug("Native code %s not valid for retry, fail", native)
                failure = PermanentQueryError(
                    f"native code {native} does not match retry code {policy.retry_code}",
                    diagnostic=diagnostic,
                )
        if isinstance(handle, ScanOwnedConnection):
            handle.release()
        failure.__cause__ = exc
        return failure

    def _release_connection(self) -> None:
        connection = self._connection
        self._connection = None
        if isinstance(connection, ScanOwnedConnection):
            LOG.debug("Disconnect", extra={"dsn": connection.dsn})
            connection.release()
        elif connection is not None:
            LOG.debug("Do not disconnect, cached", extra={"dsn": connection.dsn})

    def _transition(self, state: ScanState) -> None:
        LOG.debug("Scan %s: %s -> %s", self._relation.table.name, self._state.value, state.value)
        self._state = state

    def _log_data_sources(self) -> None:
        if not LOG.isEnabledFor(logging.DEBUG):
            return
        try:
            sources = self._acquirer.driver.data_sources()
        except Exception:
            LOG.debug("Cannot list data sources", exc_info=True)
            return
        for name, description in sources.items():
            LOG.debug("%s - %s", name, description)


__all__ = ["ForeignScan", "MAX_ATTEMPTS", "RetryPolicy", "ScanState"]
