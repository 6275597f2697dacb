"""Scan service: plays the host engine's part, planning and driving foreign scans."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable

from .acquire import ConnectionAcquirer
from .cache import ConnectionCache
from .catalog import Catalog
from .codec import DEFAULT_NUMERIC_FORMAT, NumericFormat
from .config import AppConfig, build_catalog, build_driver
from .driver import OdbcDriver
from .errors import FdwError
from .handler import FdwRoutine, fdw_handler
from .models import ForeignTable

LOG = logging.getLogger(__name__)

ServiceListener = Callable[["ServiceState"], None]
Dispatcher = Callable[[ServiceListener, "ServiceState"], None]


@dataclass(frozen=True, slots=True)
class ScanResult:
    """Rows produced by one complete scan of a foreign table."""

    table: str
    columns: tuple[str, ...]
    rows: tuple[tuple[object, ...], ...]
    status: str
    elapsed_ms: int
    attempts: int
    total_cost: float

    @property
    def row_count(self) -> int:
        return len(self.rows)


@dataclass(frozen=True, slots=True)
class ServiceState:
    """Snapshot published to listeners after every scan or cache change."""

    principal: str
    active_table: str | None
    last_result: ScanResult | None
    last_error: str | None
    cached_connections: int
    refreshed_at: datetime


class ScanService:
    """Runs scans through the callback routine table and tracks the latest outcome."""

    def __init__(
        self,
        catalog: Catalog,
        *,
        driver: OdbcDriver,
        principal: str,
        cache: ConnectionCache | None = None,
        numeric_format: NumericFormat = DEFAULT_NUMERIC_FORMAT,
        routine: FdwRoutine | None = None,
    ) -> None:
        self._catalog = catalog
        self._principal = principal
        self._acquirer = ConnectionAcquirer(driver, cache=cache)
        self._numeric_format = numeric_format
        self._routine = routine or fdw_handler()
        self._listeners: set[ServiceListener] = set()
        self._dispatch: Dispatcher = _call_listener
        self._state = ServiceState(
            principal=principal,
            active_table=None,
            last_result=None,
            last_error=None,
            cached_connections=len(self._acquirer.cache),
            refreshed_at=datetime.now(tz=timezone.utc),
        )

    @classmethod
    def from_config(cls, config: AppConfig, *, cache: ConnectionCache | None = None) -> ScanService:
        """Build catalog and driver from the app configuration."""

        return cls(
            build_catalog(config),
            driver=build_driver(config),
            principal=config.resolved_principal(),
            cache=cache,
            numeric_format=config.numeric_format(),
        )

    @property
    def tables(self) -> tuple[ForeignTable, ...]:
        """Foreign tables available in the catalog."""

        return self._catalog.tables

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def principal(self) -> str:
        return self._principal

    @property
    def cache(self) -> ConnectionCache:
        return self._acquirer.cache

    def scan(self, name: str) -> ScanResult:
        """Scan the foreign table to completion."""

        started = time.perf_counter()
        try:
            result = self._run_scan(name, started)
        except FdwError as exc:
            LOG.error("Scan of %s failed: %s", name, exc.message, extra={"table": name})
            self._update_state(active_table=name, last_result=None, last_error=str(exc))
            raise
        self._update_state(active_table=name, last_result=result, last_error=None)
        return result

    def clear_cache(self) -> int:
        """Close every cached connection."""

        closed = self._acquirer.cache.close_all()
        LOG.info("Closed %s cached connection(s)", closed)
        self._update_state()
        return closed

    def subscribe(self, listener: ServiceListener) -> Callable[[], None]:
        """Subscribe to state updates; returns an unsubscribe handle."""

        self._listeners.add(listener)
        listener(self._state)

        def _unsubscribe() -> None:
            self._listeners.discard(listener)

        return _unsubscribe

    def set_dispatcher(self, dispatcher: Dispatcher) -> None:
        """Route listener calls, e.g. back onto the UI thread when scans run in a worker."""

        self._dispatch = dispatcher

    def _run_scan(self, name: str, started: float) -> ScanResult:
        routine = self._routine
        relation = self._catalog.resolve(name, self._principal)
        table = relation.table
        size = routine.get_rel_size(table)
        path = routine.get_paths(table, size)[0]
        column_names = tuple(column.name for column in table.columns)
        routine.get_plan(table, path, column_names, ())
        scan = routine.begin_scan(relation, self._principal, self._acquirer, numeric_format=self._numeric_format)
        rows: list[tuple[object, ...]] = []
        try:
            if not column_names and scan.cursor is not None:
                column_names = tuple(column.name for column in scan.cursor.columns)
            for line in routine.explain(scan):
                LOG.debug(line)
            while (row := routine.iterate_scan(scan)) is not None:
                rows.append(row)
        finally:
            routine.end_scan(scan)
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        return ScanResult(
            table=name,
            columns=column_names,
            rows=tuple(rows),
            status=f"{len(rows)} row(s)",
            elapsed_ms=elapsed_ms,
            attempts=scan.attempts,
            total_cost=path.total_cost,
        )

    def _update_state(self, **updates: object) -> None:
        self._state = replace(
            self._state,
            **updates,
            cached_connections=len(self._acquirer.cache),
            refreshed_at=datetime.now(tz=timezone.utc),
        )
        for listener in tuple(self._listeners):
            self._dispatch(listener, self._state)


def _call_listener(listener: ServiceListener, state: ServiceState) -> None:
    listener(state)


__all__ = ["Dispatcher", "ScanResult", "ScanService", "ServiceListener", "ServiceState"]
