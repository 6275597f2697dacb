"""Results pane rendering the rows of the latest scan."""

from __future__ import annotations

from typing import Callable

from textual.app import ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Static

from odbcfdw.session import ScanResult, ScanService, ServiceState


class ResultsPane(Container):
    """Shows the last scan's rows and a one-line status."""

    DEFAULT_CSS = """
    ResultsPane {
        layout: vertical;
        border: round $primary 40%;
        padding: 1 2;
        height: 1fr;
        background: $surface;
    }

    ResultsPane .panel-title {
        text-style: bold;
    }

    #scan-status {
        color: $text-muted;
        margin-bottom: 1;
    }

    #scan-results {
        height: 1fr;
        border-top: solid $surface-darken-2;
    }
    """

    def __init__(self, service: ScanService, *, row_limit: int = 500) -> None:
        super().__init__(id="results-pane")
        self._service = service
        self._row_limit = row_limit
        self._title: Static | None = None
        self._status: Static | None = None
        self._table: DataTable | None = None
        self._unsubscribe: Callable[[], None] | None = None

    def compose(self) -> ComposeResult:
        yield Static("Scan results", classes="panel-title", id="scan-title")
        yield Static("No scan yet.", id="scan-status")
        yield DataTable(id="scan-results", zebra_stripes=True)

    async def on_mount(self) -> None:
        self._title = self.query_one("#scan-title", Static)
        self._status = self.query_one("#scan-status", Static)
        self._table = self.query_one("#scan-results", DataTable)
        self._table.cursor_type = "row"
        self._unsubscribe = self._service.subscribe(self._handle_service_update)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _handle_service_update(self, state: ServiceState) -> None:
        if state.last_error:
            self._set_status(f"✖ {state.last_error.splitlines()[0]}")
            self._render_result(None)
            return
        result = state.last_result
        if result is None:
            return
        if self._title:
            self._title.update(f"Scan results · {result.table}")
        self._set_status(f"✔ {result.status} · {result.elapsed_ms} ms · cost {result.total_cost:g}")
        self._render_result(result)

    def _render_result(self, result: ScanResult | None) -> None:
        if not self._table:
            return
        self._table.clear(columns=True)
        if not result or not result.columns:
            return
        self._table.add_columns(*result.columns)
        for row in result.rows[: self._row_limit]:
            self._table.add_row(*(format_cell(value) for value in row))

    def _set_status(self, message: str) -> None:
        if self._status:
            self._status.update(message)


def format_cell(value: object) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    return str(value)


__all__ = ["ResultsPane", "format_cell"]
