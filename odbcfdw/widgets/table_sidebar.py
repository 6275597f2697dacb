"""Sidebar listing the foreign tables defined in the catalog."""

from __future__ import annotations

from typing import Callable

from textual import on
from textual.app import ComposeResult
from textual.containers import Container
from textual.widgets import Label, ListItem, ListView, Static

from odbcfdw.session import ScanService, ServiceState


class TableSidebar(Container):
    """Foreign tables with their server; selecting one scans it."""

    DEFAULT_CSS = """
    TableSidebar {
        width: 28;
        min-width: 22;
        border-right: solid $surface-darken-1;
        padding: 1;
        height: 1fr;
        background: $surface-darken-2;
    }

    TableSidebar .sidebar-heading {
        text-style: bold;
        margin-bottom: 1;
    }

    #table-list {
        height: 1fr;
        border: round $primary 30%;
        margin-bottom: 1;
    }

    #table-list .active {
        text-style: bold;
    }

    #table-summary {
        padding-top: 1;
        border-top: solid $surface-darken-1;
        color: $text-muted;
        min-height: 4;
    }
    """

    def __init__(self, service: ScanService, *, on_select: Callable[[str], None]) -> None:
        super().__init__(id="table-sidebar")
        self._service = service
        self._on_select = on_select
        self._items: dict[str, _TableListItem] = {}
        self._summary: Static | None = None
        self._unsubscribe: Callable[[], None] | None = None

    def compose(self) -> ComposeResult:
        yield Static("Foreign tables", classes="sidebar-heading")
        items = [_TableListItem(table.name, table.server) for table in self._service.tables]
        self._items = {item.table_name: item for item in items}
        yield ListView(*items, id="table-list")
        self._summary = Static("", id="table-summary")
        yield self._summary

    async def on_mount(self) -> None:
        self._unsubscribe = self._service.subscribe(self._handle_service_update)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def table_names(self) -> tuple[str, ...]:
        return tuple(self._items)

    @on(ListView.Selected, "#table-list")
    def _handle_table_selected(self, event: ListView.Selected) -> None:
        item = event.item
        if isinstance(item, _TableListItem):
            self._on_select(item.table_name)

    def _handle_service_update(self, state: ServiceState) -> None:
        for name, item in self._items.items():
            item.set_class(name == state.active_table, "active")
        if not self._summary:
            return
        if state.active_table is None:
            self._summary.update("Select a table to scan it.")
            return
        table = next((t for t in self._service.tables if t.name == state.active_table), None)
        if table is None:
            self._summary.update(state.active_table)
            return
        columns = ", ".join(f"{column.name} {column.type_name}" for column in table.columns) or "—"
        self._summary.update(f"Server: {table.server}\nColumns: {columns}")


class _TableListItem(ListItem):
    def __init__(self, table_name: str, server: str) -> None:
        super().__init__(Label(f"{table_name}  [dim]@{server}[/dim]"))
        self.table_name = table_name


__all__ = ["TableSidebar"]
