"""Textual application entry point for odbcfdw."""

from __future__ import annotations

import logging
import threading
from functools import partial
from typing import Any, Callable

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.logging import TextualHandler
from textual.widgets import Footer, Header

from .config import AppConfig, load_config, save_config
from .errors import FdwError
from .providers import CacheClearProvider, TableScanProvider
from .session import ScanService, ServiceListener, ServiceState
from .widgets import ResultsPane, StatusBar, TableSidebar

LOG = logging.getLogger(__name__)


def _load_app_config() -> AppConfig:
    """Load configuration with a small wrapper for future overrides."""

    return load_config()


class OdbcFdwApp(App[None]):
    """Browse foreign tables and scan them through the wrapper."""

    COMMANDS = App.COMMANDS | {TableScanProvider, CacheClearProvider}
    CSS = """
    Screen {
        layout: vertical;
    }
    #content {
        layout: horizontal;
        height: 1fr;
    }
    #main-column {
        layout: vertical;
        padding: 1 2;
        height: 1fr;
        border-left: solid $surface-darken-1;
    }
    """

    BINDINGS = [
        ("ctrl+c", "quit", "Quit"),
        ("ctrl+r", "rescan", "Rescan table"),
        ("ctrl+l", "clear_cache", "Close cached connections"),
        ("ctrl+p", "command_palette", "Command Palette"),
    ]

    def __init__(self, service: ScanService | None = None) -> None:
        super().__init__()
        self._config = _load_app_config()
        self._service = service or ScanService.from_config(self._config)
        self._pending_notifications: list[tuple[str, str]] = []
        self._ui_thread = threading.get_ident()
        self._service.set_dispatcher(self._dispatch_to_ui)

    def compose(self) -> ComposeResult:
        """Compose the root layout."""

        yield Header(show_clock=True)
        sidebar = TableSidebar(self._service, on_select=self.scan_table)
        main_column = Container(ResultsPane(self._service), id="main-column")
        yield Horizontal(sidebar, main_column, id="content")
        yield StatusBar(self._service)
        yield Footer()

    async def on_mount(self) -> None:
        active = self._config.active_table
        if active and any(table.name == active for table in self._service.tables):
            self.scan_table(active, remember=False)
        self._flush_pending_notifications()

    def on_unmount(self) -> None:
        self._service.cache.close_all()

    @property
    def scan_service(self) -> ScanService:
        """Expose the scan service for providers and tests."""

        return self._service

    def action_rescan(self) -> None:
        active = self._service.state.active_table
        if active is None:
            self._safe_notify("Select a foreign table first.", severity="warning")
            return
        self.scan_table(active, remember=False)

    def action_clear_cache(self) -> None:
        closed = self._service.clear_cache()
        self._safe_notify(f"Closed {closed} cached connection(s).")

    def scan_table(self, name: str, *, remember: bool = True) -> None:
        """Scan the foreign table and persist it as the active table.

        While the app runs, the scan happens in a thread worker so blocking
        driver calls never stall the event loop.
        """

        if self.is_running:
            self.run_worker(
                partial(self._scan_table, name, remember),
                name=f"scan {name}",
                group="scan",
                thread=True,
            )
            return
        self._scan_table(name, remember)

    def _scan_table(self, name: str, remember: bool) -> None:
        try:
            result = self._service.scan(name)
        except FdwError as exc:
            self._safe_notify(f"{name}: {exc.message}", severity="error")
            return
        if remember and self._config.active_table != name:
            self._config = self._config.with_active_table(name)
            save_config(self._config)
        self._safe_notify(f"{name}: {result.status}")

    def _dispatch_to_ui(self, listener: ServiceListener, state: ServiceState) -> None:
        self._on_ui_thread(listener, state)

    def _on_ui_thread(self, callback: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        if self.is_running and threading.get_ident() != self._ui_thread:
            self.call_from_thread(callback, *args, **kwargs)
        else:
            callback(*args, **kwargs)

    def _safe_notify(self, message: str, *, severity: str = "information") -> None:
        if self.is_running:
            try:
                self._on_ui_thread(self.notify, message, severity=severity)
            except Exception:
                LOG.exception("Failed to display notification", extra={"notification": message})
        else:
            self._pending_notifications.append((message, severity))

    def _flush_pending_notifications(self) -> None:
        if not self._pending_notifications:
            return
        pending = list(self._pending_notifications)
        self._pending_notifications.clear()
        for message, severity in pending:
            try:
                self.notify(message, severity=severity)
            except Exception:
                LOG.exception("Failed to display queued notification", extra={"notification": message})


def main() -> None:
    """Invoke the Textual application."""

    config = _load_app_config()
    logging.basicConfig(level=config.log_level.upper(), handlers=[TextualHandler()])
    OdbcFdwApp().run()


if __name__ == "__main__":
    main()
