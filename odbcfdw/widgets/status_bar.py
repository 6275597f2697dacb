"""Status bar widget that mirrors scan service information."""

from __future__ import annotations

from typing import Callable

from textual.widgets import Static

from odbcfdw.session import ScanService, ServiceState


class StatusBar(Static):
    """Compact status strip rendered above Textual's footer."""

    DEFAULT_CSS = """
    StatusBar {
        height: 1;
        padding: 0 1;
        background: $surface-darken-3;
        color: $text;
    }
    """

    def __init__(self, service: ScanService) -> None:
        super().__init__("", id="status-bar")
        self._service = service
        self._unsubscribe: Callable[[], None] | None = None

    async def on_mount(self) -> None:
        self._unsubscribe = self._service.subscribe(self._handle_service_update)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _handle_service_update(self, state: ServiceState) -> None:
        self.update(render_status(state))


def render_status(state: ServiceState) -> str:
    refreshed = state.refreshed_at.astimezone().strftime("%H:%M:%S")
    parts = [
        f"Principal: {state.principal}",
        f"Table: {state.active_table or '—'}",
        f"Cached connections: {state.cached_connections}",
    ]
    result = state.last_result
    if result is not None:
        parts.append(f"Rows: {result.row_count} ({result.elapsed_ms} ms, {result.attempts} attempt(s))")
    parts.append(f"Refreshed: {refreshed}")
    if state.last_error:
        reason = state.last_error.splitlines()[0][:80]
        parts.append(f"Error: {reason}")
    return " | ".join(parts)


__all__ = ["StatusBar", "render_status"]
