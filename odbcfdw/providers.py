"""Command palette providers for core app features."""

from __future__ import annotations

from textual.command import DiscoveryHit, Hit, Hits, Provider
from textual.types import IgnoreReturnCallbackType

from .session import ScanService


class TableScanProvider(Provider):
    """Expose foreign tables to the command palette."""

    async def search(self, query: str) -> Hits:
        service = self._scan_service
        if service is None:
            return
        matcher = self.matcher(query)
        for table in service.tables:
            match = matcher.match(table.name)
            if match > 0:
                yield Hit(
                    score=match,
                    match_display=f"Scan foreign table: {matcher.highlight(table.name)}",
                    command=self._build_callback(table.name),
                    help=f"Run the remote query of {table.name} on server {table.server}.",
                )

    async def discover(self) -> Hits:
        service = self._scan_service
        if service is None:
            return
        for table in service.tables:
            yield DiscoveryHit(
                display=f"Scan foreign table: {table.name}",
                command=self._build_callback(table.name),
                help=f"Run the remote query of {table.name} on server {table.server}.",
            )

    @property
    def _scan_service(self) -> ScanService | None:
        service = getattr(self.app, "scan_service", None)
        if isinstance(service, ScanService):
            return service
        return None

    def _build_callback(self, name: str) -> IgnoreReturnCallbackType:
        async def _run() -> None:
            scanner = getattr(self.app, "scan_table", None)
            if scanner is None:
                return
            scanner(name)

        return _run


class CacheClearProvider(Provider):
    """Expose an action that closes every cached connection."""

    _LABEL = "Close cached connections"

    async def search(self, query: str) -> Hits:
        if self._scan_service is None:
            return
        matcher = self.matcher(query)
        score = matcher.match(self._LABEL)
        if score > 0:
            yield Hit(
                score=score,
                match_display=matcher.highlight(self._LABEL),
                command=self._build_callback(),
                help="Force reauthentication on the next scan (Ctrl+L).",
            )

    async def discover(self) -> Hits:
        if self._scan_service is None:
            return
        yield DiscoveryHit(
            display=self._LABEL,
            command=self._build_callback(),
            help="Force reauthentication on the next scan (Ctrl+L).",
        )

    @property
    def _scan_service(self) -> ScanService | None:
        service = getattr(self.app, "scan_service", None)
        if isinstance(service, ScanService):
            return service
        return None

    def _build_callback(self) -> IgnoreReturnCallbackType:
        async def _run() -> None:
            service = self._scan_service
            if service is None:
                return
            service.clear_cache()

        return _run


__all__ = ["CacheClearProvider", "TableScanProvider"]
