"""Process-wide cache of authenticated connections keyed by (dsn, principal).

Connections handed out by the acquirer carry their ownership in their type:
``ScanOwnedConnection`` belongs to one scan and is released when the scan
ends, ``CacheOwnedConnection`` belongs to the cache and is only closed when
the cache evicts it. Cache operations are serialized by a single lock so
concurrent scans cannot lose entries or reuse an evicted connection.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from .driver import OdbcConnection
from .models import DSN_MAX_LEN

LOG = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ScanOwnedConnection:
    """Connection opened for a single scan; released at scan end."""

    dsn: str
    connection: OdbcConnection

    def release(self) -> None:
        """Disconnect the connection."""

        _close_quietly(self.connection, self.dsn)


@dataclass(frozen=True, slots=True)
class CacheOwnedConnection:
    """Connection owned by the cache; only eviction closes it."""

    dsn: str
    principal: str
    connection: OdbcConnection


AcquiredConnection = ScanOwnedConnection | CacheOwnedConnection


def cache_key(dsn: str) -> str:
    """Data source names are keyed on their first DSN_MAX_LEN - 1 characters."""

    return dsn[: DSN_MAX_LEN - 1]


class ConnectionCache:
    """Lock-guarded registry of live connections."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[tuple[str, str], CacheOwnedConnection] = {}

    def find(self, dsn: str, principal: str) -> CacheOwnedConnection | None:
        """Return the cached connection for the pair, if any."""

        with self._lock:
            entry = self._entries.get((cache_key(dsn), principal))
        if entry is not None:
            LOG.debug("Connection data received from cache", extra={"dsn": dsn, "principal": principal})
        return entry

    def insert(self, dsn: str, principal: str, connection: OdbcConnection) -> CacheOwnedConnection:
        """Register the connection, replacing (and closing) any previous one for the pair."""

        entry = CacheOwnedConnection(dsn=cache_key(dsn), principal=principal, connection=connection)
        with self._lock:
            previous = self._entries.get((entry.dsn, principal))
            self._entries[(entry.dsn, principal)] = entry
        LOG.debug("Add connection data to cache", extra={"dsn": dsn, "principal": principal})
        if previous is not None and previous.connection is not connection:
            LOG.info("Replacing cached connection", extra={"dsn": dsn, "principal": principal})
            _close_quietly(previous.connection, previous.dsn)
        return entry

    def adopt(self, dsn: str, principal: str, connection: OdbcConnection) -> CacheOwnedConnection:
        """Register a freshly opened connection unless the pair is already cached.

        When another scan cached a connection for the pair in the meantime, that
        entry is kept and the fresh connection is closed, so a connection in use
        is never replaced underneath its scan.
        """

        candidate = CacheOwnedConnection(dsn=cache_key(dsn), principal=principal, connection=connection)
        with self._lock:
            entry = self._entries.setdefault((candidate.dsn, principal), candidate)
        if entry is candidate:
            LOG.debug("Add connection data to cache", extra={"dsn": dsn, "principal": principal})
        elif entry.connection is not connection:
            LOG.info("Connection cached concurrently, closing the new one", extra={"dsn": dsn, "principal": principal})
            _close_quietly(connection, candidate.dsn)
        return entry

    def remove(self, connection: OdbcConnection) -> int:
        """Evict every entry holding the connection and close it; returns the number evicted."""

        with self._lock:
            keys = [key for key, entry in self._entries.items() if entry.connection is connection]
            evicted = [self._entries.pop(key) for key in keys]
        if evicted:
            _close_quietly(connection, evicted[0].dsn)
            LOG.debug("Connection removed from cache", extra={"dsn": evicted[0].dsn, "count": len(evicted)})
        return len(evicted)

    def close_all(self) -> int:
        """Evict and close every cached connection."""

        with self._lock:
            evicted = list(self._entries.values())
            self._entries.clear()
        for entry in evicted:
            _close_quietly(entry.connection, entry.dsn)
        return len(evicted)

    def entries(self) -> tuple[CacheOwnedConnection, ...]:
        with self._lock:
            return tuple(self._entries.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 2:
            return False
        dsn, principal = key
        with self._lock:
            return (cache_key(str(dsn)), principal) in self._entries


def _close_quietly(connection: OdbcConnection, dsn: str) -> None:
    try:
        connection.close()
    except Exception:
        LOG.warning("Failed to close connection", exc_info=True, extra={"dsn": dsn})


CONNECTION_CACHE = ConnectionCache()


__all__ = [
    "AcquiredConnection",
    "CONNECTION_CACHE",
    "CacheOwnedConnection",
    "ConnectionCache",
    "ScanOwnedConnection",
    "cache_key",
]
