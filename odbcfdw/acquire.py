"""Connection acquisition: cached connection or fresh authentication."""

from __future__ import annotations

import logging

from .cache import CONNECTION_CACHE, AcquiredConnection, ConnectionCache, ScanOwnedConnection
from .driver import OdbcDriver
from .errors import ConnectionError, DriverError
from .models import ScanConfig

LOG = logging.getLogger(__name__)


class ConnectionAcquirer:
    """Hands out connections for scans, consulting the cache when caching is on."""

    def __init__(self, driver: OdbcDriver, *, cache: ConnectionCache | None = None) -> None:
        self._driver = driver
        self._cache = cache if cache is not None else CONNECTION_CACHE

    @property
    def driver(self) -> OdbcDriver:
        return self._driver

    @property
    def cache(self) -> ConnectionCache:
        return self._cache

    def acquire(self, config: ScanConfig, principal: str) -> AcquiredConnection:
        """Return a connection usable for statement execution.

        Authentication failures raise ``ConnectionError`` and are never
        retried here; the scan orchestrator decides what happens next.
        """

        dsn = config.dsn or ""
        if config.caching:
            cached = self._cache.find(dsn, principal)
            if cached is not None:
                return cached
        try:
            connection = self._driver.connect(dsn, config.username, config.password)
        except DriverError as exc:
            LOG.warning(
                "The driver reported diagnostics while connecting",
                extra={"dsn": dsn, "diagnostic": str(exc.diagnostic)},
            )
            raise ConnectionError(
                f"cannot connect to odbc dsn {dsn}",
                diagnostic=exc.diagnostic,
                hint="Check connection data or make sure that target database is online",
            ) from exc
        LOG.debug("Successfully connected to driver", extra={"dsn": dsn})
        if config.caching:
            return self._cache.adopt(dsn, principal, connection)
        return ScanOwnedConnection(dsn=dsn, connection=connection)


__all__ = ["ConnectionAcquirer"]
