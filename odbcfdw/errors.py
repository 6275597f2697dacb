"""Exception hierarchy shared by the wrapper, the driver layer and the host."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """One driver diagnostic record (SQLSTATE, native error code, message)."""

    state: str = ""
    native_code: int = -1
    message: str = ""

    def __str__(self) -> str:
        return f"SQLSTATE:{self.state or '-----'} : {self.native_code} : {self.message}"


class FdwError(RuntimeError):
    """Base class for errors raised while defining or scanning foreign tables."""

    def __init__(
        self,
        message: str,
        *,
        diagnostic: Diagnostic | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.diagnostic = diagnostic
        self.hint = hint

    def __str__(self) -> str:
        parts = [self.message]
        if self.diagnostic is not None:
            parts.append(str(self.diagnostic))
        if self.hint:
            parts.append(f"HINT: {self.hint}")
        return "\n".join(parts)


class DriverError(FdwError):
    """Raised by driver implementations when an ODBC call does not succeed."""

    def __init__(self, operation: str, diagnostic: Diagnostic) -> None:
        super().__init__(f"{operation} failed", diagnostic=diagnostic)
        self.operation = operation

    @property
    def native_code(self) -> int:
        return self.diagnostic.native_code if self.diagnostic else -1


class ConfigurationError(FdwError):
    """Unknown or missing option, or a definition that cannot be resolved."""


class ConnectionError(FdwError):
    """Authentication against the data source failed."""


class TransientQueryError(FdwError):
    """Query failure whose native code matches the configured retry policy."""


class PermanentQueryError(FdwError):
    """Query, description or fetch failure that must abort the scan."""

    def __init__(
        self,
        message: str,
        *,
        query: str | None = None,
        diagnostic: Diagnostic | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, diagnostic=diagnostic, hint=hint)
        self.query = query


class RowBuildError(FdwError):
    """Remote text could not be converted to the declared column type."""


__all__ = [
    "ConfigurationError",
    "ConnectionError",
    "Diagnostic",
    "DriverError",
    "FdwError",
    "PermanentQueryError",
    "RowBuildError",
    "TransientQueryError",
]
