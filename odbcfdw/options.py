"""Option whitelists, definition-time validation and scan option resolution."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from .errors import ConfigurationError
from .models import RETRY_ANY_ERROR, OptionMap, ScanConfig

LOG = logging.getLogger(__name__)

DSN = "dsn"
CACHED = "cached"
USERNAME = "username"
PASSWORD = "password"
QUERY = "sql_query"


class OptionScope(str, Enum):
    """Kind of object an option is attached to."""

    SERVER = "server"
    TABLE = "table"
    USER_MAPPING = "user_mapping"

    @property
    def label(self) -> str:
        return {
            OptionScope.SERVER: "foreign data server",
            OptionScope.TABLE: "foreign table",
            OptionScope.USER_MAPPING: "foreign user mapping",
        }[self]


@dataclass(frozen=True, slots=True)
class ValidOption:
    name: str
    scope: OptionScope
    required: bool


VALID_OPTIONS: tuple[ValidOption, ...] = (
    ValidOption(DSN, OptionScope.SERVER, True),
    ValidOption(CACHED, OptionScope.SERVER, False),
    ValidOption(QUERY, OptionScope.TABLE, True),
    ValidOption(USERNAME, OptionScope.USER_MAPPING, True),
    ValidOption(PASSWORD, OptionScope.USER_MAPPING, True),
)


def valid_option_names(scope: OptionScope) -> tuple[str, ...]:
    return tuple(option.name for option in VALID_OPTIONS if option.scope is scope)


def _hint(scope: OptionScope) -> str:
    names = ", ".join(valid_option_names(scope))
    return f"Valid options in this context are: {names or '<none>'}"


def validate_options(options: OptionMap, scope: OptionScope) -> None:
    """Reject unknown options and missing required ones for the given scope."""

    LOG.debug("Validating options", extra={"scope": scope.value})
    for name in options:
        known = next((option for option in VALID_OPTIONS if option.name == name), None)
        if known is not None and known.scope is scope:
            continue
        detail = " (option name is recognized but is invalid in this context)" if known else ""
        raise ConfigurationError(f'invalid option "{name}"{detail}', hint=_hint(scope))
    for option in VALID_OPTIONS:
        if option.scope is scope and option.required and option.name not in options:
            raise ConfigurationError(f"option is required: {option.name}", hint=_hint(scope))


_LEADING_INTEGER = re.compile(r"\s*([+-]?\d+)")


def parse_retry_code(cached: str | None) -> int | None:
    """Interpret the caching indicator as a retry code.

    The indicator is read like C ``atol``: a leading (optionally signed)
    integer, or 0 when the text does not start with one. 0 means "retry on
    any error" and is returned as ``RETRY_ANY_ERROR``.
    """

    if cached is None:
        return None
    match = _LEADING_INTEGER.match(cached)
    code = int(match.group(1)) if match else 0
    if code == 0:
        return RETRY_ANY_ERROR
    return code


def merge_options(*levels: OptionMap) -> dict[str, str]:
    """Concatenate option levels; the first level defining a key wins."""

    merged: dict[str, str] = {}
    for level in levels:
        for name, value in level.items():
            merged.setdefault(name, value)
    return merged


def resolve_scan_config(
    table_options: OptionMap,
    server_options: OptionMap,
    mapping_options: OptionMap,
) -> ScanConfig:
    """Resolve the per-scan configuration from table, server and user mapping options."""

    options = merge_options(table_options, server_options, mapping_options)
    cached = options.get(CACHED)
    return ScanConfig(
        dsn=options.get(DSN),
        username=options.get(USERNAME),
        password=options.get(PASSWORD),
        query=options.get(QUERY),
        cached=cached,
        retry_code=parse_retry_code(cached),
    )


def describe_options(options: Iterable[str]) -> str:
    """Comma separated option names, passwords never included."""

    return ", ".join(sorted(name for name in options if name != PASSWORD))


__all__ = [
    "CACHED",
    "DSN",
    "OptionScope",
    "PASSWORD",
    "QUERY",
    "USERNAME",
    "VALID_OPTIONS",
    "ValidOption",
    "describe_options",
    "merge_options",
    "parse_retry_code",
    "resolve_scan_config",
    "valid_option_names",
    "validate_options",
]
