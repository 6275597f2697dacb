"""Definitions of foreign servers, tables and user mappings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping

from .errors import ConfigurationError
from .models import ColumnDefinition, ForeignServer, ForeignTable, UserMapping
from .options import OptionScope, describe_options, validate_options

LOG = logging.getLogger(__name__)

PUBLIC = "public"


@dataclass(frozen=True, slots=True)
class ResolvedRelation:
    """Everything a scan needs to know about one foreign table."""

    table: ForeignTable
    server: ForeignServer
    mapping: UserMapping


class Catalog:
    """In-memory catalog; options are validated when objects are defined."""

    def __init__(self) -> None:
        self._servers: dict[str, ForeignServer] = {}
        self._tables: dict[str, ForeignTable] = {}
        self._mappings: dict[tuple[str, str], UserMapping] = {}

    @property
    def servers(self) -> tuple[ForeignServer, ...]:
        return tuple(self._servers.values())

    @property
    def tables(self) -> tuple[ForeignTable, ...]:
        return tuple(self._tables.values())

    @property
    def user_mappings(self) -> tuple[UserMapping, ...]:
        return tuple(self._mappings.values())

    def define_server(self, name: str, options: Mapping[str, str]) -> ForeignServer:
        validate_options(options, OptionScope.SERVER)
        server = ForeignServer(name=name, options=dict(options))
        self._servers[name] = server
        LOG.debug("Defined server %s (%s)", name, describe_options(options))
        return server

    def define_table(
        self,
        name: str,
        server: str,
        columns: Iterable[ColumnDefinition],
        options: Mapping[str, str],
    ) -> ForeignTable:
        self.server(server)
        validate_options(options, OptionScope.TABLE)
        table = ForeignTable(name=name, server=server, columns=tuple(columns), options=dict(options))
        self._tables[name] = table
        LOG.debug("Defined foreign table %s on %s", name, server)
        return table

    def define_user_mapping(self, principal: str, server: str, options: Mapping[str, str]) -> UserMapping:
        self.server(server)
        validate_options(options, OptionScope.USER_MAPPING)
        mapping = UserMapping(principal=principal, server=server, options=dict(options))
        self._mappings[(principal, server)] = mapping
        LOG.debug("Defined user mapping for %s on %s (%s)", principal, server, describe_options(options))
        return mapping

    def server(self, name: str) -> ForeignServer:
        try:
            return self._servers[name]
        except KeyError:
            raise ConfigurationError(f'server "{name}" does not exist') from None

    def table(self, name: str) -> ForeignTable:
        try:
            return self._tables[name]
        except KeyError:
            raise ConfigurationError(f'foreign table "{name}" does not exist') from None

    def user_mapping(self, principal: str, server: str) -> UserMapping:
        """Mapping for the principal, falling back to the public mapping."""

        mapping = self._mappings.get((principal, server)) or self._mappings.get((PUBLIC, server))
        if mapping is None:
            raise ConfigurationError(f'user mapping not found for "{principal}" on server "{server}"')
        return mapping

    def resolve(self, table_name: str, principal: str) -> ResolvedRelation:
        table = self.table(table_name)
        server = self.server(table.server)
        return ResolvedRelation(table=table, server=server, mapping=self.user_mapping(principal, server.name))


__all__ = ["Catalog", "PUBLIC", "ResolvedRelation"]
