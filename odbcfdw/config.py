"""App configuration loading helpers."""

from __future__ import annotations

import getpass
import json
import logging
from pathlib import Path
from typing import Literal

import tomllib

from pydantic import BaseModel, Field, ValidationError

from .catalog import Catalog
from .codec import NumericFormat
from .driver import DEMO_TABLES, DemoOdbcDriver, DemoTable, OdbcDriver, PyodbcDriver
from .models import SQL_VARCHAR, ColumnDefinition, ColumnDescription

CONFIG_FILE = Path.home() / ".config" / "odbcfdw" / "config.toml"

LOG = logging.getLogger(__name__)


class LayoutState(BaseModel):
    """Persisted layout hints for the TUI."""

    sidebar_width: int | None = None


class ColumnConfig(BaseModel):
    """Declared column of a foreign table."""

    name: str
    type: str = "text"


class ForeignServerConfig(BaseModel):
    """Foreign server entry stored in config.toml."""

    name: str
    options: dict[str, str] = Field(default_factory=dict)


class ForeignTableConfig(BaseModel):
    """Foreign table entry stored in config.toml."""

    name: str
    server: str
    columns: list[ColumnConfig] = Field(default_factory=list)
    options: dict[str, str] = Field(default_factory=dict)


class UserMappingConfig(BaseModel):
    """User mapping entry; ``user = "public"`` applies to every principal."""

    server: str
    user: str = "public"
    options: dict[str, str] = Field(default_factory=dict)


class DemoColumnConfig(BaseModel):
    name: str
    sql_type: int = SQL_VARCHAR
    display_size: int = 255


class DemoTableConfig(BaseModel):
    """Extra table served by the demo driver.

    TOML has no null, so cells equal to ``null_value`` are served as SQL NULL.
    """

    name: str
    columns: list[DemoColumnConfig] = Field(default_factory=list)
    rows: list[list[str]] = Field(default_factory=list)
    null_value: str = "\\N"


class AppConfig(BaseModel):
    """Shape of the application configuration file."""

    driver: Literal["pyodbc", "demo"] = "demo"
    principal: str | None = None
    log_level: str = "WARNING"
    login_timeout: int = 0
    decimal_separator: str = ","
    servers: list[ForeignServerConfig] = Field(default_factory=lambda: list(_default_servers()))
    tables: list[ForeignTableConfig] = Field(default_factory=lambda: list(_default_tables()))
    user_mappings: list[UserMappingConfig] = Field(default_factory=lambda: list(_default_user_mappings()))
    demo_tables: list[DemoTableConfig] = Field(default_factory=list)
    active_table: str | None = None
    layout: LayoutState = Field(default_factory=LayoutState)

    def resolved_principal(self) -> str:
        """Principal scans run as; defaults to the operating system user."""

        return self.principal or getpass.getuser()

    def numeric_format(self) -> NumericFormat:
        return NumericFormat(separator=self.decimal_separator)

    def with_active_table(self, name: str) -> AppConfig:
        """Return a copy with the active table updated."""

        return self.model_copy(update={"active_table": name})

    def with_layout(self, **updates: object) -> AppConfig:
        """Return a copy with layout state changes applied."""

        layout = self.layout.model_copy(update=updates)
        return self.model_copy(update={"layout": layout})


def load_config() -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing or invalid."""

    try:
        data = _read_config_file()
    except FileNotFoundError:
        return AppConfig()
    except (tomllib.TOMLDecodeError, OSError):
        LOG.warning("Cannot read %s, using defaults", CONFIG_FILE, exc_info=True)
        return AppConfig()
    try:
        return AppConfig.model_validate(data)
    except ValidationError:
        LOG.warning("Invalid configuration in %s, using defaults", CONFIG_FILE, exc_info=True)
        return AppConfig()


def save_config(config: AppConfig) -> None:
    """Persist configuration to disk."""

    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    lines: list[str] = [
        f"driver = {_quote(config.driver)}",
        f"log_level = {_quote(config.log_level)}",
        f"login_timeout = {config.login_timeout}",
        f"decimal_separator = {_quote(config.decimal_separator)}",
    ]
    if config.principal:
        lines.append(f"principal = {_quote(config.principal)}")
    if config.active_table:
        lines.append(f"active_table = {_quote(config.active_table)}")
    if config.layout.sidebar_width is not None:
        lines.append("")
        lines.append("[layout]")
        lines.append(f"sidebar_width = {config.layout.sidebar_width}")
    for server in config.servers:
        lines.append("")
        lines.append("[[servers]]")
        lines.append(f"name = {_quote(server.name)}")
        lines.append(f"options = {_inline_table(server.options)}")
    for table in config.tables:
        lines.append("")
        lines.append("[[tables]]")
        lines.append(f"name = {_quote(table.name)}")
        lines.append(f"server = {_quote(table.server)}")
        columns = ", ".join(_inline_table({"name": col.name, "type": col.type}) for col in table.columns)
        lines.append(f"columns = [{columns}]")
        lines.append(f"options = {_inline_table(table.options)}")
    for mapping in config.user_mappings:
        lines.append("")
        lines.append("[[user_mappings]]")
        lines.append(f"server = {_quote(mapping.server)}")
        lines.append(f"user = {_quote(mapping.user)}")
        lines.append(f"options = {_inline_table(mapping.options)}")
    for demo in config.demo_tables:
        lines.append("")
        lines.append("[[demo_tables]]")
        lines.append(f"name = {_quote(demo.name)}")
        columns = ", ".join(
            f"{{name = {_quote(col.name)}, sql_type = {col.sql_type}, display_size = {col.display_size}}}"
            for col in demo.columns
        )
        lines.append(f"columns = [{columns}]")
        rows = ", ".join("[" + ", ".join(_quote(value) for value in row) + "]" for row in demo.rows)
        lines.append(f"rows = [{rows}]")
        lines.append(f"null_value = {_quote(demo.null_value)}")
    CONFIG_FILE.write_text("\n".join(lines) + "\n")


def build_catalog(config: AppConfig) -> Catalog:
    """Define every configured object; invalid options raise ``ConfigurationError``."""

    catalog = Catalog()
    for server in config.servers:
        catalog.define_server(server.name, server.options)
    for table in config.tables:
        catalog.define_table(
            table.name,
            table.server,
            [ColumnDefinition(name=column.name, type_name=column.type) for column in table.columns],
            table.options,
        )
    for mapping in config.user_mappings:
        catalog.define_user_mapping(mapping.user, mapping.server, mapping.options)
    return catalog


def build_driver(config: AppConfig) -> OdbcDriver:
    """Instantiate the configured driver backend."""

    if config.driver == "pyodbc":
        return PyodbcDriver(login_timeout=config.login_timeout)
    tables: dict[str, DemoTable] = dict(DEMO_TABLES)
    for demo in config.demo_tables:
        tables[demo.name] = DemoTable(
            columns=tuple(
                ColumnDescription(name=col.name, type_code=col.sql_type, display_size=col.display_size)
                for col in demo.columns
            ),
            rows=[tuple(None if value == demo.null_value else value for value in row) for row in demo.rows],
        )
    return DemoOdbcDriver(tables)


def _read_config_file() -> dict[str, object]:
    with CONFIG_FILE.open("rb") as handle:
        raw = tomllib.load(handle)
    return raw if isinstance(raw, dict) else {}


def _quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def _inline_table(values: dict[str, str]) -> str:
    if not values:
        return "{}"
    return "{ " + ", ".join(f"{_quote(key)} = {_quote(value)}" for key, value in values.items()) + " }"


def _default_servers() -> tuple[ForeignServerConfig, ...]:
    """Demo server shown on first run before config is customized."""

    return (ForeignServerConfig(name="demo", options={"dsn": "DEMO", "cached": "0"}),)


def _default_tables() -> tuple[ForeignTableConfig, ...]:
    return (
        ForeignTableConfig(
            name="test",
            server="demo",
            columns=[ColumnConfig(name="id", type="integer"), ColumnConfig(name="name", type="text")],
            options={"sql_query": "select * from test"},
        ),
        ForeignTableConfig(
            name="prices",
            server="demo",
            columns=[
                ColumnConfig(name="id", type="integer"),
                ColumnConfig(name="amount", type="numeric"),
                ColumnConfig(name="label", type="text"),
            ],
            options={"sql_query": "select * from prices"},
        ),
    )


def _default_user_mappings() -> tuple[UserMappingConfig, ...]:
    return (UserMappingConfig(server="demo", options={"username": "demo", "password": "demo"}),)


__all__ = [
    "AppConfig",
    "CONFIG_FILE",
    "ColumnConfig",
    "DemoColumnConfig",
    "DemoTableConfig",
    "ForeignServerConfig",
    "ForeignTableConfig",
    "LayoutState",
    "UserMappingConfig",
    "build_catalog",
    "build_driver",
    "load_config",
    "save_config",
]
