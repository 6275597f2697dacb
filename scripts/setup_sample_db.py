"""Utility that launches a sample DB2 Docker container for odbcfdw."""

from __future__ import annotations

import argparse
import subprocess
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from odbcfdw.config import (
    CONFIG_FILE,
    ColumnConfig,
    ForeignServerConfig,
    ForeignTableConfig,
    UserMappingConfig,
    load_config,
    save_config,
)

DEFAULT_CONTAINER = "odbcfdw-sample-db2"
DEFAULT_PORT = 50000
DEFAULT_PASSWORD = "odbcfdw"
DEFAULT_DB = "TESTDB"
DEFAULT_USER = "db2inst1"
DEFAULT_DSN = "ODBCFDW_SAMPLE"
DOCKER_IMAGE = "icr.io/db2_community/db2"
SERVER_NAME = "docker-db2"


def run(cmd: list[str], *, check: bool = True, **kwargs) -> subprocess.CompletedProcess[str]:
    print("$", " ".join(cmd))
    return subprocess.run(cmd, check=check, text=True, **kwargs)


def container_exists(name: str) -> bool:
    result = subprocess.run(
        ["docker", "ps", "-a", "--filter", f"name={name}", "--format", "{{.ID}}"],
        text=True,
        capture_output=True,
    )
    return bool(result.stdout.strip())


def start_container(name: str, port: int, password: str, database: str, user: str) -> None:
    if container_exists(name):
        print(f"Container '{name}' already exists. Reusing it.")
        run(["docker", "start", name], check=False)
    else:
        run(
            [
                "docker",
                "run",
                "-d",
                "--privileged",
                "--name",
                name,
                "-e",
                "LICENSE=accept",
                "-e",
                f"DB2INSTANCE={user}",
                "-e",
                f"DB2INST1_PASSWORD={password}",
                "-e",
                f"DBNAME={database}",
                "-p",
                f"{port}:50000",
                DOCKER_IMAGE,
            ]
        )
    wait_for_start(name)


def wait_for_start(name: str, retries: int = 90, delay: float = 5.0) -> None:
    for attempt in range(retries):
        result = subprocess.run(["docker", "logs", name], text=True, capture_output=True)
        if "Setup has completed" in result.stdout:
            return
        time.sleep(delay)
    print("Warning: DB2 did not report a completed setup; continuing anyway.")


def seed_data(name: str, database: str, user: str) -> None:
    statements = [
        f"db2 connect to {database}",
        'db2 "CREATE TABLE test (id INTEGER NOT NULL, name VARCHAR(20))"',
        "db2 \"INSERT INTO test VALUES (1, 'name1')\"",
        'db2 "CREATE TABLE prices (id INTEGER NOT NULL, amount DECIMAL(10,2), label VARCHAR(32))"',
        "db2 \"INSERT INTO prices VALUES (1, 1234.56, 'Widgets, small'), (2, 0.5, NULL)\"",
        "db2 connect reset",
    ]
    run(["docker", "exec", name, "su", "-", user, "-c", " ; ".join(statements)], check=False)


def update_config(dsn: str, user: str, password: str) -> None:
    config = load_config()
    if any(server.name == SERVER_NAME for server in config.servers):
        print(f"Server '{SERVER_NAME}' already present in config; leaving as-is.")
        return
    servers = list(config.servers) + [
        ForeignServerConfig(name=SERVER_NAME, options={"dsn": dsn, "cached": "-30081"}),
    ]
    tables = list(config.tables) + [
        ForeignTableConfig(
            name="db2_test",
            server=SERVER_NAME,
            columns=[ColumnConfig(name="id", type="integer"), ColumnConfig(name="name", type="text")],
            options={"sql_query": "select * from test"},
        ),
        ForeignTableConfig(
            name="db2_prices",
            server=SERVER_NAME,
            columns=[
                ColumnConfig(name="id", type="integer"),
                ColumnConfig(name="amount", type="numeric"),
                ColumnConfig(name="label", type="text"),
            ],
            options={"sql_query": "select * from prices"},
        ),
    ]
    mappings = list(config.user_mappings) + [
        UserMappingConfig(server=SERVER_NAME, options={"username": user, "password": password}),
    ]
    config = config.model_copy(
        update={"driver": "pyodbc", "servers": servers, "tables": tables, "user_mappings": mappings}
    )
    save_config(config)
    print(f"Added '{SERVER_NAME}' server, tables and user mapping to {CONFIG_FILE}.")


def odbc_ini_snippet(dsn: str, port: int, database: str) -> str:
    return "\n".join(
        [
            f"[{dsn}]",
            "Driver = DB2",
            f"Database = {database}",
            "Hostname = localhost",
            f"Port = {port}",
            "Protocol = TCPIP",
        ]
    )


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--container", default=DEFAULT_CONTAINER, help="Docker container name")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Host port to expose DB2 on")
    parser.add_argument("--password", default=DEFAULT_PASSWORD, help="Instance owner password")
    parser.add_argument("--database", default=DEFAULT_DB, help="Database name to create")
    parser.add_argument("--user", default=DEFAULT_USER, help="Instance owner")
    parser.add_argument("--dsn", default=DEFAULT_DSN, help="ODBC data source name to register")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    try:
        start_container(args.container, args.port, args.password, args.database, args.user)
        seed_data(args.container, args.database, args.user)
    except FileNotFoundError:
        print("Docker is not installed or not on PATH.")
        return 1
    update_config(args.dsn, args.user, args.password)
    print("Sample database is ready. Add this data source to odbc.ini:\n")
    print(odbc_ini_snippet(args.dsn, args.port, args.database))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
