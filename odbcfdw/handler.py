"""Callback routine table handed to the host query engine, plus planner callbacks."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Mapping, Sequence

from .acquire import ConnectionAcquirer
from .catalog import ResolvedRelation
from .codec import DEFAULT_NUMERIC_FORMAT, NumericFormat
from .models import ForeignTable
from .options import OptionScope, validate_options
from .scan import ForeignScan

LOG = logging.getLogger(__name__)

STARTUP_COST = 25.0


@dataclass(frozen=True, slots=True)
class RelSize:
    """Planner estimate for the foreign relation."""

    rows: float
    tuples: float


@dataclass(frozen=True, slots=True)
class ForeignPath:
    """The single access path offered to the planner."""

    rows: float
    startup_cost: float
    total_cost: float
    pathkeys: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ForeignPlan:
    """Plan node: nothing is pushed down, every clause is checked locally."""

    relation: str
    target_list: tuple[str, ...]
    local_quals: tuple[object, ...]


def get_rel_size(table: ForeignTable) -> RelSize:
    LOG.debug("get_rel_size", extra={"table": table.name})
    return RelSize(rows=0.0, tuples=0.0)


def estimate_costs(size: RelSize) -> tuple[float, float]:
    """Startup and total cost of scanning the relation."""

    return STARTUP_COST, size.rows + STARTUP_COST


def get_paths(table: ForeignTable, size: RelSize) -> list[ForeignPath]:
    startup_cost, total_cost = estimate_costs(size)
    return [ForeignPath(rows=size.rows, startup_cost=startup_cost, total_cost=total_cost)]


def get_plan(
    table: ForeignTable,
    path: ForeignPath,
    target_list: Sequence[str],
    scan_clauses: Sequence[object],
) -> ForeignPlan:
    return ForeignPlan(relation=table.name, target_list=tuple(target_list), local_quals=tuple(scan_clauses))


def analyze(table: ForeignTable) -> bool:
    """Sampling is not supported."""

    return False


def begin_scan(
    relation: ResolvedRelation,
    principal: str,
    acquirer: ConnectionAcquirer,
    *,
    numeric_format: NumericFormat = DEFAULT_NUMERIC_FORMAT,
) -> ForeignScan:
    scan = ForeignScan(relation, principal, acquirer, numeric_format=numeric_format)
    scan.begin()
    return scan


def iterate_scan(scan: ForeignScan) -> tuple[object, ...] | None:
    return scan.iterate()


def rescan(scan: ForeignScan) -> None:
    scan.rescan()


def end_scan(scan: ForeignScan) -> None:
    scan.end()


def explain_scan(scan: ForeignScan) -> list[str]:
    return scan.explain()


@dataclass(frozen=True, slots=True)
class FdwRoutine:
    """Callbacks the host engine invokes while planning and executing a scan."""

    begin_scan: Callable[..., ForeignScan]
    iterate_scan: Callable[[ForeignScan], tuple[object, ...] | None]
    rescan: Callable[[ForeignScan], None]
    end_scan: Callable[[ForeignScan], None]
    explain: Callable[[ForeignScan], list[str]]
    get_rel_size: Callable[[ForeignTable], RelSize]
    get_paths: Callable[[ForeignTable, RelSize], list[ForeignPath]]
    get_plan: Callable[[ForeignTable, ForeignPath, Sequence[str], Sequence[object]], ForeignPlan]
    analyze: Callable[[ForeignTable], bool]


def fdw_handler() -> FdwRoutine:
    """Return the callback routine table."""

    return FdwRoutine(
        begin_scan=begin_scan,
        iterate_scan=iterate_scan,
        rescan=rescan,
        end_scan=end_scan,
        explain=explain_scan,
        get_rel_size=get_rel_size,
        get_paths=get_paths,
        get_plan=get_plan,
        analyze=analyze,
    )


def fdw_validator(options: Mapping[str, str], scope: OptionScope) -> None:
    """Validate the options given to a server, table or user mapping."""

    validate_options(options, scope)


__all__ = [
    "FdwRoutine",
    "ForeignPath",
    "ForeignPlan",
    "RelSize",
    "STARTUP_COST",
    "analyze",
    "begin_scan",
    "end_scan",
    "estimate_costs",
    "explain_scan",
    "fdw_handler",
    "fdw_validator",
    "get_paths",
    "get_plan",
    "get_rel_size",
    "iterate_scan",
    "rescan",
]
