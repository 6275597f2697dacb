"""Tests for the row builder."""

from __future__ import annotations

import datetime
from decimal import Decimal

import pytest

from odbcfdw.errors import RowBuildError
from odbcfdw.models import ColumnDefinition
from odbcfdw.rows import RowBuilder, input_function_for


def test_builds_typed_row() -> None:
    builder = RowBuilder(
        [
            ColumnDefinition("id", "integer"),
            ColumnDefinition("amount", "numeric(10,2)"),
            ColumnDefinition("rate", "double precision"),
            ColumnDefinition("active", "boolean"),
            ColumnDefinition("label", "varchar(32)"),
        ]
    )

    row = builder.build(["7", "1234.56", "0.25", "t", "Widgets, small"])

    assert row == (7, Decimal("1234.56"), 0.25, True, "Widgets, small")


def test_nulls_pass_through() -> None:
    builder = RowBuilder([ColumnDefinition("id", "integer"), ColumnDefinition("name", "text")])

    assert builder.build([None, None]) == (None, None)


def test_db2_datetime_formats_are_accepted() -> None:
    builder = RowBuilder(
        [
            ColumnDefinition("day", "date"),
            ColumnDefinition("at", "timestamp"),
            ColumnDefinition("clock", "time"),
        ]
    )

    row = builder.build(["2024-01-31", "2024-01-31-12.30.00.000000", "12.30.00"])

    assert row == (
        datetime.date(2024, 1, 31),
        datetime.datetime(2024, 1, 31, 12, 30),
        datetime.time(12, 30),
    )


def test_unknown_type_keeps_text() -> None:
    assert input_function_for("xml")("<a/>") == "<a/>"


def test_column_count_mismatch_is_rejected() -> None:
    builder = RowBuilder([ColumnDefinition("id", "integer")])

    with pytest.raises(RowBuildError, match="remote row has 2 column"):
        builder.build(["1", "name1"])


def test_invalid_input_names_the_column() -> None:
    builder = RowBuilder([ColumnDefinition("amount", "numeric")])

    with pytest.raises(RowBuildError) as excinfo:
        builder.build(["1234,56"])

    assert "amount" in excinfo.value.message
    assert '"1234,56"' in excinfo.value.message
