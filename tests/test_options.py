"""Tests for option validation and scan option resolution."""

from __future__ import annotations

import pytest

from odbcfdw.errors import ConfigurationError
from odbcfdw.models import RETRY_ANY_ERROR
from odbcfdw.options import (
    OptionScope,
    describe_options,
    merge_options,
    parse_retry_code,
    resolve_scan_config,
    valid_option_names,
    validate_options,
)


def test_valid_option_names_per_scope() -> None:
    assert valid_option_names(OptionScope.SERVER) == ("dsn", "cached")
    assert valid_option_names(OptionScope.TABLE) == ("sql_query",)
    assert valid_option_names(OptionScope.USER_MAPPING) == ("username", "password")


@pytest.mark.parametrize(
    ("options", "scope"),
    [
        ({"dsn": "SAMPLE"}, OptionScope.SERVER),
        ({"dsn": "SAMPLE", "cached": "-1"}, OptionScope.SERVER),
        ({"sql_query": "select * from test"}, OptionScope.TABLE),
        ({"username": "db2inst1", "password": "secret"}, OptionScope.USER_MAPPING),
    ],
)
def test_validate_accepts_complete_option_sets(options: dict[str, str], scope: OptionScope) -> None:
    validate_options(options, scope)


def test_validate_rejects_unknown_option() -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        validate_options({"dsn": "SAMPLE", "port": "50000"}, OptionScope.SERVER)

    assert excinfo.value.message == 'invalid option "port"'
    assert excinfo.value.hint == "Valid options in this context are: dsn, cached"


def test_validate_rejects_option_from_another_scope() -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        validate_options({"sql_query": "select 1", "dsn": "SAMPLE"}, OptionScope.TABLE)

    assert excinfo.value.message == 'invalid option "dsn" (option name is recognized but is invalid in this context)'
    assert excinfo.value.hint == "Valid options in this context are: sql_query"


def test_validate_reports_missing_required_option() -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        validate_options({"username": "db2inst1"}, OptionScope.USER_MAPPING)

    assert excinfo.value.message == "option is required: password"


def test_validate_requires_dsn_for_server() -> None:
    with pytest.raises(ConfigurationError, match="option is required: dsn"):
        validate_options({"cached": "0"}, OptionScope.SERVER)


@pytest.mark.parametrize(
    ("cached", "expected"),
    [
        (None, None),
        ("0", RETRY_ANY_ERROR),
        ("-1", RETRY_ANY_ERROR),
        ("5000", 5000),
        ("-30081", -30081),
        ("  42abc", 42),
        ("yes", RETRY_ANY_ERROR),
        ("", RETRY_ANY_ERROR),
    ],
)
def test_parse_retry_code(cached: str | None, expected: int | None) -> None:
    assert parse_retry_code(cached) == expected


def test_merge_options_first_level_wins() -> None:
    merged = merge_options({"dsn": "TABLE"}, {"dsn": "SERVER", "cached": "0"}, {"username": "u"})

    assert merged == {"dsn": "TABLE", "cached": "0", "username": "u"}


def test_resolve_scan_config_collects_all_levels() -> None:
    config = resolve_scan_config(
        {"sql_query": "select * from test"},
        {"dsn": "SAMPLE", "cached": "5000"},
        {"username": "db2inst1", "password": "secret"},
    )

    assert config.dsn == "SAMPLE"
    assert config.query == "select * from test"
    assert config.username == "db2inst1"
    assert config.password == "secret"
    assert config.caching is True
    assert config.retry_code == 5000


def test_resolve_scan_config_without_cached_disables_retry() -> None:
    config = resolve_scan_config({"sql_query": "q"}, {"dsn": "SAMPLE"}, {})

    assert config.caching is False
    assert config.retry_code is None
    assert config.username is None


def test_describe_options_hides_password() -> None:
    assert describe_options({"username": "u", "password": "p"}) == "username"
