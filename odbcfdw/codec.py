"""Conversion of retrieved column text into values for the row builder."""

from __future__ import annotations

from dataclasses import dataclass

from .models import SQL_NULL_DATA


@dataclass(frozen=True, slots=True)
class NumericFormat:
    """Locale decimal separator and the separator the host expects."""

    separator: str = ","
    target: str = "."


DEFAULT_NUMERIC_FORMAT = NumericFormat()


def normalize_numeric_text(text: str, numeric_format: NumericFormat = DEFAULT_NUMERIC_FORMAT) -> str:
    """Rewrite every locale separator to the host separator, e.g. "1234,56" -> "1234.56"."""

    if not numeric_format.separator or numeric_format.separator == numeric_format.target:
        return text
    return text.replace(numeric_format.separator, numeric_format.target)


def decode_value(
    text: str,
    indicator: int,
    *,
    is_numeric: bool,
    numeric_format: NumericFormat = DEFAULT_NUMERIC_FORMAT,
) -> str | None:
    """Turn one (text, indicator) pair into the row builder's input.

    The null indicator wins over whatever text the driver left behind.
    """

    if indicator == SQL_NULL_DATA:
        return None
    if is_numeric:
        return normalize_numeric_text(text, numeric_format)
    return text


__all__ = ["DEFAULT_NUMERIC_FORMAT", "NumericFormat", "decode_value", "normalize_numeric_text"]
