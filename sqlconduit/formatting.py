"""Value formatters used when binding typed parameters."""

import re
from datetime import date, datetime
from typing import Any, Union

import pandas as pd

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M:%S.%f"
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

_NUMERIC = re.compile(r'^\s*-?\d+(\.\d+)?\s*$')

_BYTE_UNITS = ("B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB", "ZiB", "YiB")
_BIT_UNITS = ("b", "Kib", "Mib", "Gib", "Tib", "Pib", "Eib", "Zib", "Yib")
_DECIMAL_BYTE_UNITS = ("B", "KB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB")
_DECIMAL_BIT_UNITS = ("b", "Kb", "Mb", "Gb", "Tb", "Pb", "Eb", "Zb", "Yb")


def to_timestamp(value: Any) -> pd.Timestamp:
    """Convert a loosely typed time value into a ``pandas.Timestamp``.

    Accepts ``None`` or ``"now"`` (current local time), epoch seconds given as
    a number or numeric string, ``datetime``/``date`` objects and any string
    pandas can parse.
    """
    if value is None or (isinstance(value, str) and value.strip().lower() in ("", "now")):
        return pd.Timestamp.now()
    if isinstance(value, bool):
        raise ValueError(f"Cannot interpret boolean {value!r} as a time value")
    if isinstance(value, (int, float)):
        return pd.Timestamp.fromtimestamp(value)
    if isinstance(value, str) and _NUMERIC.match(value):
        return pd.Timestamp.fromtimestamp(float(value))
    if isinstance(value, (datetime, date, pd.Timestamp)):
        return pd.Timestamp(value)
    return pd.Timestamp(str(value))


def format_time(value: Any, fmt: str = DATETIME_FORMAT) -> str:
    """Format a loosely typed time value with a ``strftime`` pattern."""
    return to_timestamp(value).strftime(fmt)


def format_bytes(value: Union[str, int, float], base: int = 1024, bits: bool = False) -> str:
    """Render a numeric byte count as a human readable size.

    Args:
        value: Number of bytes, possibly as a numeric string.
        base: 1024 for binary prefixes, 1000 for decimal ones.
        bits: Express the size in bits rather than bytes.

    Returns:
        Size such as ``"1.5 KiB"``.
    """
    if base not in (1000, 1024):
        raise ValueError(f"Unsupported base {base}, use 1000 or 1024")

    number = float(value)
    if bits:
        number *= 8
        units = _BIT_UNITS if base == 1024 else _DECIMAL_BIT_UNITS
    else:
        units = _BYTE_UNITS if base == 1024 else _DECIMAL_BYTE_UNITS

    index = 0
    while abs(number) >= base and index < len(units) - 1:
        number /= base
        index += 1

    return f"{round(number, 2):g} {units[index]}"


def sanitize_match(text: str) -> str:
    """Make free text safe for a boolean-mode ``MATCH ... AGAINST`` search.

    Keeps words and the full-text operators, dropping operators that are out
    of place, unbalanced quotes and unbalanced parentheses.
    """
    value = text.strip()
    value = re.sub(r'[^\w+\-<>~()"* ]', '', value)
    # prefix operators are only valid at the start of a word
    value = re.sub(r'(?<=[^ ])[+\-<>~]', '', value)
    value = re.sub(r'(?<=[^\w ])[*"]', '', value)
    value = re.sub(r'(\w)[*"](?=\w)', r'\1', value)
    value = re.sub(r'(?<=[^ ])\(', '', value)
    value = re.sub(r'(?<!\w)\)|\)(?! |$)', '', value)

    if value.count('"') % 2 != 0:
        value = value.replace('"', '')
    if value.count('(') != value.count(')'):
        value = re.sub(r'[()]', '', value)

    value = re.sub(r'[+\-<>~]+$', '', value)
    value = re.sub(r'^\*', '', value)

    if re.fullmatch(r'[+\-<>~()"*]+', value):
        return ''
    return value
