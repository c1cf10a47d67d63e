"""
String helpers shared by validators and the filter compiler.
"""

import csv
import re
from datetime import datetime
from typing import List

_INT_RE = re.compile(r"\+*(0|-?[1-9][0-9]*)")
_FLOAT_RE = re.compile(r"\+*-?(0|[1-9][0-9]*)(\.[0-9]*)?")

TRUE_STRINGS = ("1", "t", "true")
BOOL_STRINGS = TRUE_STRINGS + ("0", "f", "false")


def is_int_str(value: str) -> bool:
    """True for canonical integers: no leading zeros, optional leading '+'."""
    return _INT_RE.fullmatch(value) is not None


def is_float_str(value: str) -> bool:
    return _FLOAT_RE.fullmatch(value) is not None


def is_bool_str(value: str) -> bool:
    return value in BOOL_STRINGS


def get_bool_str(value: str) -> bool:
    return value in TRUE_STRINGS


def is_date_str(value: str, fmt: str = "%Y-%m-%d") -> bool:
    try:
        datetime.strptime(value, fmt)
    except (ValueError, TypeError):
        return False
    return True


def split_csv(value: str) -> List[str]:
    """Split on commas, keeping commas inside double quotes."""
    return next(csv.reader([value], delimiter=",", quotechar='"'), [])


def split_list(value: str) -> List[str]:
    return value.split(",")


def as_filter_str(value) -> str:
    """Render a scalar filter value the way it was typed in a query string."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
