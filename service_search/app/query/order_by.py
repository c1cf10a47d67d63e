"""
Order-by compiler for the Search service.
"""

from typing import List, Mapping, Optional

from shared.errors import ConfigurationError
from ..rules.models import Rule
from ..rules.preparer import IMPLICIT_FIELDS
from .conditions import column_for

DIRECTIONS = ("ASC", "DESC")


def compile_order_by(raw: Optional[str], rules: Mapping[str, Rule], default_alias: str = "t") -> List[str]:
    """
    Turn ``field1|ASC,field2|DESC,field3`` into ordering expressions.

    Fields outside the rule map must be in the ``orderBy`` columns allow-list,
    which may map them to a real column.
    """
    if not raw:
        return []
    default_alias = default_alias.rstrip(".")
    order_rule = rules.get("orderBy")
    allowed = (order_rule.columns if order_rule is not None else None) or {}

    expressions: List[str] = []
    for item in raw.split(","):
        name, _, direction = item.partition("|")
        direction = (direction or "ASC").upper()
        if direction not in DIRECTIONS:
            raise ConfigurationError("Invalid sort direction", details={"field": name, "direction": direction})

        rule = rules.get(name)
        if rule is not None and name not in IMPLICIT_FIELDS:
            if rule.sort_expression:
                inverse = "DESC" if direction == "ASC" else "ASC"
                expressions.append(
                    rule.sort_expression
                    .replace("{DIRECTION}", direction)
                    .replace("{INVERSE_DIRECTION}", inverse)
                )
                continue
            expression = column_for(name, rule, default_alias)
        elif name in allowed:
            expression = allowed[name] or f"{default_alias}.{name}"
        else:
            raise ConfigurationError("Field is not sortable", details={"field": name})

        expressions.append(f"{expression} {direction}")

    return expressions


def order_by_clause(raw: Optional[str], rules: Mapping[str, Rule], default_alias: str = "t") -> Optional[str]:
    """Ordering expressions joined for an ORDER BY clause, or None."""
    return ", ".join(compile_order_by(raw, rules, default_alias)) or None
