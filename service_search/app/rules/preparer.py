"""
Rule preparation for search endpoints.
"""

import threading
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from shared.logging import get_logger
from .models import Rule, RuleType, rules_from_dict
from .custom_validators import SearchValidator

IMPLICIT_FIELDS = ("limit", "offset", "orderBy")

logger = get_logger("search.preparer")


def _default(value, fallback=True):
    return fallback if value is None else value


def prepare_rule_for_search(rule: Rule, search_validator: Optional[SearchValidator] = None) -> Rule:
    """
    Annotate one rule with the filter defaults of its declared type.

    Prepared rules carry ``filter_type`` and are returned unchanged.
    """
    if rule.is_prepared:
        return rule

    filter_type = rule.type
    is_boolean = filter_type == RuleType.BOOLEAN
    wildcard = _default(rule.wildcard_allowed)
    if isinstance(wildcard, bool):
        wildcard = (wildcard, wildcard)

    changes = dict(
        filter_type=filter_type,
        type=RuleType.BOOLEAN if is_boolean else RuleType.STRING,
        # element types only apply to arrays; filter_type keeps the original
        element_type=None,
        wildcard_allowed=wildcard,
        list_allowed=_default(rule.list_allowed),
        range_allowed=_default(rule.range_allowed),
        greater_than_allowed=_default(rule.greater_than_allowed),
        less_than_allowed=_default(rule.less_than_allowed),
        negation_allowed=_default(rule.negation_allowed),
        sortable=_default(rule.sortable),
    )

    if search_validator is not None and rule.custom_validator is None:
        if rule.enum_values:
            changes["custom_validator"] = search_validator.validate_enum
        elif rule.date:
            changes["custom_validator"] = search_validator.validate_date
        elif filter_type == RuleType.STRING:
            changes["custom_validator"] = search_validator.validate_string
        elif filter_type == RuleType.INTEGER:
            changes["custom_validator"] = search_validator.validate_integer
        elif filter_type == RuleType.FLOAT:
            changes["custom_validator"] = search_validator.validate_float

    is_plain_string = filter_type == RuleType.STRING and not rule.enum_values and not rule.date
    if not is_plain_string:
        changes["wildcard_allowed"] = None
    if is_boolean or is_plain_string:
        changes["range_allowed"] = None
        changes["greater_than_allowed"] = None
        changes["less_than_allowed"] = None
    if is_boolean:
        changes["list_allowed"] = None

    return rule.copy(**changes)


def prepare_rules_for_search(
    rules: Mapping[str, Rule],
    search_validator: Optional[SearchValidator] = None
) -> Dict[str, Rule]:
    """Return a prepared copy of a rule map with limit, offset and orderBy added."""
    rules = rules_from_dict(rules)
    prepared: Dict[str, Rule] = {
        "limit": Rule(type=RuleType.INTEGER, label="limit"),
        "offset": Rule(type=RuleType.INTEGER, label="offset"),
    }

    for name, rule in rules.items():
        if name in IMPLICIT_FIELDS:
            prepared[name] = rule
        else:
            prepared[name] = prepare_rule_for_search(rule, search_validator)

    order_by = prepared.get("orderBy") or Rule(type=RuleType.STRING, label="orderBy")
    columns: Dict[str, Optional[str]] = {
        name: None
        for name, rule in prepared.items()
        if name not in IMPLICIT_FIELDS and rule.sortable
    }
    columns.update(order_by.columns or {})
    order_changes = {"columns": columns}
    if search_validator is not None and order_by.custom_validator is None:
        order_changes["custom_validator"] = search_validator.validate_order_by
    prepared["orderBy"] = order_by.copy(**order_changes)

    return prepared


class PreparedRules:
    """Rule map prepared once, on first use, for one endpoint."""

    def __init__(self, rules: Mapping[str, Rule], search_validator: Optional[SearchValidator] = None):
        self._raw = rules
        self._search_validator = search_validator
        self._prepared: Optional[Mapping[str, Rule]] = None
        self._lock = threading.Lock()

    def get(self) -> Mapping[str, Rule]:
        if self._prepared is None:
            with self._lock:
                if self._prepared is None:
                    prepared = prepare_rules_for_search(self._raw, self._search_validator)
                    logger.info("Rules prepared for search", fields=list(prepared))
                    self._prepared = MappingProxyType(prepared)
        return self._prepared
