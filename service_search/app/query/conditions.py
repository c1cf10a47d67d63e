"""
Filter condition builder for the Search service.

A filter value is split into list items when the rule allows lists, then
each item is matched against an ordered operator table. Items matching no
operator are collected into one equality/``IN`` condition.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List, Callable, Mapping, Tuple

from shared.errors import ConfigurationError
from shared.logging import get_logger
from shared.metrics import get_metrics_collector
from ..rules.models import Rule, RuleType, ConditionFragment, CompiledFilters
from ..rules.preparer import IMPLICIT_FIELDS
from ..rules.utils import (
    is_int_str, is_float_str, get_bool_str, split_csv, split_list, as_filter_str
)

logger = get_logger("search.conditions")


class ParamNames:
    """Placeholder names for one column: ``t.name`` gives ``:tname1``, ``:tname2``..."""

    def __init__(self, column: str):
        self.base = ":" + re.sub(r"[^0-9A-Za-z]", "", column)
        self.counter = 1

    def next(self) -> str:
        name = f"{self.base}{self.counter}"
        self.counter += 1
        return name


@dataclass
class Operation:
    """
    Right-hand side of a condition plus its bound values.

    ``standalone`` operations already contain their operands and replace the
    whole condition.
    """
    sql: str
    params: Dict[str, Any] = field(default_factory=dict)
    left: str = "{column}"
    standalone: bool = False

    def render(self, column: str) -> str:
        if self.standalone:
            return self.sql
        return self.left.format(column=column) + " " + self.sql


def bind_value(value: Any, rule: Rule) -> Any:
    """Convert a filter string to the value bound for the rule's filter type."""
    if rule.date or not isinstance(value, str):
        return value
    filter_type = rule.filter_type or rule.type
    if filter_type == RuleType.INTEGER and is_int_str(value):
        return int(value.lstrip("+"))
    if filter_type == RuleType.FLOAT and is_float_str(value):
        return float(value.lstrip("+"))
    return value


def _between_operands(rule: Rule, column: str) -> Tuple[str, str]:
    operand = rule.avoid_between_operand
    if isinstance(operand, tuple):
        return operand[0], operand[1]
    if isinstance(operand, str):
        return operand, operand
    return column, column


def _range(value: str, rule: Rule, names: ParamNames, column: str) -> Operation:
    low, high = value.split("|", 1)
    first, second = names.next(), names.next()
    params = {first: bind_value(low, rule), second: bind_value(high, rule)}
    if rule.avoid_between_operand:
        low_operand, high_operand = _between_operands(rule, column)
        return Operation(
            f"{first} <= {low_operand} AND {second} >= {high_operand}",
            params,
            standalone=True
        )
    return Operation(f"BETWEEN {first} AND {second}", params)


def _comparison(size: int):
    def build(value: str, rule: Rule, names: ParamNames, column: str) -> Operation:
        name = names.next()
        return Operation(f"{value[:size]} {name}", {name: bind_value(value[size:], rule)})
    return build


def _negation(value: str, rule: Rule, names: ParamNames, column: str) -> Operation:
    name = names.next()
    return Operation(f"<> {name}", {name: bind_value(value[1:], rule)})


def _wildcard_sides(value: str, rule: Rule) -> Tuple[bool, bool]:
    wildcard = rule.wildcard_allowed or (False, False)
    front, back = (wildcard, wildcard) if isinstance(wildcard, bool) else wildcard
    return bool(front) and value.startswith("%"), bool(back) and value.endswith("%")


def _wildcard(value: str, rule: Rule, names: ParamNames, column: str) -> Operation:
    leading, trailing = _wildcard_sides(value, rule)
    text = value[1 if leading else 0:len(value) - 1 if trailing else len(value)]
    text = ("%" if leading else "") + text.replace("%", "\\%") + ("%" if trailing else "")
    name = names.next()
    return Operation(
        f"LIKE UPPER(UNACCENT({name}))",
        {name: text},
        left="UPPER(UNACCENT({column}))"
    )


def _is_range(value: str, rule: Rule, single: bool) -> bool:
    return bool(rule.range_allowed) and "|" in value


def _is_inclusive(value: str, rule: Rule, single: bool) -> bool:
    prefix = value[:2]
    return (prefix == "<=" and bool(rule.less_than_allowed)) or (prefix == ">=" and bool(rule.greater_than_allowed))


def _is_exclusive(value: str, rule: Rule, single: bool) -> bool:
    prefix = value[:1]
    return (prefix == "<" and bool(rule.less_than_allowed)) or (prefix == ">" and bool(rule.greater_than_allowed))


def _is_negation(value: str, rule: Rule, single: bool) -> bool:
    # Inside a list the "!" of the first item negates the whole IN instead
    return single and bool(rule.negation_allowed) and value.startswith("!")


def _is_wildcard(value: str, rule: Rule, single: bool) -> bool:
    return len(value) > 1 and any(_wildcard_sides(value, rule))


@dataclass(frozen=True)
class FilterOperator:
    """One entry of the operator table: a predicate and the operation it builds."""
    name: str
    matches: Callable[[str, Rule, bool], bool]
    build: Callable[[str, Rule, ParamNames, str], Operation]


FILTER_OPERATORS: Tuple[FilterOperator, ...] = (
    FilterOperator("range", _is_range, _range),
    FilterOperator("inclusive_comparison", _is_inclusive, _comparison(2)),
    FilterOperator("exclusive_comparison", _is_exclusive, _comparison(1)),
    FilterOperator("negation", _is_negation, _negation),
    FilterOperator("wildcard", _is_wildcard, _wildcard),
)


def match_operator(value: str, rule: Rule, single: bool = True) -> Optional[FilterOperator]:
    """First operator of the table accepting the value, if any."""
    for operator in FILTER_OPERATORS:
        if operator.matches(value, rule, single):
            return operator
    return None


def _equality(values: List[str], rule: Rule, names: ParamNames, as_list: bool = False) -> Operation:
    values = list(values)
    negated = bool(rule.negation_allowed) and values[0].startswith("!")
    if negated:
        values[0] = values[0][1:]
    name = names.next()
    if len(values) == 1 and not as_list:
        return Operation(f"{'<>' if negated else '='} {name}", {name: bind_value(values[0], rule)})
    return Operation(
        f"{'NOT IN' if negated else 'IN'} ({name})",
        {name: [bind_value(value, rule) for value in values]}
    )


def _is_plain_string(rule: Rule) -> bool:
    return (rule.filter_type or rule.type) == RuleType.STRING and not rule.enum_values and not rule.date


def split_values(value: Any, rule: Rule) -> List[str]:
    """Split a raw filter value into list items according to the rule."""
    if isinstance(value, (list, tuple)):
        return [as_filter_str(item) for item in value]
    value = as_filter_str(value)
    if not rule.list_allowed:
        return [value]
    return split_csv(value) if _is_plain_string(rule) else split_list(value)


def _from_callback(values: List[str], rule: Rule) -> List[ConditionFragment]:
    callback = rule.condition_callback
    if not callable(callback):
        raise ConfigurationError(
            "Condition callback is not callable",
            details={"code": "internal.repository.non_callable_callback"}
        )
    result = callback(values[0] if len(values) == 1 else values, rule)
    if not result:
        return []
    if isinstance(result, ConditionFragment):
        return [result]
    if isinstance(result, Mapping) and result.get("cond"):
        return [ConditionFragment(result["cond"], dict(result.get("params") or {}))]
    raise ConfigurationError(
        "Condition callback returned an invalid value",
        details={"code": "internal.repository.invalid_callback_return", "type": type(result).__name__}
    )


def _from_template(values: List[str], column: str, rule: Rule, names: ParamNames) -> List[ConditionFragment]:
    template = rule.condition_template
    if "{OPERATION_VALUE}" not in template:
        if "{VALUE}" not in template:
            return [ConditionFragment(template)]
        name = names.next()
        bound = [bind_value(v, rule) for v in values]
        return [ConditionFragment(
            template.replace("{VALUE}", name),
            {name: bound[0] if len(bound) == 1 else bound}
        )]

    if len(values) > 1:
        name = names.next()
        operation = Operation(f"IN ({name})", {name: [bind_value(v, rule) for v in values]})
    else:
        operator = match_operator(values[0], rule)
        if operator is None:
            operation = _equality(values, rule, names)
        else:
            operation = operator.build(values[0], rule, names, column)

    if operation.standalone:
        return [ConditionFragment(operation.sql, operation.params)]
    return [ConditionFragment(template.replace("{OPERATION_VALUE}", operation.sql), operation.params)]


def build_conditions(
    value: Any,
    column: str,
    rule: Rule,
    names: Optional[ParamNames] = None
) -> List[ConditionFragment]:
    """
    Build the condition fragments of one filter value; several fragments are OR-combined.

    Pass the same ``names`` for every field sharing a placeholder base so
    their parameters never collide.
    """
    names = names or ParamNames(column)

    if (rule.filter_type or rule.type) == RuleType.BOOLEAN and not (rule.condition_template or rule.condition_callback):
        truth = value if isinstance(value, bool) else get_bool_str(as_filter_str(value).lower())
        return [ConditionFragment(f"{column} = {'true' if truth else 'false'}")]

    values = split_values(value, rule)
    if not values:
        return []

    if rule.condition_callback is not None:
        return _from_callback(values, rule)
    if rule.condition_template:
        return _from_template(values, column, rule, names)

    if rule.enum_values:
        operation = _equality(values, rule, names, as_list=True)
        return [ConditionFragment(operation.render(column), operation.params)]

    fragments: List[ConditionFragment] = []
    bucket: List[str] = []
    single = len(values) == 1
    for item in values:
        operator = match_operator(item, rule, single)
        if operator is None:
            bucket.append(item)
            continue
        operation = operator.build(item, rule, names, column)
        fragments.append(ConditionFragment(operation.render(column), operation.params))

    if bucket:
        operation = _equality(bucket, rule, names)
        fragments.append(ConditionFragment(operation.render(column), operation.params))
    return fragments


def column_for(name: str, rule: Rule, default_alias: str = "t") -> str:
    """Column expression a field filters and sorts on."""
    if rule.column_expression:
        return rule.column_expression
    return (rule.alias or default_alias).rstrip(".") + "." + name


def compile_filters(data: Mapping[str, Any], rules: Mapping[str, Rule], default_alias: str = "t") -> CompiledFilters:
    """Compile every filter present in ``data`` into condition fragments."""
    compiled = CompiledFilters()
    names: Dict[str, ParamNames] = {}
    with get_metrics_collector("search").time_operation("filter_compile_duration_seconds"):
        for name, value in data.items():
            if name in IMPLICIT_FIELDS or value is None:
                continue
            rule = rules.get(name)
            if rule is None or rule.ignore_filter:
                continue
            column = column_for(name, rule, default_alias)
            counter = ParamNames(column)
            counter = names.setdefault(counter.base, counter)
            fragments = build_conditions(value, column, rule, counter)
            if not fragments:
                continue
            compiled.conditions[name] = fragments
            for fragment in fragments:
                compiled.params.update(fragment.params)

    logger.debug(
        "Filters compiled",
        fields={name: len(fragments) for name, fragments in compiled.conditions.items()},
        param_count=len(compiled.params)
    )
    return compiled
