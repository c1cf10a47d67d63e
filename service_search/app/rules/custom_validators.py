"""
Built-in custom validators.

Custom validators share one signature: ``(field, data, rule)``. They return
nothing and raise ``FieldValidationException`` when the value is invalid.
``SearchValidator`` checks filter strings against the operator grammar the
condition builder understands, so a value that passes here always compiles.
"""

from typing import Any, Mapping, List

from shared.errors import FieldValidationException
from .models import Rule, RuleType
from .utils import is_int_str, is_float_str, is_date_str, split_csv, split_list, as_filter_str

DEFAULT_DATE_FORMAT = "%Y-%m-%d"
ORDER_DIRECTIONS = ("ASC", "DESC")


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or value == []


class SearchValidator:
    """Validators for search request parameters."""

    def __init__(self, prefix: str = "request.", date_format: str = DEFAULT_DATE_FORMAT):
        self.prefix = prefix
        self.date_format = date_format

    def _invalid(self) -> FieldValidationException:
        return FieldValidationException(self.prefix + "validator.invalid_format")

    def _values(self, value: Any, rule: Rule, csv_split: bool = False) -> List[str]:
        value = as_filter_str(value)
        if not rule.list_allowed:
            return [value]
        values = split_csv(value) if csv_split else split_list(value)
        if not values:
            raise self._invalid()
        return values

    def validate_enum(self, field: str, data: Mapping[str, Any], rule: Rule) -> None:
        value = data.get(field)
        if _is_blank(value):
            return
        allowed = {as_filter_str(v) for v in rule.enum_values or ()}
        for index, item in enumerate(self._values(value, rule)):
            # Only the first value may negate the whole list
            if index == 0 and rule.negation_allowed and item.startswith("!"):
                item = item[1:]
            if item not in allowed:
                raise self._invalid()

    def validate_string(self, field: str, data: Mapping[str, Any], rule: Rule) -> None:
        value = data.get(field)
        if _is_blank(value):
            return
        wildcard = rule.wildcard_allowed or (False, False)
        front, back = (wildcard, wildcard) if isinstance(wildcard, bool) else wildcard
        for item in self._values(value, rule, csv_split=True):
            if (item.startswith("%") and not front) or (item.endswith("%") and not back):
                raise self._invalid()

    def validate_integer(self, field: str, data: Mapping[str, Any], rule: Rule) -> None:
        self._validate_comparable(field, data, rule)

    def validate_float(self, field: str, data: Mapping[str, Any], rule: Rule) -> None:
        self._validate_comparable(field, data, rule)

    def validate_date(self, field: str, data: Mapping[str, Any], rule: Rule) -> None:
        self._validate_comparable(field, data, rule)

    def _validate_comparable(self, field: str, data: Mapping[str, Any], rule: Rule) -> None:
        value = data.get(field)
        if _is_blank(value):
            return
        is_valid = self._checker(rule)
        for index, item in enumerate(self._values(value, rule)):
            if rule.range_allowed and "|" in item:
                bounds = item.split("|")
                if len(bounds) != 2 or not all(is_valid(bound) for bound in bounds):
                    raise self._invalid()
                continue

            if item[:2] in ("<=", ">="):
                if (item[:2] == "<=" and not rule.less_than_allowed) or (item[:2] == ">=" and not rule.greater_than_allowed):
                    raise self._invalid()
                item = item[2:]
            elif item[:1] == "!":
                # Only the first item may carry a negation
                if not rule.negation_allowed or index > 0:
                    raise self._invalid()
                item = item[1:]
            elif item[:1] in ("<", ">"):
                if (item[:1] == "<" and not rule.less_than_allowed) or (item[:1] == ">" and not rule.greater_than_allowed):
                    raise self._invalid()
                item = item[1:]

            if not is_valid(item):
                raise self._invalid()

    def _checker(self, rule: Rule):
        if rule.date:
            fmt = rule.date_format or self.date_format
            return lambda item: is_date_str(item, fmt)
        if (rule.filter_type or rule.type) == RuleType.INTEGER:
            return is_int_str
        return is_float_str

    def validate_order_by(self, field: str, data: Mapping[str, Any], rule: Rule) -> None:
        value = data.get(field)
        if _is_blank(value):
            return
        columns = rule.columns or {}
        for item in str(value).split(","):
            parts = item.split("|")
            if len(parts) > 2 or parts[0] not in columns:
                raise self._invalid()
            if len(parts) == 2 and parts[1].upper() not in ORDER_DIRECTIONS:
                raise self._invalid()


class CommonValidator:
    """Validators for regular (non search) request payloads."""

    def __init__(self, prefix: str = "request."):
        self.prefix = prefix

    def validate_date(self, field: str, data: Mapping[str, Any], rule: Rule) -> None:
        value = data.get(field)
        if _is_blank(value):
            return
        if not is_date_str(str(value), rule.date_format or DEFAULT_DATE_FORMAT):
            raise FieldValidationException(self.prefix + "validator.invalid_format")

    def validate_enum(self, field: str, data: Mapping[str, Any], rule: Rule) -> None:
        value = data.get(field)
        if _is_blank(value):
            return
        if value not in (rule.enum_values or ()):
            raise FieldValidationException(self.prefix + "validator.invalid_format")


class EntityValidator:
    """Validators for entity fields."""

    @staticmethod
    def validate_enum(field: str, data: Mapping[str, Any], rule: Rule) -> None:
        if data.get(field) not in (rule.enum_values or ()):
            prefix = rule.extra.get("_prefix", "entity.")
            raise FieldValidationException(prefix + "validator.invalid_format", {"label": rule.label})
