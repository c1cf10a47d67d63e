"""
Field validator for the Search service.
"""

import re
from typing import Dict, Any, Optional, Mapping

from shared.logging import get_logger
from shared.metrics import get_metrics_collector
from shared.errors import ConfigurationError, FieldValidationException
from .messages import ValidationContext
from .models import Rule, RuleType, Struct, ArrayOf, FieldError, rules_from_dict

_UNCHOSEN = object()


def _is_empty(value: Any) -> bool:
    if value is None or value == "":
        return True
    return isinstance(value, (list, tuple)) and len(value) == 0


def _as_mapping(value: Any) -> Mapping[str, Any]:
    if isinstance(value, Mapping):
        return value
    if hasattr(value, "__dict__"):
        return vars(value)
    return {}


def _type_name(value: Any) -> str:
    return type(value).__name__


def _matches_type(value: Any, rule_type: Any) -> bool:
    if rule_type == RuleType.STRING:
        return isinstance(value, str)
    if rule_type == RuleType.INTEGER:
        if isinstance(value, bool):
            return False
        return isinstance(value, int) or (isinstance(value, float) and value.is_integer())
    if rule_type == RuleType.FLOAT:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if rule_type == RuleType.BOOLEAN:
        return isinstance(value, bool)
    if rule_type == RuleType.OBJECT:
        if isinstance(value, (str, bytes, list, tuple)):
            return False
        return isinstance(value, Mapping) or hasattr(value, "__dict__")
    if rule_type == RuleType.ARRAY:
        return isinstance(value, (list, tuple))
    raise FieldValidationException("internal.validator.unsupported_type", {"type": str(rule_type)})


class Validator:
    """
    Validates data maps against rule maps.

    Errors are accumulated per instance for one top-level ``validate`` call
    and keyed by field path (``a.b[2].c``). Use one instance per concurrent
    validation.
    """

    def __init__(self, context: Optional[ValidationContext] = None, prefix: str = ""):
        self.context = context or ValidationContext()
        self.prefix = prefix
        self.logger = get_logger("search.validator")
        self._errors: Dict[str, FieldError] = {}

    def set_prefix(self, prefix: str) -> "Validator":
        """Set the prefix of the error codes produced from now on."""
        self.prefix = prefix
        return self

    @property
    def errors(self) -> Dict[str, FieldError]:
        """Errors found by the last validation."""
        return self._errors

    def reset(self):
        self._errors = {}

    def validate(self, data: Mapping[str, Any], rules: Optional[Mapping[str, Rule]], parent: str = "") -> Dict[str, FieldError]:
        """Validate ``data`` against ``rules`` and return the errors found."""
        if rules is None:
            raise ConfigurationError("Validation rules are required", details={"parent": parent})

        self.reset()
        self._validate_struct(_as_mapping(data or {}), rules_from_dict(rules), parent)

        internal = [error for error in self._errors.values() if error.is_internal]
        if internal:
            self.logger.warning(
                "Internal validation errors",
                paths=[error.path for error in internal],
                codes=[error.code for error in internal]
            )
        self.logger.debug("Validation finished", prefix=self.prefix, error_count=len(self._errors))
        get_metrics_collector("search").record_validation(error.code for error in self._errors.values())
        return self._errors

    def validate_entity_fields(self, entity: Any, rules: Mapping[str, Rule], accessors, prefix: str = "entity.") -> Dict[str, FieldError]:
        """Validate the listed fields of an entity read through its accessor table."""
        if not rules:
            self.reset()
            return self._errors

        data: Dict[str, Any] = {}
        labelled: Dict[str, Rule] = {}
        for name, rule in rules_from_dict(rules).items():
            data[name] = accessors.get(entity, name)
            labelled[name] = rule if rule.label else rule.copy(label=accessors.label(entity, name))
        return self.set_prefix(prefix).validate(data, labelled)

    def _code(self, code: str) -> str:
        return code if code.startswith("internal.") else self.prefix + code

    def _add_error(self, path: str, code: str, params: Dict[str, Any]):
        self._errors[path] = FieldError(
            path=path,
            code=code,
            label=params.get("label"),
            params=params,
            message=self.context.translate(code, params)
        )

    def _validate_struct(self, data: Mapping[str, Any], rules: Mapping[str, Rule], parent: str):
        base = parent + "." if parent else ""

        # Choice groups: the first field present decides the chosen option
        chosen: Dict[str, Any] = {}
        group_required: Dict[str, bool] = {}
        for name, rule in rules.items():
            group = rule.choice_group
            if group is None:
                continue
            group_required.setdefault(group.group_id, group.required)
            if name not in data:
                continue
            if group.group_id not in chosen:
                chosen[group.group_id] = group.option_id
            elif chosen[group.group_id] != group.option_id:
                self._add_error(
                    base + name,
                    self._code("validator.multiple_options_chosen"),
                    {"label": rule.label or base + name, "group": group.group_id}
                )

        for group_id, required in group_required.items():
            if required and group_id not in chosen:
                self._add_error(
                    f"{base}_choice_group_{group_id}",
                    self._code("validator.no_option_chosen"),
                    {"group": group_id}
                )

        for name, rule in rules.items():
            group = rule.choice_group
            if group is not None and chosen.get(group.group_id, _UNCHOSEN) != group.option_id:
                continue
            self._validate_field(name, data, rule, base)

    def _validate_field(self, name: str, data: Mapping[str, Any], rule: Rule, base: str):
        path = base + name
        label = rule.label or path
        suffix = ""
        try:
            required = rule.required
            if rule.required_when is not None:
                required = bool(rule.required_when(data))

            # required and empty always win over requireFilled
            require_filled = rule.require_filled
            if required is not None or rule.empty_allowed is not None:
                require_filled = None

            is_informed = name in data
            if (required or require_filled is not None) and not is_informed:
                raise FieldValidationException(self._code("validator.missing_required_info"))

            value = data.get(name)
            can_be_empty = (
                (require_filled is None and rule.empty_allowed is None)
                or require_filled is False
                or bool(rule.empty_allowed)
            )
            if _is_empty(value):
                if is_informed and not can_be_empty:
                    raise FieldValidationException(self._code("validator.empty_info"))
                return

            kind = rule.kind
            self._check_type(value, rule.type)
            if isinstance(kind, ArrayOf):
                element_type = rule.element_type
                for index, element in enumerate(value):
                    suffix = f"[{index}]"
                    self._check_type(element, element_type, allow_none=False)
                suffix = ""

            is_numeric = rule.type in (RuleType.INTEGER, RuleType.FLOAT)
            is_string = rule.type == RuleType.STRING
            if rule.length is not None and (is_numeric or is_string or isinstance(kind, ArrayOf)):
                self._check_length(value, rule.length, is_numeric)
            if rule.regex is not None and (is_numeric or is_string):
                self._check_regex(str(value), rule.regex)

            if rule.custom_validator:
                if not callable(rule.custom_validator):
                    raise FieldValidationException("internal.validator.non_callable_custom")
                rule.custom_validator(name, data, rule if rule.label else rule.copy(label=label))

            if isinstance(kind, ArrayOf) and isinstance(kind.element, Struct):
                for index, element in enumerate(value):
                    self._validate_struct(_as_mapping(element), kind.element.rules, f"{path}[{index}]")
            elif isinstance(kind, Struct):
                self._validate_struct(_as_mapping(value), kind.rules, path)

        except FieldValidationException as e:
            params = dict(e.params)
            params.setdefault("label", label + suffix)
            self._add_error(path + suffix, e.code, params)
        except ValueError as e:
            self._add_error(path + suffix, self._code("validator.invalid_format"), {"label": label + suffix, "detail": str(e)})
        except Exception as e:
            self.logger.warning("Unexpected error validating field", path=path + suffix, error=str(e))
            self._add_error(path + suffix, "internal.unknown_internal_error", {"label": label + suffix, "message": str(e)})

    def _check_type(self, value: Any, rule_type: Any, allow_none: bool = True):
        if value is None and allow_none:
            return
        if not _matches_type(value, rule_type):
            raise FieldValidationException(
                self._code("validator.wrong_type"),
                {"got": _type_name(value), "expected": getattr(rule_type, "value", rule_type)}
            )

    def _check_length(self, value: Any, length, is_numeric: bool):
        low, high = length
        size = value if is_numeric else len(value)
        if not low <= size <= high:
            code = "validator.invalid_numeric_length" if is_numeric else "validator.invalid_string_length"
            raise FieldValidationException(self._code(code), {"min": low, "max": high})

    def _check_regex(self, value: str, regex):
        try:
            matched = re.search(regex, value)
        except re.error:
            raise FieldValidationException("internal.validator.invalid_regex", {"regex": str(regex)})
        if matched is None:
            raise FieldValidationException(self._code("validator.invalid_format"))
