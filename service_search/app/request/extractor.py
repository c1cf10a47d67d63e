"""
Request data extraction for the Search service.

Requests arrive as parameter bags (query string, body, headers, URL
attributes). Only fields declared in the rules are extracted; parameters
nobody declared are reported as errors.
"""

from typing import Dict, Any, Optional, Mapping

from shared.config import BaseConfig
from shared.errors import ConfigurationError, RequestValidationError
from shared.logging import get_logger
from ..rules.custom_validators import SearchValidator
from ..rules.messages import ValidationContext, Translator
from ..rules.models import Rule, RuleType, FieldError, rules_from_dict
from ..rules.preparer import PreparedRules
from ..rules.utils import is_int_str, is_float_str, is_bool_str, get_bool_str
from ..rules.validator import Validator
from ..query.search import SearchQuery, build_search_query

QUERY = "query"
BODY = "body"
HEADER = "headers"
URL = "attributes"

# Only these bags may carry undeclared parameters worth reporting
CHECKED_BAGS = (BODY, QUERY)

logger = get_logger("search.request")


def default_source(method: str) -> str:
    """Bag a field is read from when its rule names none."""
    return QUERY if method.upper() == "GET" else BODY


def _error(path: str, code: str, context: ValidationContext) -> FieldError:
    params = {"label": path}
    return FieldError(path=path, code=code, label=path, params=params, message=context.translate(code, params))


def _needs_nested_check(value: Any, rule: Rule) -> bool:
    if not rule.nested_rules or rule.type not in (RuleType.OBJECT, RuleType.ARRAY):
        return False
    if rule.element_type is not None:
        return rule.element_type in (RuleType.OBJECT, RuleType.ARRAY) and isinstance(value, (list, tuple))
    return isinstance(value, Mapping)


def _nested_unknown(value: Any, rule: Rule, parent: str, context: ValidationContext) -> Dict[str, FieldError]:
    errors: Dict[str, FieldError] = {}
    elements = enumerate(value) if rule.element_type is not None else [(None, value)]
    for index, element in elements:
        base = parent if index is None else f"{parent}[{index}]"
        if not isinstance(element, Mapping):
            continue
        for name, nested_value in element.items():
            path = f"{base}.{name}"
            nested_rule = rule.nested_rules.get(name)
            if nested_rule is None:
                errors[path] = _error(path, "request.validator.unknown_parameter", context)
            elif _needs_nested_check(nested_value, nested_rule):
                errors.update(_nested_unknown(nested_value, nested_rule, path, context))
    return errors


def find_unknown_parameters(
    bags: Mapping[str, Mapping[str, Any]],
    rules: Mapping[str, Rule],
    source: str,
    context: Optional[ValidationContext] = None
) -> Dict[str, FieldError]:
    """Report parameters that no rule declares or that came in the wrong bag."""
    context = context or ValidationContext()
    errors: Dict[str, FieldError] = {}
    for bag in CHECKED_BAGS:
        for name, value in (bags.get(bag) or {}).items():
            rule = rules.get(name)
            if rule is None:
                errors[name] = _error(name, "request.validator.unknown_parameter", context)
            elif bag != (rule.source or source):
                errors[name] = _error(name, "request.validator.parameter_in_wrong_http_portion", context)
            elif _needs_nested_check(value, rule):
                errors.update(_nested_unknown(value, rule, name, context))
    return errors


def coerce_value(value: Any, rule: Rule) -> Any:
    """Convert well-formed scalar strings to the rule type; anything else is left for validation."""
    if not isinstance(value, str):
        return value
    if rule.type == RuleType.INTEGER and is_int_str(value):
        return int(value.lstrip("+"))
    if rule.type == RuleType.FLOAT and is_float_str(value):
        return float(value.lstrip("+"))
    if rule.type == RuleType.BOOLEAN and is_bool_str(value):
        return get_bool_str(value)
    return value


def extract_request_data(
    bags: Mapping[str, Mapping[str, Any]],
    rules: Mapping[str, Rule],
    source: str
) -> Dict[str, Any]:
    """Pick the declared fields out of the request bags."""
    if not rules:
        raise ConfigurationError("No rules to extract request data", details={"source": source})

    data: Dict[str, Any] = {}
    for name, rule in rules.items():
        bag = bags.get(rule.source or source) or {}
        if name in bag:
            value = bag[name]
        elif rule.has_default:
            value = rule.default
        else:
            continue
        # Empty strings would break every non-string type
        if value == "":
            value = None
        data[name] = coerce_value(value, rule)
    return data


def raise_for_errors(errors: Mapping[str, FieldError]):
    """Raise the exception matching a set of request errors, if any."""
    if not errors:
        return
    details = {path: error.to_dict() for path, error in errors.items()}
    if any(error.is_internal for error in errors.values()):
        raise ConfigurationError("Invalid rule configuration", details=details)
    raise RequestValidationError(details=details)


def validate_request(
    bags: Mapping[str, Mapping[str, Any]],
    rules: Mapping[str, Rule],
    method: str = "GET",
    context: Optional[ValidationContext] = None,
    prefix: str = "request."
) -> Dict[str, Any]:
    """Extract, check and validate request data; raise on any error."""
    rules = rules_from_dict(rules)
    source = default_source(method)
    data = extract_request_data(bags, rules, source)

    errors = find_unknown_parameters(bags, rules, source, context)
    if not errors:
        errors = Validator(context, prefix).validate(data, rules)
    raise_for_errors(errors)
    return data


class SearchRequestHandler:
    """Validates search requests for one endpoint and compiles them into queries."""

    def __init__(
        self,
        rules: Mapping[str, Any],
        alias: Optional[str] = None,
        select: Optional[str] = None,
        config: Optional[BaseConfig] = None
    ):
        self.config = config or BaseConfig()
        self.alias = alias or self.config.default_alias
        self.select = select
        self.search_validator = SearchValidator(
            self.config.request_error_prefix,
            date_format=self.config.default_date_format
        )
        self.rules = PreparedRules(rules_from_dict(rules), self.search_validator)
        self.logger = get_logger("search.request_handler")

    def context(self, locale: Optional[str] = None, user_id: Optional[str] = None) -> ValidationContext:
        return ValidationContext(
            translator=Translator(default_locale=self.config.locale),
            locale=locale,
            user_id=user_id
        )

    def handle(
        self,
        bags: Mapping[str, Mapping[str, Any]],
        method: str = "GET",
        context: Optional[ValidationContext] = None,
        extra_conditions: Optional[Mapping[str, Any]] = None
    ) -> SearchQuery:
        rules = self.rules.get()
        data = validate_request(
            bags, rules, method,
            context=context or self.context(),
            prefix=self.config.request_error_prefix
        )
        query = build_search_query(
            data, rules, self.alias,
            select=self.select,
            extra_conditions=extra_conditions
        )
        self.logger.info("Search request compiled", fields=sorted(data), params=len(query.params))
        return query
