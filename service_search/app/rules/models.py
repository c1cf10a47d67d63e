"""
Rule data models for the Search service.
"""

import dataclasses
from typing import Dict, Any, Optional, List, Union, Callable, Mapping, Sequence, Tuple, Pattern
from dataclasses import dataclass, field
from enum import Enum

from shared.errors import ConfigurationError


class RuleType(str, Enum):
    """Declared data types."""
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"


# "double" is how some clients spell floats
_TYPE_ALIASES = {"double": RuleType.FLOAT}

NO_DEFAULT = object()


def _coerce_type(value: Any) -> Any:
    """Convert a type name to RuleType, leaving unknown names untouched."""
    if value is None or isinstance(value, RuleType):
        return value
    if value in _TYPE_ALIASES:
        return _TYPE_ALIASES[value]
    try:
        return RuleType(value)
    except ValueError:
        # Reported by the validator as an unsupported type
        return value


@dataclass(frozen=True)
class ChoiceGroup:
    """Membership of a field in a group of mutually exclusive options."""
    group_id: str
    option_id: Any
    required: bool = True

    @classmethod
    def coerce(cls, value: Any) -> Optional["ChoiceGroup"]:
        if value is None or isinstance(value, ChoiceGroup):
            return value
        if isinstance(value, (list, tuple)) and len(value) in (2, 3):
            return cls(*value)
        raise ConfigurationError(
            "Invalid choice group",
            details={"choice_group": repr(value)}
        )


@dataclass(frozen=True)
class Scalar:
    """Rule governing a single value."""
    type: Any


@dataclass(frozen=True)
class Struct:
    """Rule governing an object validated field by field."""
    rules: Mapping[str, "Rule"]


@dataclass(frozen=True)
class ArrayOf:
    """Rule governing an array whose elements follow another variant."""
    element: Union[Scalar, Struct]


RuleKind = Union[Scalar, Struct, ArrayOf]


@dataclass
class Rule:
    """Declarative description of one API field.

    The same rule drives validation, filter compilation and sorting. Filter
    annotations left as ``None`` are filled by the search rule preparer;
    after preparation ``None`` means "not allowed".
    """
    type: Any = RuleType.STRING
    required: Optional[bool] = None
    required_when: Optional[Callable[[Mapping[str, Any]], bool]] = None
    empty_allowed: Optional[bool] = None
    require_filled: Optional[bool] = None
    label: Optional[str] = None
    length: Optional[Union[int, Tuple[int, int]]] = None
    regex: Optional[Union[str, Pattern]] = None
    choice_group: Optional[ChoiceGroup] = None
    custom_validator: Optional[Callable[[str, Mapping[str, Any], "Rule"], None]] = None
    nested_rules: Optional[Dict[str, "Rule"]] = None
    element_type: Any = None

    # Filter annotations
    filter_type: Any = None
    wildcard_allowed: Optional[Union[bool, Tuple[bool, bool]]] = None
    list_allowed: Optional[bool] = None
    range_allowed: Optional[bool] = None
    greater_than_allowed: Optional[bool] = None
    less_than_allowed: Optional[bool] = None
    negation_allowed: Optional[bool] = None
    enum_values: Optional[Sequence[Any]] = None
    date: bool = False
    date_format: Optional[str] = None
    sortable: Optional[bool] = None
    column_expression: Optional[str] = None
    alias: Optional[str] = None
    condition_template: Optional[str] = None
    condition_callback: Optional[Callable] = None
    ignore_filter: bool = False
    sort_expression: Optional[str] = None
    avoid_between_operand: Optional[Union[bool, str, Tuple[str, str]]] = None
    columns: Optional[Dict[str, Optional[str]]] = None

    # Request extraction
    source: Optional[str] = None
    default: Any = NO_DEFAULT

    # Free-form parameters read by custom validators
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.type = _coerce_type(self.type)
        self.element_type = _coerce_type(self.element_type)
        if self.element_type is not None and self.type != RuleType.ARRAY:
            raise ConfigurationError(
                "Element type is only supported by array rules",
                details={"type": str(self.type), "of": str(self.element_type)}
            )
        self.choice_group = ChoiceGroup.coerce(self.choice_group)
        if isinstance(self.length, int):
            self.length = (self.length, self.length)
        elif isinstance(self.length, list):
            self.length = tuple(self.length)
        if isinstance(self.wildcard_allowed, list):
            self.wildcard_allowed = tuple(self.wildcard_allowed)
        if isinstance(self.avoid_between_operand, list):
            self.avoid_between_operand = tuple(self.avoid_between_operand)
        if isinstance(self.enum_values, list):
            self.enum_values = tuple(self.enum_values)
        if isinstance(self.columns, (list, tuple)):
            self.columns = {name: None for name in self.columns}
        if self.nested_rules:
            self.nested_rules = {
                name: Rule.from_dict(nested) if isinstance(nested, Mapping) else nested
                for name, nested in self.nested_rules.items()
            }

    @classmethod
    def from_dict(cls, mapping: Mapping[str, Any]) -> "Rule":
        """Build a rule from a rule-map entry using its camelCase keys."""
        kwargs: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in mapping.items():
            attr = RULE_MAP_KEYS.get(key)
            if attr is None:
                extra[key] = value
            else:
                kwargs[attr] = value
        return cls(extra=extra, **kwargs)

    def copy(self, **changes: Any) -> "Rule":
        return dataclasses.replace(self, **changes)

    @property
    def kind(self) -> RuleKind:
        """Resolve which variant governs recursion for this rule."""
        struct_types = (RuleType.OBJECT, RuleType.ARRAY)
        if self.type == RuleType.ARRAY and self.element_type is not None:
            if self.element_type in struct_types and self.nested_rules:
                return ArrayOf(Struct(self.nested_rules))
            return ArrayOf(Scalar(self.element_type))
        if self.type in struct_types and self.nested_rules:
            return Struct(self.nested_rules)
        return Scalar(self.type)

    @property
    def has_default(self) -> bool:
        return self.default is not NO_DEFAULT

    @property
    def is_prepared(self) -> bool:
        return self.filter_type is not None


RULE_MAP_KEYS = {
    "type": "type",
    "required": "required",
    "requiredWhen": "required_when",
    "empty": "empty_allowed",
    "requireFilled": "require_filled",
    "label": "label",
    "length": "length",
    "regex": "regex",
    "choiceGroup": "choice_group",
    "custom": "custom_validator",
    "rules": "nested_rules",
    "of": "element_type",
    "wildcard": "wildcard_allowed",
    "list": "list_allowed",
    "range": "range_allowed",
    "gt": "greater_than_allowed",
    "lt": "less_than_allowed",
    "negation": "negation_allowed",
    "enum": "enum_values",
    "date": "date",
    "dateFmt": "date_format",
    "sortable": "sortable",
    "column": "column_expression",
    "alias": "alias",
    "conditionTemplate": "condition_template",
    "conditionCallback": "condition_callback",
    "ignoreFilter": "ignore_filter",
    "sortExpr": "sort_expression",
    "avoidBetweenOperand": "avoid_between_operand",
    "columns": "columns",
    "from": "source",
    "default": "default",
}


def rules_from_dict(rule_map: Mapping[str, Any]) -> Dict[str, Rule]:
    """Convert a whole rule map, accepting entries that already are rules."""
    return {
        name: rule if isinstance(rule, Rule) else Rule.from_dict(rule)
        for name, rule in rule_map.items()
    }


@dataclass
class FieldError:
    """Validation failure attached to one field path (e.g. ``a.b[2].c``)."""
    path: str
    code: str
    label: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)
    message: Optional[str] = None

    @property
    def is_internal(self) -> bool:
        return self.code.startswith("internal.")

    @property
    def reason(self) -> str:
        """Last segment of the code, e.g. ``wrong_type``."""
        return self.code.rsplit(".", 1)[-1]

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message or self.code}


@dataclass
class ConditionFragment:
    """Parameterized boolean expression with its bound values."""
    expression: str
    params: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.expression


@dataclass
class CompiledFilters:
    """Per-field condition fragments plus every bound parameter."""
    conditions: Dict[str, List[ConditionFragment]] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)

    def as_tree(self) -> Dict[str, Any]:
        """Composer input: one leaf per field, OR groups for multi-fragment fields."""
        tree: Dict[str, Any] = {}
        for index, (name, fragments) in enumerate(self.conditions.items()):
            if len(fragments) > 1:
                tree[f"OR{index}"] = list(fragments)
            else:
                tree[f"{index}"] = fragments[0]
        return tree
