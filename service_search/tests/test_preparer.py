"""
Unit tests for search rule preparation.
"""

import pytest
import threading
from types import MappingProxyType

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_search.app.rules.models import Rule, RuleType
from service_search.app.rules.custom_validators import SearchValidator
from service_search.app.rules.preparer import (
    prepare_rule_for_search, prepare_rules_for_search, PreparedRules
)


class TestPrepareRuleForSearch:
    """Test cases for single rule preparation."""

    @pytest.fixture
    def search_validator(self):
        """Create SearchValidator instance."""
        return SearchValidator("request.")

    def test_string_rule_defaults(self):
        """Test defaults filled for a plain string."""
        rule = prepare_rule_for_search(Rule(type=RuleType.STRING))

        assert rule.filter_type == RuleType.STRING
        assert rule.type == RuleType.STRING
        assert rule.wildcard_allowed == (True, True)
        assert rule.list_allowed is True
        assert rule.negation_allowed is True
        assert rule.sortable is True
        assert rule.range_allowed is None
        assert rule.greater_than_allowed is None
        assert rule.less_than_allowed is None
        assert rule.custom_validator is None

    def test_integer_rule_widened_to_string(self):
        """Test numeric rules are validated as strings."""
        rule = prepare_rule_for_search(Rule(type=RuleType.INTEGER))

        assert rule.filter_type == RuleType.INTEGER
        assert rule.type == RuleType.STRING
        assert rule.wildcard_allowed is None
        assert rule.range_allowed is True
        assert rule.greater_than_allowed is True
        assert rule.less_than_allowed is True

    def test_boolean_rule_keeps_type(self):
        """Test booleans stay booleans and lose list/range options."""
        rule = prepare_rule_for_search(Rule(type=RuleType.BOOLEAN))

        assert rule.type == RuleType.BOOLEAN
        assert rule.list_allowed is None
        assert rule.range_allowed is None
        assert rule.wildcard_allowed is None

    def test_array_rule_widened_to_string(self):
        """Test array rules lose their element type once widened."""
        rule = prepare_rule_for_search(Rule(type=RuleType.ARRAY, element_type=RuleType.STRING))

        assert rule.filter_type == RuleType.ARRAY
        assert rule.type == RuleType.STRING
        assert rule.element_type is None
        assert prepare_rule_for_search(rule) is rule

    def test_single_wildcard_flag_becomes_pair(self):
        """Test a boolean wildcard applies to both sides."""
        rule = prepare_rule_for_search(Rule(type=RuleType.STRING, wildcard_allowed=False))

        assert rule.wildcard_allowed == (False, False)

    def test_explicit_flags_kept(self):
        """Test explicit flags are not overwritten by defaults."""
        rule = prepare_rule_for_search(Rule(type=RuleType.INTEGER, list_allowed=False, range_allowed=False))

        assert rule.list_allowed is False
        assert rule.range_allowed is False

    def test_enum_string_drops_wildcard(self):
        """Test enums are not wildcard searchable."""
        rule = prepare_rule_for_search(Rule(type=RuleType.STRING, enum_values=["a", "b"]))

        assert rule.wildcard_allowed is None
        assert rule.range_allowed is True

    @pytest.mark.parametrize("rule,method", [
        (Rule(type=RuleType.STRING, enum_values=["a"], date=True), "validate_enum"),
        (Rule(type=RuleType.STRING, date=True), "validate_date"),
        (Rule(type=RuleType.STRING), "validate_string"),
        (Rule(type=RuleType.INTEGER), "validate_integer"),
        (Rule(type=RuleType.FLOAT), "validate_float"),
    ])
    def test_custom_validator_precedence(self, search_validator, rule, method):
        """Test built-in validator selection by precedence."""
        prepared = prepare_rule_for_search(rule, search_validator)

        assert prepared.custom_validator == getattr(search_validator, method)

    def test_boolean_has_no_custom_validator(self, search_validator):
        """Test booleans get no built-in validator."""
        prepared = prepare_rule_for_search(Rule(type=RuleType.BOOLEAN), search_validator)

        assert prepared.custom_validator is None

    def test_declared_custom_validator_kept(self, search_validator):
        """Test a caller-declared validator is not replaced."""
        def custom(field, data, rule):
            pass

        prepared = prepare_rule_for_search(Rule(type=RuleType.STRING, custom_validator=custom), search_validator)

        assert prepared.custom_validator is custom

    def test_prepared_rule_returned_unchanged(self, search_validator):
        """Test preparing twice is a no-op."""
        prepared = prepare_rule_for_search(Rule(type=RuleType.INTEGER), search_validator)

        assert prepare_rule_for_search(prepared, search_validator) is prepared

    def test_original_rule_not_mutated(self):
        """Test preparation works on a copy."""
        rule = Rule(type=RuleType.INTEGER)
        prepare_rule_for_search(rule)

        assert rule.filter_type is None
        assert rule.type == RuleType.INTEGER


class TestPrepareRulesForSearch:
    """Test cases for rule map preparation."""

    @pytest.fixture
    def search_validator(self):
        """Create SearchValidator instance."""
        return SearchValidator("request.")

    @pytest.fixture
    def rules(self):
        """Create raw search rules."""
        return {
            "name": Rule(type=RuleType.STRING),
            "age": Rule(type=RuleType.INTEGER),
            "secret": Rule(type=RuleType.STRING, sortable=False),
        }

    def test_implicit_fields_added(self, rules, search_validator):
        """Test limit, offset and orderBy are added."""
        prepared = prepare_rules_for_search(rules, search_validator)

        assert list(prepared)[:2] == ["limit", "offset"]
        assert list(prepared)[-1] == "orderBy"
        assert prepared["limit"].type == RuleType.INTEGER
        assert prepared["offset"].type == RuleType.INTEGER
        assert prepared["orderBy"].type == RuleType.STRING
        assert prepared["orderBy"].custom_validator == search_validator.validate_order_by

    def test_order_by_columns_from_sortable_fields(self, rules):
        """Test the allow-list holds every sortable field."""
        prepared = prepare_rules_for_search(rules)

        assert prepared["orderBy"].columns == {"name": None, "age": None}

    def test_order_by_columns_merged(self, rules):
        """Test declared columns are merged into the allow-list."""
        rules["orderBy"] = Rule(type=RuleType.STRING, columns={"total": "COUNT(t.id)"})

        prepared = prepare_rules_for_search(rules)

        assert prepared["orderBy"].columns == {"name": None, "age": None, "total": "COUNT(t.id)"}

    def test_limit_override_kept(self, rules):
        """Test a caller-declared limit rule is kept as declared."""
        rules["limit"] = Rule(type=RuleType.INTEGER, length=(1, 100))

        prepared = prepare_rules_for_search(rules)

        assert prepared["limit"].length == (1, 100)
        assert prepared["limit"].filter_type is None

    def test_idempotent(self, rules, search_validator):
        """Test preparing a prepared map yields the same map."""
        once = prepare_rules_for_search(rules, search_validator)
        twice = prepare_rules_for_search(once, search_validator)

        assert twice == once

    def test_accepts_rule_map_dicts(self):
        """Test rule maps declared with rule-map keys."""
        prepared = prepare_rules_for_search({"age": {"type": "integer", "range": False, "sortable": False}})

        assert prepared["age"].filter_type == RuleType.INTEGER
        assert prepared["age"].range_allowed is False
        assert prepared["orderBy"].columns == {}


class TestPreparedRules:
    """Test cases for memoized preparation."""

    def test_prepared_once(self):
        """Test preparation runs once and is read only."""
        prepared_rules = PreparedRules({"name": Rule(type=RuleType.STRING)}, SearchValidator())

        first = prepared_rules.get()
        second = prepared_rules.get()

        assert first is second
        assert isinstance(first, MappingProxyType)
        with pytest.raises(TypeError):
            first["other"] = Rule()

    def test_concurrent_first_use(self):
        """Test concurrent first calls share one prepared map."""
        prepared_rules = PreparedRules({"name": Rule(type=RuleType.STRING)})
        results = []

        threads = [threading.Thread(target=lambda: results.append(prepared_rules.get())) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == 8
        assert all(result is results[0] for result in results)
