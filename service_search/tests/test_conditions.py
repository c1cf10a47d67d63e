"""
Unit tests for the filter condition builder.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import ConfigurationError
from service_search.app.rules.models import Rule, RuleType, ConditionFragment
from service_search.app.rules.preparer import prepare_rule_for_search, prepare_rules_for_search
from service_search.app.query.conditions import (
    build_conditions, compile_filters, column_for, match_operator, split_values, ParamNames
)


def prepared(**kwargs):
    return prepare_rule_for_search(Rule(**kwargs))


def single(fragments):
    assert len(fragments) == 1
    return fragments[0]


class TestOperators:
    """Test cases for the operator table."""

    @pytest.fixture
    def integer_rule(self):
        """Create a prepared integer rule."""
        return prepared(type=RuleType.INTEGER)

    @pytest.mark.parametrize("value,expected", [
        ("10|20", "range"),
        ("<=5", "inclusive_comparison"),
        (">=5", "inclusive_comparison"),
        ("<5", "exclusive_comparison"),
        (">5", "exclusive_comparison"),
        ("!5", "negation"),
    ])
    def test_precedence(self, integer_rule, value, expected):
        """Test each prefix selects its operator."""
        assert match_operator(value, integer_rule).name == expected

    def test_range_wins_over_comparison(self, integer_rule):
        """Test a range is recognized before comparison prefixes."""
        assert match_operator("<1|5", integer_rule).name == "range"

    def test_plain_value_has_no_operator(self, integer_rule):
        """Test plain values fall through to equality."""
        assert match_operator("5", integer_rule) is None

    def test_negation_only_for_single_values(self, integer_rule):
        """Test "!" inside a list is left to the IN bucket."""
        assert match_operator("!5", integer_rule, single=False) is None

    def test_lone_percent_is_literal(self):
        """Test a lone "%" is not a wildcard."""
        assert match_operator("%", prepared(type=RuleType.STRING)) is None

    def test_param_names(self):
        """Test placeholder names derive from the column."""
        names = ParamNames("t.user_name")

        assert names.next() == ":tusername1"
        assert names.next() == ":tusername2"


class TestBuildConditions:
    """Test cases for build_conditions."""

    def test_range(self):
        """Test a range gives one BETWEEN with two bound integers."""
        fragment = single(build_conditions("10|20", "t.age", prepared(type=RuleType.INTEGER)))

        assert fragment.expression == "t.age BETWEEN :tage1 AND :tage2"
        assert fragment.params == {":tage1": 10, ":tage2": 20}

    def test_wildcard(self):
        """Test a wildcard gives a case/accent-insensitive LIKE."""
        fragment = single(build_conditions("%abc%", "t.name", prepared(type=RuleType.STRING)))

        assert fragment.expression == "UPPER(UNACCENT(t.name)) LIKE UPPER(UNACCENT(:tname1))"
        assert fragment.params == {":tname1": "%abc%"}

    def test_wildcard_escapes_inner_percent(self):
        """Test inner "%" are matched literally."""
        fragment = single(build_conditions("%50%off", "t.name", prepared(type=RuleType.STRING)))

        assert fragment.params == {":tname1": "%50\\%off"}

    def test_disallowed_wildcard_side_is_literal(self):
        """Test "%" on a disallowed side is escaped."""
        rule = prepared(type=RuleType.STRING, wildcard_allowed=(False, True))
        fragment = single(build_conditions("%abc%", "t.name", rule))

        assert fragment.params == {":tname1": "\\%abc%"}

    def test_lone_percent(self):
        """Test a lone "%" is compared literally."""
        fragment = single(build_conditions("%", "t.name", prepared(type=RuleType.STRING)))

        assert fragment.expression == "t.name = :tname1"
        assert fragment.params == {":tname1": "%"}

    def test_negation(self):
        """Test a negated single value."""
        fragment = single(build_conditions("!5", "t.id", prepared(type=RuleType.INTEGER)))

        assert fragment.expression == "t.id <> :tid1"
        assert fragment.params == {":tid1": 5}

    @pytest.mark.parametrize("value,operator,bound", [
        ("<5", "<", 5), ("<=5", "<=", 5), (">5", ">", 5), (">=5", ">=", 5),
    ])
    def test_comparisons(self, value, operator, bound):
        """Test comparison prefixes."""
        fragment = single(build_conditions(value, "t.id", prepared(type=RuleType.INTEGER)))

        assert fragment.expression == f"t.id {operator} :tid1"
        assert fragment.params == {":tid1": bound}

    def test_equality(self):
        """Test a plain value."""
        fragment = single(build_conditions("5", "t.id", prepared(type=RuleType.INTEGER)))

        assert fragment.expression == "t.id = :tid1"
        assert fragment.params == {":tid1": 5}

    def test_float_values_bound_as_floats(self):
        """Test float filters are bound as floats."""
        fragment = single(build_conditions("1.5|2", "t.price", prepared(type=RuleType.FLOAT)))

        assert fragment.params == {":tprice1": 1.5, ":tprice2": 2.0}

    def test_list_in(self):
        """Test plain list values become one IN."""
        fragment = single(build_conditions("1,2,3", "t.id", prepared(type=RuleType.INTEGER)))

        assert fragment.expression == "t.id IN (:tid1)"
        assert fragment.params == {":tid1": [1, 2, 3]}

    def test_list_not_in(self):
        """Test a negated first value turns the IN into NOT IN."""
        fragment = single(build_conditions("!1,2", "t.id", prepared(type=RuleType.INTEGER)))

        assert fragment.expression == "t.id NOT IN (:tid1)"
        assert fragment.params == {":tid1": [1, 2]}

    def test_quoted_csv_list(self):
        """Test quoted commas stay inside one string value."""
        fragment = single(build_conditions('a,b,"c,d"', "t.name", prepared(type=RuleType.STRING)))

        assert fragment.params == {":tname1": ["a", "b", "c,d"]}

    def test_mixed_list(self):
        """Test operators inside a list get their own fragments."""
        fragments = build_conditions("1,>10,3|5", "t.id", prepared(type=RuleType.INTEGER))

        assert [f.expression for f in fragments] == [
            "t.id > :tid1",
            "t.id BETWEEN :tid2 AND :tid3",
            "t.id = :tid4",
        ]
        assert fragments[1].params == {":tid2": 3, ":tid3": 5}
        assert fragments[2].params == {":tid4": 1}

    def test_list_disabled(self):
        """Test commas are literal when lists are disabled."""
        rule = prepared(type=RuleType.STRING, list_allowed=False)

        assert split_values("a,b", rule) == ["a,b"]

    def test_boolean(self):
        """Test booleans become literal comparisons."""
        rule = prepared(type=RuleType.BOOLEAN)

        assert single(build_conditions(True, "t.active", rule)).expression == "t.active = true"
        assert single(build_conditions("false", "t.active", rule)).expression == "t.active = false"
        assert single(build_conditions(True, "t.active", rule)).params == {}

    def test_enum(self):
        """Test enum values become one IN."""
        rule = prepared(type=RuleType.STRING, enum_values=["open", "closed", "pending"])

        fragment = single(build_conditions("open,closed", "t.status", rule))
        assert fragment.expression == "t.status IN (:tstatus1)"
        assert fragment.params == {":tstatus1": ["open", "closed"]}

        fragment = single(build_conditions("!open,closed", "t.status", rule))
        assert fragment.expression == "t.status NOT IN (:tstatus1)"

    def test_single_enum_value_uses_in(self):
        """Test a lone enum value still becomes an IN."""
        rule = prepared(type=RuleType.STRING, enum_values=["open", "closed"])

        fragment = single(build_conditions("open", "t.status", rule))
        assert fragment.expression == "t.status IN (:tstatus1)"
        assert fragment.params == {":tstatus1": ["open"]}

        fragment = single(build_conditions("!closed", "t.status", rule))
        assert fragment.expression == "t.status NOT IN (:tstatus1)"
        assert fragment.params == {":tstatus1": ["closed"]}

    def test_date_values_stay_strings(self):
        """Test date bounds are bound as typed."""
        rule = prepared(type=RuleType.STRING, date=True)
        fragment = single(build_conditions("2018-01-20|2018-10-15", "t.created", rule))

        assert fragment.params == {":tcreated1": "2018-01-20", ":tcreated2": "2018-10-15"}

    def test_avoid_between_operand(self):
        """Test ranges written as two comparisons."""
        rule = prepared(type=RuleType.INTEGER, avoid_between_operand=True)
        fragment = single(build_conditions("1|5", "t.total", rule))

        assert fragment.expression == ":ttotal1 <= t.total AND :ttotal2 >= t.total"

    def test_avoid_between_operand_pair(self):
        """Test ranges against distinct low/high operands."""
        rule = prepared(type=RuleType.INTEGER, avoid_between_operand=("t.start", "t.end"))
        fragment = single(build_conditions("1|5", "t.period", rule))

        assert fragment.expression == ":tperiod1 <= t.start AND :tperiod2 >= t.end"


class TestTemplatesAndCallbacks:
    """Test cases for condition templates and callbacks."""

    def test_value_template(self):
        """Test {VALUE} substitution."""
        rule = prepared(type=RuleType.STRING, condition_template="EXISTS (SELECT 1 FROM tag g WHERE g.name = {VALUE})")
        fragment = single(build_conditions("red", "t.tag", rule))

        assert fragment.expression == "EXISTS (SELECT 1 FROM tag g WHERE g.name = :ttag1)"
        assert fragment.params == {":ttag1": "red"}

    def test_value_template_list(self):
        """Test {VALUE} with several values binds the list."""
        rule = prepared(type=RuleType.STRING, condition_template="g.name IN ({VALUE})")

        assert single(build_conditions("red,blue", "t.tag", rule)).params == {":ttag1": ["red", "blue"]}

    def test_template_without_placeholder(self):
        """Test templates without placeholders bind nothing."""
        rule = prepared(type=RuleType.BOOLEAN, condition_template="t.deleted_at IS NULL")

        assert single(build_conditions(True, "t.alive", rule)) == ConditionFragment("t.deleted_at IS NULL")

    @pytest.mark.parametrize("value,expression,params", [
        ("5", "COUNT(x) = :ttotal1", {":ttotal1": 5}),
        (">5", "COUNT(x) > :ttotal1", {":ttotal1": 5}),
        ("1|5", "COUNT(x) BETWEEN :ttotal1 AND :ttotal2", {":ttotal1": 1, ":ttotal2": 5}),
        ("1,2", "COUNT(x) IN (:ttotal1)", {":ttotal1": [1, 2]}),
    ])
    def test_operation_template(self, value, expression, params):
        """Test {OPERATION_VALUE} substitution."""
        rule = prepared(type=RuleType.INTEGER, condition_template="COUNT(x) {OPERATION_VALUE}")
        fragment = single(build_conditions(value, "t.total", rule))

        assert fragment.expression == expression
        assert fragment.params == params

    def test_operation_template_avoid_between(self):
        """Test avoided BETWEEN replaces the whole template."""
        rule = prepared(
            type=RuleType.INTEGER,
            condition_template="(SELECT COUNT(*) FROM x) {OPERATION_VALUE}",
            avoid_between_operand="(SELECT COUNT(*) FROM x)"
        )
        fragment = single(build_conditions("1|5", "t.total", rule))

        assert fragment.expression == ":ttotal1 <= (SELECT COUNT(*) FROM x) AND :ttotal2 >= (SELECT COUNT(*) FROM x)"

    def test_callback_dict(self):
        """Test callbacks returning the cond/params mapping."""
        def callback(value, rule):
            return {"cond": "t.a = :a OR t.b = :a", "params": {":a": value}}

        rule = prepared(type=RuleType.STRING, condition_callback=callback)

        assert single(build_conditions("x", "t.ab", rule)) == ConditionFragment("t.a = :a OR t.b = :a", {":a": "x"})

    def test_callback_fragment_and_empty(self):
        """Test callbacks returning a fragment or nothing."""
        rule = prepared(type=RuleType.STRING, condition_callback=lambda value, rule: ConditionFragment("1 = 1"))
        assert single(build_conditions("x", "t.ab", rule)).expression == "1 = 1"

        rule = prepared(type=RuleType.STRING, condition_callback=lambda value, rule: None)
        assert build_conditions("x", "t.ab", rule) == []

    def test_non_callable_callback(self):
        """Test non callable callbacks are configuration errors."""
        rule = prepared(type=RuleType.STRING, condition_callback="build_ab")

        with pytest.raises(ConfigurationError) as exc_info:
            build_conditions("x", "t.ab", rule)

        assert exc_info.value.details["code"] == "internal.repository.non_callable_callback"

    def test_invalid_callback_return(self):
        """Test callbacks returning something unusable."""
        rule = prepared(type=RuleType.STRING, condition_callback=lambda value, rule: "t.a = 1")

        with pytest.raises(ConfigurationError) as exc_info:
            build_conditions("x", "t.ab", rule)

        assert exc_info.value.details["code"] == "internal.repository.invalid_callback_return"


class TestCompileFilters:
    """Test cases for compile_filters."""

    @pytest.fixture
    def rules(self):
        """Create prepared rules."""
        return prepare_rules_for_search({
            "name": Rule(type=RuleType.STRING),
            "age": Rule(type=RuleType.INTEGER),
            "owner": Rule(type=RuleType.STRING, alias="o"),
            "total": Rule(type=RuleType.INTEGER, column_expression="COUNT(t.id)"),
            "internal": Rule(type=RuleType.STRING, ignore_filter=True),
        })

    def test_columns(self, rules):
        """Test column resolution."""
        assert column_for("name", rules["name"]) == "t.name"
        assert column_for("name", rules["name"], "f.") == "f.name"
        assert column_for("owner", rules["owner"]) == "o.owner"
        assert column_for("total", rules["total"]) == "COUNT(t.id)"

    def test_compile(self, rules):
        """Test fragments and params collected per field."""
        compiled = compile_filters({"name": "%ann", "age": "1|5,>60"}, rules)

        assert list(compiled.conditions) == ["name", "age"]
        assert len(compiled.conditions["age"]) == 2
        assert compiled.params == {":tname1": "%ann", ":tage1": 1, ":tage2": 5, ":tage3": 60}

    def test_tree_groups_multi_fragment_fields(self, rules):
        """Test fields with several fragments become OR groups."""
        tree = compile_filters({"name": "bob", "age": "1|5,>60"}, rules).as_tree()

        assert list(tree) == ["0", "OR1"]
        assert len(tree["OR1"]) == 2

    def test_skipped_fields(self, rules):
        """Test null, unknown, ignored and paging fields are skipped."""
        compiled = compile_filters(
            {"name": None, "unknown": "x", "internal": "secret", "limit": 10, "offset": 0, "orderBy": "name"},
            rules
        )

        assert compiled.conditions == {}
        assert compiled.params == {}

    def test_ignored_field_has_no_params(self, rules):
        """Test an ignored field produces nothing."""
        compiled = compile_filters({"internal": "a,b"}, rules)

        assert compiled.conditions == {}
        assert compiled.params == {}

    def test_fields_sharing_a_column(self):
        """Test fields filtering the same column get distinct placeholders."""
        rules = prepare_rules_for_search({
            "createdFrom": Rule(type=RuleType.INTEGER, column_expression="t.created"),
            "createdTo": Rule(type=RuleType.INTEGER, column_expression="t.created"),
        })

        compiled = compile_filters({"createdFrom": ">=5", "createdTo": "<=9"}, rules)

        assert [str(single(f)) for f in compiled.conditions.values()] == [
            "t.created >= :tcreated1", "t.created <= :tcreated2"
        ]
        assert compiled.params == {":tcreated1": 5, ":tcreated2": 9}

    def test_columns_with_same_placeholder_base(self):
        """Test columns that only differ by punctuation do not collide."""
        rules = prepare_rules_for_search({
            "a_b": Rule(type=RuleType.STRING),
            "ab": Rule(type=RuleType.STRING),
        })

        compiled = compile_filters({"a_b": "x,y", "ab": "z"}, rules)

        assert compiled.params == {":tab1": ["x", "y"], ":tab2": "z"}
