"""Tests for the rule engine and rule suggestions."""
import pytest


def _rule(rule_id, conditions, target="4", logic="AND", active=True, sub=None):
    return {
        "id": rule_id,
        "name": rule_id,
        "match_logic": logic,
        "conditions": conditions,
        "target_category_id": target,
        "target_subcategory_id": sub,
        "is_active": active,
    }


def _cond(field, operator, value):
    return {"id": f"{field}-{operator}", "field": field, "operator": operator, "value": value}


class TestEvaluateCondition:
    """Test cases for evaluate_condition."""

    @pytest.mark.parametrize("operator,value,expected", [
        ("contains", "wholesale", True),
        ("equals", "costco wholesale", True),
        ("starts_with", "COSTCO", True),
        ("ends_with", "sale", True),
        ("starts_with", "wholesale", False),
        ("greater", "5", False),
    ])
    def test_description_operators(self, make_txn, operator, value, expected):
        from bizxpense.intelligence.rule_engine import evaluate_condition

        txn = make_txn("t", "COSTCO WHOLESALE", 120.50)
        assert evaluate_condition(_cond("description", operator, value), txn) is expected

    @pytest.mark.parametrize("operator,value,expected", [
        ("greater", "100", True),
        ("greater", "120.50", False),
        ("less", "200", True),
        ("equals", "120.5", True),
        ("equals", "120.505", True),
        ("equals", "121", False),
        ("contains", "120", False),
        ("greater", "lots", False),
    ])
    def test_amount_operators(self, make_txn, operator, value, expected):
        """Amounts compare numerically; text operators never apply."""
        from bizxpense.intelligence.rule_engine import evaluate_condition

        txn = make_txn("t", "COSTCO", 120.50)
        assert evaluate_condition(_cond("amount", operator, value), txn) is expected

    @pytest.mark.parametrize("value,expected", [
        ("100.01", True),
        ("99.99", True),
        ("100.02", False),
    ])
    def test_amount_equals_tolerance_is_inclusive(self, make_txn, value, expected):
        """A cent either way still counts as equal, matching duplicate detection."""
        from bizxpense.intelligence.rule_engine import evaluate_condition

        txn = make_txn("t", "COSTCO", 100.00)
        assert evaluate_condition(_cond("amount", "equals", value), txn) is expected

    def test_account_field(self, make_txn):
        from bizxpense.intelligence.rule_engine import evaluate_condition

        txn = make_txn("t", account="Amex Business")
        assert evaluate_condition(_cond("account", "contains", "amex"), txn)

    def test_unknown_field(self, make_txn):
        from bizxpense.intelligence.rule_engine import evaluate_condition

        assert not evaluate_condition(_cond("merchant", "contains", "x"), make_txn("t"))


class TestRuleMatches:
    """Test cases for rule_matches."""

    def test_and_requires_all(self, make_txn):
        from bizxpense.intelligence.rule_engine import rule_matches

        txn = make_txn("t", "AWS Cloud", 45.0)
        rule = _rule("r", [_cond("description", "contains", "aws"), _cond("amount", "greater", "100")])

        assert not rule_matches(rule, txn)

    def test_or_requires_any(self, make_txn):
        from bizxpense.intelligence.rule_engine import rule_matches

        txn = make_txn("t", "AWS Cloud", 45.0)
        rule = _rule("r", [_cond("description", "contains", "aws"), _cond("amount", "greater", "100")], logic="OR")

        assert rule_matches(rule, txn)

    @pytest.mark.parametrize("logic", ["AND", "OR"])
    def test_empty_conditions_never_match(self, make_txn, logic):
        """A rule without conditions matches nothing."""
        from bizxpense.intelligence.rule_engine import rule_matches

        assert not rule_matches(_rule("r", [], logic=logic), make_txn("t"))


class TestRuleEngine:
    """Test cases for RuleEngine.run."""

    def test_first_match_wins(self, categories, make_txn):
        from bizxpense.intelligence.rule_engine import RuleEngine

        rules = [
            _rule("first", [_cond("description", "contains", "costco")], target="4"),
            _rule("second", [_cond("description", "starts_with", "cost")], target="2"),
        ]
        changes = RuleEngine(rules, categories).run([make_txn("t", "COSTCO WHOLESALE")])

        assert len(changes) == 1
        assert changes[0]["rule_id"] == "first"
        assert changes[0]["category_id"] == "4"
        assert changes[0]["type"] == "EXPENSE"

    def test_skips_categorized_and_inactive(self, categories, make_txn):
        from bizxpense.intelligence.rule_engine import RuleEngine

        rules = [
            _rule("off", [_cond("description", "contains", "aws")], target="2", active=False),
            _rule("on", [_cond("description", "contains", "aws")], target="4"),
        ]
        txns = [make_txn("done", "AWS", category_id="3"), make_txn("todo", "AWS")]
        changes = RuleEngine(rules, categories).run(txns)

        assert [(c["transaction_id"], c["rule_id"]) for c in changes] == [("todo", "on")]

    def test_type_follows_target_category(self, categories, make_txn):
        from bizxpense.intelligence.rule_engine import RuleEngine

        rules = [_rule("r", [_cond("description", "contains", "stripe")], target="1", sub="1-2")]
        change = RuleEngine(rules, categories).run([make_txn("t", "Stripe payout")])[0]

        assert change["type"] == "INCOME"
        assert change["subcategory_id"] == "1-2"

    def test_rule_with_missing_category_skipped(self, categories, make_txn):
        from bizxpense.intelligence.rule_engine import RuleEngine

        rules = [
            _rule("dangling", [_cond("description", "contains", "aws")], target="gone"),
            _rule("good", [_cond("description", "contains", "aws")], target="4"),
        ]
        changes = RuleEngine(rules, categories).run([make_txn("t", "AWS")])

        assert changes[0]["rule_id"] == "good"

    def test_second_run_makes_no_changes(self, categories, make_txn):
        """Once changes are applied, running again proposes nothing."""
        from bizxpense.intelligence.rule_engine import RuleEngine

        rules = [_rule("r", [_cond("description", "contains", "aws")])]
        txns = [make_txn("a", "AWS"), make_txn("b", "AWS again"), make_txn("c", "Other")]
        engine = RuleEngine(rules, categories)

        changes = engine.run(txns)
        by_id = {c["transaction_id"]: c for c in changes}
        applied = [dict(t, category_id=by_id[t["id"]]["category_id"]) if t["id"] in by_id else t for t in txns]

        assert len(changes) == 2
        assert engine.run(applied) == []

    def test_run_does_not_mutate(self, categories, make_txn):
        from bizxpense.intelligence.rule_engine import RuleEngine

        txns = [make_txn("a", "AWS")]
        RuleEngine([_rule("r", [_cond("description", "contains", "aws")])], categories).run(txns)

        assert txns[0]["category_id"] is None


class TestSuggestRule:
    """Test cases for suggest_rule."""

    def test_suggests_common_prefix(self, make_txn):
        from bizxpense.intelligence.rule_engine import suggest_rule

        sibling = make_txn("old", "UBER TRIP 1234", category_id="6")
        txn = make_txn("new", "Uber Trip 9876", category_id="6")

        suggestion = suggest_rule(txn, "6", "6-2", [sibling, txn], [])

        assert suggestion is not None
        condition = suggestion["conditions"][0]
        assert condition["field"] == "description"
        assert condition["operator"] == "starts_with"
        assert condition["value"] == "uber trip"
        assert suggestion["match_logic"] == "AND"
        assert suggestion["target_category_id"] == "6"
        assert suggestion["target_subcategory_id"] == "6-2"

    def test_prefix_too_short(self, make_txn):
        from bizxpense.intelligence.rule_engine import suggest_rule

        sibling = make_txn("old", "ABC Corp", category_id="4")
        txn = make_txn("new", "ABX Ltd", category_id="4")

        assert suggest_rule(txn, "4", None, [sibling, txn], []) is None

    def test_numeric_prefix_ignored(self, make_txn):
        from bizxpense.intelligence.rule_engine import suggest_rule

        sibling = make_txn("old", "12345 ACME", category_id="4")
        txn = make_txn("new", "12345 OTHER", category_id="4")

        assert suggest_rule(txn, "4", None, [sibling, txn], []) is None

    def test_card_number_prefix_ignored(self, make_txn):
        """Digit groups separated by spaces are still just a number."""
        from bizxpense.intelligence.rule_engine import suggest_rule

        sibling = make_txn("old", "0423 1234 ACME", category_id="4")
        txn = make_txn("new", "0423 1234 OTHER", category_id="4")

        assert suggest_rule(txn, "4", None, [sibling, txn], []) is None

    @pytest.mark.parametrize("prefix,expected", [
        ("0423 1234", True),
        ("1,000.00", True),
        ("12/05", True),
        ("nan", False),
        ("infinity", False),
        ("1_000", False),
        ("7-eleven", False),
    ])
    def test_is_numeric(self, prefix, expected):
        from bizxpense.intelligence.rule_engine import _is_numeric

        assert _is_numeric(prefix) is expected

    def test_only_same_category_siblings(self, make_txn):
        from bizxpense.intelligence.rule_engine import suggest_rule

        sibling = make_txn("old", "Staples #1", category_id="2")
        txn = make_txn("new", "Staples #2", category_id="4")

        assert suggest_rule(txn, "4", None, [sibling, txn], []) is None

    def test_suppressed_by_existing_rule(self, make_txn):
        from bizxpense.intelligence.rule_engine import suggest_rule

        sibling = make_txn("old", "Staples #1", category_id="4")
        txn = make_txn("new", "Staples #2", category_id="4")
        existing = [_rule("r", [_cond("description", "starts_with", "Staples #")], target="4")]

        assert suggest_rule(txn, "4", None, [sibling, txn], existing) is None

    def test_inactive_rule_does_not_suppress(self, make_txn):
        from bizxpense.intelligence.rule_engine import suggest_rule

        sibling = make_txn("old", "Staples #1", category_id="4")
        txn = make_txn("new", "Staples #2", category_id="4")
        existing = [_rule("r", [_cond("description", "starts_with", "staples #")], target="4", active=False)]

        assert suggest_rule(txn, "4", None, [sibling, txn], existing) is not None
