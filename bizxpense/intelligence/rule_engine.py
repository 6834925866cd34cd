"""Conditional auto-categorization rules and rule suggestions."""
import logging
import re
import uuid
from typing import List, Dict, Any, Optional

from bizxpense.config import AMOUNT_TOLERANCE, SUGGESTION_MIN_PREFIX
from bizxpense.intelligence.category_resolver import find_category


logger = logging.getLogger(__name__)

_NUMERIC_PREFIX = re.compile(r"[\d\s.,/#-]+")

TEXT_OPERATORS = {
    "contains": lambda field, value: value in field,
    "equals": lambda field, value: field == value,
    "starts_with": lambda field, value: field.startswith(value),
    "ends_with": lambda field, value: field.endswith(value),
}


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return None


def evaluate_condition(condition: Dict[str, Any], txn: Dict[str, Any]) -> bool:
    """Evaluate a single rule condition against a transaction.

    Amount conditions compare numerically (equals, greater, less). Text
    fields compare case-insensitively. Anything else is False.
    """
    field = condition.get("field")
    operator = condition.get("operator")
    value = condition.get("value", "")

    if field == "amount":
        amount = _to_float(txn.get("amount"))
        target = _to_float(value)
        if amount is None or target is None:
            return False
        if operator == "equals":
            return abs(amount - target) <= AMOUNT_TOLERANCE + 1e-9
        if operator == "greater":
            return amount > target
        if operator == "less":
            return amount < target
        return False

    if field not in ("description", "account"):
        return False

    compare = TEXT_OPERATORS.get(operator)
    if compare is None:
        return False
    text = str(txn.get(field) or "").lower()
    return compare(text, str(value or "").lower())


def rule_matches(rule: Dict[str, Any], txn: Dict[str, Any]) -> bool:
    """AND requires every condition, OR any. A rule with no conditions never matches."""
    conditions = rule.get("conditions") or []
    if not conditions:
        return False

    results = (evaluate_condition(c, txn) for c in conditions)
    if rule.get("match_logic", "AND") == "OR":
        return any(results)
    return all(results)


class RuleEngine:
    """Apply active rules to uncategorized transactions."""

    def __init__(self, rules: List[Dict[str, Any]], categories: List[Dict[str, Any]]):
        """Initialize the engine.

        Args:
            rules: Rules in stored order (evaluation order)
            categories: Category catalog, used to validate rule targets
        """
        self.categories = categories
        self.rules = []
        for rule in rules:
            if not rule.get("is_active", True):
                continue
            if find_category(categories, rule.get("target_category_id")) is None:
                logger.warning(f"Skipping rule '{rule.get('name')}': target category no longer exists")
                continue
            self.rules.append(rule)

    def match(self, txn: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """First active rule that matches, or None."""
        for rule in self.rules:
            if rule_matches(rule, txn):
                return rule
        return None

    def run(self, transactions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Propose category changes for uncategorized transactions.

        Returns:
            List of changes with transaction_id, rule_id, category_id,
            subcategory_id and type. Nothing is applied here.
        """
        changes = []
        for txn in transactions:
            if txn.get("category_id"):
                continue

            rule = self.match(txn)
            if rule is None:
                continue

            category = find_category(self.categories, rule["target_category_id"])
            sub_ids = {s["id"] for s in category.get("subcategories") or []}
            subcategory_id = rule.get("target_subcategory_id")

            changes.append({
                "transaction_id": txn["id"],
                "rule_id": rule["id"],
                "category_id": category["id"],
                "subcategory_id": subcategory_id if subcategory_id in sub_ids else None,
                "type": category.get("type", txn.get("type")),
            })

        logger.info(f"Rules matched {len(changes)} of {len(transactions)} transactions")
        return changes


def common_prefix(a: str, b: str) -> str:
    """Case-insensitive common prefix of two strings (lower-cased)."""
    a, b = a.lower(), b.lower()
    length = 0
    for ca, cb in zip(a, b):
        if ca != cb:
            break
        length += 1
    return a[:length]


def _is_numeric(text: str) -> bool:
    """Digits and number punctuation only, e.g. a card or reference prefix."""
    return _NUMERIC_PREFIX.fullmatch(text) is not None


def suggest_rule(
    txn: Dict[str, Any],
    category_id: str,
    subcategory_id: Optional[str],
    transactions: List[Dict[str, Any]],
    rules: List[Dict[str, Any]]
) -> Optional[Dict[str, Any]]:
    """Suggest a starts_with rule after a manual categorization.

    Scans other transactions already in category_id for a shared description
    prefix of at least SUGGESTION_MIN_PREFIX characters that is not just a
    number. The first qualifying sibling wins. No suggestion is made when an
    active rule for the category already tests that prefix.

    Args:
        txn: The transaction that was just categorized
        category_id: Category assigned to it
        subcategory_id: Subcategory assigned to it, if any
        transactions: Current ledger transactions
        rules: Current rules

    Returns:
        Unsaved rule dict, or None
    """
    description = txn.get("description") or ""

    for sibling in transactions:
        if sibling.get("id") == txn.get("id") or sibling.get("category_id") != category_id:
            continue

        prefix = common_prefix(description, sibling.get("description") or "").rstrip()
        if len(prefix) < SUGGESTION_MIN_PREFIX or _is_numeric(prefix):
            continue

        for rule in rules:
            if not rule.get("is_active", True) or rule.get("target_category_id") != category_id:
                continue
            if any(str(c.get("value", "")).lower() == prefix for c in rule.get("conditions") or []):
                return None

        return {
            "id": f"rule-{uuid.uuid4().hex[:8]}",
            "name": f"Auto: {prefix}",
            "match_logic": "AND",
            "conditions": [{
                "id": f"cond-{uuid.uuid4().hex[:8]}",
                "field": "description",
                "operator": "starts_with",
                "value": prefix,
            }],
            "target_category_id": category_id,
            "target_subcategory_id": subcategory_id,
            "is_active": True,
        }

    return None
