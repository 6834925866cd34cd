"""Resolve free-text category labels against the category catalog."""
import copy
import uuid
from typing import List, Dict, Any, Optional

from rapidfuzz.distance import Levenshtein

from bizxpense.config import (
    FUZZY_MATCH_TOLERANCE,
    NEUTRAL_CATEGORY_COLOR,
    UNCATEGORIZED_LABEL,
)


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance with unit insert, delete and substitute costs."""
    return int(Levenshtein.distance(a, b))


class CategoryResolver:
    """Match labels to (category, subcategory) pairs, exact first then fuzzy."""

    def __init__(self, categories: List[Dict[str, Any]], tolerance: int = FUZZY_MATCH_TOLERANCE):
        """Initialize the resolver.

        Args:
            categories: Category catalog in display order
            tolerance: Max edit distance accepted for a fuzzy match
        """
        self.categories = categories
        self.tolerance = tolerance

    def _names(self):
        """Yield (name, category_id, subcategory_id), each category before its subcategories."""
        for category in self.categories:
            yield category.get("name", ""), category["id"], None
            for sub in category.get("subcategories") or []:
                yield sub.get("name", ""), category["id"], sub["id"]

    def resolve(self, label: str) -> Dict[str, Any]:
        """Resolve a label.

        Returns:
            {"status": "resolved", "category_id", "subcategory_id", "method", "distance"}
            or {"status": "unresolved", "suggestion", "distance"}
        """
        target = (label or "").strip().lower()

        for name, category_id, subcategory_id in self._names():
            if name.lower() == target:
                return {
                    "status": "resolved",
                    "category_id": category_id,
                    "subcategory_id": subcategory_id,
                    "method": "exact",
                    "distance": 0,
                }

        best = None
        best_distance = None
        for name, category_id, subcategory_id in self._names():
            distance = levenshtein_distance(target, name.lower())
            if best_distance is None or distance < best_distance:
                best = (name, category_id, subcategory_id)
                best_distance = distance

        if best is not None and best_distance <= self.tolerance:
            return {
                "status": "resolved",
                "category_id": best[1],
                "subcategory_id": best[2],
                "method": "fuzzy",
                "distance": best_distance,
            }

        return {
            "status": "unresolved",
            "suggestion": best[0] if best else None,
            "distance": best_distance,
        }

    def resolve_all(self, labels: List[str]) -> Dict[str, Dict[str, Any]]:
        """Resolve every label, keyed by the label."""
        return {label: self.resolve(label) for label in labels}


def new_category_for_label(label: str) -> Dict[str, Any]:
    """Build a new EXPENSE category for an unresolved label."""
    return {
        "id": f"cat-{uuid.uuid4().hex[:8]}",
        "name": label.strip(),
        "type": "EXPENSE",
        "color": NEUTRAL_CATEGORY_COLOR,
        "subcategories": [],
    }


def lookup_id(categories: List[Dict[str, Any]], some_id: Optional[str]) -> Optional[Dict[str, Any]]:
    """Find a category or subcategory by id.

    Returns:
        {"kind": "category"|"subcategory", "category", "subcategory"} or None
    """
    if not some_id:
        return None
    for category in categories:
        if category["id"] == some_id:
            return {"kind": "category", "category": category, "subcategory": None}
        for sub in category.get("subcategories") or []:
            if sub["id"] == some_id:
                return {"kind": "subcategory", "category": category, "subcategory": sub}
    return None


def find_category(categories: List[Dict[str, Any]], category_id: Optional[str]) -> Optional[Dict[str, Any]]:
    found = lookup_id(categories, category_id)
    if found and found["kind"] == "category":
        return found["category"]
    return None


def sanitize_assignment(
    categories: List[Dict[str, Any]],
    category_id: Optional[str],
    subcategory_id: Optional[str]
) -> Dict[str, Optional[str]]:
    """Drop a subcategory that does not belong to the given category."""
    category = find_category(categories, category_id)
    if category is None:
        return {"category_id": None, "subcategory_id": None}
    sub_ids = {s["id"] for s in category.get("subcategories") or []}
    return {
        "category_id": category_id,
        "subcategory_id": subcategory_id if subcategory_id in sub_ids else None,
    }


def category_label(txn: Dict[str, Any], categories: List[Dict[str, Any]]) -> str:
    """Display label for a transaction's category; dangling ids read as Uncategorized."""
    category = find_category(categories, txn.get("category_id"))
    if category is None:
        return UNCATEGORIZED_LABEL

    for sub in category.get("subcategories") or []:
        if sub["id"] == txn.get("subcategory_id"):
            return f"{category['name']} > {sub['name']}"
    return category["name"]


def apply_category(
    txn: Dict[str, Any],
    category: Dict[str, Any],
    subcategory_id: Optional[str] = None
) -> Dict[str, Any]:
    """Return a copy of txn assigned to category; the category's type wins."""
    sub_ids = {s["id"] for s in category.get("subcategories") or []}
    updated = copy.deepcopy(txn)
    updated["category_id"] = category["id"]
    updated["subcategory_id"] = subcategory_id if subcategory_id in sub_ids else None
    updated["type"] = category.get("type", updated.get("type"))
    return updated
