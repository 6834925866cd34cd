"""In-memory ledger with explicit commit operations."""
import copy
import logging
from typing import List, Dict, Any, Iterable, Optional

from bizxpense.config import DEFAULT_CATEGORIES
from bizxpense.db.sqlite_store import SQLiteStore


logger = logging.getLogger(__name__)


class Ledger:
    """Owns categories, transactions, rules and orders for one session.

    Reads hand out deep copies. Every mutation goes through a commit_* or
    delete_* call, which also writes through to the SQLite store when one
    is attached.
    """

    def __init__(self, store: Optional[SQLiteStore] = None):
        """Initialize the ledger.

        Args:
            store: Optional SQLiteStore to load from and write through to.
                Without one the ledger starts with the default catalog.
        """
        self.store = store
        if store is not None:
            state = store.load_all()
        else:
            state = {
                "categories": copy.deepcopy(DEFAULT_CATEGORIES),
                "transactions": [],
                "rules": [],
                "orders": [],
            }
        self._categories: List[Dict[str, Any]] = state["categories"]
        self._transactions: List[Dict[str, Any]] = state["transactions"]
        self._rules: List[Dict[str, Any]] = state["rules"]
        self._orders: List[Dict[str, Any]] = state["orders"]

    # === Reads ===

    def snapshot(self) -> Dict[str, List[Dict[str, Any]]]:
        """Deep copy of the whole ledger."""
        return copy.deepcopy({
            "categories": self._categories,
            "transactions": self._transactions,
            "rules": self._rules,
            "orders": self._orders,
        })

    @property
    def categories(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._categories)

    @property
    def transactions(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._transactions)

    @property
    def rules(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._rules)

    @property
    def orders(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._orders)

    def get_transaction(self, txn_id: str) -> Optional[Dict[str, Any]]:
        for txn in self._transactions:
            if txn["id"] == txn_id:
                return copy.deepcopy(txn)
        return None

    def get_category(self, category_id: str) -> Optional[Dict[str, Any]]:
        for category in self._categories:
            if category["id"] == category_id:
                return copy.deepcopy(category)
        return None

    def get_rule(self, rule_id: str) -> Optional[Dict[str, Any]]:
        for rule in self._rules:
            if rule["id"] == rule_id:
                return copy.deepcopy(rule)
        return None

    def get_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        for order in self._orders:
            if order["id"] == order_id:
                return copy.deepcopy(order)
        return None

    # === Commits ===

    def commit_new_transactions(self, transactions: List[Dict[str, Any]]) -> int:
        """Append new transactions; ids already in the ledger are skipped."""
        known = {t["id"] for t in self._transactions}
        added = []
        for txn in transactions:
            if txn["id"] in known:
                logger.warning(f"Transaction {txn['id']} already in ledger, skipping")
                continue
            known.add(txn["id"])
            added.append(copy.deepcopy(txn))

        self._transactions.extend(added)
        if self.store is not None and added:
            self.store.upsert_transactions(added)
        return len(added)

    def commit_transaction_updates(self, updates: List[Dict[str, Any]]) -> int:
        """Merge partial updates (each with an "id") into existing transactions.

        Returns:
            Number of transactions changed; unknown ids are ignored
        """
        by_id = {t["id"]: t for t in self._transactions}
        changed = []
        for update in updates:
            txn = by_id.get(update.get("id"))
            if txn is None:
                continue
            txn.update(copy.deepcopy(update))
            changed.append(txn)

        if self.store is not None and changed:
            self.store.upsert_transactions(changed)
        return len(changed)

    def commit_categories(self, categories: List[Dict[str, Any]]) -> None:
        """Replace the category catalog."""
        self._categories = copy.deepcopy(categories)
        if self.store is not None:
            self.store.put_categories(self._categories)

    def commit_rules(self, rules: List[Dict[str, Any]]) -> None:
        """Replace the rule list (order is evaluation order)."""
        self._rules = copy.deepcopy(rules)
        if self.store is not None:
            self.store.put_rules(self._rules)

    def commit_orders(self, orders: List[Dict[str, Any]]) -> None:
        """Replace the order list."""
        self._orders = copy.deepcopy(orders)
        if self.store is not None:
            self.store.put_orders(self._orders)

    # === Deletes ===

    def delete_transactions(self, ids: Iterable[str]) -> int:
        ids = set(ids)
        before = len(self._transactions)
        self._transactions = [t for t in self._transactions if t["id"] not in ids]
        removed = before - len(self._transactions)
        if self.store is not None and removed:
            self.store.delete_transactions(ids)
        return removed

    def delete_category(self, category_id: str) -> bool:
        """Remove a category. Transactions keep their (now dangling) ids."""
        remaining = [c for c in self._categories if c["id"] != category_id]
        if len(remaining) == len(self._categories):
            return False
        self.commit_categories(remaining)
        return True

    def delete_rule(self, rule_id: str) -> bool:
        remaining = [r for r in self._rules if r["id"] != rule_id]
        if len(remaining) == len(self._rules):
            return False
        self.commit_rules(remaining)
        return True

    def clear_orders(self) -> None:
        self.commit_orders([])
