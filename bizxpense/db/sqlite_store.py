"""SQLite store for categories, transactions, rules and orders."""
import json
import logging
import sqlite3
from pathlib import Path
from typing import List, Dict, Any, Iterable

from bizxpense.config import DEFAULT_CATEGORIES
from .schema import SCHEMA_SQL


logger = logging.getLogger(__name__)

TRANSACTION_COLUMNS = [
    "id", "date", "description", "amount", "type", "category_id", "subcategory_id",
    "account", "merchant", "is_anomaly", "anomaly_reason", "comments", "original_text",
]
ORDER_COLUMNS = [
    "id", "date", "description", "amount", "order_status", "payment_account",
    "category", "item_details", "matched_transaction_id",
]


class SQLiteStore:
    """SQLite persistence for the ledger (bulk upsert and full-state get/put)."""

    def __init__(self, db_path: Path):
        """Initialize the store with database path."""
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        # Enable WAL mode for better concurrency
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _init_schema(self) -> None:
        """Create tables and seed the default catalog on a fresh database."""
        cursor = self.conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='categories'"
        )
        is_new = cursor.fetchone() is None

        self.conn.executescript(SCHEMA_SQL)
        if is_new:
            logger.info(f"Seeding default categories into {self.db_path}")
            self.put_categories(DEFAULT_CATEGORIES)
        self.conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self.conn:
            self.conn.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def get_tables(self) -> List[str]:
        """Get list of tables in the database."""
        cursor = self.conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        )
        return [row[0] for row in cursor.fetchall()]

    # === Categories ===

    def get_categories(self) -> List[Dict[str, Any]]:
        """Get the full catalog, each category with its ordered subcategories."""
        categories = [
            dict(row) for row in self.conn.execute(
                "SELECT id, name, type, color FROM categories ORDER BY position"
            ).fetchall()
        ]
        subs: Dict[str, List[Dict[str, Any]]] = {}
        for row in self.conn.execute(
            "SELECT id, category_id, name FROM subcategories ORDER BY position"
        ).fetchall():
            subs.setdefault(row["category_id"], []).append({"id": row["id"], "name": row["name"]})

        for category in categories:
            category["subcategories"] = subs.get(category["id"], [])
        return categories

    def put_categories(self, categories: List[Dict[str, Any]]) -> None:
        """Replace the whole catalog."""
        with self.conn:
            self.conn.execute("DELETE FROM subcategories")
            self.conn.execute("DELETE FROM categories")
            for position, category in enumerate(categories):
                self.conn.execute(
                    "INSERT INTO categories (id, name, type, color, position) VALUES (?, ?, ?, ?, ?)",
                    (category["id"], category["name"], category.get("type", "EXPENSE"),
                     category.get("color"), position)
                )
                for sub_position, sub in enumerate(category.get("subcategories") or []):
                    self.conn.execute(
                        "INSERT INTO subcategories (id, category_id, name, position) VALUES (?, ?, ?, ?)",
                        (sub["id"], category["id"], sub["name"], sub_position)
                    )

    # === Transactions ===

    def get_transactions(self) -> List[Dict[str, Any]]:
        """Get all transactions in ledger order."""
        cursor = self.conn.execute(
            f"SELECT {', '.join(TRANSACTION_COLUMNS)} FROM transactions ORDER BY position"
        )
        transactions = []
        for row in cursor.fetchall():
            txn = dict(row)
            txn["is_anomaly"] = bool(txn["is_anomaly"])
            transactions.append(txn)
        return transactions

    def upsert_transactions(self, transactions: Iterable[Dict[str, Any]]) -> int:
        """Insert or update transactions keyed by id. New rows go to the end."""
        columns = TRANSACTION_COLUMNS
        updates = ", ".join(f"{c} = excluded.{c}" for c in columns[1:])
        sql = (
            f"INSERT INTO transactions ({', '.join(columns)}, position) "
            f"VALUES ({', '.join('?' for _ in columns)}, "
            f"(SELECT COALESCE(MAX(position), -1) + 1 FROM transactions)) "
            f"ON CONFLICT(id) DO UPDATE SET {updates}"
        )

        count = 0
        with self.conn:
            for txn in transactions:
                values = [txn.get(c) for c in columns]
                values[columns.index("is_anomaly")] = int(bool(txn.get("is_anomaly")))
                self.conn.execute(sql, values)
                count += 1
        return count

    def put_transactions(self, transactions: List[Dict[str, Any]]) -> None:
        """Replace every stored transaction."""
        with self.conn:
            self.conn.execute("DELETE FROM transactions")
        self.upsert_transactions(transactions)

    def delete_transactions(self, ids: Iterable[str]) -> int:
        """Delete transactions by id, returns count deleted."""
        ids = list(ids)
        if not ids:
            return 0
        with self.conn:
            cursor = self.conn.execute(
                f"DELETE FROM transactions WHERE id IN ({', '.join('?' for _ in ids)})", ids
            )
        return cursor.rowcount

    # === Rules ===

    def get_rules(self) -> List[Dict[str, Any]]:
        """Get all rules in evaluation order."""
        rules = []
        for row in self.conn.execute("SELECT * FROM rules ORDER BY position").fetchall():
            rule = dict(row)
            rule.pop("position")
            rule["conditions"] = json.loads(rule["conditions"] or "[]")
            rule["is_active"] = bool(rule["is_active"])
            rules.append(rule)
        return rules

    def put_rules(self, rules: List[Dict[str, Any]]) -> None:
        """Replace every stored rule."""
        with self.conn:
            self.conn.execute("DELETE FROM rules")
            for position, rule in enumerate(rules):
                self.conn.execute(
                    """INSERT INTO rules (id, name, match_logic, conditions, target_category_id,
                                          target_subcategory_id, is_active, position)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (rule["id"], rule["name"], rule.get("match_logic", "AND"),
                     json.dumps(rule.get("conditions") or []), rule["target_category_id"],
                     rule.get("target_subcategory_id"), int(rule.get("is_active", True)), position)
                )

    # === Orders ===

    def get_orders(self) -> List[Dict[str, Any]]:
        """Get all reconciliation orders."""
        cursor = self.conn.execute(
            f"SELECT {', '.join(ORDER_COLUMNS)} FROM orders ORDER BY position"
        )
        return [dict(row) for row in cursor.fetchall()]

    def put_orders(self, orders: List[Dict[str, Any]]) -> None:
        """Replace every stored order."""
        with self.conn:
            self.conn.execute("DELETE FROM orders")
            for position, order in enumerate(orders):
                self.conn.execute(
                    f"INSERT INTO orders ({', '.join(ORDER_COLUMNS)}, position) "
                    f"VALUES ({', '.join('?' for _ in ORDER_COLUMNS)}, ?)",
                    [order.get(c) for c in ORDER_COLUMNS] + [position]
                )

    # === Whole ledger ===

    def load_all(self) -> Dict[str, List[Dict[str, Any]]]:
        """Read the full ledger state."""
        return {
            "categories": self.get_categories(),
            "transactions": self.get_transactions(),
            "rules": self.get_rules(),
            "orders": self.get_orders(),
        }

    def reset_all_data(self) -> Dict[str, int]:
        """Delete everything and re-seed the default catalog.

        Returns:
            Counts of deleted rows per table
        """
        counts = {}
        with self.conn:
            for table in ["transactions", "rules", "orders", "subcategories", "categories"]:
                counts[table] = self.conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
                self.conn.execute(f"DELETE FROM {table}")
        self.put_categories(DEFAULT_CATEGORIES)
        return counts
