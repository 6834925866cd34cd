"""Tests for SQLite store."""
from pathlib import Path


class TestSQLiteStore:
    """Test cases for SQLiteStore class."""

    def test_init_creates_tables(self, temp_db_path: Path):
        """Store should create required tables on init."""
        from bizxpense.db.sqlite_store import SQLiteStore

        store = SQLiteStore(temp_db_path)
        tables = store.get_tables()

        for table in ["categories", "subcategories", "transactions", "rules", "orders"]:
            assert table in tables
        store.close()

    def test_seeds_default_categories(self, temp_db_path: Path):
        """A fresh database holds the default catalog in order."""
        from bizxpense.db.sqlite_store import SQLiteStore

        with SQLiteStore(temp_db_path) as store:
            categories = store.get_categories()

        assert [c["name"] for c in categories][:3] == ["Sales", "Rent", "Utilities"]
        assert len(categories) == 9
        travel = next(c for c in categories if c["name"] == "Travel")
        assert [s["name"] for s in travel["subcategories"]] == ["Hotel", "Flight", "Meals"]
        assert travel["type"] == "EXPENSE"

    def test_does_not_reseed_on_reopen(self, temp_db_path: Path):
        """Deleting categories survives reopening the database."""
        from bizxpense.db.sqlite_store import SQLiteStore

        with SQLiteStore(temp_db_path) as store:
            store.put_categories([])

        with SQLiteStore(temp_db_path) as store:
            assert store.get_categories() == []

    def test_upsert_transactions(self, temp_db_path: Path, make_txn):
        """Upserts are keyed by id and keep insertion order."""
        from bizxpense.db.sqlite_store import SQLiteStore

        with SQLiteStore(temp_db_path) as store:
            store.upsert_transactions([make_txn("a", "First"), make_txn("b", "Second")])
            store.upsert_transactions([make_txn("a", "First", category_id="4", is_anomaly=True)])

            txns = store.get_transactions()

        assert [t["id"] for t in txns] == ["a", "b"]
        assert txns[0]["category_id"] == "4"
        assert txns[0]["is_anomaly"] is True
        assert txns[1]["is_anomaly"] is False

    def test_delete_transactions(self, temp_db_path: Path, make_txn):
        from bizxpense.db.sqlite_store import SQLiteStore

        with SQLiteStore(temp_db_path) as store:
            store.upsert_transactions([make_txn("a"), make_txn("b")])
            deleted = store.delete_transactions(["a", "missing"])

            assert deleted == 1
            assert [t["id"] for t in store.get_transactions()] == ["b"]

    def test_rules_round_trip(self, temp_db_path: Path):
        """Rule conditions are stored as JSON and order is preserved."""
        from bizxpense.db.sqlite_store import SQLiteStore

        rules = [
            {"id": "r2", "name": "Second", "match_logic": "OR", "target_category_id": "4",
             "target_subcategory_id": None, "is_active": False,
             "conditions": [{"id": "c1", "field": "amount", "operator": "greater", "value": "10"}]},
            {"id": "r1", "name": "First", "match_logic": "AND", "target_category_id": "2",
             "target_subcategory_id": None, "is_active": True, "conditions": []},
        ]

        with SQLiteStore(temp_db_path) as store:
            store.put_rules(rules)
            loaded = store.get_rules()

        assert loaded == rules

    def test_orders_round_trip(self, temp_db_path: Path):
        from bizxpense.db.sqlite_store import SQLiteStore

        order = {"id": "o1", "date": "2024-03-01", "description": "Monitor", "amount": 100.0,
                 "order_status": "Shipped", "payment_account": "Visa", "category": "",
                 "item_details": "", "matched_transaction_id": None}

        with SQLiteStore(temp_db_path) as store:
            store.put_orders([order])
            assert store.get_orders() == [order]

    def test_reset_all_data(self, temp_db_path: Path, make_txn):
        from bizxpense.db.sqlite_store import SQLiteStore

        with SQLiteStore(temp_db_path) as store:
            store.upsert_transactions([make_txn("a")])
            counts = store.reset_all_data()

            assert counts["transactions"] == 1
            assert store.get_transactions() == []
            assert len(store.get_categories()) == 9


class TestLedger:
    """Test cases for the in-memory Ledger."""

    def test_snapshot_is_a_copy(self, make_txn):
        from bizxpense.api.ledger import Ledger

        ledger = Ledger()
        ledger.commit_new_transactions([make_txn("a")])

        snapshot = ledger.snapshot()
        snapshot["transactions"][0]["description"] = "changed"

        assert ledger.get_transaction("a")["description"] == "Test"

    def test_commit_new_skips_known_ids(self, make_txn):
        from bizxpense.api.ledger import Ledger

        ledger = Ledger()
        assert ledger.commit_new_transactions([make_txn("a"), make_txn("a")]) == 1
        assert ledger.commit_new_transactions([make_txn("a")]) == 0

    def test_updates_merge_and_write_through(self, temp_db_path: Path, make_txn):
        """Committed updates reach the store."""
        from bizxpense.api.ledger import Ledger
        from bizxpense.db.sqlite_store import SQLiteStore

        with SQLiteStore(temp_db_path) as store:
            ledger = Ledger(store)
            ledger.commit_new_transactions([make_txn("a", "Coffee")])
            changed = ledger.commit_transaction_updates([{"id": "a", "comments": "note"}, {"id": "zzz"}])

            assert changed == 1
            stored = store.get_transactions()[0]
            assert stored["comments"] == "note"
            assert stored["description"] == "Coffee"

    def test_delete_category_leaves_transactions(self, make_txn):
        from bizxpense.api.ledger import Ledger

        ledger = Ledger()
        ledger.commit_new_transactions([make_txn("a", category_id="2")])

        assert ledger.delete_category("2")
        assert not ledger.delete_category("2")
        assert ledger.get_transaction("a")["category_id"] == "2"

    def test_loads_from_store(self, temp_db_path: Path, make_txn):
        from bizxpense.api.ledger import Ledger
        from bizxpense.db.sqlite_store import SQLiteStore

        with SQLiteStore(temp_db_path) as store:
            Ledger(store).commit_new_transactions([make_txn("a")])

        with SQLiteStore(temp_db_path) as store:
            ledger = Ledger(store)
            assert [t["id"] for t in ledger.transactions] == ["a"]
            assert len(ledger.categories) == 9
