"""Budget service - main orchestration layer."""
import logging
import uuid
from pathlib import Path
from typing import List, Dict, Any, Optional, Iterable, Callable

from bizxpense.config import (
    DB_PATH,
    DEFAULT_ACCOUNT_NAME,
    MANUAL_ACCOUNT_NAME,
    PENDING_IMPORT_LIMIT,
    RULE_FIELDS,
    RULE_LOGIC,
    RULE_OPERATORS,
    TRANSACTION_TYPES,
    ensure_data_dir,
)
from bizxpense.api.ledger import Ledger
from bizxpense.db.sqlite_store import SQLiteStore
from bizxpense.ingestion.bank_sync import BankSyncError, SimpleFinClient
from bizxpense.ingestion.column_mapper import (
    ColumnMapper,
    OrderColumnMapper,
    ORDER_FIELDS,
    guess_mapping,
)
from bizxpense.ingestion.file_reader import read_grid
from bizxpense.ingestion.normalize import normalize_date, parse_amount
from bizxpense.intelligence import reconciliation
from bizxpense.intelligence.anomaly_detector import AnomalyDetector
from bizxpense.intelligence.assistant import ClaudeAssistant
from bizxpense.intelligence.category_resolver import (
    CategoryResolver,
    apply_category,
    category_label,
    find_category,
    lookup_id,
    new_category_for_label,
    sanitize_assignment,
)
from bizxpense.intelligence.duplicate_detector import DuplicateDetector, finalize_import
from bizxpense.intelligence.rule_engine import RuleEngine, suggest_rule


logger = logging.getLogger(__name__)


class BudgetService:
    """Main service for the BizXpense ledger.

    Sequences the pure import, categorization and reconciliation steps and
    commits their results to the ledger.
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        assistant: Optional[ClaudeAssistant] = None,
        bank_client_factory: Callable[[str], SimpleFinClient] = SimpleFinClient
    ):
        """Initialize the budget service.

        Args:
            db_path: Path to SQLite database (default: ~/.bizxpense/ledger.db)
            assistant: Claude assistant (injected for testing)
            bank_client_factory: Builds a bank client from an access URL
        """
        if db_path is None:
            ensure_data_dir()
        self.db_path = db_path or DB_PATH

        self.store = SQLiteStore(self.db_path)
        self.ledger = Ledger(self.store)
        self.assistant = assistant or ClaudeAssistant()
        self.anomaly_detector = AnomalyDetector()
        self.bank_client_factory = bank_client_factory

        self._pending_imports: Dict[str, Dict[str, Any]] = {}
        self._pending_suggestions: Dict[str, Dict[str, Any]] = {}

    def close(self):
        """Close all connections."""
        self.store.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # === Import ===

    def preview_import(
        self,
        rows: List[List[str]],
        mapping: Dict[str, int],
        account_name: str = DEFAULT_ACCOUNT_NAME,
        split_mode: bool = False,
        label_map: Optional[Dict[str, str]] = None,
        create_missing: bool = False
    ) -> Dict[str, Any]:
        """Map, resolve and duplicate-check a grid without committing.

        Args:
            rows: Raw grid, header first
            mapping: Column mapping for ColumnMapper
            account_name: Default account label
            split_mode: Separate debit/credit columns
            label_map: Manual label -> category or subcategory id overrides
            create_missing: Create a new category for each unresolved label

        Returns:
            Dict with import_id, clean, duplicates, labels (resolution per
            free-text label) and new_categories
        """
        mapped = ColumnMapper(mapping, account_name=account_name, split_mode=split_mode).map_rows(rows)
        categories = self.ledger.categories
        resolutions, new_categories = self._resolve_labels(
            mapped["category_labels"], categories, label_map or {}, create_missing
        )

        candidates = []
        for txn in mapped["transactions"]:
            label = txn.pop("category_label", None)
            resolution = resolutions.get(label) if label else None
            if resolution and resolution["status"] == "resolved":
                category = find_category(categories, resolution["category_id"])
                txn = apply_category(txn, category, resolution["subcategory_id"])
            candidates.append(txn)

        preview = self._stage_import(candidates, new_categories)
        preview["labels"] = resolutions
        return preview

    def _resolve_labels(
        self,
        labels: List[str],
        categories: List[Dict[str, Any]],
        label_map: Dict[str, str],
        create_missing: bool
    ):
        """Resolve free-text labels. New categories are appended to categories."""
        resolver = CategoryResolver(categories)
        resolutions = {}
        new_categories = []

        for label in labels:
            found = lookup_id(categories, label_map.get(label))
            if found is not None:
                resolutions[label] = {
                    "status": "resolved",
                    "category_id": found["category"]["id"],
                    "subcategory_id": found["subcategory"]["id"] if found["subcategory"] else None,
                    "method": "manual",
                    "distance": None,
                }
                continue

            resolution = resolver.resolve(label)
            if resolution["status"] == "unresolved" and create_missing:
                category = new_category_for_label(label)
                categories.append(category)
                new_categories.append(category)
                resolution = {
                    "status": "resolved",
                    "category_id": category["id"],
                    "subcategory_id": None,
                    "method": "created",
                    "distance": None,
                }
            resolutions[label] = resolution

        return resolutions, new_categories

    def _stage_import(
        self,
        candidates: List[Dict[str, Any]],
        new_categories: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """Duplicate-check candidates and hold them until finalize_import."""
        partition = DuplicateDetector(self.ledger.transactions).partition(candidates)
        import_id = uuid.uuid4().hex
        self._pending_imports[import_id] = {
            "partition": partition,
            "new_categories": new_categories or [],
        }
        while len(self._pending_imports) > PENDING_IMPORT_LIMIT:
            stale = next(iter(self._pending_imports))
            logger.info(f"Dropping abandoned import preview {stale}")
            del self._pending_imports[stale]
        return {
            "import_id": import_id,
            "clean": partition["clean"],
            "duplicates": partition["duplicates"],
            "new_categories": new_categories or [],
        }

    def finalize_import(
        self,
        import_id: str,
        keep_duplicate_ids: Iterable[str] = (),
        apply_rules: bool = True
    ) -> Optional[Dict[str, Any]]:
        """Commit a staged import.

        Args:
            import_id: Id returned by a preview
            keep_duplicate_ids: Flagged duplicates the user chose to keep
            apply_rules: Run the rule engine over the ledger afterwards

        Returns:
            Import statistics, or None for an unknown import_id
        """
        pending = self._pending_imports.pop(import_id, None)
        if pending is None:
            return None

        if pending["new_categories"]:
            self.ledger.commit_categories(self.ledger.categories + pending["new_categories"])

        to_add = finalize_import(pending["partition"], keep_duplicate_ids)
        added = self.ledger.commit_new_transactions(to_add)
        duplicates = len(pending["partition"]["duplicates"])
        kept = added - len(pending["partition"]["clean"])

        rules_applied = self.run_rules()["applied"] if apply_rules else 0

        logger.info(f"Imported {added} transactions ({duplicates} flagged duplicates, {max(kept, 0)} kept)")
        return {
            "added": added,
            "duplicates": duplicates,
            "duplicates_kept": max(kept, 0),
            "rules_applied": rules_applied,
        }

    def cancel_import(self, import_id: str) -> bool:
        return self._pending_imports.pop(import_id, None) is not None

    def import_file(
        self,
        file_path: Path,
        mapping: Optional[Dict[str, int]] = None,
        account_name: str = DEFAULT_ACCOUNT_NAME,
        split_mode: bool = False,
        create_missing: bool = False,
        keep_duplicates: bool = False
    ) -> Dict[str, Any]:
        """Import transactions from CSV/Excel file in one step.

        Args:
            file_path: Path to the file
            mapping: Column mapping; guessed from the header when omitted
            account_name: Default account label
            split_mode: Separate debit/credit columns
            create_missing: Create categories for unresolved labels
            keep_duplicates: Keep flagged duplicates instead of skipping them

        Returns:
            Dict with import statistics
        """
        logger.info(f"Importing file: {file_path}")

        rows = read_grid(file_path)
        if not rows:
            return {"total_parsed": 0, "added": 0, "duplicates": 0, "duplicates_kept": 0,
                    "rules_applied": 0, "unresolved_labels": []}

        mapping = mapping or guess_mapping(rows[0])
        preview = self.preview_import(
            rows, mapping, account_name=account_name, split_mode=split_mode, create_missing=create_missing
        )
        keep = [t["id"] for t in preview["duplicates"]] if keep_duplicates else []
        result = self.finalize_import(preview["import_id"], keep)

        result["total_parsed"] = len(preview["clean"]) + len(preview["duplicates"])
        result["unresolved_labels"] = [
            label for label, r in preview["labels"].items() if r["status"] == "unresolved"
        ]
        return result

    def sync_bank(self, access_url: str) -> Dict[str, Any]:
        """Fetch bank transactions and stage them like a file import.

        Returns:
            Preview dict (see preview_import) plus "error", set when the
            bank could not be reached; nothing is staged in that case
        """
        try:
            client = self.bank_client_factory(access_url)
            transactions = client.fetch_transactions()
        except BankSyncError as e:
            logger.warning(f"Bank sync failed: {e}")
            return {"import_id": None, "clean": [], "duplicates": [], "new_categories": [], "error": str(e)}

        preview = self._stage_import(transactions)
        preview["error"] = None
        return preview

    def extract_document(
        self,
        data: bytes,
        media_type: str,
        kind: str = "receipt",
        account_name: str = MANUAL_ACCOUNT_NAME
    ) -> Dict[str, Any]:
        """Extract transactions from a receipt or statement and stage them.

        Args:
            data: File bytes
            media_type: e.g. application/pdf, image/png
            kind: "receipt" (one purchase) or "statement" (many rows)
            account_name: Account label for the extracted rows

        Returns:
            Preview dict (see preview_import); empty when extraction failed
        """
        batch = uuid.uuid4().hex[:8]
        candidates = []

        if kind == "statement":
            rows = self.assistant.extract_statement(data, media_type)
            for index, row in enumerate(rows):
                amount = abs(parse_amount(row.get("amount")))
                if amount == 0:
                    continue
                txn_type = row.get("type") if row.get("type") in TRANSACTION_TYPES else "EXPENSE"
                candidates.append(self._new_transaction(
                    f"ai-{batch}-{index}", row.get("date"), row.get("description"),
                    amount, txn_type, account_name,
                ))
        else:
            receipt = self.assistant.extract_receipt(data, media_type)
            amount = abs(parse_amount(receipt.get("amount"))) if receipt else 0
            if amount:
                txn = self._new_transaction(
                    f"ai-{batch}-0", receipt.get("date"), receipt.get("description"),
                    amount, "EXPENSE", account_name,
                )
                txn["merchant"] = receipt.get("merchant") or ""
                candidates.append(txn)

        if not candidates:
            logger.warning(f"No transactions extracted from {kind}")
        return self._stage_import(candidates)

    @staticmethod
    def _new_transaction(txn_id, date, description, amount, txn_type, account) -> Dict[str, Any]:
        return {
            "id": txn_id,
            "date": normalize_date(date),
            "description": (description or "").strip() or "Manual Transaction",
            "amount": amount,
            "type": txn_type,
            "category_id": None,
            "subcategory_id": None,
            "comments": "",
            "account": account,
        }

    def add_manual_transaction(
        self,
        date: str,
        description: str,
        amount: float,
        txn_type: str = "EXPENSE",
        category_id: Optional[str] = None,
        subcategory_id: Optional[str] = None,
        comments: str = "",
        account: str = MANUAL_ACCOUNT_NAME
    ) -> Dict[str, Any]:
        """Add a single hand-entered transaction.

        Raises:
            ValueError: If txn_type is not a known transaction type
        """
        if txn_type not in TRANSACTION_TYPES:
            raise ValueError(f"Unknown transaction type: {txn_type}")

        txn = self._new_transaction(
            f"manual-{uuid.uuid4().hex[:12]}", date, description,
            abs(parse_amount(amount)), txn_type, account or MANUAL_ACCOUNT_NAME,
        )
        txn["comments"] = comments or ""

        category = find_category(self.ledger.categories, category_id)
        if category is not None:
            txn = apply_category(txn, category, subcategory_id)

        self.ledger.commit_new_transactions([txn])
        return txn

    # === Transactions ===

    def get_transactions(self) -> List[Dict[str, Any]]:
        """All transactions, each with a display category label."""
        categories = self.ledger.categories
        transactions = self.ledger.transactions
        for txn in transactions:
            txn["category_label"] = category_label(txn, categories)
        return transactions

    def get_transaction(self, txn_id: str) -> Optional[Dict[str, Any]]:
        """Get a specific transaction."""
        return self.ledger.get_transaction(txn_id)

    def get_uncategorized(self) -> List[Dict[str, Any]]:
        """Transactions with no category or a category that no longer exists."""
        categories = self.ledger.categories
        return [
            t for t in self.ledger.transactions
            if find_category(categories, t.get("category_id")) is None
        ]

    def update_comments(self, txn_id: str, comments: str) -> bool:
        return self.ledger.commit_transaction_updates([{"id": txn_id, "comments": comments}]) > 0

    def delete_transactions(self, txn_ids: Iterable[str]) -> int:
        return self.ledger.delete_transactions(txn_ids)

    # === Categorization ===

    def categorize_transaction(
        self,
        txn_id: str,
        category_id: str,
        subcategory_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Manually categorize a transaction.

        Args:
            txn_id: Transaction ID
            category_id: Category ID
            subcategory_id: Optional subcategory of that category

        Returns:
            {"transaction": updated, "suggestion": rule or None}, or None
            when the transaction or category does not exist
        """
        txn = self.ledger.get_transaction(txn_id)
        category = find_category(self.ledger.categories, category_id)
        if txn is None or category is None:
            return None

        updated = apply_category(txn, category, subcategory_id)
        self.ledger.commit_transaction_updates([updated])

        suggestion = suggest_rule(
            updated, category_id, updated["subcategory_id"], self.ledger.transactions, self.ledger.rules
        )
        return {"transaction": updated, "suggestion": suggestion}

    def bulk_categorize(
        self,
        txn_ids: Iterable[str],
        category_id: str,
        subcategory_id: Optional[str] = None
    ) -> int:
        """Assign one category to many transactions. Returns count updated."""
        category = find_category(self.ledger.categories, category_id)
        if category is None:
            return 0

        ids = set(txn_ids)
        updates = [
            apply_category(t, category, subcategory_id)
            for t in self.ledger.transactions if t["id"] in ids
        ]
        return self.ledger.commit_transaction_updates(updates)

    def run_rules(self) -> Dict[str, Any]:
        """Apply active rules to uncategorized transactions."""
        snapshot = self.ledger.snapshot()
        changes = RuleEngine(snapshot["rules"], snapshot["categories"]).run(snapshot["transactions"])
        updates = [{
            "id": c["transaction_id"],
            "category_id": c["category_id"],
            "subcategory_id": c["subcategory_id"],
            "type": c["type"],
        } for c in changes]
        applied = self.ledger.commit_transaction_updates(updates)
        return {"changes": changes, "applied": applied}

    def auto_categorize(self) -> int:
        """Categorize uncategorized transactions with Claude.

        Returns:
            Number of transactions categorized (0 when the service fails)
        """
        uncategorized = self.get_uncategorized()
        if not uncategorized:
            return 0

        categories = self.ledger.categories
        known = {t["id"] for t in uncategorized}
        by_id = {t["id"]: t for t in uncategorized}

        updates = []
        for mapping in self.assistant.classify(uncategorized, categories):
            if mapping["id"] not in known:
                continue
            assignment = sanitize_assignment(categories, mapping["category_id"], mapping.get("subcategory_id"))
            if assignment["category_id"] is None:
                logger.warning(f"Ignoring unknown category {mapping['category_id']} for {mapping['id']}")
                continue
            category = find_category(categories, assignment["category_id"])
            updates.append(apply_category(by_id[mapping["id"]], category, assignment["subcategory_id"]))

        count = self.ledger.commit_transaction_updates(updates)
        logger.info(f"Auto-categorized {count} of {len(uncategorized)} transactions")
        return count

    def normalize_merchants(self) -> int:
        """Fill in clean merchant names. Returns count updated."""
        transactions = self.ledger.transactions
        known = {t["id"] for t in transactions}
        updates = [
            {"id": m["id"], "merchant": m["merchant"]}
            for m in self.assistant.normalize_merchants(transactions)
            if m["id"] in known
        ]
        return self.ledger.commit_transaction_updates(updates)

    def flag_anomalies(self, use_ai: bool = False) -> List[Dict[str, Any]]:
        """Mark unusual transactions.

        Args:
            use_ai: Ask Claude instead of the statistical detector

        Returns:
            List of {"id", "reason"} that were flagged
        """
        transactions = self.ledger.transactions
        if use_ai:
            flagged = self.assistant.detect_anomalies(transactions)
        else:
            flagged = self.anomaly_detector.detect(transactions)

        known = {t["id"] for t in transactions}
        flagged = [f for f in flagged if f["id"] in known]
        self.ledger.commit_transaction_updates([
            {"id": f["id"], "is_anomaly": True, "anomaly_reason": f["reason"]} for f in flagged
        ])
        logger.info(f"Flagged {len(flagged)} anomalies")
        return flagged

    # === Rules ===

    def get_rules(self) -> List[Dict[str, Any]]:
        return self.ledger.rules

    def save_rule(self, rule: Dict[str, Any]) -> Dict[str, Any]:
        """Create or replace a rule (matched by id).

        Raises:
            ValueError: If the logic, a field or an operator is unknown
        """
        if rule.get("match_logic", "AND") not in RULE_LOGIC:
            raise ValueError(f"Unknown match logic: {rule.get('match_logic')}")

        conditions = []
        for condition in rule.get("conditions") or []:
            if condition.get("field") not in RULE_FIELDS:
                raise ValueError(f"Unknown rule field: {condition.get('field')}")
            if condition.get("operator") not in RULE_OPERATORS:
                raise ValueError(f"Unknown rule operator: {condition.get('operator')}")
            conditions.append({
                "id": condition.get("id") or f"cond-{uuid.uuid4().hex[:8]}",
                "field": condition["field"],
                "operator": condition["operator"],
                "value": str(condition.get("value", "")),
            })

        saved = {
            "id": rule.get("id") or f"rule-{uuid.uuid4().hex[:8]}",
            "name": rule.get("name") or "Untitled Rule",
            "match_logic": rule.get("match_logic", "AND"),
            "conditions": conditions,
            "target_category_id": rule["target_category_id"],
            "target_subcategory_id": rule.get("target_subcategory_id"),
            "is_active": bool(rule.get("is_active", True)),
        }

        rules = self.ledger.rules
        for index, existing in enumerate(rules):
            if existing["id"] == saved["id"]:
                rules[index] = saved
                break
        else:
            rules.append(saved)
        self.ledger.commit_rules(rules)
        return saved

    def delete_rule(self, rule_id: str) -> bool:
        return self.ledger.delete_rule(rule_id)

    # === Categories ===

    def get_categories(self) -> List[Dict[str, Any]]:
        """Get all available categories."""
        return self.ledger.categories

    def add_category(
        self,
        name: str,
        category_type: str = "EXPENSE",
        color: Optional[str] = None,
        subcategories: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        """Add a category.

        Raises:
            ValueError: If category_type is not a known transaction type
        """
        if category_type not in TRANSACTION_TYPES:
            raise ValueError(f"Unknown category type: {category_type}")

        category = new_category_for_label(name)
        category["type"] = category_type
        if color:
            category["color"] = color
        category["subcategories"] = [
            {"id": f"{category['id']}-{i + 1}", "name": sub} for i, sub in enumerate(subcategories or [])
        ]
        self.ledger.commit_categories(self.ledger.categories + [category])
        return category

    def update_category(self, category_id: str, **fields) -> Optional[Dict[str, Any]]:
        """Update name, type or color of a category."""
        if "type" in fields and fields["type"] not in TRANSACTION_TYPES:
            raise ValueError(f"Unknown category type: {fields['type']}")

        categories = self.ledger.categories
        for category in categories:
            if category["id"] == category_id:
                category.update({k: v for k, v in fields.items() if k in ("name", "type", "color") and v is not None})
                self.ledger.commit_categories(categories)
                return category
        return None

    def delete_category(self, category_id: str) -> bool:
        """Delete a category; its transactions display as Uncategorized."""
        return self.ledger.delete_category(category_id)

    def add_subcategory(self, category_id: str, name: str) -> Optional[Dict[str, Any]]:
        categories = self.ledger.categories
        category = find_category(categories, category_id)
        if category is None:
            return None
        sub = {"id": f"{category_id}-{uuid.uuid4().hex[:6]}", "name": name.strip()}
        category["subcategories"].append(sub)
        self.ledger.commit_categories(categories)
        return sub

    def delete_subcategory(self, category_id: str, subcategory_id: str) -> bool:
        categories = self.ledger.categories
        category = find_category(categories, category_id)
        if category is None:
            return False
        before = len(category["subcategories"])
        category["subcategories"] = [s for s in category["subcategories"] if s["id"] != subcategory_id]
        if len(category["subcategories"]) == before:
            return False
        self.ledger.commit_categories(categories)
        return True

    # === Reconciliation ===

    def import_orders(
        self,
        rows: List[List[str]],
        mapping: Optional[Dict[str, int]] = None,
        replace: bool = True
    ) -> List[Dict[str, Any]]:
        """Load an order export. Replaces the current order batch by default."""
        if not rows:
            return []
        mapping = mapping or guess_mapping(rows[0], ORDER_FIELDS)
        orders = OrderColumnMapper(mapping).map_rows(rows)

        existing = [] if replace else self.ledger.orders
        self.ledger.commit_orders(existing + orders)
        self._pending_suggestions.clear()
        logger.info(f"Loaded {len(orders)} orders")
        return orders

    def get_orders(self, unmatched_only: bool = False) -> List[Dict[str, Any]]:
        orders = self.ledger.orders
        if unmatched_only:
            return [o for o in orders if not o.get("matched_transaction_id")]
        return orders

    def reconciliation_candidates(self, order_id: str) -> Optional[List[Dict[str, Any]]]:
        """Window candidates for one order, closest date first."""
        order = self.ledger.get_order(order_id)
        if order is None:
            return None
        return reconciliation.find_candidates(order, self.ledger.transactions, self.ledger.orders)

    def link_order(self, order_id: str, txn_id: str) -> Optional[Dict[str, Any]]:
        """Manually link an unmatched order to a transaction.

        Returns:
            {"transaction", "order"} after the link, or None when either record
            is missing or either one is already matched
        """
        order = self.ledger.get_order(order_id)
        txn = self.ledger.get_transaction(txn_id)
        if order is None or txn is None:
            return None
        if order.get("matched_transaction_id"):
            logger.warning(f"Order {order_id} is already matched")
            return None
        if txn_id in reconciliation.matched_transaction_ids(self.ledger.orders):
            logger.warning(f"Transaction {txn_id} is already linked to an order")
            return None

        updated_txn, updated_order = reconciliation.link_order(order, txn)
        self._commit_link(updated_txn, [updated_order])
        return {"transaction": updated_txn, "order": updated_order}

    def _commit_link(self, txn: Dict[str, Any], orders: List[Dict[str, Any]]) -> None:
        self.ledger.commit_transaction_updates([{
            "id": txn["id"], "comments": txn.get("comments"), "merchant": txn.get("merchant"),
        }])
        by_id = {o["id"]: o for o in orders}
        self.ledger.commit_orders([by_id.get(o["id"], o) for o in self.ledger.orders])

    def suggest_matches(self, use_ai: bool = True) -> List[Dict[str, Any]]:
        """Build pending match suggestions: EXACT locally, others from Claude.

        Returns:
            Suggestions with an "id" for accept/reject
        """
        transactions = self.ledger.transactions
        orders = self.ledger.orders
        suggestions = reconciliation.find_exact_matches(transactions, orders)

        if use_ai:
            linked = reconciliation.matched_transaction_ids(orders)
            raw = self.assistant.suggest_reconciliation_matches(
                [t for t in transactions if t["id"] not in linked],
                [o for o in orders if not o.get("matched_transaction_id")],
            )
            seen = {(s["transaction_id"], tuple(s["order_ids"])) for s in suggestions}
            for suggestion in reconciliation.validate_suggestions(raw, transactions, orders):
                key = (suggestion["transaction_id"], tuple(suggestion["order_ids"]))
                if key not in seen:
                    seen.add(key)
                    suggestions.append(suggestion)

        self._pending_suggestions = {}
        for suggestion in suggestions:
            suggestion["id"] = f"sug-{uuid.uuid4().hex[:8]}"
            self._pending_suggestions[suggestion["id"]] = suggestion

        logger.info(f"{len(suggestions)} match suggestions pending")
        return list(self._pending_suggestions.values())

    def get_pending_suggestions(self) -> List[Dict[str, Any]]:
        return list(self._pending_suggestions.values())

    def accept_suggestion(self, suggestion_id: str) -> Optional[Dict[str, Any]]:
        """Apply a pending suggestion and remove it from the pending list.

        Returns:
            {"transaction", "orders"}, or None when the id is unknown or the
            suggestion no longer applies (it is discarded either way)
        """
        suggestion = self._pending_suggestions.pop(suggestion_id, None)
        if suggestion is None:
            return None

        result = reconciliation.accept_suggestion(suggestion, self.ledger.transactions, self.ledger.orders)
        if result is None:
            return None

        self._commit_link(result["transaction"], result["orders"])
        self._drop_conflicting_suggestions(suggestion)
        return result

    def _drop_conflicting_suggestions(self, accepted: Dict[str, Any]) -> None:
        """Forget pending suggestions sharing the accepted transaction or an order."""
        order_ids = set(accepted["order_ids"])
        self._pending_suggestions = {
            sid: s for sid, s in self._pending_suggestions.items()
            if s["transaction_id"] != accepted["transaction_id"] and not order_ids & set(s["order_ids"])
        }

    def reject_suggestion(self, suggestion_id: str) -> bool:
        return self._pending_suggestions.pop(suggestion_id, None) is not None
