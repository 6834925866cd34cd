"""Column-mapped normalization of spreadsheet grids into canonical records."""
import logging
import uuid
from typing import List, Dict, Any, Optional, Sequence

from bizxpense.config import DEFAULT_ACCOUNT_NAME, UNKNOWN_DESCRIPTION
from bizxpense.ingestion.normalize import (
    clean_cell,
    normalize_date,
    parse_amount,
)


logger = logging.getLogger(__name__)

ABSENT = -1

TRANSACTION_FIELDS = ["date", "description", "amount", "debit", "credit", "category", "account"]
ORDER_FIELDS = [
    "date", "description", "amount",
    "order_status", "payment_account", "category", "item_details",
]


MAPPING_KEY_ALIASES = {"desc": "description", "amt": "amount"}


def _normalize_mapping(mapping: Dict[str, Any], fields: List[str]) -> Dict[str, int]:
    """Fill unmapped fields with ABSENT and coerce indexes to int."""
    mapping = {MAPPING_KEY_ALIASES.get(k, k): v for k, v in (mapping or {}).items()}
    normalized = {}
    for field in fields:
        value = mapping.get(field, ABSENT)
        try:
            normalized[field] = int(value) if value is not None else ABSENT
        except (TypeError, ValueError):
            normalized[field] = ABSENT
    return normalized


HEADER_ALIASES = {
    "date": ["date", "posted", "transaction date", "order date"],
    "description": ["description", "desc", "merchant", "payee", "memo", "name", "title"],
    "amount": ["amount", "total", "value"],
    "debit": ["debit", "withdrawal", "outflow"],
    "credit": ["credit", "deposit", "inflow"],
    "category": ["category", "type"],
    "account": ["account", "card"],
    "order_status": ["status", "order status"],
    "payment_account": ["payment", "payment method", "payment account"],
    "item_details": ["item", "items", "details", "product"],
}


def guess_mapping(header: Sequence[Any], fields: List[str] = TRANSACTION_FIELDS) -> Dict[str, int]:
    """Guess a column mapping from header names.

    Exact alias matches win over substring matches; each column is used once.
    """
    names = [str(h or "").strip().lower() for h in header]
    mapping = {field: ABSENT for field in fields}
    used = set()

    for exact in (True, False):
        for field in fields:
            if mapping[field] != ABSENT:
                continue
            for index, name in enumerate(names):
                if index in used or not name:
                    continue
                aliases = HEADER_ALIASES.get(field, [field])
                if (name in aliases) if exact else any(alias in name for alias in aliases):
                    mapping[field] = index
                    used.add(index)
                    break

    return mapping


class ColumnMapper:
    """Turn a raw grid of text cells into canonical transaction candidates."""

    def __init__(
        self,
        mapping: Dict[str, int],
        account_name: str = DEFAULT_ACCOUNT_NAME,
        split_mode: bool = False
    ):
        """Initialize the mapper.

        Args:
            mapping: Logical field -> column index (-1 means absent). Fields are
                date, description, amount, debit, credit, category, account.
            account_name: Account label used when no account column is mapped
            split_mode: Read separate debit/credit columns instead of one
                signed amount column
        """
        self.mapping = _normalize_mapping(mapping, TRANSACTION_FIELDS)
        self.account_name = account_name or DEFAULT_ACCOUNT_NAME
        self.split_mode = split_mode

    def map_rows(self, rows: Sequence[Sequence[Any]]) -> Dict[str, Any]:
        """Map every data row (the first row is the header).

        Returns:
            Dict with "transactions" (canonical candidates) and
            "category_labels" (distinct free-text labels in first-seen order)
        """
        batch = uuid.uuid4().hex[:8]
        transactions = []
        category_labels: List[str] = []
        skipped = 0

        for index, row in enumerate(rows[1:]):
            if row is None or len(row) < 2:
                skipped += 1
                continue

            txn = self._row_to_transaction(row, f"imp-{batch}-{index}")
            if txn is None:
                skipped += 1
                continue

            label = txn.get("category_label")
            if label and label not in category_labels:
                category_labels.append(label)
            transactions.append(txn)

        if skipped:
            logger.debug(f"Skipped {skipped} malformed or zero-amount rows")

        return {"transactions": transactions, "category_labels": category_labels}

    def _row_to_transaction(self, row: Sequence[Any], txn_id: str) -> Optional[Dict[str, Any]]:
        """Convert one row. Returns None for zero-amount rows."""
        amount, txn_type = self._normalize_amount(row)
        if amount == 0:
            return None

        description = clean_cell(row, self.mapping["description"]) or UNKNOWN_DESCRIPTION
        account = clean_cell(row, self.mapping["account"]) or self.account_name

        txn = {
            "id": txn_id,
            "date": normalize_date(clean_cell(row, self.mapping["date"])),
            "description": description,
            "amount": amount,
            "type": txn_type,
            "category_id": None,
            "subcategory_id": None,
            "account": account,
        }

        label = clean_cell(row, self.mapping["category"])
        if label:
            txn["category_label"] = label

        return txn

    def _normalize_amount(self, row: Sequence[Any]):
        """Return (non-negative amount, type) under the active column convention."""
        if self.split_mode:
            credit = parse_amount(clean_cell(row, self.mapping["credit"]))
            if credit != 0:
                return abs(credit), "INCOME"
            debit = parse_amount(clean_cell(row, self.mapping["debit"]))
            return abs(debit), "EXPENSE"

        amount = parse_amount(clean_cell(row, self.mapping["amount"]))
        if amount < 0:
            return abs(amount), "EXPENSE"
        return amount, "INCOME"


class OrderColumnMapper:
    """Turn an order/invoice export grid into reconciliation orders."""

    def __init__(self, mapping: Dict[str, int]):
        """Initialize the mapper.

        Args:
            mapping: Logical field -> column index (-1 means absent). Fields are
                date, description, amount, order_status, payment_account,
                category, item_details.
        """
        self.mapping = _normalize_mapping(mapping, ORDER_FIELDS)

    def map_rows(self, rows: Sequence[Sequence[Any]]) -> List[Dict[str, Any]]:
        """Map every data row (the first row is the header) to an order."""
        batch = uuid.uuid4().hex[:8]
        orders = []

        for index, row in enumerate(rows[1:]):
            if row is None or len(row) < 2:
                continue

            date = clean_cell(row, self.mapping["date"])
            amount = abs(parse_amount(clean_cell(row, self.mapping["amount"])))
            if not date or amount <= 0:
                continue

            orders.append({
                "id": f"ord-{index}-{batch}",
                "date": date,
                "description": clean_cell(row, self.mapping["description"]),
                "amount": amount,
                "order_status": clean_cell(row, self.mapping["order_status"]),
                "payment_account": clean_cell(row, self.mapping["payment_account"]),
                "category": clean_cell(row, self.mapping["category"]),
                "item_details": clean_cell(row, self.mapping["item_details"]),
                "matched_transaction_id": None,
            })

        return orders
