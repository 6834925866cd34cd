"""Match bank transactions against external order records."""
import copy
import logging
from typing import List, Dict, Any, Optional, Tuple

from bizxpense.config import (
    AMOUNT_TOLERANCE,
    EXACT_AMOUNT_EPSILON,
    MATCH_TYPES,
    MERCHANT_STAMP_LENGTH,
    RECONCILIATION_WINDOW_DAYS,
)
from bizxpense.ingestion.normalize import parse_date


logger = logging.getLogger(__name__)

MATCHED_LABEL = "Matched Order"
BUNDLED_LABEL = "Bundled Order"


def matched_transaction_ids(orders: List[Dict[str, Any]]) -> set:
    """Ids of transactions already linked to some order."""
    return {o["matched_transaction_id"] for o in orders if o.get("matched_transaction_id")}


def day_distance(a: Any, b: Any) -> Optional[int]:
    """Whole calendar days between two dates, or None if either is unparseable."""
    first = parse_date(a)
    second = parse_date(b)
    if first is None or second is None:
        return None
    return abs((first.date() - second.date()).days)


def find_candidates(
    order: Dict[str, Any],
    transactions: List[Dict[str, Any]],
    orders: List[Dict[str, Any]],
    window_days: int = RECONCILIATION_WINDOW_DAYS
) -> List[Dict[str, Any]]:
    """Unmatched transactions within amount tolerance and the date window.

    Every candidate is returned, closest date first; the caller picks.
    """
    linked = matched_transaction_ids(orders)
    amount = float(order.get("amount") or 0)
    scored = []

    for position, txn in enumerate(transactions):
        if txn["id"] in linked:
            continue
        if abs(float(txn.get("amount") or 0) - amount) > AMOUNT_TOLERANCE + 1e-9:
            continue
        days = day_distance(txn.get("date"), order.get("date"))
        if days is None or days > window_days:
            continue
        scored.append((days, position, txn))

    scored.sort(key=lambda item: (item[0], item[1]))
    return [txn for _, _, txn in scored]


def _append_note(comments: Optional[str], note: str, marker: str) -> str:
    current = comments or ""
    if marker and marker in current:
        return current
    return f"{current} | {note}" if current else note


def link_order(
    order: Dict[str, Any],
    txn: Dict[str, Any],
    label: str = MATCHED_LABEL
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Link an order to a transaction.

    Appends an audit note to the transaction's comments (once per order
    description), stamps the merchant if empty, and marks the order matched.

    Returns:
        (updated transaction, updated order) copies
    """
    description = order.get("description") or ""
    note = f"{label}: {description} ({order.get('date', '')})"

    updated_txn = copy.deepcopy(txn)
    updated_txn["comments"] = _append_note(txn.get("comments"), note, description)
    if not updated_txn.get("merchant") and description:
        updated_txn["merchant"] = description[:MERCHANT_STAMP_LENGTH]

    updated_order = copy.deepcopy(order)
    updated_order["matched_transaction_id"] = txn["id"]

    return updated_txn, updated_order


def find_exact_matches(
    transactions: List[Dict[str, Any]],
    orders: List[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """EXACT suggestions for unmatched orders with effectively equal amounts."""
    suggestions = []
    for order in orders:
        if order.get("matched_transaction_id"):
            continue
        for txn in find_candidates(order, transactions, orders):
            difference = abs(float(txn.get("amount") or 0) - float(order.get("amount") or 0))
            if difference >= EXACT_AMOUNT_EPSILON:
                continue
            days = day_distance(txn.get("date"), order.get("date")) or 0
            suggestions.append({
                "type": "EXACT",
                "transaction_id": txn["id"],
                "order_ids": [order["id"]],
                "confidence": round(1.0 - days / (RECONCILIATION_WINDOW_DAYS + 1), 2),
                "reason": f"Same amount, {days} day(s) apart",
                "discrepancy_amount": None,
            })
    return suggestions


def validate_suggestion(
    suggestion: Dict[str, Any],
    transactions: List[Dict[str, Any]],
    orders: List[Dict[str, Any]]
) -> Optional[Dict[str, Any]]:
    """Return a cleaned copy of a suggestion, or None if it cannot be applied."""
    match_type = str(suggestion.get("type", "")).upper()
    if match_type not in MATCH_TYPES:
        return None

    txn_ids = {t["id"] for t in transactions}
    if suggestion.get("transaction_id") not in txn_ids:
        return None
    if suggestion.get("transaction_id") in matched_transaction_ids(orders):
        return None

    order_ids = list(suggestion.get("order_ids") or [])
    if not order_ids:
        return None
    if match_type == "BUNDLE" and len(order_ids) < 2:
        return None

    by_id = {o["id"]: o for o in orders}
    for order_id in order_ids:
        order = by_id.get(order_id)
        if order is None or order.get("matched_transaction_id"):
            return None

    try:
        confidence = float(suggestion.get("confidence", 0))
    except (TypeError, ValueError):
        confidence = 0.0

    discrepancy = suggestion.get("discrepancy_amount")
    try:
        discrepancy = float(discrepancy) if discrepancy is not None else None
    except (TypeError, ValueError):
        discrepancy = None

    return {
        "type": match_type,
        "transaction_id": suggestion["transaction_id"],
        "order_ids": order_ids,
        "confidence": min(1.0, max(0.0, confidence)),
        "reason": str(suggestion.get("reason") or ""),
        "discrepancy_amount": discrepancy,
    }


def validate_suggestions(
    suggestions: List[Dict[str, Any]],
    transactions: List[Dict[str, Any]],
    orders: List[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """Drop suggestions that reference unknown or already-matched records."""
    valid = []
    for suggestion in suggestions:
        cleaned = validate_suggestion(suggestion, transactions, orders)
        if cleaned is None:
            logger.warning(f"Dropping invalid match suggestion: {suggestion}")
            continue
        valid.append(cleaned)
    return valid


def accept_suggestion(
    suggestion: Dict[str, Any],
    transactions: List[Dict[str, Any]],
    orders: List[Dict[str, Any]]
) -> Optional[Dict[str, Any]]:
    """Apply a suggestion as one link per referenced order.

    Returns:
        {"transaction": updated txn, "orders": updated orders}, or None when
        the suggestion no longer validates against current state
    """
    cleaned = validate_suggestion(suggestion, transactions, orders)
    if cleaned is None:
        logger.warning(f"Suggestion no longer valid at accept time: {suggestion}")
        return None

    txn = next(t for t in transactions if t["id"] == cleaned["transaction_id"])
    by_id = {o["id"]: o for o in orders}
    label = BUNDLED_LABEL if cleaned["type"] == "BUNDLE" else MATCHED_LABEL

    updated_orders = []
    for order_id in cleaned["order_ids"]:
        txn, order = link_order(by_id[order_id], txn, label=label)
        updated_orders.append(order)

    if cleaned["type"] == "DISCREPANCY" and cleaned["discrepancy_amount"] is not None:
        txn["comments"] = _append_note(
            txn.get("comments"),
            f"Discrepancy: {cleaned['discrepancy_amount']:.2f}",
            "",
        )

    return {"transaction": txn, "orders": updated_orders}
