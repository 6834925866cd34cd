"""Claude-backed classification, extraction and matching services."""
import base64
import json
import logging
from typing import List, Dict, Any, Optional

from bizxpense.config import AI_BATCH_LIMIT, CLAUDE_MAX_TOKENS, CLAUDE_MODEL


logger = logging.getLogger(__name__)

CLASSIFY_INSTRUCTIONS = """You are an expert accountant for a small business.
Categorize each transaction into one of the provided categories and subcategories.

Rules:
1. If a transaction implies income (like "Deposit", "Refund", "Salary"), map it to an INCOME category if available.
2. If it implies spending, map to an EXPENSE category.
3. If it looks like a credit card payment, bank transfer, or internal movement of funds, map to a TRANSFER category.
4. If it looks like a loan disbursement or principal repayment, map to a LOAN category.
5. If you are unsure, use null for category_id.
"""

RECONCILE_INSTRUCTIONS = """Match bank transactions to order records.
Match types:
- EXACT: same amount, close dates
- BUNDLE: two or more orders whose amounts sum to one transaction
- SEMANTIC: descriptions refer to the same purchase despite different wording
- DISCREPANCY: same purchase but amounts differ (fees, tax, shipping); give discrepancy_amount
Only use the ids given. Skip anything you are not confident about.
"""


class ClaudeAssistant:
    """Thin wrapper around the Anthropic messages API.

    Every public method returns an empty result when the API is unavailable
    or the response cannot be parsed.
    """

    def __init__(self, claude_client: Optional[Any] = None, model: str = CLAUDE_MODEL):
        """Initialize the assistant.

        Args:
            claude_client: Optional Anthropic client (injected for testing)
            model: Claude model name
        """
        self.claude_client = claude_client
        self.model = model

    def _get_client(self) -> Optional[Any]:
        if self.claude_client is None:
            try:
                import anthropic
                self.claude_client = anthropic.Anthropic()
            except Exception as e:
                logger.warning(f"Claude API not available: {e}")
                return None
        return self.claude_client

    def _call_claude(self, content: Any, system: Optional[str] = None) -> Optional[Any]:
        """Send one message and parse the JSON in the reply.

        Returns:
            Parsed JSON value, or None on any failure
        """
        client = self._get_client()
        if client is None:
            return None

        kwargs = {
            "model": self.model,
            "max_tokens": CLAUDE_MAX_TOKENS,
            "messages": [{"role": "user", "content": content}],
        }
        if system:
            kwargs["system"] = system

        try:
            response = client.messages.create(**kwargs)
            text = response.content[0].text
            return _extract_json(text)
        except Exception as e:
            logger.warning(f"Claude call failed: {e}")
            return None

    def classify(
        self,
        transactions: List[Dict[str, Any]],
        categories: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """Propose categories for transactions.

        Returns:
            List of {"id", "category_id", "subcategory_id"}
        """
        if not transactions:
            return []

        catalog = [{
            "id": c["id"],
            "name": c["name"],
            "type": c.get("type"),
            "subcategories": [{"id": s["id"], "name": s["name"]} for s in c.get("subcategories") or []],
        } for c in categories]
        items = [{
            "id": t["id"],
            "description": t.get("description"),
            "amount": t.get("amount"),
            "type": t.get("type"),
        } for t in transactions]

        prompt = (
            f"Categories: {json.dumps(catalog)}\n"
            f"Transactions to categorize: {json.dumps(items)}\n\n"
            'Respond with a JSON array: [{"id": "...", "category_id": "..." or null, "subcategory_id": "..." or null}]'
        )
        result = self._call_claude(prompt, system=CLASSIFY_INSTRUCTIONS)

        mappings = []
        for entry in _as_list(result):
            if entry.get("id") and entry.get("category_id"):
                mappings.append({
                    "id": str(entry["id"]),
                    "category_id": str(entry["category_id"]),
                    "subcategory_id": str(entry["subcategory_id"]) if entry.get("subcategory_id") else None,
                })
        return mappings

    def normalize_merchants(self, transactions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Derive clean merchant names from raw descriptions.

        Returns:
            List of {"id", "merchant"}
        """
        if not transactions:
            return []

        items = [{"id": t["id"], "description": t.get("description")} for t in transactions]
        prompt = (
            "Extract a short, clean merchant name from each bank description "
            "(e.g. 'AMZN MKTP US*2K3' -> 'Amazon').\n"
            f"Transactions: {json.dumps(items)}\n\n"
            'Respond with a JSON array: [{"id": "...", "merchant": "..."}]'
        )

        return [
            {"id": str(e["id"]), "merchant": str(e["merchant"]).strip()}
            for e in _as_list(self._call_claude(prompt))
            if e.get("id") and e.get("merchant")
        ]

    def detect_anomalies(self, transactions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Flag unusual transactions.

        Returns:
            List of {"id", "reason"}
        """
        if not transactions:
            return []

        items = [{
            "id": t["id"],
            "date": t.get("date"),
            "description": t.get("description"),
            "amount": t.get("amount"),
            "type": t.get("type"),
        } for t in transactions]
        prompt = (
            "Review these business transactions and flag unusual ones "
            "(unexpected amounts, possible duplicates, suspicious merchants).\n"
            f"Transactions: {json.dumps(items)}\n\n"
            'Respond with a JSON array: [{"id": "...", "reason": "..."}]'
        )

        return [
            {"id": str(e["id"]), "reason": str(e.get("reason") or "Flagged as unusual")}
            for e in _as_list(self._call_claude(prompt))
            if e.get("id")
        ]

    def suggest_reconciliation_matches(
        self,
        transactions: List[Dict[str, Any]],
        orders: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """Suggest transaction/order matches (at most AI_BATCH_LIMIT of each are sent).

        Returns:
            Raw suggestions; callers must validate them against current state
        """
        transactions = transactions[:AI_BATCH_LIMIT]
        orders = orders[:AI_BATCH_LIMIT]
        if not transactions or not orders:
            return []

        txn_items = [{
            "id": t["id"], "date": t.get("date"), "description": t.get("description"), "amount": t.get("amount"),
        } for t in transactions]
        order_items = [{
            "id": o["id"], "date": o.get("date"), "description": o.get("description"), "amount": o.get("amount"),
            "item_details": o.get("item_details"),
        } for o in orders]
        prompt = (
            f"Transactions: {json.dumps(txn_items)}\n"
            f"Orders: {json.dumps(order_items)}\n\n"
            'Respond with a JSON array: [{"type": "EXACT|BUNDLE|SEMANTIC|DISCREPANCY", '
            '"transaction_id": "...", "order_ids": ["..."], "confidence": 0.0-1.0, '
            '"reason": "...", "discrepancy_amount": number or null}]'
        )

        return [e for e in _as_list(self._call_claude(prompt, system=RECONCILE_INSTRUCTIONS)) if isinstance(e, dict)]

    def extract_receipt(self, data: bytes, media_type: str) -> Dict[str, Any]:
        """Read a receipt image or PDF.

        Returns:
            {"date", "merchant", "amount", "description"} or {} on failure
        """
        prompt = (
            "Extract the purchase from this receipt. Respond with JSON: "
            '{"date": "YYYY-MM-DD", "merchant": "...", "amount": number, "description": "..."}'
        )
        result = self._call_claude([_document_block(data, media_type), {"type": "text", "text": prompt}])
        if not isinstance(result, dict) or "amount" not in result:
            return {}
        return {
            "date": result.get("date"),
            "merchant": result.get("merchant") or "",
            "amount": result.get("amount"),
            "description": result.get("description") or result.get("merchant") or "",
        }

    def extract_statement(self, data: bytes, media_type: str) -> List[Dict[str, Any]]:
        """Read every transaction from a bank statement image or PDF.

        Returns:
            List of {"date", "description", "amount", "type"}
        """
        prompt = (
            "Extract every transaction from this bank statement. Respond with a JSON array: "
            '[{"date": "YYYY-MM-DD", "description": "...", "amount": number, "type": "INCOME|EXPENSE"}]'
        )
        result = self._call_claude([_document_block(data, media_type), {"type": "text", "text": prompt}])
        return [
            {
                "date": e.get("date"),
                "description": e.get("description") or "",
                "amount": e.get("amount"),
                "type": str(e.get("type") or "EXPENSE").upper(),
            }
            for e in _as_list(result)
            if "amount" in e
        ]


def _document_block(data: bytes, media_type: str) -> Dict[str, Any]:
    """Content block for an attached file; PDFs are documents, the rest images."""
    encoded = base64.standard_b64encode(data).decode("utf-8")
    block_type = "document" if media_type == "application/pdf" else "image"
    return {
        "type": block_type,
        "source": {"type": "base64", "media_type": media_type, "data": encoded},
    }


def _extract_json(text: str) -> Optional[Any]:
    """Pull the first JSON array or object out of a model reply."""
    starts = [i for i in (text.find("["), text.find("{")) if i >= 0]
    if not starts:
        return None
    start = min(starts)
    end = text.rfind("]" if text[start] == "[" else "}")
    if end < start:
        return None
    return json.loads(text[start:end + 1])


def _as_list(result: Any) -> List[Dict[str, Any]]:
    if not isinstance(result, list):
        return []
    return [e for e in result if isinstance(e, dict)]
