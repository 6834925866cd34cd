"""SimpleFIN bank sync: fetch accounts and normalize their transactions."""
import logging
import re
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional
from urllib.parse import unquote

import requests

from bizxpense.ingestion.normalize import parse_amount, to_iso


logger = logging.getLogger(__name__)

_ACCESS_URL = re.compile(r"https://([^:]+):([^@]+)@(.+)")


class BankSyncError(Exception):
    """Raised when the bank sync source cannot be reached or understood."""


def parse_access_url(access_url: str) -> Optional[Dict[str, Any]]:
    """Split a SimpleFIN access URL into endpoint and basic-auth credentials.

    Access URLs look like https://<user>:<password>@bridge.simplefin.org/simplefin
    """
    match = _ACCESS_URL.match((access_url or "").strip())
    if not match:
        return None
    username, password, rest = match.groups()
    return {
        "url": f"https://{rest.rstrip('/')}",
        "auth": (unquote(username), unquote(password)),
    }


class SimpleFinClient:
    """Minimal SimpleFIN bridge client."""

    def __init__(self, access_url: str, timeout: float = 30.0, session: Optional[requests.Session] = None):
        credentials = parse_access_url(access_url)
        if credentials is None:
            raise BankSyncError("Invalid SimpleFin Access URL format.")
        self.url = credentials["url"]
        self.auth = credentials["auth"]
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch_accounts(self) -> Dict[str, Any]:
        """Fetch the raw accounts payload."""
        url = self.url if self.url.endswith("/accounts") else f"{self.url}/accounts"
        try:
            response = self.session.get(
                url,
                auth=self.auth,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise BankSyncError(f"Failed to reach SimpleFin: {e}") from e

        if not response.ok:
            raise BankSyncError(f"Failed to fetch from SimpleFin: {response.status_code} {response.reason}")

        try:
            return response.json()
        except ValueError as e:
            raise BankSyncError("SimpleFin returned a non-JSON response") from e

    def fetch_transactions(self) -> List[Dict[str, Any]]:
        """Fetch and normalize all transactions across accounts."""
        return normalize_simplefin_accounts(self.fetch_accounts())


def normalize_simplefin_accounts(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Convert a SimpleFIN accounts payload into canonical transactions.

    Negative amounts are outflows (EXPENSE), everything else INCOME.
    """
    transactions = []

    for account in payload.get("accounts") or []:
        org_name = (account.get("org") or {}).get("name") or "Bank"
        account_name = f"{org_name} - {account.get('name', '')}"

        for raw in account.get("transactions") or []:
            amount = parse_amount(raw.get("amount"))
            posted = raw.get("posted")
            try:
                date = to_iso(datetime.fromtimestamp(int(posted), tz=timezone.utc).replace(tzinfo=None))
            except (TypeError, ValueError, OverflowError, OSError):
                date = to_iso(datetime.now())

            transactions.append({
                "id": f"sf-{raw.get('id')}",
                "date": date,
                "description": raw.get("description") or "Bank Transaction",
                "amount": abs(amount),
                "type": "EXPENSE" if amount < 0 else "INCOME",
                "category_id": None,
                "subcategory_id": None,
                "original_text": raw.get("memo") or "",
                "comments": "",
                "account": account_name,
            })

    logger.info(f"Normalized {len(transactions)} SimpleFin transactions")
    return transactions
