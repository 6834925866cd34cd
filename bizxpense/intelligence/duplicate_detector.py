"""Duplicate detection for import batches against the existing ledger."""
import logging
from collections import defaultdict
from typing import List, Dict, Any, Iterable, Tuple

from bizxpense.config import AMOUNT_TOLERANCE
from bizxpense.ingestion.normalize import date_key


logger = logging.getLogger(__name__)


def _cents(amount: Any) -> int:
    try:
        return int(round(float(amount) * 100))
    except (TypeError, ValueError):
        return 0


class DuplicateDetector:
    """Flag import candidates that already exist in the ledger.

    A candidate is a duplicate when an existing transaction has the same
    calendar date, an amount within AMOUNT_TOLERANCE and an identical
    description. Matching is exact on text; no fuzzy comparison.
    """

    def __init__(self, existing: Iterable[Dict[str, Any]], tolerance: float = AMOUNT_TOLERANCE):
        self.tolerance = tolerance
        self._index: Dict[Tuple[str, int], List[Dict[str, Any]]] = defaultdict(list)
        for txn in existing:
            self._index[(date_key(txn.get("date")), _cents(txn.get("amount")))].append(txn)

    def is_duplicate(self, candidate: Dict[str, Any]) -> bool:
        """Check one candidate against the indexed ledger."""
        day = date_key(candidate.get("date"))
        amount = float(candidate.get("amount") or 0)
        cents = _cents(amount)
        description = candidate.get("description", "")

        # Neighboring buckets cover amounts within tolerance that round apart
        span = int(round(self.tolerance * 100)) + 1
        for bucket in range(cents - span, cents + span + 1):
            for existing in self._index.get((day, bucket), []):
                if (
                    abs(float(existing.get("amount") or 0) - amount) <= self.tolerance + 1e-9
                    and existing.get("description", "") == description
                ):
                    return True
        return False

    def partition(self, candidates: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
        """Split candidates into clean and duplicate lists, preserving order."""
        clean = []
        duplicates = []
        for candidate in candidates:
            if self.is_duplicate(candidate):
                duplicates.append(candidate)
            else:
                clean.append(candidate)

        if duplicates:
            logger.info(f"Found {len(duplicates)} potential duplicates out of {len(candidates)} candidates")

        return {"clean": clean, "duplicates": duplicates}


def finalize_import(
    partition: Dict[str, List[Dict[str, Any]]],
    keep_duplicate_ids: Iterable[str] = ()
) -> List[Dict[str, Any]]:
    """Clean candidates plus the duplicates the user chose to keep."""
    keep = set(keep_duplicate_ids or [])
    kept = [t for t in partition.get("duplicates", []) if t["id"] in keep]
    return list(partition.get("clean", [])) + kept
