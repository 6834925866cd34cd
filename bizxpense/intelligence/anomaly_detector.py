"""Anomaly detector using statistical analysis (IQR method)."""
import statistics
from collections import Counter, defaultdict
from typing import List, Dict, Any

from bizxpense.config import ANOMALY_IQR_MULTIPLIER, ANOMALY_MEDIAN_MULTIPLIER


def quartiles(amounts: List[float]) -> Dict[str, float]:
    """Index-based Q1/Q3 of a list of amounts."""
    if not amounts:
        return {"q1": 0, "q3": 0}
    ordered = sorted(amounts)
    n = len(ordered)
    return {"q1": ordered[n // 4], "q3": ordered[(3 * n) // 4]}


def _merchant_key(txn: Dict[str, Any]) -> str:
    return (txn.get("merchant") or txn.get("description") or "").strip().lower()


class AnomalyDetector:
    """Detect unusual transactions using statistical methods."""

    def detect(self, transactions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Detect anomalous transactions.

        Uses two methods:
        1. Per-category IQR: amount > Q3 + 1.5*IQR or < Q1 - 1.5*IQR
        2. New merchant: merchant seen once with amount > median * 3

        Args:
            transactions: Ledger transactions

        Returns:
            List of {"id", "reason"} dicts
        """
        if not transactions:
            return []

        overall_median = statistics.median([abs(t.get("amount") or 0) for t in transactions])
        threshold = overall_median * ANOMALY_MEDIAN_MULTIPLIER

        by_category = defaultdict(list)
        for txn in transactions:
            if txn.get("category_id"):
                by_category[txn["category_id"]].append(abs(txn.get("amount") or 0))
        stats = {cat_id: quartiles(amounts) for cat_id, amounts in by_category.items()}

        merchant_counts = Counter(_merchant_key(t) for t in transactions)

        anomalies = []
        for txn in transactions:
            reasons = []
            amount = abs(txn.get("amount") or 0)

            # Check 1: Category-based amount anomaly
            category_stats = stats.get(txn.get("category_id"))
            if category_stats and (category_stats["q1"] > 0 or category_stats["q3"] > 0):
                iqr = category_stats["q3"] - category_stats["q1"]

                # All amounts alike: fall back to a multiple of the typical amount
                if iqr == 0:
                    upper_bound = category_stats["q3"] * (1 + ANOMALY_IQR_MULTIPLIER)
                    lower_bound = category_stats["q1"] * (1 - ANOMALY_IQR_MULTIPLIER)
                else:
                    lower_bound = category_stats["q1"] - ANOMALY_IQR_MULTIPLIER * iqr
                    upper_bound = category_stats["q3"] + ANOMALY_IQR_MULTIPLIER * iqr

                if amount > upper_bound:
                    reasons.append(f"Amount ${amount:.2f} exceeds category normal range (max ${upper_bound:.2f})")
                elif amount < lower_bound and lower_bound > 0:
                    reasons.append(f"Amount ${amount:.2f} below category normal range (min ${lower_bound:.2f})")

            # Check 2: New merchant with high amount
            if merchant_counts[_merchant_key(txn)] == 1 and threshold > 0 and amount > threshold:
                reasons.append(f"New merchant with high amount ${amount:.2f} (threshold ${threshold:.2f})")

            if reasons:
                anomalies.append({"id": txn["id"], "reason": "; ".join(reasons)})

        return anomalies
