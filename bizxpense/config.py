"""Configuration settings for the BizXpense ledger."""
import os
from pathlib import Path
from typing import Dict, Any, List

# Paths
DATA_DIR = Path(os.environ.get("BIZXPENSE_HOME", Path.home() / ".bizxpense"))
DB_PATH = DATA_DIR / "ledger.db"

# Transaction flow types (categories are scoped to one of these)
TRANSACTION_TYPES = ["INCOME", "EXPENSE", "TRANSFER", "LOAN"]

# Import defaults
PENDING_IMPORT_LIMIT = 20  # Staged previews (and uploaded grids) kept before the oldest is dropped
DEFAULT_ACCOUNT_NAME = "My Bank Account"
MANUAL_ACCOUNT_NAME = "Manual Entry"
UNKNOWN_DESCRIPTION = "Unknown Transaction"

# Matching tolerances
AMOUNT_TOLERANCE = 0.01  # Currency rounding
EXACT_AMOUNT_EPSILON = 0.005  # "Effectively zero" difference for EXACT matches
FUZZY_MATCH_TOLERANCE = 3  # Max edit distance for category label resolution
RECONCILIATION_WINDOW_DAYS = 5  # +/- days around an order date

# Rule engine
RULE_FIELDS = ["description", "amount", "account"]
RULE_OPERATORS = ["contains", "equals", "starts_with", "ends_with", "greater", "less"]
RULE_LOGIC = ["AND", "OR"]
SUGGESTION_MIN_PREFIX = 4  # Min shared description prefix for a rule suggestion

# Reconciliation
MATCH_TYPES = ["EXACT", "BUNDLE", "SEMANTIC", "DISCREPANCY"]
AI_BATCH_LIMIT = 50  # Max unmatched transactions / orders sent per suggestion call
MERCHANT_STAMP_LENGTH = 30

# Anomaly detection
ANOMALY_IQR_MULTIPLIER = 1.5
ANOMALY_MEDIAN_MULTIPLIER = 3  # For new merchant detection

# Claude API
CLAUDE_MODEL = "claude-3-haiku-20240307"
CLAUDE_MAX_TOKENS = 4096

# Categories
NEUTRAL_CATEGORY_COLOR = "#94a3b8"
UNCATEGORIZED_LABEL = "Uncategorized"

DEFAULT_CATEGORIES: List[Dict[str, Any]] = [
    {"id": "1", "name": "Sales", "type": "INCOME", "color": "#10b981",
     "subcategories": [{"id": "1-1", "name": "Product"}, {"id": "1-2", "name": "Service"}]},
    {"id": "2", "name": "Rent", "type": "EXPENSE", "color": "#ef4444", "subcategories": []},
    {"id": "3", "name": "Utilities", "type": "EXPENSE", "color": "#f59e0b",
     "subcategories": [{"id": "3-1", "name": "Internet"}, {"id": "3-2", "name": "Electricity"}]},
    {"id": "4", "name": "Office Supplies", "type": "EXPENSE", "color": "#6366f1", "subcategories": []},
    {"id": "5", "name": "Payroll", "type": "EXPENSE", "color": "#8b5cf6", "subcategories": []},
    {"id": "6", "name": "Travel", "type": "EXPENSE", "color": "#ec4899",
     "subcategories": [
         {"id": "6-1", "name": "Hotel"},
         {"id": "6-2", "name": "Flight"},
         {"id": "6-3", "name": "Meals"},
     ]},
    {"id": "7", "name": "Credit Card Payment", "type": "TRANSFER", "color": "#94a3b8", "subcategories": []},
    {"id": "8", "name": "Savings Transfer", "type": "TRANSFER", "color": "#64748b", "subcategories": []},
    {"id": "9", "name": "Business Loan", "type": "LOAN", "color": "#0f172a", "subcategories": []},
]


def ensure_data_dir() -> Path:
    """Ensure the data directory exists."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    return DATA_DIR
