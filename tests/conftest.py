"""Shared pytest fixtures."""
import copy
from pathlib import Path
from unittest.mock import MagicMock

import pytest


@pytest.fixture
def temp_db_path(tmp_path) -> Path:
    """Path to a fresh SQLite database file."""
    return tmp_path / "test.db"


@pytest.fixture
def categories():
    """The default catalog plus a Shopping category with an Amazon subcategory."""
    from bizxpense.config import DEFAULT_CATEGORIES

    catalog = copy.deepcopy(DEFAULT_CATEGORIES)
    catalog.append({
        "id": "10", "name": "Shopping", "type": "EXPENSE", "color": "#0ea5e9",
        "subcategories": [{"id": "10-1", "name": "Amazon"}],
    })
    return catalog


@pytest.fixture
def make_txn():
    """Factory for canonical transactions."""
    def _make(txn_id, description="Test", amount=10.0, date="2024-01-15T00:00:00", **extra):
        txn = {
            "id": txn_id,
            "date": date,
            "description": description,
            "amount": amount,
            "type": "EXPENSE",
            "category_id": None,
            "subcategory_id": None,
            "account": "My Bank Account",
        }
        txn.update(extra)
        return txn
    return _make


@pytest.fixture
def mock_assistant():
    """Assistant double whose methods return nothing unless a test says otherwise."""
    assistant = MagicMock()
    assistant.classify.return_value = []
    assistant.normalize_merchants.return_value = []
    assistant.detect_anomalies.return_value = []
    assistant.suggest_reconciliation_matches.return_value = []
    assistant.extract_receipt.return_value = {}
    assistant.extract_statement.return_value = []
    return assistant


@pytest.fixture
def service(temp_db_path, mock_assistant):
    """BudgetService on a temp database with a mocked assistant."""
    from bizxpense.api.budget_service import BudgetService

    with BudgetService(db_path=temp_db_path, assistant=mock_assistant) as svc:
        yield svc


@pytest.fixture
def sample_csv(tmp_path) -> Path:
    """A bank export with a preamble line and a category column."""
    csv_path = tmp_path / "statement.csv"
    csv_path.write_text(
        "Account Statement for ACME LLC\n"
        "Date,Description,Amount,Category\n"
        "2024-01-05,COSTCO WHOLESALE,-120.50,Office Suplies\n"
        "2024-01-06,Payroll Deposit,2000.00,Sales\n"
        "2024-01-08,AWS Cloud,-45.00,Hosting\n"
        "2024-01-09,Ignored zero row,0.00,\n"
    )
    return csv_path
