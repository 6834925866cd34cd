"""SQLite schema definitions for the BizXpense ledger."""

SCHEMA_SQL = """
-- Categories (scoped to a transaction type)
CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'EXPENSE',  -- INCOME, EXPENSE, TRANSFER, LOAN
    color TEXT,
    position INTEGER NOT NULL DEFAULT 0  -- Catalog order (resolution scans in this order)
);

-- Subcategories, ordered within their category
CREATE TABLE IF NOT EXISTS subcategories (
    id TEXT PRIMARY KEY,
    category_id TEXT NOT NULL,
    name TEXT NOT NULL,
    position INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (category_id) REFERENCES categories(id) ON DELETE CASCADE
);

-- Transactions (amount is non-negative; direction is type)
CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    date TEXT NOT NULL,
    description TEXT NOT NULL,
    amount REAL NOT NULL,
    type TEXT NOT NULL,
    category_id TEXT,  -- No FK: deleting a category leaves dangling ids
    subcategory_id TEXT,
    account TEXT,
    merchant TEXT,
    is_anomaly INTEGER DEFAULT 0,
    anomaly_reason TEXT,
    comments TEXT,  -- Reconciliation audit trail
    original_text TEXT,
    position INTEGER NOT NULL DEFAULT 0
);

-- Auto-categorization rules; conditions stored as JSON
CREATE TABLE IF NOT EXISTS rules (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    match_logic TEXT NOT NULL DEFAULT 'AND',
    conditions TEXT NOT NULL DEFAULT '[]',
    target_category_id TEXT NOT NULL,
    target_subcategory_id TEXT,
    is_active INTEGER DEFAULT 1,
    position INTEGER NOT NULL DEFAULT 0  -- Evaluation order
);

-- External order/invoice records for reconciliation
CREATE TABLE IF NOT EXISTS orders (
    id TEXT PRIMARY KEY,
    date TEXT NOT NULL,
    description TEXT,
    amount REAL NOT NULL,
    order_status TEXT,
    payment_account TEXT,
    category TEXT,
    item_details TEXT,
    matched_transaction_id TEXT,
    position INTEGER NOT NULL DEFAULT 0
);

-- Indexes for common queries
CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(date);
CREATE INDEX IF NOT EXISTS idx_transactions_category ON transactions(category_id);
CREATE INDEX IF NOT EXISTS idx_subcategories_category ON subcategories(category_id);
CREATE INDEX IF NOT EXISTS idx_orders_matched ON orders(matched_transaction_id);
"""
