#!/usr/bin/env python3
"""BizXpense CLI - business transaction import, categorization and reconciliation."""
import argparse
import json
import sys
import logging
from pathlib import Path

from bizxpense.api.budget_service import BudgetService
from bizxpense.config import DEFAULT_ACCOUNT_NAME
from bizxpense.ingestion.file_reader import read_grid
from bizxpense.intelligence.category_resolver import category_label


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S"
    )


def _load_mapping(value):
    """Parse a --mapping JSON object like '{"date": 0, "amount": 2}'."""
    if not value:
        return None
    try:
        mapping = json.loads(value)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid mapping JSON: {e}")
    if not isinstance(mapping, dict):
        raise ValueError("Mapping must be a JSON object")
    return mapping


def _service(args) -> BudgetService:
    return BudgetService(db_path=Path(args.db) if args.db else None)


def cmd_import(args):
    """Import transactions from CSV/Excel file."""
    file_path = Path(args.file)
    if not file_path.exists():
        print(f"Error: File not found: {file_path}")
        return 1

    try:
        mapping = _load_mapping(args.mapping)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    with _service(args) as service:
        result = service.import_file(
            file_path,
            mapping=mapping,
            account_name=args.account,
            split_mode=args.split,
            create_missing=args.create_categories,
            keep_duplicates=args.keep_duplicates,
        )

        print("\nImport complete:")
        print(f"  Total parsed:  {result['total_parsed']}")
        print(f"  Added:         {result['added']}")
        print(f"  Duplicates:    {result['duplicates']} ({result['duplicates_kept']} kept)")
        print(f"  Rules applied: {result['rules_applied']}")
        if result["unresolved_labels"]:
            print(f"  Unresolved category labels: {', '.join(result['unresolved_labels'])}")

    return 0


def cmd_sync(args):
    """Sync transactions from a SimpleFIN bridge."""
    with _service(args) as service:
        preview = service.sync_bank(args.access_url)
        if preview["error"]:
            print(f"Error: {preview['error']}")
            return 1

        keep = [t["id"] for t in preview["duplicates"]] if args.keep_duplicates else []
        result = service.finalize_import(preview["import_id"], keep)
        print(f"Synced {result['added']} transactions ({result['duplicates']} duplicates flagged)")

    return 0


def cmd_rules(args):
    """List rules or run them."""
    with _service(args) as service:
        if args.run:
            result = service.run_rules()
            print(f"Rules applied to {result['applied']} transactions")
            return 0

        rules = service.get_rules()
        if not rules:
            print("No rules defined.")
            return 0

        for rule in rules:
            status = "active" if rule["is_active"] else "inactive"
            conditions = f" {rule['match_logic']} ".join(
                f"{c['field']} {c['operator']} '{c['value']}'" for c in rule["conditions"]
            )
            print(f"  [{status}] {rule['name']}: {conditions} -> {rule['target_category_id']}")

    return 0


def cmd_categorize(args):
    """Manually categorize a transaction, or auto-categorize with Claude."""
    with _service(args) as service:
        if args.auto:
            count = service.auto_categorize()
            print(f"Auto-categorized {count} transactions")
            return 0

        if not args.txn_id or not args.category_id:
            print("Error: txn_id and category_id are required (or use --auto)")
            return 1

        result = service.categorize_transaction(args.txn_id, args.category_id, args.subcategory_id)
        if result is None:
            print(f"Error: Transaction '{args.txn_id}' or category '{args.category_id}' not found")
            return 1

        print(f"Transaction {args.txn_id} categorized as '{category_label(result['transaction'], service.get_categories())}'")

        suggestion = result["suggestion"]
        if suggestion:
            prefix = suggestion["conditions"][0]["value"]
            print(f"\nSuggestion: create a rule for descriptions starting with '{prefix}'?")
            if args.accept_suggestion:
                service.save_rule(suggestion)
                print("Rule saved.")

    return 0


def cmd_uncategorized(args):
    """List uncategorized transactions."""
    with _service(args) as service:
        txns = service.get_uncategorized()

        if not txns:
            print("All transactions are categorized!")
            return 0

        print(f"Found {len(txns)} uncategorized transactions:\n")
        for t in txns[:args.limit]:
            print(f"  {t['id']:24s} | {t['date'][:10]} | {t['description'][:30]:30s} | ${t['amount']:10.2f}")

    return 0


def cmd_categories(args):
    """List all categories."""
    with _service(args) as service:
        print("Available categories:")
        for c in service.get_categories():
            print(f"  {c['id']:8s} {c['name']} ({c['type']})")
            for sub in c["subcategories"]:
                print(f"  {sub['id']:8s}   - {sub['name']}")

    return 0


def cmd_orders(args):
    """Load an order export for reconciliation."""
    file_path = Path(args.file)
    if not file_path.exists():
        print(f"Error: File not found: {file_path}")
        return 1

    try:
        mapping = _load_mapping(args.mapping)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    with _service(args) as service:
        orders = service.import_orders(read_grid(file_path), mapping, replace=not args.append)
        print(f"Loaded {len(orders)} orders")

    return 0


def cmd_reconcile(args):
    """Show candidates, link an order, or review match suggestions."""
    with _service(args) as service:
        if args.link:
            order_id, txn_id = args.link
            if service.link_order(order_id, txn_id) is None:
                print(f"Error: could not link order {order_id} to transaction {txn_id}")
                return 1
            print(f"Linked order {order_id} to transaction {txn_id}")
            return 0

        if args.suggest:
            suggestions = service.suggest_matches(use_ai=not args.no_ai)
            if not suggestions:
                print("No matches found at this time.")
                return 0
            for s in suggestions:
                print(f"  {s['type']:12s} {s['confidence'] * 100:3.0f}%  {s['transaction_id']} <- {', '.join(s['order_ids'])}")
                if s.get("reason"):
                    print(f"               {s['reason']}")
                if args.accept_all:
                    service.accept_suggestion(s["id"])
            return 0

        for order in service.get_orders(unmatched_only=True):
            candidates = service.reconciliation_candidates(order["id"])
            print(f"{order['id']} | {order['date']} | {order['description'][:30]} | ${order['amount']:.2f}")
            for txn in candidates:
                print(f"    -> {txn['id']} | {txn['date'][:10]} | {txn['description'][:30]}")
            if not candidates:
                print("    (no candidates)")

    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="BizXpense - business transaction ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  bizxpense import statement.csv              Import transactions from CSV
  bizxpense import card.csv --split           Import with separate debit/credit columns
  bizxpense rules --run                        Apply rules to uncategorized transactions
  bizxpense categorize imp-ab12-0 4            Categorize a transaction
  bizxpense orders amazon_orders.csv           Load an order export
  bizxpense reconcile --suggest                Suggest order matches
"""
    )

    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--db", help="Path to the ledger database")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Import command
    import_parser = subparsers.add_parser("import", help="Import transactions from file")
    import_parser.add_argument("file", help="CSV or Excel file to import")
    import_parser.add_argument("--mapping", help="Column mapping as JSON (guessed from header if omitted)")
    import_parser.add_argument("--account", default=DEFAULT_ACCOUNT_NAME, help="Account name")
    import_parser.add_argument("--split", action="store_true", help="Separate debit/credit columns")
    import_parser.add_argument("--create-categories", action="store_true",
                               help="Create categories for unresolved labels")
    import_parser.add_argument("--keep-duplicates", action="store_true", help="Import flagged duplicates too")
    import_parser.set_defaults(func=cmd_import)

    # Sync command
    sync_parser = subparsers.add_parser("sync", help="Sync from a SimpleFIN bridge")
    sync_parser.add_argument("access_url", help="SimpleFIN access URL")
    sync_parser.add_argument("--keep-duplicates", action="store_true", help="Import flagged duplicates too")
    sync_parser.set_defaults(func=cmd_sync)

    # Rules command
    rules_parser = subparsers.add_parser("rules", help="List or run categorization rules")
    rules_parser.add_argument("--run", action="store_true", help="Apply rules now")
    rules_parser.set_defaults(func=cmd_rules)

    # Categorize command
    cat_parser = subparsers.add_parser("categorize", help="Categorize a transaction")
    cat_parser.add_argument("txn_id", nargs="?", help="Transaction ID")
    cat_parser.add_argument("category_id", nargs="?", help="Category ID")
    cat_parser.add_argument("subcategory_id", nargs="?", help="Subcategory ID")
    cat_parser.add_argument("--auto", action="store_true", help="Categorize everything with Claude")
    cat_parser.add_argument("--accept-suggestion", action="store_true", help="Save the suggested rule")
    cat_parser.set_defaults(func=cmd_categorize)

    # Uncategorized command
    uncat_parser = subparsers.add_parser("uncategorized", help="List uncategorized transactions")
    uncat_parser.add_argument("-n", "--limit", type=int, default=20, help="Max results")
    uncat_parser.set_defaults(func=cmd_uncategorized)

    # Categories command
    cats_parser = subparsers.add_parser("categories", help="List all categories")
    cats_parser.set_defaults(func=cmd_categories)

    # Orders command
    orders_parser = subparsers.add_parser("orders", help="Load an order export")
    orders_parser.add_argument("file", help="CSV or Excel file of orders")
    orders_parser.add_argument("--mapping", help="Column mapping as JSON (guessed from header if omitted)")
    orders_parser.add_argument("--append", action="store_true", help="Keep previously loaded orders")
    orders_parser.set_defaults(func=cmd_orders)

    # Reconcile command
    rec_parser = subparsers.add_parser("reconcile", help="Match orders to transactions")
    rec_parser.add_argument("--link", nargs=2, metavar=("ORDER_ID", "TXN_ID"), help="Link an order")
    rec_parser.add_argument("--suggest", action="store_true", help="Suggest matches")
    rec_parser.add_argument("--no-ai", action="store_true", help="Only exact matches")
    rec_parser.add_argument("--accept-all", action="store_true", help="Accept every suggestion")
    rec_parser.set_defaults(func=cmd_reconcile)

    args = parser.parse_args()
    setup_logging(args.verbose)

    if not args.command:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
