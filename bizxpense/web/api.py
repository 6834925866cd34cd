"""FastAPI backend for the BizXpense ledger."""
import tempfile
import uuid
from pathlib import Path
from typing import Optional, List, Dict, Any
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Depends, UploadFile, File, Query
from pydantic import BaseModel

from bizxpense.api.budget_service import BudgetService
from bizxpense.config import PENDING_IMPORT_LIMIT
from bizxpense.ingestion.column_mapper import ORDER_FIELDS, guess_mapping
from bizxpense.ingestion.file_reader import read_grid


# Global service instance (for production use)
_service: Optional[BudgetService] = None


def get_service() -> BudgetService:
    """Dependency to get the budget service."""
    global _service
    if _service is None:
        _service = BudgetService()
        _service.__enter__()
    return _service


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage service lifecycle."""
    yield
    # Cleanup on shutdown
    global _service
    if _service is not None:
        _service.__exit__(None, None, None)
        _service = None


app = FastAPI(
    title="BizXpense API",
    description="Business expense ledger: import, categorize and reconcile transactions",
    version="1.0.0",
    lifespan=lifespan
)


# === Pydantic Models ===

class CategorizeRequest(BaseModel):
    category_id: str
    subcategory_id: Optional[str] = None


class BulkCategorizeRequest(BaseModel):
    ids: List[str]
    category_id: str
    subcategory_id: Optional[str] = None


class BulkDeleteRequest(BaseModel):
    ids: List[str]


class CommentUpdate(BaseModel):
    comments: str


class ManualTransaction(BaseModel):
    date: str
    description: str
    amount: float
    type: str = "EXPENSE"
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None
    comments: str = ""
    account: Optional[str] = None


class CategoryCreate(BaseModel):
    name: str
    type: str = "EXPENSE"  # INCOME, EXPENSE, TRANSFER, LOAN
    color: Optional[str] = None
    subcategories: List[str] = []


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None
    color: Optional[str] = None


class SubcategoryCreate(BaseModel):
    name: str


class RuleCondition(BaseModel):
    id: Optional[str] = None
    field: str  # description, amount, account
    operator: str  # contains, equals, starts_with, ends_with, greater, less
    value: str


class RuleSave(BaseModel):
    id: Optional[str] = None
    name: str
    match_logic: str = "AND"
    conditions: List[RuleCondition]
    target_category_id: str
    target_subcategory_id: Optional[str] = None
    is_active: bool = True


class ImportPreviewRequest(BaseModel):
    upload_id: str
    mapping: Dict[str, int]
    account_name: Optional[str] = None
    split_mode: bool = False
    label_map: Dict[str, str] = {}  # Free-text label -> category or subcategory id
    create_missing: bool = False


class ImportConfirmRequest(BaseModel):
    import_id: str
    keep_duplicate_ids: List[str] = []


class ImportCancelRequest(BaseModel):
    import_id: str


class BankSyncRequest(BaseModel):
    access_url: str


class OrderImportRequest(BaseModel):
    upload_id: str
    mapping: Optional[Dict[str, int]] = None
    replace: bool = True


class LinkRequest(BaseModel):
    transaction_id: str


# Uploaded grids waiting for a column mapping, kept until their import is confirmed or cancelled
_uploads: Dict[str, List[List[str]]] = {}
# Upload id -> import id of its latest preview
_upload_previews: Dict[str, str] = {}


def _forget_upload(upload_id: str, service: BudgetService) -> None:
    _uploads.pop(upload_id, None)
    import_id = _upload_previews.pop(upload_id, None)
    if import_id:
        service.cancel_import(import_id)


def _upload_for_import(import_id: str) -> Optional[str]:
    return next((u for u, i in _upload_previews.items() if i == import_id), None)


# === Category Endpoints ===

@app.get("/api/categories")
def get_categories(service: BudgetService = Depends(get_service)):
    """Get the category catalog with transaction counts."""
    counts: Dict[str, int] = {}
    for txn in service.ledger.transactions:
        if txn.get("category_id"):
            counts[txn["category_id"]] = counts.get(txn["category_id"], 0) + 1

    categories = service.get_categories()
    for cat in categories:
        cat["transaction_count"] = counts.get(cat["id"], 0)
    return categories


@app.post("/api/categories")
def create_category(category: CategoryCreate, service: BudgetService = Depends(get_service)):
    """Create a new category."""
    try:
        return service.add_category(category.name, category.type, category.color, category.subcategories)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.put("/api/categories/{category_id}")
def update_category(
    category_id: str,
    updates: CategoryUpdate,
    service: BudgetService = Depends(get_service)
):
    """Update a category."""
    try:
        updated = service.update_category(category_id, **updates.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if updated is None:
        raise HTTPException(status_code=404, detail="Category not found")
    return updated


@app.delete("/api/categories/{category_id}")
def delete_category(category_id: str, service: BudgetService = Depends(get_service)):
    """Delete a category. Its transactions show as Uncategorized."""
    if not service.delete_category(category_id):
        raise HTTPException(status_code=404, detail="Category not found")
    return {"success": True}


@app.post("/api/categories/{category_id}/subcategories")
def create_subcategory(
    category_id: str,
    request: SubcategoryCreate,
    service: BudgetService = Depends(get_service)
):
    sub = service.add_subcategory(category_id, request.name)
    if sub is None:
        raise HTTPException(status_code=404, detail="Category not found")
    return sub


@app.delete("/api/categories/{category_id}/subcategories/{subcategory_id}")
def delete_subcategory(category_id: str, subcategory_id: str, service: BudgetService = Depends(get_service)):
    if not service.delete_subcategory(category_id, subcategory_id):
        raise HTTPException(status_code=404, detail="Subcategory not found")
    return {"success": True}


# === Transaction Endpoints ===

@app.get("/api/transactions")
def get_transactions(
    uncategorized: bool = Query(False),
    service: BudgetService = Depends(get_service)
):
    """List transactions."""
    if uncategorized:
        transactions = service.get_uncategorized()
    else:
        transactions = service.get_transactions()
    return {"transactions": transactions, "total": len(transactions)}


@app.get("/api/transactions/{txn_id}")
def get_transaction(txn_id: str, service: BudgetService = Depends(get_service)):
    txn = service.get_transaction(txn_id)
    if not txn:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return txn


@app.post("/api/transactions")
def add_transaction(request: ManualTransaction, service: BudgetService = Depends(get_service)):
    """Add a manual transaction."""
    try:
        return service.add_manual_transaction(
            date=request.date,
            description=request.description,
            amount=request.amount,
            txn_type=request.type,
            category_id=request.category_id,
            subcategory_id=request.subcategory_id,
            comments=request.comments,
            account=request.account,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/api/transactions/{txn_id}/categorize")
def categorize_transaction(
    txn_id: str,
    request: CategorizeRequest,
    service: BudgetService = Depends(get_service)
):
    """Categorize a transaction. May return a suggested rule."""
    if service.get_transaction(txn_id) is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    result = service.categorize_transaction(txn_id, request.category_id, request.subcategory_id)
    if result is None:
        raise HTTPException(status_code=400, detail=f"Invalid category: {request.category_id}")
    return result


@app.post("/api/transactions/bulk-categorize")
def bulk_categorize(request: BulkCategorizeRequest, service: BudgetService = Depends(get_service)):
    if not any(c["id"] == request.category_id for c in service.get_categories()):
        raise HTTPException(status_code=400, detail=f"Invalid category: {request.category_id}")
    updated = service.bulk_categorize(request.ids, request.category_id, request.subcategory_id)
    return {"updated": updated}


@app.put("/api/transactions/{txn_id}/comments")
def update_comments(txn_id: str, request: CommentUpdate, service: BudgetService = Depends(get_service)):
    if not service.update_comments(txn_id, request.comments):
        raise HTTPException(status_code=404, detail="Transaction not found")
    return {"success": True}


@app.post("/api/transactions/bulk-delete")
def bulk_delete(request: BulkDeleteRequest, service: BudgetService = Depends(get_service)):
    return {"deleted": service.delete_transactions(request.ids)}


@app.post("/api/transactions/auto-categorize")
def auto_categorize(service: BudgetService = Depends(get_service)):
    """Categorize uncategorized transactions with Claude."""
    return {"categorized": service.auto_categorize()}


@app.post("/api/transactions/normalize-merchants")
def normalize_merchants(service: BudgetService = Depends(get_service)):
    return {"updated": service.normalize_merchants()}


@app.post("/api/transactions/anomalies")
def flag_anomalies(use_ai: bool = Query(False), service: BudgetService = Depends(get_service)):
    anomalies = service.flag_anomalies(use_ai=use_ai)
    return {"anomalies": anomalies, "total": len(anomalies)}


# === Import Endpoints ===

async def _read_upload(file: UploadFile) -> List[List[str]]:
    """Save an upload to a temp file and read it as a grid."""
    suffix = Path(file.filename).suffix if file.filename else ".csv"
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as tmp:
        content = await file.read()
        tmp.write(content)
        tmp_path = Path(tmp.name)

    try:
        return read_grid(tmp_path)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Could not read file: {e}")
    finally:
        tmp_path.unlink()  # Clean up temp file


@app.post("/api/import/upload")
async def upload_file(file: UploadFile = File(...)):
    """Upload a CSV/Excel file and get its header, sample rows and a guessed mapping."""
    rows = await _read_upload(file)
    if not rows:
        raise HTTPException(status_code=400, detail="File contains no rows")

    upload_id = str(uuid.uuid4())
    _uploads[upload_id] = rows
    while len(_uploads) > PENDING_IMPORT_LIMIT:
        stale = next(iter(_uploads))
        _uploads.pop(stale)
        _upload_previews.pop(stale, None)
    return {
        "upload_id": upload_id,
        "header": rows[0],
        "preview_rows": rows[1:6],
        "total_rows": len(rows) - 1,
        "suggested_mapping": guess_mapping(rows[0]),
        "suggested_order_mapping": guess_mapping(rows[0], ORDER_FIELDS),
    }


@app.post("/api/import/preview")
def import_preview(request: ImportPreviewRequest, service: BudgetService = Depends(get_service)):
    """Map an uploaded grid and flag duplicates. Nothing is saved yet.

    The upload stays available, so a corrected mapping can be previewed
    again; the earlier preview of the same upload is discarded.
    """
    rows = _uploads.get(request.upload_id)
    if rows is None:
        raise HTTPException(status_code=404, detail="Upload not found")

    kwargs = {"split_mode": request.split_mode, "label_map": request.label_map,
              "create_missing": request.create_missing}
    if request.account_name:
        kwargs["account_name"] = request.account_name
    previous = _upload_previews.get(request.upload_id)
    if previous:
        service.cancel_import(previous)

    preview = service.preview_import(rows, request.mapping, **kwargs)
    _upload_previews[request.upload_id] = preview["import_id"]
    return preview


@app.post("/api/import/confirm")
def import_confirm(request: ImportConfirmRequest, service: BudgetService = Depends(get_service)):
    """Commit a previewed import, keeping the selected duplicates."""
    upload_id = _upload_for_import(request.import_id)
    result = service.finalize_import(request.import_id, request.keep_duplicate_ids)
    if result is None:
        raise HTTPException(status_code=404, detail="Import not found")
    if upload_id:
        _forget_upload(upload_id, service)
    return result


@app.post("/api/import/cancel")
def import_cancel(request: ImportCancelRequest, service: BudgetService = Depends(get_service)):
    """Discard a previewed import and its upload."""
    upload_id = _upload_for_import(request.import_id)
    if not service.cancel_import(request.import_id):
        raise HTTPException(status_code=404, detail="Import not found")
    if upload_id:
        _forget_upload(upload_id, service)
    return {"success": True}


@app.post("/api/import/bank-sync")
def bank_sync(request: BankSyncRequest, service: BudgetService = Depends(get_service)):
    """Fetch from a SimpleFIN bridge and stage the result for confirmation."""
    result = service.sync_bank(request.access_url)
    if result["error"]:
        raise HTTPException(status_code=502, detail=result["error"])
    return result


@app.post("/api/import/document")
async def import_document(
    file: UploadFile = File(...),
    kind: str = Query("receipt"),
    service: BudgetService = Depends(get_service)
):
    """Extract a receipt or statement with Claude and stage it for confirmation."""
    if kind not in ("receipt", "statement"):
        raise HTTPException(status_code=400, detail="kind must be 'receipt' or 'statement'")
    content = await file.read()
    media_type = file.content_type or "application/pdf"
    return service.extract_document(content, media_type, kind=kind)


# === Rule Endpoints ===

@app.get("/api/rules")
def get_rules(service: BudgetService = Depends(get_service)):
    return service.get_rules()


@app.post("/api/rules")
def save_rule(rule: RuleSave, service: BudgetService = Depends(get_service)):
    """Create or replace a rule."""
    if not any(c["id"] == rule.target_category_id for c in service.get_categories()):
        raise HTTPException(status_code=400, detail=f"Invalid category: {rule.target_category_id}")
    try:
        return service.save_rule(rule.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete("/api/rules/{rule_id}")
def delete_rule(rule_id: str, service: BudgetService = Depends(get_service)):
    if not service.delete_rule(rule_id):
        raise HTTPException(status_code=404, detail="Rule not found")
    return {"success": True}


@app.post("/api/rules/run")
def run_rules(service: BudgetService = Depends(get_service)):
    """Apply active rules to uncategorized transactions."""
    return service.run_rules()


# === Reconciliation Endpoints ===

@app.post("/api/orders/import")
def import_orders(request: OrderImportRequest, service: BudgetService = Depends(get_service)):
    """Load orders from an uploaded grid."""
    rows = _uploads.get(request.upload_id)
    if rows is None:
        raise HTTPException(status_code=404, detail="Upload not found")
    orders = service.import_orders(rows, request.mapping, replace=request.replace)
    _forget_upload(request.upload_id, service)
    return {"orders": orders, "total": len(orders)}


@app.get("/api/orders")
def get_orders(unmatched: bool = Query(False), service: BudgetService = Depends(get_service)):
    orders = service.get_orders(unmatched_only=unmatched)
    return {"orders": orders, "total": len(orders)}


@app.get("/api/orders/{order_id}/candidates")
def get_candidates(order_id: str, service: BudgetService = Depends(get_service)):
    """Transactions that could pay for this order."""
    candidates = service.reconciliation_candidates(order_id)
    if candidates is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return {"candidates": candidates}


@app.post("/api/orders/{order_id}/link")
def link_order(order_id: str, request: LinkRequest, service: BudgetService = Depends(get_service)):
    """Link an order to a transaction."""
    if service.ledger.get_order(order_id) is None:
        raise HTTPException(status_code=404, detail="Order not found")
    if service.get_transaction(request.transaction_id) is None:
        raise HTTPException(status_code=404, detail="Transaction not found")

    result = service.link_order(order_id, request.transaction_id)
    if result is None:
        raise HTTPException(status_code=400, detail="Order or transaction is already matched")
    return result


@app.post("/api/reconciliation/suggest")
def suggest_matches(use_ai: bool = Query(True), service: BudgetService = Depends(get_service)):
    suggestions = service.suggest_matches(use_ai=use_ai)
    return {"suggestions": suggestions, "total": len(suggestions)}


@app.get("/api/reconciliation/suggestions")
def get_suggestions(service: BudgetService = Depends(get_service)):
    return {"suggestions": service.get_pending_suggestions()}


@app.post("/api/reconciliation/suggestions/{suggestion_id}/accept")
def accept_suggestion(suggestion_id: str, service: BudgetService = Depends(get_service)):
    """Apply a pending suggestion."""
    if not any(s["id"] == suggestion_id for s in service.get_pending_suggestions()):
        raise HTTPException(status_code=404, detail="Suggestion not found")
    result = service.accept_suggestion(suggestion_id)
    if result is None:
        raise HTTPException(status_code=409, detail="Suggestion no longer applies")
    return result


@app.post("/api/reconciliation/suggestions/{suggestion_id}/reject")
def reject_suggestion(suggestion_id: str, service: BudgetService = Depends(get_service)):
    if not service.reject_suggestion(suggestion_id):
        raise HTTPException(status_code=404, detail="Suggestion not found")
    return {"success": True}
