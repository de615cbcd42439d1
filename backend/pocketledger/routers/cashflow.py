from datetime import date

from fastapi import APIRouter, Depends, Query

from pocketledger.db.store import ScopedStore
from pocketledger.models.requests import (
    CategoryCreateRequest,
    CategoryUpdateRequest,
    TransactionCreateRequest,
    TransactionUpdateRequest,
)
from pocketledger.routers.deps import get_store
from pocketledger.routers.responses import success, success_list, success_message
from pocketledger.services import categories, summary, transactions

router = APIRouter()


# Categories


@router.get("/categories")
def list_categories(
    category_type: str | None = Query(default=None, alias="type"),
    store: ScopedStore = Depends(get_store),
):
    rows = categories.list_categories(store, category_type)
    return success_list(rows, "Categories listed successfully")


@router.post("/categories")
def create_category(payload: CategoryCreateRequest, store: ScopedStore = Depends(get_store)):
    row = categories.create_category(store, payload.model_dump())
    store.commit()
    return success(row, "Category created successfully")


@router.get("/categories/{category_id}")
def get_category(category_id: str, store: ScopedStore = Depends(get_store)):
    return success(categories.get_category(store, category_id))


@router.api_route("/categories/{category_id}", methods=["PUT", "PATCH"])
def update_category(category_id: str, payload: CategoryUpdateRequest, store: ScopedStore = Depends(get_store)):
    row = categories.update_category(store, category_id, payload.model_dump(exclude_unset=True))
    store.commit()
    return success(row, "Category updated successfully")


@router.delete("/categories/{category_id}")
def delete_category(category_id: str, store: ScopedStore = Depends(get_store)):
    categories.delete_category(store, category_id)
    store.commit()
    return success_message("Category deleted successfully")


# Transactions


@router.get("/transactions")
def list_transactions(
    start_date: date | None = None,
    end_date: date | None = None,
    entry_type: str | None = Query(default=None, alias="type"),
    category_id: str | None = None,
    is_paid: bool | None = None,
    limit: int = 50,
    offset: int = 0,
    store: ScopedStore = Depends(get_store),
):
    filters = transactions.build_filters(start_date, end_date, entry_type, category_id, is_paid, limit, offset)
    rows = transactions.list_transactions(store, filters)
    return success_list(rows, "Transactions listed successfully")


@router.post("/transactions")
def create_transaction(payload: TransactionCreateRequest, store: ScopedStore = Depends(get_store)):
    row = transactions.create_transaction(store, payload.model_dump())
    store.commit()
    return success(row, "Transaction created successfully")


@router.get("/transactions/{transaction_id}")
def get_transaction(transaction_id: str, store: ScopedStore = Depends(get_store)):
    return success(transactions.get_transaction(store, transaction_id))


@router.put("/transactions/{transaction_id}")
def update_transaction(
    transaction_id: str,
    payload: TransactionUpdateRequest,
    store: ScopedStore = Depends(get_store),
):
    row = transactions.update_transaction(store, transaction_id, payload.model_dump(exclude_unset=True))
    store.commit()
    return success(row, "Transaction updated successfully")


@router.delete("/transactions/{transaction_id}")
def delete_transaction(transaction_id: str, store: ScopedStore = Depends(get_store)):
    transactions.delete_transaction(store, transaction_id)
    store.commit()
    return success_message("Transaction deleted successfully")


@router.patch("/transactions/{transaction_id}/pay")
def mark_paid(transaction_id: str, store: ScopedStore = Depends(get_store)):
    row = transactions.set_payment_status(store, transaction_id, "pay")
    store.commit()
    return success(row, "Transaction marked as paid")


@router.patch("/transactions/{transaction_id}/unpay")
def mark_unpaid(transaction_id: str, store: ScopedStore = Depends(get_store)):
    row = transactions.set_payment_status(store, transaction_id, "unpay")
    store.commit()
    return success(row, "Transaction marked as unpaid")


@router.patch("/transactions/{transaction_id}/toggle-payment")
def toggle_payment(transaction_id: str, store: ScopedStore = Depends(get_store)):
    row = transactions.set_payment_status(store, transaction_id, "toggle")
    store.commit()
    state = "paid" if row["is_paid"] else "unpaid"
    return success(row, f"Transaction marked as {state}")


# Summary


@router.get("/summary")
def get_summary(
    start_date: date | None = None,
    end_date: date | None = None,
    store: ScopedStore = Depends(get_store),
):
    return success(summary.compute_summary(store, start_date, end_date), "Summary computed successfully")
