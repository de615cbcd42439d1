from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from pocketledger.core.errors import Conflict, InvalidReference, NotFound, ValidationError
from pocketledger.db.store import TransactionFilters
from pocketledger.services.common import now_utc, parse_uuid_value, require_entry_type, today

PAYMENT_ACTIONS = ("pay", "unpay", "toggle")
NON_NULLABLE = ("type", "amount", "description", "date")
MAX_LIMIT = 500

CENT = Decimal("0.01")
# NUMERIC(12, 2)
MAX_AMOUNT = Decimal("9999999999.99")


def parse_amount(value: Any) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError("amount must be a positive number")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("amount must be a positive number")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("amount must be greater than 0")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"amount must be at most {MAX_AMOUNT}")
    if amount != amount.quantize(CENT):
        raise ValidationError("amount supports at most 2 decimal places")
    return amount.quantize(CENT)


def _clean_description(value: Any) -> str:
    description = (value or "").strip()
    if not description:
        raise ValidationError("description required")
    return description


def _clean_tags(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValidationError("tags must be a list of strings")
    tags = []
    for tag in value:
        if not isinstance(tag, str):
            raise ValidationError("tags must be a list of strings")
        tag = tag.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def ensure_category_reference(store, category_id: Any) -> str:
    """The referenced category must exist and belong to the caller."""
    try:
        category_id = parse_uuid_value(category_id, "category_id")
    except ValidationError:
        raise InvalidReference("Category not found or not owned by user")
    if not store.get_own_category(category_id):
        raise InvalidReference("Category not found or not owned by user")
    return category_id


def payment_fields(is_paid: bool, at: datetime) -> dict[str, Any]:
    return {"is_paid": True, "paid_at": at} if is_paid else {"is_paid": False, "paid_at": None}


def payment_transition(currently_paid: bool, action: str, at: datetime) -> dict[str, Any]:
    """Fields for a payment action; pay/unpay refuse a no-op, toggle never does."""
    if action == "pay":
        if currently_paid:
            raise Conflict("Transaction is already paid")
        return payment_fields(True, at)
    if action == "unpay":
        if not currently_paid:
            raise Conflict("Transaction is already unpaid")
        return payment_fields(False, at)
    if action == "toggle":
        return payment_fields(not currently_paid, at)
    raise ValidationError(f"action must be one of: {', '.join(PAYMENT_ACTIONS)}")


def build_filters(
    start_date: date | None = None,
    end_date: date | None = None,
    entry_type: str | None = None,
    category_id: str | None = None,
    is_paid: bool | None = None,
    limit: int = 50,
    offset: int = 0,
) -> TransactionFilters:
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must be on or before end_date")
    if entry_type:
        require_entry_type(entry_type)
    if limit < 1 or limit > MAX_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_LIMIT}")
    if offset < 0:
        raise ValidationError("offset must be >= 0")
    return TransactionFilters(
        start_date=start_date,
        end_date=end_date,
        type=entry_type or None,
        category_id=parse_uuid_value(category_id, "category_id") if category_id else None,
        is_paid=is_paid,
        limit=limit,
        offset=offset,
    )


def list_transactions(store, filters: TransactionFilters) -> list[dict[str, Any]]:
    return store.list_transactions(filters)


def get_transaction(store, transaction_id: str) -> dict[str, Any]:
    transaction_id = parse_uuid_value(transaction_id, "transaction_id")
    row = store.get_transaction(transaction_id)
    if not row:
        raise NotFound("Transaction not found")
    return row


def create_transaction(store, data: dict[str, Any]) -> dict[str, Any]:
    for name in ("type", "amount", "description"):
        if data.get(name) in (None, ""):
            raise ValidationError(f"{name} required")
    fields: dict[str, Any] = {
        "type": require_entry_type(data["type"]),
        "amount": parse_amount(data["amount"]),
        "description": _clean_description(data["description"]),
        "date": data.get("date") or today(),
        "category_id": None,
        "tags": _clean_tags(data.get("tags")),
        "notes": data.get("notes"),
    }
    if data.get("category_id"):
        fields["category_id"] = ensure_category_reference(store, data["category_id"])
    fields.update(payment_fields(bool(data.get("is_paid")), now_utc()))
    return store.insert_transaction(fields)


def update_transaction(store, transaction_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Apply the supplied fields only; absent keys are left untouched."""
    transaction_id = parse_uuid_value(transaction_id, "transaction_id")
    current = store.get_own_transaction(transaction_id, for_update=True)
    if not current:
        raise NotFound("Transaction not found")

    for name in NON_NULLABLE:
        if name in data and data[name] is None:
            raise ValidationError(f"{name} cannot be null")

    fields: dict[str, Any] = {}
    if "type" in data:
        fields["type"] = require_entry_type(data["type"])
    if "amount" in data:
        fields["amount"] = parse_amount(data["amount"])
    if "description" in data:
        fields["description"] = _clean_description(data["description"])
    if "date" in data:
        fields["date"] = data["date"]
    if "tags" in data:
        fields["tags"] = _clean_tags(data["tags"])
    if "notes" in data:
        fields["notes"] = data["notes"]
    if "category_id" in data:
        fields["category_id"] = ensure_category_reference(store, data["category_id"]) if data["category_id"] else None
    if "is_paid" in data and data["is_paid"] is not None and bool(data["is_paid"]) != bool(current["is_paid"]):
        fields.update(payment_fields(bool(data["is_paid"]), now_utc()))

    if not fields:
        return current
    row = store.update_transaction(transaction_id, fields)
    if not row:
        raise NotFound("Transaction not found")
    return row


def delete_transaction(store, transaction_id: str) -> None:
    transaction_id = parse_uuid_value(transaction_id, "transaction_id")
    if not store.delete_transaction(transaction_id):
        raise NotFound("Transaction not found")


def set_payment_status(store, transaction_id: str, action: str) -> dict[str, Any]:
    transaction_id = parse_uuid_value(transaction_id, "transaction_id")
    current = store.get_own_transaction(transaction_id, for_update=True)
    if not current:
        raise NotFound("Transaction not found")
    fields = payment_transition(bool(current["is_paid"]), action, now_utc())
    row = store.update_transaction(transaction_id, fields)
    if not row:
        raise NotFound("Transaction not found")
    return row
