from typing import Any

from pocketledger.core.errors import Conflict, NotFound, ValidationError
from pocketledger.services.common import parse_uuid_value, require_entry_type

DEFAULT_COLOR = "#3B82F6"
DEFAULT_ICON = "💰"


def _clean_name(value: Any) -> str:
    name = (value or "").strip()
    if not name:
        raise ValidationError("name required")
    return name


def list_categories(store, category_type: str | None = None) -> list[dict[str, Any]]:
    if category_type:
        require_entry_type(category_type)
    return store.list_categories(category_type)


def get_category(store, category_id: str) -> dict[str, Any]:
    category_id = parse_uuid_value(category_id, "category_id")
    row = store.get_category(category_id)
    if not row:
        raise NotFound("Category not found")
    return row


def create_category(store, data: dict[str, Any]) -> dict[str, Any]:
    fields = {
        "name": _clean_name(data.get("name")),
        "type": require_entry_type(data.get("type")),
        "color": (data.get("color") or "").strip() or DEFAULT_COLOR,
        "icon": (data.get("icon") or "").strip() or DEFAULT_ICON,
    }
    return store.insert_category(fields)


def update_category(store, category_id: str, data: dict[str, Any]) -> dict[str, Any]:
    category_id = parse_uuid_value(category_id, "category_id")
    fields: dict[str, Any] = {}
    if "name" in data:
        fields["name"] = _clean_name(data["name"])
    if "type" in data:
        # Existing transactions keep their own type.
        fields["type"] = require_entry_type(data["type"])
    if "color" in data:
        fields["color"] = (data["color"] or "").strip() or DEFAULT_COLOR
    if "icon" in data:
        fields["icon"] = (data["icon"] or "").strip() or DEFAULT_ICON

    if not fields:
        row = store.get_own_category(category_id)
    else:
        row = store.update_category(category_id, fields)
    if not row:
        raise NotFound("Category not found")
    return row


def delete_category(store, category_id: str) -> None:
    """Delete an owned category; blocked while any transaction still points at it."""
    category_id = parse_uuid_value(category_id, "category_id")
    if not store.get_own_category(category_id):
        raise NotFound("Category not found")
    refs = store.count_category_references(category_id)
    if refs:
        raise Conflict(f"Category is used by {refs} transaction(s) and cannot be deleted")
    if not store.delete_category(category_id):
        raise NotFound("Category not found")
