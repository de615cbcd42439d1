from typing import Any


def success(data: Any = None, message: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body


def success_list(items: list[Any], message: str | None = None) -> dict[str, Any]:
    body = success(items, message)
    body["count"] = len(items)
    return body


def success_message(message: str) -> dict[str, Any]:
    return {"success": True, "message": message}
