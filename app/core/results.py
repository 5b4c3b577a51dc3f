from typing import Any, Optional


def ok(data: Any = None, *, message: Optional[str] = None, **extra) -> dict:
    payload = {"success": True, "data": data}
    if message:
        payload["message"] = message
    payload.update(extra)
    return payload


def fail(error: str, details: Optional[list] = None) -> dict:
    payload = {"success": False, "error": error}
    if details:
        payload["details"] = list(details)
    return payload


__all__ = ["fail", "ok"]
