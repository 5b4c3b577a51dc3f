"""
Device payload normalization.

The scale firmware posts two JSON shapes:

    single  {"nome": "cerveja", "peso": 335.1, "acao": "RETIRADO", "ts": 214022}
    batch   {"acao": "COLOCADOS", "quantidade": 3,
             "produtos": [{"nome": "cerveja", "peso": 347.0, "id": 0}, ...],
             "ts": 188787}

English keys (name, weight, action, count, items) are accepted as well.
``classify_payload`` turns the raw dict into a ``SinglePayload`` or a
``BatchPayload``; ``normalize_payload`` validates it and yields one
``Movement`` per product. ``ts`` is the device clock (milliseconds since
boot), so movements are stamped with the time the backend received them and
keep the raw value in ``device_ts``.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Union

from app.core.constants import BATCH_ACTIONS, SINGLE_ACTIONS, MovementAction
from app.core.dates import isoformat, utcnow
from app.core.errors import UnrecognizedFormat, ValidationError
from app.core.numbers import MAX_STORED_INT, is_finite_number, is_int, is_stored_int

_NAME_KEYS = ("name", "nome")
_WEIGHT_KEYS = ("weight", "peso")
_ACTION_KEYS = ("action", "acao")
_COUNT_KEYS = ("count", "quantidade")
_ITEMS_KEYS = ("items", "produtos")


@dataclass(frozen=True)
class Movement:
    product_name: str
    weight: float
    action: Optional[MovementAction]
    timestamp: datetime
    device_ts: Optional[int] = None
    device_item_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "productName": self.product_name,
            "weight": self.weight,
            "action": self.action.value if self.action is not None else None,
            "timestamp": isoformat(self.timestamp),
            "deviceTs": self.device_ts,
            "deviceItemId": self.device_item_id,
        }


@dataclass(frozen=True)
class SinglePayload:
    name: Any
    weight: Any
    action: Any
    ts: Any


@dataclass(frozen=True)
class BatchPayload:
    action: Any
    count: Any
    items: Any
    ts: Any


MovementPayload = Union[SinglePayload, BatchPayload]


def _has_any(payload: dict, keys) -> bool:
    return any(key in payload for key in keys)


def _pick(payload: dict, keys):
    for key in keys:
        if key in payload:
            return payload[key]
    return None


def classify_payload(payload) -> MovementPayload:
    if not isinstance(payload, dict):
        raise UnrecognizedFormat("Payload must be a JSON object.")

    has_items = _has_any(payload, _ITEMS_KEYS)
    has_name = _has_any(payload, _NAME_KEYS)
    if has_items and has_name:
        raise UnrecognizedFormat(
            "Ambiguous payload: it carries both a product name and a product list."
        )
    if has_items:
        return BatchPayload(
            action=_pick(payload, _ACTION_KEYS),
            count=_pick(payload, _COUNT_KEYS),
            items=_pick(payload, _ITEMS_KEYS),
            ts=_pick(payload, ("ts",)),
        )
    if has_name:
        return SinglePayload(
            name=_pick(payload, _NAME_KEYS),
            weight=_pick(payload, _WEIGHT_KEYS),
            action=_pick(payload, _ACTION_KEYS),
            ts=_pick(payload, ("ts",)),
        )
    raise UnrecognizedFormat(
        "Unrecognized payload: expected a single movement or a batch movement."
    )


def _check_name(value, field: str, errors: list) -> None:
    if not isinstance(value, str) or not value.strip():
        errors.append(f"{field} must be a non-empty string")


def _check_weight(value, field: str, errors: list) -> None:
    if not is_finite_number(value) or value < 0:
        errors.append(f"{field} must be a finite number >= 0")


def _check_ts(value, errors: list) -> None:
    if value is None:
        errors.append("ts is required")
    elif not is_stored_int(value) or value < 0:
        errors.append(f"ts must be an integer between 0 and {MAX_STORED_INT}")


def _resolve_action(value, vocabulary: dict, errors: list) -> Optional[MovementAction]:
    if not isinstance(value, str) or not value.strip():
        errors.append("action is required")
        return None
    action = vocabulary.get(value.strip().upper())
    if action is None:
        allowed = ", ".join(sorted(vocabulary))
        errors.append(f"action must be one of: {allowed}")
    return action


def _normalize_single(payload: SinglePayload, received_at: datetime) -> list[Movement]:
    errors: list[str] = []
    _check_name(payload.name, "name", errors)
    _check_weight(payload.weight, "weight", errors)
    action = _resolve_action(payload.action, SINGLE_ACTIONS, errors)
    _check_ts(payload.ts, errors)
    if errors:
        raise ValidationError("Invalid single movement payload.", errors)

    return [
        Movement(
            product_name=payload.name.strip(),
            weight=float(payload.weight),
            action=action,
            timestamp=received_at,
            device_ts=payload.ts,
            device_item_id=None,
        )
    ]


def _normalize_batch(payload: BatchPayload, received_at: datetime) -> list[Movement]:
    errors: list[str] = []
    action = _resolve_action(payload.action, BATCH_ACTIONS, errors)

    items = payload.items
    if not isinstance(items, list) or not items:
        errors.append("items must be a non-empty list")
        items = []

    if not is_int(payload.count):
        errors.append("count must be an integer")
    elif isinstance(payload.items, list) and payload.count != len(payload.items):
        errors.append(
            f"count ({payload.count}) does not match the number of items ({len(payload.items)})"
        )

    for index, item in enumerate(items):
        prefix = f"items[{index}]"
        if not isinstance(item, dict):
            errors.append(f"{prefix} must be an object")
            continue
        _check_name(_pick(item, _NAME_KEYS), f"{prefix}.name", errors)
        _check_weight(_pick(item, _WEIGHT_KEYS), f"{prefix}.weight", errors)
        if not is_stored_int(item.get("id")):
            errors.append(f"{prefix}.id must be a 64-bit integer")

    _check_ts(payload.ts, errors)
    if errors:
        raise ValidationError("Invalid batch movement payload.", errors)

    return [
        Movement(
            product_name=_pick(item, _NAME_KEYS).strip(),
            weight=float(_pick(item, _WEIGHT_KEYS)),
            action=action,
            timestamp=received_at,
            device_ts=payload.ts,
            device_item_id=item["id"],
        )
        for item in items
    ]


def normalize_payload(payload, *, received_at: Optional[datetime] = None) -> list[Movement]:
    """Validate a device payload and return its movements, or raise with every violation."""
    received_at = received_at or utcnow()
    classified = classify_payload(payload)
    if isinstance(classified, BatchPayload):
        return _normalize_batch(classified, received_at)
    return _normalize_single(classified, received_at)


def payload_kind(payload) -> str:
    return "multiple" if isinstance(classify_payload(payload), BatchPayload) else "single"


__all__ = [
    "BatchPayload",
    "Movement",
    "MovementPayload",
    "SinglePayload",
    "classify_payload",
    "normalize_payload",
    "payload_kind",
]
