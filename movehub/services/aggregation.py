"""
Pure aggregations over in-memory item snapshots.

Items may be ORM rows, pydantic models or plain dicts; only attribute/key
access is used so the functions stay testable without a database.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional


DAMAGED_CONDITIONS = frozenset({"poor", "damaged"})


def _get(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _number(value: Any) -> float:
    if value is None:
        return 0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class ItemSummary:
    total_quantity: int
    category_count: int
    damaged_count: int
    total_value: float
    fragile_count: int


def summarize_items(items: Iterable[Any]) -> ItemSummary:
    """Totals for the report summary block; independent of item order."""
    total_quantity = 0
    categories = set()
    damaged = 0
    total_value = 0.0
    fragile = 0
    for item in items:
        total_quantity += int(_get(item, "quantity") or 0)
        categories.add(_get(item, "category"))
        if (_get(item, "condition") or "").lower() in DAMAGED_CONDITIONS:
            damaged += 1
        total_value += _number(_get(item, "item_value"))
        if _get(item, "fragile"):
            fragile += 1
    return ItemSummary(
        total_quantity=total_quantity,
        category_count=len(categories),
        damaged_count=damaged,
        total_value=total_value,
        fragile_count=fragile,
    )


def total_quantity_by_job(items: Iterable[Any]) -> Dict[Any, int]:
    """Sum of quantities per job_id; a missing quantity counts as one piece."""
    totals: Dict[Any, int] = {}
    for item in items:
        job_id = _get(item, "job_id")
        totals[job_id] = totals.get(job_id, 0) + int(_get(item, "quantity") or 1)
    return totals


def quantity_by_delivery(items: Iterable[Any], default_key: Optional[Any] = None) -> Dict[Any, int]:
    """Sum of quantities per delivery location; unscoped items land on `default_key`."""
    totals: Dict[Any, int] = {}
    for item in items:
        key = _get(item, "delivery_location_id") or default_key
        totals[key] = totals.get(key, 0) + int(_get(item, "quantity") or 1)
    return totals
