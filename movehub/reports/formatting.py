"""Text and number formatting for reports (Indian locale conventions)."""
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Optional

import pytz

from ..config import settings


RUPEE = "₹"


def group_indian(digits: str) -> str:
    """Indian digit grouping: last three digits, then pairs (1500000 -> 15,00,000)."""
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_currency(value: Any) -> str:
    """Whole Rupees, grouped; None and unparseable values render as zero."""
    try:
        amount = Decimal(str(value)) if value is not None else Decimal(0)
    except (InvalidOperation, ValueError):
        amount = Decimal(0)
    rounded = int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))
    sign = "-" if rounded < 0 else ""
    return f"{sign}{RUPEE}{group_indian(str(abs(rounded)))}"


def _to_local(value: datetime, tz_name: Optional[str] = None) -> datetime:
    tz = pytz.timezone(tz_name or settings.tz_default)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz)


def format_date(value: Any, tz_name: Optional[str] = None) -> str:
    """Day-first short date, e.g. 2/1/2025."""
    if value is None or value == "":
        return ""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    if isinstance(value, datetime):
        value = _to_local(value, tz_name)
    elif not isinstance(value, date):
        return str(value)
    return f"{value.day}/{value.month}/{value.year}"


def format_time(value: datetime, tz_name: Optional[str] = None) -> str:
    local = _to_local(value, tz_name)
    hour = local.hour % 12 or 12
    suffix = "am" if local.hour < 12 else "pm"
    return f"{hour}:{local.minute:02d}:{local.second:02d} {suffix}"


def format_timestamp(value: datetime, tz_name: Optional[str] = None) -> str:
    return f"{format_date(value, tz_name)}, {format_time(value, tz_name)}"


def truncate_text(text: Any, max_length: int) -> str:
    """Hard cut with a trailing ellipsis; the result never exceeds max_length."""
    text = "" if text is None else str(text)
    if len(text) <= max_length:
        return text
    return text[: max(max_length - 3, 0)] + "..."


def capitalize(text: Any) -> str:
    text = "" if text is None else str(text)
    return text[:1].upper() + text[1:]
