"""Time helpers."""

from __future__ import annotations

import re
import time
from datetime import datetime, timezone


def now_ms() -> int:
    """Return current timestamp in milliseconds."""
    return int(time.time() * 1000)


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(tz=timezone.utc)


def iso_now() -> str:
    """Current UTC time as an ISO 8601 string with millisecond precision."""
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def name_token(moment: datetime | None = None) -> str:
    """Default snippet name, e.g. ``2024-01-15_10-30-00``."""
    moment = moment or datetime.now()
    return moment.strftime("%Y-%m-%d_%H-%M-%S")


_CUSTOM_TOKENS = (
    ("yyyy", "%Y"),
    ("yy", "%y"),
    ("MM", "%m"),
    ("dd", "%d"),
    ("HH", "%H"),
    ("mm", "%M"),
    ("ss", "%S"),
)
_CUSTOM_RE = re.compile("|".join(token for token, _ in _CUSTOM_TOKENS))


def format_timestamp(
    value: str,
    style: str = "smart",
    pattern: str = "yyyy-MM-dd HH:mm",
    now: datetime | None = None,
) -> str:
    """Render an ISO timestamp for display according to the date-format setting."""
    moment = parse_iso(value)
    if style == "iso":
        return moment.isoformat()
    local = moment.astimezone()
    if style == "locale":
        return local.strftime("%c")
    if style == "custom":
        mapping = dict(_CUSTOM_TOKENS)
        return local.strftime(_CUSTOM_RE.sub(lambda m: mapping[m.group(0)], pattern))
    reference = (now or utc_now()).astimezone()
    diff_days = (reference.date() - local.date()).days
    if diff_days == 0:
        return local.strftime("%H:%M")
    if diff_days == 1:
        return "Yesterday"
    if 1 < diff_days < 7:
        return f"{diff_days} days ago"
    return local.strftime("%Y-%m-%d")
