"""
Text helpers for printing platform state in a terminal.

Durations use the same buckets everywhere: ms, s, m, h (below 48) and d.
Missing values render as ``n/a``.
"""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Iterable
from zoneinfo import ZoneInfo

from openclaw.clock import Clock, now_ms


NA = "n/a"
ELLIPSIS = "…"


def _round(value: float) -> int:
    """Round halves up (2.5 -> 3), unlike Python's banker's rounding."""
    return int(math.floor(value + 0.5))


def format_ms(ms: int | None, tz: str | None = None) -> str:
    """Epoch ms as ``YYYY-MM-DD HH:MM:SS`` in ``tz`` (local time when omitted)."""
    if ms is None:
        return NA
    if tz:
        dt = datetime.fromtimestamp(ms / 1000, tz=ZoneInfo(tz))
    else:
        dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc).astimezone()
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def format_ago(ms: int | None, clock: Clock = now_ms) -> str:
    """Relative time: ``42s ago``, ``5m ago``, ``3h from now``, ``2d ago``."""
    if ms is None:
        return NA
    diff = clock() - ms
    suffix = "from now" if diff < 0 else "ago"
    sec = _round(abs(diff) / 1000)
    if sec < 60:
        return "just now" if diff < 0 else f"{sec}s ago"
    minutes = _round(sec / 60)
    if minutes < 60:
        return f"{minutes}m {suffix}"
    hours = _round(minutes / 60)
    if hours < 48:
        return f"{hours}h {suffix}"
    return f"{_round(hours / 24)}d {suffix}"


def format_duration_ms(ms: int | None) -> str:
    if ms is None:
        return NA
    if ms < 1000:
        return f"{ms}ms"
    sec = _round(ms / 1000)
    if sec < 60:
        return f"{sec}s"
    minutes = _round(sec / 60)
    if minutes < 60:
        return f"{minutes}m"
    hours = _round(minutes / 60)
    if hours < 48:
        return f"{hours}h"
    return f"{_round(hours / 24)}d"


def format_list(values: Iterable[str | None] | None) -> str:
    items = list(values or [])
    if not items:
        return "none"
    return ", ".join(v for v in items if v and v.strip())


def clamp_text(value: str, max_len: int = 120) -> str:
    """Cut to ``max_len`` characters including a trailing ellipsis."""
    if len(value) <= max_len:
        return value
    return value[:max(0, max_len - 1)] + ELLIPSIS


def truncate_text(value: str, max_len: int) -> tuple[str, bool, int]:
    """Returns ``(text, truncated, total_length)``."""
    if len(value) <= max_len:
        return value, False, len(value)
    return value[:max(0, max_len)], True, len(value)


def to_number(value: str, fallback: float) -> float:
    """Parse a number; blank input is 0 and anything non-finite gives ``fallback``."""
    text = value.strip()
    if not text:
        return 0
    try:
        n = float(text)
    except ValueError:
        return fallback
    if not math.isfinite(n):
        return fallback
    return int(n) if n.is_integer() else n


def parse_list(text: str) -> list[str]:
    """Split on commas and newlines, dropping blanks."""
    return [v.strip() for v in re.split(r"[,\n]", text) if v.strip()]
