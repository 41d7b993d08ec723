"""
Wall-clock helpers.

All timestamps in the platform are integer epoch milliseconds. Managers take
an optional ``clock`` callable so tests can pin time.
"""

from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], int]

DAY_MS = 24 * 60 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)
