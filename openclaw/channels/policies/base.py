"""
PolicyHandler base class and helpers shared by the built-in handlers.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiofiles
from loguru import logger

from openclaw.channels.policies.types import PolicyContext, PolicyResult, ValidationResult
from openclaw.errors import ValidationError


class PolicyHandler(ABC):
    """One message-handling strategy, selected by ``binding.policy.type``."""

    type: str = ""

    def _config(self, ctx: PolicyContext) -> dict[str, Any]:
        policy = ctx.binding.policy
        if policy.type != self.type:
            raise ValidationError(f"Invalid policy type: {policy.type}, expected {self.type}")
        return policy.config or {}

    @abstractmethod
    async def process(self, ctx: PolicyContext) -> PolicyResult:
        """Decide what happens to ``ctx.message``."""
        ...

    @abstractmethod
    async def validate(self, config: dict[str, Any] | None) -> ValidationResult:
        """Check a policy config before it is bound."""
        ...

    def dispose(self) -> None:
        """Release timers and queued state (no-op by default)."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def iso_timestamp(ms: int) -> str:
    """Epoch milliseconds as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ms % 1000:03d}Z"


def json_line(record: dict[str, Any]) -> str:
    return json.dumps(record, ensure_ascii=False, default=str)


async def append_log(path: str | Path, line: str) -> None:
    """Append one line to a log file, creating parent directories. Errors are logged."""
    try:
        path = Path(path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "a", encoding="utf-8") as f:
            await f.write(line + "\n")
    except Exception as exc:
        logger.error(f"[policy] Failed to log message to {path}: {exc}")


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_positive_number(value: Any) -> bool:
    return is_number(value) and value > 0


def check_string_list(config: dict[str, Any], key: str, errors: list[str], required: bool = True) -> None:
    """Validate a non-empty list of strings (``required``) or an optional list."""
    value = config.get(key)
    if value is None and not required:
        return
    if not isinstance(value, list):
        errors.append(f"{key} must be an array")
    elif required and not value:
        errors.append(f"{key} cannot be empty")
    elif required and not all(isinstance(v, str) for v in value):
        errors.append(f"All {key} must be strings")


def check_targets(targets: Any, key: str, errors: list[str]) -> None:
    """Validate a non-empty list of ``{channel_id, account_id}`` dicts."""
    if not isinstance(targets, list):
        errors.append(f"{key} must be an array")
    elif not targets:
        errors.append(f"{key} cannot be empty")
    else:
        for i, target in enumerate(targets):
            if not isinstance(target, dict) or not target.get("channel_id"):
                errors.append(f"{key}[{i}].channel_id is required")
            if not isinstance(target, dict) or not target.get("account_id"):
                errors.append(f"{key}[{i}].account_id is required")


def time_of_day(now: datetime) -> str:
    return f"{now.hour:02d}:{now.minute:02d}"
