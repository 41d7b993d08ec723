"""
Access policies — decide whether a message may reach the agent at all.

- private: only listed users may talk to the agent
- filter:  sender allow/deny lists, keyword rules and a daily time window
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

from openclaw.channels.policies.base import PolicyHandler, check_string_list, time_of_day
from openclaw.channels.policies.types import (
    PolicyContext,
    PolicyResult,
    RouteTarget,
    ValidationResult,
)


class PrivatePolicyHandler(PolicyHandler):
    type = "private"

    async def process(self, ctx: PolicyContext) -> PolicyResult:
        config = self._config(ctx)
        sender = ctx.message.sender
        # Outbound messages are never restricted
        if not sender:
            return PolicyResult(allow=True)
        if sender in config.get("allowed_users", []):
            return PolicyResult(allow=True)
        return PolicyResult(
            allow=False,
            reason="User not authorized for this private channel",
            auto_reply=config.get("unauthorized_reply") or "This is a private channel. Access denied.",
        )

    async def validate(self, config: dict[str, Any] | None) -> ValidationResult:
        if config is None:
            return ValidationResult(False, ["Config is required"])
        errors: list[str] = []
        check_string_list(config, "allowed_users", errors)
        reply = config.get("unauthorized_reply")
        if reply and not isinstance(reply, str):
            errors.append("unauthorized_reply must be a string")
        return ValidationResult.from_errors(errors)


_FILTER_ACTIONS = ("drop", "forward", "archive", "notify")


class FilterPolicyHandler(PolicyHandler):
    type = "filter"

    def __init__(self, now: Callable[[], datetime] = datetime.now) -> None:
        self._now = now

    async def process(self, ctx: PolicyContext) -> PolicyResult:
        config = self._config(ctx)
        sender = ctx.message.sender
        content = ctx.message.content or ""

        if sender:
            deny = config.get("deny_senders")
            if deny and sender in deny:
                return self._filtered(config, "Sender is in deny list")
            allow = config.get("allow_senders")
            if allow is not None and sender not in allow:
                return self._filtered(config, "Sender is not in allow list")

        reason = self._check_keywords(content, config)
        if reason:
            return self._filtered(config, reason)

        window = config.get("time_range")
        if window:
            current = time_of_day(self._now())
            if current < window["start"] or current > window["end"]:
                return self._filtered(config, "Outside of allowed time range")

        return PolicyResult(allow=True)

    @staticmethod
    def _check_keywords(content: str, config: dict[str, Any]) -> str | None:
        lower = content.lower()
        deny = config.get("deny_keywords") or []
        if any(k.lower() in lower for k in deny):
            return "Contains denied keyword"

        allow = config.get("allow_keywords") or []
        if allow:
            if config.get("match_mode", "any") == "all":
                if not all(k.lower() in lower for k in allow):
                    return "Does not match all required keywords"
            elif not any(k.lower() in lower for k in allow):
                return "Does not match any allowed keyword"
        return None

    @staticmethod
    def _filtered(config: dict[str, Any], reason: str) -> PolicyResult:
        action = config.get("on_filtered_action") or "drop"
        if action == "forward":
            target = config.get("forward_to")
            if target:
                return PolicyResult(
                    allow=False,
                    reason=f"Message filtered: {reason}",
                    route_to=[RouteTarget(target["channel_id"], target["account_id"])],
                )
            return PolicyResult(
                allow=False, reason=f"Message filtered: {reason} (no forward target configured)"
            )
        if action == "archive":
            return PolicyResult(allow=False, reason=f"Message filtered and archived: {reason}")
        if action == "notify":
            return PolicyResult(
                allow=False,
                reason=f"Message filtered: {reason}",
                metadata={"notify_required": True},
            )
        return PolicyResult(allow=False, reason=f"Message filtered: {reason}")

    async def validate(self, config: dict[str, Any] | None) -> ValidationResult:
        if config is None:
            return ValidationResult(False, ["Config is required"])
        errors: list[str] = []
        for key in ("allow_keywords", "deny_keywords", "allow_senders", "deny_senders"):
            check_string_list(config, key, errors, required=False)
        mode = config.get("match_mode")
        if mode and mode not in ("all", "any"):
            errors.append("match_mode must be 'all' or 'any'")
        action = config.get("on_filtered_action")
        if action and action not in _FILTER_ACTIONS:
            errors.append(f"on_filtered_action must be one of: {', '.join(_FILTER_ACTIONS)}")
        if action == "forward" and not config.get("forward_to"):
            errors.append("forward_to is required when on_filtered_action is 'forward'")
        return ValidationResult.from_errors(errors)
