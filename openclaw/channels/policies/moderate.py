"""
Moderation policy — outbound messages wait for a human reviewer.

Design:
- Inbound messages always pass; outbound ones are held unless auto-approve
  rules let them through
- Held messages live in a per-binding pending map keyed by message id
- An optional timeout applies the default action (reject unless configured)
  through an asyncio task that is cancelled on early review
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from loguru import logger

from openclaw.channels.policies.base import PolicyHandler, check_string_list, is_positive_number
from openclaw.channels.policies.types import (
    MessageContext,
    PolicyContext,
    PolicyResult,
    ValidationResult,
)
from openclaw.clock import Clock, now_ms


@dataclass
class PendingMessage:
    id: str
    message: MessageContext
    context: PolicyContext
    submitted_at: int
    status: str = "pending"             # pending | approved | rejected
    reviewed_by: str | None = None
    reviewed_at: int | None = None
    review_comment: str | None = None


NotifyCallback = Callable[[PendingMessage, list[str]], Awaitable[None]]
ActionCallback = Callable[[PendingMessage, bool], Awaitable[None]]


class ModeratePolicyHandler(PolicyHandler):
    """
    Usage::

        handler = ModeratePolicyHandler()
        handler.set_notify_callback(ping_moderators)
        handler.set_action_callback(send_if_approved)
        ...
        await handler.approve(binding_id, message_id, reviewed_by="alice")
    """

    type = "moderate"

    def __init__(self, clock: Clock = now_ms) -> None:
        self._clock = clock
        self._pending: dict[str, dict[str, PendingMessage]] = {}
        self._timers: dict[tuple[str, str], asyncio.Task] = {}
        self._notify: NotifyCallback | None = None
        self._on_action: ActionCallback | None = None

    def set_notify_callback(self, callback: NotifyCallback) -> None:
        self._notify = callback

    def set_action_callback(self, callback: ActionCallback) -> None:
        self._on_action = callback

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process(self, ctx: PolicyContext) -> PolicyResult:
        config = self._config(ctx)
        msg = ctx.message
        if msg.is_inbound:
            return PolicyResult(allow=True)
        if self._should_auto_approve(msg, config):
            return PolicyResult(allow=True)

        binding_id = ctx.binding.id
        pending = PendingMessage(
            id=msg.message_id,
            message=msg,
            context=ctx,
            submitted_at=self._clock(),
        )
        self._pending.setdefault(binding_id, {})[msg.message_id] = pending
        moderators = list(config.get("moderators", []))

        if self._notify:
            await self._notify(pending, moderators)
        if config.get("timeout"):
            self._schedule_timeout(binding_id, msg.message_id, config)

        logger.info(f"[moderate] Holding {msg.message_id} on {binding_id} for review")
        return PolicyResult(
            allow=False,
            reason="Message pending moderation",
            metadata={
                "message_id": msg.message_id,
                "status": "pending",
                "moderators": moderators,
            },
        )

    @staticmethod
    def _should_auto_approve(msg: MessageContext, config: dict[str, Any]) -> bool:
        rules = config.get("auto_approve_rules")
        if rules is None:
            return False
        content = msg.content or ""

        allowed = rules.get("allowed_senders")
        if allowed is not None and msg.to not in allowed:
            return False
        max_length = rules.get("max_length")
        if max_length and len(content) > max_length:
            return False
        patterns = rules.get("allowed_patterns")
        if patterns is not None and not any(re.search(p, content) for p in patterns):
            return False

        lower = content.lower()
        if any(w.lower() in lower for w in config.get("sensitive_words") or []):
            return False
        return True

    # ------------------------------------------------------------------
    # Timeout
    # ------------------------------------------------------------------

    def _schedule_timeout(self, binding_id: str, message_id: str, config: dict[str, Any]) -> None:
        key = (binding_id, message_id)
        self._timers[key] = asyncio.create_task(
            self._expire(binding_id, message_id, config),
            name=f"moderate:{binding_id}:{message_id}",
        )

    async def _expire(self, binding_id: str, message_id: str, config: dict[str, Any]) -> None:
        await asyncio.sleep(config["timeout"])
        # Popped before review: _review() cancels any timer still registered
        self._timers.pop((binding_id, message_id), None)
        if config.get("default_action", "reject") == "approve":
            await self.approve(binding_id, message_id, "system", "Auto-approved due to timeout")
        else:
            await self.reject(binding_id, message_id, "system", "Auto-rejected due to timeout")

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    async def approve(
        self, binding_id: str, message_id: str, reviewed_by: str, comment: str | None = None
    ) -> bool:
        return await self._review(binding_id, message_id, True, reviewed_by, comment)

    async def reject(
        self, binding_id: str, message_id: str, reviewed_by: str, comment: str | None = None
    ) -> bool:
        return await self._review(binding_id, message_id, False, reviewed_by, comment)

    async def _review(
        self,
        binding_id: str,
        message_id: str,
        approved: bool,
        reviewed_by: str,
        comment: str | None,
    ) -> bool:
        messages = self._pending.get(binding_id)
        pending = messages.get(message_id) if messages else None
        if pending is None or pending.status != "pending":
            return False

        pending.status = "approved" if approved else "rejected"
        pending.reviewed_by = reviewed_by
        pending.reviewed_at = self._clock()
        pending.review_comment = comment

        timer = self._timers.pop((binding_id, message_id), None)
        if timer:
            timer.cancel()

        logger.info(f"[moderate] {message_id} {pending.status} by {reviewed_by}")
        try:
            if self._on_action:
                await self._on_action(pending, approved)
        finally:
            messages.pop(message_id, None)
        return True

    def get_pending_messages(self, binding_id: str) -> list[PendingMessage]:
        return [m for m in self._pending.get(binding_id, {}).values() if m.status == "pending"]

    def dispose(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._pending.clear()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def validate(self, config: dict[str, Any] | None) -> ValidationResult:
        if config is None:
            return ValidationResult(False, ["Config is required"])
        errors: list[str] = []
        check_string_list(config, "moderators", errors)

        rules = config.get("auto_approve_rules")
        if rules is not None:
            if not isinstance(rules, dict):
                errors.append("auto_approve_rules must be an object")
            else:
                if "allowed_senders" in rules and not isinstance(rules["allowed_senders"], list):
                    errors.append("auto_approve_rules.allowed_senders must be an array")
                if "allowed_patterns" in rules and not isinstance(rules["allowed_patterns"], list):
                    errors.append("auto_approve_rules.allowed_patterns must be an array")
                if "max_length" in rules and not is_positive_number(rules["max_length"]):
                    errors.append("auto_approve_rules.max_length must be a positive number")

        if "sensitive_words" in config and not isinstance(config["sensitive_words"], list):
            errors.append("sensitive_words must be an array")
        if "timeout" in config and not is_positive_number(config["timeout"]):
            errors.append("timeout must be a positive number")
        if "default_action" in config and config["default_action"] not in ("approve", "reject"):
            errors.append("default_action must be one of: approve, reject")
        return ValidationResult.from_errors(errors)
