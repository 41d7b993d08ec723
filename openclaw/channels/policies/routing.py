"""
Routing policies — send a message somewhere other than (or besides) the agent.

- load-balance: spread traffic over several accounts of one channel
- scheduled:    only accept messages inside working hours
- forward:      copy matching messages to other channels
- broadcast:    fan a message out to many channels
- smart-route:  first matching rule picks the target channel
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from openclaw.channels.policies.base import (
    PolicyHandler,
    check_string_list,
    check_targets,
    is_number,
    is_positive_number,
    time_of_day,
)
from openclaw.channels.policies.types import (
    MessageContext,
    PolicyContext,
    PolicyResult,
    RouteTarget,
    TransformedMessage,
    ValidationResult,
)
from openclaw.clock import Clock, now_ms


# ---------------------------------------------------------------------------
# load-balance
# ---------------------------------------------------------------------------

@dataclass
class AccountState:
    account_id: str
    load_count: int = 0
    last_used: int = 0
    healthy: bool = True


_ALGORITHMS = ("round-robin", "random", "least-load")


class LoadBalancePolicyHandler(PolicyHandler):
    type = "load-balance"

    def __init__(self, clock: Clock = now_ms, rng: random.Random | None = None) -> None:
        self._clock = clock
        self._rng = rng or random.Random()
        self._states: dict[str, dict[str, AccountState]] = {}
        self._rr_index: dict[str, int] = {}

    async def process(self, ctx: PolicyContext) -> PolicyResult:
        config = self._config(ctx)
        binding_id = ctx.binding.id
        if binding_id not in self._states:
            self._states[binding_id] = {a: AccountState(a) for a in config.get("account_ids", [])}

        target = self._select(binding_id, config.get("algorithm", "round-robin"))
        if target is None:
            return PolicyResult(allow=False, reason="No healthy account available for load balancing")
        if target == ctx.account_id:
            return PolicyResult(allow=True)
        return PolicyResult(
            allow=False,
            reason=f"Load balancing - routing to account {target}",
            route_to=[RouteTarget(ctx.channel_id, target, ctx.message.to)],
        )

    def _select(self, binding_id: str, algorithm: str) -> str | None:
        healthy = [s for s in self._states.get(binding_id, {}).values() if s.healthy]
        if not healthy:
            return None

        if algorithm == "random":
            chosen = healthy[self._rng.randrange(len(healthy))]
        elif algorithm == "least-load":
            chosen = min(healthy, key=lambda s: s.load_count)
        else:
            index = self._rr_index.get(binding_id, 0)
            chosen = healthy[index % len(healthy)]
            self._rr_index[binding_id] = (index + 1) % len(healthy)

        chosen.load_count += 1
        chosen.last_used = self._clock()
        return chosen.account_id

    def update_account_health(self, binding_id: str, account_id: str, healthy: bool) -> None:
        state = self._states.get(binding_id, {}).get(account_id)
        if state:
            state.healthy = healthy

    def reset_load_counts(self, binding_id: str) -> None:
        for state in self._states.get(binding_id, {}).values():
            state.load_count = 0

    def get_account_states(self, binding_id: str) -> list[AccountState]:
        return list(self._states.get(binding_id, {}).values())

    async def validate(self, config: dict[str, Any] | None) -> ValidationResult:
        if config is None:
            return ValidationResult(False, ["Config is required"])
        errors: list[str] = []
        ids = config.get("account_ids")
        if not isinstance(ids, list):
            errors.append("account_ids must be an array")
        elif len(ids) < 2:
            errors.append("account_ids must contain at least 2 accounts")
        elif not all(isinstance(a, str) for a in ids):
            errors.append("All account_ids must be strings")
        if config.get("algorithm") not in _ALGORITHMS:
            errors.append(f"algorithm must be one of: {', '.join(_ALGORITHMS)}")

        check = config.get("health_check")
        if check is not None:
            if not isinstance(check, dict):
                errors.append("health_check must be an object")
            else:
                if not isinstance(check.get("enabled"), bool):
                    errors.append("health_check.enabled must be a boolean")
                if check.get("enabled"):
                    for key in ("interval", "timeout"):
                        if not is_positive_number(check.get(key)):
                            errors.append(f"health_check.{key} must be a positive number")
        return ValidationResult.from_errors(errors)


# ---------------------------------------------------------------------------
# scheduled
# ---------------------------------------------------------------------------

_HHMM = re.compile(r"^([01][0-9]|2[0-3]):[0-5][0-9]$")


class ScheduledPolicyHandler(PolicyHandler):
    """Accepts messages during working hours; ``timezone`` defaults to local time."""

    type = "scheduled"

    def __init__(self, now: Callable[..., datetime] = datetime.now) -> None:
        self._now = now

    async def process(self, ctx: PolicyContext) -> PolicyResult:
        config = self._config(ctx)
        if self.is_working_time(config):
            return PolicyResult(allow=True)

        result = PolicyResult(allow=False, reason="Outside of working hours")
        if config.get("auto_reply"):
            result.auto_reply = config["auto_reply"]
        target = config.get("forward_to")
        if target:
            result.route_to = [RouteTarget(target["channel_id"], target["account_id"])]
        return result

    def is_working_time(self, config: dict[str, Any]) -> bool:
        tz = config.get("timezone")
        now = self._now(ZoneInfo(tz)) if tz else self._now()

        if now.strftime("%Y-%m-%d") in (config.get("holidays") or []):
            return False
        hours = config.get("working_hours")
        if not hours:
            return True

        current = time_of_day(now)
        if now.weekday() >= 5:
            span = hours.get("weekends")
            return bool(span) and span["start"] <= current <= span["end"]
        span = hours.get("weekdays")
        return not span or span["start"] <= current <= span["end"]

    async def validate(self, config: dict[str, Any] | None) -> ValidationResult:
        if config is None:
            return ValidationResult(False, ["Config is required"])
        errors: list[str] = []
        if "timezone" in config:
            tz = config["timezone"]
            if not isinstance(tz, str):
                errors.append("timezone must be a string")
            else:
                try:
                    ZoneInfo(tz)
                except (ZoneInfoNotFoundError, ValueError):
                    errors.append(f"Unknown timezone: {tz}")
        hours = config.get("working_hours") or {}
        for period in ("weekdays", "weekends"):
            span = hours.get(period)
            if span:
                for edge in ("start", "end"):
                    if not _HHMM.match(str(span.get(edge, ""))):
                        errors.append(f"working_hours.{period}.{edge} must be in HH:mm format")
        if "holidays" in config and not isinstance(config["holidays"], list):
            errors.append("holidays must be an array")
        if "auto_reply" in config and not isinstance(config["auto_reply"], str):
            errors.append("auto_reply must be a string")
        return ValidationResult.from_errors(errors)


# ---------------------------------------------------------------------------
# forward / broadcast
# ---------------------------------------------------------------------------

def _targets(config: dict[str, Any], keep_to: bool = True) -> list[RouteTarget]:
    return [
        RouteTarget(t["channel_id"], t["account_id"], t.get("to") if keep_to else None)
        for t in config.get("target_channels", [])
    ]


def _check_flag(config: dict[str, Any], key: str, errors: list[str]) -> None:
    if key in config and not isinstance(config[key], bool):
        errors.append(f"{key} must be a boolean")


def _check_non_negative(config: dict[str, Any], key: str, errors: list[str]) -> None:
    if key not in config:
        return
    if not is_number(config[key]):
        errors.append(f"{key} must be a number")
    elif config[key] < 0:
        errors.append(f"{key} must be non-negative")


class ForwardPolicyHandler(PolicyHandler):
    type = "forward"

    async def process(self, ctx: PolicyContext) -> PolicyResult:
        config = self._config(ctx)
        msg = ctx.message
        content = msg.content or ""

        keywords = config.get("filter_keywords") or []
        if keywords and not any(k.lower() in content.lower() for k in keywords):
            return PolicyResult(allow=True)

        prefix = config.get("message_prefix")
        result = PolicyResult(
            allow=False,
            reason="Message forwarded to other channels",
            route_to=_targets(config),
        )
        if config.get("format_conversion") or prefix:
            result.transformed_message = TransformedMessage(
                content=f"{prefix or ''}{content}",
                type=msg.type,
                attachments=list(msg.attachments),
                metadata={
                    **msg.metadata,
                    "forwarded": True,
                    "original_channel": ctx.channel_id,
                    "original_account": ctx.account_id,
                },
            )
        if config.get("delay_ms"):
            result.metadata["delay_ms"] = config["delay_ms"]
        return result

    async def validate(self, config: dict[str, Any] | None) -> ValidationResult:
        if config is None:
            return ValidationResult(False, ["Config is required"])
        errors: list[str] = []
        check_targets(config.get("target_channels"), "target_channels", errors)
        check_string_list(config, "filter_keywords", errors, required=False)
        if "message_prefix" in config and not isinstance(config["message_prefix"], str):
            errors.append("message_prefix must be a string")
        _check_flag(config, "format_conversion", errors)
        _check_non_negative(config, "delay_ms", errors)
        return ValidationResult.from_errors(errors)


class BroadcastPolicyHandler(PolicyHandler):
    type = "broadcast"

    def __init__(self, clock: Clock = now_ms) -> None:
        self._clock = clock

    async def process(self, ctx: PolicyContext) -> PolicyResult:
        config = self._config(ctx)
        msg = ctx.message
        targets = _targets(config, keep_to=False)
        result = PolicyResult(
            allow=False,
            reason="Message broadcasted to multiple channels",
            route_to=targets,
            metadata={
                "broadcast": True,
                "concurrent": config.get("concurrent") is not False,
                "interval_ms": config.get("interval_ms") or 0,
                "retry_count": config.get("retry_count") or 0,
                "total_targets": len(targets),
            },
        )
        if config.get("format_conversion"):
            result.transformed_message = TransformedMessage(
                content=msg.content,
                type=msg.type,
                attachments=list(msg.attachments),
                metadata={
                    **msg.metadata,
                    "broadcasted": True,
                    "original_channel": ctx.channel_id,
                    "original_account": ctx.account_id,
                    "broadcast_time": self._clock(),
                },
            )
        return result

    async def validate(self, config: dict[str, Any] | None) -> ValidationResult:
        if config is None:
            return ValidationResult(False, ["Config is required"])
        errors: list[str] = []
        check_targets(config.get("target_channels"), "target_channels", errors)
        _check_flag(config, "concurrent", errors)
        _check_non_negative(config, "interval_ms", errors)
        _check_non_negative(config, "retry_count", errors)
        _check_flag(config, "format_conversion", errors)
        return ValidationResult.from_errors(errors)


# ---------------------------------------------------------------------------
# smart-route
# ---------------------------------------------------------------------------

POSITIVE_WORDS = ("好", "棒", "赞", "优秀", "喜欢", "满意", "感谢", "谢谢", "great", "thanks", "love")
NEGATIVE_WORDS = ("差", "烂", "糟", "失望", "讨厌", "不满", "抱怨", "投诉", "terrible", "angry", "complaint")

_SENTIMENTS = ("positive", "negative", "neutral")
_SENDER_TYPES = ("human", "bot", "system")


def analyze_sentiment(content: str) -> str:
    """Naive word-count sentiment: positive, negative or neutral."""
    lower = content.lower()
    positive = sum(1 for w in POSITIVE_WORDS if w in lower)
    negative = sum(1 for w in NEGATIVE_WORDS if w in lower)
    if positive > negative:
        return "positive"
    if negative > positive:
        return "negative"
    return "neutral"


class SmartRoutePolicyHandler(PolicyHandler):
    type = "smart-route"

    async def process(self, ctx: PolicyContext) -> PolicyResult:
        config = self._config(ctx)
        msg = ctx.message
        content = msg.content or ""

        for rule in config.get("routing_rules", []):
            if self._matches(msg, content, rule.get("condition") or {}):
                target = rule["target_channel"]
                return PolicyResult(
                    allow=False,
                    reason=f"Routed by rule: {rule['name']}",
                    route_to=[RouteTarget(target["channel_id"], target["account_id"])],
                    metadata={"routing_rule": rule["name"], "matched_condition": rule.get("condition")},
                )

        default = config.get("default_target")
        if default:
            return PolicyResult(
                allow=False,
                reason="Routed to default target (no rules matched)",
                route_to=[RouteTarget(default["channel_id"], default["account_id"])],
                metadata={"routing_rule": "default"},
            )
        return PolicyResult(allow=True, metadata={"routing_rule": "none"})

    @staticmethod
    def _matches(msg: MessageContext, content: str, condition: dict[str, Any]) -> bool:
        keywords = condition.get("keywords") or []
        if keywords and not any(k.lower() in content.lower() for k in keywords):
            return False
        sentiment = condition.get("sentiment")
        if sentiment and analyze_sentiment(content) != sentiment:
            return False
        bounds = condition.get("length_range")
        if bounds:
            if bounds.get("min") is not None and len(content) < bounds["min"]:
                return False
            if bounds.get("max") is not None and len(content) > bounds["max"]:
                return False
        sender_type = condition.get("sender_type")
        if sender_type and msg.metadata.get("sender_type", "human") != sender_type:
            return False
        return True

    async def validate(self, config: dict[str, Any] | None) -> ValidationResult:
        if config is None:
            return ValidationResult(False, ["Config is required"])
        errors: list[str] = []
        rules = config.get("routing_rules")
        if not isinstance(rules, list):
            errors.append("routing_rules must be an array")
        elif not rules:
            errors.append("routing_rules cannot be empty")
        else:
            for i, rule in enumerate(rules):
                self._validate_rule(i, rule, errors)

        default = config.get("default_target")
        if default:
            for key in ("channel_id", "account_id"):
                if not default.get(key):
                    errors.append(f"default_target.{key} is required")
        return ValidationResult.from_errors(errors)

    @staticmethod
    def _validate_rule(i: int, rule: dict[str, Any], errors: list[str]) -> None:
        prefix = f"routing_rules[{i}]"
        if not rule.get("name"):
            errors.append(f"{prefix}.name is required")
        condition = rule.get("condition")
        if not condition:
            errors.append(f"{prefix}.condition is required")
        target = rule.get("target_channel")
        if not target:
            errors.append(f"{prefix}.target_channel is required")
        else:
            for key in ("channel_id", "account_id"):
                if not target.get(key):
                    errors.append(f"{prefix}.target_channel.{key} is required")
        if condition:
            if condition.get("sentiment") and condition["sentiment"] not in _SENTIMENTS:
                errors.append(f"{prefix}.condition.sentiment must be one of: {', '.join(_SENTIMENTS)}")
            if condition.get("sender_type") and condition["sender_type"] not in _SENDER_TYPES:
                errors.append(f"{prefix}.condition.sender_type must be one of: {', '.join(_SENDER_TYPES)}")
