import random
from datetime import datetime

import pytest

from openclaw.channels.policies import (
    BroadcastPolicyHandler,
    ForwardPolicyHandler,
    LoadBalancePolicyHandler,
    ScheduledPolicyHandler,
    SmartRoutePolicyHandler,
)
from openclaw.channels.policies.routing import analyze_sentiment


def fixed_now(*args):
    """2024-01-02 is a Tuesday; 2024-01-06 a Saturday."""
    def now(tz=None):
        return datetime(*args, tzinfo=tz)
    return now


# ---------------------------------------------------------------------------
# load-balance
# ---------------------------------------------------------------------------

async def test_round_robin_routes_away_from_current_account(policy_ctx):
    handler = LoadBalancePolicyHandler()
    config = {"account_ids": ["bot-1", "bot-2"], "algorithm": "round-robin"}

    first = await handler.process(policy_ctx("load-balance", config))
    assert first.allow                            # bot-1 is this binding's own account
    second = await handler.process(policy_ctx("load-balance", config))
    assert not second.allow
    assert [(t.account_id, t.to) for t in second.route_to] == [("bot-2", "chat-1")]


async def test_least_load_skips_unhealthy(policy_ctx):
    handler = LoadBalancePolicyHandler()
    config = {"account_ids": ["a", "b", "c"], "algorithm": "least-load"}
    binding = "telegram-bot-1"

    await handler.process(policy_ctx("load-balance", config))          # a
    handler.update_account_health(binding, "b", False)
    result = await handler.process(policy_ctx("load-balance", config))
    assert result.route_to[0].account_id == "c"
    assert {s.account_id: s.load_count for s in handler.get_account_states(binding)} == {"a": 1, "b": 0, "c": 1}

    for account in ("a", "c"):
        handler.update_account_health(binding, account, False)
    assert (await handler.process(policy_ctx("load-balance", config))).reason.startswith("No healthy account")


async def test_random_uses_injected_rng(policy_ctx):
    handler = LoadBalancePolicyHandler(rng=random.Random(7))
    config = {"account_ids": ["x", "y"], "algorithm": "random"}
    picks = {(await handler.process(policy_ctx("load-balance", config))).route_to[0].account_id for _ in range(20)}
    assert picks <= {"x", "y"}


async def test_load_balance_validation():
    handler = LoadBalancePolicyHandler()
    assert (await handler.validate({"account_ids": ["a", "b"], "algorithm": "random"})).valid
    result = await handler.validate({"account_ids": ["a"], "algorithm": "fastest",
                                     "health_check": {"enabled": True, "interval": 0}})
    assert "account_ids must contain at least 2 accounts" in result.errors
    assert "health_check.interval must be a positive number" in result.errors


# ---------------------------------------------------------------------------
# scheduled
# ---------------------------------------------------------------------------

HOURS = {"working_hours": {"weekdays": {"start": "09:00", "end": "18:00"}},
         "auto_reply": "We are closed", "forward_to": {"channel_id": "email", "account_id": "support"}}


async def test_scheduled_inside_working_hours(policy_ctx):
    handler = ScheduledPolicyHandler(now=fixed_now(2024, 1, 2, 10, 0))
    assert (await handler.process(policy_ctx("scheduled", HOURS))).allow


async def test_scheduled_outside_hours_replies_and_forwards(policy_ctx):
    handler = ScheduledPolicyHandler(now=fixed_now(2024, 1, 2, 19, 30))
    result = await handler.process(policy_ctx("scheduled", HOURS))
    assert not result.allow
    assert result.auto_reply == "We are closed"
    assert result.route_to[0].channel_id == "email"


async def test_scheduled_weekends_and_holidays():
    saturday = ScheduledPolicyHandler(now=fixed_now(2024, 1, 6, 10, 0))
    assert not saturday.is_working_time(HOURS)
    with_weekend = {"working_hours": {**HOURS["working_hours"], "weekends": {"start": "10:00", "end": "12:00"}}}
    assert saturday.is_working_time(with_weekend)

    tuesday = ScheduledPolicyHandler(now=fixed_now(2024, 1, 2, 10, 0))
    assert not tuesday.is_working_time({**HOURS, "holidays": ["2024-01-02"]})


async def test_scheduled_passes_timezone():
    seen = []

    def now(tz=None):
        seen.append(tz)
        return datetime(2024, 1, 2, 10, 0, tzinfo=tz)

    ScheduledPolicyHandler(now=now).is_working_time({**HOURS, "timezone": "Asia/Shanghai"})
    assert str(seen[0]) == "Asia/Shanghai"


async def test_scheduled_validation():
    result = await ScheduledPolicyHandler().validate(
        {"working_hours": {"weekdays": {"start": "9:00", "end": "24:00"}}})
    assert result.errors == [
        "working_hours.weekdays.start must be in HH:mm format",
        "working_hours.weekdays.end must be in HH:mm format",
    ]


@pytest.mark.parametrize("tz,errors", [
    ("Asia/Shanghai", []),
    ("Mars/Olympus", ["Unknown timezone: Mars/Olympus"]),
    (8, ["timezone must be a string"]),
])
async def test_scheduled_validates_timezone(tz, errors):
    result = await ScheduledPolicyHandler().validate({"timezone": tz})
    assert result.errors == errors


# ---------------------------------------------------------------------------
# forward / broadcast
# ---------------------------------------------------------------------------

TARGETS = [{"channel_id": "slack", "account_id": "ops", "to": "#alerts"},
           {"channel_id": "email", "account_id": "oncall"}]


async def test_forward_matching_messages(policy_ctx):
    handler = ForwardPolicyHandler()
    config = {"target_channels": TARGETS, "filter_keywords": ["urgent"], "message_prefix": "[FWD] "}

    assert (await handler.process(policy_ctx("forward", config, content="lunch?"))).allow
    result = await handler.process(policy_ctx("forward", config, content="URGENT: db down"))
    assert not result.allow
    assert [(t.channel_id, t.to) for t in result.route_to] == [("slack", "#alerts"), ("email", None)]
    assert result.transformed_message.content == "[FWD] URGENT: db down"
    assert result.transformed_message.metadata["original_channel"] == "telegram"


async def test_forward_validation():
    result = await ForwardPolicyHandler().validate({"target_channels": [{"channel_id": "x"}], "delay_ms": -5})
    assert "target_channels[0].account_id is required" in result.errors
    assert "delay_ms must be non-negative" in result.errors


async def test_broadcast_metadata(policy_ctx, clock):
    handler = BroadcastPolicyHandler(clock=clock)
    config = {"target_channels": TARGETS, "concurrent": False, "retry_count": 2, "format_conversion": True}
    result = await handler.process(policy_ctx("broadcast", config))

    assert [t.to for t in result.route_to] == [None, None]
    assert result.metadata == {"broadcast": True, "concurrent": False, "interval_ms": 0,
                               "retry_count": 2, "total_targets": 2}
    assert result.transformed_message.metadata["broadcast_time"] == clock.now


# ---------------------------------------------------------------------------
# smart-route
# ---------------------------------------------------------------------------

def test_sentiment():
    assert analyze_sentiment("Thanks, great job") == "positive"
    assert analyze_sentiment("我要投诉，太失望了") == "negative"
    assert analyze_sentiment("what time is it") == "neutral"


ROUTES = {
    "routing_rules": [
        {"name": "complaints", "condition": {"sentiment": "negative"},
         "target_channel": {"channel_id": "support", "account_id": "tier2"}},
        {"name": "long", "condition": {"length_range": {"min": 50}},
         "target_channel": {"channel_id": "email", "account_id": "inbox"}},
    ],
    "default_target": {"channel_id": "slack", "account_id": "general"},
}


async def test_smart_route_first_match_wins(policy_ctx):
    handler = SmartRoutePolicyHandler()
    result = await handler.process(policy_ctx("smart-route", ROUTES, content="terrible service " * 5))
    assert result.metadata["routing_rule"] == "complaints"
    assert result.route_to[0].account_id == "tier2"

    long = await handler.process(policy_ctx("smart-route", ROUTES, content="x" * 60))
    assert long.reason == "Routed by rule: long"

    default = await handler.process(policy_ctx("smart-route", ROUTES, content="hi"))
    assert default.metadata == {"routing_rule": "default"}


async def test_smart_route_without_default_passes(policy_ctx):
    config = {"routing_rules": ROUTES["routing_rules"]}
    result = await SmartRoutePolicyHandler().process(policy_ctx("smart-route", config, content="hi"))
    assert result.allow
    assert result.metadata == {"routing_rule": "none"}


async def test_smart_route_validation():
    result = await SmartRoutePolicyHandler().validate({"routing_rules": [
        {"name": "x", "condition": {"sentiment": "angry"}, "target_channel": {"channel_id": "a"}},
    ]})
    assert "routing_rules[0].target_channel.account_id is required" in result.errors
    assert "routing_rules[0].condition.sentiment must be one of: positive, negative, neutral" in result.errors
