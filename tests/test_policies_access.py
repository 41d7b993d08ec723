import json
from datetime import datetime

import pytest

from openclaw.channels.policies import (
    EchoPolicyHandler,
    FilterPolicyHandler,
    ListenOnlyPolicyHandler,
    MonitorPolicyHandler,
    PrivatePolicyHandler,
)
from openclaw.channels.policies.base import iso_timestamp
from openclaw.errors import ValidationError


def test_iso_timestamp():
    assert iso_timestamp(1_704_164_645_123) == "2024-01-02T03:04:05.123Z"


# ---------------------------------------------------------------------------
# private
# ---------------------------------------------------------------------------

async def test_private_allows_listed_users(policy_ctx):
    handler = PrivatePolicyHandler()
    config = {"allowed_users": ["user-1"]}
    assert (await handler.process(policy_ctx("private", config))).allow

    denied = await handler.process(policy_ctx("private", config, sender="stranger"))
    assert not denied.allow
    assert denied.auto_reply == "This is a private channel. Access denied."


async def test_private_never_restricts_outbound(policy_ctx):
    result = await PrivatePolicyHandler().process(policy_ctx("private", {"allowed_users": []}, sender=None))
    assert result.allow


async def test_private_custom_reply_and_validation(policy_ctx):
    handler = PrivatePolicyHandler()
    result = await handler.process(
        policy_ctx("private", {"allowed_users": ["x"], "unauthorized_reply": "Go away"}))
    assert result.auto_reply == "Go away"

    assert (await handler.validate({"allowed_users": ["a"]})).valid
    assert (await handler.validate({"allowed_users": []})).errors == ["allowed_users cannot be empty"]
    assert not (await handler.validate(None)).valid


async def test_wrong_policy_type_raises(policy_ctx):
    with pytest.raises(ValidationError, match="Invalid policy type"):
        await PrivatePolicyHandler().process(policy_ctx("filter", {}))


# ---------------------------------------------------------------------------
# filter
# ---------------------------------------------------------------------------

async def test_filter_sender_lists(policy_ctx):
    handler = FilterPolicyHandler()
    denied = await handler.process(policy_ctx("filter", {"deny_senders": ["user-1"]}))
    assert denied.reason == "Message filtered: Sender is in deny list"

    not_allowed = await handler.process(policy_ctx("filter", {"allow_senders": ["other"]}))
    assert not_allowed.reason == "Message filtered: Sender is not in allow list"


async def test_filter_keywords(policy_ctx):
    handler = FilterPolicyHandler()
    assert not (await handler.process(policy_ctx("filter", {"deny_keywords": ["SPAM"]}, content="buy spam"))).allow

    config = {"allow_keywords": ["deploy", "prod"], "match_mode": "all"}
    assert (await handler.process(policy_ctx("filter", config, content="Deploy to PROD"))).allow
    partial = await handler.process(policy_ctx("filter", config, content="deploy staging"))
    assert partial.reason == "Message filtered: Does not match all required keywords"

    any_mode = {"allow_keywords": ["deploy", "prod"]}
    assert (await handler.process(policy_ctx("filter", any_mode, content="deploy staging"))).allow


async def test_filter_time_range(policy_ctx):
    config = {"time_range": {"start": "09:00", "end": "18:00"}}
    day = FilterPolicyHandler(now=lambda: datetime(2024, 1, 2, 10, 30))
    night = FilterPolicyHandler(now=lambda: datetime(2024, 1, 2, 22, 0))
    assert (await day.process(policy_ctx("filter", config))).allow
    result = await night.process(policy_ctx("filter", config))
    assert result.reason == "Message filtered: Outside of allowed time range"


async def test_filter_actions(policy_ctx):
    handler = FilterPolicyHandler()
    base = {"deny_keywords": ["bad"]}

    forward = await handler.process(policy_ctx("filter", {
        **base, "on_filtered_action": "forward",
        "forward_to": {"channel_id": "slack", "account_id": "audit"},
    }, content="bad"))
    assert [(t.channel_id, t.account_id) for t in forward.route_to] == [("slack", "audit")]

    notify = await handler.process(policy_ctx("filter", {**base, "on_filtered_action": "notify"}, content="bad"))
    assert notify.metadata == {"notify_required": True}

    archive = await handler.process(policy_ctx("filter", {**base, "on_filtered_action": "archive"}, content="bad"))
    assert archive.reason.startswith("Message filtered and archived")


async def test_filter_validation():
    handler = FilterPolicyHandler()
    assert (await handler.validate({})).valid
    result = await handler.validate({"match_mode": "some", "on_filtered_action": "forward"})
    assert "match_mode must be 'all' or 'any'" in result.errors
    assert "forward_to is required when on_filtered_action is 'forward'" in result.errors


# ---------------------------------------------------------------------------
# monitor / listen-only / echo
# ---------------------------------------------------------------------------

async def test_monitor_prefixes_source(policy_ctx, tmp_path):
    log = tmp_path / "logs" / "monitor.jsonl"
    config = {"monitor_channels": ["telegram"], "enable_logging": True, "log_path": str(log)}
    result = await MonitorPolicyHandler().process(policy_ctx("monitor", config, content="hi"))

    assert result.allow
    assert result.transformed_message.content == "[from telegram:bot-1:user-1] hi"
    assert result.transformed_message.metadata["monitor_source"]["original_content"] == "hi"
    record = json.loads(log.read_text().splitlines()[0])
    assert record["from"] == "user-1"
    assert record["timestamp"] == "2024-01-02T03:04:05.000Z"


async def test_monitor_ignores_unwatched_channels(policy_ctx):
    result = await MonitorPolicyHandler().process(policy_ctx("monitor", {"monitor_channels": ["slack"]}))
    assert result.allow
    assert result.transformed_message is None


async def test_listen_only_logs_and_stops(policy_ctx, tmp_path):
    log = tmp_path / "listen.jsonl"
    handler = ListenOnlyPolicyHandler()
    result = await handler.process(policy_ctx("listen-only", {"enable_logging": True, "log_path": str(log)}))
    assert not result.allow
    assert json.loads(log.read_text())["content"] == "hello"
    assert (await handler.validate({"enable_logging": True, "log_path": "x"})).valid
    assert not (await handler.validate({"enable_logging": "yes", "log_path": " "})).valid


async def test_echo_writes_level_prefix(policy_ctx, tmp_path):
    log = tmp_path / "echo.log"
    result = await EchoPolicyHandler().process(policy_ctx("echo", {"log_level": "warn", "log_path": str(log)}))
    assert not result.allow
    assert log.read_text().startswith("[WARN] 2024-01-02T03:04:05.000Z {")
    assert not (await EchoPolicyHandler().validate({"log_level": "loud", "log_path": "x"})).valid
