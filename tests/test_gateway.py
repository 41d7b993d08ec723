import asyncio
import io

import pytest

from openclaw.channels import Channel, CLIChannel, IncomingMessage, OutgoingMessage
from openclaw.channels.policies import ChannelBinding, RouteTarget, TransformedMessage
from openclaw.errors import InvalidStateError
from openclaw.gateway import Gateway, GatewayConfig, log_messages, rate_limit


class FakeChannel(Channel):
    def __init__(self, name="cli", account_id="default"):
        super().__init__(account_id)
        self.name = name
        self.sent: list[OutgoingMessage] = []
        self.started = self.stopped = False

    async def send(self, message):
        self.sent.append(message)

    async def start(self):
        self.started = True

    async def stop(self):
        self.stopped = True


def bind(policy_type, config, channel="cli", account="default", id=None):
    return ChannelBinding.from_dict({
        "id": id or f"{channel}-{policy_type}",
        "channel_id": channel,
        "account_id": account,
        "policy": {"type": policy_type, "config": config},
    })


def make_gateway(*bindings, handler=None, **config):
    seen: list[IncomingMessage] = []

    async def echo(msg):
        seen.append(msg)
        return f"echo: {msg.text}"

    gateway = Gateway(handler=handler or echo, config=GatewayConfig(bindings=list(bindings), **config))
    channel = FakeChannel()
    gateway.add_channel(channel)
    return gateway, channel, seen


async def test_message_without_binding_reaches_agent():
    gateway, _, seen = make_gateway()
    assert await gateway.process("hello") == "echo: hello"
    assert seen[0].user_id == "user"


async def test_private_binding_blocks_and_auto_replies():
    gateway, channel, seen = make_gateway(bind("private", {"allowed_users": ["alice"]}))

    assert await gateway.process("hi", user_id="mallory") is None
    assert seen == []
    assert channel.sent[0].chat_id == "mallory"
    assert channel.sent[0].text == "This is a private channel. Access denied."

    assert await gateway.process("hi", user_id="alice") == "echo: hi"


async def test_monitor_transforms_inbound_text():
    gateway, _, seen = make_gateway(bind("monitor", {"monitor_channels": ["cli"]}))
    await gateway.process("status?", user_id="bob")
    assert seen[0].text == "[from cli:default:bob] status?"
    assert seen[0].metadata["monitor_source"]["sender_id"] == "bob"


async def test_outbound_moderation_holds_reply():
    gateway, channel, seen = make_gateway(bind("moderate", {"moderators": ["lead"]}))
    assert await gateway.process("deploy now") is None
    assert len(seen) == 1                  # inbound passed, the reply was held
    assert channel.sent == []


async def wait_for(condition, timeout=2.0):
    for _ in range(int(timeout / 0.01)):
        if condition():
            return
        await asyncio.sleep(0.01)


async def test_queued_message_reaches_agent_when_batch_drains():
    gateway, channel, seen = make_gateway(bind("queue", {
        "max_queue_size": 10, "batch_interval": 0.01, "batch_size": 5, "overflow_action": "reject",
    }))

    assert await gateway.process("status?", user_id="bob") is None
    assert (channel.sent[0].chat_id, channel.sent[0].text) == (
        "bob", "Your message has been received and will be processed shortly.",
    )

    await wait_for(lambda: len(channel.sent) > 1)
    await gateway.stop()
    assert [(m.user_id, m.text) for m in seen] == [("bob", "status?")]
    assert (channel.sent[1].chat_id, channel.sent[1].text) == ("local", "echo: status?")


async def test_moderated_reply_is_sent_only_after_approval():
    gateway, channel, _ = make_gateway(bind("moderate", {"moderators": ["lead"]}))
    moderate = gateway.executor.resolver.registry.get("moderate")

    await gateway.process("first")
    await gateway.process("second")
    first, second = moderate.get_pending_messages("cli-moderate")

    assert await moderate.reject("cli-moderate", first.id, "lead")
    assert channel.sent == []
    assert await moderate.approve("cli-moderate", second.id, "lead")
    assert [(m.chat_id, m.text) for m in channel.sent] == [("local", "echo: second")]


async def test_moderation_timeout_can_approve_and_send():
    gateway, channel, _ = make_gateway(bind("moderate", {
        "moderators": ["lead"], "timeout": 0.01, "default_action": "approve",
    }))
    assert await gateway.process("hello") is None

    await wait_for(lambda: channel.sent)
    assert [m.text for m in channel.sent] == ["echo: hello"]


async def test_forward_to_registered_account():
    gateway, _, seen = make_gateway(bind("forward", {
        "target_channels": [{"channel_id": "slack", "account_id": "ops", "to": "#alerts"}],
        "message_prefix": "[cli] ",
    }))
    slack = FakeChannel("slack", "ops")
    gateway.add_channel(slack)

    assert await gateway.process("disk full") is None
    assert seen == []
    assert [(m.chat_id, m.text) for m in slack.sent] == [("#alerts", "[cli] disk full")]


async def test_forward_to_unknown_account_is_logged_not_raised():
    gateway, _, _ = make_gateway(bind("forward", {
        "target_channels": [{"channel_id": "slack", "account_id": "missing"}],
    }))
    assert await gateway.process("x") is None


async def test_denied_channel_is_ignored():
    gateway, _, seen = make_gateway(deny_channels=["cli"])
    assert await gateway.process("hi") is None
    assert seen == []


async def test_middleware_chain_runs_in_order():
    gateway, _, _ = make_gateway()
    gateway.use(log_messages()).use(rate_limit(max_per_minute=1))

    assert await gateway.process("one") == "echo: one"
    assert await gateway.process("two") == "Rate limit exceeded. Please wait a moment."
    assert await gateway.process("three", user_id="other") == "echo: three"


async def test_agent_errors_become_replies():
    async def broken(msg):
        raise RuntimeError("model unavailable")

    gateway, _, _ = make_gateway(handler=broken)
    assert await gateway.process("hi") == "Error: model unavailable"


async def test_run_starts_and_stops_channels():
    gateway, channel, _ = make_gateway()
    await gateway.run()
    assert channel.started and channel.stopped


async def test_run_requires_a_channel():
    gateway = Gateway(handler=lambda m: None)
    with pytest.raises(InvalidStateError):
        await gateway.run()


def test_incoming_message_policy_views():
    msg = IncomingMessage("slack", "#ops", "bob", "m1", "hi", account_id="work", metadata={"k": 1})

    inbound = msg.to_context()
    assert (inbound.channel_id, inbound.account_id, inbound.sender, inbound.to) == ("slack", "work", "bob", "#ops")
    assert inbound.is_inbound
    assert IncomingMessage.from_context(inbound) == msg
    assert msg.reply_target == RouteTarget("slack", "work", "#ops")

    reply = msg.reply_context("hello")
    assert reply.message_id == "m1:reply"
    assert reply.content == "hello" and not reply.is_inbound

    changed = msg.transformed(TransformedMessage(content="HI", metadata={"x": 2}))
    assert changed.text == "HI"
    assert changed.metadata == {"k": 1, "x": 2}
    assert msg.transformed(None) is msg


def test_outgoing_message_for_target_defaults_chat():
    out = OutgoingMessage.for_target(RouteTarget("slack", "ops"), TransformedMessage(content="x"))
    assert (out.chat_id, out.account_id, out.text, out.type) == ("default", "ops", "x", "text")
    assert FakeChannel("slack", "ops").key == ("slack", "ops")


async def test_cli_channel_switches_sender(monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO("hello\n/as alice\n\nagain\n"))
    gateway, _, seen = make_gateway(bind("private", {"allowed_users": ["alice"]}))
    cli = CLIChannel(user_id="mallory")
    gateway.add_channel(cli)

    await cli.start()

    assert [(m.user_id, m.text) for m in seen] == [("alice", "again")]
    assert seen[0].message_id == "cli_default_2"
    out = capsys.readouterr().out
    assert "sending as alice" in out
    assert "Agent: echo: again" in out
