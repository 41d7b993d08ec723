"""Shared fixtures: a controllable clock and workspace roots under tmp_path."""

from __future__ import annotations

import pytest

# 2024-01-02 03:04:05 UTC
START_MS = 1_704_164_645_000


class FakeClock:
    """Callable clock whose time only moves when a test advances it."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def groups_root(tmp_path):
    return tmp_path / "groups"


@pytest.fixture
def agent_root(tmp_path):
    return tmp_path / "home"


@pytest.fixture
def policy_ctx():
    """Factory for a PolicyContext bound to one policy type and config."""
    from openclaw.channels.policies import ChannelBinding, MessageContext, PolicyConfig, PolicyContext

    def make(
        policy_type: str,
        config: dict | None = None,
        content: str = "hello",
        sender: str | None = "user-1",
        channel_id: str = "telegram",
        account_id: str = "bot-1",
        to: str | None = "chat-1",
        timestamp: int = START_MS,
    ) -> PolicyContext:
        binding = ChannelBinding(
            id=f"{channel_id}-{account_id}",
            channel_id=channel_id,
            account_id=account_id,
            policy=PolicyConfig(type=policy_type, config=dict(config or {})),
        )
        message = MessageContext(
            message_id="msg-1",
            channel_id=channel_id,
            account_id=account_id,
            content=content,
            sender=sender,
            to=to,
            timestamp=timestamp,
        )
        return PolicyContext(
            message=message,
            agent_id="main",
            channel_id=channel_id,
            account_id=account_id,
            binding=binding,
        )

    return make
