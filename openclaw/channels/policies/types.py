"""
Data shapes shared by policy handlers, the resolver and the dispatcher.

A ``MessageContext`` with a ``sender`` is inbound (user -> agent); without one
it is outbound (agent -> user, addressed by ``to``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from openclaw.clock import now_ms


@dataclass
class MessageContext:
    message_id: str
    channel_id: str
    account_id: str
    content: str = ""
    sender: str | None = None
    to: str | None = None
    type: str = "text"
    attachments: list[dict[str, Any]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: int = field(default_factory=now_ms)

    @property
    def is_inbound(self) -> bool:
        return self.sender is not None

    def log_record(self) -> dict[str, Any]:
        """Fields written to policy log files."""
        return {
            "timestamp": self.timestamp,
            "channel_id": self.channel_id,
            "account_id": self.account_id,
            "message_id": self.message_id,
            "from": self.sender,
            "to": self.to,
            "content": self.content,
            "type": self.type,
            "attachments": self.attachments,
            "metadata": self.metadata,
        }


@dataclass
class RouteTarget:
    channel_id: str
    account_id: str
    to: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RouteTarget":
        return cls(channel_id=data["channel_id"], account_id=data["account_id"], to=data.get("to"))


@dataclass
class TransformedMessage:
    content: str | None = None
    type: str | None = None
    attachments: list[dict[str, Any]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class PolicyResult:
    allow: bool
    reason: str | None = None
    auto_reply: str | None = None
    transformed_message: TransformedMessage | None = None
    route_to: list[RouteTarget] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class PolicyConfig:
    type: str
    config: dict[str, Any] = field(default_factory=dict)


@dataclass
class ChannelBinding:
    """An agent's attachment to one channel account, plus its policy."""

    id: str
    channel_id: str
    account_id: str
    policy: PolicyConfig
    agent_id: str | None = None
    enabled: bool = True
    priority: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChannelBinding":
        policy = data.get("policy") or {}
        if isinstance(policy, dict):
            policy = PolicyConfig(type=policy.get("type", ""), config=dict(policy.get("config") or {}))
        return cls(
            id=data.get("id", ""),
            channel_id=data.get("channel_id", ""),
            account_id=data.get("account_id", ""),
            policy=policy,
            agent_id=data.get("agent_id"),
            enabled=data.get("enabled", True),
            priority=data.get("priority", 0),
        )


@dataclass
class PolicyContext:
    message: MessageContext
    agent_id: str
    channel_id: str
    account_id: str
    binding: ChannelBinding
    agent_config: dict[str, Any] = field(default_factory=dict)
    gateway_context: dict[str, Any] = field(default_factory=dict)


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: list[str]) -> "ValidationResult":
        return cls(valid=not errors, errors=list(errors))
