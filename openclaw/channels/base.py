"""
Channel messages and the channel account interface.

Messages carry the account they arrived on so bindings can match on
``(channel, account)``. ``to_context`` / ``reply_context`` turn them into the
``MessageContext`` that policies see, and ``OutgoingMessage.for_target``
builds deliveries for policy side effects.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable

from openclaw.channels.policies.types import MessageContext, RouteTarget, TransformedMessage


@dataclass
class IncomingMessage:
    """A message received on one channel account."""

    channel: str                      # Channel id, e.g. "telegram", "cli"
    chat_id: str                      # Conversation the reply goes back to
    user_id: str                      # Sender
    message_id: str
    text: str
    account_id: str = "default"
    type: str = "text"
    attachments: list[dict[str, Any]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_context(cls, ctx: MessageContext) -> IncomingMessage:
        """Rebuild an inbound message held by a policy, e.g. a queued one."""
        return cls(
            channel=ctx.channel_id,
            chat_id=ctx.to or ctx.sender or "default",
            user_id=ctx.sender or "",
            message_id=ctx.message_id,
            text=ctx.content,
            account_id=ctx.account_id,
            type=ctx.type,
            attachments=list(ctx.attachments),
            metadata=dict(ctx.metadata),
        )

    @property
    def reply_target(self) -> RouteTarget:
        return RouteTarget(self.channel, self.account_id, self.chat_id)

    def to_context(self) -> MessageContext:
        """Inbound policy view of this message."""
        return MessageContext(
            message_id=self.message_id,
            channel_id=self.channel,
            account_id=self.account_id,
            content=self.text,
            sender=self.user_id,
            to=self.chat_id,
            type=self.type,
            attachments=list(self.attachments),
            metadata=dict(self.metadata),
        )

    def reply_context(self, text: str) -> MessageContext:
        """Outbound policy view of a reply to this message (no sender)."""
        return MessageContext(
            message_id=f"{self.message_id}:reply",
            channel_id=self.channel,
            account_id=self.account_id,
            content=text,
            to=self.chat_id,
        )

    def transformed(self, change: TransformedMessage | None) -> IncomingMessage:
        """Copy with policy-rewritten content; metadata is merged, not replaced."""
        if change is None:
            return self
        return replace(
            self,
            text=change.content if change.content is not None else self.text,
            type=change.type or self.type,
            attachments=list(change.attachments) or self.attachments,
            metadata={**self.metadata, **change.metadata},
        )


@dataclass
class OutgoingMessage:
    """A message to deliver through a channel account."""

    chat_id: str
    text: str | None = None
    account_id: str = "default"
    type: str = "text"
    attachments: list[dict[str, Any]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_target(cls, target: RouteTarget, content: TransformedMessage) -> OutgoingMessage:
        """Delivery for a forward, broadcast or auto-reply target."""
        return cls(
            chat_id=target.to or "default",
            text=content.content,
            account_id=target.account_id,
            type=content.type or "text",
            attachments=list(content.attachments),
            metadata=dict(content.metadata),
        )


MessageHandler = Callable[[IncomingMessage], Awaitable[str | None]]


class Channel(ABC):
    """One account on one messaging platform."""

    name: str = "base"

    def __init__(self, account_id: str = "default") -> None:
        self.account_id = account_id
        self._handler: MessageHandler | None = None

    @property
    def key(self) -> tuple[str, str]:
        return self.name, self.account_id

    def set_handler(self, handler: MessageHandler) -> None:
        self._handler = handler

    async def _dispatch(self, msg: IncomingMessage) -> str | None:
        if self._handler is None:
            return None
        return await self._handler(msg)

    @abstractmethod
    async def send(self, message: OutgoingMessage) -> None:
        ...

    @abstractmethod
    async def start(self) -> None:
        """Connect and deliver incoming messages until stopped."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...
