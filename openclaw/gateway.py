"""
Gateway — connects channels to an agent through channel-binding policies.

- Routes IncomingMessage → inbound policy → middleware → agent handler
- Replies pass the outbound policy before they are handed back to the channel
- Policy side effects (auto-replies, routing) are sent through registered channels
- Queued messages reach the agent when their batch drains; moderated replies
  are sent once approved
- Concurrent message handling per chat (semaphore per chat_id)

Channels are keyed by ``(channel name, account id)`` so one gateway can carry
several bot accounts of the same platform, which load-balance and forward
policies route between.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from loguru import logger

from openclaw.channels.base import Channel, IncomingMessage, OutgoingMessage
from openclaw.channels.policies import (
    ChannelBinding,
    ExecutionContext,
    MessageContext,
    ModeratePolicyHandler,
    PendingMessage,
    PolicyExecutor,
    QueuedMessage,
    QueuePolicyHandler,
    RouteTarget,
    TransformedMessage,
)
from openclaw.errors import InvalidStateError, NotFoundError, OpenClawError


# ---------------------------------------------------------------------------
# Handler / middleware
# ---------------------------------------------------------------------------

AgentHandler = Callable[[IncomingMessage], Awaitable[str | None]]

Middleware = Callable[[IncomingMessage, Callable], Awaitable[str | None]]
"""A middleware is an async function:
    async def my_middleware(msg, next) -> str | None:
        # return None to block, or call next(msg) to continue
        if not allowed(msg.user_id):
            return None
        return await next(msg)
"""


# ---------------------------------------------------------------------------
# Gateway config
# ---------------------------------------------------------------------------

@dataclass
class GatewayConfig:
    """Gateway configuration."""

    agent_id: str = "main"
    agent_config: dict[str, Any] = field(default_factory=dict)

    # Channel bindings of this agent; no match = message passes untouched
    bindings: list[ChannelBinding] = field(default_factory=list)
    deny_channels: list[str] = field(default_factory=list)

    # Concurrency: max parallel agent runs per chat_id
    max_concurrent_per_chat: int = 1


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

class Gateway:
    """Connects channels to an agent handler with policies and middleware.

    Usage::

        gw = Gateway(handler=my_agent, config=GatewayConfig(bindings=[...]))
        gw.add_channel(CLIChannel())
        gw.use(log_messages())
        await gw.run()
    """

    def __init__(
        self,
        handler: AgentHandler,
        config: GatewayConfig | None = None,
        executor: PolicyExecutor | None = None,
    ) -> None:
        self.handler = handler
        self.config = config or GatewayConfig()
        self.executor = executor or PolicyExecutor()

        self._channels: dict[tuple[str, str], Channel] = {}
        self._middleware: list[Middleware] = []

        # Per-chat semaphores to serialize messages from the same chat
        self._chat_locks: dict[str, asyncio.Semaphore] = {}

        # Held messages come back through these once a policy releases them
        registry = self.executor.resolver.registry
        queue = registry.get("queue")
        if isinstance(queue, QueuePolicyHandler):
            queue.set_process_callback(self._process_queued)
        moderate = registry.get("moderate")
        if isinstance(moderate, ModeratePolicyHandler):
            moderate.set_action_callback(self._deliver_moderated)

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def add_channel(self, channel: Channel) -> "Gateway":
        """Register a channel account. Returns self for chaining."""
        channel.set_handler(self._on_message)
        self._channels[channel.key] = channel
        logger.info(f"[gateway] Channel registered: {channel.name}:{channel.account_id}")
        return self

    def use(self, middleware: Middleware) -> "Gateway":
        """Add a middleware to the chain. Returns self for chaining."""
        self._middleware.append(middleware)
        return self

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Start all channels and block until they finish."""
        if not self._channels:
            raise InvalidStateError("No channels registered. Call add_channel() first.")

        tasks = [
            asyncio.create_task(channel.start(), name=f"channel:{name}:{account}")
            for (name, account), channel in self._channels.items()
        ]
        logger.info(f"[gateway] Started {len(tasks)} channel(s)")

        try:
            await asyncio.gather(*tasks)
        except Exception as exc:
            logger.error(f"[gateway] Fatal error: {exc}")
            raise
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop all channels and release policy timers."""
        for channel in self._channels.values():
            try:
                await channel.stop()
            except Exception as exc:
                logger.warning(f"[gateway] Error stopping channel {channel.name!r}: {exc}")
        self.executor.resolver.registry.dispose()

    # ------------------------------------------------------------------
    # Message routing
    # ------------------------------------------------------------------

    async def _on_message(self, msg: IncomingMessage) -> str | None:
        """Called by channels when a message arrives. Returns the reply to send."""
        if msg.channel in self.config.deny_channels:
            logger.debug(f"[gateway] Channel {msg.channel!r} is denied")
            return None

        inbound = await self._execute(msg.to_context(), "inbound")
        if not inbound.allow:
            logger.info(f"[gateway] Inbound message {msg.message_id} stopped: {inbound.reason}")
            return None
        msg = msg.transformed(inbound.policy_result and inbound.policy_result.transformed_message)
        return await self._handle(msg)

    async def _handle(self, msg: IncomingMessage) -> str | None:
        """Middleware, agent and outbound policy for a message that passed inbound."""
        handler = self._build_chain()
        lock = self._get_chat_lock(msg.chat_id)
        async with lock:
            try:
                reply = await handler(msg)
            except Exception as exc:
                logger.error(f"[gateway] Error processing message: {exc}")
                return None

        if not reply:
            return None
        return await self._check_outbound(msg, reply)

    def _build_chain(self) -> Callable[[IncomingMessage], Awaitable[str | None]]:
        handler: Callable[[IncomingMessage], Awaitable[str | None]] = self._run_agent
        for mw in reversed(self._middleware):
            handler = _wrap(mw, handler)
        return handler

    async def _run_agent(self, msg: IncomingMessage) -> str | None:
        logger.info(f"[gateway] {msg.channel}:{msg.chat_id} [{msg.user_id}] {msg.text[:80]!r}")
        try:
            return await self.handler(msg)
        except Exception as exc:
            logger.error(f"[gateway] Agent error: {exc}")
            return f"Error: {exc}"

    async def _check_outbound(self, msg: IncomingMessage, reply: str) -> str | None:
        outbound = await self._execute(msg.reply_context(reply), "outbound")
        if not outbound.allow:
            logger.info(f"[gateway] Reply to {msg.chat_id} held back: {outbound.reason}")
            return None
        transformed = outbound.policy_result and outbound.policy_result.transformed_message
        if transformed and transformed.content is not None:
            return transformed.content
        return reply

    async def _execute(self, message: MessageContext, direction: str):
        return await self.executor.execute(
            ExecutionContext(
                agent_id=self.config.agent_id,
                message=message,
                channel_id=message.channel_id,
                account_id=message.account_id,
                bindings=self.config.bindings,
                direction=direction,
                agent_config=self.config.agent_config,
            ),
            send=self.send_to,
        )

    # ------------------------------------------------------------------
    # Sending to other channel accounts
    # ------------------------------------------------------------------

    async def send_to(self, target: RouteTarget, content: TransformedMessage) -> None:
        """Deliver policy output (auto-reply, forward, broadcast) to a channel account."""
        channel = self._channels.get((target.channel_id, target.account_id))
        if channel is None:
            raise NotFoundError(f"Channel {target.channel_id}:{target.account_id} is not registered")
        await channel.send(OutgoingMessage.for_target(target, content))

    async def _process_queued(self, batch: list[QueuedMessage]) -> None:
        """Queue policy batch: run each held message and send its reply."""
        for item in batch:
            msg = IncomingMessage.from_context(item.message)
            reply = await self._handle(msg)
            if not reply:
                continue
            try:
                await self.send_to(msg.reply_target, TransformedMessage(content=reply, type="text"))
            except OpenClawError as exc:
                logger.error(f"[gateway] Queued reply to {msg.chat_id} failed: {exc}")

    async def _deliver_moderated(self, pending: PendingMessage, approved: bool) -> None:
        """Moderate policy decision: approved replies go out, rejected ones are dropped."""
        message = pending.message
        if not approved:
            logger.info(f"[gateway] Reply {message.message_id} rejected by {pending.reviewed_by}")
            return
        target = RouteTarget(message.channel_id, message.account_id, message.to)
        try:
            await self.send_to(target, TransformedMessage(
                content=message.content,
                type=message.type,
                attachments=list(message.attachments),
                metadata=dict(message.metadata),
            ))
        except OpenClawError as exc:
            logger.error(f"[gateway] Approved reply {message.message_id} could not be sent: {exc}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_chat_lock(self, chat_id: str) -> asyncio.Semaphore:
        if chat_id not in self._chat_locks:
            self._chat_locks[chat_id] = asyncio.Semaphore(
                self.config.max_concurrent_per_chat
            )
        return self._chat_locks[chat_id]

    async def process(
        self,
        text: str,
        channel: str = "cli",
        account_id: str = "default",
        chat_id: str = "local",
        user_id: str = "user",
    ) -> str | None:
        """Run one message through the full pipeline without a channel loop.

        Useful for scripts and tests.
        """
        msg = IncomingMessage(
            channel=channel,
            chat_id=chat_id,
            user_id=user_id,
            message_id=f"direct_{time.time_ns()}",
            text=text,
            account_id=account_id,
        )
        return await self._on_message(msg)


def _wrap(middleware: Middleware, next_handler: Callable) -> Callable[[IncomingMessage], Awaitable[str | None]]:
    async def handler(m: IncomingMessage) -> str | None:
        return await middleware(m, next_handler)
    return handler


# ---------------------------------------------------------------------------
# Built-in middleware factories
# ---------------------------------------------------------------------------

def rate_limit(max_per_minute: int = 10) -> Middleware:
    """Rate-limit middleware: max N messages per sender per minute."""
    counts: dict[str, list[float]] = {}

    async def middleware(msg: IncomingMessage, next: Callable) -> str | None:
        now = time.time()
        # Keep only entries from the last 60s
        window = [t for t in counts.get(msg.user_id, []) if now - t < 60]
        counts[msg.user_id] = window
        if len(window) >= max_per_minute:
            logger.warning(f"[rate_limit] {msg.user_id!r} exceeded {max_per_minute}/min")
            return "Rate limit exceeded. Please wait a moment."
        window.append(now)
        return await next(msg)

    return middleware


def log_messages() -> Middleware:
    """Logging middleware: log every message that reaches the agent."""
    async def middleware(msg: IncomingMessage, next: Callable) -> str | None:
        logger.info(f"[log] {msg.channel}/{msg.chat_id} [{msg.user_id}]: {msg.text[:100]!r}")
        result = await next(msg)
        logger.info(f"[log] reply: {(result or '')[:100]!r}")
        return result
    return middleware
