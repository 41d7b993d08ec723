"""
PolicyDispatcher — carries out what a denying PolicyResult asks for.

A result that denies normal processing may still want an auto-reply sent to
the sender, or the message routed to other channel accounts. Broadcast
results can fan out concurrently; everything else is sent one target at a
time with an optional pause between sends.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from loguru import logger

from openclaw.channels.policies.types import (
    MessageContext,
    PolicyResult,
    RouteTarget,
    TransformedMessage,
)


SendFunction = Callable[[RouteTarget, TransformedMessage], Awaitable[None]]


@dataclass
class TargetResult:
    target: RouteTarget
    success: bool
    error: str | None = None


@dataclass
class DispatchResult:
    dispatched: bool
    action: str                         # allow | drop | auto-reply | route | broadcast
    reason: str | None = None
    targets: list[RouteTarget] = field(default_factory=list)
    results: list[TargetResult] = field(default_factory=list)


class PolicyDispatcher:
    async def dispatch(
        self,
        result: PolicyResult,
        message: MessageContext,
        send: SendFunction,
    ) -> DispatchResult:
        if result.allow:
            return DispatchResult(dispatched=True, action="allow")
        if result.auto_reply:
            return await self._auto_reply(result, message, send)
        if result.route_to:
            return await self._route(result, message, send)
        return DispatchResult(dispatched=False, action="drop", reason=result.reason or "Policy rejected")

    async def _auto_reply(
        self, result: PolicyResult, message: MessageContext, send: SendFunction
    ) -> DispatchResult:
        if not message.sender:
            return DispatchResult(
                dispatched=False,
                action="auto-reply",
                reason="Cannot auto-reply: no sender information",
            )
        target = RouteTarget(message.channel_id, message.account_id, to=message.sender)
        try:
            await send(target, TransformedMessage(content=result.auto_reply, type="text"))
        except Exception as exc:
            logger.error(f"[dispatch] Auto-reply to {message.sender} failed: {exc}")
            return DispatchResult(dispatched=False, action="auto-reply", reason=f"Auto-reply failed: {exc}")
        return DispatchResult(dispatched=True, action="auto-reply", targets=[target])

    async def _route(
        self, result: PolicyResult, message: MessageContext, send: SendFunction
    ) -> DispatchResult:
        targets = list(result.route_to)
        content = result.transformed_message or TransformedMessage(
            content=message.content,
            type=message.type,
            attachments=list(message.attachments),
            metadata=dict(message.metadata),
        )
        meta = result.metadata
        delay_ms = meta.get("delay_ms") or 0
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)

        is_broadcast = meta.get("broadcast") is True
        attempts = 1 + int(meta.get("retry_count") or 0)

        if is_broadcast and meta.get("concurrent") is not False:
            results = list(await asyncio.gather(
                *(self._send_one(send, t, content, attempts) for t in targets)
            ))
        else:
            interval_ms = meta.get("interval_ms") or 0
            results = []
            for target in targets:
                outcome = await self._send_one(send, target, content, attempts)
                results.append(outcome)
                if outcome.success and interval_ms > 0:
                    await asyncio.sleep(interval_ms / 1000)

        ok = sum(1 for r in results if r.success)
        logger.info(f"[dispatch] Routed to {ok}/{len(targets)} target(s)")
        return DispatchResult(
            dispatched=ok > 0,
            action="broadcast" if is_broadcast else "route",
            reason=None if ok else "All routing attempts failed",
            targets=targets,
            results=results,
        )

    @staticmethod
    async def _send_one(
        send: SendFunction, target: RouteTarget, content: TransformedMessage, attempts: int
    ) -> TargetResult:
        error = ""
        for _ in range(max(attempts, 1)):
            try:
                await send(target, content)
                return TargetResult(target, success=True)
            except Exception as exc:
                error = str(exc)
                logger.warning(f"[dispatch] Send to {target.channel_id}:{target.account_id} failed: {exc}")
        return TargetResult(target, success=False, error=error)
