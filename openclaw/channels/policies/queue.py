"""
Queue policy — inbound messages are buffered and handed over in batches.

Design:
- One FIFO per binding, bounded by ``max_queue_size``
- Overflow: reject the new message, drop the oldest, or drop the newest
- A background task per binding drains ``batch_size`` messages every
  ``batch_interval`` seconds; a failing batch goes back to the front
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from loguru import logger

from openclaw.channels.policies.base import PolicyHandler, is_positive_number
from openclaw.channels.policies.types import (
    MessageContext,
    PolicyContext,
    PolicyResult,
    ValidationResult,
)
from openclaw.clock import Clock, now_ms


@dataclass
class QueuedMessage:
    message: MessageContext
    context: PolicyContext
    enqueued_at: int


BatchCallback = Callable[[list[QueuedMessage]], Awaitable[None]]

_BUSY_REPLY = "Sorry, the system is busy. Please try again later."
_OVERFLOW_ACTIONS = ("reject", "drop-oldest", "drop-newest")


class QueuePolicyHandler(PolicyHandler):
    type = "queue"

    def __init__(self, clock: Clock = now_ms) -> None:
        self._clock = clock
        self._queues: dict[str, list[QueuedMessage]] = {}
        self._workers: dict[str, asyncio.Task] = {}
        self._callback: BatchCallback | None = None

    def set_process_callback(self, callback: BatchCallback) -> None:
        self._callback = callback

    async def process(self, ctx: PolicyContext) -> PolicyResult:
        config = self._config(ctx)
        if not ctx.message.is_inbound:
            return PolicyResult(allow=True)

        queue = self._queues.setdefault(ctx.binding.id, [])
        if len(queue) >= config["max_queue_size"]:
            action = config.get("overflow_action")
            if action == "reject":
                return PolicyResult(
                    allow=False, reason="Queue is full - message rejected", auto_reply=_BUSY_REPLY
                )
            if action == "drop-newest":
                return PolicyResult(
                    allow=False, reason="Queue is full - newest message dropped", auto_reply=_BUSY_REPLY
                )
            if action == "drop-oldest":
                dropped = queue.pop(0)
                logger.warning(f"[queue] {ctx.binding.id} full, dropped {dropped.message.message_id}")

        queue.append(QueuedMessage(ctx.message, ctx, self._clock()))
        self._ensure_worker(ctx.binding.id, config)
        return PolicyResult(
            allow=False,
            reason="Message queued for batch processing",
            auto_reply="Your message has been received and will be processed shortly.",
        )

    # ------------------------------------------------------------------
    # Batching
    # ------------------------------------------------------------------

    def _ensure_worker(self, binding_id: str, config: dict[str, Any]) -> None:
        if binding_id in self._workers:
            return
        self._workers[binding_id] = asyncio.create_task(
            self._run_batches(binding_id, config),
            name=f"queue:{binding_id}",
        )

    async def _run_batches(self, binding_id: str, config: dict[str, Any]) -> None:
        while True:
            await asyncio.sleep(config["batch_interval"])
            await self.process_batch(binding_id, config["batch_size"])

    async def process_batch(self, binding_id: str, batch_size: int) -> int:
        """Hand up to ``batch_size`` queued messages to the callback. Returns the batch size."""
        queue = self._queues.get(binding_id)
        if not queue:
            return 0
        batch = queue[:batch_size]
        del queue[:batch_size]
        if self._callback is None:
            return len(batch)
        try:
            await self._callback(batch)
        except Exception as exc:
            logger.error(f"[queue] Failed to process batch for {binding_id}: {exc}")
            queue[:0] = batch
            return 0
        return len(batch)

    # ------------------------------------------------------------------
    # Inspection / control
    # ------------------------------------------------------------------

    def get_queue_status(self, binding_id: str) -> dict[str, Any]:
        queue = self._queues.get(binding_id)
        if not queue:
            return {"size": 0, "oldest_message_age": None}
        return {"size": len(queue), "oldest_message_age": self._clock() - queue[0].enqueued_at}

    def clear_queue(self, binding_id: str) -> None:
        if binding_id in self._queues:
            self._queues[binding_id].clear()

    def stop_batch_processing(self, binding_id: str) -> None:
        worker = self._workers.pop(binding_id, None)
        if worker:
            worker.cancel()

    def dispose(self) -> None:
        for worker in self._workers.values():
            worker.cancel()
        self._workers.clear()
        self._queues.clear()

    async def validate(self, config: dict[str, Any] | None) -> ValidationResult:
        if config is None:
            return ValidationResult(False, ["Config is required"])
        errors: list[str] = []
        for key in ("max_queue_size", "batch_interval", "batch_size"):
            if not is_positive_number(config.get(key)):
                errors.append(f"{key} must be a positive number")
        if config.get("overflow_action") not in _OVERFLOW_ACTIONS:
            errors.append(f"overflow_action must be one of: {', '.join(_OVERFLOW_ACTIONS)}")
        return ValidationResult.from_errors(errors)
