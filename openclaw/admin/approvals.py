"""
ApprovalSystem — agent-level approval requests persisted as JSON files.

Each request lives in memory and in ``<approvals_dir>/<id>.json``. Writes go
through aiofiles; a failed write is logged and never fails the operation.
"""

from __future__ import annotations

import json
import uuid
from pathlib import Path
from typing import Any

import aiofiles
from loguru import logger

from openclaw.admin.types import (
    ApprovalConfig,
    ApprovalHistoryEntry,
    ApprovalPriority,
    ApprovalRequest,
    ApprovalStats,
    ApprovalStatus,
)
from openclaw.clock import DAY_MS, Clock, now_ms
from openclaw.errors import InvalidStateError, NotFoundError, PermissionDeniedError
from openclaw.repository import IndexedRepository


DEFAULT_RETENTION_MS = 30 * DAY_MS


class ApprovalSystem:
    """
    Usage::

        approvals = ApprovalSystem(ApprovalConfig(min_approvers=2), "~/.openclaw/approvals")
        await approvals.load_all()
        req = await approvals.create_request("coder", ["lead", "human-owner"], "deploy", "Ship v2")
        await approvals.approve(req.id, "lead")
    """

    def __init__(
        self,
        config: ApprovalConfig | None = None,
        storage_dir: str | Path = "~/.openclaw/approvals",
        clock: Clock = now_ms,
    ) -> None:
        self.config = config or ApprovalConfig()
        self.storage_dir = Path(storage_dir).expanduser()
        self._clock = clock
        self._requests: IndexedRepository[ApprovalRequest] = IndexedRepository(
            "Approval request",
            indexes={
                "requester": lambda r: r.requester_id,
                "approver": lambda r: r.approvers,
            },
        )
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error(f"[approval] Failed to create storage directory {self.storage_dir}: {exc}")

    def _path(self, request_id: str) -> Path:
        return self.storage_dir / f"{request_id}.json"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_request(
        self,
        requester_id: str,
        approvers: list[str],
        action_type: str,
        description: str,
        action_params: Any = None,
        priority: ApprovalPriority | str = ApprovalPriority.NORMAL,
        expires_in_ms: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ApprovalRequest:
        now = self._clock()
        request = ApprovalRequest(
            id=f"approval-{now}-{uuid.uuid4().hex[:9]}",
            requester_id=requester_id,
            approvers=list(approvers),
            action_type=action_type,
            description=description,
            params=action_params,
            priority=ApprovalPriority(priority),
            created_at=now,
            expires_at=now + (expires_in_ms or self.config.default_expiry_ms),
            history=[ApprovalHistoryEntry(timestamp=now, actor=requester_id, action="created")],
            metadata=dict(metadata or {}),
        )

        if self.config.allow_auto_approve and self._matches_auto_approve(request):
            request.status = ApprovalStatus.APPROVED
            request.approved_at = now
            request.approved_by = ["auto"]
            request.history.append(
                ApprovalHistoryEntry(timestamp=now, actor="system", action="approved", comment="Auto-approved")
            )

        self._requests.add(request)
        await self._save(request)
        logger.info(f"[approval] Created request {request.id} for {action_type}")
        return request

    def _matches_auto_approve(self, request: ApprovalRequest) -> bool:
        for cond in self.config.auto_approve_conditions:
            kind, value = cond.get("condition"), cond.get("value")
            if kind in ("action_type", "actionType") and request.action_type == value:
                return True
            if kind == "priority" and request.priority.value == value:
                return True
        return False

    def _require_pending(self, request_id: str) -> ApprovalRequest:
        request = self._requests.get(request_id)
        if request is None:
            raise NotFoundError(f"Approval request {request_id} not found")
        if request.status is not ApprovalStatus.PENDING:
            raise InvalidStateError(f"Request {request_id} is not pending (status: {request.status.value})")
        return request

    async def approve(self, request_id: str, approver_id: str, comment: str | None = None) -> ApprovalRequest:
        request = self._require_pending(request_id)
        if approver_id not in request.approvers:
            raise PermissionDeniedError(f"{approver_id} is not an approver for request {request_id}")
        if approver_id in request.approved_by:
            raise InvalidStateError(f"{approver_id} has already approved request {request_id}")

        now = self._clock()
        request.approved_by.append(approver_id)
        request.history.append(ApprovalHistoryEntry(timestamp=now, actor=approver_id, action="approved", comment=comment))

        if self.config.require_all:
            done = set(request.approved_by) >= set(request.approvers)
        else:
            done = len(request.approved_by) >= (self.config.min_approvers or 1)
        if done:
            request.status = ApprovalStatus.APPROVED
            request.approved_at = now
            logger.info(f"[approval] Request {request_id} approved")

        await self._save(request)
        return request

    async def reject(self, request_id: str, approver_id: str, reason: str | None = None) -> ApprovalRequest:
        request = self._require_pending(request_id)
        if approver_id not in request.approvers:
            raise PermissionDeniedError(f"{approver_id} is not an approver for request {request_id}")

        now = self._clock()
        request.status = ApprovalStatus.REJECTED
        request.rejected_at = now
        request.rejection_reason = reason
        request.history.append(ApprovalHistoryEntry(timestamp=now, actor=approver_id, action="rejected", comment=reason))

        await self._save(request)
        logger.info(f"[approval] Request {request_id} rejected by {approver_id}")
        return request

    async def cancel(self, request_id: str, canceller_id: str) -> ApprovalRequest:
        request = self._require_pending(request_id)
        if request.requester_id != canceller_id:
            raise PermissionDeniedError("Only requester can cancel the request")

        request.status = ApprovalStatus.CANCELLED
        request.history.append(ApprovalHistoryEntry(timestamp=self._clock(), actor=canceller_id, action="cancelled"))
        await self._save(request)
        logger.info(f"[approval] Request {request_id} cancelled")
        return request

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_request(self, request_id: str) -> ApprovalRequest | None:
        return self._requests.get(request_id)

    def get_agent_requests(self, agent_id: str, status: ApprovalStatus | str | None = None) -> list[ApprovalRequest]:
        requests = self._requests.find("requester", agent_id)
        if status is not None:
            requests = [r for r in requests if r.status is ApprovalStatus(status)]
        return requests

    def get_pending_approvals(self, approver_id: str) -> list[ApprovalRequest]:
        return [
            r for r in self._requests.find("approver", approver_id)
            if r.status is ApprovalStatus.PENDING and approver_id not in r.approved_by
        ]

    def get_stats(self) -> ApprovalStats:
        stats = ApprovalStats()
        total_time = approvals = 0
        for r in self._requests:
            if r.status is ApprovalStatus.PENDING:
                stats.pending += 1
            elif r.status is ApprovalStatus.APPROVED:
                stats.approved += 1
                if r.approved_at:
                    total_time += r.approved_at - r.created_at
                    approvals += 1
            elif r.status is ApprovalStatus.REJECTED:
                stats.rejected += 1
            elif r.status is ApprovalStatus.EXPIRED:
                stats.expired += 1
        stats.avg_approval_time = total_time / approvals if approvals else 0.0
        return stats

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def check_expired_requests(self) -> list[str]:
        """Mark pending requests past their expiry; returns the expired ids."""
        now = self._clock()
        expired = []
        for r in self._requests:
            if r.status is ApprovalStatus.PENDING and r.expires_at and r.expires_at < now:
                r.status = ApprovalStatus.EXPIRED
                r.history.append(ApprovalHistoryEntry(timestamp=now, actor="system", action="expired"))
                expired.append(r.id)
                await self._save(r)
        if expired:
            logger.info(f"[approval] Marked {len(expired)} request(s) as expired")
        return expired

    async def cleanup_old_requests(self, older_than_ms: int = DEFAULT_RETENTION_MS) -> int:
        """Drop finished requests older than the cutoff, in memory and on disk."""
        now = self._clock()
        stale = [
            r.id for r in self._requests
            if r.status is not ApprovalStatus.PENDING and now - r.created_at > older_than_ms
        ]
        for request_id in stale:
            self._requests.remove(request_id)
            try:
                self._path(request_id).unlink(missing_ok=True)
            except OSError as exc:
                logger.error(f"[approval] Failed to delete {request_id}: {exc}")
        if stale:
            logger.info(f"[approval] Cleaned up {len(stale)} old request(s)")
        return len(stale)

    async def load_all(self) -> int:
        """Load every ``*.json`` request from the storage directory."""
        loaded = 0
        for path in sorted(self.storage_dir.glob("*.json")):
            try:
                async with aiofiles.open(path, "r", encoding="utf-8") as f:
                    request = ApprovalRequest.from_dict(json.loads(await f.read()))
            except Exception as exc:
                logger.error(f"[approval] Failed to load {path.name}: {exc}")
                continue
            if request.id in self._requests:
                self._requests.update(request)
            else:
                self._requests.add(request)
            loaded += 1
        logger.debug(f"[approval] Loaded {loaded} request(s) from {self.storage_dir}")
        return loaded

    async def _save(self, request: ApprovalRequest) -> None:
        path = self._path(request.id)
        try:
            async with aiofiles.open(path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(request.to_dict(), ensure_ascii=False, indent=2, default=str))
        except Exception as exc:
            logger.error(f"[approval] Failed to save request {request.id}: {exc}")
