"""
AdvancedApprovalSystem — multi-approver requests for admin operations.

Design:
- Approval policies pick approvers when a request names none; the enabled
  policy with the highest priority wins
- Four decision rules: any, all, majority (ceil(n/2)) and weighted (half of
  the total approver weight)
- An approver decides once; delegating adds another approver instead
- Emergency access is a separate, time-boxed grant with a usage log
"""

from __future__ import annotations

import math
import uuid
from typing import Any, Awaitable, Callable

from loguru import logger

from openclaw.admin.types import (
    PRIORITY_RANK,
    AdminOperationType,
    AdvancedApprovalRequest,
    ApprovalDecision,
    ApprovalPolicy,
    ApprovalPriority,
    ApprovalRecord,
    ApprovalStatistics,
    ApprovalStatus,
    ApprovalType,
    ApproverStats,
    EmergencyAccessRequest,
    EmergencyStatus,
    PermissionSubject,
    SuperAdmin,
)
from openclaw.clock import Clock, now_ms
from openclaw.errors import AlreadyExistsError, InvalidStateError, PermissionDeniedError, ValidationError
from openclaw.repository import IndexedRepository


NotifyCallback = Callable[[PermissionSubject, AdvancedApprovalRequest], Awaitable[None]]

AUTO_APPROVER = PermissionSubject(type="user", id="system", name="Auto-Approval")
AUTO_REJECTOR = PermissionSubject(type="user", id="system", name="Auto-Rejection")


def _short_id() -> str:
    return uuid.uuid4().hex[:9]


def _condition_fields(request: AdvancedApprovalRequest) -> dict[str, str]:
    return {
        "priority": request.priority.value,
        "requested_action": request.requested_action.value,
        "target_type": request.target_type,
        "target_id": request.target_id,
        "requester_id": request.requester.id,
        "requester_type": request.requester.type,
        "approval_type": request.approval_type.value,
    }


def evaluate_condition(condition: str, request: AdvancedApprovalRequest) -> bool:
    """Evaluate ``field=value`` / ``field!=value``; unknown fields never match."""
    negate = "!=" in condition
    key, sep, value = condition.partition("!=" if negate else "=")
    if not sep:
        return False
    actual = _condition_fields(request).get(key.strip())
    if actual is None:
        return False
    return (actual == value.strip()) != negate


class AdvancedApprovalSystem:
    """
    Usage::

        approvals = AdvancedApprovalSystem()
        req = await approvals.create_request(
            requester=PermissionSubject("user", "ops-1"),
            requested_action="agent_delete",
            target_type="agent", target_id="coder",
            title="Delete coder", description="...", reason="retired",
            approvers=[PermissionSubject("user", "sec-1")],
        )
        await approvals.process_decision(ApprovalDecision(req.id, PermissionSubject("user", "sec-1"), "approve"))
    """

    def __init__(self, clock: Clock = now_ms) -> None:
        self._clock = clock
        self._requests: IndexedRepository[AdvancedApprovalRequest] = IndexedRepository("Request")
        self._policies: IndexedRepository[ApprovalPolicy] = IndexedRepository("Policy")
        self._emergency: IndexedRepository[EmergencyAccessRequest] = IndexedRepository(
            "Emergency access request"
        )
        self._notify: NotifyCallback | None = None

    def set_notify_callback(self, callback: NotifyCallback) -> None:
        self._notify = callback

    # ------------------------------------------------------------------
    # Policies
    # ------------------------------------------------------------------

    def create_policy(self, policy: ApprovalPolicy) -> ApprovalPolicy:
        if policy.id in self._policies:
            raise AlreadyExistsError(f"Policy already exists: {policy.id}")
        if not policy.created_at:
            policy.created_at = self._clock()
        self._policies.add(policy)
        return policy

    def get_policy(self, policy_id: str) -> ApprovalPolicy | None:
        return self._policies.get(policy_id)

    def find_matching_policies(
        self,
        operation: AdminOperationType | str,
        agent_group: str | None = None,
        organization: str | None = None,
    ) -> list[ApprovalPolicy]:
        operation = AdminOperationType(operation)

        def matches(p: ApprovalPolicy) -> bool:
            scope = p.applies_to
            if not p.enabled:
                return False
            if scope.operations is not None and operation not in [AdminOperationType(o) for o in scope.operations]:
                return False
            if agent_group and scope.agent_groups is not None and agent_group not in scope.agent_groups:
                return False
            if organization and scope.organizations is not None and organization not in scope.organizations:
                return False
            return True

        return sorted(self._policies.filter(matches), key=lambda p: p.priority, reverse=True)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def create_request(
        self,
        requester: PermissionSubject | dict[str, Any],
        requested_action: AdminOperationType | str,
        target_type: str,
        target_id: str,
        title: str,
        description: str,
        reason: str,
        priority: ApprovalPriority | str = ApprovalPriority.NORMAL,
        approvers: list[PermissionSubject] | None = None,
        required_approvals: int | None = None,
        approval_type: ApprovalType | str = ApprovalType.ANY,
        approver_weights: dict[str, float] | None = None,
        expiry_seconds: int | None = None,
        attachments: list[dict[str, Any]] | None = None,
        agent_group: str | None = None,
        organization: str | None = None,
    ) -> AdvancedApprovalRequest:
        requested_action = AdminOperationType(requested_action)
        policies = self.find_matching_policies(requested_action, agent_group, organization)
        policy = policies[0] if policies else None

        if not approvers and policy is not None:
            approvers = list(policy.approvers)
            required_approvals = policy.required_approvals or 1
        if not approvers:
            raise ValidationError("No approvers specified")

        now = self._clock()
        request = AdvancedApprovalRequest(
            id=f"approval-{now}-{_short_id()}",
            requester=PermissionSubject.from_dict(requester),
            requested_action=requested_action,
            target_type=target_type,
            target_id=target_id,
            title=title,
            description=description,
            reason=reason,
            priority=ApprovalPriority(priority),
            approvers=[PermissionSubject.from_dict(a) for a in approvers],
            required_approvals=required_approvals or 1,
            approval_type=ApprovalType(approval_type),
            approver_weights=dict(approver_weights or {}),
            created_at=now,
            expires_at=now + expiry_seconds * 1000 if expiry_seconds else None,
            attachments=list(attachments or []),
        )
        self._requests.add(request)
        logger.info(f"[approval] Created request {request.id} for {requested_action.value}")

        if self._notify is not None:
            for approver in request.approvers:
                await self._notify(approver, request)

        if policy is not None:
            for rule in policy.auto_approval_rules:
                if evaluate_condition(rule.condition, request):
                    if rule.action == "approve":
                        self._auto_decide(request, True, "Auto-approved by policy")
                    else:
                        self._auto_decide(request, False, "Auto-rejected by policy")
                    break
        return request

    def _auto_decide(self, request: AdvancedApprovalRequest, approved: bool, comment: str) -> None:
        now = self._clock()
        if approved:
            request.status = ApprovalStatus.APPROVED
            request.approved_at = now
        else:
            request.status = ApprovalStatus.REJECTED
            request.rejected_at = now
        request.approvals.append(ApprovalRecord(
            approver=AUTO_APPROVER if approved else AUTO_REJECTOR,
            approved=approved,
            timestamp=now,
            comment=comment,
        ))
        logger.info(f"[approval] {request.id}: {comment}")

    async def process_decision(self, decision: ApprovalDecision) -> AdvancedApprovalRequest:
        request = self._requests.require(decision.request_id)
        if request.status is not ApprovalStatus.PENDING:
            raise InvalidStateError(f"Request is not pending: {request.status.value}")
        if decision.approver not in request.approvers:
            raise PermissionDeniedError("User is not an approver for this request")
        if any(a.approver.id == decision.approver.id for a in request.approvals):
            raise InvalidStateError("User has already approved this request")

        if decision.decision == "delegate":
            if decision.delegate_to is None:
                raise ValidationError("Delegate target not specified")
            request.approvers.append(decision.delegate_to)
            if self._notify is not None:
                await self._notify(decision.delegate_to, request)
            return request

        request.approvals.append(ApprovalRecord(
            approver=decision.approver,
            approved=decision.decision == "approve",
            timestamp=decision.timestamp or self._clock(),
            weight=request.approver_weights.get(decision.approver.id),
            comment=decision.comment,
            ip_address=decision.ip_address,
        ))

        approved, rejected = self.check_approval_status(request)
        if approved:
            request.status = ApprovalStatus.APPROVED
            request.approved_at = self._clock()
        elif rejected:
            request.status = ApprovalStatus.REJECTED
            request.rejected_at = self._clock()
        if approved or rejected:
            logger.info(f"[approval] Request {request.id} {request.status.value}")
        return request

    @staticmethod
    def check_approval_status(request: AdvancedApprovalRequest) -> tuple[bool, bool]:
        """Return ``(approved, rejected)`` under the request's approval type."""
        approved = sum(1 for a in request.approvals if a.approved)
        rejected = len(request.approvals) - approved
        n = len(request.approvers)

        if request.approval_type is ApprovalType.ANY:
            return approved >= 1, rejected == n
        if request.approval_type is ApprovalType.ALL:
            return approved == n, rejected >= 1
        if request.approval_type is ApprovalType.MAJORITY:
            majority = math.ceil(n / 2)
            return approved >= majority, rejected >= majority

        total = approved_weight = 0.0
        for a in request.approvals:
            weight = a.weight or 1
            total += weight
            if a.approved:
                approved_weight += weight
        max_weight = sum(request.approver_weights.values()) if request.approver_weights else 1
        return approved_weight >= max_weight / 2, total - approved_weight >= max_weight / 2

    def get_request(self, request_id: str) -> AdvancedApprovalRequest | None:
        return self._requests.get(request_id)

    def get_pending_requests(
        self,
        approver_id: str | None = None,
        priority: ApprovalPriority | str | None = None,
        requested_action: AdminOperationType | str | None = None,
    ) -> list[AdvancedApprovalRequest]:
        def matches(r: AdvancedApprovalRequest) -> bool:
            if r.status is not ApprovalStatus.PENDING:
                return False
            if approver_id and not any(a.id == approver_id for a in r.approvers):
                return False
            if priority and r.priority is not ApprovalPriority(priority):
                return False
            if requested_action and r.requested_action is not AdminOperationType(requested_action):
                return False
            return True

        return sorted(
            self._requests.filter(matches),
            key=lambda r: (-PRIORITY_RANK[r.priority], r.created_at),
        )

    def cancel_request(self, request_id: str, operator_id: str, reason: str | None = None) -> bool:
        request = self._requests.get(request_id)
        if request is None:
            return False
        if request.status is not ApprovalStatus.PENDING:
            raise InvalidStateError(f"Cannot cancel request with status: {request.status.value}")
        request.status = ApprovalStatus.CANCELLED
        request.metadata.update(
            cancelled_by=operator_id,
            cancellation_reason=reason,
            cancelled_at=self._clock(),
        )
        return True

    # ------------------------------------------------------------------
    # Emergency access
    # ------------------------------------------------------------------

    def create_emergency_access(
        self,
        requester: SuperAdmin,
        emergency_type: str,
        description: str,
        severity: str,
        requested_permissions: list[str],
        duration_seconds: int,
    ) -> EmergencyAccessRequest:
        now = self._clock()
        request = EmergencyAccessRequest(
            id=f"emergency-{now}-{_short_id()}",
            requester=requester,
            emergency_type=emergency_type,
            description=description,
            severity=severity,
            requested_permissions=list(requested_permissions),
            duration_seconds=duration_seconds,
            created_at=now,
        )
        self._emergency.add(request)
        logger.warning(f"[approval] Emergency access requested by {requester.id}: {emergency_type}")
        return request

    def get_emergency_access(self, request_id: str) -> EmergencyAccessRequest | None:
        return self._emergency.get(request_id)

    def grant_emergency_access(self, request_id: str, approver_id: str) -> EmergencyAccessRequest:
        request = self._emergency.require(request_id)
        if request.status is not EmergencyStatus.PENDING:
            raise InvalidStateError(f"Request is not pending: {request.status.value}")
        now = self._clock()
        request.status = EmergencyStatus.GRANTED
        request.approved_by = approver_id
        request.approved_at = now
        request.expires_at = now + request.duration_seconds * 1000
        return request

    def log_emergency_access_usage(self, request_id: str, action: str, details: dict[str, Any] | None = None) -> None:
        request = self._emergency.require(request_id)
        request.usage_log.append({"action": action, "timestamp": self._clock(), "details": details})

    def revoke_emergency_access(
        self,
        request_id: str,
        revoked_by: str,
        reason: str | None = None,
    ) -> EmergencyAccessRequest:
        request = self._emergency.require(request_id)
        request.status = EmergencyStatus.REVOKED
        request.revoked_at = self._clock()
        request.revoked_by = revoked_by
        request.revoked_reason = reason
        return request

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_statistics(
        self,
        start_time: int | None = None,
        end_time: int | None = None,
        approver_id: str | None = None,
    ) -> ApprovalStatistics:
        requests = self._requests.filter(
            lambda r: (not start_time or r.created_at >= start_time)
            and (not end_time or r.created_at <= end_time)
        )

        def count(status: ApprovalStatus) -> int:
            return sum(1 for r in requests if r.status is status)

        completed = [r for r in requests if r.status in (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED)]
        total_time = sum((r.approved_at or r.rejected_at or r.created_at) - r.created_at for r in completed)

        by_priority = {p.value: 0 for p in ApprovalPriority}
        by_operation: dict[str, int] = {}
        for r in requests:
            by_priority[r.priority.value] += 1
            by_operation[r.requested_action.value] = by_operation.get(r.requested_action.value, 0) + 1

        by_approver: dict[str, ApproverStats] = {}
        if approver_id:
            stats = ApproverStats()
            total = 0
            for r in requests:
                mine = [a for a in r.approvals if a.approver.id == approver_id]
                if not mine:
                    continue
                stats.total += 1
                stats.approved += any(a.approved for a in mine)
                stats.rejected += any(not a.approved for a in mine)
                total += mine[0].timestamp - r.created_at
            stats.average_time = total / stats.total if stats.total else 0.0
            by_approver[approver_id] = stats

        return ApprovalStatistics(
            total_requests=len(requests),
            pending_requests=count(ApprovalStatus.PENDING),
            approved_requests=count(ApprovalStatus.APPROVED),
            rejected_requests=count(ApprovalStatus.REJECTED),
            expired_requests=count(ApprovalStatus.EXPIRED),
            average_approval_time=total_time / len(completed) if completed else 0.0,
            by_priority=by_priority,
            by_operation_type=by_operation,
            by_approver=by_approver,
            period_start=start_time or 0,
            period_end=end_time or self._clock(),
        )

    def clear_all(self) -> None:
        self._requests.clear()
        self._policies.clear()
        self._emergency.clear()
