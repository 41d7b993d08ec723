import pytest

from openclaw.admin import (
    AdminOperationType,
    AdvancedApprovalSystem,
    ApprovalDecision,
    ApprovalPolicy,
    ApprovalStatus,
    AutoApprovalRule,
    EmergencyStatus,
    PermissionSubject,
    PolicyScope,
    SuperAdmin,
    SuperAdminRole,
    evaluate_condition,
)
from openclaw.errors import (
    AlreadyExistsError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

REQUESTER = PermissionSubject("user", "ops-1")
SEC1 = PermissionSubject("user", "sec-1")
SEC2 = PermissionSubject("user", "sec-2")
SEC3 = PermissionSubject("user", "sec-3")


@pytest.fixture
def system(clock):
    return AdvancedApprovalSystem(clock=clock)


async def request(system, approvers=(SEC1,), target_type="agent", **kw):
    kw.setdefault("requested_action", "agent_delete")
    return await system.create_request(
        requester=REQUESTER,
        target_type=target_type,
        target_id="coder",
        title="Delete coder",
        description="Remove the coder agent",
        reason="retired",
        approvers=list(approvers),
        **kw,
    )


def decide(req, who, decision="approve", **kw):
    return ApprovalDecision(request_id=req.id, approver=who, decision=decision, **kw)


async def test_create_notifies_approvers(system, clock):
    notified = []

    async def notify(approver, req):
        notified.append((approver.id, req.id))

    system.set_notify_callback(notify)
    req = await request(system, approvers=[SEC1, {"type": "user", "id": "sec-2"}], priority="high")

    assert req.id.startswith(f"approval-{clock.now}-")
    assert req.status is ApprovalStatus.PENDING
    assert req.requested_action is AdminOperationType.AGENT_DELETE
    assert req.approvers == [SEC1, SEC2]
    assert notified == [("sec-1", req.id), ("sec-2", req.id)]
    assert system.get_request(req.id) is req


async def test_no_approvers_is_rejected(system):
    with pytest.raises(ValidationError, match="No approvers specified"):
        await request(system, approvers=())


async def test_policy_supplies_approvers(system):
    system.create_policy(ApprovalPolicy(id="low", name="Low", approvers=[SEC1], priority=1))
    system.create_policy(ApprovalPolicy(
        id="high", name="High", approvers=[SEC2, SEC3], required_approvals=2, priority=10,
        applies_to=PolicyScope(operations=[AdminOperationType.AGENT_DELETE]),
    ))
    system.create_policy(ApprovalPolicy(id="off", name="Off", approvers=[SEC1], priority=99, enabled=False))
    with pytest.raises(AlreadyExistsError):
        system.create_policy(ApprovalPolicy(id="low", name="Dup", approvers=[]))

    assert [p.id for p in system.find_matching_policies("agent_delete")] == ["high", "low"]
    assert [p.id for p in system.find_matching_policies("agent_create")] == ["low"]

    req = await request(system, approvers=())
    assert req.approvers == [SEC2, SEC3]
    assert req.required_approvals == 2


async def test_policy_scope_by_organization(system):
    system.create_policy(ApprovalPolicy(
        id="acme", name="Acme", approvers=[SEC1], applies_to=PolicyScope(organizations=["acme"]),
    ))
    assert system.find_matching_policies("agent_delete", organization="globex") == []
    assert [p.id for p in system.find_matching_policies("agent_delete", organization="acme")] == ["acme"]
    assert [p.id for p in system.find_matching_policies("agent_delete")] == ["acme"]


async def test_auto_approval_rules(system):
    system.create_policy(ApprovalPolicy(
        id="auto", name="Auto", approvers=[SEC1],
        auto_approval_rules=[
            AutoApprovalRule("priority=low"),
            AutoApprovalRule("target_type!=agent", action="reject"),
        ],
    ))

    approved = await request(system, priority="low")
    assert approved.status is ApprovalStatus.APPROVED
    assert approved.approvals[0].approver.id == "system"
    assert approved.approvals[0].comment == "Auto-approved by policy"

    rejected = await request(system, target_type="tool")
    assert rejected.status is ApprovalStatus.REJECTED

    untouched = await request(system)
    assert untouched.status is ApprovalStatus.PENDING


async def test_evaluate_condition(system):
    req = await request(system, priority="urgent")
    assert evaluate_condition("priority=urgent", req)
    assert evaluate_condition("requester_id = ops-1", req)
    assert not evaluate_condition("priority!=urgent", req)
    assert not evaluate_condition("unknown=x", req)
    assert not evaluate_condition("garbage", req)


async def test_any_approval(system):
    req = await request(system, approvers=[SEC1, SEC2])
    await system.process_decision(decide(req, SEC1, "reject"))
    assert req.status is ApprovalStatus.PENDING
    await system.process_decision(decide(req, SEC2))
    assert req.status is ApprovalStatus.APPROVED
    assert req.approved_at is not None


async def test_any_rejected_when_everyone_rejects(system):
    req = await request(system, approvers=[SEC1])
    await system.process_decision(decide(req, SEC1, "reject", comment="no"))
    assert req.status is ApprovalStatus.REJECTED
    assert req.approvals[0].comment == "no"


async def test_all_approval(system):
    req = await request(system, approvers=[SEC1, SEC2], approval_type="all")
    await system.process_decision(decide(req, SEC1))
    assert req.status is ApprovalStatus.PENDING
    await system.process_decision(decide(req, SEC2))
    assert req.status is ApprovalStatus.APPROVED

    other = await request(system, approvers=[SEC1, SEC2], approval_type="all")
    await system.process_decision(decide(other, SEC2, "reject"))
    assert other.status is ApprovalStatus.REJECTED


async def test_majority_approval(system):
    req = await request(system, approvers=[SEC1, SEC2, SEC3], approval_type="majority")
    await system.process_decision(decide(req, SEC1))
    assert req.status is ApprovalStatus.PENDING
    await system.process_decision(decide(req, SEC3))
    assert req.status is ApprovalStatus.APPROVED


async def test_weighted_approval(system):
    weights = {"sec-1": 3, "sec-2": 1}
    heavy = await request(system, approvers=[SEC1, SEC2], approval_type="weighted", approver_weights=weights)
    await system.process_decision(decide(heavy, SEC1))
    assert heavy.status is ApprovalStatus.APPROVED
    assert heavy.approvals[0].weight == 3

    light = await request(system, approvers=[SEC1, SEC2], approval_type="weighted", approver_weights=weights)
    await system.process_decision(decide(light, SEC2))
    assert light.status is ApprovalStatus.PENDING
    await system.process_decision(decide(light, SEC1, "reject"))
    assert light.status is ApprovalStatus.REJECTED


async def test_decision_errors(system):
    req = await request(system, approvers=[SEC1, SEC2])

    with pytest.raises(PermissionDeniedError):
        await system.process_decision(decide(req, SEC3))
    await system.process_decision(decide(req, SEC1, "reject"))
    with pytest.raises(InvalidStateError, match="already"):
        await system.process_decision(decide(req, SEC1))
    with pytest.raises(NotFoundError):
        await system.process_decision(ApprovalDecision("missing", SEC1, "approve"))

    await system.process_decision(decide(req, SEC2))
    with pytest.raises(InvalidStateError, match="not pending"):
        await system.process_decision(decide(req, SEC2))


async def test_delegation(system):
    notified = []

    async def notify(approver, req):
        notified.append(approver.id)

    req = await request(system)
    system.set_notify_callback(notify)

    with pytest.raises(ValidationError):
        await system.process_decision(decide(req, SEC1, "delegate"))

    await system.process_decision(decide(req, SEC1, "delegate", delegate_to=SEC2))
    assert req.approvers == [SEC1, SEC2]
    assert req.approvals == []
    assert notified == ["sec-2"]

    await system.process_decision(decide(req, SEC2))
    assert req.status is ApprovalStatus.APPROVED


async def test_pending_queue_and_cancel(system, clock):
    normal = await request(system)
    clock.advance(10)
    urgent = await request(system, priority="urgent")
    clock.advance(10)
    other = await request(system, approvers=[SEC2], requested_action="agent_create")

    assert system.get_pending_requests() == [urgent, normal, other]
    assert system.get_pending_requests(approver_id="sec-2") == [other]
    assert system.get_pending_requests(priority="urgent") == [urgent]
    assert system.get_pending_requests(requested_action="agent_create") == [other]

    assert system.cancel_request(normal.id, "ops-1", "changed my mind")
    assert normal.status is ApprovalStatus.CANCELLED
    assert normal.metadata["cancellation_reason"] == "changed my mind"
    assert not system.cancel_request("missing", "ops-1")
    with pytest.raises(InvalidStateError):
        system.cancel_request(normal.id, "ops-1")


async def test_emergency_access(system, clock):
    admin = SuperAdmin(id="a1", user_id="u1", role=SuperAdminRole.SECURITY_ADMIN, name="A", email="a@x")
    req = system.create_emergency_access(admin, "system-outage", "db down", "critical", ["system.config"], 600)
    assert req.status is EmergencyStatus.PENDING

    clock.advance(1000)
    system.grant_emergency_access(req.id, "root")
    assert req.status is EmergencyStatus.GRANTED
    assert req.expires_at == clock.now + 600 * 1000
    with pytest.raises(InvalidStateError):
        system.grant_emergency_access(req.id, "root")

    system.log_emergency_access_usage(req.id, "restart-db", {"host": "db-1"})
    assert req.usage_log == [{"action": "restart-db", "timestamp": clock.now, "details": {"host": "db-1"}}]

    system.revoke_emergency_access(req.id, "root", "resolved")
    assert req.status is EmergencyStatus.REVOKED
    assert system.get_emergency_access(req.id).revoked_reason == "resolved"
    with pytest.raises(NotFoundError):
        system.grant_emergency_access("missing", "root")


async def test_statistics(system, clock):
    start = clock.now
    done = await request(system, priority="high")
    clock.advance(4000)
    await system.process_decision(decide(done, SEC1))
    await request(system, requested_action="agent_create")

    stats = system.get_statistics(approver_id="sec-1")
    assert stats.total_requests == 2
    assert stats.pending_requests == 1
    assert stats.approved_requests == 1
    assert stats.average_approval_time == 4000
    assert stats.by_priority["high"] == 1 and stats.by_priority["normal"] == 1
    assert stats.by_operation_type == {"agent_delete": 1, "agent_create": 1}
    mine = stats.by_approver["sec-1"]
    assert (mine.total, mine.approved, mine.rejected, mine.average_time) == (1, 1, 0, 4000)
    assert stats.period_end == clock.now

    assert system.get_statistics(start_time=start + 1).total_requests == 1

    system.clear_all()
    assert system.get_statistics().total_requests == 0
