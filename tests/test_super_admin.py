import pytest

from openclaw.admin import (
    AdminConfig,
    AdminOperationType,
    AdminScope,
    SuperAdmin,
    SuperAdminManager,
    SuperAdminRole,
    ip_allowed,
)
from openclaw.admin.super_admin import TRIMMED_OPERATIONS
from openclaw.errors import AlreadyExistsError, InvalidStateError, NotFoundError, PermissionDeniedError


@pytest.fixture
def admins(clock):
    return SuperAdminManager(AdminConfig(), clock=clock)


def make_admin(admins, id="a1", role="security-admin", **kw):
    return admins.create_super_admin(
        id, user_id=f"u-{id}", role=role, name=id.upper(), email=f"{id}@example.com", created_by="root", **kw
    )


def test_create_merges_role_permissions(admins, clock):
    admin = make_admin(admins, permissions=["tool.*"])

    assert admin.role is SuperAdminRole.SECURITY_ADMIN
    assert admin.permissions == [
        "permission.manage", "approval.manage", "audit.view", "emergency.access", "tool.*",
    ]
    assert admin.created_at == clock.now
    assert not admin.mfa_enabled
    assert admin.to_dict()["role"] == "security-admin"

    with pytest.raises(AlreadyExistsError):
        make_admin(admins)

    [op] = admins.get_operation_history(admin_id="root")
    assert (op.action, op.target_id, op.parameters) == ("create_super_admin", "a1", {"role": "security-admin"})


def test_has_permission(admins):
    make_admin(admins, permissions=["tool.*"])
    make_admin(admins, "root-admin", role="system-admin")

    assert admins.has_permission("a1", "approval.manage")
    assert admins.has_permission("a1", "tool.exec")
    assert not admins.has_permission("a1", "agent.manage")
    assert admins.has_permission("root-admin", "anything.at.all")
    assert not admins.has_permission("ghost", "audit.view")

    admins.set_admin_active("a1", False, operator_id="root")
    assert not admins.has_permission("a1", "approval.manage")


def test_can_operate_on_scope(admins):
    make_admin(admins, scope=AdminScope(organizations=["acme"]))
    make_admin(admins, "a2")
    make_admin(admins, "sys", role="system-admin", scope=AdminScope(organizations=[]))

    assert admins.can_operate_on("a1", "organization", "acme")
    assert not admins.can_operate_on("a1", "organization", "globex")
    assert admins.can_operate_on("a1", "tool", "bash")
    assert admins.can_operate_on("a2", "organization", "globex")
    assert admins.can_operate_on("sys", "organization", "globex")
    assert not admins.can_operate_on("ghost", "organization", "acme")


def test_update_and_delete(admins):
    make_admin(admins)
    updated = admins.update_super_admin("a1", {"id": "nope", "name": "Ana", "role": "audit-viewer"}, "root")
    assert updated.id == "a1"
    assert updated.name == "Ana"
    assert updated.role is SuperAdminRole.AUDIT_VIEWER
    assert admins.get_super_admin("a1") is updated

    with pytest.raises(NotFoundError):
        admins.update_super_admin("ghost", {"name": "x"}, "root")

    session = admins.create_session("a1", "10.0.0.1", "cli")
    assert admins.delete_super_admin("a1", "root")
    assert not admins.delete_super_admin("a1", "root")
    assert admins.get_session(session.id).termination_reason == "Admin deleted"


@pytest.mark.parametrize("ip,whitelist,expected", [
    ("10.0.0.5", ["10.0.0.5"], True),
    ("10.0.0.5", ["10.0.*"], True),
    ("10.1.0.5", ["10.0.*"], False),
    ("10x0x0x5", ["10.0.0.5"], False),
    ("192.168.1.1", [], False),
])
def test_ip_allowed(ip, whitelist, expected):
    assert ip_allowed(ip, whitelist) is expected


def test_session_ip_whitelist_and_limit(clock):
    admins = SuperAdminManager(
        AdminConfig(ip_whitelist_enabled=True, global_ip_whitelist=["10.0.*"], max_concurrent_sessions=1),
        clock=clock,
    )
    make_admin(admins)

    with pytest.raises(PermissionDeniedError, match="IP address not in whitelist: 192.168.1.1"):
        admins.create_session("a1", "192.168.1.1", "cli")

    session = admins.create_session("a1", "10.0.0.5", "cli")
    assert session.mfa_verified
    assert session.expires_at == clock.now + 3600 * 1000
    assert admins.get_super_admin("a1").is_online

    with pytest.raises(InvalidStateError, match="Maximum concurrent sessions exceeded: 1"):
        admins.create_session("a1", "10.0.0.6", "cli")


def test_inactive_admin_cannot_log_in(admins):
    make_admin(admins)
    admins.set_admin_active("a1", False, "root")
    with pytest.raises(InvalidStateError):
        admins.create_session("a1", "10.0.0.1", "cli")
    with pytest.raises(NotFoundError):
        admins.create_session("ghost", "10.0.0.1", "cli")


def test_session_expiry(admins, clock):
    make_admin(admins)
    session = admins.create_session("a1", "10.0.0.1", "cli")

    clock.advance(1000)
    assert admins.validate_session(session.id)
    assert session.last_activity_at == clock.now

    clock.advance(3600 * 1000)
    assert not admins.validate_session(session.id)
    assert session.termination_reason == "Session expired"
    assert session.terminated_by == "system"
    assert not admins.get_super_admin("a1").is_online
    assert not admins.validate_session("missing")


def test_mfa_verification(clock):
    admins = SuperAdminManager(
        AdminConfig(require_mfa=True),
        clock=clock,
        mfa_verifier=lambda admin, code: code == "123456",
    )
    make_admin(admins)
    session = admins.create_session("a1", "10.0.0.1", "cli")
    assert not session.mfa_verified

    assert not admins.verify_mfa(session.id, "000000")
    assert not session.mfa_verified
    assert admins.verify_mfa(session.id, "123456")
    assert session.mfa_verified_at == clock.now

    with pytest.raises(NotFoundError):
        admins.verify_mfa("missing", "123456")


def test_mfa_without_verifier_accepts(clock):
    admins = SuperAdminManager(AdminConfig(require_mfa=True), clock=clock)
    make_admin(admins)
    session = admins.create_session("a1", "10.0.0.1", "cli")
    assert admins.verify_mfa(session.id, "anything")


def test_deactivation_terminates_sessions(admins):
    make_admin(admins)
    first = admins.create_session("a1", "10.0.0.1", "cli")
    second = admins.create_session("a1", "10.0.0.1", "web")
    assert first.id != second.id

    admins.set_admin_active("a1", False, "root")
    assert admins.get_active_sessions("a1") == []
    assert second.termination_reason == "Admin deactivated"


def test_operation_history_filters(admins, clock):
    make_admin(admins)
    clock.advance(1000)
    admins.record_operation("a1", "agent_delete", "agent", "coder", "delete")
    clock.advance(1000)
    admins.record_operation("a1", AdminOperationType.AUDIT_EXPORT, "system", "audit", "export", success=False)

    history = admins.get_operation_history(admin_id="a1")
    assert [op.action for op in history] == ["export", "delete"]
    assert [op.action for op in admins.get_operation_history(operation_type="agent_delete")] == ["delete"]
    assert [op.action for op in admins.get_operation_history(target_type="user")] == ["create_super_admin"]
    assert len(admins.get_operation_history(start_time=clock.now - 1000)) == 2
    assert len(admins.get_operation_history(limit=1)) == 1

    stats = admins.get_admin_statistics("a1")
    assert stats["total_operations"] == 2
    assert stats["operations_by_type"] == {"agent_delete": 1, "audit_export": 1}
    assert stats["last_operation"].action == "export"
    assert stats["active_sessions"] == 0


def test_operation_log_is_trimmed(admins):
    for i in range(10001):
        admins.record_operation("bot", "agent_create", "agent", f"a{i}", "create")
    history = admins.get_operation_history()
    assert len(history) == TRIMMED_OPERATIONS
    assert history[0].target_id == "a10000"


def test_config_seeds_admins_and_clear_all(clock):
    seeded = SuperAdmin(id="s1", user_id="u1", role=SuperAdminRole.AUDIT_VIEWER, name="S", email="s@x",
                        permissions=["audit.view"])
    admins = SuperAdminManager(AdminConfig(super_admins=[seeded]), clock=clock)
    assert admins.get_all_super_admins() == [seeded]
    assert admins.get_config().super_admins == [seeded]

    admins.clear_all()
    assert admins.get_all_super_admins() == []
    assert admins.get_config() is None
