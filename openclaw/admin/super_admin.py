"""
SuperAdminManager — human administrators, their sessions and an audit trail.

Design:
- Admins get their role's default permissions plus any extras
- ``has_permission`` understands ``*``, exact names and ``prefix.*``
- Sessions enforce the IP whitelist and the concurrent-session cap; they
  start MFA-verified unless the admin has MFA enabled
- Every admin mutation is recorded as an AdminOperation; the log is capped
  at 10000 entries and trimmed back to the newest 5000
"""

from __future__ import annotations

import itertools
import re
from dataclasses import replace
from typing import Any, Callable

from loguru import logger

from openclaw.admin.types import (
    ROLE_PERMISSIONS,
    AdminConfig,
    AdminOperation,
    AdminOperationType,
    AdminScope,
    AdminSession,
    SuperAdmin,
    SuperAdminRole,
)
from openclaw.clock import Clock, now_ms
from openclaw.errors import AlreadyExistsError, InvalidStateError, NotFoundError, PermissionDeniedError
from openclaw.repository import IndexedRepository


MAX_OPERATIONS = 10000
TRIMMED_OPERATIONS = 5000

_IMMUTABLE_FIELDS = {"id", "created_at", "created_by"}

MfaVerifier = Callable[[SuperAdmin, str], bool]


def ip_allowed(ip: str, whitelist: list[str]) -> bool:
    for pattern in whitelist:
        if "*" in pattern:
            regex = "^" + re.escape(pattern).replace(r"\*", ".*") + "$"
            if re.match(regex, ip):
                return True
        elif pattern == ip:
            return True
    return False


class SuperAdminManager:
    """
    Usage::

        admins = SuperAdminManager(AdminConfig(require_mfa=True))
        admins.create_super_admin("a1", user_id="u1", role="security-admin",
                                  name="Ana", email="ana@example.com", created_by="root")
        session = admins.create_session("a1", ip_address="10.0.0.5", user_agent="cli")
    """

    def __init__(
        self,
        config: AdminConfig | None = None,
        clock: Clock = now_ms,
        mfa_verifier: MfaVerifier | None = None,
    ) -> None:
        self._clock = clock
        self._mfa_verifier = mfa_verifier
        self._seq = itertools.count(1)
        self._admins: IndexedRepository[SuperAdmin] = IndexedRepository(
            "Super admin", indexes={"role": lambda a: SuperAdminRole(a.role)}
        )
        self._sessions: IndexedRepository[AdminSession] = IndexedRepository(
            "Session", indexes={"admin": lambda s: s.admin_id}
        )
        self._operations: list[AdminOperation] = []
        self.config: AdminConfig | None = None
        if config is not None:
            self.set_config(config)

    def set_config(self, config: AdminConfig) -> None:
        self.config = config
        for admin in config.super_admins:
            if admin.id in self._admins:
                self._admins.update(admin)
            else:
                self._admins.add(admin)

    def get_config(self) -> AdminConfig | None:
        return self.config

    # ------------------------------------------------------------------
    # Admin accounts
    # ------------------------------------------------------------------

    def create_super_admin(
        self,
        id: str,
        user_id: str,
        role: SuperAdminRole | str,
        name: str,
        email: str,
        created_by: str,
        phone: str | None = None,
        permissions: list[str] | None = None,
        scope: AdminScope | None = None,
        ip_whitelist: list[str] | None = None,
    ) -> SuperAdmin:
        role = SuperAdminRole(role)
        if id in self._admins:
            raise AlreadyExistsError(f"Super admin already exists: {id}")

        admin = SuperAdmin(
            id=id,
            user_id=user_id,
            role=role,
            name=name,
            email=email,
            phone=phone,
            permissions=list(ROLE_PERMISSIONS[role]) + list(permissions or []),
            scope=scope,
            ip_whitelist=ip_whitelist,
            mfa_enabled=bool(self.config and self.config.require_mfa),
            created_at=self._clock(),
            created_by=created_by,
        )
        self._admins.add(admin)
        self.record_operation(
            admin_id=created_by,
            operation_type=AdminOperationType.USER_MANAGEMENT,
            target_type="user",
            target_id=id,
            action="create_super_admin",
            parameters={"role": role.value},
        )
        logger.info(f"[admin] Created super admin {id} ({role.value})")
        return admin

    def get_super_admin(self, admin_id: str) -> SuperAdmin | None:
        return self._admins.get(admin_id)

    def get_all_super_admins(self) -> list[SuperAdmin]:
        return self._admins.all()

    def _require(self, admin_id: str) -> SuperAdmin:
        admin = self._admins.get(admin_id)
        if admin is None:
            raise NotFoundError(f"Super admin not found: {admin_id}")
        return admin

    def update_super_admin(self, admin_id: str, updates: dict[str, Any], operator_id: str) -> SuperAdmin:
        admin = self._require(admin_id)
        updates = {k: v for k, v in updates.items() if k not in _IMMUTABLE_FIELDS}
        if "role" in updates:
            updates["role"] = SuperAdminRole(updates["role"])
        updated = replace(admin, **updates, updated_at=self._clock())
        self._admins.update(updated)
        self.record_operation(
            admin_id=operator_id,
            operation_type=AdminOperationType.USER_MANAGEMENT,
            target_type="user",
            target_id=admin_id,
            action="update_super_admin",
            parameters={k: v.value if isinstance(v, SuperAdminRole) else v for k, v in updates.items()},
        )
        return updated

    def delete_super_admin(self, admin_id: str, operator_id: str) -> bool:
        if admin_id not in self._admins:
            return False
        self.terminate_all_sessions(admin_id, operator_id, "Admin deleted")
        self._admins.remove(admin_id)
        self.record_operation(
            admin_id=operator_id,
            operation_type=AdminOperationType.USER_MANAGEMENT,
            target_type="user",
            target_id=admin_id,
            action="delete_super_admin",
        )
        logger.info(f"[admin] Deleted super admin {admin_id}")
        return True

    def set_admin_active(self, admin_id: str, is_active: bool, operator_id: str) -> SuperAdmin:
        admin = self._require(admin_id)
        admin.is_active = is_active
        admin.updated_at = self._clock()
        if not is_active:
            self.terminate_all_sessions(admin_id, operator_id, "Admin deactivated")
        self.record_operation(
            admin_id=operator_id,
            operation_type=AdminOperationType.USER_MANAGEMENT,
            target_type="user",
            target_id=admin_id,
            action="activate_admin" if is_active else "deactivate_admin",
        )
        return admin

    # ------------------------------------------------------------------
    # Permission checks
    # ------------------------------------------------------------------

    def has_permission(self, admin_id: str, permission: str) -> bool:
        admin = self._admins.get(admin_id)
        if admin is None or not admin.is_active:
            return False
        if "*" in admin.permissions or permission in admin.permissions:
            return True
        return any(
            p.endswith(".*") and permission.startswith(p[:-2])
            for p in admin.permissions
        )

    def can_operate_on(self, admin_id: str, target_type: str, target_id: str) -> bool:
        admin = self._admins.get(admin_id)
        if admin is None or not admin.is_active:
            return False
        if admin.role is SuperAdminRole.SYSTEM_ADMIN or admin.scope is None:
            return True

        allowed = {
            "organization": admin.scope.organizations,
            "agentGroup": admin.scope.agent_groups,
            "agent_group": admin.scope.agent_groups,
            "tool": admin.scope.tools,
        }.get(target_type)
        return allowed is None or target_id in allowed

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(
        self,
        admin_id: str,
        ip_address: str,
        user_agent: str,
        location: dict[str, Any] | None = None,
    ) -> AdminSession:
        admin = self._require(admin_id)
        if not admin.is_active:
            raise InvalidStateError(f"Super admin is not active: {admin_id}")

        cfg = self.config or AdminConfig()
        if cfg.ip_whitelist_enabled:
            allowed_ips = admin.ip_whitelist or cfg.global_ip_whitelist
            if allowed_ips and not ip_allowed(ip_address, allowed_ips):
                raise PermissionDeniedError(f"IP address not in whitelist: {ip_address}")

        if cfg.max_concurrent_sessions and len(self.get_active_sessions(admin_id)) >= cfg.max_concurrent_sessions:
            raise InvalidStateError(f"Maximum concurrent sessions exceeded: {cfg.max_concurrent_sessions}")

        now = self._clock()
        session = AdminSession(
            id=f"session-{admin_id}-{now}-{next(self._seq)}",
            admin_id=admin_id,
            started_at=now,
            last_activity_at=now,
            expires_at=now + (cfg.session_timeout_seconds or 3600) * 1000,
            ip_address=ip_address,
            user_agent=user_agent,
            location=location,
            mfa_verified=not admin.mfa_enabled,
        )
        self._sessions.add(session)
        admin.is_online = True
        admin.last_active_at = now
        logger.info(f"[admin] Session {session.id} started from {ip_address}")
        return session

    def get_session(self, session_id: str) -> AdminSession | None:
        return self._sessions.get(session_id)

    def validate_session(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None or not session.is_active:
            return False

        now = self._clock()
        if session.expires_at < now:
            self.terminate_session(session_id, "system", "Session expired")
            return False

        session.last_activity_at = now
        admin = self._admins.get(session.admin_id)
        if admin is not None:
            admin.last_active_at = now
        return True

    def verify_mfa(self, session_id: str, code: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"Session not found: {session_id}")

        if self._mfa_verifier is None:
            logger.warning("[admin] No MFA verifier configured, accepting code")
            verified = True
        else:
            verified = self._mfa_verifier(self._require(session.admin_id), code)

        if verified:
            session.mfa_verified = True
            session.mfa_verified_at = self._clock()
        return verified

    def get_active_sessions(self, admin_id: str) -> list[AdminSession]:
        return [s for s in self._sessions.find("admin", admin_id) if s.is_active]

    def terminate_session(self, session_id: str, operator_id: str, reason: str | None = None) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        session.is_active = False
        session.terminated_at = self._clock()
        session.terminated_by = operator_id
        session.termination_reason = reason

        if not self.get_active_sessions(session.admin_id):
            admin = self._admins.get(session.admin_id)
            if admin is not None:
                admin.is_online = False

    def terminate_all_sessions(self, admin_id: str, operator_id: str, reason: str | None = None) -> None:
        for session in self.get_active_sessions(admin_id):
            self.terminate_session(session.id, operator_id, reason)

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------

    def record_operation(
        self,
        admin_id: str,
        operation_type: AdminOperationType | str,
        target_type: str,
        target_id: str,
        action: str,
        success: bool = True,
        parameters: dict[str, Any] | None = None,
        error: str | None = None,
        affected_entities: list[dict[str, str]] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        session_id: str | None = None,
    ) -> AdminOperation:
        now = self._clock()
        op = AdminOperation(
            id=f"op-{admin_id}-{now}-{next(self._seq)}",
            admin_id=admin_id,
            operation_type=AdminOperationType(operation_type),
            target_type=target_type,
            target_id=target_id,
            action=action,
            success=success,
            timestamp=now,
            parameters=dict(parameters or {}),
            error=error,
            affected_entities=list(affected_entities or []),
            ip_address=ip_address,
            user_agent=user_agent,
            session_id=session_id,
        )
        self._operations.append(op)
        if len(self._operations) > MAX_OPERATIONS:
            self._operations = self._operations[-TRIMMED_OPERATIONS:]
        return op

    def get_operation_history(
        self,
        admin_id: str | None = None,
        operation_type: AdminOperationType | str | None = None,
        target_type: str | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
        limit: int | None = None,
    ) -> list[AdminOperation]:
        ops = self._operations
        if admin_id:
            ops = [op for op in ops if op.admin_id == admin_id]
        if operation_type:
            ops = [op for op in ops if op.operation_type is AdminOperationType(operation_type)]
        if target_type:
            ops = [op for op in ops if op.target_type == target_type]
        if start_time:
            ops = [op for op in ops if op.timestamp >= start_time]
        if end_time:
            ops = [op for op in ops if op.timestamp <= end_time]

        # Newest first; equal timestamps keep reverse insertion order
        ops = list(reversed(ops))
        ops.sort(key=lambda op: op.timestamp, reverse=True)
        return ops[:limit] if limit else ops

    def get_admin_statistics(self, admin_id: str) -> dict[str, Any]:
        ops = self.get_operation_history(admin_id=admin_id)
        by_type: dict[str, int] = {}
        for op in ops:
            by_type[op.operation_type.value] = by_type.get(op.operation_type.value, 0) + 1
        return {
            "total_operations": len(ops),
            "operations_by_type": by_type,
            "last_operation": ops[0] if ops else None,
            "active_sessions": len(self.get_active_sessions(admin_id)),
        }

    def clear_all(self) -> None:
        self._admins.clear()
        self._sessions.clear()
        self._operations = []
        self.config = None
