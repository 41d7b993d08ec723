"""
Admin, session and approval records.

All timestamps are epoch milliseconds; durations given in seconds are named
``*_seconds``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from openclaw.organization.types import record_dict


class SuperAdminRole(str, Enum):
    SYSTEM_ADMIN = "system-admin"
    SECURITY_ADMIN = "security-admin"
    COMPLIANCE_ADMIN = "compliance-admin"
    OPERATIONS_ADMIN = "operations-admin"
    AUDIT_VIEWER = "audit-viewer"


ROLE_PERMISSIONS: dict[SuperAdminRole, list[str]] = {
    SuperAdminRole.SYSTEM_ADMIN: ["*"],
    SuperAdminRole.SECURITY_ADMIN: ["permission.manage", "approval.manage", "audit.view", "emergency.access"],
    SuperAdminRole.COMPLIANCE_ADMIN: ["approval.manage", "audit.view", "audit.export"],
    SuperAdminRole.OPERATIONS_ADMIN: ["agent.manage", "system.config", "approval.view"],
    SuperAdminRole.AUDIT_VIEWER: ["audit.view", "approval.view"],
}


class AdminOperationType(str, Enum):
    AGENT_CREATE = "agent_create"
    AGENT_DELETE = "agent_delete"
    AGENT_SUSPEND = "agent_suspend"
    AGENT_ACTIVATE = "agent_activate"
    AGENT_CONFIG_CHANGE = "agent_config_change"
    PERMISSION_GRANT = "permission_grant"
    PERMISSION_REVOKE = "permission_revoke"
    APPROVAL_OVERRIDE = "approval_override"
    SYSTEM_CONFIG_CHANGE = "system_config_change"
    EMERGENCY_STOP = "emergency_stop"
    AUDIT_EXPORT = "audit_export"
    USER_MANAGEMENT = "user_management"


class ApprovalPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"
    EMERGENCY = "emergency"


PRIORITY_RANK = {
    ApprovalPriority.LOW: 1,
    ApprovalPriority.NORMAL: 2,
    ApprovalPriority.HIGH: 3,
    ApprovalPriority.URGENT: 4,
    ApprovalPriority.EMERGENCY: 5,
}


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class ApprovalType(str, Enum):
    ANY = "any"
    ALL = "all"
    MAJORITY = "majority"
    WEIGHTED = "weighted"


class EmergencyStatus(str, Enum):
    PENDING = "pending"
    GRANTED = "granted"
    DENIED = "denied"
    EXPIRED = "expired"
    REVOKED = "revoked"


# ---------------------------------------------------------------------------
# Super admins and sessions
# ---------------------------------------------------------------------------

@dataclass
class AdminScope:
    """None means unrestricted for that target type."""

    organizations: list[str] | None = None
    agent_groups: list[str] | None = None
    tools: list[str] | None = None


@dataclass
class SuperAdmin:
    id: str
    user_id: str
    role: SuperAdminRole
    name: str
    email: str
    permissions: list[str] = field(default_factory=list)
    phone: str | None = None
    is_active: bool = True
    is_online: bool = False
    last_active_at: int | None = None
    scope: AdminScope | None = None
    mfa_enabled: bool = False
    mfa_method: str | None = None              # totp | sms | email
    ip_whitelist: list[str] | None = None
    created_at: int = 0
    created_by: str = "system"
    updated_at: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return record_dict(self)


@dataclass
class AdminSession:
    id: str
    admin_id: str
    started_at: int
    last_activity_at: int
    expires_at: int
    ip_address: str
    user_agent: str
    location: dict[str, Any] | None = None
    mfa_verified: bool = False
    mfa_verified_at: int | None = None
    is_active: bool = True
    terminated_at: int | None = None
    terminated_by: str | None = None
    termination_reason: str | None = None


@dataclass
class AdminOperation:
    id: str
    admin_id: str
    operation_type: AdminOperationType
    target_type: str                           # agent | user | system | permission | approval
    target_id: str
    action: str
    success: bool
    timestamp: int
    parameters: dict[str, Any] = field(default_factory=dict)
    reason: str | None = None
    error: str | None = None
    affected_entities: list[dict[str, str]] = field(default_factory=list)
    duration: int = 0
    ip_address: str | None = None
    user_agent: str | None = None
    session_id: str | None = None


@dataclass
class AdminConfig:
    super_admins: list[SuperAdmin] = field(default_factory=list)
    approval_policies: list["ApprovalPolicy"] = field(default_factory=list)

    # Sessions
    session_timeout_seconds: int = 3600
    session_extension_allowed: bool = True
    max_concurrent_sessions: int = 0          # 0 = unlimited

    # Security
    require_mfa: bool = False
    ip_whitelist_enabled: bool = False
    global_ip_whitelist: list[str] = field(default_factory=list)

    # Audit
    audit_retention_days: int = 90
    detailed_audit_logging: bool = False

    # Emergency access
    emergency_access_enabled: bool = True
    emergency_access_max_duration_seconds: int = 4 * 3600


# ---------------------------------------------------------------------------
# Advanced approvals
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PermissionSubject:
    type: str                                   # user | group | role
    id: str
    name: str | None = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | "PermissionSubject") -> "PermissionSubject":
        if isinstance(data, PermissionSubject):
            return data
        return cls(type=data.get("type", "user"), id=data["id"], name=data.get("name"))


@dataclass
class ApprovalRecord:
    approver: PermissionSubject
    approved: bool
    timestamp: int
    weight: float | None = None
    comment: str | None = None
    ip_address: str | None = None


@dataclass
class AdvancedApprovalRequest:
    id: str
    requester: PermissionSubject
    requested_action: AdminOperationType
    target_type: str
    target_id: str
    title: str
    description: str
    reason: str
    approvers: list[PermissionSubject]
    priority: ApprovalPriority = ApprovalPriority.NORMAL
    required_approvals: int = 1
    approval_type: ApprovalType = ApprovalType.ANY
    approver_weights: dict[str, float] = field(default_factory=dict)
    status: ApprovalStatus = ApprovalStatus.PENDING
    current_level: int = 1
    approvals: list[ApprovalRecord] = field(default_factory=list)
    created_at: int = 0
    expires_at: int | None = None
    approved_at: int | None = None
    rejected_at: int | None = None
    attachments: list[dict[str, Any]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ApprovalDecision:
    request_id: str
    approver: PermissionSubject
    decision: str                               # approve | reject | delegate
    comment: str | None = None
    delegate_to: PermissionSubject | None = None
    timestamp: int | None = None
    ip_address: str | None = None


@dataclass
class AutoApprovalRule:
    """``condition`` is ``field=value`` or ``field!=value`` over request fields."""

    condition: str
    action: str = "approve"                     # approve | reject


@dataclass
class PolicyScope:
    operations: list[AdminOperationType] | None = None
    agent_groups: list[str] | None = None
    organizations: list[str] | None = None


@dataclass
class ApprovalPolicy:
    id: str
    name: str
    approvers: list[PermissionSubject]
    applies_to: PolicyScope = field(default_factory=PolicyScope)
    required_approvals: int = 1
    auto_approval_rules: list[AutoApprovalRule] = field(default_factory=list)
    enabled: bool = True
    priority: int = 0
    description: str | None = None
    created_at: int = 0
    created_by: str = "system"


@dataclass
class EmergencyAccessRequest:
    id: str
    requester: SuperAdmin
    emergency_type: str                         # system-outage | security-incident | data-loss | critical-bug | other
    description: str
    severity: str                               # critical | high | medium
    requested_permissions: list[str]
    duration_seconds: int
    status: EmergencyStatus = EmergencyStatus.PENDING
    approved_by: str | None = None
    approved_at: int | None = None
    expires_at: int | None = None
    usage_log: list[dict[str, Any]] = field(default_factory=list)
    created_at: int = 0
    revoked_at: int | None = None
    revoked_by: str | None = None
    revoked_reason: str | None = None


@dataclass
class ApproverStats:
    total: int = 0
    approved: int = 0
    rejected: int = 0
    average_time: float = 0.0


@dataclass
class ApprovalStatistics:
    total_requests: int
    pending_requests: int
    approved_requests: int
    rejected_requests: int
    expired_requests: int
    average_approval_time: float
    by_priority: dict[str, int]
    by_operation_type: dict[str, int]
    by_approver: dict[str, ApproverStats]
    period_start: int
    period_end: int


# ---------------------------------------------------------------------------
# Persistent agent approvals
# ---------------------------------------------------------------------------

@dataclass
class ApprovalHistoryEntry:
    timestamp: int
    actor: str
    action: str                                 # created | approved | rejected | cancelled | expired
    comment: str | None = None


@dataclass
class ApprovalRequest:
    """An agent-level request stored as ``<approvals_dir>/<id>.json``."""

    id: str
    requester_id: str
    approvers: list[str]
    action_type: str
    description: str
    params: Any = None
    approved_by: list[str] = field(default_factory=list)
    priority: ApprovalPriority = ApprovalPriority.NORMAL
    status: ApprovalStatus = ApprovalStatus.PENDING
    created_at: int = 0
    expires_at: int | None = None
    approved_at: int | None = None
    rejected_at: int | None = None
    rejection_reason: str | None = None
    history: list[ApprovalHistoryEntry] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return record_dict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ApprovalRequest":
        data = dict(data)
        return cls(
            priority=ApprovalPriority(data.pop("priority", "normal")),
            status=ApprovalStatus(data.pop("status", "pending")),
            history=[ApprovalHistoryEntry(**h) for h in data.pop("history", [])],
            metadata=data.pop("metadata", None) or {},
            **data,
        )


@dataclass
class ApprovalConfig:
    require_all: bool = False
    min_approvers: int = 1
    default_expiry_ms: int = 24 * 60 * 60 * 1000
    allow_auto_approve: bool = False
    # Each entry: {"condition": "action_type" | "priority", "value": ...}
    auto_approve_conditions: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class ApprovalStats:
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    expired: int = 0
    avg_approval_time: float = 0.0
