"""
Admin package: super admins, admin sessions, advanced and persistent approvals.
"""

from openclaw.admin.advanced_approval import AdvancedApprovalSystem, evaluate_condition
from openclaw.admin.approvals import ApprovalSystem
from openclaw.admin.super_admin import SuperAdminManager, ip_allowed
from openclaw.admin.types import (
    AdminConfig,
    AdminOperation,
    AdminOperationType,
    AdminScope,
    AdminSession,
    AdvancedApprovalRequest,
    ApprovalConfig,
    ApprovalDecision,
    ApprovalPolicy,
    ApprovalPriority,
    ApprovalRequest,
    ApprovalStatistics,
    ApprovalStats,
    ApprovalStatus,
    ApprovalType,
    AutoApprovalRule,
    EmergencyAccessRequest,
    EmergencyStatus,
    PermissionSubject,
    PolicyScope,
    SuperAdmin,
    SuperAdminRole,
)

__all__ = [
    # Managers
    "SuperAdminManager",
    "AdvancedApprovalSystem",
    "ApprovalSystem",
    "ip_allowed",
    "evaluate_condition",
    # Super admins
    "AdminConfig",
    "AdminOperation",
    "AdminOperationType",
    "AdminScope",
    "AdminSession",
    "SuperAdmin",
    "SuperAdminRole",
    # Advanced approvals
    "AdvancedApprovalRequest",
    "ApprovalDecision",
    "ApprovalPolicy",
    "ApprovalPriority",
    "ApprovalStatistics",
    "ApprovalStatus",
    "ApprovalType",
    "AutoApprovalRule",
    "EmergencyAccessRequest",
    "EmergencyStatus",
    "PermissionSubject",
    "PolicyScope",
    # Persistent approvals
    "ApprovalConfig",
    "ApprovalRequest",
    "ApprovalStats",
]
