"""openclaw — agent platform core: organizations, approvals, channel policies and workspaces."""

from openclaw.errors import (
    AlreadyExistsError,
    InvalidStateError,
    NotFoundError,
    OpenClawError,
    PermissionDeniedError,
    ValidationError,
)
from openclaw.config import Settings, setup_logging
from openclaw.repository import IndexedRepository
from openclaw.gateway import Gateway, GatewayConfig, rate_limit, log_messages
from openclaw.channels import Channel, CLIChannel, IncomingMessage, OutgoingMessage
from openclaw.channels.policies import ChannelBinding, PolicyExecutor
from openclaw.organization import OrganizationIntegration
from openclaw.admin import AdvancedApprovalSystem, ApprovalSystem, SuperAdminManager
from openclaw.workspace import (
    BootstrapLoader,
    GroupWorkspaceManager,
    KnowledgeSedimentation,
    WorkspaceAccessControl,
)
from openclaw.onboarding import PRESETS, apply_auth_profile_config, apply_default_model, apply_provider_config

__version__ = "0.1.0"
__all__ = [
    # Errors
    "OpenClawError", "NotFoundError", "AlreadyExistsError", "ValidationError",
    "InvalidStateError", "PermissionDeniedError",
    # Config
    "Settings", "setup_logging", "IndexedRepository",
    # Gateway / channels
    "Gateway", "GatewayConfig", "rate_limit", "log_messages",
    "Channel", "CLIChannel", "IncomingMessage", "OutgoingMessage",
    "ChannelBinding", "PolicyExecutor",
    # Subsystems
    "OrganizationIntegration",
    "SuperAdminManager", "AdvancedApprovalSystem", "ApprovalSystem",
    "GroupWorkspaceManager", "WorkspaceAccessControl", "BootstrapLoader", "KnowledgeSedimentation",
    # Onboarding
    "PRESETS", "apply_provider_config", "apply_default_model", "apply_auth_profile_config",
]
