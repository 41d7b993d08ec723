"""
Workspace package: group workspaces, access control, bootstrap files, knowledge sedimentation.
"""

from openclaw.workspace.access_control import WorkspaceAccessControl, compile_glob, match_paths
from openclaw.workspace.bootstrap import BootstrapLoader
from openclaw.workspace.group import GroupWorkspaceManager
from openclaw.workspace.knowledge import (
    DiscussionSession,
    KnowledgeSedimentation,
    KnowledgeSedimentationConfig,
)
from openclaw.workspace.types import (
    AccessControl,
    BootstrapFile,
    ChatMessage,
    FileAccessCheckResult,
    FileAccessPermissions,
    GroupMemberPermissions,
    GroupWorkspace,
    KnowledgeCategory,
    KnowledgeSedimentationResult,
    SessionType,
    WorkspaceResolution,
    WorkspaceStats,
    WorkspaceType,
)

__all__ = [
    "GroupWorkspaceManager",
    "WorkspaceAccessControl",
    "compile_glob",
    "match_paths",
    "BootstrapLoader",
    "KnowledgeSedimentation",
    "KnowledgeSedimentationConfig",
    "DiscussionSession",
    "AccessControl",
    "BootstrapFile",
    "ChatMessage",
    "FileAccessCheckResult",
    "FileAccessPermissions",
    "GroupMemberPermissions",
    "GroupWorkspace",
    "KnowledgeCategory",
    "KnowledgeSedimentationResult",
    "SessionType",
    "WorkspaceResolution",
    "WorkspaceStats",
    "WorkspaceType",
]
