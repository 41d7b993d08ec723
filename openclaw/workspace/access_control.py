"""
WorkspaceAccessControl — which files a session may touch.

Design:
- DM / main sessions work in the agent's own ``workspace-<agentId>/`` with
  full permissions
- group / channel sessions work in the group workspace; members read and
  write, admins also delete, non-members are blocked entirely
- Paths outside the resolved root are judged by ``_check_cross_workspace``:
  the agent's own workspace is readable from a group except private files,
  other agents' workspaces are never reachable
- Private memory (``MEMORY.md``, ``memory/``, ``.private/``) never surfaces
  inside a group; callers get a suggested path under ``shared/`` instead
"""

from __future__ import annotations

import os
import re
from functools import lru_cache
from pathlib import Path

from loguru import logger

from openclaw.workspace.group import GroupWorkspaceManager
from openclaw.workspace.types import (
    AccessControl,
    FileAccessCheckResult,
    FileAccessPermissions,
    SessionType,
    WorkspaceResolution,
    WorkspaceType,
)


GROUP_ALLOWED_PATHS = [
    "GROUP_INFO.md",
    "MEMBERS.md",
    "SHARED_MEMORY.md",
    "RULES.md",
    "shared/**/*",
    "history/**/*",
    "meeting-notes/**/*",
    "decisions/**/*",
]

PRIVATE_PATTERNS = ["MEMORY.md", "memory/**/*", ".private/**/*"]

OPERATIONS = ("read", "write", "delete")


# ---------------------------------------------------------------------------
# Glob matching
# ---------------------------------------------------------------------------

@lru_cache(maxsize=256)
def compile_glob(pattern: str) -> re.Pattern[str]:
    """Translate a path glob to a regex.

    ``*`` and ``?`` stay inside one path segment, ``**`` crosses segments and
    ``**/`` also matches zero directories, so ``shared/**/*`` covers
    ``shared/a.md`` as well as ``shared/x/y/a.md``.
    """
    pattern = pattern.replace("\\", "/")
    out = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            out.append("[^/]")
            i += 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(out) + "$")


def match_paths(relative_path: str, patterns: list[str]) -> bool:
    normalized = relative_path.replace("\\", "/")
    return any(compile_glob(p).match(normalized) for p in patterns)


def is_private_file(relative_path: str) -> bool:
    return match_paths(relative_path, PRIVATE_PATTERNS)


def _relative(path: Path, root: Path) -> str | None:
    if path == root or not path.is_relative_to(root):
        return None
    return path.relative_to(root).as_posix()


def _normalize(path: str | Path) -> Path:
    return Path(os.path.normpath(Path(path).expanduser()))


# ---------------------------------------------------------------------------
# Access control
# ---------------------------------------------------------------------------

class WorkspaceAccessControl:
    """
    Usage::

        acl = WorkspaceAccessControl(groups, agent_root="~/.openclaw")
        ws = acl.resolve_workspace("feishu:g1", SessionType.GROUP, "coder", group_id="g1")
        result = acl.check_file_access(ws.root_dir / "shared/plan.md", "write", ws)
    """

    def __init__(self, group_manager: GroupWorkspaceManager, agent_root: str | Path = "~/.openclaw") -> None:
        self.group_manager = group_manager
        self.agent_root = _normalize(agent_root)

    def agent_workspace_dir(self, agent_id: str) -> Path:
        return self.agent_root / f"workspace-{agent_id}"

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    @staticmethod
    def workspace_type_for(session_type: SessionType | str) -> WorkspaceType:
        if SessionType(session_type) in (SessionType.GROUP, SessionType.CHANNEL):
            return WorkspaceType.GROUP
        return WorkspaceType.AGENT

    def resolve_workspace(
        self,
        session_key: str,
        session_type: SessionType | str,
        agent_id: str,
        group_id: str | None = None,
    ) -> WorkspaceResolution:
        session_type = SessionType(session_type)
        workspace_type = self.workspace_type_for(session_type)

        if workspace_type is WorkspaceType.GROUP and group_id:
            ws = self.group_manager.ensure_group_workspace(group_id, group_id, agent_id)
            root_dir = _normalize(ws.dir)
        else:
            workspace_type = WorkspaceType.AGENT
            group_id = None
            root_dir = self.agent_workspace_dir(agent_id)

        return WorkspaceResolution(
            type=workspace_type,
            root_dir=root_dir,
            session_key=session_key,
            session_type=session_type,
            agent_id=agent_id,
            access_control=self.get_access_control(agent_id, group_id),
            group_id=group_id,
        )

    def get_access_control(self, agent_id: str, group_id: str | None = None) -> AccessControl:
        if group_id is None:
            return AccessControl(
                allowed_paths=["**/*"],
                default_permissions=FileAccessPermissions(can_read=True, can_write=True, can_delete=True),
            )

        if agent_id not in self.group_manager.get_members(group_id):
            return AccessControl(blocked_paths=["**/*"])

        is_admin = agent_id in self.group_manager.get_admins(group_id)
        return AccessControl(
            allowed_paths=list(GROUP_ALLOWED_PATHS),
            default_permissions=FileAccessPermissions(can_read=True, can_write=True, can_delete=is_admin),
        )

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def check_file_access(
        self,
        file_path: str | Path,
        operation: str,
        workspace: WorkspaceResolution,
    ) -> FileAccessCheckResult:
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown file operation: {operation!r}")

        path = _normalize(file_path)
        rel = _relative(path, _normalize(workspace.root_dir))
        if rel is None:
            return self._check_cross_workspace(path, workspace)

        acl = workspace.access_control
        if match_paths(rel, acl.blocked_paths):
            return FileAccessCheckResult(False, f"{rel} is blocked")
        if not match_paths(rel, acl.allowed_paths):
            return FileAccessCheckResult(False, f"{rel} is not in the allowed paths")

        perms = acl.default_permissions
        granted = {"read": perms.can_read, "write": perms.can_write, "delete": perms.can_delete}
        if not granted[operation]:
            return FileAccessCheckResult(False, f"No {operation} permission: {rel}")

        if workspace.type is WorkspaceType.GROUP and is_private_file(rel):
            return FileAccessCheckResult(
                False,
                f"Private files are not accessible in a group: {rel}",
                suggested_path=self._shared_path(path, workspace),
            )
        return FileAccessCheckResult(True)

    def _check_cross_workspace(self, path: Path, workspace: WorkspaceResolution) -> FileAccessCheckResult:
        if not path.is_relative_to(self.agent_root):
            # Outside every workspace: allowed, but point at the shared area
            return FileAccessCheckResult(True, suggested_path=self._shared_path(path, workspace))

        own_dir = self.agent_workspace_dir(workspace.agent_id)
        if not path.is_relative_to(own_dir):
            return FileAccessCheckResult(False, "Access to another agent's workspace is denied")

        if workspace.type is WorkspaceType.GROUP:
            rel = _relative(path, own_dir)
            if rel and is_private_file(rel):
                return FileAccessCheckResult(
                    False,
                    f"Private agent files are not accessible in a group: {rel}",
                    suggested_path=self._shared_path(path, workspace),
                )
        return FileAccessCheckResult(True)

    @staticmethod
    def _shared_path(path: Path, workspace: WorkspaceResolution) -> Path:
        return _normalize(workspace.root_dir) / "shared" / path.name

    def intercept_file_operation(
        self,
        file_path: str | Path,
        operation: str,
        workspace: WorkspaceResolution,
    ) -> Path | None:
        """Return the path to use: the given path, a suggested redirect, or None when denied."""
        result = self.check_file_access(file_path, operation, workspace)
        if result.allowed:
            return _normalize(file_path)
        if result.suggested_path is not None:
            logger.warning(f"[workspace] {operation} intercepted: {result.reason}; use {result.suggested_path}")
            return result.suggested_path
        logger.error(f"[workspace] {operation} denied: {result.reason}")
        return None

    def get_file_permissions(self, file_path: str | Path, workspace: WorkspaceResolution) -> FileAccessPermissions:
        return FileAccessPermissions(
            can_read=self.check_file_access(file_path, "read", workspace).allowed,
            can_write=self.check_file_access(file_path, "write", workspace).allowed,
            can_delete=self.check_file_access(file_path, "delete", workspace).allowed,
        )

    @staticmethod
    def validate_access_control(acl: AccessControl) -> bool:
        if not acl.allowed_paths:
            logger.warning("[workspace] Access control has no allowed paths")
            return False
        if acl.default_permissions is None:
            logger.warning("[workspace] Access control has no default permissions")
            return False
        return True
