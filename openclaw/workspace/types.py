"""
Workspace data types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class SessionType(str, Enum):
    DM = "dm"
    MAIN = "main"
    GROUP = "group"
    CHANNEL = "channel"


class WorkspaceType(str, Enum):
    AGENT = "agent"
    GROUP = "group"


class KnowledgeCategory(str, Enum):
    DECISION = "decision"
    MEETING_NOTES = "meeting-notes"
    SHARED_DOC = "shared-doc"
    ADR = "adr"


@dataclass
class BootstrapFile:
    """A Markdown file injected into an agent's context at session start."""

    path: Path
    content: str
    type: str = "custom"            # agents | soul | tools | identity | user | memory | skill | group-info | ...
    readonly: bool = False          # Agent knowledge shown inside a group is read-only
    priority: int | None = None     # Lower loads first

    @property
    def name(self) -> str:
        return Path(self.path).name


@dataclass
class FileAccessPermissions:
    can_read: bool = False
    can_write: bool = False
    can_delete: bool = False


@dataclass
class GroupMemberPermissions(FileAccessPermissions):
    is_admin: bool = False
    can_invite: bool = False
    can_kick: bool = False


@dataclass
class AccessControl:
    allowed_paths: list[str] = field(default_factory=list)
    blocked_paths: list[str] = field(default_factory=list)
    default_permissions: FileAccessPermissions = field(default_factory=FileAccessPermissions)


@dataclass
class GroupWorkspace:
    group_id: str
    group_name: str
    dir: Path
    members: list[str] = field(default_factory=list)
    admins: list[str] = field(default_factory=list)
    created_at: int = 0
    created_by: str = "system"
    updated_at: int | None = None
    updated_by: str | None = None

    @property
    def group_info_path(self) -> Path:
        return self.dir / "GROUP_INFO.md"

    @property
    def members_path(self) -> Path:
        return self.dir / "MEMBERS.md"

    @property
    def shared_memory_path(self) -> Path:
        return self.dir / "SHARED_MEMORY.md"

    @property
    def rules_path(self) -> Path:
        return self.dir / "RULES.md"

    @property
    def shared_dir(self) -> Path:
        return self.dir / "shared"

    @property
    def history_dir(self) -> Path:
        return self.dir / "history"

    @property
    def meeting_notes_dir(self) -> Path:
        return self.dir / "meeting-notes"

    @property
    def decisions_dir(self) -> Path:
        return self.dir / "decisions"


@dataclass
class WorkspaceResolution:
    type: WorkspaceType
    root_dir: Path
    session_key: str
    session_type: SessionType
    agent_id: str
    access_control: AccessControl
    group_id: str | None = None


@dataclass
class FileAccessCheckResult:
    allowed: bool
    reason: str | None = None
    suggested_path: Path | None = None


@dataclass
class WorkspaceStats:
    total_files: int = 0
    total_size: int = 0
    last_modified: int = 0
    member_count: int | None = None


@dataclass
class ChatMessage:
    """One message of a group discussion."""

    id: str
    sender_id: str
    content: str
    timestamp: int
    importance: str = "medium"                      # low | medium | high
    keywords: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChatMessage":
        meta = data.get("metadata") or {}
        return cls(
            id=data["id"],
            sender_id=data["sender_id"],
            content=data.get("content", ""),
            timestamp=data["timestamp"],
            importance=meta.get("importance", data.get("importance", "medium")),
            keywords=list(meta.get("keywords", data.get("keywords", []))),
        )


@dataclass
class KnowledgeSedimentationResult:
    document_path: Path
    category: KnowledgeCategory
    title: str
    participants: list[str]
    message_count: int
    created_at: int
