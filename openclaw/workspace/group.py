"""
GroupWorkspaceManager — shared directories for group chats.

Layout of ``<root>/<group_id>/``::

    GROUP_INFO.md      name, id, creator, members, admins
    MEMBERS.md         one section per member
    SHARED_MEMORY.md   group knowledge, writable by members
    RULES.md           group rules
    shared/ history/ meeting-notes/ decisions/

GROUP_INFO.md is the source of truth: an existing directory is loaded back by
parsing it, and every membership change rewrites it.
"""

from __future__ import annotations

import re
import shutil
from pathlib import Path

import aiofiles
from loguru import logger

from openclaw.clock import Clock, now_ms
from openclaw.errors import NotFoundError, ValidationError
from openclaw.workspace.types import (
    BootstrapFile,
    GroupMemberPermissions,
    GroupWorkspace,
    WorkspaceStats,
)


SUBDIRS = ("shared", "history", "meeting-notes", "decisions")

_NAME_RE = re.compile(r"## Group Name\s*\n\s*(.+)")
_CREATED_AT_RE = re.compile(r"## Created At\s*\n\s*(\d+)")
_CREATED_BY_RE = re.compile(r"## Created By\s*\n\s*(.+)")
_MEMBERS_RE = re.compile(r"## Members\s*\n([\s\S]*?)(?=\n##|\Z)")
_ADMINS_RE = re.compile(r"## Admins\s*\n([\s\S]*?)(?=\n##|\Z)")


def _bullets(block: str) -> list[str]:
    items = (line.strip() for line in block.splitlines())
    return [re.sub(r"^-\s*", "", line) for line in items if line]


# ---------------------------------------------------------------------------
# Markdown templates
# ---------------------------------------------------------------------------

def render_group_info(ws: GroupWorkspace) -> str:
    members = "\n".join(f"- {m}" for m in ws.members)
    admins = "\n".join(f"- {a}" for a in ws.admins) or f"- {ws.created_by}"
    return (
        "# Group Info\n\n"
        f"## Group Name\n{ws.group_name}\n\n"
        f"## Group ID\n{ws.group_id}\n\n"
        f"## Created At\n{ws.created_at}\n\n"
        f"## Created By\n{ws.created_by}\n\n"
        f"## Members\n{members}\n\n"
        f"## Admins\n{admins}\n\n"
        "## Directory Layout\n"
        "- `shared/`: shared documents\n"
        "- `history/`: conversation history\n"
        "- `meeting-notes/`: meeting notes\n"
        "- `decisions/`: decision records\n"
    )


def render_members(ws: GroupWorkspace) -> str:
    sections = [
        f"### {m}\n- Joined: {ws.created_at}\n- Role: {'admin' if m in ws.admins else 'member'}"
        for m in ws.members
    ]
    return "# Group Members\n\n## Member List\n\n" + "\n\n".join(sections) + "\n"


def render_shared_memory(ws: GroupWorkspace) -> str:
    return (
        "# Shared Memory\n\n"
        f"## About\nShared knowledge base of {ws.group_name}.\n\n"
        "## Key Facts\n(Record shared knowledge and important facts here.)\n\n"
        "## Links\n(Record frequently used links and resources here.)\n"
    )


RULES_TEMPLATE = """# Group Rules

## Basics
1. Respect every member
2. Keep group content private
3. Follow the usage guidelines

## Roles
- **Admin**: manages members, group info and permissions
- **Member**: reads and edits shared documents, joins discussions

## File Access
- **Read**: every member can read shared documents
- **Write**: every member can write shared documents
- **Private files**: a member's private memory (MEMORY.md) is never visible in the group
"""


class GroupWorkspaceManager:
    """
    Usage::

        groups = GroupWorkspaceManager("~/.openclaw/groups")
        ws = groups.ensure_group_workspace("g1", "Core team", creator_id="alice")
        await groups.add_member("g1", "bob", operator_id="alice")
    """

    def __init__(self, root_dir: str | Path = "~/.openclaw/groups", clock: Clock = now_ms) -> None:
        self.root_dir = Path(root_dir).expanduser()
        self._clock = clock
        self._workspaces: dict[str, GroupWorkspace] = {}
        self.root_dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Create / load
    # ------------------------------------------------------------------

    def ensure_group_workspace(self, group_id: str, group_name: str, creator_id: str) -> GroupWorkspace:
        """Return the cached workspace, load it from disk, or create it."""
        if group_id in self._workspaces:
            return self._workspaces[group_id]
        group_dir = self._group_dir(group_id)
        if group_dir.exists():
            ws = self._load_existing(group_id, group_dir)
        else:
            ws = self._create_new(group_id, group_name, creator_id, group_dir)
        self._workspaces[group_id] = ws
        return ws

    def _group_dir(self, group_id: str) -> Path:
        """Directory of a group; the id must name one entry directly under the root."""
        if not group_id or group_id in (".", "..") or "/" in group_id or "\\" in group_id or "\0" in group_id:
            raise ValidationError(f"Invalid group id: {group_id!r}")
        group_dir = self.root_dir / group_id
        resolved, root = group_dir.resolve(), self.root_dir.resolve()
        if resolved == root or not resolved.is_relative_to(root):
            raise ValidationError(f"Group id {group_id!r} resolves outside {self.root_dir}")
        return group_dir

    def _load_existing(self, group_id: str, group_dir: Path) -> GroupWorkspace:
        ws = GroupWorkspace(group_id=group_id, group_name=group_id, dir=group_dir, created_at=self._clock())
        try:
            content = ws.group_info_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ws

        if m := _NAME_RE.search(content):
            ws.group_name = m.group(1).strip()
        if m := _CREATED_AT_RE.search(content):
            ws.created_at = int(m.group(1))
        if m := _CREATED_BY_RE.search(content):
            ws.created_by = m.group(1).strip()
        if m := _MEMBERS_RE.search(content):
            ws.members = _bullets(m.group(1))
        if m := _ADMINS_RE.search(content):
            ws.admins = _bullets(m.group(1))
        logger.debug(f"[group] Loaded workspace {group_id} ({len(ws.members)} members)")
        return ws

    def _create_new(self, group_id: str, group_name: str, creator_id: str, group_dir: Path) -> GroupWorkspace:
        ws = GroupWorkspace(
            group_id=group_id,
            group_name=group_name,
            dir=group_dir,
            members=[creator_id],
            admins=[creator_id],
            created_at=self._clock(),
            created_by=creator_id,
        )
        for sub in SUBDIRS:
            (group_dir / sub).mkdir(parents=True, exist_ok=True)
        ws.group_info_path.write_text(render_group_info(ws), encoding="utf-8")
        ws.members_path.write_text(render_members(ws), encoding="utf-8")
        ws.shared_memory_path.write_text(render_shared_memory(ws), encoding="utf-8")
        ws.rules_path.write_text(RULES_TEMPLATE, encoding="utf-8")
        logger.info(f"[group] Created workspace {group_id} at {group_dir}")
        return ws

    def get_workspace(self, group_id: str) -> GroupWorkspace | None:
        return self._workspaces.get(group_id)

    def load_group_bootstrap_files(self, group_id: str) -> list[BootstrapFile]:
        ws = self._workspaces.get(group_id)
        if ws is None:
            raise NotFoundError(f"Group workspace not found: {group_id}")

        candidates = [
            ("group-info", ws.group_info_path, True, 1),
            ("members", ws.members_path, True, 2),
            ("shared-memory", ws.shared_memory_path, False, 3),
            ("rules", ws.rules_path, True, 4),
        ]
        files = []
        for type_, path, readonly, priority in candidates:
            if path.exists():
                files.append(BootstrapFile(
                    path=path,
                    content=path.read_text(encoding="utf-8"),
                    type=type_,
                    readonly=readonly,
                    priority=priority,
                ))
        return files

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def can_access(self, group_id: str, agent_id: str) -> bool:
        ws = self._workspaces.get(group_id)
        return ws is not None and agent_id in ws.members

    def get_members(self, group_id: str) -> list[str]:
        ws = self._workspaces.get(group_id)
        return list(ws.members) if ws else []

    def get_admins(self, group_id: str) -> list[str]:
        ws = self._workspaces.get(group_id)
        return list(ws.admins) if ws else []

    def _admin_workspace(self, group_id: str, operator_id: str) -> GroupWorkspace | None:
        ws = self._workspaces.get(group_id)
        if ws is None:
            return None
        if operator_id not in ws.admins:
            logger.warning(f"[group] {operator_id} is not an admin of {group_id}")
            return None
        return ws

    async def add_member(self, group_id: str, agent_id: str, operator_id: str) -> bool:
        ws = self._admin_workspace(group_id, operator_id)
        if ws is None:
            return False
        if agent_id in ws.members:
            return True
        ws.members.append(agent_id)
        self._touch(ws, operator_id)
        await self._persist(ws)
        logger.info(f"[group] {operator_id} added {agent_id} to {group_id}")
        return True

    async def remove_member(self, group_id: str, agent_id: str, operator_id: str) -> bool:
        ws = self._admin_workspace(group_id, operator_id)
        if ws is None or agent_id == ws.created_by:
            return False
        if agent_id not in ws.members:
            return True
        ws.members.remove(agent_id)
        if agent_id in ws.admins:
            ws.admins.remove(agent_id)
        self._touch(ws, operator_id)
        await self._persist(ws)
        logger.info(f"[group] {operator_id} removed {agent_id} from {group_id}")
        return True

    async def update_group_info(self, group_id: str, group_name: str, operator_id: str) -> bool:
        ws = self._admin_workspace(group_id, operator_id)
        if ws is None:
            return False
        ws.group_name = group_name
        self._touch(ws, operator_id)
        await self._write(ws.group_info_path, render_group_info(ws))
        return True

    def get_member_permissions(self, group_id: str, agent_id: str) -> GroupMemberPermissions:
        ws = self._workspaces.get(group_id)
        is_admin = ws is not None and agent_id in ws.admins
        is_member = ws is not None and agent_id in ws.members
        return GroupMemberPermissions(
            can_read=is_member,
            can_write=is_member,
            can_delete=is_admin,
            is_admin=is_admin,
            can_invite=is_admin,
            can_kick=is_admin,
        )

    # ------------------------------------------------------------------
    # Stats / lifecycle
    # ------------------------------------------------------------------

    def get_workspace_stats(self, group_id: str) -> WorkspaceStats | None:
        ws = self._workspaces.get(group_id)
        if ws is None:
            return None
        stats = WorkspaceStats(last_modified=ws.created_at, member_count=len(ws.members))
        if ws.dir.exists():
            for path in ws.dir.rglob("*"):
                if path.is_file():
                    st = path.stat()
                    stats.total_files += 1
                    stats.total_size += st.st_size
                    stats.last_modified = max(stats.last_modified, int(st.st_mtime * 1000))
        return stats

    def get_all_group_workspaces(self) -> list[GroupWorkspace]:
        return list(self._workspaces.values())

    def delete_group_workspace(self, group_id: str, operator_id: str) -> bool:
        """Only the creator may delete; removes the directory tree."""
        ws = self._workspaces.get(group_id)
        if ws is None or operator_id != ws.created_by:
            return False
        group_dir = self._group_dir(group_id)
        if group_dir.exists():
            shutil.rmtree(group_dir)
        del self._workspaces[group_id]
        logger.info(f"[group] Deleted workspace {group_id}")
        return True

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def _touch(self, ws: GroupWorkspace, operator_id: str) -> None:
        ws.updated_at = self._clock()
        ws.updated_by = operator_id

    async def _persist(self, ws: GroupWorkspace) -> None:
        await self._write(ws.group_info_path, render_group_info(ws))
        await self._write(ws.members_path, render_members(ws))

    @staticmethod
    async def _write(path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with aiofiles.open(path, "w", encoding="utf-8") as f:
                await f.write(content)
        except Exception as exc:
            logger.error(f"[group] Failed to write {path.name}: {exc}")
