"""
BootstrapLoader — pick the Markdown files injected at session start.

Agent sessions (dm / main) load from ``workspace-<agentId>/``::

    AGENTS.md 1  SOUL.md 2  TOOLS.md 3  IDENTITY.md 4  USER.md 5  MEMORY.md 6
    skills/**/*.md|*.txt  7, 8, ...

Group sessions load the group files (priorities 1-4) followed by the agent's
expertise, read-only: AGENTS.md 10, TOOLS.md 11, IDENTITY.md 12 and skills
from 20 on. SOUL, USER and MEMORY stay private.
"""

from __future__ import annotations

from pathlib import Path

import aiofiles
from loguru import logger

from openclaw.workspace.access_control import WorkspaceAccessControl
from openclaw.workspace.group import GroupWorkspaceManager
from openclaw.workspace.types import BootstrapFile, SessionType, WorkspaceType


AGENT_FILES = [
    ("AGENTS.md", "agents", 1),
    ("SOUL.md", "soul", 2),
    ("TOOLS.md", "tools", 3),
    ("IDENTITY.md", "identity", 4),
    ("USER.md", "user", 5),
    ("MEMORY.md", "memory", 6),
]

GROUP_KNOWLEDGE_FILES = [
    ("AGENTS.md", "agents", 10),
    ("TOOLS.md", "tools", 11),
    ("IDENTITY.md", "identity", 12),
]

SKILL_SUFFIXES = (".md", ".txt")
DEFAULT_SEPARATOR = "\n\n---\n\n"


def _sort_key(f: BootstrapFile) -> int:
    return f.priority if f.priority is not None else 999


class BootstrapLoader:
    """
    Usage::

        loader = BootstrapLoader(acl, groups, agent_root="~/.openclaw")
        files = loader.load_bootstrap_files("cli:local", SessionType.DM, "coder")
        prompt = loader.merge_bootstrap_content(files)
    """

    def __init__(
        self,
        access_control: WorkspaceAccessControl,
        group_manager: GroupWorkspaceManager,
        agent_root: str | Path | None = None,
    ) -> None:
        self.access_control = access_control
        self.group_manager = group_manager
        self.agent_root = Path(agent_root).expanduser() if agent_root else access_control.agent_root
        self._cache: dict[str, list[BootstrapFile]] = {}

    def clear_cache(self) -> None:
        self._cache.clear()

    def agent_workspace_dir(self, agent_id: str) -> Path:
        return self.agent_root / f"workspace-{agent_id}"

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_bootstrap_files(
        self,
        session_key: str,
        session_type: SessionType | str,
        agent_id: str,
        group_id: str | None = None,
        use_cache: bool = True,
    ) -> list[BootstrapFile]:
        session_type = SessionType(session_type)
        key = f"{session_key}:{session_type.value}:{agent_id}:{group_id or 'none'}"
        if use_cache and key in self._cache:
            return self._cache[key]

        workspace = self.access_control.resolve_workspace(session_key, session_type, agent_id, group_id)
        if workspace.type is WorkspaceType.GROUP and workspace.group_id:
            files = self.load_group_bootstrap_files(workspace.group_id, agent_id)
        else:
            files = self.load_agent_bootstrap_files(agent_id)
        files.sort(key=_sort_key)

        if use_cache:
            self._cache[key] = files
        logger.debug(f"[bootstrap] Loaded {len(files)} file(s) for {key}")
        return files

    def reload_bootstrap_files(
        self,
        session_key: str,
        session_type: SessionType | str,
        agent_id: str,
        group_id: str | None = None,
    ) -> list[BootstrapFile]:
        return self.load_bootstrap_files(session_key, session_type, agent_id, group_id, use_cache=False)

    def load_agent_bootstrap_files(self, agent_id: str) -> list[BootstrapFile]:
        workspace_dir = self.agent_workspace_dir(agent_id)
        workspace_dir.mkdir(parents=True, exist_ok=True)

        files = self._read_known(workspace_dir, AGENT_FILES, readonly=False)
        files.extend(self._load_skills(workspace_dir / "skills", readonly=False))
        return files

    def load_group_bootstrap_files(self, group_id: str, agent_id: str) -> list[BootstrapFile]:
        """Group files plus the agent's expertise, read-only."""
        files = self.group_manager.load_group_bootstrap_files(group_id)
        workspace_dir = self.agent_workspace_dir(agent_id)
        files.extend(self._read_known(workspace_dir, GROUP_KNOWLEDGE_FILES, readonly=True))
        files.extend(self._load_skills(workspace_dir / "skills", readonly=True))
        return files

    @staticmethod
    def _read_known(workspace_dir: Path, entries: list[tuple[str, str, int]], readonly: bool) -> list[BootstrapFile]:
        files = []
        for name, type_, priority in entries:
            path = workspace_dir / name
            if path.is_file():
                files.append(BootstrapFile(
                    path=path,
                    content=path.read_text(encoding="utf-8"),
                    type=type_,
                    readonly=readonly,
                    priority=priority,
                ))
        return files

    @staticmethod
    def _load_skills(skills_dir: Path, readonly: bool) -> list[BootstrapFile]:
        files: list[BootstrapFile] = []
        priority = 20 if readonly else 7

        def walk(directory: Path) -> None:
            nonlocal priority
            for item in sorted(directory.iterdir()):
                if item.is_dir():
                    walk(item)
                elif item.suffix in SKILL_SUFFIXES:
                    files.append(BootstrapFile(
                        path=item,
                        content=item.read_text(encoding="utf-8"),
                        type="skill",
                        readonly=readonly,
                        priority=priority,
                    ))
                    priority += 1

        if skills_dir.is_dir():
            walk(skills_dir)
        return files

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @staticmethod
    def get_bootstrap_summary(files: list[BootstrapFile]) -> str:
        lines = ["# Bootstrap files\n", f"Total: {len(files)} file(s)\n"]
        for i, f in enumerate(files, 1):
            mode = "[read-only]" if f.readonly else "[writable]"
            priority = f" [priority:{f.priority}]" if f.priority is not None else ""
            lines.append(f"{i}. {mode}{priority} {f.name}")
        return "\n".join(lines)

    @staticmethod
    def validate_bootstrap_files(files: list[BootstrapFile]) -> tuple[bool, list[str]]:
        errors = []
        for f in files:
            if not f.path:
                errors.append("File has no path")
                continue
            if not Path(f.path).exists():
                errors.append(f"File does not exist: {f.path}")
                continue
            if not f.content or not f.content.strip():
                errors.append(f"File is empty: {f.path}")
            if f.priority is not None and f.priority < 0:
                errors.append(f"Invalid priority for {f.path}: {f.priority}")
        return not errors, errors

    @staticmethod
    def filter_by_type(files: list[BootstrapFile], types: list[str]) -> list[BootstrapFile]:
        return [f for f in files if f.type in types]

    @staticmethod
    def merge_bootstrap_content(files: list[BootstrapFile], separator: str = DEFAULT_SEPARATOR) -> str:
        parts = []
        for f in files:
            header = f"<!-- {f.name} [read-only] -->" if f.readonly else f"<!-- {f.name} -->"
            parts.append(f"{header}\n\n{f.content}")
        return separator.join(parts)

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    async def save_bootstrap_file(self, file: BootstrapFile, content: str) -> bool:
        if file.readonly:
            logger.error(f"[bootstrap] Refusing to save read-only file {file.path}")
            return False
        if not await self._write(Path(file.path), content):
            return False
        file.content = content
        return True

    async def create_bootstrap_file(
        self,
        path: str | Path,
        content: str,
        type: str = "custom",
        priority: int | None = None,
    ) -> BootstrapFile | None:
        path = Path(path).expanduser()
        if not await self._write(path, content):
            return None
        self.clear_cache()
        return BootstrapFile(path=path, content=content, type=type, priority=priority)

    def delete_bootstrap_file(self, file: BootstrapFile) -> bool:
        if file.readonly:
            logger.error(f"[bootstrap] Refusing to delete read-only file {file.path}")
            return False
        try:
            Path(file.path).unlink(missing_ok=True)
        except OSError as exc:
            logger.error(f"[bootstrap] Failed to delete {file.path}: {exc}")
            return False
        self.clear_cache()
        return True

    @staticmethod
    async def _write(path: Path, content: str) -> bool:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "w", encoding="utf-8") as f:
                await f.write(content)
        except Exception as exc:
            logger.error(f"[bootstrap] Failed to write {path}: {exc}")
            return False
        return True
