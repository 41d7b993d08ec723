"""
Runtime settings and logging setup.

Settings are read from environment variables (a ``.env`` file in the current
directory is loaded first). Every path is expanded with ``~`` support.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from loguru import logger


LOG_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}"


@dataclass
class Settings:
    """Filesystem locations and logging options."""

    home_dir: str = "~/.openclaw"
    groups_root: str = "~/.openclaw/groups"          # Group workspaces
    workspace_root: str = "~/.openclaw"              # Holds workspace-<agentId>/
    approvals_dir: str = "~/.openclaw/approvals"     # One JSON file per request

    log_level: str = "INFO"
    log_file: str = ""                                # Empty = stderr only

    @property
    def groups_path(self) -> Path:
        return Path(self.groups_root).expanduser()

    @property
    def workspace_path(self) -> Path:
        return Path(self.workspace_root).expanduser()

    @property
    def approvals_path(self) -> Path:
        return Path(self.approvals_dir).expanduser()

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        """Build settings from ``OPENCLAW_*`` environment variables."""
        if dotenv:
            load_dotenv(find_dotenv(usecwd=True))

        home = os.getenv("OPENCLAW_HOME", "~/.openclaw")
        return cls(
            home_dir=home,
            groups_root=os.getenv("OPENCLAW_GROUPS_DIR", f"{home}/groups"),
            workspace_root=os.getenv("OPENCLAW_WORKSPACE_DIR", home),
            approvals_dir=os.getenv("OPENCLAW_APPROVALS_DIR", f"{home}/approvals"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("OPENCLAW_LOG_FILE", ""),
        )


def setup_logging(level: str | None = None, log_file: str = "") -> None:
    """Configure loguru sinks: coloured stderr plus an optional rotating file."""
    logger.remove()
    logger.add(
        sys.stderr,
        format=LOG_FORMAT,
        level=level or os.getenv("LOG_LEVEL", "INFO"),
    )
    if log_file:
        logger.add(
            Path(log_file).expanduser(),
            rotation="10 MB",
            retention="7 days",
            level="DEBUG",
        )
