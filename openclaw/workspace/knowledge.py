"""
KnowledgeSedimentation — turn finished group discussions into documents.

Design:
- Messages accumulate per discussion session (keyed by session id)
- A session is written out once it has enough messages, enough
  participants, at least one trigger keyword and has been idle for
  ``idle_ms`` (30 minutes by default)
- ``add_message`` checks the session it touched; ``check_idle_sessions`` is
  meant to be called periodically to flush sessions that went quiet
- Documents are classified adr > decision > meeting-notes > shared-doc and
  saved as Markdown under the group workspace
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiofiles
from loguru import logger

from openclaw.clock import Clock, now_ms
from openclaw.workspace.group import GroupWorkspaceManager
from openclaw.workspace.types import (
    ChatMessage,
    GroupWorkspace,
    KnowledgeCategory,
    KnowledgeSedimentationResult,
)


@dataclass
class KnowledgeSedimentationConfig:
    enabled: bool = True

    # Triggers
    trigger_keywords: list[str] = field(default_factory=lambda: [
        "决定", "决策", "方案", "架构", "设计", "计划", "规范",
        "decision", "architecture", "design", "plan", "spec",
    ])
    min_messages: int = 10
    min_participants: int = 2
    idle_ms: int = 30 * 60 * 1000     # Quiet time before a discussion counts as finished

    # Classification
    decision_keywords: list[str] = field(default_factory=lambda: ["决定", "决策", "方案", "decision"])
    meeting_keywords: list[str] = field(default_factory=lambda: ["会议", "讨论", "总结", "meeting", "discussion"])
    adr_keywords: list[str] = field(default_factory=lambda: [
        "架构", "设计", "技术选型", "architecture", "design", "technical",
    ])


TITLE_PREFIX = {
    KnowledgeCategory.DECISION: "Decision",
    KnowledgeCategory.MEETING_NOTES: "Meeting Notes",
    KnowledgeCategory.ADR: "ADR",
    KnowledgeCategory.SHARED_DOC: "Document",
}

IMPORTANCE_MARK = {"high": "⭐", "low": "💬"}


@dataclass
class DiscussionSession:
    session_id: str
    group_id: str
    start_time: int
    last_message_time: int
    messages: list[ChatMessage] = field(default_factory=list)
    participants: dict[str, None] = field(default_factory=dict)   # Ordered set
    keywords: dict[str, None] = field(default_factory=dict)       # Ordered set


def _utc(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


class KnowledgeSedimentation:
    """
    Usage::

        ks = KnowledgeSedimentation(groups)
        await ks.add_message("sess-1", "g1", ChatMessage(...))
        results = await ks.check_idle_sessions()
    """

    def __init__(
        self,
        group_manager: GroupWorkspaceManager,
        config: KnowledgeSedimentationConfig | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self.group_manager = group_manager
        self.config = config or KnowledgeSedimentationConfig()
        self._clock = clock
        self._sessions: dict[str, DiscussionSession] = {}

    def set_config(self, **changes: Any) -> None:
        self.config = replace(self.config, **changes)

    def get_config(self) -> KnowledgeSedimentationConfig:
        return replace(self.config)

    # ------------------------------------------------------------------
    # Collecting
    # ------------------------------------------------------------------

    async def add_message(
        self,
        session_id: str,
        group_id: str,
        message: ChatMessage,
    ) -> KnowledgeSedimentationResult | None:
        """Record a message; returns a result if this session is written out."""
        if not self.config.enabled:
            return None

        session = self._sessions.get(session_id)
        if session is None:
            session = DiscussionSession(
                session_id=session_id,
                group_id=group_id,
                start_time=message.timestamp,
                last_message_time=message.timestamp,
            )
            self._sessions[session_id] = session

        session.messages.append(message)
        session.participants[message.sender_id] = None
        session.last_message_time = message.timestamp
        self._extract_keywords(message, session)

        if self._should_sediment(session):
            return await self._sediment(session)
        return None

    async def check_idle_sessions(self) -> list[KnowledgeSedimentationResult]:
        """Write out every session that meets the triggers and has gone quiet."""
        if not self.config.enabled:
            return []
        results = []
        for session in list(self._sessions.values()):
            if self._should_sediment(session):
                results.append(await self._sediment(session))
        return results

    def _extract_keywords(self, message: ChatMessage, session: DiscussionSession) -> None:
        content = message.content.lower()
        for kw in self.config.trigger_keywords:
            if kw.lower() in content:
                session.keywords[kw] = None
        for kw in message.keywords:
            session.keywords[kw] = None

    def _should_sediment(self, session: DiscussionSession) -> bool:
        cfg = self.config
        if cfg.min_messages and len(session.messages) < cfg.min_messages:
            return False
        if cfg.min_participants and len(session.participants) < cfg.min_participants:
            return False
        if cfg.trigger_keywords and not session.keywords:
            return False
        return self._clock() - session.last_message_time >= cfg.idle_ms

    async def _sediment(self, session: DiscussionSession) -> KnowledgeSedimentationResult:
        self._sessions.pop(session.session_id, None)
        result = await self._write_document(session)
        logger.info(
            f"[knowledge] Session {session.session_id} sedimented as {result.category.value}: {result.title}"
        )
        return result

    # ------------------------------------------------------------------
    # Document generation
    # ------------------------------------------------------------------

    def classify(self, session: DiscussionSession) -> KnowledgeCategory:
        content = " ".join(m.content.lower() for m in session.messages)
        cfg = self.config
        for category, keywords in (
            (KnowledgeCategory.ADR, cfg.adr_keywords),
            (KnowledgeCategory.DECISION, cfg.decision_keywords),
            (KnowledgeCategory.MEETING_NOTES, cfg.meeting_keywords),
        ):
            if any(kw.lower() in content for kw in keywords):
                return category
        return KnowledgeCategory.SHARED_DOC

    @staticmethod
    def generate_title(session: DiscussionSession, category: KnowledgeCategory) -> str:
        date = _utc(session.start_time).strftime("%Y-%m-%d")
        topic = "-".join(list(session.keywords)[:3]) or "discussion"
        return f"{TITLE_PREFIX[category]}-{date}-{topic}"

    @staticmethod
    def generate_summary(session: DiscussionSession) -> str:
        minutes = round((session.last_message_time - session.start_time) / 60000)
        return (
            f"{len(session.participants)} member(s) discussed for about {minutes} minute(s), "
            f"{len(session.messages)} message(s) in total. "
            f"Topics: {', '.join(session.keywords)}."
        )

    def generate_content(self, session: DiscussionSession, category: KnowledgeCategory, title: str) -> str:
        lines = [
            f"# {title}\n",
            "## Metadata\n",
            f"- **Category**: {category.value}",
            f"- **Created**: {_utc(session.start_time).isoformat()}",
            f"- **Participants**: {', '.join(session.participants)}",
            f"- **Messages**: {len(session.messages)}",
            f"- **Keywords**: {', '.join(session.keywords)}\n",
            "## Summary\n",
            self.generate_summary(session) + "\n",
            "## Discussion\n",
        ]
        for m in session.messages:
            mark = IMPORTANCE_MARK.get(m.importance, "📝")
            lines.append(f"### {mark} {m.sender_id} ({_utc(m.timestamp).strftime('%H:%M:%S')})\n")
            lines.append(f"{m.content}\n")

        if category in (KnowledgeCategory.DECISION, KnowledgeCategory.ADR):
            lines.append("## Decision\n")
            lines.append("(Record the decision here.)\n")
        lines.append("## Action Items\n")
        lines.append("(List follow-up actions here.)\n")
        return "\n".join(lines)

    @staticmethod
    def target_dir(ws: GroupWorkspace, category: KnowledgeCategory) -> Path:
        if category is KnowledgeCategory.DECISION:
            return ws.decisions_dir
        if category is KnowledgeCategory.MEETING_NOTES:
            return ws.meeting_notes_dir
        if category is KnowledgeCategory.ADR:
            return ws.decisions_dir / "adr"
        return ws.shared_dir

    @staticmethod
    def _free_path(directory: Path, stem: str) -> Path:
        """``stem.md``, or ``stem-2.md``, ``stem-3.md`` ... when that name is taken."""
        path = directory / f"{stem}.md"
        n = 2
        while path.exists():
            path = directory / f"{stem}-{n}.md"
            n += 1
        return path

    async def _write_document(
        self,
        session: DiscussionSession,
        category: KnowledgeCategory | None = None,
        title: str | None = None,
    ) -> KnowledgeSedimentationResult:
        category = category or self.classify(session)
        title = title or self.generate_title(session, category)
        content = self.generate_content(session, category, title)

        ws = self.group_manager.ensure_group_workspace(session.group_id, session.group_id, "system")
        target = self.target_dir(ws, category)
        target.mkdir(parents=True, exist_ok=True)
        path = self._free_path(target, title.replace("/", "-"))
        try:
            async with aiofiles.open(path, "w", encoding="utf-8") as f:
                await f.write(content)
        except Exception as exc:
            logger.error(f"[knowledge] Failed to write {path}: {exc}")

        return KnowledgeSedimentationResult(
            document_path=path,
            category=category,
            title=title,
            participants=list(session.participants),
            message_count=len(session.messages),
            created_at=self._clock(),
        )

    # ------------------------------------------------------------------
    # Manual sedimentation / document management
    # ------------------------------------------------------------------

    async def manual_sediment(
        self,
        group_id: str,
        messages: list[ChatMessage],
        category: KnowledgeCategory | None = None,
        title: str | None = None,
    ) -> KnowledgeSedimentationResult:
        now = self._clock()
        session = DiscussionSession(
            session_id=f"manual-{now}",
            group_id=group_id,
            start_time=messages[0].timestamp if messages else now,
            last_message_time=messages[-1].timestamp if messages else now,
            messages=list(messages),
            participants={m.sender_id: None for m in messages},
        )
        for m in messages:
            self._extract_keywords(m, session)
        return await self._write_document(session, category, title)

    def get_knowledge_documents(self, group_id: str, category: KnowledgeCategory | None = None) -> list[Path]:
        ws = self.group_manager.ensure_group_workspace(group_id, group_id, "system")
        if category is not None:
            dirs = [self.target_dir(ws, category)]
        else:
            dirs = [ws.shared_dir, ws.decisions_dir, ws.meeting_notes_dir]

        documents = []
        for d in dirs:
            if d.is_dir():
                documents.extend(sorted(p for p in d.rglob("*.md") if p.is_file()))
        return documents

    @staticmethod
    def delete_knowledge_document(path: str | Path) -> bool:
        path = Path(path)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as exc:
            logger.error(f"[knowledge] Failed to delete {path}: {exc}")
            return False
        return True

    @staticmethod
    async def update_knowledge_document(path: str | Path, content: str) -> bool:
        path = Path(path)
        if not path.exists():
            return False
        try:
            async with aiofiles.open(path, "w", encoding="utf-8") as f:
                await f.write(content)
        except Exception as exc:
            logger.error(f"[knowledge] Failed to update {path}: {exc}")
            return False
        return True

    def search_knowledge_documents(self, group_id: str, query: str) -> list[Path]:
        q = query.lower()
        matched = []
        for path in self.get_knowledge_documents(group_id):
            try:
                content = path.read_text(encoding="utf-8").lower()
            except OSError as exc:
                logger.error(f"[knowledge] Failed to read {path}: {exc}")
                continue
            if q in content or q in path.name.lower():
                matched.append(path)
        return matched

    # ------------------------------------------------------------------
    # Session bookkeeping
    # ------------------------------------------------------------------

    def get_session_stats(self, session_id: str) -> dict[str, int] | None:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        return {
            "message_count": len(session.messages),
            "participant_count": len(session.participants),
            "keyword_count": len(session.keywords),
            "duration": session.last_message_time - session.start_time,
        }

    def clear_session(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def clear_all_sessions(self) -> None:
        self._sessions.clear()
