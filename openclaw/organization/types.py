"""
Organization, team, collaboration and mentorship records.

All timestamps are epoch milliseconds.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class OrganizationLevel(str, Enum):
    COMPANY = "company"
    DEPARTMENT = "department"
    TEAM = "team"
    INDIVIDUAL = "individual"


# Parent level index must be strictly lower than the child's
LEVEL_ORDER: list[OrganizationLevel] = [
    OrganizationLevel.COMPANY,
    OrganizationLevel.DEPARTMENT,
    OrganizationLevel.TEAM,
    OrganizationLevel.INDIVIDUAL,
]


class TeamType(str, Enum):
    PERMANENT = "permanent"
    PROJECT = "project"
    TEMPORARY = "temporary"


class CollaborationRelationType(str, Enum):
    SUPERVISOR = "supervisor"
    COLLEAGUE = "colleague"
    PROJECT = "project"
    BUSINESS = "business"
    MENTOR = "mentor"
    MONITOR = "monitor"


class MentorshipStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SharedResourceType(str, Enum):
    WORKSPACES = "workspaces"
    KNOWLEDGE_BASES = "knowledge_bases"
    TOOLS = "tools"


def record_dict(obj: Any) -> dict[str, Any]:
    data = asdict(obj)
    for k, v in data.items():
        if isinstance(v, Enum):
            data[k] = v.value
    return data


# ---------------------------------------------------------------------------
# Organization
# ---------------------------------------------------------------------------

@dataclass
class OrganizationQuota:
    max_members: int | None = None
    budget_per_month: float | None = None
    max_tokens_per_day: int | None = None


@dataclass
class Organization:
    id: str
    name: str
    level: OrganizationLevel
    parent_id: str | None = None
    manager_id: str | None = None
    member_ids: list[str] = field(default_factory=list)
    description: str | None = None
    industry: str | None = None
    location: str | None = None
    quota: OrganizationQuota | None = None
    created_at: int = 0
    created_by: str = "system"
    updated_at: int | None = None
    updated_by: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return record_dict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Organization":
        data = dict(data)
        quota = data.pop("quota", None)
        return cls(
            level=OrganizationLevel(data.pop("level")),
            quota=OrganizationQuota(**quota) if isinstance(quota, dict) else quota,
            member_ids=list(data.pop("member_ids", None) or []),
            **data,
        )


# ---------------------------------------------------------------------------
# Team
# ---------------------------------------------------------------------------

@dataclass
class SharedResources:
    workspaces: list[str] = field(default_factory=list)
    knowledge_bases: list[str] = field(default_factory=list)
    tools: list[str] = field(default_factory=list)


@dataclass
class Team:
    id: str
    name: str
    organization_id: str
    leader_id: str
    member_ids: list[str] = field(default_factory=list)
    type: TeamType = TeamType.PERMANENT
    objectives: list[str] = field(default_factory=list)
    shared_resources: SharedResources = field(default_factory=SharedResources)
    valid_from: int | None = None
    valid_until: int | None = None
    created_at: int = 0
    created_by: str = "system"
    updated_at: int | None = None
    updated_by: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return record_dict(self)


# ---------------------------------------------------------------------------
# Collaboration
# ---------------------------------------------------------------------------

@dataclass
class CollaborationRelation:
    id: str
    type: CollaborationRelationType
    from_agent_id: str
    to_agent_id: str
    organization_id: str | None = None
    description: str | None = None
    permissions: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    valid_from: int | None = None
    valid_until: int | None = None
    created_at: int = 0
    created_by: str = "system"
    updated_at: int | None = None
    updated_by: str | None = None

    def involves(self, agent_id: str) -> bool:
        return agent_id in (self.from_agent_id, self.to_agent_id)

    def other(self, agent_id: str) -> str:
        return self.to_agent_id if self.from_agent_id == agent_id else self.from_agent_id

    def to_dict(self) -> dict[str, Any]:
        return record_dict(self)


# ---------------------------------------------------------------------------
# Mentorship
# ---------------------------------------------------------------------------

@dataclass
class TrainingPlan:
    goals: list[str] = field(default_factory=list)
    skills: list[str] = field(default_factory=list)
    duration: int | None = None        # Planned length in days


@dataclass
class MentorshipProgress:
    completed_goals: list[str] = field(default_factory=list)
    acquired_skills: list[str] = field(default_factory=list)
    progress_rate: int = 0             # 0-100
    last_updated: int = 0


@dataclass
class MentorshipRelation:
    id: str
    mentor_id: str
    mentee_id: str
    training_plan: TrainingPlan | None = None
    progress: MentorshipProgress | None = None
    status: MentorshipStatus = MentorshipStatus.ACTIVE
    start_date: int = 0
    end_date: int | None = None
    created_at: int = 0
    created_by: str = "system"

    def to_dict(self) -> dict[str, Any]:
        return record_dict(self)
