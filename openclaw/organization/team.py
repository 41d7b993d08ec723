"""
TeamManagement — teams inside an organization.

Design:
- Every team member (leader included) must be a direct member of the team's organization
- The leader is always part of member_ids and cannot be removed while leading
- Project / temporary teams may carry a validity window; permanent teams are always active
"""

from __future__ import annotations

import math
from dataclasses import replace
from typing import Any

from loguru import logger

from openclaw.clock import DAY_MS, Clock, now_ms
from openclaw.errors import AlreadyExistsError, NotFoundError, ValidationError
from openclaw.organization.system import OrganizationSystem
from openclaw.organization.types import SharedResources, SharedResourceType, Team, TeamType
from openclaw.repository import IndexedRepository


class TeamManagement:
    """Teams indexed by organization and member."""

    def __init__(self, organizations: OrganizationSystem, clock: Clock = now_ms) -> None:
        self.organizations = organizations
        self._clock = clock
        self._teams: IndexedRepository[Team] = IndexedRepository(
            "Team",
            indexes={
                "organization": lambda t: t.organization_id,
                "member": lambda t: t.member_ids,
            },
        )

    def _require(self, team_id: str) -> Team:
        team = self._teams.get(team_id)
        if team is None:
            raise NotFoundError(f'Team "{team_id}" not found')
        return team

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_team(
        self,
        id: str,
        name: str,
        organization_id: str,
        leader_id: str,
        type: TeamType | str = TeamType.PERMANENT,
        member_ids: list[str] | None = None,
        objectives: list[str] | None = None,
        shared_resources: dict[str, list[str]] | None = None,
        valid_from: int | None = None,
        valid_until: int | None = None,
    ) -> Team:
        team_type = TeamType(type)
        if id in self._teams:
            raise AlreadyExistsError(f'Team with ID "{id}" already exists')

        org = self.organizations.get_organization(organization_id)
        if org is None:
            raise NotFoundError(f'Organization "{organization_id}" not found')
        if leader_id not in org.member_ids:
            raise ValidationError(
                f'Leader "{leader_id}" is not a member of organization "{organization_id}"'
            )
        for member_id in member_ids or []:
            if member_id not in org.member_ids:
                raise ValidationError(
                    f'Member "{member_id}" is not a member of organization "{organization_id}"'
                )

        if team_type in (TeamType.PROJECT, TeamType.TEMPORARY) and valid_until:
            if valid_from and valid_from >= valid_until:
                raise ValidationError("valid_from must be earlier than valid_until")
            if valid_until <= self._clock():
                raise ValidationError("valid_until must be in the future")

        resources = shared_resources or {}
        team = Team(
            id=id,
            name=name,
            organization_id=organization_id,
            leader_id=leader_id,
            member_ids=list(dict.fromkeys([leader_id, *(member_ids or [])])),
            type=team_type,
            objectives=list(objectives or []),
            shared_resources=SharedResources(
                workspaces=list(resources.get("workspaces", [])),
                knowledge_bases=list(resources.get("knowledge_bases", [])),
                tools=list(resources.get("tools", [])),
            ),
            valid_from=valid_from,
            valid_until=valid_until,
            created_at=self._clock(),
            created_by="system",
        )
        self._teams.add(team)
        logger.info(f"[team] Created team {id!r} in {organization_id!r}")
        return team

    def get_team(self, team_id: str) -> Team | None:
        return self._teams.get(team_id)

    def update_team(
        self,
        team_id: str,
        name: str | None = None,
        objectives: list[str] | None = None,
        valid_from: int | None = None,
        valid_until: int | None = None,
    ) -> Team:
        team = self._require(team_id)
        if valid_from is not None and valid_until is not None and valid_from >= valid_until:
            raise ValidationError("valid_from must be earlier than valid_until")

        changes: dict[str, Any] = {}
        if name is not None:
            changes["name"] = name
        if objectives is not None:
            changes["objectives"] = list(objectives)
        if valid_from is not None:
            changes["valid_from"] = valid_from
        if valid_until is not None:
            changes["valid_until"] = valid_until

        updated = replace(team, **changes, updated_at=self._clock())
        self._teams.update(updated)
        return updated

    def delete_team(self, team_id: str) -> bool:
        self._require(team_id)
        self._teams.remove(team_id)
        logger.info(f"[team] Deleted team {team_id!r}")
        return True

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def add_team_member(self, team_id: str, member_id: str) -> Team:
        team = self._require(team_id)
        if member_id in team.member_ids:
            raise ValidationError(f'Member "{member_id}" is already in team "{team_id}"')

        org = self.organizations.get_organization(team.organization_id)
        if org is None:
            raise NotFoundError(f'Organization "{team.organization_id}" not found')
        if member_id not in org.member_ids:
            raise ValidationError(
                f'Member "{member_id}" is not a member of organization "{team.organization_id}"'
            )

        updated = replace(team, member_ids=[*team.member_ids, member_id])
        self._teams.update(updated)
        return updated

    def remove_team_member(self, team_id: str, member_id: str) -> Team:
        team = self._require(team_id)
        if team.leader_id == member_id:
            raise ValidationError("Cannot remove team leader. Please set a new leader first")
        if member_id not in team.member_ids:
            raise ValidationError(f'Member "{member_id}" is not in team "{team_id}"')

        updated = replace(team, member_ids=[m for m in team.member_ids if m != member_id])
        self._teams.update(updated)
        return updated

    def set_team_leader(self, team_id: str, new_leader_id: str) -> Team:
        team = self._require(team_id)
        if new_leader_id not in team.member_ids:
            raise ValidationError(f'New leader "{new_leader_id}" is not a member of team "{team_id}"')

        updated = replace(team, leader_id=new_leader_id)
        self._teams.update(updated)
        return updated

    def get_team_members(self, team_id: str) -> list[str]:
        return list(self._require(team_id).member_ids)

    # ------------------------------------------------------------------
    # Shared resources
    # ------------------------------------------------------------------

    def add_shared_resource(
        self, team_id: str, resource_type: SharedResourceType | str, resource_id: str
    ) -> Team:
        team = self._require(team_id)
        kind = SharedResourceType(resource_type).value
        current: list[str] = getattr(team.shared_resources, kind)
        if resource_id in current:
            raise ValidationError(f'Resource "{resource_id}" already exists in {kind}')

        resources = replace(team.shared_resources, **{kind: [*current, resource_id]})
        updated = replace(team, shared_resources=resources)
        self._teams.update(updated)
        return updated

    def remove_shared_resource(
        self, team_id: str, resource_type: SharedResourceType | str, resource_id: str
    ) -> Team:
        team = self._require(team_id)
        kind = SharedResourceType(resource_type).value
        current: list[str] = getattr(team.shared_resources, kind)
        if resource_id not in current:
            raise NotFoundError(f'Resource "{resource_id}" not found in {kind}')

        resources = replace(team.shared_resources, **{kind: [r for r in current if r != resource_id]})
        updated = replace(team, shared_resources=resources)
        self._teams.update(updated)
        return updated

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_teams_by_organization(self, organization_id: str) -> list[Team]:
        return self._teams.find("organization", organization_id)

    def get_teams_by_member(self, agent_id: str) -> list[Team]:
        return self._teams.find("member", agent_id)

    def is_team_active(self, team: Team) -> bool:
        if team.type == TeamType.PERMANENT:
            return True
        now = self._clock()
        if team.valid_from and now < team.valid_from:
            return False
        if team.valid_until and now > team.valid_until:
            return False
        return True

    def get_active_teams(self) -> list[Team]:
        return self._teams.filter(self.is_team_active)

    def get_team_statistics(self, team_id: str) -> dict[str, Any]:
        team = self._require(team_id)
        days_remaining: int | None = None
        if team.valid_until:
            days_remaining = max(0, math.ceil((team.valid_until - self._clock()) / DAY_MS))

        return {
            "id": team.id,
            "name": team.name,
            "type": team.type.value,
            "member_count": len(team.member_ids),
            "shared_resources_count": {
                "workspaces": len(team.shared_resources.workspaces),
                "knowledge_bases": len(team.shared_resources.knowledge_bases),
                "tools": len(team.shared_resources.tools),
            },
            "is_active": self.is_team_active(team),
            "days_remaining": days_remaining,
            "created_at": team.created_at,
        }

    def get_all_teams_statistics(self) -> list[dict[str, Any]]:
        return [self.get_team_statistics(t.id) for t in self._teams]

    def get_expiring_teams(self, days_threshold: int = 7) -> list[Team]:
        now = self._clock()
        threshold = now + days_threshold * DAY_MS
        return self._teams.filter(
            lambda t: bool(t.valid_until) and now < t.valid_until <= threshold  # type: ignore[operator]
        )

    def cleanup_expired_teams(self) -> list[str]:
        """Delete teams whose validity window has ended. Returns their ids."""
        now = self._clock()
        expired = [
            t.id for t in self._teams
            if t.type != TeamType.PERMANENT and t.valid_until and now > t.valid_until
        ]
        for team_id in expired:
            self._teams.remove(team_id)
        if expired:
            logger.info(f"[team] Cleaned up {len(expired)} expired team(s)")
        return expired

    def get_all_teams(self) -> list[Team]:
        return self._teams.all()

    def __len__(self) -> int:
        return len(self._teams)
