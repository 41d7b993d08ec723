"""
Organization integration — wires the five systems together and exposes them.

Surfaces:
- OrganizationIntegration.initialize_from_config(): bulk load from a config dict
- build_rpc_methods(): "organization.create" style keys -> async callables (dict in, plain data out)
- OrganizationAPI: grouped facade over the bound methods
- build_cli_commands(): "org:create" style keys -> async callables over flat string args

Usage::

    integration = OrganizationIntegration()
    integration.initialize_from_config(json.loads(Path("org.json").read_text()))
    rpc = build_rpc_methods(integration)
    stats = await rpc["organization.getStatistics"]({"organization_id": "acme"})
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from types import SimpleNamespace
from typing import Any, Awaitable, Callable

from loguru import logger

from openclaw.clock import Clock, now_ms
from openclaw.organization.collaboration import CollaborationSystem
from openclaw.organization.hierarchy import OrganizationHierarchy
from openclaw.organization.mentor import MentorSystem
from openclaw.organization.system import OrganizationSystem
from openclaw.organization.team import TeamManagement
from openclaw.organization.types import (
    CollaborationRelation,
    LEVEL_ORDER,
    MentorshipRelation,
    Organization,
    OrganizationLevel,
    Team,
)


RpcMethod = Callable[[dict[str, Any]], Awaitable[Any]]
CliCommand = Callable[[dict[str, str]], Awaitable[Any]]


def to_plain(value: Any) -> Any:
    """Convert dataclasses / enums (recursively) into JSON-friendly data."""
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        data = {f.name: to_plain(getattr(value, f.name)) for f in fields(value)}
        length = getattr(value, "length", None)
        if isinstance(length, int) and "length" not in data:
            data["length"] = length
        return data
    if isinstance(value, dict):
        return {k: to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_plain(v) for v in value]
    return value


@dataclass
class InitializationResult:
    organizations: list[Organization] = field(default_factory=list)
    teams: list[Team] = field(default_factory=list)
    collaborations: list[CollaborationRelation] = field(default_factory=list)
    mentorships: list[MentorshipRelation] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class OrganizationIntegration:
    """Owns one instance of each organization subsystem, sharing a clock."""

    def __init__(self, clock: Clock = now_ms) -> None:
        self.organizations = OrganizationSystem(clock=clock)
        self.hierarchy = OrganizationHierarchy(self.organizations)
        self.teams = TeamManagement(self.organizations, clock=clock)
        self.collaboration = CollaborationSystem(self.hierarchy, clock=clock)
        self.mentors = MentorSystem(self.collaboration, clock=clock)

    def initialize_from_config(
        self, config: dict[str, Any], created_by: str = "system"
    ) -> InitializationResult:
        """Create organizations (parents first), teams, relations and mentorships.

        A failing entry is logged and skipped; the rest still load.
        """
        result = InitializationResult()

        org_configs = config.get("organizations") or []
        for level in LEVEL_ORDER:
            for org_cfg in org_configs:
                if OrganizationLevel(org_cfg.get("level")) != level:
                    continue
                try:
                    result.organizations.append(
                        self.organizations.create_organization(
                            **{**org_cfg, "created_by": org_cfg.get("created_by", created_by)}
                        )
                    )
                except Exception as exc:
                    self._record_failure(result, "organization", org_cfg, exc)

        for team_cfg in config.get("teams") or []:
            try:
                result.teams.append(self.teams.create_team(**team_cfg))
            except Exception as exc:
                self._record_failure(result, "team", team_cfg, exc)

        for collab_cfg in config.get("collaborations") or []:
            try:
                result.collaborations.append(
                    self.collaboration.create_relation(**{**collab_cfg, "created_by": created_by})
                )
            except Exception as exc:
                self._record_failure(result, "collaboration", collab_cfg, exc)

        for mentor_cfg in config.get("mentorships") or []:
            try:
                result.mentorships.append(
                    self.mentors.create_mentorship(**{**mentor_cfg, "created_by": created_by})
                )
            except Exception as exc:
                self._record_failure(result, "mentorship", mentor_cfg, exc)

        logger.info(
            f"[organization] Loaded config: {len(result.organizations)} orgs, "
            f"{len(result.teams)} teams, {len(result.collaborations)} relations, "
            f"{len(result.mentorships)} mentorships ({len(result.errors)} failed)"
        )
        return result

    @staticmethod
    def _record_failure(
        result: InitializationResult, kind: str, cfg: dict[str, Any], exc: Exception
    ) -> None:
        message = f"Failed to create {kind} {cfg.get('id')!r}: {exc}"
        logger.error(f"[organization] {message}")
        result.errors.append(message)


# ---------------------------------------------------------------------------
# RPC method map
# ---------------------------------------------------------------------------

def build_rpc_methods(integration: OrganizationIntegration) -> dict[str, RpcMethod]:
    """String-keyed async RPC handlers. Params and results are plain dicts."""
    orgs = integration.organizations
    hierarchy = integration.hierarchy
    teams = integration.teams
    collab = integration.collaboration
    mentors = integration.mentors

    def rpc(fn: Callable[[dict[str, Any]], Any]) -> RpcMethod:
        async def method(params: dict[str, Any]) -> Any:
            return to_plain(fn(params))
        return method

    return {
        "organization.create": rpc(lambda p: orgs.create_organization(**p)),
        "organization.get": rpc(lambda p: orgs.get_organization(p["organization_id"])),
        "organization.update": rpc(lambda p: orgs.update_organization(
            p["organization_id"], p.get("updates", {}), p.get("updated_by", "system"))),
        "organization.delete": rpc(lambda p: orgs.delete_organization(p["organization_id"])),
        "organization.addMember": rpc(lambda p: orgs.add_member(
            p["organization_id"], p["agent_id"], p.get("updated_by", "system"))),
        "organization.removeMember": rpc(lambda p: orgs.remove_member(
            p["organization_id"], p["agent_id"], p.get("updated_by", "system"))),
        "organization.getChildren": rpc(lambda p: orgs.get_children(p["organization_id"])),
        "organization.getStatistics": rpc(lambda p: hierarchy.get_statistics(p["organization_id"])),

        "team.create": rpc(lambda p: teams.create_team(**p)),
        "team.get": rpc(lambda p: teams.get_team(p["team_id"])),
        "team.update": rpc(lambda p: teams.update_team(**p)),
        "team.delete": rpc(lambda p: teams.delete_team(p["team_id"])),
        "team.addMember": rpc(lambda p: teams.add_team_member(p["team_id"], p["member_id"])),
        "team.removeMember": rpc(lambda p: teams.remove_team_member(p["team_id"], p["member_id"])),
        "team.setLeader": rpc(lambda p: teams.set_team_leader(p["team_id"], p["new_leader_id"])),
        "team.getStatistics": rpc(lambda p: teams.get_team_statistics(p["team_id"])),

        "collaboration.create": rpc(lambda p: collab.create_relation(**p)),
        "collaboration.get": rpc(lambda p: collab.get_relation(p["relation_id"])),
        "collaboration.delete": rpc(lambda p: collab.delete_relation(p["relation_id"])),
        "collaboration.getByAgent": rpc(lambda p: collab.get_relations_by_agent(p["agent_id"])),
        "collaboration.getNetworkStats": rpc(lambda p: collab.get_network_stats(p["agent_id"])),

        "mentorship.create": rpc(lambda p: mentors.create_mentorship(**p)),
        "mentorship.get": rpc(lambda p: mentors.get_mentorship(p["mentorship_id"])),
        "mentorship.updateProgress": rpc(lambda p: mentors.update_progress(
            p["mentorship_id"], p.get("completed_goals"), p.get("acquired_skills"))),
        "mentorship.complete": rpc(lambda p: mentors.complete_mentorship(p["mentorship_id"])),
        "mentorship.cancel": rpc(lambda p: mentors.cancel_mentorship(
            p["mentorship_id"], p.get("reason"))),
        "mentorship.getMentorStats": rpc(lambda p: mentors.get_mentor_stats(p["mentor_id"])),
        "mentorship.getProgressReport": rpc(lambda p: mentors.get_progress_report(p["mentorship_id"])),
    }


# ---------------------------------------------------------------------------
# API facade
# ---------------------------------------------------------------------------

class OrganizationAPI:
    """Grouped bound methods: ``api.team.create(...)``, ``api.hierarchy.get_tree(...)``."""

    def __init__(self, integration: OrganizationIntegration) -> None:
        o, h, t = integration.organizations, integration.hierarchy, integration.teams
        c, m = integration.collaboration, integration.mentors

        self.organization = SimpleNamespace(
            create=o.create_organization, get=o.get_organization,
            update=o.update_organization, delete=o.delete_organization,
            add_member=o.add_member, remove_member=o.remove_member,
            get_children=o.get_children, get_ancestors=o.get_ancestors,
            get_descendants=o.get_descendants,
        )
        self.hierarchy = SimpleNamespace(
            is_ancestor=h.is_ancestor, is_sibling=h.is_sibling,
            get_common_ancestor=h.get_common_ancestor, get_tree=h.get_tree,
            get_all_members=h.get_all_members, get_statistics=h.get_statistics,
        )
        self.team = SimpleNamespace(
            create=t.create_team, get=t.get_team, update=t.update_team, delete=t.delete_team,
            add_member=t.add_team_member, remove_member=t.remove_team_member,
            set_leader=t.set_team_leader, add_resource=t.add_shared_resource,
            remove_resource=t.remove_shared_resource, get_statistics=t.get_team_statistics,
            get_active=t.get_active_teams,
        )
        self.collaboration = SimpleNamespace(
            create=c.create_relation, get=c.get_relation, delete=c.delete_relation,
            get_by_agent=c.get_relations_by_agent, get_by_type=c.get_relations_by_type,
            get_supervisors=c.get_supervisors, get_subordinates=c.get_subordinates,
            get_network_stats=c.get_network_stats, find_path=c.find_collaboration_path,
        )
        self.mentorship = SimpleNamespace(
            create=m.create_mentorship, get=m.get_mentorship,
            update_plan=m.update_training_plan, update_progress=m.update_progress,
            complete=m.complete_mentorship, cancel=m.cancel_mentorship,
            get_mentor_stats=m.get_mentor_stats, get_mentee_stats=m.get_mentee_stats,
            get_progress_report=m.get_progress_report, suggest_mentors=m.suggest_mentors,
        )


# ---------------------------------------------------------------------------
# CLI command map
# ---------------------------------------------------------------------------

def _split(value: str | None) -> list[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def build_cli_commands(integration: OrganizationIntegration) -> dict[str, CliCommand]:
    """Commands over flat ``key=value`` string args; list values are comma separated."""
    orgs = integration.organizations
    hierarchy = integration.hierarchy
    teams = integration.teams
    collab = integration.collaboration
    mentors = integration.mentors

    def cmd(fn: Callable[[dict[str, str]], Any]) -> CliCommand:
        async def command(args: dict[str, str]) -> Any:
            return to_plain(fn(args))
        return command

    def mentor_create(a: dict[str, str]) -> MentorshipRelation:
        plan = None
        if a.get("goals") or a.get("skills"):
            plan = {
                "goals": _split(a.get("goals")),
                "skills": _split(a.get("skills")),
                "duration": int(a["duration"]) if a.get("duration") else None,
            }
        return mentors.create_mentorship(
            id=a["id"], mentor_id=a["mentor_id"], mentee_id=a["mentee_id"],
            training_plan=plan, created_by=a.get("created_by", "cli"),
        )

    return {
        "org:create": cmd(lambda a: orgs.create_organization(
            id=a["id"], name=a["name"], level=a["level"],
            parent_id=a.get("parent_id"), manager_id=a.get("manager_id"),
            member_ids=_split(a.get("member_ids")), created_by=a.get("created_by", "cli"))),
        "org:get": cmd(lambda a: orgs.get_organization(a["id"])),
        "org:list": cmd(lambda a: orgs.get_all_organizations()),
        "org:delete": cmd(lambda a: orgs.delete_organization(a["id"])),
        "org:add-member": cmd(lambda a: orgs.add_member(
            a["org_id"], a["member_id"], a.get("updated_by", "cli"))),
        "org:stats": cmd(lambda a: hierarchy.get_statistics(a["id"])),

        "team:create": cmd(lambda a: teams.create_team(
            id=a["id"], name=a["name"], organization_id=a["org_id"], leader_id=a["leader_id"],
            type=a.get("type", "permanent"), member_ids=_split(a.get("member_ids")),
            objectives=_split(a.get("objectives")))),
        "team:get": cmd(lambda a: teams.get_team(a["id"])),
        "team:list": cmd(lambda a: teams.get_all_teams()),
        "team:delete": cmd(lambda a: teams.delete_team(a["id"])),
        "team:add-member": cmd(lambda a: teams.add_team_member(a["team_id"], a["member_id"])),
        "team:stats": cmd(lambda a: teams.get_team_statistics(a["id"])),

        "collab:create": cmd(lambda a: collab.create_relation(
            id=a["id"], from_agent_id=a["from"], to_agent_id=a["to"], type=a["type"],
            organization_id=a.get("org_id"), created_by=a.get("created_by", "cli"))),
        "collab:get": cmd(lambda a: collab.get_relation(a["id"])),
        "collab:list": cmd(lambda a: collab.get_relations_by_agent(a["agent_id"])),
        "collab:delete": cmd(lambda a: collab.delete_relation(a["id"])),
        "collab:network": cmd(lambda a: collab.get_network_stats(a["agent_id"])),

        "mentor:create": cmd(mentor_create),
        "mentor:get": cmd(lambda a: mentors.get_mentorship(a["id"])),
        "mentor:progress": cmd(lambda a: mentors.get_progress_report(a["id"])),
        "mentor:complete": cmd(lambda a: mentors.complete_mentorship(a["id"])),
        "mentor:stats": cmd(lambda a: mentors.get_mentor_stats(a["id"])
                            if a.get("type") == "mentor" else mentors.get_mentee_stats(a["id"])),
    }
