"""
CollaborationSystem — typed relations between agents.

Design:
- Relations are directed (from -> to); supervisor / mentor / monitor care about
  direction, the other types are read symmetrically
- Relations are indexed by both agents, by type and by organization
- Path finding treats the relation graph as undirected (BFS, bounded depth)
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Iterable

from loguru import logger

from openclaw.clock import Clock, now_ms
from openclaw.errors import AlreadyExistsError, NotFoundError, ValidationError
from openclaw.organization.hierarchy import OrganizationHierarchy
from openclaw.organization.types import CollaborationRelation, CollaborationRelationType
from openclaw.repository import IndexedRepository


@dataclass
class PathStep:
    agent_id: str
    relation_type: CollaborationRelationType


@dataclass
class CollaborationPath:
    from_agent_id: str
    to_agent_id: str
    path: list[PathStep] = field(default_factory=list)

    @property
    def length(self) -> int:
        return len(self.path)


@dataclass
class NetworkStats:
    agent_id: str
    total_relations: int = 0
    relations_by_type: dict[str, int] = field(
        default_factory=lambda: {t.value: 0 for t in CollaborationRelationType}
    )
    supervisors: list[str] = field(default_factory=list)
    subordinates: list[str] = field(default_factory=list)
    colleagues: list[str] = field(default_factory=list)
    project_partners: list[str] = field(default_factory=list)
    business_partners: list[str] = field(default_factory=list)
    mentors: list[str] = field(default_factory=list)
    mentees: list[str] = field(default_factory=list)
    monitors: list[str] = field(default_factory=list)
    monitored: list[str] = field(default_factory=list)


class CollaborationSystem:
    """Typed collaboration relations between agents."""

    def __init__(self, hierarchy: OrganizationHierarchy, clock: Clock = now_ms) -> None:
        self.hierarchy = hierarchy
        self._clock = clock
        self._relations: IndexedRepository[CollaborationRelation] = IndexedRepository(
            "Collaboration relation",
            indexes={
                "agent": lambda r: (r.from_agent_id, r.to_agent_id),
                "type": lambda r: CollaborationRelationType(r.type),
                "organization": lambda r: r.organization_id,
            },
        )

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_relation(
        self,
        id: str,
        from_agent_id: str,
        to_agent_id: str,
        type: CollaborationRelationType | str,
        organization_id: str | None = None,
        description: str | None = None,
        permissions: list[str] | None = None,
        metadata: dict[str, Any] | None = None,
        valid_from: int | None = None,
        valid_until: int | None = None,
        created_by: str = "system",
    ) -> CollaborationRelation:
        rel_type = CollaborationRelationType(type)
        if id in self._relations:
            raise AlreadyExistsError(f'Collaboration relation with ID "{id}" already exists')
        if from_agent_id == to_agent_id:
            raise ValidationError("Cannot create collaboration relation with self")
        if valid_from and valid_until and valid_from >= valid_until:
            raise ValidationError("valid_from must be earlier than valid_until")

        if organization_id:
            if self.hierarchy.system.get_organization(organization_id) is None:
                raise NotFoundError(f'Organization "{organization_id}" not found')
            members = self.hierarchy.get_all_members(organization_id)
            for agent_id in (from_agent_id, to_agent_id):
                if agent_id not in members:
                    raise ValidationError(
                        f'Agent "{agent_id}" is not a member of organization "{organization_id}"'
                    )

        self._validate_relation_type(from_agent_id, to_agent_id, rel_type, organization_id)

        relation = CollaborationRelation(
            id=id,
            type=rel_type,
            from_agent_id=from_agent_id,
            to_agent_id=to_agent_id,
            organization_id=organization_id,
            description=description,
            permissions=list(permissions or []),
            metadata=dict(metadata or {}),
            valid_from=valid_from,
            valid_until=valid_until,
            created_at=self._clock(),
            created_by=created_by,
        )
        self._relations.add(relation)
        logger.debug(f"[collaboration] {from_agent_id} -[{rel_type.value}]-> {to_agent_id} ({id})")
        return relation

    def _validate_relation_type(
        self,
        from_agent_id: str,
        to_agent_id: str,
        rel_type: CollaborationRelationType,
        organization_id: str | None,
    ) -> None:
        if rel_type != CollaborationRelationType.SUPERVISOR:
            return
        if self.get_relation_between(to_agent_id, from_agent_id, CollaborationRelationType.SUPERVISOR):
            raise ValidationError(
                "Reverse supervision relation already exists (would create circular hierarchy)"
            )
        if organization_id:
            system = self.hierarchy.system
            from_orgs = {o.id for o in system.get_by_member(from_agent_id)}
            to_orgs = {o.id for o in system.get_by_member(to_agent_id)}
            if not from_orgs & to_orgs:
                raise ValidationError("Supervisor and subordinate must be in the same organization")

    def get_relation(self, relation_id: str) -> CollaborationRelation | None:
        return self._relations.get(relation_id)

    def get_relation_between(
        self,
        from_agent_id: str,
        to_agent_id: str,
        type: CollaborationRelationType | str | None = None,
    ) -> CollaborationRelation | None:
        wanted = CollaborationRelationType(type) if type else None
        for rel in self._relations.find("agent", from_agent_id):
            if rel.from_agent_id == from_agent_id and rel.to_agent_id == to_agent_id:
                if wanted is None or rel.type == wanted:
                    return rel
        return None

    def delete_relation(self, relation_id: str) -> bool:
        if self._relations.remove(relation_id) is None:
            raise NotFoundError(f'Collaboration relation "{relation_id}" not found')
        return True

    def update_relation_metadata(
        self, relation_id: str, metadata: dict[str, Any], updated_by: str = "system"
    ) -> CollaborationRelation:
        rel = self._relations.get(relation_id)
        if rel is None:
            raise NotFoundError(f'Collaboration relation "{relation_id}" not found')
        updated = replace(
            rel,
            metadata={**rel.metadata, **metadata},
            updated_at=self._clock(),
            updated_by=updated_by,
        )
        self._relations.update(updated)
        return updated

    def create_relations_batch(
        self, relations: Iterable[dict[str, Any]], created_by: str = "system"
    ) -> list[CollaborationRelation]:
        return [self.create_relation(**{**params, "created_by": created_by}) for params in relations]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_relations_by_agent(self, agent_id: str) -> list[CollaborationRelation]:
        return self._relations.find("agent", agent_id)

    def get_relations_by_type(
        self, agent_id: str, type: CollaborationRelationType | str
    ) -> list[CollaborationRelation]:
        wanted = CollaborationRelationType(type)
        return [r for r in self.get_relations_by_agent(agent_id) if r.type == wanted]

    def get_relations_by_organization(self, organization_id: str) -> list[CollaborationRelation]:
        return self._relations.find("organization", organization_id)

    def get_supervisors(self, agent_id: str) -> list[str]:
        return [
            r.from_agent_id
            for r in self.get_relations_by_type(agent_id, CollaborationRelationType.SUPERVISOR)
            if r.to_agent_id == agent_id
        ]

    def get_subordinates(self, agent_id: str) -> list[str]:
        return [
            r.to_agent_id
            for r in self.get_relations_by_type(agent_id, CollaborationRelationType.SUPERVISOR)
            if r.from_agent_id == agent_id
        ]

    def get_colleagues(self, agent_id: str) -> list[str]:
        return [
            r.other(agent_id)
            for r in self.get_relations_by_type(agent_id, CollaborationRelationType.COLLEAGUE)
        ]

    def get_active_relations(self, agent_id: str) -> list[CollaborationRelation]:
        now = self._clock()
        return [
            r for r in self.get_relations_by_agent(agent_id)
            if not (r.valid_from and now < r.valid_from)
            and not (r.valid_until and now > r.valid_until)
        ]

    def get_all_relations(self) -> list[CollaborationRelation]:
        return self._relations.all()

    def get_network_stats(self, agent_id: str) -> NetworkStats:
        stats = NetworkStats(agent_id=agent_id)
        relations = self.get_relations_by_agent(agent_id)
        stats.total_relations = len(relations)

        for rel in relations:
            stats.relations_by_type[rel.type.value] += 1
            outgoing = rel.from_agent_id == agent_id
            other = rel.other(agent_id)

            if rel.type == CollaborationRelationType.SUPERVISOR:
                (stats.subordinates if outgoing else stats.supervisors).append(other)
            elif rel.type == CollaborationRelationType.COLLEAGUE:
                stats.colleagues.append(other)
            elif rel.type == CollaborationRelationType.PROJECT:
                stats.project_partners.append(other)
            elif rel.type == CollaborationRelationType.BUSINESS:
                stats.business_partners.append(other)
            elif rel.type == CollaborationRelationType.MENTOR:
                (stats.mentees if outgoing else stats.mentors).append(other)
            elif rel.type == CollaborationRelationType.MONITOR:
                (stats.monitored if outgoing else stats.monitors).append(other)

        return stats

    # ------------------------------------------------------------------
    # Graph search
    # ------------------------------------------------------------------

    def find_collaboration_path(
        self, from_agent_id: str, to_agent_id: str, max_depth: int = 5
    ) -> CollaborationPath | None:
        """Shortest relation chain between two agents, ignoring direction."""
        if from_agent_id == to_agent_id:
            return CollaborationPath(from_agent_id, to_agent_id)

        queue: list[tuple[str, list[PathStep]]] = [(from_agent_id, [])]
        visited = {from_agent_id}
        while queue:
            current, path = queue.pop(0)
            if len(path) >= max_depth:
                continue
            for rel in self.get_relations_by_agent(current):
                nxt = rel.other(current)
                if nxt in visited:
                    continue
                new_path = [*path, PathStep(nxt, rel.type)]
                if nxt == to_agent_id:
                    return CollaborationPath(from_agent_id, to_agent_id, new_path)
                visited.add(nxt)
                queue.append((nxt, new_path))
        return None

    def has_circular_dependency(self, from_agent_id: str, to_agent_id: str) -> bool:
        """True if adding from -> to would close a loop in the relation graph."""
        return self.find_collaboration_path(to_agent_id, from_agent_id) is not None

    def __len__(self) -> int:
        return len(self._relations)
