"""
OrganizationSystem — company / department / team / individual tree.

Design:
- Organizations live in an IndexedRepository indexed by parent, level and member
- Levels must strictly increase from parent to child
- Deleting requires the organization to be empty (no children, no members)
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from loguru import logger

from openclaw.clock import Clock, now_ms
from openclaw.errors import AlreadyExistsError, InvalidStateError, NotFoundError, ValidationError
from openclaw.organization.types import (
    LEVEL_ORDER,
    Organization,
    OrganizationLevel,
    OrganizationQuota,
)
from openclaw.repository import IndexedRepository


# Fields that callers may never overwrite through update_organization()
_IMMUTABLE_FIELDS = {"id", "created_at", "created_by", "updated_at", "updated_by"}


def validate_hierarchy(child: OrganizationLevel, parent: OrganizationLevel) -> None:
    if LEVEL_ORDER.index(OrganizationLevel(child)) <= LEVEL_ORDER.index(OrganizationLevel(parent)):
        raise ValidationError(
            f"Invalid hierarchy: {OrganizationLevel(child).value} cannot be a child of "
            f"{OrganizationLevel(parent).value}"
        )


class OrganizationSystem:
    """Registry of organizations and their direct members."""

    def __init__(self, clock: Clock = now_ms) -> None:
        self._clock = clock
        self._orgs: IndexedRepository[Organization] = IndexedRepository(
            "Organization",
            indexes={
                "parent": lambda o: o.parent_id,
                "level": lambda o: OrganizationLevel(o.level),
                "member": lambda o: o.member_ids,
            },
        )

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_organization(
        self,
        id: str,
        name: str,
        level: OrganizationLevel | str,
        created_by: str = "system",
        parent_id: str | None = None,
        manager_id: str | None = None,
        member_ids: list[str] | None = None,
        description: str | None = None,
        industry: str | None = None,
        location: str | None = None,
        quota: OrganizationQuota | dict[str, Any] | None = None,
    ) -> Organization:
        level = OrganizationLevel(level)
        if id in self._orgs:
            raise AlreadyExistsError(f'Organization with ID "{id}" already exists')
        if parent_id:
            parent = self._orgs.get(parent_id)
            if parent is None:
                raise NotFoundError(f'Parent organization "{parent_id}" not found')
            validate_hierarchy(level, parent.level)

        if isinstance(quota, dict):
            quota = OrganizationQuota(**quota)

        org = Organization(
            id=id,
            name=name,
            level=level,
            parent_id=parent_id,
            manager_id=manager_id,
            member_ids=list(member_ids or []),
            description=description,
            industry=industry,
            location=location,
            quota=quota,
            created_at=self._clock(),
            created_by=created_by,
        )
        self._orgs.add(org)
        logger.info(f"[organization] Created organization: {id} ({name})")
        return org

    def get_organization(self, id: str) -> Organization | None:
        return self._orgs.get(id)

    def require(self, id: str) -> Organization:
        org = self._orgs.get(id)
        if org is None:
            raise NotFoundError(f'Organization "{id}" not found')
        return org

    def update_organization(
        self,
        id: str,
        updates: dict[str, Any],
        updated_by: str = "system",
    ) -> Organization:
        org = self.require(id)
        updates = {k: v for k, v in updates.items() if k not in _IMMUTABLE_FIELDS}
        if "level" in updates:
            updates["level"] = OrganizationLevel(updates["level"])
        if isinstance(updates.get("quota"), dict):
            updates["quota"] = OrganizationQuota(**updates["quota"])

        new_parent_id = updates.get("parent_id", org.parent_id)
        new_level = updates.get("level", org.level)
        if new_parent_id != org.parent_id or new_level != org.level:
            if new_parent_id:
                parent = self._orgs.get(new_parent_id)
                if parent is None:
                    raise NotFoundError(f'Parent organization "{new_parent_id}" not found')
                validate_hierarchy(new_level, parent.level)
            for child in self.get_children(id):
                validate_hierarchy(child.level, new_level)

        updated = replace(org, **updates, updated_at=self._clock(), updated_by=updated_by)
        self._orgs.update(updated)
        logger.info(f"[organization] Updated organization: {id}")
        return updated

    def delete_organization(self, id: str) -> bool:
        org = self._orgs.get(id)
        if org is None:
            return False

        children = self.get_children(id)
        if children:
            raise InvalidStateError(
                f'Cannot delete organization "{id}": it has {len(children)} child organization(s)'
            )
        if org.member_ids:
            raise InvalidStateError(
                f'Cannot delete organization "{id}": it has {len(org.member_ids)} member(s)'
            )

        self._orgs.remove(id)
        logger.info(f"[organization] Deleted organization: {id}")
        return True

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def add_member(self, organization_id: str, agent_id: str, updated_by: str = "system") -> Organization:
        org = self.require(organization_id)
        if org.quota and org.quota.max_members:
            if len(org.member_ids) >= org.quota.max_members:
                raise InvalidStateError(
                    f'Organization "{organization_id}" has reached max members limit '
                    f"({org.quota.max_members})"
                )
        if agent_id in org.member_ids:
            raise ValidationError(
                f'Agent "{agent_id}" is already a member of organization "{organization_id}"'
            )

        updated = replace(
            org,
            member_ids=[*org.member_ids, agent_id],
            updated_at=self._clock(),
            updated_by=updated_by,
        )
        self._orgs.update(updated)
        logger.info(f"[organization] Added member {agent_id} to organization {organization_id}")
        return updated

    def remove_member(self, organization_id: str, agent_id: str, updated_by: str = "system") -> Organization:
        org = self.require(organization_id)
        if agent_id not in org.member_ids:
            raise ValidationError(
                f'Agent "{agent_id}" is not a member of organization "{organization_id}"'
            )

        updated = replace(
            org,
            member_ids=[m for m in org.member_ids if m != agent_id],
            updated_at=self._clock(),
            updated_by=updated_by,
        )
        self._orgs.update(updated)
        logger.info(f"[organization] Removed member {agent_id} from organization {organization_id}")
        return updated

    # ------------------------------------------------------------------
    # Tree queries
    # ------------------------------------------------------------------

    def get_children(self, organization_id: str) -> list[Organization]:
        return self._orgs.find("parent", organization_id)

    def get_ancestors(self, organization_id: str) -> list[Organization]:
        """Parent first, root last."""
        ancestors: list[Organization] = []
        current = self._orgs.get(organization_id)
        while current is not None and current.parent_id:
            parent = self._orgs.get(current.parent_id)
            if parent is None:
                break
            ancestors.append(parent)
            current = parent
        return ancestors

    def get_descendants(self, organization_id: str) -> list[Organization]:
        """Breadth-first list of every organization below the given one."""
        descendants: list[Organization] = []
        queue = [organization_id]
        while queue:
            current_id = queue.pop(0)
            for child in self.get_children(current_id):
                descendants.append(child)
                queue.append(child.id)
        return descendants

    def get_by_level(self, level: OrganizationLevel | str) -> list[Organization]:
        return self._orgs.find("level", OrganizationLevel(level))

    def get_by_member(self, agent_id: str) -> list[Organization]:
        return self._orgs.find("member", agent_id)

    def get_all_organizations(self) -> list[Organization]:
        return self._orgs.all()

    def clear_all(self) -> None:
        self._orgs.clear()
        logger.info("[organization] Cleared all organizations")

    def __len__(self) -> int:
        return len(self._orgs)
