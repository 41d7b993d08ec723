"""
Read-only queries over the organization tree.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from openclaw.errors import NotFoundError
from openclaw.organization.system import OrganizationSystem
from openclaw.organization.types import Organization


@dataclass
class OrganizationTreeNode:
    organization: Organization
    children: list["OrganizationTreeNode"] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "organization": self.organization.to_dict(),
            "children": [c.to_dict() for c in self.children],
        }


@dataclass
class QuotaTotals:
    total_members: int = 0
    max_members: int | None = None
    budget_per_month: float | None = None
    max_tokens_per_day: int | None = None


class OrganizationHierarchy:
    """Ancestry, membership roll-ups and statistics for an OrganizationSystem."""

    def __init__(self, system: OrganizationSystem) -> None:
        self.system = system

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def is_ancestor(self, ancestor_id: str, descendant_id: str) -> bool:
        return any(o.id == ancestor_id for o in self.system.get_ancestors(descendant_id))

    def is_sibling(self, org1_id: str, org2_id: str) -> bool:
        org1 = self.system.get_organization(org1_id)
        org2 = self.system.get_organization(org2_id)
        if org1 is None or org2 is None:
            return False
        return org1.parent_id == org2.parent_id and org1.level == org2.level

    def get_common_ancestor(self, org1_id: str, org2_id: str) -> Organization | None:
        """Nearest ancestor of org1 that is also an ancestor of org2."""
        others = {o.id for o in self.system.get_ancestors(org2_id)}
        for ancestor in self.system.get_ancestors(org1_id):
            if ancestor.id in others:
                return ancestor
        return None

    def get_depth(self, organization_id: str) -> int:
        return len(self.system.get_ancestors(organization_id))

    def get_tree(self, root_id: str) -> OrganizationTreeNode | None:
        root = self.system.get_organization(root_id)
        if root is None:
            return None
        return self._build_tree(root)

    def _build_tree(self, org: Organization) -> OrganizationTreeNode:
        return OrganizationTreeNode(
            organization=org,
            children=[self._build_tree(c) for c in self.system.get_children(org.id)],
        )

    def get_path(self, organization_id: str) -> list[Organization]:
        """Root first, the organization itself last."""
        current = self.system.get_organization(organization_id)
        if current is None:
            return []
        return [*reversed(self.system.get_ancestors(organization_id)), current]

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def get_all_members(self, organization_id: str) -> list[str]:
        """Direct members plus members of every descendant, de-duplicated."""
        org = self.system.get_organization(organization_id)
        if org is None:
            return []
        members = dict.fromkeys(org.member_ids)
        for descendant in self.system.get_descendants(organization_id):
            members.update(dict.fromkeys(descendant.member_ids))
        return list(members)

    def is_member(self, organization_id: str, agent_id: str) -> bool:
        return agent_id in self.get_all_members(organization_id)

    def get_agent_organizations(self, agent_id: str) -> list[Organization]:
        return self.system.get_by_member(agent_id)

    def get_primary_organization(self, agent_id: str) -> Organization | None:
        """The deepest organization the agent belongs to directly."""
        orgs = self.get_agent_organizations(agent_id)
        if not orgs:
            return None
        return max(orgs, key=self.get_depth_of)

    def get_depth_of(self, org: Organization) -> int:
        return self.get_depth(org.id)

    # ------------------------------------------------------------------
    # Quota / statistics
    # ------------------------------------------------------------------

    def calculate_total_quota(self, organization_id: str) -> QuotaTotals:
        """Aggregate quota across the organization and all descendants.

        Member counts and budgets are summed, each organization counted once;
        ``max_members`` is the largest single limit in the subtree.
        """
        org = self.system.get_organization(organization_id)
        if org is None:
            return QuotaTotals()

        totals = QuotaTotals()
        for node in [org, *self.system.get_descendants(organization_id)]:
            totals.total_members += len(node.member_ids)
            quota = node.quota
            if quota is None:
                continue
            if quota.max_members:
                totals.max_members = max(totals.max_members or 0, quota.max_members)
            if quota.budget_per_month:
                totals.budget_per_month = (totals.budget_per_month or 0) + quota.budget_per_month
            if quota.max_tokens_per_day:
                totals.max_tokens_per_day = (totals.max_tokens_per_day or 0) + quota.max_tokens_per_day
        return totals

    def get_statistics(self, organization_id: str) -> dict[str, Any]:
        org = self.system.get_organization(organization_id)
        if org is None:
            raise NotFoundError(f'Organization "{organization_id}" not found')

        quota = self.calculate_total_quota(organization_id)
        return {
            "id": organization_id,
            "name": org.name,
            "level": org.level.value,
            "direct_members": len(org.member_ids),
            "total_members": len(self.get_all_members(organization_id)),
            "direct_children": len(self.system.get_children(organization_id)),
            "total_descendants": len(self.system.get_descendants(organization_id)),
            "depth": self.get_depth(organization_id),
            "quota": {
                "total_members": quota.total_members,
                "max_members": quota.max_members,
                "budget_per_month": quota.budget_per_month,
                "max_tokens_per_day": quota.max_tokens_per_day,
            },
        }
