"""
Organization package: org tree, teams, collaboration relations, mentorships.
"""

from openclaw.organization.collaboration import CollaborationPath, CollaborationSystem, NetworkStats
from openclaw.organization.hierarchy import OrganizationHierarchy, OrganizationTreeNode
from openclaw.organization.integration import (
    OrganizationAPI,
    OrganizationIntegration,
    build_cli_commands,
    build_rpc_methods,
)
from openclaw.organization.mentor import MentorSystem
from openclaw.organization.system import OrganizationSystem
from openclaw.organization.team import TeamManagement
from openclaw.organization.types import (
    CollaborationRelation,
    CollaborationRelationType,
    MentorshipRelation,
    MentorshipStatus,
    Organization,
    OrganizationLevel,
    OrganizationQuota,
    Team,
    TeamType,
    TrainingPlan,
)

__all__ = [
    "OrganizationSystem",
    "OrganizationHierarchy",
    "OrganizationTreeNode",
    "TeamManagement",
    "CollaborationSystem",
    "CollaborationPath",
    "NetworkStats",
    "MentorSystem",
    "OrganizationIntegration",
    "OrganizationAPI",
    "build_rpc_methods",
    "build_cli_commands",
    "Organization",
    "OrganizationLevel",
    "OrganizationQuota",
    "Team",
    "TeamType",
    "CollaborationRelation",
    "CollaborationRelationType",
    "MentorshipRelation",
    "MentorshipStatus",
    "TrainingPlan",
]
