"""
MentorSystem — mentor / mentee pairs with a training plan and progress.

Design:
- At most one *active* mentorship per (mentor, mentee) pair
- Each mentorship mirrors itself as a "mentor" collaboration relation ``collab_<id>``
- Progress only grows (goals / skills are unioned); reaching 100% auto-completes
"""

from __future__ import annotations

import math
from dataclasses import replace
from typing import Any

from loguru import logger

from openclaw.clock import Clock, now_ms
from openclaw.errors import AlreadyExistsError, InvalidStateError, NotFoundError, ValidationError
from openclaw.organization.collaboration import CollaborationSystem
from openclaw.organization.types import (
    CollaborationRelationType,
    MentorshipProgress,
    MentorshipRelation,
    MentorshipStatus,
    TrainingPlan,
)
from openclaw.repository import IndexedRepository


def percent(part: int, total: int) -> int:
    """Rounded percentage, halves rounded up."""
    if total <= 0:
        return 0
    return int(math.floor(part / total * 100 + 0.5))


class MentorSystem:
    """Mentorships indexed by mentor and mentee."""

    def __init__(self, collaboration: CollaborationSystem, clock: Clock = now_ms) -> None:
        self.collaboration = collaboration
        self._clock = clock
        self._mentorships: IndexedRepository[MentorshipRelation] = IndexedRepository(
            "Mentorship relation",
            indexes={
                "mentor": lambda m: m.mentor_id,
                "mentee": lambda m: m.mentee_id,
            },
        )

    def _require(self, mentorship_id: str) -> MentorshipRelation:
        m = self._mentorships.get(mentorship_id)
        if m is None:
            raise NotFoundError(f'Mentorship relation "{mentorship_id}" not found')
        return m

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_mentorship(
        self,
        id: str,
        mentor_id: str,
        mentee_id: str,
        training_plan: TrainingPlan | dict[str, Any] | None = None,
        created_by: str = "system",
    ) -> MentorshipRelation:
        if id in self._mentorships:
            raise AlreadyExistsError(f'Mentorship relation with ID "{id}" already exists')
        if mentor_id == mentee_id:
            raise ValidationError("Cannot create mentorship relation with self")
        if self.get_active_mentorship_between(mentor_id, mentee_id):
            raise ValidationError(
                f'Active mentorship relation already exists between "{mentor_id}" and "{mentee_id}"'
            )

        if isinstance(training_plan, dict):
            training_plan = TrainingPlan(**training_plan)

        now = self._clock()
        mentorship = MentorshipRelation(
            id=id,
            mentor_id=mentor_id,
            mentee_id=mentee_id,
            training_plan=training_plan,
            progress=MentorshipProgress(last_updated=now) if training_plan else None,
            status=MentorshipStatus.ACTIVE,
            start_date=now,
            created_at=now,
            created_by=created_by,
        )

        # The relation is created first so a failure leaves nothing behind
        self.collaboration.create_relation(
            id=f"collab_{id}",
            from_agent_id=mentor_id,
            to_agent_id=mentee_id,
            type=CollaborationRelationType.MENTOR,
            metadata={"mentorship_id": id},
            created_by=created_by,
        )
        self._mentorships.add(mentorship)
        logger.info(f"[mentor] {mentor_id} now mentors {mentee_id} ({id})")
        return mentorship

    def get_mentorship(self, mentorship_id: str) -> MentorshipRelation | None:
        return self._mentorships.get(mentorship_id)

    def get_active_mentorship_between(self, mentor_id: str, mentee_id: str) -> MentorshipRelation | None:
        for m in self._mentorships.find("mentor", mentor_id):
            if m.mentee_id == mentee_id and m.status == MentorshipStatus.ACTIVE:
                return m
        return None

    def update_training_plan(
        self,
        mentorship_id: str,
        goals: list[str] | None = None,
        skills: list[str] | None = None,
        duration: int | None = None,
    ) -> MentorshipRelation:
        m = self._require(mentorship_id)
        if m.status != MentorshipStatus.ACTIVE:
            raise InvalidStateError(f"Cannot update training plan for {m.status.value} mentorship")

        current = m.training_plan or TrainingPlan()
        plan = TrainingPlan(
            goals=list(goals) if goals is not None else list(current.goals),
            skills=list(skills) if skills is not None else list(current.skills),
            duration=duration if duration is not None else current.duration,
        )
        updated = replace(m, training_plan=plan)
        self._mentorships.update(updated)
        return updated

    def update_progress(
        self,
        mentorship_id: str,
        completed_goals: list[str] | None = None,
        acquired_skills: list[str] | None = None,
    ) -> MentorshipRelation:
        m = self._require(mentorship_id)
        if m.status != MentorshipStatus.ACTIVE:
            raise InvalidStateError(f"Cannot update progress for {m.status.value} mentorship")

        current = m.progress or MentorshipProgress()
        goals = list(dict.fromkeys([*current.completed_goals, *(completed_goals or [])]))
        skills = list(dict.fromkeys([*current.acquired_skills, *(acquired_skills or [])]))
        rate = self._progress_rate(m, goals, skills)

        updated = replace(
            m,
            progress=MentorshipProgress(
                completed_goals=goals,
                acquired_skills=skills,
                progress_rate=rate,
                last_updated=self._clock(),
            ),
        )
        if rate >= 100:
            updated.status = MentorshipStatus.COMPLETED
            logger.info(f"[mentor] Mentorship {mentorship_id} reached 100% and completed")
        self._mentorships.update(updated)
        return updated

    @staticmethod
    def _progress_rate(m: MentorshipRelation, goals: list[str], skills: list[str]) -> int:
        plan = m.training_plan
        if plan is None:
            return 0
        total = len(plan.goals) + len(plan.skills)
        if total == 0:
            return 0
        return min(100, percent(len(goals) + len(skills), total))

    def complete_mentorship(self, mentorship_id: str) -> MentorshipRelation:
        return self._finish(mentorship_id, MentorshipStatus.COMPLETED)

    def cancel_mentorship(self, mentorship_id: str, reason: str | None = None) -> MentorshipRelation:
        m = self._finish(mentorship_id, MentorshipStatus.CANCELLED)
        if reason:
            logger.info(f"[mentor] Mentorship {mentorship_id} cancelled: {reason}")
        return m

    def _finish(self, mentorship_id: str, status: MentorshipStatus) -> MentorshipRelation:
        m = self._require(mentorship_id)
        if m.status != MentorshipStatus.ACTIVE:
            raise InvalidStateError(f"Mentorship is already {m.status.value}")
        updated = replace(m, status=status, end_date=self._clock())
        self._mentorships.update(updated)
        return updated

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_mentorships_by_mentor(self, mentor_id: str) -> list[MentorshipRelation]:
        return self._mentorships.find("mentor", mentor_id)

    def get_mentorships_by_mentee(self, mentee_id: str) -> list[MentorshipRelation]:
        return self._mentorships.find("mentee", mentee_id)

    def get_active_mentorships(self, agent_id: str) -> list[MentorshipRelation]:
        both = [*self.get_mentorships_by_mentor(agent_id), *self.get_mentorships_by_mentee(agent_id)]
        return [m for m in both if m.status == MentorshipStatus.ACTIVE]

    def get_all_mentorships(self) -> list[MentorshipRelation]:
        return self._mentorships.all()

    def get_mentor_stats(self, mentor_id: str) -> dict[str, Any]:
        ms = self.get_mentorships_by_mentor(mentor_id)
        progress = [m.progress for m in ms if m.progress]
        return {
            "mentor_id": mentor_id,
            "total_mentees": len(ms),
            "active_mentees": sum(1 for m in ms if m.status == MentorshipStatus.ACTIVE),
            "completed_mentees": sum(1 for m in ms if m.status == MentorshipStatus.COMPLETED),
            "average_progress_rate": _average(sum(p.progress_rate for p in progress), len(ms)),
            "total_goals_set": sum(len(m.training_plan.goals) for m in ms if m.training_plan),
            "total_goals_completed": sum(len(p.completed_goals) for p in progress),
            "total_skills_taught": sum(len(p.acquired_skills) for p in progress),
        }

    def get_mentee_stats(self, mentee_id: str) -> dict[str, Any]:
        ms = self.get_mentorships_by_mentee(mentee_id)
        progress = [m.progress for m in ms if m.progress]
        return {
            "mentee_id": mentee_id,
            "total_mentors": len(ms),
            "active_mentors": sum(1 for m in ms if m.status == MentorshipStatus.ACTIVE),
            "completed_mentorships": sum(1 for m in ms if m.status == MentorshipStatus.COMPLETED),
            "total_goals_completed": sum(len(p.completed_goals) for p in progress),
            "total_skills_acquired": sum(len(p.acquired_skills) for p in progress),
            "average_progress_rate": _average(sum(p.progress_rate for p in progress), len(ms)),
        }

    def get_progress_report(self, mentorship_id: str) -> dict[str, Any]:
        m = self._require(mentorship_id)
        plan = m.training_plan or TrainingPlan()
        progress = m.progress
        completed_goals = len(progress.completed_goals) if progress else 0
        acquired_skills = len(progress.acquired_skills) if progress else 0
        end = m.end_date if m.end_date else self._clock()

        return {
            "relation_id": mentorship_id,
            "mentor_id": m.mentor_id,
            "mentee_id": m.mentee_id,
            "status": m.status.value,
            "progress": {
                "goals": {
                    "total": len(plan.goals),
                    "completed": completed_goals,
                    "rate": percent(completed_goals, len(plan.goals)),
                },
                "skills": {
                    "total": len(plan.skills),
                    "acquired": acquired_skills,
                    "rate": percent(acquired_skills, len(plan.skills)),
                },
                "overall": progress.progress_rate if progress else 0,
            },
            "duration": {
                "planned": plan.duration,
                "actual": end - m.start_date,
            },
            "last_updated": progress.last_updated if progress else m.created_at,
        }

    def suggest_mentors(
        self,
        mentee_id: str,
        required_skills: list[str],
        organization_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """Rank organization members by the required skills their mentees acquired."""
        if not organization_id or not required_skills:
            return []
        org = self.collaboration.hierarchy.system.get_organization(organization_id)
        if org is None:
            return []

        suggestions: list[dict[str, Any]] = []
        for candidate in org.member_ids:
            if candidate == mentee_id:
                continue
            taught: set[str] = set()
            for m in self.get_mentorships_by_mentor(candidate):
                if m.progress:
                    taught.update(m.progress.acquired_skills)
            matched = [s for s in required_skills if s in taught]
            if matched:
                suggestions.append({
                    "mentor_id": candidate,
                    "match_score": percent(len(matched), len(required_skills)),
                    "matched_skills": matched,
                })
        suggestions.sort(key=lambda s: s["match_score"], reverse=True)
        return suggestions

    def __len__(self) -> int:
        return len(self._mentorships)


def _average(total: int, count: int) -> int:
    return int(math.floor(total / count + 0.5)) if count else 0
