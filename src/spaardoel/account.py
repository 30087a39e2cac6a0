"""Account object holding a user's savings goals and contribution ledger."""

from __future__ import annotations

import csv
from datetime import datetime
from decimal import Decimal
from io import StringIO
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from .exceptions import GoalClosedError, GoalNotFoundError
from .models import Contribution, ContributionSource, Goal, GoalStatus, Milestone, User
from .money import AmountLike, format_currency, to_decimal
from .plant import DEFAULT_PLANT_TYPE

DEFAULT_MILESTONES: Tuple[int, ...] = (25, 50, 75, 100)


class Account:
    """Represents one user's goals in the Spaardoel system."""

    __slots__ = (
        "user",
        "_goals",
        "_contributions",
        "_milestones",
    )

    def __init__(self, user: User) -> None:
        self.user = user
        self._goals: Dict[str, Goal] = {}
        self._contributions: List[Contribution] = []
        self._milestones: Dict[str, List[Milestone]] = {}

    @property
    def user_id(self) -> str:
        return self.user.user_id

    @property
    def goals(self) -> Tuple[Goal, ...]:
        """Return an immutable view of the savings goals."""

        return tuple(self._goals.values())

    @property
    def contributions(self) -> Tuple[Contribution, ...]:
        return tuple(self._contributions)

    @property
    def total_saved(self) -> Decimal:
        return sum((goal.saved_amount for goal in self._goals.values()), Decimal("0.00"))

    def get_goal(self, goal_id: str) -> Goal:
        goal = self._goals.get(goal_id)
        if goal is None:
            raise GoalNotFoundError(f"Goal '{goal_id}' does not exist.")
        return goal

    def has_goal(self, goal_id: str) -> bool:
        return goal_id in self._goals

    def add_goal(
        self,
        name: str,
        target_amount: AmountLike,
        *,
        plant_type: str = DEFAULT_PLANT_TYPE,
        milestones: Iterable[int] = DEFAULT_MILESTONES,
    ) -> Goal:
        """Create a new savings goal, seeded with its milestone marks."""

        clean_name = name.strip()
        if not clean_name:
            raise ValueError("A goal needs a name.")
        if any(goal.name == clean_name for goal in self._goals.values()):
            raise ValueError(f"A goal named '{clean_name}' already exists.")
        goal = Goal(
            goal_id=uuid4().hex[:12],
            owner_id=self.user_id,
            name=clean_name,
            target_amount=to_decimal(target_amount),
            plant_type=plant_type,
        )
        self._goals[goal.goal_id] = goal
        self._milestones[goal.goal_id] = sorted(
            (Milestone(percentage=value) for value in set(milestones)),
            key=lambda milestone: milestone.percentage,
        )
        return goal

    def add_milestone(self, goal_id: str, percentage: int, reward: str = "") -> Milestone:
        """Add a milestone or attach a reward to an existing one."""

        goal = self.get_goal(goal_id)
        marks = self._milestones.setdefault(goal_id, [])
        for milestone in marks:
            if milestone.percentage == int(percentage):
                milestone.reward = reward or milestone.reward
                return milestone
        milestone = Milestone(percentage=percentage, reward=reward)
        if goal.progress_percentage() >= milestone.percentage:
            # Marks below the current progress count as reached and never fire.
            milestone.reached_at = datetime.utcnow()
        marks.append(milestone)
        marks.sort(key=lambda item: item.percentage)
        return milestone

    def milestones(self, goal_id: str) -> Tuple[Milestone, ...]:
        self.get_goal(goal_id)
        return tuple(self._milestones.get(goal_id, ()))

    def contribute(
        self,
        goal_id: str,
        amount: AmountLike,
        *,
        source: ContributionSource,
        contributor_name: str,
        message: str = "",
        share_token: Optional[str] = None,
    ) -> Tuple[Contribution, Sequence[Milestone]]:
        """Record a contribution and return it with any milestones it reached."""

        goal = self.get_goal(goal_id)
        if goal.status is GoalStatus.ARCHIVED:
            raise GoalClosedError(f"Goal '{goal.name}' is archived.")
        contribution = Contribution(
            goal_id=goal_id,
            amount=to_decimal(amount),
            source=source,
            contributor_name=contributor_name,
            message=message,
            share_token=share_token,
        )
        goal.contribute(contribution.amount)
        self._contributions.append(contribution)
        return contribution, self._mark_milestones(goal, contribution)

    def archive_goal(self, goal_id: str) -> Goal:
        goal = self.get_goal(goal_id)
        goal.status = GoalStatus.ARCHIVED
        return goal

    def remove_goal(self, goal_id: str) -> Goal:
        """Delete a goal together with its contributions and milestones."""

        goal = self.get_goal(goal_id)
        del self._goals[goal_id]
        self._milestones.pop(goal_id, None)
        self._contributions = [item for item in self._contributions if item.goal_id != goal_id]
        return goal

    def contributions_for(self, goal_id: str) -> Tuple[Contribution, ...]:
        return tuple(item for item in self._contributions if item.goal_id == goal_id)

    def generate_statement(self) -> str:
        """Create a human-readable summary of the account's goals."""

        lines = [f"Saver: {self.user.name}", ""]
        if not self._goals:
            lines.append("  (no goals yet)")
            return "\n".join(lines)
        lines.append("Savings goals:")
        for goal in self._goals.values():
            plant = goal.plant()
            lines.append(
                "  "
                f"{goal.name}: saved {format_currency(goal.saved_amount)} "
                f"of {format_currency(goal.target_amount)} "
                f"({goal.progress_percentage():.1f}%, {plant.stage.value} {plant.plant_type})"
            )
        return "\n".join(lines)

    def export_contributions_csv(self, goal_id: Optional[str] = None) -> str:
        """Return a CSV export of the contribution ledger."""

        buffer = StringIO()
        writer = csv.writer(buffer)
        writer.writerow(["timestamp", "goal", "source", "contributor", "amount", "message"])
        for contribution in self._contributions:
            if goal_id and contribution.goal_id != goal_id:
                continue
            goal = self._goals.get(contribution.goal_id)
            writer.writerow(
                [
                    contribution.created_at.isoformat(),
                    goal.name if goal else contribution.goal_id,
                    contribution.source.value,
                    contribution.contributor_name,
                    f"{contribution.amount:.2f}",
                    contribution.message,
                ]
            )
        return buffer.getvalue()

    def _mark_milestones(self, goal: Goal, contribution: Contribution) -> List[Milestone]:
        reached: List[Milestone] = []
        progress = goal.progress_percentage()
        for milestone in self._milestones.get(goal.goal_id, ()):
            if milestone.reached:
                continue
            if progress >= milestone.percentage:
                milestone.reached_at = contribution.created_at
                reached.append(milestone)
        return reached


__all__ = ["Account", "DEFAULT_MILESTONES"]
