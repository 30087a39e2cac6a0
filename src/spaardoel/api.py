"""Convert Spaardoel data structures to JSON friendly dictionaries."""

from __future__ import annotations

from typing import Dict, Sequence

from .models import Contribution, Goal, Milestone, ShareLink
from .plant import describe_plant


class ApiExporter:
    """Serialise goals, plants and ledgers for the JSON API."""

    def goal_snapshot(
        self,
        goal: Goal,
        *,
        milestones: Sequence[Milestone] = (),
        contributions: Sequence[Contribution] = (),
        links: Sequence[ShareLink] = (),
    ) -> Dict[str, object]:
        return {
            "id": goal.goal_id,
            "owner": goal.owner_id,
            "name": goal.name,
            "target": float(goal.target_amount),
            "saved": float(goal.saved_amount),
            "remaining": float(goal.remaining),
            "status": goal.status.value,
            "progress": goal.progress_percentage(),
            "plant": goal.plant().as_dict(),
            "milestones": [
                {
                    "percentage": milestone.percentage,
                    "reward": milestone.reward,
                    "reached_at": milestone.reached_at.isoformat() if milestone.reached_at else None,
                }
                for milestone in milestones
            ],
            "contributions": [self._serialise_contribution(item) for item in contributions],
            "links": [
                {
                    "token": link.token,
                    "active": link.active,
                    "uses": link.use_count,
                    "max_uses": link.max_uses,
                    "expires_at": link.expires_at.isoformat() if link.expires_at else None,
                }
                for link in links
            ],
        }

    def plant_snapshot(self, percentage: float, plant_type: str | None = None) -> Dict[str, object]:
        return describe_plant(percentage, plant_type).as_dict()

    def _serialise_contribution(self, contribution: Contribution) -> Dict[str, object]:
        return {
            "timestamp": contribution.created_at.isoformat(),
            "source": contribution.source.value,
            "contributor": contribution.contributor_name,
            "amount": float(contribution.amount),
            "message": contribution.message,
        }


__all__ = ["ApiExporter"]
