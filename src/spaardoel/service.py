"""High level service coordinating families, goals, share links and milestones."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from secrets import token_urlsafe
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .account import DEFAULT_MILESTONES, Account
from .admin import AuditLog
from .api import ApiExporter
from .exceptions import (
    DuplicateUserError,
    GoalNotFoundError,
    PermissionDeniedError,
    ShareLinkError,
    UserNotFoundError,
)
from .models import Contribution, ContributionSource, Goal, Milestone, ShareLink, User, UserRole
from .money import AmountLike, format_currency
from .notifications import Notification, NotificationCenter, NotificationChannel, NotificationType
from .ops import StructuredLogger
from .plant import DEFAULT_PLANT_TYPE, PlantVisual

SHARE_TOKEN_BYTES = 16


class SavingsTracker:
    """Manage users, their savings goals and everything hanging off a goal."""

    __slots__ = (
        "_accounts",
        "_links",
        "_deleted",
        "_notifications",
        "_audit_log",
        "_logger",
        "_api",
    )

    def __init__(self, *, logger: Optional[StructuredLogger] = None) -> None:
        self._accounts: Dict[str, Account] = {}
        self._links: Dict[str, ShareLink] = {}
        self._deleted: Dict[str, datetime] = {}
        self._notifications = NotificationCenter()
        self._audit_log = AuditLog()
        self._logger = logger or StructuredLogger()
        self._api = ApiExporter()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    def create_parent(self, user_id: str, name: str, *, email: str | None = None, pin: str = "0000") -> User:
        user = User(user_id=user_id, name=name, role=UserRole.PARENT, email=email, pin=pin)
        return self._register(user)

    def create_child(
        self,
        user_id: str,
        name: str,
        *,
        parent_id: str,
        birth_date: date | None = None,
        email: str | None = None,
        pin: str = "0000",
    ) -> User:
        parent = self.get_account(parent_id).user
        if not parent.is_parent:
            raise PermissionDeniedError(f"'{parent_id}' is not a parent account.")
        user = User(
            user_id=user_id,
            name=name,
            role=UserRole.CHILD,
            email=email,
            pin=pin,
            parent_id=parent_id,
            birth_date=birth_date,
        )
        return self._register(user)

    def get_account(self, user_id: str) -> Account:
        try:
            return self._accounts[user_id]
        except KeyError as exc:
            raise UserNotFoundError(f"User '{user_id}' does not exist.") from exc

    def has_user(self, user_id: str) -> bool:
        return user_id in self._accounts

    def list_users(self, *, role: UserRole | None = None) -> Tuple[str, ...]:
        return tuple(
            sorted(
                user_id
                for user_id, account in self._accounts.items()
                if role is None or account.user.role is role
            )
        )

    def children_of(self, parent_id: str) -> Tuple[User, ...]:
        self.get_account(parent_id)
        return tuple(
            account.user for account in self._accounts.values() if account.user.parent_id == parent_id
        )

    def delete_user(self, user_id: str, *, actor: str | None = None) -> Tuple[str, ...]:
        """Remove a user with every goal, link and notification they own.

        Deleting a parent removes their children as well.  Returns the ids of
        all removed users.
        """

        account = self.get_account(user_id)
        removed: List[str] = []
        if account.user.is_parent:
            for child in self.children_of(user_id):
                removed.extend(self.delete_user(child.user_id, actor=actor or user_id))
        for goal in account.goals:
            self._drop_goal(account, goal.goal_id)
        self._notifications.purge_recipient(user_id)
        del self._accounts[user_id]
        self._deleted[user_id] = datetime.utcnow()
        removed.append(user_id)
        self._audit_log.record(actor or user_id, "delete_user", user_id)
        self._logger.log("user_deleted", user=user_id)
        return tuple(removed)

    def deleted_users(self) -> Dict[str, datetime]:
        return dict(self._deleted)

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------
    def add_goal(
        self,
        child_id: str,
        name: str,
        target_amount: AmountLike,
        *,
        plant_type: str = DEFAULT_PLANT_TYPE,
        milestones: Iterable[int] = DEFAULT_MILESTONES,
        actor: str | None = None,
    ) -> Goal:
        account = self.get_account(child_id)
        if account.user.role is not UserRole.CHILD:
            raise PermissionDeniedError("Savings goals belong to children.")
        if actor is not None:
            self._ensure_manages(actor, child_id)
        goal = account.add_goal(name, target_amount, plant_type=plant_type, milestones=milestones)
        self._audit_log.record(actor or child_id, "create_goal", goal.goal_id, details={"name": goal.name})
        self._logger.log(
            "goal_created",
            child=child_id,
            goal=goal.goal_id,
            target=float(goal.target_amount),
            plant_type=goal.plant_type,
        )
        return goal

    def find_goal(self, goal_id: str) -> Tuple[Account, Goal]:
        for account in self._accounts.values():
            if account.has_goal(goal_id):
                return account, account.get_goal(goal_id)
        raise GoalNotFoundError(f"Goal '{goal_id}' does not exist.")

    def goals_for(self, user_id: str) -> Tuple[Goal, ...]:
        """Goals a user can see: their own, or their children's for a parent."""

        account = self.get_account(user_id)
        if not account.user.is_parent:
            return account.goals
        goals: List[Goal] = []
        for child in self.children_of(user_id):
            goals.extend(self._accounts[child.user_id].goals)
        return tuple(goals)

    def contribute(self, user_id: str, goal_id: str, amount: AmountLike, *, message: str = "") -> Contribution:
        """Add money to a goal as its owner or as the owner's parent."""

        account, goal = self.find_goal(goal_id)
        self._ensure_manages(user_id, account.user_id)
        contributor = self.get_account(user_id).user
        source = ContributionSource.PARENT if contributor.is_parent else ContributionSource.CHILD
        contribution, reached = account.contribute(
            goal_id,
            amount,
            source=source,
            contributor_name=contributor.name,
            message=message,
        )
        self._after_contribution(account, goal, contribution, reached, actor=user_id)
        return contribution

    def add_milestone(self, parent_id: str, goal_id: str, percentage: int, reward: str = "") -> Milestone:
        account, goal = self.find_goal(goal_id)
        if not self.get_account(parent_id).user.is_parent:
            raise PermissionDeniedError("Only parents can set milestone rewards.")
        self._ensure_manages(parent_id, account.user_id)
        milestone = account.add_milestone(goal_id, percentage, reward)
        self._audit_log.record(
            parent_id,
            "set_milestone",
            goal_id,
            details={"percentage": milestone.percentage, "reward": milestone.reward},
        )
        return milestone

    def milestones(self, goal_id: str) -> Tuple[Milestone, ...]:
        account, _ = self.find_goal(goal_id)
        return account.milestones(goal_id)

    def archive_goal(self, user_id: str, goal_id: str) -> Goal:
        account, _ = self.find_goal(goal_id)
        self._ensure_manages(user_id, account.user_id)
        goal = account.archive_goal(goal_id)
        for link in self.links_for(goal_id):
            link.active = False
        self._audit_log.record(user_id, "archive_goal", goal_id)
        return goal

    def delete_goal(self, user_id: str, goal_id: str) -> Goal:
        account, _ = self.find_goal(goal_id)
        self._ensure_manages(user_id, account.user_id)
        goal = self._drop_goal(account, goal_id)
        self._audit_log.record(user_id, "delete_goal", goal_id, details={"name": goal.name})
        self._logger.log("goal_deleted", goal=goal_id, saved=float(goal.saved_amount))
        return goal

    def plant_for_goal(self, goal_id: str) -> PlantVisual:
        _, goal = self.find_goal(goal_id)
        return goal.plant()

    def goal_gallery(self, child_id: str) -> Sequence[dict]:
        account = self.get_account(child_id)
        return tuple(
            {
                "id": goal.goal_id,
                "name": goal.name,
                "progress": goal.progress_percentage(),
                "stage": goal.plant().stage.value,
                "plant_type": goal.plant_type,
            }
            for goal in account.goals
        )

    # ------------------------------------------------------------------
    # Share links
    # ------------------------------------------------------------------
    def create_share_link(
        self,
        user_id: str,
        goal_id: str,
        *,
        expires_in: timedelta | None = None,
        max_uses: int | None = None,
    ) -> ShareLink:
        account, _ = self.find_goal(goal_id)
        self._ensure_manages(user_id, account.user_id)
        if max_uses is not None and max_uses <= 0:
            raise ValueError("max_uses must be positive when given.")
        link = ShareLink(
            token=token_urlsafe(SHARE_TOKEN_BYTES),
            goal_id=goal_id,
            created_by=user_id,
            expires_at=datetime.utcnow() + expires_in if expires_in else None,
            max_uses=max_uses,
        )
        self._links[link.token] = link
        self._audit_log.record(user_id, "create_share_link", goal_id)
        return link

    def get_share_link(self, token: str) -> ShareLink:
        link = self._links.get(token)
        if link is None:
            raise ShareLinkError("This share link does not exist.")
        return link

    def links_for(self, goal_id: str) -> Tuple[ShareLink, ...]:
        return tuple(link for link in self._links.values() if link.goal_id == goal_id)

    def revoke_share_link(self, user_id: str, token: str) -> ShareLink:
        link = self.get_share_link(token)
        account, _ = self.find_goal(link.goal_id)
        self._ensure_manages(user_id, account.user_id)
        link.active = False
        self._audit_log.record(user_id, "revoke_share_link", link.goal_id)
        return link

    def contribute_via_link(
        self,
        token: str,
        amount: AmountLike,
        *,
        contributor_name: str,
        message: str = "",
        at: datetime | None = None,
    ) -> Contribution:
        """Accept a contribution from someone outside the family."""

        link = self.get_share_link(token)
        if not link.is_usable(at=at):
            raise ShareLinkError("This share link is no longer accepting contributions.")
        account, goal = self.find_goal(link.goal_id)
        name = contributor_name.strip() or "A friend"
        contribution, reached = account.contribute(
            goal.goal_id,
            amount,
            source=ContributionSource.EXTERNAL,
            contributor_name=name,
            message=message,
            share_token=token,
        )
        link.use_count += 1
        self._notify(
            account.user_id,
            NotificationType.LINK_CONTRIBUTION,
            f"{name} helped your {goal.name}!",
            f"{name} added {format_currency(contribution.amount)} to '{goal.name}'.",
            goal=goal.goal_id,
        )
        self._after_contribution(account, goal, contribution, reached, actor=f"link:{link.goal_id}")
        return contribution

    # ------------------------------------------------------------------
    # Notifications and reporting
    # ------------------------------------------------------------------
    @property
    def notifications(self) -> NotificationCenter:
        return self._notifications

    def notifications_for(self, user_id: str, *, unread_only: bool = False) -> Sequence[Notification]:
        self.get_account(user_id)
        return self._notifications.inbox(user_id, unread_only=unread_only)

    @property
    def audit_log(self) -> AuditLog:
        return self._audit_log

    @property
    def logger(self) -> StructuredLogger:
        return self._logger

    def api_goal(self, goal_id: str) -> dict:
        account, goal = self.find_goal(goal_id)
        return self._api.goal_snapshot(
            goal,
            milestones=account.milestones(goal_id),
            contributions=account.contributions_for(goal_id),
            links=self.links_for(goal_id),
        )

    def total_saved(self) -> Decimal:
        return sum((account.total_saved for account in self._accounts.values()), Decimal("0.00"))

    def summary(self) -> str:
        lines = ["Spaardoel summary:"]
        for user_id in self.list_users(role=UserRole.CHILD):
            account = self._accounts[user_id]
            lines.append(
                f"- {account.user.name}: {len(account.goals)} goal(s), saved {format_currency(account.total_saved)}"
            )
        lines.append(f"Total saved: {format_currency(self.total_saved())}")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _register(self, user: User) -> User:
        if user.user_id in self._accounts:
            raise DuplicateUserError(f"User '{user.user_id}' already exists.")
        self._accounts[user.user_id] = Account(user)
        self._deleted.pop(user.user_id, None)
        self._audit_log.record("system", "create_user", user.user_id, details={"role": user.role.value})
        self._logger.log("user_created", user=user.user_id, role=user.role.value)
        return user

    def _ensure_manages(self, actor_id: str, owner_id: str) -> None:
        if actor_id == owner_id:
            return
        actor = self.get_account(actor_id).user
        owner = self.get_account(owner_id).user
        if actor.is_parent and owner.parent_id == actor.user_id:
            return
        raise PermissionDeniedError(f"'{actor_id}' cannot manage goals of '{owner_id}'.")

    def _drop_goal(self, account: Account, goal_id: str) -> Goal:
        goal = account.remove_goal(goal_id)
        for token in [token for token, link in self._links.items() if link.goal_id == goal_id]:
            del self._links[token]
        return goal

    def _after_contribution(
        self,
        account: Account,
        goal: Goal,
        contribution: Contribution,
        reached: Sequence[Milestone],
        *,
        actor: str,
    ) -> None:
        self._audit_log.record(
            actor,
            "contribute",
            goal.goal_id,
            details={"amount": str(contribution.amount), "source": contribution.source.value},
        )
        plant = goal.plant()
        self._logger.log(
            "contribution",
            goal=goal.goal_id,
            source=contribution.source.value,
            amount=float(contribution.amount),
            progress=round(goal.progress_percentage(), 2),
            stage=plant.stage.value,
        )
        recipients = [account.user_id]
        if account.user.parent_id and account.user.parent_id in self._accounts:
            recipients.append(account.user.parent_id)
        for milestone in reached:
            reward = f" Reward: {milestone.reward}." if milestone.reward else ""
            for recipient in recipients:
                self._notify(
                    recipient,
                    NotificationType.GOAL_MILESTONE,
                    f"{milestone.percentage}% milestone reached!",
                    f"Goal '{goal.name}' is now {milestone.percentage}% funded.{reward}",
                    goal=goal.goal_id,
                    milestone=str(milestone.percentage),
                )
        if goal.is_complete and goal.saved_amount - contribution.amount < goal.target_amount:
            for recipient in recipients:
                self._notify(
                    recipient,
                    NotificationType.GOAL_COMPLETED,
                    f"'{goal.name}' is fully grown!",
                    f"{account.user.name} saved {format_currency(goal.saved_amount)} for '{goal.name}'.",
                    goal=goal.goal_id,
                )

    def _notify(self, recipient: str, notification_type: NotificationType, subject: str, body: str, **metadata: str) -> None:
        self._notifications.notify(
            Notification(
                recipient=recipient,
                type=notification_type,
                subject=subject,
                body=body,
                metadata=dict(metadata),
            )
        )
        contact = self._accounts[recipient].user.email if recipient in self._accounts else None
        if contact:
            self._notifications.notify(
                Notification(
                    recipient=contact,
                    type=notification_type,
                    subject=subject,
                    body=body,
                    channel=NotificationChannel.EMAIL,
                    metadata={"user": recipient, **metadata},
                )
            )


__all__ = ["SavingsTracker"]
