"""Domain models used by the Spaardoel package."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from .money import require_positive, to_decimal
from .plant import DEFAULT_PLANT_TYPE, PlantVisual, describe_plant, normalize_plant_type, progress_percentage


class UserRole(str, Enum):
    PARENT = "parent"
    CHILD = "child"


class GoalStatus(str, Enum):
    """Lifecycle of a savings goal."""

    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class ContributionSource(str, Enum):
    """Who put the money into a goal."""

    CHILD = "child"
    PARENT = "parent"
    EXTERNAL = "external"


@dataclass(slots=True)
class User:
    """A parent or child using the application."""

    user_id: str
    name: str
    role: UserRole
    pin: str = "0000"
    email: Optional[str] = None
    parent_id: Optional[str] = None
    birth_date: Optional[date] = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_parent(self) -> bool:
        return self.role is UserRole.PARENT


@dataclass(slots=True)
class Contribution:
    """A single deposit towards a savings goal."""

    goal_id: str
    amount: Decimal
    source: ContributionSource
    contributor_name: str
    message: str = ""
    share_token: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self) -> None:
        amount = to_decimal(self.amount)
        require_positive(amount)
        object.__setattr__(self, "amount", amount)


@dataclass(slots=True)
class Milestone:
    """A percentage mark on a goal, optionally carrying a reward."""

    percentage: int
    reward: str = ""
    reached_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not 1 <= int(self.percentage) <= 100:
            raise ValueError("Milestone percentage must be between 1 and 100.")
        object.__setattr__(self, "percentage", int(self.percentage))

    @property
    def reached(self) -> bool:
        return self.reached_at is not None


@dataclass(slots=True)
class ShareLink:
    """Tokenised link that lets people outside the family contribute."""

    token: str
    goal_id: str
    created_by: str
    expires_at: Optional[datetime] = None
    max_uses: Optional[int] = None
    use_count: int = 0
    active: bool = True
    created_at: datetime = field(default_factory=datetime.utcnow)

    def is_usable(self, *, at: Optional[datetime] = None) -> bool:
        moment = at or datetime.utcnow()
        if not self.active:
            return False
        if self.expires_at is not None and moment >= self.expires_at:
            return False
        if self.max_uses is not None and self.use_count >= self.max_uses:
            return False
        return True


@dataclass(slots=True)
class Goal:
    """Represents a savings goal a child grows towards."""

    goal_id: str
    owner_id: str
    name: str
    target_amount: Decimal
    plant_type: str = DEFAULT_PLANT_TYPE
    saved_amount: Decimal = Decimal("0.00")
    status: GoalStatus = GoalStatus.ACTIVE
    created_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        target = to_decimal(self.target_amount)
        saved = to_decimal(self.saved_amount)
        require_positive(target)
        if saved < Decimal("0"):
            raise ValueError("saved_amount cannot be negative.")
        object.__setattr__(self, "target_amount", target)
        object.__setattr__(self, "saved_amount", saved)
        object.__setattr__(self, "plant_type", normalize_plant_type(self.plant_type))

    def contribute(self, amount: Decimal) -> Decimal:
        """Increase the amount saved towards the goal."""

        increment = to_decimal(amount)
        require_positive(increment)
        self.saved_amount = self.saved_amount + increment
        if self.is_complete and self.completed_at is None:
            self.completed_at = datetime.utcnow()
            if self.status is GoalStatus.ACTIVE:
                self.status = GoalStatus.COMPLETED
        return increment

    @property
    def remaining(self) -> Decimal:
        """Return the amount still required to achieve the goal."""

        remainder = self.target_amount - self.saved_amount
        return remainder if remainder > Decimal("0") else Decimal("0.00")

    @property
    def is_complete(self) -> bool:
        return self.saved_amount >= self.target_amount

    def progress_percentage(self) -> float:
        """Progress in percent; over-funded goals report more than 100."""

        return progress_percentage(self.saved_amount, self.target_amount)

    def plant(self) -> PlantVisual:
        return describe_plant(self.progress_percentage(), self.plant_type)


__all__ = [
    "Contribution",
    "ContributionSource",
    "Goal",
    "GoalStatus",
    "Milestone",
    "ShareLink",
    "User",
    "UserRole",
]
