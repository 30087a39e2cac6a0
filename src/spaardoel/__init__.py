"""Spaardoel: savings goals for children that grow as plants."""

from .account import DEFAULT_MILESTONES, Account
from .admin import AuditEvent, AuditLog
from .api import ApiExporter
from .emailing import EmailClient
from .exceptions import (
    DuplicateUserError,
    GoalClosedError,
    GoalNotFoundError,
    PermissionDeniedError,
    ShareLinkError,
    SpaardoelError,
    UserNotFoundError,
)
from .i18n import Translator
from .models import (
    Contribution,
    ContributionSource,
    Goal,
    GoalStatus,
    Milestone,
    ShareLink,
    User,
    UserRole,
)
from .notifications import Notification, NotificationCenter, NotificationChannel, NotificationType
from .ops import HealthMonitor, StructuredLogger
from .plant import (
    PlantStage,
    PlantVisual,
    describe_plant,
    get_stage,
    leaf_count,
    plant_color,
    plant_height,
    progress_percentage,
    render_plant_svg,
    stem_height,
)
from .service import SavingsTracker

__all__ = [
    "Account",
    "ApiExporter",
    "AuditEvent",
    "AuditLog",
    "Contribution",
    "ContributionSource",
    "DEFAULT_MILESTONES",
    "DuplicateUserError",
    "EmailClient",
    "Goal",
    "GoalClosedError",
    "GoalNotFoundError",
    "GoalStatus",
    "HealthMonitor",
    "Milestone",
    "Notification",
    "NotificationCenter",
    "NotificationChannel",
    "NotificationType",
    "PermissionDeniedError",
    "PlantStage",
    "PlantVisual",
    "SavingsTracker",
    "ShareLink",
    "ShareLinkError",
    "SpaardoelError",
    "StructuredLogger",
    "Translator",
    "User",
    "UserNotFoundError",
    "UserRole",
    "describe_plant",
    "get_stage",
    "leaf_count",
    "plant_color",
    "plant_height",
    "progress_percentage",
    "render_plant_svg",
    "stem_height",
]
