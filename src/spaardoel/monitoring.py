"""Monitoring configuration prepared for a fresh deployment.

Nothing is submitted to the vendors; the plan lists the alerts, release record
and custom metrics that would be registered, given which credentials are set.
"""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Tuple

from .settings import DATADOG_API_KEY, DEPLOY_ENVIRONMENT, RELEASE_VERSION, SENTRY_AUTH_TOKEN

logger = logging.getLogger(__name__)

SENTRY_PROJECT = "spaardoel-plant-tracker"

CUSTOM_METRICS: Tuple[str, ...] = (
    "user_registrations",
    "goal_completions",
    "plant_care_actions",
    "parent_child_interactions",
    "gdpr_requests",
)


@dataclass(slots=True)
class AlertDefinition:
    name: str
    query: str
    message: str


@dataclass(slots=True)
class ReleaseRecord:
    version: str
    environment: str
    projects: List[str] = field(default_factory=lambda: [SENTRY_PROJECT])


@dataclass(slots=True)
class MonitoringPlan:
    alerts: List[AlertDefinition] = field(default_factory=list)
    release: Optional[ReleaseRecord] = None
    metrics: Tuple[str, ...] = CUSTOM_METRICS

    def as_dict(self) -> Dict[str, object]:
        return {
            "alerts": [asdict(alert) for alert in self.alerts],
            "release": asdict(self.release) if self.release else None,
            "metrics": list(self.metrics),
        }


def datadog_alerts(environment: str = DEPLOY_ENVIRONMENT) -> List[AlertDefinition]:
    return [
        AlertDefinition(
            "High Error Rate",
            f"avg(last_5m):avg:trace.http.request.errors{{env:{environment}}} by {{service}} > 0.05",
            f"Error rate is above 5% for {environment} service",
        ),
        AlertDefinition(
            "High Response Time",
            f"avg(last_5m):avg:trace.http.request.duration{{env:{environment}}} by {{service}} > 2",
            f"Response time is above 2 seconds for {environment} service",
        ),
        AlertDefinition(
            "Database Connection Issues",
            f"avg(last_5m):avg:sqlite.connections.used{{env:{environment}}} "
            f"/ avg:sqlite.connections.max{{env:{environment}}} > 0.8",
            "Database connection usage is above 80%",
        ),
    ]


def build_plan(
    *,
    datadog_api_key: str = DATADOG_API_KEY,
    sentry_auth_token: str = SENTRY_AUTH_TOKEN,
    version: str = RELEASE_VERSION,
    environment: str = DEPLOY_ENVIRONMENT,
) -> MonitoringPlan:
    plan = MonitoringPlan()
    if datadog_api_key:
        plan.alerts = datadog_alerts(environment)
        logger.info("Prepared %d Datadog alerts", len(plan.alerts))
    else:
        logger.info("DATADOG_API_KEY not set; skipping alerts")
    if sentry_auth_token:
        plan.release = ReleaseRecord(version=version or "unknown", environment=environment)
        logger.info("Prepared Sentry release %s", plan.release.version)
    else:
        logger.info("SENTRY_AUTH_TOKEN not set; skipping release tracking")
    return plan


def format_plan(plan: MonitoringPlan) -> str:
    lines = ["Monitoring setup:"]
    lines.append(f"- Datadog alerts configured: {len(plan.alerts)}")
    for alert in plan.alerts:
        lines.append(f"  * {alert.name}: {alert.message}")
    if plan.release is not None:
        lines.append(f"- Sentry release configured: {plan.release.version} ({plan.release.environment})")
    lines.append(f"- Custom metrics configured: {len(plan.metrics)}")
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Prepare monitoring for a new deployment")
    parser.add_argument("--json", action="store_true", help="Print the plan as JSON")
    args = parser.parse_args(argv)

    plan = build_plan()
    if args.json:
        print(json.dumps(plan.as_dict(), indent=2))
    else:
        print(format_plan(plan))
    return 0


__all__ = [
    "AlertDefinition",
    "CUSTOM_METRICS",
    "MonitoringPlan",
    "ReleaseRecord",
    "build_plan",
    "datadog_alerts",
    "format_plan",
    "main",
]
