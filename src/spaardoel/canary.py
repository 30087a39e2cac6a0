"""Evaluate key metrics while a canary deployment is live."""

from __future__ import annotations

import argparse
import json
import logging
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CanaryMetrics:
    error_rate: float = 0.0
    response_time_ms: float = 0.0
    throughput_rps: float = 0.0
    availability: float = 0.0

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> "CanaryMetrics":
        if not isinstance(payload, Mapping):
            raise ValueError("Metrics must be a JSON object")

        def number(*keys: str) -> float:
            for key in keys:
                if key in payload:
                    value = payload[key]
                    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
                        raise ValueError(f"Metric {key} is not a number: {value!r}")
                    return float(value)
            raise KeyError(f"Missing metric: {keys[0]}")

        return cls(
            error_rate=number("error_rate", "errorRate"),
            response_time_ms=number("response_time_ms", "responseTime"),
            throughput_rps=number("throughput_rps", "throughput"),
            availability=number("availability"),
        )


@dataclass(slots=True)
class CanaryThresholds:
    max_error_rate: float = 5.0
    max_response_time_ms: float = 2000.0
    min_throughput_rps: float = 10.0
    min_availability: float = 99.5


@dataclass(slots=True)
class MetricCheck:
    metric: str
    value: float
    threshold: float
    comparison: str
    unit: str
    passed: bool


@dataclass(slots=True)
class CanaryResult:
    checks: List[MetricCheck] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(check.passed for check in self.checks)

    @property
    def exit_code(self) -> int:
        return 0 if self.passed else 1


MetricsSource = Callable[[], CanaryMetrics]


def simulated_metrics(rng: Optional[random.Random] = None) -> CanaryMetrics:
    """Stand-in numbers for environments without a metrics backend."""

    generator = rng or random.Random()
    return CanaryMetrics(
        error_rate=generator.uniform(0, 10),
        response_time_ms=500 + generator.uniform(0, 1000),
        throughput_rps=15 + generator.uniform(0, 10),
        availability=99 + generator.uniform(0, 1),
    )


def metrics_from_file(path: Path) -> CanaryMetrics:
    return CanaryMetrics.from_mapping(json.loads(path.read_text(encoding="utf-8")))


def evaluate(metrics: CanaryMetrics, thresholds: CanaryThresholds | None = None) -> CanaryResult:
    limits = thresholds or CanaryThresholds()
    result = CanaryResult()
    result.checks.append(
        MetricCheck(
            "Error Rate",
            metrics.error_rate,
            limits.max_error_rate,
            "<=",
            "%",
            metrics.error_rate <= limits.max_error_rate,
        )
    )
    result.checks.append(
        MetricCheck(
            "Response Time",
            metrics.response_time_ms,
            limits.max_response_time_ms,
            "<=",
            "ms",
            metrics.response_time_ms <= limits.max_response_time_ms,
        )
    )
    result.checks.append(
        MetricCheck(
            "Throughput",
            metrics.throughput_rps,
            limits.min_throughput_rps,
            ">=",
            "rps",
            metrics.throughput_rps >= limits.min_throughput_rps,
        )
    )
    result.checks.append(
        MetricCheck(
            "Availability",
            metrics.availability,
            limits.min_availability,
            ">=",
            "%",
            metrics.availability >= limits.min_availability,
        )
    )
    return result


def format_result(result: CanaryResult) -> str:
    rule = "=" * 50
    lines = ["Canary Metrics Results:", rule]
    for check in result.checks:
        status = "PASS" if check.passed else "FAIL"
        lines.append(
            f"[{status}] {check.metric}: {check.value:.2f}{check.unit} "
            f"({check.comparison} {check.threshold:g}{check.unit})"
        )
    lines.append(rule)
    lines.append(f"Overall Status: {'PASSED' if result.passed else 'FAILED'}")
    return "\n".join(lines)


def check_canary(source: MetricsSource, thresholds: CanaryThresholds | None = None) -> CanaryResult:
    logger.info("Collecting canary metrics")
    result = evaluate(source(), thresholds)
    if not result.passed:
        logger.warning("Canary metrics check failed: %s", [check.metric for check in result.checks if not check.passed])
    return result


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Check canary deployment metrics against fixed thresholds")
    parser.add_argument("--metrics", type=Path, help="JSON file with error_rate, response_time_ms, throughput_rps, availability")
    parser.add_argument("--seed", type=int, help="Seed for simulated metrics")
    args = parser.parse_args(argv)

    if args.metrics:
        source: MetricsSource = lambda: metrics_from_file(args.metrics)  # noqa: E731
    else:
        rng = random.Random(args.seed)
        source = lambda: simulated_metrics(rng)  # noqa: E731
    try:
        result = check_canary(source)
    except (OSError, ValueError, KeyError) as exc:
        print(f"Error checking canary metrics: {exc}")
        return 1
    print(format_result(result))
    return result.exit_code


__all__ = [
    "CanaryMetrics",
    "CanaryResult",
    "CanaryThresholds",
    "MetricCheck",
    "check_canary",
    "evaluate",
    "format_result",
    "main",
    "metrics_from_file",
    "simulated_metrics",
]
