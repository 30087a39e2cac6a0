"""Health checks against a running Spaardoel deployment."""

from __future__ import annotations

import argparse
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from urllib.error import HTTPError, URLError
from urllib.parse import urljoin
from urllib.request import Request as URLRequest, urlopen

from .settings import BASE_URL

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
API_ENDPOINTS: Tuple[str, ...] = ("/api/health", "/api/goals", "/api/plants")
STATIC_ASSETS: Tuple[str, ...] = ("/plant.svg", "/favicon.ico")
RESPONSE_TIME_LIMIT_MS = 2000
MEMORY_ALERT_PERCENT = 80.0
DEFAULT_MEMORY_LIMIT_MB = 512.0

STATUS_PASSED = "PASSED"
STATUS_FAILED = "FAILED"
STATUS_ERROR = "ERROR"


@dataclass(slots=True)
class HttpResult:
    status_code: int
    body: bytes = b""


Fetcher = Callable[[str, float], HttpResult]


@dataclass(slots=True)
class CheckResult:
    name: str
    status: str
    message: str
    details: Dict[str, object] = field(default_factory=dict)
    duration_ms: int = 0

    @property
    def passed(self) -> bool:
        return self.status == STATUS_PASSED


@dataclass(slots=True)
class HealthReport:
    checks: List[CheckResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.checks)

    @property
    def passed(self) -> int:
        return sum(1 for check in self.checks if check.passed)

    @property
    def failed(self) -> int:
        return self.total - self.passed

    @property
    def success_rate(self) -> float:
        if not self.checks:
            return 0.0
        return self.passed / self.total * 100

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0


def urllib_fetch(url: str, timeout: float) -> HttpResult:
    """GET ``url``; HTTP error statuses are returned, not raised."""

    request = URLRequest(url, headers={"User-Agent": "SpaardoelHealthChecker/1.0"})
    try:
        with urlopen(request, timeout=timeout) as response:  # noqa: S310 - operator supplied URL
            return HttpResult(status_code=response.status, body=response.read())
    except HTTPError as exc:
        return HttpResult(status_code=exc.code)


def process_memory_mb() -> float:
    """Peak resident set size of this process in megabytes."""

    import resource
    import sys

    usage = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # macOS reports bytes, Linux kilobytes.
    divisor = 1024 * 1024 if sys.platform == "darwin" else 1024
    return usage / divisor


class HealthChecker:
    """Run the standard set of checks and collect a :class:`HealthReport`."""

    def __init__(
        self,
        base_url: str = BASE_URL,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        fetch: Fetcher | None = None,
        memory_reader: Callable[[], float] | None = None,
        memory_limit_mb: float = DEFAULT_MEMORY_LIMIT_MB,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout
        self._fetch = fetch or urllib_fetch
        self._memory_reader = memory_reader or process_memory_mb
        self.memory_limit_mb = memory_limit_mb
        self._clock = clock

    def checks(self) -> Sequence[Tuple[str, Callable[[], CheckResult]]]:
        return (
            ("Application Startup", self.check_application_startup),
            ("Database Connection", self.check_database_connection),
            ("API Endpoints", self.check_api_endpoints),
            ("Static Assets", self.check_static_assets),
            ("Memory Usage", self.check_memory_usage),
            ("Response Time", self.check_response_time),
        )

    def run_all(self) -> HealthReport:
        report = HealthReport()
        for name, check in self.checks():
            logger.info("Running %s check", name)
            try:
                result = check()
            except Exception as exc:  # noqa: BLE001 - a crashing check is reported, not raised
                logger.exception("%s check crashed", name)
                result = CheckResult(name=name, status=STATUS_ERROR, message=str(exc), details={"error": repr(exc)})
            report.checks.append(result)
        return report

    # ------------------------------------------------------------------
    # Individual checks
    # ------------------------------------------------------------------
    def check_application_startup(self) -> CheckResult:
        name = "Application Startup"
        start = self._clock()
        try:
            response = self._get("/")
        except (URLError, OSError) as exc:
            return CheckResult(name, STATUS_FAILED, f"Application not responding: {exc}", duration_ms=self._since(start))
        duration = self._since(start)
        if response.status_code == 200:
            return CheckResult(
                name,
                STATUS_PASSED,
                f"Application is running ({duration}ms)",
                {"status_code": response.status_code},
                duration,
            )
        return CheckResult(
            name,
            STATUS_FAILED,
            f"Unexpected status code: {response.status_code}",
            {"status_code": response.status_code},
            duration,
        )

    def check_database_connection(self) -> CheckResult:
        name = "Database Connection"
        start = self._clock()
        try:
            response = self._get("/api/health")
        except (URLError, OSError) as exc:
            return CheckResult(name, STATUS_FAILED, f"Database connection failed: {exc}", duration_ms=self._since(start))
        duration = self._since(start)
        healthy = response.status_code == 200 and b'"database":"ok"' in response.body.replace(b" ", b"")
        if healthy:
            return CheckResult(name, STATUS_PASSED, f"Database connection healthy ({duration}ms)", duration_ms=duration)
        return CheckResult(
            name,
            STATUS_FAILED,
            "Database reported as unavailable",
            {"status_code": response.status_code},
            duration,
        )

    def check_api_endpoints(self) -> CheckResult:
        results: List[Dict[str, object]] = []
        for endpoint in API_ENDPOINTS:
            start = self._clock()
            try:
                response = self._get(endpoint)
            except (URLError, OSError) as exc:
                results.append({"endpoint": endpoint, "status": STATUS_ERROR, "error": str(exc)})
                continue
            results.append({"endpoint": endpoint, "status": response.status_code, "duration_ms": self._since(start)})
        failing = [item for item in results if item["status"] not in (200, 404)]
        if not failing:
            return CheckResult(
                "API Endpoints",
                STATUS_PASSED,
                f"All API endpoints responding ({len(results)} checked)",
                {"endpoints": results},
            )
        return CheckResult(
            "API Endpoints",
            STATUS_FAILED,
            f"{len(failing)} API endpoints failing",
            {"failed": failing, "all": results},
        )

    def check_static_assets(self) -> CheckResult:
        results: List[Dict[str, object]] = []
        for asset in STATIC_ASSETS:
            try:
                response = self._get(asset)
            except (URLError, OSError) as exc:
                results.append({"asset": asset, "status": STATUS_ERROR, "error": str(exc)})
                continue
            results.append({"asset": asset, "status": response.status_code})
        return CheckResult(
            "Static Assets",
            STATUS_PASSED,
            f"Static assets check completed ({len(results)} checked)",
            {"assets": results},
        )

    def check_memory_usage(self) -> CheckResult:
        used = self._memory_reader()
        percent = used / self.memory_limit_mb * 100 if self.memory_limit_mb else 0.0
        status = STATUS_PASSED if percent < MEMORY_ALERT_PERCENT else STATUS_FAILED
        return CheckResult(
            "Memory Usage",
            status,
            f"Memory usage: {used:.0f}MB/{self.memory_limit_mb:.0f}MB ({percent:.1f}%)",
            {"used_mb": round(used, 1), "limit_mb": self.memory_limit_mb},
        )

    def check_response_time(self) -> CheckResult:
        start = self._clock()
        try:
            self._get("/")
        except (URLError, OSError) as exc:
            return CheckResult(
                "Response Time", STATUS_FAILED, f"Response time check failed: {exc}", duration_ms=self._since(start)
            )
        elapsed = self._since(start)
        status = STATUS_PASSED if elapsed < RESPONSE_TIME_LIMIT_MS else STATUS_FAILED
        return CheckResult(
            "Response Time",
            status,
            f"Response time: {elapsed}ms",
            {"threshold_ms": RESPONSE_TIME_LIMIT_MS},
            elapsed,
        )

    def _get(self, path: str) -> HttpResult:
        return self._fetch(urljoin(self.base_url, path.lstrip("/")), self.timeout)

    def _since(self, start: float) -> int:
        return int((self._clock() - start) * 1000)


def format_report(report: HealthReport, *, base_url: str = "") -> str:
    rule = "=" * 60
    lines = []
    if base_url:
        lines.append(f"Base URL: {base_url}")
    for check in report.checks:
        marker = "ok " if check.passed else "ERR" if check.status == STATUS_ERROR else "!! "
        lines.append(f"[{marker}] {check.name}: {check.message}")
    lines.extend(
        [
            rule,
            "HEALTH CHECK SUMMARY",
            rule,
            f"Total Checks: {report.total}",
            f"Passed: {report.passed}",
            f"Failed: {report.failed}",
            f"Success Rate: {report.success_rate:.1f}%",
            rule,
        ]
    )
    failed = [check for check in report.checks if not check.passed]
    if failed:
        lines.append("FAILED CHECKS:")
        lines.extend(f"  - {check.name}: {check.message}" for check in failed)
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run health checks against a Spaardoel deployment")
    parser.add_argument("base_url", nargs="?", default=None, help="Deployment URL (defaults to SPAARDOEL_BASE_URL)")
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="Per request timeout in seconds")
    parser.add_argument("--memory-limit", type=float, default=DEFAULT_MEMORY_LIMIT_MB, help="Memory budget in MB")
    args = parser.parse_args(argv)

    base_url = args.base_url or BASE_URL
    checker = HealthChecker(base_url, timeout=args.timeout, memory_limit_mb=args.memory_limit)
    report = checker.run_all()
    print(format_report(report, base_url=base_url))
    return report.exit_code


__all__ = [
    "CheckResult",
    "HealthChecker",
    "HealthReport",
    "HttpResult",
    "format_report",
    "main",
    "urllib_fetch",
]
