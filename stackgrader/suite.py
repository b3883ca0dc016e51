"""
Suites: ordered probe groups sharing one setup and teardown.

Suites run one after another. The app server is shared between suites and
its backing store is reset in every suite's teardown, so one suite's data
never leaks into the next.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .config import DEPLOYMENT_TIMEOUT_SECONDS
from .config_loader import TargetConfig
from .errors import TargetUnavailable
from .locator import NOT_FOUND, NotFound, Role, TargetLocator
from .models import GitMetrics, ProbeOutcome, SuiteResult
from .probe import Probe, ProbeContext, ProbeRunner
from .target import HttpTarget, load_target, open_url_target

logger = logging.getLogger(__name__)


class TargetKind(str, Enum):
    NONE = "none"
    APP = "app"
    DEPLOYMENT = "deployment"


@dataclass(frozen=True)
class Suite:
    """
    A named probe group.

    Attributes:
        name: Suite name.
        criteria: Criteria the suite's outcomes feed (split evenly when several).
        probes: Probes in execution order.
        target: Which server the suite talks to, if any.
    """

    name: str
    criteria: tuple[str, ...]
    probes: tuple[Probe, ...]
    target: TargetKind = TargetKind.NONE


def read_deployment_url(locator: TargetLocator) -> str | None:
    """URL listed in DEPLOYMENT_URL.txt, with ``https://`` added when missing."""
    located = locator.locate(Role.DEPLOYMENT_URL)
    if located is NOT_FOUND:
        return None
    try:
        lines = located.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Cannot read %s: %s", located, e)
        return None
    url = next((line.strip() for line in lines if line.strip() and not line.strip().startswith("#")), "")
    if not url:
        return None
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    return url


class TargetPool:
    """
    Lazily obtains each kind of target once per grading run.

    Args:
        target_config: How to reach the app server.
        locator: Locator for the project.
        request_timeout: Per-request budget for the app server.
    """

    def __init__(self, target_config: TargetConfig, locator: TargetLocator, request_timeout: float) -> None:
        self.target_config = target_config
        self.locator = locator
        self.request_timeout = request_timeout
        self._targets: dict[TargetKind, HttpTarget | NotFound] = {}

    def get(self, kind: TargetKind) -> HttpTarget | NotFound:
        if kind is TargetKind.NONE:
            return NOT_FOUND
        if kind not in self._targets:
            self._targets[kind] = self._load(kind)
        return self._targets[kind]

    def _load(self, kind: TargetKind) -> HttpTarget | NotFound:
        if kind is TargetKind.APP:
            return load_target(self.target_config, self.locator, self.request_timeout)

        url = read_deployment_url(self.locator)
        if url is None:
            logger.info("No deployment URL found; deployment probes will be skipped")
            return NOT_FOUND
        logger.info("Deployment URL: %s", url)
        return open_url_target(url, DEPLOYMENT_TIMEOUT_SECONDS)

    def close(self) -> None:
        for kind, target in self._targets.items():
            if target is NOT_FOUND:
                continue
            try:
                target.close()
            except Exception as e:
                logger.warning("Failed to close %s target: %s", kind.value, e)
        self._targets.clear()


class SuiteRunner:
    """
    Runs suites sequentially against a shared target pool.

    Args:
        project_dir: Root of the student project.
        locator: Locator for the project.
        targets: Pool providing server handles.
        git_metrics: History metrics for suites that inspect version control.
        probe_runner: Failure boundary used for each probe.
    """

    def __init__(
        self,
        project_dir: Path,
        locator: TargetLocator,
        targets: TargetPool,
        git_metrics: GitMetrics | None = None,
        probe_runner: ProbeRunner | None = None,
    ) -> None:
        self.project_dir = project_dir
        self.locator = locator
        self.targets = targets
        self.git_metrics = git_metrics
        self.probe_runner = probe_runner or ProbeRunner()

    def run(self, suite: Suite) -> SuiteResult:
        """
        Run one suite: setup, every probe in order, teardown.

        Args:
            suite: Suite to run.

        Returns:
            Frozen SuiteResult; counts are derived from its outcomes.
        """
        logger.info("Running suite: %s", suite.name)
        started = time.perf_counter()
        problems: list[str] = []

        try:
            target = self.targets.get(suite.target)
        except (TargetUnavailable, OSError) as e:
            problems.append(f"Setup failed: {e}")
            target = NOT_FOUND

        context = ProbeContext(
            project_dir=self.project_dir,
            locator=self.locator,
            target=target,
            git_metrics=self.git_metrics,
        )
        outcomes: list[ProbeOutcome] = []
        try:
            for probe in suite.probes:
                outcomes.append(self.probe_runner.run(probe, context))
        finally:
            if target is not NOT_FOUND and suite.target is TargetKind.APP:
                if not target.reset():
                    problems.append("Teardown: backing store reset failed")

        result = SuiteResult(
            name=suite.name,
            criteria=suite.criteria,
            outcomes=tuple(outcomes),
            duration_ms=int((time.perf_counter() - started) * 1000),
            error="; ".join(problems) or None,
        )
        logger.info(
            "  %s: %d/%d passed (%d skipped)", suite.name, result.passed, result.total, result.skipped
        )
        return result

    def run_all(self, suites: list[Suite]) -> list[SuiteResult]:
        return [self.run(suite) for suite in suites]
