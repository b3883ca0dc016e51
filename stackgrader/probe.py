"""
Probes and the probe runner.

A probe is one named behavioral check. The runner is the failure boundary:
whatever a probe does, running it yields exactly one ProbeOutcome.
"""

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, NamedTuple, TypeVar

import httpx

from .errors import ProbeTimeout, TargetUnavailable
from .locator import NOT_FOUND, NotFound, Role, TargetLocator
from .models import GitMetrics, OutcomeStatus, ProbeOutcome
from .target import HttpTarget

logger = logging.getLogger(__name__)

C = TypeVar("C")
R = TypeVar("R")

# Per-attempt failures that mean "this candidate did not match"
ATTEMPT_ERRORS = (httpx.HTTPError, ProbeTimeout, ValueError, KeyError, TypeError, AttributeError)


@dataclass(frozen=True)
class Check:
    """Result returned by a probe's check function."""

    status: OutcomeStatus
    reason: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, **details: Any) -> "Check":
        return cls(OutcomeStatus.PASS, None, details)

    @classmethod
    def failed(cls, reason: str, **details: Any) -> "Check":
        return cls(OutcomeStatus.FAIL, reason, details)

    @classmethod
    def skip(cls, reason: str) -> "Check":
        return cls(OutcomeStatus.SKIP, reason)

    @classmethod
    def expect(cls, condition: bool, reason: str, **details: Any) -> "Check":
        """Pass when ``condition`` holds, otherwise fail with ``reason``."""
        return cls.ok(**details) if condition else cls.failed(reason, **details)


@dataclass
class ProbeContext:
    """
    Everything a probe may look at.

    Attributes:
        project_dir: Root of the student project.
        locator: Role resolver for the project.
        target: Server handle, or NOT_FOUND.
        state: Values shared between probes of one suite run (tokens, ids).
        git_metrics: History metrics, when already computed.
    """

    project_dir: Path
    locator: TargetLocator
    target: HttpTarget | NotFound = NOT_FOUND
    state: dict[str, Any] = field(default_factory=dict)
    git_metrics: GitMetrics | None = None

    @property
    def http(self) -> HttpTarget:
        if self.target is NOT_FOUND:
            raise TargetUnavailable("No server available")
        return self.target

    def path(self, role: Role) -> Path:
        located = self.locator.locate(role)
        if located is NOT_FOUND:
            raise TargetUnavailable(f"No {role.value} found")
        return located


CheckFunction = Callable[[ProbeContext], "Check | bool"]


@dataclass(frozen=True)
class Probe:
    """
    A named, idempotent check.

    Attributes:
        name: Name shown in the report.
        check: Function returning a Check, or a bool for simple static checks.
        requires: Roles that must resolve before the check runs.
        needs_target: Whether the check talks to the server.
        expectation: Failure reason used when ``check`` returns False.
    """

    name: str
    check: CheckFunction
    requires: tuple[Role, ...] = ()
    needs_target: bool = False
    expectation: str = ""


class ProbeRunner:
    """Runs probes, converting every failure mode into an outcome."""

    def run(self, probe: Probe, context: ProbeContext) -> ProbeOutcome:
        """
        Run one probe.

        A missing role or server short-circuits to skip. A timeout fails the
        probe. Any other exception fails it with the message preserved.

        Args:
            probe: Probe to run.
            context: Shared suite context.

        Returns:
            The probe's outcome.
        """
        for role in probe.requires:
            if context.locator.locate(role) is NOT_FOUND:
                return _outcome(probe, Check.skip(f"No {role.value} found"))
        if probe.needs_target and context.target is NOT_FOUND:
            return _outcome(probe, Check.skip("Server not available"))

        started = time.perf_counter()
        try:
            result = probe.check(context)
        except (ProbeTimeout, httpx.TimeoutException) as e:
            result = Check.failed(f"Timeout: {e}")
        except TargetUnavailable as e:
            result = Check.skip(str(e))
        except Exception as e:
            logger.debug("Probe %r raised", probe.name, exc_info=True)
            result = Check.failed(str(e) or type(e).__name__)

        if isinstance(result, bool):
            result = Check.expect(result, probe.expectation or "Condition not met")

        outcome = _outcome(probe, result, duration_ms=int((time.perf_counter() - started) * 1000))
        logger.debug("  %s: %s%s", probe.name, outcome.status.value, f" ({outcome.error})" if outcome.error else "")
        return outcome


def _outcome(probe: Probe, check: Check, **extra: Any) -> ProbeOutcome:
    details = {k: v for k, v in {**check.details, **extra}.items() if isinstance(v, (bool, int, float, str))}
    return ProbeOutcome(probe=probe.name, status=check.status, error=check.reason, details=details)


class Hit(NamedTuple):
    candidate: Any
    result: Any


def first_success(
    candidates: Iterable[C],
    attempt: Callable[[C], R],
    accept: Callable[[R], bool],
) -> Hit | None:
    """
    Try each candidate in order and return the first accepted result.

    Student projects follow no single naming convention, so probes try the
    conventional shapes one after another. An attempt that raises is a miss.

    Args:
        candidates: Ordered candidates (paths, payloads, ...).
        attempt: Performs one attempt for a candidate.
        accept: Decides whether an attempt's result is a success.

    Returns:
        The first accepted (candidate, result), or None.
    """
    for candidate in candidates:
        try:
            result = attempt(candidate)
            if accept(result):
                return Hit(candidate, result)
        except ATTEMPT_ERRORS as e:
            logger.debug("Attempt %r missed: %s", candidate, e)
    return None


def json_body(response: httpx.Response) -> Any:
    """Decoded JSON body, or None when the body is not JSON."""
    try:
        return response.json()
    except ValueError:
        return None


def find_field(body: Any, *names: str) -> Any:
    """
    Look up the first present field, at the top level or one level down
    (``data``, ``user`` and similar envelopes).
    """
    if not isinstance(body, dict):
        return None
    for name in names:
        if body.get(name) not in (None, ""):
            return body[name]
    for value in body.values():
        if isinstance(value, dict):
            for name in names:
                if value.get(name) not in (None, ""):
                    return value[name]
    return None


def items_of(body: Any) -> list | None:
    """The list in a list response, bare or wrapped in a common envelope."""
    if isinstance(body, list):
        return body
    if isinstance(body, dict):
        for key in ("data", "items", "results", "docs", "rows"):
            if isinstance(body.get(key), list):
                return body[key]
        lists = [v for v in body.values() if isinstance(v, list)]
        if len(lists) == 1:
            return lists[0]
    return None


def is_json(response: httpx.Response) -> bool:
    return "application/json" in response.headers.get("content-type", "")


def has_error_message(response: httpx.Response) -> bool:
    body = json_body(response)
    return isinstance(body, dict) and any(body.get(k) for k in ("error", "message", "errors", "msg"))
