"""Tests for probes, the probe runner and first_success."""

import threading

import httpx
import pytest

from stackgrader.errors import ProbeTimeout
from stackgrader.locator import Role
from stackgrader.models import OutcomeStatus
from stackgrader.probe import Check, Probe, ProbeRunner, find_field, first_success, items_of


class TestProbeRunner:
    @pytest.fixture
    def runner(self) -> ProbeRunner:
        return ProbeRunner()

    def test_bool_result_uses_expectation(self, runner, make_context) -> None:
        outcome = runner.run(Probe("Always false", lambda c: False, expectation="Nope"), make_context())
        assert outcome.status is OutcomeStatus.FAIL
        assert outcome.error == "Nope"

    def test_check_passes_details_through(self, runner, make_context) -> None:
        outcome = runner.run(Probe("Measured", lambda c: Check.ok(elapsed_ms=12.5)), make_context())
        assert outcome.passed
        assert outcome.details["elapsed_ms"] == 12.5
        assert "duration_ms" in outcome.details

    def test_missing_role_skips(self, runner, make_context) -> None:
        calls = []
        probe = Probe("Needs models", lambda c: calls.append(1) or True, requires=(Role.MODELS_DIR,))
        outcome = runner.run(probe, make_context())
        assert outcome.status is OutcomeStatus.SKIP
        assert calls == []

    def test_missing_target_skips(self, runner, make_context) -> None:
        outcome = runner.run(Probe("HTTP", lambda c: c.http.get("/"), needs_target=True), make_context())
        assert outcome.status is OutcomeStatus.SKIP
        assert outcome.error == "Server not available"

    def test_exception_fails_with_message(self, runner, make_context) -> None:
        def boom(context):
            raise RuntimeError("database exploded")

        outcome = runner.run(Probe("Boom", boom), make_context())
        assert outcome.status is OutcomeStatus.FAIL
        assert outcome.error == "database exploded"

    def test_timeout_fails(self, runner, make_context) -> None:
        def slow(context):
            raise ProbeTimeout("GET /slow exceeded 1.0s")

        outcome = runner.run(Probe("Slow", slow), make_context())
        assert outcome.status is OutcomeStatus.FAIL
        assert outcome.error.startswith("Timeout:")

    def test_hanging_wsgi_handler_times_out(self, runner, make_context, make_wsgi_target) -> None:
        release = threading.Event()

        def hanging_app(environ, start_response):
            release.wait(5)
            start_response("200 OK", [])
            return [b""]

        target = make_wsgi_target(hanging_app, timeout=0.2)
        try:
            outcome = runner.run(
                Probe("Hangs", lambda c: c.http.get("/").status_code == 200, needs_target=True),
                make_context(target=target),
            )
        finally:
            release.set()
        assert outcome.status is OutcomeStatus.FAIL
        assert "Timeout" in outcome.error

    def test_probes_after_a_failure_still_run(self, runner, make_context) -> None:
        context = make_context()

        def boom(context):
            raise ValueError("bad")

        outcomes = [runner.run(p, context) for p in (Probe("A", boom), Probe("B", lambda c: True))]
        assert [o.status for o in outcomes] == [OutcomeStatus.FAIL, OutcomeStatus.PASS]


class TestFirstSuccess:
    def test_returns_first_accepted(self) -> None:
        hit = first_success([1, 2, 3, 4], lambda n: n * 10, lambda r: r >= 20)
        assert hit is not None
        assert hit.candidate == 2
        assert hit.result == 20

    def test_attempt_errors_are_misses(self) -> None:
        def attempt(path):
            if path == "/a":
                raise httpx.ConnectError("refused")
            return path

        hit = first_success(["/a", "/b"], attempt, lambda r: True)
        assert hit.candidate == "/b"

    def test_none_when_nothing_matches(self) -> None:
        assert first_success(["x"], str.upper, lambda r: r == "y") is None

    def test_against_wsgi_target(self, make_wsgi_target) -> None:
        def app(environ, start_response):
            ok = environ["PATH_INFO"] == "/api/auth/login"
            start_response("200 OK" if ok else "404 Not Found", [("Content-Type", "application/json")])
            return [b'{"token": "a.b.c"}' if ok else b"{}"]

        target = make_wsgi_target(app)
        hit = first_success(
            ["/api/login", "/api/auth/login"],
            target.post,
            lambda r: r.status_code == 200,
        )
        assert hit.candidate == "/api/auth/login"


class TestBodyHelpers:
    def test_find_field_top_level_and_nested(self) -> None:
        assert find_field({"token": "t"}, "token") == "t"
        assert find_field({"data": {"accessToken": "x"}}, "token", "accessToken") == "x"
        assert find_field([1, 2], "token") is None

    def test_items_of_envelopes(self) -> None:
        assert items_of([1]) == [1]
        assert items_of({"data": [1, 2]}) == [1, 2]
        assert items_of({"tasks": [3], "count": 1}) == [3]
        assert items_of({"count": 1}) is None
