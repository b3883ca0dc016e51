"""Tests for suite aggregation."""

from stackgrader.aggregator import aggregate, map_suites_to_criteria, summarize_suites
from stackgrader.models import OutcomeStatus, SuiteResult
from stackgrader.rubric import load_rubric

PASS, FAIL, SKIP = OutcomeStatus.PASS, OutcomeStatus.FAIL, OutcomeStatus.SKIP


def _suite(make_outcome, name: str, criteria: tuple[str, ...], statuses: list[OutcomeStatus]) -> SuiteResult:
    return SuiteResult(
        name=name,
        criteria=criteria,
        outcomes=tuple(make_outcome(s, f"{name} {i}") for i, s in enumerate(statuses)),
    )


class TestAggregate:
    def test_skips_count_in_total_only(self, make_outcome) -> None:
        score = aggregate([make_outcome(PASS), make_outcome(SKIP), make_outcome(FAIL), make_outcome(PASS)])
        assert score.total_tests == 4
        assert score.passed == 2
        assert score.failed == 1
        assert score.skipped == 1
        assert score.score == 2.5

    def test_empty_is_not_evaluated(self) -> None:
        score = aggregate([], "criterion_7")
        assert score.score == 0.0
        assert not score.evaluated


class TestMapSuitesToCriteria:
    def test_covers_every_criterion(self, make_outcome) -> None:
        rubric = load_rubric()
        scores = map_suites_to_criteria([_suite(make_outcome, "API", ("criterion_3",), [PASS])], rubric)
        assert list(scores) == [c.id for c in rubric.criteria]
        assert scores["criterion_3"].score == 4.0
        assert scores["criterion_1"].score == 0.0

    def test_suites_for_same_criterion_accumulate(self, make_outcome) -> None:
        rubric = load_rubric()
        results = [
            _suite(make_outcome, "API Endpoints", ("criterion_3",), [PASS, PASS, FAIL]),
            _suite(make_outcome, "Middleware", ("criterion_3",), [PASS, SKIP]),
        ]
        score = map_suites_to_criteria(results, rubric)["criterion_3"]
        assert score.total_tests == 5
        assert score.passed == 3
        assert score.score == 3.0

    def test_split_is_even(self, make_outcome) -> None:
        rubric = load_rubric()
        statuses = [PASS] * 7 + [FAIL] * 2 + [SKIP]
        results = [_suite(make_outcome, "TypeScript & Testing", ("criterion_9", "criterion_11"), statuses)]
        scores = map_suites_to_criteria(results, rubric)
        for criterion_id in ("criterion_9", "criterion_11"):
            assert scores[criterion_id].total_tests == 5
            assert scores[criterion_id].passed == 3.5
            assert scores[criterion_id].failed == 1
            assert scores[criterion_id].skipped == 0.5
        assert scores["criterion_9"].total_tests + scores["criterion_11"].total_tests == 10

    def test_unknown_criteria_are_ignored(self, make_outcome) -> None:
        rubric = load_rubric()
        scores = map_suites_to_criteria([_suite(make_outcome, "Extra", ("criterion_99",), [PASS])], rubric)
        assert "criterion_99" not in scores


def test_summarize_suites(make_outcome) -> None:
    results = [
        _suite(make_outcome, "A", ("criterion_3",), [PASS, FAIL]),
        _suite(make_outcome, "B", ("criterion_5",), [PASS, SKIP]),
    ]
    summary = summarize_suites(results)
    assert summary.total_tests == 4
    assert summary.passed == 2
    assert summary.failed == 1
    assert summary.skipped == 1
    assert summary.success_rate == 50.0
