"""
Test-suite aggregation.

Folds suite outcomes into per-criterion automated scores. A suite feeding
several criteria has its counts split evenly across them, since its probes
are not tagged with individual criteria.
"""

from collections.abc import Iterable

from .models import CriterionScore, OutcomeStatus, ProbeOutcome, Rubric, SuiteResult, TestRunSummary
from .scoring import step_score


def aggregate(outcomes: Iterable[ProbeOutcome], criterion_id: str = "") -> CriterionScore:
    """
    Score a single criterion from its probe outcomes.

    Skipped probes count in the total but never as passed.

    Args:
        outcomes: Outcomes feeding the criterion.
        criterion_id: Criterion identifier.

    Returns:
        CriterionScore with a step-function score.
    """
    outcomes = list(outcomes)
    total = len(outcomes)
    passed = sum(1 for o in outcomes if o.status is OutcomeStatus.PASS)
    failed = sum(1 for o in outcomes if o.status is OutcomeStatus.FAIL)
    return CriterionScore(
        criterion_id=criterion_id,
        total_tests=total,
        passed=passed,
        failed=failed,
        skipped=total - passed - failed,
        score=step_score(passed, total),
    )


def map_suites_to_criteria(results: Iterable[SuiteResult], rubric: Rubric) -> dict[str, CriterionScore]:
    """
    Fold suite results into one CriterionScore per rubric criterion.

    A suite mapped to k criteria contributes total/k, passed/k, failed/k and
    skipped/k to each. Criteria without any contribution keep score 0.

    Args:
        results: Suite results.
        rubric: Rubric whose criteria receive scores.

    Returns:
        Scores keyed by criterion id, in rubric order.
    """
    totals = {c.id: {"total": 0.0, "passed": 0.0, "failed": 0.0, "skipped": 0.0} for c in rubric.criteria}

    for result in results:
        targets = [c for c in result.criteria if c in totals]
        if not targets:
            continue
        share = len(result.criteria)
        for criterion_id in targets:
            bucket = totals[criterion_id]
            bucket["total"] += result.total / share
            bucket["passed"] += result.passed / share
            bucket["failed"] += result.failed / share
            bucket["skipped"] += result.skipped / share

    return {
        criterion_id: CriterionScore(
            criterion_id=criterion_id,
            total_tests=round(bucket["total"], 4),
            passed=round(bucket["passed"], 4),
            failed=round(bucket["failed"], 4),
            skipped=round(bucket["skipped"], 4),
            score=step_score(bucket["passed"], bucket["total"]),
        )
        for criterion_id, bucket in totals.items()
    }


def summarize_suites(results: list[SuiteResult]) -> TestRunSummary:
    """Totals and success rate across every suite run."""
    total = sum(r.total for r in results)
    passed = sum(r.passed for r in results)
    return TestRunSummary(
        total_tests=total,
        passed=passed,
        failed=sum(r.failed for r in results),
        skipped=sum(r.skipped for r in results),
        success_rate=round(passed / total * 100, 2) if total else 0.0,
        execution_time_ms=sum(r.duration_ms for r in results),
        test_suites=list(results),
    )
