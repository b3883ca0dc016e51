"""
Score reduction.

Turns pass ratios into bounded criterion scores, blends hybrid criteria
with the judge's qualitative score and assembles the per-criterion result.
"""

from .config import PASS_RATE_FLOOR_SCORE, PASS_RATE_STEPS
from .models import (
    Criterion,
    CriterionEvaluation,
    CriterionScore,
    EvaluationMethod,
    HybridBreakdown,
    JudgeOutcome,
)

NOT_EVALUATED_SCORE = 0.0


def step_score(passed: float, total: float) -> float:
    """
    Map a pass count to a score with the pass-rate step function.

    Args:
        passed: Probes passed (may be fractional after a split).
        total: Probes counted.

    Returns:
        A score in [1.0, 4.0], or 0.0 when ``total`` is 0 (not evaluated).
    """
    if total <= 0:
        return NOT_EVALUATED_SCORE
    rate = passed / total
    for threshold, score in PASS_RATE_STEPS:
        if rate >= threshold:
            return score
    return PASS_RATE_FLOOR_SCORE


def blend_hybrid(
    automated_score: float,
    automated_weight: float,
    qualitative_score: float,
    qualitative_weight: float,
) -> HybridBreakdown:
    """Weighted sum of the automated and qualitative scores, rounded to 2 decimals."""
    final = automated_score * automated_weight + qualitative_score * qualitative_weight
    return HybridBreakdown(
        automated_score=automated_score,
        automated_weight=automated_weight,
        qualitative_score=qualitative_score,
        qualitative_weight=qualitative_weight,
        final_score=round(final, 2),
    )


def finalize_criterion(
    criterion: Criterion,
    automated: CriterionScore | None,
    judge: JudgeOutcome | None,
) -> CriterionEvaluation:
    """
    Combine a criterion's automated score and judge verdict.

    - automated: the automated score (0 when no probe applied).
    - model_semantic: the judge score; 0 with ``evaluation_failed`` when the
      judge failed, 0 when the judge did not run.
    - hybrid: the weighted blend; a failed judge gives 0 with
      ``evaluation_failed``; without a judge the automated score stands.

    Args:
        criterion: Rubric criterion.
        automated: Probe-based score, if the criterion has probes.
        judge: Judge outcome, or None when the judge did not run.

    Returns:
        CriterionEvaluation for the report.
    """
    evaluation = CriterionEvaluation(
        criterion_id=criterion.id,
        criterion_title=criterion.title,
        evaluation_method=criterion.evaluation_method,
        max_points=criterion.max_points,
        automated=automated,
    )
    automated_score = automated.score if automated else NOT_EVALUATED_SCORE
    method = criterion.evaluation_method

    if method is EvaluationMethod.AUTOMATED:
        evaluation.score = automated_score
        if automated is None or not automated.evaluated:
            evaluation.justification = "No applicable automated checks"
        else:
            evaluation.justification = (
                f"{automated.passed:g}/{automated.total_tests:g} automated checks passed"
            )
        return evaluation

    if judge is not None and judge.failed:
        evaluation.score = NOT_EVALUATED_SCORE
        evaluation.evaluation_failed = True
        evaluation.error = judge.error
        evaluation.tokens_used = judge.tokens_used
        return evaluation

    if judge is None:
        if method is EvaluationMethod.HYBRID:
            evaluation.score = automated_score
            evaluation.justification = "Qualitative judge not run; automated score only"
        else:
            evaluation.score = NOT_EVALUATED_SCORE
            evaluation.justification = "Qualitative judge not run"
        return evaluation

    response = judge.response
    evaluation.qualitative_score = response.score
    evaluation.level_achieved = response.level_achieved
    evaluation.justification = response.justification
    evaluation.strengths = response.strengths
    evaluation.weaknesses = response.weaknesses
    evaluation.improvements = response.improvements
    evaluation.files_analyzed = response.files_analyzed
    evaluation.tokens_used = judge.tokens_used

    if method is EvaluationMethod.HYBRID:
        breakdown = blend_hybrid(
            automated_score,
            criterion.automated_weight,
            response.score,
            criterion.qualitative_weight,
        )
        evaluation.hybrid_calculation = breakdown
        evaluation.score = breakdown.final_score
    else:
        evaluation.score = response.score
    return evaluation


def overall_score(evaluations: list[CriterionEvaluation]) -> float:
    return round(sum(e.score for e in evaluations), 2)


def max_score(criteria: list[Criterion]) -> float:
    return sum(c.max_points for c in criteria)
