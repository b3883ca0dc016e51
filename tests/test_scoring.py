"""Tests for the score reducer."""

import pytest

from stackgrader.models import CriterionScore, EvaluationMethod, JudgeOutcome, JudgeResponse
from stackgrader.scoring import blend_hybrid, finalize_criterion, overall_score, step_score


class TestStepScore:
    @pytest.mark.parametrize(
        ("passed", "total", "expected"),
        [
            (9, 10, 4.0),
            (8.999, 10, 3.5),
            (75, 100, 3.5),
            (6, 10, 3.0),
            (5, 10, 2.5),
            (4, 10, 2.0),
            (1, 4, 1.5),
            (1, 10, 1.0),
            (0, 10, 1.0),
        ],
    )
    def test_thresholds(self, passed: float, total: float, expected: float) -> None:
        assert step_score(passed, total) == expected

    def test_nothing_tested_is_zero(self) -> None:
        assert step_score(0, 0) == 0.0

    def test_monotonic_in_pass_count(self) -> None:
        scores = [step_score(passed, 20) for passed in range(21)]
        assert scores == sorted(scores)
        assert all(1.0 <= s <= 4.0 for s in scores)

    def test_fractional_counts(self) -> None:
        assert step_score(4.5, 5.0) == 4.0


class TestBlendHybrid:
    def test_weighted_sum(self) -> None:
        breakdown = blend_hybrid(4.0, 0.6, 3.0, 0.4)
        assert breakdown.final_score == 3.6
        assert breakdown.automated_weight == 0.6

    def test_rounded_to_two_decimals(self) -> None:
        assert blend_hybrid(3.5, 0.5, 2.33333, 0.5).final_score == 2.92


class TestFinalizeCriterion:
    @staticmethod
    def _judged(score: float = 3.0) -> JudgeOutcome:
        return JudgeOutcome(
            criterion_id="criterion_1",
            response=JudgeResponse(score=score, level_achieved="Good", justification="Solid"),
            tokens_used=120,
        )

    def test_automated_uses_probe_score(self, make_criterion) -> None:
        criterion = make_criterion("criterion_10")
        automated = CriterionScore(criterion_id="criterion_10", total_tests=10, passed=9, score=4.0)
        evaluation = finalize_criterion(criterion, automated, None)
        assert evaluation.score == 4.0
        assert "9/10" in evaluation.justification

    def test_automated_without_probes_is_zero(self, make_criterion) -> None:
        evaluation = finalize_criterion(make_criterion("criterion_16"), None, None)
        assert evaluation.score == 0.0

    def test_semantic_uses_judge_score(self, make_criterion) -> None:
        criterion = make_criterion(method=EvaluationMethod.MODEL_SEMANTIC)
        evaluation = finalize_criterion(criterion, None, self._judged(3.5))
        assert evaluation.score == 3.5
        assert evaluation.qualitative_score == 3.5
        assert evaluation.tokens_used == 120

    def test_semantic_without_judge_is_zero(self, make_criterion) -> None:
        criterion = make_criterion(method=EvaluationMethod.MODEL_SEMANTIC)
        assert finalize_criterion(criterion, None, None).score == 0.0

    def test_hybrid_blends(self, make_criterion) -> None:
        criterion = make_criterion("criterion_3", EvaluationMethod.HYBRID, 0.6, 0.4)
        automated = CriterionScore(criterion_id="criterion_3", total_tests=10, passed=10, score=4.0)
        evaluation = finalize_criterion(criterion, automated, self._judged(3.0))
        assert evaluation.score == 3.6
        assert evaluation.hybrid_calculation is not None
        assert evaluation.hybrid_calculation.qualitative_score == 3.0

    def test_hybrid_without_judge_keeps_automated(self, make_criterion) -> None:
        criterion = make_criterion("criterion_3", EvaluationMethod.HYBRID, 0.5, 0.5)
        automated = CriterionScore(criterion_id="criterion_3", total_tests=4, passed=3, score=3.5)
        evaluation = finalize_criterion(criterion, automated, None)
        assert evaluation.score == 3.5
        assert evaluation.hybrid_calculation is None

    def test_failed_judge_scores_zero(self, make_criterion) -> None:
        criterion = make_criterion("criterion_3", EvaluationMethod.HYBRID, 0.5, 0.5)
        automated = CriterionScore(criterion_id="criterion_3", total_tests=4, passed=4, score=4.0)
        failure = JudgeOutcome(criterion_id="criterion_3", error="Invalid judge response")
        evaluation = finalize_criterion(criterion, automated, failure)
        assert evaluation.score == 0.0
        assert evaluation.evaluation_failed
        assert evaluation.error == "Invalid judge response"


def test_overall_score_sums(make_criterion) -> None:
    evaluations = [
        finalize_criterion(
            make_criterion(f"criterion_{i}"),
            CriterionScore(criterion_id=f"criterion_{i}", total_tests=1, passed=1, score=4.0),
            None,
        )
        for i in range(1, 4)
    ]
    assert overall_score(evaluations) == 12.0
