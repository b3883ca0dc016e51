"""Tests for the LLM judge, with the OpenAI client mocked out."""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from stackgrader.config import JUDGE_TIMEOUT_SECONDS
from stackgrader.errors import JudgeError
from stackgrader.judge import LLMJudge, build_context, judge_order
from stackgrader.models import CodeSummary, CriterionScore, DocumentSummary, EvaluationMethod, FileSummary
from stackgrader.rubric import load_rubric

VALID_ANSWER = {
    "score": 3.5,
    "level_achieved": "Good/Excellent",
    "justification": "Clear structure",
    "strengths": ["Reusable components"],
    "weaknesses": [],
    "improvements": ["Add tests"],
    "files_analyzed": ["Button.tsx"],
}


def _completion(content: str | None, tokens: int = 321):
    message = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=SimpleNamespace(total_tokens=tokens))


@pytest.fixture
def judge(monkeypatch) -> LLMJudge:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    judge = LLMJudge(api_key="sk-test", delay=0)
    judge.client = MagicMock()
    return judge


@pytest.fixture
def summary() -> CodeSummary:
    summary = CodeSummary()
    summary.frontend.components.append(
        FileSummary(file_path="frontend/components/Button.tsx", file_name="Button.tsx", lines=12, hooks_used=["useState"])
    )
    summary.documentation.append(
        DocumentSummary(file_name="README.md", lines=3, word_count=10, has_sections=True, preview="# Task Manager")
    )
    return summary


class TestLLMJudge:
    def test_missing_key_raises(self, monkeypatch, tmp_path) -> None:
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))
        with pytest.raises(ValueError, match="OpenAI API key required"):
            LLMJudge()

    def test_env_key(self, monkeypatch, tmp_path) -> None:
        monkeypatch.setenv("HOME", str(tmp_path))
        monkeypatch.setenv("OPENAI_API_KEY", "sk-from-env")
        assert LLMJudge().client.api_key == "sk-from-env"

    def test_evaluate_valid_answer(self, judge: LLMJudge, summary: CodeSummary) -> None:
        judge.client.chat.completions.create.return_value = _completion(json.dumps(VALID_ANSWER))
        criterion = load_rubric().get("criterion_2")

        outcome = judge.evaluate(criterion, CriterionScore(criterion_id="criterion_2", total_tests=10, passed=8, score=3.5), summary)

        assert not outcome.failed
        assert outcome.response.score == 3.5
        assert outcome.tokens_used == 321
        kwargs = judge.client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["temperature"] == 0.3
        prompt = kwargs["messages"][1]["content"]
        assert "Front-End Development" in prompt
        assert "Tests Passed: 8" in prompt
        assert "Button.tsx" in prompt

    @pytest.mark.parametrize(
        "content",
        [
            json.dumps({**VALID_ANSWER, "score": 7}),
            json.dumps({**VALID_ANSWER, "score": "excellent"}),
            json.dumps({**VALID_ANSWER, "score": "3.5"}),
            json.dumps({"justification": "no score"}),
            "not json at all",
            None,
        ],
    )
    def test_evaluate_rejects_bad_answers(self, judge: LLMJudge, summary: CodeSummary, content) -> None:
        judge.client.chat.completions.create.return_value = _completion(content)
        with pytest.raises(JudgeError):
            judge.evaluate(load_rubric().get("criterion_1"), None, summary)

    def test_evaluate_all_continues_after_failure(self, judge: LLMJudge, summary: CodeSummary) -> None:
        rubric = load_rubric()
        answers = iter([_completion("{}")] + [_completion(json.dumps(VALID_ANSWER))] * 20)
        judge.client.chat.completions.create.side_effect = lambda **kwargs: next(answers)

        outcomes = judge.evaluate_all(list(rubric.criteria), {}, summary)

        judged = [c.id for c in rubric.judged()]
        assert sorted(outcomes) == sorted(judged)
        first = judge_order(list(rubric.criteria))[0].id
        assert outcomes[first].failed
        assert outcomes[first].error.startswith("Invalid judge response")
        assert sum(1 for o in outcomes.values() if not o.failed) == len(judged) - 1
        assert judge.api_calls == len(judged)
        assert judge.tokens_used == 321 * len(judged)

    def test_client_does_not_retry_and_is_bounded(self, monkeypatch) -> None:
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        client = LLMJudge(api_key="sk-test", delay=0).client
        assert client.max_retries == 0
        assert client.timeout == JUDGE_TIMEOUT_SECONDS

    def test_evaluate_without_choices_is_a_judge_error(self, judge: LLMJudge, summary: CodeSummary) -> None:
        judge.client.chat.completions.create.return_value = SimpleNamespace(choices=[], usage=None)
        with pytest.raises(JudgeError, match="no choices"):
            judge.evaluate(load_rubric().get("criterion_1"), None, summary)
        assert judge.api_calls == 1

    def test_evaluate_all_keeps_scores_after_an_unexpected_failure(self, judge: LLMJudge, summary: CodeSummary) -> None:
        rubric = load_rubric()
        answers = iter(
            [_completion(json.dumps(VALID_ANSWER)), SimpleNamespace(choices=[], usage=None), KeyError("usage")]
            + [_completion(json.dumps(VALID_ANSWER))] * 20
        )

        def create(**kwargs):
            answer = next(answers)
            if isinstance(answer, Exception):
                raise answer
            return answer

        judge.client.chat.completions.create.side_effect = create

        outcomes = judge.evaluate_all(list(rubric.criteria), {}, summary)

        first, second, third = (c.id for c in judge_order(list(rubric.criteria))[:3])
        assert outcomes[first].response.score == 3.5
        assert outcomes[second].error == "Judge response has no choices"
        assert outcomes[third].error == "KeyError: 'usage'"
        assert sum(1 for o in outcomes.values() if o.failed) == 2
        assert judge.api_calls == len(rubric.judged())


def test_judge_order_follows_batches() -> None:
    order = [c.id for c in judge_order(list(load_rubric().criteria))]
    assert order[:4] == ["criterion_1", "criterion_15", "criterion_2", "criterion_7"]
    assert "criterion_10" not in order
    assert "criterion_16" not in order


def test_build_context_selects_by_criterion(summary: CodeSummary) -> None:
    rubric = load_rubric()
    assert "README.md" in build_context(rubric.get("criterion_1"), summary)
    assert "Hooks: useState" in build_context(rubric.get("criterion_2"), summary)
    assert "Backend Structure" in build_context(rubric.get("criterion_3"), summary)
    assert "Project Overview" in build_context(rubric.get("criterion_13"), summary)
    assert rubric.get("criterion_13").evaluation_method is EvaluationMethod.HYBRID
