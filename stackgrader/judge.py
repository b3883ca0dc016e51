"""
Qualitative scoring with OpenAI chat completions.

The judge reads a condensed view of the project and scores the criteria the
probes cannot settle alone. Its answer is validated against JudgeResponse
before it is trusted.
"""

import logging
import netrc
import os
import time

import openai
from openai import OpenAI
from pydantic import ValidationError

from .config import (
    JUDGE_BATCHES,
    JUDGE_DELAY_SECONDS,
    JUDGE_TEMPERATURE,
    JUDGE_TIMEOUT_SECONDS,
    MAX_TOKENS,
    OPENAI_MODEL,
)
from .errors import JudgeError
from .models import CodeSummary, Criterion, CriterionScore, EvaluationMethod, JudgeOutcome, JudgeResponse
from .rubric import format_criterion_for_llm

logger = logging.getLogger(__name__)


def build_context(criterion: Criterion, summary: CodeSummary) -> str:
    """
    Pick the slice of the code summary relevant to a criterion.

    Args:
        criterion: Criterion being judged.
        summary: Project summary.

    Returns:
        Markdown context for the prompt.
    """
    lines: list[str] = []
    if criterion.id == "criterion_1":
        lines.append("**Documentation**:")
        for doc in summary.documentation:
            lines.append(f"- {doc.file_name} ({doc.lines} lines, {doc.word_count} words)")
            lines.append(f"  Preview: {doc.preview}")
            lines.append("")
        if not summary.documentation:
            lines.append("No README or planning document found.")

    elif criterion.id in ("criterion_2", "criterion_7"):
        lines.append("**Frontend Components**:")
        for component in summary.frontend.components[:10]:
            lines.append(f"- {component.file_name} ({component.lines} lines)")
            lines.append(f"  Hooks: {', '.join(component.hooks_used) or 'none'}")
            lines.append(f"  Type: {component.component_type or 'unknown'}")
            if component.key_snippets:
                lines.append(f"  Key code:\n```\n{component.key_snippets[0]}\n```")

    elif criterion.id in ("criterion_3", "criterion_4"):
        backend = summary.backend
        lines.append("**Backend Structure**:")
        lines.append(f"Routes: {len(backend.routes)}")
        lines.append(f"Models: {len(backend.models)}")
        lines.append(f"Controllers: {len(backend.controllers)}")
        lines.append("")
        if backend.routes:
            lines.append("**Sample Routes**:")
        for route in backend.routes[:5]:
            lines.append(f"- {route.file_name} ({route.lines} lines)")
            lines.append(f"  Functions: {', '.join(route.functions) or 'none'}")
            if route.key_snippets:
                lines.append(f"  Key code:\n```\n{route.key_snippets[0]}\n```")

    elif criterion.id == "criterion_8":
        statistics = summary.statistics
        lines.append("**Code Statistics**:")
        lines.append(f"Total Files: {statistics.total_files}")
        lines.append(f"Total Lines: {statistics.total_lines}")
        lines.append(f"Languages: {', '.join(statistics.languages)}")
        lines.append("")
        lines.append("**Sample Code Quality**:")
        for file in summary.frontend.components[:3] + summary.backend.routes[:3]:
            lines.append(f"- {file.file_name}: {file.lines} lines, complexity: {file.complexity}")

    else:
        lines.append("**Project Overview**:")
        lines.append(f"Frontend Files: {summary.frontend.total_files}")
        lines.append(f"Backend Files: {summary.backend.total_files}")
        lines.append(f"Total Lines of Code: {summary.statistics.total_lines}")

    return "\n".join(lines)


def judge_order(criteria: list[Criterion]) -> list[Criterion]:
    """Judged criteria in thematic batch order, then any others in rubric order."""
    judged = {c.id: c for c in criteria if c.is_judged}
    ordered = [judged.pop(cid) for batch in JUDGE_BATCHES for cid in batch if cid in judged]
    return ordered + [c for c in criteria if c.id in judged]


class LLMJudge:
    """
    Qualitative judge backed by OpenAI chat completions.

    Keeps running totals of API calls and tokens across a grading run.
    """

    def __init__(
        self,
        model: str = OPENAI_MODEL,
        api_key: str | None = None,
        delay: float = JUDGE_DELAY_SECONDS,
    ) -> None:
        """
        Initialize the judge.

        Args:
            model: OpenAI model to use.
            api_key: OpenAI API key. Falls back to .netrc, then OPENAI_API_KEY.
            delay: Seconds to wait between consecutive calls.

        Raises:
            ValueError: If no API key is provided or found.
        """
        self.model = model
        self.delay = delay
        self.api_calls = 0
        self.tokens_used = 0

        # Priority: 1. Argument, 2. .netrc (machine OPENAI), 3. Environment variable
        if api_key is None:
            try:
                auth = netrc.netrc().authenticators("OPENAI")
                if auth:
                    api_key = auth[0]
            except (OSError, netrc.NetrcParseError) as e:
                logger.debug("No usable .netrc: %s", e)

        api_key = api_key or os.environ.get("OPENAI_API_KEY")

        if not api_key:
            raise ValueError(
                "OpenAI API key required. Set OPENAI_API_KEY environment variable, "
                "add machine OPENAI to your .netrc file, or pass api_key parameter."
            )

        # One attempt per criterion, bounded by the judge timeout
        self.client = OpenAI(api_key=api_key, max_retries=0, timeout=JUDGE_TIMEOUT_SECONDS)

    def evaluate(
        self,
        criterion: Criterion,
        automated: CriterionScore | None,
        summary: CodeSummary,
    ) -> JudgeOutcome:
        """
        Ask the judge for one criterion.

        Args:
            criterion: Criterion to judge.
            automated: Probe score, shown to the judge for hybrid criteria.
            summary: Project summary used as context.

        Returns:
            JudgeOutcome with a validated response.

        Raises:
            JudgeError: If the call fails or the answer does not validate.
        """
        prompt = self._build_prompt(criterion, automated, build_context(criterion, summary))
        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self._get_system_prompt()},
                    {"role": "user", "content": prompt},
                ],
                temperature=JUDGE_TEMPERATURE,
                response_format={"type": "json_object"},
                max_completion_tokens=MAX_TOKENS,
            )
        except openai.OpenAIError as e:
            raise JudgeError(f"OpenAI API error: {e}") from e
        finally:
            self.api_calls += 1

        tokens = completion.usage.total_tokens if completion.usage else 0
        self.tokens_used += tokens

        if not completion.choices or completion.choices[0].message is None:
            raise JudgeError("Judge response has no choices")
        content = completion.choices[0].message.content
        if not content:
            raise JudgeError("Empty response from judge")
        try:
            response = JudgeResponse.model_validate_json(content)
        except ValidationError as e:
            raise JudgeError(f"Invalid judge response: {e.error_count()} validation errors") from e

        return JudgeOutcome(criterion_id=criterion.id, response=response, tokens_used=tokens)

    def evaluate_all(
        self,
        criteria: list[Criterion],
        automated_scores: dict[str, CriterionScore],
        summary: CodeSummary,
    ) -> dict[str, JudgeOutcome]:
        """
        Judge every model_semantic and hybrid criterion, one call at a time.

        A failed call is recorded and the run continues.

        Args:
            criteria: Rubric criteria; automated ones are ignored.
            automated_scores: Probe scores keyed by criterion id.
            summary: Project summary used as context.

        Returns:
            Outcomes keyed by criterion id.
        """
        outcomes: dict[str, JudgeOutcome] = {}
        for i, criterion in enumerate(judge_order(criteria)):
            if i > 0 and self.delay > 0:
                time.sleep(self.delay)
            logger.info("Judging %s: %s", criterion.id, criterion.title)
            try:
                outcomes[criterion.id] = self.evaluate(criterion, automated_scores.get(criterion.id), summary)
                logger.info("  Score: %.2f/%.1f", outcomes[criterion.id].response.score, criterion.max_points)
            except JudgeError as e:
                logger.error("  Judge failed for %s: %s", criterion.id, e)
                outcomes[criterion.id] = JudgeOutcome(criterion_id=criterion.id, error=str(e))
            except Exception as e:
                logger.exception("  Unexpected judge failure for %s", criterion.id)
                outcomes[criterion.id] = JudgeOutcome(criterion_id=criterion.id, error=f"{type(e).__name__}: {e}")
        return outcomes

    def _get_system_prompt(self) -> str:
        return (
            "You are an expert full-stack development instructor evaluating student projects. "
            "Provide fair, constructive feedback with specific examples. "
            "Always answer with a single JSON object."
        )

    def _build_prompt(self, criterion: Criterion, automated: CriterionScore | None, context: str) -> str:
        """
        Build the judging prompt for one criterion.

        Args:
            criterion: Criterion to judge.
            automated: Probe score for the criterion, if any.
            context: Project context selected for the criterion.

        Returns:
            Complete prompt string.
        """
        hybrid = criterion.evaluation_method is EvaluationMethod.HYBRID
        automated = automated or CriterionScore(criterion_id=criterion.id)

        test_section = ""
        weighting_note = ""
        if hybrid:
            test_section = f"""
**Automated Test Results**:
- Tests Passed: {automated.passed:g}
- Tests Failed: {automated.failed:g}
- Test Score: {automated.score}/{criterion.max_points}
"""
            weighting_note = (
                f"Note: The automated test score is {automated.score}. Evaluate the qualitative aspects; "
                f"your score is weighted at {criterion.qualitative_weight * 100:.0f}% and the tests at "
                f"{criterion.automated_weight * 100:.0f}%."
            )

        return f"""You are evaluating a student's full-stack project for an academic course.

{format_criterion_for_llm(criterion)}
{test_section}
**Code Analysis**:
{context}

**Your Task**:
Analyze the provided information and assign a score between 1.0 and 4.0 (decimals allowed for in-between cases).
{weighting_note}

Provide your response in JSON format:
{{
  "score": <number between 1.0 and 4.0>,
  "level_achieved": "<Poor/Fair/Good/Excellent or combination>",
  "justification": "<detailed explanation of score>",
  "strengths": ["<specific strength>", ...],
  "weaknesses": ["<specific weakness>", ...],
  "improvements": ["<specific improvement>", ...],
  "files_analyzed": ["<file>", ...]
}}
"""
