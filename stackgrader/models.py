"""
Pydantic models for the stackgrader system.

Defines the rubric, probe outcomes, suite and criterion scores, git
metrics, code summaries, the judge's structured output schema and the
final evaluation report.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


class EvaluationMethod(str, Enum):
    """How a criterion is scored."""

    AUTOMATED = "automated"
    MODEL_SEMANTIC = "model_semantic"
    HYBRID = "hybrid"


class Criterion(BaseModel):
    """
    A single scored dimension of the grading rubric.

    Attributes:
        id: Identifier, ``criterion_1`` .. ``criterion_16``.
        title: Human readable title.
        max_points: Maximum points (always 4.0).
        evaluation_method: automated, model_semantic or hybrid.
        automated_weight: Weight of the probe score (hybrid only).
        qualitative_weight: Weight of the judge score (hybrid only).
        levels: Scoring level descriptions keyed by level name.
        judge_instructions: Extra guidance handed to the judge.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., pattern=r"^criterion_\d+$", description="Criterion identifier")
    title: str = Field(..., description="Criterion title")
    max_points: float = Field(default=4.0, gt=0, description="Maximum points")
    evaluation_method: EvaluationMethod = Field(..., description="Scoring method")
    automated_weight: float = Field(default=0.0, ge=0, le=1, description="Probe score weight")
    qualitative_weight: float = Field(default=0.0, ge=0, le=1, description="Judge score weight")
    levels: dict[str, str] = Field(default_factory=dict, description="Level descriptions")
    judge_instructions: str = Field(default="", description="Guidance for the judge")

    @model_validator(mode="after")
    def _check_weights(self) -> "Criterion":
        if self.evaluation_method is EvaluationMethod.HYBRID:
            total = self.automated_weight + self.qualitative_weight
            if abs(total - 1.0) > 1e-6:
                raise ValueError(
                    f"{self.id}: hybrid weights must sum to 1.0, got {total:.3f}"
                )
        return self

    @property
    def is_judged(self) -> bool:
        return self.evaluation_method in (EvaluationMethod.MODEL_SEMANTIC, EvaluationMethod.HYBRID)


class Rubric(BaseModel):
    """
    The complete, read-only set of criteria.

    Attributes:
        title: Rubric title.
        criteria: Criteria in declaration order.
    """

    model_config = ConfigDict(frozen=True)

    title: str = Field(..., description="Rubric title")
    criteria: tuple[Criterion, ...] = Field(..., min_length=1, description="Criteria")

    @model_validator(mode="after")
    def _check_unique_ids(self) -> "Rubric":
        ids = [c.id for c in self.criteria]
        if len(ids) != len(set(ids)):
            raise ValueError("Rubric contains duplicate criterion ids")
        return self

    def get(self, criterion_id: str) -> Criterion | None:
        for criterion in self.criteria:
            if criterion.id == criterion_id:
                return criterion
        return None

    def judged(self) -> list[Criterion]:
        """Criteria that need a qualitative judgment."""
        return [c for c in self.criteria if c.is_judged]

    @property
    def max_score(self) -> float:
        return sum(c.max_points for c in self.criteria)


class OutcomeStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"


class ProbeOutcome(BaseModel):
    """
    Result of running one probe.

    Attributes:
        probe: Probe name.
        status: pass, fail or skip.
        error: Reason attached to a non-pass outcome.
        details: Optional measurements recorded by the probe.
    """

    model_config = ConfigDict(frozen=True)

    probe: str = Field(..., description="Probe name")
    status: OutcomeStatus = Field(..., description="Outcome status")
    error: str | None = Field(default=None, description="Reason for fail or skip")
    details: dict[str, float | int | str | bool] = Field(
        default_factory=dict, description="Probe measurements"
    )

    @computed_field
    @property
    def passed(self) -> bool:
        return self.status is OutcomeStatus.PASS


class SuiteResult(BaseModel):
    """
    Outcomes of one suite run.

    Counts are folded from ``outcomes`` on access; nothing is tracked
    separately. Skipped probes count towards ``total`` but not ``passed``.

    Attributes:
        name: Suite name.
        criteria: Criteria fed by this suite.
        outcomes: Probe outcomes in execution order.
        duration_ms: Wall time of the suite.
        error: Setup/teardown problem, if any.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Suite name")
    criteria: tuple[str, ...] = Field(..., min_length=1, description="Criteria fed by the suite")
    outcomes: tuple[ProbeOutcome, ...] = Field(default=(), description="Probe outcomes")
    duration_ms: int = Field(default=0, ge=0, description="Suite wall time")
    error: str | None = Field(default=None, description="Setup or teardown problem")

    @computed_field
    @property
    def total(self) -> int:
        return len(self.outcomes)

    @computed_field
    @property
    def passed(self) -> int:
        return sum(1 for o in self.outcomes if o.status is OutcomeStatus.PASS)

    @computed_field
    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status is OutcomeStatus.FAIL)

    @computed_field
    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.status is OutcomeStatus.SKIP)

    @computed_field
    @property
    def status(self) -> str:
        if not self.outcomes:
            return "skipped"
        return "passed" if self.passed == self.total else "failed"


class CriterionScore(BaseModel):
    """
    Automated score of one criterion.

    ``total_tests`` and the counts may be fractional when a suite is split
    across several criteria. ``score`` is 0 only when nothing was tested.
    """

    criterion_id: str = Field(..., description="Criterion identifier")
    total_tests: float = Field(default=0.0, ge=0, description="Probes counted")
    passed: float = Field(default=0.0, ge=0, description="Probes passed")
    failed: float = Field(default=0.0, ge=0, description="Probes failed")
    skipped: float = Field(default=0.0, ge=0, description="Probes skipped")
    score: float = Field(default=0.0, ge=0, le=4.0, description="Step score")
    max_score: float = Field(default=4.0, description="Maximum score")

    @property
    def evaluated(self) -> bool:
        return self.total_tests > 0


class HybridBreakdown(BaseModel):
    """Inputs and result of a hybrid blend, kept for auditing."""

    automated_score: float
    automated_weight: float
    qualitative_score: float
    qualitative_weight: float
    final_score: float


class JudgeResponse(BaseModel):
    """
    Structured output expected from the judge.

    Attributes:
        score: Qualitative score between 1.0 and 4.0.
        level_achieved: Level name (Poor/Fair/Good/Excellent or a mix).
        justification: Explanation of the score.
        strengths: Specific strengths.
        weaknesses: Specific weaknesses.
        improvements: Suggested improvements.
        files_analyzed: Files the judge relied on.
    """

    score: float = Field(..., ge=1.0, le=4.0, strict=True, description="Qualitative score")
    level_achieved: str = Field(default="", description="Level achieved")
    justification: str = Field(default="", description="Score justification")
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    files_analyzed: list[str] = Field(default_factory=list)


class JudgeOutcome(BaseModel):
    """
    The judge's verdict for one criterion, or the reason it failed.
    """

    criterion_id: str
    response: JudgeResponse | None = None
    error: str | None = None
    tokens_used: int = 0

    @property
    def failed(self) -> bool:
        return self.response is None


class CriterionEvaluation(BaseModel):
    """
    Final result for one criterion in the report.

    Attributes:
        criterion_id: Criterion identifier.
        criterion_title: Criterion title.
        evaluation_method: How the criterion was scored.
        score: Final score (0 when not evaluated or failed).
        max_points: Maximum points.
        automated: Probe-based score, when the criterion has probes.
        qualitative_score: Raw judge score, when judged.
        level_achieved: Judge level.
        justification: Judge or pipeline justification.
        strengths: Judge strengths.
        weaknesses: Judge weaknesses.
        improvements: Judge improvements.
        files_analyzed: Files the judge looked at.
        hybrid_calculation: Blend breakdown for hybrid criteria.
        evaluation_failed: Whether the judge call failed.
        error: Failure reason.
        tokens_used: Tokens consumed by the judge call.
    """

    criterion_id: str
    criterion_title: str
    evaluation_method: EvaluationMethod
    score: float = Field(default=0.0, ge=0)
    max_points: float = 4.0
    automated: CriterionScore | None = None
    qualitative_score: float | None = None
    level_achieved: str = ""
    justification: str = ""
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    files_analyzed: list[str] = Field(default_factory=list)
    hybrid_calculation: HybridBreakdown | None = None
    evaluation_failed: bool = False
    error: str | None = None
    tokens_used: int = 0


class CommitMessageQuality(BaseModel):
    model_config = ConfigDict(frozen=True)

    meaningful: int = 0
    vague: int = 0
    total: int = 0

    @property
    def meaningful_percentage(self) -> float:
        if self.total == 0:
            return 0.0
        return self.meaningful / self.total * 100


class BranchCounts(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int = 0
    non_main: int = 0


class TimelineEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: str
    commits: int
    message_sample: str


class GitMetrics(BaseModel):
    """
    Version-control process metrics, computed once per run.

    Attributes:
        is_git_repo: Whether the project is a git repository.
        total_commits: Commits reachable from HEAD.
        unique_commit_days: Distinct author dates.
        days_since_last_commit: Age of the newest commit in days.
        avg_days_between_commits: Mean gap between consecutive commits.
        commit_frequency: regular, moderate, sparse, irregular or none.
        commit_message_quality: Meaningful/vague tally.
        large_commits: Commits touching more files than the threshold.
        branches: Branch counts.
        merge_commits: Merge commit count.
        first_commit_message: Subject of the first commit.
        last_commit_message: Subject of the last commit.
        commit_timeline: Recent commits grouped by day.
        score: History score in [1.0, 4.0].
        justification: Reasons behind the score.
    """

    model_config = ConfigDict(frozen=True)

    is_git_repo: bool = False
    total_commits: int = 0
    unique_commit_days: int = 0
    days_since_last_commit: float = 0.0
    avg_days_between_commits: float = 0.0
    commit_frequency: str = "none"
    commit_message_quality: CommitMessageQuality = Field(default_factory=CommitMessageQuality)
    large_commits: int = 0
    branches: BranchCounts = Field(default_factory=BranchCounts)
    merge_commits: int = 0
    first_commit_message: str = ""
    last_commit_message: str = ""
    commit_timeline: tuple[TimelineEntry, ...] = ()
    score: float = Field(default=1.0, ge=1.0, le=4.0)
    justification: str = ""


class FileSummary(BaseModel):
    """Condensed view of a single source file for the judge."""

    file_path: str
    file_name: str
    language: str = ""
    lines: int = 0
    complexity: str = "low"
    imports: list[str] = Field(default_factory=list)
    exports: list[str] = Field(default_factory=list)
    functions: list[str] = Field(default_factory=list)
    key_snippets: list[str] = Field(default_factory=list)
    hooks_used: list[str] = Field(default_factory=list)
    component_type: str | None = None
    error: str | None = None


class FrontendSummary(BaseModel):
    components: list[FileSummary] = Field(default_factory=list)
    pages: list[FileSummary] = Field(default_factory=list)

    @property
    def total_files(self) -> int:
        return len(self.components) + len(self.pages)


class BackendSummary(BaseModel):
    routes: list[FileSummary] = Field(default_factory=list)
    models: list[FileSummary] = Field(default_factory=list)
    controllers: list[FileSummary] = Field(default_factory=list)
    middleware: list[FileSummary] = Field(default_factory=list)

    @property
    def total_files(self) -> int:
        return len(self.routes) + len(self.models) + len(self.controllers) + len(self.middleware)


class DocumentSummary(BaseModel):
    file_name: str
    lines: int
    word_count: int
    has_sections: bool
    preview: str


class CodeStatistics(BaseModel):
    total_files: int = 0
    total_lines: int = 0
    languages: dict[str, int] = Field(default_factory=dict)


class CodeSummary(BaseModel):
    """
    Project overview used as judge context.
    """

    frontend: FrontendSummary = Field(default_factory=FrontendSummary)
    backend: BackendSummary = Field(default_factory=BackendSummary)
    documentation: list[DocumentSummary] = Field(default_factory=list)
    statistics: CodeStatistics = Field(default_factory=CodeStatistics)


class TestRunSummary(BaseModel):
    """Totals across all suites."""

    __test__ = False

    total_tests: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    success_rate: float = 0.0
    execution_time_ms: int = 0
    test_suites: list[SuiteResult] = Field(default_factory=list)


class ReportMetadata(BaseModel):
    total_api_calls: int = 0
    total_tokens_used: int = 0
    evaluation_time_ms: int = 0
    judge_model: str | None = None
    judge_enabled: bool = False


class EvaluationResult(BaseModel):
    """
    The final report, emitted once as the process's only stdout payload.

    Attributes:
        timestamp: ISO timestamp of the run.
        project: Path of the graded project.
        criteria: Per-criterion results keyed by criterion id.
        test_results: Suite results and totals.
        git_analysis: Version-control metrics.
        overall_score: Sum of criterion scores.
        max_score: Sum of criterion maximums.
        metadata: Judge call count, tokens and timing.
    """

    timestamp: str
    project: str
    criteria: dict[str, CriterionEvaluation] = Field(default_factory=dict)
    test_results: TestRunSummary = Field(default_factory=TestRunSummary)
    git_analysis: GitMetrics = Field(default_factory=GitMetrics)
    overall_score: float = 0.0
    max_score: float = 0.0
    metadata: ReportMetadata = Field(default_factory=ReportMetadata)
