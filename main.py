"""
stackgrader: Automated grading of full-stack web projects

Runs behavioral test suites against a student project, analyzes its git
history, optionally asks an LLM judge for qualitative scores, and prints a
single JSON evaluation to stdout. Progress is logged to stderr.

Usage:
  main.py [--config=PATH] [--project=DIR] [--output=DIR] [--skip-llm] [--verbose]
  main.py (-h | --help)
  main.py --version

Options:
  --config=PATH  Path to YAML configuration file (grader_config.yml if present).
  --project=DIR  Project to grade; overrides project_dir from the config.
  --output=DIR   Also save evaluation.json and criteria_scores.csv here.
  --skip-llm     Score with automated checks only.
  --verbose      Log every probe.
  -h --help      Show this screen.
  --version      Show version.
"""

import contextlib
import logging
import sys
import time
from datetime import datetime, timezone
from pathlib import Path

from docopt import docopt
from pydantic import ValidationError
import yaml

from stackgrader import __version__
from stackgrader.aggregator import map_suites_to_criteria, summarize_suites
from stackgrader.config import DEFAULT_CONFIG_FILENAME
from stackgrader.config_loader import GraderConfig, load_config
from stackgrader.history import analyze
from stackgrader.judge import LLMJudge
from stackgrader.locator import TargetLocator
from stackgrader.models import EvaluationResult, GitMetrics, JudgeOutcome, ReportMetadata, Rubric
from stackgrader.report import ReportEmitter
from stackgrader.rubric import load_rubric
from stackgrader.scoring import finalize_criterion, max_score, overall_score
from stackgrader.suite import SuiteRunner, TargetPool
from stackgrader.suites import build_suites
from stackgrader.summarizer import summarize_project

logger = logging.getLogger("stackgrader")


def configure_logging(verbose: bool = False) -> None:
    """Send all logging to stderr; stdout carries only the report."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        stream=sys.stderr,
        format="%(asctime)s [%(levelname)s] - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


def build_judge(config: GraderConfig) -> LLMJudge | None:
    """
    Create the LLM judge unless disabled.

    Returns:
        The judge, or None when skipped or no API key is available.
    """
    if config.skip_llm:
        logger.info("LLM judge disabled; automated scores only")
        return None
    try:
        return LLMJudge(delay=config.judge_delay)
    except ValueError as e:
        logger.warning("%s", e)
        logger.warning("LLM judging will be skipped.")
        return None


def run_grading_pipeline(config: GraderConfig, rubric: Rubric, judge: LLMJudge | None = None) -> EvaluationResult:
    """
    Run the complete grading pipeline on one project.

    Stages: run suites, fold them into criteria, analyze git history,
    summarize the code, judge, finalize. A failing stage degrades the
    result instead of aborting it.

    Args:
        config: Run configuration.
        rubric: Rubric to score against.
        judge: Qualitative judge, or None to skip judging.

    Returns:
        The complete evaluation.
    """
    started = time.perf_counter()
    project_dir = config.project_dir.resolve()
    logger.info("Grading %s", project_dir)

    locator = TargetLocator(project_dir)
    logger.info("Project root: %s", locator.root)

    try:
        git_metrics = analyze(project_dir)
    except Exception as e:
        logger.exception("Git analysis failed")
        git_metrics = GitMetrics(justification=f"Git analysis failed: {e}")

    suites = build_suites(config.suites)
    logger.info("Running %d test suites", len(suites))
    targets = TargetPool(config.target, locator, config.request_timeout)
    try:
        results = SuiteRunner(project_dir, locator, targets, git_metrics).run_all(suites)
    finally:
        targets.close()

    test_results = summarize_suites(results)
    logger.info(
        "Tests: %d/%d passed (%.1f%%), %d skipped",
        test_results.passed,
        test_results.total_tests,
        test_results.success_rate,
        test_results.skipped,
    )

    automated = map_suites_to_criteria(results, rubric)

    judge_outcomes: dict[str, JudgeOutcome] = {}
    if judge is not None:
        try:
            summary = summarize_project(locator)
            judge_outcomes = judge.evaluate_all(list(rubric.criteria), automated, summary)
        except Exception:
            logger.exception("Qualitative judging failed; continuing with automated scores")

    evaluations = []
    for criterion in rubric.criteria:
        score = automated.get(criterion.id)
        evaluations.append(
            finalize_criterion(
                criterion,
                score if score is not None and score.evaluated else None,
                judge_outcomes.get(criterion.id),
            )
        )

    result = EvaluationResult(
        timestamp=datetime.now(timezone.utc).isoformat(),
        project=str(project_dir),
        criteria={e.criterion_id: e for e in evaluations},
        test_results=test_results,
        git_analysis=git_metrics,
        overall_score=overall_score(evaluations),
        max_score=max_score(list(rubric.criteria)),
        metadata=ReportMetadata(
            total_api_calls=judge.api_calls if judge else 0,
            total_tokens_used=judge.tokens_used if judge else 0,
            evaluation_time_ms=int((time.perf_counter() - started) * 1000),
            judge_model=judge.model if judge else None,
            judge_enabled=judge is not None,
        ),
    )
    logger.info("Overall score: %.2f/%.1f", result.overall_score, result.max_score)
    return result


def resolve_config(arguments: dict) -> GraderConfig:
    """
    Build the run configuration from the config file and CLI overrides.

    Raises:
        FileNotFoundError: If neither a config file nor a project is given.
    """
    config_path = Path(arguments["--config"]) if arguments["--config"] else None
    if config_path is None and Path(DEFAULT_CONFIG_FILENAME).exists():
        config_path = Path(DEFAULT_CONFIG_FILENAME)

    if config_path is not None:
        config = load_config(config_path)
    elif arguments["--project"]:
        config = GraderConfig(project_dir=Path(arguments["--project"]))
    else:
        raise FileNotFoundError(f"No --project given and {DEFAULT_CONFIG_FILENAME} not found")

    overrides = {}
    if arguments["--project"]:
        overrides["project_dir"] = Path(arguments["--project"])
    if arguments["--output"]:
        overrides["output_dir"] = Path(arguments["--output"])
    if arguments["--skip-llm"]:
        overrides["skip_llm"] = True
    if arguments["--verbose"]:
        overrides["verbose"] = True
    return config.model_copy(update=overrides)


def main() -> int:
    """
    Main CLI entrypoint.

    Returns:
        Exit code (0 when a report was produced, 1 otherwise).
    """
    arguments = docopt(__doc__, version=f"stackgrader {__version__}")
    configure_logging(arguments["--verbose"])

    try:
        config = resolve_config(arguments)
        rubric = load_rubric(config.rubric_path)
    except (OSError, ValueError, ValidationError, yaml.YAMLError) as e:
        logger.error("Error loading configuration: %s", e)
        return 1

    if config.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    if not config.project_dir.is_dir():
        logger.warning("Project directory not found: %s", config.project_dir)

    # Student code runs in-process; anything it prints goes to stderr
    try:
        with contextlib.redirect_stdout(sys.stderr):
            result = run_grading_pipeline(config, rubric, build_judge(config))
    except KeyboardInterrupt:
        logger.error("Grading interrupted by user.")
        return 1

    emitter = ReportEmitter()
    try:
        emitter.emit(result)
    except OSError as e:
        logger.error("Error writing report: %s", e)
        return 1

    if config.output_dir:
        try:
            emitter.save(result, config.output_dir)
        except OSError as e:
            logger.error("Could not save report files to %s: %s", config.output_dir, e)
    return 0


if __name__ == "__main__":
    sys.exit(main())
