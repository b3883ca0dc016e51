"""
Rubric loading and formatting.

The rubric is a YAML document listing the scored criteria. The packaged
rubric is used unless a run configuration names another file.
"""

from pathlib import Path

import yaml

from .config import DEFAULT_RUBRIC_PATH
from .models import Criterion, EvaluationMethod, Rubric

LEVEL_POINTS: dict[str, int] = {"Excellent": 4, "Good": 3, "Fair": 2, "Poor": 1}


def load_rubric(rubric_path: Path | None = None) -> Rubric:
    """
    Load a rubric from a YAML file.

    Args:
        rubric_path: Path to the rubric YAML. Defaults to the packaged rubric.

    Returns:
        Frozen Rubric with all criteria.

    Raises:
        FileNotFoundError: If the rubric file doesn't exist.
        ValueError: If the file holds no criteria.
        ValidationError: If a criterion is invalid.
    """
    rubric_path = rubric_path or DEFAULT_RUBRIC_PATH
    if not rubric_path.exists():
        raise FileNotFoundError(f"Rubric not found: {rubric_path}")

    with open(rubric_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not data.get("criteria"):
        raise ValueError(f"No criteria found in {rubric_path}")

    return Rubric(
        title=data.get("title", rubric_path.stem),
        criteria=tuple(Criterion(**item) for item in data["criteria"]),
    )


def format_criterion_for_llm(criterion: Criterion) -> str:
    """
    Format a criterion's header and scoring levels as markdown for the judge.

    Args:
        criterion: Criterion to describe.

    Returns:
        Markdown block.
    """
    lines = [
        f"**Criterion**: {criterion.title}",
        f"**ID**: {criterion.id}",
        f"**Max Points**: {criterion.max_points}",
        f"**Evaluation Method**: {criterion.evaluation_method.value}",
        "",
        "**Scoring Levels**:",
    ]
    for level, points in LEVEL_POINTS.items():
        description = criterion.levels.get(level, "")
        suffix = "point" if points == 1 else "points"
        lines.append(f"- {level} ({points} {suffix}): {description}")

    if criterion.judge_instructions:
        lines.append("")
        lines.append(f"**Evaluation Instructions**: {criterion.judge_instructions}")

    if criterion.evaluation_method is EvaluationMethod.HYBRID:
        lines.append("")
        lines.append(
            f"Weighting: automated tests {criterion.automated_weight * 100:.0f}%, "
            f"your qualitative score {criterion.qualitative_weight * 100:.0f}%."
        )

    return "\n".join(lines)
