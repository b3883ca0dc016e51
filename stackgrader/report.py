"""
Report emission.

The evaluation is written once, as a single JSON document on stdout. It can
also be saved to disk together with a per-criterion CSV for gradebooks.
"""

import csv
import logging
import sys
from pathlib import Path
from typing import TextIO

from .config import REPORT_CSV_FILENAME, REPORT_JSON_FILENAME
from .models import EvaluationResult

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    "criterion_id",
    "criterion_title",
    "evaluation_method",
    "score",
    "max_points",
    "automated_score",
    "qualitative_score",
    "evaluation_failed",
]


class ReportEmitter:
    """Writes an EvaluationResult to a stream and, optionally, to disk."""

    def __init__(self) -> None:
        self.emitted = False

    def emit(self, result: EvaluationResult, stream: TextIO | None = None) -> None:
        """
        Write the report as one JSON document.

        Args:
            result: Evaluation to write.
            stream: Destination, stdout by default.

        Raises:
            RuntimeError: If this emitter already wrote a report.
        """
        if self.emitted:
            raise RuntimeError("Report already emitted")
        stream = stream or sys.stdout
        stream.write(result.model_dump_json(indent=2))
        stream.write("\n")
        stream.flush()
        self.emitted = True

    def save(self, result: EvaluationResult, output_dir: Path) -> dict[str, Path]:
        """
        Save the report to ``output_dir``.

        Creates:
        - evaluation.json with the full report
        - criteria_scores.csv with one row per criterion

        Returns:
            Dictionary of output file paths.
        """
        output_dir.mkdir(parents=True, exist_ok=True)

        json_path = output_dir / REPORT_JSON_FILENAME
        with open(json_path, "w", encoding="utf-8") as f:
            f.write(result.model_dump_json(indent=2))

        csv_path = output_dir / REPORT_CSV_FILENAME
        self._save_csv(result, csv_path)

        logger.info("Report saved to %s", output_dir)
        return {"json": json_path, "csv": csv_path}

    def _save_csv(self, result: EvaluationResult, csv_path: Path) -> None:
        with open(csv_path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(CSV_COLUMNS)
            for evaluation in result.criteria.values():
                writer.writerow([
                    evaluation.criterion_id,
                    evaluation.criterion_title,
                    evaluation.evaluation_method.value,
                    evaluation.score,
                    evaluation.max_points,
                    evaluation.automated.score if evaluation.automated else "",
                    "" if evaluation.qualitative_score is None else evaluation.qualitative_score,
                    evaluation.evaluation_failed,
                ])
            writer.writerow(["total", "", "", result.overall_score, result.max_score, "", "", ""])
