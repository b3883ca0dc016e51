"""Tests for report emission."""

import csv
import io
import json
from pathlib import Path

import pytest

from stackgrader.models import CriterionEvaluation, CriterionScore, EvaluationMethod, EvaluationResult
from stackgrader.report import CSV_COLUMNS, ReportEmitter


@pytest.fixture
def result() -> EvaluationResult:
    return EvaluationResult(
        timestamp="2026-10-18T12:00:00",
        project="/tmp/project",
        criteria={
            "criterion_3": CriterionEvaluation(
                criterion_id="criterion_3",
                criterion_title="Back-End Architecture & API",
                evaluation_method=EvaluationMethod.HYBRID,
                score=3.5,
                automated=CriterionScore(criterion_id="criterion_3", total_tests=10, passed=9, score=4.0),
            ),
            "criterion_1": CriterionEvaluation(
                criterion_id="criterion_1",
                criterion_title="Project Planning & Design",
                evaluation_method=EvaluationMethod.MODEL_SEMANTIC,
                evaluation_failed=True,
                error="OpenAI API error: boom",
            ),
        },
        overall_score=3.5,
        max_score=8.0,
    )


class TestReportEmitter:
    def test_emit_writes_one_json_document(self, result: EvaluationResult) -> None:
        stream = io.StringIO()
        ReportEmitter().emit(result, stream)

        document = json.loads(stream.getvalue())
        assert document["overall_score"] == 3.5
        assert document["criteria"]["criterion_1"]["evaluation_failed"] is True
        assert document["criteria"]["criterion_3"]["automated"]["passed"] == 9

    def test_emit_only_once(self, result: EvaluationResult) -> None:
        emitter = ReportEmitter()
        emitter.emit(result, io.StringIO())
        with pytest.raises(RuntimeError, match="already emitted"):
            emitter.emit(result, io.StringIO())

    def test_save_writes_json_and_csv(self, result: EvaluationResult, tmp_path: Path) -> None:
        paths = ReportEmitter().save(result, tmp_path / "out")

        assert json.loads(paths["json"].read_text())["max_score"] == 8.0
        with open(paths["csv"], newline="") as f:
            rows = list(csv.reader(f))
        assert rows[0] == CSV_COLUMNS
        assert rows[1][:4] == ["criterion_3", "Back-End Architecture & API", "hybrid", "3.5"]
        assert rows[1][5] == "4.0"
        assert rows[2][7] == "True"
        assert rows[-1][0] == "total"
