"""Tests for the grading pipeline and the command line entry point."""

import json
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

import main
from stackgrader.config_loader import GraderConfig
from stackgrader.judge import LLMJudge
from stackgrader.models import EvaluationMethod
from stackgrader.rubric import load_rubric

JUDGE_ANSWER = json.dumps(
    {
        "score": 3.0,
        "level_achieved": "Good",
        "justification": "Solid work",
        "strengths": ["Clear API"],
        "weaknesses": [],
        "improvements": [],
        "files_analyzed": [],
    }
)


class TestRunGradingPipeline:
    def test_automated_only(self, sample_project: Path) -> None:
        rubric = load_rubric()
        result = main.run_grading_pipeline(GraderConfig(project_dir=sample_project, skip_llm=True), rubric)

        assert list(result.criteria) == [c.id for c in rubric.criteria]
        assert result.max_score == 64.0
        assert result.overall_score == pytest.approx(sum(e.score for e in result.criteria.values()), abs=0.01)
        assert not result.metadata.judge_enabled
        assert result.metadata.total_api_calls == 0
        assert not result.git_analysis.is_git_repo

        planning = result.criteria["criterion_1"]
        assert planning.score == 0.0
        assert planning.justification == "Qualitative judge not run"

        backend = result.criteria["criterion_3"]
        assert backend.evaluation_method is EvaluationMethod.HYBRID
        assert backend.score == backend.automated.score > 0

        suite_names = [s.name for s in result.test_results.test_suites]
        assert suite_names[0] == "API Endpoints"
        assert len(suite_names) == 15

    def test_with_judge(self, sample_project: Path, monkeypatch) -> None:
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        judge = LLMJudge(api_key="sk-test", delay=0)
        judge.client = MagicMock()
        judge.client.chat.completions.create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=JUDGE_ANSWER))],
            usage=SimpleNamespace(total_tokens=100),
        )
        rubric = load_rubric()
        config = GraderConfig(project_dir=sample_project, suites=["API Endpoints"])

        result = main.run_grading_pipeline(config, rubric, judge)

        assert result.metadata.judge_enabled
        assert result.metadata.total_api_calls == len(rubric.judged())
        assert result.metadata.total_tokens_used == 100 * len(rubric.judged())
        assert result.criteria["criterion_1"].score == 3.0

        backend = result.criteria["criterion_3"]
        expected = round(backend.automated.score * 0.6 + 3.0 * 0.4, 2)
        assert backend.hybrid_calculation.final_score == expected
        assert backend.score == expected

        # Suites filtered out leave their criteria without automated results
        assert result.criteria["criterion_10"].score == 0.0
        assert result.criteria["criterion_10"].justification == "No applicable automated checks"


class TestMain:
    def test_prints_one_json_report(self, sample_project: Path, tmp_path: Path, monkeypatch, capsys) -> None:
        monkeypatch.chdir(tmp_path)
        output = tmp_path / "out"
        monkeypatch.setattr(
            sys, "argv", ["main.py", "--project", str(sample_project), "--skip-llm", "--output", str(output)]
        )

        assert main.main() == 0

        report = json.loads(capsys.readouterr().out)
        assert report["max_score"] == 64.0
        assert len(report["criteria"]) == 16
        assert (output / "evaluation.json").is_file()
        assert (output / "criteria_scores.csv").is_file()

    def test_missing_project_and_config(self, tmp_path: Path, monkeypatch, capsys) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(sys, "argv", ["main.py", "--skip-llm"])

        assert main.main() == 1
        assert capsys.readouterr().out == ""

    def test_config_file(self, sample_project: Path, tmp_path: Path, monkeypatch, capsys) -> None:
        monkeypatch.chdir(tmp_path)
        (tmp_path / "grader_config.yml").write_text(
            f"project_dir: {sample_project}\nskip_llm: true\nsuites:\n  - Components\n"
        )
        monkeypatch.setattr(sys, "argv", ["main.py"])

        assert main.main() == 0

        report = json.loads(capsys.readouterr().out)
        assert [s["name"] for s in report["test_results"]["test_suites"]] == ["Components"]

    def test_backend_prints_stay_off_stdout(self, sample_project: Path, tmp_path: Path, monkeypatch, capsys) -> None:
        app = sample_project / "backend" / "app.py"
        source = app.read_text().replace(
            "def app(environ, start_response):\n", "def app(environ, start_response):\n    print('handling', environ['PATH_INFO'])\n", 1
        )
        app.write_text("print('student debug output at import')\n" + source)
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(sys, "argv", ["main.py", "--project", str(sample_project), "--skip-llm"])

        assert main.main() == 0

        captured = capsys.readouterr()
        assert json.loads(captured.out)["max_score"] == 64.0
        assert "student debug output at import" in captured.err
        assert "handling /api/health" in captured.err

    def test_unwritable_output_still_prints_report(self, sample_project: Path, tmp_path: Path, monkeypatch, capsys) -> None:
        monkeypatch.chdir(tmp_path)
        blocker = tmp_path / "not-a-directory"
        blocker.write_text("occupied\n")
        monkeypatch.setattr(
            sys, "argv", ["main.py", "--project", str(sample_project), "--skip-llm", "--output", str(blocker)]
        )

        assert main.main() == 0

        report = json.loads(capsys.readouterr().out)
        assert len(report["criteria"]) == 16
        assert blocker.read_text() == "occupied\n"
