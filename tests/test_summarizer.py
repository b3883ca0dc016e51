"""Tests for the code summarizer."""

from pathlib import Path

from stackgrader.locator import TargetLocator
from stackgrader.summarizer import DOCUMENT_PREVIEW_CHARS, summarize_file, summarize_project


class TestSummarizeProject:
    def test_sample_project(self, locator: TargetLocator) -> None:
        summary = summarize_project(locator)

        assert [c.file_name for c in summary.frontend.components] == ["Button.tsx", "Header.tsx", "TaskList.tsx"]
        assert [p.file_name for p in summary.frontend.pages] == ["index.tsx"]
        assert [m.file_name for m in summary.backend.models] == ["task.py"]
        assert summary.backend.routes == []
        assert summary.statistics.total_files == 5
        assert summary.statistics.languages == {"tsx": 4, "py": 1}
        assert summary.documentation[0].file_name == "README.md"
        assert summary.documentation[0].has_sections

    def test_component_details(self, locator: TargetLocator) -> None:
        task_list = next(c for c in summarize_project(locator).frontend.components if c.file_name == "TaskList.tsx")
        assert task_list.file_path == "frontend/components/TaskList.tsx"
        assert task_list.hooks_used == ["useState", "useEffect", "useCallback"]
        assert task_list.component_type == "functional"
        assert task_list.complexity == "low"
        assert task_list.key_snippets

    def test_empty_project(self, tmp_path: Path) -> None:
        summary = summarize_project(TargetLocator(tmp_path))
        assert summary.statistics.total_files == 0
        assert summary.documentation == []


def test_summarize_python_file(tmp_path: Path) -> None:
    path = tmp_path / "routes.py"
    path.write_text("import json\n\n\ndef list_tasks(request):\n    return []\n")
    summary = summarize_file(path, tmp_path)
    assert summary.file_path == "routes.py"
    assert summary.language == "py"
    assert summary.functions == ["list_tasks"]
    assert summary.imports == ["import json"]
    assert summary.hooks_used == []


def test_long_readme_preview_is_truncated(tmp_path: Path) -> None:
    (tmp_path / "README.md").write_text("word " * 400)
    document = summarize_project(TargetLocator(tmp_path)).documentation[0]
    assert len(document.preview) == DOCUMENT_PREVIEW_CHARS
    assert document.word_count == 400
    assert not document.has_sections
