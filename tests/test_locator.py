"""Tests for the target locator."""

from pathlib import Path

from stackgrader.locator import NOT_FOUND, Role, TargetLocator


class TestTargetLocator:
    def test_not_found_is_falsy(self) -> None:
        assert not NOT_FOUND

    def test_locates_roles_in_sample_project(self, locator: TargetLocator, sample_project: Path) -> None:
        assert locator.locate(Role.PYTHON_ENTRY) == sample_project / "backend" / "app.py"
        assert locator.locate(Role.COMPONENTS_DIR) == sample_project / "frontend" / "components"
        assert locator.locate(Role.GITIGNORE) == sample_project / ".gitignore"

    def test_missing_role(self, locator: TargetLocator) -> None:
        assert locator.locate(Role.DEPLOYMENT_URL) is NOT_FOUND
        assert not locator.found(Role.CONTROLLERS_DIR)

    def test_grading_folder_takes_priority(self, tmp_path: Path) -> None:
        (tmp_path / "backend").mkdir()
        (tmp_path / "backend" / "server.js").write_text("// root")
        nested = tmp_path / "grading-folder" / "backend"
        nested.mkdir(parents=True)
        (nested / "server.js").write_text("// nested")

        locator = TargetLocator(tmp_path)
        assert locator.root == tmp_path / "grading-folder"
        assert locator.locate(Role.BACKEND_ENTRY) == nested / "server.js"
        assert locator.locate_all(Role.BACKEND_ENTRY) == [nested / "server.js", tmp_path / "backend" / "server.js"]

    def test_candidate_order(self, tmp_path: Path) -> None:
        (tmp_path / "backend").mkdir()
        (tmp_path / "backend" / "index.js").write_text("")
        (tmp_path / "backend" / "server.js").write_text("")
        assert TargetLocator(tmp_path).locate(Role.BACKEND_ENTRY).name == "server.js"

    def test_file_is_not_a_directory(self, tmp_path: Path) -> None:
        (tmp_path / "models").write_text("not a dir")
        assert TargetLocator(tmp_path).locate(Role.MODELS_DIR) is NOT_FOUND

    def test_nonexistent_project(self, tmp_path: Path) -> None:
        locator = TargetLocator(tmp_path / "missing")
        assert locator.locate(Role.README) is NOT_FOUND
        assert locator.root == tmp_path / "missing"
