"""Shared pytest fixtures for stackgrader tests.

Provides a sample student project on disk (a WSGI task API plus a small
React front end), throwaway git repositories and in-process targets.
"""

import json
import shutil
import subprocess
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from stackgrader.locator import TargetLocator
from stackgrader.models import Criterion, EvaluationMethod, OutcomeStatus, ProbeOutcome
from stackgrader.probe import ProbeContext
from stackgrader.target import WsgiTarget

FIXTURES = Path(__file__).parent / "fixtures"

BUTTON_TSX = """\
import React from 'react';

interface ButtonProps {
  label: string;
  onClick: () => void;
}

export default function Button({ label, onClick }: ButtonProps) {
  return (
    <button className="btn" onClick={onClick}>
      {label}
    </button>
  );
}
"""

TASK_LIST_TSX = """\
import React, { useState, useEffect, useCallback } from 'react';
import Button from './Button';

export default function TaskList({ tasks }: { tasks: string[] }) {
  const [items, setItems] = useState<string[]>(tasks);

  useEffect(() => {
    setItems(tasks);
  }, [tasks]);

  const clear = useCallback(() => setItems([]), []);

  return (
    <section className="tasks">
      <ul>{items.map((t) => <li key={t}>{t}</li>)}</ul>
      <Button label="Clear" onClick={clear} />
    </section>
  );
}
"""

HEADER_TSX = """\
import Link from 'next/link';

export const Header = ({ title }: { title: string }) => (
  <header className="header">
    <nav><Link href="/">{title}</Link></nav>
  </header>
);

export default Header;
"""

INDEX_PAGE_TSX = """\
import TaskList from '../components/TaskList';

export default function Home() {
  return <main><TaskList tasks={[]} /></main>;
}
"""


def run_git(repo: Path, *args: str, env: dict[str, str] | None = None) -> str:
    result = subprocess.run(["git", *args], cwd=repo, check=True, capture_output=True, text=True, env=env)
    return result.stdout


@pytest.fixture
def make_git_repo(tmp_path: Path) -> Callable[..., Path]:
    """Factory creating a git repository with the given commit subjects."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    def _factory(messages: list[str], repo: Path | None = None) -> Path:
        repo = repo or tmp_path / "repo"
        repo.mkdir(parents=True, exist_ok=True)
        run_git(repo, "init", "-b", "main")
        run_git(repo, "config", "user.email", "student@example.com")
        run_git(repo, "config", "user.name", "Student")
        run_git(repo, "config", "commit.gpgsign", "false")
        for i, message in enumerate(messages):
            (repo / f"file_{i}.txt").write_text(f"change {i}\n")
            run_git(repo, "add", "-A")
            run_git(repo, "commit", "-m", message)
        return repo

    return _factory


@pytest.fixture
def sample_project(tmp_path: Path) -> Path:
    """A full-stack project: WSGI backend, React components, docs."""
    project = tmp_path / "project"
    backend = project / "backend"
    components = project / "frontend" / "components"
    pages = project / "frontend" / "pages"
    for directory in (backend, components, pages, backend / "models"):
        directory.mkdir(parents=True)

    shutil.copy(FIXTURES / "sample_backend.py", backend / "app.py")
    (backend / "requirements.txt").write_text("bcrypt\npydantic\nflask-cors\n")
    (backend / "models" / "task.py").write_text(
        "from pydantic import BaseModel, Field\n\n\n"
        "class Task(BaseModel):\n"
        "    title: str = Field(..., min_length=1, max_length=200)\n"
        "    completed: bool = False\n"
        "    created_at: str | None = None\n"
    )

    (components / "Button.tsx").write_text(BUTTON_TSX)
    (components / "TaskList.tsx").write_text(TASK_LIST_TSX)
    (components / "Header.tsx").write_text(HEADER_TSX)
    (pages / "index.tsx").write_text(INDEX_PAGE_TSX)
    (project / "frontend" / "package.json").write_text(
        json.dumps(
            {
                "name": "frontend",
                "scripts": {"build": "next build", "test": "jest"},
                "dependencies": {"next": "14.0.0", "react": "18.2.0"},
                "devDependencies": {"typescript": "5.3.0", "jest": "29.0.0"},
            }
        )
    )
    (project / "frontend" / "tsconfig.json").write_text("{}")

    (project / ".gitignore").write_text("node_modules/\n.env\n__pycache__/\n.next/\n")
    (project / "README.md").write_text("# Task Manager\n\n## Setup\n\nRun the backend and the frontend.\n")
    return project


@pytest.fixture
def locator(sample_project: Path) -> TargetLocator:
    return TargetLocator(sample_project)


@pytest.fixture
def make_wsgi_target() -> Callable[..., WsgiTarget]:
    """Factory wrapping a WSGI callable in a WsgiTarget."""
    targets: list[WsgiTarget] = []

    def _factory(app, timeout: float = 5.0, reset_hook=None) -> WsgiTarget:
        client = httpx.Client(transport=httpx.WSGITransport(app=app), base_url="http://testserver")
        target = WsgiTarget(client=client, timeout=timeout, reset_hook=reset_hook)
        targets.append(target)
        return target

    yield _factory
    for target in targets:
        target.close()


@pytest.fixture
def make_context(tmp_path: Path) -> Callable[..., ProbeContext]:
    def _factory(project_dir: Path | None = None, target=None, **kwargs) -> ProbeContext:
        project_dir = project_dir or tmp_path
        context = ProbeContext(project_dir=project_dir, locator=TargetLocator(project_dir), **kwargs)
        if target is not None:
            context.target = target
        return context

    return _factory


@pytest.fixture
def make_outcome() -> Callable[..., ProbeOutcome]:
    def _factory(status: OutcomeStatus = OutcomeStatus.PASS, probe: str = "probe") -> ProbeOutcome:
        error = None if status is OutcomeStatus.PASS else "reason"
        return ProbeOutcome(probe=probe, status=status, error=error)

    return _factory


@pytest.fixture
def make_criterion() -> Callable[..., Criterion]:
    def _factory(
        criterion_id: str = "criterion_1",
        method: EvaluationMethod = EvaluationMethod.AUTOMATED,
        automated_weight: float = 0.0,
        qualitative_weight: float = 0.0,
    ) -> Criterion:
        return Criterion(
            id=criterion_id,
            title=f"Title of {criterion_id}",
            evaluation_method=method,
            automated_weight=automated_weight,
            qualitative_weight=qualitative_weight,
            levels={"Excellent": "e", "Good": "g", "Fair": "f", "Poor": "p"},
        )

    return _factory
