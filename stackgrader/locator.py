"""
Target locator for student project layouts.

Student projects put the same thing in different places (``backend/``,
``server/``, the repository root, optionally all under ``grading-folder/``).
Each role maps to an ordered list of candidate relative paths; the first
candidate that exists wins.
"""

import logging
from enum import Enum
from pathlib import Path

from .config import (
    DEPLOYMENT_URL_FILENAME,
    NODE_ENTRY_CANDIDATES,
    PROJECT_PREFIXES,
    PYTHON_ENTRY_CANDIDATES,
)

logger = logging.getLogger(__name__)


class NotFound(Enum):
    """Sentinel for a role with no matching candidate."""

    NOT_FOUND = "not_found"

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = NotFound.NOT_FOUND


class Role(str, Enum):
    BACKEND_ENTRY = "backend entry point"
    PYTHON_ENTRY = "python backend entry point"
    MODELS_DIR = "models directory"
    MIDDLEWARE_DIR = "middleware directory"
    ROUTES_DIR = "routes directory"
    CONTROLLERS_DIR = "controllers directory"
    COMPONENTS_DIR = "components directory"
    PAGES_DIR = "pages directory"
    APP_DIR = "app directory"
    FRONTEND_DIR = "frontend directory"
    BACKEND_MANIFEST = "backend package manifest"
    FRONTEND_MANIFEST = "frontend package manifest"
    ROOT_MANIFEST = "root package manifest"
    TSCONFIG = "tsconfig"
    GITIGNORE = "gitignore"
    DEPLOYMENT_URL = "deployment URL file"
    README = "readme"
    PLANNING_DOC = "planning document"


# (candidates, is_directory) per role, in priority order
ROLE_CANDIDATES: dict[Role, tuple[list[str], bool]] = {
    Role.BACKEND_ENTRY: (NODE_ENTRY_CANDIDATES, False),
    Role.PYTHON_ENTRY: (PYTHON_ENTRY_CANDIDATES, False),
    Role.MODELS_DIR: (["backend/models", "server/models", "models", "src/models"], True),
    Role.MIDDLEWARE_DIR: (["backend/middleware", "server/middleware", "middleware", "src/middleware"], True),
    Role.ROUTES_DIR: (["backend/routes", "server/routes", "routes", "src/routes"], True),
    Role.CONTROLLERS_DIR: (["backend/controllers", "server/controllers", "controllers", "src/controllers"], True),
    Role.COMPONENTS_DIR: (
        ["frontend/components", "frontend/src/components", "client/src/components", "src/components", "components"],
        True,
    ),
    Role.PAGES_DIR: (["frontend/pages", "frontend/src/pages", "client/src/pages", "src/pages", "pages"], True),
    Role.APP_DIR: (["frontend/app", "frontend/src/app", "src/app", "app"], True),
    Role.FRONTEND_DIR: (["frontend", "client", "src"], True),
    Role.BACKEND_MANIFEST: (
        ["backend/package.json", "server/package.json", "backend/requirements.txt", "backend/pyproject.toml"],
        False,
    ),
    Role.FRONTEND_MANIFEST: (["frontend/package.json", "client/package.json"], False),
    Role.ROOT_MANIFEST: (["package.json", "requirements.txt", "pyproject.toml"], False),
    Role.TSCONFIG: (["frontend/tsconfig.json", "tsconfig.json", "backend/tsconfig.json", "client/tsconfig.json"], False),
    Role.GITIGNORE: ([".gitignore"], False),
    Role.DEPLOYMENT_URL: ([DEPLOYMENT_URL_FILENAME], False),
    Role.README: (["README.md", "readme.md", "Readme.md"], False),
    Role.PLANNING_DOC: (["PLANNING.md", "docs/PLANNING.md", "planning.md"], False),
}


class TargetLocator:
    """
    Resolves roles to paths inside a student project.

    Candidates are tried under each project prefix (``grading-folder/`` first,
    then the root). A candidate that cannot be inspected counts as absent.
    """

    def __init__(self, project_dir: Path) -> None:
        self.project_dir = project_dir
        self._cache: dict[Role, Path | NotFound] = {}

    @property
    def root(self) -> Path:
        """Directory holding the student code (``grading-folder/`` when present)."""
        for prefix in PROJECT_PREFIXES:
            base = self.project_dir / prefix if prefix else self.project_dir
            if _exists(base, is_dir=True):
                return base
        return self.project_dir

    def locate(self, role: Role) -> Path | NotFound:
        """
        Find the first existing candidate for a role.

        Args:
            role: Role to resolve.

        Returns:
            Path of the first match, or NOT_FOUND.
        """
        if role not in self._cache:
            matches = self._candidates(role)
            self._cache[role] = next(matches, NOT_FOUND)
            logger.debug("Located %s: %s", role.value, self._cache[role])
        return self._cache[role]

    def locate_all(self, role: Role) -> list[Path]:
        """Every existing candidate for a role, in priority order."""
        return list(self._candidates(role))

    def found(self, role: Role) -> bool:
        return self.locate(role) is not NOT_FOUND

    def _candidates(self, role: Role):
        candidates, is_dir = ROLE_CANDIDATES[role]
        for prefix in PROJECT_PREFIXES:
            base = self.project_dir / prefix if prefix else self.project_dir
            for relative in candidates:
                path = base / relative
                if _exists(path, is_dir=is_dir):
                    yield path


def _exists(path: Path, is_dir: bool) -> bool:
    try:
        return path.is_dir() if is_dir else path.is_file()
    except (OSError, ValueError):
        return False
