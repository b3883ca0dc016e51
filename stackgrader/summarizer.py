"""
Condensed project overview handed to the judge as context.

Summaries keep imports, exports, function names and a couple of key
snippets per file so the whole project fits in a prompt.
"""

import logging
from pathlib import Path

from .config import FRONTEND_EXTENSIONS, SOURCE_EXTENSIONS
from .heuristics import (
    complexity_class,
    component_type,
    count_lines,
    detect_hooks,
    extract_exports,
    extract_functions,
    extract_imports,
    extract_key_snippets,
    iter_source_files,
)
from .locator import NOT_FOUND, Role, TargetLocator
from .models import BackendSummary, CodeStatistics, CodeSummary, DocumentSummary, FileSummary, FrontendSummary

logger = logging.getLogger(__name__)

DOCUMENT_PREVIEW_CHARS = 500


def summarize_file(path: Path, root: Path) -> FileSummary:
    """
    Summarize one source file.

    Args:
        path: File to summarize.
        root: Project root, used to shorten the reported path.

    Returns:
        FileSummary; unreadable files carry ``error`` instead of content.
    """
    try:
        relative = path.relative_to(root).as_posix()
    except ValueError:
        relative = path.as_posix()

    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        return FileSummary(file_path=relative, file_name=path.name, error=str(e))

    lines = count_lines(content)
    summary = FileSummary(
        file_path=relative,
        file_name=path.name,
        language=path.suffix.lstrip("."),
        lines=lines,
        complexity=complexity_class(lines),
        imports=extract_imports(content)[:10],
        exports=extract_exports(content)[:5],
        functions=extract_functions(content)[:10],
        key_snippets=extract_key_snippets(content, 2),
    )
    if path.suffix in (".jsx", ".tsx"):
        summary.hooks_used = detect_hooks(content)
        summary.component_type = component_type(content)
    return summary


def _summarize_dir(locator: TargetLocator, role: Role, extensions: set[str]) -> list[FileSummary]:
    located = locator.locate(role)
    if located is NOT_FOUND:
        return []
    return [summarize_file(path, locator.root) for path in iter_source_files(located, extensions)]


def _summarize_document(path: Path) -> DocumentSummary | None:
    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.debug("Cannot read %s: %s", path, e)
        return None
    return DocumentSummary(
        file_name=path.name,
        lines=count_lines(content),
        word_count=len(content.split()),
        has_sections="##" in content,
        preview=content[:DOCUMENT_PREVIEW_CHARS],
    )


def summarize_project(locator: TargetLocator) -> CodeSummary:
    """
    Build the judge's view of a project.

    Args:
        locator: Locator for the project.

    Returns:
        CodeSummary of front-end files, back-end files, docs and statistics.
    """
    frontend = FrontendSummary(
        components=_summarize_dir(locator, Role.COMPONENTS_DIR, FRONTEND_EXTENSIONS),
        pages=_summarize_dir(locator, Role.PAGES_DIR, FRONTEND_EXTENSIONS)
        + _summarize_dir(locator, Role.APP_DIR, FRONTEND_EXTENSIONS),
    )
    backend = BackendSummary(
        routes=_summarize_dir(locator, Role.ROUTES_DIR, SOURCE_EXTENSIONS),
        models=_summarize_dir(locator, Role.MODELS_DIR, SOURCE_EXTENSIONS),
        controllers=_summarize_dir(locator, Role.CONTROLLERS_DIR, SOURCE_EXTENSIONS),
        middleware=_summarize_dir(locator, Role.MIDDLEWARE_DIR, SOURCE_EXTENSIONS),
    )

    documentation = []
    for role in (Role.README, Role.PLANNING_DOC):
        located = locator.locate(role)
        if located is not NOT_FOUND:
            document = _summarize_document(located)
            if document is not None:
                documentation.append(document)

    statistics = CodeStatistics()
    for summary in (
        frontend.components + frontend.pages
        + backend.routes + backend.models + backend.controllers + backend.middleware
    ):
        statistics.total_files += 1
        statistics.total_lines += summary.lines
        if summary.language:
            statistics.languages[summary.language] = statistics.languages.get(summary.language, 0) + 1

    logger.info(
        "Summarized %d files (%d lines): %d components, %d pages, %d routes, %d models",
        statistics.total_files,
        statistics.total_lines,
        len(frontend.components),
        len(frontend.pages),
        len(backend.routes),
        len(backend.models),
    )
    return CodeSummary(frontend=frontend, backend=backend, documentation=documentation, statistics=statistics)
