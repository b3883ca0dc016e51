"""
Front-end suites: components, hooks and routing, by static inspection.
"""

import re
from pathlib import Path

from ..config import COMPONENT_EXTENSIONS, FRONTEND_EXTENSIONS
from ..heuristics import component_type, count_lines, has_dependency, is_test_file, iter_source_files, read_source
from ..locator import NOT_FOUND, Role
from ..probe import Probe, ProbeContext
from ..suite import Suite
from .common import frontend_root, project_dependencies

MAX_COMPONENT_LINES = 300


def _components(context: ProbeContext) -> list[tuple[Path, str]]:
    if "components" not in context.state:
        root = context.path(Role.COMPONENTS_DIR)
        context.state["components"] = [
            (path, read_source(path))
            for path in iter_source_files(root, FRONTEND_EXTENSIONS)
            if not is_test_file(path)
        ]
    return context.state["components"]


def _component_files(context: ProbeContext) -> list[tuple[Path, str]]:
    return [(p, t) for p, t in _components(context) if p.suffix in COMPONENT_EXTENSIONS or "<" in t]


def _share(items: list, predicate, threshold: float) -> bool:
    if not items:
        return False
    return sum(1 for item in items if predicate(item)) / len(items) >= threshold


def _organized(context: ProbeContext) -> bool:
    root = context.path(Role.COMPONENTS_DIR)
    subdirs = [p for p in root.iterdir() if p.is_dir()]
    return len(_component_files(context)) >= 3 or len(subdirs) >= 2


def _naming(context: ProbeContext) -> bool:
    named = [p for p, _ in _component_files(context) if p.stem.lower() != "index"]
    return _share(named, lambda p: p.stem[:1].isupper(), 0.7)


def _modular(context: ProbeContext) -> bool:
    # One exported component per file, roughly
    return _share(
        _component_files(context),
        lambda item: len(re.findall(r"export\s+default", item[1])) <= 1,
        0.9,
    )


def _functional(context: ProbeContext) -> bool:
    return _share(_component_files(context), lambda item: component_type(item[1]) == "functional", 0.8)


def _exports(context: ProbeContext) -> bool:
    return _share(_component_files(context), lambda item: "export" in item[1], 0.8)


def _reusable(context: ProbeContext) -> bool:
    root = context.path(Role.COMPONENTS_DIR)
    shared_dirs = {"shared", "common", "ui", "elements"}
    if any(p.is_dir() and p.name.lower() in shared_dirs for p in root.rglob("*")):
        return True
    reusable = {"button", "input", "modal", "card", "spinner", "loader", "form", "select"}
    return any(p.stem.lower() in reusable for p, _ in _component_files(context))


def _props(context: ProbeContext) -> bool:
    pattern = re.compile(r"\(\s*\{[^}]*\}\s*(:\s*[\w.<>]+)?\s*\)\s*(=>|\{)|props\.")
    return any(pattern.search(text) for _, text in _component_files(context))


def _semantic_html(context: ProbeContext) -> bool:
    pattern = re.compile(r"<(header|nav|main|section|article|footer|aside|form|button|label)[\s>]")
    return any(pattern.search(text) for _, text in _component_files(context))


def _sized(context: ProbeContext) -> bool:
    files = _component_files(context)
    return bool(files) and all(count_lines(text) < MAX_COMPONENT_LINES for _, text in files)


def _styled(context: ProbeContext) -> bool:
    pattern = re.compile(r"className=|styled\.|import\s+[^;]*\.(s?css|module\.css)['\"]|style=\{\{|sx=\{")
    return any(pattern.search(text) for _, text in _component_files(context))


def _component_probe(name: str, check, expectation: str) -> Probe:
    return Probe(name=name, check=check, requires=(Role.COMPONENTS_DIR,), expectation=expectation)


COMPONENTS = Suite(
    name="Components",
    criteria=("criterion_2",),
    probes=(
        _component_probe("Organized Component Structure", _organized, "Fewer than 3 components"),
        _component_probe("Component Naming Conventions", _naming, "Component files are not PascalCase"),
        _component_probe("Components Are Modular", _modular, "Files export several default components"),
        _component_probe("Functional Components", _functional, "Mostly class components"),
        _component_probe("Components Export", _exports, "Components without exports"),
        _component_probe("Reusable UI Components", _reusable, "No shared UI components"),
        _component_probe("Components Accept Props", _props, "No component takes props"),
        _component_probe("Semantic HTML", _semantic_html, "No semantic HTML elements"),
        _component_probe("Components Reasonably Sized", _sized, f"A component exceeds {MAX_COMPONENT_LINES} lines"),
        _component_probe("Components Styled", _styled, "No styling found"),
    ),
)


# Hooks

def _frontend_text(context: ProbeContext) -> str:
    if "frontend_text" not in context.state:
        root = frontend_root(context)
        context.state["frontend_text"] = "\n".join(
            read_source(p) for p in iter_source_files(root, FRONTEND_EXTENSIONS) if not is_test_file(p)
        )
    return context.state["frontend_text"]


def _uses(pattern: str):
    regex = re.compile(pattern)
    return lambda context: bool(regex.search(_frontend_text(context)))


def _effect_dependencies(context: ProbeContext) -> bool:
    text = _frontend_text(context)
    effects = len(re.findall(r"useEffect\(", text))
    with_deps = len(re.findall(r"\}\s*,\s*\[[^\]]*\]\s*\)", text))
    return effects > 0 and with_deps >= effects / 2


def _effect_cleanup(context: ProbeContext) -> bool:
    return bool(re.search(r"useEffect\([\s\S]{0,800}?return\s*\(\s*\)\s*=>|return\s+function\s+cleanup", _frontend_text(context)))


def _hooks_top_level(context: ProbeContext) -> bool:
    text = _frontend_text(context)
    if not re.search(r"\buse[A-Z]\w*\(", text):
        return False
    conditional = re.compile(r"^\s*if\s*\(.*\)\s*\{?\s*(const|let)?\s*[\w\[\], ]*=?\s*use[A-Z]\w*\(", re.MULTILINE)
    return not conditional.search(text)


def _state_library(context: ProbeContext) -> bool:
    if has_dependency(project_dependencies(context), "redux", "@reduxjs/toolkit", "zustand", "jotai", "recoil", "mobx"):
        return True
    return "useReducer" in _frontend_text(context)


HOOKS = Suite(
    name="Hooks",
    criteria=("criterion_2",),
    probes=(
        Probe("useState For State", _uses(r"\buseState\b"), expectation="useState not used"),
        Probe("useState Imported", _uses(r"import\s+(\w+\s*,\s*)?\{[^}]*\buseState\b[^}]*\}\s*from\s*['\"]react['\"]|React\.useState"), expectation="useState never imported from react"),
        Probe("useEffect For Side Effects", _uses(r"\buseEffect\b"), expectation="useEffect not used"),
        Probe("useEffect Dependency Arrays", _effect_dependencies, expectation="Effects without dependency arrays"),
        Probe("useEffect Cleanup", _effect_cleanup, expectation="No effect cleanup functions"),
        Probe("Context For Global State", _uses(r"\bcreateContext\(|\buseContext\b"), expectation="No React context"),
        Probe("Custom Hooks", _uses(r"(function|const)\s+use[A-Z]\w*"), expectation="No custom hooks"),
        Probe("Memoization Hooks", _uses(r"\buseCallback\b|\buseMemo\b"), expectation="No useCallback/useMemo"),
        Probe("useRef Usage", _uses(r"\buseRef\b"), expectation="useRef not used"),
        Probe("State Management Library Or Reducer", _state_library, expectation="No reducer or state library"),
        Probe("Hooks Called At Top Level", _hooks_top_level, expectation="Hooks called conditionally"),
    ),
)


# Routing

def _route_dirs(context: ProbeContext) -> list[Path]:
    return [
        located
        for located in (context.locator.locate(Role.PAGES_DIR), context.locator.locate(Role.APP_DIR))
        if located is not NOT_FOUND
    ]


def _page_files(context: ProbeContext) -> list[Path]:
    if "pages" not in context.state:
        pages = []
        for root in _route_dirs(context):
            for path in iter_source_files(root, FRONTEND_EXTENSIONS):
                if is_test_file(path) or "api" in path.relative_to(root).parts:
                    continue
                if root.name == "app" and path.stem not in ("page", "layout"):
                    continue
                pages.append(path)
        context.state["pages"] = pages
    return context.state["pages"]


def _router_framework(context: ProbeContext) -> bool:
    return has_dependency(project_dependencies(context), "next", "react-router-dom", "react-router", "@tanstack/react-router")


def _has_route_dir(context: ProbeContext) -> bool:
    return bool(_route_dirs(context))


def _multiple_pages(context: ProbeContext) -> bool:
    return len([p for p in _page_files(context) if p.stem != "layout" and not p.stem.startswith("_")]) >= 2


def _home_page(context: ProbeContext) -> bool:
    return any(
        (root / f"{stem}{ext}").exists()
        for root in _route_dirs(context)
        for stem in ("index", "page")
        for ext in FRONTEND_EXTENSIONS
    )


def _default_exports(context: ProbeContext) -> bool:
    pages = _page_files(context)
    return bool(pages) and all("export default" in read_source(p) for p in pages)


def _dynamic_routes(context: ProbeContext) -> bool:
    return any(
        "[" in part
        for root in _route_dirs(context)
        for path in iter_source_files(root, FRONTEND_EXTENSIONS)
        for part in path.relative_to(root).parts
    )


def _layouts(context: ProbeContext) -> bool:
    return any(p.stem in ("_app", "layout") for p in _page_files(context))


def _protected_pages(context: ProbeContext) -> bool:
    pattern = r"ProtectedRoute|useAuth\(|isAuthenticated|router\.(push|replace)\(['\"]/login|<Navigate\s+to=['\"]/login"
    return bool(re.search(pattern, _frontend_text(context)))


ROUTING = Suite(
    name="Routing",
    criteria=("criterion_2",),
    probes=(
        Probe("Routing Framework", _router_framework, expectation="Neither Next.js nor a router dependency"),
        Probe("Pages Or App Directory", _has_route_dir, expectation="No pages/ or app/ directory"),
        Probe("Multiple Page Routes", _multiple_pages, expectation="Fewer than 2 pages"),
        Probe("Home Page Exists", _home_page, expectation="No index/page file"),
        Probe("Pages Export Default Components", _default_exports, expectation="Pages without default export"),
        Probe("Dynamic Routes", _dynamic_routes, expectation="No [param] routes"),
        Probe("Link Navigation", _uses(r"next/link|<Link\b"), expectation="No Link components"),
        Probe("Programmatic Navigation", _uses(r"\buseRouter\b|\buseNavigate\b"), expectation="No useRouter/useNavigate"),
        Probe("Global Layout", _layouts, expectation="No _app or layout file"),
        Probe("Protected Pages Check Auth", _protected_pages, expectation="No client-side auth guard"),
    ),
)
