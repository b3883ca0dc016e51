"""
Approximate structural classification of source text.

Everything here is regex and substring matching over file contents, with no
parser. Results are plain booleans, lists and counts; scoring never looks
at these helpers directly, only at the probe outcomes built on them.
"""

import json
import logging
import os
import re
import tomllib
from collections.abc import Iterable, Iterator
from pathlib import Path

from .config import MAX_SOURCE_FILE_BYTES, SKIPPED_DIRS, SOURCE_EXTENSIONS

logger = logging.getLogger(__name__)

REACT_HOOKS = [
    "useState",
    "useEffect",
    "useContext",
    "useReducer",
    "useCallback",
    "useMemo",
    "useRef",
    "useRouter",
    "useParams",
]

EXPORT_PATTERNS = [
    re.compile(r"export\s+default\s+(\w+)"),
    re.compile(r"export\s+{\s*([^}]+?)\s*}"),
    re.compile(r"export\s+const\s+(\w+)"),
    re.compile(r"export\s+function\s+(\w+)"),
    re.compile(r"module\.exports\s*=\s*(\w+)"),
]

FUNCTION_PATTERNS = [
    re.compile(r"function\s+(\w+)\s*\("),
    re.compile(r"const\s+(\w+)\s*=\s*(?:async\s*)?\([^)]*\)\s*=>"),
    re.compile(r"(\w+)\s*:\s*function\s*\("),
    re.compile(r"^\s*(?:async\s+)?def\s+(\w+)\s*\(", re.MULTILINE),
]

# (pattern, lines of context after the match)
SNIPPET_PATTERNS = [
    (re.compile(r"export\s+default"), 5),
    (re.compile(r"useState|useEffect"), 3),
    (re.compile(r"router\.(get|post|put|patch|delete)|@\w+\.(route|get|post|put|delete)"), 4),
    (re.compile(r"async\s+function|async\s+def"), 4),
    (re.compile(r"\.find\(|\.create\(|\.save\(|session\.(add|query)\("), 3),
]

# Model-file schema traits, Mongoose and Python ORMs alike
SCHEMA_TRAIT_PATTERNS: dict[str, re.Pattern] = {
    "required": re.compile(r"required\s*:\s*(true|\[)|nullable\s*=\s*False|allowNull\s*:\s*false"),
    "validation": re.compile(
        r"(minlength|maxlength|minLength|maxLength|match|enum|validate|min|max)\s*:|"
        r"@validates|Field\(.*(min_length|max_length|ge|le|gt|lt|pattern)\s*="
    ),
    "unique": re.compile(r"unique\s*[:=]\s*(true|True)"),
    "index": re.compile(r"index\s*[:=]\s*(true|True)|\.index\(|Index\("),
    "timestamps": re.compile(r"timestamps\s*:\s*true|createdAt|created_at|updated_at"),
    "reference": re.compile(r"ref\s*:\s*['\"]|ObjectId|ForeignKey\(|relationship\("),
    "default": re.compile(r"default\s*[:=]"),
}

SECRET_PATTERNS = [
    re.compile(r"api[_-]?key\s*[:=]\s*[\"'][a-zA-Z0-9_\-]{20,}[\"']", re.IGNORECASE),
    re.compile(r"secret\s*[:=]\s*[\"'][a-zA-Z0-9_\-]{20,}[\"']", re.IGNORECASE),
    re.compile(r"token\s*[:=]\s*[\"'][a-zA-Z0-9_\-]{20,}[\"']", re.IGNORECASE),
    re.compile(r"password\s*[:=]\s*[\"'][^\"']{8,}[\"']", re.IGNORECASE),
]

HARDCODED_JWT_SECRET = re.compile(r"jwt\.(sign|encode)\([^)]*,\s*[\"'][^\"']+[\"']")

TEST_FILE_PATTERN = re.compile(r"(\.test\.|\.spec\.|(^|/)__tests__/|(^|/)test_[^/]+\.py$|_test\.py$)")


def iter_source_files(
    root: Path,
    extensions: Iterable[str] = SOURCE_EXTENSIONS,
    skip_dirs: Iterable[str] = SKIPPED_DIRS,
) -> Iterator[Path]:
    """
    Walk ``root`` yielding source files, pruning dependency and build dirs.

    Args:
        root: Directory to walk.
        extensions: File suffixes to keep.
        skip_dirs: Directory names never descended into.

    Yields:
        Paths in sorted walk order.
    """
    extensions = set(extensions)
    skip_dirs = set(skip_dirs)
    if not root.is_dir():
        return
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in skip_dirs)
        for filename in sorted(filenames):
            path = Path(dirpath) / filename
            if path.suffix in extensions:
                yield path


def read_source(path: Path) -> str:
    """File text, or an empty string if the file is unreadable or too large."""
    try:
        if path.stat().st_size > MAX_SOURCE_FILE_BYTES:
            return ""
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.debug("Cannot read %s: %s", path, e)
        return ""


def sources(root: Path, extensions: Iterable[str] = SOURCE_EXTENSIONS) -> Iterator[tuple[Path, str]]:
    for path in iter_source_files(root, extensions):
        yield path, read_source(path)


def any_source_matches(root: Path, pattern: str | re.Pattern, extensions: Iterable[str] = SOURCE_EXTENSIONS) -> bool:
    regex = re.compile(pattern) if isinstance(pattern, str) else pattern
    return any(regex.search(text) for _, text in sources(root, extensions))


def files_matching(root: Path, pattern: str | re.Pattern, extensions: Iterable[str] = SOURCE_EXTENSIONS) -> list[Path]:
    regex = re.compile(pattern) if isinstance(pattern, str) else pattern
    return [path for path, text in sources(root, extensions) if regex.search(text)]


def extract_imports(content: str) -> list[str]:
    imports = []
    for line in content.splitlines():
        stripped = line.strip()
        if stripped.startswith(("import ", "from ")) or "require(" in stripped:
            imports.append(stripped)
    return imports


def extract_exports(content: str) -> list[str]:
    exports = []
    for pattern in EXPORT_PATTERNS:
        exports.extend(m.group(1).strip() for m in pattern.finditer(content))
    return exports


def extract_functions(content: str) -> list[str]:
    functions: list[str] = []
    for pattern in FUNCTION_PATTERNS:
        for match in pattern.finditer(content):
            if match.group(1) not in functions:
                functions.append(match.group(1))
    return functions


def detect_hooks(content: str) -> list[str]:
    return [hook for hook in REACT_HOOKS if hook in content]


def complexity_class(line_count: int) -> str:
    if line_count > 200:
        return "high"
    if line_count > 100:
        return "medium"
    return "low"


def extract_key_snippets(content: str, max_snippets: int = 2) -> list[str]:
    """
    Short excerpts around lines that look important (default exports, hooks,
    route handlers, async functions, data access).
    """
    snippets: list[str] = []
    lines = content.splitlines()
    for i, line in enumerate(lines):
        if len(snippets) >= max_snippets:
            break
        for pattern, context in SNIPPET_PATTERNS:
            if pattern.search(line):
                snippet = "\n".join(lines[max(0, i - 1) : i + context]).strip()
                if len(snippet) > 20 and snippet not in snippets:
                    snippets.append(snippet)
                break
    return snippets


def component_type(content: str) -> str:
    return "class" if re.search(r"class\s+\w+\s+extends\s+(React\.)?(Pure)?Component", content) else "functional"


def has_jsx(content: str) -> bool:
    return "return (" in content or "return(" in content or bool(re.search(r"<[A-Z]\w*[\s/>]", content))


def schema_traits(content: str) -> set[str]:
    """Schema traits present in a model file (required, unique, index, ...)."""
    return {trait for trait, pattern in SCHEMA_TRAIT_PATTERNS.items() if pattern.search(content)}


def find_secrets(content: str) -> list[str]:
    """Lines that look like hardcoded credentials."""
    hits = []
    for line in content.splitlines():
        if "process.env" in line or "os.environ" in line or "getenv" in line:
            continue
        if any(pattern.search(line) for pattern in SECRET_PATTERNS):
            hits.append(line.strip()[:120])
    return hits


def is_test_file(path: Path) -> bool:
    return bool(TEST_FILE_PATTERN.search(path.as_posix()))


def load_manifest(path: Path) -> dict:
    """
    Parse a dependency manifest into ``{"dependencies": set, "scripts": dict}``.

    Supports package.json, requirements*.txt and pyproject.toml. Unparseable
    manifests yield empty results.
    """
    result: dict = {"dependencies": set(), "scripts": {}}
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        logger.debug("Cannot read manifest %s: %s", path, e)
        return result

    if path.name == "package.json":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.debug("Invalid package.json %s: %s", path, e)
            return result
        for section in ("dependencies", "devDependencies", "peerDependencies"):
            result["dependencies"].update((data.get(section) or {}).keys())
        result["scripts"] = data.get("scripts") or {}
    elif path.suffix == ".txt":
        for line in text.splitlines():
            match = re.match(r"\s*([A-Za-z0-9_.\-]+)", line)
            if match and not line.strip().startswith(("#", "-")):
                result["dependencies"].add(match.group(1).lower())
    elif path.suffix == ".toml":
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as e:
            logger.debug("Invalid pyproject %s: %s", path, e)
            return result
        for spec in data.get("project", {}).get("dependencies", []):
            match = re.match(r"\s*([A-Za-z0-9_.\-]+)", spec)
            if match:
                result["dependencies"].add(match.group(1).lower())
    return result


def normalize_dependency(name: str) -> str:
    return name.lower().replace("_", "-")


def has_dependency(dependencies: set[str], *names: str) -> bool:
    normalized = {normalize_dependency(d) for d in dependencies}
    return any(normalize_dependency(n) in normalized for n in names)


def count_lines(content: str) -> int:
    return len(content.splitlines())
