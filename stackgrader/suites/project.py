"""
Project-wide suites: security, TypeScript & testing, performance.
"""

import re

from ..config import FRONTEND_EXTENSIONS, SOURCE_EXTENSIONS
from ..heuristics import (
    HARDCODED_JWT_SECRET,
    any_source_matches,
    find_secrets,
    has_dependency,
    is_test_file,
    iter_source_files,
    read_source,
    sources,
)
from ..history import is_git_repository, run_git
from ..locator import NOT_FOUND, Role
from ..probe import Check, Probe, ProbeContext, items_of, json_body
from ..suite import Suite, TargetKind
from .common import (
    collection_path,
    concurrent_requests,
    created_item,
    frontend_root,
    http_probe,
    package_scripts,
    project_dependencies,
    sample_item,
    session_headers,
    timed,
)

SENSITIVE_FILE_PATTERN = re.compile(r"(^|/)(\.env(\.local|\.production|\.development)?|.*\.pem|.*\.key|id_rsa)$")
ENV_ACCESS = re.compile(r"process\.env\.|os\.environ|os\.getenv\(|import\.meta\.env\.")


def _source_files(context: ProbeContext) -> list[tuple]:
    if "sources" not in context.state:
        context.state["sources"] = [
            (path, text) for path, text in sources(context.locator.root, SOURCE_EXTENSIONS) if not is_test_file(path)
        ]
    return context.state["sources"]


def _any_source(context: ProbeContext, pattern: str | re.Pattern) -> bool:
    regex = re.compile(pattern) if isinstance(pattern, str) else pattern
    return any(regex.search(text) for _, text in _source_files(context))


def _env_files(context: ProbeContext) -> bool:
    root = context.locator.root
    return any(
        (directory / name).exists()
        for directory in (root, root / "backend", root / "server", root / "frontend")
        for name in (".env", ".env.local", ".env.example", ".env.sample")
    )


def _env_ignored(context: ProbeContext) -> Check:
    gitignore = context.path(Role.GITIGNORE)
    patterns = {line.strip() for line in gitignore.read_text(encoding="utf-8", errors="replace").splitlines()}
    return Check.expect(bool(patterns & {".env", ".env*", "*.env", ".env.local", ".env*.local"}), ".env is not gitignored")


def _env_example(context: ProbeContext) -> bool:
    root = context.locator.root
    return any(root.rglob(".env.example")) or any(root.rglob(".env.sample"))


def _no_secrets(context: ProbeContext) -> Check:
    offenders = [path.name for path, text in _source_files(context) if find_secrets(text)]
    return Check.expect(not offenders, f"Possible hardcoded secrets in {', '.join(offenders[:5])}", files=len(offenders))


def _no_sensitive_committed(context: ProbeContext) -> Check:
    if not is_git_repository(context.project_dir):
        return Check.skip("Not a Git repository")
    tracked = (run_git(context.project_dir, "ls-files") or "").splitlines()
    committed = [name for name in tracked if SENSITIVE_FILE_PATTERN.search(name)]
    return Check.expect(not committed, f"Sensitive files committed: {', '.join(committed[:5])}")


def _depends(*names: str):
    return lambda context: has_dependency(project_dependencies(context), *names)


def _no_sql_concatenation(context: ProbeContext) -> bool:
    pattern = re.compile(r"(SELECT|INSERT|UPDATE|DELETE)\s[^\"'`]*[\"'`]\s*\+|f[\"'](SELECT|INSERT|UPDATE|DELETE)\s[^\"']*\{", re.IGNORECASE)
    return not _any_source(context, pattern)


def _safe_inner_html(context: ProbeContext) -> Check:
    risky = [
        path.name
        for path, text in _source_files(context)
        if "dangerouslySetInnerHTML" in text and not re.search(r"sanitize|DOMPurify", text)
    ]
    return Check.expect(not risky, f"Unsanitized dangerouslySetInnerHTML in {', '.join(risky[:5])}")


def _jwt_secret_from_env(context: ProbeContext) -> bool:
    return not _any_source(context, HARDCODED_JWT_SECRET)


SECURITY = Suite(
    name="Security",
    criteria=("criterion_13",),
    probes=(
        Probe("Environment Files Used", _env_files, expectation="No .env file"),
        Probe(".env Is Gitignored", _env_ignored, requires=(Role.GITIGNORE,)),
        Probe(".env.example Provided", _env_example, expectation="No .env.example"),
        Probe("Configuration From Environment", lambda c: _any_source(c, ENV_ACCESS), expectation="Environment variables never read"),
        Probe("No Hardcoded Secrets", _no_secrets),
        Probe("No Sensitive Files Committed", _no_sensitive_committed),
        Probe("Passwords Hashed", _depends("bcrypt", "bcryptjs", "argon2", "passlib", "werkzeug"), expectation="No password hashing library"),
        Probe("Security Headers Library", _depends("helmet", "flask-talisman", "secure"), expectation="Neither helmet nor talisman"),
        Probe("Input Validation Library", _depends("joi", "zod", "yup", "express-validator", "pydantic", "marshmallow"), expectation="No validation library"),
        Probe("CORS Configured", _depends("cors", "flask-cors"), expectation="No CORS library"),
        Probe("No SQL String Concatenation", _no_sql_concatenation, expectation="SQL built by string concatenation"),
        Probe("No Unsafe HTML Injection", _safe_inner_html),
        Probe("JWT Secret Not Hardcoded", _jwt_secret_from_env, expectation="JWT signed with a literal secret"),
    ),
)


# TypeScript & testing

def _ts_files(context: ProbeContext) -> list[tuple]:
    return [(p, t) for p, t in _source_files(context) if p.suffix in (".ts", ".tsx")]


def _test_files(context: ProbeContext) -> list:
    if "tests" not in context.state:
        context.state["tests"] = [
            path for path in iter_source_files(context.locator.root, SOURCE_EXTENSIONS) if is_test_file(path)
        ]
    return context.state["tests"]


def _tests_text(context: ProbeContext) -> str:
    return "\n".join(read_source(path) for path in _test_files(context))


def _typed(context: ProbeContext) -> bool:
    annotation = re.compile(r"\w\s*:\s*(string|number|boolean|[A-Z]\w*)(\[\])?\s*[,)=;]")
    return any(annotation.search(text) for _, text in _ts_files(context))


def _limited_any(context: ProbeContext) -> Check:
    files = _ts_files(context)
    if not files:
        return Check.failed("No TypeScript files")
    uses = sum(len(re.findall(r":\s*any\b", text)) for _, text in files)
    return Check.expect(uses <= len(files), f"{uses} uses of any in {len(files)} files", any_count=uses)


def _test_script(context: ProbeContext) -> Check:
    script = package_scripts(context).get("test", "")
    return Check.expect(bool(script) and "no test specified" not in script, "No usable npm test script")


def _test_cases(context: ProbeContext) -> Check:
    cases = len(re.findall(r"\b(it|test)\(\s*['\"`]|^\s*def test_", _tests_text(context), re.MULTILINE))
    return Check.expect(cases >= 5, f"Only {cases} test cases", test_cases=cases)


def _critical_coverage(context: ProbeContext) -> bool:
    text = _tests_text(context).lower()
    return sum(1 for word in ("auth", "login", "api", "create", "delete", "component", "render") if word in text) >= 2


TYPESCRIPT_TESTING = Suite(
    name="TypeScript & Testing",
    criteria=("criterion_9", "criterion_11"),
    probes=(
        Probe("TypeScript Dependency", _depends("typescript"), expectation="typescript not a dependency"),
        Probe("tsconfig.json Present", lambda c: c.path(Role.TSCONFIG).is_file(), requires=(Role.TSCONFIG,)),
        Probe("TypeScript Source Files", lambda c: bool(_ts_files(c)), expectation="No .ts/.tsx files"),
        Probe("Type Annotations Used", _typed, expectation="No type annotations"),
        Probe("Interfaces Or Type Aliases", lambda c: any(re.search(r"\b(interface|type)\s+[A-Z]\w*", t) for _, t in _ts_files(c)), expectation="No interfaces or type aliases"),
        Probe("Limited Use Of any", _limited_any),
        Probe("Test Files Present", lambda c: bool(_test_files(c)), expectation="No test files"),
        Probe("Test Framework Installed", _depends("jest", "vitest", "mocha", "@testing-library/react", "pytest", "supertest", "cypress", "playwright"), expectation="No test framework"),
        Probe("Meaningful Number Of Tests", _test_cases),
        Probe("Test Script Configured", _test_script),
        Probe("Critical Paths Tested", _critical_coverage, expectation="Tests do not cover auth, API or components"),
        Probe("Tests Use Assertions", lambda c: bool(re.search(r"\bexpect\(|\bassert\b", _tests_text(c))), expectation="No assertions"),
    ),
)


# Performance

def _timed_get(context: ProbeContext, suffix: str = ""):
    created_item(context, "performance")
    path = collection_path(context, "performance")
    if path is None:
        return None, 0.0
    headers = session_headers(context, "performance")
    return timed(lambda: context.http.get(path + suffix, headers=headers))


def _get_fast(context: ProbeContext) -> Check:
    response, elapsed = _timed_get(context)
    if response is None:
        return Check.failed("No collection answered GET with 200")
    return Check.expect(elapsed < 500, f"GET took {elapsed:.0f}ms", elapsed_ms=round(elapsed, 1))


def _post_fast(context: ProbeContext) -> Check:
    path = collection_path(context, "performance")
    if path is None:
        return Check.failed("No collection answered GET with 200")
    headers = session_headers(context, "performance")
    response, elapsed = timed(lambda: context.http.post(path, json=sample_item("Timing"), headers=headers))
    if response.status_code not in (200, 201):
        return Check.failed(f"POST returned {response.status_code}")
    return Check.expect(elapsed < 1000, f"POST took {elapsed:.0f}ms", elapsed_ms=round(elapsed, 1))


def _concurrent_fast(context: ProbeContext) -> Check:
    path = collection_path(context, "performance") or "/"
    headers = session_headers(context, "performance")
    responses, elapsed = timed(lambda: concurrent_requests(lambda: context.http.get(path, headers=headers), 10))
    ok = sum(1 for r in responses if not isinstance(r, Exception) and r.status_code < 500)
    return Check.expect(
        ok == 10 and elapsed < 5000,
        f"{ok}/10 succeeded in {elapsed:.0f}ms",
        elapsed_ms=round(elapsed, 1),
        succeeded=ok,
    )


def _limited_fast(context: ProbeContext) -> Check:
    response, elapsed = _timed_get(context, "?limit=10")
    if response is None:
        return Check.failed("No collection answered GET with 200")
    return Check.expect(elapsed < 200, f"Limited query took {elapsed:.0f}ms", elapsed_ms=round(elapsed, 1))


def _paginated(context: ProbeContext) -> Check:
    path = collection_path(context, "performance")
    if path is None:
        return Check.failed("No collection answered GET with 200")
    headers = session_headers(context, "performance")
    for _ in range(12):
        context.http.post(path, json=sample_item("Pagination"), headers=headers)
    items = items_of(json_body(context.http.get(f"{path}?limit=10&page=1", headers=headers)))
    if items is None:
        return Check.failed("Paginated request did not return a list")
    return Check.expect(len(items) <= 15, f"limit=10 returned {len(items)} items", returned=len(items))


def _frontend_uses(pattern: str):
    regex = re.compile(pattern)
    return lambda context: any_source_matches(frontend_root(context), regex, FRONTEND_EXTENSIONS)


def _build_script(context: ProbeContext) -> bool:
    return "build" in package_scripts(context)


def _env_configuration(context: ProbeContext) -> bool:
    return _env_files(context) or context.locator.locate(Role.DEPLOYMENT_URL) is not NOT_FOUND


PERFORMANCE = Suite(
    name="Performance",
    criteria=("criterion_14",),
    target=TargetKind.APP,
    probes=(
        http_probe("GET Responds Under 500ms", _get_fast),
        http_probe("POST Responds Under 1s", _post_fast),
        http_probe("Handles 10 Concurrent Requests", _concurrent_fast),
        http_probe("Limited Query Under 200ms", _limited_fast),
        http_probe("Pagination Supported", _paginated),
        Probe("Environment Based Configuration", _env_configuration, expectation="No environment configuration"),
        Probe("Optimized Images", _frontend_uses(r"next/image|loading=[\"']lazy[\"']"), expectation="No image optimization"),
        Probe("Memoization", _frontend_uses(r"\buseMemo\b|\buseCallback\b|React\.memo|\bmemo\("), expectation="No memoization"),
        Probe("Lazy Loading", _frontend_uses(r"React\.lazy|\blazy\(|next/dynamic|import\("), expectation="No lazy loading"),
        Probe("Production Build Script", _build_script, expectation="No build script"),
    ),
)
