"""
Shared request shapes and helpers for the HTTP suites.

Every list below is an ordered set of conventional shapes; probes walk them
with ``first_success`` and take the first one the project answers.
"""

import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

import httpx

from ..heuristics import load_manifest
from ..locator import NOT_FOUND, Role
from ..probe import Check, Probe, ProbeContext, find_field, first_success, items_of, json_body
from ..target import HttpTarget

TEST_USER = {
    "email": "testauth@example.com",
    "password": "SecurePassword123!",
    "name": "Test Auth User",
    "username": "testauthuser",
}
WRONG_PASSWORD = "WrongPassword999!"
INVALID_TOKEN = "invalid.token.here"
FRONTEND_ORIGIN = "http://localhost:3000"

REGISTER_PATHS = ["/api/auth/register", "/api/auth/signup", "/api/users/register", "/api/register", "/api/users"]
LOGIN_PATHS = ["/api/auth/login", "/api/auth/signin", "/api/users/login", "/api/login"]
LOGOUT_PATHS = ["/api/auth/logout", "/api/auth/signout", "/api/users/logout", "/api/logout"]
PROFILE_PATHS = ["/api/users/me", "/api/auth/me", "/api/users/profile", "/api/profile", "/api/me"]
PROTECTED_PATHS = PROFILE_PATHS + ["/api/tasks", "/api/posts", "/api/dashboard"]
RESOURCE_PATHS = ["/api/tasks", "/api/posts", "/api/items", "/api/todos", "/api/notes", "/api/products"]
HEALTH_PATHS = ["/api/health", "/health", "/api", "/"]
MISSING_ROUTE = "/api/nonexistent-route-for-grading"
MISSING_RESOURCE = "/api/nonexistent/12345"

TOKEN_FIELDS = ("token", "accessToken", "access_token", "jwt", "idToken")
ID_FIELDS = ("id", "_id", "uuid")
TIMESTAMP_FIELDS = ("createdAt", "created_at", "updatedAt", "updated_at", "timestamp")
CREATED = (200, 201)


def http_probe(name: str, check: Callable[[ProbeContext], Check | bool], expectation: str = "") -> Probe:
    return Probe(name=name, check=check, needs_target=True, expectation=expectation)


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def sample_item(title: str = "Grader test item") -> dict[str, Any]:
    """A payload most task/post/item schemas accept."""
    return {
        "title": title,
        "name": title,
        "description": "Created by the automated grader",
        "content": "Created by the automated grader",
        "completed": False,
        "status": "pending",
        "priority": "medium",
    }


def user_for(tag: str) -> dict[str, str]:
    """A distinct user per suite, so suites do not collide on unique emails."""
    if tag == "auth":
        return dict(TEST_USER)
    return {**TEST_USER, "email": f"grader.{tag}@example.com", "username": f"grader{tag}"}


def register(target: HttpTarget, user: dict[str, str]):
    """First registration endpoint that accepts the user, as a Hit."""
    return first_success(
        REGISTER_PATHS,
        lambda path: target.post(path, json=user),
        lambda response: response.status_code in CREATED,
    )


def login(target: HttpTarget, user: dict[str, str]):
    """First login endpoint that answers 200 with a token, as a Hit."""
    credentials = {"email": user["email"], "password": user["password"], "username": user.get("username")}
    return first_success(
        LOGIN_PATHS,
        lambda path: target.post(path, json=credentials),
        lambda response: response.status_code == 200 and find_field(json_body(response), *TOKEN_FIELDS) is not None,
    )


def obtain_token(context: ProbeContext, tag: str) -> str | None:
    """
    A valid token for the suite's user: from registration, else from login.
    Cached in the suite state.
    """
    if "token" in context.state:
        return context.state["token"]

    user = user_for(tag)
    token = None
    hit = register(context.http, user)
    if hit is not None:
        token = find_field(json_body(hit.result), *TOKEN_FIELDS)
    if token is None:
        hit = login(context.http, user)
        if hit is not None:
            token = find_field(json_body(hit.result), *TOKEN_FIELDS)

    context.state["token"] = token
    return token


def session_headers(context: ProbeContext, tag: str) -> dict[str, str]:
    """Authorization headers when the project issues tokens, else none."""
    token = obtain_token(context, tag)
    return bearer(token) if token else {}


def create_item(context: ProbeContext, tag: str, payload: dict[str, Any] | None = None):
    """
    Create a resource on the first collection that accepts it.

    Returns:
        (collection path, created id or None, response body), or None.
    """
    headers = session_headers(context, tag)
    payload = payload or sample_item()
    hit = first_success(
        RESOURCE_PATHS,
        lambda path: context.http.post(path, json=payload, headers=headers),
        lambda response: response.status_code in CREATED,
    )
    if hit is None:
        return None
    body = json_body(hit.result)
    return hit.candidate, find_field(body, *ID_FIELDS), body


def created_item(context: ProbeContext, tag: str):
    """The suite's shared resource, created on first use."""
    if "item" not in context.state:
        context.state["item"] = create_item(context, tag)
    return context.state["item"]


def collection_path(context: ProbeContext, tag: str) -> str | None:
    """First collection answering GET with 200."""
    if "collection" not in context.state:
        headers = session_headers(context, tag)
        item = context.state.get("item")
        candidates = [item[0]] + RESOURCE_PATHS if item else RESOURCE_PATHS
        hit = first_success(
            candidates,
            lambda path: context.http.get(path, headers=headers),
            lambda response: response.status_code == 200,
        )
        context.state["collection"] = hit.candidate if hit else None
    return context.state["collection"]


def list_items(context: ProbeContext, tag: str) -> list | None:
    path = collection_path(context, tag)
    if path is None:
        return None
    response = context.http.get(path, headers=session_headers(context, tag))
    return items_of(json_body(response))


def timed(call: Callable[[], httpx.Response]) -> tuple[httpx.Response, float]:
    """Run a request and return it with its wall time in milliseconds."""
    started = time.perf_counter()
    response = call()
    return response, (time.perf_counter() - started) * 1000


def concurrent_requests(call: Callable[[], httpx.Response], count: int) -> list[httpx.Response | Exception]:
    """Issue ``count`` requests in parallel and wait for all of them."""

    def one(_: int) -> httpx.Response | Exception:
        try:
            return call()
        except Exception as e:
            return e

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(one, range(count)))


def project_dependencies(context: ProbeContext) -> set[str]:
    """Dependencies declared by every manifest in the project."""
    if "dependencies" not in context.state:
        dependencies: set[str] = set()
        for role in (Role.BACKEND_MANIFEST, Role.FRONTEND_MANIFEST, Role.ROOT_MANIFEST):
            for path in context.locator.locate_all(role):
                dependencies |= load_manifest(path)["dependencies"]
        context.state["dependencies"] = dependencies
    return context.state["dependencies"]


def package_scripts(context: ProbeContext) -> dict[str, str]:
    """npm scripts from every package.json in the project."""
    scripts: dict[str, str] = {}
    for role in (Role.ROOT_MANIFEST, Role.FRONTEND_MANIFEST, Role.BACKEND_MANIFEST):
        for path in context.locator.locate_all(role):
            for name, command in load_manifest(path)["scripts"].items():
                scripts.setdefault(name, command)
    return scripts


def backend_root(context: ProbeContext) -> Path:
    """Directory of the backend entry point, or the project root."""
    for role in (Role.PYTHON_ENTRY, Role.BACKEND_ENTRY):
        located = context.locator.locate(role)
        if located is not NOT_FOUND:
            return located.parent
    return context.locator.root


def frontend_root(context: ProbeContext) -> Path:
    located = context.locator.locate(Role.FRONTEND_DIR)
    return context.locator.root if located is NOT_FOUND else located
