"""
Back-end suites: API endpoints, authentication, database, middleware and
error handling.
"""

import re

from ..heuristics import (
    HARDCODED_JWT_SECRET,
    any_source_matches,
    has_dependency,
    iter_source_files,
    read_source,
    schema_traits,
)
from ..locator import Role
from ..probe import Check, Probe, ProbeContext, find_field, first_success, has_error_message, is_json, json_body
from ..suite import Suite, TargetKind
from .common import (
    FRONTEND_ORIGIN,
    HEALTH_PATHS,
    ID_FIELDS,
    INVALID_TOKEN,
    LOGIN_PATHS,
    LOGOUT_PATHS,
    MISSING_RESOURCE,
    MISSING_ROUTE,
    PROTECTED_PATHS,
    REGISTER_PATHS,
    RESOURCE_PATHS,
    TOKEN_FIELDS,
    WRONG_PASSWORD,
    backend_root,
    bearer,
    collection_path,
    concurrent_requests,
    create_item,
    created_item,
    http_probe,
    list_items,
    project_dependencies,
    register,
    sample_item,
    session_headers,
    user_for,
)


# API endpoints

API_TAG = "api"


def _health_check(context: ProbeContext) -> Check:
    hit = first_success(HEALTH_PATHS, context.http.get, lambda r: r.status_code < 500)
    if hit is None:
        return Check.failed("No health or root endpoint answered without a server error")
    return Check.ok(path=hit.candidate)


def _post_creates(context: ProbeContext) -> Check:
    item = created_item(context, API_TAG)
    if item is None:
        return Check.failed(f"No collection among {', '.join(RESOURCE_PATHS)} accepted a POST")
    path, item_id, _ = item
    return Check.ok(path=path, has_id=item_id is not None)


def _get_lists(context: ProbeContext) -> Check:
    created_item(context, API_TAG)
    items = list_items(context, API_TAG)
    return Check.expect(items is not None, "No collection returned a list on GET")


def _get_by_id(context: ProbeContext) -> Check:
    item = created_item(context, API_TAG)
    if item is None or item[1] is None:
        return Check.failed("No resource with an id was created")
    path, item_id, _ = item
    response = context.http.get(f"{path}/{item_id}", headers=session_headers(context, API_TAG))
    return Check.expect(response.status_code == 200, f"GET {path}/<id> returned {response.status_code}")


def _update(context: ProbeContext) -> Check:
    item = created_item(context, API_TAG)
    if item is None or item[1] is None:
        return Check.failed("No resource with an id was created")
    path, item_id, _ = item
    headers = session_headers(context, API_TAG)
    update = sample_item("Grader updated item")
    hit = first_success(
        ["PUT", "PATCH"],
        lambda method: context.http.request(method, f"{path}/{item_id}", json=update, headers=headers),
        lambda r: r.status_code == 200,
    )
    return Check.expect(hit is not None, "Neither PUT nor PATCH updated the resource")


def _delete(context: ProbeContext) -> Check:
    item = create_item(context, API_TAG, sample_item("Grader item to delete"))
    if item is None or item[1] is None:
        return Check.failed("No resource with an id was created")
    path, item_id, _ = item
    response = context.http.delete(f"{path}/{item_id}", headers=session_headers(context, API_TAG))
    return Check.expect(response.status_code in (200, 202, 204), f"DELETE returned {response.status_code}")


def _missing_resource_404(context: ProbeContext) -> bool:
    return context.http.get(MISSING_RESOURCE).status_code == 404


def _json_responses(context: ProbeContext) -> Check:
    hit = first_success(HEALTH_PATHS[:3] + RESOURCE_PATHS, context.http.get, is_json)
    return Check.expect(hit is not None, "No endpoint answered with application/json")


def _structured_errors(context: ProbeContext) -> bool:
    return has_error_message(context.http.get(MISSING_RESOURCE))


API_ENDPOINTS = Suite(
    name="API Endpoints",
    criteria=("criterion_3",),
    target=TargetKind.APP,
    probes=(
        http_probe("Health Check Endpoint", _health_check),
        http_probe("POST Creates Resource", _post_creates),
        http_probe("GET Lists Resources", _get_lists),
        http_probe("GET By ID Returns Resource", _get_by_id),
        http_probe("PUT/PATCH Updates Resource", _update),
        http_probe("DELETE Removes Resource", _delete),
        http_probe("Unknown Resource Returns 404", _missing_resource_404, "Expected 404 for an unknown resource"),
        http_probe("Responses Are JSON", _json_responses),
        http_probe("Structured Error Responses", _structured_errors, "Error body has no error/message field"),
    ),
)


# Authentication

AUTH_TAG = "auth"


def _registration(context: ProbeContext) -> Check:
    user = user_for(AUTH_TAG)
    hit = register(context.http, user)
    if hit is None:
        return Check.failed("No registration endpoint accepted a new user")
    body = json_body(hit.result)
    context.state["register_path"] = hit.candidate
    context.state["register_text"] = hit.result.text
    token = find_field(body, *TOKEN_FIELDS)
    if token:
        context.state["token"] = token
    return Check.ok(path=hit.candidate)


def _duplicate_rejected(context: ProbeContext) -> Check:
    path = context.state.get("register_path")
    if path is None:
        return Check.failed("Registration did not succeed")
    response = context.http.post(path, json=user_for(AUTH_TAG))
    return Check.expect(400 <= response.status_code < 500, f"Duplicate registration returned {response.status_code}")


def _password_not_echoed(context: ProbeContext) -> Check:
    text = context.state.get("register_text")
    if text is None:
        return Check.failed("Registration did not succeed")
    return Check.expect(user_for(AUTH_TAG)["password"] not in text, "Registration response contains the password")


def _login(context: ProbeContext) -> Check:
    user = user_for(AUTH_TAG)
    credentials = {"email": user["email"], "password": user["password"], "username": user["username"]}
    hit = first_success(LOGIN_PATHS, lambda p: context.http.post(p, json=credentials), lambda r: r.status_code == 200)
    if hit is None:
        return Check.failed("No login endpoint accepted valid credentials")
    context.state["login_path"] = hit.candidate
    token = find_field(json_body(hit.result), *TOKEN_FIELDS)
    if token:
        context.state["token"] = token
    return Check.expect(token is not None, "Login response carries no token")


def _jwt_token(context: ProbeContext) -> Check:
    token = context.state.get("token")
    if not token:
        return Check.failed("No token was issued")
    return Check.expect(isinstance(token, str) and len(token.split(".")) == 3, "Token is not a JWT")


def _invalid_credentials(context: ProbeContext) -> Check:
    user = user_for(AUTH_TAG)
    paths = [context.state["login_path"]] if "login_path" in context.state else LOGIN_PATHS
    credentials = {"email": user["email"], "password": WRONG_PASSWORD, "username": user["username"]}
    hit = first_success(
        paths,
        lambda p: context.http.post(p, json=credentials),
        lambda r: r.status_code in (400, 401, 403),
    )
    return Check.expect(hit is not None, "Wrong password was not rejected with 400/401")


def _protected_require_auth(context: ProbeContext) -> Check:
    hit = first_success(PROTECTED_PATHS, context.http.get, lambda r: r.status_code in (401, 403))
    if hit is None:
        return Check.failed("No protected route rejected an unauthenticated request")
    return Check.ok(path=hit.candidate)


def _protected_accept_token(context: ProbeContext) -> Check:
    token = context.state.get("token")
    if not token:
        return Check.failed("No token was issued")
    hit = first_success(
        PROTECTED_PATHS,
        lambda p: context.http.get(p, headers=bearer(token)),
        lambda r: r.status_code == 200,
    )
    return Check.expect(hit is not None, "No protected route accepted a valid token")


def _protected_reject_invalid(context: ProbeContext) -> Check:
    hit = first_success(
        PROTECTED_PATHS,
        lambda p: context.http.get(p, headers=bearer(INVALID_TOKEN)),
        lambda r: r.status_code in (401, 403),
    )
    return Check.expect(hit is not None, "An invalid token was not rejected")


def _logout_exists(context: ProbeContext) -> Check:
    headers = bearer(context.state["token"]) if context.state.get("token") else {}
    hit = first_success(
        LOGOUT_PATHS,
        lambda p: context.http.post(p, headers=headers),
        lambda r: r.status_code != 404 and r.status_code < 500,
    )
    return Check.expect(hit is not None, "No logout endpoint found")


def _weak_password(context: ProbeContext) -> Check:
    user = {**user_for("weak"), "password": "123"}
    paths = [context.state["register_path"]] if "register_path" in context.state else REGISTER_PATHS
    hit = first_success(
        paths,
        lambda p: context.http.post(p, json=user),
        lambda r: 400 <= r.status_code < 500,
    )
    return Check.expect(hit is not None, "A 3-character password was accepted")


def _jwt_secret_from_env(context: ProbeContext) -> Check:
    root = backend_root(context)
    signs = any_source_matches(root, r"jwt\.(sign|encode)\(|create_access_token\(")
    if not signs:
        return Check.skip("No token signing code found")
    hardcoded = any_source_matches(root, HARDCODED_JWT_SECRET)
    return Check.expect(not hardcoded, "JWT secret is a string literal")


AUTHENTICATION = Suite(
    name="Authentication",
    criteria=("criterion_5",),
    target=TargetKind.APP,
    probes=(
        http_probe("User Registration", _registration),
        http_probe("Duplicate Registration Rejected", _duplicate_rejected),
        http_probe("Password Not Returned", _password_not_echoed),
        http_probe("Login Authenticates Valid User", _login),
        http_probe("Login Returns JWT", _jwt_token),
        http_probe("Login Rejects Invalid Credentials", _invalid_credentials),
        http_probe("Protected Routes Require Auth", _protected_require_auth),
        http_probe("Protected Routes Accept Valid Token", _protected_accept_token),
        http_probe("Protected Routes Reject Invalid Token", _protected_reject_invalid),
        http_probe("Logout Endpoint Exists", _logout_exists),
        http_probe("Weak Password Rejected", _weak_password),
        Probe("JWT Secret Not Hardcoded", _jwt_secret_from_env),
    ),
)


# Database

DB_TAG = "db"
MODEL_DEFINITION = re.compile(
    r"new\s+(mongoose\.)?Schema\(|mongoose\.model\(|sequelize\.define\(|"
    r"class\s+\w+\((db\.Model|Base|Model|SQLModel|BaseModel|Document)\)|@Entity\("
)
DB_CONNECTION = re.compile(
    r"mongoose\.connect\(|MongoClient|MONGODB_URI|DATABASE_URL|SQLALCHEMY_DATABASE_URI|"
    r"create_engine\(|sqlite3\.connect\(|new\s+Sequelize\(|new\s+PrismaClient\(|new\s+Pool\("
)


def _model_texts(context: ProbeContext) -> list[str]:
    if "model_texts" not in context.state:
        models_dir = context.path(Role.MODELS_DIR)
        context.state["model_texts"] = [read_source(p) for p in iter_source_files(models_dir)]
    return context.state["model_texts"]


def _traits(context: ProbeContext) -> set[str]:
    if "traits" not in context.state:
        traits: set[str] = set()
        for text in _model_texts(context):
            traits |= schema_traits(text)
        context.state["traits"] = traits
    return context.state["traits"]


def _models_defined(context: ProbeContext) -> bool:
    return len(_model_texts(context)) > 0


def _schema_defined(context: ProbeContext) -> bool:
    return any(MODEL_DEFINITION.search(text) for text in _model_texts(context))


def _trait_probe(trait: str, name: str) -> Probe:
    return Probe(
        name=name,
        check=lambda context: trait in _traits(context),
        requires=(Role.MODELS_DIR,),
        expectation=f"No model declares {trait} fields",
    )


def _connection_configured(context: ProbeContext) -> bool:
    return any_source_matches(backend_root(context), DB_CONNECTION)


def _db_create(context: ProbeContext) -> Check:
    item = created_item(context, DB_TAG)
    return Check.expect(item is not None, "Creating a record failed")


def _db_read(context: ProbeContext) -> Check:
    item = created_item(context, DB_TAG)
    if item is None:
        return Check.failed("No record was created")
    items = list_items(context, DB_TAG)
    if not items:
        return Check.failed("The collection returned no records after a create")
    item_id = item[1]
    if item_id is None:
        return Check.ok()
    ids = {str(find_field(entry, *ID_FIELDS)) for entry in items if isinstance(entry, dict)}
    return Check.expect(str(item_id) in ids, "Created record is missing from the list")


def _db_update(context: ProbeContext) -> Check:
    item = created_item(context, DB_TAG)
    if item is None or item[1] is None:
        return Check.failed("No record with an id was created")
    path, item_id, _ = item
    headers = session_headers(context, DB_TAG)
    title = "Grader persisted update"
    hit = first_success(
        ["PUT", "PATCH"],
        lambda method: context.http.request(method, f"{path}/{item_id}", json=sample_item(title), headers=headers),
        lambda r: r.status_code == 200,
    )
    if hit is None:
        return Check.failed("Update was rejected")
    stored = context.http.get(f"{path}/{item_id}", headers=headers)
    return Check.expect(title in stored.text, "Updated value was not persisted")


def _db_delete(context: ProbeContext) -> Check:
    item = create_item(context, DB_TAG, sample_item("Grader record to delete"))
    if item is None or item[1] is None:
        return Check.failed("No record with an id was created")
    path, item_id, _ = item
    headers = session_headers(context, DB_TAG)
    context.http.delete(f"{path}/{item_id}", headers=headers)
    gone = context.http.get(f"{path}/{item_id}", headers=headers)
    return Check.expect(gone.status_code == 404, f"Deleted record still answers {gone.status_code}")


DATABASE = Suite(
    name="Database",
    criteria=("criterion_4",),
    target=TargetKind.APP,
    probes=(
        Probe("Database Connection Configured", _connection_configured, expectation="No database connection code found"),
        Probe("Data Models Defined", _models_defined, requires=(Role.MODELS_DIR,), expectation="Models directory is empty"),
        Probe("Models Define Schemas", _schema_defined, requires=(Role.MODELS_DIR,), expectation="No schema definition found"),
        _trait_probe("required", "Schema Marks Required Fields"),
        _trait_probe("validation", "Schema Validates Data"),
        _trait_probe("reference", "Models Use References"),
        _trait_probe("index", "Models Declare Indexes"),
        _trait_probe("unique", "Models Enforce Unique Constraints"),
        _trait_probe("default", "Models Declare Default Values"),
        _trait_probe("timestamps", "Models Use Timestamps"),
        http_probe("CREATE Persists Record", _db_create),
        http_probe("READ Returns Stored Records", _db_read),
        http_probe("UPDATE Persists Changes", _db_update),
        http_probe("DELETE Removes Record", _db_delete),
    ),
)


# Middleware

MW_TAG = "middleware"
SECURITY_HEADERS = ["x-content-type-options", "x-frame-options", "strict-transport-security", "x-xss-protection"]
LOGGING_LIBRARIES = ["morgan", "winston", "pino", "bunyan", "loguru", "structlog"]
RATE_LIMIT_LIBRARIES = ["express-rate-limit", "rate-limiter-flexible", "express-slow-down", "flask-limiter", "slowapi"]


def _accepts_json(context: ProbeContext) -> Check:
    headers = session_headers(context, MW_TAG)
    hit = first_success(
        RESOURCE_PATHS,
        lambda p: context.http.post(p, json=sample_item(), headers=headers),
        lambda r: r.status_code < 500 and r.status_code != 404,
    )
    return Check.expect(hit is not None, "No collection accepted a JSON body")


def _cors(context: ProbeContext) -> Check:
    headers = {"Origin": FRONTEND_ORIGIN, "Access-Control-Request-Method": "POST"}
    hit = first_success(
        ["/api/health"] + RESOURCE_PATHS[:2] + ["/"],
        lambda p: context.http.options(p, headers=headers),
        lambda r: "access-control-allow-origin" in r.headers or "access-control-allow-methods" in r.headers,
    )
    return Check.expect(hit is not None, "Preflight responses carry no CORS headers")


def _auth_middleware(context: ProbeContext) -> Check:
    anonymous = first_success(PROTECTED_PATHS, context.http.get, lambda r: r.status_code in (401, 403))
    if anonymous is None:
        return Check.failed("No route requires authentication")
    forged = context.http.get(anonymous.candidate, headers=bearer(INVALID_TOKEN))
    return Check.expect(forged.status_code in (401, 403), "Auth middleware accepted an invalid token")


def _global_error_handler(context: ProbeContext) -> Check:
    response = context.http.get(MISSING_ROUTE)
    return Check.expect(
        response.status_code == 404 and is_json(response),
        f"Unknown route gave {response.status_code} {response.headers.get('content-type', '')}",
    )


def _validates_input(context: ProbeContext) -> Check:
    headers = session_headers(context, MW_TAG)
    path = collection_path(context, MW_TAG) or RESOURCE_PATHS[0]
    response = context.http.post(path, json={}, headers=headers)
    return Check.expect(response.status_code in (400, 422), f"Empty body accepted with {response.status_code}")


def _logging_middleware(context: ProbeContext) -> bool:
    if has_dependency(project_dependencies(context), *LOGGING_LIBRARIES):
        return True
    return any_source_matches(backend_root(context), r"logging\.getLogger|app\.logger|app\.use\(\s*logger")


def _rate_limiting(context: ProbeContext) -> bool:
    return has_dependency(project_dependencies(context), *RATE_LIMIT_LIBRARIES)


def _security_headers(context: ProbeContext) -> Check:
    response = context.http.get("/")
    present = [h for h in SECURITY_HEADERS if h in response.headers]
    return Check.expect(bool(present), "No security headers set", headers=len(present))


def _custom_middleware(context: ProbeContext) -> bool:
    return any(True for _ in iter_source_files(context.path(Role.MIDDLEWARE_DIR)))


MIDDLEWARE = Suite(
    name="Middleware",
    criteria=("criterion_3",),
    target=TargetKind.APP,
    probes=(
        http_probe("Server Accepts JSON Body", _accepts_json),
        http_probe("CORS Configured", _cors),
        http_probe("Auth Middleware Validates Tokens", _auth_middleware),
        http_probe("Global Error Handler", _global_error_handler),
        http_probe("Request Validation", _validates_input),
        Probe("Logging Middleware", _logging_middleware, expectation="No request logging found"),
        Probe("Rate Limiting", _rate_limiting, expectation="No rate limiting dependency"),
        http_probe("Security Headers", _security_headers),
        Probe(
            "Custom Middleware",
            _custom_middleware,
            requires=(Role.MIDDLEWARE_DIR,),
            expectation="Middleware directory is empty",
        ),
    ),
)


# Error handling

ERR_TAG = "errors"
ERROR_KEYS = ("error", "message", "errors", "msg")
REGISTER_ERROR_PATH = "/api/auth/register"


def _error_path(context: ProbeContext) -> str:
    return collection_path(context, ERR_TAG) or RESOURCE_PATHS[0]


def _unknown_route_404(context: ProbeContext) -> bool:
    return context.http.get(MISSING_ROUTE).status_code == 404


def _404_message(context: ProbeContext) -> bool:
    return has_error_message(context.http.get(MISSING_ROUTE))


def _malformed_json(context: ProbeContext) -> Check:
    headers = {"Content-Type": "application/json", **session_headers(context, ERR_TAG)}
    response = context.http.post(_error_path(context), content=b'{"title": "broken', headers=headers)
    return Check.expect(400 <= response.status_code < 500, f"Malformed JSON gave {response.status_code}")


def _missing_fields(context: ProbeContext) -> Check:
    response = context.http.post(_error_path(context), json={}, headers=session_headers(context, ERR_TAG))
    return Check.expect(400 <= response.status_code < 500, f"Empty body gave {response.status_code}")


def _missing_auth_401(context: ProbeContext) -> Check:
    hit = first_success(PROTECTED_PATHS, context.http.get, lambda r: r.status_code == 401)
    return Check.expect(hit is not None, "No route answered 401 without credentials")


def _invalid_token_401(context: ProbeContext) -> Check:
    hit = first_success(
        PROTECTED_PATHS,
        lambda p: context.http.get(p, headers=bearer(INVALID_TOKEN)),
        lambda r: r.status_code in (401, 403),
    )
    return Check.expect(hit is not None, "No route rejected an invalid token")


def _invalid_id(context: ProbeContext) -> Check:
    response = context.http.get(f"{_error_path(context)}/not-a-valid-id", headers=session_headers(context, ERR_TAG))
    return Check.expect(response.status_code < 500, f"Invalid id caused {response.status_code}")


def _concurrent_survival(context: ProbeContext) -> Check:
    path = _error_path(context)
    headers = session_headers(context, ERR_TAG)
    responses = concurrent_requests(lambda: context.http.get(path, headers=headers), 5)
    broken = [r for r in responses if isinstance(r, Exception) or r.status_code >= 500]
    return Check.expect(not broken, f"{len(broken)}/5 concurrent requests failed")


def _consistent_errors(context: ProbeContext) -> Check:
    headers = session_headers(context, ERR_TAG)
    responses = [
        context.http.get(MISSING_ROUTE),
        context.http.post(_error_path(context), json={}, headers=headers),
        context.http.get(PROTECTED_PATHS[0]),
    ]
    bodies = [json_body(r) for r in responses if r.status_code >= 400]
    if len(bodies) < 2:
        return Check.failed("Too few error responses to compare")
    key_sets = [{k for k in ERROR_KEYS if isinstance(b, dict) and k in b} for b in bodies]
    return Check.expect(all(key_sets) and bool(set.intersection(*key_sets)), "Error bodies use different shapes")


def _status_in_body(context: ProbeContext) -> Check:
    body = json_body(context.http.get(MISSING_ROUTE))
    return Check.expect(
        find_field(body, "status", "statusCode", "code", "success") is not None,
        "Error body has no status field",
    )


def _helpful_validation(context: ProbeContext) -> Check:
    headers = session_headers(context, ERR_TAG)
    responses = [context.http.post(_error_path(context), json={}, headers=headers)]
    responses.append(context.http.post(REGISTER_ERROR_PATH, json={"email": "not-an-email"}))
    pattern = re.compile(r"email|required|invalid|validation|missing|must", re.IGNORECASE)
    helpful = any(r.status_code >= 400 and pattern.search(r.text) for r in responses)
    return Check.expect(helpful, "Validation errors carry no explanation")


def _errors_logged(context: ProbeContext) -> bool:
    if has_dependency(project_dependencies(context), *LOGGING_LIBRARIES):
        return True
    return any_source_matches(backend_root(context), r"console\.error\(|logger\.(error|exception)\(|logging\.(error|exception)\(")


def _large_payload(context: ProbeContext) -> Check:
    payload = sample_item("x" * (1024 * 1024))
    response = context.http.post(_error_path(context), json=payload, headers=session_headers(context, ERR_TAG))
    return Check.expect(response.status_code < 500, f"1 MB payload caused {response.status_code}")


def _special_characters(context: ProbeContext) -> Check:
    headers = session_headers(context, ERR_TAG)
    attempts = ["<script>alert('xss')</script>", "'; DROP TABLE users; --", "{\"$gt\": \"\"}"]
    responses = [context.http.post(_error_path(context), json=sample_item(a), headers=headers) for a in attempts]
    crashed = [r.status_code for r in responses if r.status_code >= 500]
    return Check.expect(not crashed, f"Special characters caused {crashed}")


ERROR_HANDLING = Suite(
    name="Error Handling",
    criteria=("criterion_3",),
    target=TargetKind.APP,
    probes=(
        http_probe("Unknown Route Returns 404", _unknown_route_404, "Unknown route did not return 404"),
        http_probe("404 Includes Message", _404_message, "404 body has no message"),
        http_probe("Malformed JSON Rejected", _malformed_json),
        http_probe("Missing Fields Rejected", _missing_fields),
        http_probe("Missing Auth Returns 401", _missing_auth_401),
        http_probe("Invalid Token Returns 401", _invalid_token_401),
        http_probe("Invalid ID Does Not Crash", _invalid_id),
        http_probe("Concurrent Requests Survive", _concurrent_survival),
        http_probe("Consistent Error Structure", _consistent_errors),
        http_probe("Status In Error Body", _status_in_body),
        http_probe("Helpful Validation Messages", _helpful_validation),
        Probe("Errors Are Logged", _errors_logged, expectation="No error logging found"),
        http_probe("Large Payload Handled", _large_payload),
        http_probe("Special Characters Handled", _special_characters),
    ),
)
