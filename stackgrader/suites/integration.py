"""
Front-end/back-end integration suites: the API as a front end consumes it.
"""

import time

from ..probe import Check, ProbeContext, find_field, first_success, has_error_message, is_json, items_of, json_body
from ..suite import Suite, TargetKind
from .common import (
    FRONTEND_ORIGIN,
    ID_FIELDS,
    MISSING_ROUTE,
    PROFILE_PATHS,
    PROTECTED_PATHS,
    RESOURCE_PATHS,
    TIMESTAMP_FIELDS,
    bearer,
    collection_path,
    concurrent_requests,
    create_item,
    created_item,
    http_probe,
    list_items,
    obtain_token,
    sample_item,
    session_headers,
)

INT_TAG = "integration"
FLOW_TAG = "dataflow"


def _get_requests(context: ProbeContext) -> Check:
    created_item(context, INT_TAG)
    path = collection_path(context, INT_TAG)
    return Check.expect(path is not None, "No collection answered GET with 200")


def _post_requests(context: ProbeContext) -> Check:
    return Check.expect(created_item(context, INT_TAG) is not None, "No collection accepted a JSON POST")


def _update_requests(context: ProbeContext) -> Check:
    item = created_item(context, INT_TAG)
    if item is None or item[1] is None:
        return Check.failed("No resource with an id was created")
    path, item_id, _ = item
    headers = session_headers(context, INT_TAG)
    hit = first_success(
        ["PUT", "PATCH"],
        lambda method: context.http.request(method, f"{path}/{item_id}", json=sample_item("Updated"), headers=headers),
        lambda r: r.status_code == 200,
    )
    return Check.expect(hit is not None, "Updates were rejected")


def _delete_requests(context: ProbeContext) -> Check:
    item = create_item(context, INT_TAG, sample_item("Integration delete"))
    if item is None or item[1] is None:
        return Check.failed("No resource with an id was created")
    path, item_id, _ = item
    response = context.http.delete(f"{path}/{item_id}", headers=session_headers(context, INT_TAG))
    return Check.expect(response.status_code in (200, 202, 204), f"DELETE returned {response.status_code}")


def _data_reaches_backend(context: ProbeContext) -> Check:
    title = f"Integration marker {int(time.time())}"
    item = create_item(context, INT_TAG, sample_item(title))
    if item is None:
        return Check.failed("No collection accepted a POST")
    response = context.http.get(item[0], headers=session_headers(context, INT_TAG))
    return Check.expect(title in response.text, "Posted data is not visible in the collection")


def _auth_token_flow(context: ProbeContext) -> Check:
    token = obtain_token(context, INT_TAG)
    if not token:
        return Check.failed("Neither registration nor login issued a token")
    hit = first_success(
        PROFILE_PATHS,
        lambda p: context.http.get(p, headers=bearer(token)),
        lambda r: r.status_code == 200,
    )
    if hit is None:
        return Check.failed("No profile route accepted the issued token")
    return Check.ok(path=hit.candidate)


def _unauthenticated_rejected(context: ProbeContext) -> Check:
    hit = first_success(PROTECTED_PATHS, context.http.get, lambda r: r.status_code in (401, 403))
    return Check.expect(hit is not None, "No route rejected an anonymous request")


def _validation_communicated(context: ProbeContext) -> Check:
    path = collection_path(context, INT_TAG) or RESOURCE_PATHS[0]
    response = context.http.post(path, json={}, headers=session_headers(context, INT_TAG))
    return Check.expect(
        400 <= response.status_code < 500 and has_error_message(response),
        f"Invalid data gave {response.status_code} without an error message",
    )


def _unknown_route(context: ProbeContext) -> bool:
    return context.http.get(MISSING_ROUTE).status_code == 404


def _invalid_id(context: ProbeContext) -> Check:
    path = collection_path(context, INT_TAG) or RESOURCE_PATHS[0]
    response = context.http.get(f"{path}/invalid-id-123", headers=session_headers(context, INT_TAG))
    return Check.expect(400 <= response.status_code < 500, f"Invalid id gave {response.status_code}")


def _cors_header(context: ProbeContext) -> Check:
    path = collection_path(context, INT_TAG) or "/"
    response = context.http.get(path, headers={"Origin": FRONTEND_ORIGIN, **session_headers(context, INT_TAG)})
    return Check.expect("access-control-allow-origin" in response.headers, "No Access-Control-Allow-Origin header")


def _content_type(context: ProbeContext) -> Check:
    path = collection_path(context, INT_TAG)
    if path is None:
        return Check.failed("No collection answered GET with 200")
    response = context.http.get(path, headers=session_headers(context, INT_TAG))
    return Check.expect(is_json(response), f"Content-Type is {response.headers.get('content-type')!r}")


API_INTEGRATION = Suite(
    name="API Integration",
    criteria=("criterion_6",),
    target=TargetKind.APP,
    probes=(
        http_probe("GET Requests", _get_requests),
        http_probe("POST Requests With JSON", _post_requests),
        http_probe("PUT/PATCH Requests", _update_requests),
        http_probe("DELETE Requests", _delete_requests),
        http_probe("Data Reaches Backend", _data_reaches_backend),
        http_probe("Auth Token Flow", _auth_token_flow),
        http_probe("Unauthenticated Requests Rejected", _unauthenticated_rejected),
        http_probe("Validation Errors Communicated", _validation_communicated),
        http_probe("Unknown Routes Return 404", _unknown_route, "Unknown route did not return 404"),
        http_probe("Invalid ID Returns 4xx", _invalid_id),
        http_probe("CORS Allows Frontend Origin", _cors_header),
        http_probe("Content-Type Header Set", _content_type),
    ),
)


# Data flow

def _flow_item(context: ProbeContext):
    return created_item(context, FLOW_TAG)


def _fetch(context: ProbeContext, path: str, item_id) -> dict | None:
    response = context.http.get(f"{path}/{item_id}", headers=session_headers(context, FLOW_TAG))
    if response.status_code != 200:
        return None
    body = json_body(response)
    if isinstance(body, dict) and isinstance(body.get("data"), dict):
        return body["data"]
    return body if isinstance(body, dict) else None


def _complex_serialization(context: ProbeContext) -> Check:
    payload = {**sample_item("Nested payload"), "tags": ["grading", "nested"], "metadata": {"source": "grader", "depth": 2}}
    item = create_item(context, FLOW_TAG, payload)
    return Check.expect(item is not None, "Nested JSON payload was rejected")


def _unicode_preserved(context: ProbeContext) -> Check:
    title = "Tâche ✓ 日本語 émoji 🚀"
    item = create_item(context, FLOW_TAG, sample_item(title))
    if item is None:
        return Check.failed("Unicode payload was rejected")
    path, item_id, body = item
    if item_id is not None:
        body = _fetch(context, path, item_id) or body
    return Check.expect(title in str(find_field(body, "title", "name")), "Unicode text was altered")


def _array_responses(context: ProbeContext) -> Check:
    _flow_item(context)
    return Check.expect(list_items(context, FLOW_TAG) is not None, "List response is not an array")


def _object_fields(context: ProbeContext) -> Check:
    item = _flow_item(context)
    if item is None:
        return Check.failed("No resource was created")
    body = item[2]
    has_id = find_field(body, *ID_FIELDS) is not None
    has_title = find_field(body, "title", "name") is not None
    return Check.expect(has_id and has_title, "Created object lacks id or title fields")


def _persists(context: ProbeContext) -> Check:
    item = _flow_item(context)
    if item is None or item[1] is None:
        return Check.failed("No resource with an id was created")
    stored = _fetch(context, item[0], item[1])
    return Check.expect(stored is not None and find_field(stored, "title", "name") is not None, "Resource not retrievable")


def _update_reflected(context: ProbeContext) -> Check:
    item = _flow_item(context)
    if item is None or item[1] is None:
        return Check.failed("No resource with an id was created")
    path, item_id, _ = item
    title = "Flow updated title"
    headers = session_headers(context, FLOW_TAG)
    hit = first_success(
        ["PUT", "PATCH"],
        lambda method: context.http.request(method, f"{path}/{item_id}", json=sample_item(title), headers=headers),
        lambda r: r.status_code == 200,
    )
    if hit is None:
        return Check.failed("Update was rejected")
    stored = _fetch(context, path, item_id)
    return Check.expect(stored is not None and find_field(stored, "title", "name") == title, "Update not reflected")


def _delete_reflected(context: ProbeContext) -> Check:
    item = create_item(context, FLOW_TAG, sample_item("Flow delete"))
    if item is None or item[1] is None:
        return Check.failed("No resource with an id was created")
    path, item_id, _ = item
    headers = session_headers(context, FLOW_TAG)
    context.http.delete(f"{path}/{item_id}", headers=headers)
    response = context.http.get(f"{path}/{item_id}", headers=headers)
    return Check.expect(response.status_code == 404, f"Deleted resource answers {response.status_code}")


def _format_consistent(context: ProbeContext) -> Check:
    item = _flow_item(context)
    if item is None or item[1] is None:
        return Check.failed("No resource with an id was created")
    created = item[2]
    stored = _fetch(context, item[0], item[1])
    if not isinstance(created, dict) or stored is None:
        return Check.failed("Could not compare created and fetched resources")
    created = created["data"] if isinstance(created.get("data"), dict) else created
    return Check.expect(set(stored) >= {k for k in created if k in ID_FIELDS}, "Create and read return different shapes")


def _timestamps(context: ProbeContext) -> Check:
    item = _flow_item(context)
    if item is None:
        return Check.failed("No resource was created")
    return Check.expect(find_field(item[2], *TIMESTAMP_FIELDS) is not None, "Resource has no timestamps")


def _concurrent(context: ProbeContext) -> Check:
    _flow_item(context)
    path = collection_path(context, FLOW_TAG)
    if path is None:
        return Check.failed("No collection answered GET with 200")
    headers = session_headers(context, FLOW_TAG)
    responses = concurrent_requests(lambda: context.http.get(path, headers=headers), 10)
    ok = sum(1 for r in responses if not isinstance(r, Exception) and r.status_code == 200)
    return Check.expect(ok == 10, f"{ok}/10 concurrent requests succeeded", succeeded=ok)


def _invalid_rejected(context: ProbeContext) -> Check:
    path = collection_path(context, FLOW_TAG) or RESOURCE_PATHS[0]
    headers = session_headers(context, FLOW_TAG)
    before = items_of(json_body(context.http.get(path, headers=headers))) or []
    response = context.http.post(path, json={"title": ""}, headers=headers)
    after = items_of(json_body(context.http.get(path, headers=headers))) or []
    return Check.expect(
        400 <= response.status_code < 500 and len(after) == len(before),
        f"Invalid data gave {response.status_code}",
    )


DATA_FLOW = Suite(
    name="Data Flow",
    criteria=("criterion_6",),
    target=TargetKind.APP,
    probes=(
        http_probe("Complex Data Serialization", _complex_serialization),
        http_probe("Unicode Preserved", _unicode_preserved),
        http_probe("Array Responses Structured", _array_responses),
        http_probe("Object Responses Include Fields", _object_fields),
        http_probe("Data Persists Across Requests", _persists),
        http_probe("Updates Reflected", _update_reflected),
        http_probe("Deletes Reflected", _delete_reflected),
        http_probe("Consistent Data Format", _format_consistent),
        http_probe("Timestamps Maintained", _timestamps),
        http_probe("Concurrent Requests Handled", _concurrent),
        http_probe("Invalid Data Rejected", _invalid_rejected),
    ),
)
