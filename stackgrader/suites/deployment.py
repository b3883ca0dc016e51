"""
Deployment suite: the public URL listed in DEPLOYMENT_URL.txt.
"""

import re

import httpx

from ..probe import Check, ProbeContext, first_success
from ..suite import Suite, TargetKind
from .common import HEALTH_PATHS, MISSING_ROUTE, http_probe, timed


def _homepage(context: ProbeContext) -> tuple[httpx.Response, float]:
    # A failed homepage request is made once and re-raised for every later check
    if "homepage_error" in context.state:
        raise context.state["homepage_error"]
    if "homepage" not in context.state:
        try:
            context.state["homepage"] = timed(lambda: context.http.get("/"))
        except Exception as e:
            context.state["homepage_error"] = e
            raise
    return context.state["homepage"]


def _html(context: ProbeContext) -> str:
    return _homepage(context)[0].text


def _accessible(context: ProbeContext) -> Check:
    response, _ = _homepage(context)
    return Check.expect(response.status_code == 200, f"Homepage returned {response.status_code}")


def _serves_html(context: ProbeContext) -> Check:
    content_type = _homepage(context)[0].headers.get("content-type", "")
    return Check.expect("text/html" in content_type, f"Content-Type is {content_type!r}")


def _https(context: ProbeContext) -> Check:
    url = str(_homepage(context)[0].url)
    return Check.expect(url.startswith("https://"), f"Served over {url.split(':', 1)[0]}")


def _fast(context: ProbeContext) -> Check:
    _, elapsed = _homepage(context)
    return Check.expect(elapsed < 5000, f"Homepage took {elapsed:.0f}ms", elapsed_ms=round(elapsed, 1))


def _meaningful(context: ProbeContext) -> Check:
    text = re.sub(r"<[^>]+>", "", _html(context))
    return Check.expect(len(_html(context)) > 500 or len(text.strip()) > 100, "Homepage is nearly empty")


def _framework_markers(context: ProbeContext) -> bool:
    return bool(re.search(r"__next|_next/static|id=[\"']root[\"']|data-reactroot|__NEXT_DATA__", _html(context)))


def _api_reachable(context: ProbeContext) -> Check:
    hit = first_success(
        [p for p in HEALTH_PATHS if p != "/"],
        context.http.get,
        lambda r: r.status_code < 500,
    )
    return Check.expect(hit is not None, "No API route answered")


def _compressed(context: ProbeContext) -> Check:
    encoding = _homepage(context)[0].headers.get("content-encoding", "")
    return Check.expect(encoding in ("gzip", "br", "deflate", "zstd"), "Response is not compressed")


def _cached(context: ProbeContext) -> Check:
    headers = _homepage(context)[0].headers
    return Check.expect(
        any(h in headers for h in ("cache-control", "etag", "last-modified")),
        "No caching headers",
    )


def _handles_404(context: ProbeContext) -> Check:
    response = context.http.get(MISSING_ROUTE)
    return Check.expect(response.status_code < 500, f"Unknown route returned {response.status_code}")


def _contains(pattern: str):
    regex = re.compile(pattern, re.IGNORECASE)
    return lambda context: bool(regex.search(_html(context)))


DEPLOYMENT = Suite(
    name="Deployment",
    criteria=("criterion_16",),
    target=TargetKind.DEPLOYMENT,
    probes=(
        http_probe("Deployment Accessible", _accessible),
        http_probe("Serves HTML", _serves_html),
        http_probe("Served Over HTTPS", _https),
        http_probe("Loads Under 5 Seconds", _fast),
        http_probe("Meaningful Content", _meaningful),
        http_probe("Has Page Title", _contains(r"<title>[^<]+</title>"), "No <title>"),
        http_probe("Has Meta Tags", _contains(r"<meta\s"), "No <meta> tags"),
        http_probe("React/Next.js Application", _framework_markers, "No React or Next.js markers"),
        http_probe("Loads Stylesheets", _contains(r"<link[^>]+stylesheet|<style"), "No CSS"),
        http_probe("Loads Scripts", _contains(r"<script"), "No JavaScript"),
        http_probe("API Reachable", _api_reachable),
        http_probe("Compression Enabled", _compressed),
        http_probe("Caching Headers", _cached),
        http_probe("Responsive Viewport", _contains(r"<meta[^>]+name=[\"']viewport"), "No viewport meta tag"),
        http_probe("Handles Unknown Routes", _handles_404),
    ),
)
