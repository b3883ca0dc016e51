"""
HTTP handles on the project under test.

The rest of the grader only talks to ``HttpTarget``: send a request, reset
the backing store, close. How the server is obtained (an in-process WSGI
app, a launched subprocess, an already running URL) is decided here.
"""

import importlib.util
import logging
import os
import subprocess
import sys
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx

from .config import (
    DEFAULT_SERVER_PORT,
    PROCESS_SHUTDOWN_TIMEOUT_SECONDS,
    RESET_COMMAND_TIMEOUT_SECONDS,
    SERVER_POLL_INTERVAL_SECONDS,
    STATE_RESET_HOOKS,
    WSGI_APP_ATTRIBUTES,
    WSGI_BASE_URL,
)
from .config_loader import TargetConfig
from .errors import ProbeTimeout, TargetUnavailable
from .locator import NOT_FOUND, NotFound, Role, TargetLocator

logger = logging.getLogger(__name__)


class HttpTarget:
    """
    A server answering HTTP requests.

    Args:
        client: Configured httpx client (base URL and transport set).
        timeout: Per-request budget in seconds.
        reset_command: Command run by ``reset()`` to clear the backing store.
        reset_hook: Callable run by ``reset()`` to clear in-process state.
        cwd: Working directory for the reset command.
        env: Environment for the reset command.
    """

    def __init__(
        self,
        client: httpx.Client,
        timeout: float,
        reset_command: list[str] | None = None,
        reset_hook: Callable[[], Any] | None = None,
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        self.client = client
        self.timeout = timeout
        self.reset_command = reset_command
        self.reset_hook = reset_hook
        self.cwd = cwd
        self.env = env

    @property
    def base_url(self) -> str:
        return str(self.client.base_url)

    def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """
        Send one request.

        Raises:
            ProbeTimeout: If the request exceeds the per-request budget.
            httpx.HTTPError: On transport failures.
        """
        try:
            return self.client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise ProbeTimeout(f"{method} {path} exceeded {self.timeout:.1f}s") from e

    def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("POST", path, **kwargs)

    def put(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("PUT", path, **kwargs)

    def patch(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("PATCH", path, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("DELETE", path, **kwargs)

    def options(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("OPTIONS", path, **kwargs)

    def reset(self) -> bool:
        """
        Return the backing store to a clean state.

        Returns:
            True if every configured reset step succeeded.
        """
        ok = True
        if self.reset_hook is not None:
            try:
                self.reset_hook()
            except Exception as e:
                logger.warning("State reset hook failed: %s", e)
                ok = False

        if self.reset_command:
            try:
                result = subprocess.run(
                    self.reset_command,
                    cwd=self.cwd,
                    env=self.env,
                    capture_output=True,
                    text=True,
                    timeout=RESET_COMMAND_TIMEOUT_SECONDS,
                    check=False,
                )
            except (OSError, subprocess.TimeoutExpired) as e:
                logger.warning("Reset command %s failed: %s", self.reset_command, e)
                return False
            if result.returncode != 0:
                logger.warning(
                    "Reset command exited with %d: %s", result.returncode, result.stderr.strip()[:300]
                )
                ok = False
        return ok

    def close(self) -> None:
        self.client.close()


class WsgiTarget(HttpTarget):
    """
    In-process WSGI application.

    The app runs in the grader's process, so a hanging handler cannot be
    interrupted by a socket timeout. Each request runs on a daemon thread
    and is abandoned once the budget is spent.
    """

    def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        outcome: dict[str, Any] = {}

        def send() -> None:
            try:
                outcome["response"] = self.client.request(method, path, **kwargs)
            except Exception as e:
                outcome["error"] = e

        worker = threading.Thread(target=send, name=f"wsgi-{method}-{path}", daemon=True)
        worker.start()
        worker.join(self.timeout)
        if worker.is_alive():
            raise ProbeTimeout(f"{method} {path} exceeded {self.timeout:.1f}s")
        if "error" in outcome:
            raise outcome["error"]
        return outcome["response"]


class ProcessTarget(HttpTarget):
    """Server running as a child process; ``close()`` stops it."""

    def __init__(self, process: subprocess.Popen, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.process = process

    def close(self) -> None:
        super().close()
        stop_process(self.process)


def stop_process(process: subprocess.Popen) -> None:
    if process.poll() is not None:
        return
    process.terminate()
    try:
        process.wait(timeout=PROCESS_SHUTDOWN_TIMEOUT_SECONDS)
    except subprocess.TimeoutExpired:
        process.kill()
        process.wait()


def run_with_deadline(func: Callable[[], Any], timeout: float, what: str) -> Any:
    """
    Run ``func`` on a daemon thread and wait at most ``timeout`` seconds.

    Raises:
        TargetUnavailable: If ``func`` raises or does not finish in time.
    """
    outcome: dict[str, Any] = {}

    def call() -> None:
        try:
            outcome["value"] = func()
        except (Exception, SystemExit) as e:
            outcome["error"] = e

    worker = threading.Thread(target=call, name=what, daemon=True)
    worker.start()
    worker.join(timeout)
    if worker.is_alive():
        raise TargetUnavailable(f"{what} did not finish within {timeout:.0f}s")
    if "error" in outcome:
        error = outcome["error"]
        raise TargetUnavailable(f"{what} failed: {type(error).__name__}: {error}") from error
    return outcome.get("value")


def import_module_from_path(module_path: Path):
    """Import a Python file by path, making its directory importable."""
    module_dir = str(module_path.parent.resolve())
    # Student modules import their siblings by plain name
    if module_dir not in sys.path:
        sys.path.insert(0, module_dir)

    module_name = f"stackgrader_target_{module_path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, module_path)
    if spec is None or spec.loader is None:
        raise TargetUnavailable(f"Cannot import {module_path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


def load_wsgi_target(
    module_path: Path,
    attribute: str | None,
    config: TargetConfig,
    timeout: float,
) -> WsgiTarget:
    """
    Load a WSGI application from a project file.

    Args:
        module_path: Python file defining the app.
        attribute: App or factory attribute; probed from the usual names when None.
        config: Target settings (startup timeout, reset command, env).
        timeout: Per-request budget in seconds.

    Returns:
        WsgiTarget serving the app.

    Raises:
        TargetUnavailable: If the module cannot be imported or has no app.
    """
    module = run_with_deadline(
        lambda: import_module_from_path(module_path),
        config.startup_timeout,
        f"import {module_path.name}",
    )

    names = [attribute] if attribute else WSGI_APP_ATTRIBUTES
    app = None
    for name in names:
        candidate = getattr(module, name, None)
        if candidate is None:
            continue
        if name.startswith(("create_", "make_")):
            candidate = run_with_deadline(candidate, config.startup_timeout, f"{name}()")
        if callable(candidate):
            app = candidate
            logger.info("Loaded WSGI app %s:%s", module_path.name, name)
            break
    if app is None:
        raise TargetUnavailable(f"No WSGI app ({', '.join(names)}) in {module_path}")

    reset_hook = None
    for name in STATE_RESET_HOOKS:
        hook = getattr(module, name, None)
        if callable(hook):
            reset_hook = hook
            break

    client = httpx.Client(
        transport=httpx.WSGITransport(app=app),
        base_url=WSGI_BASE_URL,
        timeout=httpx.Timeout(timeout),
    )
    return WsgiTarget(
        client=client,
        timeout=timeout,
        reset_command=config.reset_command,
        reset_hook=reset_hook,
        cwd=module_path.parent,
        env=_process_env(config),
    )


def launch_command_target(
    command: list[str],
    base_url: str,
    cwd: Path,
    config: TargetConfig,
    timeout: float,
) -> ProcessTarget:
    """
    Start the project's server as a subprocess and wait until it answers.

    Raises:
        TargetUnavailable: If the process cannot start, exits early or does
            not answer within ``config.startup_timeout``.
    """
    env = _process_env(config)
    logger.info("Starting server: %s (cwd=%s)", " ".join(command), cwd)
    try:
        process = subprocess.Popen(
            command,
            cwd=cwd,
            env=env,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except OSError as e:
        raise TargetUnavailable(f"Cannot start {command[0]}: {e}") from e

    deadline = time.monotonic() + config.startup_timeout
    while True:
        if process.poll() is not None:
            raise TargetUnavailable(f"Server exited with code {process.returncode} during startup")
        try:
            httpx.get(base_url, timeout=SERVER_POLL_INTERVAL_SECONDS * 2)
            break
        except httpx.HTTPError:
            pass
        if time.monotonic() >= deadline:
            stop_process(process)
            raise TargetUnavailable(f"Server did not answer on {base_url} within {config.startup_timeout:.0f}s")
        time.sleep(SERVER_POLL_INTERVAL_SECONDS)

    logger.info("Server is up at %s", base_url)
    return ProcessTarget(
        process=process,
        client=httpx.Client(base_url=base_url, timeout=httpx.Timeout(timeout)),
        timeout=timeout,
        reset_command=config.reset_command,
        cwd=cwd,
        env=env,
    )


def open_url_target(base_url: str, timeout: float, config: TargetConfig | None = None) -> HttpTarget:
    """Handle on a server that is already running."""
    config = config or TargetConfig()
    return HttpTarget(
        client=httpx.Client(base_url=base_url, timeout=httpx.Timeout(timeout), follow_redirects=True),
        timeout=timeout,
        reset_command=config.reset_command,
        env=_process_env(config),
    )


def load_target(config: TargetConfig, locator: TargetLocator, timeout: float) -> HttpTarget | NotFound:
    """
    Obtain a handle on the project's backend.

    Loading problems are logged and reported as NOT_FOUND, so every probe
    that needs the server is skipped instead of failed.

    Args:
        config: Target settings.
        locator: Locator for the project.
        timeout: Per-request budget in seconds.

    Returns:
        HttpTarget, or NOT_FOUND if no server could be obtained.
    """
    try:
        return _load_target(config, locator, timeout)
    except TargetUnavailable as e:
        logger.warning("Target unavailable: %s", e)
        return NOT_FOUND


def _load_target(config: TargetConfig, locator: TargetLocator, timeout: float) -> HttpTarget | NotFound:
    kind = config.kind
    base_url = config.base_url or f"http://127.0.0.1:{DEFAULT_SERVER_PORT}"

    if kind == "url":
        if not config.base_url:
            raise TargetUnavailable("target.kind is 'url' but no base_url is configured")
        return open_url_target(config.base_url, timeout, config)

    if kind == "command":
        if not config.command:
            raise TargetUnavailable("target.kind is 'command' but no command is configured")
        return launch_command_target(config.command, base_url, locator.root, config, timeout)

    if kind == "wsgi":
        module = config.module or locator.locate(Role.PYTHON_ENTRY)
        if module is NOT_FOUND:
            raise TargetUnavailable("No Python entry point found")
        return load_wsgi_target(module, config.attribute, config, timeout)

    # auto: a Python entry point is served in-process, a Node one is launched
    python_entry = locator.locate(Role.PYTHON_ENTRY)
    if python_entry is not NOT_FOUND:
        return load_wsgi_target(python_entry, config.attribute, config, timeout)

    node_entry = locator.locate(Role.BACKEND_ENTRY)
    if node_entry is not NOT_FOUND:
        command = ["node", node_entry.name]
        env = {"PORT": str(DEFAULT_SERVER_PORT), "NODE_ENV": "test", **config.env}
        auto_config = config.model_copy(update={"env": env})
        return launch_command_target(command, base_url, node_entry.parent, auto_config, timeout)

    logger.info("No backend entry point found; server probes will be skipped")
    return NOT_FOUND


def _process_env(config: TargetConfig) -> dict[str, str]:
    return {**os.environ, **config.env}
