"""
Registered grading suites, in execution order.
"""

import logging

from ..suite import Suite
from .backend import API_ENDPOINTS, AUTHENTICATION, DATABASE, ERROR_HANDLING, MIDDLEWARE
from .deployment import DEPLOYMENT
from .frontend import COMPONENTS, HOOKS, ROUTING
from .history import GIT_HISTORY
from .integration import API_INTEGRATION, DATA_FLOW
from .project import PERFORMANCE, SECURITY, TYPESCRIPT_TESTING

logger = logging.getLogger(__name__)

ALL_SUITES: tuple[Suite, ...] = (
    API_ENDPOINTS,
    AUTHENTICATION,
    DATABASE,
    MIDDLEWARE,
    ERROR_HANDLING,
    API_INTEGRATION,
    DATA_FLOW,
    PERFORMANCE,
    DEPLOYMENT,
    COMPONENTS,
    HOOKS,
    ROUTING,
    GIT_HISTORY,
    SECURITY,
    TYPESCRIPT_TESTING,
)


def build_suites(names: list[str] | None = None) -> list[Suite]:
    """
    Select suites to run.

    Args:
        names: Suite names to keep (case insensitive), or None for all.

    Returns:
        Selected suites in registration order.
    """
    if not names:
        return list(ALL_SUITES)

    wanted = {name.lower() for name in names}
    known = {suite.name.lower() for suite in ALL_SUITES}
    for unknown in sorted(wanted - known):
        logger.warning("Unknown suite %r ignored", unknown)
    return [suite for suite in ALL_SUITES if suite.name.lower() in wanted]
