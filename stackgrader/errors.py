"""
Exception types raised inside stackgrader.

None of these escape the pipeline: each component boundary turns them into
a typed outcome (a failed probe, a failed criterion, an empty metric).
"""


class GraderError(Exception):
    """Base class for all stackgrader errors."""


class TargetUnavailable(GraderError):
    """The project under test could not be loaded or started."""


class ProbeTimeout(GraderError):
    """A request against the target exceeded its time budget."""


class JudgeError(GraderError):
    """The external judge failed or returned an unusable response."""
