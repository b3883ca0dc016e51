"""
Git history suite, reading the metrics computed by the history analyzer.
"""

from collections.abc import Callable

from ..config import LARGE_COMMIT_FILE_THRESHOLD
from ..errors import TargetUnavailable
from ..history import analyze, run_git
from ..locator import Role
from ..models import GitMetrics
from ..probe import Check, Probe, ProbeContext
from ..suite import Suite
from .project import SENSITIVE_FILE_PATTERN


def _metrics(context: ProbeContext) -> GitMetrics:
    if context.git_metrics is None:
        context.git_metrics = analyze(context.project_dir)
    return context.git_metrics


def _history_probe(name: str, check: Callable[[GitMetrics, ProbeContext], Check]) -> Probe:
    """A probe that fails with "Not a Git repository" when there is no history."""

    def run(context: ProbeContext) -> Check:
        metrics = _metrics(context)
        if not metrics.is_git_repo:
            return Check.failed("Not a Git repository")
        return check(metrics, context)

    return Probe(name=name, check=run)


def _has_commits(metrics: GitMetrics, context: ProbeContext) -> Check:
    return Check.expect(metrics.total_commits > 0, "No commits found")


def _enough_commits(metrics: GitMetrics, context: ProbeContext) -> Check:
    return Check.expect(metrics.total_commits >= 5, f"Only {metrics.total_commits} commits", commits=metrics.total_commits)


def _spread(metrics: GitMetrics, context: ProbeContext) -> Check:
    days = metrics.unique_commit_days
    return Check.expect(days >= 3, f"Commits on only {days} days", days=days)


def _regular(metrics: GitMetrics, context: ProbeContext) -> Check:
    gap = metrics.avg_days_between_commits
    return Check.expect(
        metrics.total_commits >= 2 and gap < 7,
        f"Average gap between commits is {gap} days",
        avg_days=gap,
    )


def _meaningful(metrics: GitMetrics, context: ProbeContext) -> Check:
    percentage = metrics.commit_message_quality.meaningful_percentage
    return Check.expect(percentage >= 60, f"{percentage:.0f}% meaningful messages", percentage=percentage)


def _capitalized(metrics: GitMetrics, context: ProbeContext) -> Check:
    subjects = [s for s in (run_git(context.project_dir, "log", "--format=%s") or "").splitlines() if s.strip()]
    if not subjects:
        return Check.failed("No commits found")
    share = sum(1 for s in subjects if s[:1].isupper()) / len(subjects) * 100
    return Check.expect(share >= 50, f"{share:.0f}% of messages are capitalized", percentage=round(share, 1))


def _granular(metrics: GitMetrics, context: ProbeContext) -> Check:
    return Check.expect(
        metrics.large_commits <= 2,
        f"{metrics.large_commits} commits touch more than {LARGE_COMMIT_FILE_THRESHOLD} files",
        large_commits=metrics.large_commits,
    )


def _branching(metrics: GitMetrics, context: ProbeContext) -> Check:
    return Check.expect(metrics.branches.non_main > 0, "Only the main branch exists", branches=metrics.branches.total)


def _merges(metrics: GitMetrics, context: ProbeContext) -> Check:
    return Check.expect(metrics.merge_commits > 0, "No merge commits", merges=metrics.merge_commits)


def _no_sensitive(metrics: GitMetrics, context: ProbeContext) -> Check:
    tracked = run_git(context.project_dir, "ls-files")
    if tracked is None:
        raise TargetUnavailable("git ls-files unavailable")
    names = tracked.splitlines()
    committed = [name for name in names if SENSITIVE_FILE_PATTERN.search(name)]
    committed += [name for name in names if name.startswith("node_modules/")][:1]
    return Check.expect(not committed, f"Committed: {', '.join(committed[:5])}")


def _recent(metrics: GitMetrics, context: ProbeContext) -> Check:
    age = metrics.days_since_last_commit
    return Check.expect(metrics.total_commits > 0 and age <= 30, f"Last commit {age} days ago", days=age)


def _gitignore_patterns(context: ProbeContext) -> Check:
    lines = context.path(Role.GITIGNORE).read_text(encoding="utf-8", errors="replace").splitlines()
    patterns = [line for line in lines if line.strip() and not line.strip().startswith("#")]
    return Check.expect(len(patterns) >= 3, f"Only {len(patterns)} ignore patterns", patterns=len(patterns))


GIT_HISTORY = Suite(
    name="Git History",
    criteria=("criterion_10",),
    probes=(
        _history_probe("Is A Git Repository", lambda metrics, context: Check.ok()),
        _history_probe("Has Commits", _has_commits),
        _history_probe("At Least 5 Commits", _enough_commits),
        _history_probe("Commits Spread Over 3+ Days", _spread),
        _history_probe("Regular Commit Intervals", _regular),
        _history_probe("Meaningful Commit Messages", _meaningful),
        _history_probe("Capitalized Commit Messages", _capitalized),
        _history_probe("Small Focused Commits", _granular),
        _history_probe("Uses Branches", _branching),
        _history_probe("Merges Branches", _merges),
        Probe(".gitignore Exists", lambda c: c.path(Role.GITIGNORE).is_file(), requires=(Role.GITIGNORE,)),
        Probe(".gitignore Covers Common Patterns", _gitignore_patterns, requires=(Role.GITIGNORE,)),
        _history_probe("No Sensitive Files Tracked", _no_sensitive),
        _history_probe("Recent Activity", _recent),
    ),
)
