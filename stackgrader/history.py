"""
Git history analysis.

Reads commit metadata through the ``git`` binary and reduces it to a
bounded process score with a human readable justification. The repository
is only ever read.
"""

import logging
import re
import subprocess
import time
from collections import OrderedDict
from pathlib import Path

from .config import (
    GENERIC_COMMIT_MESSAGES,
    GIT_TIMEOUT_SECONDS,
    LARGE_COMMIT_FILE_THRESHOLD,
    MAIN_BRANCH_MARKERS,
    MIN_MEANINGFUL_MESSAGE_LENGTH,
    TIMELINE_COMMIT_LIMIT,
)
from .models import BranchCounts, CommitMessageQuality, GitMetrics, TimelineEntry

logger = logging.getLogger(__name__)

FILES_CHANGED_PATTERN = re.compile(r"(\d+) files? changed")
SECONDS_PER_DAY = 86400


def run_git(repo_dir: Path, *args: str) -> str | None:
    """
    Run a git command and return its trimmed stdout.

    Returns:
        The output, or None if git is missing, fails or times out.
    """
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=repo_dir,
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.warning("git %s failed: %s", " ".join(args), e)
        return None
    if result.returncode != 0:
        logger.debug("git %s exited with %d: %s", " ".join(args), result.returncode, result.stderr.strip())
        return None
    return result.stdout.strip()


def _lines(output: str | None) -> list[str]:
    if not output:
        return []
    return [line for line in output.splitlines() if line.strip()]


def classify_message(message: str) -> str:
    """
    Classify a commit subject as ``"meaningful"`` or ``"vague"``.

    A subject is vague when it is one of the generic messages (case
    insensitive) or shorter than the minimum length.
    """
    subject = message.strip()
    generic = {m.lower() for m in GENERIC_COMMIT_MESSAGES}
    if subject.lower() in generic or len(subject) < MIN_MEANINGFUL_MESSAGE_LENGTH:
        return "vague"
    return "meaningful"


def tally_messages(messages: list[str]) -> CommitMessageQuality:
    meaningful = sum(1 for m in messages if classify_message(m) == "meaningful")
    return CommitMessageQuality(meaningful=meaningful, vague=len(messages) - meaningful, total=len(messages))


def count_large_commits(shortstat_output: str, threshold: int = LARGE_COMMIT_FILE_THRESHOLD) -> int:
    """Number of ``--shortstat`` lines reporting more than ``threshold`` files changed."""
    count = 0
    for line in shortstat_output.splitlines():
        match = FILES_CHANGED_PATTERN.search(line)
        if match and int(match.group(1)) > threshold:
            count += 1
    return count


def classify_frequency(unique_days: int, avg_days_between: float) -> str:
    if unique_days >= 5 and avg_days_between < 7:
        return "regular"
    if unique_days >= 3:
        return "moderate"
    if unique_days >= 1:
        return "sparse"
    return "irregular"


def count_branches(branch_output: str) -> BranchCounts:
    branches = [line.strip().lstrip("* ").strip() for line in _lines(branch_output)]
    non_main = [b for b in branches if not any(marker in b for marker in MAIN_BRANCH_MARKERS)]
    return BranchCounts(total=len(branches), non_main=len(non_main))


def average_interval_days(timestamps: list[int]) -> float:
    """Mean gap between consecutive commits (newest first), in days."""
    if len(timestamps) < 2:
        return 0.0
    total = sum(timestamps[i] - timestamps[i + 1] for i in range(len(timestamps) - 1))
    return round(total / (len(timestamps) - 1) / SECONDS_PER_DAY, 2)


def build_timeline(log_output: str) -> tuple[TimelineEntry, ...]:
    """Group ``date|subject`` lines by date, keeping the first subject per day."""
    days: OrderedDict[str, list[str]] = OrderedDict()
    for line in _lines(log_output):
        date, _, subject = line.partition("|")
        days.setdefault(date, []).append(subject)
    return tuple(
        TimelineEntry(date=date, commits=len(subjects), message_sample=subjects[0])
        for date, subjects in days.items()
    )


def score_history(
    total_commits: int,
    frequency: str,
    quality: CommitMessageQuality,
    large_commits: int,
    branches: BranchCounts,
) -> tuple[float, str]:
    """
    Additive history score starting from 1.0, capped at 4.0.

    Returns:
        (score rounded to 2 decimals, "; "-joined reasons, one per signal)
    """
    score = 1.0
    reasons = []

    if total_commits >= 20:
        score += 0.8
        reasons.append("Excellent commit count (20+)")
    elif total_commits >= 10:
        score += 0.6
        reasons.append("Good commit count (10-19)")
    elif total_commits >= 5:
        score += 0.4
        reasons.append("Fair commit count (5-9)")
    else:
        reasons.append("Limited commit count (<5)")

    if frequency == "regular":
        score += 0.8
        reasons.append("Regular commits throughout development")
    elif frequency == "moderate":
        score += 0.6
        reasons.append("Moderate commit frequency")
    elif frequency == "sparse":
        score += 0.4
        reasons.append("Sparse commit frequency")
    else:
        reasons.append("Irregular commit pattern")

    percentage = quality.meaningful_percentage
    if percentage >= 70:
        score += 0.8
        reasons.append("Excellent commit message quality (70%+ meaningful)")
    elif percentage >= 50:
        score += 0.6
        reasons.append("Good commit message quality (50-69% meaningful)")
    elif percentage >= 30:
        score += 0.4
        reasons.append("Fair commit message quality (30-49% meaningful)")
    else:
        reasons.append("Poor commit message quality (<30% meaningful)")

    if large_commits <= 1:
        score += 0.3
        reasons.append("Good commit granularity")
    elif large_commits <= 3:
        score += 0.15
        reasons.append("Some large commits detected")
    else:
        reasons.append("Multiple large commits suggest infrequent committing")

    if branches.non_main > 0:
        score += 0.3
        reasons.append("Uses branching workflow")

    return round(min(score, 4.0), 2), "; ".join(reasons)


def is_git_repository(repo_dir: Path) -> bool:
    try:
        return (repo_dir / ".git").exists()
    except OSError:
        return False


def analyze(repo_dir: Path, now: float | None = None) -> GitMetrics:
    """
    Analyze the commit history of a project.

    Args:
        repo_dir: Project directory.
        now: Current time as a Unix timestamp (defaults to the clock).

    Returns:
        GitMetrics. A non-repository short-circuits to score 1.0 with the
        justification "Not a Git repository" without running git.
    """
    if not is_git_repository(repo_dir):
        logger.info("Not a Git repository: %s", repo_dir)
        return GitMetrics(justification="Not a Git repository")

    total_commits = int(run_git(repo_dir, "rev-list", "--count", "HEAD") or 0)
    logger.info("Total commits: %d", total_commits)
    if total_commits == 0:
        return GitMetrics(is_git_repo=True, justification="No commits found")

    unique_days = len(set(_lines(run_git(repo_dir, "log", "--format=%ad", "--date=short"))))

    days_since_last = 0.0
    last_timestamp = run_git(repo_dir, "log", "-1", "--format=%at")
    if last_timestamp:
        now = time.time() if now is None else now
        days_since_last = round((now - int(last_timestamp)) / SECONDS_PER_DAY, 1)

    timestamps = [int(t) for t in _lines(run_git(repo_dir, "log", "--format=%at"))]
    avg_interval = average_interval_days(timestamps)
    frequency = classify_frequency(unique_days, avg_interval)

    quality = tally_messages(_lines(run_git(repo_dir, "log", "--format=%s")))
    large_commits = count_large_commits(run_git(repo_dir, "log", "--shortstat", "--format=%H") or "")
    branches = count_branches(run_git(repo_dir, "branch", "-a") or "")
    merge_commits = len(_lines(run_git(repo_dir, "log", "--merges", "--format=%s")))

    first_messages = _lines(run_git(repo_dir, "log", "--reverse", "--format=%s"))
    last_message = run_git(repo_dir, "log", "--format=%s", "-1") or ""
    timeline = build_timeline(
        run_git(repo_dir, "log", "--format=%ad|%s", "--date=short", f"-{TIMELINE_COMMIT_LIMIT}") or ""
    )

    score, justification = score_history(total_commits, frequency, quality, large_commits, branches)
    logger.info("Git score: %.2f (%s)", score, justification)

    return GitMetrics(
        is_git_repo=True,
        total_commits=total_commits,
        unique_commit_days=unique_days,
        days_since_last_commit=days_since_last,
        avg_days_between_commits=avg_interval,
        commit_frequency=frequency,
        commit_message_quality=quality,
        large_commits=large_commits,
        branches=branches,
        merge_commits=merge_commits,
        first_commit_message=first_messages[0] if first_messages else "",
        last_commit_message=last_message,
        commit_timeline=timeline,
        score=score,
        justification=justification,
    )
