from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from github import GithubException

from prwarden_core.diff import FileChange

logger = logging.getLogger(__name__)

SHA_MARKER = "<!-- prwarden-sha: {sha} -->"
_SHA_MARKER_RE = re.compile(r"<!-- prwarden-sha: ([0-9a-f]{40}) -->")


@dataclass
class DiffExtraction:
    """Files to review for one pull-request event.

    mode is "full" (everything between base and head) or "incremental" (only
    the latest commit). fallback_reason is set when an incremental diff was
    wanted but the full listing had to be used instead.
    """

    files: list[FileChange] = field(default_factory=list)
    mode: str = "full"
    fallback_reason: str | None = None


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def get_diff(pr) -> list[FileChange]:
    return [FileChange.from_github(f) for f in pr.get_files()]


def get_last_reviewed_sha(pr) -> str | None:
    """Return the most recent HEAD SHA stored by prwarden in a review body, or None."""
    last_sha = None
    for review in pr.get_reviews():
        match = _SHA_MARKER_RE.search(review.body or "")
        if match:
            last_sha = match.group(1)
    return last_sha


def get_incremental_files(repo, base_sha: str, head_sha: str) -> list[FileChange]:
    """Return files changed between two commits using GitHub's compare API."""
    comparison = repo.compare(base_sha, head_sha)
    return [FileChange.from_github(f) for f in comparison.files or []]


def _incremental_changes(repo, pr, head_sha: str | None) -> DiffExtraction:
    commits = list(pr.get_commits())
    if not commits:
        return DiffExtraction(files=[], mode="incremental")
    if len(commits) == 1:
        return DiffExtraction(files=get_diff(pr), mode="full")

    shas = [c.sha for c in commits]
    head_index = shas.index(head_sha) if head_sha in shas else len(shas) - 1
    previous = shas[head_index - 1] if head_index > 0 else shas[0]
    files = get_incremental_files(repo, previous, shas[head_index])
    logger.info(
        "Incremental diff %s..%s: %d file(s) changed",
        previous[:7],
        shas[head_index][:7],
        len(files),
    )
    return DiffExtraction(files=files, mode="incremental")


def extract_changes(repo, pr, action: str, head_sha: str | None = None) -> DiffExtraction:
    """Return the files to review for a pull_request event.

    For "synchronize" only the newest commit is diffed against its parent
    commit in the PR, so code that was already reviewed is not sent to the
    model again. If the commit history cannot be compared (force-push,
    rewritten history, API hiccup) the whole PR diff is returned instead.
    """
    if action != "synchronize":
        return DiffExtraction(files=get_diff(pr), mode="full")

    try:
        return _incremental_changes(repo, pr, head_sha)
    except GithubException as e:
        logger.warning("Could not compute incremental diff (%s). Falling back to full PR diff.", e)
        return DiffExtraction(files=get_diff(pr), mode="full", fallback_reason=str(e))
