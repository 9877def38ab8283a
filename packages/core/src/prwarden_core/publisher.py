"""Assemble and submit the GitHub review for one pull-request event."""

from __future__ import annotations

import logging

from prwarden_core.diff import InlineComment
from prwarden_core.gh.pull_request import SHA_MARKER

logger = logging.getLogger(__name__)

# Hidden marker on every comment prwarden posts, so replies can be routed
# back to the bot even when the comment author is not reported as a Bot.
AI_COMMENT_MARKER = "<!-- prwarden -->"

INCREMENTAL_NOTE = "> 📝 **Note:** This review covers the latest changes in this commit."

# Always COMMENT: the bot advises, it never approves or blocks a merge.
REVIEW_EVENT = "COMMENT"


def render_comment_body(comment: InlineComment) -> str:
    body = comment.comment
    if comment.suggestion:
        body += f"\n\n```suggestion\n{comment.suggestion}\n```"
    return f"{body}\n\n{AI_COMMENT_MARKER}"


def build_review_body(overall_feedback: str, head_sha: str | None = None, incremental: bool = False) -> str:
    """Top-level review text: model feedback, an optional incremental note, and the SHA marker."""
    body = overall_feedback.strip() or "AI Code Review"
    if incremental:
        body += f"\n\n{INCREMENTAL_NOTE}"
    if head_sha:
        body += "\n" + SHA_MARKER.format(sha=head_sha)
    return body


def publish_review(repo, pr, head_sha: str, body: str, comments: list[InlineComment]) -> None:
    """Submit a single COMMENT review pinned to head_sha.

    Errors from GitHub are not caught here; the caller turns them into an
    error status for the webhook.
    """
    kwargs = {"body": body, "event": REVIEW_EVENT, "commit": repo.get_commit(head_sha)}
    if comments:
        kwargs["comments"] = [
            {"path": c.path, "line": c.line, "side": c.side, "body": render_comment_body(c)} for c in comments
        ]
    pr.create_review(**kwargs)
    logger.info("Review posted on PR #%s with %d inline comment(s)", pr.number, len(comments))
