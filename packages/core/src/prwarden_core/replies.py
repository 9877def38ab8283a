"""Answer developer replies to prwarden's inline review comments."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from prwarden_core.budget import estimate_reply_tokens
from prwarden_core.providers.base import BaseReviewer, ProviderError, ReplyContext
from prwarden_core.publisher import AI_COMMENT_MARKER
from prwarden_core.reviewer import Ledger

logger = logging.getLogger(__name__)

# Bodies containing any of these were written by the review bot.
AI_REVIEW_MARKERS = (AI_COMMENT_MARKER, "AI Code Review", "AI generated")

SNIPPET_RADIUS = 5

BUDGET_EXCEEDED_REPLY = (
    "I apologize, but I cannot process this request as your organization has exceeded their token limit "
    "for the past 24 hours. Please try again later."
)
PROVIDER_FAILURE_REPLY = (
    "Sorry, I wasn't able to generate a response right now. Please try again in a few minutes."
)


@dataclass
class ReplyOutcome:
    status: str  # "ignored" | "skipped" | "responded"
    message: str


def is_ai_comment(comment) -> bool:
    """Return True if a PyGithub review comment looks machine-authored."""
    user = getattr(comment, "user", None)
    if user is not None and getattr(user, "type", None) == "Bot":
        return True
    body = comment.body or ""
    return any(marker in body for marker in AI_REVIEW_MARKERS)


def extract_snippet(content: str, line: int, radius: int = SNIPPET_RADIUS) -> str:
    """Return the lines from line-radius to line+radius (1-based, clamped to the file)."""
    lines = content.split("\n")
    start = max(0, line - radius - 1)
    end = min(len(lines), line + radius)
    return "\n".join(lines[start:end])


def fetch_snippet(repo, path: str, ref: str, line: int) -> str | None:
    """Best-effort code context around the commented line; None on any failure."""
    if not path or not line:
        return None
    try:
        contents = repo.get_contents(path, ref=ref)
        text = contents.decoded_content.decode("utf-8", errors="replace")
    except Exception as e:
        # Context only improves the answer; a missing file (renamed, deleted,
        # too large for the contents API) should not block the reply.
        logger.warning("Could not fetch %s@%s for reply context: %s", path, ref[:7], e)
        return None
    return extract_snippet(text, line)


def _react(pr, comment_id: int) -> None:
    try:
        pr.get_review_comment(comment_id).create_reaction("eyes")
    except Exception as e:
        logger.debug("Could not add reaction to comment %s: %s", comment_id, e)


def respond_to_comment(
    repo,
    pr,
    comment: dict,
    head_sha: str,
    reviewer: BaseReviewer,
    ledger: Ledger,
    organization_id: int,
    pull_request_url: str | None = None,
    react: bool = True,
) -> ReplyOutcome:
    """Post a threaded AI answer to a reply on one of the bot's review comments.

    ``comment`` is the ``comment`` object from a pull_request_review_comment
    webhook payload. GitHub failures while fetching the parent comment or
    posting the reply propagate; everything else degrades.
    """
    parent_id = comment.get("in_reply_to_id")
    if not parent_id:
        return ReplyOutcome(status="ignored", message="Only processing replies to comments")

    # Checked before any API call so the bot never answers itself.
    if (comment.get("user") or {}).get("type") == "Bot":
        return ReplyOutcome(status="ignored", message="Reply is from bot itself")

    parent = pr.get_review_comment(parent_id)
    if not is_ai_comment(parent):
        return ReplyOutcome(status="ignored", message="Original comment was not from AI bot")

    if react:
        _react(pr, comment["id"])

    path = comment.get("path")
    line = comment.get("line") or comment.get("original_line") or 0
    snippet = fetch_snippet(repo, path, head_sha or pr.head.sha, line)

    user_comment = comment.get("body") or ""
    estimated = estimate_reply_tokens(parent.body or "", user_comment, snippet)
    if not ledger.reserve(organization_id, estimated):
        logger.warning("Organization %s is over its token budget; declining reply", organization_id)
        pr.create_review_comment_reply(comment["id"], BUDGET_EXCEEDED_REPLY)
        return ReplyOutcome(status="skipped", message="Token limit exceeded for the past 24 hours")

    context = ReplyContext(filename=path, pull_request_url=pull_request_url, code_snippet=snippet)
    try:
        answer = reviewer.generate_comment_response(parent.body or "", user_comment, context).response
    except ProviderError as e:
        logger.error("Reply generation failed for comment %s: %s", comment["id"], e)
        answer = PROVIDER_FAILURE_REPLY

    pr.create_review_comment_reply(comment["id"], f"{answer}\n\n{AI_COMMENT_MARKER}")
    return ReplyOutcome(status="responded", message="AI response posted successfully")
