"""Core PR review orchestration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from prwarden_core.budget import estimate_review_tokens
from prwarden_core.diff import InlineComment, reconcile_comments
from prwarden_core.gh.pull_request import extract_changes, get_diff, get_last_reviewed_sha
from prwarden_core.providers.base import BaseReviewer
from prwarden_core.publisher import build_review_body, publish_review

logger = logging.getLogger(__name__)

BUDGET_EXCEEDED_REVIEW = (
    "Unable to process review - organization has exceeded their token limit for the past 24 hours. "
    "Please try again later."
)


class Ledger(Protocol):
    def reserve(self, organization_id: int, estimated_tokens: int) -> bool: ...


@dataclass
class ReviewOutcome:
    """Result returned by run_review, enough for the router to answer the webhook.

    Decoupled from prwarden_store so prwarden_core has no dependency on the
    store layer.
    """

    status: str  # "reviewed" | "skipped"
    message: str
    head_sha: str = ""
    mode: str = "full"
    fallback_reason: str | None = None
    estimated_tokens: int = 0
    comments: list[InlineComment] = field(default_factory=list)
    dropped_comments: int = 0


def run_review(
    repo,
    pr,
    action: str,
    reviewer: BaseReviewer,
    ledger: Ledger,
    organization_id: int,
    head_sha: str | None = None,
    exclude: list[str] | None = None,
) -> ReviewOutcome:
    """Run the review pipeline for one opened/synchronize event.

    Steps: skip commits already reviewed → extract the diff → reserve tokens
    → ask the model → reconcile its line references → publish one review.
    Policy outcomes (nothing new, over budget) are returned as "skipped";
    GitHub or model failures propagate to the caller.
    """
    head_sha = head_sha or pr.head.sha

    if get_last_reviewed_sha(pr) == head_sha:
        logger.info("PR #%s head %s already reviewed; skipping redelivered event", pr.number, head_sha[:7])
        return ReviewOutcome(status="skipped", message="Head commit already reviewed", head_sha=head_sha)

    extraction = extract_changes(repo, pr, action, head_sha)
    if not extraction.files:
        return ReviewOutcome(
            status="skipped",
            message="No new changes to review in this commit",
            head_sha=head_sha,
            mode=extraction.mode,
        )

    # Nothing reviewable means the backend short-circuits without a model
    # call, so there is nothing to charge against the budget.
    estimated = 0
    reviewable = reviewer.select_reviewable(extraction.files, exclude)
    if reviewable:
        estimated = estimate_review_tokens(reviewable)
        if not ledger.reserve(organization_id, estimated):
            logger.warning("Organization %s is over its token budget; declining review", organization_id)
            publish_review(repo, pr, head_sha, build_review_body(BUDGET_EXCEEDED_REVIEW), [])
            return ReviewOutcome(
                status="skipped",
                message="Token limit exceeded for the past 24 hours",
                head_sha=head_sha,
                mode=extraction.mode,
                estimated_tokens=estimated,
            )

    review = reviewer.generate_code_review(extraction.files, exclude)

    # Incremental patches are what the model saw, but GitHub anchors review
    # comments to the PR-wide diff, so visibility is checked against that.
    validation_files = get_diff(pr) if extraction.mode == "incremental" else None
    inline = reconcile_comments(review.line_comments, extraction.files, validation_files)
    dropped = len(review.line_comments) - len(inline)
    if dropped:
        logger.info("Dropped %d comment(s) that do not map to a line in the diff", dropped)

    body = build_review_body(review.overall_feedback, head_sha, incremental=action == "synchronize")
    publish_review(repo, pr, head_sha, body, inline)

    return ReviewOutcome(
        status="reviewed",
        message="AI review posted successfully",
        head_sha=head_sha,
        mode=extraction.mode,
        fallback_reason=extraction.fallback_reason,
        estimated_tokens=estimated,
        comments=inline,
        dropped_comments=dropped,
    )
