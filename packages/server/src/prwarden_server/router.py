"""Event Router: decides what to do with each verified GitHub webhook event.

The router owns no clients. build_router() in prwarden_server.app constructs
the store, ledger, GitHub App client and AI reviewer once at process start
and injects them here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from prwarden_core.gh.app import GitHubApp
from prwarden_core.gh.pull_request import get_pull
from prwarden_core.providers.base import BaseReviewer
from prwarden_core.replies import respond_to_comment
from prwarden_core.reviewer import run_review
from prwarden_server.installations import (
    disable_repositories,
    provision_organization,
    resolve_installation_repositories,
    upsert_repositories,
)
from prwarden_store.base import BaseStore
from prwarden_store.ledger import TokenLedger
from prwarden_store.models import BatchReport

logger = logging.getLogger(__name__)

REVIEW_ACTIONS = ("opened", "synchronize")


@dataclass
class RouteResult:
    status: str
    message: str | None = None
    report: BatchReport | None = None

    def to_dict(self) -> dict:
        data = {"status": self.status}
        if self.message is not None:
            data["message"] = self.message
        return data


NOT_HANDLED = RouteResult("ignored", "Event not handled")


class EventRouter:
    def __init__(
        self,
        store: BaseStore,
        github_app: GitHubApp,
        reviewer: BaseReviewer,
        ledger: TokenLedger,
        config: dict | None = None,
    ):
        self.store = store
        self.github_app = github_app
        self.reviewer = reviewer
        self.ledger = ledger
        self.config = config or {}

    def dispatch(self, event_type: str | None, payload: dict) -> RouteResult:
        """Route one event. Never raises: failures become an "error" result."""
        action = payload.get("action")
        try:
            if event_type:
                result = self._dispatch_typed(event_type, action, payload)
            else:
                result = self._dispatch_legacy(action, payload)
        except Exception as e:
            logger.exception("Error handling %s/%s event", event_type or "untyped", action)
            return RouteResult("error", str(e))

        logger.info("%s/%s → %s %s", event_type or "untyped", action, result.status, result.message or "")
        return result

    def _dispatch_typed(self, event_type: str, action: str | None, payload: dict) -> RouteResult:
        if event_type == "installation":
            if action == "created" and payload.get("installation"):
                return self.handle_installation_created(payload)
            if action == "deleted" and payload.get("installation"):
                return self.handle_installation_deleted(payload)

        elif event_type == "installation_repositories":
            if action == "added" and _repositories(payload, "added") is not None:
                return self.handle_repositories_added(payload)
            if action == "removed" and _repositories(payload, "removed") is not None:
                return self.handle_repositories_removed(payload)

        elif event_type == "pull_request":
            if action in REVIEW_ACTIONS and payload.get("pull_request"):
                return self.handle_pull_request(payload)

        elif event_type == "pull_request_review_comment":
            if action == "created" and payload.get("comment") and payload.get("repository"):
                return self.handle_review_comment(payload)
            return RouteResult("ignored", "Only review comment creation events are processed")

        return NOT_HANDLED

    def _dispatch_legacy(self, action: str | None, payload: dict) -> RouteResult:
        """Action-only dispatch for deliveries that arrive without an event-type header."""
        if action == "created" and payload.get("installation"):
            return self.handle_installation_created(payload)
        if action == "deleted" and payload.get("installation"):
            return self.handle_installation_deleted(payload)
        if action in REVIEW_ACTIONS and payload.get("pull_request"):
            return self.handle_pull_request(payload)
        if action == "added" and _repositories(payload, "added") is not None:
            return self.handle_repositories_added(payload)
        if action == "removed" and _repositories(payload, "removed") is not None:
            return self.handle_repositories_removed(payload)
        if not action and payload.get("repository") and payload.get("commits"):
            return RouteResult("ignored", "Push event ignored (no PR to review)")
        return NOT_HANDLED

    # ------------------------------------------------------------------ #
    # Installation lifecycle                                              #
    # ------------------------------------------------------------------ #

    def handle_installation_created(self, payload: dict) -> RouteResult:
        installation = payload["installation"]
        installation_id = installation["id"]
        organization = provision_organization(self.store, installation)

        sender = payload.get("sender") or {}
        if sender.get("login"):
            try:
                # The installing user administers the tenant.
                self.store.upsert_member(organization.id, sender["login"], role="admin")
            except Exception as e:
                logger.error("Failed to add %s as admin of %s: %s", sender["login"], organization.name, e)

        listing = resolve_installation_repositories(
            payload.get("repositories"),
            lambda: self.github_app.list_installation_repositories(installation_id),
        )
        if listing.fallback_reason:
            logger.warning(
                "Installation %s: repository enumeration failed (%s); using payload list",
                installation_id,
                listing.fallback_reason,
            )

        report = upsert_repositories(self.store, organization.id, listing.repositories)
        logger.info("Installation %s (%s): %s", installation_id, listing.source, report.summary())
        return RouteResult("installation_created", report=report)

    def handle_installation_deleted(self, payload: dict) -> RouteResult:
        installation_id = payload["installation"]["id"]
        disabled = self.store.disable_installation_repositories(installation_id)
        logger.info("Installation %s removed; disabled %d repositories", installation_id, disabled)
        return RouteResult("installation_deleted")

    def handle_repositories_added(self, payload: dict) -> RouteResult:
        installation_id = payload["installation"]["id"]
        organization = self.store.get_organization_by_installation(installation_id)
        if organization is None:
            raise LookupError(f"Organization not found for installation {installation_id}")

        # Existing rows are only re-enabled; their metadata is left as recorded.
        report = upsert_repositories(
            self.store,
            organization.id,
            _repositories(payload, "added") or [],
            refresh_metadata=False,
        )
        logger.info("Installation %s: added %s", installation_id, report.summary())
        return RouteResult("repositories_added", report=report)

    def handle_repositories_removed(self, payload: dict) -> RouteResult:
        report = disable_repositories(self.store, _repositories(payload, "removed") or [])
        logger.info("Removed %s", report.summary())
        return RouteResult("repositories_removed", report=report)

    # ------------------------------------------------------------------ #
    # Pull requests                                                       #
    # ------------------------------------------------------------------ #

    def handle_pull_request(self, payload: dict) -> RouteResult:
        repository = self.store.get_repository(payload["repository"]["id"])
        if repository is None or not repository.is_enabled:
            return RouteResult("skipped", "Repository not found or disabled")

        installation_id = payload["installation"]["id"]
        organization = self.store.get_organization_by_installation(installation_id)
        if repository.private and (organization is None or organization.plan != "paid"):
            return RouteResult("requires_upgrade", "Private repository requires paid plan")

        pr_payload = payload["pull_request"]
        repo = self.github_app.get_repo(installation_id, payload["repository"]["full_name"])
        pr = get_pull(repo, pr_payload["number"])

        outcome = run_review(
            repo,
            pr,
            action=payload["action"],
            reviewer=self.reviewer,
            ledger=self.ledger,
            organization_id=repository.organization_id,
            head_sha=(pr_payload.get("head") or {}).get("sha"),
            exclude=self.config.get("exclude"),
        )
        if outcome.fallback_reason:
            logger.warning("PR #%s reviewed in full: %s", pr_payload["number"], outcome.fallback_reason)
        return RouteResult(outcome.status, outcome.message)

    def handle_review_comment(self, payload: dict) -> RouteResult:
        if not payload.get("pull_request"):
            return RouteResult("error", "Missing required comment data")

        repository = self.store.get_repository(payload["repository"]["id"])
        if repository is None or not repository.is_enabled:
            return RouteResult("skipped", "Repository not found or disabled")

        comment = payload["comment"]
        # Checked here too so non-replies never cost a GitHub round trip.
        if not comment.get("in_reply_to_id"):
            return RouteResult("ignored", "Only processing replies to comments")

        pr_payload = payload["pull_request"]
        repo = self.github_app.get_repo(payload["installation"]["id"], payload["repository"]["full_name"])
        pr = get_pull(repo, pr_payload["number"])

        outcome = respond_to_comment(
            repo,
            pr,
            comment,
            head_sha=(pr_payload.get("head") or {}).get("sha") or comment.get("commit_id"),
            reviewer=self.reviewer,
            ledger=self.ledger,
            organization_id=repository.organization_id,
            pull_request_url=pr_payload.get("html_url"),
            react=self.config.get("react_to_replies", True),
        )
        return RouteResult(outcome.status, outcome.message)


def _repositories(payload: dict, kind: str) -> list[dict] | None:
    """Repositories named by an installation_repositories event.

    GitHub sends ``repositories_added``/``repositories_removed``; older
    deliveries carry a plain ``repositories`` list.
    """
    repos = payload.get(f"repositories_{kind}")
    if repos is None:
        repos = payload.get("repositories")
    return repos
