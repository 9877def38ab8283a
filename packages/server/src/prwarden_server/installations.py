"""Installation and repository lifecycle: provisioning tenants and their repositories."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from prwarden_store.base import BaseStore
from prwarden_store.models import BatchReport, Organization

logger = logging.getLogger(__name__)


@dataclass
class RepositoryListing:
    """The repositories to provision, and where the list came from."""

    repositories: list[dict] = field(default_factory=list)
    source: str = "payload"  # "payload" | "api"
    fallback_reason: str | None = None


def resolve_installation_repositories(
    payload_repos: list[dict] | None,
    enumerate_fn: Callable[[], list[dict]],
) -> RepositoryListing:
    """Use the webhook's repository list, or enumerate via the API when it is empty.

    GitHub omits the list for installations granted access to all
    repositories. If enumeration fails the (empty) payload list is kept and
    the failure is recorded as the fallback reason.
    """
    payload_repos = list(payload_repos or [])
    if payload_repos:
        return RepositoryListing(repositories=payload_repos, source="payload")

    try:
        return RepositoryListing(repositories=list(enumerate_fn()), source="api")
    except Exception as e:
        logger.warning("Could not enumerate installation repositories: %s", e)
        return RepositoryListing(repositories=payload_repos, source="payload", fallback_reason=str(e))


def provision_organization(store: BaseStore, installation: dict) -> Organization:
    """Create or update the organization for an installation payload."""
    account = installation.get("account") or {}
    account_type = "USER" if account.get("type") == "User" else "TEAM"
    return store.upsert_organization(
        installation_id=installation["id"],
        name=account.get("login") or str(installation["id"]),
        description=account.get("description") or "",
        url=account.get("html_url") or "",
        avatar_url=account.get("avatar_url") or "",
        account_type=account_type,
    )


def upsert_repositories(
    store: BaseStore,
    organization_id: int,
    repositories: list[dict],
    refresh_metadata: bool = True,
) -> BatchReport:
    """Upsert and enable each repository, collecting a per-repository result.

    Repositories are written one at a time so one bad entry never blocks the
    rest.
    """
    report = BatchReport()
    for repo in repositories:
        key = repo.get("full_name") or repo.get("id")
        try:
            store.upsert_repository(
                organization_id=organization_id,
                external_id=repo["id"],
                name=repo.get("name") or "",
                full_name=repo.get("full_name") or "",
                description=repo.get("description") or "",
                url=repo.get("html_url") or f"https://github.com/{repo.get('full_name', '')}",
                private=bool(repo.get("private", False)),
                refresh_metadata=refresh_metadata,
            )
        except Exception as e:
            logger.error("Failed to upsert repository %s: %s", key, e)
            report.add_failed(key, str(e))
        else:
            report.add_ok(key)
    return report


def disable_repositories(store: BaseStore, repositories: list[dict]) -> BatchReport:
    """Disable each repository by its GitHub id, collecting a per-repository result."""
    report = BatchReport()
    for repo in repositories:
        key = repo.get("full_name") or repo.get("id")
        try:
            changed = store.disable_repository(repo["id"])
        except Exception as e:
            logger.error("Failed to disable repository %s: %s", key, e)
            report.add_failed(key, str(e))
            continue
        if changed:
            report.add_ok(key)
        else:
            report.add_failed(key, "not found")
    return report
