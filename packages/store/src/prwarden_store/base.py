"""Abstract store interface.

The webhook server depends on BaseStore, not on a concrete backend, so
backends (SQLite today, Postgres later) are swappable without touching the
router.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prwarden_store.models import Member, Organization, Repository


class BaseStore(ABC):
    """Persistence for tenants, repositories, token usage and webhook deliveries.

    Invariants every backend must keep:
    - one organization per installation id (upsert key);
    - repository external ids are unique, and repositories are disabled,
      never deleted;
    - reserve_tokens is atomic with respect to concurrent callers.
    """

    @abstractmethod
    def upsert_organization(
        self,
        installation_id: int,
        name: str,
        description: str = "",
        url: str = "",
        avatar_url: str = "",
        account_type: str = "TEAM",
    ) -> Organization:
        """Create or update the organization for an installation."""

    @abstractmethod
    def get_organization_by_installation(self, installation_id: int) -> Organization | None:
        """Return the organization for an installation, or None."""

    @abstractmethod
    def set_plan(self, organization_id: int, plan: str) -> None:
        """Set the organization's billing plan ("free" or "paid")."""

    @abstractmethod
    def upsert_member(self, organization_id: int, login: str, role: str = "member") -> Member:
        """Create or update a member of an organization."""

    @abstractmethod
    def upsert_repository(
        self,
        organization_id: int,
        external_id: int,
        name: str,
        full_name: str,
        description: str = "",
        url: str = "",
        private: bool = False,
        refresh_metadata: bool = True,
    ) -> Repository:
        """Create a repository, or re-enable it (and optionally refresh its metadata)."""

    @abstractmethod
    def get_repository(self, external_id: int) -> Repository | None:
        """Return a repository by its GitHub id, or None."""

    @abstractmethod
    def list_repositories(self, organization_id: int) -> list[Repository]:
        """Return every repository of an organization, enabled or not."""

    @abstractmethod
    def disable_repository(self, external_id: int) -> int:
        """Disable a repository by GitHub id. Returns the number of rows changed."""

    @abstractmethod
    def disable_installation_repositories(self, installation_id: int) -> int:
        """Disable every repository of an installation. Returns the number of rows changed."""

    @abstractmethod
    def reserve_tokens(self, organization_id: int, token_count: int, limit: int, window_seconds: float) -> bool:
        """Record token_count if the trailing window's usage plus it stays within limit.

        The read and the conditional write must happen atomically. On
        rejection nothing is written.
        """

    @abstractmethod
    def token_usage(self, organization_id: int, window_seconds: float) -> int:
        """Sum of tokens recorded for the organization within the trailing window."""

    @abstractmethod
    def record_delivery(self, delivery_id: str) -> bool:
        """Remember a webhook delivery id. Returns False if it was already recorded."""

    @abstractmethod
    def forget_delivery(self, delivery_id: str) -> None:
        """Drop a recorded delivery id so a redelivery of it is processed again."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional: subclasses that need cleanup should override this.
        Default is a no-op so callers can always call close() safely.
        """
