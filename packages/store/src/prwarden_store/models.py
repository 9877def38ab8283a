"""Persistent records for tenants, repositories and token usage.

Decoupled from prwarden_core so the store layer can be used independently
and prwarden_core has no knowledge of persistence concerns.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Organization:
    """The tenant: one per GitHub App installation."""

    id: int
    installation_id: int
    name: str
    description: str = ""
    url: str = ""
    avatar_url: str = ""
    account_type: str = "TEAM"  # "USER" | "TEAM"
    plan: str = "free"  # "free" | "paid"


@dataclass
class Member:
    organization_id: int
    login: str
    role: str = "member"


@dataclass
class Repository:
    id: int
    external_id: int
    organization_id: int
    name: str
    full_name: str
    description: str = ""
    url: str = ""
    private: bool = False
    is_enabled: bool = True


@dataclass
class ItemResult:
    """Outcome for one item of a batch write."""

    key: str
    ok: bool
    reason: str | None = None


@dataclass
class BatchReport:
    """Per-item results of a batch write, so one failure never hides the rest."""

    items: list[ItemResult] = field(default_factory=list)

    def add_ok(self, key) -> None:
        self.items.append(ItemResult(key=str(key), ok=True))

    def add_failed(self, key, reason: str) -> None:
        self.items.append(ItemResult(key=str(key), ok=False, reason=reason))

    @property
    def succeeded(self) -> list[ItemResult]:
        return [i for i in self.items if i.ok]

    @property
    def failed(self) -> list[ItemResult]:
        return [i for i in self.items if not i.ok]

    def summary(self) -> str:
        text = f"{len(self.succeeded)}/{len(self.items)} repositories processed"
        if self.failed:
            text += "; failed: " + ", ".join(f"{i.key} ({i.reason})" for i in self.failed)
        return text
