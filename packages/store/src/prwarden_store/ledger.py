"""Per-organization token budget over a trailing 24-hour window."""

from __future__ import annotations

import logging

from prwarden_store.base import BaseStore

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LIMIT = 1_000_000
WINDOW_SECONDS = 24 * 60 * 60


class TokenLedger:
    """Reserve estimated tokens against an organization's rolling ceiling.

    A reservation is an append-only usage record written only when the
    trailing window's sum plus the estimate stays within the ceiling. The
    store performs the read and the write in one transaction.
    """

    def __init__(self, store: BaseStore, limit: int = DEFAULT_TOKEN_LIMIT, window_seconds: float = WINDOW_SECONDS):
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise ValueError(f"Token limit must be a positive integer, got {limit!r}")
        self.store = store
        self.limit = limit
        self.window_seconds = window_seconds

    def reserve(self, organization_id: int, estimated_tokens: int) -> bool:
        """Return True and record the estimate if it fits; False (nothing written) otherwise."""
        if estimated_tokens < 0:
            raise ValueError(f"Token estimate must not be negative, got {estimated_tokens}")
        ok = self.store.reserve_tokens(organization_id, estimated_tokens, self.limit, self.window_seconds)
        if ok:
            logger.debug("Reserved %d tokens for organization %s", estimated_tokens, organization_id)
        return ok

    def usage(self, organization_id: int) -> int:
        return self.store.token_usage(organization_id, self.window_seconds)

    def remaining(self, organization_id: int) -> int:
        return max(0, self.limit - self.usage(organization_id))
