"""Token cost estimation for budget reservations.

These are rough (about four characters per token) and are
charged before the model is called; the ledger only needs a number that
grows with the size of the request. A review is charged only for the files that
reach the prompt, the ones BaseReviewer.select_reviewable() keeps.
"""

from __future__ import annotations

import math
from typing import Iterable

from prwarden_core.diff import FileChange

REVIEW_BASELINE_TOKENS = 1000
CHARS_PER_TOKEN = 4


def estimate_review_tokens(files: Iterable[FileChange]) -> int:
    """Baseline for the prompt scaffold plus each patch's length / 4, rounded up per file."""
    return REVIEW_BASELINE_TOKENS + sum(math.ceil(len(f.patch or "") / CHARS_PER_TOKEN) for f in files)


def estimate_reply_tokens(original_comment: str, user_comment: str, code_snippet: str | None = None) -> int:
    total_chars = len(original_comment or "") + len(user_comment or "") + len(code_snippet or "")
    return math.ceil(total_chars / CHARS_PER_TOKEN)
