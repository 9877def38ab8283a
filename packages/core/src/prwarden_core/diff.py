"""Unified-diff arithmetic for placing inline review comments.

The model is asked to reference lines by their position inside the diff it
was shown, counted from 1 at the first line below the first ``@@`` header and
continuing across hunks (hunk headers themselves are not counted). GitHub's
review API, on the other hand, wants absolute line numbers in the new file,
and rejects any line that is not visible in the pull request diff. The two
functions below translate between those views; ``reconcile_comments`` applies
both before a comment is trusted.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Iterator

if TYPE_CHECKING:
    from prwarden_core.providers.base import LineComment

logger = logging.getLogger(__name__)

HUNK_HEADER_RE = re.compile(r"^@@\s*-(\d+)(?:,(\d+))?\s*\+(\d+)(?:,(\d+))?\s*@@")


@dataclass
class FileChange:
    """One file of a pull request (or commit comparison) as reported by GitHub.

    Rebuilt for every event and never persisted.
    """

    filename: str
    status: str  # "added" | "modified" | "removed" | "renamed" | ...
    additions: int = 0
    deletions: int = 0
    changes: int = 0
    patch: str | None = None

    @classmethod
    def from_github(cls, f) -> FileChange:
        """Build from a PyGithub File object (PR files and compare results share the shape)."""
        return cls(
            filename=f.filename,
            status=f.status,
            additions=f.additions or 0,
            deletions=f.deletions or 0,
            changes=f.changes or 0,
            patch=f.patch,
        )


@dataclass
class InlineComment:
    """A model comment that survived reconciliation, anchored to an absolute line."""

    path: str
    line: int
    comment: str
    suggestion: str = ""
    side: str = "RIGHT"


def _walk(patch: str) -> Iterator[tuple[str, int | None]]:
    """Yield (kind, new_file_line) for every hunk header and counted line.

    kind is "@" for a hunk header (carrying the hunk's first new-file line),
    or "+", "-", " " for diff lines. new_file_line is None for removed lines.
    Lines before the first hunk header, "\\ No newline at end of file"
    markers and anything unrecognised are skipped.
    """
    file_line: int | None = None
    for line in patch.split("\n"):
        match = HUNK_HEADER_RE.match(line)
        if match:
            file_line = int(match.group(3))
            yield "@", file_line
            continue
        if file_line is None:
            continue
        if line.startswith("+"):
            yield "+", file_line
            file_line += 1
        elif line.startswith("-"):
            yield "-", None
        elif line.startswith(" "):
            yield " ", file_line
            file_line += 1


def map_diff_line_to_absolute(patch: str | None, diff_line: int) -> int | None:
    """Return the new-file line shown at diff-relative position diff_line.

    Added and context lines advance both counters; removed lines advance only
    the diff counter. A position that lands on a removed line maps to the
    last new-file line emitted before it, which is what a reader pointing at
    that spot in the rendered diff would mean. The position counts from the
    start of the patch and is not reset at later hunk headers, which are not
    counted themselves. Returns None if the patch is empty or shorter than
    diff_line.
    """
    if not patch or not patch.strip() or diff_line < 1:
        return None

    diff_position = 0
    last_file_line = 0
    for kind, file_line in _walk(patch):
        if kind == "@":
            last_file_line = file_line - 1
            continue
        diff_position += 1
        if file_line is not None:
            last_file_line = file_line
        if diff_position == diff_line:
            return last_file_line
    return None


def is_line_in_diff(patch: str | None, absolute_line: int) -> bool:
    """Return True if absolute_line is shown as an added or context line in some hunk."""
    if not patch or not patch.strip():
        return False
    return any(kind in ("+", " ") and file_line == absolute_line for kind, file_line in _walk(patch))


def reconcile_comments(
    comments: Iterable[LineComment],
    files: Iterable[FileChange],
    validation_files: Iterable[FileChange] | None = None,
) -> list[InlineComment]:
    """Keep only the comments GitHub will accept, translated to absolute lines.

    ``files`` are the patches the model was shown, used to map diff-relative
    lines. ``validation_files`` are the pull request's full patches; when
    given (incremental runs) the mapped line must also be visible there,
    because that is the diff GitHub anchors review comments to.
    """
    patches = {f.filename: f.patch for f in files}
    visible = {f.filename: f.patch for f in validation_files} if validation_files is not None else patches

    results: list[InlineComment] = []
    for comment in comments:
        patch = patches.get(comment.file)
        if not patch:
            logger.debug("Dropping comment on %s: file has no patch in this review", comment.file)
            continue
        absolute = map_diff_line_to_absolute(patch, comment.line)
        if absolute is None:
            logger.debug("Dropping comment on %s: diff line %d is outside the patch", comment.file, comment.line)
            continue
        if not is_line_in_diff(visible.get(comment.file), absolute):
            logger.debug("Dropping comment on %s: line %d is not part of the diff", comment.file, absolute)
            continue
        results.append(
            InlineComment(
                path=comment.file,
                line=absolute,
                comment=comment.comment,
                suggestion=comment.suggestion or "",
            )
        )
    return results
