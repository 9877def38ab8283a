"""Base reviewer implementing the Template Method pattern.

All providers share the same algorithms:
    generate_code_review()     → select_reviewable() → _build_review_prompt()
                               → _call_with_retry() → _call_api()   ← only this differs per provider
                               → _parse_review()
    generate_comment_response() → _build_reply_prompt() → _call_with_retry() → _call_api()

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response

Everything else (file filtering, prompt construction, JSON extraction and
retry logic) lives here so it is defined once and inherited consistently by
every provider. Callers see only the two public methods, so which vendor is
configured is invisible above this layer.
"""

from __future__ import annotations

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from prwarden_core.utils.code import is_reviewable

if TYPE_CHECKING:
    from prwarden_core.diff import FileChange

logger = logging.getLogger(__name__)

# Shared defaults; subclasses may override as class attributes if needed.
_MAX_RETRIES = 3
_MAX_TOKENS = 4096
_REPLY_MAX_TOKENS = 500

NO_REVIEWABLE_CHANGES = "No reviewable code changes found."

REVIEW_SYSTEM_PROMPT = (
    "You are an expert code reviewer. Analyze the provided git diff and provide constructive feedback."
)
REPLY_SYSTEM_PROMPT = (
    "You are an expert code reviewer and assistant. Respond helpfully and professionally to "
    "follow-up questions or comments about your code review feedback. Keep responses concise but informative."
)


class ProviderError(RuntimeError):
    """The AI backend could not produce a response."""

    provider = "ai"


@dataclass
class LineComment:
    """A comment the model attached to a diff-relative line of one file."""

    file: str
    line: int  # position inside the file's diff, NOT an absolute file line
    comment: str
    suggestion: str = ""


@dataclass
class CodeReview:
    overall_feedback: str
    line_comments: list[LineComment] = field(default_factory=list)


@dataclass
class CommentResponse:
    response: str


@dataclass
class ReplyContext:
    filename: str | None = None
    pull_request_url: str | None = None
    code_snippet: str | None = None


class BaseReviewer(ABC):
    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS
    REPLY_MAX_TOKENS: int = _REPLY_MAX_TOKENS
    TEMPERATURE: float = 0.2
    REPLY_TEMPERATURE: float = 0.3
    error_class: type[ProviderError] = ProviderError

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def generate_code_review(self, files: list[FileChange], exclude: list[str] | None = None) -> CodeReview:
        """Review a set of file diffs and return overall feedback plus line comments.

        Binary assets, build output and files without a patch are dropped
        first; if nothing is left the model is not called at all.
        """
        reviewable = self.select_reviewable(files, exclude)
        if not reviewable:
            return CodeReview(overall_feedback=NO_REVIEWABLE_CHANGES)

        raw = self._call_with_retry(
            REVIEW_SYSTEM_PROMPT,
            self._build_review_prompt(reviewable),
            max_tokens=self.MAX_TOKENS,
            temperature=self.TEMPERATURE,
        )
        return self._parse_review(raw)

    def generate_comment_response(
        self,
        original_comment: str,
        user_comment: str,
        context: ReplyContext | None = None,
    ) -> CommentResponse:
        """Answer a developer's reply to an earlier review comment."""
        raw = self._call_with_retry(
            REPLY_SYSTEM_PROMPT,
            self._build_reply_prompt(original_comment, user_comment, context),
            max_tokens=self.REPLY_MAX_TOKENS,
            temperature=self.REPLY_TEMPERATURE,
        )
        return CommentResponse(response=raw.strip())

    @staticmethod
    def select_reviewable(files: list[FileChange], exclude: list[str] | None = None) -> list[FileChange]:
        return [f for f in files if f.patch and is_reviewable(f.filename, exclude)]

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                                #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str, *, max_tokens: int, temperature: float) -> str:
        """Make a single API call and return the raw text response.

        This is the only method subclasses must implement. It should raise
        on failure; _call_with_retry handles retries and logging.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _call_with_retry(self, system_prompt: str, user_prompt: str, *, max_tokens: int, temperature: float) -> str:
        """Retry _call_api up to MAX_RETRIES times with exponential backoff.

        Raises the provider's error_class once every attempt has failed, or
        if the model returns no text.
        """
        for attempt in range(self.MAX_RETRIES):
            try:
                text = self._call_api(system_prompt, user_prompt, max_tokens=max_tokens, temperature=temperature)
                break
            except Exception as e:
                if attempt == self.MAX_RETRIES - 1:
                    logger.error(
                        "%s API failed after %d attempts: %s",
                        self.__class__.__name__,
                        self.MAX_RETRIES,
                        e,
                    )
                    raise self.error_class(f"{self.error_class.provider} request failed: {e}") from e
                delay = 2**attempt
                logger.warning(
                    "%s API error (attempt %d/%d): %s. Retrying in %ds...",
                    self.__class__.__name__,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                time.sleep(delay)

        if not text or not text.strip():
            raise self.error_class(f"No response from {self.error_class.provider}")
        return text

    def _build_review_prompt(self, files: list[FileChange]) -> str:
        """Build the user prompt for a multi-file review.

        Kept in base so both providers produce structurally identical prompts
        and the same line-numbering contract, which the reconciler relies on.
        """
        sections = []
        for f in files:
            sections.append(
                f"## File: {f.filename}\n"
                f"Status: {f.status}\n"
                f"Changes: +{f.additions} -{f.deletions}\n\n"
                f"```diff\n{f.patch}\n```\n"
            )
        body = "\n".join(sections)
        return f"""Please review the following code changes and provide brief, focused feedback. \
Keep comments concise and actionable:

{body}
Please provide your review in the following JSON format:
{{
  "overall_feedback": "Brief, focused summary of key points and suggestions",
  "line_comments": [
    {{
      "file": "filename",
      "line": 10,
      "comment": "Brief, specific feedback for this line",
      "suggestion": "Code suggestion if needed, otherwise empty string"
    }}
  ]
}}

Line numbering:
- "line" is the position of the line inside that file's diff above, NOT the line number in the file.
- Count from 1 at the first line below the first @@ header and keep counting across later hunks.
- Count added (+), removed (-) and unchanged lines; do not count @@ header lines.
- Only comment on added or unchanged lines.

IMPORTANT:
- Keep feedback brief and focused on important issues
- Only provide suggestions for significant improvements or bug fixes
- Each comment should be clear and actionable
- Suggestions must be valid, ready-to-commit code that replaces the commented line
- Do not return any text outside the JSON object"""

    def _build_reply_prompt(
        self,
        original_comment: str,
        user_comment: str,
        context: ReplyContext | None = None,
    ) -> str:
        prompt = f'I previously provided this code review feedback:\n\n"{original_comment}"\n\n'
        prompt += f'The developer has responded with:\n\n"{user_comment}"\n\n'

        if context and context.filename:
            prompt += f"Context: This is about the file {context.filename}\n\n"
        if context and context.pull_request_url:
            prompt += f"Pull request: {context.pull_request_url}\n\n"
        if context and context.code_snippet:
            prompt += f"Related code:\n```\n{context.code_snippet}\n```\n\n"

        prompt += (
            "Please provide a helpful response to the developer's comment. Be professional, constructive, "
            "and specific. If they're asking for clarification, provide it. If they're disagreeing, explain "
            "your reasoning. If they're asking for alternatives, suggest them. Keep the response concise but "
            "informative."
        )
        return prompt

    def _parse_review(self, raw: str) -> CodeReview:
        """Extract the first JSON object from the model's text.

        Models often wrap JSON in prose or markdown fences, so rather than
        loading the whole response we decode from the first "{" and ignore
        whatever follows the object. If that fails the raw text is still
        worth publishing, so it becomes the overall feedback.
        """
        cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip())
        start = cleaned.find("{")
        try:
            if start == -1:
                raise ValueError("no JSON object in response")
            parsed, _ = json.JSONDecoder().raw_decode(cleaned, start)
            if not isinstance(parsed, dict):
                raise ValueError("top-level JSON value is not an object")
        except ValueError:
            logger.warning(
                "%s: failed to parse response as JSON: %s",
                self.__class__.__name__,
                raw[:200],
            )
            return CodeReview(overall_feedback=raw)

        raw_comments = parsed.get("line_comments")
        if not isinstance(raw_comments, list):
            raw_comments = []
        comments = []
        for item in raw_comments:
            comment = _to_line_comment(item)
            if comment is not None:
                comments.append(comment)
        return CodeReview(overall_feedback=str(parsed.get("overall_feedback") or ""), line_comments=comments)


def _to_line_comment(item) -> LineComment | None:
    if not isinstance(item, dict):
        return None
    file_name = item.get("file")
    text = item.get("comment")
    try:
        line = int(item.get("line"))
    except (TypeError, ValueError, OverflowError):
        return None
    if not file_name or not text or line < 1:
        return None
    suggestion = item.get("suggestion")
    return LineComment(
        file=str(file_name),
        line=line,
        comment=str(text),
        suggestion=suggestion if isinstance(suggestion, str) else str(suggestion or ""),
    )
