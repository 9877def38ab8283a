"""Tests for answering replies to prwarden's review comments."""

import types
from unittest.mock import MagicMock

import pytest

from prwarden_core.providers.base import BaseReviewer, CommentResponse, ProviderError
from prwarden_core.publisher import AI_COMMENT_MARKER
from prwarden_core.replies import (
    BUDGET_EXCEEDED_REPLY,
    PROVIDER_FAILURE_REPLY,
    extract_snippet,
    fetch_snippet,
    is_ai_comment,
    respond_to_comment,
)

HEAD = "1" * 40


class StubReviewer(BaseReviewer):
    def __init__(self, answer="Because it leaks.", error=None):
        self.answer = answer
        self.error = error
        self.calls = []

    def generate_comment_response(self, original_comment, user_comment, context=None):
        self.calls.append((original_comment, user_comment, context))
        if self.error:
            raise self.error
        return CommentResponse(response=self.answer)

    def _call_api(self, system_prompt, user_prompt, *, max_tokens, temperature):
        raise AssertionError("not used")


class StubLedger:
    def __init__(self, allow=True):
        self.allow = allow
        self.reservations = []

    def reserve(self, organization_id, estimated_tokens):
        self.reservations.append((organization_id, estimated_tokens))
        return self.allow


def _parent(body=f"Close the file.\n\n{AI_COMMENT_MARKER}", user_type="Bot"):
    return types.SimpleNamespace(body=body, user=types.SimpleNamespace(type=user_type))


def _comment(**overrides):
    comment = {
        "id": 200,
        "in_reply_to_id": 100,
        "body": "Why?",
        "path": "src/app.py",
        "line": 3,
        "user": {"login": "dev", "type": "User"},
    }
    comment.update(overrides)
    return comment


def _repo_with_file(text):
    repo = MagicMock()
    repo.get_contents.return_value = types.SimpleNamespace(decoded_content=text.encode())
    return repo


def _pr(parent):
    pr = MagicMock()
    pr.head.sha = HEAD
    # The parent lookup and the reaction lookup both go through get_review_comment.
    pr.get_review_comment.return_value = parent
    return pr


class TestIsAiComment:
    def test_bot_author(self):
        assert is_ai_comment(_parent(body="plain", user_type="Bot")) is True

    @pytest.mark.parametrize("body", [AI_COMMENT_MARKER, "## AI Code Review", "AI generated suggestion"])
    def test_marker_in_body(self, body):
        assert is_ai_comment(_parent(body=body, user_type="User")) is True

    def test_human_comment(self):
        assert is_ai_comment(_parent(body="Please rename this.", user_type="User")) is False

    def test_none_body(self):
        assert is_ai_comment(types.SimpleNamespace(body=None, user=None)) is False


class TestExtractSnippet:
    CONTENT = "\n".join(f"line{i}" for i in range(1, 21))

    def test_window_around_line(self):
        snippet = extract_snippet(self.CONTENT, 10)
        assert snippet.split("\n") == [f"line{i}" for i in range(5, 16)]

    def test_clamped_at_start(self):
        assert extract_snippet(self.CONTENT, 2).split("\n")[0] == "line1"

    def test_clamped_at_end(self):
        assert extract_snippet(self.CONTENT, 19).split("\n")[-1] == "line20"


class TestFetchSnippet:
    def test_returns_window(self):
        repo = _repo_with_file("a\nb\nc")
        assert fetch_snippet(repo, "src/app.py", HEAD, 2) == "a\nb\nc"
        repo.get_contents.assert_called_once_with("src/app.py", ref=HEAD)

    def test_failure_returns_none(self):
        repo = MagicMock()
        repo.get_contents.side_effect = RuntimeError("too large")
        assert fetch_snippet(repo, "src/app.py", HEAD, 2) is None

    def test_missing_line_returns_none(self):
        repo = MagicMock()
        assert fetch_snippet(repo, "src/app.py", HEAD, 0) is None
        repo.get_contents.assert_not_called()


class TestRespondToComment:
    def test_not_a_reply_is_ignored(self):
        pr = _pr(_parent())
        outcome = respond_to_comment(
            MagicMock(), pr, _comment(in_reply_to_id=None), HEAD, StubReviewer(), StubLedger(), 1
        )
        assert outcome.status == "ignored"
        pr.get_review_comment.assert_not_called()

    def test_bot_reply_ignored_before_any_api_call(self):
        pr = _pr(_parent())
        comment = _comment(user={"login": "prwarden[bot]", "type": "Bot"})
        outcome = respond_to_comment(MagicMock(), pr, comment, HEAD, StubReviewer(), StubLedger(), 1)
        assert outcome.status == "ignored"
        assert outcome.message == "Reply is from bot itself"
        pr.get_review_comment.assert_not_called()

    def test_reply_to_human_comment_ignored(self):
        pr = _pr(_parent(body="Nit: spacing", user_type="User"))
        reviewer = StubReviewer()
        outcome = respond_to_comment(MagicMock(), pr, _comment(), HEAD, reviewer, StubLedger(), 1)
        assert outcome.status == "ignored"
        assert outcome.message == "Original comment was not from AI bot"
        assert reviewer.calls == []
        pr.create_review_comment_reply.assert_not_called()

    def test_responds_with_threaded_reply(self):
        repo = _repo_with_file("import os\nf = open('x')\nprint(f.read())\n")
        pr = _pr(_parent())
        reviewer = StubReviewer()
        ledger = StubLedger()

        outcome = respond_to_comment(
            repo, pr, _comment(), HEAD, reviewer, ledger, 5, pull_request_url="https://github.com/o/r/pull/3"
        )

        assert outcome.status == "responded"
        assert outcome.message == "AI response posted successfully"
        pr.create_review_comment_reply.assert_called_once_with(200, f"Because it leaks.\n\n{AI_COMMENT_MARKER}")
        original, user_comment, context = reviewer.calls[0]
        assert original.startswith("Close the file.")
        assert user_comment == "Why?"
        assert context.filename == "src/app.py"
        assert context.pull_request_url == "https://github.com/o/r/pull/3"
        assert "f = open('x')" in context.code_snippet
        assert ledger.reservations and ledger.reservations[0][0] == 5

    def test_adds_eyes_reaction(self):
        parent = MagicMock(body=AI_COMMENT_MARKER)
        pr = _pr(parent)
        respond_to_comment(_repo_with_file("x"), pr, _comment(), HEAD, StubReviewer(), StubLedger(), 1)
        pr.get_review_comment.assert_any_call(200)
        parent.create_reaction.assert_called_once_with("eyes")

    def test_reaction_disabled(self):
        parent = MagicMock(body=AI_COMMENT_MARKER)
        pr = _pr(parent)
        respond_to_comment(_repo_with_file("x"), pr, _comment(), HEAD, StubReviewer(), StubLedger(), 1, react=False)
        parent.create_reaction.assert_not_called()

    def test_reaction_failure_does_not_block_reply(self):
        parent = MagicMock(body=AI_COMMENT_MARKER)
        parent.create_reaction.side_effect = RuntimeError("forbidden")
        pr = _pr(parent)
        outcome = respond_to_comment(_repo_with_file("x"), pr, _comment(), HEAD, StubReviewer(), StubLedger(), 1)
        assert outcome.status == "responded"

    def test_missing_snippet_still_replies(self):
        repo = MagicMock()
        repo.get_contents.side_effect = RuntimeError("not found")
        reviewer = StubReviewer()
        outcome = respond_to_comment(repo, _pr(_parent()), _comment(), HEAD, reviewer, StubLedger(), 1)
        assert outcome.status == "responded"
        assert reviewer.calls[0][2].code_snippet is None

    def test_budget_exceeded_posts_apology(self):
        pr = _pr(_parent())
        reviewer = StubReviewer()
        outcome = respond_to_comment(
            _repo_with_file("x"), pr, _comment(), HEAD, reviewer, StubLedger(allow=False), 1
        )
        assert outcome.status == "skipped"
        assert reviewer.calls == []
        pr.create_review_comment_reply.assert_called_once_with(200, BUDGET_EXCEEDED_REPLY)

    def test_provider_failure_posts_fallback_text(self):
        pr = _pr(_parent())
        reviewer = StubReviewer(error=ProviderError("down"))
        outcome = respond_to_comment(_repo_with_file("x"), pr, _comment(), HEAD, reviewer, StubLedger(), 1)
        assert outcome.status == "responded"
        body = pr.create_review_comment_reply.call_args.args[1]
        assert body.startswith(PROVIDER_FAILURE_REPLY)

    def test_github_failure_propagates(self):
        pr = _pr(_parent())
        pr.create_review_comment_reply.side_effect = RuntimeError("502")
        with pytest.raises(RuntimeError):
            respond_to_comment(_repo_with_file("x"), pr, _comment(), HEAD, StubReviewer(), StubLedger(), 1)


def test_decoded_content_with_invalid_utf8_is_replaced():
    repo = MagicMock()
    repo.get_contents.return_value = types.SimpleNamespace(decoded_content=b"\xff\xfe")
    assert fetch_snippet(repo, "bin.dat", HEAD, 1) is not None
