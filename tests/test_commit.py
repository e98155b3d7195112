"""Tests for the commit flows."""

import pytest

from conftest import FakeLLM, RecordingTransport, final
from gitflash.handlers.commit import CommitError, CommitHandler
from gitflash.models import OperationResult
from gitflash.runner import OperationRunner


def git_ok(stdout=""):
    return OperationResult.success({"stdout": stdout, "stderr": "", "return_code": 0})


def git_failed(stderr):
    return OperationResult.success({"stdout": "", "stderr": stderr, "return_code": 128})


@pytest.fixture
def make_handler(test_project, quiet_console):
    """Build a commit handler over scripted git results."""

    def _make(results, dry_run=False, llm=None):
        transport = RecordingTransport(results=results)
        runner = OperationRunner(transport, test_project, dry_run=dry_run, output=quiet_console)
        return CommitHandler(runner, llm), transport

    return _make


def commands(transport):
    return [r.arguments["command"] for r in transport.requests]


def test_manual_commit_and_push(make_handler):
    """Test the stage, commit, branch and push sequence."""
    handler, transport = make_handler([git_ok(), git_ok(), git_ok("main\n"), git_ok()])

    status = handler.manual_commit("fix: handle empty input")

    assert commands(transport) == [
        "add .",
        "commit -m 'fix: handle empty input'",
        "branch --show-current",
        "push origin main",
    ]
    assert "origin/main" in status


def test_manual_commit_without_push(make_handler):
    """Test committing without pushing."""
    handler, transport = make_handler([git_ok(), git_ok()])

    handler.manual_commit("chore: tidy", push=False)

    assert commands(transport) == ["add .", "commit -m 'chore: tidy'"]


def test_manual_commit_requires_message(make_handler):
    """Test that an empty message is refused before running git."""
    handler, transport = make_handler([])

    with pytest.raises(CommitError):
        handler.manual_commit("   ")

    assert transport.requests == []


def test_not_a_repository_hint(make_handler):
    """Test the suggestion shown outside a repository."""
    handler, _ = make_handler([git_failed("fatal: not a git repository (or any of the parent directories): .git")])

    with pytest.raises(CommitError) as exc:
        handler.manual_commit("feat: first")

    assert "git init" in str(exc.value)


def test_detached_head_cannot_push(make_handler):
    """Test that pushing needs a current branch."""
    handler, _ = make_handler([git_ok(), git_ok(), git_ok("")])

    with pytest.raises(CommitError) as exc:
        handler.manual_commit("feat: first")

    assert "detached" in str(exc.value)


def test_manual_commit_dry_run(make_handler):
    """Test that dry-run announces every step and runs none."""
    handler, transport = make_handler([], dry_run=True)

    status = handler.manual_commit("feat: first")

    assert transport.requests == []
    assert status.startswith("Dry run completed")


def test_auto_commit_generates_message(make_handler):
    """Test that the message comes from the model, without code fences."""
    llm = FakeLLM([final("```\nfeat: add greeting\n```")])
    handler, transport = make_handler(
        [git_ok(), git_ok("+def hello(): ..."), git_ok(), git_ok(), git_ok("main"), git_ok()],
        llm=llm,
    )

    handler.auto_commit()

    assert commands(transport)[:3] == ["add .", "diff --staged", "add ."]
    assert commands(transport)[3] == "commit -m 'feat: add greeting'"
    assert "+def hello(): ..." in llm.calls[0]["messages"][0]["content"]
    assert llm.calls[0]["temperature"] == 0.3


def test_auto_commit_nothing_staged(make_handler):
    """Test that an empty diff stops before asking the model."""
    llm = FakeLLM([])
    handler, transport = make_handler([git_ok(), git_ok("")], llm=llm)

    status = handler.auto_commit()

    assert status == "No changes to commit."
    assert llm.calls == []


def test_auto_commit_dry_run_reads_diff_only(make_handler):
    """Test that dry-run reads the working-tree diff and changes nothing."""
    llm = FakeLLM([final("docs: update readme")])
    handler, transport = make_handler([git_ok("-old\n+new")], dry_run=True, llm=llm)

    status = handler.auto_commit()

    assert commands(transport) == ["diff HEAD"]
    assert status.startswith("Dry run completed")


def test_auto_commit_model_failure(make_handler):
    """Test that a completion error becomes a CommitError."""
    llm = FakeLLM([RuntimeError("overloaded")])
    handler, _ = make_handler([git_ok(), git_ok("+x")], llm=llm)

    with pytest.raises(CommitError) as exc:
        handler.auto_commit()

    assert "overloaded" in str(exc.value)
