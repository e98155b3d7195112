"""Commit handlers: commit with a given message, or generate one from the diff."""

import re
import shlex
from typing import TYPE_CHECKING, Any, Optional

from rich.console import Console

from gitflash.models import OperationKind, OperationRequest
from gitflash.runner import OperationRunner
from gitflash.system_prompt import build_commit_message_prompt

if TYPE_CHECKING:
    from gitflash.dispatch import CompletionService

console = Console()

# (stderr fragment, suggestion) pairs shown when a git step fails
FAILURE_HINTS = [
    ("not a git repository", "Initialize a git repository first:\n  git init"),
    ("remote origin already exists", "Update your remote origin:\n  git remote set-url origin <repository-url>"),
    ("no such remote", "Add a remote first:\n  git remote add origin <repository-url>"),
    ("nothing to commit", "There are no changes to commit."),
]

_FENCE = re.compile(r"^```[\w-]*\s*|\s*```$")


class CommitError(Exception):
    """Raised when a commit step fails."""


class CommitHandler:
    """Stages, commits and pushes through the sandboxed git operation."""

    def __init__(self, runner: OperationRunner, llm: Optional["CompletionService"] = None):
        """Initialize commit handler.

        Args:
            runner: Operation runner bound to the repository directory
            llm: Completion service, needed only for auto commit
        """
        self.runner = runner
        self.llm = llm

    def manual_commit(self, message: str, push: bool = True) -> str:
        """Stage everything, commit with ``message`` and optionally push.

        Args:
            message: Commit message
            push: Push the current branch to origin afterwards

        Returns:
            Status message

        Raises:
            CommitError: If any git step fails
        """
        if not message or not message.strip():
            raise CommitError("Commit message is required")

        console.print(f"[bold cyan]📝 Commit message:[/bold cyan]\n{message}", highlight=False)

        self._git("add .")
        self._git(f"commit -m {shlex.quote(message)}")
        if not push:
            return self._status("Commit created.")

        if self.runner.dry_run:
            branch = "HEAD"
        else:
            branch = self._git("branch --show-current")["stdout"].strip()
            if not branch:
                raise CommitError("Cannot push: HEAD is detached (no current branch).")

        self._git(f"push origin {shlex.quote(branch)}")
        return self._status(f"Changes pushed to origin/{branch}.")

    def auto_commit(self, push: bool = True) -> str:
        """Generate a Conventional Commits message from the diff and commit.

        In dry-run mode nothing is staged; the message is generated from
        ``git diff HEAD`` instead of the staged diff.

        Returns:
            Status message

        Raises:
            CommitError: If a git step or message generation fails
        """
        if self.llm is None:
            raise CommitError("Generating a commit message requires a language model")

        if self.runner.dry_run:
            diff = self._git("diff HEAD", read_only=True)["stdout"]
        else:
            self._git("add .")
            diff = self._git("diff --staged")["stdout"]

        if not diff.strip():
            return "No changes to commit."

        console.print("[dim]🤔 Analyzing changes and generating commit message[/dim]")
        message = self.generate_message(diff)
        return self.manual_commit(message, push=push)

    def generate_message(self, diff: str) -> str:
        """Ask the completion service for a commit message for ``diff``."""
        try:
            response = self.llm.complete(
                [{"role": "user", "content": build_commit_message_prompt(diff)}],
                temperature=0.3,
            )
        except Exception as e:
            raise CommitError(f"Failed to generate commit message: {e}") from e

        message = _FENCE.sub("", (response.get("content") or "").strip()).strip()
        if not message:
            raise CommitError("Failed to generate commit message")
        return message

    def _git(self, command: str, read_only: bool = False) -> dict[str, Any]:
        """Run one git step; raise CommitError unless it exits cleanly."""
        request = OperationRequest(name=OperationKind.RUN_VCS_COMMAND, arguments={"command": command})
        result = self.runner.run(request, read_only=read_only)

        if not result.ok:
            raise CommitError(f"git {command} failed: {result.message}")
        if not isinstance(result.payload, dict):
            # dry-run placeholder
            return {"stdout": "", "stderr": "", "return_code": 0}

        if result.payload["return_code"] != 0:
            output = result.payload["stderr"] or result.payload["stdout"]
            raise CommitError(self._explain(command, output))
        return result.payload

    def _explain(self, command: str, output: str) -> str:
        lines = [f"git {command} failed:", output]
        for fragment, hint in FAILURE_HINTS:
            if fragment in output.lower():
                lines.append(f"\nSuggestion: {hint}")
                break
        return "\n".join(lines)

    def _status(self, text: str) -> str:
        if self.runner.dry_run:
            return f"Dry run completed - no changes were made. ({text})"
        return text
