"""Prompt text sent to the completion service."""

from pathlib import Path

# Diffs beyond this many characters are truncated before asking for a message
MAX_DIFF_CHARS = 20_000


class SystemPromptBuilder:
    """Builds the system prompt for a dispatch session."""

    def __init__(self, working_root: Path):
        """Initialize system prompt builder.

        Args:
            working_root: Directory every operation is confined to
        """
        self.working_root = working_root

    def build(self) -> str:
        return "\n\n".join([
            self._build_core_identity(),
            self._build_rules(),
        ])

    def _build_core_identity(self) -> str:
        return (
            "You are Git Flash, an AI assistant for git and file system operations.\n"
            f"Operating in directory: {self.working_root}"
        )

    def _build_rules(self) -> str:
        return """How to work:
- Use the provided tools to inspect and change files and to run git commands.
- Call one tool at a time and read its result before deciding the next step.
- Paths are relative to the operating directory. Paths outside it are refused.
- For run_vcs_command pass only the git subcommand and its arguments, never 'git' itself.
- If a tool returns an error, read it and try a corrected call; do not repeat the same failing call.
- When the goal is complete, reply with a short summary of what you did and no tool call."""


def build_goal_message(goal: str) -> str:
    return f"User's goal: {goal}"


def build_commit_message_prompt(diff: str) -> str:
    """Prompt asking for a Conventional Commits message for ``diff``."""
    if len(diff) > MAX_DIFF_CHARS:
        diff = diff[:MAX_DIFF_CHARS] + "\n... (diff truncated)"
    return (
        "Based on the following git diff, generate a concise commit message following "
        "Conventional Commits. Reply with the commit message only.\n\n"
        f"{diff}"
    )
