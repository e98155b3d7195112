"""Command-line entry point for GitFlash."""

import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel

from gitflash.config import Config, ConfigError
from gitflash.constants import TRANSPORTS
from gitflash.dispatch import DispatchLoop
from gitflash.handlers.commit import CommitError, CommitHandler
from gitflash.intent import interpret
from gitflash.llm import LLM
from gitflash.models import ErrorKind, OperationError, SessionError
from gitflash.runner import OperationRunner
from gitflash.transport import open_transport
from gitflash.utils.logging import SessionLogger

app = typer.Typer(help="GitFlash - natural-language file and git operations")
console = Console()


def build_llm(config: Config) -> LLM:
    """Create the completion client for the configured model."""
    descriptor = LLM.parse_model_string(config.default_model)
    return LLM(descriptor, config.anthropic_api_key)


def run_instruction(runner: OperationRunner, config: Config, instruction: str) -> None:
    """Hand an instruction to the model and print its final answer."""
    loop = DispatchLoop(build_llm(config), runner, max_turns=config.max_turns)
    outcome = loop.run(instruction)

    console.print()
    console.print(Panel(Markdown(outcome.final_text), title="GitFlash", border_style="green"))
    if outcome.turn_limit_reached:
        console.print(
            f"[yellow]⚠ Turn limit reached ({config.max_turns} operations). "
            "Raise --max-turns to let the session run longer.[/yellow]"
        )


def run_offline(runner: OperationRunner, instruction: str) -> None:
    """Map an instruction to one operation without calling the model."""
    intent = interpret(instruction)
    if intent is None:
        raise SessionError(
            ErrorKind.INVALID_REQUEST,
            f"Could not interpret instruction offline: {instruction!r}",
        )

    console.print(
        f"[dim]Interpreted as {intent.operation.value} "
        f"(confidence {intent.confidence:.1f})[/dim]"
    )
    try:
        request = intent.to_request()
    except OperationError as e:
        raise SessionError(e.kind, e.message) from e

    result = runner.run(request)
    if not result.ok:
        raise SessionError(result.error_kind, result.message)


def run_commit(runner: OperationRunner, config: Config, message: Optional[str], push: bool) -> None:
    """Commit with ``message``, or with a generated message if none is given."""
    if message:
        handler = CommitHandler(runner)
        status = handler.manual_commit(message, push=push)
    else:
        handler = CommitHandler(runner, build_llm(config))
        status = handler.auto_commit(push=push)
    console.print(f"\n[green]✓ {escape(status)}[/green]")


@app.command()
def main(
    instruction: Optional[str] = typer.Argument(
        None,
        help="What to do, in plain language. Omit to commit with a generated message."
    ),
    message: Optional[str] = typer.Option(
        None,
        "--message", "-m",
        help="Commit all changes with this message and push"
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show the operations without running them"
    ),
    path: Optional[str] = typer.Option(
        None,
        "--path",
        help="Working directory (default: current directory)"
    ),
    model: Optional[str] = typer.Option(
        None,
        "--model",
        help="Model to use (e.g., anthropic:claude-sonnet-4-5)"
    ),
    max_turns: Optional[int] = typer.Option(
        None,
        "--max-turns",
        help="Maximum number of operations per session"
    ),
    transport: Optional[str] = typer.Option(
        None,
        "--transport",
        help=f"How operations are executed: {' or '.join(TRANSPORTS)}"
    ),
    no_push: bool = typer.Option(
        False,
        "--no-push",
        help="Commit without pushing"
    ),
    offline: bool = typer.Option(
        False,
        "--offline",
        help="Interpret the instruction with local patterns instead of the model"
    ),
) -> None:
    """Run a GitFlash session."""
    working_root = Path(path).resolve() if path else Path.cwd()

    if not working_root.exists():
        console.print(f"[red]Error: Path does not exist: {working_root}[/red]")
        sys.exit(1)

    if not working_root.is_dir():
        console.print(f"[red]Error: Path is not a directory: {working_root}[/red]")
        sys.exit(1)

    if instruction and message:
        console.print("[red]Error: give either an instruction or --message, not both[/red]")
        sys.exit(1)

    if offline and not instruction:
        console.print("[red]Error: --offline needs an instruction[/red]")
        sys.exit(1)

    # Load configuration
    try:
        config = Config.load()
    except ConfigError as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        sys.exit(1)

    # Apply overrides
    if model:
        config.default_model = model
    if max_turns is not None:
        config.max_turns = max_turns
    if transport:
        config.transport = transport

    # Only the model-backed paths need a key
    needs_model = not offline and not message
    errors = config.validate(require_api_key=needs_model)
    if errors:
        console.print("[red]Configuration errors:[/red]")
        for error in errors:
            console.print(f"  - {error}")
        sys.exit(1)

    if offline:
        mode = "offline"
    elif instruction:
        mode = "instruction"
    else:
        mode = "manual_commit" if message else "auto_commit"

    logger = SessionLogger(config.home_dir)
    logger.log_session_start(working_root, mode, {**config.to_dict(), "dry_run": dry_run})
    if dry_run:
        console.print("[magenta]Dry run: changes are announced but not made.[/magenta]")

    try:
        with open_transport(config, working_root) as channel:
            runner = OperationRunner(channel, working_root, dry_run=dry_run, logger=logger)
            if mode == "offline":
                run_offline(runner, instruction)
            elif mode == "instruction":
                run_instruction(runner, config, instruction)
            else:
                run_commit(runner, config, message, push=not no_push)
    except (SessionError, CommitError) as e:
        console.print(f"\n[red]Error: {escape(str(e))}[/red]")
        console.print(f"[dim]Session log: {logger.get_log_path()}[/dim]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    app()
