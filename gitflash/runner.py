"""Executes validated requests on behalf of a session."""

import json
import signal
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from rich.console import Console
from rich.markup import escape

from gitflash.constants import DRY_RUN_PLACEHOLDER, WORKING_DIRECTORY_ARG
from gitflash.models import OperationRequest, OperationResult
from gitflash.transport import Transport
from gitflash.utils.logging import SessionLogger

console = Console()

# Longest result shown in the trace; the model always gets the full text
MAX_DISPLAY_CHARS = 2000


@contextmanager
def defer_interrupts() -> Iterator[None]:
    """Hold SIGINT until the block finishes, then raise KeyboardInterrupt.

    Only possible on the main thread; elsewhere the block runs unchanged.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    received: list[int] = []

    def _remember(signum, frame):
        received.append(signum)

    previous = signal.signal(signal.SIGINT, _remember)
    try:
        yield
    finally:
        signal.signal(
            signal.SIGINT, previous if previous is not None else signal.default_int_handler
        )
    if received:
        raise KeyboardInterrupt


class OperationRunner:
    """Announces, executes (or skips, in dry-run) and logs each operation."""

    def __init__(
        self,
        transport: Transport,
        working_root: Path,
        dry_run: bool = False,
        logger: Optional[SessionLogger] = None,
        output: Optional[Console] = None,
    ):
        """Initialize runner.

        Args:
            transport: Channel to the operation server
            working_root: Session working directory, injected into every request
            dry_run: Announce operations without executing them
            logger: Optional session logger
            output: Console for the session trace
        """
        self.transport = transport
        self.working_root = Path(working_root).resolve()
        self.dry_run = dry_run
        self.logger = logger
        self.console = output or console

    def bind(self, request: OperationRequest) -> OperationRequest:
        """Return a copy of ``request`` carrying this session's working directory.

        Any value the model supplied is replaced.
        """
        arguments = {**request.arguments, WORKING_DIRECTORY_ARG: str(self.working_root)}
        return OperationRequest(name=request.name, arguments=arguments)

    def run(self, request: OperationRequest, read_only: bool = False) -> OperationResult:
        """Execute one request.

        Args:
            request: Validated request
            read_only: Execute even in dry-run mode (for commands that only
                inspect state, such as ``git diff``)

        Returns:
            The server's result, or the dry-run placeholder
        """
        request = self.bind(request)
        shown = {k: v for k, v in request.arguments.items() if k != WORKING_DIRECTORY_ARG}
        self.console.print(f"[yellow]🤖 Agent wants to run:[/yellow] [bold]{request.name.value}[/bold]")
        if shown:
            self.console.print(f"[dim]{escape(json.dumps(shown, indent=2))}[/dim]")

        start_time = time.time()
        skipped = self.dry_run and not read_only
        if skipped:
            self.console.print("[magenta]-- DRY RUN: skipping execution --[/magenta]")
            result = OperationResult.success(DRY_RUN_PLACEHOLDER)
        else:
            with defer_interrupts():
                result = self.transport.call(request)
        duration_ms = int((time.time() - start_time) * 1000)

        if not skipped:
            self._show(result)
        if self.logger:
            self.logger.log_operation(request, result, duration_ms, dry_run=skipped)
        return result

    def _show(self, result: OperationResult) -> None:
        if result.ok:
            self.console.print("[green]✓ Action completed[/green]")
        else:
            self.console.print(f"[red]✗ Action failed ({result.error_kind.value})[/red]")

        text = result.render()
        if len(text) > MAX_DISPLAY_CHARS:
            text = text[:MAX_DISPLAY_CHARS] + "\n... (output truncated)"
        self.console.print("[dim]Output:[/dim]")
        self.console.print(escape(text), style="bright_black")
