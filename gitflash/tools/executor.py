"""Version-control command execution with kill-on-timeout."""

import os
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from gitflash.constants import VCS_ENV_EXTRA, VCS_ENV_KEEP


@dataclass
class ExecResult:
    """Result of command execution."""

    stdout: str
    stderr: str
    exit_code: int
    duration_ms: int
    argv: list[str]
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


class Executor:
    """Runs commands in the working directory without a shell."""

    def __init__(self, project_root: Path, timeout: float = 120):
        """Initialize executor.

        Args:
            project_root: Working directory (cwd for commands)
            timeout: Default timeout in seconds
        """
        self.project_root = project_root
        self.timeout = timeout

    def run(self, argv: list[str], timeout: Optional[float] = None) -> ExecResult:
        """Run a command.

        The child gets its own session so a timeout can kill the whole
        process group (git spawns helpers such as ssh and pagers).

        Args:
            argv: Program and arguments
            timeout: Optional timeout override

        Returns:
            ExecResult with execution details

        Raises:
            OSError: If the program cannot be started
        """
        timeout_val = timeout if timeout is not None else self.timeout
        start_time = time.time()

        process = subprocess.Popen(
            argv,
            cwd=str(self.project_root),
            env=self._prepare_env(),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            start_new_session=True,
        )

        try:
            stdout, stderr = process.communicate(timeout=max(timeout_val, 0))
        except subprocess.TimeoutExpired:
            self._kill(process)
            stdout, stderr = process.communicate()
            return ExecResult(
                stdout=stdout or "",
                stderr=stderr or f"Command timed out after {timeout_val}s",
                exit_code=-1,
                duration_ms=int((time.time() - start_time) * 1000),
                argv=argv,
                timed_out=True,
            )
        except BaseException:
            # Interrupted while waiting: don't leave the child behind
            self._kill(process)
            process.wait()
            raise

        return ExecResult(
            stdout=stdout,
            stderr=stderr,
            exit_code=process.returncode,
            duration_ms=int((time.time() - start_time) * 1000),
            argv=argv,
        )

    def _kill(self, process: subprocess.Popen) -> None:
        """Kill the child's process group, falling back to the child alone."""
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except OSError:
            process.kill()

    def _prepare_env(self) -> dict[str, str]:
        """Prepare a minimal environment for child processes.

        Returns:
            Dictionary of environment variables
        """
        env = {var: os.environ[var] for var in VCS_ENV_KEEP if var in os.environ}
        env.update(VCS_ENV_EXTRA)
        return env
