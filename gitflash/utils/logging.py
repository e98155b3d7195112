"""Session logging utilities."""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from gitflash.models import OperationRequest, OperationResult


class SessionLogger:
    """Appends a GitFlash session's messages and operations to an NDJSON file.

    Logs live under the GitFlash home directory so a session never writes
    into the working directory it operates on.
    """

    def __init__(self, home: Path, run_id: Optional[str] = None):
        """Initialize session logger.

        Args:
            home: GitFlash home directory
            run_id: Optional run ID (generated if not provided)
        """
        self.run_id = run_id or datetime.now().strftime("%Y%m%d_%H%M%S_%f")

        self.log_dir = home / "runs" / self.run_id
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.transcript_path = self.log_dir / "transcript.ndjson"

    def _append(self, entry: dict[str, Any]) -> None:
        entry = {"ts": datetime.now().isoformat(), **entry}
        with open(self.transcript_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, default=str) + "\n")

    def log_session_start(self, working_root: Path, mode: str, settings: dict[str, Any]) -> None:
        """Record what a run was pointed at and with which settings."""
        self._append({
            "type": "session",
            "working_root": str(working_root),
            "mode": mode,
            "settings": settings,
        })

    def log_message(self, role: str, content: str) -> None:
        """Log a conversation message.

        Args:
            role: Message role (user, assistant, system)
            content: Message content
        """
        self._append({"type": "message", "role": role, "content": content})

    def log_operation(
        self,
        request: OperationRequest,
        result: OperationResult,
        duration_ms: int,
        dry_run: bool = False,
    ) -> None:
        """Log one executed (or dry-run) operation.

        Args:
            request: Request as sent to the transport
            result: Result returned
            duration_ms: Wall-clock duration
            dry_run: Whether execution was skipped
        """
        self._append({
            "type": "operation",
            "request": request.model_dump(mode="json"),
            "result": result.model_dump(mode="json", by_alias=True, exclude_none=True),
            "duration_ms": duration_ms,
            "dry_run": dry_run,
        })

    def get_log_path(self) -> str:
        """Get the path to the log directory.

        Returns:
            Absolute path to log directory
        """
        return str(self.log_dir.absolute())
