"""Path containment for the working directory."""

from pathlib import Path
from typing import Union

from gitflash.models import ErrorKind, OperationError


class PathGuard:
    """Resolves caller-supplied paths and rejects anything outside the root."""

    def __init__(self, root: Union[str, Path]):
        """Initialize guard.

        Args:
            root: Working directory every path must stay within
        """
        self.root = Path(root).resolve()

    def resolve(self, candidate: Union[str, Path]) -> Path:
        """Resolve a path against the root.

        ``..`` segments and symlinks are normalized before the containment
        check, so neither can be used to escape. Absolute candidates are
        accepted only if they land inside the root.

        Args:
            candidate: Relative or absolute path

        Returns:
            Canonical absolute path

        Raises:
            OperationError: AccessDenied if the path escapes the root
        """
        try:
            resolved = (self.root / candidate).resolve()
        except (OSError, ValueError, RuntimeError) as e:
            # e.g. embedded NUL bytes or a symlink loop in the path itself
            raise OperationError(
                ErrorKind.ACCESS_DENIED, f"Invalid path '{candidate}': {e}"
            ) from e

        if not self.contains(resolved):
            raise OperationError(
                ErrorKind.ACCESS_DENIED,
                f"Path access denied: '{candidate}' is outside the project directory.",
            )
        return resolved

    def locate(self, candidate: Union[str, Path]) -> Path:
        """Resolve the parent of ``candidate`` but keep its last component as is.

        Used by operations that act on a directory entry itself (delete,
        move) so that a symlink leaf names the link, not its target.

        Raises:
            OperationError: AccessDenied if the parent escapes the root
        """
        raw = Path(candidate)
        if raw.name in ("", ".", ".."):
            return self.resolve(candidate)
        return self.resolve(raw.parent) / raw.name

    def contains(self, path: Path) -> bool:
        """Check whether an already-canonical path is the root or below it."""
        try:
            path.relative_to(self.root)
            return True
        except ValueError:
            return False

