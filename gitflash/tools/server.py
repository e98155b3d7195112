"""Sandboxed filesystem and version-control operations."""

import os
import shlex
import time
from pathlib import Path
from typing import Any, Callable, Union

from gitflash.constants import (
    DEFAULT_MAX_READ_MB,
    DEFAULT_MAX_WRITE_MB,
    DEFAULT_OPERATION_TIMEOUT,
    EMPTY_DIRECTORY_MARKER,
    IO_CHUNK_SIZE,
    NO_FILES_MARKER,
    SKIPPED_FILE_MARKER,
    TREE_INDENT,
    VCS_EXECUTABLE,
    WORKING_DIRECTORY_ARG,
)
from gitflash.models import (
    ErrorKind,
    OperationError,
    OperationKind,
    OperationRequest,
    OperationResult,
    OperationTimeout,
    Payload,
)
from gitflash.tools.executor import Executor
from gitflash.tools.path_guard import PathGuard
from gitflash.tools.validation import validate_arguments


class Deadline:
    """Wall-clock budget for a single operation."""

    def __init__(self, seconds: float):
        self.seconds = seconds
        self.expires_at = time.monotonic() + seconds

    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    def check(self) -> None:
        """Raise OperationTimeout once the budget is spent."""
        if time.monotonic() >= self.expires_at:
            raise OperationTimeout(f"Operation timed out after {self.seconds}s")


class OperationServer:
    """Performs operations confined to a single working directory.

    Every public operation returns an OperationResult; filesystem and
    process errors are converted to ErrorKind-tagged failures and never
    propagate to the caller. Long-running steps check a per-call deadline
    and stop with ``Timeout`` once it expires.
    """

    def __init__(
        self,
        root: Union[str, Path],
        timeout: float = DEFAULT_OPERATION_TIMEOUT,
        max_read_mb: int = DEFAULT_MAX_READ_MB,
        max_write_mb: int = DEFAULT_MAX_WRITE_MB,
    ):
        """Initialize the server.

        Args:
            root: Working directory; must exist
            timeout: Per-call timeout in seconds
            max_read_mb: Maximum file size to read (MB)
            max_write_mb: Maximum content size to write (MB)
        """
        self.guard = PathGuard(root)
        self.root = self.guard.root
        if not self.root.is_dir():
            raise ValueError(f"Working directory does not exist: {self.root}")

        self.timeout = timeout
        self.max_read_bytes = max_read_mb * 1024 * 1024
        self.max_write_bytes = max_write_mb * 1024 * 1024
        self.executor = Executor(self.root, timeout)

        self._handlers: dict[OperationKind, Callable[..., OperationResult]] = {
            OperationKind.LIST_FILES: self.list_files,
            OperationKind.READ_FILE: self.read_file,
            OperationKind.WRITE_FILE: self.write_file,
            OperationKind.APPEND_FILE: self.append_file,
            OperationKind.MOVE_FILE: self.move_file,
            OperationKind.DELETE_FILE: self.delete_file,
            OperationKind.CREATE_DIRECTORY: self.create_directory,
            OperationKind.DELETE_DIRECTORY: self.delete_directory,
            OperationKind.LIST_DIRECTORY_TREE: self.list_directory_tree,
            OperationKind.READ_DIRECTORY_FILES: self.read_directory_files,
            OperationKind.RUN_VCS_COMMAND: self.run_vcs_command,
            OperationKind.GET_WORKING_DIRECTORY: self.get_working_directory,
        }

    # ---------------------- Dispatch ----------------------

    def execute(self, request: OperationRequest) -> OperationResult:
        """Run a request through the handler for its kind.

        The injected ``working_directory`` argument must name this server's
        root; any other value is refused.
        """
        arguments = dict(request.arguments)
        injected = arguments.pop(WORKING_DIRECTORY_ARG, None)
        if injected is not None and not self._is_root(injected):
            return OperationResult.failure(
                ErrorKind.ACCESS_DENIED,
                f"Working directory mismatch: '{injected}' is not '{self.root}'",
            )

        try:
            validate_arguments(request.name, arguments)
        except OperationError as e:
            return OperationResult.failure(e.kind, e.message)

        return self._handlers[request.name](**arguments)

    def _is_root(self, value: Any) -> bool:
        if not isinstance(value, str):
            return False
        try:
            return Path(value).resolve() == self.root
        except (OSError, ValueError, RuntimeError):
            return False

    def _guarded(
        self, kind: OperationKind, handler: Callable[..., Payload], **kwargs: Any
    ) -> OperationResult:
        """Run a handler under a deadline and convert failures to results."""
        deadline = Deadline(self.timeout)
        try:
            payload = handler(deadline, **kwargs)
        except OperationError as e:
            return OperationResult.failure(e.kind, e.message)
        except OperationTimeout:
            return OperationResult.failure(
                ErrorKind.TIMEOUT, f"Operation '{kind.value}' timed out after {self.timeout}s"
            )
        except FileNotFoundError as e:
            return OperationResult.failure(ErrorKind.NOT_FOUND, str(e))
        except FileExistsError as e:
            return OperationResult.failure(ErrorKind.ALREADY_EXISTS, str(e))
        except NotADirectoryError as e:
            return OperationResult.failure(ErrorKind.NOT_A_DIRECTORY, str(e))
        except IsADirectoryError as e:
            return OperationResult.failure(ErrorKind.NOT_A_FILE, str(e))
        except PermissionError as e:
            return OperationResult.failure(ErrorKind.ACCESS_DENIED, str(e))
        except Exception as e:
            return OperationResult.failure(
                ErrorKind.UNKNOWN, f"Error in '{kind.value}': {e}"
            )
        return OperationResult.success(payload)

    # ---------------------- Public operations ----------------------

    def list_files(self, path: str = ".") -> OperationResult:
        return self._guarded(OperationKind.LIST_FILES, self._list_files, path=path)

    def read_file(self, path: str) -> OperationResult:
        return self._guarded(OperationKind.READ_FILE, self._read_file, path=path)

    def write_file(self, path: str, content: str) -> OperationResult:
        return self._guarded(OperationKind.WRITE_FILE, self._write_file, path=path, content=content)

    def append_file(self, path: str, content: str) -> OperationResult:
        return self._guarded(OperationKind.APPEND_FILE, self._append_file, path=path, content=content)

    def move_file(self, source: str, destination: str) -> OperationResult:
        return self._guarded(
            OperationKind.MOVE_FILE, self._move_file, source=source, destination=destination
        )

    def delete_file(self, path: str) -> OperationResult:
        return self._guarded(OperationKind.DELETE_FILE, self._delete_file, path=path)

    def create_directory(self, path: str) -> OperationResult:
        return self._guarded(OperationKind.CREATE_DIRECTORY, self._create_directory, path=path)

    def delete_directory(self, path: str) -> OperationResult:
        return self._guarded(OperationKind.DELETE_DIRECTORY, self._delete_directory, path=path)

    def list_directory_tree(self, path: str = ".") -> OperationResult:
        return self._guarded(OperationKind.LIST_DIRECTORY_TREE, self._list_directory_tree, path=path)

    def read_directory_files(self, path: str = ".") -> OperationResult:
        return self._guarded(OperationKind.READ_DIRECTORY_FILES, self._read_directory_files, path=path)

    def run_vcs_command(self, command: str) -> OperationResult:
        return self._guarded(OperationKind.RUN_VCS_COMMAND, self._run_vcs_command, command=command)

    def get_working_directory(self) -> OperationResult:
        return OperationResult.success(str(self.root))

    # ---------------------- Implementations ----------------------

    def _existing_dir(self, path: str) -> Path:
        target = self.guard.resolve(path)
        if not target.exists():
            raise OperationError(ErrorKind.NOT_FOUND, f"Path does not exist: '{path}'")
        if not target.is_dir():
            raise OperationError(ErrorKind.NOT_A_DIRECTORY, f"Path is not a directory: '{path}'")
        return target

    def _existing_file(self, path: str) -> Path:
        target = self.guard.resolve(path)
        if not target.exists():
            raise OperationError(ErrorKind.NOT_FOUND, f"File does not exist: '{path}'")
        if not target.is_file():
            raise OperationError(ErrorKind.NOT_A_FILE, f"Path is not a file: '{path}'")
        return target

    def _list_files(self, deadline: Deadline, path: str) -> str:
        target = self._existing_dir(path)
        deadline.check()
        names = sorted(os.listdir(target))
        return "\n".join(names) if names else EMPTY_DIRECTORY_MARKER

    def _read_file(self, deadline: Deadline, path: str) -> str:
        target = self._existing_file(path)

        size = target.stat().st_size
        if size > self.max_read_bytes:
            raise OperationError(
                ErrorKind.UNKNOWN,
                f"File too large: {size / (1024 * 1024):.2f} MB "
                f"(max: {self.max_read_bytes // (1024 * 1024)} MB)",
            )

        try:
            return self._read_bytes(target, deadline).decode("utf-8")
        except UnicodeDecodeError:
            raise OperationError(ErrorKind.UNKNOWN, f"File is not valid UTF-8 text: '{path}'")

    def _read_bytes(self, target: Path, deadline: Deadline) -> bytes:
        chunks = []
        with open(target, "rb") as f:
            while True:
                deadline.check()
                chunk = f.read(IO_CHUNK_SIZE)
                if not chunk:
                    break
                chunks.append(chunk)
        return b"".join(chunks)

    def _write_bytes(self, f, data: bytes, deadline: Deadline) -> None:
        for offset in range(0, len(data), IO_CHUNK_SIZE):
            deadline.check()
            f.write(data[offset:offset + IO_CHUNK_SIZE])

    def _encode_for_write(self, content: str) -> bytes:
        data = content.encode("utf-8")
        if len(data) > self.max_write_bytes:
            raise OperationError(
                ErrorKind.UNKNOWN,
                f"Content too large: {len(data) / (1024 * 1024):.2f} MB "
                f"(max: {self.max_write_bytes // (1024 * 1024)} MB)",
            )
        return data

    def _write_file(self, deadline: Deadline, path: str, content: str) -> str:
        target = self.guard.resolve(path)
        if target.is_dir():
            raise OperationError(ErrorKind.NOT_A_FILE, f"Path is a directory: '{path}'")
        data = self._encode_for_write(content)

        target.parent.mkdir(parents=True, exist_ok=True)

        # Write atomically (temp file + rename)
        temp_path = target.with_name(f".{target.name}.{os.getpid()}.tmp")
        try:
            with open(temp_path, "wb") as f:
                self._write_bytes(f, data, deadline)
            os.replace(temp_path, target)
        finally:
            if temp_path.exists():
                temp_path.unlink()

        return f"Successfully wrote to '{path}'."

    def _append_file(self, deadline: Deadline, path: str, content: str) -> str:
        target = self.guard.resolve(path)
        if target.is_dir():
            raise OperationError(ErrorKind.NOT_A_FILE, f"Path is a directory: '{path}'")
        data = self._encode_for_write(content)

        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "ab") as f:
            self._write_bytes(f, data, deadline)

        return f"Successfully appended to '{path}'."

    def _move_file(self, deadline: Deadline, source: str, destination: str) -> str:
        # a symlink source is moved as a link
        src = self.guard.locate(source)
        if not os.path.lexists(src):
            raise OperationError(ErrorKind.NOT_FOUND, f"Source does not exist: '{source}'")
        if src == self.root:
            raise OperationError(ErrorKind.ACCESS_DENIED, "Cannot move the working directory itself.")

        # The destination leaf may not exist yet, so only its parent is resolved.
        dest_name = os.path.basename(destination)
        if dest_name in ("", ".", ".."):
            raise OperationError(
                ErrorKind.ACCESS_DENIED, f"Invalid destination: '{destination}'"
            )
        dest_parent = self.guard.resolve(os.path.dirname(destination) or ".")
        if not dest_parent.is_dir():
            raise OperationError(
                ErrorKind.NOT_FOUND, f"Destination directory does not exist: '{destination}'"
            )

        dest = dest_parent / dest_name
        if os.path.lexists(dest):
            raise OperationError(
                ErrorKind.ALREADY_EXISTS, f"Destination already exists: '{destination}'"
            )

        deadline.check()
        os.rename(src, dest)
        return f"Successfully moved '{source}' to '{destination}'."

    def _delete_file(self, deadline: Deadline, path: str) -> str:
        target = self.guard.locate(path)
        if not os.path.lexists(target):
            raise OperationError(ErrorKind.NOT_FOUND, f"File does not exist: '{path}'")
        if not target.is_symlink() and not target.is_file():
            raise OperationError(ErrorKind.NOT_A_FILE, f"Path is not a file: '{path}'")
        # unlinking a symlink removes the link, never its target
        target.unlink()
        return f"Successfully deleted file '{path}'."

    def _create_directory(self, deadline: Deadline, path: str) -> str:
        target = self.guard.resolve(path)
        if target.exists() and not target.is_dir():
            raise OperationError(
                ErrorKind.ALREADY_EXISTS, f"A file already exists at '{path}'"
            )
        target.mkdir(parents=True, exist_ok=True)
        return f"Successfully created directory '{path}'."

    def _delete_directory(self, deadline: Deadline, path: str) -> str:
        target = self.guard.locate(path)
        if target == self.root:
            raise OperationError(
                ErrorKind.ACCESS_DENIED, "Cannot delete the working directory itself."
            )
        if target.is_symlink():
            if not target.is_dir():
                raise OperationError(
                    ErrorKind.NOT_A_DIRECTORY, f"Path is not a directory: '{path}'"
                )
            target.unlink()
            return f"Successfully deleted directory link '{path}'."
        target = self._existing_dir(path)

        for dirpath, dirnames, filenames in os.walk(target, topdown=False):
            deadline.check()
            for name in filenames:
                os.unlink(os.path.join(dirpath, name))
            for name in dirnames:
                entry = os.path.join(dirpath, name)
                # symlinked directories are removed as links, never followed
                if os.path.islink(entry):
                    os.unlink(entry)
                else:
                    os.rmdir(entry)
        os.rmdir(target)

        return f"Successfully deleted directory '{path}' and all its contents."

    def _list_directory_tree(self, deadline: Deadline, path: str) -> str:
        target = self._existing_dir(path)
        lines: list[str] = []
        self._walk_tree(target, 0, set(), lines, deadline)
        return "\n".join(lines)

    def _walk_tree(
        self,
        directory: Path,
        depth: int,
        ancestors: set[Path],
        lines: list[str],
        deadline: Deadline,
    ) -> None:
        """Depth-first pre-order listing of ``directory``.

        ``ancestors`` holds the canonical directories on the current descent
        path; seeing one again means a symlink cycle.
        """
        deadline.check()
        canonical = directory.resolve()
        if canonical in ancestors:
            raise OperationError(
                ErrorKind.UNKNOWN,
                f"Symlink cycle detected at '{directory.name}': it points back to an ancestor directory.",
            )
        ancestors = ancestors | {canonical}

        lines.append(f"{TREE_INDENT * depth}{directory.name}/")
        child_indent = TREE_INDENT * (depth + 1)

        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)

        for entry in entries:
            entry_path = Path(entry.path)
            if self._unfollowable(entry):
                # listed, but never followed
                lines.append(f"{child_indent}{entry.name}")
                continue
            if entry.is_dir():
                self._walk_tree(entry_path, depth + 1, ancestors, lines, deadline)
            else:
                lines.append(f"{child_indent}{entry.name}")

    def _unfollowable(self, entry: os.DirEntry) -> bool:
        """Whether ``entry`` is a link that leaves the root or cannot be resolved."""
        if not entry.is_symlink():
            return False
        try:
            return not self.guard.contains(Path(entry.path).resolve(strict=True))
        except (OSError, RuntimeError):
            # dangling link or a loop such as ``a -> a``
            return True

    def _read_directory_files(self, deadline: Deadline, path: str) -> dict[str, str]:
        target = self._existing_dir(path)

        with os.scandir(target) as it:
            entries = sorted(it, key=lambda e: e.name)

        files: dict[str, str] = {}
        for entry in entries:
            deadline.check()
            entry_path = Path(entry.path)
            if self._unfollowable(entry):
                files[entry.name] = SKIPPED_FILE_MARKER
                continue
            if not entry.is_file():
                continue
            if entry.stat().st_size > self.max_read_bytes:
                files[entry.name] = SKIPPED_FILE_MARKER
                continue
            files[entry.name] = self._read_bytes(entry_path, deadline).decode(
                "utf-8", errors="replace"
            )

        return files if files else {"info": NO_FILES_MARKER}

    def _run_vcs_command(self, deadline: Deadline, command: str) -> dict[str, Any]:
        try:
            args = shlex.split(command)
        except ValueError as e:
            raise OperationError(ErrorKind.UNKNOWN, f"Cannot parse command '{command}': {e}")

        if args and args[0] == VCS_EXECUTABLE:
            args = args[1:]
        if not args:
            raise OperationError(ErrorKind.UNKNOWN, "Empty git command.")
        # -C, --git-dir, --work-tree and -c would point git outside the root
        if args[0].startswith("-"):
            raise OperationError(
                ErrorKind.ACCESS_DENIED,
                f"Global git options are not allowed: '{args[0]}'. Start with a subcommand.",
            )

        try:
            result = self.executor.run([VCS_EXECUTABLE, *args], timeout=deadline.remaining())
        except OSError as e:
            raise OperationError(ErrorKind.UNKNOWN, f"Cannot run {VCS_EXECUTABLE}: {e}")

        if result.timed_out:
            raise OperationTimeout(result.stderr)

        return {
            "stdout": result.stdout.strip(),
            "stderr": result.stderr.strip(),
            "return_code": result.exit_code,
        }
