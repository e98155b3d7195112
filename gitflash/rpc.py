"""MCP server exposing the operation server over stdio.

Run as ``python -m gitflash.rpc --root DIR``. Every operation is one tool
named after its OperationKind. A tool always answers with the JSON form of
an OperationResult, ``{"ok", "payload"}`` or ``{"ok", "errorKind", "message"}``.
"""

from typing import Any, Optional

import typer
from mcp.server.fastmcp import FastMCP

from gitflash.constants import (
    DEFAULT_MAX_READ_MB,
    DEFAULT_MAX_WRITE_MB,
    DEFAULT_OPERATION_TIMEOUT,
)
from gitflash.models import ErrorKind, OperationKind, OperationRequest, OperationResult
from gitflash.tools.catalogue import CATALOGUE
from gitflash.tools.server import OperationServer


def run_operation(server: OperationServer, kind: OperationKind, **arguments: Any) -> str:
    """Execute one operation and encode its result for the wire.

    Arguments left as None were not sent by the client and are dropped.
    """
    request = OperationRequest(
        name=kind,
        arguments={name: value for name, value in arguments.items() if value is not None},
    )
    try:
        result = server.execute(request)
    except Exception as e:
        result = OperationResult.failure(ErrorKind.UNKNOWN, f"Server error: {e}")
    return result.model_dump_json(by_alias=True, exclude_none=True)


def create_server(server: OperationServer) -> FastMCP:
    """Build an MCP server with one tool per operation.

    Each tool also accepts the ``working_directory`` argument the client
    injects; the operation server refuses it unless it names its root.

    Args:
        server: Operation server confined to the working directory

    Returns:
        FastMCP instance, ready for ``run()``
    """
    mcp = FastMCP("gitflash", log_level="WARNING")

    def tool(kind: OperationKind):
        return mcp.tool(name=kind.value, description=CATALOGUE[kind].description)

    @tool(OperationKind.LIST_FILES)
    def list_files(path: str = ".", working_directory: Optional[str] = None) -> str:
        return run_operation(
            server, OperationKind.LIST_FILES, path=path, working_directory=working_directory
        )

    @tool(OperationKind.READ_FILE)
    def read_file(path: str, working_directory: Optional[str] = None) -> str:
        return run_operation(
            server, OperationKind.READ_FILE, path=path, working_directory=working_directory
        )

    @tool(OperationKind.WRITE_FILE)
    def write_file(path: str, content: str, working_directory: Optional[str] = None) -> str:
        return run_operation(
            server, OperationKind.WRITE_FILE,
            path=path, content=content, working_directory=working_directory,
        )

    @tool(OperationKind.APPEND_FILE)
    def append_file(path: str, content: str, working_directory: Optional[str] = None) -> str:
        return run_operation(
            server, OperationKind.APPEND_FILE,
            path=path, content=content, working_directory=working_directory,
        )

    @tool(OperationKind.MOVE_FILE)
    def move_file(source: str, destination: str, working_directory: Optional[str] = None) -> str:
        return run_operation(
            server, OperationKind.MOVE_FILE,
            source=source, destination=destination, working_directory=working_directory,
        )

    @tool(OperationKind.DELETE_FILE)
    def delete_file(path: str, working_directory: Optional[str] = None) -> str:
        return run_operation(
            server, OperationKind.DELETE_FILE, path=path, working_directory=working_directory
        )

    @tool(OperationKind.CREATE_DIRECTORY)
    def create_directory(path: str, working_directory: Optional[str] = None) -> str:
        return run_operation(
            server, OperationKind.CREATE_DIRECTORY, path=path, working_directory=working_directory
        )

    @tool(OperationKind.DELETE_DIRECTORY)
    def delete_directory(path: str, working_directory: Optional[str] = None) -> str:
        return run_operation(
            server, OperationKind.DELETE_DIRECTORY, path=path, working_directory=working_directory
        )

    @tool(OperationKind.LIST_DIRECTORY_TREE)
    def list_directory_tree(path: str = ".", working_directory: Optional[str] = None) -> str:
        return run_operation(
            server, OperationKind.LIST_DIRECTORY_TREE, path=path, working_directory=working_directory
        )

    @tool(OperationKind.READ_DIRECTORY_FILES)
    def read_directory_files(path: str = ".", working_directory: Optional[str] = None) -> str:
        return run_operation(
            server, OperationKind.READ_DIRECTORY_FILES, path=path, working_directory=working_directory
        )

    @tool(OperationKind.RUN_VCS_COMMAND)
    def run_vcs_command(command: str, working_directory: Optional[str] = None) -> str:
        return run_operation(
            server, OperationKind.RUN_VCS_COMMAND, command=command, working_directory=working_directory
        )

    @tool(OperationKind.GET_WORKING_DIRECTORY)
    def get_working_directory(working_directory: Optional[str] = None) -> str:
        return run_operation(
            server, OperationKind.GET_WORKING_DIRECTORY, working_directory=working_directory
        )

    return mcp


app = typer.Typer(add_completion=False, help="GitFlash operation server (MCP over stdio)")


@app.command()
def main(
    root: str = typer.Option(..., "--root", help="Working directory to confine operations to"),
    timeout: float = typer.Option(DEFAULT_OPERATION_TIMEOUT, "--timeout", help="Per-call timeout (s)"),
    max_read_mb: int = typer.Option(DEFAULT_MAX_READ_MB, "--max-read-mb"),
    max_write_mb: int = typer.Option(DEFAULT_MAX_WRITE_MB, "--max-write-mb"),
) -> None:
    """Serve operations for one working directory over stdin/stdout."""
    server = OperationServer(root, timeout, max_read_mb, max_write_mb)
    create_server(server).run()


if __name__ == "__main__":
    app()
