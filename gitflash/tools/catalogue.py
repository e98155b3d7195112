"""Model-facing descriptions of every operation."""

from dataclasses import dataclass, field

from gitflash.models import OperationKind


@dataclass(frozen=True)
class ParameterSpec:
    """A single named parameter of an operation."""

    name: str
    type: str
    description: str
    required: bool = True


@dataclass(frozen=True)
class ToolSpec:
    """Name, purpose and parameter schema of one operation."""

    kind: OperationKind
    description: str
    parameters: tuple[ParameterSpec, ...] = field(default_factory=tuple)


def _path(description: str, required: bool = True) -> ParameterSpec:
    return ParameterSpec("path", "string", description, required)


CATALOGUE: dict[OperationKind, ToolSpec] = {
    spec.kind: spec
    for spec in (
        ToolSpec(
            OperationKind.RUN_VCS_COMMAND,
            "Executes a git command in the working directory. Do not include 'git' "
            "in the command string. A non-zero exit is reported in return_code and stderr.",
            (ParameterSpec("command", "string", "Git subcommand and arguments, e.g. 'status' or 'log -n 5'"),),
        ),
        ToolSpec(
            OperationKind.LIST_FILES,
            "Lists files and directories in a specified path. Use '.' for the current directory.",
            (_path("Directory to list (default: '.')", required=False),),
        ),
        ToolSpec(
            OperationKind.READ_FILE,
            "Reads and returns the content of a specified file.",
            (_path("File to read"),),
        ),
        ToolSpec(
            OperationKind.WRITE_FILE,
            "Writes or overwrites content to a specified file. Creates the file and "
            "any missing parent directories if they do not exist.",
            (_path("File to write"), ParameterSpec("content", "string", "Full new file content")),
        ),
        ToolSpec(
            OperationKind.APPEND_FILE,
            "Appends content to the end of a file, creating it if it does not exist.",
            (_path("File to append to"), ParameterSpec("content", "string", "Content to append")),
        ),
        ToolSpec(
            OperationKind.MOVE_FILE,
            "Moves or renames a file or directory. Fails if the destination already exists.",
            (
                ParameterSpec("source", "string", "Existing file or directory"),
                ParameterSpec("destination", "string", "New path"),
            ),
        ),
        ToolSpec(
            OperationKind.DELETE_FILE,
            "Deletes a specified file.",
            (_path("File to delete"),),
        ),
        ToolSpec(
            OperationKind.CREATE_DIRECTORY,
            "Creates a new directory, including any necessary parent directories. "
            "Succeeds if the directory already exists.",
            (_path("Directory to create"),),
        ),
        ToolSpec(
            OperationKind.DELETE_DIRECTORY,
            "Deletes a directory and all of its contents recursively.",
            (_path("Directory to delete"),),
        ),
        ToolSpec(
            OperationKind.LIST_DIRECTORY_TREE,
            "Recursively lists the directory tree structure starting at a given path.",
            (_path("Directory to start from (default: '.')", required=False),),
        ),
        ToolSpec(
            OperationKind.READ_DIRECTORY_FILES,
            "Reads the contents of all files in the given directory (non-recursive) "
            "and returns them as a mapping of file name to text.",
            (_path("Directory whose files to read (default: '.')", required=False),),
        ),
        ToolSpec(
            OperationKind.GET_WORKING_DIRECTORY,
            "Returns the working directory path all operations are confined to.",
        ),
    )
}


PYTHON_TYPES = {
    "string": str,
    "integer": int,
    "boolean": bool,
}


def tool_definitions() -> list[dict]:
    """Render the catalogue as function-calling tool definitions.

    Returns:
        List of tool definitions in OpenAI format
    """
    tools = []
    for spec in CATALOGUE.values():
        properties = {
            p.name: {"type": p.type, "description": p.description} for p in spec.parameters
        }
        tools.append({
            "type": "function",
            "function": {
                "name": spec.kind.value,
                "description": spec.description,
                "parameters": {
                    "type": "object",
                    "properties": properties,
                    "required": [p.name for p in spec.parameters if p.required],
                },
            },
        })
    return tools
