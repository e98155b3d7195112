"""Data model shared by the operation server, transports and dispatch loop."""

import json
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class OperationKind(str, Enum):
    """The closed set of operations the server can perform."""

    LIST_FILES = "list_files"
    READ_FILE = "read_file"
    WRITE_FILE = "write_file"
    APPEND_FILE = "append_file"
    MOVE_FILE = "move_file"
    DELETE_FILE = "delete_file"
    CREATE_DIRECTORY = "create_directory"
    DELETE_DIRECTORY = "delete_directory"
    LIST_DIRECTORY_TREE = "list_directory_tree"
    READ_DIRECTORY_FILES = "read_directory_files"
    RUN_VCS_COMMAND = "run_vcs_command"
    GET_WORKING_DIRECTORY = "get_working_directory"

    @classmethod
    def from_name(cls, name: str) -> Optional["OperationKind"]:
        """Look up a kind by its wire name, returning None if unknown."""
        try:
            return cls(name)
        except ValueError:
            return None


class ErrorKind(str, Enum):
    """Error taxonomy surfaced to callers and to the model."""

    ACCESS_DENIED = "AccessDenied"
    NOT_FOUND = "NotFound"
    ALREADY_EXISTS = "AlreadyExists"
    NOT_A_DIRECTORY = "NotADirectory"
    NOT_A_FILE = "NotAFile"
    TIMEOUT = "Timeout"
    INVALID_REQUEST = "InvalidRequest"
    UPSTREAM_FAILURE = "UpstreamFailure"
    UNKNOWN = "Unknown"


class OperationError(Exception):
    """Raised inside the operation server; converted to a result at its boundary."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


class OperationTimeout(Exception):
    """Raised when an operation's deadline expires."""


class SessionError(Exception):
    """Fatal error that ends a dispatch session."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(f"{kind.value}: {message}")
        self.kind = kind
        self.message = message


class OperationRequest(BaseModel):
    """A single requested operation with its arguments."""

    name: OperationKind
    arguments: dict[str, Any] = Field(default_factory=dict)


Payload = Union[str, dict[str, Any]]


class OperationResult(BaseModel):
    """Outcome of one operation: a payload or an error, never both.

    Serialized with ``by_alias=True`` this is the wire response
    ``{ok, payload | errorKind + message}``.
    """

    model_config = ConfigDict(populate_by_name=True)

    ok: bool
    payload: Optional[Payload] = None
    error_kind: Optional[ErrorKind] = Field(default=None, alias="errorKind")
    message: Optional[str] = None

    @model_validator(mode="after")
    def _check_exclusive(self) -> "OperationResult":
        if self.ok:
            if self.payload is None or self.error_kind is not None:
                raise ValueError("successful result must carry a payload and no error")
        else:
            if self.error_kind is None or self.message is None or self.payload is not None:
                raise ValueError("failed result must carry an error kind and message only")
        return self

    @classmethod
    def success(cls, payload: Payload) -> "OperationResult":
        return cls(ok=True, payload=payload)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "OperationResult":
        return cls(ok=False, error_kind=kind, message=message)

    def render(self) -> str:
        """Render the result as the text the model sees."""
        if not self.ok:
            return f"Error ({self.error_kind.value}): {self.message}"
        if isinstance(self.payload, str):
            return self.payload
        return json.dumps(self.payload, indent=2)


class TranscriptEntry(BaseModel):
    """One executed turn: the request and the result fed back to the model."""

    call_id: str
    request: OperationRequest
    result: OperationResult
