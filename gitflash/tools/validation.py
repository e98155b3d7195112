"""Checks operation requests against the tool catalogue."""

from typing import Any

from gitflash.constants import WORKING_DIRECTORY_ARG
from gitflash.models import ErrorKind, OperationError, OperationKind, OperationRequest
from gitflash.tools.catalogue import CATALOGUE, PYTHON_TYPES


def validate_request(name: Any, arguments: Any) -> OperationRequest:
    """Build a request from a raw name and arguments.

    Any ``working_directory`` argument is dropped; it is injected by the
    dispatch loop, never taken from the caller.

    Raises:
        OperationError: InvalidRequest for unknown operations or bad arguments
    """
    kind = OperationKind.from_name(name) if isinstance(name, str) else None
    if kind is None:
        raise OperationError(ErrorKind.INVALID_REQUEST, f"Unknown operation: '{name}'")

    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise OperationError(
            ErrorKind.INVALID_REQUEST,
            f"Arguments for '{kind.value}' must be an object, got {type(arguments).__name__}",
        )

    arguments = {k: v for k, v in arguments.items() if k != WORKING_DIRECTORY_ARG}
    validate_arguments(kind, arguments)
    return OperationRequest(name=kind, arguments=arguments)


def validate_arguments(kind: OperationKind, arguments: dict[str, Any]) -> None:
    """Check names, presence and primitive types of an operation's arguments."""
    spec = CATALOGUE[kind]
    declared = {p.name for p in spec.parameters}

    unexpected = sorted(set(arguments) - declared)
    if unexpected:
        raise OperationError(
            ErrorKind.INVALID_REQUEST,
            f"Unexpected argument(s) for '{kind.value}': {', '.join(unexpected)}",
        )

    for param in spec.parameters:
        if param.name not in arguments:
            if param.required:
                raise OperationError(
                    ErrorKind.INVALID_REQUEST,
                    f"Missing required argument '{param.name}' for '{kind.value}'",
                )
            continue

        value = arguments[param.name]
        expected = PYTHON_TYPES[param.type]
        # bool is an int subclass
        if not isinstance(value, expected) or (expected is not bool and isinstance(value, bool)):
            raise OperationError(
                ErrorKind.INVALID_REQUEST,
                f"Argument '{param.name}' for '{kind.value}' must be a {param.type}",
            )
