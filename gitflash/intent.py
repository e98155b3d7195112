"""Offline intent fallback for plain-language instructions.

This is a lower-confidence path used only when the user opts out of the
model. Patterns in ``INTENT_PATTERNS`` are tried strictly top to bottom and
the first match wins, so more specific patterns must come first.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from gitflash.constants import INTENT_FALLBACK_CONFIDENCE, INTENT_PATTERNS
from gitflash.models import OperationKind, OperationRequest
from gitflash.tools.validation import validate_request


class Intent(BaseModel):
    """Operation inferred from an instruction."""

    operation: OperationKind = Field(description="The operation the instruction maps to")
    arguments: dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(description="Confidence score 0-1", ge=0.0, le=1.0)
    pattern: str = Field(description="The pattern that matched")

    def to_request(self) -> OperationRequest:
        """Validate against the catalogue and build a request.

        Raises:
            OperationError: InvalidRequest if the arguments do not fit
        """
        return validate_request(self.operation.value, self.arguments)


def interpret(instruction: str) -> Optional[Intent]:
    """Map an instruction to an operation using the ordered pattern list.

    Args:
        instruction: Plain-language instruction

    Returns:
        The first matching Intent, or None if nothing matches
    """
    text = instruction.strip()
    for pattern, operation in INTENT_PATTERNS:
        match = pattern.match(text)
        if match:
            arguments = {k: v for k, v in match.groupdict().items() if v is not None}
            return Intent(
                operation=OperationKind(operation),
                arguments=arguments,
                confidence=INTENT_FALLBACK_CONFIDENCE,
                pattern=pattern.pattern,
            )
    return None
