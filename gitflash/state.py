"""State models for the dispatch graph."""

from operator import add
from typing import Annotated, Optional, TypedDict

from gitflash.models import OperationRequest, TranscriptEntry

AWAITING_MODEL = "AwaitingModel"
EXECUTING_OPERATION = "ExecutingOperation"
DONE = "Done"


class PendingCall(TypedDict):
    """A validated request from the latest model response, not yet executed."""

    call_id: str
    request: OperationRequest


class SessionState(TypedDict):
    """The state object passed through the dispatch graph.

    ``messages`` and ``transcript`` use an append reducer: nodes return only
    new entries, so earlier turns are never rewritten.

    Attributes:
        goal: The user's goal text
        working_root: Absolute working directory of the session
        messages: Conversation sent to the completion service
        transcript: One (request, result) entry per executed operation
        pending: Calls requested by the latest model response
        phase: AwaitingModel, ExecutingOperation or Done
        turns: Number of operations executed so far
        finished: Whether the session reached Done
        final_text: The model's final answer
        turn_limit_reached: Whether the session stopped at max_turns
    """

    goal: str
    working_root: str
    messages: Annotated[list[dict], add]
    transcript: Annotated[list[TranscriptEntry], add]
    pending: list[PendingCall]
    phase: str
    turns: int
    finished: bool
    final_text: Optional[str]
    turn_limit_reached: bool
