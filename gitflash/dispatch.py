"""Dispatch loop: drives a session between the model and the operation server."""

import json
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Protocol

from langgraph.graph import END, StateGraph
from rich.markup import escape

from gitflash.constants import DEFAULT_MAX_TURNS
from gitflash.models import (
    ErrorKind,
    OperationError,
    SessionError,
    TranscriptEntry,
)
from gitflash.runner import OperationRunner
from gitflash.state import (
    AWAITING_MODEL,
    DONE,
    EXECUTING_OPERATION,
    PendingCall,
    SessionState,
)
from gitflash.system_prompt import SystemPromptBuilder, build_goal_message
from gitflash.tools.catalogue import tool_definitions
from gitflash.tools.validation import validate_request


class CompletionService(Protocol):
    """Anything with the ``LLM.complete`` signature."""

    def complete(self, messages: list[dict[str, Any]], tools: Optional[list[dict]] = None,
                 **kwargs: Any) -> dict[str, Any]:
        ...


@dataclass
class SessionOutcome:
    """What a finished session hands back to the caller."""

    final_text: str
    turns: int
    transcript: list[TranscriptEntry] = field(default_factory=list)
    turn_limit_reached: bool = False


class DispatchLoop:
    """Turns model responses into sandboxed operations until a final answer.

    The graph has two nodes. ``await_model`` asks the completion service for
    the next step and validates any requested operations; ``execute_operation``
    runs them one at a time through the runner and feeds the results back.
    Operation failures are ordinary results the model can react to. Only
    upstream failures and invalid requests end the session early, as
    ``SessionError``.
    """

    def __init__(
        self,
        llm: CompletionService,
        runner: OperationRunner,
        max_turns: int = DEFAULT_MAX_TURNS,
    ):
        """Initialize the loop.

        Args:
            llm: Completion service client
            runner: Executes requests against the session's working directory
            max_turns: Maximum number of operations per session
        """
        self.llm = llm
        self.runner = runner
        self.max_turns = max_turns
        self.tools = tool_definitions()
        self.graph = self.build_graph()

    @property
    def working_root(self) -> Path:
        return self.runner.working_root

    def build_graph(self):
        """Build the dispatch workflow.

        Returns:
            Compiled StateGraph
        """
        workflow = StateGraph(SessionState)

        workflow.add_node("await_model", self.await_model_node)
        workflow.add_node("execute_operation", self.execute_operation_node)

        workflow.set_entry_point("await_model")
        workflow.add_conditional_edges(
            "await_model",
            lambda state: state["phase"],
            {EXECUTING_OPERATION: "execute_operation", DONE: END},
        )
        workflow.add_edge("execute_operation", "await_model")

        return workflow.compile()

    def run(self, goal: str) -> SessionOutcome:
        """Run a session to completion.

        Args:
            goal: The user's goal

        Returns:
            SessionOutcome with the final answer

        Raises:
            SessionError: On upstream failure or an invalid operation request
        """
        system_prompt = SystemPromptBuilder(self.working_root).build()
        initial: SessionState = {
            "goal": goal,
            "working_root": str(self.working_root),
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": build_goal_message(goal)},
            ],
            "transcript": [],
            "pending": [],
            "phase": AWAITING_MODEL,
            "turns": 0,
            "finished": False,
            "final_text": None,
            "turn_limit_reached": False,
        }
        if self.runner.logger:
            self.runner.logger.log_message("user", goal)

        # Every execute step runs at least one operation, so model calls are
        # bounded by max_turns + 1.
        final = self.graph.invoke(initial, config={"recursion_limit": 2 * self.max_turns + 4})

        return SessionOutcome(
            final_text=final["final_text"] or "",
            turns=final["turns"],
            transcript=list(final["transcript"]),
            turn_limit_reached=final["turn_limit_reached"],
        )

    # ---------------------- Nodes ----------------------

    def await_model_node(self, state: SessionState) -> dict:
        """Ask the completion service for the next step."""
        if state["turns"] >= self.max_turns:
            return {
                "phase": DONE,
                "finished": True,
                "final_text": f"Stopped after {state['turns']} operations without a final answer.",
                "turn_limit_reached": True,
            }

        try:
            response = self.llm.complete(state["messages"], tools=self.tools)
        except Exception as e:
            raise SessionError(ErrorKind.UPSTREAM_FAILURE, f"Completion service error: {e}") from e

        if not isinstance(response, dict):
            raise SessionError(ErrorKind.UPSTREAM_FAILURE, "Malformed response from completion service")
        text = response.get("content") or ""
        tool_calls = response.get("tool_calls") or []
        if not isinstance(text, str) or not isinstance(tool_calls, list):
            raise SessionError(ErrorKind.UPSTREAM_FAILURE, "Malformed response from completion service")

        if not tool_calls:
            if not text.strip():
                raise SessionError(
                    ErrorKind.UPSTREAM_FAILURE,
                    "Completion service returned neither text nor an operation request",
                )
            if self.runner.logger:
                self.runner.logger.log_message("assistant", text)
            return {
                "messages": [{"role": "assistant", "content": text}],
                "phase": DONE,
                "finished": True,
                "final_text": text,
            }

        if text.strip():
            self.runner.console.print(escape(text.strip()), style="dim")

        content: list[dict] = [{"type": "text", "text": text}] if text.strip() else []
        pending: list[PendingCall] = []
        for call in tool_calls:
            call_id, arguments, pending_call = self._validate_call(call)
            pending.append(pending_call)
            content.append({
                "type": "tool_use",
                "id": call_id,
                "name": call["name"],
                "input": arguments,
            })

        return {
            "messages": [{"role": "assistant", "content": content}],
            "pending": pending,
            "phase": EXECUTING_OPERATION,
        }

    def execute_operation_node(self, state: SessionState) -> dict:
        """Run the pending requests sequentially and feed results back."""
        turns = state["turns"]
        entries: list[TranscriptEntry] = []
        tool_results: list[dict] = []

        for call in state["pending"]:
            if turns >= self.max_turns:
                break
            request = self.runner.bind(call["request"])
            result = self.runner.run(request)
            turns += 1

            entries.append(TranscriptEntry(call_id=call["call_id"], request=request, result=result))
            block = {
                "type": "tool_result",
                "tool_use_id": call["call_id"],
                "content": result.render(),
            }
            if not result.ok:
                block["is_error"] = True
            tool_results.append(block)

        return {
            "messages": [{"role": "user", "content": tool_results}],
            "transcript": entries,
            "pending": [],
            "turns": turns,
            "phase": AWAITING_MODEL,
        }

    # ---------------------- Helpers ----------------------

    def _validate_call(self, call: Any) -> tuple[str, dict, PendingCall]:
        """Check a tool call against the catalogue.

        Raises:
            SessionError: InvalidRequest if the call is malformed or unknown
        """
        if not isinstance(call, dict) or not call.get("name"):
            raise SessionError(ErrorKind.INVALID_REQUEST, "Invalid function call from model")

        call_id = call.get("id") or f"call_{uuid.uuid4().hex[:12]}"
        arguments = call.get("arguments")
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments) if arguments.strip() else {}
            except json.JSONDecodeError as e:
                raise SessionError(
                    ErrorKind.INVALID_REQUEST, f"Arguments for '{call['name']}' are not valid JSON: {e}"
                ) from e
        if arguments is None:
            arguments = {}

        try:
            request = validate_request(call["name"], arguments)
        except OperationError as e:
            raise SessionError(e.kind, e.message) from e

        return call_id, arguments, {"call_id": call_id, "request": request}
