"""Think/act orchestration loop for a single tool-calling agent."""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import (
    Any,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Optional,
    Tuple,
)

from tripflow.agent.llm_interface import BaseLLM
from tripflow.agent.tool_registry import ToolRegistry
from tripflow.config import settings
from tripflow.core.errors import ExecutionError
from tripflow.core.schema import (
    Message,
    Role,
    ToolCall,
    ToolChoice,
)
from tripflow.memory.memory_store import MemoryStore
from tripflow.tools import BaseTool

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "Unable to produce a reply."
STEP_LIMIT_REPLY = "Reached the maximum number of steps."


class AgentStatus(str, Enum):
    IDLE = "idle"
    WORKING = "working"
    ERROR = "error"


def _capability_value(capability: Any) -> str:
    return str(getattr(capability, "value", capability))


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------
class ToolCallAgent:
    """
    An agent that alternates between asking the model (think) and running tools (act).

    Each agent owns its memory and tool registry.  Only one :meth:`run` may be in flight at a
    time; a concurrent call raises :class:`ExecutionError`.
    """

    def __init__(
        self,
        name: str,
        llm: BaseLLM,
        system_prompt: str = "",
        tools: Iterable[BaseTool] = (),
        capabilities: Iterable[Any] = (),
        description: str = "",
        memory: MemoryStore | None = None,
        max_steps: int | None = None,
        terminate_tool: str | None = None,
    ) -> None:
        self.name = name
        self.description = description
        self.llm = llm
        self.system_prompt = system_prompt
        self.tools = ToolRegistry(tools)
        self.capabilities: FrozenSet[str] = frozenset(_capability_value(c) for c in capabilities)
        self.memory = memory if memory is not None else MemoryStore()
        self.max_steps = max_steps if max_steps is not None else settings.MAX_STEPS
        self.terminate_tool = terminate_tool or settings.TERMINATE_TOOL

        self.status = AgentStatus.IDLE
        self.last_error: Optional[str] = None
        self._run_lock = threading.Lock()
        self._shared_context: Dict[str, Any] = {}

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def run(self, request: str, base64_image: str | None = None) -> str:
        """
        Process *request* until the model stops calling tools, terminates, or the step bound is
        reached.

        Raises
        ------
        ExecutionError
            If the agent is already running, the model request fails, or the model returns a
            tool call that cannot be decoded.  Messages appended so far stay in memory.
        """
        if not self._run_lock.acquire(blocking=False):  # pylint: disable=consider-using-with
            raise ExecutionError(f"Agent '{self.name}' is already running")
        try:
            self.status = AgentStatus.WORKING
            self.last_error = None
            reply = self._run(request, base64_image)
        except ExecutionError as exc:
            self.status = AgentStatus.ERROR
            self.last_error = str(exc)
            logger.error("Agent '%s' failed: %s", self.name, exc)
            raise
        finally:
            self._run_lock.release()
        self.status = AgentStatus.IDLE
        return reply

    def think(self) -> List[ToolCall]:
        """Ask the model for the next move; record its reply and return the requested calls."""
        try:
            reply = self.llm.ask_tool(self.memory.messages, self.tools.schemas(), ToolChoice.AUTO)
        except ExecutionError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            raise ExecutionError(f"Model request failed for agent '{self.name}': {exc}") from exc

        if reply.content or reply.tool_calls:
            self.memory.add_message(Message.assistant(reply.content or "", reply.tool_calls))
        if reply.tool_calls:
            logger.info(
                "Agent '%s' selected %d tool(s): %s",
                self.name,
                len(reply.tool_calls),
                [call.name for call in reply.tool_calls],
            )
        return list(reply.tool_calls)

    def act(self, calls: List[ToolCall]) -> Tuple[str, bool]:
        """Run *calls* in order; return the joined outputs and whether a terminate call was seen."""
        outputs: List[str] = []
        terminated = False
        for call in calls:
            result = self.tools.dispatch(call.name, call.arguments)
            text = result.text
            if result.error is not None:
                logger.warning("Tool '%s' returned an error: %s", call.name, result.error)
            else:
                logger.debug("Tool '%s' returned: %s", call.name, text)
            self.memory.add_message(Message.tool(text, call.id, call.name, result.base64_image))
            outputs.append(text)
            if call.name == self.terminate_tool:
                terminated = True
        return "\n".join(outputs), terminated

    def is_capable_of(self, capability: Any) -> bool:
        return _capability_value(capability) in self.capabilities

    def set_shared_context(self, key: str, value: Any) -> None:
        self._shared_context[key] = value

    def get_shared_context(self, key: str, default: Any = None) -> Any:
        return self._shared_context.get(key, default)

    def reset(self) -> None:
        """Forget the conversation (system prompt excluded) and return to idle."""
        if self._run_lock.locked():
            raise ExecutionError(f"Agent '{self.name}' cannot be reset while running")
        self.memory.clear()
        self.status = AgentStatus.IDLE
        self.last_error = None

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _run(self, request: str, base64_image: str | None) -> str:
        self.memory.add_message(Message.user(request, base64_image))
        if self.system_prompt:
            self.memory.ensure_system_prompt(self.system_prompt)

        for step in range(1, self.max_steps + 1):
            logger.debug("Agent '%s' step %d/%d", self.name, step, self.max_steps)
            calls = self.think()
            if not calls:
                last = self.memory.last(Role.ASSISTANT)
                return last.content if last and last.content else FALLBACK_REPLY
            output, terminated = self.act(calls)
            if terminated:
                logger.info("Agent '%s' terminated after %d step(s)", self.name, step)
                return output

        logger.info("Agent '%s' reached the step limit (%d)", self.name, self.max_steps)
        return STEP_LIMIT_REPLY

    def __repr__(self) -> str:
        return f"ToolCallAgent(name={self.name!r}, tools={self.tools.names()!r})"
