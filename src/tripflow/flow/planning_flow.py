"""
Planning flow: decompose a request into typed steps and route each step to an agent.

The flow keeps no plan state of its own.  The :class:`PlanningTool` owns the plan, and the next
step is always found by re-reading the tool's rendered plan, so the text format is the single
source of truth for what remains to be done.
"""

from __future__ import annotations

import logging
import threading
import uuid
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Tuple,
)

from pydantic import BaseModel

from tripflow.agent.agent_loop import ToolCallAgent
from tripflow.agent.prompts import (
    PLAN_PROMPT,
    STEP_PROMPT,
)
from tripflow.core.errors import FlowError
from tripflow.tools.planning import (
    PlanningTool,
    StepStatus,
    parse_steps,
    scan_not_started,
    split_step_type,
)

logger = logging.getLogger(__name__)

DEFAULT_PLAN_STEPS = (
    "[GENERAL] Analyze the request",
    "[GENERAL] Execute the task",
    "[GENERAL] Verify the result",
)


class FlowStatus(str, Enum):
    IDLE = "idle"
    PLANNING = "planning"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class FlowProgress(BaseModel):
    """Point-in-time view of a flow, safe to hand to another thread."""

    plan_id: Optional[str] = None
    status: FlowStatus = FlowStatus.IDLE
    current_step: Optional[str] = None
    current_step_index: Optional[int] = None
    completed_steps: int = 0
    total_steps: int = 0
    percentage: float = 0.0
    failure_reason: Optional[str] = None


class PlanningFlow:
    """
    Plan-then-execute state machine over a pool of agents.

    Parameters
    ----------
    primary:
        Agent that writes the plan and runs steps whose type has no dedicated agent.
    agents:
        Map of lower-case step type (``"flight"``, ``"hotel"``, ...) to executor agent.
    planning_tool:
        Plan store; a private :class:`PlanningTool` is created when omitted.
    """

    def __init__(
        self,
        primary: ToolCallAgent,
        agents: Mapping[str, ToolCallAgent] | None = None,
        planning_tool: PlanningTool | None = None,
    ) -> None:
        self.primary = primary
        self.agents: Dict[str, ToolCallAgent] = {k.lower(): v for k, v in (agents or {}).items()}
        self.planning_tool = planning_tool or PlanningTool()
        self.active_plan_id: Optional[str] = None

        self._status = FlowStatus.IDLE
        self._failure_reason: Optional[str] = None
        self._current: Optional[Tuple[int, str]] = None
        self._state_lock = threading.Lock()
        self._run_lock = threading.Lock()
        self._cancel_event = threading.Event()

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #
    @property
    def status(self) -> FlowStatus:
        with self._state_lock:
            return self._status

    @property
    def failure_reason(self) -> Optional[str]:
        with self._state_lock:
            return self._failure_reason

    def _set_status(self, status: FlowStatus, reason: str | None = None) -> None:
        with self._state_lock:
            self._status = status
            self._failure_reason = reason
            if status is not FlowStatus.EXECUTING:
                self._current = None
        logger.info("Flow %s -> %s", self.active_plan_id, status.value)

    def cancel(self) -> None:
        """Stop the flow before its next step starts; the running step is not interrupted."""
        logger.info("Cancellation requested for flow %s", self.active_plan_id)
        self._cancel_event.set()

    def get_progress(self) -> FlowProgress:
        with self._state_lock:
            progress = FlowProgress(
                plan_id=self.active_plan_id,
                status=self._status,
                current_step=self._current[1] if self._current else None,
                current_step_index=self._current[0] if self._current else None,
                failure_reason=self._failure_reason,
            )
        plan = self.planning_tool.get_plan(progress.plan_id) if progress.plan_id else None
        if plan is not None:
            progress.completed_steps = plan.count(StepStatus.COMPLETED)
            progress.total_steps = len(plan.steps)
            progress.percentage = plan.percentage
        return progress

    def get_executor(self, step_type: str) -> ToolCallAgent:
        """Agent registered for *step_type*, falling back to the primary agent."""
        return self.agents.get(step_type.lower(), self.primary)

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #
    def execute(self, request: str) -> str:
        """
        Plan *request*, run every step and return the step results joined by blank lines.

        Raises
        ------
        FlowError
            If planning or any step fails.  The flow is left ``failed`` and the step that was
            running stays ``in_progress``.
        """
        if not self._run_lock.acquire(blocking=False):  # pylint: disable=consider-using-with
            raise FlowError("This flow is already executing a plan")
        try:
            self._cancel_event.clear()
            with self._state_lock:
                self.active_plan_id = f"plan_{uuid.uuid4().hex}"
            self._set_status(FlowStatus.PLANNING)
            try:
                return self._execute(request)
            except Exception as exc:  # pylint: disable=broad-except
                reason = str(exc) or exc.__class__.__name__
                self._set_status(FlowStatus.FAILED, reason)
                logger.error("Flow %s failed: %s", self.active_plan_id, reason)
                if isinstance(exc, FlowError):
                    raise
                raise FlowError(f"Plan execution failed: {reason}") from exc
        finally:
            self._run_lock.release()

    def _execute(self, request: str) -> str:
        self._create_initial_plan(request)
        self._set_status(FlowStatus.EXECUTING)

        results: List[str] = []
        while True:
            if self._cancel_event.is_set():
                results.append(f"Plan cancelled. Summary:\n{self._render()}")
                self._set_status(FlowStatus.CANCELLED)
                return "\n\n".join(results)

            step = self._next_step()
            if step is None:
                break
            index, label = step
            self._mark_step(index, StepStatus.IN_PROGRESS)
            with self._state_lock:
                self._current = (index, label)

            step_type, _ = split_step_type(label)
            executor = self.get_executor(step_type)
            logger.info("Step %d [%s] -> agent '%s'", index + 1, step_type, executor.name)
            prompt = STEP_PROMPT.format(plan_status=self._render(), number=index + 1, step=label)
            results.append(executor.run(prompt))

            self._mark_step(index, StepStatus.COMPLETED)

        results.append(f"Plan completed. Summary:\n{self._render()}")
        self._set_status(FlowStatus.COMPLETED)
        return "\n\n".join(results)

    def _create_initial_plan(self, request: str) -> None:
        reply = self.primary.run(PLAN_PROMPT.format(request=request))
        steps = [step.label for step in parse_steps(reply)]
        if not steps:
            logger.warning("No steps found in planning reply; using the default plan")
            steps = list(DEFAULT_PLAN_STEPS)
        self._call_planning(
            command="create",
            plan_id=self.active_plan_id,
            title=f"Plan for: {' '.join(request.split())}",
            steps=steps,
        )
        logger.info("Created plan %s with %d steps", self.active_plan_id, len(steps))

    def _next_step(self) -> Optional[Tuple[int, str]]:
        pending = scan_not_started(self._render())
        return pending[0] if pending else None

    def _mark_step(self, index: int, status: StepStatus) -> None:
        self._call_planning(
            command="mark_step",
            plan_id=self.active_plan_id,
            step_index=index,
            step_status=status.value,
        )

    def _render(self) -> str:
        return self._call_planning(command="get", plan_id=self.active_plan_id)

    def _call_planning(self, **arguments: Any) -> str:
        result = self.planning_tool.run(arguments)
        if result.error is not None:
            raise FlowError(f"Planning tool '{arguments['command']}' failed: {result.error}")
        return result.text
