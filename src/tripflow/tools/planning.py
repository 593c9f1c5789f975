"""
Plan model and the ``planning`` tool.

A plan is rendered to text with one line per step::

    1. ✓ [ROUTE] plan walking route
    2. ◯ [GENERAL] summarize

The planning flow finds its next step by re-parsing that text for the not-started glyph, so
:func:`render_plan` and :func:`scan_not_started` must stay in lock-step.
"""

import logging
import re
import threading
from datetime import (
    datetime,
    timezone,
)
from enum import Enum
from typing import (
    Dict,
    List,
    Optional,
    Tuple,
)

from pydantic import (
    BaseModel,
    Field,
)

from tripflow.core.arguments import Arguments
from tripflow.core.errors import ToolArgumentError
from tripflow.core.schema import ToolResult
from tripflow.tools import (
    BaseTool,
    register_tool,
)

logger = logging.getLogger(__name__)

DEFAULT_STEP_TYPE = "GENERAL"


class StepStatus(str, Enum):
    """Lifecycle of a single plan step."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"


STATUS_GLYPHS: Dict[StepStatus, str] = {
    StepStatus.NOT_STARTED: "◯",
    StepStatus.IN_PROGRESS: "⚙️",
    StepStatus.COMPLETED: "✓",
    StepStatus.BLOCKED: "⚠️",
}

# Allowed transitions; re-marking a step with its current status is a no-op.
_TRANSITIONS: Dict[StepStatus, Tuple[StepStatus, ...]] = {
    StepStatus.NOT_STARTED: (StepStatus.IN_PROGRESS, StepStatus.BLOCKED),
    StepStatus.IN_PROGRESS: (StepStatus.COMPLETED, StepStatus.BLOCKED),
    StepStatus.COMPLETED: (),
    StepStatus.BLOCKED: (),
}

_TYPE_PREFIX = re.compile(r"^\s*\[(?P<type>\w+)\]\s*(?P<text>.*)$", re.DOTALL)
_PLAN_LINE = re.compile(r"^\s*\d+\s*\.(?!\d)\s*(?P<body>\S.*?)\s*$")
_NOT_STARTED_LINE = re.compile(
    r"^(?P<number>\d+)\. " + re.escape(STATUS_GLYPHS[StepStatus.NOT_STARTED]) + r" (?P<label>.*)$"
)


class Step(BaseModel):
    """One typed unit of a plan."""

    text: str
    type: str = DEFAULT_STEP_TYPE
    status: StepStatus = StepStatus.NOT_STARTED
    notes: str = ""

    @classmethod
    def from_label(cls, label: str) -> "Step":
        """Build a step from ``[TYPE] text``; the type is case-insensitive."""
        step_type, text = split_step_type(label)
        return cls(text=text, type=step_type)

    @property
    def label(self) -> str:
        return f"[{self.type}] {self.text}"


class Plan(BaseModel):
    """An ordered list of steps with a title."""

    id: str
    title: str
    steps: List[Step] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def count(self, status: StepStatus) -> int:
        return sum(1 for step in self.steps if step.status is status)

    @property
    def percentage(self) -> float:
        if not self.steps:
            return 0.0
        return 100.0 * self.count(StepStatus.COMPLETED) / len(self.steps)


# ---------------------------------------------------------------------------
# Parsing / rendering helpers
# ---------------------------------------------------------------------------
def _normalize(text: str) -> str:
    return " ".join(text.split())


def split_step_type(label: str) -> Tuple[str, str]:
    """Split ``[TYPE] text`` into ``("TYPE", "text")``, defaulting to ``GENERAL``."""
    match = _TYPE_PREFIX.match(label)
    if match:
        return match.group("type").upper(), _normalize(match.group("text"))
    return DEFAULT_STEP_TYPE, _normalize(label)


def parse_steps(text: str) -> List[Step]:
    """Best-effort extraction of ``N. [TYPE] description`` lines from model output."""
    steps: List[Step] = []
    for line in text.splitlines():
        match = _PLAN_LINE.match(line.replace("**", ""))
        if match:
            step = Step.from_label(match.group("body"))
            if step.text:
                steps.append(step)
    return steps


def render_plan(plan: Plan) -> str:
    """Render *plan* as text, one glyph-tagged line per step; free text is kept to one line."""
    total = len(plan.steps)
    completed = plan.count(StepStatus.COMPLETED)
    lines = [
        f"Plan: {_normalize(plan.title)} (ID: {_normalize(plan.id)})",
        f"Progress: {completed}/{total} steps completed ({plan.percentage:.1f}%)",
        "",
    ]
    for number, step in enumerate(plan.steps, start=1):
        lines.append(f"{number}. {STATUS_GLYPHS[step.status]} {_normalize(step.label)}")
        if step.notes:
            lines.append(f"   Notes: {_normalize(step.notes)}")
    return "\n".join(lines)


def scan_not_started(rendered: str) -> List[Tuple[int, str]]:
    """Return ``(index, label)`` for every not-started step line of a rendered plan."""
    found = []
    for line in rendered.splitlines():
        match = _NOT_STARTED_LINE.match(line)
        if match:
            found.append((int(match.group("number")) - 1, match.group("label")))
    return found


# ---------------------------------------------------------------------------
# Tool
# ---------------------------------------------------------------------------
@register_tool("planning")
class PlanningTool(BaseTool):
    """Creates and tracks plans.  Instances are internally synchronized."""

    name = "planning"
    description = "Create and manage step-by-step task execution plans."
    parameters = {
        "command": {
            "type": "string",
            "enum": ["create", "update", "list", "get", "mark_step", "delete"],
            "description": "The command to run",
        },
        "plan_id": {"type": "string", "description": "Plan identifier"},
        "title": {"type": "string", "description": "Plan title (create/update)"},
        "steps": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Step list, each optionally prefixed with a [TYPE] tag",
        },
        "step_index": {"type": "integer", "description": "Zero-based step index (mark_step)"},
        "step_status": {
            "type": "string",
            "enum": [status.value for status in StepStatus],
            "description": "New step status (mark_step)",
        },
        "step_notes": {"type": "string", "description": "Optional notes for the step (mark_step)"},
    }
    required = ("command",)

    def __init__(self) -> None:
        self._plans: Dict[str, Plan] = {}
        self._lock = threading.Lock()

    def execute(self, args: Arguments) -> ToolResult:
        command = args.require_str("command")
        handlers = {
            "create": self._create,
            "update": self._update,
            "list": self._list,
            "get": self._get,
            "mark_step": self._mark_step,
            "delete": self._delete,
        }
        handler = handlers.get(command)
        if handler is None:
            return ToolResult.fail(f"Unknown command: {command}")
        with self._lock:
            return handler(args)

    def get_plan(self, plan_id: str) -> Optional[Plan]:
        """Deep copy of the stored plan, safe to read from another thread."""
        with self._lock:
            plan = self._plans.get(plan_id)
            return plan.model_copy(deep=True) if plan else None

    # ------------------------------------------------------------------ #
    # Commands (called with the lock held)
    # ------------------------------------------------------------------ #
    def _lookup(self, args: Arguments) -> Plan:
        plan_id = args.require_str("plan_id")
        plan = self._plans.get(plan_id)
        if plan is None:
            raise ToolArgumentError("plan_id", f"refers to an unknown plan: {plan_id}")
        return plan

    def _steps_from(self, args: Arguments) -> List[Step]:
        raw = args.require_list("steps")
        if not all(isinstance(item, str) for item in raw):
            raise ToolArgumentError("steps", "must be a list of strings")
        steps = [Step.from_label(item) for item in raw if item.strip()]
        if not steps:
            raise ToolArgumentError("steps", "must contain at least one step")
        return steps

    def _create(self, args: Arguments) -> ToolResult:
        plan_id = args.require_str("plan_id")
        if plan_id in self._plans:
            return ToolResult.fail(f"Plan already exists: {plan_id}")
        plan = Plan(id=plan_id, title=args.require_str("title"), steps=self._steps_from(args))
        self._plans[plan_id] = plan
        logger.info("Created plan %s with %d steps", plan_id, len(plan.steps))
        return ToolResult.ok(f"Plan created successfully: {plan.title}\n\n{render_plan(plan)}")

    def _update(self, args: Arguments) -> ToolResult:
        plan = self._lookup(args)
        title = args.get_str("title")
        if title:
            plan.title = title
        if args.get_list("steps") is not None:
            new_steps = self._steps_from(args)
            # Keep progress for steps that did not change position or wording.
            for index, step in enumerate(new_steps):
                if index < len(plan.steps) and plan.steps[index].label == step.label:
                    new_steps[index] = plan.steps[index]
            plan.steps = new_steps
        return ToolResult.ok(f"Plan updated successfully: {plan.id}\n\n{render_plan(plan)}")

    def _list(self, args: Arguments) -> ToolResult:  # pylint: disable=unused-argument
        if not self._plans:
            return ToolResult.ok("No plans available.")
        lines = ["Available plans:"]
        for plan in self._plans.values():
            done = plan.count(StepStatus.COMPLETED)
            summary = f"{_normalize(plan.title)} ({done}/{len(plan.steps)} steps completed)"
            lines.append(f"- {_normalize(plan.id)}: {summary}")
        return ToolResult.ok("\n".join(lines))

    def _get(self, args: Arguments) -> ToolResult:
        return ToolResult.ok(render_plan(self._lookup(args)))

    def _mark_step(self, args: Arguments) -> ToolResult:
        plan = self._lookup(args)
        index = args.require_int("step_index")
        if not 0 <= index < len(plan.steps):
            raise ToolArgumentError("step_index", f"is out of range: {index}")
        raw_status = args.require_str("step_status")
        try:
            status = StepStatus(raw_status)
        except ValueError as exc:
            raise ToolArgumentError("step_status", f"is not a valid status: {raw_status}") from exc

        step = plan.steps[index]
        if status is not step.status and status not in _TRANSITIONS[step.status]:
            return ToolResult.fail(
                f"Step {index + 1} cannot move from {step.status.value} to {status.value}"
            )
        step.status = status
        notes = args.get_str("step_notes")
        if notes:
            step.notes = notes
        return ToolResult.ok(f"Step {index + 1} status updated to: {status.value}")

    def _delete(self, args: Arguments) -> ToolResult:
        plan = self._lookup(args)
        del self._plans[plan.id]
        return ToolResult.ok(f"Plan deleted: {plan.id}")
