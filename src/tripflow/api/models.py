"""
Pydantic models for tripflow API requests and responses.
This module defines the request and response schemas used by the tripflow API.
"""

from typing import (
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
    model_validator,
)

from tripflow.flow.planning_flow import FlowStatus


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class SessionResponse(BaseModel):
    """Response with session information."""

    session_id: str


class SessionInfo(BaseModel):
    """Summary of one active session."""

    session_id: str
    agent: str
    message_count: int
    status: str


class MessageRequest(BaseModel):
    """Incoming user message for a single agent; an image may stand in for the text."""

    message: str = Field("", description="User message for the agent")
    session_id: Optional[str] = Field(None, description="Session ID for conversation context")
    agent_type: str = Field("general", description="Agent to talk to (general, flight, ...)")
    base64_image: Optional[str] = Field(None, description="Optional base64-encoded PNG")

    @model_validator(mode="after")
    def require_message_or_image(self) -> "MessageRequest":
        if not self.message.strip() and not self.base64_image:
            raise ValueError("Either message or base64_image must be provided")
        return self


class MessageResponse(BaseModel):
    """API response returned to the caller."""

    reply: str
    session_id: str
    agent: str
    tools_used: List[str] = Field(default_factory=list)


class FlowRequest(BaseModel):
    """A request to plan and execute across the agent pool."""

    request: str = Field(..., min_length=1, description="What the user wants done")
    flow_id: Optional[str] = Field(
        None, description="Client-chosen id used to poll progress or cancel while running"
    )


class FlowResponse(BaseModel):
    """Result of a finished (or cancelled) flow."""

    flow_id: str
    plan_id: Optional[str]
    status: FlowStatus
    result: str


class ProgressResponse(BaseModel):
    """Snapshot of a flow's progress."""

    flow_id: str
    plan_id: Optional[str] = None
    status: FlowStatus
    current_step: Optional[str] = None
    completed_steps: int = 0
    total_steps: int = 0
    percentage: float = 0.0
    failure_reason: Optional[str] = None
