"""
Schema definitions for agent <-> model <-> tool messages.

These data models serve as the contract between the language model, the agent loop, and individual
tools.  We keep them separate from runtime logic so they can be imported anywhere without
side-effects.
"""

import json
from datetime import (
    datetime,
    timezone,
)
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)

NO_OUTPUT = "Tool produced no output."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Author of a message in the conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolChoice(str, Enum):
    """How the model may pick tools on a request."""

    NONE = "none"
    AUTO = "auto"
    REQUIRED = "required"


class ToolCall(BaseModel):
    """A call that the model wants the agent to execute."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Opaque id linking the call to its result")
    name: str = Field(..., description="Registered tool name")
    arguments: Dict[str, Any] = Field(default_factory=dict, description="Tool arguments")


class Message(BaseModel):
    """One immutable entry of an agent's conversation memory."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str = ""
    tool_call_id: Optional[str] = None
    name: Optional[str] = None
    base64_image: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_utcnow)

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str, base64_image: str | None = None) -> "Message":
        return cls(role=Role.USER, content=content, base64_image=base64_image)

    @classmethod
    def assistant(cls, content: str, tool_calls: List[ToolCall] | None = None) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tool_calls or [])

    @classmethod
    def tool(
        cls, content: str, tool_call_id: str, name: str, base64_image: str | None = None
    ) -> "Message":
        return cls(
            role=Role.TOOL,
            content=content,
            tool_call_id=tool_call_id,
            name=name,
            base64_image=base64_image,
        )

    def to_llm_dict(self) -> Dict[str, Any]:
        """Render the message in the OpenAI chat-completions shape."""
        data: Dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.base64_image and self.role is Role.USER:
            parts: List[Dict[str, Any]] = []
            if self.content:
                parts.append({"type": "text", "text": self.content})
            parts.append(
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:image/png;base64,{self.base64_image}"},
                }
            )
            data["content"] = parts
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        if self.name:
            data["name"] = self.name
        if self.tool_calls:
            data["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": _dump_arguments(call.arguments)},
                }
                for call in self.tool_calls
            ]
        return data


def _dump_arguments(arguments: Dict[str, Any]) -> str:
    return json.dumps(arguments, ensure_ascii=False)


class ToolResult(BaseModel):
    """Output of one tool execution.  Either *output* or *error* is meaningful."""

    output: Optional[str] = None
    error: Optional[str] = None
    base64_image: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def ok(cls, output: str, **metadata: Any) -> "ToolResult":
        return cls(output=output, metadata=metadata or None)

    @classmethod
    def fail(cls, error: str, **metadata: Any) -> "ToolResult":
        return cls(error=error, metadata=metadata or None)

    @property
    def text(self) -> str:
        """Text fed back into the conversation for this result."""
        if self.output is not None:
            return self.output
        if self.error is not None:
            return self.error
        return NO_OUTPUT


class LLMReply(BaseModel):
    """What the model sent back for one think phase."""

    content: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)
