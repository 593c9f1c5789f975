"""Exception types shared by the agent loop, the tools and the planning flow."""


class TripflowError(RuntimeError):
    """Base class for errors raised by tripflow."""


class ExecutionError(TripflowError):
    """Raised when an agent run cannot continue."""


class LLMTransportError(ExecutionError):
    """Raised when the language-model request itself fails."""


class MalformedToolCallError(ExecutionError):
    """Raised when the model returns a tool call that cannot be decoded."""


class FlowError(TripflowError):
    """Raised when a planning flow fails; the flow is left in the ``failed`` state."""


class ToolArgumentError(ValueError):
    """Raised by a tool when a required argument is missing or has the wrong type."""

    def __init__(self, name: str, problem: str = "is required") -> None:
        self.argument = name
        super().__init__(f"Argument '{name}' {problem}")
