"""Sentinel tool the model calls to end an agent run."""

from tripflow.config import settings
from tripflow.tools import register_tool


@register_tool(settings.TERMINATE_TOOL)
def terminate(status: str = "success") -> str:
    """Finish the current task once the request is fully handled. status: success or failure."""
    return f"The interaction has been completed with status: {status}"
