"""Per-agent tool registry: dispatches tool calls by name and never raises."""

import logging
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
)

from tripflow.core.schema import ToolResult
from tripflow.tools import BaseTool

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Name -> tool map owned by one agent."""

    def __init__(self, tools: Iterable[BaseTool] = ()) -> None:
        self._tools: Dict[str, BaseTool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: BaseTool) -> None:
        """Add *tool*; the first registration of a name wins."""
        if tool.name in self._tools:
            logger.debug("Tool '%s' already registered; ignoring duplicate", tool.name)
            return
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[BaseTool]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def schemas(self) -> List[Dict[str, Any]]:
        """Function descriptors for every registered tool, in registration order."""
        return [tool.to_parameters() for tool in self._tools.values()]

    def dispatch(self, name: str, arguments: Mapping[str, Any] | None = None) -> ToolResult:
        """
        Look up *name* and invoke it with *arguments*.

        Parameters
        ----------
        name:
            The registered tool name.
        arguments:
            Argument map passed to the tool.  If *None*, an empty map is assumed.

        Returns
        -------
        ToolResult
            The tool's result.  Unknown names and failing tools yield an error-carrying result
            instead of an exception.
        """
        tool = self._tools.get(name)
        if tool is None:
            logger.warning("Requested unknown tool '%s'", name)
            return ToolResult.fail(f"Tool '{name}' not found.")
        logger.debug("Dispatching tool '%s'", name)
        return tool.run(arguments or {})

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
