"""
Tool catalog for tripflow.

Tools come in two shapes:

* subclasses of :class:`BaseTool`, which declare a JSON-schema parameter block and implement
  :meth:`BaseTool.execute`;
* plain functions wrapped in a :class:`FunctionTool`, whose schema is derived from the function
  signature and type hints.

Both are added to the process-wide catalog with the :func:`register_tool` decorator and
instantiated per agent with :func:`create_tool`, so every agent owns its own (possibly stateful)
tool instances.
"""

import importlib
import inspect
import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    List,
    Mapping,
    Sequence,
    TypedDict,
    Union,
    get_type_hints,
)

from tripflow.core.arguments import Arguments
from tripflow.core.errors import ToolArgumentError
from tripflow.core.schema import ToolResult

logger = logging.getLogger(__name__)


class ParameterInfo(TypedDict, total=False):
    """
    JSON-schema description of a tool parameter.
    """

    type: str
    description: str
    enum: List[str]
    items: Dict[str, str]


class ToolSchema(TypedDict):
    """
    Function descriptor handed to the language model.
    """

    name: str
    description: str
    parameters: Dict[str, Any]


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseTool(ABC):
    """A named capability invocable with a structured argument map."""

    name: ClassVar[str] = ""
    description: ClassVar[str] = ""
    parameters: ClassVar[Mapping[str, ParameterInfo]] = {}
    required: ClassVar[Sequence[str]] = ()

    def schema(self) -> ToolSchema:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": dict(self.parameters),
                "required": list(self.required),
            },
        }

    def to_parameters(self) -> Dict[str, Any]:
        """Descriptor in the OpenAI ``tools`` shape."""
        return {"type": "function", "function": self.schema()}

    @abstractmethod
    def execute(self, args: Arguments) -> ToolResult:
        """Run the tool.  Raise :class:`ToolArgumentError` for bad input."""

    def run(self, arguments: Mapping[str, Any] | None = None) -> ToolResult:
        """
        Execute the tool and convert every failure into an error-carrying result.

        This is the entry point used by the registry, so a misbehaving tool can never abort the
        agent loop.
        """
        args = arguments if isinstance(arguments, Arguments) else Arguments(arguments)
        try:
            logger.debug("Executing tool '%s' with args=%s", self.name, args.to_dict())
            return self.execute(args)
        except ToolArgumentError as exc:
            logger.warning("Invalid arguments for tool '%s': %s", self.name, exc)
            return ToolResult.fail(f"Invalid arguments for tool '{self.name}': {exc}")
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unhandled error in tool '%s'", self.name)
            return ToolResult.fail(f"Tool '{self.name}' raised an error: {exc}")


# ---------------------------------------------------------------------------
# Function tools
# ---------------------------------------------------------------------------
_JSON_TYPES: Dict[type, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    dict: "object",
}


class FunctionTool(BaseTool):
    """Adapts a plain function into a :class:`BaseTool`."""

    def __init__(self, name: str, fn: Callable[..., Any]) -> None:
        self._fn = fn
        self._signature = inspect.signature(fn)
        # Instance attributes shadow the ClassVar defaults.
        self.name = name  # type: ignore[misc]
        self.description = inspect.getdoc(fn) or ""  # type: ignore[misc]
        self.parameters, self.required = self._describe(fn)  # type: ignore[misc]

    def _describe(self, fn: Callable[..., Any]) -> tuple[Dict[str, ParameterInfo], List[str]]:
        """Extract parameter information from the function signature."""
        type_hints = get_type_hints(fn)
        params: Dict[str, ParameterInfo] = {}
        required: List[str] = []
        for param_name, param in self._signature.parameters.items():
            if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
                continue
            hint = type_hints.get(param_name, str)
            origin = getattr(hint, "__origin__", hint)
            params[param_name] = ParameterInfo(type=_JSON_TYPES.get(origin, "string"))
            if param.default is inspect.Parameter.empty:
                required.append(param_name)
        return params, required

    def execute(self, args: Arguments) -> ToolResult:
        kwargs = args.to_dict()
        try:
            self._signature.bind(**kwargs)
        except TypeError as exc:
            raise ToolArgumentError(self.name, f"call does not match signature: {exc}") from exc

        result = self._fn(**kwargs)
        if isinstance(result, ToolResult):
            return result
        return ToolResult.ok("" if result is None else str(result))


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------
ToolFactory = Callable[[], BaseTool]

TOOL_CATALOG: Dict[str, ToolFactory] = {}
"""Global catalog of tool factories, keyed by tool name."""

_BUILTIN_MODULES = (
    "tripflow.tools.calculator",
    "tripflow.tools.file_ops",
    "tripflow.tools.flight_search",
    "tripflow.tools.hotel_search",
    "tripflow.tools.planning",
    "tripflow.tools.terminate",
    "tripflow.tools.web_search",
)


def register_tool(name: str) -> Callable:
    """
    Add a tool to the catalog under *name*.

    Works on both a :class:`BaseTool` subclass and a plain function:

        @register_tool("echo")
        def echo(text: str) -> str:
            return text

    Parameters
    ----------
    name: str
        The name of the tool.  This must be unique across the catalog.
    Returns
    -------
    Callable
        A decorator that registers the class or function and returns it unchanged.
    Raises
    ------
    ValueError
        If a tool with the same name is already in the catalog.
    """
    if name in TOOL_CATALOG:
        raise ValueError(f"Tool '{name}' is already registered.")
    logger.debug("Registering tool '%s'", name)

    def wrapper(target: Union[type, Callable[..., Any]]) -> Union[type, Callable[..., Any]]:
        if inspect.isclass(target) and issubclass(target, BaseTool):
            TOOL_CATALOG[name] = target
        else:
            TOOL_CATALOG[name] = lambda: FunctionTool(name, target)
        return target

    return wrapper


def load_builtin_tools() -> None:
    """Import the bundled tool modules so that they register themselves."""
    for module in _BUILTIN_MODULES:
        importlib.import_module(module)


def create_tool(name: str) -> BaseTool:
    """Instantiate the catalog tool registered as *name*."""
    factory = TOOL_CATALOG.get(name)
    if factory is None:
        raise KeyError(f"Tool '{name}' is not in the catalog.")
    return factory()
