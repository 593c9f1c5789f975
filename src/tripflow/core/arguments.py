"""
Typed access to the dynamic argument maps that models send to tools.

Models produce JSON objects, so every argument value is one of a small set of kinds (string,
number, bool, list, map).  :class:`Arguments` wraps the raw mapping and offers accessors that coerce
the permissive cases models actually emit (``"3"`` for a number, ``"true"`` for a bool) and raise
:class:`~tripflow.core.errors.ToolArgumentError` for everything else instead of silently defaulting.
"""

from enum import Enum
from typing import (
    Any,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
)

from tripflow.core.errors import ToolArgumentError


class ArgumentKind(str, Enum):
    """Kind tag of a decoded argument value."""

    NULL = "null"
    STRING = "string"
    NUMBER = "number"
    BOOL = "bool"
    LIST = "list"
    MAP = "map"


def kind_of(value: Any) -> ArgumentKind:
    """Return the kind tag of *value*; raises ``TypeError`` for non-JSON values."""
    if value is None:
        return ArgumentKind.NULL
    # bool first: it is a subclass of int
    if isinstance(value, bool):
        return ArgumentKind.BOOL
    if isinstance(value, (int, float)):
        return ArgumentKind.NUMBER
    if isinstance(value, str):
        return ArgumentKind.STRING
    if isinstance(value, (list, tuple)):
        return ArgumentKind.LIST
    if isinstance(value, Mapping):
        return ArgumentKind.MAP
    raise TypeError(f"Unsupported argument value of type {type(value).__name__}")


_TRUE = {"true", "yes", "1"}
_FALSE = {"false", "no", "0"}


class Arguments(Mapping[str, Any]):
    """Read-only view over a tool's argument map."""

    def __init__(self, raw: Mapping[str, Any] | None = None) -> None:
        self._raw: Dict[str, Any] = dict(raw or {})

    def __getitem__(self, key: str) -> Any:
        return self._raw[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._raw)

    def __len__(self) -> int:
        return len(self._raw)

    def __repr__(self) -> str:
        return f"Arguments({self._raw!r})"

    def kind(self, name: str) -> ArgumentKind:
        return kind_of(self._raw.get(name))

    def _present(self, name: str) -> bool:
        value = self._raw.get(name)
        return value is not None and value != ""

    # ------------------------------------------------------------------ #
    # Strings
    # ------------------------------------------------------------------ #
    def get_str(self, name: str, default: Optional[str] = None) -> Optional[str]:
        if not self._present(name):
            return default
        value = self._raw[name]
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            raise ToolArgumentError(name, f"must be a string, got {kind_of(value).value}")
        return str(value).strip()

    def require_str(self, name: str) -> str:
        value = self.get_str(name)
        if value is None or value == "":
            raise ToolArgumentError(name)
        return value

    # ------------------------------------------------------------------ #
    # Numbers
    # ------------------------------------------------------------------ #
    def get_number(self, name: str, default: Optional[float] = None) -> Optional[float]:
        if not self._present(name):
            return default
        value = self._raw[name]
        if isinstance(value, bool):
            raise ToolArgumentError(name, "must be a number, got bool")
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError as exc:
                raise ToolArgumentError(name, f"must be a number, got {value!r}") from exc
        raise ToolArgumentError(name, f"must be a number, got {kind_of(value).value}")

    def require_number(self, name: str) -> float:
        value = self.get_number(name)
        if value is None:
            raise ToolArgumentError(name)
        return value

    def get_int(self, name: str, default: Optional[int] = None) -> Optional[int]:
        value = self.get_number(name)
        if value is None:
            return default
        if not value.is_integer():
            raise ToolArgumentError(name, f"must be an integer, got {value}")
        return int(value)

    def require_int(self, name: str) -> int:
        value = self.get_int(name)
        if value is None:
            raise ToolArgumentError(name)
        return value

    # ------------------------------------------------------------------ #
    # Bools, lists, maps
    # ------------------------------------------------------------------ #
    def get_bool(self, name: str, default: Optional[bool] = None) -> Optional[bool]:
        if not self._present(name):
            return default
        value = self._raw[name]
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
        raise ToolArgumentError(name, f"must be a boolean, got {value!r}")

    def get_list(self, name: str, default: Optional[List[Any]] = None) -> Optional[List[Any]]:
        if name not in self._raw or self._raw[name] is None:
            return default
        value = self._raw[name]
        if kind_of(value) is not ArgumentKind.LIST:
            raise ToolArgumentError(name, f"must be a list, got {kind_of(value).value}")
        return list(value)

    def require_list(self, name: str) -> List[Any]:
        value = self.get_list(name)
        if value is None:
            raise ToolArgumentError(name)
        return value

    def get_map(self, name: str) -> Optional[Dict[str, Any]]:
        if name not in self._raw or self._raw[name] is None:
            return None
        value = self._raw[name]
        if kind_of(value) is not ArgumentKind.MAP:
            raise ToolArgumentError(name, f"must be an object, got {kind_of(value).value}")
        return dict(value)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._raw)
