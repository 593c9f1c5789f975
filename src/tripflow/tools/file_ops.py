"""Read, write and list text files inside the data directory."""

import logging
from pathlib import Path

from tripflow.config import settings
from tripflow.core.arguments import Arguments
from tripflow.core.errors import ToolArgumentError
from tripflow.core.schema import ToolResult
from tripflow.tools import (
    BaseTool,
    register_tool,
)

logger = logging.getLogger(__name__)

_MAX_READ_CHARS = 20_000


@register_tool("file_ops")
class FileOpsTool(BaseTool):
    """File access confined to a root directory (``settings.DATA_DIR`` by default)."""

    name = "file_ops"
    description = (
        "Read, write, append or list text files in the workspace directory. "
        "Paths are relative to the workspace root."
    )
    parameters = {
        "command": {
            "type": "string",
            "enum": ["read", "write", "append", "list"],
            "description": "Operation to perform",
        },
        "path": {"type": "string", "description": "Relative file or directory path"},
        "content": {"type": "string", "description": "Text to write (write/append)"},
    }
    required = ("command",)

    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root or settings.DATA_DIR).resolve()

    def _resolve(self, relative: str) -> Path:
        target = (self.root / relative).resolve()
        if target != self.root and self.root not in target.parents:
            raise ToolArgumentError("path", f"escapes the workspace: {relative}")
        return target

    def execute(self, args: Arguments) -> ToolResult:
        command = args.require_str("command")
        if command == "list":
            return self._list(self._resolve(args.get_str("path", ".") or "."))
        path = self._resolve(args.require_str("path"))
        if command == "read":
            return self._read(path)
        if command in ("write", "append"):
            content = args.get_str("content")
            if content is None:
                raise ToolArgumentError("content")
            return self._write(path, content, append=command == "append")
        return ToolResult.fail(f"Unknown command: {command}")

    def _list(self, directory: Path) -> ToolResult:
        if not directory.is_dir():
            return ToolResult.fail(f"Not a directory: {directory.relative_to(self.root)}")
        entries = sorted(
            f"{p.relative_to(self.root)}{'/' if p.is_dir() else ''}" for p in directory.iterdir()
        )
        return ToolResult.ok("\n".join(entries) if entries else "(empty)")

    def _read(self, path: Path) -> ToolResult:
        if not path.is_file():
            return ToolResult.fail(f"File not found: {path.relative_to(self.root)}")
        text = path.read_text(encoding="utf-8", errors="replace")
        truncated = len(text) > _MAX_READ_CHARS
        if truncated:
            text = text[:_MAX_READ_CHARS] + "\n... [truncated]"
        return ToolResult.ok(text, size=path.stat().st_size, truncated=truncated)

    def _write(self, path: Path, content: str, append: bool) -> ToolResult:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a" if append else "w", encoding="utf-8") as f:
            f.write(content)
        action = "Appended" if append else "Wrote"
        logger.info("%s %d chars to %s", action, len(content), path)
        return ToolResult.ok(f"{action} {len(content)} characters to {path.relative_to(self.root)}")
