"""Shared fixtures for the tripflow test-suite."""

from typing import (
    Any,
    Callable,
    Iterator,
)

import pytest

from tripflow.agent.agent_loop import ToolCallAgent
from tripflow.config import settings
from tripflow.memory.memory_store import MemoryStore
from tripflow.tools import (
    create_tool,
    load_builtin_tools,
)

from stubs import (
    EchoTool,
    ScriptedLLM,
)

load_builtin_tools()


@pytest.fixture
def terminate_tool() -> Any:
    return create_tool(settings.TERMINATE_TOOL)


@pytest.fixture
def make_agent(terminate_tool: Any) -> Callable[..., ToolCallAgent]:
    """Factory for agents driven by a :class:`ScriptedLLM`."""

    def factory(llm: ScriptedLLM, tools: Any = None, **kwargs: Any) -> ToolCallAgent:
        kwargs.setdefault("name", "TestAgent")
        kwargs.setdefault("system_prompt", "You are a test agent.")
        kwargs.setdefault("memory", MemoryStore(50))
        return ToolCallAgent(
            llm=llm,
            tools=[EchoTool(), terminate_tool] if tools is None else tools,
            **kwargs,
        )

    return factory


@pytest.fixture
def data_dir(tmp_path: Any, monkeypatch: pytest.MonkeyPatch) -> Iterator[Any]:
    """Point ``settings.DATA_DIR`` at a temporary directory."""
    monkeypatch.setattr(settings, "DATA_DIR", str(tmp_path))
    yield tmp_path
