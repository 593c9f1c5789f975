"""
Specialised travel agents.

Every agent is a :class:`ToolCallAgent` that differs only by its system prompt, tool set and
capability tags.  Factories are registered by agent type (the lower-cased ``[TYPE]`` tag of a plan
step) so the planning flow can route steps with a plain dict lookup.
"""

import logging
from enum import Enum
from typing import (
    Callable,
    Dict,
    Iterable,
    Sequence,
    Tuple,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)

from tripflow.agent.agent_loop import ToolCallAgent
from tripflow.agent.llm_interface import BaseLLM
from tripflow.agent.prompts import build_system_message
from tripflow.config import (
    Settings,
    settings,
)
from tripflow.memory.memory_store import MemoryStore
from tripflow.tools import (
    BaseTool,
    create_tool,
    load_builtin_tools,
)

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    """What an agent is good at."""

    FLIGHT_SEARCH = "flight_search"
    HOTEL_BOOKING = "hotel_booking"
    ROUTE_PLANNING = "route_planning"
    BUDGET_PLANNING = "budget_planning"
    TEXT_GENERATION = "text_generation"
    DATA_ANALYSIS = "data_analysis"
    WEB_SEARCH = "web_search"
    TRAVEL_PLANNING = "travel_planning"


class AppContext(BaseModel):
    """Dependencies handed to every agent factory."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    llm: BaseLLM
    settings: Settings = Field(default_factory=lambda: settings)
    tool_overrides: Dict[str, BaseTool] = Field(
        default_factory=dict, description="Pre-built tool instances used instead of the catalog"
    )
    trip_context: str | None = Field(
        None, description="Background shared by every agent, e.g. the trip being planned"
    )
    preferences: str | None = Field(
        None, description="Traveller preferences; defaults to settings.TRAVEL_PREFERENCES"
    )

    def make_tool(self, name: str) -> BaseTool:
        override = self.tool_overrides.get(name)
        if override is not None:
            return override
        return create_tool(name)


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
AgentFactory = Callable[[AppContext], ToolCallAgent]

AGENT_FACTORIES: Dict[str, AgentFactory] = {}

PRIMARY_AGENT_TYPE = "general"


def register_agent(agent_type: str) -> Callable[[AgentFactory], AgentFactory]:
    """Decorator to register an agent factory under *agent_type*."""

    def wrapper(factory: AgentFactory) -> AgentFactory:
        AGENT_FACTORIES[agent_type] = factory
        return factory

    return wrapper


def _build_agent(
    context: AppContext,
    agent_type: str,
    name: str,
    description: str,
    capabilities: Iterable[Capability],
    tool_names: Sequence[str],
) -> ToolCallAgent:
    terminate = context.settings.TERMINATE_TOOL
    tools = [context.make_tool(tool_name) for tool_name in (*tool_names, terminate)]
    return ToolCallAgent(
        name=name,
        llm=context.llm,
        system_prompt=build_system_message(
            agent_type,
            context=context.trip_context,
            preferences=context.preferences or context.settings.TRAVEL_PREFERENCES,
        ),
        tools=tools,
        capabilities=capabilities,
        description=description,
        memory=MemoryStore(context.settings.MAX_MESSAGES),
        max_steps=context.settings.MAX_STEPS,
        terminate_tool=terminate,
    )


# ---------------------------------------------------------------------------
# Agent factories
# ---------------------------------------------------------------------------
@register_agent("general")
def create_general_agent(context: AppContext) -> ToolCallAgent:
    return _build_agent(
        context,
        "general",
        "GeneralAgent",
        "General travel assistant that plans and answers open questions",
        [Capability.TEXT_GENERATION, Capability.TRAVEL_PLANNING, Capability.WEB_SEARCH],
        ("web_search", "calculator", "file_ops"),
    )


@register_agent("flight")
def create_flight_agent(context: AppContext) -> ToolCallAgent:
    return _build_agent(
        context,
        "flight",
        "FlightAgent",
        "Searches and compares flights",
        [Capability.FLIGHT_SEARCH, Capability.TRAVEL_PLANNING],
        ("flight_search", "calculator"),
    )


@register_agent("hotel")
def create_hotel_agent(context: AppContext) -> ToolCallAgent:
    return _build_agent(
        context,
        "hotel",
        "HotelAgent",
        "Finds and compares accommodation",
        [Capability.HOTEL_BOOKING, Capability.TRAVEL_PLANNING],
        ("hotel_search", "web_search"),
    )


@register_agent("route")
def create_route_agent(context: AppContext) -> ToolCallAgent:
    return _build_agent(
        context,
        "route",
        "RouteAgent",
        "Builds day-by-day sightseeing routes",
        [Capability.ROUTE_PLANNING, Capability.WEB_SEARCH],
        ("web_search",),
    )


@register_agent("budget")
def create_budget_agent(context: AppContext) -> ToolCallAgent:
    return _build_agent(
        context,
        "budget",
        "BudgetAgent",
        "Breaks down and optimises trip costs",
        [Capability.BUDGET_PLANNING, Capability.DATA_ANALYSIS],
        ("calculator",),
    )


def create_agent(agent_type: str, context: AppContext) -> ToolCallAgent:
    """Instantiate the agent registered as *agent_type*."""
    factory = AGENT_FACTORIES.get(agent_type.lower())
    if factory is None:
        raise ValueError(f"Agent type '{agent_type}' is not registered.")
    load_builtin_tools()
    return factory(context)


def build_agent_pool(context: AppContext) -> Tuple[ToolCallAgent, Dict[str, ToolCallAgent]]:
    """
    Build one agent of every registered type.

    Returns
    -------
    tuple
        ``(primary, agents)`` where *primary* is the general agent and *agents* maps each agent
        type to its instance (the primary included).
    """
    load_builtin_tools()
    agents = {agent_type: factory(context) for agent_type, factory in AGENT_FACTORIES.items()}
    logger.info("Built agent pool: %s", ", ".join(sorted(agents)))
    return agents[PRIMARY_AGENT_TYPE], agents
