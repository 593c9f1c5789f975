"""
Core API backend for tripflow.

This module exposes the agents and the planning flow through a RESTful API:
- **GET /health**               - liveness probe for health checks.
- **POST /sessions**            - create a new agent session, returns a session ID.
- **GET /sessions**             - list all active sessions.
- **POST /agent**               - multi-turn interaction with one agent of a session.
- **POST /flows**               - plan and execute a request across the agent pool.
- **GET /flows/{id}/progress**  - poll a flow while it runs.
- **POST /flows/{id}/cancel**   - stop a flow before its next step.

Agent and flow endpoints block on model and tool I/O, so they are plain ``def`` routes that
FastAPI runs in its thread pool; this keeps progress polling responsive while a flow runs.
"""

import logging
import threading
import uuid
from typing import (
    Dict,
    List,
    Optional,
)

from fastapi import (
    Depends,
    FastAPI,
    HTTPException,
    Request,
)
from fastapi.responses import JSONResponse

from tripflow.agent.agent_loop import ToolCallAgent
from tripflow.agent.agents import (
    AGENT_FACTORIES,
    AppContext,
    build_agent_pool,
    create_agent,
)
from tripflow.agent.llm_interface import load_llm
from tripflow.api.models import (
    FlowRequest,
    FlowResponse,
    MessageRequest,
    MessageResponse,
    ProgressResponse,
    SessionInfo,
    SessionResponse,
)
from tripflow.common import (
    AnsiColors,
    colored_print,
)
from tripflow.config import (
    SECRET_FIELDS,
    settings,
)
from tripflow.core.errors import TripflowError
from tripflow.core.schema import Role
from tripflow.flow.planning_flow import (
    FlowStatus,
    PlanningFlow,
)

logger = logging.getLogger(__name__)

# Session and flow storage (in-memory only)
sessions: Dict[str, ToolCallAgent] = {}
flows: Dict[str, PlanningFlow] = {}
_registry_lock = threading.Lock()
_context: Optional[AppContext] = None

FINISHED_STATES = (FlowStatus.COMPLETED, FlowStatus.FAILED, FlowStatus.CANCELLED)

app = FastAPI(title="tripflow API", version="0.1.0", description="tripflow travel agent API")


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------
def get_app_context() -> AppContext:
    """Shared application context; the LLM back-end is loaded on first use."""
    global _context  # pylint: disable=global-statement
    with _registry_lock:
        if _context is None:
            _context = AppContext(llm=load_llm())
            logger.info("Loaded LLM back-end '%s'", settings.LLM_BACKEND)
        return _context


def get_or_create_session(
    context: AppContext, session_id: Optional[str] = None, agent_type: str = "general"
) -> str:
    """Get existing session or create a new one bound to an *agent_type* agent."""
    with _registry_lock:
        if session_id and session_id in sessions:
            return session_id

    if agent_type.lower() not in AGENT_FACTORIES:
        raise HTTPException(status_code=400, detail=f"Unknown agent type: {agent_type}")
    agent = create_agent(agent_type, context)
    new_session_id = session_id or str(uuid.uuid4())
    with _registry_lock:
        sessions[new_session_id] = agent
    logger.info("Created session %s (%s)", new_session_id, agent.name)
    return new_session_id


def _tools_used(agent: ToolCallAgent) -> List[str]:
    """Names of the tools called since the agent's most recent user message."""
    names: List[str] = []
    for message in reversed(agent.memory.messages):
        if message.role is Role.USER:
            break
        if message.role is Role.TOOL and message.name:
            names.append(message.name)
    return list(reversed(names))


def _get_flow(flow_id: str) -> PlanningFlow:
    with _registry_lock:
        flow = flows.get(flow_id)
    if flow is None:
        raise HTTPException(status_code=404, detail=f"Unknown flow: {flow_id}")
    return flow


def _prune_finished_flows(limit: int) -> None:
    """Forget the oldest finished flows beyond *limit*.  Caller holds ``_registry_lock``."""
    finished = [flow_id for flow_id, flow in flows.items() if flow.status in FINISHED_STATES]
    for flow_id in finished[: max(len(finished) - limit, 0)]:
        del flows[flow_id]
        logger.debug("Evicted finished flow %s", flow_id)


def _progress_response(flow_id: str, flow: PlanningFlow) -> ProgressResponse:
    progress = flow.get_progress()
    return ProgressResponse(
        flow_id=flow_id,
        plan_id=progress.plan_id,
        status=progress.status,
        current_step=progress.current_step,
        completed_steps=progress.completed_steps,
        total_steps=progress.total_steps,
        percentage=progress.percentage,
        failure_reason=progress.failure_reason,
    )


@app.exception_handler(TripflowError)
async def tripflow_error_handler(request: Request, exc: TripflowError) -> JSONResponse:
    """Agent and flow failures are upstream (model or tool) failures."""
    logger.warning("Request %s failed: %s", request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@app.post("/sessions", response_model=SessionResponse, summary="Create a new session")
def create_session(
    agent_type: str = "general", context: AppContext = Depends(get_app_context)
) -> SessionResponse:
    """Create a new conversation session."""
    session_id = get_or_create_session(context, agent_type=agent_type)
    return SessionResponse(session_id=session_id)


@app.get("/sessions", response_model=List[SessionInfo], summary="List active sessions")
async def list_sessions() -> List[SessionInfo]:
    """List all active sessions."""
    with _registry_lock:
        items = list(sessions.items())
    return [
        SessionInfo(
            session_id=session_id,
            agent=agent.name,
            message_count=len(agent.memory),
            status=agent.status.value,
        )
        for session_id, agent in items
    ]


@app.post("/agent", response_model=MessageResponse, summary="Process a message")
def agent_endpoint(
    req: MessageRequest, context: AppContext = Depends(get_app_context)
) -> MessageResponse:
    """Run one request through the session's agent."""
    session_id = get_or_create_session(context, req.session_id, req.agent_type)
    agent = sessions[session_id]

    logger.debug("Session %s request: %s", session_id, req.message)
    reply = agent.run(req.message, base64_image=req.base64_image)
    return MessageResponse(
        reply=reply, session_id=session_id, agent=agent.name, tools_used=_tools_used(agent)
    )


@app.post("/flows", response_model=FlowResponse, summary="Plan and execute a request")
def run_flow(req: FlowRequest, context: AppContext = Depends(get_app_context)) -> FlowResponse:
    """Build a fresh agent pool, plan the request and execute every step."""
    flow_id = req.flow_id or str(uuid.uuid4())
    primary, agents = build_agent_pool(context)
    flow = PlanningFlow(primary, agents)
    with _registry_lock:
        if flow_id in flows:
            raise HTTPException(status_code=409, detail=f"Flow already exists: {flow_id}")
        _prune_finished_flows(context.settings.MAX_FINISHED_FLOWS)
        flows[flow_id] = flow

    result = flow.execute(req.request)
    return FlowResponse(
        flow_id=flow_id, plan_id=flow.active_plan_id, status=flow.status, result=result
    )


@app.get("/flows/{flow_id}/progress", response_model=ProgressResponse, summary="Flow progress")
async def flow_progress(flow_id: str) -> ProgressResponse:
    """Return a snapshot of the flow's progress."""
    return _progress_response(flow_id, _get_flow(flow_id))


@app.post("/flows/{flow_id}/cancel", response_model=ProgressResponse, summary="Cancel a flow")
async def cancel_flow(flow_id: str) -> ProgressResponse:
    """Ask the flow to stop before its next step."""
    flow = _get_flow(flow_id)
    flow.cancel()
    return _progress_response(flow_id, flow)


@app.get("/", summary="API root")
async def root() -> dict[str, str]:
    return {"service": "tripflow", "docs": "/docs"}


# ---------------------------------------------------------------------------
# Server launcher
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """
    Serve :data:`app` with uvicorn; blocks until the server stops.

    Parameters
    ----------
    host, port:
        Address to bind.
    reload:
        Restart on source changes.  Only usable when the server owns the main thread.
    log_level:
        uvicorn log level; defaults to ``settings.LOG_LEVEL``.
    """
    import uvicorn  # pylint: disable=import-outside-toplevel

    level = log_level or settings.LOG_LEVEL
    logger.info("Serving tripflow API on %s:%d (reload=%s, log=%s)", host, port, reload, level)
    logger.debug("API settings: %s", settings.model_dump(exclude=SECRET_FIELDS))

    colored_print(f"🧭 tripflow API listening on http://localhost:{port}", AnsiColors.GREEN)
    colored_print(f"OpenAPI docs at http://localhost:{port}/docs", AnsiColors.BLUE)
    uvicorn.run("tripflow.api.app:app", host=host, port=port, reload=reload, log_level=level)


if __name__ == "__main__":
    run_api(reload=True)
