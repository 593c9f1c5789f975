"""Interactive shell that talks to a running tripflow API."""

from __future__ import annotations

import logging
import signal
import time
from typing import (
    Any,
    Dict,
    Optional,
    cast,
)

import httpx

from tripflow.common import (
    AnsiColors,
    colored_print,
)
from tripflow.config import settings

logger = logging.getLogger(__name__)

PLAN_COMMAND = "/plan"
AGENT_COMMAND = "/agent"
HELP_COMMAND = "/help"
EXIT_WORDS = frozenset({"exit", "quit"})

USAGE = (
    f"  {PLAN_COMMAND} <request>   plan and execute with all agents",
    f"  {AGENT_COMMAND} <type>     switch agent (general, flight, hotel, route, budget)",
    f"  {HELP_COMMAND}             show this help",
    "  exit | quit          leave the shell",
)


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------
def _error_detail(exc: httpx.HTTPError) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        try:
            detail = exc.response.json().get("detail")
        except ValueError:
            detail = None
        if detail:
            return f"API error: {detail}"
    return f"Error connecting to API: {exc}"


def _backoff(attempt: int) -> float:
    return 0.5 * 2**attempt


def call_api(
    endpoint: str,
    data: Dict[str, Any] | None = None,
    max_retries: int = 5,
    base_url: str | None = None,
    timeout: float = 300.0,
) -> Dict[str, Any]:
    """
    POST *data* to *endpoint* and return the decoded JSON body.

    A refused connection is retried up to *max_retries* times (0.5s, 1s, 2s, ...) because the
    shell usually starts while the server thread is still binding.  Every failure comes back as
    ``{"error": message}`` instead of an exception.
    """
    url = (base_url or f"http://localhost:{settings.API_PORT}") + endpoint
    last_error: Optional[httpx.HTTPError] = None

    for attempt in range(max_retries):
        try:
            with httpx.Client(timeout=timeout) as client:
                response = client.post(url, json=data or {})
                response.raise_for_status()
                return cast(Dict[str, Any], response.json())
        except httpx.ConnectError as exc:
            last_error = exc
            if attempt + 1 < max_retries:
                delay = _backoff(attempt)
                logger.info("API not up, retry %d/%d in %.1fs", attempt + 1, max_retries, delay)
                time.sleep(delay)
        except httpx.HTTPError as exc:
            logger.error("Request to %s failed: %s", endpoint, exc)
            return {"error": _error_detail(exc)}

    if last_error is not None:
        logger.error("Giving up on %s: %s", endpoint, last_error)
        return {"error": _error_detail(last_error)}
    return {"error": f"Failed to connect to API after {max_retries} attempts"}


# ---------------------------------------------------------------------------
# Shell
# ---------------------------------------------------------------------------
def read_line(prompt: str) -> Optional[str]:
    """Show *prompt* and read one stripped line; ``None`` on EOF or Ctrl+C."""
    # let Ctrl+C interrupt a blocking read()
    signal.siginterrupt(signal.SIGINT, True)
    colored_print(prompt, AnsiColors.BLUE, end="")
    try:
        return input().strip()
    except (EOFError, KeyboardInterrupt):
        return None


def _show(response: Dict[str, Any], key: str) -> None:
    reply = response.get(key)
    if reply is None:
        colored_print(response.get("error", "No response from API"), AnsiColors.RED)
    else:
        colored_print(reply, AnsiColors.YELLOW)


def _switch_agent(agent_type: str, session_id: str) -> str:
    response = call_api(f"/sessions?agent_type={agent_type}")
    if not response.get("session_id"):
        colored_print(response.get("error", "Could not switch agent"), AnsiColors.RED)
        return session_id
    colored_print(f"Switched to the {agent_type} agent.", AnsiColors.GREEN)
    return response["session_id"]


def handle_line(line: str, session_id: str) -> str:
    """Execute one shell line and return the session id to use next."""
    command, _, rest = line.partition(" ")
    rest = rest.strip()

    if command == HELP_COMMAND:
        for usage in USAGE:
            colored_print(usage, AnsiColors.BLUE)
    elif command == AGENT_COMMAND:
        return _switch_agent(rest or "general", session_id)
    elif command == PLAN_COMMAND:
        _show(call_api("/flows", {"request": rest}), "result")
    else:
        response = call_api("/agent", {"message": line, "session_id": session_id})
        for tool_name in response.get("tools_used") or []:
            colored_print(f"[{tool_name}]", AnsiColors.GREEN)
        _show(response, "reply")
    return session_id


def run_cli() -> None:
    """Open a session on the API and read commands until the user leaves."""
    created = call_api("/sessions")
    session_id = created.get("session_id")
    if not session_id:
        colored_print(
            f"⚠️ Failed to create a session: {created.get('error', 'unknown error')}",
            AnsiColors.RED,
        )
        return

    colored_print("\n🧭 tripflow shell (exit, quit or Ctrl+C to leave)", AnsiColors.GREEN)
    handle_line(HELP_COMMAND, session_id)
    while True:
        line = read_line("\n🧑 You: ")
        if line is None or line.lower() in EXIT_WORDS:
            break
        if line:
            session_id = handle_line(line, session_id)


if __name__ == "__main__":
    run_cli()
